"""Shared fixtures: in-memory PNG assets and a URL-keyed fake fetcher, so no test touches the network."""
from io import BytesIO

import pytest
from PIL import Image

from asset_fetch import FetchError
from card_config import CardLayout

TEMPLATE_URL = "https://assets.test/ship-base.png"
FALLBACK_URL = "https://assets.test/static/ship-base.png"
AVATAR_A = "https://cdn.test/a.png"
AVATAR_B = "https://cdn.test/b.png"


def png_bytes(size, color) -> bytes:
    out = BytesIO()
    Image.new("RGBA", size, color).save(out, format="PNG")
    return out.getvalue()


def split_png_bytes(size, top, bottom) -> bytes:
    """Two-tone image (top half / bottom half) so a 180 degree rotation is visible."""
    im = Image.new("RGBA", size, top)
    im.paste(Image.new("RGBA", (size[0], size[1] // 2), bottom), (0, size[1] // 2))
    out = BytesIO()
    im.save(out, format="PNG")
    return out.getvalue()


class FakeFetcher:
    """callable(url) -> (bytes, mime); unknown URLs fail like a 404."""

    def __init__(self, assets=None):
        self.assets = dict(assets or {})
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        if url not in self.assets:
            raise FetchError(url, "HTTP 404")
        return self.assets[url], "image/png"


@pytest.fixture
def layout():
    return CardLayout(template_url=TEMPLATE_URL, template_fallback_url=FALLBACK_URL)


@pytest.fixture
def assets():
    return {
        TEMPLATE_URL: png_bytes((513, 220), (40, 10, 20, 255)),
        AVATAR_A: png_bytes((256, 256), (0, 128, 255, 255)),
        AVATAR_B: split_png_bytes((256, 256), (255, 0, 0, 255), (0, 255, 0, 255)),
    }


@pytest.fixture
def fetcher(assets):
    return FakeFetcher(assets)
