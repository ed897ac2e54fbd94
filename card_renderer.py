"""
card_renderer.py
- All rendering for the ship card lives here.
- Score -> fill bar geometry, asset resolution, layer compositing, PNG encode.
- Layers, bottom to top: background, template, left avatar, right avatar, fill bar, label, decoration.
- Nothing here reads the environment; the CardLayout passed in is the whole configuration.
"""

import logging
import math
import re
import textwrap
from dataclasses import dataclass, field
from functools import lru_cache
from io import BytesIO
from typing import Dict, Optional

from PIL import Image, ImageDraw, ImageFilter, ImageFont, ImageOps

import card_svg
from asset_fetch import (
    AssetRef, AssetRole, Fetcher, HttpFetcher, Resolved, Result,
    is_http_url, outcome, resolve, resolve_all, resolve_template,
)
from card_config import Box, CardLayout

logger = logging.getLogger(__name__)

CACHE_CONTROL = "no-store"
TEMPLATE_MISSING_MESSAGE = "Ship card template unavailable"

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


class RenderFailure(Exception):
    """Compositing or rasterization failed; the caller gets a 500."""


class TemplateUnavailable(RenderFailure):
    """Template and its fallback both failed to load."""


# ---------------------- score ----------------------
def normalize(raw) -> int:
    """Integer-prefix parse (truncating), clamped to 0..100. Anything unparseable is 0."""
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return 0
        n = int(raw)
    elif isinstance(raw, int):
        n = raw
    else:
        m = _INT_PREFIX.match(str(raw))
        if not m:
            return 0
        n = int(m.group(1))
    return max(0, min(100, n))


@dataclass(frozen=True)
class RenderRequest:
    score: int
    avatar_a: Optional[str] = None
    avatar_b: Optional[str] = None
    template_override: Optional[str] = None
    seed: Optional[str] = None
    score_raw: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "score", normalize(self.score))

    @classmethod
    def from_params(cls, params) -> "RenderRequest":
        raw = params.get("score", "0")
        return cls(
            score=raw,
            avatar_a=params.get("u1") or None,
            avatar_b=params.get("u2") or None,
            template_override=params.get("template") or None,
            seed=params.get("seed") or None,
            score_raw=raw,
        )


# ---------------------- geometry ----------------------
@dataclass(frozen=True)
class FillGeometry:
    top: int
    height: int


def bar_geometry(layout: CardLayout) -> Box:
    return layout.bar


def fill_geometry(score: int, bar: Box) -> FillGeometry:
    """Fill grows bottom-up; height = round(bar.h * score / 100), halves round up."""
    s = normalize(score)
    height = (2 * bar.h * s + 100) // 200
    return FillGeometry(top=bar.y + (bar.h - height), height=height)


def label_size_for(layout: CardLayout, score: int) -> int:
    return layout.label_size_celebratory if layout.is_celebratory(score) else layout.label_size


# ---------------------- fonts ----------------------
@lru_cache(maxsize=16)
def _font(path: str, size: int):
    """Try the configured TTF (DejaVu Bold by default); fall back to Pillow's bundled font."""
    try:
        return ImageFont.truetype(path, size=size)
    except OSError:
        return ImageFont.load_default(size=size)


# ---------------------- assets ----------------------
@dataclass(frozen=True)
class AssetPlan:
    template: AssetRef
    fallback: Optional[AssetRef]
    avatar_a: Optional[AssetRef]
    avatar_b: Optional[AssetRef]
    overlay: Optional[AssetRef]


def plan_assets(req: RenderRequest, layout: CardLayout, host_url: str) -> AssetPlan:
    template_url = req.template_override if is_http_url(req.template_override) else layout.template_url
    overlay_url = layout.overlay_url(req.score)
    return AssetPlan(
        template=AssetRef(template_url, AssetRole.TEMPLATE),
        fallback=AssetRef(layout.fallback_for(host_url), AssetRole.TEMPLATE),
        avatar_a=AssetRef(req.avatar_a, AssetRole.AVATAR) if req.avatar_a else None,
        avatar_b=AssetRef(req.avatar_b, AssetRole.AVATAR) if req.avatar_b else None,
        overlay=AssetRef(overlay_url, AssetRole.OVERLAY) if overlay_url else None,
    )


def resolve_assets(plan: AssetPlan, fetcher: Fetcher, max_workers: int = 4) -> Dict[str, Result]:
    return resolve_all({
        "template": lambda: resolve_template(plan.template, plan.fallback, fetcher),
        "u1":       lambda: resolve(plan.avatar_a, fetcher),
        "u2":       lambda: resolve(plan.avatar_b, fetcher),
        "overlay":  lambda: resolve(plan.overlay, fetcher),
    }, max_workers=max_workers)


def _decode(result: Optional[Result]) -> Optional[Image.Image]:
    if not isinstance(result, Resolved):
        return None
    try:
        im = Image.open(BytesIO(result.data))
        im.load()
    except (OSError, Image.DecompressionBombError) as e:
        if result.ref.role is AssetRole.TEMPLATE:
            raise RenderFailure(f"template {result.ref.url} is not a readable image: {e}") from e
        logger.warning("%s %s is not a readable image, skipping layer", result.ref.role.value, result.ref.url)
        return None
    return im.convert("RGBA")


# ---------------------- compositing ----------------------
def _paste_cover(im: Image.Image, src: Image.Image, box: Box, rotate: bool = False) -> None:
    layer = ImageOps.fit(src, (box.w, box.h), Image.LANCZOS)
    if rotate:
        layer = layer.rotate(180)
    im.alpha_composite(layer, dest=(box.x, box.y))


def _draw_fill(im: Image.Image, layout: CardLayout, score: int) -> None:
    bar = bar_geometry(layout)
    fill = fill_geometry(score, bar)
    if fill.height <= 0 or bar.w <= 0:
        return
    layer = Image.new("RGBA", im.size, (0, 0, 0, 0))
    color = layout.palette.fill_for(layout.bucket(score))
    ImageDraw.Draw(layer).rectangle(
        [bar.x, fill.top, bar.right - 1, fill.top + fill.height - 1], fill=color
    )
    im.alpha_composite(layer)


def _draw_label(im: Image.Image, layout: CardLayout, score: int) -> None:
    bar = bar_geometry(layout)
    font = _font(layout.font_path, label_size_for(layout, score))
    text = f"{score}%"
    d = ImageDraw.Draw(im)
    tbox = d.textbbox((0, 0), text, font=font)
    x = bar.x + (bar.w - (tbox[2] - tbox[0])) // 2 - tbox[0]
    y = bar.bottom - layout.label_offset

    shadow = Image.new("RGBA", im.size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).text((x, y + 2), text, font=font, fill=layout.palette.label_shadow)
    im.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(2)))
    d.text((x, y), text, font=font, fill=layout.palette.label)


def _draw_decoration(im: Image.Image, layout: CardLayout, score: int,
                     overlay: Optional[Image.Image], seed: Optional[str]) -> None:
    if overlay is not None:
        im.alpha_composite(ImageOps.fit(overlay, im.size, Image.LANCZOS))
        return
    glyphs = card_svg.glyph_positions(score, seed, layout)
    if glyphs:
        im.alpha_composite(card_svg.render_overlay(glyphs, layout))


def compose(layout: CardLayout, score: int, assets: Dict[str, Result], seed: Optional[str] = None) -> Image.Image:
    score = normalize(score)
    im = Image.new("RGBA", (layout.width, layout.height), layout.palette.background)

    template = _decode(assets.get("template"))
    if template is not None:
        im.alpha_composite(ImageOps.fit(template, im.size, Image.LANCZOS))

    left = _decode(assets.get("u1"))
    if left is not None:
        _paste_cover(im, left, layout.left)

    right = _decode(assets.get("u2"))
    if right is not None:
        _paste_cover(im, right, layout.right, rotate=score in layout.flip_on)

    _draw_fill(im, layout, score)
    _draw_label(im, layout, score)
    _draw_decoration(im, layout, score, _decode(assets.get("overlay")), seed)
    return im.convert("RGB")


def render_degraded_card(layout: CardLayout, score: int, message: str = TEMPLATE_MISSING_MESSAGE) -> Image.Image:
    """No template: solid background, bar and label still drawn, message in the left panel."""
    score = normalize(score)
    im = Image.new("RGBA", (layout.width, layout.height), layout.palette.background)
    _draw_fill(im, layout, score)
    _draw_label(im, layout, score)

    d = ImageDraw.Draw(im)
    font = _font(layout.font_path, max(12, layout.label_size // 2))
    wrapped = textwrap.fill(message, width=max(8, layout.left.w // 10))
    mbox = d.multiline_textbbox((0, 0), wrapped, font=font, align="center")
    mx = layout.left.x + (layout.left.w - (mbox[2] - mbox[0])) // 2
    my = layout.left.y + (layout.left.h - (mbox[3] - mbox[1])) // 2
    d.multiline_text((mx, my), wrapped, font=font, fill=layout.palette.message, align="center")
    return im.convert("RGB")


def encode_png(im: Image.Image) -> bytes:
    out = BytesIO()
    im.save(out, format="PNG")
    return out.getvalue()


# ---------------------- orchestration ----------------------
@dataclass(frozen=True)
class RenderedCard:
    png: bytes
    score: int
    degraded: bool = False
    outcomes: Dict[str, dict] = field(default_factory=dict)
    cache_control: str = CACHE_CONTROL
    mimetype: str = "image/png"


def _fetch_all(req: RenderRequest, layout: CardLayout, host_url: str,
               fetcher: Optional[Fetcher]) -> Dict[str, Result]:
    plan = plan_assets(req, layout, host_url)
    if fetcher is not None:
        return resolve_assets(plan, fetcher, layout.max_workers)
    http = HttpFetcher(timeout=layout.fetch_timeout, user_agent=layout.user_agent)
    try:
        return resolve_assets(plan, http, layout.max_workers)
    finally:
        http.close()


def render_ship_card(req: RenderRequest, layout: CardLayout, host_url: str = "http://localhost",
                     fetcher: Optional[Fetcher] = None) -> RenderedCard:
    assets = _fetch_all(req, layout, host_url, fetcher)
    outcomes = {name: outcome(r) for name, r in assets.items()}

    template = assets["template"]
    if not template.ok:
        if layout.on_template_failure != "degraded":
            raise TemplateUnavailable(template.reason)
        logger.warning("template unavailable (%s), sending degraded card", template.reason)
        png = encode_png(render_degraded_card(layout, req.score))
        return RenderedCard(png=png, score=req.score, degraded=True, outcomes=outcomes)

    try:
        im = compose(layout, req.score, assets, req.seed)
        png = encode_png(im)
    except RenderFailure:
        raise
    except (OSError, ValueError) as e:
        raise RenderFailure(f"compositing failed: {e}") from e
    return RenderedCard(png=png, score=req.score, outcomes=outcomes)


def debug_report(req: RenderRequest, layout: CardLayout, host_url: str = "http://localhost",
                 fetcher: Optional[Fetcher] = None) -> dict:
    """What a render would use, without rasterizing anything."""
    plan = plan_assets(req, layout, host_url)
    assets = _fetch_all(req, layout, host_url, fetcher)
    fill = fill_geometry(req.score, bar_geometry(layout))
    bucket = layout.bucket(req.score)
    return {
        "scoreRaw": req.score_raw,
        "score": req.score,
        "templateUrl": plan.template.url,
        "templateFallbackUrl": plan.fallback.url if plan.fallback else None,
        "u1Provided": bool(req.avatar_a),
        "u2Provided": bool(req.avatar_b),
        "bucket": bucket,
        "flip": req.score in layout.flip_on,
        "labelSize": label_size_for(layout, req.score),
        "canvas": {"width": layout.width, "height": layout.height},
        "fill": {"top": fill.top, "height": fill.height},
        "outcomes": {name: outcome(r) for name, r in assets.items()},
    }
