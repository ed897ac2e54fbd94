"""
card_config.py
- Layout + policy for the ship card, as one immutable object.
- Defaults match the 513x220 card (two 221px avatar panels around a 71px bar).
- from_env() is where every card setting is read from the environment.
"""

import os
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple, Union

Color = Tuple[int, int, int, int]
Bucket = Union[int, str]

OTHER = "other"


@dataclass(frozen=True)
class Box:
    x: int
    y: int
    w: int
    h: int

    @property
    def right(self) -> int:
        return self.x + self.w

    @property
    def bottom(self) -> int:
        return self.y + self.h

    def scaled(self, sx: float, sy: float) -> "Box":
        return Box(round(self.x * sx), round(self.y * sy), round(self.w * sx), round(self.h * sy))


@dataclass(frozen=True)
class Palette:
    background: Color = (0, 0, 0, 255)
    fill: Mapping[Bucket, Color] = field(default_factory=lambda: {
        OTHER: (181, 126, 90, 230),   # 0.90
        69:    (181, 126, 90, 250),   # 0.98
        100:   (255, 255, 255, 242),  # 0.95
    })
    label: Color = (255, 255, 255, 255)
    label_shadow: Color = (0, 0, 0, 178)
    glyph: Color = (255, 105, 180, 210)
    message: Color = (255, 255, 255, 255)

    def __post_init__(self):
        object.__setattr__(self, "fill", MappingProxyType(dict(self.fill)))

    def fill_for(self, bucket_key: Bucket) -> Color:
        return self.fill.get(bucket_key, self.fill[OTHER])


DEFAULT_TEMPLATE_URL = "https://github.com/nymfluence/whisper-ship-card-v2/blob/main/50.png?raw=true"
DEFAULT_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"


@dataclass(frozen=True)
class CardLayout:
    # ---------------------- geometry ----------------------
    width: int = 513
    height: int = 220
    left: Box = Box(0, 0, 221, 220)
    bar: Box = Box(221, 0, 71, 220)
    right: Box = Box(292, 0, 221, 220)
    label_offset: int = 58            # label top = bar bottom - offset
    label_size: int = 28
    label_size_celebratory: int = 36
    palette: Palette = field(default_factory=Palette)

    # ---------------------- score policy ----------------------
    celebratory: FrozenSet[int] = frozenset({69, 100})
    flip_on: FrozenSet[int] = frozenset({69})
    glyph_counts: Mapping[Bucket, int] = field(default_factory=lambda: {69: 6, 100: 12, OTHER: 0})
    overlay_urls: Mapping[Bucket, Optional[str]] = field(default_factory=dict)

    # ---------------------- assets ----------------------
    template_url: str = DEFAULT_TEMPLATE_URL
    template_fallback_url: Optional[str] = None   # None -> "<host>/static/ship-base.png"
    fetch_timeout: float = 8.0
    user_agent: str = "whisper-ship-card"
    max_workers: int = 4
    on_template_failure: str = "error"            # "error" | "degraded"
    font_path: str = DEFAULT_FONT_PATH
    layout_tuning: bool = False

    def __post_init__(self):
        # read-only views over private copies
        object.__setattr__(self, "glyph_counts", MappingProxyType(dict(self.glyph_counts)))
        object.__setattr__(self, "overlay_urls", MappingProxyType(dict(self.overlay_urls)))

    def bucket(self, score: int) -> Bucket:
        return score if score in self.celebratory else OTHER

    def is_celebratory(self, score: int) -> bool:
        return score in self.celebratory

    def glyph_count(self, score: int) -> int:
        return self.glyph_counts.get(self.bucket(score), 0)

    def overlay_url(self, score: int) -> Optional[str]:
        return self.overlay_urls.get(self.bucket(score))

    def fallback_for(self, host_url: str) -> str:
        if self.template_fallback_url:
            return self.template_fallback_url
        return f"{host_url.rstrip('/')}/static/ship-base.png"

    def with_overrides(self, params) -> "CardLayout":
        """Apply request-level bar tuning (barX/barY/barW/barH/labelOffset)."""
        if not self.layout_tuning:
            return self
        bar = {"x": self.bar.x, "y": self.bar.y, "w": self.bar.w, "h": self.bar.h}
        for key, attr, lowest in (("barX", "x", 0), ("barY", "y", 0), ("barW", "w", 1), ("barH", "h", 1)):
            v = _int_or_none(params.get(key))
            if v is not None and v >= lowest:
                bar[attr] = v
        label_offset = _int_or_none(params.get("labelOffset"))
        return replace(
            self,
            bar=Box(**bar),
            label_offset=self.label_offset if label_offset is None else label_offset,
        )

    @classmethod
    def wide(cls, **kw) -> "CardLayout":
        """1200x675 variant: same proportions, boxes scaled up."""
        base = cls()
        sx, sy = 1200 / base.width, 675 / base.height
        return cls(
            width=1200, height=675,
            left=base.left.scaled(sx, sy),
            bar=base.bar.scaled(sx, sy),
            right=base.right.scaled(sx, sy),
            label_offset=round(base.label_offset * sy),
            label_size=round(base.label_size * sy),
            label_size_celebratory=round(base.label_size_celebratory * sy),
            **kw,
        )

    @classmethod
    def from_env(cls) -> "CardLayout":
        variant = os.getenv("SHIP_VARIANT", "card").lower()
        overlays = {
            69:    os.getenv("SHIP_OVERLAY_69_URL") or None,
            100:   os.getenv("SHIP_OVERLAY_100_URL") or None,
            OTHER: os.getenv("SHIP_OVERLAY_URL") or None,
        }
        kw = dict(
            template_url=os.getenv("SHIP_TEMPLATE_URL", DEFAULT_TEMPLATE_URL),
            template_fallback_url=os.getenv("SHIP_TEMPLATE_FALLBACK_URL") or None,
            overlay_urls={k: v for k, v in overlays.items() if v},
            fetch_timeout=float(os.getenv("SHIP_FETCH_TIMEOUT", "8")),
            on_template_failure=os.getenv("SHIP_ON_TEMPLATE_FAILURE", "error").lower(),
            flip_on=_score_set(os.getenv("SHIP_FLIP_ON", "69")),
            font_path=os.getenv("SHIP_FONT_PATH", DEFAULT_FONT_PATH),
            layout_tuning=os.getenv("SHIP_LAYOUT_TUNING", "0") == "1",
        )
        if variant == "wide":
            return cls.wide(**kw)
        return cls(**kw)


def _int_or_none(v) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _score_set(raw: str) -> FrozenSet[int]:
    out = set()
    for part in raw.split(","):
        v = _int_or_none(part.strip())
        if v is not None:
            out.add(v)
    return frozenset(out)
