# card_svg.py
# Decorative hearts/sparkles for celebratory scores, drawn as SVG and rasterized with cairosvg
# so the shapes come out anti-aliased on a transparent layer.
import random
from dataclasses import dataclass
from io import BytesIO
from typing import List, Optional

from PIL import Image

from card_config import CardLayout

HEART_PATH = (
    "M 0 0.32 C -0.52 -0.08 -0.52 -0.56 -0.25 -0.56 "
    "C -0.1 -0.56 0 -0.46 0 -0.34 "
    "C 0 -0.46 0.1 -0.56 0.25 -0.56 "
    "C 0.52 -0.56 0.52 -0.08 0 0.32 Z"
)
SPARKLE_POINTS = "0,-0.5 0.12,-0.12 0.5,0 0.12,0.12 0,0.5 -0.12,0.12 -0.5,0 -0.12,-0.12"

MIN_SIZE, MAX_SIZE = 18, 32
SPARKLE_EVERY = 3               # every third glyph is a sparkle


@dataclass(frozen=True)
class Glyph:
    kind: str                   # "heart" | "sparkle"
    x: int                      # center
    y: int
    size: int
    opacity: float
    rotation: int


def glyph_positions(score: int, seed: Optional[str], layout: CardLayout) -> List[Glyph]:
    count = layout.glyph_count(score)
    if count <= 0:
        return []
    rng = random.Random(f"ship:{score}:{seed or ''}")
    margin = MAX_SIZE // 2
    glyphs: List[Glyph] = []
    for i in range(count):
        glyphs.append(Glyph(
            kind="sparkle" if i % SPARKLE_EVERY == SPARKLE_EVERY - 1 else "heart",
            x=rng.randint(margin, layout.width - margin),
            y=rng.randint(margin, layout.height - margin),
            size=rng.randint(MIN_SIZE, MAX_SIZE),
            opacity=round(rng.uniform(0.7, 0.9), 2),
            rotation=rng.randint(-20, 20),
        ))
    return glyphs


def _rgb(color) -> str:
    return "#{:02X}{:02X}{:02X}".format(*color[:3])


def _heart(g: Glyph, fill: str) -> str:
    return (
        f'<path d="{HEART_PATH}" fill="{fill}" fill-opacity="{g.opacity}" '
        f'transform="translate({g.x} {g.y}) rotate({g.rotation}) scale({g.size})"/>'
    )


def _sparkle(g: Glyph, fill: str) -> str:
    return (
        f'<polygon points="{SPARKLE_POINTS}" fill="{fill}" fill-opacity="{g.opacity}" '
        f'transform="translate({g.x} {g.y}) rotate({g.rotation}) scale({g.size})"/>'
    )


def build_overlay_svg(glyphs: List[Glyph], layout: CardLayout) -> str:
    heart_fill = _rgb(layout.palette.glyph)
    sparkle_fill = _rgb(layout.palette.label)
    parts = [
        _heart(g, heart_fill) if g.kind == "heart" else _sparkle(g, sparkle_fill)
        for g in glyphs
    ]
    body = "\n  ".join(parts)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<svg width="{layout.width}" height="{layout.height}" viewBox="0 0 {layout.width} {layout.height}" xmlns="http://www.w3.org/2000/svg">
  {body}
</svg>
"""


def render_overlay(glyphs: List[Glyph], layout: CardLayout) -> Image.Image:
    # cairosvg needs the native cairo library; keep it out of import time
    import cairosvg

    svg = build_overlay_svg(glyphs, layout)
    png = cairosvg.svg2png(
        bytestring=svg.encode("utf-8"),
        output_width=layout.width,
        output_height=layout.height,
    )
    return Image.open(BytesIO(png)).convert("RGBA")
