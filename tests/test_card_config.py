"""Tests for CardLayout defaults, env loading and request-level tuning."""
from dataclasses import replace

import pytest

from card_config import OTHER, Box, CardLayout


def test_default_card_panels_tile_the_canvas():
    layout = CardLayout()
    assert (layout.width, layout.height) == (513, 220)
    assert layout.left.right == layout.bar.x
    assert layout.bar.right == layout.right.x
    assert layout.right.right == layout.width


def test_buckets():
    layout = CardLayout()
    assert layout.bucket(69) == 69
    assert layout.bucket(100) == 100
    assert layout.bucket(68) == OTHER
    assert layout.glyph_count(0) == 0
    assert layout.glyph_count(100) == 12


def test_fill_color_falls_back_to_generic():
    p = CardLayout().palette
    assert p.fill_for(42) == p.fill[OTHER]
    assert p.fill_for(100) == (255, 255, 255, 242)


def test_wide_variant_scales_boxes():
    wide = CardLayout.wide()
    assert (wide.width, wide.height) == (1200, 675)
    assert wide.bar.h == 675
    assert wide.label_size_celebratory > wide.label_size


def test_fallback_for_host():
    assert CardLayout().fallback_for("https://ship.test/") == "https://ship.test/static/ship-base.png"
    assert CardLayout(template_fallback_url="https://x/t.png").fallback_for("https://ship.test") == "https://x/t.png"


def test_from_env(monkeypatch):
    monkeypatch.setenv("SHIP_TEMPLATE_URL", "https://env.test/t.png")
    monkeypatch.setenv("SHIP_OVERLAY_100_URL", "https://env.test/o100.png")
    monkeypatch.setenv("SHIP_FETCH_TIMEOUT", "2.5")
    monkeypatch.setenv("SHIP_FLIP_ON", "69, 42, junk")
    monkeypatch.setenv("SHIP_ON_TEMPLATE_FAILURE", "Degraded")
    monkeypatch.setenv("SHIP_VARIANT", "wide")
    layout = CardLayout.from_env()
    assert layout.template_url == "https://env.test/t.png"
    assert layout.overlay_url(100) == "https://env.test/o100.png"
    assert layout.overlay_url(69) is None
    assert layout.fetch_timeout == 2.5
    assert layout.flip_on == frozenset({69, 42})
    assert layout.on_template_failure == "degraded"
    assert layout.width == 1200


def test_overrides_ignored_unless_tuning_enabled():
    layout = CardLayout()
    assert layout.with_overrides({"barH": "100"}) is layout


def test_overrides_apply_valid_values_only():
    layout = CardLayout(layout_tuning=True)
    tuned = layout.with_overrides({"barX": "200", "barH": "100", "barW": "oops", "barY": "-3", "labelOffset": "40"})
    assert tuned.bar == Box(200, 0, 71, 100)
    assert tuned.label_offset == 40


def test_overrides_reject_zero_sized_bar():
    layout = CardLayout(layout_tuning=True)
    tuned = layout.with_overrides({"barW": "0", "barH": "0"})
    assert tuned.bar == layout.bar


def test_layout_mappings_are_read_only():
    layout = CardLayout()
    with pytest.raises(TypeError):
        layout.glyph_counts[OTHER] = 5
    with pytest.raises(TypeError):
        layout.overlay_urls[100] = "https://x/o.png"
    with pytest.raises(TypeError):
        layout.palette.fill[OTHER] = (0, 0, 0, 0)


def test_replace_does_not_share_mappings():
    counts = {69: 1, 100: 2, OTHER: 0}
    layout = CardLayout(glyph_counts=counts)
    counts[100] = 99
    assert layout.glyph_count(100) == 2
    other = replace(layout, overlay_urls={100: "https://x/o.png"})
    assert layout.overlay_url(100) is None
    assert other.overlay_url(100) == "https://x/o.png"
