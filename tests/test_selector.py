import pytest

from imglib.presets import preset_settings
from imglib.results import Dimensions
from imglib.selector import dimension_overrides, progressive_settings, select_settings


@pytest.mark.parametrize(
    "size_mb, preset",
    [
        (0.0, "high_quality"),
        (0.5, "high_quality"),
        (0.999, "high_quality"),
        (1.0, "balanced"),
        (2.99, "balanced"),
        (3.0, "web_optimized"),
        (4.99, "web_optimized"),
        (5.0, "aggressive"),
        (48.0, "aggressive"),
    ],
)
def test_size_tiers(size_mb, preset):
    assert progressive_settings(size_mb) == preset_settings(preset)


@pytest.mark.parametrize(
    "width, height, max_px, quality",
    [
        (5000, 3000, 2048, 0.75),
        (3000, 4001, 2048, 0.75),
        (4000, 4000, 1920, 0.8),
        (2001, 100, 1920, 0.8),
        (2000, 1500, 1920, 0.85),
        (640, 480, 1920, 0.85),
    ],
)
def test_dimension_overrides(width, height, max_px, quality):
    assert dimension_overrides(Dimensions(width, height)) == {
        "max_width_or_height": max_px,
        "quality": quality,
    }


def test_dimension_override_keeps_size_target_from_tier():
    s = select_settings(0.5, progressive=True, dimensions=Dimensions(5000, 3000))

    assert s.max_width_or_height == 2048
    assert s.quality == 0.75
    assert s.max_size_mb == preset_settings("high_quality").max_size_mb
    assert s.max_output_size_bytes == 2 * 1024 * 1024


def test_override_applies_on_every_tier():
    s = select_settings(6.0, progressive=True, dimensions=Dimensions(800, 600))

    assert s.max_size_mb == preset_settings("aggressive").max_size_mb
    assert s.max_width_or_height == 1920
    assert s.quality == 0.85


def test_explicit_preset_ignores_dimensions():
    expected = preset_settings("aggressive")

    for dims in (None, Dimensions(100, 100), Dimensions(9000, 6000)):
        for size_mb in (0.1, 4.0, 20.0):
            s = select_settings(size_mb, progressive=False, preset="aggressive", dimensions=dims)
            assert s == expected


def test_missing_dimensions_fall_back_to_tier():
    assert select_settings(2.0, progressive=True, dimensions=None) == preset_settings("balanced")
    assert select_settings(2.0, progressive=True, dimensions=Dimensions(0, 0)) == preset_settings("balanced")


def test_selection_is_deterministic():
    args = dict(progressive=True, preset="balanced", dimensions=Dimensions(3200, 2400))
    first = select_settings(3.5, **args)

    for _ in range(10):
        assert select_settings(3.5, **args) == first
