import math
import sys
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services.clip_shape import ClipShape  # noqa: E402
from iconrender.services.icon_models import (  # noqa: E402
    AdaptiveSource,
    BitmapLayer,
    ColorLayer,
    FlatSource,
    ShadowParams,
    ThemeOverlay,
    ThemeOverrideSource,
)
from iconrender.services.shape_normalizer import (  # noqa: E402
    LEGACY_ICON_SCALE,
    MAX_SQUARE_AREA_FACTOR,
    ShapeNormalizer,
    scale_for_area,
    scale_for_shadow_bounds,
)


def _solid(size, color=(255, 0, 0, 255)):
    return Image.new("RGBA", (size, size), color)


def test_all_transparent_image_keeps_scale_one():
    normalizer = ShapeNormalizer(96)
    result = normalizer.compute_scale(FlatSource(Image.new("RGBA", (64, 64), (0, 0, 0, 0))))
    assert result.scale == 1.0
    assert result.shape_detected is False


def test_filled_square_uses_square_area_factor():
    result = ShapeNormalizer(96).compute_scale(FlatSource(_solid(100)))
    assert result.scale == pytest.approx(math.sqrt(MAX_SQUARE_AREA_FACTOR), abs=1e-3)
    assert result.visible_bounds == (0.0, 0.0, 1.0, 1.0)


def test_circle_image_uses_circle_area_factor():
    image = Image.new("RGBA", (200, 200), (0, 0, 0, 0))
    ImageDraw.Draw(image).ellipse((0, 0, 199, 199), fill=(0, 128, 255, 255))
    result = ShapeNormalizer(96).compute_scale(FlatSource(image))
    assert result.scale == pytest.approx(0.917, abs=0.01)


def test_small_content_is_not_scaled():
    image = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
    image.paste((0, 0, 0, 255), (40, 40, 60, 60))
    result = ShapeNormalizer(96).compute_scale(FlatSource(image))
    assert result.scale == 1.0
    assert result.visible_bounds == pytest.approx((0.4, 0.4, 0.6, 0.6))


def test_large_image_is_downsampled_before_analysis():
    result = ShapeNormalizer(48).compute_scale(FlatSource(_solid(512)))
    assert 0 < result.scale <= 1
    assert result.scale == pytest.approx(math.sqrt(MAX_SQUARE_AREA_FACTOR), abs=1e-3)


def test_adaptive_source_is_already_normalized():
    source = AdaptiveSource(ColorLayer((255, 255, 255)), ColorLayer((0, 0, 0)), shape=ClipShape.square())
    result = ShapeNormalizer(96).compute_scale(source)
    assert result.scale == pytest.approx(1.0)
    assert result.shape_detected is True
    assert result.visible_bounds == pytest.approx((0.0, 0.0, 1.0, 1.0))


def test_shape_detection_against_mask():
    normalizer = ShapeNormalizer(96)
    assert normalizer.compute_scale(FlatSource(_solid(100)), ClipShape.square()).shape_detected is True
    assert normalizer.compute_scale(FlatSource(_solid(100)), ClipShape.circle()).shape_detected is False


def test_wrap_to_adaptive_insets_legacy_icon():
    normalizer = ShapeNormalizer(96)
    wrapper, result = normalizer.wrap_to_adaptive(FlatSource(_solid(100)), (1, 2, 3), ClipShape.circle())
    assert isinstance(wrapper.background, ColorLayer)
    assert wrapper.background.color == (1, 2, 3)
    assert isinstance(wrapper.foreground, BitmapLayer)
    assert wrapper.foreground.scale == pytest.approx(result.scale * LEGACY_ICON_SCALE)
    assert wrapper.shape.name == "circle"


def test_wrap_to_adaptive_detected_shape_fills_layer():
    wrapper, result = ShapeNormalizer(96).wrap_to_adaptive(FlatSource(_solid(100)), (0, 0, 0), ClipShape.square())
    assert result.shape_detected is True
    assert wrapper.foreground.scale == pytest.approx(0.75)


def test_theme_override_uses_fallback():
    overlay = ThemeOverlay("com.example", "ic_themed")
    normalizer = ShapeNormalizer(96)
    assert normalizer.compute_scale(ThemeOverrideSource(overlay)).scale == 1.0
    fallback = FlatSource(_solid(100))
    result = normalizer.compute_scale(ThemeOverrideSource(overlay, fallback=fallback))
    assert result.scale == pytest.approx(math.sqrt(MAX_SQUARE_AREA_FACTOR), abs=1e-3)


def test_unknown_source_type_rejected():
    with pytest.raises(TypeError):
        ShapeNormalizer(96).compute_scale(object())


def test_scale_for_area_degenerate_inputs():
    assert scale_for_area(0, 0, 0) == 1.0
    assert scale_for_area(10, 0, 100) == 1.0


def test_scale_for_shadow_bounds():
    params = ShadowParams()
    expected = (0.5 - (params.blur_factor + params.key_shadow_distance)) / 0.5
    assert scale_for_shadow_bounds((0.0, 0.0, 0.0, 0.0), params) == pytest.approx(expected)
    assert scale_for_shadow_bounds((0.2, 0.2, 0.2, 0.2), params) == 1.0
    assert scale_for_shadow_bounds((0.0, 0.0, 0.0, 0.0), params.disabled()) == 1.0
