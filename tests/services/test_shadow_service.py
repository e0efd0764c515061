import sys
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services.clip_shape import ClipShape  # noqa: E402
from iconrender.services.icon_models import ShadowParams  # noqa: E402
from iconrender.services.render_config import RenderConfig  # noqa: E402
from iconrender.services.shadow_service import ShadowSynthesizer, blur_radius_to_sigma  # noqa: E402


def _square_icon(size=64):
    image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    image.paste((255, 255, 255, 255), (16, 16, 48, 48))
    return image


def test_blur_radius_to_sigma():
    assert blur_radius_to_sigma(0) == 0.0
    assert blur_radius_to_sigma(10) == pytest.approx(10 * 0.57735 + 0.5)


def test_shadow_drawn_behind_content():
    icon = _square_icon()
    result = ShadowSynthesizer(64).add_shadow(icon, icon)
    assert result.size == icon.size
    # 内容像素保持不变
    assert result.getpixel((32, 32)) == (255, 255, 255, 255)
    # 内容下方出现阴影
    assert result.getpixel((32, 49))[3] > 0
    assert icon.getpixel((32, 49))[3] == 0


def test_key_shadow_is_offset_downward():
    icon = _square_icon()
    layer = ShadowSynthesizer(64).shadow_layer(icon.getchannel("A"))
    assert layer.getpixel((32, 50))[3] >= layer.getpixel((32, 13))[3]


def test_disabled_shadows_return_input_untouched():
    icon = _square_icon()
    synthesizer = ShadowSynthesizer(64, RenderConfig(shadows_enabled=False))
    assert synthesizer.add_shadow(icon, icon) is icon
    assert synthesizer.add_path_shadow(ClipShape.circle(), icon, 4) is icon
    assert synthesizer.effective_params().is_visible is False


def test_zero_alpha_params_skip_shadow():
    icon = _square_icon()
    assert ShadowSynthesizer(64).add_shadow(icon, icon, ShadowParams().disabled()) is icon


def test_path_shadow_surrounds_shape():
    canvas = Image.new("RGBA", (64, 64), (0, 0, 0, 0))
    result = ShadowSynthesizer(64).add_path_shadow(ClipShape.circle(), canvas, 6)
    assert result.size == (64, 64)
    assert result.getpixel((32, 59))[3] > 0
    assert result.getpixel((0, 0))[3] == 0


def test_create_pill_dimensions():
    pill, radius = ShadowSynthesizer(96).create_pill(40, 20, color=(255, 0, 0))
    assert radius == pytest.approx(10)
    assert pill.size[0] >= 40 and pill.size[1] >= 20
    center = pill.getpixel((pill.size[0] // 2, pill.size[1] // 2))
    assert center[:3] == (255, 0, 0)
    assert center[3] == 255
