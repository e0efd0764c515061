import sys
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services.badge_renderer import (  # noqa: E402
    BADGE_TINTS,
    LUMINANCE_LIMIT,
    BadgeSpec,
    DotParams,
    DotRenderer,
    lift_dot_color,
    render_badge,
)
from iconrender.services.clip_shape import ClipShape  # noqa: E402
from iconrender.services.icon_models import BadgeKind  # noqa: E402
from iconrender.services.luminance import color_luminance  # noqa: E402


@pytest.mark.parametrize("kind", list(BadgeKind))
def test_badges_have_requested_size(kind):
    badge = render_badge(BadgeSpec(kind), 40)
    assert badge.size == (40, 40)
    assert badge.mode == "RGBA"
    assert badge.getpixel((0, 0))[3] == 0


def test_work_badge_uses_tint_and_white_glyph():
    badge = render_badge(BadgeSpec(BadgeKind.WORK), 64)
    glyph = badge.getpixel((32, 36))
    assert glyph[0] > 240 and glyph[1] > 240 and glyph[2] > 240
    rim = badge.getpixel((32, 4))
    assert rim[:3] == pytest.approx(BADGE_TINTS[BadgeKind.WORK], abs=3)


def test_ring_badge_is_hollow():
    ring = render_badge(BadgeSpec(BadgeKind.RING, color=(255, 0, 0)), 48)
    assert ring.getpixel((24, 24))[3] == 0
    assert ring.getpixel((24, 1))[3] > 0


def test_custom_tint():
    assert BadgeSpec(BadgeKind.CLONE, color=(1, 2, 3)).tint == (1, 2, 3)
    assert BadgeSpec(BadgeKind.CLONE).tint == BADGE_TINTS[BadgeKind.CLONE]


def test_lift_dot_color():
    lifted = lift_dot_color((0, 0, 0))
    assert color_luminance(lifted) == pytest.approx(LUMINANCE_LIMIT, abs=0.01)
    assert lift_dot_color((255, 255, 255)) == (255, 255, 255)


def test_dot_drawn_at_right_corner():
    icon = Image.new("RGBA", (96, 96), (0, 0, 0, 0))
    result = DotRenderer(96).draw(icon, DotParams(color=(255, 0, 0), shape=ClipShape.circle()))
    assert result.size == (96, 96)
    assert result.getpixel((82, 14))[3] == 255
    assert result.getpixel((14, 14))[3] == 0
    # 输入不被修改
    assert icon.getpixel((82, 14))[3] == 0


def test_dot_left_align_and_scale_zero():
    icon = Image.new("RGBA", (96, 96), (0, 0, 0, 0))
    renderer = DotRenderer(96)
    left = renderer.draw(icon, DotParams(color=(0, 200, 0), left_align=True))
    assert left.getpixel((14, 14))[3] == 255
    hidden = renderer.draw(icon, DotParams(color=(0, 200, 0), scale=0))
    assert hidden.tobytes() == icon.tobytes()


def test_dot_with_count_differs_from_plain_dot():
    icon = Image.new("RGBA", (96, 96), (0, 0, 0, 0))
    renderer = DotRenderer(96)
    plain = renderer.draw(icon, DotParams(color=(30, 30, 200)))
    counted = renderer.draw(icon, DotParams(color=(30, 30, 200), show_count=True, count=7))
    assert plain.tobytes() != counted.tobytes()


def test_dot_stays_inside_canvas():
    icon = Image.new("RGBA", (96, 96), (0, 0, 0, 0))
    result = DotRenderer(96).draw(icon, DotParams(color=(255, 0, 0), shape=ClipShape.square()))
    assert result.getpixel((95, 0))[3] > 0 or result.getpixel((90, 8))[3] > 0
