import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services.clip_shape import ClipShape  # noqa: E402


@pytest.mark.parametrize("name", ["circle", "square", "squircle", "rounded", "rounded:0.5"])
def test_named_shapes_rasterize_to_requested_size(name):
    mask = ClipShape.from_name(name).mask(48)
    assert mask.mode == "L"
    assert mask.size == (48, 48)
    assert mask.getpixel((24, 24)) == 255


def test_unknown_shape_name():
    with pytest.raises(ValueError):
        ClipShape.from_name("hexagon")


def test_square_covers_everything_and_circle_clips_corners():
    assert ClipShape.square().mask(32).getextrema() == (255, 255)
    assert ClipShape.circle().mask(32).getpixel((0, 0)) == 0


def test_bounds_and_area():
    square = ClipShape.square()
    assert square.bounds(40) == (0, 0, 40, 40)
    assert square.hull_area(40) == 1600
    assert ClipShape.circle().hull_area(100) == pytest.approx(7854, rel=0.02)


def test_from_points_normalizes_path_size():
    shape = ClipShape.from_points([(0, 0), (100, 0), (100, 100), (0, 100)], path_size=100)
    assert shape.points == ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))
    with pytest.raises(ValueError):
        ClipShape.from_points([(0, 0), (1, 1)])


def test_attachment_points_on_circle():
    left, right = ClipShape.circle().attachment_points()
    assert left == pytest.approx((0.5 - 0.35355, 0.5 - 0.35355), abs=1e-3)
    assert right == pytest.approx((0.5 + 0.35355, 0.5 - 0.35355), abs=1e-3)


def test_attachment_points_on_square_reach_corners():
    left, right = ClipShape.square().attachment_points()
    assert left == pytest.approx((0.0, 0.0), abs=1e-6)
    assert right == pytest.approx((1.0, 0.0), abs=1e-6)
