import sys
from pathlib import Path

from PIL import Image

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services.color_extractor import find_dominant_color_by_hue, to_hex  # noqa: E402


def test_solid_color_is_dominant():
    assert find_dominant_color_by_hue(Image.new("RGBA", (64, 64), (255, 0, 0, 255))) == (255, 0, 0)


def test_transparent_image_has_no_color():
    assert find_dominant_color_by_hue(Image.new("RGBA", (64, 64), (0, 0, 0, 0))) == (0, 0, 0)


def test_saturated_color_beats_gray():
    image = Image.new("RGBA", (64, 64), (128, 128, 128, 255))
    image.paste((0, 90, 255, 255), (0, 0, 64, 40))
    assert find_dominant_color_by_hue(image) == (0, 90, 255)


def test_translucent_pixels_are_ignored():
    image = Image.new("RGBA", (64, 64), (0, 255, 0, 60))
    image.paste((255, 0, 0, 255), (0, 0, 32, 64))
    assert find_dominant_color_by_hue(image) == (255, 0, 0)


def test_to_hex():
    assert to_hex((255, 0, 16)) == "#FF0010"
