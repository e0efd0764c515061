import math
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services.luminance import (  # noqa: E402
    ComputationType,
    LuminanceColorSpace,
    LuminanceComputer,
    LuminanceOptions,
    color_luminance,
    lab_to_rgb,
    relative_luminance,
    rgb_to_lab,
)


def test_color_luminance_extremes():
    assert color_luminance((255, 255, 255)) == pytest.approx(1.0, abs=1e-3)
    assert color_luminance((0, 0, 0)) == pytest.approx(0.0, abs=1e-6)
    assert relative_luminance((255, 255, 255)) == pytest.approx(1.0, abs=1e-3)
    assert relative_luminance((0, 0, 0)) == pytest.approx(0.0, abs=1e-6)


def test_known_gray_levels():
    assert color_luminance((226, 226, 226)) == pytest.approx(0.9, abs=0.01)
    assert color_luminance((48, 48, 48)) == pytest.approx(0.2, abs=0.01)


def test_lab_round_trip_close():
    for color in [(255, 0, 0), (12, 200, 90), (30, 30, 200)]:
        back = lab_to_rgb(rgb_to_lab(color))
        assert all(abs(a - b) <= 1 for a, b in zip(color, back))


def test_average_luminance_of_uniform_image():
    image = Image.new("RGB", (40, 40), (226, 226, 226))
    computer = LuminanceComputer.default()
    assert computer.compute_luminance(image) == pytest.approx(color_luminance((226, 226, 226)), abs=1e-3)


def test_spread_luminance_for_black_and_white():
    image = Image.new("RGB", (40, 40), (0, 0, 0))
    image.paste((255, 255, 255), (0, 0, 20, 40))
    computer = LuminanceComputer.default(ComputationType.SPREAD)
    assert computer.compute_luminance(image, scale=False) == pytest.approx(1.0, abs=1e-3)


def test_median_and_hsl():
    image = Image.new("RGB", (10, 10), (255, 0, 0))
    computer = LuminanceComputer(LuminanceColorSpace.HSL, ComputationType.MEDIAN)
    assert computer.compute_luminance(image, scale=False) == pytest.approx(0.5)


def test_region_filter_and_empty_region():
    image = Image.new("RGB", (10, 10), (0, 0, 0))
    image.paste((255, 255, 255), (0, 0, 5, 10))
    region = np.zeros((10, 10), dtype=bool)
    region[:, :5] = True
    computer = LuminanceComputer.default()
    assert computer.compute_luminance(image, scale=False, region=region) == pytest.approx(1.0, abs=1e-3)
    assert math.isnan(computer.compute_luminance(image, scale=False, region=np.zeros((10, 10), dtype=bool)))


def test_adapt_color_luminance_moves_towards_target():
    computer = LuminanceComputer(
        options=LuminanceOptions(ensure_min_contrast=False, absolute_luminance_delta=False)
    )
    basis = (50, 50, 50)
    adapted = computer.adapt_color_luminance((128, 128, 128), basis, 0.4, 0.0)
    assert color_luminance(adapted) == pytest.approx(color_luminance(basis) + 0.4, abs=0.01)


def test_adapt_color_luminance_nan_delta_keeps_target():
    computer = LuminanceComputer.default()
    assert computer.adapt_color_luminance((1, 2, 3), (0, 0, 0), math.nan, 0.2) == (1, 2, 3)
