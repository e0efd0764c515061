from __future__ import annotations

import colorsys
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from iconrender.services.render_config import RGB

if hasattr(Image, "Resampling"):
    _BILINEAR = Image.Resampling.BILINEAR  # Pillow >= 9.1
else:  # pragma: no cover - 兼容旧版本 Pillow
    _BILINEAR = Image.BILINEAR

# 计算亮度时的采样尺寸，例如 64x64
BITMAP_SAMPLE_SIZE = 64
DEFAULT_ABSOLUTE_LUMINANCE_DELTA = 0.1

# D65 白点
_XN, _YN, _ZN = 95.047, 100.0, 108.883
_EPSILON = 216 / 24389
_KAPPA = 24389 / 27


class ComputationType(str, Enum):
    MEDIAN = "median"
    AVERAGE = "average"
    SPREAD = "spread"


class LuminanceColorSpace(str, Enum):
    HSL = "hsl"
    LAB = "lab"


def _srgb_to_linear(channel: np.ndarray) -> np.ndarray:
    c = channel / 255.0
    return np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)


def _linear_to_srgb(channel: float) -> int:
    c = 12.92 * channel if channel <= 0.0031308 else 1.055 * channel ** (1 / 2.4) - 0.055
    return int(round(min(max(c, 0.0), 1.0) * 255))


def _lab_f(t: np.ndarray) -> np.ndarray:
    return np.where(t > _EPSILON, np.cbrt(t), (_KAPPA * t + 16) / 116)


def lab_lightness(pixels: np.ndarray) -> np.ndarray:
    """RGB 像素（..., 3）的 LAB L* 值，归一化到 [0, 1]。"""
    pixels = np.asarray(pixels, dtype=np.float64)
    r = _srgb_to_linear(pixels[..., 0])
    g = _srgb_to_linear(pixels[..., 1])
    b = _srgb_to_linear(pixels[..., 2])
    y = 0.2126 * r + 0.7152 * g + 0.0722 * b
    return (116 * _lab_f(y) - 16) / 100


def hsl_lightness(pixels: np.ndarray) -> np.ndarray:
    pixels = np.asarray(pixels, dtype=np.float64) / 255.0
    return (pixels.max(axis=-1) + pixels.min(axis=-1)) / 2


def rgb_to_lab(color: RGB) -> Tuple[float, float, float]:
    lin = _srgb_to_linear(np.asarray(color, dtype=np.float64))
    r, g, b = (float(v) for v in lin)
    x = (0.4124 * r + 0.3576 * g + 0.1805 * b) * 100
    y = (0.2126 * r + 0.7152 * g + 0.0722 * b) * 100
    z = (0.0193 * r + 0.1192 * g + 0.9505 * b) * 100
    fx, fy, fz = (float(v) for v in _lab_f(np.array([x / _XN, y / _YN, z / _ZN])))
    return 116 * fy - 16, 500 * (fx - fy), 200 * (fy - fz)


def lab_to_rgb(lab: Tuple[float, float, float]) -> RGB:
    lightness, a, b = lab
    fy = (lightness + 16) / 116
    fx = a / 500 + fy
    fz = fy - b / 200
    xr = fx ** 3 if fx ** 3 > _EPSILON else (116 * fx - 16) / _KAPPA
    yr = ((lightness + 16) / 116) ** 3 if lightness > _KAPPA * _EPSILON else lightness / _KAPPA
    zr = fz ** 3 if fz ** 3 > _EPSILON else (116 * fz - 16) / _KAPPA
    x, y, z = xr * _XN / 100, yr * _YN / 100, zr * _ZN / 100
    r = 3.2406 * x - 1.5372 * y - 0.4986 * z
    g = -0.9689 * x + 1.8758 * y + 0.0415 * z
    bl = 0.0557 * x - 0.2040 * y + 1.0570 * z
    return _linear_to_srgb(r), _linear_to_srgb(g), _linear_to_srgb(bl)


def color_luminance(color: RGB) -> float:
    return float(lab_lightness(np.asarray(color, dtype=np.float64)))


def relative_luminance(color: RGB) -> float:
    """相对亮度（线性 RGB 加权），用于判断通知圆点是否需要提亮。"""
    r, g, b = (float(v) for v in _srgb_to_linear(np.asarray(color, dtype=np.float64)))
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


@dataclass(frozen=True)
class LuminanceOptions:
    ensure_min_contrast: bool = True
    absolute_luminance_delta: bool = True


class LuminanceComputer:
    """按指定色彩空间计算图片亮度（中位数/平均值/极差），以及按亮度差调整颜色。"""

    def __init__(
        self,
        color_space: LuminanceColorSpace = LuminanceColorSpace.LAB,
        computation_type: ComputationType = ComputationType.AVERAGE,
        options: Optional[LuminanceOptions] = None,
    ) -> None:
        self.color_space = color_space
        self.computation_type = computation_type
        self.options = options or LuminanceOptions()

    def _lightness(self, pixels: np.ndarray) -> np.ndarray:
        if self.color_space == LuminanceColorSpace.HSL:
            return hsl_lightness(pixels)
        return lab_lightness(pixels)

    def compute_luminance(
        self,
        image: Image.Image,
        *,
        scale: bool = True,
        region: Optional[np.ndarray] = None,
    ) -> float:
        """返回 [0, 1] 的亮度；空图返回 NaN。region 为可选的布尔遮罩，只统计其中的像素。"""
        width, height = image.size
        if width == 0 or height == 0:
            return math.nan
        rgb = image.convert("RGB")
        if scale:
            rgb = rgb.resize((BITMAP_SAMPLE_SIZE, BITMAP_SAMPLE_SIZE), _BILINEAR)
            if region is not None:
                region_img = Image.fromarray(region.astype(np.uint8) * 255)
                region = np.asarray(region_img.resize((BITMAP_SAMPLE_SIZE, BITMAP_SAMPLE_SIZE), _BILINEAR)) >= 128
        values = self._lightness(np.asarray(rgb))
        if region is not None:
            values = values[region]
        values = np.ravel(values)
        if values.size == 0:
            return math.nan
        if self.computation_type == ComputationType.MEDIAN:
            return float(np.median(values))
        if self.computation_type == ComputationType.SPREAD:
            return float(values.max() - values.min())
        return float(values.mean())

    def adapt_color_luminance(
        self,
        target: RGB,
        basis: RGB,
        luminance_delta: float,
        minimum_contrast: float,
        *,
        use_absolute_delta: Optional[bool] = None,
    ) -> RGB:
        """把 target 的亮度调整为 basis 亮度 + delta（并保证最小对比度），色相保持不变。"""
        if math.isnan(luminance_delta):
            return target
        absolute = self.options.absolute_luminance_delta if use_absolute_delta is None else use_absolute_delta
        delta = max(abs(luminance_delta), DEFAULT_ABSOLUTE_LUMINANCE_DELTA) if absolute else luminance_delta

        basis_lum = self._color_lightness(basis)
        target_lum = min(max(basis_lum + delta, 0.0), 1.0)
        if self.options.ensure_min_contrast and target_lum - basis_lum < minimum_contrast:
            target_lum = min(max(basis_lum + delta * minimum_contrast, 0.0), 1.0)
        return self._with_lightness(target, target_lum)

    def _color_lightness(self, color: RGB) -> float:
        if self.color_space == LuminanceColorSpace.HSL:
            r, g, b = (c / 255 for c in color)
            return colorsys.rgb_to_hls(r, g, b)[1]
        return color_luminance(color)

    def _with_lightness(self, color: RGB, lightness: float) -> RGB:
        if self.color_space == LuminanceColorSpace.HSL:
            h, _, s = colorsys.rgb_to_hls(*(c / 255 for c in color))
            r, g, b = colorsys.hls_to_rgb(h, lightness, s)
            return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))
        _, a, b = rgb_to_lab(color)
        return lab_to_rgb((lightness * 100, a, b))

    @classmethod
    def default(cls, computation_type: ComputationType = ComputationType.AVERAGE) -> "LuminanceComputer":
        return cls(LuminanceColorSpace.LAB, computation_type)


__all__ = [
    "BITMAP_SAMPLE_SIZE",
    "ComputationType",
    "LuminanceColorSpace",
    "LuminanceComputer",
    "LuminanceOptions",
    "color_luminance",
    "lab_lightness",
    "lab_to_rgb",
    "relative_luminance",
    "rgb_to_lab",
]
