from __future__ import annotations

"""
Monochrome Extractor
--------------------
从双层（背景/前景）图标推导主题化用的单色 alpha 剪影。

1. 两层都在：前景、背景分别单独画在黑底上求亮度，亮度差 = 前景 - 背景（带符号，交给调用方决定着色）；
   最终遮罩来源为单独绘制的前景；
2. 只有一层（无法分离）：画合成内容，用“极差”亮度估计，并先缩放到 64x64 采样；
3. 去饱和后取 RGB 平均值作为 alpha；
4. 对比度拉伸：min < max 时线性拉满 [0, 255]，再做一次二次曲线推离 128；min == max 时保持原样。
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image

from iconrender.services.clip_shape import ClipShape
from iconrender.services.icon_models import EXTRA_INSET_FRACTION, Layer
from iconrender.services.luminance import ComputationType, LuminanceComputer

# ColorMatrix.setSaturation(0) 使用的亮度权重
_DESATURATE_WEIGHTS = np.array([0.213, 0.715, 0.072], dtype=np.float64)
_MID = 128.0


@dataclass(frozen=True, eq=False)
class MonoResult:
    mask: Image.Image
    luminance_diff: float


def contrast_stretch(values: np.ndarray) -> np.ndarray:
    """线性拉伸到 [0, 255] 后，再把 >128 的值推向 255、<128 的值推向 0。"""
    source = np.asarray(values, dtype=np.uint8)
    low, high = int(source.min()), int(source.max())
    if low >= high:
        # 纯色图标，没有可拉伸的范围
        return source.copy()
    stretched = np.round((source.astype(np.float64) - low) * 255.0 / (high - low))
    delta = stretched - _MID
    pushed = stretched + delta * (1 - np.abs(delta) / _MID)
    return np.clip(np.round(pushed), 0, 255).astype(np.uint8)


def desaturated_alpha(image: Image.Image) -> np.ndarray:
    """去饱和后三通道相同，取 (R + G + B) / 3 作为新的 alpha。"""
    rgb = np.asarray(image.convert("RGB"), dtype=np.float64)
    gray = rgb @ _DESATURATE_WEIGHTS
    desaturated = np.stack([gray, gray, gray], axis=-1)
    return np.clip(np.round(desaturated.sum(axis=-1) / 3), 0, 255).astype(np.uint8)


def render_layer_region(layer: Optional[Layer], size: int) -> Image.Image:
    """把图层按自适应图标的几何画出来（图层比可见区域大 1.5 倍），裁出中间 size x size 的可见部分。"""
    if layer is None:
        return Image.new("RGBA", (size, size), (0, 0, 0, 0))
    layer_size = int(round(size * (1 + 2 * EXTRA_INSET_FRACTION)))
    full = layer.render(layer_size)
    start = (layer_size - size) // 2
    return full.crop((start, start, start + size, start + size))


def _on_black(image: Image.Image) -> Image.Image:
    backdrop = Image.new("RGBA", image.size, (0, 0, 0, 255))
    backdrop.alpha_composite(image)
    return backdrop


class MonochromeExtractor:
    def __init__(self, luminance: Optional[LuminanceComputer] = None) -> None:
        self._average = luminance or LuminanceComputer.default(ComputationType.AVERAGE)
        self._spread = LuminanceComputer(self._average.color_space, ComputationType.SPREAD, self._average.options)

    def extract(
        self,
        background: Optional[Layer],
        foreground: Optional[Layer],
        *,
        size: int,
        shape: Optional[ClipShape] = None,
    ) -> MonoResult:
        if size <= 0:
            raise ValueError("size must be positive")

        if background is not None and foreground is not None:
            fg_layer = render_layer_region(foreground, size)
            bg_layer = render_layer_region(background, size)
            fg_lum = self._layer_luminance(fg_layer)
            bg_lum = self._layer_luminance(bg_layer)
            luminance_diff = fg_lum - bg_lum
            # 遮罩来源：单独绘制在黑底上的前景
            source = _on_black(render_layer_region(foreground, size))
        else:
            combined = render_layer_region(background, size)
            combined.alpha_composite(render_layer_region(foreground, size))
            source = _on_black(combined)
            luminance_diff = self._spread.compute_luminance(source, scale=True)

        mask = contrast_stretch(desaturated_alpha(source))
        if shape is not None:
            clip = np.asarray(shape.mask(size), dtype=np.uint16)
            mask = ((mask.astype(np.uint16) * clip + 127) // 255).astype(np.uint8)
        return MonoResult(mask=Image.fromarray(mask), luminance_diff=luminance_diff)

    def from_monochrome_layer(self, layer: Layer, *, size: int, shape: Optional[ClipShape] = None) -> Image.Image:
        """图标自带单色层时直接取其 alpha（同样裁剪到遮罩内）。"""
        alpha = np.asarray(render_layer_region(layer, size).getchannel("A"), dtype=np.uint16)
        if shape is not None:
            clip = np.asarray(shape.mask(size), dtype=np.uint16)
            alpha = (alpha * clip + 127) // 255
        return Image.fromarray(alpha.astype(np.uint8))

    def _layer_luminance(self, layer: Image.Image) -> float:
        covered = np.asarray(layer.getchannel("A")) > 0
        if not covered.any():
            return self._average.compute_luminance(_on_black(layer), scale=False)
        value = self._average.compute_luminance(_on_black(layer), scale=False, region=covered)
        return 0.0 if math.isnan(value) else value


__all__ = [
    "MonoResult",
    "MonochromeExtractor",
    "contrast_stretch",
    "desaturated_alpha",
    "render_layer_region",
]
