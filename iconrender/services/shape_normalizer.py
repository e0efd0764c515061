from __future__ import annotations

"""
Shape Normalizer
----------------
计算让任意图标的“可见内容”占据统一面积比例所需的缩放系数。

- 扁平图：统计 alpha > 40 的像素，逐行求左右边界并修正为凸包，按凸包面积/外接矩形面积
  在“方形(375/576)”与“圆形(380/576)”目标面积之间线性插值；
- 自适应图标：自带遮罩形状，视为已归一化（scale = 1）；
- 全透明图：无法归一化，直接返回 1，避免除零。
"""

import math
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image

from iconrender.services.clip_shape import ClipShape
from iconrender.services.icon_models import (
    EXTRA_INSET_FRACTION,
    AdaptiveSource,
    BitmapLayer,
    ColorLayer,
    FlatSource,
    NormalizationResult,
    ShadowParams,
    SourceKind,
    ThemeOverrideSource,
)
from iconrender.services.render_config import RGB

if hasattr(Image, "Resampling"):
    _LANCZOS = Image.Resampling.LANCZOS  # Pillow >= 9.1
else:  # pragma: no cover - 兼容旧版本 Pillow
    _LANCZOS = Image.LANCZOS

# 方形图标可见面积占整个图标面积的比例
MAX_SQUARE_AREA_FACTOR = 375.0 / 576
# 圆形图标可见面积占整个图标面积的比例
MAX_CIRCLE_AREA_FACTOR = 380.0 / 576
CIRCLE_AREA_BY_RECT = math.pi / 4
LINEAR_SCALE_SLOPE = (MAX_CIRCLE_AREA_FACTOR - MAX_SQUARE_AREA_FACTOR) / (1 - CIRCLE_AREA_BY_RECT)

MIN_VISIBLE_ALPHA = 40
BOUND_RATIO_MARGIN = 0.05
PIXEL_DIFF_PERCENTAGE_THRESHOLD = 0.005

# 旧式扁平图标包进自适应图标时，前景占图层的比例
LEGACY_ICON_SCALE = 0.7 / (1 + 2 * EXTRA_INSET_FRACTION)

_HALF_DISTANCE = 0.5


def scale_for_area(hull_area: float, bounding_area: float, full_area: float) -> float:
    if hull_area <= 0 or bounding_area <= 0 or full_area <= 0:
        return 1.0
    hull_by_rect = hull_area / bounding_area
    if hull_by_rect < CIRCLE_AREA_BY_RECT:
        scale_required = MAX_CIRCLE_AREA_FACTOR
    else:
        scale_required = MAX_SQUARE_AREA_FACTOR + LINEAR_SCALE_SLOPE * (1 - hull_by_rect)
    area_scale = hull_area / full_area
    # 宽高同时缩放，所以取平方根
    return math.sqrt(scale_required / area_scale) if area_scale > scale_required else 1.0


def scale_for_shadow_bounds(insets: Tuple[float, float, float, float], params: Optional[ShadowParams] = None) -> float:
    """保证模糊半径与主阴影偏移都落在画布内所需的缩放。insets 为 (left, top, right, bottom) 留白比例。"""
    params = params or ShadowParams()
    if not params.is_visible:
        return 1.0
    left, top, right, bottom = insets
    scale = 1.0
    min_side = min(left, right, top)
    if min_side < params.blur_factor:
        scale = (_HALF_DISTANCE - params.blur_factor) / (_HALF_DISTANCE - min_side)
    bottom_space = params.blur_factor + params.key_shadow_distance
    if bottom < bottom_space:
        scale = min(scale, (_HALF_DISTANCE - bottom_space) / (_HALF_DISTANCE - bottom))
    return scale


def _convert_to_convex(coords: List[float], direction: int, top: int, bottom: int) -> None:
    """把逐行边界修正为凸包边界（direction=1 左边界，-1 右边界），原地修改。"""
    angles = [0.0] * len(coords)
    first = top
    last = -1
    last_angle: Optional[float] = None
    for i in range(top + 1, bottom + 1):
        if coords[i] <= -1:
            continue
        if last_angle is None:
            start = first
        else:
            current = (coords[i] - coords[last]) / (i - last)
            start = last
            # 出现凹角时向上回溯，直到找到保持凸性的起点
            if (current - last_angle) * direction < 0:
                while start > first:
                    start -= 1
                    current = (coords[i] - coords[start]) / (i - start)
                    if (current - angles[start]) * direction >= 0:
                        break
        last_angle = (coords[i] - coords[start]) / (i - start)
        for j in range(start, i):
            angles[j] = last_angle
            coords[j] = coords[start] + last_angle * (j - start)
        last = i


class ShapeNormalizer:
    def __init__(self, icon_size: int) -> None:
        if icon_size <= 0:
            raise ValueError("icon_size must be positive")
        self._max_size = icon_size * 2

    def compute_scale(self, source, mask: Optional[ClipShape] = None) -> NormalizationResult:
        kind = getattr(source, "kind", None)
        if kind == SourceKind.ADAPTIVE:
            return self._normalize_adaptive(source.shape or mask or ClipShape.circle())
        if kind == SourceKind.THEME_OVERRIDE:
            fallback = source.fallback
            if fallback is None:
                return NormalizationResult(scale=1.0)
            return self.compute_scale(fallback, mask)
        if kind == SourceKind.FLAT:
            return self._normalize_image(source.image, mask)
        raise TypeError(f"unsupported icon source: {type(source).__name__}")

    def wrap_to_adaptive(
        self,
        source: FlatSource,
        background: RGB,
        mask: Optional[ClipShape] = None,
    ) -> Tuple[AdaptiveSource, NormalizationResult]:
        """先缩小再包装：扁平图作为前景缩放到 legacy 比例，叠在纯色背景上。"""
        shape = mask or ClipShape.circle()
        result = self.compute_scale(source, shape)
        if result.shape_detected:
            fg_scale = 1 - EXTRA_INSET_FRACTION
        else:
            fg_scale = result.scale * LEGACY_ICON_SCALE
        wrapper = AdaptiveSource(
            background=ColorLayer(background),
            foreground=BitmapLayer(source.image, scale=fg_scale),
            shape=shape,
            extender=source.extender,
        )
        return wrapper, result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _normalize_adaptive(self, shape: ClipShape) -> NormalizationResult:
        size = self._max_size
        left, top, right, bottom = shape.bounds(size)
        return NormalizationResult(
            scale=1.0,
            visible_bounds=(left / size, top / size, right / size, bottom / size),
            shape_detected=True,
        )

    def _normalize_image(self, image: Image.Image, mask: Optional[ClipShape]) -> NormalizationResult:
        width, height = image.size
        if width <= 0 or height <= 0:
            return NormalizationResult(scale=1.0)
        if width > self._max_size or height > self._max_size:
            longest = max(width, height)
            width = max(self._max_size * width // longest, 1)
            height = max(self._max_size * height // longest, 1)
            image = image.resize((width, height), _LANCZOS)

        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        visible = np.asarray(rgba.getchannel("A")) > MIN_VISIBLE_ALPHA
        rows_visible = visible.any(axis=1)
        if not rows_visible.any():
            # 没有可见像素，无法归一化
            return NormalizationResult(scale=1.0)

        first_x = visible.argmax(axis=1)
        last_x = width - 1 - visible[:, ::-1].argmax(axis=1)
        left_border = [float(x) if ok else -1.0 for x, ok in zip(first_x, rows_visible)]
        right_border = [float(x) if ok else -1.0 for x, ok in zip(last_x, rows_visible)]

        visible_rows = np.flatnonzero(rows_visible)
        top_y, bottom_y = int(visible_rows[0]), int(visible_rows[-1])
        left_x = int(first_x[rows_visible].min())
        right_x = int(last_x[rows_visible].max())

        _convert_to_convex(left_border, 1, top_y, bottom_y)
        _convert_to_convex(right_border, -1, top_y, bottom_y)

        hull_area = 0.0
        for y in range(height):
            if left_border[y] <= -1:
                continue
            hull_area += right_border[y] - left_border[y] + 1

        rect_area = (bottom_y + 1 - top_y) * (right_x + 1 - left_x)
        bounds = (left_x / width, top_y / height, (right_x + 1) / width, (bottom_y + 1) / height)
        shape_detected = False
        if mask is not None:
            shape_detected = self._matches_shape(visible, (left_x, top_y, right_x + 1, bottom_y + 1), mask)
        return NormalizationResult(
            scale=scale_for_area(hull_area, rect_area, width * height),
            visible_bounds=bounds,
            shape_detected=shape_detected,
        )

    @staticmethod
    def _matches_shape(visible: np.ndarray, box: Tuple[int, int, int, int], mask: ClipShape) -> bool:
        """可见像素与遮罩（缩放到可见边界）几乎重合时，认为图标本身就是该形状。"""
        left, top, right, bottom = box
        box_w, box_h = right - left, bottom - top
        if box_w <= 0 or box_h <= 0:
            return False
        if abs(box_w / box_h - 1) > BOUND_RATIO_MARGIN:
            return False
        side = max(box_w, box_h)
        shape_mask = mask.mask(side).resize((box_w, box_h), _LANCZOS)
        expected = np.zeros_like(visible)
        expected[top:bottom, left:right] = np.asarray(shape_mask) > MIN_VISIBLE_ALPHA
        diff = np.count_nonzero(expected ^ visible)
        return bool(diff / visible.size < PIXEL_DIFF_PERCENTAGE_THRESHOLD)


__all__ = [
    "LEGACY_ICON_SCALE",
    "MAX_CIRCLE_AREA_FACTOR",
    "MAX_SQUARE_AREA_FACTOR",
    "MIN_VISIBLE_ALPHA",
    "ShapeNormalizer",
    "scale_for_area",
    "scale_for_shadow_bounds",
]
