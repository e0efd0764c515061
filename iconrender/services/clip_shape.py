from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw

Point = Tuple[float, float]

# 抗锯齿用的超采样倍数
_SUPERSAMPLE = 4
_ARC_SEGMENTS = 96

if hasattr(Image, "Resampling"):
    _BOX = Image.Resampling.BOX  # Pillow >= 9.1
else:  # pragma: no cover - 兼容旧版本 Pillow
    _BOX = Image.BOX


@lru_cache(maxsize=64)
def _rasterize(points: Tuple[Point, ...], size: int) -> Image.Image:
    big = size * _SUPERSAMPLE
    canvas = Image.new("L", (big, big), 0)
    draw = ImageDraw.Draw(canvas)
    draw.polygon([(x * big, y * big) for x, y in points], fill=255)
    return canvas.resize((size, size), _BOX)


def _ray_hit(origin: Point, direction: Point, a: Point, b: Point) -> Optional[float]:
    ex, ey = b[0] - a[0], b[1] - a[1]
    dx, dy = direction
    denom = dx * ey - dy * ex
    if abs(denom) < 1e-12:
        return None
    ox, oy = a[0] - origin[0], a[1] - origin[1]
    t = (ox * ey - oy * ex) / denom
    u = (ox * dy - oy * dx) / denom
    if t <= 0 or u < 0 or u > 1:
        return None
    return t


@dataclass(frozen=True)
class ClipShape:
    """图标遮罩形状：定义在单位正方形 [0, 1]² 上的闭合多边形。

    - `mask(size)` 生成带抗锯齿的 alpha 遮罩（结果按 (points, size) 缓存）；
    - `attachment_points()` 计算左/右上角徽标的挂载点，用于角标/通知圆点定位。
    """

    name: str
    points: Tuple[Point, ...] = field(repr=False)

    def __post_init__(self) -> None:
        if len(self.points) < 3:
            raise ValueError("a clip shape needs at least three points")

    # ------------------------------------------------------------------
    # Named shapes
    # ------------------------------------------------------------------

    @classmethod
    def square(cls) -> "ClipShape":
        return cls("square", ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)))

    @classmethod
    def circle(cls) -> "ClipShape":
        pts = tuple(
            (0.5 + 0.5 * math.cos(2 * math.pi * i / _ARC_SEGMENTS), 0.5 + 0.5 * math.sin(2 * math.pi * i / _ARC_SEGMENTS))
            for i in range(_ARC_SEGMENTS)
        )
        return cls("circle", pts)

    @classmethod
    def rounded(cls, radius: float = 0.25) -> "ClipShape":
        """圆角矩形，radius 为相对于半边长的比例（1 即为圆形）。"""
        radius = min(max(radius, 0.0), 1.0)
        if radius == 0:
            return cls.square()
        r = radius * 0.5
        corners = ((1 - r, 1 - r, 0.0), (r, 1 - r, 90.0), (r, r, 180.0), (1 - r, r, 270.0))
        steps = _ARC_SEGMENTS // 4
        pts: list[Point] = []
        for cx, cy, start in corners:
            for i in range(steps + 1):
                angle = math.radians(start + 90.0 * i / steps)
                pts.append((cx + r * math.cos(angle), cy + r * math.sin(angle)))
        return cls(f"rounded:{radius:g}", tuple(pts))

    @classmethod
    def squircle(cls, exponent: float = 5.0) -> "ClipShape":
        pts = []
        for i in range(_ARC_SEGMENTS):
            angle = 2 * math.pi * i / _ARC_SEGMENTS
            c, s = math.cos(angle), math.sin(angle)
            x = math.copysign(abs(c) ** (2 / exponent), c)
            y = math.copysign(abs(s) ** (2 / exponent), s)
            pts.append((0.5 + 0.5 * x, 0.5 + 0.5 * y))
        return cls("squircle", tuple(pts))

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]], *, path_size: float = 1.0, name: str = "custom") -> "ClipShape":
        """由 [0, path_size] 坐标系下的点构造形状。"""
        if path_size <= 0:
            raise ValueError("path_size must be positive")
        pts = tuple((float(x) / path_size, float(y) / path_size) for x, y in points)
        return cls(name, pts)

    @classmethod
    def from_name(cls, value: Optional[str]) -> "ClipShape":
        text = (value or "circle").strip().lower()
        if text == "circle":
            return cls.circle()
        if text == "square":
            return cls.square()
        if text == "squircle":
            return cls.squircle()
        if text.startswith("rounded"):
            _, _, raw = text.partition(":")
            return cls.rounded(float(raw) if raw else 0.25)
        raise ValueError(f"unknown icon shape: {value}")

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def mask(self, size: int) -> Image.Image:
        if size <= 0:
            raise ValueError("mask size must be positive")
        return _rasterize(self.points, size).copy()

    def coverage(self, size: int) -> np.ndarray:
        """按像素覆盖（alpha >= 128）得到的布尔区域。"""
        return np.asarray(_rasterize(self.points, size)) >= 128

    def hull_area(self, size: int) -> int:
        return int(self.coverage(size).sum())

    def bounds(self, size: int) -> Tuple[int, int, int, int]:
        region = self.coverage(size)
        rows = np.flatnonzero(region.any(axis=1))
        cols = np.flatnonzero(region.any(axis=0))
        if rows.size == 0 or cols.size == 0:
            return 0, 0, 0, 0
        return int(cols[0]), int(rows[0]), int(cols[-1]) + 1, int(rows[-1]) + 1

    def attachment_point(self, direction: int) -> Point:
        """从中心向上方角落（direction=-1 左，1 右）发射射线，返回与路径的交点（归一化坐标）。"""
        origin = (0.5, 0.5)
        target = (0.5 + direction * 0.5, 0.0)
        ray = (target[0] - origin[0], target[1] - origin[1])
        best: Optional[float] = None
        count = len(self.points)
        for idx in range(count):
            t = _ray_hit(origin, ray, self.points[idx], self.points[(idx + 1) % count])
            if t is not None and (best is None or t < best):
                best = t
        if best is None:
            return target
        return origin[0] + ray[0] * best, origin[1] + ray[1] * best

    def attachment_points(self) -> Tuple[Point, Point]:
        return self.attachment_point(-1), self.attachment_point(1)


__all__ = ["ClipShape", "Point"]
