from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from iconrender.services.clip_shape import ClipShape
from iconrender.services.render_config import RGB

if hasattr(Image, "Resampling"):
    _LANCZOS = Image.Resampling.LANCZOS  # Pillow >= 9.1
else:  # pragma: no cover - 兼容旧版本 Pillow
    _LANCZOS = Image.LANCZOS

# 自适应图标每一层相对可见区域向外多出的比例（108dp 图层 / 72dp 可见区域）
EXTRA_INSET_FRACTION = 0.25

# 持久化的 BitmapInfo flags；修改时需要同步调整缓存版本
FLAG_WORK = 1 << 0
FLAG_INSTANT = 1 << 1
FLAG_CLONE = 1 << 2
FLAG_PRIVATE = 1 << 3


def fit_image(image: Image.Image, size: int, scale: float = 1.0) -> Image.Image:
    """把任意尺寸/比例的图片等比缩放并居中放入 size x size 的透明画布。"""
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    src = image if image.mode == "RGBA" else image.convert("RGBA")
    width, height = src.size
    if width <= 0 or height <= 0 or scale <= 0:
        return canvas
    box = size * scale
    ratio = min(box / width, box / height)
    target_w = max(int(round(width * ratio)), 1)
    target_h = max(int(round(height * ratio)), 1)
    scaled = src.resize((target_w, target_h), _LANCZOS)
    canvas.alpha_composite(scaled, ((size - target_w) // 2, (size - target_h) // 2))
    return canvas


# ----------------------------------------------------------------------
# Layers
# ----------------------------------------------------------------------


class Layer:
    """自适应图标中的一层。render(size) 总是返回 size x size 的 RGBA 图片。"""

    def render(self, size: int) -> Image.Image:
        raise NotImplementedError


@dataclass(frozen=True)
class ColorLayer(Layer):
    color: RGB

    def render(self, size: int) -> Image.Image:
        r, g, b = self.color
        return Image.new("RGBA", (size, size), (r, g, b, 255))


@dataclass(frozen=True, eq=False)
class BitmapLayer(Layer):
    image: Image.Image
    scale: float = 1.0

    def render(self, size: int) -> Image.Image:
        return fit_image(self.image, size, self.scale)


@dataclass(frozen=True)
class TextLayer(Layer):
    """居中绘制文字，字号为图层高度的 1/3。"""

    text: str
    color: RGB

    def render(self, size: int) -> Image.Image:
        canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        if not self.text:
            return canvas
        draw = ImageDraw.Draw(canvas)
        font = ImageFont.load_default(size=max(size / 3, 1))
        left, top, right, bottom = draw.textbbox((0, 0), self.text, font=font)
        x = size / 2 - (left + right) / 2
        y = size / 2 - (top + bottom) / 2
        r, g, b = self.color
        draw.text((x, y), self.text, fill=(r, g, b, 255), font=font)
        return canvas


@dataclass(frozen=True, eq=False)
class StackLayer(Layer):
    """按顺序叠加多层（后面的在上）。"""

    layers: Tuple[Layer, ...]

    def render(self, size: int) -> Image.Image:
        canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        for layer in self.layers:
            if layer is not None:
                canvas.alpha_composite(layer.render(size))
        return canvas


# ----------------------------------------------------------------------
# Sources
# ----------------------------------------------------------------------


class SourceKind(str, Enum):
    FLAT = "flat"
    ADAPTIVE = "adaptive"
    THEME_OVERRIDE = "theme_override"


@dataclass(frozen=True)
class ThemeOverlay:
    """主题图标的来源：从哪个包的哪个资源里取单色/主题化 drawable。"""

    package_name: str
    resource_name: str
    resource_id: Optional[int] = None


@dataclass(frozen=True, eq=False)
class FlatSource:
    image: Image.Image
    extender: Optional[Any] = None

    kind = SourceKind.FLAT


@dataclass(frozen=True, eq=False)
class AdaptiveSource:
    background: Optional[Layer]
    foreground: Optional[Layer]
    shape: Optional[ClipShape] = None
    monochrome: Optional[Layer] = None
    extender: Optional[Any] = None

    kind = SourceKind.ADAPTIVE

    def with_shape(self, shape: ClipShape) -> "AdaptiveSource":
        return replace(self, shape=shape)

    def with_foreground(self, foreground: Optional[Layer]) -> "AdaptiveSource":
        return replace(self, foreground=foreground)


@dataclass(frozen=True, eq=False)
class ThemeOverrideSource:
    overlay: ThemeOverlay
    fallback: Optional[Union[FlatSource, AdaptiveSource]] = None

    kind = SourceKind.THEME_OVERRIDE


IconSource = Union[FlatSource, AdaptiveSource, ThemeOverrideSource]


# ----------------------------------------------------------------------
# Pipeline records
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizationResult:
    """scale ∈ (0, 1]；visible_bounds 为可见内容的 (left, top, right, bottom)，均为相对尺寸的比例。"""

    scale: float
    visible_bounds: Tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0)
    shape_detected: bool = False

    def insets(self) -> Tuple[float, float, float, float]:
        left, top, right, bottom = self.visible_bounds
        return left, top, 1 - right, 1 - bottom


@dataclass(frozen=True)
class ShadowParams:
    """阴影参数，全部以图标尺寸的比例表示，保证不同密度下阴影等比缩放。"""

    blur_factor: float = 1.68 / 48
    key_shadow_distance: float = 1.0 / 48
    ambient_alpha: int = 25
    key_alpha: int = 7

    def disabled(self) -> "ShadowParams":
        return replace(self, ambient_alpha=0, key_alpha=0)

    @property
    def is_visible(self) -> bool:
        return self.ambient_alpha > 0 or self.key_alpha > 0


class BadgeKind(str, Enum):
    WORK = "work"
    INSTANT = "instant"
    CLONE = "clone"
    PRIVATE = "private"
    RING = "ring"


_FLAG_FOR_BADGE = {
    BadgeKind.WORK: FLAG_WORK,
    BadgeKind.INSTANT: FLAG_INSTANT,
    BadgeKind.CLONE: FLAG_CLONE,
    BadgeKind.PRIVATE: FLAG_PRIVATE,
}


def flag_for_badge(kind: BadgeKind) -> int:
    return _FLAG_FOR_BADGE.get(kind, 0)


@dataclass(frozen=True, eq=False)
class BitmapInfo:
    """渲染结果：图标位图 + 主色 + 可选单色层/徽标等元信息。

    构造后不可变；with_* 系列方法总是返回新对象。
    """

    icon: Image.Image
    color: RGB = (0, 0, 0)
    flags: int = 0
    mono: Optional[Image.Image] = None
    white_shadow_layer: Optional[Image.Image] = None
    badge: Optional["BitmapInfo"] = None
    theme_overlay: Optional[ThemeOverlay] = None
    luminance_delta: Optional[float] = None
    normalization_scale: float = 1.0
    extender: Optional[Any] = field(default=None, repr=False)

    @property
    def size(self) -> int:
        return self.icon.size[0]

    @property
    def is_low_res(self) -> bool:
        return self.icon is LOW_RES_ICON

    def can_persist(self) -> bool:
        return not self.is_low_res

    def has_flag(self, flag: int) -> bool:
        return (self.flags & flag) != 0

    def with_flags(self, add: int = 0, remove: int = 0) -> "BitmapInfo":
        new_flags = (self.flags | add) & ~remove
        if new_flags == self.flags:
            return self
        return replace(self, flags=new_flags)

    def with_badge(self, badge: Optional["BitmapInfo"]) -> "BitmapInfo":
        return replace(self, badge=badge)

    def with_mono(
        self,
        mono: Optional[Image.Image],
        *,
        white_shadow_layer: Optional[Image.Image] = None,
        luminance_delta: Optional[float] = None,
        theme_overlay: Optional[ThemeOverlay] = None,
    ) -> "BitmapInfo":
        return replace(
            self,
            mono=mono,
            white_shadow_layer=white_shadow_layer,
            luminance_delta=luminance_delta,
            theme_overlay=theme_overlay if theme_overlay is not None else self.theme_overlay,
        )

    def badge_kind(self) -> Optional[BadgeKind]:
        if self.has_flag(FLAG_INSTANT):
            return BadgeKind.INSTANT
        if self.has_flag(FLAG_WORK):
            return BadgeKind.WORK
        if self.has_flag(FLAG_CLONE):
            return BadgeKind.CLONE
        if self.has_flag(FLAG_PRIVATE):
            return BadgeKind.PRIVATE
        return None

    @classmethod
    def of(cls, icon: Image.Image, color: RGB = (0, 0, 0)) -> "BitmapInfo":
        return cls(icon=icon, color=color)


# “尚未加载”占位：1x1 的位图，禁止持久化
LOW_RES_ICON: Image.Image = Image.new("L", (1, 1), 0)
LOW_RES_INFO = BitmapInfo.of(LOW_RES_ICON)


__all__ = [
    "AdaptiveSource",
    "BadgeKind",
    "BitmapInfo",
    "BitmapLayer",
    "ColorLayer",
    "EXTRA_INSET_FRACTION",
    "FLAG_CLONE",
    "FLAG_INSTANT",
    "FLAG_PRIVATE",
    "FLAG_WORK",
    "FlatSource",
    "IconSource",
    "LOW_RES_ICON",
    "LOW_RES_INFO",
    "Layer",
    "NormalizationResult",
    "ShadowParams",
    "SourceKind",
    "StackLayer",
    "TextLayer",
    "ThemeOverlay",
    "ThemeOverrideSource",
    "fit_image",
    "flag_for_badge",
]
