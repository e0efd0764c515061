from __future__ import annotations

"""
Icon Extenders
--------------
图标来源可以携带一个“扩展器”，覆盖默认的合成行为。扩展器是一个小的封闭集合，按 kind 标签分派：

- PLAIN：什么都不改；
- TIME_VARYING：时钟类动态图标。持久化时画固定的 10:10:30 帧，屏幕显示时按当前时间画指针；
- THEMED_OVERRIDE：主题化时从另一个包的资源里取单色图。

三者都实现同一组能力：compose_extended(info, source) / draw_stable(source) / themed_variant(source, size)。
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from PIL import Image, ImageDraw

from iconrender.services.icon_models import (
    BitmapInfo,
    Layer,
    SourceKind,
    StackLayer,
    ThemeOverlay,
    fit_image,
)
from iconrender.services.mono_extractor import render_layer_region
from iconrender.services.render_config import RGB
from iconrender.services.resources import ResourceResolver

# 持久化时使用的固定时刻
STABLE_TIME: Tuple[int, int, int] = (10, 10, 30)

# 指针长度（相对图层尺寸，图层是可见区域的 1.5 倍）
_HOUR_HAND = 0.16
_MINUTE_HAND = 0.24
_SECOND_HAND = 0.27


class ExtenderKind(str, Enum):
    PLAIN = "plain"
    TIME_VARYING = "time_varying"
    THEMED_OVERRIDE = "themed_override"


@dataclass(frozen=True)
class PlainExtender:
    kind = ExtenderKind.PLAIN

    def compose_extended(self, info: BitmapInfo, source) -> BitmapInfo:
        return info

    def draw_stable(self, source):
        return source

    def themed_variant(self, source, size: int) -> Optional[Image.Image]:
        return None


@dataclass(frozen=True)
class ClockHandsLayer(Layer):
    hour: int
    minute: int
    second: int = 0
    color: RGB = (0x20, 0x20, 0x20)
    show_seconds: bool = False

    def _hand(self, draw: ImageDraw.ImageDraw, size: int, degrees: float, length: float, width: int) -> None:
        center = size / 2
        angle = math.radians(degrees)
        end = (center + length * size * math.sin(angle), center - length * size * math.cos(angle))
        r, g, b = self.color
        draw.line([(center, center), end], fill=(r, g, b, 255), width=width)

    def render(self, size: int) -> Image.Image:
        canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(canvas)
        hour_deg = ((self.hour % 12) + self.minute / 60) * 30
        minute_deg = (self.minute + self.second / 60) * 6
        self._hand(draw, size, hour_deg, _HOUR_HAND, max(size // 36, 1))
        self._hand(draw, size, minute_deg, _MINUTE_HAND, max(size // 54, 1))
        if self.show_seconds:
            self._hand(draw, size, self.second * 6, _SECOND_HAND, max(size // 108, 1))
        return canvas


@dataclass(frozen=True)
class TimeVaryingExtender:
    """时钟图标：前景叠加时/分（可选秒）针。"""

    hands_color: RGB = (0x20, 0x20, 0x20)
    show_seconds: bool = False
    dominant_color: Optional[RGB] = None

    kind = ExtenderKind.TIME_VARYING

    def hands_at(self, hour: int, minute: int, second: int = 0) -> ClockHandsLayer:
        return ClockHandsLayer(hour, minute, second, color=self.hands_color, show_seconds=self.show_seconds)

    def _with_hands(self, source, hands: ClockHandsLayer):
        if getattr(source, "kind", None) != SourceKind.ADAPTIVE:
            return source
        return replace(source, foreground=StackLayer((source.foreground, hands)))

    def draw_stable(self, source):
        return self._with_hands(source, self.hands_at(*STABLE_TIME))

    def live_source(self, source, now: Optional[datetime] = None):
        """屏幕显示用：按当前时间画指针；返回的来源不再携带扩展器。"""
        now = now or datetime.now()
        live = self._with_hands(source, self.hands_at(now.hour, now.minute, now.second))
        if getattr(live, "kind", None) == SourceKind.ADAPTIVE:
            return replace(live, extender=None)
        return live

    def render_live_frame(self, composer, source, now: Optional[datetime] = None) -> Optional[BitmapInfo]:
        return composer.render_default(self.live_source(source, now))

    def compose_extended(self, info: BitmapInfo, source) -> BitmapInfo:
        if self.dominant_color is None:
            return info
        return replace(info, color=self.dominant_color)

    def themed_variant(self, source, size: int) -> Optional[Image.Image]:
        # 主题化时只保留指针轮廓
        return render_layer_region(self.hands_at(*STABLE_TIME), size).getchannel("A")


@dataclass(frozen=True, eq=False)
class ThemedOverrideExtender:
    overlay: ThemeOverlay
    resolver: Optional[ResourceResolver] = None

    kind = ExtenderKind.THEMED_OVERRIDE

    def compose_extended(self, info: BitmapInfo, source) -> BitmapInfo:
        return replace(info, theme_overlay=self.overlay)

    def draw_stable(self, source):
        return source

    def themed_variant(self, source, size: int) -> Optional[Image.Image]:
        """从覆盖资源中取单色图；资源不存在返回 None，解码失败抛出 ResourceUnavailableError。"""
        if self.resolver is None:
            return None
        loaded = self.resolver.load(self.overlay.package_name, self.overlay.resource_name)
        if loaded is None:
            return None
        kind = getattr(loaded, "kind", None)
        if kind == SourceKind.ADAPTIVE:
            layer = loaded.monochrome or loaded.foreground
            return render_layer_region(layer, size).getchannel("A")
        image = loaded.image if kind == SourceKind.FLAT else loaded
        return fit_image(image, size).getchannel("A")


Extender = Union[PlainExtender, TimeVaryingExtender, ThemedOverrideExtender]

_FACTORIES: Dict[ExtenderKind, Callable[..., Extender]] = {
    ExtenderKind.PLAIN: PlainExtender,
    ExtenderKind.TIME_VARYING: TimeVaryingExtender,
    ExtenderKind.THEMED_OVERRIDE: ThemedOverrideExtender,
}


def create_extender(kind: Union[ExtenderKind, str], **kwargs) -> Extender:
    try:
        factory = _FACTORIES[ExtenderKind(kind)]
    except ValueError as exc:
        raise ValueError(f"unknown extender kind: {kind}") from exc
    return factory(**kwargs)


def extender_of(source) -> Extender:
    """来源没有扩展器时视为 PLAIN。"""
    extender = getattr(source, "extender", None)
    return extender if extender is not None else PlainExtender()


__all__ = [
    "ClockHandsLayer",
    "Extender",
    "ExtenderKind",
    "PlainExtender",
    "STABLE_TIME",
    "ThemedOverrideExtender",
    "TimeVaryingExtender",
    "create_extender",
    "extender_of",
]
