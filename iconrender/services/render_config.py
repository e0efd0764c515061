from __future__ import annotations

"""
Render Config
-------------
图标渲染的全部开关集中在一个不可变的 RenderConfig 中，每次调用 composer 时显式传入，
不再依赖全局静态开关。

- 阴影开关、取色开关、单色图标开关都在这里；
- 环境变量统一使用 `ICONRENDER_` 前缀，便于服务端部署时覆盖；
- 包装背景色若带透明度（alpha < 255）一律回退为白色。
"""

import os
from dataclasses import dataclass, replace
from typing import Optional, Tuple

RGB = Tuple[int, int, int]

DEFAULT_WRAPPER_BACKGROUND: RGB = (255, 255, 255)
DEFAULT_ICON_SIZE = 192

# 圆形图标的可见直径占整个图标尺寸的比例
ICON_VISIBLE_AREA_FACTOR = 0.92

_FALSE_VALUES = {"0", "false", "off", "no"}


def _env_flag(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() not in _FALSE_VALUES


def parse_color(value: object) -> Tuple[int, int, int, int]:
    """把 `#RRGGBB` / `#AARRGGBB` / ARGB int / RGB(A) 元组统一解析成 (a, r, g, b)。"""
    if isinstance(value, int):
        return (value >> 24) & 0xFF, (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF
    if isinstance(value, (tuple, list)):
        if len(value) == 3:
            r, g, b = (int(c) for c in value)
            return 255, r, g, b
        if len(value) == 4:
            r, g, b, a = (int(c) for c in value)
            return a, r, g, b
        raise ValueError(f"invalid color tuple: {value!r}")
    if isinstance(value, str):
        text = value.strip().lstrip("#")
        if len(text) == 6:
            return 255, int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16)
        if len(text) == 8:
            return int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16), int(text[6:8], 16)
    raise ValueError(f"invalid color: {value!r}")


def normalize_wrapper_background(value: object) -> RGB:
    """包装背景必须完全不透明，否则使用默认白色。"""
    try:
        a, r, g, b = parse_color(value)
    except ValueError:
        return DEFAULT_WRAPPER_BACKGROUND
    if a < 255:
        return DEFAULT_WRAPPER_BACKGROUND
    return r, g, b


@dataclass(frozen=True)
class RenderConfig:
    shrink_non_adaptive_icons: bool = True
    disable_color_extraction: bool = False
    mono_icons_enabled: bool = False
    wrapper_background_color: RGB = DEFAULT_WRAPPER_BACKGROUND
    shadows_enabled: bool = True
    icon_shape: str = "circle"
    visible_area_factor: float = ICON_VISIBLE_AREA_FACTOR

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "wrapper_background_color",
            normalize_wrapper_background(self.wrapper_background_color),
        )
        if not 0 < self.visible_area_factor <= 1:
            raise ValueError("visible_area_factor must be in (0, 1]")

    def evolve(self, **changes) -> "RenderConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, *, base: Optional["RenderConfig"] = None) -> "RenderConfig":
        base = base or cls()
        wrapper_raw = os.environ.get("ICONRENDER_WRAPPER_BG")
        factor_raw = os.environ.get("ICONRENDER_VISIBLE_AREA_FACTOR")
        return cls(
            shrink_non_adaptive_icons=_env_flag("ICONRENDER_SHRINK_NON_ADAPTIVE", base.shrink_non_adaptive_icons),
            disable_color_extraction=_env_flag("ICONRENDER_DISABLE_COLOR_EXTRACTION", base.disable_color_extraction),
            mono_icons_enabled=_env_flag("ICONRENDER_MONO_ICONS", base.mono_icons_enabled),
            wrapper_background_color=wrapper_raw if wrapper_raw else base.wrapper_background_color,
            shadows_enabled=_env_flag("ICONRENDER_SHADOWS", base.shadows_enabled),
            icon_shape=os.environ.get("ICONRENDER_ICON_SHAPE", base.icon_shape),
            visible_area_factor=float(factor_raw) if factor_raw else base.visible_area_factor,
        )


def default_icon_size() -> int:
    return int(os.environ.get("ICONRENDER_ICON_SIZE", str(DEFAULT_ICON_SIZE)))


__all__ = [
    "DEFAULT_ICON_SIZE",
    "DEFAULT_WRAPPER_BACKGROUND",
    "ICON_VISIBLE_AREA_FACTOR",
    "RGB",
    "RenderConfig",
    "default_icon_size",
    "normalize_wrapper_background",
    "parse_color",
]
