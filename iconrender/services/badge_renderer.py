from __future__ import annotations

"""
Badge Renderer
--------------
徽标与通知圆点的绘制。

- 用户徽标（工作资料 / 免安装应用 / 分身 / 私密空间）：彩色圆底 + 白色图形，4 倍超采样后缩小抗锯齿；
- 圆环徽标：只画一圈描边，中间透明；
- 通知圆点：直径为图标尺寸的 22.8%，带胶囊阴影，挂在遮罩形状右上（或左上）角的挂载点上；
  显示数字时改为胶囊底 + 居中文字（字号为图标尺寸的 26%）。
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from iconrender.services.clip_shape import ClipShape
from iconrender.services.icon_models import BadgeKind
from iconrender.services.luminance import lab_to_rgb, relative_luminance, rgb_to_lab
from iconrender.services.render_config import RGB
from iconrender.services.shadow_service import ShadowSynthesizer

if hasattr(Image, "Resampling"):
    _LANCZOS = Image.Resampling.LANCZOS  # Pillow >= 9.1
else:  # pragma: no cover - 兼容旧版本 Pillow
    _LANCZOS = Image.LANCZOS

_SUPERSAMPLE = 4

BADGE_TINTS: Dict[BadgeKind, RGB] = {
    BadgeKind.WORK: (0x1A, 0x73, 0xE8),
    BadgeKind.INSTANT: (0xF2, 0x99, 0x00),
    BadgeKind.CLONE: (0x18, 0x80, 0x38),
    BadgeKind.PRIVATE: (0x5F, 0x63, 0x68),
    BadgeKind.RING: (0x60, 0x60, 0x60),
}
_GLYPH_COLOR = (255, 255, 255, 255)

# 圆点大小占图标尺寸的比例
DOT_SIZE_FRACTION = 0.228
TEXT_SIZE_FRACTION = 0.26
# 深色圆点在深色边框上看不清，亮度低于该值时提亮
LUMINANCE_LIMIT = 0.70
MIN_DOT_SIZE = 1


@dataclass(frozen=True)
class BadgeSpec:
    kind: BadgeKind
    color: Optional[RGB] = None

    @property
    def tint(self) -> RGB:
        return self.color or BADGE_TINTS[self.kind]


def _box(size: int, left: float, top: float, right: float, bottom: float) -> Tuple[float, float, float, float]:
    return left * size, top * size, right * size, bottom * size


def _draw_work(draw: ImageDraw.ImageDraw, size: int) -> None:
    # 公文包：提手 + 箱体
    stroke = max(int(size * 0.045), 1)
    draw.rounded_rectangle(_box(size, 0.41, 0.29, 0.59, 0.42), radius=size * 0.03, outline=_GLYPH_COLOR, width=stroke)
    draw.rounded_rectangle(_box(size, 0.27, 0.38, 0.73, 0.70), radius=size * 0.05, fill=_GLYPH_COLOR)


def _draw_instant(draw: ImageDraw.ImageDraw, size: int) -> None:
    bolt = [(0.56, 0.22), (0.33, 0.54), (0.48, 0.54), (0.43, 0.78), (0.67, 0.44), (0.52, 0.44)]
    draw.polygon([(x * size, y * size) for x, y in bolt], fill=_GLYPH_COLOR)


def _draw_clone(draw: ImageDraw.ImageDraw, size: int) -> None:
    stroke = max(int(size * 0.045), 1)
    draw.rounded_rectangle(_box(size, 0.28, 0.28, 0.60, 0.60), radius=size * 0.04, outline=_GLYPH_COLOR, width=stroke)
    draw.rounded_rectangle(_box(size, 0.40, 0.40, 0.72, 0.72), radius=size * 0.04, fill=_GLYPH_COLOR)


def _draw_private(draw: ImageDraw.ImageDraw, size: int) -> None:
    # 锁：上半圆锁梁 + 锁体
    stroke = max(int(size * 0.05), 1)
    draw.arc(_box(size, 0.37, 0.26, 0.63, 0.56), start=180, end=360, fill=_GLYPH_COLOR, width=stroke)
    draw.line([(0.37 * size + stroke / 2, 0.41 * size), (0.37 * size + stroke / 2, 0.48 * size)], fill=_GLYPH_COLOR, width=stroke)
    draw.line([(0.63 * size - stroke / 2, 0.41 * size), (0.63 * size - stroke / 2, 0.48 * size)], fill=_GLYPH_COLOR, width=stroke)
    draw.rounded_rectangle(_box(size, 0.31, 0.46, 0.69, 0.74), radius=size * 0.04, fill=_GLYPH_COLOR)


_GLYPHS = {
    BadgeKind.WORK: _draw_work,
    BadgeKind.INSTANT: _draw_instant,
    BadgeKind.CLONE: _draw_clone,
    BadgeKind.PRIVATE: _draw_private,
}


def render_badge(spec: BadgeSpec, size: int) -> Image.Image:
    """绘制 size x size 的徽标图片。"""
    if size <= 0:
        raise ValueError("badge size must be positive")
    big = size * _SUPERSAMPLE
    canvas = Image.new("RGBA", (big, big), (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)
    r, g, b = spec.tint

    if spec.kind == BadgeKind.RING:
        width = max(big // 12, 1)
        draw.ellipse((0, 0, big - 1, big - 1), outline=(r, g, b, 255), width=width)
    else:
        draw.ellipse((0, 0, big - 1, big - 1), fill=(r, g, b, 255))
        _GLYPHS[spec.kind](draw, big)
    return canvas.resize((size, size), _LANCZOS)


def lift_dot_color(color: RGB) -> RGB:
    if relative_luminance(color) >= LUMINANCE_LIMIT:
        return color
    _, a, b = rgb_to_lab(color)
    return lab_to_rgb((100 * LUMINANCE_LIMIT, a, b))


@dataclass(frozen=True)
class DotParams:
    color: RGB
    scale: float = 1.0
    left_align: bool = False
    show_count: bool = False
    count: int = 0
    shape: Optional[ClipShape] = None


class DotRenderer:
    """在图标上绘制通知圆点（或数字胶囊）。"""

    def __init__(
        self,
        icon_size: int,
        synthesizer: Optional[ShadowSynthesizer] = None,
        *,
        contrast_border: bool = True,
    ) -> None:
        if icon_size <= 0:
            raise ValueError("icon_size must be positive")
        self.icon_size = icon_size
        self.dot_size = max(int(round(DOT_SIZE_FRACTION * icon_size)), MIN_DOT_SIZE)
        self.synthesizer = synthesizer or ShadowSynthesizer(icon_size)
        self.contrast_border = contrast_border
        self._font = ImageFont.load_default(size=max(icon_size * TEXT_SIZE_FRACTION, 1))

    def dot_color(self, color: RGB) -> RGB:
        return lift_dot_color(color) if self.contrast_border else color

    def _sprite(self, params: DotParams) -> Image.Image:
        color = self.dot_color(params.color)
        if not (params.show_count and params.count != 0):
            sprite, _ = self.synthesizer.create_pill(self.dot_size, self.dot_size, color=color)
            return sprite

        text = str(params.count)
        probe = ImageDraw.Draw(Image.new("L", (1, 1)))
        left, top, right, bottom = probe.textbbox((0, 0), text, font=self._font)
        width = max(self.dot_size, int(round(right - left + self.dot_size / 2)))
        sprite, _ = self.synthesizer.create_pill(width, self.dot_size, color=color)
        draw = ImageDraw.Draw(sprite)
        text_color = (255, 255, 255, 255) if relative_luminance(color) < 0.5 else (0, 0, 0, 255)
        cx, cy = sprite.size[0] / 2, sprite.size[1] / 2
        draw.text((cx - (left + right) / 2, cy - (top + bottom) / 2), text, fill=text_color, font=self._font)
        return sprite

    def draw(self, image: Image.Image, params: DotParams) -> Image.Image:
        canvas = image.convert("RGBA") if image.mode != "RGBA" else image.copy()
        if params.scale <= 0:
            return canvas
        width, height = canvas.size
        shape = params.shape or ClipShape.circle()
        left_point, right_point = shape.attachment_points()
        pos_x, pos_y = left_point if params.left_align else right_point
        center_x = width * pos_x
        center_y = height * pos_y

        sprite = self._sprite(params)
        if params.scale != 1:
            scaled = (max(int(round(sprite.size[0] * params.scale)), 1), max(int(round(sprite.size[1] * params.scale)), 1))
            sprite = sprite.resize(scaled, _LANCZOS)
        half_w, half_h = sprite.size[0] / 2, sprite.size[1] / 2

        # 保证圆点完整落在画布内
        if params.left_align:
            center_x += max(0.0, half_w - center_x)
        else:
            center_x += min(0.0, width - (center_x + half_w))
        center_y += max(0.0, half_h - center_y)

        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        layer.paste(sprite, (int(round(center_x - half_w)), int(round(center_y - half_h))))
        canvas.alpha_composite(layer)
        return canvas


__all__ = [
    "BADGE_TINTS",
    "BadgeSpec",
    "DOT_SIZE_FRACTION",
    "DotParams",
    "DotRenderer",
    "LUMINANCE_LIMIT",
    "TEXT_SIZE_FRACTION",
    "lift_dot_color",
    "render_badge",
]
