from __future__ import annotations

from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter

from iconrender.services.clip_shape import ClipShape
from iconrender.services.icon_models import ShadowParams
from iconrender.services.render_config import RGB, RenderConfig


def blur_radius_to_sigma(radius: float) -> float:
    """模糊半径换算为高斯标准差（与 Skia BlurMaskFilter 的换算一致）。"""
    return radius * 0.57735 + 0.5 if radius > 0 else 0.0


def _scaled_alpha(alpha: Image.Image, factor: int) -> Image.Image:
    return alpha.point(lambda v: (v * factor + 127) // 255)


def _shift_down(alpha: Image.Image, dy: int) -> Image.Image:
    if dy == 0:
        return alpha
    shifted = Image.new("L", alpha.size, 0)
    shifted.paste(alpha, (0, dy))
    return shifted


class ShadowSynthesizer:
    """给图标加投影：一层零偏移的环境阴影 + 一层向下偏移的主阴影。

    是否绘制阴影只看 RenderConfig.shadows_enabled，且只在合成时读取一次；
    关闭时两个 alpha 都归零，输入画布原样返回。
    """

    def __init__(self, icon_size: int, config: Optional[RenderConfig] = None) -> None:
        if icon_size <= 0:
            raise ValueError("icon_size must be positive")
        self.icon_size = icon_size
        self.config = config or RenderConfig()

    def effective_params(self, params: Optional[ShadowParams] = None) -> ShadowParams:
        params = params or ShadowParams()
        if not self.config.shadows_enabled:
            return params.disabled()
        return params

    def blur_radius(self, params: Optional[ShadowParams] = None) -> float:
        return (params or ShadowParams()).blur_factor * self.icon_size

    def add_shadow(self, mask_source: Image.Image, onto: Image.Image, params: Optional[ShadowParams] = None) -> Image.Image:
        """从 mask_source 的 alpha 提取轮廓并模糊，作为阴影垫在 onto 下面，返回新画布。"""
        params = self.effective_params(params)
        if not params.is_visible:
            return onto
        if mask_source.mode == "L":
            alpha = mask_source
        else:
            alpha = (mask_source if mask_source.mode == "RGBA" else mask_source.convert("RGBA")).getchannel("A")
        return self._compose_behind(alpha, onto, params)

    def add_path_shadow(
        self,
        shape: ClipShape,
        onto: Image.Image,
        offset: int,
        params: Optional[ShadowParams] = None,
    ) -> Image.Image:
        """直接对遮罩路径投影：路径缩放到 [offset, size - offset] 区域内。"""
        params = self.effective_params(params)
        if not params.is_visible:
            return onto
        inner = onto.size[0] - offset * 2
        if inner <= 0:
            return onto
        alpha = Image.new("L", onto.size, 0)
        alpha.paste(shape.mask(inner), (offset, offset))
        return self._compose_behind(alpha, onto, params)

    def shadow_layer(self, alpha: Image.Image, params: Optional[ShadowParams] = None) -> Image.Image:
        """只返回阴影本身（环境阴影 + 主阴影），不含内容。"""
        params = self.effective_params(params)
        layer = Image.new("RGBA", alpha.size, (0, 0, 0, 0))
        if not params.is_visible:
            return layer
        sigma = blur_radius_to_sigma(self.blur_radius(params))
        blurred = alpha.filter(ImageFilter.GaussianBlur(sigma)) if sigma > 0 else alpha
        black = Image.new("L", alpha.size, 0)

        if params.ambient_alpha > 0:
            ambient = Image.merge("RGBA", (black, black, black, _scaled_alpha(blurred, params.ambient_alpha)))
            layer.alpha_composite(ambient)
        if params.key_alpha > 0:
            dy = int(round(params.key_shadow_distance * self.icon_size))
            key_alpha = _shift_down(_scaled_alpha(blurred, params.key_alpha), dy)
            key = Image.merge("RGBA", (black, black, black, key_alpha))
            layer.alpha_composite(key)
        return layer

    def _compose_behind(self, alpha: Image.Image, onto: Image.Image, params: ShadowParams) -> Image.Image:
        result = self.shadow_layer(alpha, params)
        content = onto if onto.mode == "RGBA" else onto.convert("RGBA")
        result.alpha_composite(content)
        return result

    # ------------------------------------------------------------------
    # Pill shadows (notification dots)
    # ------------------------------------------------------------------

    def create_pill(
        self,
        width: int,
        height: int,
        *,
        radius: Optional[float] = None,
        color: RGB = (255, 255, 255),
        ambient_alpha: int = 88,
        key_alpha: Optional[int] = None,
    ) -> Tuple[Image.Image, float]:
        """绘制带阴影的胶囊背景，返回 (图片, 圆角半径)。阴影尺寸按高度比例计算。"""
        radius = height / 2 if radius is None else radius
        params = self.effective_params(
            ShadowParams(ambient_alpha=ambient_alpha, key_alpha=ShadowParams().key_alpha if key_alpha is None else key_alpha)
        )
        if params.is_visible:
            shadow_blur = height / 24
            key_distance = height / 16
        else:
            shadow_blur = 0.0
            key_distance = 0.0
        center_x = int(round(width / 2 + shadow_blur))
        center_y = int(round(radius + shadow_blur + key_distance))
        canvas_w, canvas_h = max(center_x * 2, 1), max(center_y * 2, 1)

        left = center_x - width / 2
        top = center_y - height / 2
        box = [left, top, left + width - 1, top + height - 1]

        alpha = Image.new("L", (canvas_w, canvas_h), 0)
        ImageDraw.Draw(alpha).rounded_rectangle(box, radius=radius, fill=255)

        result = Image.new("RGBA", (canvas_w, canvas_h), (0, 0, 0, 0))
        if params.is_visible:
            sigma = blur_radius_to_sigma(shadow_blur)
            blurred = alpha.filter(ImageFilter.GaussianBlur(sigma))
            black = Image.new("L", alpha.size, 0)
            result.alpha_composite(Image.merge("RGBA", (black, black, black, _scaled_alpha(blurred, params.ambient_alpha))))
            if params.key_alpha > 0:
                key = _shift_down(_scaled_alpha(blurred, params.key_alpha), int(round(key_distance)))
                result.alpha_composite(Image.merge("RGBA", (black, black, black, key)))

        r, g, b = color
        fill = Image.new("RGBA", alpha.size, (r, g, b, 255))
        fill.putalpha(alpha)
        result.alpha_composite(fill)
        return result, radius


__all__ = ["ShadowSynthesizer", "blur_radius_to_sigma"]
