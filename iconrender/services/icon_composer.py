from __future__ import annotations

"""
Icon Composer
-------------
图标渲染的统一入口：归一化 → 按缩放绘制（自适应图标先画遮罩路径阴影）→ 取主色 → 可选单色层 / 徽标。

- 每个 composer 持有一块可复用的绘制画布和一把锁；并发调用方要么各自持有实例，要么共享同一把锁；
- 所有公开方法都不向外抛出异常：资源缺失、解码失败等一律打印日志并返回 None，调用方回退到默认图标；
- 渲染开关来自 RenderConfig，可以在构造时给定，也可以按次传入覆盖。
"""

import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from PIL import Image, ImageChops

from iconrender.services.badge_renderer import BadgeSpec, render_badge
from iconrender.services.clip_shape import ClipShape
from iconrender.services.color_extractor import find_dominant_color_by_hue
from iconrender.services.exceptions import (
    DegenerateGeometryError,
    InvalidIconRequestError,
    ResourceUnavailableError,
    ServiceError,
)
from iconrender.services.extenders import ExtenderKind, extender_of
from iconrender.services.icon_models import (
    FLAG_INSTANT,
    AdaptiveSource,
    BitmapInfo,
    ColorLayer,
    FlatSource,
    ShadowParams,
    SourceKind,
    TextLayer,
    ThemeOverlay,
    fit_image,
    flag_for_badge,
)
from iconrender.services.mono_extractor import MonochromeExtractor, render_layer_region
from iconrender.services.render_config import RGB, RenderConfig
from iconrender.services.resources import ResourceResolver
from iconrender.services.shadow_service import ShadowSynthesizer
from iconrender.services.shape_normalizer import ShapeNormalizer, scale_for_shadow_bounds

# 徽标相对主图标的尺寸
BADGE_SCALE = 0.444
PLACEHOLDER_BACKGROUND: RGB = (245, 245, 245)
_NO_COLOR: RGB = (0, 0, 0)
# 公开入口捕获的失败；DecompressionBombError 不属于 OSError
_RENDER_ERRORS = (ServiceError, OSError, ValueError, Image.DecompressionBombError)


@dataclass(frozen=True)
class IconOptions:
    user_flags: int = 0
    instant_app: bool = False
    extracted_color: Optional[RGB] = None
    add_shadows: bool = True
    icon_scale: Optional[float] = None
    # None 表示跟随 RenderConfig.shrink_non_adaptive_icons
    wrap_non_adaptive: Optional[bool] = None


class IconComposer:
    def __init__(
        self,
        icon_size: int,
        config: Optional[RenderConfig] = None,
        resolver: Optional[ResourceResolver] = None,
    ) -> None:
        if icon_size <= 0:
            raise ValueError("icon_size must be positive")
        self.icon_size = icon_size
        self.config = config or RenderConfig()
        self.resolver = resolver
        self.normalizer = ShapeNormalizer(icon_size)
        self.mono_extractor = MonochromeExtractor()
        self._lock = threading.RLock()
        self._surface: Optional[Image.Image] = Image.new("RGBA", (icon_size, icon_size), (0, 0, 0, 0))
        self._white_shadow_cache: Dict[Tuple[str, bool, float], Image.Image] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._surface = None
            self._white_shadow_cache.clear()

    @property
    def closed(self) -> bool:
        return self._surface is None

    def __enter__(self) -> "IconComposer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _acquire_surface(self) -> Image.Image:
        if self._surface is None:
            raise InvalidIconRequestError("icon composer is closed")
        self._surface.paste((0, 0, 0, 0), (0, 0, self.icon_size, self.icon_size))
        return self._surface

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def render_default(
        self,
        source,
        options: Optional[IconOptions] = None,
        *,
        config: Optional[RenderConfig] = None,
    ) -> Optional[BitmapInfo]:
        try:
            with self._lock:
                return self._create_icon(source, options or IconOptions(), config or self.config)
        except _RENDER_ERRORS as exc:
            print(f"[icon-composer] 渲染失败: {exc}")
            return None

    def render_with_badge(
        self,
        source,
        badge: BadgeSpec,
        options: Optional[IconOptions] = None,
        *,
        config: Optional[RenderConfig] = None,
    ) -> Optional[BitmapInfo]:
        info = self.render_default(source, options, config=config)
        if info is None:
            return None
        try:
            badge_size = max(int(BADGE_SCALE * self.icon_size), 1)
            badge_info = BitmapInfo.of(render_badge(badge, badge_size), color=badge.tint)
        except _RENDER_ERRORS as exc:
            print(f"[icon-composer] 徽标渲染失败: {exc}")
            return None
        return info.with_badge(badge_info).with_flags(add=flag_for_badge(badge.kind))

    def render_placeholder(self, text: str, color: RGB, *, config: Optional[RenderConfig] = None) -> Optional[BitmapInfo]:
        """纯色底 + 居中文字，走与真实图标相同的归一化路径，保证占位图与真实图标大小一致。"""
        cfg = config or self.config
        source = AdaptiveSource(
            background=ColorLayer(PLACEHOLDER_BACKGROUND),
            foreground=TextLayer(text or "", tuple(color)),
            shape=ClipShape.from_name(cfg.icon_shape),
        )
        return self.render_default(source, IconOptions(extracted_color=tuple(color)), config=cfg)

    def render_resource(
        self,
        package_name: str,
        resource_name: str,
        *,
        density: Optional[str] = None,
        options: Optional[IconOptions] = None,
        config: Optional[RenderConfig] = None,
    ) -> Optional[BitmapInfo]:
        """旧式快捷方式图标：通过 resolver 读取资源，任何失败都返回 None。"""
        if self.resolver is None:
            print(f"[icon-composer] 未配置资源解析器，跳过 {package_name}/{resource_name}")
            return None
        try:
            loaded = self.resolver.load(package_name, resource_name, density)
            source = self._as_source(loaded) if loaded is not None else None
        except _RENDER_ERRORS as exc:
            print(f"[icon-composer] 资源不可用 {package_name}/{resource_name}: {exc}")
            return None
        if source is None:
            print(f"[icon-composer] 资源不存在: {package_name}/{resource_name}")
            return None
        return self.render_default(source, options, config=config)

    def render_bitmap(
        self,
        image: Image.Image,
        *,
        full_bleed: bool = False,
        config: Optional[RenderConfig] = None,
    ) -> Optional[BitmapInfo]:
        """已经是图标尺寸的位图直接使用；其他尺寸按 scale = 1 缩放，不做包装。"""
        cfg = config or self.config
        if image.size == (self.icon_size, self.icon_size):
            try:
                icon = image.convert("RGBA") if image.mode != "RGBA" else image.copy()
                return BitmapInfo(icon=icon, color=self._dominant_color(icon, cfg))
            except (OSError, ValueError, Image.DecompressionBombError) as exc:
                print(f"[icon-composer] 位图渲染失败: {exc}")
                return None
        options = IconOptions(add_shadows=not full_bleed, icon_scale=1.0, wrap_non_adaptive=False)
        return self.render_default(FlatSource(image), options, config=cfg)

    def render_live(self, source, now: Optional[datetime] = None) -> Optional[BitmapInfo]:
        """屏幕显示用的帧；时钟类图标按当前时间绘制，其余等同 render_default。"""
        extender = extender_of(source)
        if extender.kind == ExtenderKind.TIME_VARYING:
            return extender.render_live_frame(self, source, now)
        return self.render_default(source)

    def white_shadow_layer(self, *, config: Optional[RenderConfig] = None) -> Optional[Image.Image]:
        try:
            with self._lock:
                return self._white_shadow(config or self.config).copy()
        except _RENDER_ERRORS as exc:
            print(f"[icon-composer] 白色阴影层生成失败: {exc}")
            return None

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _create_icon(self, source, options: IconOptions, cfg: RenderConfig) -> BitmapInfo:
        source, overlay = self._resolve(source)
        extender = extender_of(source)
        stable = extender.draw_stable(source)
        synthesizer = ShadowSynthesizer(self.icon_size, cfg)
        params = synthesizer.effective_params() if options.add_shadows else ShadowParams().disabled()
        default_shape = ClipShape.from_name(cfg.icon_shape)
        wrap = cfg.shrink_non_adaptive_icons if options.wrap_non_adaptive is None else options.wrap_non_adaptive

        surface = self._acquire_surface()
        adaptive: Optional[AdaptiveSource] = None
        if stable.kind == SourceKind.FLAT and wrap:
            adaptive, _ = self.normalizer.wrap_to_adaptive(stable, cfg.wrapper_background_color, default_shape)
        elif stable.kind == SourceKind.ADAPTIVE:
            adaptive = stable if stable.shape is not None else stable.with_shape(default_shape)

        if adaptive is not None:
            result = self.normalizer.compute_scale(adaptive)
            scale = options.icon_scale if options.icon_scale is not None else cfg.visible_area_factor * result.scale
            offset, inner = self._geometry(scale, params)
            icon = self._draw_adaptive(surface, adaptive, offset, inner, params, synthesizer)
        else:
            result = self.normalizer.compute_scale(stable, default_shape)
            scale = options.icon_scale if options.icon_scale is not None else result.scale
            if params.is_visible:
                scale = min(scale, scale_for_shadow_bounds(result.insets(), params))
            offset, inner = 0, self.icon_size
            icon = self._draw_flat(surface, stable.image, scale, params, synthesizer)

        if options.extracted_color is not None:
            color = tuple(options.extracted_color)
        else:
            color = self._dominant_color(icon, cfg)
        flags = options.user_flags | (FLAG_INSTANT if options.instant_app else 0)
        info = BitmapInfo(
            icon=icon,
            color=color,
            flags=flags,
            theme_overlay=overlay,
            normalization_scale=scale,
            extender=None if extender.kind == ExtenderKind.PLAIN else extender,
        )
        info = extender.compose_extended(info, stable)

        if cfg.mono_icons_enabled and adaptive is not None:
            info = self._attach_mono(info, adaptive, extender, offset, inner, cfg)
        return info

    def _resolve(self, source) -> Tuple[object, Optional[ThemeOverlay]]:
        kind = getattr(source, "kind", None)
        if kind is None and isinstance(source, Image.Image):
            return FlatSource(source), None
        if kind != SourceKind.THEME_OVERRIDE:
            if kind not in (SourceKind.FLAT, SourceKind.ADAPTIVE):
                raise InvalidIconRequestError(f"unsupported icon source: {type(source).__name__}")
            return source, None

        overlay = source.overlay
        loaded = None
        if self.resolver is not None:
            try:
                loaded = self.resolver.load(overlay.package_name, overlay.resource_name)
            except ServiceError as exc:
                print(f"[icon-composer] 主题覆盖资源加载失败 {overlay.package_name}/{overlay.resource_name}: {exc}")
        if loaded is not None:
            return self._as_source(loaded), overlay
        if source.fallback is None:
            raise ResourceUnavailableError(f"theme override {overlay.package_name}/{overlay.resource_name} not found")
        return source.fallback, overlay

    @staticmethod
    def _as_source(loaded):
        if isinstance(loaded, Image.Image):
            return FlatSource(loaded)
        if getattr(loaded, "kind", None) in (SourceKind.FLAT, SourceKind.ADAPTIVE):
            return loaded
        raise ResourceUnavailableError(f"unsupported resource type: {type(loaded).__name__}")

    def _geometry(self, scale: float, params: ShadowParams) -> Tuple[int, int]:
        """返回 (offset, inner)：自适应图标绘制在 [offset, size - offset] 区域内，同时给模糊留足边距。"""
        size = self.icon_size
        blur_offset = math.ceil(params.blur_factor * size) if params.is_visible else 0
        offset = max(blur_offset, int(round(size * (1 - scale) / 2)))
        # 极小尺寸下阴影边距会吃掉整个画布：至少保留 1px 的绘制区域
        offset = min(offset, (size - 1) // 2)
        inner = size - offset * 2
        if inner <= 0:
            raise DegenerateGeometryError(f"icon size {size} too small for scale {scale:.3f}")
        return offset, inner

    def _draw_adaptive(
        self,
        canvas: Image.Image,
        source: AdaptiveSource,
        offset: int,
        inner: int,
        params: ShadowParams,
        synthesizer: ShadowSynthesizer,
    ) -> Image.Image:
        content = render_layer_region(source.background, inner)
        content.alpha_composite(render_layer_region(source.foreground, inner))
        content.putalpha(ImageChops.multiply(content.getchannel("A"), source.shape.mask(inner)))
        canvas.alpha_composite(content, (offset, offset))
        # 先对遮罩路径投影，阴影位于半透明前景之下
        return synthesizer.add_path_shadow(source.shape, canvas, offset, params).copy()

    def _draw_flat(
        self,
        canvas: Image.Image,
        image: Image.Image,
        scale: float,
        params: ShadowParams,
        synthesizer: ShadowSynthesizer,
    ) -> Image.Image:
        canvas.alpha_composite(fit_image(image, self.icon_size, scale))
        return synthesizer.add_shadow(canvas, canvas, params).copy()

    @staticmethod
    def _dominant_color(icon: Image.Image, cfg: RenderConfig) -> RGB:
        if cfg.disable_color_extraction:
            return _NO_COLOR
        return find_dominant_color_by_hue(icon)

    def _attach_mono(
        self,
        info: BitmapInfo,
        source: AdaptiveSource,
        extender,
        offset: int,
        inner: int,
        cfg: RenderConfig,
    ) -> BitmapInfo:
        mask: Optional[Image.Image] = None
        luminance_delta: Optional[float] = None
        try:
            mask = extender.themed_variant(source, inner)
        except ServiceError as exc:
            print(f"[icon-composer] 主题单色层不可用: {exc}")
        if mask is None and source.monochrome is not None:
            mask = self.mono_extractor.from_monochrome_layer(source.monochrome, size=inner, shape=source.shape)
        if mask is None:
            result = self.mono_extractor.extract(source.background, source.foreground, size=inner, shape=source.shape)
            mask, luminance_delta = result.mask, result.luminance_diff
        elif extender.kind != ExtenderKind.PLAIN:
            mask = ImageChops.multiply(mask, source.shape.mask(inner))

        mono = Image.new("L", (self.icon_size, self.icon_size), 0)
        mono.paste(mask, (offset, offset))
        return info.with_mono(
            mono,
            white_shadow_layer=self._white_shadow(cfg),
            luminance_delta=luminance_delta,
        )

    def _white_shadow(self, cfg: RenderConfig) -> Image.Image:
        """主题化图标底下的白色遮罩 + 阴影，按配置缓存。"""
        key = (cfg.icon_shape, cfg.shadows_enabled, cfg.visible_area_factor)
        cached = self._white_shadow_cache.get(key)
        if cached is not None:
            return cached
        synthesizer = ShadowSynthesizer(self.icon_size, cfg)
        params = synthesizer.effective_params()
        source = AdaptiveSource(
            background=ColorLayer((255, 255, 255)),
            foreground=None,
            shape=ClipShape.from_name(cfg.icon_shape),
        )
        offset, inner = self._geometry(cfg.visible_area_factor, params)
        canvas = Image.new("RGBA", (self.icon_size, self.icon_size), (0, 0, 0, 0))
        layer = self._draw_adaptive(canvas, source, offset, inner, params, synthesizer)
        self._white_shadow_cache[key] = layer
        return layer


__all__ = [
    "BADGE_SCALE",
    "IconComposer",
    "IconOptions",
    "PLACEHOLDER_BACKGROUND",
]
