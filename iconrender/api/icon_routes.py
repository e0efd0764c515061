from __future__ import annotations

import base64
import binascii
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from PIL import Image
from starlette.concurrency import run_in_threadpool

from iconrender.schemas.icons import (
    DecodeRequest,
    DecodeResponse,
    IconInfoResponse,
    PlaceholderRequest,
    ThemeOverlayModel,
)
from iconrender.services import bitmap_codec
from iconrender.services.badge_renderer import BadgeSpec
from iconrender.services.clip_shape import ClipShape
from iconrender.services.color_extractor import to_hex
from iconrender.services.exceptions import (
    InvalidIconRequestError,
    MalformedPersistedDataError,
    ResourceUnavailableError,
    ServiceError,
)
from iconrender.services.icon_composer import IconComposer, IconOptions
from iconrender.services.icon_models import BadgeKind, BitmapInfo, FlatSource
from iconrender.services.render_config import RenderConfig, default_icon_size, parse_color
from iconrender.services.resources import decode_image_bytes

router = APIRouter(prefix="/icons", tags=["icons"])

MAX_ICON_SIZE = 1024
MAX_UPLOAD_BYTES = 8 * 1024 * 1024


def get_render_config() -> RenderConfig:
    return RenderConfig.from_env()


def _raise_service_error(exc: ServiceError):
    detail = str(exc) or exc.__class__.__name__
    raise HTTPException(status_code=exc.status_code, detail=detail)


def _b64_png(image: Optional[Image.Image]) -> Optional[str]:
    if image is None:
        return None
    buf = BytesIO()
    image.save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _to_response(info: BitmapInfo, persisted: Optional[bytes] = None) -> IconInfoResponse:
    overlay = None
    if info.theme_overlay is not None:
        overlay = ThemeOverlayModel(
            packageName=info.theme_overlay.package_name,
            resourceName=info.theme_overlay.resource_name,
            resourceId=info.theme_overlay.resource_id,
        )
    return IconInfoResponse(
        size=info.size,
        color=to_hex(info.color),
        flags=info.flags,
        normalizationScale=info.normalization_scale,
        iconPng=_b64_png(info.icon),
        monoPng=_b64_png(info.mono),
        luminanceDelta=info.luminance_delta,
        badgePng=_b64_png(info.badge.icon) if info.badge is not None else None,
        themeOverlay=overlay,
        persisted=base64.b64encode(persisted).decode("ascii") if persisted else None,
    )


def _resolve_size(size: Optional[int]) -> int:
    value = size if size is not None else default_icon_size()
    if value <= 0 or value > MAX_ICON_SIZE:
        raise InvalidIconRequestError(f"size must be in 1..{MAX_ICON_SIZE}")
    return value


def _rgb(value: str):
    try:
        _, r, g, b = parse_color(value)
    except ValueError as exc:
        raise InvalidIconRequestError(str(exc)) from exc
    return r, g, b


def _apply_overrides(config: RenderConfig, **changes) -> RenderConfig:
    changes = {key: value for key, value in changes.items() if value is not None}
    if "icon_shape" in changes:
        try:
            ClipShape.from_name(changes["icon_shape"])
        except ValueError as exc:
            raise InvalidIconRequestError(str(exc)) from exc
    return config.evolve(**changes) if changes else config


def _render_upload(data: bytes, size: int, config: RenderConfig, badge: Optional[str], instant_app: bool) -> IconInfoResponse:
    try:
        image = decode_image_bytes(data)
    except ResourceUnavailableError as exc:
        raise InvalidIconRequestError(str(exc)) from exc

    options = IconOptions(instant_app=instant_app)
    with IconComposer(size, config) as composer:
        if badge:
            try:
                spec = BadgeSpec(BadgeKind(badge))
            except ValueError as exc:
                raise InvalidIconRequestError(f"unknown badge: {badge}") from exc
            info = composer.render_with_badge(FlatSource(image), spec, options)
        else:
            info = composer.render_default(FlatSource(image), options)
    if info is None:
        raise InvalidIconRequestError("icon could not be rendered", status_code=422)
    return _to_response(info, bitmap_codec.encode(info))


@router.post("/render", response_model=IconInfoResponse)
async def render_icon(
    file: UploadFile = File(...),
    size: Optional[int] = Form(None),
    shape: Optional[str] = Form(None),
    badge: Optional[str] = Form(None),
    instant_app: bool = Form(False),
    shadows: Optional[bool] = Form(None),
    mono: Optional[bool] = Form(None),
    shrink: Optional[bool] = Form(None),
    config: RenderConfig = Depends(get_render_config),
):
    try:
        data = await file.read()
        if len(data) > MAX_UPLOAD_BYTES:
            raise InvalidIconRequestError("image too large", status_code=413)
        icon_size = _resolve_size(size)
        cfg = _apply_overrides(
            config,
            icon_shape=shape,
            shadows_enabled=shadows,
            mono_icons_enabled=mono,
            shrink_non_adaptive_icons=shrink,
        )
        return await run_in_threadpool(_render_upload, data, icon_size, cfg, badge, instant_app)
    except ServiceError as exc:
        _raise_service_error(exc)


@router.post("/placeholder", response_model=IconInfoResponse)
def render_placeholder(req: PlaceholderRequest, config: RenderConfig = Depends(get_render_config)):
    try:
        icon_size = _resolve_size(req.size)
        cfg = _apply_overrides(config, icon_shape=req.shape)
        with IconComposer(icon_size, cfg) as composer:
            info = composer.render_placeholder(req.text, _rgb(req.color))
        if info is None:
            raise InvalidIconRequestError("placeholder could not be rendered", status_code=422)
        return _to_response(info, bitmap_codec.encode(info))
    except ServiceError as exc:
        _raise_service_error(exc)


_KIND_NAMES = {
    bitmap_codec.TYPE_DEFAULT: "default",
    bitmap_codec.TYPE_THEMED: "themed",
    bitmap_codec.TYPE_MONO: "mono",
}


@router.post("/decode", response_model=DecodeResponse)
def decode_icon(req: DecodeRequest):
    try:
        try:
            raw = base64.b64decode(req.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidIconRequestError("data is not valid base64") from exc
        color = _rgb(req.color) if req.color else None
        info = bitmap_codec.decode(raw, color=color)
        if info is None:
            raise MalformedPersistedDataError("unrecognized or corrupt icon data")
        return DecodeResponse(kind=_KIND_NAMES.get(raw[0], "unknown"), icon=_to_response(info))
    except ServiceError as exc:
        _raise_service_error(exc)
