from __future__ import annotations

"""
Bitmap Codec
------------
BitmapInfo 的持久化编码，供图标缓存使用。首字节为类型标记，解码只按该标记分派：

- 0x01 默认：        [tag][PNG 图标]
- 0x02 主题化：      [tag][>f 归一化缩放][>H 长度 + UTF-8 包名][>H 长度 + UTF-8 资源名][PNG 图标]
- 0x03 单色层：      [tag][PNG 单色 alpha]

未知标记、截断或损坏的数据一律解码为 None（视为缓存未命中，由调用方重新生成）。
低分辨率占位图不允许编码。
"""

import struct
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from iconrender.services.color_extractor import find_dominant_color_by_hue
from iconrender.services.exceptions import MalformedPersistedDataError
from iconrender.services.icon_models import BitmapInfo, ThemeOverlay
from iconrender.services.render_config import RGB

TYPE_DEFAULT = 0x01
TYPE_THEMED = 0x02
TYPE_MONO = 0x03

_SCALE = struct.Struct(">f")
_LENGTH = struct.Struct(">H")
_MAX_STRING = 0xFFFF


def _png_bytes(image: Image.Image) -> bytes:
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def _read_png(data: bytes) -> Image.Image:
    if not data:
        raise MalformedPersistedDataError("missing PNG payload")
    try:
        with Image.open(BytesIO(data)) as img:
            if img.format != "PNG":
                raise MalformedPersistedDataError(f"unexpected image format: {img.format}")
            img.load()
            return img.copy()
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise MalformedPersistedDataError(f"corrupt PNG payload: {exc}") from exc


def _pack_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > _MAX_STRING:
        raise ValueError("string too long to persist")
    return _LENGTH.pack(len(raw)) + raw


def _unpack_string(data: bytes, pos: int) -> Tuple[str, int]:
    try:
        (length,) = _LENGTH.unpack_from(data, pos)
    except struct.error as exc:
        raise MalformedPersistedDataError("truncated string length") from exc
    start = pos + _LENGTH.size
    end = start + length
    if end > len(data):
        raise MalformedPersistedDataError("truncated string payload")
    try:
        return data[start:end].decode("utf-8"), end
    except UnicodeDecodeError as exc:
        raise MalformedPersistedDataError("invalid UTF-8 string") from exc


def encode(info: Optional[BitmapInfo]) -> Optional[bytes]:
    """默认格式；None 与低分辨率占位图返回 None。"""
    if info is None or not info.can_persist():
        return None
    return bytes([TYPE_DEFAULT]) + _png_bytes(info.icon)


def encode_themed(info: Optional[BitmapInfo]) -> Optional[bytes]:
    if info is None or not info.can_persist() or info.theme_overlay is None:
        return None
    overlay = info.theme_overlay
    header = (
        bytes([TYPE_THEMED])
        + _SCALE.pack(info.normalization_scale)
        + _pack_string(overlay.package_name)
        + _pack_string(overlay.resource_name)
    )
    return header + _png_bytes(info.icon)


def encode_mono(info: Optional[BitmapInfo]) -> Optional[bytes]:
    if info is None or not info.can_persist() or info.mono is None:
        return None
    return bytes([TYPE_MONO]) + _png_bytes(info.mono.convert("L"))


def _color_for(icon: Image.Image, color: Optional[RGB]) -> RGB:
    return tuple(color) if color is not None else find_dominant_color_by_hue(icon)


def _decode_default(data: bytes, color: Optional[RGB]) -> BitmapInfo:
    icon = _read_png(data[1:])
    return BitmapInfo(icon=icon, color=_color_for(icon, color))


def _decode_themed(data: bytes, color: Optional[RGB]) -> BitmapInfo:
    try:
        (scale,) = _SCALE.unpack_from(data, 1)
    except struct.error as exc:
        raise MalformedPersistedDataError("truncated themed header") from exc
    package_name, pos = _unpack_string(data, 1 + _SCALE.size)
    resource_name, pos = _unpack_string(data, pos)
    icon = _read_png(data[pos:])
    return BitmapInfo(
        icon=icon,
        color=_color_for(icon, color),
        theme_overlay=ThemeOverlay(package_name, resource_name),
        normalization_scale=scale,
    )


def _decode_mono(data: bytes, color: Optional[RGB]) -> BitmapInfo:
    mono = _read_png(data[1:]).convert("L")
    silhouette = Image.new("RGBA", mono.size, (255, 255, 255, 0))
    silhouette.putalpha(mono)
    return BitmapInfo(icon=silhouette, color=tuple(color) if color is not None else (0, 0, 0), mono=mono)


_DECODERS = {
    TYPE_DEFAULT: _decode_default,
    TYPE_THEMED: _decode_themed,
    TYPE_MONO: _decode_mono,
}


def decode(data: Optional[bytes], color: Optional[RGB] = None) -> Optional[BitmapInfo]:
    """按首字节分派解码；未知/截断/损坏的数据返回 None。color 未给出时从图标重新取主色。"""
    if not data:
        return None
    payload = bytes(data)
    decoder = _DECODERS.get(payload[0])
    if decoder is None:
        print(f"[bitmap-codec] 未知类型标记 0x{payload[0]:02x}，跳过")
        return None
    try:
        return decoder(payload, color)
    except MalformedPersistedDataError as exc:
        print(f"[bitmap-codec] 解码失败: {exc}")
        return None


__all__ = [
    "TYPE_DEFAULT",
    "TYPE_MONO",
    "TYPE_THEMED",
    "decode",
    "encode",
    "encode_mono",
    "encode_themed",
]
