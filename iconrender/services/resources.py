from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple, Union, runtime_checkable

from PIL import Image, UnidentifiedImageError

from iconrender.services.exceptions import ResourceUnavailableError
from iconrender.services.icon_models import AdaptiveSource, FlatSource

LoadedResource = Union[Image.Image, FlatSource, AdaptiveSource]

SUPPORTED_SUFFIXES: Tuple[str, ...] = (".png", ".webp", ".jpg", ".jpeg")


def decode_image_bytes(data: bytes) -> Image.Image:
    """解码图片字节；任何解码失败都转换为 ResourceUnavailableError。"""
    if not data:
        raise ResourceUnavailableError("empty image payload")
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ResourceUnavailableError(f"cannot decode image: {exc}") from exc


def decode_image_file(path: Path) -> Image.Image:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ResourceUnavailableError(f"cannot read {path}: {exc}") from exc
    return decode_image_bytes(data)


@runtime_checkable
class ResourceResolver(Protocol):
    """包资源解析接口：(包名, 资源名, 密度) -> 图片/图标描述，不存在时返回 None。"""

    def load(self, package_name: str, resource_name: str, density: Optional[str] = None) -> Optional[LoadedResource]:
        ...


class DirectoryResourceResolver:
    """从目录读取资源：<root>/<package>/[<density>/]<resource>.png"""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def _candidates(self, package_name: str, resource_name: str, density: Optional[str]):
        base = self.root / package_name
        folders = [base / density, base] if density else [base]
        for folder in folders:
            for suffix in SUPPORTED_SUFFIXES:
                yield folder / f"{resource_name}{suffix}"

    def load(self, package_name: str, resource_name: str, density: Optional[str] = None) -> Optional[LoadedResource]:
        if not package_name or not resource_name:
            return None
        if any(part in {"..", ""} for part in Path(package_name).parts + Path(resource_name).parts):
            raise ResourceUnavailableError("invalid resource path")
        for candidate in self._candidates(package_name, resource_name, density):
            if candidate.is_file():
                return decode_image_file(candidate)
        return None


class MappingResourceResolver:
    """内存中的资源表，主要用于测试与预置主题资源。"""

    def __init__(self, resources: Optional[Dict[Tuple[str, str], LoadedResource]] = None) -> None:
        self._resources: Dict[Tuple[str, str], LoadedResource] = dict(resources or {})

    def register(self, package_name: str, resource_name: str, resource: LoadedResource) -> None:
        self._resources[(package_name, resource_name)] = resource

    def load(self, package_name: str, resource_name: str, density: Optional[str] = None) -> Optional[LoadedResource]:
        return self._resources.get((package_name, resource_name))


__all__ = [
    "DirectoryResourceResolver",
    "LoadedResource",
    "MappingResourceResolver",
    "ResourceResolver",
    "SUPPORTED_SUFFIXES",
    "decode_image_bytes",
    "decode_image_file",
]
