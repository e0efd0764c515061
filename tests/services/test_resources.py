import struct
import sys
import zlib
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.services.exceptions import ResourceUnavailableError  # noqa: E402
from iconrender.services.resources import (  # noqa: E402
    DirectoryResourceResolver,
    MappingResourceResolver,
    ResourceResolver,
    decode_image_bytes,
)


def _png(color=(255, 0, 0, 255), size=16) -> bytes:
    buf = BytesIO()
    Image.new("RGBA", (size, size), color).save(buf, format="PNG")
    return buf.getvalue()


def test_decode_image_bytes():
    image = decode_image_bytes(_png())
    assert image.mode == "RGBA"
    assert image.size == (16, 16)
    with pytest.raises(ResourceUnavailableError):
        decode_image_bytes(b"")
    with pytest.raises(ResourceUnavailableError):
        decode_image_bytes(b"definitely not an image")


def test_decode_image_bytes_rejects_oversized_header():
    def chunk(tag: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)

    ihdr = struct.pack(">IIBBBBB", 20000, 20000, 8, 6, 0, 0, 0)
    huge = b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", zlib.compress(b"")) + chunk(b"IEND", b"")
    with pytest.raises(ResourceUnavailableError):
        decode_image_bytes(huge)


def test_directory_resolver_prefers_density_folder(tmp_path: Path):
    pkg = tmp_path / "com.example"
    (pkg / "xxhdpi").mkdir(parents=True)
    (pkg / "ic_launcher.png").write_bytes(_png((255, 0, 0, 255)))
    (pkg / "xxhdpi" / "ic_launcher.png").write_bytes(_png((0, 0, 255, 255)))
    resolver = DirectoryResourceResolver(tmp_path)
    assert isinstance(resolver, ResourceResolver)
    assert resolver.load("com.example", "ic_launcher").getpixel((0, 0)) == (255, 0, 0, 255)
    assert resolver.load("com.example", "ic_launcher", "xxhdpi").getpixel((0, 0)) == (0, 0, 255, 255)
    assert resolver.load("com.example", "ic_launcher", "mdpi").getpixel((0, 0)) == (255, 0, 0, 255)


def test_directory_resolver_missing_and_corrupt(tmp_path: Path):
    pkg = tmp_path / "com.example"
    pkg.mkdir()
    (pkg / "broken.png").write_bytes(b"\x89PNG garbage")
    resolver = DirectoryResourceResolver(tmp_path)
    assert resolver.load("com.example", "absent") is None
    assert resolver.load("", "absent") is None
    with pytest.raises(ResourceUnavailableError):
        resolver.load("com.example", "broken")
    with pytest.raises(ResourceUnavailableError):
        resolver.load("..", "secret")


def test_mapping_resolver():
    image = Image.new("RGBA", (8, 8), (0, 0, 0, 255))
    resolver = MappingResourceResolver()
    resolver.register("pkg", "res", image)
    assert resolver.load("pkg", "res") is image
    assert resolver.load("pkg", "other") is None
