import base64
import struct
import sys
import zlib
from io import BytesIO
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iconrender.api.icon_routes import get_render_config  # noqa: E402
from iconrender.services.render_config import RenderConfig  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture()
def client():
    app.dependency_overrides[get_render_config] = lambda: RenderConfig()
    yield TestClient(app)
    app.dependency_overrides.pop(get_render_config, None)


def _png(color=(255, 0, 0, 255), size=256) -> bytes:
    buf = BytesIO()
    Image.new("RGBA", (size, size), color).save(buf, format="PNG")
    return buf.getvalue()


def _decode_png(b64: str) -> Image.Image:
    return Image.open(BytesIO(base64.b64decode(b64)))


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_render_upload(client):
    resp = client.post(
        "/icons/render",
        data={"size": "96"},
        files={"file": ("red.png", _png(), "image/png")},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["size"] == 96
    assert body["color"] == "#FF0000"
    assert body["normalizationScale"] == pytest.approx(0.92)
    assert body["monoPng"] is None
    assert _decode_png(body["iconPng"]).size == (96, 96)
    assert base64.b64decode(body["persisted"])[0] == 0x01


def test_render_with_badge_and_mono(client):
    resp = client.post(
        "/icons/render",
        data={"size": "96", "badge": "work", "mono": "true"},
        files={"file": ("red.png", _png(), "image/png")},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["flags"] & 1
    assert body["badgePng"] is not None
    assert body["monoPng"] is not None
    assert body["luminanceDelta"] < 0


def test_render_rejects_bad_input(client):
    resp = client.post("/icons/render", data={"size": "96"}, files={"file": ("x.png", b"nope", "image/png")})
    assert resp.status_code == 400

    resp = client.post(
        "/icons/render",
        data={"size": "96", "shape": "hexagon"},
        files={"file": ("red.png", _png(), "image/png")},
    )
    assert resp.status_code == 400

    resp = client.post(
        "/icons/render",
        data={"size": "96", "badge": "sparkle"},
        files={"file": ("red.png", _png(), "image/png")},
    )
    assert resp.status_code == 400

    resp = client.post(
        "/icons/render",
        data={"size": "5000"},
        files={"file": ("red.png", _png(), "image/png")},
    )
    assert resp.status_code == 400


def test_placeholder(client):
    resp = client.post("/icons/placeholder", json={"text": "AB", "color": "#3F51B5", "size": 64})
    assert resp.status_code == 200
    body = resp.json()
    assert body["size"] == 64
    assert body["color"] == "#3F51B5"
    assert _decode_png(body["iconPng"]).size == (64, 64)

    resp = client.post("/icons/placeholder", json={"text": "AB", "size": 4})
    assert resp.status_code == 422
    resp = client.post("/icons/placeholder", json={"text": "AB", "color": "blue-ish", "size": 64})
    assert resp.status_code == 400


def test_decode_round_trip(client):
    rendered = client.post(
        "/icons/render",
        data={"size": "64"},
        files={"file": ("red.png", _png(), "image/png")},
    ).json()
    resp = client.post("/icons/decode", json={"data": rendered["persisted"]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["kind"] == "default"
    assert body["icon"]["color"] == rendered["color"]
    assert body["icon"]["iconPng"] == rendered["iconPng"]

    resp = client.post("/icons/decode", json={"data": rendered["persisted"], "color": "#010203"})
    assert resp.json()["icon"]["color"] == "#010203"


def test_decode_rejects_garbage(client):
    unknown = base64.b64encode(b"\x7f" + b"\x00" * 16).decode("ascii")
    assert client.post("/icons/decode", json={"data": unknown}).status_code == 422
    assert client.post("/icons/decode", json={"data": "!!not base64!!"}).status_code == 400


def test_render_rejects_oversized_image_header(client):
    def chunk(tag: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)

    ihdr = struct.pack(">IIBBBBB", 20000, 20000, 8, 6, 0, 0, 0)
    huge = b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", zlib.compress(b"")) + chunk(b"IEND", b"")
    resp = client.post("/icons/render", data={"size": "96"}, files={"file": ("huge.png", huge, "image/png")})
    assert resp.status_code == 400

    persisted = base64.b64encode(b"\x01" + huge).decode("ascii")
    assert client.post("/icons/decode", json={"data": persisted}).status_code == 422
