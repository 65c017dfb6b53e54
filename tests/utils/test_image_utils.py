from io import BytesIO
from types import SimpleNamespace

import requests
from PIL import Image

from kirby.util import image_utils
from kirby.util.image_utils import circular_crop, download_image_to_pil


def _png_bytes(color=(255, 0, 0)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (32, 32), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _fake_get(content: bytes, *, status_error=None):
    def fake_get(url, timeout):
        def raise_for_status():
            if status_error is not None:
                raise status_error
        return SimpleNamespace(content=content, raise_for_status=raise_for_status)
    return fake_get


def test_download_image_to_pil_returns_rgba(monkeypatch):
    monkeypatch.setattr(image_utils.requests, "get", _fake_get(_png_bytes()))

    img = download_image_to_pil("https://cdn.example/a.png")

    assert isinstance(img, Image.Image)
    assert img.mode == "RGBA"
    assert img.size == (32, 32)


def test_download_image_to_pil_empty_url():
    assert download_image_to_pil("") is None


def test_download_image_to_pil_request_failure(monkeypatch):
    def boom(url, timeout):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(image_utils.requests, "get", boom)
    assert download_image_to_pil("https://cdn.example/a.png") is None


def test_download_image_to_pil_http_error(monkeypatch):
    monkeypatch.setattr(
        image_utils.requests, "get", _fake_get(b"", status_error=requests.HTTPError("404"))
    )
    assert download_image_to_pil("https://cdn.example/a.png") is None


def test_download_image_to_pil_undecodable(monkeypatch):
    monkeypatch.setattr(image_utils.requests, "get", _fake_get(b"<html>nope</html>"))
    assert download_image_to_pil("https://cdn.example/a.png") is None


def test_download_image_to_pil_too_large(monkeypatch):
    monkeypatch.setattr(image_utils, "_MAX_BYTES", 10)
    monkeypatch.setattr(image_utils.requests, "get", _fake_get(_png_bytes()))
    assert download_image_to_pil("https://cdn.example/a.png") is None


def test_circular_crop_masks_corners():
    source = Image.new("RGB", (50, 80), (0, 255, 0))

    cropped = circular_crop(source, 40)

    assert cropped.size == (40, 40)
    assert cropped.mode == "RGBA"
    assert cropped.getpixel((0, 0))[3] == 0
    red, green, blue, alpha = cropped.getpixel((20, 20))
    assert green >= 250 and red <= 5 and alpha == 255
    assert source.size == (50, 80)
