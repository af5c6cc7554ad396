"""Tests for image loading from bytes, files, data URIs and URLs."""

from __future__ import annotations

import base64
import io
from typing import TYPE_CHECKING

import httpx
import pytest
from PIL import Image

from helpers import encode, make_settings, portrait_png, solid_png
from passportstudio.errors import DecodeError
from passportstudio.imaging.loader import ImageLoader, decode_data_uri, decode_image

if TYPE_CHECKING:
    from pathlib import Path


def _client(handler: httpx.MockTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=handler)


class TestDecodeImage:
    def test_png_to_rgba(self) -> None:
        image = decode_image(solid_png(30, 20, (1, 2, 3)))
        assert image.size == (30, 20)
        assert tuple(image.pixels[0, 0]) == (1, 2, 3, 255)

    def test_jpeg_decodes(self) -> None:
        image = decode_image(encode(Image.new("RGB", (16, 8), (250, 250, 250)), "JPEG"))
        assert image.size == (16, 8)
        assert image.is_opaque()

    def test_exif_orientation_applied(self) -> None:
        img = Image.new("RGB", (40, 20), (255, 0, 0))
        exif = img.getexif()
        exif[0x0112] = 6
        buffer_data = _save_jpeg_with_exif(img, exif)

        image = decode_image(buffer_data)

        assert image.size == (20, 40)

    def test_transparency_preserved(self) -> None:
        image = decode_image(solid_png(4, 4, alpha=0))
        assert not image.is_opaque()

    @pytest.mark.parametrize("data", [b"", b"not an image", b"\x89PNG\r\n\x1a\n" + b"\x00" * 10])
    def test_corrupt_data_raises(self, data: bytes) -> None:
        with pytest.raises(DecodeError):
            decode_image(data)

    def test_pixel_limit(self) -> None:
        with pytest.raises(DecodeError, match="too large"):
            decode_image(solid_png(100, 100), max_pixels=9_999)


def _save_jpeg_with_exif(img: Image.Image, exif: Image.Exif) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", exif=exif)
    return buffer.getvalue()


class TestDecodeDataUri:
    def test_extracts_payload(self) -> None:
        png = solid_png(2, 2)
        uri = "data:image/png;base64," + base64.b64encode(png).decode()
        assert decode_data_uri(uri) == png

    def test_rejects_non_image_uri(self) -> None:
        with pytest.raises(DecodeError):
            decode_data_uri("data:text/plain;base64,aGVsbG8=")


class TestImageLoader:
    async def test_load_bytes(self) -> None:
        image = await ImageLoader(make_settings()).load(portrait_png(80, 100))
        assert image.size == (80, 100)

    async def test_load_path_and_str(self, tmp_path: Path) -> None:
        path = tmp_path / "photo.png"
        path.write_bytes(solid_png(12, 9))
        loader = ImageLoader(make_settings())

        assert (await loader.load(path)).size == (12, 9)
        assert (await loader.load(str(path))).size == (12, 9)

    async def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(DecodeError, match="Could not read"):
            await ImageLoader(make_settings()).load(tmp_path / "missing.jpg")

    async def test_load_data_uri(self) -> None:
        uri = "data:image/png;base64," + base64.b64encode(solid_png(5, 6)).decode()
        image = await ImageLoader(make_settings()).load(uri)
        assert image.size == (5, 6)

    async def test_load_url(self) -> None:
        png = solid_png(33, 44)
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=png, headers={"content-type": "image/png"})

        async with _client(httpx.MockTransport(handler)) as client:
            image = await ImageLoader(make_settings(), client=client).load("https://example.com/me.png")

        assert image.size == (33, 44)
        assert seen == ["https://example.com/me.png"]

    async def test_load_url_follows_redirects(self) -> None:
        png = solid_png(21, 23)
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            if request.url.path == "/share/me":
                return httpx.Response(302, headers={"location": "https://cdn.example.com/me.png"})
            return httpx.Response(200, content=png, headers={"content-type": "image/png"})

        async with _client(httpx.MockTransport(handler)) as client:
            image = await ImageLoader(make_settings(), client=client).load("https://example.com/share/me")

        assert image.size == (21, 23)
        assert seen == ["/share/me", "/me.png"]

    async def test_url_http_error_raises(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        async with _client(transport) as client:
            loader = ImageLoader(make_settings(), client=client)
            with pytest.raises(DecodeError, match="Could not fetch"):
                await loader.load("http://example.com/missing.png")

    async def test_url_connection_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(httpx.MockTransport(handler)) as client:
            with pytest.raises(DecodeError):
                await ImageLoader(make_settings(), client=client).load("http://example.com/a.png")

    async def test_pixel_limit_from_settings(self) -> None:
        loader = ImageLoader(make_settings(max_image_pixels=100))
        with pytest.raises(DecodeError, match="too large"):
            await loader.load(solid_png(20, 20))
