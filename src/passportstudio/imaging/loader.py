"""Image loading: bytes, files, data URIs and remote URLs into RasterImage."""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Union

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from passportstudio.errors import DecodeError
from passportstudio.imaging.raster import RasterImage

if TYPE_CHECKING:
    from passportstudio.config import Settings

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path]

_DATA_URI_RE = re.compile(r"^data:image/[\w.+-]+;base64,(?P<payload>.+)$", re.DOTALL)


def decode_image(data: bytes, max_pixels: int | None = None) -> RasterImage:
    """Decode encoded image bytes into an RGBA RasterImage.

    EXIF orientation is applied so the raster matches what a viewer displays.

    Raises:
        DecodeError: If the data is empty, corrupt, unsupported or too large.
    """
    if not data:
        raise DecodeError("Empty image data")
    try:
        with Image.open(io.BytesIO(data)) as img:
            if max_pixels is not None and img.width * img.height > max_pixels:
                raise DecodeError(f"Image too large: {img.width}x{img.height} exceeds {max_pixels} pixels")
            oriented = ImageOps.exif_transpose(img)
            rgba = oriented.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc
    return RasterImage.from_pil(rgba)


def decode_data_uri(uri: str) -> bytes:
    """Extract the binary payload of a ``data:image/...;base64,`` URI."""
    match = _DATA_URI_RE.match(uri.strip())
    if match is None:
        raise DecodeError("Not a base64 image data URI")
    try:
        return base64.b64decode(match.group("payload"), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Invalid base64 payload in data URI: {exc}") from exc


class ImageLoader:
    """Loads any supported image source into a RasterImage.

    Remote sources are fetched with httpx; an injected client is reused (and
    left open), otherwise a short-lived client is created per call.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._max_pixels = settings.max_image_pixels
        self._fetch_timeout = settings.fetch_timeout
        self._client = client

    async def load(self, source: ImageSource) -> RasterImage:
        data = await self._read(source)
        return decode_image(data, self._max_pixels)

    async def _read(self, source: ImageSource) -> bytes:
        if isinstance(source, (bytes, bytearray, memoryview)):
            return bytes(source)
        if isinstance(source, str):
            if source.startswith(("http://", "https://")):
                return await self._fetch(source)
            if source.startswith("data:"):
                return decode_data_uri(source)
        return await self._read_file(Path(source))

    @staticmethod
    async def _read_file(path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise DecodeError(f"Could not read image file {path}: {exc}") from exc

    async def _fetch(self, url: str) -> bytes:
        logger.debug("Fetching remote image %s", url)
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self._fetch_timeout, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=self._fetch_timeout, follow_redirects=True) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DecodeError(f"Could not fetch image from {url}: {exc}") from exc
        return response.content
