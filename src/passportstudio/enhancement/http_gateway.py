"""HTTP enhancement gateway.

Request body (JSON)::

    {"init_images": [<base64 png>], "mask": <base64 png>, "prompt": ..., "negative_prompt": ...,
     "width": ..., "height": ...}

The upstream's response shape is not stable, so this module accepts a raw
``image/*`` body or JSON carrying the image in one of these forms, tried in order:

* a base64 string or data URI under one of the usual keys (``images``, ``outputs``, ...);
* a data URI or long base64 string under any other key;
* a JSON array of byte values, e.g. a serialized Node ``Buffer``.

None of this leaks past ``HttpEnhancementGateway.enhance``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from typing import TYPE_CHECKING, Any

import httpx

from passportstudio.enhancement.gateway import (
    EnhancementFailure,
    EnhancementRequest,
    EnhancementResult,
    EnhancementSuccess,
)
from passportstudio.errors import DimensionMismatchError, EnhancementUnavailable
from passportstudio.imaging.compositor import composite, full_mask_image, mask_image
from passportstudio.imaging.loader import decode_image
from passportstudio.imaging.renderer import encode_png

if TYPE_CHECKING:
    from passportstudio.config import Settings
    from passportstudio.imaging.raster import RasterImage
    from passportstudio.ml.inference import InferencePool
    from passportstudio.ml.segmenter import PersonSegmenter

logger = logging.getLogger(__name__)

_IMAGE_KEYS = ("images", "outputs", "output", "data", "image")
_DATA_URI_RE = re.compile(r"data:image/[\w.+-]+;base64,(?P<payload>[A-Za-z0-9+/=_\-\s]+)")
_BASE64_RUN_RE = re.compile(r"[A-Za-z0-9+/=_\-\s]{64,}")
_MIN_BYTE_ARRAY_LEN = 50


def _find_image_string(body: Any, *, any_key: bool = False) -> str | None:
    """Depth-first search for an encoded image.

    With ``any_key`` every dict value is searched, but only strings that look like
    a data URI or a long base64 run count as a match.
    """
    if isinstance(body, str):
        if not body:
            return None
        if any_key and not (_DATA_URI_RE.search(body) or _BASE64_RUN_RE.fullmatch(body)):
            return None
        return body
    if isinstance(body, list):
        for item in body:
            found = _find_image_string(item, any_key=any_key)
            if found:
                return found
        return None
    if isinstance(body, dict):
        keys = list(body) if any_key else [key for key in _IMAGE_KEYS if key in body]
        for key in keys:
            found = _find_image_string(body[key], any_key=any_key)
            if found:
                return found
    return None


def _is_byte_value(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 255


def _find_byte_array(body: Any) -> bytes | None:
    if isinstance(body, list):
        if len(body) > _MIN_BYTE_ARRAY_LEN and all(_is_byte_value(v) for v in body):
            return bytes(body)
        values = body
    elif isinstance(body, dict):
        values = list(body.values())
    else:
        return None
    for value in values:
        found = _find_byte_array(value)
        if found is not None:
            return found
    return None


def decode_base64_image(text: str) -> bytes:
    """Decode a data URI or raw (possibly url-safe, unpadded) base64 string."""
    match = _DATA_URI_RE.search(text)
    payload = match.group("payload") if match else text
    cleaned = re.sub(r"\s+", "", payload).replace("-", "+").replace("_", "/")
    if len(cleaned) % 4 == 1:
        raise EnhancementUnavailable("Invalid base64 length in enhancement response")
    cleaned += "=" * (-len(cleaned) % 4)
    return base64.b64decode(cleaned, validate=True)


def extract_image_bytes(response: httpx.Response) -> bytes:
    """Pull the encoded image out of an upstream response.

    Raises:
        EnhancementUnavailable: If no image can be located in the response.
        ValueError: If the body is not valid JSON or base64.
    """
    content_type = response.headers.get("content-type", "")
    if content_type.startswith("image/"):
        return response.content
    body = response.json()
    found = _find_image_string(body) or _find_image_string(body, any_key=True)
    if found is not None:
        return decode_base64_image(found)
    binary = _find_byte_array(body)
    if binary is None:
        raise EnhancementUnavailable("No image returned by the enhancement service")
    return binary


class HttpEnhancementGateway:
    """Posts the photo and a foreground mask to an external image-generation endpoint."""

    enabled = True

    def __init__(
        self,
        settings: Settings,
        segmenter: PersonSegmenter,
        pool: InferencePool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.enhancement_url:
            raise ValueError("HttpEnhancementGateway requires PASSPORTSTUDIO_ENHANCEMENT_URL")
        self._url = settings.enhancement_url
        self._api_key = settings.enhancement_api_key
        self._timeout = settings.enhancement_timeout
        self._max_pixels = settings.max_image_pixels
        self._segmenter = segmenter
        self._pool = pool
        self._transport = transport

    async def enhance(self, image: RasterImage, request: EnhancementRequest) -> EnhancementResult:
        try:
            enhanced = await asyncio.wait_for(self._enhance(image, request), timeout=self._timeout)
        except TimeoutError:
            logger.warning("Enhancement timed out after %.0fs, using the original image", self._timeout)
            return EnhancementFailure(reason=f"Timed out after {self._timeout:.0f}s")
        except DimensionMismatchError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Enhancement failed, using the original image: %s", exc)
            return EnhancementFailure(reason=str(exc) or type(exc).__name__)
        logger.info("Enhancement succeeded (%dx%d)", enhanced.width, enhanced.height)
        return EnhancementSuccess(image=enhanced)

    async def _enhance(self, image: RasterImage, request: EnhancementRequest) -> RasterImage:
        payload = await self._run(self._build_payload, image, request)
        headers = {"Accept": "application/json, image/*"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()

        data = extract_image_bytes(response)
        return await self._run(decode_image, data, self._max_pixels)

    async def _run(self, func: Any, *args: object) -> Any:
        if self._pool is None:
            return func(*args)
        return await self._pool.run(func, *args)

    def _build_payload(self, image: RasterImage, request: EnhancementRequest) -> dict[str, Any]:
        init, mask = self._prepare_images(image, request)
        return {
            "init_images": [base64.b64encode(encode_png(init)).decode("ascii")],
            "mask": base64.b64encode(encode_png(mask)).decode("ascii"),
            "prompt": request.prompt,
            "negative_prompt": request.negative_prompt,
            "width": request.width,
            "height": request.height,
        }

    def _prepare_images(self, image: RasterImage, request: EnhancementRequest) -> tuple[RasterImage, RasterImage]:
        if self._segmenter.available:
            try:
                segmentation = self._segmenter.segment(image)
                return composite(image, request.background_color, segmentation), mask_image(segmentation)
            except DimensionMismatchError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning("Segmentation for enhancement payload failed, sending the full image: %s", exc)
        return composite(image, request.background_color), full_mask_image(image.width, image.height)
