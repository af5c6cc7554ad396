"""Enhancement gateway contract.

An enhancement replaces the source photo with a professionalized version from an
external image-generation service. It is strictly best-effort: gateways never
raise, they return ``EnhancementFailure`` and the pipeline keeps the original.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Union

from passportstudio.imaging.raster import WHITE, Color

if TYPE_CHECKING:
    from passportstudio.imaging.raster import RasterImage


@dataclass(frozen=True)
class EnhancementRequest:
    prompt: str
    width: int
    height: int
    negative_prompt: str = ""
    background_color: Color = WHITE


@dataclass(frozen=True)
class EnhancementSuccess:
    image: RasterImage


@dataclass(frozen=True)
class EnhancementFailure:
    reason: str


EnhancementResult = Union[EnhancementSuccess, EnhancementFailure]


class EnhancementGateway(Protocol):
    """Protocol for external enhancement services."""

    @property
    def enabled(self) -> bool:
        """Whether a real upstream is configured."""
        ...

    async def enhance(self, image: RasterImage, request: EnhancementRequest) -> EnhancementResult:
        """Return an enhanced replacement for ``image`` or a failure.

        Upstream problems (network, timeout, rejected or malformed responses) are
        reported as ``EnhancementFailure``, never raised.
        """
        ...


class DisabledEnhancementGateway:
    """Gateway used when no enhancement endpoint is configured."""

    enabled = False

    async def enhance(self, image: RasterImage, request: EnhancementRequest) -> EnhancementResult:
        return EnhancementFailure(reason="Enhancement gateway is not configured")
