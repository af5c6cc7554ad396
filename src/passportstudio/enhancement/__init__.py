"""Optional, best-effort photo enhancement through an external service."""

from __future__ import annotations

from typing import TYPE_CHECKING

from passportstudio.enhancement.gateway import DisabledEnhancementGateway, EnhancementGateway
from passportstudio.enhancement.http_gateway import HttpEnhancementGateway

if TYPE_CHECKING:
    from passportstudio.config import Settings
    from passportstudio.ml.inference import InferencePool
    from passportstudio.ml.segmenter import PersonSegmenter


def create_gateway(
    settings: Settings,
    segmenter: PersonSegmenter,
    pool: InferencePool | None = None,
) -> EnhancementGateway:
    """Return the HTTP gateway when an endpoint is configured, else the disabled one."""
    if settings.enhancement_url:
        return HttpEnhancementGateway(settings, segmenter, pool)
    return DisabledEnhancementGateway()
