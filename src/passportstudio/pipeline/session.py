"""Per-user generation session that never commits a superseded result."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from passportstudio.imaging.loader import ImageSource
    from passportstudio.models import OutputSpec, PipelineResult
    from passportstudio.pipeline.orchestrator import PassportPhotoPipeline

logger = logging.getLogger(__name__)


class PhotoSession:
    """
    Tracks the active generation request of one user.

    Starting a new request or clearing the session supersedes whatever is in
    flight. The superseded call still runs to completion (network calls are not
    interrupted), but its result or error is dropped instead of being committed.
    """

    def __init__(self, pipeline: PassportPhotoPipeline) -> None:
        self._pipeline = pipeline
        self._active_token = 0
        self.result: PipelineResult | None = None

    @property
    def active_token(self) -> int:
        return self._active_token

    def is_active(self, token: int) -> bool:
        return token == self._active_token

    async def generate(
        self,
        source: ImageSource,
        output: OutputSpec | None = None,
        *,
        enhance: bool = False,
        prompt: str | None = None,
    ) -> PipelineResult | None:
        """Run the pipeline and commit its result if this is still the active request.

        Returns:
            The committed result, or None if the request was superseded.
        """
        self._active_token += 1
        token = self._active_token
        self.result = None

        try:
            result = await self._pipeline.generate(source, output, enhance=enhance, prompt=prompt)
        except Exception:
            if not self.is_active(token):
                logger.info("Dropping failure of superseded request %d", token)
                return None
            raise

        if not self.is_active(token):
            logger.info("Discarding stale result of request %d (active is %d)", token, self._active_token)
            return None
        self.result = result
        return result

    def clear(self) -> None:
        """Forget the current result and supersede any in-flight request."""
        self._active_token += 1
        self.result = None
