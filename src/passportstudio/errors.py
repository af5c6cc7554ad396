"""Exception taxonomy for the passport photo pipeline.

Only ``DecodeError`` and ``NoFaceDetectedError`` are expected to reach callers of
``PassportPhotoPipeline.generate``, plus ``PoolBusyError`` when the worker pool is
saturated. ``EnhancementUnavailable`` is always recovered inside the enhancement
gateway, and ``DimensionMismatchError`` signals a bug in mask production.
"""

from __future__ import annotations


class PassportStudioError(Exception):
    """Base class for all PassportStudio errors."""


class DecodeError(PassportStudioError):
    """The source image could not be read or decoded."""


class NoFaceDetectedError(PassportStudioError):
    """No face was found in the (possibly enhanced) image."""

    def __init__(self, message: str = "No face detected") -> None:
        super().__init__(message)


class DimensionMismatchError(PassportStudioError):
    """A segmentation mask does not match the dimensions of its image."""


class EnhancementUnavailable(PassportStudioError):
    """The optional enhancement step failed; the caller falls back to the original image."""


class PoolBusyError(PassportStudioError, TimeoutError):
    """No worker slot freed up within the queue timeout."""
