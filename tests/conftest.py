"""Shared fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from helpers import make_settings
from passportstudio.ml.inference import InferencePool

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def pool() -> Iterator[InferencePool]:
    inference_pool = InferencePool(make_settings())
    yield inference_pool
    inference_pool.shutdown()
