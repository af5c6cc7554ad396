"""Model files and ONNX Runtime sessions.

YuNet is handed to OpenCV as a plain file path; U²-Net runs inside an ONNX
Runtime session. Files are fetched from the Hugging Face Hub into
``models_dir`` unless a copy is already there, so a pre-populated directory
works offline. Sessions are cached and dropped after ``model_ttl`` seconds
without use.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import ExecutionMode, GraphOptimizationLevel, InferenceSession, SessionOptions

if TYPE_CHECKING:
    from passportstudio.config import Settings

logger = logging.getLogger(__name__)

Provider = str | tuple[str, dict[str, object]]


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return the local path of a model file, fetching it first if needed."""
        ...

    def get_session(self, model_name: str) -> InferenceSession:
        """Return the ONNX Runtime session for a model, loading it on first use."""
        ...

    def get_loaded_models(self) -> list[str]:
        ...

    def unload_idle_models(self) -> None:
        ...

    def shutdown(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ModelTask(StrEnum):
    FACE_DETECTION = "face_detection"
    PERSON_SEGMENTATION = "person_segmentation"


@dataclass(frozen=True)
class ModelSpec:
    """Where a model file lives on the Hub and what it is used for."""

    name: str
    repo_id: str
    filename: str
    task: ModelTask
    license: str
    subfolder: str | None = None

    @property
    def relative_path(self) -> Path:
        """Location of the file below ``models_dir`` after download."""
        return Path(self.subfolder, self.filename) if self.subfolder else Path(self.filename)


MODEL_REGISTRY: dict[str, ModelSpec] = {
    spec.name: spec
    for spec in (
        ModelSpec(
            name="yunet_2023mar",
            repo_id="opencv/face_detection_yunet",
            filename="face_detection_yunet_2023mar.onnx",
            task=ModelTask.FACE_DETECTION,
            license="MIT",
        ),
        ModelSpec(
            name="u2net_human_seg",
            repo_id="tomjackson2023/rembg",
            filename="u2net_human_seg.onnx",
            task=ModelTask.PERSON_SEGMENTATION,
            license="Apache-2.0",
        ),
        ModelSpec(
            name="u2netp",
            repo_id="tomjackson2023/rembg",
            filename="u2netp.onnx",
            task=ModelTask.PERSON_SEGMENTATION,
            license="Apache-2.0",
        ),
    )
}


def get_spec(model_name: str) -> ModelSpec:
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


# ---------------------------------------------------------------------------
# ONNX Runtime configuration
# ---------------------------------------------------------------------------


def execution_providers(device: str, gpu_mem_limit: int) -> list[Provider]:
    """Provider list for ``device``; the CPU provider is always the last resort."""
    if device == "cuda":
        cuda_options: dict[str, object] = {
            "device_id": 0,
            "gpu_mem_limit": gpu_mem_limit,
            "arena_extend_strategy": "kSameAsRequested",
        }
        return [("CUDAExecutionProvider", cuda_options), "CPUExecutionProvider"]
    if device == "openvino":
        return [("OpenVINOExecutionProvider", {"device_type": "CPU"}), "CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


def session_options(settings: Settings) -> SessionOptions:
    opts = SessionOptions()
    opts.intra_op_num_threads = settings.intra_op_threads
    opts.inter_op_num_threads = settings.inter_op_threads
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.enable_mem_pattern = True
    opts.enable_mem_reuse = True
    if settings.device == "openvino":
        # OpenVINO optimizes the graph itself
        opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
    return opts


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


@dataclass
class _LoadedModel:
    session: InferenceSession
    last_used: float = field(default_factory=time.monotonic)

    def touch(self) -> InferenceSession:
        self.last_used = time.monotonic()
        return self.session


class OnnxModelManager:
    """Resolves model files and keeps ONNX Runtime sessions warm between requests."""

    def __init__(self, settings: Settings) -> None:
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)
        self._ttl = settings.model_ttl

        self._providers = execution_providers(settings.device, settings.gpu_mem_limit)
        self._options = session_options(settings)

        self._lock = threading.Lock()
        self._paths: dict[str, Path] = {}
        self._loaded: dict[str, _LoadedModel] = {}

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return the model file, preferring a copy already in ``models_dir``.

        Raises:
            KeyError: If the model is not registered.
        """
        spec = get_spec(model_name)
        with self._lock:
            path = self._paths.get(model_name)
        if path is not None and path.exists():
            return path

        path = self._local_copy(spec) or self._download(spec)
        with self._lock:
            self._paths[model_name] = path
        return path

    def get_session(self, model_name: str) -> InferenceSession:
        with self._lock:
            loaded = self._loaded.get(model_name)
            if loaded is not None:
                return loaded.touch()

        path = self.ensure_downloaded(model_name)
        session = InferenceSession(str(path), sess_options=self._options, providers=self._providers)

        with self._lock:
            # A concurrent caller may have loaded the same model meanwhile; keep the first.
            loaded = self._loaded.setdefault(model_name, _LoadedModel(session))
        logger.info("Loaded %s from %s", model_name, path)
        return loaded.touch()

    def get_loaded_models(self) -> list[str]:
        with self._lock:
            return sorted(self._loaded)

    def unload_idle_models(self) -> None:
        """Drop sessions unused for longer than ``model_ttl`` (0 keeps them forever)."""
        if self._ttl <= 0:
            return
        cutoff = time.monotonic() - self._ttl
        with self._lock:
            idle = [name for name, loaded in self._loaded.items() if loaded.last_used < cutoff]
            for name in idle:
                del self._loaded[name]
        for name in idle:
            logger.info("Unloaded %s after %ds without use", name, self._ttl)

    def shutdown(self) -> None:
        with self._lock:
            count = len(self._loaded)
            self._loaded.clear()
        logger.info("Released %d model session(s)", count)

    def _local_copy(self, spec: ModelSpec) -> Path | None:
        candidate = self._models_dir / spec.relative_path
        return candidate if candidate.is_file() else None

    def _download(self, spec: ModelSpec) -> Path:
        logger.info("Downloading %s from %s", spec.name, spec.repo_id)
        return Path(
            hf_hub_download(
                repo_id=spec.repo_id,
                filename=spec.filename,
                subfolder=spec.subfolder,
                local_dir=str(self._models_dir),
            )
        )
