"""Model manager: download and load ONNX classification models.

Handles fetching model graphs and label lists from HuggingFace (unless they
are already present in the models directory), creating ONNX InferenceSessions
and caching the resulting inference engines for the lifetime of the process.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx
from huggingface_hub import hf_hub_download
from huggingface_hub.errors import HfHubHTTPError
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from imageclassifier.errors import ModelLoadError
from imageclassifier.ml.engine import InferenceEngine, read_labels

if TYPE_CHECKING:
    from imageclassifier.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> ModelFiles:
        """Ensure a model and its labels are available locally."""
        ...

    def load(self, model_name: str) -> InferenceEngine:
        """Return a cached or newly loaded inference engine."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Drop all loaded engines."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX classification model."""

    name: str
    filename: str
    labels_filename: str
    input_name: str | None
    output_name: str | None
    license: str


@dataclass(frozen=True)
class ModelFiles:
    """Local paths of a model graph and its label list."""

    model_path: Path
    labels_path: Path


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "inception5h": ModelSpec(
        name="inception5h",
        filename="inception5h.onnx",
        labels_filename="imagenet_comp_graph_label_strings.txt",
        input_name="input",
        output_name="final_result",
        license="Apache-2.0",
    ),
    "nin_imagenet": ModelSpec(
        name="nin_imagenet",
        filename="nin_imagenet.onnx",
        labels_filename="nin_imagenet_labels.txt",
        input_name=None,
        output_name=None,
        license="BSD-2-Clause",
    ),
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads ONNX models and keeps one loaded engine per model."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._engines: dict[str, InferenceEngine] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, model_name: str) -> ModelFiles:
        """Return local model and label paths, downloading whatever is missing."""
        spec = self._get_spec(model_name)
        return ModelFiles(
            model_path=self._ensure_file(spec.filename),
            labels_path=self._ensure_file(spec.labels_filename),
        )

    def load(self, model_name: str) -> InferenceEngine:
        """Return the cached engine for a model, loading it if needed.

        Raises:
            ModelLoadError: If any file is missing, unreadable or malformed.
        """
        with self._lock:
            engine = self._engines.get(model_name)
            if engine is not None:
                return engine

            spec = self._get_spec(model_name)
            files = self.ensure_downloaded(model_name)
            labels = read_labels(files.labels_path)
            try:
                session = InferenceSession(
                    str(files.model_path),
                    sess_options=self._session_options,
                    providers=self._providers,
                )
            except Exception as exc:  # onnxruntime raises its own untyped errors
                raise ModelLoadError(f"Failed to load model [{files.model_path}]: {exc}") from exc

            engine = InferenceEngine(
                session,
                labels,
                input_name=spec.input_name,
                output_name=spec.output_name,
            )
            self._engines[model_name] = engine
            logger.info("Loaded %s with %d labels", model_name, len(labels))
            return engine

    def get_loaded_models(self) -> list[str]:
        """Return names of models with loaded engines."""
        with self._lock:
            return list(self._engines.keys())

    def shutdown(self) -> None:
        """Drop all loaded engines."""
        with self._lock:
            self._engines.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(model_name: str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown model: {model_name}") from None

    def _ensure_file(self, filename: str) -> Path:
        local = self._models_dir / filename
        if local.is_file():
            return local

        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=self._settings.model_repo_id,
                    filename=filename,
                    local_dir=str(self._models_dir),
                )
            )
        except (HfHubHTTPError, httpx.HTTPError, OSError, ValueError) as exc:
            raise ModelLoadError(f"Failed to download {filename} from {self._settings.model_repo_id}: {exc}") from exc
        logger.info("Downloaded %s to %s", filename, downloaded)
        return downloaded

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
