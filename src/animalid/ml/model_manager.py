"""Model manager: download, load, and cache ONNX classifier models.

Handles downloading models and their label files from HuggingFace, creating
and caching ONNX InferenceSessions, and picking execution providers for the
configured device. Sessions live for the whole process; they are only
dropped on shutdown.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from animalid.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> Path:
        """Ensure a model is downloaded and return its file path."""
        ...

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached or newly created InferenceSession."""
        ...

    def get_labels(self, model_name: str) -> list[str]:
        """Return the class labels for a model, in output index order."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX classifier."""

    name: str
    repo_id: str
    filename: str
    labels_filename: str
    version: int
    alpha: float
    input_size: int
    license: str
    mean: tuple[float, float, float]
    std: tuple[float, float, float]


# ONNX conversion of google/mobilenet_v2_1.0_224. Labels come from the
# id2label table in its config.json (1001 classes, index 0 is "background").
MODEL_REGISTRY: dict[str, ModelSpec] = {
    "mobilenet_v2_1.00": ModelSpec(
        name="mobilenet_v2_1.00",
        repo_id="Xenova/mobilenet_v2_1.0_224",
        filename="onnx/model.onnx",
        labels_filename="config.json",
        version=2,
        alpha=1.0,
        input_size=224,
        license="Apache-2.0",
        mean=(0.5, 0.5, 0.5),
        std=(0.5, 0.5, 0.5),
    ),
}


def model_name_for(version: int, alpha: float) -> str:
    """Return the registry name for a MobileNet (version, alpha) pair."""
    name = f"mobilenet_v{version}_{alpha:.2f}"
    if name not in MODEL_REGISTRY:
        raise KeyError(f"Unknown model: version={version} alpha={alpha}")
    return name


def parse_labels(text: str) -> list[str]:
    """Parse a label file: one label per line, optional leading wordnet id."""
    labels: list[str] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        head, _, rest = line.partition(" ")
        if rest and head[:1] == "n" and head[1:].isdigit():
            line = rest.strip()
        labels.append(line)
    return labels


def parse_config_labels(text: str) -> list[str]:
    """Parse the ``id2label`` table of a model ``config.json`` into index order."""
    id2label = json.loads(text).get("id2label") or {}
    return [id2label[key] for key in sorted(id2label, key=int)]


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads, loads, and caches ONNX inference sessions and label lists."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._sessions: dict[str, InferenceSession] = {}
        self._labels: dict[str, list[str]] = {}
        self._model_paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, model_name: str) -> Path:
        """Download a model from HuggingFace if not already present locally."""
        spec = self._get_spec(model_name)

        if model_name in self._model_paths:
            path = self._model_paths[model_name]
            if path.exists():
                return path

        downloaded = self._download(spec, spec.filename)
        self._model_paths[model_name] = downloaded
        logger.info("Downloaded %s to %s", model_name, downloaded)
        return downloaded

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed."""
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                return cached

        model_path = self.ensure_downloaded(model_name)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._sessions.get(model_name)
            if existing is not None:
                return existing
            self._sessions[model_name] = session
            logger.info("Loaded session for %s", model_name)
            return session

    def get_labels(self, model_name: str) -> list[str]:
        """Return cached labels for a model, downloading the label file if needed."""
        with self._lock:
            cached = self._labels.get(model_name)
            if cached is not None:
                return cached

        spec = self._get_spec(model_name)
        path = self._download(spec, spec.labels_filename)
        text = path.read_text(encoding="utf-8")
        labels = parse_config_labels(text) if path.suffix == ".json" else parse_labels(text)
        if not labels:
            raise RuntimeError(f"Label file for '{model_name}' is empty")

        with self._lock:
            self._labels.setdefault(model_name, labels)
            logger.info("Loaded %d labels for %s", len(labels), model_name)
            return self._labels[model_name]

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._sessions.keys())

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            self._labels.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(model_name: str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown model: {model_name}") from None

    def _download(self, spec: ModelSpec, filename: str) -> Path:
        self._models_dir.mkdir(parents=True, exist_ok=True)
        return Path(
            hf_hub_download(
                repo_id=self._settings.model_repo_id or spec.repo_id,
                filename=filename,
                local_dir=str(self._models_dir),
            )
        )

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
