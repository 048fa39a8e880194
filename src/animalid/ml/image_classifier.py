"""Image classification through a pretrained MobileNet ONNX model.

The model is loaded lazily on first use and kept for the life of the
process. Concurrent first callers share a single load.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from animalid.errors import ModelUnavailableError
from animalid.ml.model_manager import MODEL_REGISTRY, model_name_for

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from animalid.config import Settings
    from animalid.ml.inference import InferencePool
    from animalid.ml.model_manager import ModelManager
    from animalid.ml.preprocessing import PreparedImage

logger = logging.getLogger(__name__)

_IMAGENET_MEAN = (0.485, 0.456, 0.406)
_IMAGENET_STD = (0.229, 0.224, 0.225)


@dataclass(frozen=True)
class ClassificationCandidate:
    """A single classification prediction."""

    label: str
    probability: float


class ClassifierPort(Protocol):
    """Protocol for image classifiers used by the search orchestrator."""

    @property
    def is_loaded(self) -> bool:
        """Return True once the underlying model is ready."""
        ...

    async def load(self) -> None:
        """Load the model if needed.

        Raises:
            ModelUnavailableError: If the model cannot be fetched or opened.
        """
        ...

    async def classify(self, image: PreparedImage) -> list[ClassificationCandidate]:
        """Classify a prepared image.

        Returns:
            Candidates sorted by probability (descending).
        """
        ...


def to_input_tensor(
    pixels: NDArray[np.uint8],
    channels_first: bool = True,
    mean: tuple[float, float, float] = _IMAGENET_MEAN,
    std: tuple[float, float, float] = _IMAGENET_STD,
) -> NDArray[np.float32]:
    """Normalize an HxWx3 uint8 canvas into a batch of one float32 image."""
    scaled = pixels.astype(np.float32) / 255.0
    tensor = (scaled - np.asarray(mean, dtype=np.float32)) / np.asarray(std, dtype=np.float32)
    if channels_first:
        tensor = tensor.transpose(2, 0, 1)
    return np.ascontiguousarray(tensor[np.newaxis], dtype=np.float32)


def top_candidates(scores: NDArray[np.floating], labels: list[str], k: int) -> list[ClassificationCandidate]:
    """Turn raw model output into the k most probable labelled candidates.

    Logits are softmaxed; outputs that already sum to one are used as-is.
    Models with an extra leading background class (1001 outputs for 1000
    labels) have it dropped.
    """
    values = np.asarray(scores, dtype=np.float64).reshape(-1)
    if values.size == len(labels) + 1:
        values = values[1:]

    if values.min() < 0.0 or not np.isclose(values.sum(), 1.0, atol=1e-3):
        shifted = np.exp(values - values.max())
        values = shifted / shifted.sum()

    order = np.argsort(-values, kind="stable")[:k]
    return [
        ClassificationCandidate(
            label=labels[i] if i < len(labels) else f"class {i}",
            probability=float(values[i]),
        )
        for i in order
    ]


class MobileNetClassifier:
    """ClassifierPort backed by an ONNX MobileNet session."""

    def __init__(self, settings: Settings, model_manager: ModelManager, pool: InferencePool) -> None:
        self._model_name = model_name_for(settings.model_version, settings.model_alpha)
        self._spec = MODEL_REGISTRY[self._model_name]
        self._top_k = settings.top_k
        self._model_manager = model_manager
        self._pool = pool

        self._session: InferenceSession | None = None
        self._labels: list[str] = []
        self._load_task: asyncio.Task[None] | None = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    async def load(self) -> None:
        if self._session is not None:
            return
        if self._load_task is None:
            self._load_task = asyncio.create_task(self._load())
        task = self._load_task
        try:
            # Shielded so one cancelled caller does not abort the shared load.
            await asyncio.shield(task)
        except ModelUnavailableError:
            if self._load_task is task:
                self._load_task = None
            raise

    async def classify(self, image: PreparedImage) -> list[ClassificationCandidate]:
        await self.load()
        try:
            scores = await self._pool.run(self._run_session, image.pixels)
        except TimeoutError as exc:
            raise ModelUnavailableError from exc
        return top_candidates(scores, self._labels, self._top_k)

    async def _load(self) -> None:
        try:
            session, labels = await self._pool.run(self._load_blocking)
        except Exception as exc:
            logger.exception("Failed to load classifier %s", self._model_name)
            raise ModelUnavailableError from exc
        self._session = session
        self._labels = labels
        logger.info("Classifier %s ready (%d labels)", self._model_name, len(labels))

    def _load_blocking(self) -> tuple[InferenceSession, list[str]]:
        session = self._model_manager.get_session(self._model_name)
        labels = self._model_manager.get_labels(self._model_name)
        return session, labels

    def _run_session(self, pixels: NDArray[np.uint8]) -> NDArray[np.floating]:
        if self._session is None:
            raise RuntimeError("Classifier used before load()")
        model_input = self._session.get_inputs()[0]
        shape = model_input.shape
        channels_first = len(shape) == 4 and shape[1] == 3
        tensor = to_input_tensor(pixels, channels_first, self._spec.mean, self._spec.std)
        outputs = self._session.run(None, {model_input.name: tensor})
        return outputs[0]
