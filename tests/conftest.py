"""Shared fixtures and fakes."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest
from PIL import Image

from animalid.encyclopedia import SummaryResult
from animalid.errors import ModelUnavailableError
from animalid.ml.image_classifier import ClassificationCandidate

if TYPE_CHECKING:
    from animalid.ml.preprocessing import PreparedImage


def image_bytes(
    size: tuple[int, int] = (320, 240),
    fmt: str = "JPEG",
    color: tuple[int, ...] = (200, 30, 30),
    mode: str = "RGB",
) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeClassifier:
    """In-memory ClassifierPort returning canned candidates."""

    def __init__(
        self,
        candidates: list[ClassificationCandidate] | None = None,
        fail_load: bool = False,
    ) -> None:
        self.candidates = candidates if candidates is not None else [ClassificationCandidate("golden retriever", 0.8)]
        self.fail_load = fail_load
        self.load_calls = 0
        self.classified: list[PreparedImage] = []
        self._loaded = False
        self.model_name = "mobilenet_v2_1.00"

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        self.load_calls += 1
        if self.fail_load:
            raise ModelUnavailableError
        self._loaded = True

    async def classify(self, image: PreparedImage) -> list[ClassificationCandidate]:
        await self.load()
        self.classified.append(image)
        return list(self.candidates)


class FakeEncyclopedia:
    """Records subjects and answers with a fixed summary."""

    def __init__(self) -> None:
        self.subjects: list[str] = []

    async def lookup(self, subject: str) -> SummaryResult:
        self.subjects.append(subject)
        return SummaryResult(title=subject.title(), description=f"About {subject}", image_url=None)


@pytest.fixture()
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture()
def fake_encyclopedia() -> FakeEncyclopedia:
    return FakeEncyclopedia()
