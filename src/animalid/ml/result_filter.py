"""Post-classification filtering: confidence threshold and label denylist."""

from __future__ import annotations

from typing import TYPE_CHECKING

from animalid.errors import AnimalNotRecognizedError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from animalid.config import Settings
    from animalid.ml.image_classifier import ClassificationCandidate

DEFAULT_MIN_PROBABILITY: float = 0.15

# Labels the ImageNet models emit for non-animal noise.
DEFAULT_DENYLIST: tuple[str, ...] = ("nematode", "background")


class ResultFilter:
    """Drops low-confidence and denylisted candidates and picks the best one."""

    def __init__(
        self,
        min_probability: float = DEFAULT_MIN_PROBABILITY,
        denylist: Iterable[str] = DEFAULT_DENYLIST,
    ) -> None:
        self.min_probability = min_probability
        self.denylist = tuple(term.lower() for term in denylist if term)

    @classmethod
    def from_settings(cls, settings: Settings) -> ResultFilter:
        return cls(settings.min_probability, settings.label_denylist)

    def accepts(self, candidate: ClassificationCandidate) -> bool:
        if candidate.probability <= self.min_probability:
            return False
        label = candidate.label.lower()
        return not any(term in label for term in self.denylist)

    def filter(self, candidates: Sequence[ClassificationCandidate]) -> ClassificationCandidate | None:
        """Return the first acceptable candidate, or None if nothing survives.

        Candidates are expected in descending probability, so the first
        survivor is the most confident one.
        """
        return next((c for c in candidates if self.accepts(c)), None)

    def select(self, candidates: Sequence[ClassificationCandidate]) -> ClassificationCandidate:
        """Like filter(), but raise AnimalNotRecognizedError when empty."""
        best = self.filter(candidates)
        if best is None:
            raise AnimalNotRecognizedError
        return best


def subject_from_label(label: str) -> str:
    """ImageNet labels list synonyms after commas; keep the first name."""
    return label.split(",", 1)[0].strip()
