"""Tests for classifier result filtering."""

from __future__ import annotations

import pytest

from animalid.config import Settings
from animalid.errors import AnimalNotRecognizedError
from animalid.ml.image_classifier import ClassificationCandidate
from animalid.ml.result_filter import ResultFilter, subject_from_label


def _c(label: str, probability: float) -> ClassificationCandidate:
    return ClassificationCandidate(label=label, probability=probability)


class TestResultFilter:
    def test_picks_first_survivor(self) -> None:
        candidates = [_c("golden retriever", 0.8), _c("Labrador retriever", 0.1)]
        assert ResultFilter().filter(candidates) == _c("golden retriever", 0.8)

    def test_threshold_is_exclusive(self) -> None:
        rf = ResultFilter()
        assert rf.filter([_c("tabby, tabby cat", 0.15)]) is None
        assert rf.filter([_c("tabby, tabby cat", 0.1500001)]) is not None

    def test_denylisted_labels_are_skipped(self) -> None:
        candidates = [
            _c("nematode, nematode worm, roundworm", 0.6),
            _c("Background", 0.2),
            _c("tree frog, tree-frog", 0.18),
        ]
        assert ResultFilter().filter(candidates) == _c("tree frog, tree-frog", 0.18)

    def test_denylist_is_case_insensitive_substring(self) -> None:
        rf = ResultFilter(denylist=["Worm"])
        assert rf.filter([_c("NEMATODE WORM", 0.9)]) is None
        assert rf.filter([_c("earthworm", 0.9)]) is None

    def test_denylist_can_be_extended(self) -> None:
        rf = ResultFilter(denylist=["nematode", "background", "web site"])
        assert rf.filter([_c("web site, website", 0.9), _c("tiger cat", 0.5)]) == _c("tiger cat", 0.5)

    def test_all_low_confidence_yields_none(self) -> None:
        candidates = [_c("tabby", 0.15), _c("tiger cat", 0.1), _c("Egyptian cat", 0.05)]
        assert ResultFilter().filter(candidates) is None

    def test_empty_input_yields_none(self) -> None:
        assert ResultFilter().filter([]) is None

    def test_filtering_is_idempotent(self) -> None:
        rf = ResultFilter()
        best = rf.filter([_c("nematode", 0.7), _c("hamster", 0.3)])
        assert best is not None
        assert rf.filter([best]) == best

    def test_select_raises_when_nothing_survives(self) -> None:
        with pytest.raises(AnimalNotRecognizedError, match="Animal not recognized"):
            ResultFilter().select([_c("background", 0.9)])

    def test_from_settings(self) -> None:
        rf = ResultFilter.from_settings(Settings(min_probability=0.5, label_denylist=["cat"]))
        assert rf.min_probability == 0.5
        assert rf.denylist == ("cat",)


class TestSubjectFromLabel:
    @pytest.mark.parametrize(
        ("label", "subject"),
        [
            ("golden retriever", "golden retriever"),
            ("tabby, tabby cat", "tabby"),
            ("  great white shark, white shark, man-eater ", "great white shark"),
        ],
    )
    def test_first_name_before_comma(self, label: str, subject: str) -> None:
        assert subject_from_label(label) == subject
