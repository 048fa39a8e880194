"""Search orchestration: user triggers -> subject -> encyclopedia -> output region.

A run derives a subject either from an uploaded image (preprocess, classify,
filter) or from typed text, looks it up, and renders the outcome. Runs are
numbered; only the most recently issued run may write to the output, so a
slow, older run can never overwrite a newer one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from animalid.errors import EmptyInputError, IdentificationError
from animalid.ml.result_filter import subject_from_label

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from animalid.encyclopedia import EncyclopediaClient, SummaryResult
    from animalid.ml.image_classifier import ClassifierPort
    from animalid.ml.preprocessing import ImagePreprocessor, UploadedImage
    from animalid.ml.result_filter import ResultFilter
    from animalid.render import Renderer

logger = logging.getLogger(__name__)

STATUS_LOADING_MODEL = "Loading AI..."
STATUS_ANALYZING = "Analyzing image..."
STATUS_FETCHING = "Fetching information..."
UNEXPECTED_ERROR = "Could not complete the search"


class SearchOutcome(StrEnum):
    RESULT = "result"
    ERROR = "error"
    DROPPED = "dropped"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class SearchRequest:
    """Snapshot of the user's input at the moment a search fires."""

    image: UploadedImage | None = None
    text: str = ""


class _RunView:
    """Renderer wrapper that ignores writes once its run is no longer the latest."""

    def __init__(self, orchestrator: SearchOrchestrator, sequence: int, renderer: Renderer) -> None:
        self._orchestrator = orchestrator
        self._sequence = sequence
        self._renderer = renderer

    @property
    def is_current(self) -> bool:
        return self._sequence == self._orchestrator.latest_sequence

    def clear(self) -> None:
        if self.is_current:
            self._renderer.clear()

    def status(self, message: str) -> None:
        if self.is_current:
            self._renderer.status(message)

    def error(self, message: str) -> None:
        if self.is_current:
            self._renderer.error(message)

    def result(self, summary: SummaryResult) -> None:
        if self.is_current:
            self._renderer.result(summary)


class SearchOrchestrator:
    """Runs one search per trigger against injected ports.

    ``offload`` runs blocking work (image decoding) off the event loop; it
    defaults to ``asyncio.to_thread``.
    """

    def __init__(
        self,
        preprocessor: ImagePreprocessor,
        classifier: ClassifierPort,
        result_filter: ResultFilter,
        encyclopedia: EncyclopediaClient,
        offload: Callable[..., Awaitable[Any]] | None = None,
    ) -> None:
        self._preprocessor = preprocessor
        self._classifier = classifier
        self._filter = result_filter
        self._encyclopedia = encyclopedia
        self._offload = offload or asyncio.to_thread

        self._identifying = False
        self._issued = 0

    @property
    def is_identifying(self) -> bool:
        return self._identifying

    @property
    def latest_sequence(self) -> int:
        return self._issued

    async def search(self, request: SearchRequest, renderer: Renderer) -> SearchOutcome:
        """Run a single search and render its outcome.

        An image search requested while another image identification is in
        flight is dropped without touching the output.
        """
        if request.image is not None and self._identifying:
            logger.info("Image identification already in progress; trigger dropped")
            return SearchOutcome.DROPPED

        self._issued += 1
        view = _RunView(self, self._issued, renderer)
        view.clear()

        try:
            if request.image is not None:
                subject = await self._identify(request.image, view)
            elif request.text.strip():
                subject = request.text.strip()
            else:
                raise EmptyInputError

            view.status(STATUS_FETCHING)
            summary = await self._encyclopedia.lookup(subject)
        except IdentificationError as exc:
            logger.info("Search failed: %s", exc.message)
            view.error(exc.message)
            outcome = SearchOutcome.ERROR
        except Exception:
            logger.exception("Unexpected error during search")
            view.error(UNEXPECTED_ERROR)
            outcome = SearchOutcome.ERROR
        else:
            view.result(summary)
            outcome = SearchOutcome.RESULT

        return outcome if view.is_current else SearchOutcome.SUPERSEDED

    async def _identify(self, image: UploadedImage, view: _RunView) -> str:
        self._identifying = True
        try:
            self._preprocessor.check(image)
            if not self._classifier.is_loaded:
                view.status(STATUS_LOADING_MODEL)
                await self._classifier.load()

            view.status(STATUS_ANALYZING)
            prepared = await self._offload(self._preprocessor.prepare, image)
            candidates = await self._classifier.classify(prepared)
            best = self._filter.select(candidates)
            subject = subject_from_label(best.label)
            logger.info("Identified %r (p=%.3f)", subject, best.probability)
            return subject
        finally:
            self._identifying = False


class Debouncer:
    """Calls ``callback`` once ``delay`` seconds after the last trigger."""

    def __init__(self, delay: float, callback: Callable[[], object]) -> None:
        self._delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class SearchSession:
    """Wires one user's input events to the orchestrator.

    Text changes are debounced; file selection and explicit submits fire
    immediately. Each fired search runs as its own task.
    """

    def __init__(self, orchestrator: SearchOrchestrator, renderer: Renderer, debounce_seconds: float) -> None:
        self._orchestrator = orchestrator
        self._renderer = renderer
        self._text = ""
        self._image: UploadedImage | None = None
        self._debouncer = Debouncer(debounce_seconds, self._start)
        self._tasks: set[asyncio.Task[SearchOutcome]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def text_changed(self, text: str) -> None:
        self._text = text
        self._debouncer.trigger()

    def file_selected(self, image: UploadedImage | None) -> asyncio.Task[SearchOutcome]:
        self._image = image
        return self._start()

    def submit(self) -> asyncio.Task[SearchOutcome]:
        return self._start()

    async def wait_idle(self) -> None:
        """Wait until no search task is running."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel the pending debounce and any in-flight searches."""
        self._debouncer.cancel()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    def _start(self) -> asyncio.Task[SearchOutcome]:
        request = SearchRequest(image=self._image, text=self._text)
        task = asyncio.create_task(self._orchestrator.search(request, self._renderer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
