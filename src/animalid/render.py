"""Render layer: a single output region cycling through status, error, and result."""

from __future__ import annotations

from html import escape
from typing import TYPE_CHECKING, Literal, Protocol

from pydantic import BaseModel, ConfigDict

from animalid.encyclopedia import SummaryResult

if TYPE_CHECKING:
    from collections.abc import Callable


class RenderState(BaseModel):
    """What the output region currently shows. ``kind="empty"`` means cleared."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["empty", "status", "error", "result"]
    message: str | None = None
    spinner: bool = False
    result: SummaryResult | None = None


EMPTY = RenderState(kind="empty")


class Renderer(Protocol):
    """Protocol for the output region the orchestrator writes to."""

    def clear(self) -> None: ...

    def status(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def result(self, summary: SummaryResult) -> None: ...


class OutputRegion:
    """Holds exactly one RenderState; every write replaces the previous one.

    An optional listener is called with each new state, e.g. to push it to a
    connected client.
    """

    def __init__(self, listener: Callable[[RenderState], None] | None = None) -> None:
        self._state = EMPTY
        self._listener = listener

    @property
    def state(self) -> RenderState:
        return self._state

    def clear(self) -> None:
        self._show(EMPTY)

    def status(self, message: str) -> None:
        self._show(RenderState(kind="status", message=message, spinner=True))

    def error(self, message: str) -> None:
        self._show(RenderState(kind="error", message=message))

    def result(self, summary: SummaryResult) -> None:
        self._show(RenderState(kind="result", result=summary))

    def _show(self, state: RenderState) -> None:
        self._state = state
        if self._listener is not None:
            self._listener(state)


def render_html(state: RenderState) -> str:
    """Render a state as an HTML fragment with every value escaped."""
    if state.kind == "status":
        spinner = "<div class='spinner'></div>" if state.spinner else ""
        return f"<div class='status-message'>{spinner}{escape(state.message or '')}</div>"
    if state.kind == "error":
        return f"<div class='error-message'>{escape(state.message or '')}</div>"
    if state.kind == "result" and state.result is not None:
        summary = state.result
        title = escape(summary.title)
        parts = ["<div class='result-card'>", f"<h3>{title}</h3>"]
        if summary.image_url:
            parts.append(
                f"<img src='{escape(summary.image_url)}' alt='Illustrative image of {title}' class='result-image'>"
            )
        parts.append(f"<p>{escape(summary.description)}</p>")
        parts.append("</div>")
        return "".join(parts)
    return ""
