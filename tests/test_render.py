"""Tests for the output region and HTML rendering."""

from __future__ import annotations

from animalid.encyclopedia import SummaryResult
from animalid.render import EMPTY, OutputRegion, RenderState, render_html


class TestOutputRegion:
    def test_each_write_replaces_the_previous_state(self) -> None:
        region = OutputRegion()
        assert region.state == EMPTY

        region.status("Loading AI...")
        assert region.state == RenderState(kind="status", message="Loading AI...", spinner=True)

        region.error("Animal not recognized (try another photo)")
        assert region.state.kind == "error"
        assert region.state.result is None

        summary = SummaryResult(title="Cat", description="A cat.")
        region.result(summary)
        assert region.state == RenderState(kind="result", result=summary)

        region.clear()
        assert region.state == EMPTY

    def test_listener_sees_every_state(self) -> None:
        seen: list[RenderState] = []
        region = OutputRegion(listener=seen.append)

        region.clear()
        region.status("Fetching information...")
        region.error("boom")

        assert [s.kind for s in seen] == ["empty", "status", "error"]


class TestRenderHtml:
    def test_status_has_spinner(self) -> None:
        html = render_html(RenderState(kind="status", message="Analyzing image...", spinner=True))
        assert html == "<div class='status-message'><div class='spinner'></div>Analyzing image...</div>"

    def test_error(self) -> None:
        html = render_html(RenderState(kind="error", message="Image too large (max 5MB)"))
        assert html == "<div class='error-message'>Image too large (max 5MB)</div>"

    def test_result_card_with_image(self) -> None:
        state = RenderState(
            kind="result",
            result=SummaryResult(title="Gato", description="Um gato.", image_url="https://img.example/cat.jpg"),
        )
        html = render_html(state)
        assert html.startswith("<div class='result-card'><h3>Gato</h3>")
        assert "<img src='https://img.example/cat.jpg' alt='Illustrative image of Gato'" in html
        assert html.endswith("<p>Um gato.</p></div>")

    def test_result_card_without_image(self) -> None:
        state = RenderState(kind="result", result=SummaryResult(title="xyzzy", description="Information not found"))
        assert "<img" not in render_html(state)

    def test_values_are_escaped(self) -> None:
        state = RenderState(
            kind="result",
            result=SummaryResult(title="<script>", description="a & b", image_url="x' onerror='alert(1)"),
        )
        html = render_html(state)
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "a &amp; b" in html
        assert "x&#x27; onerror" in html

    def test_empty_renders_nothing(self) -> None:
        assert render_html(EMPTY) == ""
