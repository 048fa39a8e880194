"""Tests for the encyclopedia client and its language fallback."""

from __future__ import annotations

import httpx
import pytest

from animalid.config import Settings
from animalid.encyclopedia import NOT_FOUND_DESCRIPTION, EncyclopediaClient, SummaryResult

PT = "https://pt.wikipedia.org/api/rest_v1/page/summary/"
EN = "https://en.wikipedia.org/api/rest_v1/page/summary/"


def _client(routes: dict[str, httpx.Response | Exception]) -> tuple[EncyclopediaClient, list[str]]:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        seen.append(url)
        outcome = routes.get(url, httpx.Response(404, json={"type": "not_found"}))
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome.status_code, headers=outcome.headers, content=outcome.content)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EncyclopediaClient(http_client, Settings()), seen


class TestLookup:
    async def test_primary_language_success(self) -> None:
        client, seen = _client(
            {
                PT + "Gato": httpx.Response(
                    200,
                    json={
                        "title": "Gato",
                        "extract": "O gato é um mamífero.",
                        "thumbnail": {"source": "https://upload.wikimedia.org/cat.jpg"},
                    },
                )
            }
        )

        result = await client.lookup("Gato")

        assert result == SummaryResult(
            title="Gato",
            description="O gato é um mamífero.",
            image_url="https://upload.wikimedia.org/cat.jpg",
        )
        assert seen == [PT + "Gato"]

    async def test_falls_back_to_secondary_language(self) -> None:
        client, seen = _client(
            {EN + "golden%20retriever": httpx.Response(200, json={"title": "Golden Retriever", "extract": "A dog."})}
        )

        result = await client.lookup("golden retriever")

        assert result.title == "Golden Retriever"
        assert result.description == "(English) A dog."
        assert result.image_url is None
        assert seen == [PT + "golden%20retriever", EN + "golden%20retriever"]

    async def test_transport_error_on_primary_falls_back(self) -> None:
        client, _ = _client(
            {
                PT + "lobo": httpx.ConnectError("boom"),
                EN + "lobo": httpx.Response(200, json={"title": "Wolf", "description": "Canine"}),
            }
        )

        result = await client.lookup("lobo")

        assert result.description == "(English) Canine"

    async def test_both_fail_returns_placeholder(self) -> None:
        client, seen = _client({EN + "xyzzy": httpx.Response(500)})

        result = await client.lookup("xyzzy")

        assert result == SummaryResult(title="xyzzy", description=NOT_FOUND_DESCRIPTION, image_url=None)
        assert len(seen) == 2

    async def test_transport_errors_on_both_never_raise(self) -> None:
        client, _ = _client({PT + "gato": httpx.ReadTimeout("slow"), EN + "gato": httpx.ConnectError("down")})
        result = await client.lookup("gato")
        assert result.description == "Information not found"

    async def test_invalid_json_counts_as_failure(self) -> None:
        client, _ = _client(
            {
                PT + "gato": httpx.Response(200, content=b"<html>oops</html>"),
                EN + "gato": httpx.Response(200, json={"title": "Cat"}),
            }
        )
        result = await client.lookup("gato")
        assert result.title == "Cat"
        assert result.description == "(English) No description available"

    @pytest.mark.parametrize(
        ("payload", "description"),
        [
            ({"extract": "Texto"}, "Texto"),
            ({"description": "Espécie"}, "Espécie"),
            ({"extract": "", "description": ""}, "Descrição não disponível"),
            ({}, "Descrição não disponível"),
        ],
    )
    async def test_description_normalization(self, payload: dict[str, str], description: str) -> None:
        client, _ = _client({PT + "on%C3%A7a": httpx.Response(200, json=payload)})
        result = await client.lookup("onça")
        assert result.description == description
        assert result.title == (payload.get("title") or "onça")

    async def test_subject_is_escaped_as_single_segment(self) -> None:
        client, seen = _client({})
        await client.lookup("AC/DC & friends?")
        assert seen[0] == PT + "AC%2FDC%20%26%20friends%3F"

    async def test_no_caching(self) -> None:
        client, seen = _client({PT + "gato": httpx.Response(200, json={"title": "Gato"})})
        await client.lookup("gato")
        await client.lookup("gato")
        assert seen == [PT + "gato", PT + "gato"]

    def test_summary_url_uses_language_template(self) -> None:
        client, _ = _client({})
        assert client.summary_url("de", "Katze") == "https://de.wikipedia.org/api/rest_v1/page/summary/Katze"
