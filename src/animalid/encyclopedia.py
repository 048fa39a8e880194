"""Encyclopedia summary lookup with a secondary-language fallback.

Queries the Wikipedia REST ``page/summary`` endpoint in the primary language
and, if that does not succeed, in the secondary language. Lookups never
raise: every failure degrades to a placeholder SummaryResult.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from animalid.config import Settings

logger = logging.getLogger(__name__)

NOT_FOUND_DESCRIPTION = "Information not found"

DESCRIPTION_PLACEHOLDERS: dict[str, str] = {
    "pt": "Descrição não disponível",
    "en": "No description available",
    "es": "Descripción no disponible",
}

# Characters encodeURIComponent leaves alone.
_PATH_SAFE = "-_.!~*'()"


class SummaryResult(BaseModel):
    """A normalized encyclopedia summary."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    image_url: str | None = None


class EncyclopediaClient:
    """Looks up subject summaries over HTTP."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._http = http_client
        self._url_template = settings.encyclopedia_url
        self._primary = settings.primary_language
        self._secondary = settings.secondary_language
        self._secondary_prefix = settings.secondary_prefix
        self._headers = {"User-Agent": settings.user_agent, "Accept": "application/json"}

    def summary_url(self, language: str, subject: str) -> str:
        return self._url_template.format(lang=language) + quote(subject, safe=_PATH_SAFE)

    async def lookup(self, subject: str) -> SummaryResult:
        """Return the summary for ``subject``; never raises."""
        subject = subject.strip()
        if subject:
            data = await self._fetch(self._primary, subject)
            if data is not None:
                return self._normalize(data, subject, self._primary)

            data = await self._fetch(self._secondary, subject)
            if data is not None:
                return self._normalize(data, subject, self._secondary, prefix=self._secondary_prefix)

        logger.warning("No summary found for %r in %s or %s", subject, self._primary, self._secondary)
        return SummaryResult(title=subject, description=NOT_FOUND_DESCRIPTION, image_url=None)

    async def _fetch(self, language: str, subject: str) -> dict[str, Any] | None:
        url = self.summary_url(language, subject)
        try:
            response = await self._http.get(url, headers=self._headers, follow_redirects=True)
        except httpx.HTTPError as exc:
            logger.warning("Summary request failed for %s: %s", url, exc)
            return None

        if not response.is_success:
            logger.info("Summary request for %s returned %s", url, response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Summary response for %s is not valid JSON", url)
            return None
        if not isinstance(data, dict):
            logger.warning("Summary response for %s is not a JSON object", url)
            return None
        return data

    @staticmethod
    def _normalize(data: dict[str, Any], subject: str, language: str, prefix: str = "") -> SummaryResult:
        description = (
            data.get("extract")
            or data.get("description")
            or DESCRIPTION_PLACEHOLDERS.get(language, DESCRIPTION_PLACEHOLDERS["en"])
        )
        thumbnail = data.get("thumbnail")
        image_url = thumbnail.get("source") if isinstance(thumbnail, dict) else None
        return SummaryResult(
            title=data.get("title") or subject,
            description=f"{prefix}{description}",
            image_url=image_url or None,
        )
