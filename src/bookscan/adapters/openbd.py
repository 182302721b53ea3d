# src/bookscan/adapters/openbd.py
from __future__ import annotations

import logging
import re

import httpx
from pydantic import BaseModel, ValidationError

from bookscan.domain.models import BibliographicRecord, DataSource
from bookscan.domain.ports import BibliographicSourcePort, ExternalApiError

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.openbd.jp/v1"

# "著者A, 著者B" / "著者A/著者B" / "著者A、著者B"
_AUTHOR_SEPARATORS = re.compile(r"\s*[,、，/]\s*")
# Rollen-Suffix "／著", "／訳", ... trennt zugleich mehrere Personen ("A／著 B／訳")
_ROLE_SUFFIX = re.compile(r"(?<=\S)／\S*\s*")

# ---------------------------------------------------------------------------
# Interne Rohdaten-Schemas (für typisiertes Parsing der OpenBD-Response)
# ---------------------------------------------------------------------------


class _OpenBdSummary(BaseModel):
    isbn: str | None = None
    title: str | None = None
    publisher: str | None = None
    pubdate: str | None = None
    cover: str | None = None
    author: str | None = None


class _OpenBdItem(BaseModel):
    summary: _OpenBdSummary | None = None


def split_authors(raw: str | None) -> list[str]:
    """Zerlegt den OpenBD-Autorenstring in eine geordnete Namensliste."""
    names: list[str] = []
    for part in _AUTHOR_SEPARATORS.split(raw or ""):
        for name in _ROLE_SUFFIX.split(part):
            name = name.strip()
            if name:
                names.append(name)
    return names


class OpenBdAdapter(BibliographicSourcePort):
    """
    Adapter für die OpenBD API (japanische Verlagsdaten).
    Die API liefert pro angefragter ISBN ein Element oder null.
    """

    source = DataSource.OPENBD

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self._client = http_client
        self._timeout = timeout

    async def lookup(self, identifier: str) -> BibliographicRecord | None:
        url = f"{_BASE_URL}/get"
        try:
            response = await self._client.get(
                url, params={"isbn": identifier}, timeout=self._timeout
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalApiError(self.source, str(e)) from e
        except httpx.RequestError as e:
            raise ExternalApiError(self.source, f"Connection error: {e}") from e

        try:
            payload = response.json()
            items = [_OpenBdItem.model_validate(i) for i in payload if i is not None]
        except (ValueError, TypeError, ValidationError):
            logger.warning("Malformed OpenBD response for %s", identifier, exc_info=True)
            return None

        summary = items[0].summary if items else None
        if summary is None:
            return None
        return self._normalize(identifier, summary)

    def _normalize(self, identifier: str, summary: _OpenBdSummary) -> BibliographicRecord:
        return BibliographicRecord(
            identifier=identifier,
            title=summary.title,
            authors=split_authors(summary.author),
            publisher=summary.publisher,
            publication_date=summary.pubdate,
            cover_image_url=summary.cover,
            source=self.source,
        )
