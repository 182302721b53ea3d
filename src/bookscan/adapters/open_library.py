# src/bookscan/adapters/open_library.py
from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import BaseModel, Field, ValidationError

from bookscan.domain.models import BibliographicRecord, DataSource
from bookscan.domain.ports import BibliographicSourcePort, ExternalApiError

logger = logging.getLogger(__name__)

_BASE_URL = "https://openlibrary.org"
_COVER_URL = "https://covers.openlibrary.org/b/id/{cover_id}-L.jpg"


class _OlAuthorRef(BaseModel):
    key: str


class _OlEdition(BaseModel):
    title: str | None = None
    subtitle: str | None = None
    authors: list[_OlAuthorRef] = Field(default_factory=list)
    publishers: list[str] = Field(default_factory=list)
    publish_date: str | None = None
    covers: list[int] = Field(default_factory=list)


class _OlAuthor(BaseModel):
    name: str | None = None
    personal_name: str | None = None


class OpenLibraryAdapter(BibliographicSourcePort):
    """
    Adapter für die Open Library API.

    Editionen referenzieren Autoren nur über ihren Key; die Namen werden
    per Zweitabfrage aufgelöst. Schlägt eine Zweitabfrage fehl, fehlt der
    Autor im Ergebnis, der Record selbst bleibt gültig.
    """

    source = DataSource.OPEN_LIBRARY

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self._client = http_client
        self._timeout = timeout

    async def lookup(self, identifier: str) -> BibliographicRecord | None:
        url = f"{_BASE_URL}/isbn/{identifier}.json"
        try:
            response = await self._client.get(url, timeout=self._timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalApiError(self.source, str(e)) from e
        except httpx.RequestError as e:
            raise ExternalApiError(self.source, f"Connection error: {e}") from e

        try:
            edition = _OlEdition.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.warning("Malformed Open Library edition for %s", identifier, exc_info=True)
            return None

        authors = await self._resolve_authors(edition.authors)
        return self._normalize(identifier, edition, authors)

    async def _resolve_authors(self, refs: list[_OlAuthorRef]) -> list[str]:
        names = await asyncio.gather(*(self._fetch_author_name(ref.key) for ref in refs))
        return [name for name in names if name]

    async def _fetch_author_name(self, key: str) -> str | None:
        try:
            response = await self._client.get(f"{_BASE_URL}{key}.json", timeout=self._timeout)
            response.raise_for_status()
            author = _OlAuthor.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError):
            logger.debug("Could not resolve Open Library author %s", key, exc_info=True)
            return None
        return author.name or author.personal_name

    # ------------------------------------------------------------------
    # Private Normalisierungslogik
    # ------------------------------------------------------------------

    def _normalize(
        self, identifier: str, edition: _OlEdition, authors: list[str]
    ) -> BibliographicRecord:
        title = edition.title or ""
        if title and edition.subtitle:
            title = f"{title}: {edition.subtitle}"

        cover_ids = [c for c in edition.covers if c > 0]
        return BibliographicRecord(
            identifier=identifier,
            title=title,
            authors=authors,
            publisher=", ".join(edition.publishers),
            publication_date=edition.publish_date,
            cover_image_url=_COVER_URL.format(cover_id=cover_ids[0]) if cover_ids else "",
            source=self.source,
        )
