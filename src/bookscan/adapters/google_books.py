# src/bookscan/adapters/google_books.py
from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, Field, ValidationError

from bookscan.domain.models import BibliographicRecord, DataSource
from bookscan.domain.ports import BibliographicSourcePort, ExternalApiError

logger = logging.getLogger(__name__)

_BASE_URL = "https://www.googleapis.com/books/v1"


class _GbImageLinks(BaseModel):
    thumbnail: str | None = None
    small_thumbnail: str | None = Field(default=None, alias="smallThumbnail")

    model_config = {"populate_by_name": True}


class _GbVolumeInfo(BaseModel):
    title: str | None = None
    subtitle: str | None = None
    authors: list[str] = Field(default_factory=list)
    publisher: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    image_links: _GbImageLinks | None = Field(default=None, alias="imageLinks")

    model_config = {"populate_by_name": True}


class _GbVolume(BaseModel):
    volume_info: _GbVolumeInfo = Field(alias="volumeInfo")

    model_config = {"populate_by_name": True}


class _GbResponse(BaseModel):
    total_items: int = Field(default=0, alias="totalItems")
    items: list[_GbVolume] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class GoogleBooksAdapter(BibliographicSourcePort):
    """Adapter für die Google Books Volumes API."""

    source = DataSource.GOOGLE_BOOKS

    def __init__(
        self, http_client: httpx.AsyncClient, api_key: str | None = None, timeout: float = 10.0
    ) -> None:
        self._client = http_client
        self._api_key = api_key
        self._timeout = timeout

    async def lookup(self, identifier: str) -> BibliographicRecord | None:
        params = {"q": f"isbn:{identifier}"}
        if self._api_key:
            params["key"] = self._api_key
        try:
            response = await self._client.get(
                f"{_BASE_URL}/volumes", params=params, timeout=self._timeout
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalApiError(self.source, str(e)) from e
        except httpx.RequestError as e:
            raise ExternalApiError(self.source, f"Connection error: {e}") from e

        try:
            raw = _GbResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.warning("Malformed Google Books response for %s", identifier, exc_info=True)
            return None

        if raw.total_items == 0 or not raw.items:
            return None
        return self._normalize(identifier, raw.items[0].volume_info)

    def _normalize(self, identifier: str, info: _GbVolumeInfo) -> BibliographicRecord:
        title = info.title or ""
        if title and info.subtitle:
            title = f"{title}: {info.subtitle}"
        return BibliographicRecord(
            identifier=identifier,
            title=title,
            authors=info.authors,
            publisher=info.publisher,
            publication_date=info.published_date,
            cover_image_url=self._cover_url(info.image_links),
            source=self.source,
        )

    @staticmethod
    def _cover_url(links: _GbImageLinks | None) -> str:
        if links is None:
            return ""
        url = links.thumbnail or links.small_thumbnail or ""
        # Google liefert Cover-Links oft noch als http://
        if url.startswith("http://"):
            url = "https://" + url.removeprefix("http://")
        return url
