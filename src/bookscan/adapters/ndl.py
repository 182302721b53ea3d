# src/bookscan/adapters/ndl.py
from __future__ import annotations

import logging

import httpx
from lxml import etree

from bookscan.domain.models import BibliographicRecord, DataSource
from bookscan.domain.ports import BibliographicSourcePort, ExternalApiError

logger = logging.getLogger(__name__)

_BASE_URL = "https://ndlsearch.ndl.go.jp/api/opensearch"

_NS = {
    "dc": "http://purl.org/dc/elements/1.1/",
    "dcterms": "http://purl.org/dc/terms/",
}

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def _text(element: etree._Element | None) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


class NdlAdapter(BibliographicSourcePort):
    """Adapter für die OpenSearch-Schnittstelle der National Diet Library (RSS)."""

    source = DataSource.NDL

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self._client = http_client
        self._timeout = timeout

    async def lookup(self, identifier: str) -> BibliographicRecord | None:
        try:
            response = await self._client.get(
                _BASE_URL, params={"isbn": identifier}, timeout=self._timeout
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalApiError(self.source, str(e)) from e
        except httpx.RequestError as e:
            raise ExternalApiError(self.source, f"Connection error: {e}") from e

        try:
            root = etree.fromstring(response.content, parser=_PARSER)
        except etree.XMLSyntaxError:
            logger.warning("Malformed NDL response for %s", identifier, exc_info=True)
            return None

        item = root.find(".//item")
        if item is None:
            return None
        return self._normalize(identifier, item)

    def _normalize(self, identifier: str, item: etree._Element) -> BibliographicRecord:
        creators = [_text(c) for c in item.findall("dc:creator", _NS)]
        date = _text(item.find("dc:date", _NS)) or _text(item.find("dcterms:issued", _NS))
        return BibliographicRecord(
            identifier=identifier,
            title=_text(item.find("title")),
            authors=creators,
            publisher=_text(item.find("dc:publisher", _NS)),
            publication_date=date,
            source=self.source,
        )
