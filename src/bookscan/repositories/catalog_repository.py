# src/bookscan/repositories/catalog_repository.py
from __future__ import annotations

from typing import Any

from bookscan.domain.models import CatalogEntry
from bookscan.domain.ports import EntryNotFoundError
from bookscan.repositories.base import AbstractCatalogRepository


class InMemoryCatalogRepository(AbstractCatalogRepository):
    """
    In-Memory Repository für Tests und den Einzelplatz-Einsatz.
    Interface kann gegen die SQLAlchemy-Implementierung ausgetauscht werden.
    """

    def __init__(self) -> None:
        # Struktur: {identifier: CatalogEntry}
        self._store: dict[str, CatalogEntry] = {}

    async def list_all(self) -> list[CatalogEntry]:
        return list(self._store.values())

    async def find_by_identifier(self, identifier: str) -> CatalogEntry | None:
        return self._store.get(identifier)

    async def upsert(self, entry: CatalogEntry) -> CatalogEntry:
        self._store[entry.identifier] = entry
        return entry

    async def update(self, identifier: str, fields: dict[str, Any]) -> CatalogEntry:
        entry = self._store.get(identifier)
        if entry is None:
            raise EntryNotFoundError(identifier)
        updated = CatalogEntry.model_validate(entry.model_dump() | fields)
        self._store[identifier] = updated
        return updated

    async def delete(self, identifier: str) -> bool:
        return self._store.pop(identifier, None) is not None
