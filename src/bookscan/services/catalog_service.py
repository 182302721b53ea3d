# src/bookscan/services/catalog_service.py
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import TypeVar

from bookscan.core.metrics import CATALOG_WRITES
from bookscan.domain.models import (
    BIBLIOGRAPHIC_FIELDS,
    BibliographicRecord,
    CatalogEntry,
    CatalogEntryUpdate,
)
from bookscan.domain.ports import CatalogStoreError, EntryNotFoundError
from bookscan.repositories.base import AbstractCatalogRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CatalogService:
    """
    Reconciles resolved records into the catalog and owns the in-memory snapshot.

    The snapshot is the merge base for every write and is only updated after
    the store confirmed that write. Writes for the same identifier are
    serialized; different identifiers proceed concurrently.
    """

    def __init__(self, repository: AbstractCatalogRepository) -> None:
        self._repo = repository
        self._snapshot: dict[str, CatalogEntry] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Von hier gelöscht, im Store evtl. noch sichtbar
        self._deleted: set[str] = set()

    async def load(self) -> list[CatalogEntry]:
        """
        Rebuilds the snapshot from the store.

        The store may lag behind our own writes, so for each identifier the
        newer of stored and local version wins, local entries missing from the
        listing are kept and entries deleted here stay deleted.
        """
        entries = await self._repo.list_all()
        merged = dict(self._snapshot)
        for e in entries:
            if e.identifier in self._deleted:
                continue
            local = merged.get(e.identifier)
            if local is None or e.updated_at >= local.updated_at:
                merged[e.identifier] = e
        self._snapshot = merged
        logger.info("Loaded %d catalog entries", len(self._snapshot))
        return self.list_entries()

    def known_identifiers(self) -> set[str]:
        return set(self._snapshot)

    def get_entry(self, identifier: str) -> CatalogEntry | None:
        return self._snapshot.get(identifier)

    def list_entries(self) -> list[CatalogEntry]:
        return sorted(self._snapshot.values(), key=lambda e: e.created_at, reverse=True)

    def search(self, query: str, limit: int = 50) -> list[CatalogEntry]:
        query_lower = query.lower()
        results = [
            e
            for e in self.list_entries()
            if query_lower in e.title.lower()
            or query_lower in e.publisher.lower()
            or query_lower in e.identifier
            or any(query_lower in a.lower() for a in e.authors)
        ]
        return results[:limit]

    async def ingest(
        self,
        identifier: str,
        record: BibliographicRecord,
        is_duplicate: bool,
        *,
        shelf_label: str | None = None,
        location_label: str | None = None,
    ) -> CatalogEntry:
        async with self._locks[identifier]:
            existing = self._snapshot.get(identifier)
            entry = self._merge(
                existing, identifier, record, is_duplicate, shelf_label, location_label
            )
            await self._write("upsert", self._repo.upsert(entry))
            self._snapshot[identifier] = entry
            self._deleted.discard(identifier)

        logger.info(
            "%s catalog entry %s (duplicate=%s)",
            "Updated" if existing else "Created",
            identifier,
            is_duplicate,
        )
        return entry

    async def update_entry(self, identifier: str, payload: CatalogEntryUpdate) -> CatalogEntry:
        async with self._locks[identifier]:
            if identifier not in self._snapshot:
                raise EntryNotFoundError(identifier)
            fields = payload.model_dump(exclude_none=True)
            fields["updated_at"] = datetime.now(UTC)
            updated = await self._write("update", self._repo.update(identifier, fields))
            self._snapshot[identifier] = updated
        return updated

    async def delete_entry(self, identifier: str) -> bool:
        async with self._locks[identifier]:
            if identifier not in self._snapshot:
                return False
            await self._write("delete", self._repo.delete(identifier))
            # Der Store kann das Löschen verspätet sehen, der Snapshot nicht
            del self._snapshot[identifier]
            self._deleted.add(identifier)
        return True

    @staticmethod
    def _merge(
        existing: CatalogEntry | None,
        identifier: str,
        record: BibliographicRecord,
        is_duplicate: bool,
        shelf_label: str | None,
        location_label: str | None,
    ) -> CatalogEntry:
        now = datetime.now(UTC)
        if existing is None:
            return CatalogEntry(
                identifier=identifier,
                **{name: getattr(record, name) for name in BIBLIOGRAPHIC_FIELDS},
                shelf_label=shelf_label or "",
                location_label=location_label or "",
                created_at=now,
                updated_at=now,
                is_duplicate_on_ingest=is_duplicate,
            )

        # Nur nicht-leere Felder überschreiben, eine fehlgeschlagene
        # Auflösung darf keine vorhandenen Daten löschen.
        update: dict[str, object] = {
            name: getattr(record, name)
            for name in BIBLIOGRAPHIC_FIELDS
            if getattr(record, name)
        }
        if shelf_label is not None:
            update["shelf_label"] = shelf_label
        if location_label is not None:
            update["location_label"] = location_label
        update["updated_at"] = now
        update["is_duplicate_on_ingest"] = is_duplicate
        return existing.model_copy(update=update)

    @staticmethod
    async def _write(operation: str, call: Awaitable[T]) -> T:
        try:
            result = await call
        except CatalogStoreError:
            CATALOG_WRITES.labels(operation=operation, status="error").inc()
            raise
        CATALOG_WRITES.labels(operation=operation, status="ok").inc()
        return result
