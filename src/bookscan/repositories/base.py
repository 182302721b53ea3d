from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bookscan.domain.models import CatalogEntry


class AbstractCatalogRepository(ABC):
    """
    Catalog store keyed by identifier with last-write-wins semantics.

    Implementations raise ``CatalogStoreError`` when the backing store fails.
    Callers must not rely on read-after-write consistency.
    """

    @abstractmethod
    async def list_all(self) -> list[CatalogEntry]:
        """Returns every catalog entry."""
        ...

    @abstractmethod
    async def find_by_identifier(self, identifier: str) -> CatalogEntry | None:
        """Finds a catalog entry by its identifier."""
        ...

    @abstractmethod
    async def upsert(self, entry: CatalogEntry) -> CatalogEntry:
        """Inserts the entry or replaces the one with the same identifier."""
        ...

    @abstractmethod
    async def update(self, identifier: str, fields: dict[str, Any]) -> CatalogEntry:
        """Applies a partial update. Raises EntryNotFoundError for unknown identifiers."""
        ...

    @abstractmethod
    async def delete(self, identifier: str) -> bool:
        """Deletes an entry by identifier. Returns True if deleted."""
        ...
