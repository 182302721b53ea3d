# src/bookscan/domain/models.py
from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------


class DataSource(StrEnum):
    OPENBD = "openbd"
    OPEN_LIBRARY = "open_library"
    NDL = "ndl"
    GOOGLE_BOOKS = "google_books"


class ResolutionPolicy(StrEnum):
    SHORT_CIRCUIT = "short_circuit"
    BACK_FILL = "back_fill"


class ScanFeedback(StrEnum):
    NEW = "new"
    DUPLICATE = "duplicate"


BIBLIOGRAPHIC_FIELDS: tuple[str, ...] = (
    "title",
    "authors",
    "publisher",
    "publication_date",
    "cover_image_url",
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# BibliographicRecord
# Kernkonzept: quellenunabhängiges, normalisiertes Buchmodell.
# ---------------------------------------------------------------------------


class BibliographicRecord(BaseModel):
    """
    Einheitliches Ergebnis eines Source Adapters oder des Resolvers.
    Alle Felder außer ``identifier`` dürfen leer sein.
    """

    identifier: str = Field(min_length=1)
    title: str = ""
    authors: list[str] = Field(default_factory=list)
    publisher: str = ""
    publication_date: str = ""
    cover_image_url: str = ""
    source: DataSource | None = Field(
        default=None, description="Quelle der Primärdaten, None wenn nichts gefunden wurde"
    )

    model_config = {"frozen": True}

    @field_validator("title", "publisher", "publication_date", "cover_image_url", mode="before")
    @classmethod
    def none_to_empty(cls, value: object) -> object:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("authors", mode="before")
    @classmethod
    def drop_blank_authors(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, list):
            return [a.strip() for a in value if isinstance(a, str) and a.strip()]
        return value

    @classmethod
    def empty(cls, identifier: str) -> Self:
        return cls(identifier=identifier)

    @property
    def missing_fields(self) -> list[str]:
        return [name for name in BIBLIOGRAPHIC_FIELDS if not getattr(self, name)]

    @property
    def is_empty(self) -> bool:
        """True means "no data found", not an error."""
        return len(self.missing_fields) == len(BIBLIOGRAPHIC_FIELDS)

    def fill_missing_from(self, other: BibliographicRecord) -> BibliographicRecord:
        """Back-fill: übernimmt nur Felder, die in diesem Record leer sind."""
        update = {
            name: getattr(other, name)
            for name in self.missing_fields
            if getattr(other, name)
        }
        if not update:
            return self
        return self.model_copy(update=update)


# ---------------------------------------------------------------------------
# Aggregate: CatalogEntry
# ---------------------------------------------------------------------------


class CatalogEntry(BaseModel):
    identifier: str = Field(min_length=1, description="Eindeutiger Schlüssel im Katalog")
    title: str = ""
    authors: list[str] = Field(default_factory=list)
    publisher: str = ""
    publication_date: str = ""
    cover_image_url: str = ""

    # Vom Benutzer gepflegt, wird bei einem erneuten Scan nie überschrieben
    shelf_label: str = ""
    location_label: str = ""

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    is_duplicate_on_ingest: bool = False


class CatalogEntryUpdate(BaseModel):
    """Partial user edit; None means "leave unchanged"."""

    shelf_label: str | None = Field(default=None, max_length=256)
    location_label: str | None = Field(default=None, max_length=256)
    title: str | None = None
    authors: list[str] | None = None
    publisher: str | None = None
    publication_date: str | None = None
    cover_image_url: str | None = None


# ---------------------------------------------------------------------------
# Scan Pipeline
# ---------------------------------------------------------------------------


class ScanTicket(BaseModel):
    """Synchronous answer to an accepted decode event."""

    identifier: str
    is_duplicate: bool
    feedback: ScanFeedback
    timestamp: float

    model_config = {"frozen": True}


class IngestionResult(BaseModel):
    identifier: str
    record: BibliographicRecord
    is_duplicate: bool
    timestamp: float
    entry: CatalogEntry | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.entry is not None


# ---------------------------------------------------------------------------
# API Request/Response Schemas
# ---------------------------------------------------------------------------


class ScanEventCreate(BaseModel):
    raw_text: str = Field(max_length=256)
    timestamp: float | None = Field(
        default=None, description="Monotone Sekunden des Decoders; Default ist die Server-Uhr"
    )


class ManualIngestCreate(BaseModel):
    identifier: str = Field(min_length=1, max_length=64)
    shelf_label: str | None = Field(default=None, max_length=256)
    location_label: str | None = Field(default=None, max_length=256)


class ScanSessionStatus(BaseModel):
    active: bool
    in_flight: int = 0
    seen_count: int = 0
