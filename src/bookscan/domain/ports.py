# src/bookscan/domain/ports.py
from abc import ABC, abstractmethod

from bookscan.domain.models import BibliographicRecord, DataSource


class BibliographicSourcePort(ABC):
    """
    Abstrakte Schnittstelle für externe Buchdatenquellen.
    Jeder Adapter MUSS dieses Interface implementieren.
    Die Core-Domain kennt ausschließlich dieses Interface.
    """

    source: DataSource

    @abstractmethod
    async def lookup(self, identifier: str) -> BibliographicRecord | None:
        """
        Ruft die bibliographischen Daten zu einem Identifier ab und gibt
        einen normalisierten BibliographicRecord zurück.

        Returns:
            None, wenn die Quelle nichts kennt (leere Treffermenge,
            404, unbrauchbare Antwort).

        Raises:
            ExternalApiError: Bei Kommunikationsproblemen mit der externen API
                (Netzwerk, Timeout, 5xx).
        """
        ...


# ---------------------------------------------------------------------------
# Custom Domain Exceptions
# ---------------------------------------------------------------------------


class ExternalApiError(Exception):
    def __init__(self, source: str, detail: str):
        super().__init__(f"External API error from '{source}': {detail}")
        self.source = source
        self.detail = detail


class CatalogStoreError(Exception):
    def __init__(self, operation: str, detail: str):
        super().__init__(f"Catalog store {operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class EntryNotFoundError(Exception):
    def __init__(self, identifier: str):
        super().__init__(f"Catalog entry '{identifier}' not found")
        self.identifier = identifier


class InvalidIdentifierError(ValueError):
    def __init__(self, raw: str):
        super().__init__(f"'{raw}' is not a valid book identifier")
        self.raw = raw


class ClockMismatchError(ValueError):
    def __init__(self, decoder_clock: bool):
        expected = "decoder timestamps" if decoder_clock else "the server clock"
        super().__init__(f"This scan session uses {expected}; do not mix timestamp sources")
        self.decoder_clock = decoder_clock
