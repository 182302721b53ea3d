# src/bookscan/services/scan_controller.py
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import Self

from bookscan.core.config import Settings
from bookscan.core.metrics import SCAN_EVENTS, SCAN_FEEDBACK
from bookscan.domain.identifiers import DEFAULT_PREFIXES, parse_identifier
from bookscan.domain.models import (
    BibliographicRecord,
    CatalogEntry,
    IngestionResult,
    ResolutionPolicy,
    ScanFeedback,
    ScanTicket,
)
from bookscan.domain.ports import CatalogStoreError, ClockMismatchError
from bookscan.services.catalog_service import CatalogService
from bookscan.services.resolver import BibliographyResolver
from bookscan.services.scan_history import ScanHistory

logger = logging.getLogger(__name__)

FeedbackCallback = Callable[[str, ScanFeedback], None]
ResultCallback = Callable[[IngestionResult], None]


class ScanController:
    """
    Turns the raw decode stream of one scan session into ingestion requests.

    ``handle_decode`` is synchronous on purpose: filtering, debouncing and
    duplicate classification happen in event order before anything is
    awaited. Resolution and persistence run as background tasks, so a slow
    lookup for one identifier never holds up the next decode event.
    """

    def __init__(
        self,
        resolver: BibliographyResolver,
        catalog: CatalogService,
        *,
        debounce_window: float = 1.5,
        retention_seconds: float = 60.0,
        identifier_prefixes: Iterable[str] = DEFAULT_PREFIXES,
        verify_checksum: bool = False,
        on_feedback: FeedbackCallback | None = None,
        on_result: ResultCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        result_history: int = 50,
    ) -> None:
        self._resolver = resolver
        self._catalog = catalog
        self._debounce_window = debounce_window
        self._retention = retention_seconds
        self._prefixes = tuple(identifier_prefixes)
        self._verify_checksum = verify_checksum
        self._on_feedback = on_feedback
        self._on_result = on_result
        self._clock = clock

        self._history: ScanHistory | None = None
        # True: Zeitstempel vom Decoder, False: Uhr des Controllers
        self._decoder_clock: bool | None = None
        self._tasks: set[asyncio.Task[IngestionResult]] = set()
        self._results: deque[IngestionResult] = deque(maxlen=result_history)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        resolver: BibliographyResolver,
        catalog: CatalogService,
        on_feedback: FeedbackCallback | None = None,
        on_result: ResultCallback | None = None,
    ) -> ScanController:
        return cls(
            resolver,
            catalog,
            debounce_window=settings.debounce_window_seconds,
            retention_seconds=settings.debounce_retention_seconds,
            identifier_prefixes=settings.identifier_prefixes,
            verify_checksum=settings.identifier_verify_checksum,
            on_feedback=on_feedback,
            on_result=on_result,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._history is not None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def seen_count(self) -> int:
        return self._history.seen_count if self._history else 0

    async def start(self) -> None:
        """Loads the catalog snapshot and rebuilds the SeenSet from it."""
        if self.active:
            return
        await self._catalog.load()
        self._history = ScanHistory(
            debounce_window=self._debounce_window,
            retention_seconds=self._retention,
            seen=self._catalog.known_identifiers(),
        )
        self._decoder_clock = None
        logger.info("Scan session started with %d known identifiers", self.seen_count)

    async def stop(self) -> None:
        """Ignores further decode events and waits for in-flight ingestions."""
        if not self.active:
            return
        self._history = None
        await self.drain()
        logger.info("Scan session stopped")

    async def drain(self) -> None:
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for outcome in results:
                if isinstance(outcome, BaseException):
                    logger.error("Ingestion task failed", exc_info=outcome)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Decode events
    # ------------------------------------------------------------------

    def handle_decode(self, raw_text: str, timestamp: float | None = None) -> ScanTicket | None:
        """
        Runs filter, debounce and classification for one decode event.

        Returns None when the event is discarded (no session, invalid text,
        repeat inside the debounce window). Otherwise the feedback callback
        has already fired and ingestion is scheduled.
        Raises ClockMismatchError when the event switches between decoder
        timestamps and the controller clock within one session.
        """
        history = self._history
        if history is None:
            SCAN_EVENTS.labels(outcome="ignored").inc()
            return None

        identifier = parse_identifier(
            raw_text, prefixes=self._prefixes, verify_checksum=self._verify_checksum
        )
        if identifier is None:
            SCAN_EVENTS.labels(outcome="invalid").inc()
            logger.debug("Discarding invalid decode %r", raw_text)
            return None

        self._check_clock(timestamp)
        ts = self._clock() if timestamp is None else timestamp
        if not history.accept(identifier, ts):
            SCAN_EVENTS.labels(outcome="debounced").inc()
            return None

        is_duplicate = history.classify(identifier)
        feedback = ScanFeedback.DUPLICATE if is_duplicate else ScanFeedback.NEW
        SCAN_EVENTS.labels(outcome="accepted").inc()
        SCAN_FEEDBACK.labels(kind=feedback).inc()
        self._emit_feedback(identifier, feedback)

        task = asyncio.create_task(self._ingest(identifier, is_duplicate, ts))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return ScanTicket(
            identifier=identifier, is_duplicate=is_duplicate, feedback=feedback, timestamp=ts
        )

    def forget(self, identifier: str) -> None:
        """Drops an identifier that left the catalog (user delete)."""
        if self._history is not None:
            self._history.forget(identifier)

    def recent_results(self, limit: int | None = None) -> list[IngestionResult]:
        results = list(reversed(self._results))
        return results[:limit] if limit is not None else results

    # ------------------------------------------------------------------
    # Manual entry
    # ------------------------------------------------------------------

    async def ingest_manual(
        self,
        identifier: str,
        *,
        policy: ResolutionPolicy | None = None,
        shelf_label: str | None = None,
        location_label: str | None = None,
    ) -> CatalogEntry:
        """
        Typed entry while a session runs.

        Classified against the same SeenSet as decode events, so a scan of the
        identifier that is still in flight counts. It is not debounced and
        emits no feedback signal; store failures propagate to the caller.
        """
        if self._history is not None:
            is_duplicate = self._history.classify(identifier)
        else:
            is_duplicate = identifier in self._catalog.known_identifiers()
        record = await self._resolver.resolve_bibliography(identifier, policy=policy)
        return await self._persist(
            identifier,
            record,
            is_duplicate,
            shelf_label=shelf_label,
            location_label=location_label,
        )

    # ------------------------------------------------------------------
    # Background ingestion
    # ------------------------------------------------------------------

    async def _ingest(
        self, identifier: str, is_duplicate: bool, timestamp: float
    ) -> IngestionResult:
        record = await self._resolver.resolve_bibliography(identifier)
        try:
            entry = await self._persist(identifier, record, is_duplicate)
        except CatalogStoreError as e:
            logger.exception("Failed to store catalog entry %s", identifier)
            result = IngestionResult(
                identifier=identifier,
                record=record,
                is_duplicate=is_duplicate,
                timestamp=timestamp,
                error=str(e),
            )
        else:
            result = IngestionResult(
                identifier=identifier,
                record=record,
                is_duplicate=is_duplicate,
                timestamp=timestamp,
                entry=entry,
            )

        self._results.append(result)
        if self._on_result is not None:
            self._on_result(result)
        return result

    async def _persist(
        self,
        identifier: str,
        record: BibliographicRecord,
        is_duplicate: bool,
        *,
        shelf_label: str | None = None,
        location_label: str | None = None,
    ) -> CatalogEntry:
        """Writes through the reconciler and keeps the SeenSet equal to the catalog keys."""
        try:
            entry = await self._catalog.ingest(
                identifier,
                record,
                is_duplicate,
                shelf_label=shelf_label,
                location_label=location_label,
            )
        except CatalogStoreError:
            # Nicht als gesehen behalten, was nie im Katalog angekommen ist
            if (
                not is_duplicate
                and self._history is not None
                and self._catalog.get_entry(identifier) is None
            ):
                self._history.forget(identifier)
            raise

        # Ein früherer Fehlschlag kann den Identifier vergessen haben
        if self._history is not None:
            self._history.mark_seen(identifier)
        return entry

    def _check_clock(self, timestamp: float | None) -> None:
        """A session uses either decoder timestamps or the controller clock, never both."""
        from_decoder = timestamp is not None
        if self._decoder_clock is None:
            self._decoder_clock = from_decoder
        elif self._decoder_clock != from_decoder:
            raise ClockMismatchError(decoder_clock=self._decoder_clock)

    def _emit_feedback(self, identifier: str, feedback: ScanFeedback) -> None:
        if self._on_feedback is None:
            return
        try:
            self._on_feedback(identifier, feedback)
        except Exception:
            logger.exception("Feedback callback failed for %s", identifier)
