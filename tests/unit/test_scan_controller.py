from unittest.mock import AsyncMock, MagicMock

import pytest

from bookscan.core.config import Settings
from bookscan.domain.models import (
    BibliographicRecord,
    CatalogEntry,
    DataSource,
    IngestionResult,
    ResolutionPolicy,
    ScanFeedback,
)
from bookscan.domain.ports import CatalogStoreError, ClockMismatchError
from bookscan.repositories.base import AbstractCatalogRepository
from bookscan.repositories.catalog_repository import InMemoryCatalogRepository
from bookscan.services.catalog_service import CatalogService
from bookscan.services.resolver import BibliographyResolver
from bookscan.services.scan_controller import ScanController

ISBN = "9784000000000"


@pytest.fixture
def resolver() -> AsyncMock:
    mock = AsyncMock(spec=BibliographyResolver)
    mock.resolve_bibliography.side_effect = lambda identifier, policy=None: BibliographicRecord(
        identifier=identifier, title="T", source=DataSource.OPENBD
    )
    return mock


@pytest.fixture
def repository() -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository()


@pytest.fixture
def catalog(repository: InMemoryCatalogRepository) -> CatalogService:
    return CatalogService(repository=repository)


@pytest.fixture
def feedback() -> MagicMock:
    return MagicMock()


@pytest.fixture
def controller(
    resolver: AsyncMock, catalog: CatalogService, feedback: MagicMock
) -> ScanController:
    return ScanController(resolver, catalog, debounce_window=1.5, on_feedback=feedback)


@pytest.mark.asyncio  # type: ignore[misc]
async def test_invalid_decode_is_discarded_without_side_effects(
    controller: ScanController,
    resolver: AsyncMock,
    repository: InMemoryCatalogRepository,
    feedback: MagicMock,
) -> None:
    async with controller:
        assert controller.handle_decode("4901234567894", 0.0) is None
        assert controller.handle_decode("hello world", 0.1) is None

    resolver.resolve_bibliography.assert_not_called()
    feedback.assert_not_called()
    assert await repository.list_all() == []


@pytest.mark.asyncio  # type: ignore[misc]
async def test_debounce_and_duplicate_classification(
    controller: ScanController,
    resolver: AsyncMock,
    catalog: CatalogService,
    feedback: MagicMock,
) -> None:
    async with controller:
        first = controller.handle_decode(ISBN, 0.0)
        repeat = controller.handle_decode(ISBN, 0.5)
        later = controller.handle_decode(ISBN, 2.0)

    assert first is not None
    assert first.is_duplicate is False
    assert first.feedback == ScanFeedback.NEW
    assert repeat is None
    assert later is not None
    assert later.is_duplicate is True
    assert later.feedback == ScanFeedback.DUPLICATE

    assert [c.args for c in feedback.call_args_list] == [
        (ISBN, ScanFeedback.NEW),
        (ISBN, ScanFeedback.DUPLICATE),
    ]
    assert resolver.resolve_bibliography.await_count == 2
    entry = catalog.get_entry(ISBN)
    assert entry is not None
    assert entry.title == "T"
    assert entry.is_duplicate_on_ingest is True


@pytest.mark.asyncio  # type: ignore[misc]
async def test_identifier_known_from_catalog_is_duplicate(
    resolver: AsyncMock, repository: InMemoryCatalogRepository
) -> None:
    await repository.upsert(CatalogEntry(identifier=ISBN, title="Already here"))
    controller = ScanController(resolver, CatalogService(repository=repository))

    async with controller:
        assert controller.seen_count == 1
        ticket = controller.handle_decode(ISBN, 0.0)

    assert ticket is not None
    assert ticket.is_duplicate is True


@pytest.mark.asyncio  # type: ignore[misc]
async def test_feedback_fires_before_resolution(
    resolver: AsyncMock, catalog: CatalogService
) -> None:
    events: list[str] = []

    async def resolve(identifier: str) -> BibliographicRecord:
        events.append("resolve")
        return BibliographicRecord.empty(identifier)

    resolver.resolve_bibliography.side_effect = resolve
    controller = ScanController(
        resolver, catalog, on_feedback=lambda identifier, kind: events.append(f"feedback:{kind}")
    )

    async with controller:
        controller.handle_decode(ISBN, 0.0)
        # handle_decode ist synchron: Feedback ist schon da, Auflösung noch nicht
        assert events == ["feedback:new"]
        assert controller.in_flight == 1

    assert events == ["feedback:new", "resolve"]


@pytest.mark.asyncio  # type: ignore[misc]
async def test_failing_feedback_callback_does_not_stop_ingestion(
    resolver: AsyncMock, catalog: CatalogService
) -> None:
    controller = ScanController(resolver, catalog, on_feedback=MagicMock(side_effect=RuntimeError))

    async with controller:
        ticket = controller.handle_decode(ISBN, 0.0)

    assert ticket is not None
    assert catalog.get_entry(ISBN) is not None


@pytest.mark.asyncio  # type: ignore[misc]
async def test_store_failure_forgets_new_identifier(resolver: AsyncMock) -> None:
    repository = AsyncMock(spec=AbstractCatalogRepository)
    repository.list_all.return_value = []
    repository.upsert.side_effect = CatalogStoreError("upsert", "unavailable")
    results: list[IngestionResult] = []
    controller = ScanController(
        resolver, CatalogService(repository=repository), on_result=results.append
    )

    await controller.start()
    controller.handle_decode(ISBN, 0.0)
    await controller.drain()

    assert len(results) == 1
    assert results[0].succeeded is False
    assert "unavailable" in (results[0].error or "")
    # Ein späterer Scan gilt wieder als neu
    assert controller.seen_count == 0
    ticket = controller.handle_decode(ISBN, 5.0)
    assert ticket is not None
    assert ticket.is_duplicate is False
    await controller.stop()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_stop_drains_in_flight_ingestions(
    controller: ScanController, catalog: CatalogService
) -> None:
    await controller.start()
    controller.handle_decode(ISBN, 0.0)
    controller.handle_decode("9790000000001", 0.1)

    await controller.stop()

    assert controller.active is False
    assert controller.in_flight == 0
    assert catalog.known_identifiers() == {ISBN, "9790000000001"}
    assert [r.identifier for r in controller.recent_results()] == ["9790000000001", ISBN]
    assert all(r.succeeded for r in controller.recent_results())


@pytest.mark.asyncio  # type: ignore[misc]
async def test_decode_without_session_is_ignored(
    controller: ScanController, resolver: AsyncMock
) -> None:
    assert controller.handle_decode(ISBN, 0.0) is None
    resolver.resolve_bibliography.assert_not_called()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_from_settings_uses_configured_prefixes(
    resolver: AsyncMock, catalog: CatalogService
) -> None:
    settings = Settings(identifier_prefixes=["979"], debounce_window_seconds=0.1)
    controller = ScanController.from_settings(settings, resolver, catalog)

    async with controller:
        assert controller.handle_decode(ISBN, 0.0) is None
        assert controller.handle_decode("9790000000001", 0.0) is not None
        assert controller.handle_decode("9790000000001", 0.2) is not None


class FlakyRepository(InMemoryCatalogRepository):
    """Erster Upsert schlägt fehl, alle weiteren gehen durch."""

    def __init__(self) -> None:
        super().__init__()
        self.failures_left = 1

    async def upsert(self, entry: CatalogEntry) -> CatalogEntry:
        if self.failures_left:
            self.failures_left -= 1
            raise CatalogStoreError("upsert", "busy")
        return await super().upsert(entry)


@pytest.mark.asyncio  # type: ignore[misc]
async def test_later_successful_write_restores_seen_state(resolver: AsyncMock) -> None:
    catalog = CatalogService(repository=FlakyRepository())
    controller = ScanController(resolver, catalog)

    async with controller:
        controller.handle_decode(ISBN, 0.0)
        controller.handle_decode(ISBN, 2.0)
        await controller.drain()

        assert catalog.get_entry(ISBN) is not None
        ticket = controller.handle_decode(ISBN, 4.0)

    assert ticket is not None
    assert ticket.is_duplicate is True
    assert [r.succeeded for r in controller.recent_results()] == [True, True, False]


@pytest.mark.asyncio  # type: ignore[misc]
async def test_deleted_identifier_scans_as_new_again(
    controller: ScanController, catalog: CatalogService
) -> None:
    async with controller:
        controller.handle_decode(ISBN, 0.0)
        await controller.drain()

        assert await catalog.delete_entry(ISBN) is True
        controller.forget(ISBN)
        ticket = controller.handle_decode(ISBN, 5.0)
        await controller.drain()

    assert ticket is not None
    assert ticket.is_duplicate is False
    entry = catalog.get_entry(ISBN)
    assert entry is not None
    assert entry.is_duplicate_on_ingest is False


@pytest.mark.asyncio  # type: ignore[misc]
async def test_manual_entry_sees_scan_still_in_flight(
    controller: ScanController, catalog: CatalogService, resolver: AsyncMock
) -> None:
    async with controller:
        ticket = controller.handle_decode(ISBN, 0.0)
        assert controller.in_flight == 1

        entry = await controller.ingest_manual(
            ISBN, policy=ResolutionPolicy.BACK_FILL, shelf_label="A-1"
        )

    assert ticket is not None
    assert ticket.is_duplicate is False
    assert entry.is_duplicate_on_ingest is True
    assert entry.shelf_label == "A-1"
    resolver.resolve_bibliography.assert_any_await(ISBN, policy=ResolutionPolicy.BACK_FILL)
    assert catalog.get_entry(ISBN) is not None


@pytest.mark.asyncio  # type: ignore[misc]
async def test_manual_entry_makes_next_scan_a_duplicate(controller: ScanController) -> None:
    async with controller:
        await controller.ingest_manual(ISBN)
        ticket = controller.handle_decode(ISBN, 0.0)

    assert ticket is not None
    assert ticket.is_duplicate is True


@pytest.mark.asyncio  # type: ignore[misc]
async def test_manual_entry_store_failure_propagates_and_forgets(resolver: AsyncMock) -> None:
    controller = ScanController(resolver, CatalogService(repository=FlakyRepository()))

    async with controller:
        with pytest.raises(CatalogStoreError):
            await controller.ingest_manual(ISBN)
        assert controller.seen_count == 0

        ticket = controller.handle_decode(ISBN, 0.0)

    assert ticket is not None
    assert ticket.is_duplicate is False


@pytest.mark.asyncio  # type: ignore[misc]
async def test_mixed_timestamp_sources_are_rejected(controller: ScanController) -> None:
    async with controller:
        assert controller.handle_decode(ISBN, 0.0) is not None
        with pytest.raises(ClockMismatchError):
            controller.handle_decode("9790000000001")

    # Neue Session, neue Uhr
    async with controller:
        assert controller.handle_decode("9790000000001") is not None
        with pytest.raises(ClockMismatchError) as exc_info:
            controller.handle_decode(ISBN, 10.0)

    assert exc_info.value.decoder_clock is False


@pytest.mark.asyncio  # type: ignore[misc]
async def test_invalid_decode_does_not_fix_the_clock(controller: ScanController) -> None:
    async with controller:
        assert controller.handle_decode("not a barcode", 0.0) is None
        assert controller.handle_decode(ISBN) is not None
