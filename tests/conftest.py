# tests/conftest.py
from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

import bookscan.api.dependencies as _deps
from bookscan.core.config import Settings, get_settings
from bookscan.core.rate_limit import limiter
from bookscan.domain.models import DataSource
from bookscan.domain.ports import BibliographicSourcePort
from bookscan.main import app
from bookscan.repositories.catalog_repository import InMemoryCatalogRepository


def _reset_singletons() -> None:
    _deps._repository = None
    _deps._catalog_service = None
    _deps._health_monitor = None
    _deps._scan_controller = None


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        resolver_source_order=["openbd", "open_library", "ndl", "google_books"],
        feedback_webhook_enabled=False,
        source_timeout_seconds=1.0,
    )


@pytest.fixture
def mock_adapter_registry() -> dict[DataSource, AsyncMock]:
    # Keine echten HTTP-Calls: jede Quelle ist ein Mock, der standardmäßig nichts findet
    registry: dict[DataSource, AsyncMock] = {}
    for source in DataSource:
        adapter = AsyncMock(spec=BibliographicSourcePort)
        adapter.source = source
        adapter.lookup.return_value = None
        registry[source] = adapter
    return registry


@pytest.fixture
def repository() -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository()


@pytest.fixture
def client(
    test_settings: Settings,
    mock_adapter_registry: dict[DataSource, BibliographicSourcePort],
    repository: InMemoryCatalogRepository,
) -> Generator[TestClient, None, None]:
    # Singletons zurücksetzen, damit kein Snapshot oder keine Session aus
    # einem vorherigen Test übrig bleibt.
    _reset_singletons()
    limiter.reset()
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[_deps.get_adapter_registry] = lambda: mock_adapter_registry
    app.dependency_overrides[_deps.get_catalog_repository] = lambda: repository
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
        _reset_singletons()
