# src/bookscan/api/dependencies.py
from functools import lru_cache

import httpx
from fastapi import Depends

from bookscan.adapters.google_books import GoogleBooksAdapter
from bookscan.adapters.ndl import NdlAdapter
from bookscan.adapters.open_library import OpenLibraryAdapter
from bookscan.adapters.openbd import OpenBdAdapter
from bookscan.core.config import Settings, get_settings
from bookscan.domain.models import DataSource
from bookscan.domain.ports import BibliographicSourcePort
from bookscan.repositories.base import AbstractCatalogRepository
from bookscan.repositories.sqlite_catalog_repository import SQLiteCatalogRepository
from bookscan.services.catalog_service import CatalogService
from bookscan.services.feedback_notifier import FeedbackNotifier
from bookscan.services.resolver import BibliographyResolver
from bookscan.services.scan_controller import ScanController
from bookscan.services.source_health import SourceHealthMonitor


# Shared HTTP Client (Connection Pooling)
@lru_cache
def get_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": "BookScanner/1.0 (personal catalog)"},
        follow_redirects=True,
    )


def get_adapter_registry(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> dict[DataSource, BibliographicSourcePort]:
    """Liefert die Registry aller verfügbaren Adapter."""
    timeout = settings.source_timeout_seconds
    return {
        DataSource.OPENBD: OpenBdAdapter(http_client=client, timeout=timeout),
        DataSource.OPEN_LIBRARY: OpenLibraryAdapter(http_client=client, timeout=timeout),
        DataSource.NDL: NdlAdapter(http_client=client, timeout=timeout),
        DataSource.GOOGLE_BOOKS: GoogleBooksAdapter(
            http_client=client, api_key=settings.google_books_api_key, timeout=timeout
        ),
    }


# Singleton Health Monitor (über Requests hinweg)
_health_monitor: SourceHealthMonitor | None = None


def get_source_health_monitor(
    settings: Settings = Depends(get_settings),
) -> SourceHealthMonitor:
    global _health_monitor
    if _health_monitor is None:
        _health_monitor = SourceHealthMonitor(
            degraded_threshold=settings.source_degraded_threshold
        )
    return _health_monitor


def get_resolver(
    adapter_registry: dict[DataSource, BibliographicSourcePort] = Depends(get_adapter_registry),
    health_monitor: SourceHealthMonitor = Depends(get_source_health_monitor),
    settings: Settings = Depends(get_settings),
) -> BibliographyResolver:
    return BibliographyResolver(
        adapter_registry=adapter_registry,
        lookup_order=settings.resolver_source_order,
        policy=settings.resolution_policy,
        timeout_seconds=settings.source_timeout_seconds,
        health_monitor=health_monitor,
        deprioritize_degraded=settings.deprioritize_degraded_sources,
    )


# Singleton Repository (Initialisiert beim ersten Zugriff)
_repository: AbstractCatalogRepository | None = None


async def get_catalog_repository(
    settings: Settings = Depends(get_settings),
) -> AbstractCatalogRepository:
    global _repository
    if _repository is None:
        repo = SQLiteCatalogRepository(database_url=settings.database_url)
        await repo.initialize()
        _repository = repo
    return _repository


# Singleton Catalog Service: hält den In-Memory-Snapshot
_catalog_service: CatalogService | None = None


async def get_catalog_service(
    repository: AbstractCatalogRepository = Depends(get_catalog_repository),
) -> CatalogService:
    global _catalog_service
    if _catalog_service is None:
        service = CatalogService(repository=repository)
        await service.load()
        _catalog_service = service
    return _catalog_service


def get_feedback_notifier(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> FeedbackNotifier:
    return FeedbackNotifier(http_client=client, settings=settings)


# Aktive Scan-Session (höchstens eine pro Prozess)
_scan_controller: ScanController | None = None


def get_active_scan_controller() -> ScanController | None:
    if _scan_controller is not None and _scan_controller.active:
        return _scan_controller
    return None


async def start_scan_session(
    settings: Settings,
    resolver: BibliographyResolver,
    catalog: CatalogService,
    notifier: FeedbackNotifier,
) -> ScanController:
    global _scan_controller
    controller = ScanController.from_settings(
        settings, resolver, catalog, on_feedback=notifier.notify
    )
    await controller.start()
    _scan_controller = controller
    return controller


async def stop_scan_session() -> ScanController | None:
    global _scan_controller
    controller, _scan_controller = _scan_controller, None
    if controller is not None:
        await controller.stop()
    return controller


async def shutdown() -> None:
    """Stops the scan session and releases shared clients (app lifespan)."""
    global _repository, _catalog_service, _health_monitor
    await stop_scan_session()
    await get_http_client().aclose()
    get_http_client.cache_clear()
    if isinstance(_repository, SQLiteCatalogRepository):
        await _repository.dispose()
    _repository = None
    _catalog_service = None
    _health_monitor = None
