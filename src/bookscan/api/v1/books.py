from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from bookscan.api import dependencies as deps
from bookscan.core.config import Settings, get_settings
from bookscan.domain.identifiers import require_identifier
from bookscan.domain.models import CatalogEntry, CatalogEntryUpdate, ManualIngestCreate
from bookscan.domain.ports import CatalogStoreError, EntryNotFoundError, InvalidIdentifierError
from bookscan.services.catalog_service import CatalogService
from bookscan.services.resolver import BibliographyResolver
from bookscan.services.scan_controller import ScanController

router = APIRouter(prefix="/books", tags=["Books"])

SettingsDep = Annotated[Settings, Depends(get_settings)]
ResolverDep = Annotated[BibliographyResolver, Depends(deps.get_resolver)]
CatalogDep = Annotated[CatalogService, Depends(deps.get_catalog_service)]
ControllerDep = Annotated[ScanController | None, Depends(deps.get_active_scan_controller)]


def _store_unavailable(e: CatalogStoreError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/", response_model=list[CatalogEntry])
async def list_books(
    catalog: CatalogDep,
    q: str | None = None,
    limit: int = Query(100, ge=1, le=500),
) -> list[CatalogEntry]:
    """
    Aktueller Katalog-Snapshot, neueste Einträge zuerst.
    """
    if q:
        return catalog.search(q, limit=limit)
    return catalog.list_entries()[:limit]


@router.get("/{identifier}", response_model=CatalogEntry)
async def get_book(identifier: str, catalog: CatalogDep) -> CatalogEntry:
    entry = catalog.get_entry(identifier)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found.")
    return entry


@router.post("/", response_model=CatalogEntry, status_code=status.HTTP_201_CREATED)
async def ingest_book(
    payload: ManualIngestCreate,
    settings: SettingsDep,
    resolver: ResolverDep,
    catalog: CatalogDep,
    controller: ControllerDep,
) -> CatalogEntry:
    """
    Manuelle Erfassung über die eingetippte ISBN, optional direkt mit Regal und Standort.
    """
    try:
        identifier = require_identifier(
            payload.identifier,
            prefixes=settings.identifier_prefixes,
            verify_checksum=settings.identifier_verify_checksum,
        )
    except InvalidIdentifierError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    try:
        if controller is not None:
            # Gleiche SeenSet-Klassifikation wie laufende Scans
            return await controller.ingest_manual(
                identifier,
                policy=settings.manual_resolution_policy,
                shelf_label=payload.shelf_label,
                location_label=payload.location_label,
            )
        is_duplicate = identifier in catalog.known_identifiers()
        record = await resolver.resolve_bibliography(
            identifier, policy=settings.manual_resolution_policy
        )
        return await catalog.ingest(
            identifier,
            record,
            is_duplicate,
            shelf_label=payload.shelf_label,
            location_label=payload.location_label,
        )
    except CatalogStoreError as e:
        raise _store_unavailable(e)


@router.patch("/{identifier}", response_model=CatalogEntry)
async def update_book(
    identifier: str, payload: CatalogEntryUpdate, catalog: CatalogDep
) -> CatalogEntry:
    try:
        return await catalog.update_entry(identifier, payload)
    except EntryNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found.")
    except CatalogStoreError as e:
        raise _store_unavailable(e)


@router.delete("/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    identifier: str, catalog: CatalogDep, controller: ControllerDep
) -> Response:
    try:
        deleted = await catalog.delete_entry(identifier)
    except CatalogStoreError as e:
        raise _store_unavailable(e)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found.")
    if controller is not None:
        controller.forget(identifier)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
