# src/bookscan/api/v1/scans.py
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from bookscan.api import dependencies as deps
from bookscan.core.config import Settings, get_settings
from bookscan.domain.models import IngestionResult, ScanEventCreate, ScanSessionStatus, ScanTicket
from bookscan.domain.ports import CatalogStoreError, ClockMismatchError
from bookscan.services.catalog_service import CatalogService
from bookscan.services.feedback_notifier import FeedbackNotifier
from bookscan.services.resolver import BibliographyResolver
from bookscan.services.scan_controller import ScanController

router = APIRouter(tags=["Scans"])

SettingsDep = Annotated[Settings, Depends(get_settings)]
ResolverDep = Annotated[BibliographyResolver, Depends(deps.get_resolver)]
CatalogDep = Annotated[CatalogService, Depends(deps.get_catalog_service)]
NotifierDep = Annotated[FeedbackNotifier, Depends(deps.get_feedback_notifier)]
ControllerDep = Annotated[ScanController | None, Depends(deps.get_active_scan_controller)]


def _status(controller: ScanController | None) -> ScanSessionStatus:
    if controller is None:
        return ScanSessionStatus(active=False)
    return ScanSessionStatus(
        active=controller.active,
        in_flight=controller.in_flight,
        seen_count=controller.seen_count,
    )


def _require_session(controller: ScanController | None) -> ScanController:
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="No active scan session."
        )
    return controller


@router.get("/scan-session", response_model=ScanSessionStatus)
async def get_scan_session(controller: ControllerDep) -> ScanSessionStatus:
    return _status(controller)


@router.post(
    "/scan-session", response_model=ScanSessionStatus, status_code=status.HTTP_201_CREATED
)
async def start_scan_session(
    settings: SettingsDep,
    resolver: ResolverDep,
    catalog: CatalogDep,
    notifier: NotifierDep,
    controller: ControllerDep,
) -> ScanSessionStatus:
    """
    Startet eine Scan-Session: Katalog laden, SeenSet neu aufbauen.
    """
    if controller is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="A scan session is already active."
        )
    try:
        started = await deps.start_scan_session(settings, resolver, catalog, notifier)
    except CatalogStoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return _status(started)


@router.delete("/scan-session", response_model=ScanSessionStatus)
async def stop_scan_session(controller: ControllerDep) -> ScanSessionStatus:
    """
    Beendet die Session. Laufende Ingestions werden abgeschlossen, nicht abgebrochen.
    """
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No active scan session."
        )
    await deps.stop_scan_session()
    return _status(None)


@router.post(
    "/scans",
    response_model=ScanTicket,
    status_code=status.HTTP_202_ACCEPTED,
    responses={204: {"description": "Decode event discarded (invalid or debounced)"}},
)
async def submit_scan(
    payload: ScanEventCreate, controller: ControllerDep
) -> ScanTicket | Response:
    session = _require_session(controller)
    try:
        ticket = session.handle_decode(payload.raw_text, payload.timestamp)
    except ClockMismatchError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    if ticket is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return ticket


@router.get("/scans/results", response_model=list[IngestionResult])
async def get_scan_results(
    controller: ControllerDep,
    limit: int = Query(20, ge=1, le=50),
) -> list[IngestionResult]:
    session = _require_session(controller)
    return session.recent_results(limit)
