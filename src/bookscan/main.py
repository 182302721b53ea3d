# src/bookscan/main.py
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from bookscan.api import dependencies
from bookscan.api.v1.router import api_router
from bookscan.core.config import get_settings
from bookscan.core.metrics import REQUEST_COUNT
from bookscan.core.rate_limit import limiter
from bookscan.domain.ports import CatalogStoreError
from bookscan.repositories.base import AbstractCatalogRepository

settings = get_settings()


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        REQUEST_COUNT.labels(
            method=request.method,
            path=request.url.path,
            status_code=str(response.status_code),
        ).inc()
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: Logging konfigurieren
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield
    # Shutdown: laufende Scan-Session abschließen, Clients schließen
    await dependencies.shutdown()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Rate Limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

# Metrics Middleware
app.add_middleware(MetricsMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
)

app.include_router(api_router)


@app.get("/healthz", tags=["Health"])
async def health_check() -> dict[str, str | bool]:
    return {
        "status": "ok",
        "version": settings.app_version,
        "scan_session_active": dependencies.get_active_scan_controller() is not None,
    }


@app.get("/readyz", tags=["Health"])
async def readiness_check(
    repository: AbstractCatalogRepository = Depends(dependencies.get_catalog_repository),
) -> dict[str, str | int]:
    """Bereit, sobald der Katalog-Store erreichbar ist."""
    try:
        entries = await repository.list_all()
    except CatalogStoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return {"status": "ready", "catalog_entries": len(entries)}


@app.get("/metrics", tags=["Monitoring"])
async def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
