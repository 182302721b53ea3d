from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from bookscan.api.dependencies import get_resolver
from bookscan.core.config import Settings, get_settings
from bookscan.core.rate_limit import limiter, lookup_rate_limit
from bookscan.domain.identifiers import require_identifier
from bookscan.domain.models import BibliographicRecord, ResolutionPolicy
from bookscan.domain.ports import InvalidIdentifierError
from bookscan.services.resolver import BibliographyResolver

router = APIRouter(prefix="/lookup", tags=["Lookup"])

ResolverDep = Annotated[BibliographyResolver, Depends(get_resolver)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


@router.get("/{identifier}", response_model=BibliographicRecord)
@limiter.limit(lookup_rate_limit)
async def lookup_identifier(
    request: Request,
    identifier: str,
    resolver: ResolverDep,
    settings: SettingsDep,
    policy: ResolutionPolicy | None = None,
) -> BibliographicRecord:
    """
    Sucht ein Buch in allen konfigurierten Quellen, ohne es zu speichern.
    Ein leerer Record bedeutet "nichts gefunden".
    """
    try:
        normalized = require_identifier(
            identifier,
            prefixes=settings.identifier_prefixes,
            verify_checksum=settings.identifier_verify_checksum,
        )
    except InvalidIdentifierError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return await resolver.resolve_bibliography(normalized, policy=policy)
