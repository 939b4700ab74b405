"""Provider discovery: what can be connected and which permissions exist."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import get_catalog
from providers.catalog import ProviderCatalog
from schemas.dto.responses.providers import ProviderInfo, ProvidersListResponse

router = APIRouter(prefix="/providers", tags=["System"])


@router.get("", response_model=ProvidersListResponse)
async def list_providers(
    catalog: ProviderCatalog = Depends(get_catalog),
) -> ProvidersListResponse:
    return ProvidersListResponse(
        providers=[ProviderInfo.from_provider(p) for p in catalog.all()]
    )
