from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.providers.schemas.provider import ProviderCreate, ProviderRead, ProviderUpdate
from src.api.providers.services.provider_service import ProviderService

router = APIRouter(prefix="/providers", tags=["providers"])


def get_provider_service(db: Session = Depends(get_db)):
    return ProviderService(db)


@router.post("/", response_model=ProviderRead)
def create_provider(
    provider_data: ProviderCreate,
    provider_service: ProviderService = Depends(get_provider_service)
):
    """Create a new provider"""
    return provider_service.create_provider(provider_data)


@router.get("/{provider_id}", response_model=ProviderRead)
def get_provider(
    provider_id: int,
    provider_service: ProviderService = Depends(get_provider_service)
):
    """Get a provider by ID"""
    provider = provider_service.get_provider(provider_id)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider


@router.get("/", response_model=List[ProviderRead])
def get_providers(
    skip: int = 0,
    limit: int = 100,
    provider_service: ProviderService = Depends(get_provider_service)
):
    """Get a list of providers"""
    return provider_service.get_providers(skip, limit)


@router.put("/{provider_id}", response_model=ProviderRead)
def update_provider(
    provider_id: int,
    provider_data: ProviderUpdate,
    provider_service: ProviderService = Depends(get_provider_service)
):
    """Update a provider"""
    provider = provider_service.update_provider(provider_id, provider_data)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider
