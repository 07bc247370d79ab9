from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from src.api.common.dependencies import get_provider_id
from src.api.common.utils.database import get_db
from src.api.clients.schemas.client import ClientCreate, ClientRead, ClientUpdate
from src.api.clients.services.client_service import ClientService

router = APIRouter(prefix="/clients", tags=["clients"])


def get_client_service(db: Session = Depends(get_db)):
    return ClientService(db)


@router.post("/", response_model=ClientRead)
def create_client(
    client_data: ClientCreate,
    provider_id: int = Depends(get_provider_id),
    client_service: ClientService = Depends(get_client_service)
):
    """Create a new client"""
    return client_service.create_client(provider_id, client_data)


@router.get("/{client_id}", response_model=ClientRead)
def get_client(
    client_id: int,
    provider_id: int = Depends(get_provider_id),
    client_service: ClientService = Depends(get_client_service)
):
    """Get a client by ID"""
    client = client_service.get_client(provider_id, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get("/", response_model=List[ClientRead])
def get_clients(
    active_only: bool = False,
    skip: int = 0,
    limit: int = 100,
    provider_id: int = Depends(get_provider_id),
    client_service: ClientService = Depends(get_client_service)
):
    """Get a list of clients"""
    return client_service.get_clients(provider_id, active_only, skip, limit)


@router.put("/{client_id}", response_model=ClientRead)
def update_client(
    client_id: int,
    client_data: ClientUpdate,
    provider_id: int = Depends(get_provider_id),
    client_service: ClientService = Depends(get_client_service)
):
    """Update a client"""
    client = client_service.update_client(provider_id, client_id, client_data)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.delete("/{client_id}")
def archive_client(
    client_id: int,
    provider_id: int = Depends(get_provider_id),
    client_service: ClientService = Depends(get_client_service)
):
    """Archive a client"""
    success = client_service.archive_client(provider_id, client_id)
    if not success:
        raise HTTPException(status_code=404, detail="Client not found")
    return {"message": "Client archived successfully"}
