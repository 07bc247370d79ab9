from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from src.api.common.constants.billing import ContractStatus
from src.api.common.dependencies import get_provider_id
from src.api.common.errors import BillingError, to_http_exception
from src.api.common.utils.database import get_db
from src.api.contracts.schemas.contract import (
    ContractCreate,
    ContractExtend,
    ContractExtensionRead,
    ContractRead,
    ContractStatusUpdate,
    UnprocessedAttendance,
)
from src.api.contracts.services.contract_service import ContractService

router = APIRouter(prefix="/contracts", tags=["contracts"])


def get_contract_service(db: Session = Depends(get_db)):
    return ContractService(db)


@router.post("/", response_model=ContractRead)
def create_contract(
    contract_data: ContractCreate,
    provider_id: int = Depends(get_provider_id),
    contract_service: ContractService = Depends(get_contract_service)
):
    """Create a draft contract"""
    try:
        return contract_service.create_contract(provider_id, contract_data)
    except BillingError as e:
        raise to_http_exception(e)


@router.get("/", response_model=List[ContractRead])
def get_contracts(
    client_id: Optional[int] = None,
    status: Optional[ContractStatus] = None,
    skip: int = 0,
    limit: int = 100,
    provider_id: int = Depends(get_provider_id),
    contract_service: ContractService = Depends(get_contract_service)
):
    """Get a list of contracts"""
    return contract_service.get_contracts(provider_id, client_id, status, skip, limit)


@router.get("/today", response_model=List[ContractRead])
def get_today_contracts(
    provider_id: int = Depends(get_provider_id),
    contract_service: ContractService = Depends(get_contract_service)
):
    """Contracts with a class scheduled today"""
    return contract_service.get_today_contracts(provider_id)


@router.get("/{contract_id}", response_model=ContractRead)
def get_contract(
    contract_id: int,
    provider_id: int = Depends(get_provider_id),
    contract_service: ContractService = Depends(get_contract_service)
):
    """Get a contract by ID"""
    contract = contract_service.get_contract(provider_id, contract_id)
    if not contract:
        raise HTTPException(status_code=404, detail="Contract not found")
    return contract


@router.patch("/{contract_id}/status", response_model=ContractRead)
def update_contract_status(
    contract_id: int,
    status_data: ContractStatusUpdate,
    provider_id: int = Depends(get_provider_id),
    contract_service: ContractService = Depends(get_contract_service)
):
    """Confirm or send a contract"""
    try:
        return contract_service.update_status(provider_id, contract_id, status_data)
    except BillingError as e:
        raise to_http_exception(e)


@router.post("/{contract_id}/extend", response_model=ContractExtensionRead)
def extend_contract(
    contract_id: int,
    extend_data: ContractExtend,
    provider_id: int = Depends(get_provider_id),
    contract_service: ContractService = Depends(get_contract_service)
):
    """Append an extension to the contract"""
    try:
        return contract_service.extend_contract(provider_id, contract_id, extend_data)
    except BillingError as e:
        raise to_http_exception(e)


@router.get("/{contract_id}/unprocessed", response_model=UnprocessedAttendance)
def get_unprocessed_attendance(
    contract_id: int,
    start: date,
    end: date,
    provider_id: int = Depends(get_provider_id),
    contract_service: ContractService = Depends(get_contract_service)
):
    """Scheduled class dates without attendance in [start, end]"""
    try:
        dates = contract_service.get_unprocessed_dates(provider_id, contract_id, start, end)
    except BillingError as e:
        raise to_http_exception(e)
    return UnprocessedAttendance(contract_id=contract_id, dates=dates)
