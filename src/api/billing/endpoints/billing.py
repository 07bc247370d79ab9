from typing import Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session
from src.api.common.dependencies import get_provider_id
from src.api.common.errors import BillingError, to_http_exception
from src.api.common.utils.database import get_db
from src.api.billing.schemas.billing import (
    ProcessContractsRequest, ProcessContractsResponse, RecalculateRequest)
from src.api.billing.services.billing_trigger import BillingTrigger
from src.api.billing.services.record_store import RecordStore
from src.api.common.utils.datetime import normalize_datetime
from src.api.invoices.schemas.invoice import InvoiceRead

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/process-contracts", response_model=ProcessContractsResponse)
def process_contracts(
    request: ProcessContractsRequest,
    db: Session = Depends(get_db)
):
    """
    Scheduler entry point.

    This endpoint will:
    1. Ensure the current-period invoice of every sent calendar contract.
    2. Re-evaluate allotment exhaustion of every sent session/amount contract.
    3. Report per-contract results; a failing contract does not stop the run.
    """
    trigger = BillingTrigger(db)
    return trigger.process_due_contracts(request.today)


@router.post("/contracts/{contract_id}/recalculate", response_model=Optional[InvoiceRead])
def recalculate_invoice(
    contract_id: int,
    request: RecalculateRequest,
    provider_id: int = Depends(get_provider_id),
    db: Session = Depends(get_db)
):
    """Recompute the invoice owning a moment of the contract"""
    try:
        contract = RecordStore(db).find_contract(contract_id, provider_id)
    except BillingError as e:
        raise to_http_exception(e)
    return BillingTrigger(db).recalculate_invoice_for_date(
        contract, normalize_datetime(request.moment))
