from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from src.api.common.constants.billing import SendStatus
from src.api.common.dependencies import get_provider_id
from src.api.common.errors import BillingError, to_http_exception
from src.api.common.utils.database import get_db
from src.api.invoices.schemas.invoice import (
    InvoiceBuckets,
    InvoiceMonthGroup,
    InvoiceRead,
    InvoiceSendRequest,
    InvoiceSendResult,
    ManualAdjustmentRequest,
    SendableInvoices,
)
from src.api.invoices.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["invoices"])


def get_invoice_service(db: Session = Depends(get_db)):
    return InvoiceService(db)


@router.get("/", response_model=List[InvoiceRead])
def get_invoices(
    contract_id: Optional[int] = None,
    client_id: Optional[int] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    send_status: Optional[SendStatus] = None,
    skip: int = 0,
    limit: int = 100,
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Get a list of invoices"""
    return invoice_service.get_invoices(
        provider_id, contract_id, client_id, year, month, send_status, skip, limit)


@router.get("/overview", response_model=InvoiceBuckets)
def get_billing_overview(
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Invoices split into in progress, due today and sent this month"""
    return invoice_service.get_billing_overview(provider_id)


@router.get("/sendable", response_model=SendableInvoices)
def get_sendable_invoices(
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Invoices due today, split by whether they can be texted"""
    return invoice_service.get_sendable_invoices(provider_id)


@router.get("/history", response_model=List[InvoiceMonthGroup])
def get_invoice_history(
    limit_months: Optional[int] = None,
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Invoices of previous months, grouped by month"""
    return invoice_service.get_invoice_history(provider_id, limit_months)


@router.post("/send", response_model=List[InvoiceSendResult])
def send_invoices(
    send_request: InvoiceSendRequest,
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Send invoices by text message, messenger or link"""
    try:
        return invoice_service.send_invoices(
            provider_id, send_request.invoice_ids, send_request.channel)
    except BillingError as e:
        raise to_http_exception(e)


@router.get("/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: int,
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Get an invoice by ID"""
    invoice = invoice_service.get_invoice(provider_id, invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.post("/{invoice_id}/move-to-today", response_model=InvoiceRead)
def move_to_today_billing(
    invoice_id: int,
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Bill an invoice today regardless of its due date"""
    try:
        return invoice_service.move_to_today_billing(provider_id, invoice_id)
    except BillingError as e:
        raise to_http_exception(e)


@router.patch("/{invoice_id}/manual-adjustment", response_model=InvoiceRead)
def update_manual_adjustment(
    invoice_id: int,
    adjustment: ManualAdjustmentRequest,
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Set the manual adjustment of an invoice"""
    try:
        return invoice_service.update_manual_adjustment(
            provider_id, invoice_id, adjustment.manual_adjustment, adjustment.manual_reason)
    except BillingError as e:
        raise to_http_exception(e)


@router.post("/{invoice_id}/paid", response_model=InvoiceRead)
def mark_as_paid(
    invoice_id: int,
    provider_id: int = Depends(get_provider_id),
    invoice_service: InvoiceService = Depends(get_invoice_service)
):
    """Mark an invoice as paid"""
    try:
        return invoice_service.mark_as_paid(provider_id, invoice_id)
    except BillingError as e:
        raise to_http_exception(e)
