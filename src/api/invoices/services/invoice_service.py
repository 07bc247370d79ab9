from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from fastapi.logger import logger
from sqlalchemy import update
from sqlmodel import Session, select
from src.api.common.config import get_billing_config
from src.api.common.constants.billing import (
    PaymentStatus, PricingMode, SendChannel, SendStatus)
from src.api.common.errors import NotFoundError
from src.api.common.utils.datetime import (
    format_dot_date, get_current_datetime, get_local_date, month_key)
from src.api.common.utils.encryption import mask_value
from src.api.common.utils.money import format_amount
from src.api.contracts.models.contract import Contract
from src.api.contracts.services.extension_chain import chain_extensions, slice_allotment
from src.api.invoices.models.invoice import Invoice
from src.api.notifications.clients.sms import SmsClient, SmsDeliveryError
from src.api.notifications.utils.error_logger import log_delivery_error


class InvoiceService:
    """Service class for reading, sending and correcting invoices."""

    def __init__(self, db: Session, sms_client: Optional[SmsClient] = None):
        self.db = db
        self.sms_client = sms_client or SmsClient()

    def get_invoice(self, provider_id: int, invoice_id: int) -> Optional[Invoice]:
        """Get an invoice by ID"""
        invoice = self.db.get(Invoice, invoice_id)
        if not invoice or invoice.contract.provider_id != provider_id:
            return None
        return invoice

    def get_invoices(
        self,
        provider_id: int,
        contract_id: Optional[int] = None,
        client_id: Optional[int] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
        send_status: Optional[SendStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Invoice]:
        """Get a list of invoices, newest tag first"""
        query = self._provider_query(provider_id)
        if contract_id is not None:
            query = query.where(Invoice.contract_id == contract_id)
        if client_id is not None:
            query = query.where(Invoice.client_id == client_id)
        if year is not None:
            query = query.where(Invoice.year == year)
        if month is not None:
            query = query.where(Invoice.month == month)
        if send_status is not None:
            query = query.where(Invoice.send_status == send_status)
        query = query.order_by(
            Invoice.year.desc(), Invoice.month.desc(), Invoice.contract_id, Invoice.invoice_number)
        return list(self.db.exec(query.offset(skip).limit(limit)).all())

    # Buckets

    @staticmethod
    def is_due(invoice: Invoice, today: date) -> bool:
        """An unsent invoice is due when forced or once its due date arrived"""
        if invoice.send_status == SendStatus.SENT:
            return False
        if invoice.force_to_today_billing:
            return True
        return invoice.due_date is not None and invoice.due_date <= today

    def bucketize(self, invoices: List[Invoice], today: date) -> Dict[str, list]:
        """
        Split invoices into in_progress, due_today and sent.

        Sent invoices are grouped by year/month tag, newest first, and keep
        the display period frozen in their send history.
        """
        buckets = {"in_progress": [], "due_today": [], "sent": []}
        groups: Dict[str, dict] = {}

        for invoice in invoices:
            if invoice.send_status == SendStatus.SENT:
                key = month_key(invoice.year, invoice.month)
                if key not in groups:
                    groups[key] = {"year": invoice.year, "month": invoice.month, "invoices": []}
                groups[key]["invoices"].append(invoice)
            elif self.is_due(invoice, today):
                buckets["due_today"].append(invoice)
            else:
                buckets["in_progress"].append(invoice)

        buckets["sent"] = [groups[key] for key in sorted(groups, reverse=True)]
        return buckets

    def get_billing_overview(self, provider_id: int, today: Optional[date] = None) -> Dict[str, list]:
        """Buckets of every unsent invoice plus those sent for the current month"""
        today = today or get_local_date()
        unsent = self.db.exec(
            self._provider_query(provider_id)
            .where(Invoice.send_status != SendStatus.SENT)
        ).all()
        sent = self.db.exec(
            self._provider_query(provider_id)
            .where(
                Invoice.send_status == SendStatus.SENT,
                Invoice.year == today.year,
                Invoice.month == today.month,
            )
        ).all()
        invoices = sorted(
            [*unsent, *sent],
            key=lambda invoice: (invoice.due_date or date.max, invoice.contract_id, invoice.invoice_number))
        return self.bucketize(invoices, today)

    def get_sendable_invoices(self, provider_id: int, today: Optional[date] = None) -> Dict[str, list]:
        """Invoices due today, split by whether the client has a phone to send to"""
        today = today or get_local_date()
        due = [
            invoice for invoice in self.db.exec(
                self._provider_query(provider_id)
                .where(Invoice.send_status != SendStatus.SENT)
                .order_by(Invoice.contract_id, Invoice.invoice_number)
            ).all()
            if self.is_due(invoice, today)
        ]
        result = {"sendable": [], "not_sendable": []}
        for invoice in due:
            bucket = "sendable" if invoice.client.contact_phone else "not_sendable"
            result[bucket].append(invoice)
        return result

    def get_invoice_history(
        self,
        provider_id: int,
        limit_months: Optional[int] = None,
        today: Optional[date] = None,
    ) -> List[dict]:
        """Invoices tagged before the current month, grouped by month, newest first"""
        today = today or get_local_date()
        limit_months = limit_months or get_billing_config().history_months
        invoices = self.db.exec(
            self._provider_query(provider_id)
            .where(
                (Invoice.year < today.year)
                | ((Invoice.year == today.year) & (Invoice.month < today.month))
            )
            .order_by(Invoice.year.desc(), Invoice.month.desc(), Invoice.created_at.desc())
        ).all()

        groups: List[dict] = []
        for invoice in invoices:
            if not groups or (groups[-1]["year"], groups[-1]["month"]) != (invoice.year, invoice.month):
                if len(groups) >= limit_months:
                    break
                groups.append({"year": invoice.year, "month": invoice.month, "invoices": []})
            groups[-1]["invoices"].append(invoice)
        return groups

    # Sending

    def display_period(self, invoice: Invoice) -> str:
        """
        Service period shown on a sent invoice.

        Session passes show the session count of the invoice's slice, amount
        passes the contract validity and calendar contracts the billing
        period.
        """
        contract = invoice.contract
        policy = contract.policy
        if policy.pricing_mode == PricingMode.SESSIONS:
            if invoice.invoice_number <= 1:
                sessions = policy.total_sessions or 0
            else:
                extensions = chain_extensions(contract.extensions)
                index = invoice.invoice_number - 2
                sessions = int(slice_allotment(extensions[index])) if index < len(extensions) else 0
            return f"{sessions}회"
        if policy.pricing_mode == PricingMode.AMOUNT:
            return f"{format_dot_date(contract.start_date)} ~ {format_dot_date(contract.end_date)}"
        return f"{format_dot_date(invoice.period_start)} ~ {format_dot_date(invoice.period_end)}"

    def send_invoices(
        self,
        provider_id: int,
        invoice_ids: List[int],
        channel: SendChannel,
    ) -> List[dict]:
        """
        Send invoices and record each attempt in their send history.

        A text message that fails to go out is recorded as a failed attempt
        and leaves the invoice unsent. Link and messenger sends succeed once
        recorded.

        Raises:
            NotFoundError: any of the invoices is missing or not owned
        """
        invoices = []
        for invoice_id in invoice_ids:
            invoice = self.get_invoice(provider_id, invoice_id)
            if not invoice:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            invoices.append(invoice)

        results = []
        for invoice in invoices:
            client = invoice.client
            phone = client.contact_phone
            display_period = self.display_period(invoice)
            sent_at = get_current_datetime()
            entry = {
                "channel": channel.value,
                "success": True,
                "sent_at": sent_at.isoformat(),
                "display_period": display_period,
                "sent_to": mask_value(phone) or None,
            }

            if channel == SendChannel.SMS:
                try:
                    if not phone:
                        raise SmsDeliveryError("Client has no phone number")
                    self.sms_client.send_sms(phone, self._sms_message(invoice, display_period))
                except SmsDeliveryError as e:
                    entry["success"] = False
                    entry["error"] = str(e)
                    log_delivery_error(
                        self.db,
                        channel="sms",
                        operation_type="send_invoice",
                        entity_type="invoice",
                        entity_id=invoice.id,
                        error_message=str(e),
                        contract_id=invoice.contract_id,
                        commit=False,
                    )

            # Reassign so the JSON column is flagged as changed
            invoice.send_history = [*(invoice.send_history or []), entry]
            if entry["success"]:
                invoice.send_status = SendStatus.SENT
                invoice.force_to_today_billing = False
            invoice.touch()
            self.db.add(invoice)

            logger.info(
                f"Invoice {invoice.id} sent via {channel.value}: "
                f"{'ok' if entry['success'] else entry.get('error')}")
            results.append({
                "invoice_id": invoice.id,
                "client_name": client.name,
                "channel": channel,
                "success": entry["success"],
                "sent_at": sent_at,
                "display_period": display_period,
                "sent_to": entry["sent_to"],
                "error": entry.get("error"),
            })

        self.db.commit()
        return results

    def _sms_message(self, invoice: Invoice, display_period: str) -> str:
        provider = invoice.contract.provider
        link = f"{get_billing_config().public_base_url.rstrip('/')}/invoices/{invoice.id}"
        return (
            f"[{provider.display_name}] {invoice.client.name}님 "
            f"{invoice.year}년 {invoice.month}월 청구서입니다.\n"
            f"이용 기간: {display_period}\n"
            f"청구 금액: {format_amount(invoice.final_amount)}원\n"
            f"{link}"
        )

    # Corrections

    def move_to_today_billing(self, provider_id: int, invoice_id: int) -> Invoice:
        """Force an invoice into today's billing regardless of its due date"""
        invoice = self._find(provider_id, invoice_id)
        invoice.force_to_today_billing = True
        invoice.touch()
        self.db.add(invoice)
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def update_manual_adjustment(
        self,
        provider_id: int,
        invoice_id: int,
        amount: Decimal,
        reason: Optional[str] = None,
    ) -> Invoice:
        """
        Set the manual adjustment and recompute the final amount.

        The final amount is computed in the same UPDATE statement from the
        stored base and automatic adjustment.
        """
        invoice = self._find(provider_id, invoice_id)
        self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice.id)
            .values(
                manual_adjustment=amount,
                manual_reason=reason,
                final_amount=Invoice.base_amount + Invoice.auto_adjustment + amount,
                updated_at=get_current_datetime(),
            )
        )
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.id} manual adjustment set to {amount}")
        return invoice

    def mark_as_paid(self, provider_id: int, invoice_id: int, paid_at: Optional[datetime] = None) -> Invoice:
        """Record that the client paid; no money is moved"""
        invoice = self._find(provider_id, invoice_id)
        if invoice.payment_status != PaymentStatus.PAID:
            invoice.payment_status = PaymentStatus.PAID
            invoice.paid_at = paid_at or get_current_datetime()
            invoice.touch()
            self.db.add(invoice)
            self.db.commit()
            self.db.refresh(invoice)
        return invoice

    def _find(self, provider_id: int, invoice_id: int) -> Invoice:
        invoice = self.get_invoice(provider_id, invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    @staticmethod
    def _provider_query(provider_id: int):
        return (
            select(Invoice)
            .join(Contract, Contract.id == Invoice.contract_id)
            .where(Contract.provider_id == provider_id)
        )
