from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from fastapi.logger import logger
from sqlmodel import Session
from src.api.common.constants.billing import AbsencePolicy, PricingMode, SendStatus
from src.api.common.utils.money import ZERO, to_decimal
from src.api.billing.services.record_store import InvoiceKey, RecordStore
from src.api.contracts.models.contract import Contract
from src.api.contracts.services.extension_chain import chain_extensions
from src.api.invoices.models.invoice import Invoice
from src.api.invoices.services.adjustment_calculator import (
    auto_adjustment, carry_over_adjustment, unit_price)
from src.api.invoices.services.period_calculator import count_sessions_between
from src.api.notifications.utils.error_logger import log_delivery_error


class InvoiceAssembler:
    """
    Builds and upserts the invoice of one billing slice or period.

    Every call recomputes base and automatic adjustment from scratch, so it
    can run after each attendance change without double counting.
    """

    def __init__(self, db: Session, store: Optional[RecordStore] = None):
        self.db = db
        self.store = store or RecordStore(db)

    def upsert_invoice(
        self,
        contract: Contract,
        year: int,
        month: int,
        invoice_number: int,
        attendance_slice: Iterable,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        due_date: Optional[date] = None,
    ) -> Invoice:
        """
        Create or update the invoice (contract, invoice_number).

        Args:
            contract: Contract being billed
            year, month: Due-month tag used when the invoice is created
            invoice_number: 1-based invoice number
            attendance_slice: Records billed by this invoice (for calendar
                contracts, the contract's records; the period bounds filter them)
            period_start, period_end: Billing period of calendar contracts
            due_date: Due date to set; left untouched when None

        Returns:
            The persisted invoice (flushed, not committed)
        """
        policy = contract.policy
        records = list(attendance_slice)

        base_amount = self.resolve_base_amount(contract, invoice_number)
        auto_amount = self.resolve_auto_adjustment(
            contract, records, year, month, period_start, period_end,
            invoice_number=invoice_number)

        existing = self.store.find_invoice(contract.id, invoice_number)
        manual_amount = to_decimal(existing.manual_adjustment) if existing else ZERO

        fields = {
            "base_amount": base_amount,
            "auto_adjustment": auto_amount,
            "final_amount": base_amount + auto_amount + manual_amount,
            "period_start": period_start,
            "period_end": period_end,
        }
        if policy.pricing_mode == PricingMode.CALENDAR and period_start and period_end:
            fields["planned_count"] = policy.planned_count_override or count_sessions_between(
                policy.weekdays, period_start, period_end)
        if due_date is not None:
            fields["due_date"] = due_date
        if existing is None:
            fields["send_status"] = SendStatus.NOT_SENT
            fields["manual_adjustment"] = ZERO
            fields["account_snapshot"] = self._account_snapshot(contract)

        key = InvoiceKey(contract.client_id, contract.id, year, month, invoice_number)
        invoice, created = self.store.upsert_invoice(key, fields)

        action = "created" if created else "updated"
        logger.info(
            f"Invoice #{invoice_number} {action} for contract {contract.id}: "
            f"base={base_amount} auto={auto_amount} final={invoice.final_amount}")
        return invoice

    def resolve_base_amount(self, contract: Contract, invoice_number: int) -> Decimal:
        """
        Base amount of an invoice.

        Invoice 1 and every calendar period bill the contract price. Invoice
        k > 1 bills the (k-1)th extension: its explicit price, else the unit
        price times the added sessions, else the added amount.
        """
        policy = contract.policy
        if invoice_number <= 1 or policy.pricing_mode == PricingMode.CALENDAR:
            return to_decimal(policy.base_price)

        extensions = chain_extensions(contract.extensions)
        if invoice_number - 2 >= len(extensions):
            logger.warning(
                f"Contract {contract.id} has no extension for invoice #{invoice_number}")
            return ZERO
        extension = extensions[invoice_number - 2]

        if extension.extension_price is not None:
            return to_decimal(extension.extension_price)
        if policy.pricing_mode == PricingMode.SESSIONS:
            return unit_price(policy) * Decimal(extension.added_sessions or 0)
        return to_decimal(extension.added_amount)

    def resolve_auto_adjustment(
        self,
        contract: Contract,
        records: list,
        year: int,
        month: int,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        invoice_number: Optional[int] = None,
    ) -> Decimal:
        """
        Current-window adjustment plus the prior month's carried absences.

        Passes carry into the first invoice tagged (year, month), counting
        every record of the contract. Calendar periods carry into the period
        starting the month after.
        """
        policy = contract.policy
        if policy.pricing_mode != PricingMode.CALENDAR:
            current = auto_adjustment(policy, records, year, month)
            if AbsencePolicy(policy.absence_policy) != AbsencePolicy.CARRY_OVER:
                return current
            if self._has_earlier_invoice_tagged(contract, year, month, invoice_number):
                return current
            contract_records = self.store.find_attendance(contract.id)
            return current + carry_over_adjustment(policy, contract_records, year, month)

        if period_start is None or period_end is None:
            return auto_adjustment(policy, records, year, month)

        planned = count_sessions_between(policy.weekdays, period_start, period_end)
        current = auto_adjustment(
            policy, records, year, month, period_start, period_end, planned_count=planned)
        # Prior calendar month's absences land on the period starting the month after
        carried = carry_over_adjustment(policy, records, period_start.year, period_start.month)
        return current + carried

    def _has_earlier_invoice_tagged(
        self, contract: Contract, year: int, month: int, invoice_number: Optional[int]
    ) -> bool:
        if invoice_number is None:
            return False
        return any(
            invoice.invoice_number < invoice_number and (invoice.year, invoice.month) == (year, month)
            for invoice in self.store.find_invoices(contract.id)
        )

    def _account_snapshot(self, contract: Contract) -> Optional[dict]:
        """Payout account at creation: the contract override, else the provider's"""
        try:
            override = contract.policy.account_override
            if override is not None:
                return override.model_dump()
            return contract.provider.account_info()
        except Exception as e:
            log_delivery_error(
                self.db,
                channel="account",
                operation_type="account_snapshot",
                entity_type="contract",
                entity_id=contract.id,
                error_message=str(e),
                contract_id=contract.id,
                commit=False,
            )
            return None
