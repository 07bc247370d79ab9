from datetime import date, datetime
from typing import Iterable, List, Optional
from fastapi.logger import logger
from sqlmodel import Session, select
from src.api.common.constants.billing import AbsencePolicy, ContractStatus, ExtensionKind, PricingMode
from src.api.common.utils.datetime import add_months, get_local_date
from src.api.billing.schemas.billing import ContractProcessingResult, ProcessingStatus
from src.api.billing.services.record_store import RecordStore
from src.api.contracts.models.contract import Contract, ContractExtension
from src.api.contracts.services.extension_chain import (
    chain_extensions,
    cumulative_allotment,
    exhaustion_moment,
    find_slice_number,
    records_in_slice,
    resolve_invoice_slice,
)
from src.api.invoices.models.invoice import Invoice
from src.api.invoices.services.invoice_assembler import InvoiceAssembler
from src.api.invoices.services.period_calculator import (
    find_period_for_date, period_for_sequence)
from src.api.notifications.services.notification_service import NotificationService
from src.api.notifications.utils.error_logger import log_delivery_error


class BillingTrigger:
    """
    Decides when invoices are created or recomputed for a contract.

    Public operations commit their own transaction. Notifications about new
    invoices are sent after the commit and never affect billing.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = RecordStore(db)
        self.assembler = InvoiceAssembler(db, self.store)
        self._created: List[Invoice] = []

    # Contract events

    def on_contract_sent(self, contract: Contract, today: Optional[date] = None) -> Invoice:
        """
        Create invoice #1 when a contract is sent.

        Prepaid invoices are due today. Postpaid calendar invoices are due at
        the end of the first period; postpaid passes become due once their
        allotment is used up.
        """
        today = today or get_local_date()
        policy = contract.policy
        records = self.store.find_attendance(contract.id)

        if policy.pricing_mode == PricingMode.CALENDAR:
            period_start, period_end = period_for_sequence(
                contract.start_date, contract.billing_day, 1, contract.end_date)
            due_date = today if policy.is_prepaid else period_end
            invoice = self._ensure_invoice(
                contract, 1, due_date, records, period_start, period_end)
        else:
            extensions = chain_extensions(self.store.find_extensions(contract.id))
            slice_records = records_in_slice(records, resolve_invoice_slice(extensions, 1))
            due_date = today if policy.is_prepaid else None
            invoice = self._ensure_invoice(
                contract, 1, due_date, slice_records, tag=today)
            self._evaluate_exhaustion(contract, records, extensions)

        self._commit_and_notify(contract)
        return invoice

    def on_contract_extended(self, contract: Contract, extension: ContractExtension,
                             today: Optional[date] = None) -> List[Invoice]:
        """
        Bill an extension.

        Period extensions recompute the period that was clipped by the old
        end date. Session and amount extensions are billed lazily: the next
        invoice appears once usage reaches the pre-extension total (right
        away if it already has). Postpaid contracts get the extension's
        invoice immediately, without a due date.
        """
        today = today or get_local_date()
        touched: List[Invoice] = []
        records = self.store.find_attendance(contract.id)

        if ExtensionKind(extension.kind) == ExtensionKind.PERIOD:
            if contract.is_calendar and extension.previous_end_date:
                invoice = self._recalculate_calendar(contract, extension.previous_end_date, records)
                if invoice is not None:
                    touched.append(invoice)
        else:
            extensions = chain_extensions(self.store.find_extensions(contract.id))
            if not contract.policy.is_prepaid:
                invoice_number = self._invoice_number_for(extensions, extension)
                slice_records = records_in_slice(
                    records, resolve_invoice_slice(extensions, invoice_number))
                touched.append(self._ensure_invoice(
                    contract, invoice_number, None, slice_records, tag=today))
            touched.extend(self._evaluate_exhaustion(contract, records, extensions))

        self._commit_and_notify(contract)
        return touched

    # Attendance events

    def recalculate_invoice_for_date(self, contract: Contract, moment: datetime) -> Optional[Invoice]:
        """
        Recompute the invoice owning `moment`.

        Calendar contracts: the billing period containing the date, created
        on demand once the contract is sent. Passes: the slice containing
        the timestamp, only when that invoice already exists.
        """
        records = self.store.find_attendance(contract.id)
        invoice = self._recalculate(contract, moment, records)
        self._commit_and_notify(contract)
        return invoice

    def on_attendance_changed(self, contract: Contract, record,
                              previous_moments: Iterable[datetime] = ()) -> List[Invoice]:
        """
        Recompute billing after an attendance record was created, edited
        or voided, then check whether a pass allotment ran out.

        `previous_moments` are timestamps the record no longer counts at,
        such as a makeup date that was changed.
        """
        records = self.store.find_attendance(contract.id)
        touched: List[Invoice] = []

        moments = [record.occurred_at]
        for moment in [record.substitute_at, *previous_moments]:
            if moment is not None and moment not in moments:
                moments.append(moment)
        for moment in moments:
            invoice = self._recalculate(contract, moment, records)
            if invoice is not None and invoice not in touched:
                touched.append(invoice)
            for invoice in self._recalculate_carry_over(contract, moment, records):
                if invoice not in touched:
                    touched.append(invoice)

        if not contract.is_calendar:
            extensions = chain_extensions(self.store.find_extensions(contract.id))
            for invoice in self._evaluate_exhaustion(contract, records, extensions):
                if invoice not in touched:
                    touched.append(invoice)

        self._commit_and_notify(contract)
        return touched

    # Scheduler sweep

    def process_due_contracts(self, today: Optional[date] = None) -> dict:
        """
        Catch contracts whose billing moment arrived without an attendance
        event: the current period of calendar contracts and exhausted passes.

        Returns:
            Dictionary with per-contract results and statistics
        """
        today = today or get_local_date()
        logger.info(f"Processing due contracts for {today}")

        contracts = self.db.exec(
            select(Contract).where(Contract.status == ContractStatus.SENT)
        ).all()

        results = []
        stats = {
            'total_processed': 0,
            'successful': 0,
            'failed': 0,
            'skipped': 0
        }

        for contract in contracts:
            stats['total_processed'] += 1
            try:
                result = self._process_contract(contract, today)
                self._commit_and_notify(contract)
            except Exception as e:
                self.db.rollback()
                self._created = []
                logger.error(f"Error processing contract {contract.id}: {str(e)}")
                log_delivery_error(
                    self.db,
                    channel="billing",
                    operation_type="process_due_contracts",
                    entity_type="contract",
                    entity_id=contract.id,
                    error_message=str(e),
                    contract_id=contract.id,
                )
                result = ContractProcessingResult(
                    contract_id=contract.id,
                    status=ProcessingStatus.FAILED,
                    message=f"Processing error: {str(e)}"
                )

            results.append(result)
            if result.status == ProcessingStatus.SUCCESS:
                stats['successful'] += 1
            elif result.status == ProcessingStatus.FAILED:
                stats['failed'] += 1
            else:
                stats['skipped'] += 1

        return {'results': results, **stats}

    def _process_contract(self, contract: Contract, today: date) -> ContractProcessingResult:
        records = self.store.find_attendance(contract.id)
        if contract.is_calendar:
            invoice = self._recalculate_calendar(contract, today, records)
            if invoice is None:
                return ContractProcessingResult(
                    contract_id=contract.id,
                    status=ProcessingStatus.SKIPPED,
                    message="No billing period contains this date")
            return ContractProcessingResult(
                contract_id=contract.id,
                status=ProcessingStatus.SUCCESS,
                invoice_ids=[invoice.id])

        extensions = chain_extensions(self.store.find_extensions(contract.id))
        invoices = self._evaluate_exhaustion(contract, records, extensions)
        if not invoices:
            return ContractProcessingResult(
                contract_id=contract.id,
                status=ProcessingStatus.SKIPPED,
                message="Allotment not exhausted")
        return ContractProcessingResult(
            contract_id=contract.id,
            status=ProcessingStatus.SUCCESS,
            invoice_ids=[invoice.id for invoice in invoices])

    # Internals

    def _recalculate(self, contract: Contract, moment: datetime, records: list) -> Optional[Invoice]:
        if contract.is_calendar:
            return self._recalculate_calendar(contract, moment.date(), records)

        extensions = chain_extensions(self.store.find_extensions(contract.id))
        invoice_number = find_slice_number(extensions, moment)
        invoice = self.store.find_invoice(contract.id, invoice_number)
        if invoice is None:
            return None
        slice_records = records_in_slice(records, resolve_invoice_slice(extensions, invoice_number))
        return self.assembler.upsert_invoice(
            contract, invoice.year, invoice.month, invoice_number, slice_records)

    def _recalculate_calendar(self, contract: Contract, target: date, records: list) -> Optional[Invoice]:
        if contract.status != ContractStatus.SENT or contract.start_date is None:
            return None
        located = find_period_for_date(
            contract.start_date, contract.billing_day, target, contract.end_date)
        if located is None:
            return None
        invoice_number, period_start, period_end = located

        if contract.policy.is_prepaid:
            return self._ensure_invoice(
                contract, invoice_number, period_start, records, period_start, period_end)
        # Postpaid periods are due on their current period_end
        return self._ensure_invoice(
            contract, invoice_number, period_end, records, period_start, period_end,
            refresh_due_date=True)

    def _recalculate_carry_over(self, contract: Contract, moment: datetime, records: list) -> List[Invoice]:
        """
        Existing invoices that carry the absences of `moment`'s month: calendar
        periods starting the month after, or pass invoices tagged with it.
        """
        policy = contract.policy
        if policy.absence_policy != AbsencePolicy.CARRY_OVER:
            return []
        next_month = add_months(moment.date().replace(day=1), 1)
        target = (next_month.year, next_month.month)
        touched: List[Invoice] = []

        if policy.pricing_mode != PricingMode.CALENDAR:
            extensions = chain_extensions(self.store.find_extensions(contract.id))
            for invoice in self.store.find_invoices(contract.id):
                if (invoice.year, invoice.month) != target:
                    continue
                slice_records = records_in_slice(
                    records, resolve_invoice_slice(extensions, invoice.invoice_number))
                touched.append(self.assembler.upsert_invoice(
                    contract, invoice.year, invoice.month, invoice.invoice_number, slice_records))
            return touched

        for invoice in self.store.find_invoices(contract.id):
            if invoice.period_start is None or invoice.period_end is None:
                continue
            if (invoice.period_start.year, invoice.period_start.month) != target:
                continue
            touched.append(self._ensure_invoice(
                contract, invoice.invoice_number, None, records,
                invoice.period_start, invoice.period_end))
        return touched

    def _evaluate_exhaustion(self, contract: Contract, records: list, extensions: list) -> List[Invoice]:
        """
        Prepaid: create invoice k+1 once usage reaches extensions[k-1]'s
        previous_total, dated to the day it was reached. Postpaid: make
        invoice k due on the day its cumulative allotment was used up.
        """
        policy = contract.policy
        if policy.pricing_mode == PricingMode.CALENDAR:
            return []
        original = contract.original_allotment
        touched: List[Invoice] = []

        if policy.is_prepaid:
            for k in range(1, len(extensions) + 1):
                extension = extensions[k - 1]
                threshold = extension.previous_total
                if threshold is None:
                    threshold = cumulative_allotment(original, extensions, k)
                if self.store.find_invoice(contract.id, k + 1) is not None:
                    continue
                moment = exhaustion_moment(records, threshold, policy.pricing_mode)
                if moment is None:
                    continue
                logger.info(
                    f"Contract {contract.id} used up {threshold} on {moment.date()}; billing extension {k}")
                slice_records = records_in_slice(records, resolve_invoice_slice(extensions, k + 1))
                touched.append(self._ensure_invoice(
                    contract, k + 1, moment.date(), slice_records, tag=moment.date()))
            return touched

        for k in range(1, len(extensions) + 2):
            threshold = cumulative_allotment(original, extensions, k)
            moment = exhaustion_moment(records, threshold, policy.pricing_mode)
            if moment is None:
                break
            invoice = self.store.find_invoice(contract.id, k)
            if invoice is not None and invoice.due_date is not None:
                continue
            logger.info(f"Contract {contract.id} invoice #{k} due on {moment.date()}")
            slice_records = records_in_slice(records, resolve_invoice_slice(extensions, k))
            touched.append(self._ensure_invoice(
                contract, k, moment.date(), slice_records, tag=moment.date()))
        return touched

    def _ensure_invoice(
        self,
        contract: Contract,
        invoice_number: int,
        due_date: Optional[date],
        records: list,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        tag: Optional[date] = None,
        refresh_due_date: bool = False,
    ) -> Invoice:
        """
        Upsert an invoice. The tag only applies when it is new; the due date
        too, unless `refresh_due_date` is set.
        """
        existing = self.store.find_invoice(contract.id, invoice_number)
        if existing is not None:
            year, month = existing.year, existing.month
            if existing.due_date is not None and not refresh_due_date:
                due_date = None
        else:
            tag = tag or due_date or period_end or get_local_date()
            year, month = tag.year, tag.month

        invoice = self.assembler.upsert_invoice(
            contract, year, month, invoice_number, records,
            period_start=period_start, period_end=period_end, due_date=due_date)
        if existing is None:
            self._created.append(invoice)
        return invoice

    def _invoice_number_for(self, extensions: list, extension: ContractExtension) -> int:
        for position, candidate in enumerate(extensions):
            if candidate.id == extension.id:
                return position + 2
        return len(extensions) + 1

    def _commit_and_notify(self, contract: Contract) -> None:
        self.db.commit()
        created, self._created = self._created, []
        if not created:
            return
        notifications = NotificationService(self.db)
        for invoice in created:
            notifications.notify(
                "invoice_created",
                {
                    "invoice_id": invoice.id,
                    "contract_id": contract.id,
                    "invoice_number": invoice.invoice_number,
                    "year": invoice.year,
                    "month": invoice.month,
                    "final_amount": str(invoice.final_amount),
                },
                provider_id=contract.provider_id,
            )
