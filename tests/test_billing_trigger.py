import pytest
from datetime import date, datetime
from decimal import Decimal

from src.api.common.constants.billing import (
    AbsencePolicy, AttendanceStatus, BillingMode, ContractStatus)
from src.api.attendance.schemas.attendance import AttendanceUpdate, AttendanceVoid
from src.api.attendance.services.attendance_service import AttendanceService
from src.api.billing.schemas.billing import ProcessingStatus
from src.api.billing.services.billing_trigger import BillingTrigger
from src.api.billing.services.record_store import RecordStore
from src.api.notifications.services.notification_service import NotificationService


def attend_days(factory, session, contract, month, days, status=AttendanceStatus.PRESENT):
    return [
        factory.record_attendance(session, contract, datetime(2024, month, day, 15), status)
        for day in days
    ]


def invoices_of(session, contract):
    return RecordStore(session).find_invoices(contract.id)


class TestContractSent:
    """Test the first invoice"""

    def test_prepaid_pass_due_on_send(self, test_session, test_data_factory):
        """Prepaid passes are billed the day they are sent"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT, today=date(2024, 1, 3))
        invoices = invoices_of(test_session, contract)

        assert len(invoices) == 1
        assert invoices[0].invoice_number == 1
        assert invoices[0].due_date == date(2024, 1, 3)
        assert (invoices[0].year, invoices[0].month) == (2024, 1)
        assert invoices[0].final_amount == Decimal("100000")

    def test_postpaid_pass_has_no_due_date(self, test_session, test_data_factory):
        """Postpaid passes wait for the allotment to run out"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT, billing_mode=BillingMode.POSTPAID)
        invoice = invoices_of(test_session, contract)[0]

        assert invoice.due_date is None

    def test_postpaid_calendar_due_at_period_end(self, test_session, test_data_factory):
        """Postpaid calendar invoices are due when the period closes"""
        contract = test_data_factory.create_calendar_contract(
            test_session, status=ContractStatus.SENT, billing_mode=BillingMode.POSTPAID)
        invoice = invoices_of(test_session, contract)[0]

        assert (invoice.period_start, invoice.period_end) == (date(2024, 1, 1), date(2024, 1, 31))
        assert invoice.due_date == date(2024, 1, 31)

    def test_invoice_created_notification(self, test_session, test_data_factory):
        """A new invoice queues a notification for the provider"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        notifications = NotificationService(test_session).get_notifications(contract.provider_id)

        assert [n.event for n in notifications] == ["invoice_created"]
        assert notifications[0].payload["contract_id"] == contract.id


class TestLazyExtensionBilling:
    """Test when extension invoices appear"""

    def test_extension_billed_when_previous_allotment_used(self, test_session, test_data_factory):
        """Invoice 2 waits until the tenth session of a ten-session pass"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        attend_days(test_data_factory, test_session, contract, 1, range(2, 9))
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 8, 20))

        assert len(invoices_of(test_session, contract)) == 1

        attend_days(test_data_factory, test_session, contract, 1, [9, 10])
        assert len(invoices_of(test_session, contract)) == 1

        test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 11, 15))
        invoices = invoices_of(test_session, contract)
        assert len(invoices) == 2
        assert invoices[1].invoice_number == 2
        assert invoices[1].due_date == date(2024, 1, 11)
        assert invoices[1].base_amount == Decimal("50000")

    def test_invoice_tagged_with_exhaustion_month(self, test_session, test_data_factory):
        """The extension invoice carries the month its allotment ran out"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 5, 9))
        attend_days(test_data_factory, test_session, contract, 2, range(1, 11))

        invoice = RecordStore(test_session).find_invoice(contract.id, 2)
        assert invoice is not None
        assert (invoice.year, invoice.month) == (2024, 2)
        assert invoice.due_date == date(2024, 2, 10)

    def test_extension_after_exhaustion_billed_immediately(self, test_session, test_data_factory):
        """Extending an already used-up pass bills right away"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        attend_days(test_data_factory, test_session, contract, 1, range(2, 12))
        assert len(invoices_of(test_session, contract)) == 1

        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 15, 9))
        invoices = invoices_of(test_session, contract)

        assert len(invoices) == 2
        assert invoices[1].due_date == date(2024, 1, 11)

    def test_only_one_invoice_per_extension(self, test_session, test_data_factory):
        """Further attendance updates the existing extension invoice"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        attend_days(test_data_factory, test_session, contract, 1, range(2, 12))
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 15, 9))
        attend_days(test_data_factory, test_session, contract, 1, [16, 17])

        assert [invoice.invoice_number for invoice in invoices_of(test_session, contract)] == [1, 2]

    def test_amount_pass_extension(self, test_session, test_data_factory):
        """Amount passes are billed again once the balance is spent"""
        contract = test_data_factory.create_amount_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.extend_contract(
            test_session, contract, added_amount=Decimal("200000"), extended_at=datetime(2024, 1, 2, 9))

        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 10, 15), amount=Decimal("200000"))
        assert len(invoices_of(test_session, contract)) == 1

        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 17, 15), amount=Decimal("100000"))
        invoices = invoices_of(test_session, contract)
        assert len(invoices) == 2
        assert invoices[1].base_amount == Decimal("200000")
        assert invoices[1].due_date == date(2024, 1, 17)


class TestPostpaidPasses:
    """Test due dates of postpaid passes"""

    def test_due_when_allotment_used(self, test_session, test_data_factory):
        """The invoice becomes due on the day the last session is used"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT, billing_mode=BillingMode.POSTPAID)
        attend_days(test_data_factory, test_session, contract, 1, range(2, 11))
        assert invoices_of(test_session, contract)[0].due_date is None

        test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 11, 15))
        invoice = invoices_of(test_session, contract)[0]
        assert invoice.due_date == date(2024, 1, 11)
        assert (invoice.year, invoice.month) == (2024, 1)

    def test_postpaid_extension_invoice_created_on_extend(self, test_session, test_data_factory):
        """Postpaid extensions get their invoice at once, without a due date"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT, billing_mode=BillingMode.POSTPAID)
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 5, 9))
        invoices = invoices_of(test_session, contract)

        assert [invoice.invoice_number for invoice in invoices] == [1, 2]
        assert invoices[1].due_date is None


class TestCalendarAdjustments:
    """Test absence adjustments on calendar contracts"""

    def test_deduct_next_absences(self, test_session, test_data_factory):
        """Two absences in January reduce the January invoice by two unit prices"""
        contract = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.SENT)
        attend_days(test_data_factory, test_session, contract, 1, [9, 11], AttendanceStatus.ABSENT)
        invoice = invoices_of(test_session, contract)[0]

        assert invoice.planned_count == 9
        assert invoice.auto_adjustment == Decimal("-22222")
        assert invoice.final_amount == Decimal("77778")

    def test_voided_absence_restores_amount(self, test_session, test_data_factory):
        """Voiding an absence removes its deduction"""
        contract = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.SENT)
        record = test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 9, 15), AttendanceStatus.ABSENT)
        assert invoices_of(test_session, contract)[0].auto_adjustment == Decimal("-11111")

        AttendanceService(test_session).void_attendance(
            contract.provider_id, record.id, AttendanceVoid(void_reason="Recorded by mistake"))
        invoice = invoices_of(test_session, contract)[0]
        assert invoice.auto_adjustment == Decimal("0")
        assert invoice.final_amount == Decimal("100000")

    def test_status_correction_recomputes(self, test_session, test_data_factory):
        """Correcting an absence to present removes the deduction"""
        contract = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.SENT)
        record = test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 9, 15), AttendanceStatus.ABSENT)

        AttendanceService(test_session).update_attendance(
            contract.provider_id, record.id,
            AttendanceUpdate(status=AttendanceStatus.PRESENT, change_reason="Arrived late"))
        assert invoices_of(test_session, contract)[0].auto_adjustment == Decimal("0")

    def test_vanish_policy(self, test_session, test_data_factory):
        """vanish deducts vanished sessions only"""
        contract = test_data_factory.create_calendar_contract(
            test_session, status=ContractStatus.SENT, absence_policy=AbsencePolicy.VANISH)
        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 9, 15), AttendanceStatus.VANISH)
        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 11, 15), AttendanceStatus.ABSENT)

        assert invoices_of(test_session, contract)[0].auto_adjustment == Decimal("-11111")


class TestCarryOver:
    """Test absences carried into the next period"""

    def test_absence_deducted_once_in_next_period(self, test_session, test_data_factory):
        """A January absence reduces February only"""
        contract = test_data_factory.create_calendar_contract(
            test_session, status=ContractStatus.SENT, absence_policy=AbsencePolicy.CARRY_OVER)
        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 16, 15), AttendanceStatus.ABSENT)

        trigger = BillingTrigger(test_session)
        trigger.process_due_contracts(today=date(2024, 2, 1))
        trigger.process_due_contracts(today=date(2024, 2, 1))
        trigger.process_due_contracts(today=date(2024, 3, 1))

        invoices = invoices_of(test_session, contract)
        assert [invoice.invoice_number for invoice in invoices] == [1, 2, 3]
        assert [invoice.auto_adjustment for invoice in invoices] == [
            Decimal("0"), Decimal("-11111"), Decimal("0")]
        assert (invoices[1].year, invoices[1].month) == (2024, 2)

    def test_late_absence_updates_existing_next_invoice(self, test_session, test_data_factory):
        """An absence recorded after February was billed still reaches February"""
        contract = test_data_factory.create_calendar_contract(
            test_session, status=ContractStatus.SENT, absence_policy=AbsencePolicy.CARRY_OVER)
        BillingTrigger(test_session).process_due_contracts(today=date(2024, 2, 1))

        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 30, 15), AttendanceStatus.ABSENT)
        invoices = invoices_of(test_session, contract)

        assert invoices[0].auto_adjustment == Decimal("0")
        assert invoices[1].auto_adjustment == Decimal("-11111")

    def test_pass_absence_deducted_on_next_month_invoice(self, test_session, test_data_factory):
        """A January absence on a pass reduces the invoice tagged February"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT, absence_policy=AbsencePolicy.CARRY_OVER)
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 5, 9))
        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 16, 15), AttendanceStatus.ABSENT)
        attend_days(test_data_factory, test_session, contract, 2, range(1, 10))

        invoices = invoices_of(test_session, contract)
        assert [(i.invoice_number, i.year, i.month) for i in invoices] == [(1, 2024, 1), (2, 2024, 2)]
        assert invoices[0].auto_adjustment == Decimal("0")
        assert invoices[1].auto_adjustment == Decimal("-10000")
        assert invoices[1].final_amount == Decimal("40000")

    def test_pass_late_absence_updates_tagged_invoice(self, test_session, test_data_factory):
        """A January absence recorded after the February invoice exists still reaches it"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT, absence_policy=AbsencePolicy.CARRY_OVER)
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 5, 9))
        attend_days(test_data_factory, test_session, contract, 2, range(1, 11))
        assert invoices_of(test_session, contract)[1].auto_adjustment == Decimal("0")

        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 20, 15), AttendanceStatus.ABSENT)
        invoices = invoices_of(test_session, contract)

        assert invoices[0].auto_adjustment == Decimal("0")
        assert invoices[1].auto_adjustment == Decimal("-10000")

    def test_pass_deducts_on_one_invoice_per_month(self, test_session, test_data_factory):
        """With two invoices tagged February only the first carries January"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT, today=date(2024, 2, 1),
            absence_policy=AbsencePolicy.CARRY_OVER)
        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 20, 15), AttendanceStatus.ABSENT)
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 2, 2, 9))
        attend_days(test_data_factory, test_session, contract, 2, range(5, 14))

        invoices = invoices_of(test_session, contract)
        assert [(i.year, i.month) for i in invoices] == [(2024, 2), (2024, 2)]
        assert [i.auto_adjustment for i in invoices] == [Decimal("-10000"), Decimal("0")]


class TestProcessDueContracts:
    """Test the scheduler sweep"""

    def test_stats(self, test_session, test_data_factory):
        """Calendar contracts are billed, unexhausted passes skipped"""
        calendar = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.create_contract(test_session, status=ContractStatus.CONFIRMED)

        result = BillingTrigger(test_session).process_due_contracts(today=date(2024, 2, 1))

        assert result["total_processed"] == 2
        assert result["successful"] == 1
        assert result["skipped"] == 1
        assert result["failed"] == 0
        calendar_result = next(r for r in result["results"] if r.contract_id == calendar.id)
        assert calendar_result.status == ProcessingStatus.SUCCESS
        assert len(invoices_of(test_session, calendar)) == 2

    def test_outside_contract_period_skipped(self, test_session, test_data_factory):
        """Dates after the contract end create nothing"""
        contract = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.SENT)
        result = BillingTrigger(test_session).process_due_contracts(today=date(2024, 5, 1))

        assert result["skipped"] == 1
        assert len(invoices_of(test_session, contract)) == 1

    @pytest.mark.parametrize("billing_mode,expected_due", [
        (BillingMode.PREPAID, date(2024, 2, 1)),
        (BillingMode.POSTPAID, date(2024, 2, 29)),
    ])
    def test_period_due_dates(self, test_session, test_data_factory, billing_mode, expected_due):
        """Prepaid periods are due when they start, postpaid when they end"""
        contract = test_data_factory.create_calendar_contract(
            test_session, status=ContractStatus.SENT, billing_mode=billing_mode)
        BillingTrigger(test_session).process_due_contracts(today=date(2024, 2, 1))

        invoice = RecordStore(test_session).find_invoice(contract.id, 2)
        assert invoice.due_date == expected_due
        assert (invoice.period_start, invoice.period_end) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_end_date_extension_moves_postpaid_due_date(self, test_session, test_data_factory):
        """The clipped last period is due on its new end once the contract runs longer"""
        contract = test_data_factory.create_calendar_contract(
            test_session, status=ContractStatus.SENT, billing_mode=BillingMode.POSTPAID,
            end_date=date(2024, 3, 15))
        BillingTrigger(test_session).process_due_contracts(today=date(2024, 3, 2))
        invoice = RecordStore(test_session).find_invoice(contract.id, 3)
        assert (invoice.period_end, invoice.due_date) == (date(2024, 3, 15), date(2024, 3, 15))

        test_data_factory.extend_contract(test_session, contract, new_end_date=date(2024, 4, 30))
        test_session.refresh(invoice)

        assert (invoice.period_start, invoice.period_end) == (date(2024, 3, 1), date(2024, 3, 31))
        assert invoice.due_date == date(2024, 3, 31)


class TestRecalculateInvoiceForDate:
    """Test explicit recomputation"""

    def test_pass_without_invoice(self, test_session, test_data_factory):
        """Passes only recompute invoices that exist"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extended_at=datetime(2024, 1, 5, 9))

        result = BillingTrigger(test_session).recalculate_invoice_for_date(
            contract, datetime(2024, 1, 20, 15))
        assert result is None

    def test_calendar_period_created_on_demand(self, test_session, test_data_factory):
        """Calendar periods are billed on demand once the contract is sent"""
        contract = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.SENT)
        invoice = BillingTrigger(test_session).recalculate_invoice_for_date(
            contract, datetime(2024, 3, 12, 15))

        assert invoice.invoice_number == 3
        assert invoice.period_start == date(2024, 3, 1)
