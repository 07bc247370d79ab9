import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import patch
from sqlmodel import select

from src.api.common.constants.billing import AttendanceStatus, ContractStatus
from src.api.common.errors import InvalidStateError, NotFoundError
from src.api.attendance.schemas.attendance import AttendanceCreate, AttendanceUpdate, AttendanceVoid
from src.api.attendance.services.attendance_service import AttendanceService
from src.api.billing.services.billing_trigger import BillingTrigger
from src.api.notifications.models.notification import DeliveryError
from src.api.notifications.services.notification_service import NotificationService


class TestAttendanceService:
    """Test cases for AttendanceService"""

    def test_create_attendance(self, test_session, test_data_factory):
        """Test recording attendance"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        record = test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 2, 15), memo_public="Scales", recorded_by="teacher")

        assert record.id is not None
        assert record.status == AttendanceStatus.PRESENT
        assert record.memo_public == "Scales"
        assert record.voided is False
        assert record.amount is None

    def test_aware_timestamps_stored_as_business_time(self, test_session, test_data_factory):
        """UTC input is stored as wall-clock time in the business timezone"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        record = test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 2, 6, tzinfo=timezone.utc))

        assert record.occurred_at == datetime(2024, 1, 2, 15)

    def test_amount_required_for_amount_contracts(self, test_session, test_data_factory):
        """Amount passes reject records without an amount"""
        contract = test_data_factory.create_amount_contract(test_session, status=ContractStatus.SENT)

        with pytest.raises(InvalidStateError):
            test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 2, 15))

    def test_amount_dropped_for_session_contracts(self, test_session, test_data_factory):
        """Session passes never store an amount"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        record = test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 2, 15), amount=Decimal("5000"))

        assert record.amount is None

    def test_substitute_date_only_for_substitutes(self, test_session, test_data_factory):
        """Makeup dates are kept only on substitute records"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        present = test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 2, 15), substitute_at=datetime(2024, 1, 5, 15))
        substitute = test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 3, 15), AttendanceStatus.SUBSTITUTE,
            substitute_at=datetime(2024, 1, 6, 15))

        assert present.substitute_at is None
        assert substitute.substitute_at == datetime(2024, 1, 6, 15)

    def test_contract_of_other_provider(self, test_session, test_data_factory):
        """Recording against another provider's contract fails"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        other = test_data_factory.create_provider(test_session)

        with pytest.raises(NotFoundError):
            AttendanceService(test_session).create_attendance(other.id, AttendanceCreate(
                contract_id=contract.id, occurred_at=datetime(2024, 1, 2, 15),
                status=AttendanceStatus.PRESENT))

    def test_update_attendance(self, test_session, test_data_factory):
        """Corrections keep an audit trail and notify the provider"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        record = test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 2, 15))

        updated = AttendanceService(test_session).update_attendance(
            contract.provider_id, record.id,
            AttendanceUpdate(status=AttendanceStatus.ABSENT, change_reason="Was sick", modified_by="teacher"))

        assert updated.status == AttendanceStatus.ABSENT
        assert updated.change_reason == "Was sick"
        assert updated.modified_by == "teacher"
        assert updated.modified_at is not None
        events = [n.event for n in NotificationService(test_session).get_notifications(contract.provider_id)]
        assert "attendance_updated" in events

    def test_voided_record_is_read_only(self, test_session, test_data_factory):
        """Voided records cannot be edited or voided again"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        record = test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 2, 15))
        service = AttendanceService(test_session)
        service.void_attendance(contract.provider_id, record.id, AttendanceVoid(void_reason="Duplicate"))

        with pytest.raises(InvalidStateError):
            service.update_attendance(
                contract.provider_id, record.id, AttendanceUpdate(status=AttendanceStatus.ABSENT))
        with pytest.raises(InvalidStateError):
            service.void_attendance(contract.provider_id, record.id, AttendanceVoid(void_reason="Again"))

    def test_void_requires_reason(self):
        """A void needs a reason"""
        with pytest.raises(ValueError):
            AttendanceVoid(void_reason="  ")

    def test_billing_failure_keeps_attendance(self, test_session, test_data_factory):
        """A failure while billing is logged and the record stays saved"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)

        with patch.object(BillingTrigger, "on_attendance_changed", side_effect=RuntimeError("boom")):
            record = test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 2, 15))

        assert AttendanceService(test_session).get_attendance(contract.provider_id, record.id) is not None
        errors = test_session.exec(select(DeliveryError)).all()
        assert len(errors) == 1
        assert errors[0].operation_type == "on_attendance_changed"
        assert errors[0].entity_id == record.id
        assert errors[0].error_message == "boom"

    def test_get_attendance_records_filters(self, test_session, test_data_factory):
        """Listings filter by date range and voided state, newest first"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        service = AttendanceService(test_session)
        first = test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 2, 15))
        second = test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 9, 15))
        third = test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 16, 15))
        service.void_attendance(contract.provider_id, third.id, AttendanceVoid(void_reason="Duplicate"))

        records = service.get_attendance_records(contract.provider_id, contract_id=contract.id)
        assert [r.id for r in records] == [third.id, second.id, first.id]

        records = service.get_attendance_records(
            contract.provider_id, contract_id=contract.id, include_voided=False)
        assert [r.id for r in records] == [second.id, first.id]

        records = service.get_attendance_records(
            contract.provider_id, start=date(2024, 1, 5), end=date(2024, 1, 10))
        assert [r.id for r in records] == [second.id]

        assert service.get_attendance_records(contract.provider_id + 1000) == []
