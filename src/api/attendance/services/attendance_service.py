from datetime import date, datetime
from typing import Iterable, List, Optional
from fastapi.logger import logger
from sqlmodel import Session, select
from src.api.common.constants.billing import AttendanceStatus, PricingMode
from src.api.common.errors import InvalidStateError, NotFoundError
from src.api.common.utils.datetime import get_current_datetime, normalize_datetime
from src.api.attendance.models.attendance import AttendanceRecord
from src.api.attendance.schemas.attendance import AttendanceCreate, AttendanceUpdate, AttendanceVoid
from src.api.billing.services.billing_trigger import BillingTrigger
from src.api.billing.services.record_store import RecordStore
from src.api.contracts.models.contract import Contract
from src.api.notifications.services.notification_service import NotificationService
from src.api.notifications.utils.error_logger import log_delivery_error


class AttendanceService:
    """
    Service class for recording and correcting attendance.

    Every mutation is committed first and billed afterwards: a failure while
    recomputing invoices is logged and never undoes the attendance write.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = RecordStore(db)

    def create_attendance(self, provider_id: int, attendance_data: AttendanceCreate) -> AttendanceRecord:
        """Record attendance against a contract and recompute its billing"""
        contract = self.store.find_contract(attendance_data.contract_id, provider_id)

        amount = None
        if contract.pricing_mode == PricingMode.AMOUNT:
            if attendance_data.amount is None:
                raise InvalidStateError("Amount-based contracts require the consumed amount")
            amount = attendance_data.amount

        record = AttendanceRecord(
            contract_id=contract.id,
            occurred_at=normalize_datetime(attendance_data.occurred_at),
            status=attendance_data.status,
            substitute_at=self._substitute_at(attendance_data.status, attendance_data.substitute_at),
            amount=amount,
            memo_public=attendance_data.memo_public,
            memo_internal=attendance_data.memo_internal,
            recorded_by=attendance_data.recorded_by,
        )

        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(
            f"Attendance {record.id} recorded for contract {contract.id}: "
            f"{record.status.value} at {record.occurred_at}")

        self._bill(contract, record)
        return record

    def get_attendance(self, provider_id: int, attendance_id: int) -> Optional[AttendanceRecord]:
        """Get an attendance record by ID"""
        record = self.db.get(AttendanceRecord, attendance_id)
        if not record or record.contract.provider_id != provider_id:
            return None
        return record

    def get_attendance_records(
        self,
        provider_id: int,
        contract_id: Optional[int] = None,
        client_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        include_voided: bool = True,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AttendanceRecord]:
        """Get attendance records, newest first"""
        query = (
            select(AttendanceRecord)
            .join(Contract, Contract.id == AttendanceRecord.contract_id)
            .where(Contract.provider_id == provider_id)
        )
        if contract_id is not None:
            query = query.where(AttendanceRecord.contract_id == contract_id)
        if client_id is not None:
            query = query.where(Contract.client_id == client_id)
        if start is not None:
            query = query.where(AttendanceRecord.occurred_at >= datetime.combine(start, datetime.min.time()))
        if end is not None:
            query = query.where(AttendanceRecord.occurred_at < datetime.combine(end, datetime.min.time()))
        if not include_voided:
            query = query.where(AttendanceRecord.voided == False)  # noqa: E712
        query = query.order_by(AttendanceRecord.occurred_at.desc(), AttendanceRecord.id.desc())
        return list(self.db.exec(query.offset(skip).limit(limit)).all())

    def update_attendance(
        self,
        provider_id: int,
        attendance_id: int,
        attendance_data: AttendanceUpdate,
    ) -> AttendanceRecord:
        """
        Correct status, makeup date or memos of a record.

        Voided records are read-only.
        """
        record = self._find_editable(provider_id, attendance_id)
        previous_substitute_at = record.substitute_at

        update_data = attendance_data.model_dump(exclude_unset=True)
        status = update_data.get("status") or record.status
        if "status" in update_data:
            record.status = status
        if "substitute_at" in update_data:
            record.substitute_at = normalize_datetime(update_data["substitute_at"])
        record.substitute_at = self._substitute_at(status, record.substitute_at)
        for field in ("memo_public", "memo_internal"):
            if field in update_data:
                setattr(record, field, update_data[field])

        record.modified_at = get_current_datetime()
        record.modified_by = attendance_data.modified_by
        record.change_reason = attendance_data.change_reason
        record.touch()

        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Attendance {record.id} updated: {record.status.value}")

        contract = record.contract
        self._bill(contract, record, [previous_substitute_at])
        NotificationService(self.db).notify(
            "attendance_updated",
            {"attendance_id": record.id, "contract_id": contract.id},
            provider_id=provider_id,
        )
        return record

    def void_attendance(
        self,
        provider_id: int,
        attendance_id: int,
        void_data: AttendanceVoid,
    ) -> AttendanceRecord:
        """Void a record; it stops counting everywhere but stays on file"""
        record = self._find_editable(provider_id, attendance_id)

        record.voided = True
        record.void_reason = void_data.void_reason
        record.modified_at = get_current_datetime()
        record.modified_by = void_data.modified_by
        record.touch()

        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Attendance {record.id} voided: {record.void_reason}")

        self._bill(record.contract, record)
        return record

    def _find_editable(self, provider_id: int, attendance_id: int) -> AttendanceRecord:
        record = self.get_attendance(provider_id, attendance_id)
        if not record:
            raise NotFoundError(f"Attendance record {attendance_id} not found")
        if record.voided:
            raise InvalidStateError(f"Attendance record {attendance_id} is already voided")
        return record

    @staticmethod
    def _substitute_at(status: AttendanceStatus, substitute_at: Optional[datetime]) -> Optional[datetime]:
        """Only substitute records carry a makeup date"""
        if AttendanceStatus(status) != AttendanceStatus.SUBSTITUTE:
            return None
        return normalize_datetime(substitute_at)

    def _bill(self, contract: Contract, record: AttendanceRecord,
              previous_moments: Iterable[Optional[datetime]] = ()) -> None:
        try:
            BillingTrigger(self.db).on_attendance_changed(
                contract, record, [moment for moment in previous_moments if moment is not None])
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to recalculate billing for attendance {record.id}: {str(e)}")
            log_delivery_error(
                self.db,
                channel="billing",
                operation_type="on_attendance_changed",
                entity_type="attendance",
                entity_id=record.id,
                error_message=str(e),
                contract_id=contract.id,
            )
