from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Tuple
from sqlalchemy import func
from sqlmodel import Session, select
from src.api.common.errors import NotFoundError
from src.api.contracts.models.contract import Contract, ContractExtension
from src.api.attendance.models.attendance import AttendanceRecord
from src.api.invoices.models.invoice import Invoice


class InvoiceKey(NamedTuple):
    client_id: int
    contract_id: int
    year: int
    month: int
    invoice_number: int


# Fields of the key that never change after creation
_KEY_FIELDS = set(InvoiceKey._fields)


class RecordStore:
    """
    Persistence access used by the billing engine.

    Writes are flushed, not committed; the calling service owns the
    transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_contract(self, contract_id: int, provider_id: Optional[int] = None) -> Contract:
        """Get a contract, raising NotFoundError when missing or owned by another provider"""
        contract = self.db.get(Contract, contract_id)
        if not contract or (provider_id is not None and contract.provider_id != provider_id):
            raise NotFoundError(f"Contract {contract_id} not found")
        return contract

    def find_attendance(
        self,
        contract_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_voided: bool = True,
    ) -> List[AttendanceRecord]:
        """Attendance of a contract in chronological order, optionally within [start, end)"""
        query = select(AttendanceRecord).where(AttendanceRecord.contract_id == contract_id)
        if start is not None:
            query = query.where(AttendanceRecord.occurred_at >= start)
        if end is not None:
            query = query.where(AttendanceRecord.occurred_at < end)
        if not include_voided:
            query = query.where(AttendanceRecord.voided == False)  # noqa: E712
        query = query.order_by(AttendanceRecord.occurred_at, AttendanceRecord.id)
        return list(self.db.exec(query).all())

    def find_invoices(self, contract_id: int) -> List[Invoice]:
        return list(self.db.exec(
            select(Invoice)
            .where(Invoice.contract_id == contract_id)
            .order_by(Invoice.invoice_number)
        ).all())

    def find_invoice(self, contract_id: int, invoice_number: int) -> Optional[Invoice]:
        return self.db.exec(
            select(Invoice).where(
                Invoice.contract_id == contract_id,
                Invoice.invoice_number == invoice_number,
            )
        ).first()

    def upsert_invoice(self, key: InvoiceKey, fields: Dict[str, Any]) -> Tuple[Invoice, bool]:
        """
        Insert or update the invoice at `key`.

        An existing invoice is matched on client, contract and invoice
        number so that its year/month tag stays what it was at creation.

        Returns:
            Tuple of (invoice, created)
        """
        invoice = self.db.exec(
            select(Invoice).where(
                Invoice.client_id == key.client_id,
                Invoice.contract_id == key.contract_id,
                Invoice.invoice_number == key.invoice_number,
            )
        ).first()

        created = invoice is None
        if created:
            invoice = Invoice(**key._asdict())

        for name, value in fields.items():
            if name in _KEY_FIELDS:
                continue
            setattr(invoice, name, value)
        if not created:
            invoice.touch()

        self.db.add(invoice)
        self.db.flush()
        return invoice, created

    def find_extensions(self, contract_id: int) -> List[ContractExtension]:
        return list(self.db.exec(
            select(ContractExtension)
            .where(ContractExtension.contract_id == contract_id)
            .order_by(ContractExtension.sequence)
        ).all())

    def append_extension(self, contract_id: int, record: Dict[str, Any]) -> ContractExtension:
        """Append an extension at the end of the contract's chain"""
        next_sequence = self.db.exec(
            select(func.count(ContractExtension.id)).where(
                ContractExtension.contract_id == contract_id)
        ).one()
        extension = ContractExtension(contract_id=contract_id, sequence=next_sequence, **record)
        self.db.add(extension)
        self.db.flush()

        # Reload the chain on the next access
        contract = self.db.get(Contract, contract_id)
        if contract is not None:
            self.db.expire(contract, ["extensions"])
        return extension
