from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, Column, JSON, DateTime
from src.api.common.models.base import BaseModel, TimestampMixin, money_field
from src.api.common.constants.billing import (
    AbsencePolicy,
    BillingMode,
    ContractStatus,
    ExtensionKind,
    PricingMode,
    Weekday,
    absence_policy_enum,
    billing_mode_enum,
    contract_status_enum,
    extension_kind_enum,
    pricing_mode_enum,
)
from src.api.contracts.schemas.policy import PolicySnapshot
from src.api.clients.models.client import Client
from src.api.providers.models.provider import Provider
from src.api.attendance.models.attendance import AttendanceRecord


class Contract(BaseModel, TimestampMixin, table=True):
    """
    Contract between a provider and a client for a session, amount or
    calendar pass
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    provider_id: int = Field(foreign_key="provider.id", index=True)
    provider: Provider = Relationship()

    client_id: int = Field(foreign_key="client.id", index=True)
    client: Client = Relationship()

    subject: str

    # Pricing terms (mirrored in policy_snapshot, which is authoritative)
    billing_mode: BillingMode = Field(sa_type=billing_mode_enum, nullable=False)
    absence_policy: AbsencePolicy = Field(sa_type=absence_policy_enum, nullable=False)
    pricing_mode: PricingMode = Field(sa_type=pricing_mode_enum, nullable=False, index=True)
    base_price: Decimal = money_field()
    billing_day: Optional[int] = Field(default=None, ge=1, le=31)
    weekdays: List[str] = Field(default=[], sa_column=Column(JSON))

    start_date: Optional[date] = None
    end_date: Optional[date] = None

    # Current allotment including extensions
    total_sessions: Optional[int] = None
    total_amount: Optional[Decimal] = money_field(default=None, nullable=True)

    status: ContractStatus = Field(
        default=ContractStatus.DRAFT, sa_type=contract_status_enum, nullable=False, index=True)
    teacher_signature: Optional[str] = None
    client_signature: Optional[str] = None
    confirmed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    sent_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    policy_snapshot: Dict[str, Any] = Field(default={}, sa_column=Column(JSON))

    # Relationships
    extensions: List["ContractExtension"] = Relationship(
        back_populates="contract",
        sa_relationship_kwargs={"order_by": "ContractExtension.sequence"})
    attendance_records: List[AttendanceRecord] = Relationship(back_populates="contract")

    @property
    def policy(self) -> PolicySnapshot:
        return PolicySnapshot.model_validate(self.policy_snapshot)

    @property
    def weekday_set(self) -> set[Weekday]:
        return {Weekday(day) for day in self.weekdays or []}

    @property
    def is_calendar(self) -> bool:
        return self.pricing_mode == PricingMode.CALENDAR

    @property
    def original_allotment(self) -> Optional[Decimal]:
        """Allotment of invoice #1 (sessions or balance) before any extension"""
        policy = self.policy
        if policy.pricing_mode == PricingMode.SESSIONS:
            return Decimal(policy.total_sessions) if policy.total_sessions else None
        if policy.pricing_mode == PricingMode.AMOUNT:
            return policy.base_price
        return None

    class Config:
        from_attributes = True
        arbitrary_types_allowed = True


class ContractExtension(BaseModel, TimestampMixin, table=True):
    """
    Append-only extension record. The Nth record opens the (N+1)th
    billing slice of a session or amount contract.
    """
    __table_args__ = (UniqueConstraint("contract_id", "sequence", name="uq_contractextension_sequence"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    contract_id: int = Field(foreign_key="contract.id", index=True)
    contract: Contract = Relationship(back_populates="extensions")

    # 0-based position in the contract's chain
    sequence: int = Field(ge=0)
    kind: ExtensionKind = Field(sa_type=extension_kind_enum, nullable=False)

    added_sessions: Optional[int] = None
    added_amount: Optional[Decimal] = money_field(default=None, nullable=True)
    extension_price: Optional[Decimal] = money_field(default=None, nullable=True)

    # Allotment before/after (sessions or balance); unchanged for period extensions
    previous_total: Optional[Decimal] = money_field(default=None, nullable=True)
    new_total: Optional[Decimal] = money_field(default=None, nullable=True)

    previous_end_date: Optional[date] = None
    new_end_date: Optional[date] = None

    # Wall-clock business time, see normalize_datetime
    extended_at: datetime = Field(index=True)
    extended_by: Optional[str] = None

    class Config:
        from_attributes = True
