from enum import Enum
from sqlalchemy import Enum as SAEnum

# Python enums for type hints and constants


class ContractStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    SENT = "sent"


class BillingMode(str, Enum):
    PREPAID = "prepaid"
    POSTPAID = "postpaid"


class AbsencePolicy(str, Enum):
    CARRY_OVER = "carry_over"
    DEDUCT_NEXT = "deduct_next"
    VANISH = "vanish"


class PricingMode(str, Enum):
    """How a contract's allotment is denominated"""
    SESSIONS = "sessions"
    AMOUNT = "amount"
    CALENDAR = "calendar"


class ExtensionKind(str, Enum):
    SESSIONS = "sessions"
    AMOUNT = "amount"
    PERIOD = "period"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    SUBSTITUTE = "substitute"
    VANISH = "vanish"


# Every status uses up one unit of the contract's allotment
CONSUMING_STATUSES = frozenset({
    AttendanceStatus.PRESENT,
    AttendanceStatus.ABSENT,
    AttendanceStatus.SUBSTITUTE,
    AttendanceStatus.VANISH,
})


class SendStatus(str, Enum):
    NOT_SENT = "not_sent"
    SENT = "sent"
    PARTIAL = "partial"


class SendChannel(str, Enum):
    SMS = "sms"
    KAKAO = "kakao"
    LINK = "link"
    CONTRACT_SEND = "contract_send"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class Weekday(str, Enum):
    MON = "MON"
    TUE = "TUE"
    WED = "WED"
    THU = "THU"
    FRI = "FRI"
    SAT = "SAT"
    SUN = "SUN"

    @property
    def index(self) -> int:
        """Python weekday number (Monday == 0)"""
        return WEEKDAY_ORDER.index(self)


WEEKDAY_ORDER = [Weekday.MON, Weekday.TUE, Weekday.WED, Weekday.THU,
                 Weekday.FRI, Weekday.SAT, Weekday.SUN]


# Status transitions allowed for a contract (one-way)
CONTRACT_STATUS_TRANSITIONS = {
    ContractStatus.DRAFT: {ContractStatus.CONFIRMED},
    ContractStatus.CONFIRMED: {ContractStatus.SENT},
    ContractStatus.SENT: set(),
}


# SQLAlchemy enum types for database. Columns persist member values so the
# stored text matches the migration's postgres ENUM types.
def enum_type(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


contract_status_enum = enum_type(ContractStatus, 'contractstatus')
billing_mode_enum = enum_type(BillingMode, 'billingmode')
absence_policy_enum = enum_type(AbsencePolicy, 'absencepolicy')
pricing_mode_enum = enum_type(PricingMode, 'pricingmode')
extension_kind_enum = enum_type(ExtensionKind, 'extensionkind')
attendance_status_enum = enum_type(AttendanceStatus, 'attendancestatus')
send_status_enum = enum_type(SendStatus, 'sendstatus')
payment_status_enum = enum_type(PaymentStatus, 'paymentstatus')
