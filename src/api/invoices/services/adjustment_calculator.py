from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from src.api.common.constants.billing import AbsencePolicy, AttendanceStatus
from src.api.common.utils.datetime import previous_month
from src.api.common.utils.money import ZERO, quantize_money, to_decimal
from src.api.invoices.services.period_calculator import expected_session_count


def unit_price(policy, year: Optional[int] = None, month: Optional[int] = None,
               planned_count: Optional[int] = None) -> Decimal:
    """
    Per-session price used for automatic adjustments.

    Priority:
    1. explicit per_session_amount
    2. base_price / total_sessions (session passes)
    3. base_price / planned sessions (planned_count_override, the given
       planned_count, or the weekday count of year/month)

    Returns 0 when no denominator resolves; callers skip the adjustment then.
    """
    per_session = to_decimal(policy.per_session_amount)
    if per_session > 0:
        return quantize_money(per_session)

    base_price = to_decimal(policy.base_price)
    if policy.total_sessions:
        return quantize_money(base_price / Decimal(policy.total_sessions))

    count = policy.planned_count_override or planned_count
    if not count and year and month:
        count = expected_session_count(policy.weekdays, year, month)
    if not count:
        return ZERO
    return quantize_money(base_price / Decimal(count))


def _status(record) -> AttendanceStatus:
    return AttendanceStatus(record.status)


def effective_date(record) -> date:
    """Substitutes count on their makeup date when one is set."""
    if _status(record) == AttendanceStatus.SUBSTITUTE and record.substitute_at is not None:
        return record.substitute_at.date()
    return record.occurred_at.date()


def _in_month(value: date, year: int, month: int) -> bool:
    return value.year == year and value.month == month


def _counts_as_absence(record) -> bool:
    status = _status(record)
    if status == AttendanceStatus.ABSENT:
        return True
    # A substitute without a makeup date stays an absence in its own month
    return status == AttendanceStatus.SUBSTITUTE and record.substitute_at is None


def auto_adjustment(
    policy,
    records: Iterable,
    year: int,
    month: int,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
    planned_count: Optional[int] = None,
) -> Decimal:
    """
    Signed adjustment from absences within a month (or a billing period).

    Records are filtered to non-voided entries whose effective date falls
    in (year, month), or within [period_start, period_end] when both bounds
    are given. deduct_next deducts absences, vanish deducts vanished
    sessions, carry_over defers to carry_over_adjustment on the next invoice.
    """
    absence_policy = AbsencePolicy(policy.absence_policy)
    if absence_policy == AbsencePolicy.CARRY_OVER:
        return ZERO

    price = unit_price(policy, year, month, planned_count=planned_count)
    if price <= 0:
        return ZERO

    use_period = period_start is not None and period_end is not None
    count = 0
    for record in records:
        if record.voided:
            continue
        when = effective_date(record)
        if use_period:
            if not period_start <= when <= period_end:
                continue
        elif not _in_month(when, year, month):
            continue

        if absence_policy == AbsencePolicy.DEDUCT_NEXT and _counts_as_absence(record):
            count += 1
        elif absence_policy == AbsencePolicy.VANISH and _status(record) == AttendanceStatus.VANISH:
            count += 1

    return -(price * count) if count else ZERO


def carry_over_adjustment(policy, prior_month_records: Iterable, year: int, month: int) -> Decimal:
    """
    Deduction on the (year, month) invoice for absences of the prior month.

    Counts, among the prior month's records: absences, substitutes without
    a makeup date and substitutes made up in (year, month). Uses the prior
    month's unit price. Only applies to the carry_over policy.
    """
    if AbsencePolicy(policy.absence_policy) != AbsencePolicy.CARRY_OVER:
        return ZERO

    prior_year, prior_month = previous_month(year, month)
    price = unit_price(policy, prior_year, prior_month)
    if price <= 0:
        return ZERO

    count = 0
    for record in prior_month_records:
        if record.voided or not _in_month(record.occurred_at.date(), prior_year, prior_month):
            continue
        status = _status(record)
        if status == AttendanceStatus.ABSENT:
            count += 1
        elif status == AttendanceStatus.SUBSTITUTE:
            if record.substitute_at is None or _in_month(record.substitute_at.date(), year, month):
                count += 1

    return -(price * count) if count else ZERO
