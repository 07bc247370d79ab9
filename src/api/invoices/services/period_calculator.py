from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple
from src.api.common.constants.billing import Weekday
from src.api.common.utils.datetime import add_months, clamp_day, get_month_boundaries

Period = Tuple[date, date]

# Upper bound on the number of periods walked when locating a date
MAX_PERIODS = 1200


def _weekday_indexes(weekdays: Iterable) -> set[int]:
    return {Weekday(day).index for day in weekdays or []}


def count_sessions_between(weekdays: Iterable, start: date, end: date) -> int:
    """Number of dates in [start, end] falling on one of the weekdays."""
    indexes = _weekday_indexes(weekdays)
    if not indexes or end < start:
        return 0
    return sum(1 for current in _date_range(start, end) if current.weekday() in indexes)


def expected_session_count(weekdays: Iterable, year: int, month: int) -> int:
    """
    Count the calendar dates of a month whose weekday is in `weekdays`.

    Example: TUE/THU in January 2024 gives 9.
    """
    month_start, month_end = get_month_boundaries(date(year, month, 1))
    return count_sessions_between(weekdays, month_start, month_end)


def default_period_boundaries(
    contract_start: date,
    recurring_billing_day: Optional[int],
    invoice_sequence_number: int,
    prior_invoice=None,
    contract_end: Optional[date] = None,
) -> Period:
    """
    Billing period of the Nth invoice of a calendar contract (inclusive).

    Invoice 1 covers [start, start + 1 month - 1 day]. Invoice N > 1 starts
    the day after the prior period ends and runs until the billing day of
    the following month, minus one day. A billing day past the end of the
    target month is clamped to the month's last day. Both cases are clipped
    to the contract end date.

    Args:
        contract_start: First day of the contract
        recurring_billing_day: Day of month periods roll over on (defaults
            to the start day)
        invoice_sequence_number: 1-based invoice number
        prior_invoice: The previous invoice (anything with `period_end`);
            derived from the chain when omitted
        contract_end: Last day of the contract, if any

    Returns:
        Tuple of (period_start, period_end)
    """
    if invoice_sequence_number < 1:
        raise ValueError("invoice_sequence_number must be >= 1")

    billing_day = recurring_billing_day or contract_start.day

    if invoice_sequence_number == 1:
        period_start = contract_start
        period_end = add_months(contract_start, 1) - timedelta(days=1)
    else:
        if prior_invoice is not None and getattr(prior_invoice, "period_end", None):
            prior_end = prior_invoice.period_end
        else:
            _, prior_end = default_period_boundaries(
                contract_start, recurring_billing_day, invoice_sequence_number - 1,
                contract_end=contract_end)
        period_start = prior_end + timedelta(days=1)
        next_month = add_months(period_start, 1, day=1)
        period_end = clamp_day(next_month.year, next_month.month, billing_day) - timedelta(days=1)

    if contract_end is not None and period_end > contract_end:
        period_end = contract_end
    return period_start, period_end


def period_for_sequence(
    contract_start: date,
    billing_day: Optional[int],
    invoice_sequence_number: int,
    contract_end: Optional[date] = None,
) -> Optional[Period]:
    """Period of the Nth invoice, or None when it starts after the contract end."""
    period_start, period_end = default_period_boundaries(
        contract_start, billing_day, invoice_sequence_number, contract_end=contract_end)
    if contract_end is not None and period_start > contract_end:
        return None
    return period_start, period_end


def iter_periods(contract_start: date, billing_day: Optional[int], contract_end: Optional[date] = None):
    """Yield (sequence, start, end) for consecutive periods of a contract."""
    prior_end = None
    for sequence in range(1, MAX_PERIODS + 1):
        if sequence == 1:
            period_start, period_end = default_period_boundaries(
                contract_start, billing_day, 1, contract_end=contract_end)
        else:
            period_start, period_end = default_period_boundaries(
                contract_start, billing_day, sequence,
                prior_invoice=_PriorPeriod(prior_end), contract_end=contract_end)
        if contract_end is not None and period_start > contract_end:
            return
        yield sequence, period_start, period_end
        prior_end = period_end


def find_period_for_date(
    contract_start: date,
    billing_day: Optional[int],
    target: date,
    contract_end: Optional[date] = None,
) -> Optional[Tuple[int, date, date]]:
    """Locate the (sequence, start, end) period containing `target`."""
    if target < contract_start:
        return None
    if contract_end is not None and target > contract_end:
        return None
    for sequence, period_start, period_end in iter_periods(contract_start, billing_day, contract_end):
        if period_start <= target <= period_end:
            return sequence, period_start, period_end
        if period_start > target:
            break
    return None


def unprocessed_dates(
    weekdays: Iterable,
    start: date,
    end: date,
    recorded_dates: Iterable[date],
) -> List[date]:
    """Scheduled class dates in [start, end] that have no attendance record."""
    indexes = _weekday_indexes(weekdays)
    recorded = set(recorded_dates)
    return [
        current for current in _date_range(start, end)
        if current.weekday() in indexes and current not in recorded
    ]


class _PriorPeriod:
    __slots__ = ("period_end",)

    def __init__(self, period_end: date):
        self.period_end = period_end


def _date_range(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
