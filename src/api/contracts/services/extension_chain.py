from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
from src.api.common.constants.billing import (
    AttendanceStatus, CONSUMING_STATUSES, ExtensionKind, PricingMode)
from src.api.common.utils.money import ZERO, to_decimal

# (start, end) of the attendance window billed by one invoice. Half-open:
# start <= occurred_at < end, None meaning unbounded.
Slice = Tuple[Optional[datetime], Optional[datetime]]


def chain_extensions(extensions: Iterable) -> List:
    """Extensions that open a new billing slice, in sequence order."""
    chained = [ext for ext in extensions if ExtensionKind(ext.kind) != ExtensionKind.PERIOD]
    return sorted(chained, key=lambda ext: ext.sequence)


def resolve_invoice_slice(extensions: Sequence, invoice_number: int) -> Slice:
    """
    Attendance window billed by invoice `invoice_number`.

    Invoice 1 covers everything before the first extension (all history
    when there is none). Invoice k >= 2 covers
    [extensions[k-2].extended_at, extensions[k-1].extended_at), open on the
    right for the latest extension. A record stamped exactly at an
    extension's extended_at falls in the later slice; two extensions at the
    same instant leave an empty slice between them.
    """
    if invoice_number < 1 or invoice_number > len(extensions) + 1:
        raise ValueError(
            f"Invoice {invoice_number} has no slice with {len(extensions)} extensions")
    start = extensions[invoice_number - 2].extended_at if invoice_number >= 2 else None
    end = extensions[invoice_number - 1].extended_at if invoice_number <= len(extensions) else None
    return start, end


def in_slice(moment: datetime, slice_: Slice) -> bool:
    start, end = slice_
    if start is not None and moment < start:
        return False
    if end is not None and moment >= end:
        return False
    return True


def records_in_slice(records: Iterable, slice_: Slice) -> List:
    return [record for record in records if in_slice(record.occurred_at, slice_)]


def find_slice_number(extensions: Sequence, moment: datetime) -> int:
    """1-based invoice number whose slice contains `moment`."""
    for invoice_number in range(1, len(extensions) + 2):
        if in_slice(moment, resolve_invoice_slice(extensions, invoice_number)):
            return invoice_number
    return len(extensions) + 1


def _usage(record, pricing_mode: PricingMode) -> Decimal:
    if record.voided or AttendanceStatus(record.status) not in CONSUMING_STATUSES:
        return ZERO
    if pricing_mode == PricingMode.AMOUNT:
        return to_decimal(record.amount)
    return Decimal(1)


def consumed(records: Iterable, pricing_mode: PricingMode) -> Decimal:
    """Sessions used (count) or amount used (sum) by non-voided records."""
    return sum((_usage(record, PricingMode(pricing_mode)) for record in records), ZERO)


def is_prior_slice_exhausted(
    records: Iterable,
    slice_: Slice,
    allotment: Optional[Decimal],
    pricing_mode: PricingMode,
) -> bool:
    """Whether consumption inside the slice has reached the allotment."""
    if allotment is None or to_decimal(allotment) <= 0:
        return False
    return consumed(records_in_slice(records, slice_), pricing_mode) >= to_decimal(allotment)


def cumulative_allotment(original: Optional[Decimal], extensions: Sequence, invoice_number: int) -> Optional[Decimal]:
    """
    Total allotment up to and including invoice `invoice_number`.

    Once the k-th extension exists this equals its previous_total.
    """
    if invoice_number <= 1:
        return original
    extension = extensions[invoice_number - 2]
    if extension.new_total is not None:
        return to_decimal(extension.new_total)
    return to_decimal(original) + sum(
        (slice_allotment(ext) for ext in extensions[:invoice_number - 1]), ZERO)


def slice_allotment(extension) -> Decimal:
    if ExtensionKind(extension.kind) == ExtensionKind.SESSIONS:
        return Decimal(extension.added_sessions or 0)
    return to_decimal(extension.added_amount)


def exhaustion_moment(
    records: Iterable,
    allotment: Optional[Decimal],
    pricing_mode: PricingMode,
) -> Optional[datetime]:
    """
    occurred_at of the record at which cumulative usage first reaches the
    allotment, in chronological order. None while it has not been reached.
    """
    if allotment is None or to_decimal(allotment) <= 0:
        return None
    target = to_decimal(allotment)
    used = ZERO
    ordered = sorted(records, key=lambda record: (record.occurred_at, getattr(record, "id", None) or 0))
    for record in ordered:
        used += _usage(record, PricingMode(pricing_mode))
        if used >= target:
            return record.occurred_at
    return None
