from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

from src.api.common.config import get_billing_config

ZERO = Decimal("0")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce ints, floats, strings and None into Decimal."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats like 0.1 from turning into binary noise
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def quantize_money(value: Any, quantum: Optional[Decimal] = None) -> Decimal:
    """Round an amount half-up to the configured currency quantum."""
    quantum = quantum or get_billing_config().currency_quantum
    return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def format_amount(value: Any) -> str:
    """Thousands-separated amount, e.g. 100,000"""
    amount = quantize_money(value)
    return f"{amount:,}"
