from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union
from medspa.config.payments import DEFAULT_COMMISSION_RATE

Number = Union[Decimal, int, str]

CENT = Decimal('0.01')


def commission(amount: Number, rate: Number) -> Decimal:
    """Commission owed on amount at rate percent, rounded half-up to cents.

    Computed once when a payment is created; the stored value is never recomputed.
    """
    return (Decimal(amount) * Decimal(rate) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_commission_rate(raw) -> Decimal:
    """Parse a configured commission percentage; must lie in [0, 100]."""
    if raw is None or raw == '':
        return Decimal(DEFAULT_COMMISSION_RATE)
    try:
        rate = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValueError('COMMISSION_RATE must be numeric')
    if not rate.is_finite() or rate < 0 or rate > 100:
        raise ValueError('COMMISSION_RATE must be between 0 and 100')
    return rate


__all__ = ['commission', 'normalize_commission_rate']
