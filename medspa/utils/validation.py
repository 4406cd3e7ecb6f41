"""Reusable validation helpers for request payloads.

Parsing failures raise ValidationError so handlers get a consistent 400 shape.
"""
from __future__ import annotations
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from medspa.errors import ValidationError


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or raises ValidationError.
    """
    if new_status not in allowed:
        raise ValidationError(f"{field_name} invalid")
    return new_status


def parse_int(value: Any, field_name: str, required: bool = False) -> Optional[int]:
    if value is None or value == '':
        if required:
            raise ValidationError(f'{field_name} required')
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field_name} must be int')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field_name} must be int')


def parse_decimal(value: Any, field_name: str, required: bool = False) -> Optional[Decimal]:
    if value is None or value == '':
        if required:
            raise ValidationError(f'{field_name} required')
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field_name} must be numeric')
    try:
        # str() first so floats keep their printed value instead of binary noise
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field_name} must be numeric')
    if not result.is_finite():
        raise ValidationError(f'{field_name} must be numeric')
    return result


def parse_date(value: Any, field_name: str) -> date:
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'{field_name} must be YYYY-MM-DD')


def parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    if value is None or value == '':
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{field_name} must be ISO 8601')
    # Stored naive (UTC)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=None)


__all__ = ['validate_status', 'parse_int', 'parse_decimal', 'parse_date', 'parse_datetime']
