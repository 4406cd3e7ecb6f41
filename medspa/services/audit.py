from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from sqlalchemy import select, func
from medspa.models.audit import AuditLog

SYSTEM_ACTOR_ID = 0


def record(session, actor_id: Optional[int], action: str, resource_type: str, resource_id: Any,
           before: Optional[Dict[str, Any]] = None, after: Optional[Dict[str, Any]] = None) -> AuditLog:
    """Add an audit entry to the given session.

    Parameters:
      actor_id: user id of the caller; None or 0 for system-originated changes (webhooks)
      action: short action code e.g. payment.create, appointment.update
      before/after: JSON-safe snapshots of the resource around the mutation

    No commit here; the caller's transaction boundary controls durability, so the
    entry lands if and only if the mutation does.
    """
    entry = AuditLog(
        actor_id=actor_id or SYSTEM_ACTOR_ID,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        before_snapshot=dict(before) if before is not None else None,
        after_snapshot=dict(after) if after is not None else None,
    )
    session.add(entry)
    return entry


def statistics(session, now: Optional[datetime] = None) -> Dict[str, int]:
    """Entry counts: all time, since midnight, since Monday, since the first of the month (UTC)."""
    now = now or datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week = today - timedelta(days=today.weekday())
    month = today.replace(day=1)

    def count_since(start: Optional[datetime]) -> int:
        stmt = select(func.count(AuditLog.id))
        if start is not None:
            stmt = stmt.where(AuditLog.created_at >= start.replace(tzinfo=None))
        return session.execute(stmt).scalar_one()

    return {
        'total': count_since(None),
        'today': count_since(today),
        'this_week': count_since(week),
        'this_month': count_since(month),
    }


__all__ = ['SYSTEM_ACTOR_ID', 'record', 'statistics']
