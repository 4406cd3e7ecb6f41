"""Test seeding utilities to reduce duplication.

The suite shares one in-memory database, so every helper creates fresh rows with
unique emails; tests assert on the ids they created rather than on table counts.
"""
from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select
from medspa import get_db
from medspa.models.authz import User
from medspa.models.client import Client
from medspa.models.appointment import Appointment
from medspa.models.payment import Payment
from medspa.models.audit import AuditLog


def make_user(role: str, name: Optional[str] = None) -> User:
    session = get_db()
    tag = uuid.uuid4().hex[:8]
    u = User(name=name or f'{role}-{tag}', email=f'{role}-{tag}@example.com', role=role)
    session.add(u); session.commit()
    return u


def make_client(user: Optional[User] = None, name: Optional[str] = None, location_id: Optional[int] = None,
                preferred_provider: Optional[User] = None) -> Client:
    session = get_db()
    c = Client(
        user_id=user.id if user else None,
        name=name or f'Client {uuid.uuid4().hex[:6]}',
        email=f'c-{uuid.uuid4().hex[:8]}@example.com',
        location_id=location_id,
    )
    if preferred_provider is not None:
        c.preferred_provider_id = preferred_provider.id
    session.add(c); session.commit()
    return c


def make_appointment(client: Client, provider: Optional[User] = None, status: str = Appointment.STATUS_BOOKED,
                     start_time: Optional[datetime] = None, location_id: Optional[int] = None) -> Appointment:
    session = get_db()
    a = Appointment(
        client_id=client.id,
        provider_id=provider.id if provider else None,
        status=status,
        start_time=start_time or datetime(2026, 3, 1, 10, 0),
        location_id=location_id,
    )
    session.add(a); session.commit()
    return a


def make_payment(client: Client, appointment: Optional[Appointment] = None, amount: str = '100.00',
                 method: str = Payment.METHOD_GATEWAY, status: str = Payment.STATUS_PENDING,
                 gateway_reference: Optional[str] = None) -> Payment:
    """Insert a payment row directly, bypassing the lifecycle manager."""
    session = get_db()
    p = Payment(
        transaction_id=f'TXN-{uuid.uuid4().hex[:16].upper()}',
        client_id=client.id,
        appointment_id=appointment.id if appointment else None,
        amount=Decimal(amount),
        method=method,
        status=status,
        commission=Decimal('0.00'),
        tips=Decimal('0.00'),
        gateway_reference=gateway_reference,
    )
    session.add(p); session.commit()
    return p


def payment_status(payment_id: int) -> str:
    session = get_db()
    return session.execute(select(Payment.status).where(Payment.id == payment_id)).scalar_one()


def audit_entries(resource_type: str, resource_id) -> List[AuditLog]:
    session = get_db()
    return list(session.execute(
        select(AuditLog)
        .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == str(resource_id))
        .order_by(AuditLog.id)
    ).scalars())
