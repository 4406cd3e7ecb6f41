from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Numeric, ForeignKey, DateTime, CheckConstraint, func

from .authz import Base


class Payment(Base):
    __tablename__ = 'payments'
    # Lifecycle: pending -> completed | failed | canceled (all terminal)
    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CANCELED = 'canceled'
    ALL_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELED)
    METHOD_CASH = 'cash'
    METHOD_GATEWAY = 'gateway'
    ALL_METHODS = (METHOD_CASH, METHOD_GATEWAY)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    appointment_id: Mapped[Optional[int]] = mapped_column(ForeignKey('appointments.id'), nullable=True, index=True)
    package_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    commission: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    tips: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    gateway_reference: Mapped[Optional[str]] = mapped_column(String(128), unique=True, nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (CheckConstraint('amount > 0', name='ck_payments_amount_positive'),)

    def to_dict(self):
        return {
            'id': self.id,
            'transaction_id': self.transaction_id,
            'client_id': self.client_id,
            'appointment_id': self.appointment_id,
            'package_id': self.package_id,
            'amount': str(self.amount),
            'method': self.method,
            'status': self.status,
            'commission': str(self.commission),
            'tips': str(self.tips),
            'gateway_reference': self.gateway_reference,
            'notes': self.notes,
        }


__all__ = ['Payment']
