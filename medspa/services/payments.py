"""Payment lifecycle manager.

pending -> completed | failed | canceled, all terminal. State changes are
conditional UPDATEs guarded on the source state, so concurrent confirmations (a
webhook racing a manual sync, or a redelivered webhook) change the row at most
once and only the winner writes an audit entry.
"""
from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import select, update, func

from medspa.constants.policy import (
    RESOURCE_PAYMENT, ACTION_CREATE, ACTION_CONFIRM, ACTION_CANCEL,
)
from medspa.errors import ConflictError, GatewayError, GatewayTimeout, NotFoundError, ValidationError
from medspa.models.appointment import Appointment
from medspa.models.client import Client
from medspa.models.payment import Payment
from medspa.services import audit
from medspa.services.commission import commission
from medspa.services.gateway import PaymentGateway
from medspa.services.policy import Identity, authorize_record, authorize_values
from medspa.utils.fsm import TransitionValidator
from medspa.utils.transaction import unit_of_work
from medspa.utils.validation import parse_decimal, parse_int

log = logging.getLogger(__name__)

CENT = Decimal('0.01')


class PaymentStatus(str, Enum):
    PENDING = Payment.STATUS_PENDING
    COMPLETED = Payment.STATUS_COMPLETED
    FAILED = Payment.STATUS_FAILED
    CANCELED = Payment.STATUS_CANCELED


class PaymentMethod(str, Enum):
    CASH = Payment.METHOD_CASH
    GATEWAY = Payment.METHOD_GATEWAY

    @classmethod
    def parse(cls, raw: Any) -> 'PaymentMethod':
        key = str(raw or '').strip().lower()
        method = _METHOD_ALIASES.get(key)
        if method is None:
            raise ValidationError('method must be cash or card')
        return method


_METHOD_ALIASES = {
    'cash': PaymentMethod.CASH,
    'card': PaymentMethod.GATEWAY,
    'stripe': PaymentMethod.GATEWAY,
    'gateway': PaymentMethod.GATEWAY,
}


class ConfirmationOutcome(str, Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'

    @property
    def target_status(self) -> PaymentStatus:
        return PaymentStatus.COMPLETED if self is ConfirmationOutcome.SUCCESS else PaymentStatus.FAILED


PAYMENT_FSM = TransitionValidator({
    PaymentStatus.PENDING.value: {PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value, PaymentStatus.CANCELED.value},
    PaymentStatus.COMPLETED.value: set(),
    PaymentStatus.FAILED.value: set(),
    PaymentStatus.CANCELED.value: set(),
}, field_name='payment status')

# Gateway intent status -> outcome when polling an intent directly
INTENT_OUTCOMES = {
    'succeeded': ConfirmationOutcome.SUCCESS,
    'canceled': ConfirmationOutcome.FAILURE,
}


def new_transaction_id() -> str:
    return f'TXN-{uuid.uuid4().hex[:16].upper()}'


@dataclass(frozen=True)
class CreatedPayment:
    payment: Payment
    client_secret: Optional[str] = None


class PaymentLifecycleManager:
    def __init__(self, session, gateway: PaymentGateway, commission_rate: Decimal, currency: str = 'usd'):
        self.session = session
        self.gateway = gateway
        self.commission_rate = Decimal(commission_rate)
        self.currency = currency

    # ---- create ------------------------------------------------------------

    def create(self, actor: Identity, client_id: Any, amount: Any, method: Any,
               appointment_id: Any = None, package_id: Any = None, tips: Any = 0,
               notes: Optional[str] = None) -> CreatedPayment:
        """Record a payment. Cash settles immediately; gateway payments start pending.

        Commission is computed here, once, from the configured rate; later rate
        changes never touch stored payments.
        """
        session = self.session
        client_id = parse_int(client_id, 'client_id', required=True)
        amount = parse_decimal(amount, 'amount', required=True)
        if amount <= 0:
            raise ValidationError('amount must be greater than 0')
        if amount != amount.quantize(CENT):
            raise ValidationError('amount must have at most 2 decimal places')
        tips = parse_decimal(tips, 'tips') or Decimal('0')
        if tips < 0:
            raise ValidationError('tips must not be negative')
        method = PaymentMethod.parse(method)
        appointment_id = parse_int(appointment_id, 'appointment_id')
        package_id = parse_int(package_id, 'package_id')

        authorize_values(session, actor, RESOURCE_PAYMENT, ACTION_CREATE, {'client_id': client_id})
        if session.get(Client, client_id) is None:
            raise NotFoundError('client not found')
        if appointment_id is not None:
            appt = session.get(Appointment, appointment_id)
            if appt is None or appt.client_id != client_id:
                raise ValidationError('appointment_id does not belong to client')

        payment = Payment(
            transaction_id=new_transaction_id(),
            client_id=client_id,
            appointment_id=appointment_id,
            package_id=package_id,
            amount=amount.quantize(CENT),
            method=method.value,
            tips=tips.quantize(CENT),
            commission=commission(amount, self.commission_rate),
            notes=notes,
        )
        client_secret = None
        if method is PaymentMethod.CASH:
            payment.status = PaymentStatus.COMPLETED.value
        else:
            payment.status = PaymentStatus.PENDING.value
            try:
                intent = self.gateway.create_intent(
                    amount, self.currency, idempotency_key=payment.transaction_id,
                    metadata={'transaction_id': payment.transaction_id, 'client_id': str(client_id)},
                )
            except GatewayTimeout:
                # Outcome unknown: keep it pending; the webhook reconciles via transaction_id metadata
                log.warning('payment %s: gateway timeout on create, stored pending without reference', payment.transaction_id)
            else:
                payment.gateway_reference = intent.reference
                client_secret = intent.client_secret

        with unit_of_work(session):
            session.add(payment)
            session.flush()
            audit.record(session, actor.id, 'payment.create', RESOURCE_PAYMENT, payment.id, None, payment.to_dict())
        log.info('payment created id=%s txn=%s method=%s status=%s', payment.id, payment.transaction_id, payment.method, payment.status)
        return CreatedPayment(payment=payment, client_secret=client_secret)

    # ---- confirm -----------------------------------------------------------

    def _find(self, gateway_reference: Optional[str], transaction_id: Optional[str]) -> Payment:
        payment = None
        if gateway_reference:
            payment = self.session.execute(
                select(Payment).where(Payment.gateway_reference == gateway_reference)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        if payment is None and transaction_id:
            payment = self.session.execute(
                select(Payment).where(Payment.transaction_id == transaction_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        if payment is None:
            raise NotFoundError('payment not found')
        return payment

    def confirm(self, gateway_reference: Optional[str], outcome: ConfirmationOutcome,
                actor: Optional[Identity] = None, transaction_id: Optional[str] = None) -> PaymentStatus:
        """Apply a gateway outcome to a pending payment; idempotent.

        Returns the payment's status afterwards. A payment that is no longer pending
        is left untouched and no audit entry is written.
        """
        session = self.session
        payment = self._find(gateway_reference, transaction_id)
        if actor is not None:
            authorize_record(session, actor, RESOURCE_PAYMENT, ACTION_CONFIRM, payment.id)
        if gateway_reference and payment.gateway_reference and payment.gateway_reference != gateway_reference:
            raise ConflictError('gateway reference does not match payment')
        target = outcome.target_status.value
        before = payment.to_dict()
        values: Dict[str, Any] = {'status': target, 'updated_at': func.now()}
        if payment.gateway_reference is None and gateway_reference:
            values['gateway_reference'] = gateway_reference

        with unit_of_work(session):
            result = session.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status.in_(sorted(PAYMENT_FSM.sources_for(target))))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1
            if changed:
                after = dict(before, status=target, gateway_reference=values.get('gateway_reference', payment.gateway_reference))
                audit.record(session, actor.id if actor else None, 'payment.confirm', RESOURCE_PAYMENT, payment.id, before, after)
        session.refresh(payment)
        if changed:
            log.info('payment %s confirmed: %s', payment.id, target)
        else:
            log.info('payment %s confirm(%s) ignored, already %s', payment.id, outcome.value, payment.status)
        return PaymentStatus(payment.status)

    def sync_from_gateway(self, actor: Identity, payment_id: int) -> PaymentStatus:
        """Poll the gateway for the intent's status and confirm accordingly."""
        payment = authorize_record(self.session, actor, RESOURCE_PAYMENT, ACTION_CONFIRM, payment_id)
        if payment.method != PaymentMethod.GATEWAY.value:
            raise ConflictError('Only gateway payments can be confirmed')
        if not payment.gateway_reference:
            raise ConflictError('Payment has no gateway reference yet')
        intent_status = self.gateway.retrieve_status(payment.gateway_reference)
        outcome = INTENT_OUTCOMES.get(intent_status)
        if outcome is None:
            raise ConflictError(f'Payment not settled at gateway ({intent_status})')
        status = self.confirm(payment.gateway_reference, outcome, actor=actor)
        if status is not outcome.target_status:
            raise ConflictError(f'Payment already {status.value}')
        return status

    # ---- cancel ------------------------------------------------------------

    def cancel(self, actor: Identity, payment_id: int) -> Payment:
        """Cancel a pending payment. Gateway intents are canceled first; if that fails nothing changes."""
        session = self.session
        payment = authorize_record(session, actor, RESOURCE_PAYMENT, ACTION_CANCEL, payment_id)
        target = PaymentStatus.CANCELED.value
        PAYMENT_FSM.assert_can_transition(payment.status, target)
        if payment.method == PaymentMethod.GATEWAY.value and payment.gateway_reference:
            try:
                self.gateway.cancel_intent(payment.gateway_reference)
            except GatewayError:
                log.warning('payment %s: gateway cancel failed, payment left %s', payment.id, payment.status)
                raise
        before = payment.to_dict()
        with unit_of_work(session):
            result = session.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status.in_(sorted(PAYMENT_FSM.sources_for(target))))
                .values(status=target, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError('Payment is no longer pending')
            audit.record(session, actor.id, 'payment.cancel', RESOURCE_PAYMENT, payment.id, before, dict(before, status=target))
        session.refresh(payment)
        log.info('payment %s canceled by user=%s', payment.id, actor.id)
        return payment


__all__ = [
    'PaymentStatus', 'PaymentMethod', 'ConfirmationOutcome', 'PAYMENT_FSM', 'INTENT_OUTCOMES',
    'CreatedPayment', 'PaymentLifecycleManager', 'new_transaction_id',
]
