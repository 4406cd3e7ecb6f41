from __future__ import annotations
from flask import Blueprint, request, current_app
from medspa import get_db
from medspa.constants.policy import RESOURCE_PAYMENT
from medspa.decorators.auth import require_identity
from medspa.services import access
from medspa.services.payments import PaymentLifecycleManager
from medspa.utils.listing import make_list_response
from medspa.utils.payload import json_body

pay_bp = Blueprint('payments', __name__)


def payment_manager() -> PaymentLifecycleManager:
    return PaymentLifecycleManager(
        get_db(),
        current_app.extensions['payment_gateway'],
        current_app.config['COMMISSION_RATE'],
        current_app.config['PAYMENT_CURRENCY'],
    )


@pay_bp.get('')
@require_identity
def list_payments(identity):
    rows, total, limit, offset = access.list_resources(get_db(), identity, RESOURCE_PAYMENT, request.args)
    return make_list_response(rows, total, limit, offset)


@pay_bp.get('/<int:payment_id>')
@require_identity
def get_payment(payment_id: int, identity):
    return access.fetch(get_db(), identity, RESOURCE_PAYMENT, payment_id)


@pay_bp.post('')
@require_identity
def create_payment(identity):
    data = json_body()
    created = payment_manager().create(
        identity,
        client_id=data.get('client_id'),
        amount=data.get('amount'),
        method=data.get('payment_method', data.get('method')),
        appointment_id=data.get('appointment_id'),
        package_id=data.get('package_id'),
        tips=data.get('tips', 0),
        notes=data.get('notes'),
    )
    body = created.payment.to_dict()
    if created.client_secret:
        body['client_secret'] = created.client_secret
    return body, 201


@pay_bp.post('/<int:payment_id>/confirm')
@require_identity
def confirm_payment(payment_id: int, identity):
    """Poll the gateway for this payment's intent and settle it."""
    manager = payment_manager()
    status = manager.sync_from_gateway(identity, payment_id)
    return {'id': payment_id, 'status': status.value}


@pay_bp.post('/<int:payment_id>/cancel')
@require_identity
def cancel_payment(payment_id: int, identity):
    return payment_manager().cancel(identity, payment_id).to_dict()
