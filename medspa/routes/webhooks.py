from __future__ import annotations
from flask import Blueprint, request, current_app
from medspa.errors import ValidationError
from medspa.routes.payments import payment_manager
from medspa.services.webhooks import WebhookAdapter

hooks_bp = Blueprint('webhooks', __name__)


@hooks_bp.post('/stripe')
def stripe_webhook():
    """Gateway callback. Authenticated by signature only; no bearer token."""
    adapter = WebhookAdapter(
        current_app.config.get('STRIPE_WEBHOOK_SECRET'),
        current_app.config['WEBHOOK_TOLERANCE_SECONDS'],
        payment_manager,
    )
    result = adapter.handle(request.get_data(), request.headers.get('Stripe-Signature'))
    if not result.accepted:
        raise ValidationError(result.reason)
    return {'received': True, 'event_type': result.event_type, 'status': result.status}
