"""Inbound gateway webhook handling.

The signature is verified against the raw body before anything is parsed; an
unverified body never reaches the payment lifecycle.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

import stripe

from medspa.errors import NotFoundError
from medspa.services.payments import ConfirmationOutcome, PaymentLifecycleManager

log = logging.getLogger(__name__)

EVENT_OUTCOMES = {
    'payment_intent.succeeded': ConfirmationOutcome.SUCCESS,
    'payment_intent.payment_failed': ConfirmationOutcome.FAILURE,
}


@dataclass(frozen=True)
class WebhookResult:
    accepted: bool
    event_type: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def ack(cls, event_type=None, status=None, reason=None) -> 'WebhookResult':
        return cls(True, event_type, status, reason)

    @classmethod
    def rejected(cls, reason: str) -> 'WebhookResult':
        return cls(False, reason=reason)


class WebhookAdapter:
    def __init__(self, secret: Optional[str], tolerance: int,
                 manager_factory: Callable[[], PaymentLifecycleManager]):
        self.secret = secret
        self.tolerance = tolerance
        self.manager_factory = manager_factory

    def _reject(self, reason: str) -> WebhookResult:
        log.warning('webhook rejected: %s', reason)
        return WebhookResult.rejected(reason)

    def handle(self, raw_body: Union[bytes, str], signature_header: Optional[str]) -> WebhookResult:
        if not self.secret:
            return self._reject('webhook secret not configured')
        if not signature_header:
            return self._reject('missing signature header')
        try:
            payload = raw_body.decode('utf-8') if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError:
            return self._reject('body is not utf-8')
        try:
            stripe.WebhookSignature.verify_header(payload, signature_header, self.secret, self.tolerance)
        except stripe.SignatureVerificationError:
            return self._reject('invalid signature')
        try:
            event = json.loads(payload)
        except ValueError:
            return self._reject('malformed payload')
        if not isinstance(event, dict):
            return self._reject('malformed payload')

        event_type = event.get('type')
        if event_type is not None and not isinstance(event_type, str):
            return self._reject('malformed payload')
        outcome = EVENT_OUTCOMES.get(event_type)
        if outcome is None:
            log.info('webhook event %s ignored', event_type)
            return WebhookResult.ack(event_type, reason='ignored')

        data = event.get('data') or {}
        obj = data.get('object') if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            return self._reject('malformed payload')
        metadata = obj.get('metadata') or {}
        if not isinstance(metadata, dict):
            return self._reject('malformed payload')
        reference = obj.get('id')
        if not reference or not isinstance(reference, str):
            return self._reject('event has no payment reference')
        transaction_id = metadata.get('transaction_id')
        if not isinstance(transaction_id, str):
            transaction_id = None

        manager = self.manager_factory()
        try:
            status = manager.confirm(reference, outcome, actor=None, transaction_id=transaction_id)
        except NotFoundError:
            # Acknowledge so the gateway stops redelivering; nothing local to update
            log.warning('webhook %s for unknown payment reference=%s txn=%s', event_type, reference, transaction_id)
            return WebhookResult.ack(event_type, reason='unknown payment')
        return WebhookResult.ack(event_type, status=status.value)


__all__ = ['EVENT_OUTCOMES', 'WebhookResult', 'WebhookAdapter']
