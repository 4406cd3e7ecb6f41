"""External payment gateway adapter.

PaymentGateway is the seam the lifecycle manager talks to; StripeGateway is the
production implementation. Every call is bounded by a timeout and never retried
automatically: a timeout surfaces as GatewayTimeout because the request may or
may not have reached the gateway.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

import stripe

from medspa.errors import GatewayError, GatewayTimeout

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayIntent:
    reference: str
    client_secret: Optional[str] = None
    status: Optional[str] = None


class PaymentGateway:
    """Operations the payment lifecycle needs from a gateway."""

    def create_intent(self, amount: Decimal, currency: str, idempotency_key: str,
                      metadata: Dict[str, str]) -> GatewayIntent:
        raise NotImplementedError

    def retrieve_status(self, reference: str) -> str:
        raise NotImplementedError

    def cancel_intent(self, reference: str) -> str:
        raise NotImplementedError


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: Optional[str], timeout: float):
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    def _stripe(self):
        if not self.api_key:
            raise GatewayError('Payment gateway not configured')
        if self._client is None:
            self._client = stripe.StripeClient(
                self.api_key,
                http_client=stripe.RequestsClient(timeout=self.timeout),
                max_network_retries=0,
            )
        return self._client

    def _call(self, operation: str, fn):
        try:
            return fn()
        except stripe.APIConnectionError:
            log.warning('gateway %s timed out or connection failed', operation)
            raise GatewayTimeout()
        except stripe.StripeError as e:
            log.exception('gateway %s failed', operation)
            raise GatewayError(getattr(e, 'user_message', None) or 'Payment gateway error')

    def create_intent(self, amount, currency, idempotency_key, metadata):
        client = self._stripe()
        intent = self._call('create_intent', lambda: client.payment_intents.create(
            params={
                'amount': to_minor_units(amount),
                'currency': currency,
                'metadata': dict(metadata),
                'automatic_payment_methods': {'enabled': True},
            },
            options={'idempotency_key': idempotency_key},
        ))
        return GatewayIntent(reference=intent.id, client_secret=intent.client_secret, status=intent.status)

    def retrieve_status(self, reference):
        client = self._stripe()
        intent = self._call('retrieve_status', lambda: client.payment_intents.retrieve(reference))
        return intent.status

    def cancel_intent(self, reference):
        client = self._stripe()
        intent = self._call('cancel_intent', lambda: client.payment_intents.cancel(reference))
        return intent.status


__all__ = ['GatewayIntent', 'PaymentGateway', 'StripeGateway', 'to_minor_units']
