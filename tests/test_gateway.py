from decimal import Decimal
from types import SimpleNamespace
import pytest
import stripe
from medspa.errors import GatewayError, GatewayTimeout
from medspa.services.gateway import StripeGateway, to_minor_units


class _Intents:
    def __init__(self, exc=None):
        self.exc = exc
        self.calls = []

    def create(self, params, options=None):
        self.calls.append((params, options))
        if self.exc:
            raise self.exc
        return SimpleNamespace(id='pi_123', client_secret='pi_123_secret', status='requires_payment_method')

    def retrieve(self, reference):
        if self.exc:
            raise self.exc
        return SimpleNamespace(id=reference, status='succeeded')


def _gateway(exc=None):
    gw = StripeGateway('sk_test_dummy', timeout=5)
    intents = _Intents(exc)
    gw._client = SimpleNamespace(payment_intents=intents)
    return gw, intents


def test_minor_units():
    assert to_minor_units(Decimal('49.99')) == 4999
    assert to_minor_units(Decimal('100')) == 10000


def test_create_passes_idempotency_key_and_metadata():
    gw, intents = _gateway()
    intent = gw.create_intent(Decimal('12.50'), 'usd', 'TXN-ABC', {'transaction_id': 'TXN-ABC'})
    assert intent.reference == 'pi_123'
    params, options = intents.calls[0]
    assert params['amount'] == 1250
    assert params['metadata'] == {'transaction_id': 'TXN-ABC'}
    assert options == {'idempotency_key': 'TXN-ABC'}


def test_connection_failure_is_timeout():
    gw, _ = _gateway(stripe.APIConnectionError('timed out'))
    with pytest.raises(GatewayTimeout):
        gw.create_intent(Decimal('1.00'), 'usd', 'TXN-T', {})


def test_gateway_rejection_is_gateway_error():
    gw, _ = _gateway(stripe.StripeError('declined'))
    with pytest.raises(GatewayError) as info:
        gw.retrieve_status('pi_x')
    assert not isinstance(info.value, GatewayTimeout)


def test_missing_key_is_gateway_error():
    with pytest.raises(GatewayError):
        StripeGateway(None, timeout=5).retrieve_status('pi_x')
