import json
import time
from medspa.models.payment import Payment
from tests.test_lifecycle_helpers import sign_webhook, intent_event
from tests.test_utils_seed import make_user, make_client, make_payment, payment_status, audit_entries


def _post(client, payload, signature):
    headers = {'Content-Type': 'application/json'}
    if signature is not None:
        headers['Stripe-Signature'] = signature
    return client.post('/webhooks/stripe', data=payload, headers=headers)


def _confirm_entries(payment_id):
    return [e for e in audit_entries('payment', payment_id) if e.action == 'payment.confirm']


def test_success_event_delivered_twice_transitions_once(client, headers_for):
    reception = make_user('reception')
    created = client.post('/payments', json={'client_id': make_client().id, 'amount': 120, 'payment_method': 'card'},
                          headers=headers_for(reception)).get_json()
    assert created['status'] == 'pending'
    payload = intent_event('payment_intent.succeeded', created['gateway_reference'], created['transaction_id'])
    first = _post(client, payload, sign_webhook(payload))
    second = _post(client, payload, sign_webhook(payload))
    assert first.status_code == 200 and second.status_code == 200
    assert first.get_json()['status'] == 'completed'
    assert second.get_json()['status'] == 'completed'
    assert payment_status(created['id']) == 'completed'
    entries = _confirm_entries(created['id'])
    assert len(entries) == 1
    assert entries[0].actor_id == 0


def test_payment_failed_event(client):
    payment = make_payment(make_client(), gateway_reference='pi_wh_failed')
    payload = intent_event('payment_intent.payment_failed', 'pi_wh_failed')
    resp = _post(client, payload, sign_webhook(payload))
    assert resp.status_code == 200
    assert payment_status(payment.id) == Payment.STATUS_FAILED


def test_invalid_signature_rejected_without_side_effects(client):
    payment = make_payment(make_client(), gateway_reference='pi_wh_badsig')
    payload = intent_event('payment_intent.succeeded', 'pi_wh_badsig')
    resp = _post(client, payload, sign_webhook(payload, secret='whsec_wrong'))
    assert resp.status_code == 400
    assert payment_status(payment.id) == 'pending'
    assert audit_entries('payment', payment.id) == []


def test_tampered_body_rejected(client):
    payment = make_payment(make_client(), gateway_reference='pi_wh_tamper')
    signed = intent_event('payment_intent.payment_failed', 'pi_wh_tamper')
    tampered = signed.replace('payment_intent.payment_failed', 'payment_intent.succeeded')
    resp = _post(client, tampered, sign_webhook(signed))
    assert resp.status_code == 400
    assert payment_status(payment.id) == 'pending'


def test_missing_signature_rejected(client):
    payment = make_payment(make_client(), gateway_reference='pi_wh_nosig')
    payload = intent_event('payment_intent.succeeded', 'pi_wh_nosig')
    assert _post(client, payload, None).status_code == 400
    assert payment_status(payment.id) == 'pending'


def test_stale_timestamp_rejected(client):
    payment = make_payment(make_client(), gateway_reference='pi_wh_stale')
    payload = intent_event('payment_intent.succeeded', 'pi_wh_stale')
    old = int(time.time()) - 3600
    resp = _post(client, payload, sign_webhook(payload, timestamp=old))
    assert resp.status_code == 400
    assert payment_status(payment.id) == 'pending'


def test_malformed_json_rejected_after_valid_signature(client):
    payload = '{"type": "payment_intent.succeeded", '
    resp = _post(client, payload, sign_webhook(payload))
    assert resp.status_code == 400


def test_unhandled_event_type_acknowledged(client):
    payment = make_payment(make_client(), gateway_reference='pi_wh_other')
    payload = intent_event('payment_intent.created', 'pi_wh_other')
    resp = _post(client, payload, sign_webhook(payload))
    assert resp.status_code == 200
    assert resp.get_json()['received'] is True
    assert payment_status(payment.id) == 'pending'


def test_unknown_payment_acknowledged(client):
    payload = intent_event('payment_intent.succeeded', 'pi_wh_nobody_has_this')
    resp = _post(client, payload, sign_webhook(payload))
    assert resp.status_code == 200
    assert resp.get_json()['status'] is None


def test_webhook_without_configured_secret_rejects(client, app_instance):
    payment = make_payment(make_client(), gateway_reference='pi_wh_nosecret')
    payload = intent_event('payment_intent.succeeded', 'pi_wh_nosecret')
    original = app_instance.config['STRIPE_WEBHOOK_SECRET']
    app_instance.config['STRIPE_WEBHOOK_SECRET'] = None
    try:
        resp = _post(client, payload, sign_webhook(payload))
    finally:
        app_instance.config['STRIPE_WEBHOOK_SECRET'] = original
    assert resp.status_code == 400
    assert payment_status(payment.id) == 'pending'


def test_signed_event_with_wrong_shape_rejected(client):
    payment = make_payment(make_client(), gateway_reference='pi_wh_shape')
    shapes = [
        {'type': ['payment_intent.succeeded'], 'data': {'object': {'id': 'pi_wh_shape'}}},
        {'type': 'payment_intent.succeeded', 'data': [1]},
        {'type': 'payment_intent.succeeded', 'data': {'object': 'pi_wh_shape'}},
        {'type': 'payment_intent.succeeded', 'data': {'object': {'id': 'pi_wh_shape', 'metadata': ['txn']}}},
    ]
    for event in shapes:
        payload = json.dumps(event)
        resp = _post(client, payload, sign_webhook(payload))
        assert resp.status_code == 400
        assert resp.get_json()['error']['kind'] == 'validation_error'
    assert payment_status(payment.id) == 'pending'
    assert audit_entries('payment', payment.id) == []
