from medspa.models.appointment import Appointment
from tests.test_utils_seed import make_user, make_client, make_appointment, audit_entries


def test_client_cannot_read_another_clients_appointment(client, headers_for):
    user = make_user('client')
    make_client(user)
    foreign = make_appointment(make_client())
    resp = client.get(f'/appointments/{foreign.id}', headers=headers_for(user))
    assert resp.status_code == 403
    assert resp.get_json()['error']['kind'] == 'authorization_error'


def test_client_reads_own_appointment(client, headers_for):
    user = make_user('client')
    own = make_client(user)
    appt = make_appointment(own)
    resp = client.get(f'/appointments/{appt.id}', headers=headers_for(user))
    assert resp.status_code == 200
    assert resp.get_json()['client_id'] == own.id


def test_client_identity_without_profile_is_404(client, headers_for):
    user = make_user('client')
    resp = client.get('/appointments', headers=headers_for(user))
    assert resp.status_code == 404


def test_client_books_only_for_self(client, headers_for):
    user = make_user('client')
    own = make_client(user)
    other = make_client()
    h = headers_for(user)
    ok = client.post('/appointments', json={'client_id': own.id, 'start_time': '2026-05-01T09:00:00', 'end_time': '2026-05-01T10:00:00'}, headers=h)
    assert ok.status_code == 201
    assert ok.get_json()['status'] == Appointment.STATUS_BOOKED
    denied = client.post('/appointments', json={'client_id': other.id}, headers=h)
    assert denied.status_code == 403


def test_end_before_start_rejected(client, headers_for):
    reception = make_user('reception')
    c = make_client()
    resp = client.post('/appointments', json={
        'client_id': c.id, 'start_time': '2026-05-01T10:00:00', 'end_time': '2026-05-01T09:00:00',
    }, headers=headers_for(reception))
    assert resp.status_code == 400


def test_provider_status_update_is_audited(client, headers_for):
    provider = make_user('provider')
    appt = make_appointment(make_client(), provider=provider)
    resp = client.patch(f'/appointments/{appt.id}/status', json={'status': 'confirmed'}, headers=headers_for(provider))
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'confirmed'
    entries = audit_entries('appointment', appt.id)
    assert len(entries) == 1
    assert entries[0].actor_id == provider.id
    assert entries[0].before_snapshot['status'] == 'booked'
    assert entries[0].after_snapshot['status'] == 'confirmed'


def test_invalid_status_rejected(client, headers_for):
    reception = make_user('reception')
    appt = make_appointment(make_client())
    resp = client.patch(f'/appointments/{appt.id}/status', json={'status': 'teleported'}, headers=headers_for(reception))
    assert resp.status_code == 400
    assert audit_entries('appointment', appt.id) == []


def test_provider_cannot_touch_other_providers_appointment(client, headers_for):
    provider = make_user('provider')
    appt = make_appointment(make_client(), provider=make_user('provider'))
    resp = client.put(f'/appointments/{appt.id}', json={'notes': 'hi'}, headers=headers_for(provider))
    assert resp.status_code == 403


def test_appointment_date_filters(client, headers_for):
    reception = make_user('reception')
    c = make_client()
    from datetime import datetime
    early = make_appointment(c, start_time=datetime(2031, 1, 5, 9, 0))
    late = make_appointment(c, start_time=datetime(2031, 1, 20, 9, 0))
    h = headers_for(reception)
    on_day = client.get(f'/appointments?client_id={c.id}&date=2031-01-05', headers=h).get_json()
    assert [a['id'] for a in on_day['data']] == [early.id]
    ranged = client.get(f'/appointments?client_id={c.id}&date_from=2031-01-06&date_to=2031-01-20', headers=h).get_json()
    assert [a['id'] for a in ranged['data']] == [late.id]


def test_client_deletes_own_appointment(client, headers_for):
    user = make_user('client')
    appt = make_appointment(make_client(user))
    resp = client.delete(f'/appointments/{appt.id}', headers=headers_for(user))
    assert resp.status_code == 204
    entries = audit_entries('appointment', appt.id)
    assert [e.action for e in entries] == ['appointment.delete']
    assert entries[0].before_snapshot['id'] == appt.id
