import pytest
from medspa import get_db
from medspa.constants.policy import (
    Role, ScopeKind, Effect, POLICY_TABLE, DENIED,
    RESOURCE_CLIENT, RESOURCE_APPOINTMENT, RESOURCE_PAYMENT, RESOURCE_AUDIT_LOG,
    ACTION_READ, ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE, ACTION_CONFIRM,
)
from medspa.errors import AuthorizationError, NotFoundError
from medspa.models.client import Client
from medspa.services import policy
from medspa.services.policy import (
    Identity, decide, resolve_scope, authorize_record, authorize_values, validate_policy_table,
)
from tests.test_utils_seed import make_user, make_client, make_appointment


def test_policy_table_is_consistent():
    assert validate_policy_table() == []


def test_admin_is_read_only():
    admin = Identity(1, Role.ADMIN)
    for resource in (RESOURCE_CLIENT, RESOURCE_APPOINTMENT, RESOURCE_PAYMENT, RESOURCE_AUDIT_LOG):
        assert decide(admin, resource, ACTION_READ).effect is Effect.ALLOWED_ALL
    for action in (ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE):
        assert decide(admin, RESOURCE_CLIENT, action).denied
        assert decide(admin, RESOURCE_APPOINTMENT, action).denied


def test_missing_write_entry_is_denied():
    key = (Role.PROVIDER, RESOURCE_PAYMENT, ACTION_READ)
    assert key in POLICY_TABLE
    # no provider entry for confirming payments: a write, so denied
    assert decide(Identity(1, Role.PROVIDER), RESOURCE_PAYMENT, ACTION_CONFIRM) is DENIED


def test_missing_read_entry_resolves_to_nothing(monkeypatch):
    patched = dict(POLICY_TABLE)
    del patched[(Role.PROVIDER, RESOURCE_PAYMENT, ACTION_READ)]
    monkeypatch.setattr(policy, 'POLICY_TABLE', patched)
    decision = decide(Identity(1, Role.PROVIDER), RESOURCE_PAYMENT, ACTION_READ)
    assert decision.scope_kind() is ScopeKind.NOTHING


def test_decide_is_pure_for_same_inputs():
    ident = Identity(7, Role.CLIENT)
    assert decide(ident, RESOURCE_APPOINTMENT, ACTION_READ) == decide(ident, RESOURCE_APPOINTMENT, ACTION_READ)


def test_identity_from_claims():
    assert Identity.from_claims('5', 'reception') == Identity(5, Role.RECEPTION)
    with pytest.raises(AuthorizationError):
        Identity.from_claims('5', 'superuser')
    with pytest.raises(AuthorizationError):
        Identity.from_claims(None, 'admin')


def test_denied_raises_rather_than_empty():
    session = get_db()
    with pytest.raises(AuthorizationError):
        resolve_scope(session, Identity(1, Role.RECEPTION), RESOURCE_AUDIT_LOG, ACTION_READ)


def test_client_without_profile_is_not_found():
    user = make_user('client')
    with pytest.raises(NotFoundError):
        resolve_scope(get_db(), Identity(user.id, Role.CLIENT), RESOURCE_APPOINTMENT, ACTION_READ)


def test_client_scope_binds_own_client_id():
    user = make_user('client')
    own = make_client(user)
    predicate = resolve_scope(get_db(), Identity(user.id, Role.CLIENT), RESOURCE_APPOINTMENT, ACTION_READ)
    assert predicate.kind is ScopeKind.OWNED_BY_CLIENT_USER
    assert predicate.client_id == own.id
    assert predicate.permits({'client_id': own.id})
    assert not predicate.permits({'client_id': own.id + 1000})


def test_authorize_record_distinguishes_missing_from_forbidden():
    user = make_user('client')
    make_client(user)
    other = make_client()
    foreign = make_appointment(other)
    ident = Identity(user.id, Role.CLIENT)
    with pytest.raises(AuthorizationError):
        authorize_record(get_db(), ident, RESOURCE_APPOINTMENT, ACTION_READ, foreign.id)
    with pytest.raises(NotFoundError):
        authorize_record(get_db(), ident, RESOURCE_APPOINTMENT, ACTION_READ, 10_000_000)


def test_provider_may_only_book_for_self():
    provider = make_user('provider')
    other = make_user('provider')
    ident = Identity(provider.id, Role.PROVIDER)
    authorize_values(get_db(), ident, RESOURCE_APPOINTMENT, ACTION_CREATE, {'provider_id': provider.id, 'client_id': 1})
    with pytest.raises(AuthorizationError):
        authorize_values(get_db(), ident, RESOURCE_APPOINTMENT, ACTION_CREATE, {'provider_id': other.id, 'client_id': 1})


def _visible_client_ids(predicate):
    session = get_db()
    return {c.id for c in session.query(Client).filter(predicate.clause())}


def test_missing_preferred_provider_column_narrows_scope(monkeypatch):
    provider = make_user('provider')
    assigned = make_client(preferred_provider=provider)
    served = make_client()
    make_appointment(served, provider=provider)
    ident = Identity(provider.id, Role.PROVIDER)

    full = resolve_scope(get_db(), ident, RESOURCE_CLIENT, ACTION_READ)
    assert full.kind is ScopeKind.ASSIGNED_OR_LINKED_CLIENT
    wide = _visible_client_ids(full)
    assert {assigned.id, served.id} <= wide

    monkeypatch.setattr(policy, 'has_column', lambda session, table, column: False)
    narrowed = resolve_scope(get_db(), ident, RESOURCE_CLIENT, ACTION_READ)
    assert narrowed.kind is ScopeKind.LINKED_BY_PROVIDER_APPOINTMENT
    narrow = _visible_client_ids(narrowed)
    assert served.id in narrow
    assert assigned.id not in narrow
    assert narrow <= wide


def test_has_column_reads_live_schema():
    session = get_db()
    assert policy.has_column(session, 'clients', 'preferred_provider_id')
    assert not policy.has_column(session, 'clients', 'no_such_column')
    assert not policy.has_column(session, 'no_such_table', 'id')
