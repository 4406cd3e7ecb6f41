"""Authorization policy engine.

Evaluates POLICY_TABLE for an explicit caller Identity and turns the decision into a
concrete ScopePredicate (a SQLAlchemy clause plus a payload check). Decisions are
computed fresh on every call; nothing is cached across requests.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import select, inspect, or_, true, false
from sqlalchemy.exc import NoSuchTableError

from medspa.constants.policy import (
    Role, ScopeKind, Decision, DENIED, EMPTY_SCOPE, POLICY_TABLE, SCOPE_FALLBACKS,
    ACTION_READ, RESOURCE_CLIENT, RESOURCE_APPOINTMENT, RESOURCE_PAYMENT, RESOURCE_AUDIT_LOG,
)
from medspa.errors import AuthorizationError, NotFoundError
from medspa.models.appointment import Appointment
from medspa.models.audit import AuditLog
from medspa.models.client import Client
from medspa.models.payment import Payment

log = logging.getLogger(__name__)

RESOURCE_MODELS = {
    RESOURCE_CLIENT: Client,
    RESOURCE_APPOINTMENT: Appointment,
    RESOURCE_PAYMENT: Payment,
    RESOURCE_AUDIT_LOG: AuditLog,
}


@dataclass(frozen=True)
class Identity:
    """Validated caller for the duration of one request."""
    id: int
    role: Role

    @classmethod
    def from_claims(cls, subject: Any, role: Any) -> 'Identity':
        try:
            user_id = int(subject)
            parsed_role = Role(role)
        except (TypeError, ValueError):
            raise AuthorizationError('Invalid identity')
        return cls(id=user_id, role=parsed_role)


def decide(identity: Identity, resource_type: str, action: str) -> Decision:
    """Look up the table. A missing read entry is an empty scope; any other missing entry is a denial."""
    decision = POLICY_TABLE.get((identity.role, resource_type, action))
    if decision is not None:
        return decision
    if action == ACTION_READ:
        return EMPTY_SCOPE
    return DENIED


def has_column(session, table: str, column: str) -> bool:
    """True when the live database table has the column (not just the mapped model)."""
    # Inspect through the session's own connection so no pooled connection is
    # checked out and returned underneath the open transaction.
    inspector = inspect(session.connection())
    try:
        columns = inspector.get_columns(table)
    except NoSuchTableError:
        return False
    return any(c['name'] == column for c in columns)


def own_client_id(session, identity: Identity) -> int:
    client_id = session.execute(
        select(Client.id).where(Client.user_id == identity.id).order_by(Client.id).limit(1)
    ).scalar_one_or_none()
    if client_id is None:
        raise NotFoundError('Client profile not found')
    return client_id


def _served_client_ids(provider_id: int):
    return select(Appointment.client_id).where(Appointment.provider_id == provider_id)


def _provider_appointment_ids(provider_id: int):
    return select(Appointment.id).where(Appointment.provider_id == provider_id)


@dataclass(frozen=True)
class ScopePredicate:
    kind: ScopeKind
    resource_type: str
    identity: Identity
    client_id: Optional[int] = None

    def clause(self):
        if self.kind is ScopeKind.ALL:
            return true()
        if self.kind is ScopeKind.NOTHING:
            return false()
        builder = _CLAUSE_BUILDERS.get((self.resource_type, self.kind))
        if builder is None:
            # Unknown combination: match nothing rather than everything
            log.error('no clause builder for %s/%s', self.resource_type, self.kind.value)
            return false()
        return builder(self)

    def permits(self, values: Mapping[str, Any]) -> bool:
        """Whether a record with these field values would fall inside the scope."""
        if self.kind is ScopeKind.ALL:
            return True
        check = _VALUE_CHECKS.get((self.resource_type, self.kind))
        if check is None:
            return False
        return check(self, values)


_CLAUSE_BUILDERS: Dict[Tuple[str, ScopeKind], Callable[[ScopePredicate], Any]] = {
    (RESOURCE_CLIENT, ScopeKind.OWNED_BY_CLIENT_USER): lambda p: Client.user_id == p.identity.id,
    (RESOURCE_CLIENT, ScopeKind.ASSIGNED_OR_LINKED_CLIENT): lambda p: or_(
        Client.preferred_provider_id == p.identity.id,
        Client.id.in_(_served_client_ids(p.identity.id)),
    ),
    (RESOURCE_CLIENT, ScopeKind.LINKED_BY_PROVIDER_APPOINTMENT): lambda p: Client.id.in_(_served_client_ids(p.identity.id)),
    (RESOURCE_APPOINTMENT, ScopeKind.OWNED_BY_CLIENT_USER): lambda p: Appointment.client_id == p.client_id,
    (RESOURCE_APPOINTMENT, ScopeKind.ASSIGNED_PROVIDER): lambda p: Appointment.provider_id == p.identity.id,
    (RESOURCE_PAYMENT, ScopeKind.OWNED_BY_CLIENT_USER): lambda p: Payment.client_id == p.client_id,
    (RESOURCE_PAYMENT, ScopeKind.LINKED_BY_PROVIDER_APPOINTMENT): lambda p: Payment.appointment_id.in_(_provider_appointment_ids(p.identity.id)),
}

_VALUE_CHECKS: Dict[Tuple[str, ScopeKind], Callable[[ScopePredicate, Mapping[str, Any]], bool]] = {
    (RESOURCE_CLIENT, ScopeKind.OWNED_BY_CLIENT_USER): lambda p, v: v.get('user_id') == p.identity.id,
    (RESOURCE_APPOINTMENT, ScopeKind.OWNED_BY_CLIENT_USER): lambda p, v: v.get('client_id') == p.client_id,
    (RESOURCE_APPOINTMENT, ScopeKind.ASSIGNED_PROVIDER): lambda p, v: v.get('provider_id') == p.identity.id,
    (RESOURCE_PAYMENT, ScopeKind.OWNED_BY_CLIENT_USER): lambda p, v: v.get('client_id') == p.client_id,
}


def _narrow_for_schema(session, kind: ScopeKind) -> ScopeKind:
    while kind in SCOPE_FALLBACKS:
        (table, column), narrower = SCOPE_FALLBACKS[kind]
        if has_column(session, table, column):
            break
        log.info('scope %s narrowed to %s: %s.%s missing', kind.value, narrower.value, table, column)
        kind = narrower
    return kind


def resolve_scope(session, identity: Identity, resource_type: str, action: str) -> ScopePredicate:
    """Decision -> concrete predicate. Denials raise AuthorizationError; they are never an empty success."""
    decision = decide(identity, resource_type, action)
    if decision.denied:
        log.warning('policy denied: user=%s role=%s %s %s', identity.id, identity.role.value, action, resource_type)
        raise AuthorizationError(f'{identity.role.value} may not {action} {resource_type}')
    kind = _narrow_for_schema(session, decision.scope_kind())
    client_id = None
    if kind is ScopeKind.OWNED_BY_CLIENT_USER:
        client_id = own_client_id(session, identity)
    return ScopePredicate(kind=kind, resource_type=resource_type, identity=identity, client_id=client_id)


def in_scope(session, predicate: ScopePredicate, record_id: int) -> bool:
    model = RESOURCE_MODELS[predicate.resource_type]
    return session.execute(
        select(model.id).where(model.id == record_id, predicate.clause())
    ).first() is not None


def authorize_record(session, identity: Identity, resource_type: str, action: str, record_id: int,
                     predicate: Optional[ScopePredicate] = None):
    """Load one record the caller may act on.

    Missing record -> NotFoundError. Existing record outside the caller's scope ->
    AuthorizationError (an explicit rejection, not a 404).
    """
    model = RESOURCE_MODELS[resource_type]
    predicate = predicate or resolve_scope(session, identity, resource_type, action)
    record = session.get(model, record_id)
    if record is None:
        raise NotFoundError(f'{resource_type} not found')
    if not in_scope(session, predicate, record_id):
        log.warning('out of scope: user=%s role=%s %s %s#%s', identity.id, identity.role.value, action, resource_type, record_id)
        raise AuthorizationError(f'Cannot {action} this {resource_type}')
    return record


def authorize_values(session, identity: Identity, resource_type: str, action: str, values: Mapping[str, Any]) -> ScopePredicate:
    """Check that a record with these values may be written by the caller."""
    predicate = resolve_scope(session, identity, resource_type, action)
    if not predicate.permits(values):
        log.warning('payload out of scope: user=%s role=%s %s %s', identity.id, identity.role.value, action, resource_type)
        raise AuthorizationError(f'Cannot {action} {resource_type} outside your scope')
    return predicate


def validate_policy_table() -> List[str]:
    """Return a list of table entries whose scope has no clause builder (empty when consistent)."""
    problems = []
    for (role, resource_type, action), decision in POLICY_TABLE.items():
        if resource_type not in RESOURCE_MODELS:
            problems.append(f'{role.value}/{resource_type}/{action}: unknown resource')
            continue
        if decision.denied:
            continue
        kinds = [decision.scope_kind()]
        while kinds[-1] in SCOPE_FALLBACKS:
            kinds.append(SCOPE_FALLBACKS[kinds[-1]][1])
        for kind in kinds:
            if kind in (ScopeKind.ALL, ScopeKind.NOTHING):
                continue
            if (resource_type, kind) not in _CLAUSE_BUILDERS:
                problems.append(f'{role.value}/{resource_type}/{action}: no clause for {kind.value}')
    return problems


__all__ = [
    'Identity', 'ScopePredicate', 'RESOURCE_MODELS', 'decide', 'has_column', 'own_client_id',
    'resolve_scope', 'in_scope', 'authorize_record', 'authorize_values', 'validate_policy_table',
]
