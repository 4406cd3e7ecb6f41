"""Declarative policy table: (role, resource_type, action) -> Decision.

Every access rule of the access core lives here. Handlers never compare roles
inline; they ask the policy engine, which only reads this table.
Extend cautiously; a missing read entry resolves to an empty scope, a missing
entry for any other action is a denial.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class Role(str, Enum):
    ADMIN = 'admin'
    PROVIDER = 'provider'
    RECEPTION = 'reception'
    CLIENT = 'client'


RESOURCE_CLIENT = 'client'
RESOURCE_APPOINTMENT = 'appointment'
RESOURCE_PAYMENT = 'payment'
RESOURCE_AUDIT_LOG = 'audit_log'

ACTION_READ = 'read'
ACTION_CREATE = 'create'
ACTION_UPDATE = 'update'
ACTION_DELETE = 'delete'
ACTION_CONFIRM = 'confirm'
ACTION_CANCEL = 'cancel'


class ScopeKind(str, Enum):
    ALL = 'all'
    NOTHING = 'nothing'
    OWNED_BY_CLIENT_USER = 'owned_by_client_user'
    LINKED_BY_PROVIDER_APPOINTMENT = 'linked_by_provider_appointment'
    ASSIGNED_OR_LINKED_CLIENT = 'assigned_or_linked_client'
    ASSIGNED_PROVIDER = 'assigned_provider'


class Effect(str, Enum):
    DENIED = 'denied'
    ALLOWED_ALL = 'allowed_all'
    ALLOWED_SCOPED = 'allowed_scoped'


@dataclass(frozen=True)
class Decision:
    effect: Effect
    scope: Optional[ScopeKind] = None

    @property
    def denied(self) -> bool:
        return self.effect is Effect.DENIED

    def scope_kind(self) -> ScopeKind:
        """Scope this decision grants; ALL for AllowedAll. Invalid on a denial."""
        if self.effect is Effect.ALLOWED_ALL:
            return ScopeKind.ALL
        if self.effect is Effect.ALLOWED_SCOPED and self.scope is not None:
            return self.scope
        raise ValueError('denied decision has no scope')


DENIED = Decision(Effect.DENIED)
ALLOWED_ALL = Decision(Effect.ALLOWED_ALL)


def scoped(kind: ScopeKind) -> Decision:
    return Decision(Effect.ALLOWED_SCOPED, kind)


# Surfaced to callers as an empty result set, never as an error.
EMPTY_SCOPE = scoped(ScopeKind.NOTHING)

PolicyKey = Tuple[Role, str, str]

_OWN = scoped(ScopeKind.OWNED_BY_CLIENT_USER)

POLICY_TABLE: Dict[PolicyKey, Decision] = {
    # Admin: read-only over everything, sole reader of the audit trail
    (Role.ADMIN, RESOURCE_CLIENT, ACTION_READ): ALLOWED_ALL,
    (Role.ADMIN, RESOURCE_APPOINTMENT, ACTION_READ): ALLOWED_ALL,
    (Role.ADMIN, RESOURCE_PAYMENT, ACTION_READ): ALLOWED_ALL,
    (Role.ADMIN, RESOURCE_AUDIT_LOG, ACTION_READ): ALLOWED_ALL,
    (Role.ADMIN, RESOURCE_CLIENT, ACTION_CREATE): DENIED,
    (Role.ADMIN, RESOURCE_CLIENT, ACTION_UPDATE): DENIED,
    (Role.ADMIN, RESOURCE_CLIENT, ACTION_DELETE): DENIED,
    (Role.ADMIN, RESOURCE_PAYMENT, ACTION_CREATE): DENIED,

    # Reception: front desk, full operational authority
    (Role.RECEPTION, RESOURCE_CLIENT, ACTION_READ): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_CLIENT, ACTION_CREATE): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_CLIENT, ACTION_UPDATE): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_CLIENT, ACTION_DELETE): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_APPOINTMENT, ACTION_READ): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_APPOINTMENT, ACTION_CREATE): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_APPOINTMENT, ACTION_UPDATE): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_APPOINTMENT, ACTION_DELETE): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_PAYMENT, ACTION_READ): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_PAYMENT, ACTION_CREATE): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_PAYMENT, ACTION_CONFIRM): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_PAYMENT, ACTION_CANCEL): ALLOWED_ALL,
    (Role.RECEPTION, RESOURCE_AUDIT_LOG, ACTION_READ): DENIED,

    # Provider: clients they are assigned to or have served, their own schedule
    (Role.PROVIDER, RESOURCE_CLIENT, ACTION_READ): scoped(ScopeKind.ASSIGNED_OR_LINKED_CLIENT),
    (Role.PROVIDER, RESOURCE_CLIENT, ACTION_CREATE): DENIED,
    (Role.PROVIDER, RESOURCE_CLIENT, ACTION_UPDATE): DENIED,
    (Role.PROVIDER, RESOURCE_CLIENT, ACTION_DELETE): DENIED,
    (Role.PROVIDER, RESOURCE_APPOINTMENT, ACTION_READ): scoped(ScopeKind.ASSIGNED_PROVIDER),
    (Role.PROVIDER, RESOURCE_APPOINTMENT, ACTION_CREATE): scoped(ScopeKind.ASSIGNED_PROVIDER),
    (Role.PROVIDER, RESOURCE_APPOINTMENT, ACTION_UPDATE): scoped(ScopeKind.ASSIGNED_PROVIDER),
    (Role.PROVIDER, RESOURCE_PAYMENT, ACTION_READ): scoped(ScopeKind.LINKED_BY_PROVIDER_APPOINTMENT),
    (Role.PROVIDER, RESOURCE_AUDIT_LOG, ACTION_READ): DENIED,

    # Client: only records hanging off their own client profile
    (Role.CLIENT, RESOURCE_CLIENT, ACTION_READ): _OWN,
    (Role.CLIENT, RESOURCE_CLIENT, ACTION_UPDATE): _OWN,
    (Role.CLIENT, RESOURCE_APPOINTMENT, ACTION_READ): _OWN,
    (Role.CLIENT, RESOURCE_APPOINTMENT, ACTION_CREATE): _OWN,
    (Role.CLIENT, RESOURCE_APPOINTMENT, ACTION_UPDATE): _OWN,
    (Role.CLIENT, RESOURCE_APPOINTMENT, ACTION_DELETE): _OWN,
    (Role.CLIENT, RESOURCE_PAYMENT, ACTION_READ): _OWN,
    (Role.CLIENT, RESOURCE_PAYMENT, ACTION_CREATE): _OWN,
    (Role.CLIENT, RESOURCE_PAYMENT, ACTION_CONFIRM): _OWN,
    (Role.CLIENT, RESOURCE_PAYMENT, ACTION_CANCEL): _OWN,
    (Role.CLIENT, RESOURCE_AUDIT_LOG, ACTION_READ): DENIED,
}

# When the live schema lacks the column a scope depends on, the engine swaps in
# the listed narrower scope. Replacements must never match more rows.
SCOPE_FALLBACKS: Dict[ScopeKind, Tuple[Tuple[str, str], ScopeKind]] = {
    ScopeKind.ASSIGNED_OR_LINKED_CLIENT: (('clients', 'preferred_provider_id'), ScopeKind.LINKED_BY_PROVIDER_APPOINTMENT),
}
