"""Resource access mediator.

Every list, fetch and mutation of a protected resource goes through here: the
policy scope is applied first, then user filters, sort and pagination. Filters are
ANDed onto the scoped query, so they can only narrow what the caller may see.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy import insert, select, func, or_
from sqlalchemy.orm import undefer

from medspa.constants.policy import (
    ACTION_READ, ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE,
    RESOURCE_CLIENT, RESOURCE_APPOINTMENT, RESOURCE_PAYMENT, RESOURCE_AUDIT_LOG,
)
from medspa.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from medspa.models.appointment import Appointment
from medspa.models.audit import AuditLog
from medspa.models.authz import User
from medspa.models.client import Client
from medspa.models.payment import Payment
from medspa.services import audit
from medspa.services.policy import (
    Identity, ScopePredicate, resolve_scope, authorize_record, authorize_values, in_scope, has_column,
)
from medspa.utils.filters import apply_filters
from medspa.utils.listing import apply_pagination
from medspa.utils.sorting import apply_multi_sort
from medspa.utils.transaction import unit_of_work
from medspa.utils.validation import parse_date, parse_datetime, parse_int, validate_status

log = logging.getLogger(__name__)


def _day_start(d):
    return datetime.combine(d, time.min)


def _next_day_start(d):
    return datetime.combine(d + timedelta(days=1), time.min)


def _eq(column):
    return lambda q, v: q.filter(column == v)


def _int_filter(column):
    return {'coerce': int, 'op': _eq(column)}


def _date_from(column, name):
    return {'coerce': lambda v: parse_date(v, name), 'op': lambda q, d: q.filter(column >= _day_start(d))}


def _date_to(column, name):
    # Inclusive of the whole end day
    return {'coerce': lambda v: parse_date(v, name), 'op': lambda q, d: q.filter(column < _next_day_start(d))}


def _search(*columns):
    def op(q, term):
        pattern = f'%{term}%'
        return q.filter(or_(*[c.ilike(pattern) for c in columns]))
    return {'coerce': lambda v: str(v).strip(), 'op': op}


CLIENT_FILTERS = {
    'location_id': _int_filter(Client.location_id),
    'search': _search(Client.name, Client.email, Client.phone),
}

APPOINTMENT_FILTERS = {
    'client_id': _int_filter(Appointment.client_id),
    'provider_id': _int_filter(Appointment.provider_id),
    'location_id': _int_filter(Appointment.location_id),
    'status': {'validate': lambda v: v in Appointment.ALL_STATUSES, 'op': _eq(Appointment.status)},
    'date': {
        'coerce': lambda v: parse_date(v, 'date'),
        'op': lambda q, d: q.filter(Appointment.start_time >= _day_start(d), Appointment.start_time < _next_day_start(d)),
    },
    'date_from': _date_from(Appointment.start_time, 'date_from'),
    'date_to': _date_to(Appointment.start_time, 'date_to'),
}

PAYMENT_FILTERS = {
    'status': {'validate': lambda v: v in Payment.ALL_STATUSES, 'op': _eq(Payment.status)},
    'method': {'validate': lambda v: v in Payment.ALL_METHODS, 'op': _eq(Payment.method)},
    'client_id': _int_filter(Payment.client_id),
    'date_from': _date_from(Payment.created_at, 'date_from'),
    'date_to': _date_to(Payment.created_at, 'date_to'),
}

AUDIT_LOG_FILTERS = {
    'action': {'op': _eq(AuditLog.action)},
    'resource_type': {'op': _eq(AuditLog.resource_type)},
    'actor_id': _int_filter(AuditLog.actor_id),
    'start_date': _date_from(AuditLog.created_at, 'start_date'),
    'end_date': _date_to(AuditLog.created_at, 'end_date'),
    'search': _search(AuditLog.action, AuditLog.resource_type, AuditLog.resource_id),
}


@dataclass(frozen=True)
class ResourceSpec:
    model: Any
    filters: Dict[str, Dict[str, Any]]
    sort_fields: Dict[str, Any]
    # Mapped but absent from some deployed schemas; read and written only when the live table has it
    optional_column: Optional[str] = None


RESOURCE_SPECS: Dict[str, ResourceSpec] = {
    RESOURCE_CLIENT: ResourceSpec(Client, CLIENT_FILTERS, {
        'id': Client.id, 'name': Client.name, 'email': Client.email, 'created_at': Client.created_at,
    }, optional_column='preferred_provider_id'),
    RESOURCE_APPOINTMENT: ResourceSpec(Appointment, APPOINTMENT_FILTERS, {
        'id': Appointment.id, 'start_time': Appointment.start_time, 'status': Appointment.status,
        'client_id': Appointment.client_id, 'provider_id': Appointment.provider_id,
    }),
    RESOURCE_PAYMENT: ResourceSpec(Payment, PAYMENT_FILTERS, {
        'id': Payment.id, 'amount': Payment.amount, 'status': Payment.status, 'created_at': Payment.created_at,
    }),
    RESOURCE_AUDIT_LOG: ResourceSpec(AuditLog, AUDIT_LOG_FILTERS, {
        'id': AuditLog.id, 'created_at': AuditLog.created_at, 'action': AuditLog.action,
    }),
}


def apply(query, predicate: ScopePredicate, specs: Dict[str, Dict[str, Any]], params: Mapping[str, Any]):
    """Scope first, then user filters. The scope clause is never optional."""
    query = query.filter(predicate.clause())
    return apply_filters(query, specs, params)


def _live_optional_column(session, spec: ResourceSpec) -> Optional[str]:
    """The resource's optional column if the live table has it, else None."""
    column = spec.optional_column
    if column and has_column(session, spec.model.__tablename__, column):
        return column
    return None


def _serializer(column: Optional[str]) -> Callable[[Any], Dict[str, Any]]:
    if column is None:
        return lambda r: r.to_dict()
    return lambda r: dict(r.to_dict(), **{column: getattr(r, column)})


def list_resources(session, identity: Identity, resource_type: str, params: Mapping[str, Any]) -> Tuple[list, int, int, int]:
    """Scoped, filtered, sorted page of rows as dicts: (rows, total, limit, offset)."""
    spec = RESOURCE_SPECS[resource_type]
    predicate = resolve_scope(session, identity, resource_type, ACTION_READ)
    q = session.query(spec.model)
    column = _live_optional_column(session, spec)
    if column:
        q = q.options(undefer(getattr(spec.model, column)))
    q = apply(q, predicate, spec.filters, params)
    q = apply_multi_sort(q, params.get('sort'), spec.sort_fields, spec.model.id)
    paged_q, total, limit, offset = apply_pagination(q, params, spec.model.id)
    serialize = _serializer(column)
    return [serialize(r) for r in paged_q.all()], total, limit, offset


def fetch(session, identity: Identity, resource_type: str, record_id: int) -> Dict[str, Any]:
    record = authorize_record(session, identity, resource_type, ACTION_READ, record_id)
    spec = RESOURCE_SPECS[resource_type]
    return _serializer(_live_optional_column(session, spec))(record)


# ---- payload parsing -------------------------------------------------------

def _optional_str(data, key, max_len):
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_len:
        raise ValidationError(f'{key} too long')
    return value or None


def _parse_client(session, data: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if 'name' in data or not partial:
        name = _optional_str(data, 'name', 255)
        if not name:
            raise ValidationError('name required')
        values['name'] = name
    for key, max_len in (('email', 255), ('phone', 32)):
        if key in data:
            values[key] = _optional_str(data, key, max_len)
    for key in ('user_id', 'location_id', 'preferred_provider_id'):
        if key in data:
            values[key] = parse_int(data.get(key), key)
    if values.get('user_id') is not None and session.get(User, values['user_id']) is None:
        raise ValidationError('user_id unknown')
    if 'preferred_provider_id' in values and not has_column(session, 'clients', 'preferred_provider_id'):
        raise ValidationError('preferred_provider_id not supported by this database')
    return values


def _parse_appointment(session, data: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if 'client_id' in data or not partial:
        values['client_id'] = parse_int(data.get('client_id'), 'client_id', required=True)
        if session.get(Client, values['client_id']) is None:
            raise NotFoundError('client not found')
    for key in ('provider_id', 'location_id'):
        if key in data:
            values[key] = parse_int(data.get(key), key)
    if values.get('provider_id') is not None and session.get(User, values['provider_id']) is None:
        raise ValidationError('provider_id unknown')
    for key in ('start_time', 'end_time'):
        if key in data:
            values[key] = parse_datetime(data.get(key), key)
    if 'status' in data or not partial:
        values['status'] = validate_status(data.get('status') or Appointment.STATUS_BOOKED, Appointment.ALL_STATUSES)
    if 'notes' in data:
        values['notes'] = _optional_str(data, 'notes', 10000)
    return values


def _check_appointment_window(record: Appointment):
    if record.start_time and record.end_time and record.end_time <= record.start_time:
        raise ValidationError('end_time must be after start_time')


def _check_client_deletable(session, record: Client):
    for model in (Appointment, Payment):
        n = session.execute(select(func.count(model.id)).where(model.client_id == record.id)).scalar_one()
        if n:
            raise ConflictError('Client has appointments or payments')


@dataclass(frozen=True)
class MutationSpec:
    parse: Callable[..., Dict[str, Any]]
    validate: Optional[Callable[[Any], None]] = None
    before_delete: Optional[Callable[..., None]] = None


MUTATION_SPECS: Dict[str, MutationSpec] = {
    RESOURCE_CLIENT: MutationSpec(parse=_parse_client, before_delete=_check_client_deletable),
    RESOURCE_APPOINTMENT: MutationSpec(parse=_parse_appointment, validate=_check_appointment_window),
}


def mutate(session, identity: Identity, resource_type: str, action: str, payload: Mapping[str, Any],
           record_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Create, update or delete one record after a policy check, audited in the same transaction.

    Returns the record after the change, or None for deletes.
    """
    mspec = MUTATION_SPECS.get(resource_type)
    if mspec is None or action not in (ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE):
        raise ValidationError(f'{action} not supported for {resource_type}')
    spec = RESOURCE_SPECS[resource_type]
    model = spec.model
    audit_action = f'{resource_type}.{action}'
    snapshot = _serializer(_live_optional_column(session, spec))

    with unit_of_work(session):
        if action == ACTION_CREATE:
            values = mspec.parse(session, payload or {}, partial=False)
            authorize_values(session, identity, resource_type, action, values)
            if mspec.validate:
                mspec.validate(model(**values))
            # Core INSERT names only the supplied columns, never an optional one the table lacks
            pk = session.execute(insert(model.__table__).values(**values)).inserted_primary_key[0]
            record = session.get(model, pk)
            after = snapshot(record)
            audit.record(session, identity.id, audit_action, resource_type, record.id, None, after)
            log.info('%s id=%s by user=%s', audit_action, record.id, identity.id)
            return after

        predicate = resolve_scope(session, identity, resource_type, action)
        record = authorize_record(session, identity, resource_type, action, record_id, predicate=predicate)
        before = snapshot(record)

        if action == ACTION_DELETE:
            if mspec.before_delete:
                mspec.before_delete(session, record)
            session.delete(record)
            audit.record(session, identity.id, audit_action, resource_type, record_id, before, None)
            log.info('%s id=%s by user=%s', audit_action, record_id, identity.id)
            return None

        values = mspec.parse(session, payload or {}, partial=True)
        if not values:
            raise ValidationError('No updatable fields supplied')
        for key, value in values.items():
            setattr(record, key, value)
        if mspec.validate:
            mspec.validate(record)
        session.flush()
        # An update may not move the record out of the caller's own scope
        if not in_scope(session, predicate, record_id):
            raise AuthorizationError(f'Cannot move {resource_type} outside your scope')
        after = snapshot(record)
        audit.record(session, identity.id, audit_action, resource_type, record_id, before, after)
        log.info('%s id=%s by user=%s', audit_action, record_id, identity.id)
        return after


__all__ = ['RESOURCE_SPECS', 'apply', 'list_resources', 'fetch', 'mutate']
