from __future__ import annotations
from flask import Blueprint, request
from medspa import get_db
from medspa.constants.policy import RESOURCE_AUDIT_LOG, ACTION_READ, ScopeKind
from medspa.decorators.auth import require_identity
from medspa.services import access, audit
from medspa.services.policy import resolve_scope
from medspa.utils.listing import make_list_response

audit_bp = Blueprint('audit', __name__)


@audit_bp.get('/logs')
@require_identity
def list_audit_logs(identity):
    rows, total, limit, offset = access.list_resources(get_db(), identity, RESOURCE_AUDIT_LOG, request.args)
    return make_list_response(rows, total, limit, offset)


@audit_bp.get('/logs/statistics')
@require_identity
def audit_statistics(identity):
    session = get_db()
    # Aggregates cover the whole trail, so only an unrestricted reader gets them
    predicate = resolve_scope(session, identity, RESOURCE_AUDIT_LOG, ACTION_READ)
    if predicate.kind is not ScopeKind.ALL:
        return {'total': 0, 'today': 0, 'this_week': 0, 'this_month': 0}
    return audit.statistics(session)
