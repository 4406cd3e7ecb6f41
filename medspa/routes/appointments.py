from __future__ import annotations
from flask import Blueprint, request
from medspa import get_db
from medspa.constants.policy import RESOURCE_APPOINTMENT, ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE
from medspa.decorators.auth import require_identity
from medspa.errors import ValidationError
from medspa.utils.payload import json_body
from medspa.services import access
from medspa.utils.listing import make_list_response

appt_bp = Blueprint('appointments', __name__)


@appt_bp.get('')
@require_identity
def list_appointments(identity):
    rows, total, limit, offset = access.list_resources(get_db(), identity, RESOURCE_APPOINTMENT, request.args)
    return make_list_response(rows, total, limit, offset)


@appt_bp.get('/<int:appointment_id>')
@require_identity
def get_appointment(appointment_id: int, identity):
    return access.fetch(get_db(), identity, RESOURCE_APPOINTMENT, appointment_id)


@appt_bp.post('')
@require_identity
def create_appointment(identity):
    return access.mutate(get_db(), identity, RESOURCE_APPOINTMENT, ACTION_CREATE, json_body()), 201


@appt_bp.put('/<int:appointment_id>')
@require_identity
def update_appointment(appointment_id: int, identity):
    return access.mutate(get_db(), identity, RESOURCE_APPOINTMENT, ACTION_UPDATE, json_body(), appointment_id)


@appt_bp.patch('/<int:appointment_id>/status')
@require_identity
def update_appointment_status(appointment_id: int, identity):
    data = json_body()
    if not data.get('status'):
        raise ValidationError('status required')
    return access.mutate(get_db(), identity, RESOURCE_APPOINTMENT, ACTION_UPDATE, {'status': data['status']}, appointment_id)


@appt_bp.delete('/<int:appointment_id>')
@require_identity
def delete_appointment(appointment_id: int, identity):
    access.mutate(get_db(), identity, RESOURCE_APPOINTMENT, ACTION_DELETE, {}, appointment_id)
    return '', 204
