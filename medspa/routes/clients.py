from __future__ import annotations
from flask import Blueprint, request
from medspa import get_db
from medspa.constants.policy import RESOURCE_CLIENT, ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE
from medspa.decorators.auth import require_identity
from medspa.utils.payload import json_body
from medspa.services import access
from medspa.utils.listing import make_list_response

clients_bp = Blueprint('clients', __name__)


@clients_bp.get('')
@require_identity
def list_clients(identity):
    rows, total, limit, offset = access.list_resources(get_db(), identity, RESOURCE_CLIENT, request.args)
    return make_list_response(rows, total, limit, offset)


@clients_bp.get('/<int:client_id>')
@require_identity
def get_client(client_id: int, identity):
    return access.fetch(get_db(), identity, RESOURCE_CLIENT, client_id)


@clients_bp.post('')
@require_identity
def create_client(identity):
    return access.mutate(get_db(), identity, RESOURCE_CLIENT, ACTION_CREATE, json_body()), 201


@clients_bp.put('/<int:client_id>')
@require_identity
def update_client(client_id: int, identity):
    return access.mutate(get_db(), identity, RESOURCE_CLIENT, ACTION_UPDATE, json_body(), client_id)


@clients_bp.delete('/<int:client_id>')
@require_identity
def delete_client(client_id: int, identity):
    access.mutate(get_db(), identity, RESOURCE_CLIENT, ACTION_DELETE, {}, client_id)
    return '', 204
