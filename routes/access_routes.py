from flask import Blueprint, request

from models import UserAccessInput
from utils.web import admin_required, current_store, json_payload, ok

access_bp = Blueprint('access', __name__, url_prefix='/access-management')


def _teachers(payload):
    value = payload.get('assignedTeachers', payload.get('assigned_teachers'))
    if isinstance(value, str):
        value = value.split(',')
    return list(value or [])


@access_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    users = current_store().list_user_access()
    return ok(users=[u.to_dict() for u in users])


@access_bp.route('/users', methods=['POST'])
@admin_required
def create_user():
    payload = json_payload()
    data = UserAccessInput.from_payload({**payload, 'assigned_teachers': _teachers(payload)})
    created = current_store().create_user_access(data)
    return ok(201, user=created.to_dict())


@access_bp.route('/users/<user_id>', methods=['PUT'])
@admin_required
def update_role(user_id):
    payload = json_payload()
    updated = current_store().update_user_access_role(
        user_id, str(payload.get('role') or ''), _teachers(payload)
    )
    return ok(user=updated.to_dict())


@access_bp.route('/users/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    mode = (request.args.get('mode') or 'access').strip()
    current_store().delete_user_access(user_id, mode)
    return ok(deleted=user_id, mode=mode)
