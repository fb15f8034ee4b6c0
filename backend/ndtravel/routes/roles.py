from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt
from sqlalchemy import select, func

from ndtravel import get_db
from ndtravel.config.pagination import normalize_pagination
from ndtravel.constants.roles import MIN_LEVEL, MAX_LEVEL, is_protected_role
from ndtravel.decorators.audit import audit_log
from ndtravel.decorators.auth import require_permissions
from ndtravel.models.authz import Role, User

roles_bp = Blueprint('roles', __name__)


def _actor_label() -> str:
    ident = get_jwt().get('sub')
    if ident is None:
        return 'System'
    user = get_db().get(User, int(ident))
    return user.full_name if user else 'System'


def _parse_level(raw) -> int:
    try:
        level = int(raw)
    except (TypeError, ValueError):
        abort(400, description=f'level must be an integer between {MIN_LEVEL} and {MAX_LEVEL}')
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        abort(400, description=f'level must be an integer between {MIN_LEVEL} and {MAX_LEVEL}')
    return level


def _name_taken(session, name: str, exclude_id=None) -> bool:
    stmt = select(Role).where(Role.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    return session.execute(stmt).scalar_one_or_none() is not None


@roles_bp.get('')
@require_permissions('READ_ROLES')
def list_roles():
    session = get_db()
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = session.execute(select(func.count(Role.id))).scalar_one()
    rows = session.execute(
        select(Role).order_by(Role.level.asc(), Role.id.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return {
        'data': [r.to_dict() for r in rows],
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
    }


@roles_bp.get('/<int:role_id>')
@require_permissions('READ_ROLES')
def get_role(role_id: int):
    role = get_db().get(Role, role_id)
    if not role:
        abort(404, description='Role not found')
    return {'data': role.to_dict()}


@roles_bp.post('')
@require_permissions('CREATE_ROLES')
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name', 'level'])
def create_role():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    level = _parse_level(data.get('level'))
    session = get_db()
    if _name_taken(session, name):
        abort(400, description='role exists')
    label = _actor_label()
    role = Role(
        name=name,
        description=(data.get('description') or '').strip(),
        level=level,
        is_active=bool(data.get('is_active', True)),
        created_by=label,
        updated_by=label,
    )
    session.add(role)
    session.commit()
    return role.to_dict(), 201


@roles_bp.put('/<int:role_id>')
@require_permissions('UPDATE_ROLES')
@audit_log('ROLE.UPDATE', entity='Role', entity_id_key='id', meta_keys=['name', 'level', 'is_active'])
def update_role(role_id: int):
    session = get_db()
    role = session.get(Role, role_id)
    if not role:
        abort(404, description='Role not found')
    data = request.get_json(silent=True) or {}
    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            abort(400, description='name cannot be empty')
        if is_protected_role(role.name) and name != role.name:
            abort(403, description='The Super Admin role cannot be renamed')
        if _name_taken(session, name, exclude_id=role.id):
            abort(400, description='role name in use')
        role.name = name
    if 'level' in data:
        role.level = _parse_level(data['level'])
    if 'description' in data:
        role.description = (data.get('description') or '').strip()
    if 'is_active' in data:
        if is_protected_role(role.name) and not data['is_active']:
            abort(403, description='The Super Admin role cannot be deactivated')
        role.is_active = bool(data['is_active'])
    role.updated_by = _actor_label()
    session.commit()
    return role.to_dict()


@roles_bp.delete('/<int:role_id>')
@require_permissions('DELETE_ROLES')
@audit_log('ROLE.DELETE', entity='Role', entity_id_key='id', meta_keys=['name'])
def delete_role(role_id: int):
    session = get_db()
    role = session.get(Role, role_id)
    if not role:
        abort(404, description='Role not found')
    if is_protected_role(role.name):
        abort(403, description='The Super Admin role cannot be deleted')
    payload = {'id': role.id, 'name': role.name, 'status': 'deleted'}
    session.delete(role)
    session.commit()
    return payload
