from flask import Blueprint, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from ndtravel import get_db
from ndtravel.constants.permissions import READ_PERMISSIONS, UPDATE_PERMISSIONS
from ndtravel.decorators.audit import audit_log
from ndtravel.decorators.auth import require_permissions, require_level
from ndtravel.errors import PersistenceError, ValidationError
from ndtravel.services.matrix import MatrixBuilder
from ndtravel.services.policy import current_actor
from ndtravel.services import reconcile

permissions_bp = Blueprint('permissions', __name__)

# Back-office screens are limited to Admin level and above
ADMIN_LEVEL = 2


@permissions_bp.errorhandler(HTTPException)
def _http_error(e):
    return {'success': False, 'message': e.description}, e.code


@permissions_bp.errorhandler(PersistenceError)
def _persistence_error(e):
    current_app.logger.error('Permission write failed: %s', e.message)
    return {'success': False, 'message': 'Could not save permissions'}, 500


def _ordering():
    return current_app.config['RBAC_ORDERING']


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(description='JSON object expected')
    return data


@permissions_bp.get('')
@require_permissions(READ_PERMISSIONS)
@require_level(ADMIN_LEVEL)
def permission_matrix():
    try:
        view = MatrixBuilder(ordering=_ordering()).build().to_view_model()
    except SQLAlchemyError:
        current_app.logger.exception('Could not load permission matrix')
        return {'success': False, 'message': 'Could not load permission data'}, 500
    return {'success': True, 'data': view}


@permissions_bp.post('/update')
@require_permissions(UPDATE_PERMISSIONS)
@require_level(ADMIN_LEVEL)
@audit_log(
    'PERMISSIONS.UPDATE',
    entity='Role',
    meta_builder=lambda data, kw: {'changed': data.get('changedRoles', {}), 'total': data.get('totalChanged', 0)},
)
def update_permissions():
    data = _body()
    try:
        result = reconcile.reconcile_permissions(current_actor(), data.get('permissions'), ordering=_ordering())
    except SQLAlchemyError:
        get_db().rollback()
        current_app.logger.exception('Permission update failed')
        return {'success': False, 'message': 'Could not update permission data'}, 500
    return result.to_dict()


@permissions_bp.get('/roles/<int:role_id>')
@require_permissions(READ_PERMISSIONS)
def role_permissions(role_id: int):
    return {'success': True, 'data': reconcile.get_role_permissions(role_id)}


@permissions_bp.put('/roles/<int:role_id>')
@require_permissions(UPDATE_PERMISSIONS)
@require_level(ADMIN_LEVEL)
@audit_log(
    'ROLE.PERM.REPLACE',
    entity='Role',
    entity_id_arg='role_id',
    meta_keys=['permissionCount'],
)
def replace_role_permissions(role_id: int):
    data = _body()
    return reconcile.update_role_permissions(current_actor(), role_id, data.get('permissions'))


@permissions_bp.post('/copy')
@require_permissions(UPDATE_PERMISSIONS)
@require_level(ADMIN_LEVEL)
@audit_log(
    'PERMISSIONS.COPY',
    entity='Role',
    meta_builder=lambda data, kw: {
        'from': (request.get_json(silent=True) or {}).get('fromRoleId'),
        'to': (request.get_json(silent=True) or {}).get('toRoleId'),
        'count': data.get('permissionCount'),
    },
)
def copy_permissions():
    data = _body()
    return reconcile.copy_permissions(current_actor(), data.get('fromRoleId'), data.get('toRoleId'))


@permissions_bp.post('/toggle')
@require_permissions(UPDATE_PERMISSIONS)
@require_level(ADMIN_LEVEL)
@audit_log('PERMISSIONS.TOGGLE', entity='Role', meta_keys=['granted', 'message'])
def toggle_permission():
    data = _body()
    if data.get('roleId') is None or data.get('permissionId') is None:
        raise ValidationError(description='roleId and permissionId are required')
    return reconcile.toggle_permission(current_actor(), data['roleId'], data['permissionId'])
