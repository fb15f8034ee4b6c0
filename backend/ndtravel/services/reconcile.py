"""Bulk and single-role permission updates.

``reconcile_permissions`` takes the desired state ``{role_id: [permission_id, ...]}``
and, for every role named in it, compares desired and current grant sets. Only
roles whose sets differ are rewritten, each in its own unit of work, so a
failure on one role leaves the others untouched. Resubmitting the same state
is a no-op.

The Super Admin role is excluded from every mutation path here; its grants can
only change through seeding.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from ndtravel.config.rbac import MatrixOrdering
from ndtravel.constants.roles import is_protected_role
from ndtravel.errors import NotFoundError, PersistenceError, ProtectedEntityError, ValidationError
from ndtravel.models.authz import Permission
from ndtravel.services.grant_store import GrantStore
from ndtravel.services.matrix import MatrixBuilder
from ndtravel.services.policy import Actor, assert_can_manage_permissions

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r'[0-9]+')


@dataclass
class RoleOutcome:
    success: bool
    message: str
    permission_count: Optional[int] = None
    old_count: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {'success': self.success, 'message': self.message}
        if self.permission_count is not None:
            out['permissionCount'] = self.permission_count
        if self.old_count is not None:
            out['oldCount'] = self.old_count
        if self.error is not None:
            out['error'] = self.error
        return out


@dataclass
class ReconcileResult:
    changed_roles: Dict[str, RoleOutcome] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_changed(self) -> int:
        return len(self.changed_roles)

    @property
    def succeeded(self) -> List[str]:
        return [name for name, o in self.changed_roles.items() if o.success]

    @property
    def failed(self) -> List[str]:
        return [name for name, o in self.changed_roles.items() if not o.success]

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def message(self) -> str:
        if not self.changed_roles:
            return 'No changes were made'
        if self.failed:
            return 'Permission update finished with errors'
        return f'Permissions updated for {self.total_changed} role(s)'

    @property
    def summary(self) -> str:
        if not self.changed_roles:
            return 'No changes were made'
        parts = []
        if self.succeeded:
            parts.append('Updated: ' + ', '.join(self.succeeded))
        if self.failed:
            parts.append('Failed: ' + ', '.join(self.failed))
        return '; '.join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'message': self.message,
            'summary': self.summary,
            'changedRoles': {name: o.to_dict() for name, o in self.changed_roles.items()},
            'totalChanged': self.total_changed,
            'data': self.data,
        }


def _as_id(raw) -> Optional[int]:
    """Integer ids or strings of ASCII digits; floats, bools and anything else are not ids."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and _DIGITS.fullmatch(raw):
        return int(raw)
    return None


def parse_permissions_payload(permissions_data) -> Dict[int, List[Any]]:
    """Validate the request shape and key it by integer role id.

    Keys that are not role ids are dropped. A value that is not a list, or two keys naming
    the same role ("1" and "01"), reject the whole request.
    """
    if permissions_data is None:
        return {}
    if not isinstance(permissions_data, Mapping):
        raise ValidationError(description='permissions must be an object keyed by role id')
    parsed: Dict[int, List[Any]] = {}
    for key, value in permissions_data.items():
        if value is None:
            value = []
        if not isinstance(value, list):
            raise ValidationError(description=f'permissions for role {key} must be a list')
        role_id = _as_id(key)
        if role_id is None:
            continue
        if role_id in parsed:
            raise ValidationError(description=f'role {role_id} is listed more than once')
        parsed[role_id] = value
    return parsed


def _valid_permission_ids(store: GrantStore, raw_ids: Iterable[Any], active_ids: Optional[Set[int]] = None) -> Set[int]:
    wanted = {pid for pid in (_as_id(r) for r in raw_ids) if pid is not None}
    valid = (wanted & active_ids) if active_ids is not None else store.active_permission_ids(wanted)
    return valid


def _current_mapping(store: GrantStore, active_ids: Set[int]) -> Dict[int, Set[int]]:
    current: Dict[int, Set[int]] = {}
    for grant in store.find_active_grants():
        if grant.permission_id in active_ids:
            current.setdefault(grant.role_id, set()).add(grant.permission_id)
    return current


def reconcile_permissions(
    actor: Actor,
    permissions_data,
    store: Optional[GrantStore] = None,
    ordering: Optional[MatrixOrdering] = None,
) -> ReconcileResult:
    assert_can_manage_permissions(actor)
    desired_by_role = parse_permissions_payload(permissions_data)
    store = store or GrantStore()

    active_ids = {p.id for p in store.find_active_permissions()}
    current_by_role = _current_mapping(store, active_ids)
    # snapshot plain values; a rollback expires loaded rows
    candidates = [
        (role.id, role.name) for role in store.find_roles()
        if role.id in desired_by_role and not is_protected_role(role.name)
    ]

    result = ReconcileResult()
    for role_id, role_name in candidates:
        raw = desired_by_role[role_id]
        desired = _valid_permission_ids(store, raw, active_ids)
        dropped = len(raw) - len(desired)
        current = current_by_role.get(role_id, set())
        if desired == current:
            continue
        if dropped > 0:
            logger.warning('Dropped %d unknown, inactive or duplicate permission id(s) for role %s', dropped, role_name)
        try:
            written = store.replace_role_grants(role_id, desired, actor.user_id)
        except PersistenceError as e:
            logger.error('Permission update failed for role %s: %s', role_name, e.message, exc_info=e.__cause__)
            result.changed_roles[role_name] = RoleOutcome(success=False, message='Update failed', error=e.message)
            continue
        if written:
            message = f'Updated {written} permission(s)'
        else:
            message = 'All permissions removed'
        logger.info('Role %s permissions changed: %d -> %d', role_name, len(current), written)
        result.changed_roles[role_name] = RoleOutcome(
            success=True, message=message, permission_count=written, old_count=len(current),
        )

    view = MatrixBuilder(store, ordering).build().to_view_model()
    result.data = {'roles': view['roles'], 'permissions': view['permissions'], 'mapping': view['mapping']}
    return result


def _load_role(store: GrantStore, raw_id, label: str = 'Role'):
    role_id = _as_id(raw_id)
    role = store.get_role(role_id) if role_id is not None else None
    if role is None:
        raise NotFoundError(description=f'{label} not found')
    return role


def copy_permissions(actor: Actor, from_role_id, to_role_id, store: Optional[GrantStore] = None) -> Dict[str, Any]:
    """Overwrite the destination role's grants with the source role's active grants."""
    assert_can_manage_permissions(actor)
    if from_role_id in (None, '') or to_role_id in (None, ''):
        raise ValidationError(description='Both source and destination roles are required')
    from_id, to_id = _as_id(from_role_id), _as_id(to_role_id)
    if from_id is None or to_id is None:
        raise ValidationError(description='Role ids must be integers')
    if from_id == to_id:
        raise ValidationError(description='Source and destination roles must differ')
    store = store or GrantStore()
    source = _load_role(store, from_id, 'Source role')
    target = _load_role(store, to_id, 'Destination role')
    if is_protected_role(source.name) or is_protected_role(target.name):
        raise ProtectedEntityError(description='Cannot copy permissions from or to the Super Admin role')

    source_name, target_name, target_id = source.name, target.name, target.id
    permission_ids = [g.permission_id for g in store.find_role_grants(source.id)]
    count = store.replace_role_grants(target_id, permission_ids, actor.user_id)
    logger.info('Copied %d permission(s) from %s to %s', count, source_name, target_name)
    return {
        'success': True,
        'message': f'Copied permissions from {source_name} to {target_name}',
        'permissionCount': count,
    }


def update_role_permissions(actor: Actor, role_id, permission_ids, store: Optional[GrantStore] = None) -> Dict[str, Any]:
    """Replace one role's grant set with the valid ids given."""
    if role_id in (None, ''):
        raise ValidationError(description='Role id is required')
    if permission_ids is None:
        permission_ids = []
    if not isinstance(permission_ids, list):
        raise ValidationError(description='permissions must be a list')
    store = store or GrantStore()
    role = _load_role(store, role_id)
    assert_can_manage_permissions(actor)
    if is_protected_role(role.name):
        raise ProtectedEntityError()

    role_name = role.name
    valid = _valid_permission_ids(store, permission_ids)
    count = store.replace_role_grants(role.id, valid, actor.user_id)
    return {
        'success': True,
        'message': f'Permissions of role {role_name} updated',
        'permissionCount': count,
    }


def toggle_permission(actor: Actor, role_id, permission_id, store: Optional[GrantStore] = None) -> Dict[str, Any]:
    assert_can_manage_permissions(actor)
    store = store or GrantStore()
    role = _load_role(store, role_id)
    pid = _as_id(permission_id)
    permission: Optional[Permission] = store.get_permission(pid) if pid is not None else None
    if not role.is_active:
        raise NotFoundError(description='Role not found')
    if permission is None or not permission.is_active:
        raise NotFoundError(description='Permission not found')
    if is_protected_role(role.name):
        raise ProtectedEntityError()
    role_name, permission_name = role.name, permission.name
    granted = store.toggle_grant(role.id, permission.id, actor.user_id)
    return {
        'success': True,
        'message': f"{permission_name} {'granted to' if granted else 'revoked from'} {role_name}",
        'granted': granted,
    }


def get_role_permissions(role_id, store: Optional[GrantStore] = None) -> List[Dict[str, Any]]:
    store = store or GrantStore()
    role = _load_role(store, role_id)
    return [p.to_dict() for p in store.find_role_permissions(role.id)]
