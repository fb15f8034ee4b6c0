"""Central definitions of the permission catalog to avoid typos in permission/module strings.
Extend cautiously; never rename a permission silently. Add the new name and deactivate the old one.
"""
from __future__ import annotations
from typing import List, Dict, Tuple

# Sidebar order of the admin back-office; the permission matrix follows it.
MODULE_ORDER = [
    'TOUR', 'CATEGORY', 'HOME_SECTION', 'DEPARTURE', 'DESTINATION',
    'TRANSPORTATION', 'ORDER', 'REVIEW', 'ROLES', 'PERMISSIONS', 'USERS',
]

ACTION_ORDER = ['CREATE', 'READ', 'UPDATE', 'DELETE']

MODULE_ACTIONS: Dict[str, List[str]] = {
    'TOUR': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    'CATEGORY': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    'HOME_SECTION': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    'DEPARTURE': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    'DESTINATION': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    'TRANSPORTATION': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    # orders are placed by customers on the storefront
    'ORDER': ['READ', 'UPDATE', 'DELETE'],
    'REVIEW': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    'ROLES': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
    'PERMISSIONS': ['READ', 'UPDATE'],
    'USERS': ['CREATE', 'READ', 'UPDATE', 'DELETE'],
}

MODULE_LABELS = {
    'TOUR': 'tours',
    'CATEGORY': 'categories',
    'HOME_SECTION': 'home sections',
    'DEPARTURE': 'departure points',
    'DESTINATION': 'destinations',
    'TRANSPORTATION': 'transportation options',
    'ORDER': 'orders',
    'REVIEW': 'tour reviews',
    'ROLES': 'roles',
    'PERMISSIONS': 'permissions',
    'USERS': 'user accounts',
}

ACTION_VERBS = {'CREATE': 'create', 'READ': 'view', 'UPDATE': 'update', 'DELETE': 'delete'}

READ_PERMISSIONS = 'READ_PERMISSIONS'
UPDATE_PERMISSIONS = 'UPDATE_PERMISSIONS'
SENTINEL_PERMISSIONS = (READ_PERMISSIONS, UPDATE_PERMISSIONS)


def permission_name(module: str, action: str) -> str:
    return f"{action}_{module}"


def build_permission_catalog() -> List[Tuple[str, str, str]]:
    """Return (name, module, description) for every seeded permission, in display order."""
    catalog: List[Tuple[str, str, str]] = []
    for module in MODULE_ORDER:
        for action in MODULE_ACTIONS[module]:
            desc = f"Allows to {ACTION_VERBS[action]} {MODULE_LABELS[module]}"
            catalog.append((permission_name(module, action), module, desc))
    return catalog


ALL_PERMISSION_NAMES = [name for name, _, _ in build_permission_catalog()]

_CONTENT_MODULES = ['TOUR', 'CATEGORY', 'HOME_SECTION', 'DEPARTURE', 'DESTINATION', 'TRANSPORTATION']


def _names(modules: List[str], actions: List[str]) -> List[str]:
    return [permission_name(m, a) for m in modules for a in actions if a in MODULE_ACTIONS[m]]


# Role -> (level, description, preset permission names). '*' implies all.
ROLE_PRESETS: Dict[str, Tuple[int, str, List[str]]] = {
    'Super Admin': (1, 'Top-level administrator holding every permission', ['*']),
    'Admin': (2, 'Administrator managing content, orders and role permissions', (
        _names(_CONTENT_MODULES + ['ORDER', 'REVIEW'], ACTION_ORDER)
        + ['READ_ROLES', 'READ_USERS', READ_PERMISSIONS, UPDATE_PERMISSIONS]
    )),
    'Manager': (3, 'Operations manager', (
        ['CREATE_TOUR'] + _names(_CONTENT_MODULES, ['READ', 'UPDATE'])
        + ['READ_ORDER', 'UPDATE_ORDER', 'READ_REVIEW']
    )),
    'Viewer': (4, 'Read-only back-office access', _names(_CONTENT_MODULES + ['ORDER', 'REVIEW'], ['READ'])),
    'Customer': (4, 'Storefront customer without back-office access', []),
}
