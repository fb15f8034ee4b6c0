"""Idempotent seeding of the permission catalog, the role presets and their grants.

Seeding is the only path that writes the Super Admin grant set.
"""
from __future__ import annotations
import logging
import os
from typing import Dict, List

from sqlalchemy import select

from ndtravel.constants.permissions import (
    ALL_PERMISSION_NAMES, MODULE_ORDER, ROLE_PRESETS, build_permission_catalog,
)
from ndtravel.constants.roles import PROTECTED_ROLE
from ndtravel.models.authz import Permission, Role, RolePermission, User

logger = logging.getLogger(__name__)


def ensure_permissions(session) -> int:
    existing = {p.name for p in session.execute(select(Permission)).scalars()}
    created = 0
    for name, module, description in build_permission_catalog():
        if name not in existing:
            session.add(Permission(name=name, module=module, description=description, is_active=True))
            created += 1
            logger.info('Added permission %s', name)
    session.flush()
    return created


def ensure_roles(session) -> int:
    existing = {r.name: r for r in session.execute(select(Role)).scalars()}
    created = 0
    for role_name, (level, description, _) in ROLE_PRESETS.items():
        if role_name not in existing:
            session.add(Role(name=role_name, level=level, description=description))
            created += 1
            logger.info('Added role %s (level %d)', role_name, level)
    session.flush()
    return created


def ensure_role_grants(session) -> int:
    """Add preset grants that are missing. Grants added by administrators are left alone."""
    perms = {p.name: p for p in session.execute(select(Permission)).scalars()}
    roles = {r.name: r for r in session.execute(select(Role)).scalars()}
    held = {(g.role_id, g.permission_id) for g in session.execute(select(RolePermission)).scalars()}
    created = 0
    for role_name, (_, _, names) in ROLE_PRESETS.items():
        role = roles.get(role_name)
        if role is None:
            continue
        wanted = ALL_PERMISSION_NAMES if '*' in names else names
        for name in wanted:
            perm = perms.get(name)
            if perm is None:
                logger.warning('Role %s references missing permission %s', role_name, name)
                continue
            if (role.id, perm.id) not in held:
                session.add(RolePermission(role_id=role.id, permission_id=perm.id, is_active=True))
                held.add((role.id, perm.id))
                created += 1
    session.flush()
    return created


def ensure_initial_admin(session):
    role = session.execute(select(Role).where(Role.name == PROTECTED_ROLE)).scalar_one_or_none()
    if role is None:
        logger.warning('%s role missing; skipping admin user creation', PROTECTED_ROLE)
        return None
    email = os.getenv('SEED_ADMIN_EMAIL', 'admin@ndtravel.local')
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(full_name='Administrator', email=email, password_hash='', role_id=role.id)
        user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
        session.add(user)
        session.flush()
        logger.info('Created initial admin user %s with temporary password', email)
    return user


def build_role_permission_map(session) -> Dict[str, List[str]]:
    mapping: Dict[str, List[str]] = {}
    for role in session.execute(select(Role).order_by(Role.level, Role.id)).scalars():
        mapping[role.name] = sorted(g.permission.name for g in role.grants if g.is_active)
    return mapping


def validate_catalog(session) -> List[str]:
    """Return human readable problems; empty when the catalog is consistent."""
    problems = []
    known_modules = set(MODULE_ORDER)
    seen = set()
    for perm in session.execute(select(Permission)).scalars():
        if perm.module not in known_modules:
            problems.append(f"Unknown module '{perm.module}' on permission {perm.name}")
        if perm.name in seen:
            problems.append(f'Duplicate permission name {perm.name}')
        seen.add(perm.name)
    for grant in session.execute(select(RolePermission)).scalars():
        if grant.permission is None or grant.role is None:
            problems.append(f'Grant {grant.id} references a missing role or permission')
    if session.execute(select(Role).where(Role.name == PROTECTED_ROLE)).scalar_one_or_none() is None:
        problems.append(f'{PROTECTED_ROLE} role is missing')
    return problems


def seed_all(session, with_admin: bool = True) -> Dict[str, int]:
    counts = {
        'permissions': ensure_permissions(session),
        'roles': ensure_roles(session),
        'grants': ensure_role_grants(session),
    }
    if with_admin:
        ensure_initial_admin(session)
    return counts
