from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select

from ndtravel.constants.roles import Capability, RoleTier
from ndtravel.errors import UnauthorizedError
from ndtravel.models.authz import Permission, RolePermission, User
from ndtravel import get_db


@dataclass(frozen=True)
class Actor:
    """Identity of the caller as handed over by the session layer. ``role_name`` is trusted as given."""
    user_id: Optional[int]
    role_name: Optional[str]
    role_id: Optional[int] = None
    level: Optional[int] = None
    user_type: str = 'staff'

    @property
    def tier(self) -> Optional[RoleTier]:
        return RoleTier.parse(self.role_name)

    def can(self, capability: Capability) -> bool:
        tier = self.tier
        return tier is not None and tier.can(capability)

    @property
    def is_customer(self) -> bool:
        return self.user_type == 'customer'


def build_claims(user: User) -> dict:
    role = user.role
    return {
        'role': role.name if role else None,
        'role_id': role.id if role else None,
        'level': role.level if role else None,
        'user_type': user.user_type,
    }


def current_actor() -> Actor:
    claims = get_jwt()
    ident = get_jwt_identity()
    return Actor(
        user_id=int(ident) if ident is not None else None,
        role_name=claims.get('role'),
        role_id=claims.get('role_id'),
        level=claims.get('level'),
        user_type=claims.get('user_type') or 'staff',
    )


def assert_can_manage_permissions(actor: Actor) -> None:
    if not actor.can(Capability.MANAGE_PERMISSIONS):
        raise UnauthorizedError()


def effective_permission_names(actor: Actor, session=None) -> Set[str]:
    """Names of the active permissions the caller effectively holds."""
    session = session or get_db()
    if actor.is_customer:
        return set()
    if actor.can(Capability.BYPASS_PERMISSION_CHECKS):
        return set(session.execute(select(Permission.name).where(Permission.is_active.is_(True))).scalars())
    if actor.role_id is None:
        return set()
    stmt = (
        select(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(
            RolePermission.role_id == actor.role_id,
            RolePermission.is_active.is_(True),
            Permission.is_active.is_(True),
        )
    )
    return set(session.execute(stmt).scalars())


def has_permissions(actor: Actor, *names: str) -> bool:
    if actor.is_customer:
        return False
    if actor.can(Capability.BYPASS_PERMISSION_CHECKS):
        return True
    held = effective_permission_names(actor)
    return all(n.upper() in held for n in names)


def meets_level(actor: Actor, required_level: int) -> bool:
    """Lower level is more senior (1 = Super Admin, 4 = Viewer)."""
    if actor.can(Capability.BYPASS_PERMISSION_CHECKS):
        return True
    return actor.level is not None and actor.level <= required_level
