"""Role tiers and the capabilities each tier carries.

Authorization decisions go through ``RoleTier.parse(name).can(capability)``
instead of comparing role-name strings at the call site.
"""
from __future__ import annotations
import enum
from typing import FrozenSet, Optional


class Capability(enum.Enum):
    MANAGE_PERMISSIONS = 'manage_permissions'
    BYPASS_PERMISSION_CHECKS = 'bypass_permission_checks'
    # role's own grant set is never mutated through bulk or copy paths
    PROTECTED = 'protected'


class RoleTier(enum.Enum):
    SUPER_ADMIN = 'Super Admin'
    ADMIN = 'Admin'
    MANAGER = 'Manager'
    VIEWER = 'Viewer'
    CUSTOMER = 'Customer'

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional['RoleTier']:
        if not name:
            return None
        try:
            return cls(name.strip())
        except ValueError:
            return None

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return TIER_CAPABILITIES[self]

    def can(self, capability: Capability) -> bool:
        return capability in TIER_CAPABILITIES[self]


TIER_CAPABILITIES = {
    RoleTier.SUPER_ADMIN: frozenset(Capability),
    RoleTier.ADMIN: frozenset({Capability.MANAGE_PERMISSIONS}),
    RoleTier.MANAGER: frozenset(),
    RoleTier.VIEWER: frozenset(),
    RoleTier.CUSTOMER: frozenset(),
}

PROTECTED_ROLE = RoleTier.SUPER_ADMIN.value

MIN_LEVEL = 1
MAX_LEVEL = 4


def role_has(role_name: Optional[str], capability: Capability) -> bool:
    """True when the named role maps to a tier carrying the capability. Custom roles carry none."""
    tier = RoleTier.parse(role_name)
    return tier is not None and tier.can(capability)


def is_protected_role(role_name: Optional[str]) -> bool:
    return role_has(role_name, Capability.PROTECTED)
