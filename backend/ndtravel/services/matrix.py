from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ndtravel.config.rbac import MatrixOrdering
from ndtravel.models.authz import Permission, Role
from ndtravel.services.grant_store import GrantStore


@dataclass
class PermissionMatrix:
    roles: List[Role]
    permissions: List[Permission]
    permissions_by_module: Dict[str, List[Permission]]
    module_order: List[str]
    matrix: Dict[int, Dict[int, bool]] = field(default_factory=dict)
    mapping: Dict[int, List[int]] = field(default_factory=dict)

    def is_granted(self, role_id: int, permission_id: int) -> bool:
        return self.matrix.get(role_id, {}).get(permission_id, False)

    def mapping_payload(self) -> Dict[str, List[int]]:
        return {str(role_id): list(pids) for role_id, pids in self.mapping.items()}

    def to_view_model(self) -> dict:
        return {
            'roles': [r.to_dict() for r in self.roles],
            'permissions': [p.to_dict() for p in self.permissions],
            'permissionsByModule': {
                module: [p.to_dict() for p in perms] for module, perms in self.permissions_by_module.items()
            },
            'moduleOrder': list(self.module_order),
            'mapping': self.mapping_payload(),
        }


class MatrixBuilder:
    """Assembles the Role x Permission grid from the current persisted state."""

    def __init__(self, store: Optional[GrantStore] = None, ordering: Optional[MatrixOrdering] = None):
        self.store = store or GrantStore()
        self.ordering = ordering or MatrixOrdering()

    def order_permissions(self, permissions: List[Permission]) -> Dict[str, List[Permission]]:
        """Bucket by module in display order; inside a bucket sort by action prefix (stable)."""
        buckets: Dict[str, List[Permission]] = {}
        for perm in permissions:
            buckets.setdefault(perm.module, []).append(perm)
        ordered: Dict[str, List[Permission]] = OrderedDict()
        for module in self.ordering.modules:
            bucket = buckets.get(module)
            if bucket:
                ordered[module] = sorted(bucket, key=lambda p: self.ordering.action_priority(p.name))
        return ordered

    def build(self) -> PermissionMatrix:
        roles = self.store.find_active_roles()
        by_module = self.order_permissions(self.store.find_active_permissions())
        permissions = [p for bucket in by_module.values() for p in bucket]

        matrix: Dict[int, Dict[int, bool]] = {r.id: {p.id: False for p in permissions} for r in roles}
        for grant in self.store.find_active_grants():
            row = matrix.get(grant.role_id)
            # dangling role/permission references count as not granted
            if row is not None and grant.permission_id in row:
                row[grant.permission_id] = True

        mapping = {r.id: [p.id for p in permissions if matrix[r.id][p.id]] for r in roles}
        return PermissionMatrix(
            roles=roles,
            permissions=permissions,
            permissions_by_module=by_module,
            module_order=list(self.ordering.modules),
            matrix=matrix,
            mapping=mapping,
        )
