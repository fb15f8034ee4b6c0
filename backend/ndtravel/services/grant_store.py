"""Persistence contract for roles, permissions and grants.

Every read goes to the database; nothing is cached between calls.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError

from ndtravel import get_db
from ndtravel.errors import PersistenceError
from ndtravel.models.authz import Permission, Role, RolePermission

logger = logging.getLogger(__name__)


class GrantStore:
    def __init__(self, session=None):
        self.session = session if session is not None else get_db()

    # --- reads ---
    def find_active_roles(self) -> List[Role]:
        stmt = select(Role).where(Role.is_active.is_(True)).order_by(Role.level.asc(), Role.id.asc())
        return list(self.session.execute(stmt).scalars())

    def find_roles(self) -> List[Role]:
        stmt = select(Role).order_by(Role.level.asc(), Role.id.asc())
        return list(self.session.execute(stmt).scalars())

    def get_role(self, role_id) -> Optional[Role]:
        return self.session.get(Role, role_id)

    def get_permission(self, permission_id) -> Optional[Permission]:
        return self.session.get(Permission, permission_id)

    def find_active_permissions(self) -> List[Permission]:
        stmt = select(Permission).where(Permission.is_active.is_(True))
        return list(self.session.execute(stmt).scalars())

    def find_active_grants(self) -> List[RolePermission]:
        stmt = select(RolePermission).where(RolePermission.is_active.is_(True))
        return list(self.session.execute(stmt).scalars())

    def find_role_grants(self, role_id) -> List[RolePermission]:
        """Active grants of one role whose permission is itself active."""
        stmt = (
            select(RolePermission)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                RolePermission.role_id == role_id,
                RolePermission.is_active.is_(True),
                Permission.is_active.is_(True),
            )
        )
        return list(self.session.execute(stmt).scalars())

    def find_role_permissions(self, role_id) -> List[Permission]:
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(
                RolePermission.role_id == role_id,
                RolePermission.is_active.is_(True),
                Permission.is_active.is_(True),
            )
            .order_by(Permission.module.asc(), Permission.id.asc())
        )
        return list(self.session.execute(stmt).scalars())

    def active_permission_ids(self, candidate_ids: Iterable[int]) -> set[int]:
        ids = list(set(candidate_ids))
        if not ids:
            return set()
        stmt = select(Permission.id).where(Permission.id.in_(ids), Permission.is_active.is_(True))
        return set(self.session.execute(stmt).scalars())

    # --- writes ---
    def delete_grants_for_role(self, role_id) -> int:
        result = self.session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
        return result.rowcount or 0

    def insert_grants(self, rows: Iterable[RolePermission]) -> None:
        self.session.add_all(list(rows))
        self.session.flush()

    def replace_role_grants(self, role_id: int, permission_ids: Iterable[int], granted_by: Optional[int]) -> int:
        """Replace a role's whole grant set in one unit of work.

        Returns the number of grants written. On any database error the unit is
        rolled back and ``PersistenceError`` raised; other roles are unaffected.
        """
        now = datetime.now(timezone.utc)
        ids = sorted(set(permission_ids))
        try:
            self.delete_grants_for_role(role_id)
            if ids:
                self.insert_grants(
                    RolePermission(role_id=role_id, permission_id=pid, is_active=True, granted_by=granted_by, granted_at=now)
                    for pid in ids
                )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f'Could not write grants: {e.__class__.__name__}', role_id=role_id) from e
        return len(ids)

    def toggle_grant(self, role_id: int, permission_id: int, granted_by: Optional[int]) -> bool:
        """Revoke the grant when held, create it otherwise. Returns whether the role now holds it."""
        existing = self.session.execute(
            select(RolePermission).where(RolePermission.role_id == role_id, RolePermission.permission_id == permission_id)
        ).scalar_one_or_none()
        try:
            if existing is not None and existing.is_active:
                self.session.delete(existing)
                granted = False
            elif existing is not None:
                # inactive leftover row: reactivate instead of violating the unique pair
                existing.is_active = True
                existing.granted_by = granted_by
                existing.granted_at = datetime.now(timezone.utc)
                granted = True
            else:
                self.insert_grants([RolePermission(role_id=role_id, permission_id=permission_id, is_active=True, granted_by=granted_by)])
                granted = True
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f'Could not toggle grant: {e.__class__.__name__}', role_id=role_id) from e
        logger.info('Role %s %s permission %s', role_id, 'granted' if granted else 'revoked', permission_id)
        return granted
