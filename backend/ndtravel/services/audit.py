from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt, get_jwt_identity
from ndtravel import get_db
from ndtravel.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None, meta: Optional[Dict[str, Any]] = None):
    """Add an audit log entry to the current DB session.

    Parameters:
      action: short action code e.g. PERMISSIONS.UPDATE, PERMISSIONS.COPY, ROLE.CREATE
      entity: optional entity name (Role, Permission)
      entity_id: optional primary key
      meta: JSON-safe dictionary (shallow copied)

    The caller decides when to commit.
    """
    session = get_db()
    ident = get_jwt_identity()
    claims = get_jwt() or {}
    log = AuditLog(
        actor_user_id=int(ident) if ident is not None else 0,
        actor_role=claims.get('role'),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    return log
