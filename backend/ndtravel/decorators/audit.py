"""Audit logging decorator for mutating route handlers.

@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    ... return {'id': role.id, 'name': role.name}, 201

@audit_log('PERMISSIONS.UPDATE', entity='Permission',
           meta_builder=lambda data, kwargs: {'changed': list(data.get('changedRoles', {}))})
def update_permissions(): ...

Parameters:
  action: audit action code
  entity: optional entity label (Role, Permission)
  entity_id_key: key in the returned JSON object whose value becomes entity_id
  entity_id_arg: view argument used as entity_id when entity_id_key is absent
  meta_keys: keys projected from the returned JSON into meta
  meta_builder: callable (data, view_kwargs) -> meta dict; overrides meta_keys

Only successful responses (status < 400) are audited. The entry is committed
after the view returns; an audit failure is logged and never changes the response.
"""
from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Iterable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ndtravel.services.audit import add_audit
from ndtravel import get_db


def _split_response(rv: Any):
    """Return (data, status) for dict, (dict, status) and (dict, status, headers) view results."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, dict], dict]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            rv = fn(*args, **kwargs)
            data, status = _split_response(rv)
            if status >= 400 or not isinstance(data, dict):
                return rv
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, kwargs)
            elif meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            else:
                meta = None
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                current_app.logger.exception('Could not write audit entry %s', action)
            return rv
        return wrapper
    return outer
