"""Display ordering used by the permission matrix.

The ordering is resolved once per app (see ``create_app``) and handed to the
matrix builder, so tests can build a matrix with any module/action order.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from ndtravel.constants.permissions import MODULE_ORDER, ACTION_ORDER

UNRANKED = 999


def _split(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(p.strip().upper() for p in raw.split(',') if p.strip())


@dataclass(frozen=True)
class MatrixOrdering:
    modules: Tuple[str, ...] = field(default=tuple(MODULE_ORDER))
    actions: Tuple[str, ...] = field(default=tuple(ACTION_ORDER))

    @classmethod
    def from_config(cls, module_order: Optional[str] = None, action_order: Optional[str] = None) -> 'MatrixOrdering':
        return cls(
            modules=_split(module_order) or tuple(MODULE_ORDER),
            actions=_split(action_order) or tuple(ACTION_ORDER),
        )

    @classmethod
    def of(cls, modules: Sequence[str], actions: Sequence[str] = ACTION_ORDER) -> 'MatrixOrdering':
        return cls(modules=tuple(m.upper() for m in modules), actions=tuple(a.upper() for a in actions))

    def action_priority(self, permission_name: str) -> int:
        """Index of the first action prefix matching the name, UNRANKED otherwise."""
        for idx, action in enumerate(self.actions):
            if permission_name.startswith(action):
                return idx
        return UNRANKED
