import pytest
from sqlalchemy.exc import IntegrityError

from ndtravel import get_db
from ndtravel.errors import PersistenceError
from ndtravel.models.authz import RolePermission
from ndtravel.services.grant_store import GrantStore

from test_utils_seed import make_permission, make_role, grant, grant_pairs, permission_ids_of


def test_duplicate_grant_rejected_by_unique_pair():
    perm = make_permission('READ_TOUR')
    role = make_role('Manager')
    grant(role, perm)
    session = get_db()
    session.add(RolePermission(role_id=role.id, permission_id=perm.id, is_active=True))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()
    assert grant_pairs(role.id) == [(role.id, perm.id)]


def test_replace_role_grants_dedupes_and_replaces():
    a = make_permission('READ_TOUR')
    b = make_permission('UPDATE_TOUR')
    role = make_role('Manager')
    grant(role, a)
    written = GrantStore().replace_role_grants(role.id, [b.id, b.id, a.id], granted_by=None)
    assert written == 2
    assert grant_pairs(role.id) == sorted([(role.id, a.id), (role.id, b.id)])


def test_replace_role_grants_rolls_back_on_error():
    a = make_permission('READ_TOUR')
    b = make_permission('UPDATE_TOUR')
    role = make_role('Manager')
    grant(role, a)

    class FailingStore(GrantStore):
        def insert_grants(self, rows):
            rows = list(rows)
            super().insert_grants(rows + [RolePermission(role_id=role.id, permission_id=b.id, is_active=True)])

    with pytest.raises(PersistenceError) as exc:
        FailingStore().replace_role_grants(role.id, [b.id], granted_by=None)
    assert exc.value.role_id == role.id
    assert permission_ids_of(role) == {a.id}


def test_find_role_permissions_only_active():
    a = make_permission('READ_TOUR')
    b = make_permission('UPDATE_TOUR', is_active=False)
    c = make_permission('DELETE_TOUR')
    role = make_role('Manager')
    grant(role, a, b)
    grant(role, c, is_active=False)
    store = GrantStore()
    assert [p.name for p in store.find_role_permissions(role.id)] == ['READ_TOUR']
    assert [g.permission_id for g in store.find_role_grants(role.id)] == [a.id]
    assert store.active_permission_ids([a.id, b.id, c.id, 777]) == {a.id, c.id}


def test_toggle_grant_flips_and_reactivates():
    a = make_permission('READ_TOUR')
    b = make_permission('UPDATE_TOUR')
    role = make_role('Manager')
    grant(role, b, is_active=False)
    store = GrantStore()
    assert store.toggle_grant(role.id, a.id, None) is True
    assert store.toggle_grant(role.id, a.id, None) is False
    assert permission_ids_of(role) == {b.id}
    # inactive leftover row is reactivated rather than duplicated
    assert store.toggle_grant(role.id, b.id, None) is True
    assert grant_pairs(role.id) == [(role.id, b.id)]
    assert [g.permission_id for g in store.find_role_grants(role.id)] == [b.id]
