import pytest
from sqlalchemy import select

from ndtravel import get_db
from ndtravel.errors import NotFoundError, UnauthorizedError, ValidationError
from ndtravel.models.authz import RolePermission
from ndtravel.services.grant_store import GrantStore
from ndtravel.services.policy import Actor
from ndtravel.services.reconcile import (
    parse_permissions_payload, reconcile_permissions, toggle_permission, update_role_permissions,
)

from test_utils_seed import make_permission, make_role, make_user, grant, grant_pairs, permission_ids_of

ADMIN = Actor(user_id=None, role_name='Admin')


@pytest.fixture()
def tour_perms():
    return {name: make_permission(name) for name in ['CREATE_TOUR', 'READ_TOUR', 'UPDATE_TOUR', 'DELETE_TOUR']}


def test_manager_scenario_then_idempotent(tour_perms):
    manager = make_role('Manager', level=3)
    grant(manager, tour_perms['READ_TOUR'], tour_perms['UPDATE_TOUR'])
    desired = {manager.id: [tour_perms[n].id for n in ('READ_TOUR', 'UPDATE_TOUR', 'CREATE_TOUR')]}

    first = reconcile_permissions(ADMIN, desired)
    assert first.total_changed == 1
    outcome = first.to_dict()['changedRoles']['Manager']
    assert outcome['success'] is True
    assert outcome['permissionCount'] == 3 and outcome['oldCount'] == 2
    assert permission_ids_of(manager) == {tour_perms[n].id for n in ('READ_TOUR', 'UPDATE_TOUR', 'CREATE_TOUR')}
    assert first.summary == 'Updated: Manager'

    second = reconcile_permissions(ADMIN, desired)
    assert second.total_changed == 0
    assert 'Manager' not in second.changed_roles
    assert second.summary == 'No changes were made'
    assert second.success is True


def test_input_order_does_not_matter(tour_perms):
    manager = make_role('Manager', level=3)
    grant(manager, *tour_perms.values())
    ids = [p.id for p in tour_perms.values()]
    result = reconcile_permissions(ADMIN, {manager.id: list(reversed(ids))})
    assert result.total_changed == 0


def test_removal_is_a_change(tour_perms):
    manager = make_role('Manager', level=3)
    grant(manager, tour_perms['READ_TOUR'], tour_perms['UPDATE_TOUR'])
    result = reconcile_permissions(ADMIN, {manager.id: [tour_perms['READ_TOUR'].id]})
    assert result.changed_roles['Manager'].old_count == 2
    assert permission_ids_of(manager) == {tour_perms['READ_TOUR'].id}


def test_empty_list_clears_role(tour_perms):
    viewer = make_role('Viewer', level=4)
    grant(viewer, tour_perms['READ_TOUR'])
    result = reconcile_permissions(ADMIN, {str(viewer.id): []})
    out = result.changed_roles['Viewer']
    assert out.permission_count == 0 and out.message == 'All permissions removed'
    assert permission_ids_of(viewer) == set()


def test_protected_role_is_never_touched(tour_perms):
    top = make_role('Super Admin', level=1)
    grant(top, *tour_perms.values())
    before = grant_pairs(top.id)
    result = reconcile_permissions(Actor(user_id=None, role_name='Super Admin'), {top.id: []})
    assert result.total_changed == 0
    assert grant_pairs(top.id) == before


def test_unauthorized_caller_writes_nothing(tour_perms):
    manager = make_role('Manager', level=3)
    grant(manager, tour_perms['READ_TOUR'])
    before = grant_pairs()
    for role_name in ['Manager', 'Viewer', 'admin', None, 'Customer']:
        with pytest.raises(UnauthorizedError):
            reconcile_permissions(Actor(user_id=1, role_name=role_name), {manager.id: []})
    assert grant_pairs() == before


def test_roles_absent_from_payload_are_unchanged(tour_perms):
    manager = make_role('Manager', level=3)
    viewer = make_role('Viewer', level=4)
    grant(manager, tour_perms['READ_TOUR'])
    grant(viewer, tour_perms['READ_TOUR'])
    result = reconcile_permissions(ADMIN, {manager.id: [tour_perms['CREATE_TOUR'].id]})
    assert list(result.changed_roles) == ['Manager']
    assert permission_ids_of(viewer) == {tour_perms['READ_TOUR'].id}


def test_unknown_and_inactive_ids_are_dropped(tour_perms):
    retired = make_permission('CREATE_CATEGORY', is_active=False)
    manager = make_role('Manager', level=3)
    grant(manager, tour_perms['READ_TOUR'])
    submitted = [tour_perms['READ_TOUR'].id, 9999, 'abc', retired.id, tour_perms['READ_TOUR'].id]
    # only bogus ids differ from what is stored
    assert reconcile_permissions(ADMIN, {manager.id: submitted}).total_changed == 0

    submitted.append(tour_perms['DELETE_TOUR'].id)
    result = reconcile_permissions(ADMIN, {manager.id: submitted})
    assert result.changed_roles['Manager'].permission_count == 2
    assert permission_ids_of(manager) == {tour_perms['READ_TOUR'].id, tour_perms['DELETE_TOUR'].id}


def test_grant_on_inactive_permission_is_not_current(tour_perms):
    retired = make_permission('READ_CATEGORY', is_active=False)
    manager = make_role('Manager', level=3)
    grant(manager, tour_perms['READ_TOUR'], retired)
    assert reconcile_permissions(ADMIN, {manager.id: [tour_perms['READ_TOUR'].id]}).total_changed == 0


def test_unknown_role_key_is_ignored(tour_perms):
    result = reconcile_permissions(ADMIN, {4242: [tour_perms['READ_TOUR'].id], 'not-a-role': []})
    assert result.total_changed == 0
    assert grant_pairs() == []


def test_payload_shape_is_validated():
    with pytest.raises(ValidationError):
        reconcile_permissions(ADMIN, [1, 2, 3])
    with pytest.raises(ValidationError):
        reconcile_permissions(ADMIN, {'1': 'READ_TOUR'})
    assert parse_permissions_payload(None) == {}
    assert parse_permissions_payload({'7': None, 'x': [1]}) == {7: []}


def test_granted_by_and_granted_at_are_stamped(tour_perms):
    admin_role = make_role('Admin', level=2)
    actor_user = make_user('admin@test.local', admin_role)
    manager = make_role('Manager', level=3)
    reconcile_permissions(Actor(user_id=actor_user.id, role_name='Admin'), {manager.id: [tour_perms['READ_TOUR'].id]})
    row = get_db().execute(select(RolePermission).where(RolePermission.role_id == manager.id)).scalar_one()
    assert row.granted_by == actor_user.id
    assert row.granted_at is not None


class DuplicatingStore(GrantStore):
    """Sneaks a duplicate grant into one role's insert so the unique pair rejects it."""

    def __init__(self, fail_role_id):
        super().__init__()
        self.fail_role_id = fail_role_id

    def insert_grants(self, rows):
        rows = list(rows)
        if rows and rows[0].role_id == self.fail_role_id:
            rows.append(RolePermission(role_id=rows[0].role_id, permission_id=rows[0].permission_id, is_active=True))
        super().insert_grants(rows)


def test_failure_on_one_role_does_not_stop_others(tour_perms):
    manager = make_role('Manager', level=3)
    viewer = make_role('Viewer', level=4)
    grant(manager, tour_perms['READ_TOUR'])
    grant(viewer, tour_perms['READ_TOUR'])
    desired = {
        manager.id: [tour_perms['CREATE_TOUR'].id, tour_perms['READ_TOUR'].id],
        viewer.id: [tour_perms['UPDATE_TOUR'].id],
    }
    result = reconcile_permissions(ADMIN, desired, store=DuplicatingStore(manager.id))

    assert result.success is False
    assert result.failed == ['Manager'] and result.succeeded == ['Viewer']
    assert result.summary == 'Updated: Viewer; Failed: Manager'
    assert result.to_dict()['changedRoles']['Manager']['error']
    # failed role keeps its previous grants, the other role is updated
    assert permission_ids_of(manager) == {tour_perms['READ_TOUR'].id}
    assert permission_ids_of(viewer) == {tour_perms['UPDATE_TOUR'].id}


def test_result_carries_refreshed_matrix(tour_perms):
    manager = make_role('Manager', level=3)
    result = reconcile_permissions(ADMIN, {manager.id: [tour_perms['DELETE_TOUR'].id, tour_perms['CREATE_TOUR'].id]})
    data = result.to_dict()['data']
    assert set(data) == {'roles', 'permissions', 'mapping'}
    assert data['mapping'][str(manager.id)] == [tour_perms['CREATE_TOUR'].id, tour_perms['DELETE_TOUR'].id]


def test_fractional_and_malformed_ids_are_not_coerced(tour_perms):
    read = tour_perms['READ_TOUR']
    manager = make_role('Manager', level=3)
    result = reconcile_permissions(ADMIN, {manager.id: [read.id + 0.7, float(read.id), str(read.id) + '.0', ' 1', True]})
    assert result.total_changed == 0
    assert permission_ids_of(manager) == set()

    assert update_role_permissions(ADMIN, manager.id, [read.id + 0.7])['permissionCount'] == 0
    assert permission_ids_of(manager) == set()
    with pytest.raises(NotFoundError):
        toggle_permission(ADMIN, manager.id, read.id + 0.7)
    with pytest.raises(NotFoundError):
        toggle_permission(ADMIN, manager.id + 0.5, read.id)
    # digit strings from JSON keys and bodies are still ids
    assert reconcile_permissions(ADMIN, {str(manager.id): [str(read.id)]}).total_changed == 1
    assert permission_ids_of(manager) == {read.id}


def test_two_keys_for_the_same_role_are_rejected(tour_perms):
    manager = make_role('Manager', level=3)
    grant(manager, tour_perms['READ_TOUR'])
    before = grant_pairs()
    payload = {str(manager.id): [tour_perms['CREATE_TOUR'].id], '0%d' % manager.id: []}
    with pytest.raises(ValidationError):
        reconcile_permissions(ADMIN, payload)
    assert grant_pairs() == before
