from sqlalchemy import select

from ndtravel import get_db
from ndtravel.models.audit import AuditLog
from ndtravel.models.authz import Role

from test_utils_seed import seed_catalog, make_user, login, grant_pairs


def _setup(client):
    roles, perms = seed_catalog()
    make_user('root@test.local', roles['Super Admin'])
    make_user('admin@test.local', roles['Admin'])
    return roles, login(client, 'root@test.local')


def test_role_crud_flow(client):
    roles, headers = _setup(client)
    resp = client.post('/roles', json={'name': ' Tour Guide ', 'level': 3, 'description': 'Guides'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    created = resp.get_json()
    assert created['name'] == 'Tour Guide' and created['level'] == 3
    role_id = created['id']
    assert get_db().get(Role, role_id).created_by == 'root'

    listing = client.get('/roles?limit=2', headers=headers).get_json()
    assert listing['pagination']['total'] == len(roles) + 1
    assert [r['name'] for r in listing['data']] == ['Super Admin', 'Admin']

    upd = client.put(f'/roles/{role_id}', json={'level': 4, 'is_active': False}, headers=headers)
    assert upd.status_code == 200
    assert upd.get_json()['is_active'] is False
    assert client.get(f'/roles/{role_id}', headers=headers).get_json()['data']['level'] == 4

    deleted = client.delete(f'/roles/{role_id}', headers=headers)
    assert deleted.status_code == 200
    assert client.get(f'/roles/{role_id}', headers=headers).status_code == 404

    actions = {a.action for a in get_db().execute(select(AuditLog)).scalars()}
    assert {'ROLE.CREATE', 'ROLE.UPDATE', 'ROLE.DELETE'} <= actions


def test_create_role_validation(client):
    _, headers = _setup(client)
    assert client.post('/roles', json={'level': 3}, headers=headers).status_code == 400
    assert client.post('/roles', json={'name': 'X', 'level': 9}, headers=headers).status_code == 400
    assert client.post('/roles', json={'name': 'X', 'level': 'high'}, headers=headers).status_code == 400
    dup = client.post('/roles', json={'name': 'Manager', 'level': 3}, headers=headers)
    assert dup.status_code == 400
    assert dup.get_json()['error']['detail'] == 'role exists'


def test_super_admin_role_is_protected(client):
    roles, headers = _setup(client)
    top = roles['Super Admin'].id
    assert client.put(f'/roles/{top}', json={'name': 'Boss'}, headers=headers).status_code == 403
    assert client.put(f'/roles/{top}', json={'is_active': False}, headers=headers).status_code == 403
    assert client.delete(f'/roles/{top}', headers=headers).status_code == 403
    assert client.put(f'/roles/{top}', json={'description': 'Owner of the back office'}, headers=headers).status_code == 200


def test_delete_role_cascades_grants(client):
    roles, headers = _setup(client)
    viewer = roles['Viewer']
    assert grant_pairs(viewer.id)
    assert client.delete(f'/roles/{viewer.id}', headers=headers).status_code == 200
    assert grant_pairs(viewer.id) == []


def test_admin_can_read_but_not_create_roles(client):
    _setup(client)
    headers = login(client, 'admin@test.local')
    assert client.get('/roles', headers=headers).status_code == 200
    resp = client.post('/roles', json={'name': 'Intern', 'level': 4}, headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'Missing permission'
