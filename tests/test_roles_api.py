from sqlalchemy.exc import IntegrityError

from app.models.role import Role

from conftest import FakeResult, caller_headers, entity_handler, make_role, make_user, module_perm

BASE = "/api/v1/roles"


def _caller(known_users, **flags):
    user = make_user(roles=[make_role("Admin", permissions=[module_perm("users", **flags)])])
    known_users[str(user.id)] = user
    return user


def test_list_roles(client, fake_db, known_users):
    caller = _caller(known_users, view=True)
    roles = [
        make_role("Admin", permissions=[module_perm("sites", view=True)]),
        make_role("Tenants", permissions=[module_perm("floors", view=True)]),
    ]
    fake_db.on_execute(entity_handler(Role, FakeResult(items=roles)))

    resp = client.get(BASE, headers=caller_headers(caller))

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert body["items"][1]["permissions"][0]["module_name"] == "floors"
    assert body["items"][1]["permissions"][0]["can_edit"] is False


def test_list_roles_requires_users_view(client, known_users):
    caller = _caller(known_users, create=True)
    resp = client.get(BASE, headers=caller_headers(caller))
    assert resp.status_code == 403


def test_get_role(client, fake_db, known_users):
    caller = _caller(known_users, view=True)
    role = make_role("Contractor")
    fake_db.on_execute(entity_handler(Role, FakeResult(scalar=role)))

    resp = client.get(f"{BASE}/{role.id}", headers=caller_headers(caller))

    assert resp.status_code == 200
    assert resp.json()["name"] == "Contractor"


def test_get_role_bad_id_and_missing(client, known_users):
    caller = _caller(known_users, view=True)
    assert client.get(f"{BASE}/xyz", headers=caller_headers(caller)).status_code == 400
    assert client.get(f"{BASE}/{'d' * 24}", headers=caller_headers(caller)).status_code == 404


def test_create_role(client, fake_db, known_users):
    caller = _caller(known_users, create=True)

    resp = client.post(
        BASE,
        json={
            "name": "  Night   Porter ",
            "permissions": [{"module_name": "buildings", "can_view": True}],
        },
        headers=caller_headers(caller),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["name"] == "Night Porter"
    assert body["org_id"] == "default"
    assert body["permissions"] == [
        {"module_name": "buildings", "can_view": True, "can_create": False, "can_edit": False, "can_delete": False}
    ]
    assert isinstance(fake_db.added[0], Role)
    assert fake_db.committed is True


def test_create_role_rejects_unknown_module(client, known_users):
    caller = _caller(known_users, create=True)
    resp = client.post(
        BASE,
        json={"name": "Odd", "permissions": [{"module_name": "spaceships", "can_view": True}]},
        headers=caller_headers(caller),
    )
    assert resp.status_code == 422


def test_create_role_rejects_duplicate_module_entries(client, known_users):
    caller = _caller(known_users, create=True)
    resp = client.post(
        BASE,
        json={
            "name": "Odd",
            "permissions": [{"module_name": "sites"}, {"module_name": "sites", "can_view": True}],
        },
        headers=caller_headers(caller),
    )
    assert resp.status_code == 422


def test_create_role_duplicate_name(client, fake_db, known_users):
    caller = _caller(known_users, create=True)
    fake_db.commit_error = IntegrityError("INSERT", {}, Exception("duplicate key"))

    resp = client.post(BASE, json={"name": "Admin"}, headers=caller_headers(caller))

    assert resp.status_code == 400
    assert resp.json()["message"] == "Role name already exists"
    assert fake_db.rolled_back is True


def test_update_role_replaces_permissions(client, fake_db, known_users):
    caller = _caller(known_users, edit=True)
    role = make_role("Contractor", permissions=[module_perm("assets", view=True)])
    fake_db.on_execute(entity_handler(Role, FakeResult(scalar=role)))

    resp = client.patch(
        f"{BASE}/{role.id}",
        json={"is_active": False, "permissions": [{"module_name": "documents", "can_create": True}]},
        headers=caller_headers(caller),
    )

    assert resp.status_code == 200
    assert role.is_active is False
    assert [entry["module_name"] for entry in role.permissions] == ["documents"]
    assert role.name == "Contractor"
