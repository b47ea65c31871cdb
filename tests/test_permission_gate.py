from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient
from jose import jwt
import pytest

from app.api import deps
from app.core.errors import register_exception_handlers
from app.core.settings import settings
from app.db.session import get_db
from app.services import authz

from conftest import FakeAsyncSession, caller_headers, make_grant, make_role, make_user, module_perm


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    async def _get_db():
        yield FakeAsyncSession()

    app.dependency_overrides[get_db] = _get_db

    @app.get("/buildings/{id}")
    async def read_building(
        request: Request,
        auth: deps.AuthorizedUser = Depends(deps.require_resource_permission("building", "view")),
    ):
        return {
            "user_id": str(auth.user.id),
            "source": request.state.permission_source,
            "grant": request.state.resource_access.id if hasattr(request.state, "resource_access") else None,
        }

    @app.delete("/buildings/{id}")
    async def delete_building(
        auth: deps.AuthorizedUser = Depends(deps.require_resource_permission("building", "delete")),
    ):
        return {"deleted": True}

    @app.get("/documents")
    async def read_document_by_query(
        auth: deps.AuthorizedUser = Depends(
            deps.require_resource_permission(
                "document", "view", get_resource_id=lambda request: request.query_params.get("doc")
            )
        ),
    ):
        return {"ok": True}

    @app.get("/sites")
    async def list_sites(auth: deps.AuthorizedUser = Depends(deps.require_module_permission("sites"))):
        return {"source": auth.decision.source.value}

    @app.post("/sites")
    async def create_site(auth: deps.AuthorizedUser = Depends(deps.require_module_permission("sites"))):
        return {"created": True}

    @app.get("/sites/archive")
    async def archive_sites(auth: deps.AuthorizedUser = Depends(deps.require_module_permission("sites", "archive"))):
        return {"ok": True}

    @app.get("/api/v1/building-tenants")
    async def list_building_tenants(auth: deps.AuthorizedUser = Depends(deps.require_path_permission())):
        return {"module": auth.decision.module_name}

    @app.get("/api/v1/reports")
    async def list_reports(auth: deps.AuthorizedUser = Depends(deps.require_path_permission())):
        return {"ok": True}

    return app


@pytest.fixture
def gate_client(known_users) -> TestClient:
    return TestClient(_build_app(), raise_server_exceptions=False)


def _register(known_users, user):
    known_users[str(user.id)] = user
    return user


def test_missing_identifier_is_401(gate_client):
    resp = gate_client.get("/sites")
    assert resp.status_code == 401
    assert resp.json()["code"] == "authentication_required"


def test_unknown_user_is_404(gate_client):
    resp = gate_client.get("/sites", headers={"X-User-ID": "ghost-id"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "user_not_found"


def test_inactive_user_is_403(gate_client, known_users):
    user = _register(known_users, make_user(is_active=False))
    resp = gate_client.get("/sites", headers=caller_headers(user))
    assert resp.status_code == 403
    assert resp.json()["code"] == "account_inactive"


def test_invalid_action_is_400(gate_client, known_users):
    user = _register(known_users, make_user())
    resp = gate_client.get("/sites/archive", headers=caller_headers(user))
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_action"


def test_missing_resource_id_is_400(gate_client, known_users):
    user = _register(known_users, make_user())
    resp = gate_client.get("/documents", headers=caller_headers(user))
    assert resp.status_code == 400
    assert resp.json()["code"] == "resource_id_missing"


def test_role_grant_passes_and_method_picks_action(gate_client, known_users):
    role = make_role(permissions=[module_perm("sites", view=True, create=False)])
    user = _register(known_users, make_user(roles=[role]))

    resp = gate_client.get("/sites", headers=caller_headers(user))
    assert resp.status_code == 200
    assert resp.json() == {"source": "role"}

    resp = gate_client.post("/sites", headers=caller_headers(user))
    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "permission_denied"
    assert body["details"]["source"] == "denied"
    assert body["details"]["required_permission"] == "create:sites"


def test_resource_grant_is_propagated(gate_client, known_users):
    grant = make_grant("building", "B42", view=True)
    user = _register(known_users, make_user(resource_access=[grant]))

    resp = gate_client.get("/buildings/B42", headers=caller_headers(user))
    assert resp.status_code == 200
    assert resp.json() == {"user_id": str(user.id), "source": "resource_access", "grant": grant["id"]}


def test_resource_denial_echoes_grant_flags(gate_client, known_users):
    role = make_role(permissions=[module_perm("buildings", view=True, delete=True)])
    grant = make_grant("building", "B42", view=True, delete=False)
    user = _register(known_users, make_user(roles=[role], resource_access=[grant]))

    resp = gate_client.delete("/buildings/B42", headers=caller_headers(user))
    assert resp.status_code == 403
    details = resp.json()["details"]
    assert details["source"] == "resource_access"
    assert details["resource_id"] == "B42"
    assert details["your_permissions"] == {
        "can_view": True,
        "can_create": False,
        "can_edit": False,
        "can_delete": False,
    }


def test_custom_resource_id_accessor(gate_client, known_users):
    user = _register(known_users, make_user(resource_access=[make_grant("document", "D1", view=True)]))
    resp = gate_client.get("/documents", params={"doc": "D1"}, headers=caller_headers(user))
    assert resp.status_code == 200


def test_unexpected_failure_is_generic_500(gate_client, known_users, monkeypatch):
    user = _register(known_users, make_user())

    def _explode(*args, **kwargs):
        raise RuntimeError("connection string leaked")

    monkeypatch.setattr(authz, "decide_module", _explode)
    resp = gate_client.get("/sites", headers=caller_headers(user))
    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "internal_server_error"
    assert "leaked" not in resp.text


def test_identifier_from_query_param(gate_client, known_users):
    user = _register(known_users, make_user(roles=[make_role(permissions=[module_perm("sites", view=True)])]))
    resp = gate_client.get("/sites", params={"user_id": str(user.id)})
    assert resp.status_code == 200


def test_identifier_from_json_body(gate_client, known_users):
    role = make_role(permissions=[module_perm("sites", create=True)])
    user = _register(known_users, make_user(roles=[role]))
    resp = gate_client.post("/sites", json={"user_id": str(user.id)})
    assert resp.status_code == 200


def test_header_takes_precedence_over_query(gate_client, known_users):
    allowed = _register(known_users, make_user(roles=[make_role(permissions=[module_perm("sites", view=True)])]))
    other = _register(known_users, make_user())
    resp = gate_client.get("/sites", params={"user_id": str(other.id)}, headers=caller_headers(allowed))
    assert resp.status_code == 200


def test_session_token_subject_is_preferred(gate_client, known_users):
    allowed = _register(known_users, make_user(roles=[make_role(permissions=[module_perm("sites", view=True)])]))
    other = _register(known_users, make_user())
    token = jwt.encode({"sub": str(allowed.id)}, settings.session_secret, algorithm=settings.session_algorithm)
    resp = gate_client.get(
        "/sites",
        headers={"Authorization": f"Bearer {token}", **caller_headers(other)},
    )
    assert resp.status_code == 200


def test_bad_session_token_is_401(gate_client):
    resp = gate_client.get("/sites", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "authentication_required"


def test_path_gate_maps_url_to_module(gate_client, known_users):
    user = _register(known_users, make_user(roles=[make_role(permissions=[module_perm("tenants", view=True)])]))
    resp = gate_client.get("/api/v1/building-tenants", headers=caller_headers(user))
    assert resp.status_code == 200
    assert resp.json() == {"module": "tenants"}

    outsider = _register(known_users, make_user(email="outsider@example.com"))
    denied = gate_client.get("/api/v1/building-tenants", headers=caller_headers(outsider))
    assert denied.status_code == 403
    assert denied.json()["details"]["required_permission"] == "view:tenants"


def test_path_gate_refuses_unmapped_routes(gate_client, known_users):
    user = _register(known_users, make_user(roles=[make_role(permissions=[module_perm("users", view=True)])]))
    resp = gate_client.get("/api/v1/reports", headers=caller_headers(user))
    assert resp.status_code == 403
    assert resp.json()["code"] == "permission_denied"
    assert resp.json()["details"]["path"] == "/api/v1/reports"
