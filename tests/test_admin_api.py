"""Tests for the admin API: user listing, admin grants and the global share list."""

from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from share_server.config import Settings
from share_server.main import create_app
from share_server.services.credentials import OIDCVerifier
from tests.helpers import bearer
from tests.test_constants import SCHEMA_V1, SUB_ALICE, SUB_BOB, SUB_ROOT


@pytest.fixture
def admin_client(oidc_settings: Settings, idp):
    """OIDC client where SUB_ROOT is a bootstrap admin."""
    settings = replace(oidc_settings, admin_subs=(SUB_ROOT,))
    verifier = OIDCVerifier(settings, http_client=idp.client())
    with TestClient(create_app(settings, verifier=verifier)) as c:
        yield c


@pytest.fixture
def root(make_token) -> dict[str, str]:
    return bearer(make_token(SUB_ROOT))


@pytest.fixture
def alice(make_token) -> dict[str, str]:
    return bearer(make_token(SUB_ALICE, name="Alice Volt"))


@pytest.fixture
def bob(make_token) -> dict[str, str]:
    return bearer(make_token(SUB_BOB))


class TestAdminGate:
    def test_bootstrap_admin(self, admin_client: TestClient, root) -> None:
        assert admin_client.get("/api/me", headers=root).json()["isAdmin"] is True
        assert admin_client.get("/api/admin/users", headers=root).status_code == 200

    def test_non_admin_forbidden(self, admin_client: TestClient, alice) -> None:
        for path in ("/api/admin/users", "/api/admin/shares"):
            response = admin_client.get(path, headers=alice)
            assert response.status_code == 403
            assert response.json() == {"error": "forbidden", "message": "admin required"}

    def test_anonymous_unauthorized(self, admin_client: TestClient) -> None:
        assert admin_client.get("/api/admin/users").status_code == 401

    def test_demotion_applies_on_next_request(self, admin_client: TestClient, root, alice) -> None:
        admin_client.get("/api/me", headers=alice)
        response = admin_client.put(f"/api/admin/users/{SUB_ALICE}", json={"isAdmin": True}, headers=root)
        assert response.json() == {"sub": SUB_ALICE, "isAdmin": True}
        assert admin_client.get("/api/admin/users", headers=alice).status_code == 200

        admin_client.put(f"/api/admin/users/{SUB_ALICE}", json={"isAdmin": False}, headers=root)
        assert admin_client.get("/api/admin/users", headers=alice).status_code == 403


class TestAdminUsers:
    def test_list_and_filter(self, admin_client: TestClient, root, alice, bob) -> None:
        admin_client.get("/api/me", headers=alice)
        admin_client.get("/api/me", headers=bob)
        users = admin_client.get("/api/admin/users", headers=root).json()
        assert {u["sub"] for u in users} == {SUB_ROOT, SUB_ALICE, SUB_BOB}
        assert set(users[0]) == {"sub", "email", "name", "isAdmin", "createdAt", "updatedAt", "lastSeenAt"}

        filtered = admin_client.get("/api/admin/users", params={"q": "VOLT"}, headers=root).json()
        assert [u["sub"] for u in filtered] == [SUB_ALICE]

    def test_invalid_query_parameter(self, admin_client: TestClient, root) -> None:
        response = admin_client.get("/api/admin/users", params={"q": "x" * 300}, headers=root)
        assert response.status_code == 400
        assert response.json()["error"] == "bad_json"

    def test_unknown_user(self, admin_client: TestClient, root) -> None:
        response = admin_client.put("/api/admin/users/ghost", json={"isAdmin": True}, headers=root)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.parametrize("body", [{}, {"isAdmin": "yes"}, {"isAdmin": True, "role": "x"}, {"is_admin": True}])
    def test_bad_body(self, admin_client: TestClient, root, body: dict) -> None:
        response = admin_client.put(f"/api/admin/users/{SUB_ROOT}", json=body, headers=root)
        assert response.status_code == 400
        assert response.json()["error"] == "bad_json"


class TestAdminShares:
    def test_global_listing_with_owner(self, admin_client: TestClient, root, alice) -> None:
        created = admin_client.post("/api/shares", json={"schema": SCHEMA_V1, "name": "Barn"}, headers=alice)
        share_id = created.json()["id"]
        shares = admin_client.get("/api/admin/shares", headers=root).json()
        assert len(shares) == 1
        assert shares[0]["id"] == share_id
        assert shares[0]["ownerSub"] == SUB_ALICE
        assert shares[0]["ownerName"] == "Alice Volt"
        assert shares[0]["ownerEmail"] == "alice-sub@example.test"

    def test_admin_reads_any_share(self, admin_client: TestClient, root, alice) -> None:
        share_id = admin_client.post("/api/shares", json={"schema": SCHEMA_V1}, headers=alice).json()["id"]
        assert admin_client.get(f"/api/shares/{share_id}", headers=root).status_code == 403
        data = admin_client.get(f"/api/admin/shares/{share_id}", headers=root).json()
        assert data["schema"] == SCHEMA_V1
        assert data["ownerSub"] == SUB_ALICE

    def test_unknown_share(self, admin_client: TestClient, root) -> None:
        assert admin_client.get("/api/admin/shares/nope", headers=root).status_code == 404
