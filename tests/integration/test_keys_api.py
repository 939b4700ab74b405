"""Integration tests for /api/v1/keys."""

from tests.fakes import GOOGLE_SCOPES


def _create(client, headers, **overrides):
    body = {"name": "agent", "permissions": {"google": ["mail:read"]}}
    body.update(overrides)
    return client.post("/api/v1/keys", headers=headers, json=body)


class TestInternalAuth:
    def test_missing_secret(self, client):
        resp = client.get("/api/v1/keys", headers={"X-User-Id": "user-1"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "authentication_error"

    def test_wrong_secret(self, client):
        resp = client.get(
            "/api/v1/keys", headers={"X-Internal-Secret": "nope", "X-User-Id": "user-1"}
        )
        assert resp.status_code == 401

    def test_missing_user(self, client, internal_headers):
        headers = {"X-Internal-Secret": internal_headers["X-Internal-Secret"]}
        resp = client.get("/api/v1/keys", headers=headers)
        assert resp.status_code == 401

    def test_gateway_key_not_accepted(self, client, store, raw_key, key_headers):
        store.add_key(raw_key)
        assert client.get("/api/v1/keys", headers=key_headers).status_code == 401


class TestKeyLifecycle:
    def test_create_returns_secret_once(self, client, internal_headers):
        resp = _create(client, internal_headers)
        assert resp.status_code == 201
        data = resp.json()
        assert data["key"].startswith("wsc_")
        assert data["token_prefix"] == data["key"][: len(data["token_prefix"])]
        assert data["enabled"] is True

        listed = client.get("/api/v1/keys", headers=internal_headers).json()["keys"]
        assert [k["id"] for k in listed] == [data["id"]]
        assert "key" not in listed[0]
        assert "token_hash" not in listed[0]

    def test_created_key_works_at_gateway(self, client, store, internal_headers):
        store.link_account(scopes=GOOGLE_SCOPES)
        key = _create(client, internal_headers).json()["key"]
        resp = client.get("/api/v1/google/mail/labels", headers={"X-API-Key": key})
        assert resp.status_code == 200

    def test_duplicate_permissions_collapsed(self, client, internal_headers):
        resp = _create(
            client,
            internal_headers,
            permissions={"google": ["calendar:read", "calendar:write", "calendar:read"]},
        )
        assert resp.status_code == 201
        assert resp.json()["permissions"]["google"] == ["calendar:read", "calendar:write"]

    def test_disable_blocks_gateway(self, client, store, internal_headers):
        store.link_account(scopes=GOOGLE_SCOPES)
        created = _create(client, internal_headers).json()

        resp = client.post(f"/api/v1/keys/{created['id']}/disable", headers=internal_headers)
        assert resp.json() == {"success": True, "action": "disabled"}

        gateway = client.get(
            "/api/v1/google/mail/labels", headers={"X-API-Key": created["key"]}
        )
        assert gateway.status_code == 401
        assert gateway.json()["code"] == "key_disabled"

        client.post(f"/api/v1/keys/{created['id']}/enable", headers=internal_headers)
        gateway = client.get(
            "/api/v1/google/mail/labels", headers={"X-API-Key": created["key"]}
        )
        assert gateway.status_code == 200

    def test_delete(self, client, internal_headers):
        created = _create(client, internal_headers).json()
        resp = client.delete(f"/api/v1/keys/{created['id']}", headers=internal_headers)
        assert resp.json() == {"success": True, "action": "deleted"}
        assert client.get("/api/v1/keys", headers=internal_headers).json()["keys"] == []

    def test_deleted_key_rejected_at_gateway(self, client, store, internal_headers):
        store.link_account(scopes=GOOGLE_SCOPES)
        created = _create(client, internal_headers).json()
        key_headers = {"X-API-Key": created["key"]}
        assert client.get("/api/v1/google/mail/labels", headers=key_headers).status_code == 200

        client.delete(f"/api/v1/keys/{created['id']}", headers=internal_headers)

        gateway = client.get("/api/v1/google/mail/labels", headers=key_headers)
        assert gateway.status_code == 401
        assert gateway.json()["code"] == "invalid_key"

    def test_delete_unknown(self, client, internal_headers):
        resp = client.delete("/api/v1/keys/507f1f77bcf86cd799439011", headers=internal_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_other_users_key_not_found(self, client, internal_headers):
        created = _create(client, internal_headers).json()
        other = dict(internal_headers, **{"X-User-Id": "user-2"})
        resp = client.post(f"/api/v1/keys/{created['id']}/disable", headers=other)
        assert resp.status_code == 404


class TestCreateValidation:
    def test_unknown_permission(self, client, internal_headers):
        resp = _create(client, internal_headers, permissions={"google": ["mail:burn"]})
        assert resp.status_code == 400
        assert resp.json()["field"] == "permissions"

    def test_unknown_provider(self, client, internal_headers):
        resp = _create(client, internal_headers, permissions={"dropbox": ["files:read"]})
        assert resp.status_code == 400
        assert resp.json()["field"] == "permissions"

    def test_past_expiry(self, client, internal_headers):
        resp = _create(client, internal_headers, expires_at="2020-01-01T00:00:00Z")
        assert resp.status_code == 400
        assert resp.json()["field"] == "expires_at"

    def test_missing_name(self, client, internal_headers):
        resp = client.post(
            "/api/v1/keys",
            headers=internal_headers,
            json={"permissions": {"google": ["mail:read"]}},
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
