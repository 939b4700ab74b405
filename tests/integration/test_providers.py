"""Integration tests for provider discovery."""


class TestProviders:
    def test_lists_catalog(self, client):
        resp = client.get("/api/v1/providers")
        assert resp.status_code == 200
        providers = {p["id"]: p for p in resp.json()["providers"]}
        assert set(providers) == {"google", "microsoft"}
        assert providers["google"]["configured"] is True
        assert "fullAccess" in providers["microsoft"]["permission_groups"]

    def test_no_secrets_exposed(self, client):
        text = client.get("/api/v1/providers").text
        assert "google-secret" not in text
        assert "client_secret" not in text
