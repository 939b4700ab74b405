"""Unit tests for the provider catalog and the built-in providers."""

import pytest

from config import OAuthProviderSettings
from errors import ValidationError
from providers import CatalogFrozenError, ProviderCatalog, UnknownProviderError
from providers.google import build_google_provider
from providers.microsoft import build_microsoft_provider
from providers.types import ProviderCall, scope_map

GMAIL = "https://www.googleapis.com/auth/"


@pytest.fixture
def settings():
    return OAuthProviderSettings(
        google_client_id="gid",
        google_client_secret="gsecret",
        microsoft_client_id="mid",
        microsoft_client_secret="msecret",
        microsoft_tenant="contoso",
    )


# ── Registry ──────────────────────────────────────────────────────────────────


class TestRegistry:
    def test_register_and_get(self, settings):
        c = ProviderCatalog()
        c.register(build_google_provider(settings))
        assert c.get("google").id == "google"
        assert c.has("google")
        assert c.ids() == ["google"]

    def test_get_unknown_raises(self):
        with pytest.raises(UnknownProviderError):
            ProviderCatalog().get("dropbox")

    def test_find_unknown_returns_none(self):
        assert ProviderCatalog().find("dropbox") is None

    def test_duplicate_overwrites(self, settings):
        c = ProviderCatalog()
        c.register(build_google_provider(settings))
        replacement = build_google_provider(OAuthProviderSettings(google_client_id="other"))
        c.register(replacement)
        assert len(c.all()) == 1
        assert c.get("google").oauth.client_id == "other"

    def test_register_after_freeze_raises(self, settings):
        c = ProviderCatalog().freeze()
        assert c.frozen
        with pytest.raises(CatalogFrozenError):
            c.register(build_google_provider(settings))

    def test_default_catalog_is_frozen(self, catalog):
        assert catalog.frozen
        assert set(catalog.ids()) == {"google", "microsoft"}


# ── Scope and permission lookups ──────────────────────────────────────────────


class TestScopes:
    def test_required_scope(self, catalog):
        assert catalog.required_scope("google", "mail:modify") == GMAIL + "gmail.modify"
        assert catalog.required_scope("microsoft", "mail:send") == "Mail.Send"

    def test_required_scope_unknown(self, catalog):
        assert catalog.required_scope("google", "drive:read") is None
        assert catalog.required_scope("dropbox", "mail:read") is None

    def test_permissions_for_scopes_union(self, catalog):
        perms = catalog.permissions_for_scopes(
            "google", [GMAIL + "gmail.readonly", GMAIL + "calendar.events"]
        )
        assert perms == frozenset({"mail:read", "calendar:write"})

    def test_permissions_for_scopes_ignores_unknown(self, catalog):
        assert catalog.permissions_for_scopes("google", ["openid", "email"]) == frozenset()

    def test_microsoft_accepts_resource_prefixed_scopes(self, catalog):
        perms = catalog.permissions_for_scopes(
            "microsoft", ["https://graph.microsoft.com/Mail.Read", "Calendars.Read"]
        )
        assert perms == frozenset({"mail:read", "calendar:read"})

    def test_requires_reauth(self, catalog):
        assert catalog.requires_reauth("google", ["mail:read", "mail:modify"])
        assert not catalog.requires_reauth("google", ["mail:read", "mail:send"])
        assert not catalog.requires_reauth("microsoft", ["mail:modify"])

    def test_scope_map_merges_duplicates(self):
        m = scope_map([("a", ["x"]), ("a", ["y"]), ("b", ["x"])])
        assert m == {"a": frozenset({"x", "y"}), "b": frozenset({"x"})}


# ── Grant validation ──────────────────────────────────────────────────────────


class TestValidateGrants:
    def test_valid_grant_deduplicated(self, catalog):
        result = catalog.validate_grants(
            {"google": ["mail:read", "mail:read", "mail:send"]}
        )
        assert result == {"google": ["mail:read", "mail:send"]}

    def test_unknown_provider(self, catalog):
        with pytest.raises(ValidationError) as exc:
            catalog.validate_grants({"dropbox": ["files:read"]})
        assert exc.value.field == "permissions"

    def test_unknown_permission(self, catalog):
        with pytest.raises(ValidationError, match="mail:labels"):
            catalog.validate_grants({"microsoft": ["mail:labels"]})

    def test_empty_grant_rejected(self, catalog):
        with pytest.raises(ValidationError):
            catalog.validate_grants({"google": []})


# ── Aggregations ──────────────────────────────────────────────────────────────


class TestAggregations:
    def test_all_permissions(self, catalog):
        perms = catalog.all_permissions()
        assert set(perms) == {"google", "microsoft"}
        assert [p.id for p in perms["microsoft"]][:2] == ["mail:read", "mail:send"]

    def test_all_permission_groups(self, catalog):
        groups = catalog.all_permission_groups()
        assert groups["google"]["readonly"] == ["mail:read", "calendar:read"]
        assert set(groups["google"]["fullAccess"]) == {
            p.id for p in catalog.get("google").permissions
        }
        assert "fullMail" in groups["microsoft"]

    def test_openapi_tags_start_with_system(self, catalog):
        tags = catalog.all_openapi_tags()
        assert tags[0]["name"] == "System"
        names = {t["name"] for t in tags}
        assert "Google Mail - Messages" in names

    def test_ui_configs(self, catalog):
        ui = {c["id"]: c for c in catalog.ui_configs()}
        assert ui["google"]["color"] == "#4285F4"
        assert ui["microsoft"]["name"]


# ── Provider descriptors ──────────────────────────────────────────────────────


class TestProviders:
    def test_google_oauth_config(self, settings):
        oauth = build_google_provider(settings).oauth
        assert oauth.is_configured
        assert oauth.token_endpoint == "https://oauth2.googleapis.com/token"
        assert oauth.additional_params["access_type"] == "offline"
        assert GMAIL + "gmail.modify" in oauth.scopes

    def test_microsoft_tenant_in_endpoints(self, settings):
        oauth = build_microsoft_provider(settings).oauth
        assert "/contoso/" in oauth.token_endpoint
        assert "/contoso/" in oauth.authorization_endpoint

    def test_unconfigured_client(self):
        oauth = build_google_provider(OAuthProviderSettings()).oauth
        assert not oauth.is_configured

    def test_every_operation_permission_is_declared(self, catalog):
        for provider in catalog.all():
            for op in provider.operations:
                assert op.permission in provider.permission_ids, (provider.id, op.name)

    def test_operation_routes_unique(self, catalog):
        for provider in catalog.all():
            routes = [(op.method, op.path) for op in provider.operations]
            assert len(routes) == len(set(routes))

    def test_provider_mappings_are_read_only(self, catalog):
        with pytest.raises(TypeError):
            catalog.get("google").scope_to_permissions["x"] = frozenset()


# ── ProviderCall query helpers ────────────────────────────────────────────────


class TestProviderCall:
    def _call(self, **query):
        return ProviderCall(access_token="t", http=None, query=query)

    def test_query_int_default(self):
        assert self._call().query_int("maxResults", 20) == 20

    def test_query_int_parses(self):
        assert self._call(maxResults="5").query_int("maxResults", 20) == 5

    def test_query_int_invalid(self):
        with pytest.raises(ValidationError) as exc:
            self._call(maxResults="many").query_int("maxResults")
        assert exc.value.field == "maxResults"

    def test_query_list(self):
        assert self._call(labelIds="INBOX, UNREAD,").query_list("labelIds") == [
            "INBOX",
            "UNREAD",
        ]
        assert self._call().query_list("labelIds") is None

    def test_query_str_empty_is_none(self):
        assert self._call(q="").query_str("q") is None
