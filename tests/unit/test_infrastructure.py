"""Unit tests for the infrastructure layer."""

import base64
import json
from email import message_from_bytes
from unittest.mock import AsyncMock

import httpx
import pytest
from limits.aio.storage import MemoryStorage

from errors import NeedsReauthError, NotFoundError, ProviderCallFailedError, RateLimitError
from infrastructure.billing.autumn import AutumnBillingProvider, BillingUnavailableError
from infrastructure.http_client import HttpClient
from infrastructure.locks import RedisLease
from infrastructure.oauth.token_client import OAuthTokenClient, TokenExchangeError
from infrastructure.providers.base import provider_request
from infrastructure.providers.google_api import (
    GmailClient,
    GoogleCalendarClient,
    build_raw_message,
    extract_body,
)
from infrastructure.providers.microsoft_graph import MicrosoftGraphClient
from infrastructure.rate_limiter import RateLimiter, create_rate_limit_storage
from infrastructure.redis_client import create_redis_client
from providers.types import OAuthConfig
from shared.datetime_utils import utcnow


# ── Helpers ───────────────────────────────────────────────────────────────────


def _client(handler) -> HttpClient:
    return HttpClient(timeout=1.0, transport=httpx.MockTransport(handler))


def _recording(status=200, body=None):
    """Handler that records requests and answers with a fixed response."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    return handler, seen


def _raise(exc):
    def handler(request):
        raise exc

    return handler


OAUTH = OAuthConfig(
    client_id="cid",
    client_secret="csecret",
    token_endpoint="https://oauth.example.com/token",
    authorization_endpoint="https://oauth.example.com/auth",
)


# ── OAuthTokenClient ──────────────────────────────────────────────────────────


class TestOAuthTokenClient:
    async def test_successful_refresh(self):
        handler, seen = _recording(
            body={"access_token": "new", "expires_in": 1800, "refresh_token": "rotated"}
        )
        grant = await OAuthTokenClient(_client(handler)).refresh("google", OAUTH, "rt")

        assert grant.access_token == "new"
        assert grant.refresh_token == "rotated"
        form = dict(x.split("=") for x in seen[0].content.decode().split("&"))
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "rt"
        assert form["client_id"] == "cid"

    async def test_missing_expires_in_defaults_to_hour(self):
        handler, _ = _recording(body={"access_token": "new"})
        grant = await OAuthTokenClient(_client(handler)).refresh("google", OAUTH, "rt")
        assert grant.refresh_token is None
        remaining = (grant.expires_at - utcnow()).total_seconds()
        assert 3590 < remaining <= 3600

    @pytest.mark.parametrize("error", ["invalid_grant", "unauthorized_client"])
    async def test_revoked_grant(self, error):
        handler, _ = _recording(status=400, body={"error": error})
        with pytest.raises(TokenExchangeError) as exc:
            await OAuthTokenClient(_client(handler)).refresh("google", OAUTH, "rt")
        assert exc.value.revoked
        assert exc.value.error_code == error

    async def test_server_error_is_transient(self):
        handler, _ = _recording(status=503, body={"error": "temporarily_unavailable"})
        with pytest.raises(TokenExchangeError) as exc:
            await OAuthTokenClient(_client(handler)).refresh("google", OAUTH, "rt")
        assert not exc.value.revoked
        assert exc.value.status_code == 503

    async def test_timeout_is_transient(self):
        client = _client(_raise(httpx.ReadTimeout("slow")))
        with pytest.raises(TokenExchangeError) as exc:
            await OAuthTokenClient(client).refresh("google", OAUTH, "rt")
        assert not exc.value.revoked

    async def test_connection_error_is_transient(self):
        client = _client(_raise(httpx.ConnectError("refused")))
        with pytest.raises(TokenExchangeError) as exc:
            await OAuthTokenClient(client).refresh("google", OAUTH, "rt")
        assert not exc.value.revoked

    async def test_malformed_body_is_transient(self):
        handler, _ = _recording(body={"token_type": "Bearer"})
        with pytest.raises(TokenExchangeError) as exc:
            await OAuthTokenClient(_client(handler)).refresh("google", OAUTH, "rt")
        assert not exc.value.revoked

    async def test_missing_refresh_token_is_revoked(self):
        handler, seen = _recording(body={})
        with pytest.raises(TokenExchangeError) as exc:
            await OAuthTokenClient(_client(handler)).refresh("google", OAUTH, None)
        assert exc.value.revoked
        assert seen == []

    async def test_unconfigured_client_is_revoked(self):
        handler, seen = _recording(body={})
        unconfigured = OAuthConfig("", "", OAUTH.token_endpoint, OAUTH.authorization_endpoint)
        with pytest.raises(TokenExchangeError) as exc:
            await OAuthTokenClient(_client(handler)).refresh("google", unconfigured, "rt")
        assert exc.value.revoked
        assert seen == []


# ── AutumnBillingProvider ─────────────────────────────────────────────────────


class TestAutumnBillingProvider:
    async def test_check_allowed(self):
        handler, seen = _recording(body={"allowed": True})
        autumn = AutumnBillingProvider("am_sk", "https://autumn.test/v1/", _client(handler))

        decision = await autumn.check("user-1", "feature")

        assert decision.allowed
        assert str(seen[0].url) == "https://autumn.test/v1/check"
        assert seen[0].headers["Authorization"] == "Bearer am_sk"
        assert json.loads(seen[0].content) == {"customer_id": "user-1", "feature_id": "feature"}

    async def test_check_denied(self):
        handler, _ = _recording(body={"allowed": False})
        autumn = AutumnBillingProvider("am_sk", "https://autumn.test/v1", _client(handler))
        assert not (await autumn.check("user-1", "feature")).allowed

    async def test_error_status_raises(self):
        handler, _ = _recording(status=500, body={"message": "boom"})
        autumn = AutumnBillingProvider("am_sk", "https://autumn.test/v1", _client(handler))
        with pytest.raises(BillingUnavailableError):
            await autumn.check("user-1", "feature")

    async def test_unconfigured_allows_without_calling_autumn(self):
        handler, seen = _recording(body={"allowed": False})
        autumn = AutumnBillingProvider("", "https://autumn.test/v1", _client(handler))

        assert not autumn.is_configured
        assert (await autumn.check("user-1", "feature")).allowed
        assert seen == []

    async def test_unconfigured_track_is_skipped(self):
        handler, seen = _recording(status=500)
        autumn = AutumnBillingProvider("", "https://autumn.test/v1", _client(handler))
        await autumn.track("user-1", "feature", 1, idempotency_key="user-1:42")
        assert seen == []

    async def test_timeout_propagates(self):
        autumn = AutumnBillingProvider(
            "am_sk", "https://autumn.test/v1", _client(_raise(httpx.ReadTimeout("slow")))
        )
        with pytest.raises(httpx.TimeoutException):
            await autumn.check("user-1", "feature")

    async def test_track_payload(self):
        handler, seen = _recording(body={})
        autumn = AutumnBillingProvider("am_sk", "https://autumn.test/v1", _client(handler))

        await autumn.track("user-1", "feature", 1, idempotency_key="user-1:42")

        assert str(seen[0].url) == "https://autumn.test/v1/track"
        assert json.loads(seen[0].content) == {
            "customer_id": "user-1",
            "feature_id": "feature",
            "value": 1,
            "idempotency_key": "user-1:42",
        }


# ── provider_request ──────────────────────────────────────────────────────────


class TestProviderRequest:
    async def test_bearer_and_params(self):
        handler, seen = _recording(body={"ok": True})
        result = await provider_request(
            _client(handler),
            "google",
            "GET",
            "https://api.test/items",
            "tok",
            params={"a": 1, "b": None},
        )
        assert result == {"ok": True}
        assert seen[0].headers["Authorization"] == "Bearer tok"
        assert seen[0].url.params.get("a") == "1"
        assert "b" not in seen[0].url.params

    async def test_no_content(self):
        handler, _ = _recording(status=204)
        assert await provider_request(_client(handler), "google", "DELETE", "https://api.test/x", "t") == {}

    async def test_not_found(self):
        handler, _ = _recording(status=404, body={"error": {"message": "Requested entity was not found."}})
        with pytest.raises(NotFoundError, match="not found"):
            await provider_request(_client(handler), "google", "GET", "https://api.test/x", "t")

    async def test_rate_limited(self):
        handler, _ = _recording(status=429, body={})
        with pytest.raises(RateLimitError):
            await provider_request(_client(handler), "microsoft", "GET", "https://api.test/x", "t")

    async def test_insufficient_scope_needs_reauth(self):
        handler, _ = _recording(
            status=403,
            body={
                "error": {
                    "code": 403,
                    "message": "Request had insufficient authentication scopes.",
                    "status": "PERMISSION_DENIED",
                }
            },
        )
        with pytest.raises(NeedsReauthError):
            await provider_request(_client(handler), "google", "GET", "https://api.test/x", "t")

    async def test_other_403_is_provider_failure(self):
        handler, _ = _recording(status=403, body={"error": {"message": "Domain policy"}})
        with pytest.raises(ProviderCallFailedError) as exc:
            await provider_request(_client(handler), "google", "GET", "https://api.test/x", "t")
        assert exc.value.details == {"status": 403, "transient": False}

    async def test_server_error_transient(self):
        handler, _ = _recording(status=503, body={})
        with pytest.raises(ProviderCallFailedError) as exc:
            await provider_request(_client(handler), "google", "GET", "https://api.test/x", "t")
        assert exc.value.status_code == 502
        assert exc.value.details["transient"] is True

    async def test_timeout(self):
        client = _client(_raise(httpx.ConnectTimeout("slow")))
        with pytest.raises(ProviderCallFailedError) as exc:
            await provider_request(client, "google", "GET", "https://api.test/x", "t")
        assert exc.value.details == {"transient": True}


# ── Gmail / Google Calendar ───────────────────────────────────────────────────


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


class TestGmailHelpers:
    def test_extract_body_multipart(self):
        payload = {
            "mimeType": "multipart/alternative",
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("hello")}},
                {"mimeType": "text/html", "body": {"data": _b64("<b>hello</b>")}},
            ],
        }
        assert extract_body(payload) == {"text": "hello", "html": "<b>hello</b>"}

    def test_extract_body_single_part(self):
        assert extract_body({"mimeType": "text/plain", "body": {"data": _b64("hi")}}) == {"text": "hi"}

    def test_build_raw_message(self):
        raw = build_raw_message(["a@example.com", "b@example.com"], "Hi", "Body", cc="c@example.com")
        decoded = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4))
        msg = message_from_bytes(decoded)
        assert msg["To"] == "a@example.com, b@example.com"
        assert msg["Subject"] == "Hi"
        assert msg["Cc"] == "c@example.com"


class TestGmailClient:
    async def test_list_messages_fetches_metadata(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/messages"):
                return httpx.Response(
                    200, json={"messages": [{"id": "m1"}, {"id": "m2"}], "nextPageToken": "p2"}
                )
            message_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(
                200,
                json={
                    "id": message_id,
                    "threadId": "t",
                    "payload": {"headers": [{"name": "Subject", "value": f"subj {message_id}"}]},
                },
            )

        result = await GmailClient(_client(handler)).list_messages("tok", max_results=2)

        assert [m["id"] for m in result["messages"]] == ["m1", "m2"]
        assert result["messages"][0]["subject"] == "subj m1"
        assert result["nextPageToken"] == "p2"

    async def test_send_message(self):
        handler, seen = _recording(body={"id": "sent", "threadId": "t1"})
        result = await GmailClient(_client(handler)).send_message("tok", "cmF3")
        assert result == {"id": "sent", "threadId": "t1"}
        assert seen[0].url.path.endswith("/messages/send")
        assert json.loads(seen[0].content) == {"raw": "cmF3"}

    async def test_modify_message(self):
        handler, seen = _recording(body={"id": "m1", "labelIds": ["STARRED"]})
        await GmailClient(_client(handler)).modify_message("tok", "m1", add_label_ids=["STARRED"])
        assert json.loads(seen[0].content) == {"addLabelIds": ["STARRED"], "removeLabelIds": []}

    async def test_list_events(self):
        handler, seen = _recording(body={"items": []})
        await GoogleCalendarClient(_client(handler)).list_events("tok")
        assert "/calendars/primary/events" in seen[0].url.path


# ── Microsoft Graph ───────────────────────────────────────────────────────────


class TestMicrosoftGraphClient:
    async def test_send_mail_shape(self):
        handler, seen = _recording(status=202)
        result = await MicrosoftGraphClient(_client(handler)).send_message(
            "tok", ["a@example.com"], "Hi", "Body"
        )
        assert result == {"success": True}
        sent = json.loads(seen[0].content)
        assert sent["message"]["toRecipients"] == [{"emailAddress": {"address": "a@example.com"}}]
        assert sent["saveToSentItems"] is True

    async def test_trash_moves_to_deleted_items(self):
        handler, seen = _recording(body={"id": "m2", "parentFolderId": "deleted"})
        await MicrosoftGraphClient(_client(handler)).trash_message("tok", "m1")
        assert seen[0].url.path.endswith("/me/messages/m1/move")
        assert json.loads(seen[0].content) == {"destinationId": "deleteditems"}

    async def test_events_window_uses_calendar_view(self):
        handler, seen = _recording(body={"value": []})
        await MicrosoftGraphClient(_client(handler)).list_events(
            "tok", start="2026-01-01T00:00:00Z", end="2026-01-02T00:00:00Z"
        )
        assert seen[0].url.path.endswith("/me/calendar/calendarView")

    async def test_events_without_window(self):
        handler, seen = _recording(body={"value": []})
        await MicrosoftGraphClient(_client(handler)).list_events("tok")
        assert seen[0].url.path.endswith("/me/calendar/events")


# ── RedisLease ────────────────────────────────────────────────────────────────


class TestRedisLease:
    async def test_acquire_sets_nx_with_ttl(self):
        redis = AsyncMock()
        redis.set.return_value = True
        lease = RedisLease(redis, "refresh_lock:google:u1", ttl_seconds=30)

        assert await lease.acquire()
        assert lease.held
        args, kwargs = redis.set.call_args
        assert args[0] == "refresh_lock:google:u1"
        assert kwargs == {"nx": True, "px": 30_000}

    async def test_acquire_contended(self):
        redis = AsyncMock()
        redis.set.return_value = None
        lease = RedisLease(redis, "k")
        assert not await lease.acquire()
        assert not lease.held

    async def test_release_compares_token(self):
        redis = AsyncMock()
        redis.set.return_value = True
        lease = RedisLease(redis, "k")
        await lease.acquire()
        token = redis.set.call_args.args[1]

        await lease.release()

        args = redis.eval.call_args.args
        assert args[1:] == (1, "k", token)
        assert not lease.held

    async def test_release_without_acquire_is_noop(self):
        redis = AsyncMock()
        await RedisLease(redis, "k").release()
        redis.eval.assert_not_awaited()

    async def test_release_error_swallowed(self):
        redis = AsyncMock()
        redis.set.return_value = True
        redis.eval.side_effect = ConnectionError("down")
        lease = RedisLease(redis, "k")
        await lease.acquire()
        await lease.release()


# ── RateLimiter ───────────────────────────────────────────────────────────────


class TestRateLimiter:
    async def test_no_storage_allows(self):
        assert await RateLimiter(None, 1).hit("key:k1")

    async def test_under_and_over_limit(self):
        limiter = RateLimiter(create_rate_limit_storage("memory://"), 2)
        assert await limiter.hit("key:k1")
        assert await limiter.hit("key:k1")
        assert not await limiter.hit("key:k1")

    async def test_buckets_are_independent(self):
        limiter = RateLimiter(create_rate_limit_storage("memory://"), 1)
        assert await limiter.hit("key:k1")
        assert await limiter.hit("key:k2")
        assert not await limiter.hit("key:k1")

    async def test_zero_limit_disables(self):
        storage = create_rate_limit_storage("memory://")
        limiter = RateLimiter(storage, 0)
        for _ in range(3):
            assert await limiter.hit("key:k1")

    async def test_storage_error_fails_open(self, mocker):
        storage = create_rate_limit_storage("memory://")
        mocker.patch.object(storage, "incr", AsyncMock(side_effect=ConnectionError("down")))
        limiter = RateLimiter(storage, 1)
        assert await limiter.hit("key:k1")
        assert await limiter.hit("key:k1")


class TestCreateRateLimitStorage:
    def test_not_configured(self):
        assert create_rate_limit_storage(None) is None
        assert create_rate_limit_storage("") is None

    def test_async_scheme_added(self):
        storage = create_rate_limit_storage("memory://")
        assert isinstance(storage, MemoryStorage)
        assert isinstance(create_rate_limit_storage("async+memory://"), MemoryStorage)


# ── Redis client factory ──────────────────────────────────────────────────────


class TestCreateRedisClient:
    async def test_not_configured(self):
        assert await create_redis_client(None) is None

    async def test_connection_failure_returns_none(self, mocker):
        from redis.exceptions import ConnectionError as RedisConnectionError

        fake = AsyncMock()
        fake.ping.side_effect = RedisConnectionError("refused")
        mocker.patch("infrastructure.redis_client.aioredis.from_url", return_value=fake)
        assert await create_redis_client("redis://localhost:6379") is None
        fake.aclose.assert_awaited_once()

    async def test_connected(self, mocker):
        fake = AsyncMock()
        from_url = mocker.patch(
            "infrastructure.redis_client.aioredis.from_url", return_value=fake
        )
        assert await create_redis_client("redis://:pw@cache:6379/0") is fake
        assert from_url.call_args.kwargs["socket_timeout"] == 2.0
        fake.aclose.assert_not_awaited()
