"""
tests/test_oauth.py -- Unit tests for auth/oauth.py.

Provider HTTP traffic is served by httpx.MockTransport, so these tests run
the real authlib client code against canned provider responses.

Covers:
  - select_github_email(): primary+verified, first-entry fallback, empty list
  - GitHubProvider: /user without email falls back to /user/emails
  - GoogleProvider: identity from the v2 userinfo endpoint
  - exchange_code(): provider rejection vs transport failure
  - OAuthBroker: state mismatch fails before ANY provider call,
    identity -> user mapping is idempotent per (provider, subject)
  - build_providers(): only fully configured providers are registered
"""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from auth.errors import (
    NoEmailAvailable,
    OAuthExchangeFailed,
    ProviderUnavailable,
    StateMismatch,
    UnknownProvider,
)
from auth.models import OAuthIdentity
from auth.oauth import GitHubProvider, GoogleProvider, OAuthBroker, OAuthProvider, build_providers, select_github_email
from auth.store import UserStore
from core.config import get_settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _github_transport(calls: list[str], profile_email=None, emails=None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json={"access_token": "gho_test", "token_type": "bearer"})
        if request.url.path == "/user":
            return httpx.Response(200, json={"id": 4242, "login": "octo", "email": profile_email})
        if request.url.path == "/user/emails":
            return httpx.Response(200, json=emails or [])
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def _github(transport: httpx.MockTransport) -> GitHubProvider:
    return GitHubProvider("gh-id", "gh-secret", "http://testserver/auth/github/callback", transport=transport)


class CountingProvider(OAuthProvider):
    """Fake provider that records every network-facing call."""

    name = "fake"
    authorize_url = "https://provider.example/authorize"

    def __init__(self, identity: OAuthIdentity) -> None:
        super().__init__("id", "secret", "http://testserver/auth/fake/callback")
        self.identity = identity
        self.calls = 0

    async def exchange_code(self, code: str) -> dict:
        self.calls += 1
        return {"access_token": "t", "token_type": "bearer"}

    async def fetch_identity(self, token: dict) -> OAuthIdentity:
        self.calls += 1
        return self.identity


@pytest.fixture
def store(tmp_path):
    s = UserStore(db_url=f"sqlite:///{tmp_path / 'users.db'}")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# select_github_email
# ---------------------------------------------------------------------------


def test_select_prefers_primary_verified():
    entries = [
        {"email": "first@b.com", "primary": False, "verified": True},
        {"email": "primary-unverified@b.com", "primary": True, "verified": False},
        {"email": "main@b.com", "primary": True, "verified": True},
    ]
    assert select_github_email(entries) == "main@b.com"


def test_select_falls_back_to_first_entry():
    entries = [
        {"email": "first@b.com", "primary": False, "verified": False},
        {"email": "second@b.com", "primary": False, "verified": True},
    ]
    assert select_github_email(entries) == "first@b.com"


def test_select_fallback_skips_entries_without_address():
    entries = [
        {"email": "", "primary": False, "verified": False},
        {"email": "second@b.com", "primary": False, "verified": False},
    ]
    assert select_github_email(entries) == "second@b.com"


def test_select_raises_when_no_entry_has_address():
    with pytest.raises(NoEmailAvailable):
        select_github_email([{"email": None, "primary": True, "verified": True}])


def test_select_empty_list_raises():
    with pytest.raises(NoEmailAvailable):
        select_github_email([])


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def test_build_auth_url_embeds_state_and_client():
    url = _github(_github_transport([])).build_auth_url("nonce-123")
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert parsed.netloc == "github.com"
    assert query["state"] == ["nonce-123"]
    assert query["client_id"] == ["gh-id"]
    assert query["response_type"] == ["code"]
    assert query["redirect_uri"] == ["http://testserver/auth/github/callback"]


def test_github_identity_uses_emails_fallback():
    calls: list[str] = []
    provider = _github(
        _github_transport(
            calls,
            profile_email=None,
            emails=[
                {"email": "old@b.com", "primary": False, "verified": True},
                {"email": "octo@b.com", "primary": True, "verified": True},
            ],
        )
    )

    async def flow():
        token = await provider.exchange_code("code-1")
        return await provider.fetch_identity(token)

    identity = asyncio.run(flow())
    assert identity == OAuthIdentity(subject="4242", email="octo@b.com")
    assert calls == ["/login/oauth/access_token", "/user", "/user/emails"]


def test_github_identity_skips_fallback_when_profile_has_email():
    calls: list[str] = []
    provider = _github(_github_transport(calls, profile_email="public@b.com"))
    identity = asyncio.run(provider.fetch_identity({"access_token": "gho_test", "token_type": "bearer"}))
    assert identity.email == "public@b.com"
    assert "/user/emails" not in calls


def test_github_identity_without_any_email_raises():
    provider = _github(_github_transport([], profile_email=None, emails=[]))
    with pytest.raises(NoEmailAvailable):
        asyncio.run(provider.fetch_identity({"access_token": "gho_test", "token_type": "bearer"}))


def test_google_identity_from_userinfo():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer ya29.test"
        return httpx.Response(200, json={"id": "1089", "email": "g@b.com", "verified_email": True})

    provider = GoogleProvider("g-id", "g-secret", "http://testserver/cb", transport=httpx.MockTransport(handler))
    identity = asyncio.run(provider.fetch_identity({"access_token": "ya29.test", "token_type": "Bearer"}))
    assert identity == OAuthIdentity(subject="1089", email="g@b.com")


def test_exchange_rejected_code_raises_exchange_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "bad_verification_code"})

    provider = _github(httpx.MockTransport(handler))
    with pytest.raises(OAuthExchangeFailed):
        asyncio.run(provider.exchange_code("stale"))


@pytest.mark.parametrize("status", [500, 502, 503])
def test_exchange_server_error_raises_provider_unavailable(status):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="upstream down")

    provider = _github(httpx.MockTransport(handler))
    with pytest.raises(ProviderUnavailable):
        asyncio.run(provider.exchange_code("code"))


def test_exchange_transport_failure_raises_provider_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = _github(httpx.MockTransport(handler))
    with pytest.raises(ProviderUnavailable):
        asyncio.run(provider.exchange_code("code"))


def test_build_providers_registers_only_configured():
    settings = get_settings().model_copy(
        update={"github_client_id": "id", "github_client_secret": "secret", "google_client_id": "only-id"}
    )
    providers = build_providers(settings)
    assert set(providers) == {"github"}
    assert isinstance(providers["github"], GitHubProvider)


# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("query_state", "cookie_state"),
    [("abc", "xyz"), ("abc", None), (None, "abc"), ("", ""), (None, None)],
)
def test_state_mismatch_fails_before_network(store, query_state, cookie_state):
    provider = CountingProvider(OAuthIdentity(subject="1", email="x@b.com"))
    broker = OAuthBroker(store, {"fake": provider})
    with pytest.raises(StateMismatch):
        asyncio.run(broker.handle_callback("fake", query_state, cookie_state, "code"))
    assert provider.calls == 0
    assert store.count_users() == 0


def test_missing_code_fails_before_network(store):
    provider = CountingProvider(OAuthIdentity(subject="1", email="x@b.com"))
    broker = OAuthBroker(store, {"fake": provider})
    with pytest.raises(OAuthExchangeFailed):
        asyncio.run(broker.handle_callback("fake", "s", "s", None))
    assert provider.calls == 0


def test_callback_creates_then_reuses_user(store):
    provider = CountingProvider(OAuthIdentity(subject="77", email="new@b.com"))
    broker = OAuthBroker(store, {"fake": provider})

    first = asyncio.run(broker.handle_callback("fake", "s", "s", "code"))
    second = asyncio.run(broker.handle_callback("fake", "t", "t", "code"))

    assert first.id == second.id
    assert first.email == "new@b.com"
    assert first.oauth_provider == "fake"
    assert first.oauth_subject == "77"
    assert first.hashed_password is None
    assert store.count_users() == 1


def test_unknown_provider(store):
    broker = OAuthBroker(store, {})
    with pytest.raises(UnknownProvider):
        broker.begin_login("gitlab")


def test_begin_login_returns_fresh_state(store):
    broker = OAuthBroker(store, {"github": _github(_github_transport([]))})
    url1, state1 = broker.begin_login("github")
    url2, state2 = broker.begin_login("github")
    assert state1 != state2
    assert len(state1) >= 32
    assert parse_qs(urlparse(url1).query)["state"] == [state1]
