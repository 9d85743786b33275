"""
tests/test_auth_redirect.py -- Integration tests for the UI session redirect chain.

These tests exercise _require_user() and SessionMiddleware end-to-end through
the real ASGI stack (follow_redirects=False). We assert on redirect Location
headers directly -- following the redirect would hide them.

Coverage:
  - Unauthenticated requests -> 302 /login?next={path}
  - HTMX requests get HX-Redirect instead of a 302
  - Invalid / expired gonotes_token cookie is deleted, not turned into an error
  - Authenticated requests pass through (200, no redirect)
  - Security: next= is always a relative path (open-redirect prevention)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from web.session import SESSION_COOKIE


def _session_cookie_deleted(resp) -> bool:
    return any(
        h.startswith(f"{SESSION_COOKIE}=") and "max-age=0" in h.lower() for h in resp.headers.get_list("set-cookie")
    )


class TestAuthRedirectChain:
    def test_unauthenticated_redirects_to_login(self, client: TestClient) -> None:
        resp = client.get("/ui/notes")
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("/login")
        assert "next=/ui/notes" in location

    def test_htmx_request_gets_hx_redirect(self, client: TestClient) -> None:
        resp = client.get("/ui/notes", headers={"HX-Request": "true"})
        assert resp.status_code == 200
        assert resp.headers["hx-redirect"].startswith("/login?next=/ui/notes")

    def test_invalid_session_cookie_is_deleted(self, client: TestClient) -> None:
        client.cookies.set(SESSION_COOKIE, "not-a-jwt")
        resp = client.get("/login")
        assert resp.status_code == 200
        assert _session_cookie_deleted(resp)

    def test_expired_session_cookie_is_deleted_and_redirects(self, client: TestClient, signup) -> None:
        signup(client)
        uid = client.app.state.user_store.get_by_email("a@b.com").id
        expired = client.app.state.token_service.issue(uid, now=datetime.now(timezone.utc) - timedelta(days=2))
        client.cookies.set(SESSION_COOKIE, expired)
        resp = client.get("/ui/notes")
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("/login")
        assert _session_cookie_deleted(resp)

    def test_authenticated_no_redirect(self, client: TestClient, signup) -> None:
        client.cookies.set(SESSION_COOKIE, signup(client))
        resp = client.get("/ui/notes")
        assert resp.status_code == 200
        assert "a@b.com" in resp.text
        assert not _session_cookie_deleted(resp)

    def test_logged_in_user_skips_login_form(self, client: TestClient, signup) -> None:
        client.cookies.set(SESSION_COOKIE, signup(client))
        resp = client.get("/login")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/ui/notes"

    def test_root_redirects_to_notes(self, client: TestClient) -> None:
        resp = client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/ui/notes"


class TestSafeNextValidation:
    """Verify the next= redirect parameter cannot be used for open redirect attacks."""

    def test_next_param_is_path_only(self, client: TestClient) -> None:
        resp = client.get("/ui/notes")
        next_values = parse_qs(urlparse(resp.headers["location"]).query).get("next", [])
        assert len(next_values) == 1
        assert next_values[0].startswith("/")
        assert not next_values[0].startswith("//")

    def _login_with_next(self, client: TestClient, signup, next_url: str):
        signup(client)
        client.get("/login")
        return client.post(
            "/login",
            params={"next": next_url},
            data={"email": "a@b.com", "password": "secret1", "csrf_token": client.cookies.get("gonotes_csrf")},
        )

    def test_relative_next_is_honoured(self, client: TestClient, signup) -> None:
        resp = self._login_with_next(client, signup, "/ui/notes?page=2")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/ui/notes?page=2"

    def test_absolute_next_is_ignored(self, client: TestClient, signup) -> None:
        resp = self._login_with_next(client, signup, "https://attacker.example/")
        assert resp.headers["location"] == "/ui/notes"

    def test_protocol_relative_next_is_ignored(self, client: TestClient, signup) -> None:
        resp = self._login_with_next(client, signup, "//attacker.example/")
        assert resp.headers["location"] == "/ui/notes"
