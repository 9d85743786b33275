"""
auth/oauth.py -- OAuth2 authorization-code login (Google, GitHub).

One capability, two variants. Every provider knows how to:
  build_auth_url(state)   -- where to send the browser
  exchange_code(code)     -- trade the callback code for an access token
  fetch_identity(token)   -- resolve (subject, email) from the provider API

OAuthBroker owns the orchestration shared by all providers: state nonce
generation, the state check on callback, and mapping a provider identity onto
a local User. Route handlers only deal with cookies and responses.

Security notes:
  The state nonce lives in a short-lived httpOnly cookie set by the login
  route. handle_callback() compares it to the query parameter in constant
  time BEFORE any network call is made; a missing or mismatched value raises
  StateMismatch without contacting the provider. The cookie is discarded after
  that single comparison whatever the outcome (see api/routes/oauth.py).

  Every outbound call goes through authlib's AsyncOAuth2Client (httpx) with a
  bounded timeout. Transport failures and 5xx answers become
  ProviderUnavailable (500); a rejected code becomes OAuthExchangeFailed (401).

  GitHub may omit the email from /user. The /user/emails fallback picks the
  first entry that is both primary and verified, then the first entry that
  has an address, and fails with NoEmailAvailable when none does.

Layer rule: no imports from api/, web/, notes/, or files/. Import from core/
is allowed -- core/ is the kernel layer.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import TYPE_CHECKING, Any

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from auth.errors import (
    NoEmailAvailable,
    OAuthExchangeFailed,
    ProviderUnavailable,
    StateMismatch,
    UnknownProvider,
)
from auth.models import OAuthIdentity, User

if TYPE_CHECKING:
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("notebox.auth.oauth")

# Lifetime of the oauth_state cookie. Long enough to complete a consent screen.
STATE_MAX_AGE = 300
STATE_COOKIE = "oauth_state"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class OAuthProvider:
    """Authorization-code flow against one provider.

    Subclasses set the endpoint URLs and scopes and implement
    fetch_identity(). transport is an httpx transport override used by tests
    (httpx.MockTransport); production leaves it None.
    """

    name: str = ""
    authorize_url: str = ""
    token_url: str = ""
    scopes: tuple[str, ...] = ()

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def _client(self, token: dict | None = None) -> AsyncOAuth2Client:
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return AsyncOAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            scope=" ".join(self.scopes),
            token=token,
            token_endpoint_auth_method="client_secret_post",
            **kwargs,
        )

    def build_auth_url(self, state: str) -> str:
        """Return the provider's authorization URL embedding state and scopes."""
        return prepare_grant_uri(
            self.authorize_url,
            client_id=self.client_id,
            response_type="code",
            redirect_uri=self.redirect_uri,
            scope=list(self.scopes),
            state=state,
        )

    async def exchange_code(self, code: str) -> dict:
        """Exchange an authorization code for a token dict.

        Raises:
            OAuthExchangeFailed: the provider rejected the code.
            ProviderUnavailable: the provider could not be reached or answered 5xx.
        """
        try:
            async with self._client() as client:
                token = await client.fetch_token(self.token_url, code=code)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code >= 500:
                logger.error("OAuth token endpoint for %s returned %d", self.name, exc.response.status_code)
                raise ProviderUnavailable() from exc
            logger.warning("OAuth code exchange rejected by %s: %s", self.name, exc)
            raise OAuthExchangeFailed() from exc
        except (AuthlibBaseError, ValueError) as exc:
            logger.warning("OAuth code exchange rejected by %s: %s", self.name, exc)
            raise OAuthExchangeFailed() from exc
        except httpx.HTTPError as exc:
            logger.error("OAuth token endpoint unreachable for %s: %s", self.name, exc)
            raise ProviderUnavailable() from exc
        if not token.get("access_token"):
            raise OAuthExchangeFailed()
        return dict(token)

    async def fetch_identity(self, token: dict) -> OAuthIdentity:
        raise NotImplementedError

    async def _get_json(self, client: AsyncOAuth2Client, url: str) -> Any:
        try:
            resp = await client.get(url, headers={"Accept": "application/json"})
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, AuthlibBaseError, ValueError) as exc:
            logger.error("OAuth user-info request to %s failed: %s", url, exc)
            raise ProviderUnavailable() from exc


class GoogleProvider(OAuthProvider):
    name = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/auth"
    token_url = "https://oauth2.googleapis.com/token"  # noqa: S105 -- URL, not a password
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    scopes = ("email", "profile")

    async def fetch_identity(self, token: dict) -> OAuthIdentity:
        async with self._client(token=token) as client:
            data = await self._get_json(client, self.userinfo_url)
        subject = str(data.get("id") or "")
        email = data.get("email") or ""
        if not subject:
            raise ProviderUnavailable("google profile has no id")
        if not email:
            raise NoEmailAvailable()
        return OAuthIdentity(subject=subject, email=email)


class GitHubProvider(OAuthProvider):
    name = "github"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"  # noqa: S105 -- URL, not a password
    user_url = "https://api.github.com/user"
    emails_url = "https://api.github.com/user/emails"
    scopes = ("user:email",)

    async def fetch_identity(self, token: dict) -> OAuthIdentity:
        """Resolve the GitHub numeric ID and an email address.

        /user carries the email only when the user made it public; otherwise
        a second call to /user/emails is needed.
        """
        async with self._client(token=token) as client:
            profile = await self._get_json(client, self.user_url)
            subject = str(profile.get("id") or "")
            if not subject:
                raise ProviderUnavailable("github profile has no id")
            email = profile.get("email") or ""
            if not email:
                entries = await self._get_json(client, self.emails_url)
                email = select_github_email(entries if isinstance(entries, list) else [])
        return OAuthIdentity(subject=subject, email=email)


def select_github_email(entries: list[dict]) -> str:
    """Pick the address to register from a GitHub /user/emails response.

    First entry with primary=true and verified=true wins. Failing that, the
    first entry with an address. Raises NoEmailAvailable when no entry has one.
    """
    for entry in entries:
        if entry.get("primary") and entry.get("verified") and entry.get("email"):
            return entry["email"]
    for entry in entries:
        if entry.get("email"):
            return entry["email"]
    raise NoEmailAvailable()


def build_providers(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> dict[str, OAuthProvider]:
    """Instantiate every provider that has both client ID and secret configured."""
    providers: dict[str, OAuthProvider] = {}
    if settings.google_client_id and settings.google_client_secret:
        providers["google"] = GoogleProvider(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_redirect_url,
            timeout=settings.oauth_timeout_seconds,
            transport=transport,
        )
        logger.info("Google OAuth provider registered")
    if settings.github_client_id and settings.github_client_secret:
        providers["github"] = GitHubProvider(
            settings.github_client_id,
            settings.github_client_secret,
            settings.github_redirect_url,
            timeout=settings.oauth_timeout_seconds,
            transport=transport,
        )
        logger.info("GitHub OAuth provider registered")
    return providers


# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------


def generate_state() -> str:
    return secrets.token_urlsafe(32)


class OAuthBroker:
    """Shared login/callback orchestration for every registered provider."""

    def __init__(self, store: UserStore, providers: dict[str, OAuthProvider]) -> None:
        self._store = store
        self._providers = providers

    @property
    def enabled(self) -> list[str]:
        return sorted(self._providers)

    def provider(self, name: str) -> OAuthProvider:
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProvider() from None

    def begin_login(self, name: str) -> tuple[str, str]:
        """Return (redirect_url, state). The caller stores state in a cookie."""
        provider = self.provider(name)
        state = generate_state()
        return provider.build_auth_url(state), state

    async def handle_callback(
        self,
        name: str,
        query_state: str | None,
        cookie_state: str | None,
        code: str | None,
    ) -> User:
        """Validate the callback, exchange the code and resolve the local user.

        Raises StateMismatch before touching the network when either state is
        empty or they differ.
        """
        provider = self.provider(name)
        if not query_state or not cookie_state or not hmac.compare_digest(query_state, cookie_state):
            logger.warning("OAuth callback for %s rejected: state mismatch", name)
            raise StateMismatch()
        if not code:
            raise OAuthExchangeFailed("missing authorization code")

        token = await provider.exchange_code(code)
        identity = await provider.fetch_identity(token)

        user = self._store.get_by_oauth(name, identity.subject)
        if user is None:
            user = self._store.create_oauth_user(identity.email, name, identity.subject)
            logger.info("Created user_id=%s from %s identity", user.id, name)
        return user
