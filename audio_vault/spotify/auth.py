"""
Spotify OAuth credential lifecycle (authorization code + PKCE).

This module owns every credential the engine holds. It implements the
public-client flow: no client secret is stored anywhere; the proof of
possession is a random code verifier whose SHA-256 challenge is sent
with the authorization request and whose plain value is sent with the
code exchange.

Lifecycle:
    1. begin_login()
       - Generate code verifier (96 alphanumerics) and state (24 alphanumerics)
       - Store both in the token store (ephemeral keys)
       - Build the /authorize URL and optionally open it in the browser

    2. complete_login_from_redirect(url)
       - Parse the redirect the browser landed on
       - Check state against the stored value
       - Exchange code + verifier at /api/token
       - Store the credential record, erase ephemeral state (always)

    3. get_valid_access_token()
       - Return the stored token while it has more than 60 seconds left
       - Otherwise refresh in-line; on any refresh failure log out

    4. logout()
       - Erase the credential record and any pending login state

Storage:
    The token store is injected. Credential records are stored as JSON
    text under CREDENTIAL_KEY with an absolute expires_at (epoch seconds).

Usage:
    manager = CredentialManager(FileTokenStore(path), config.spotify)
    url = manager.begin_login()
    ...
    manager.complete_login_from_redirect(redirected_url)
    token = manager.get_valid_access_token()
"""

import base64
import hashlib
import json
import secrets
import string
import time
import urllib.parse
import webbrowser
from dataclasses import asdict, dataclass
from typing import Any

import requests

from audio_vault.core.config import SpotifyConfig
from audio_vault.core.exceptions import (
    AuthorizationDenied,
    ConfigurationMissing,
    NotAuthenticated,
    RemoteRequestFailed,
    SessionExpired,
    StateMismatch,
)
from audio_vault.core.logger import get_logger
from audio_vault.core.token_store import (
    CREDENTIAL_KEY,
    OAUTH_STATE_KEY,
    PKCE_VERIFIER_KEY,
    TokenStore,
)


AUTH_BASE = "https://accounts.spotify.com"
AUTHORIZE_URL = f"{AUTH_BASE}/authorize"
TOKEN_PATH = "/api/token"
TOKEN_URL = f"{AUTH_BASE}{TOKEN_PATH}"

# Tokens with less than this many seconds left are refreshed before use
SAFETY_MARGIN_SECONDS = 60

DEFAULT_EXPIRES_IN = 3600
CODE_VERIFIER_LENGTH = 96
STATE_LENGTH = 24

_ALPHABET = string.ascii_letters + string.digits

logger = get_logger(__name__)


def _random_string(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_code_verifier(length: int = CODE_VERIFIER_LENGTH) -> str:
    """
    Generate a PKCE code verifier.

    RFC 7636 allows 43-128 characters from the unreserved set; an
    alphanumeric string of the requested length satisfies it.
    """
    if not 43 <= length <= 128:
        raise ValueError(f"Code verifier length must be between 43 and 128, got {length}")
    return _random_string(length)


def derive_code_challenge(code_verifier: str) -> str:
    """Return the S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


@dataclass(frozen=True)
class CredentialRecord:
    """
    A stored OAuth credential.

    Attributes:
        access_token: Bearer token for API calls.
        refresh_token: Token used to obtain a new access token, if issued.
        scope: Space-separated scopes granted.
        token_type: Usually "Bearer".
        expires_at: Absolute expiry as epoch seconds.
    """
    access_token: str
    refresh_token: str | None
    scope: str
    token_type: str
    expires_at: float

    def is_valid_for(self, margin: float, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return self.expires_at > current + margin

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CredentialRecord":
        """Raises KeyError/TypeError/ValueError when the stored shape is wrong."""
        access_token = data["access_token"]
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token must be a non-empty string")
        refresh_token = data.get("refresh_token")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise TypeError("refresh_token must be a string")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token or None,
            scope=data.get("scope") or "",
            token_type=data.get("token_type") or "Bearer",
            expires_at=float(data["expires_at"]),
        )

    @classmethod
    def from_token_response(
        cls,
        response: dict[str, Any],
        previous_refresh_token: str | None = None,
        now: float | None = None,
    ) -> "CredentialRecord":
        """
        Normalize a /api/token response.

        expires_at = now + expires_in (3600 when absent). The refresh
        token of the response wins; previous_refresh_token is carried
        over when the provider omits one.
        """
        access_token = response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response has no access_token")

        current = time.time() if now is None else now
        expires_in = response.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN

        return cls(
            access_token=access_token,
            refresh_token=response.get("refresh_token") or previous_refresh_token,
            scope=response.get("scope") or "",
            token_type=response.get("token_type") or "Bearer",
            expires_at=current + float(expires_in),
        )


class CredentialManager:
    """
    Credential Lifecycle Manager for the Spotify Web API.

    The only writer of the token store. All methods run synchronously in
    the caller's control flow; refresh happens in-line with the call that
    needs a token.

    Attributes:
        store: Token store holding the credential record and login state.
        config: Spotify application settings (client id, redirect URI, scopes).
        session: requests.Session used for token endpoint calls.
        timeout: Per-request timeout in seconds.

    Example:
        config = SpotifyConfig(client_id="abc", redirect_uri="http://127.0.0.1:8888/callback")
        manager = CredentialManager(MemoryTokenStore(), config)
        print(manager.begin_login(open_browser=False))
    """

    def __init__(
        self,
        store: TokenStore,
        config: SpotifyConfig,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.store = store
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout

    # =========================================================================
    # LOGIN
    # =========================================================================

    def _require_config(self) -> None:
        if not self.config.client_id:
            raise ConfigurationMissing(
                "Spotify client id is not configured",
                details={"field": "spotify.client_id"}
            )
        if not self.config.redirect_uri:
            raise ConfigurationMissing(
                "Spotify redirect URI is not configured",
                details={"field": "spotify.redirect_uri"}
            )

    def begin_login(self, open_browser: bool = True) -> str:
        """
        Start an authorization: store fresh PKCE state and return the /authorize URL.

        Any previous pending login is overwritten.

        Raises:
            ConfigurationMissing: If client id or redirect URI is absent.
        """
        self._require_config()

        code_verifier = generate_code_verifier()
        state = _random_string(STATE_LENGTH)

        self.store.set(PKCE_VERIFIER_KEY, code_verifier)
        self.store.set(OAUTH_STATE_KEY, state)

        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "scope": self.config.scope_string,
            "code_challenge_method": "S256",
            "code_challenge": derive_code_challenge(code_verifier),
            "redirect_uri": self.config.redirect_uri,
            "state": state,
        }
        authorization_url = f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

        logger.debug("Authorization started")
        if open_browser:
            webbrowser.open(authorization_url)
        return authorization_url

    def complete_login_from_redirect(self, url: str) -> str | None:
        """
        Finish an authorization from the URL the provider redirected to.

        Args:
            url: Full redirect URL (or just its query string).

        Returns:
            The URL with `code` and `state` removed on success, or None
            if the URL is not an authorization callback (no `code`).

        Raises:
            AuthorizationDenied: The redirect carries an `error` parameter.
            StateMismatch: State differs from the stored one, or no login
                           is pending.
            RemoteRequestFailed: The token endpoint rejected the exchange.
            ConfigurationMissing: Client id or redirect URI is absent.

        Note:
            Pending login state is erased on every outcome other than
            "not a callback", so the same callback can never complete twice.
        """
        parsed = urllib.parse.urlsplit(url)
        if not parsed.scheme and "?" not in url:
            # Bare query string pasted by the user
            parsed = urllib.parse.SplitResult("", "", "", url, "")
        query = parsed.query
        params = urllib.parse.parse_qs(query, keep_blank_values=True)

        error = _first(params, "error")
        if error is not None:
            self._clear_ephemeral_state()
            raise AuthorizationDenied(error, _first(params, "error_description"))

        code = _first(params, "code")
        if not code:
            return None

        returned_state = _first(params, "state")
        stored_state = self.store.get(OAUTH_STATE_KEY)
        code_verifier = self.store.get(PKCE_VERIFIER_KEY)

        if (
            not returned_state
            or not stored_state
            or not code_verifier
            or not secrets.compare_digest(returned_state, stored_state)
        ):
            self._clear_ephemeral_state()
            raise StateMismatch(
                "OAuth state check failed. Please try logging in again.",
                details={"pending_login": bool(stored_state and code_verifier)}
            )

        try:
            self._require_config()
            response = self._post_token({
                "client_id": self.config.client_id,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
                "code_verifier": code_verifier,
            })
            try:
                record = CredentialRecord.from_token_response(response)
            except (TypeError, ValueError) as e:
                raise RemoteRequestFailed(200, TOKEN_PATH, "malformed token response") from e
            self._save_record(record)
        finally:
            self._clear_ephemeral_state()

        logger.info("Spotify login completed")

        remaining = [
            (key, value)
            for key, value in urllib.parse.parse_qsl(query, keep_blank_values=True)
            if key not in ("code", "state")
        ]
        return urllib.parse.urlunsplit(
            (parsed.scheme, parsed.netloc, parsed.path, urllib.parse.urlencode(remaining), "")
        )

    # =========================================================================
    # TOKENS
    # =========================================================================

    def get_valid_access_token(self) -> str:
        """
        Return an access token with more than SAFETY_MARGIN_SECONDS left.

        Raises:
            NotAuthenticated: No credential record is stored.
            SessionExpired: The token is expiring and cannot be refreshed.
                            The manager is logged out when this is raised.
        """
        record = self.current_record()
        if record is None:
            raise NotAuthenticated("Not authenticated with Spotify. Run 'vault login' first.")

        if record.is_valid_for(SAFETY_MARGIN_SECONDS):
            return record.access_token

        if not record.refresh_token:
            self.logout()
            raise SessionExpired("Session expired. Please sign in again.")

        logger.debug("Access token expiring, refreshing")
        try:
            self._require_config()
            response = self._post_token({
                "client_id": self.config.client_id,
                "grant_type": "refresh_token",
                "refresh_token": record.refresh_token,
            })
            refreshed = CredentialRecord.from_token_response(
                response, previous_refresh_token=record.refresh_token
            )
        except (RemoteRequestFailed, ConfigurationMissing, TypeError, ValueError) as e:
            logger.warning(f"Token refresh failed: {e}")
            self.logout()
            raise SessionExpired(
                "Spotify token refresh failed. Please sign in again.",
                details={"original_error": str(e)}
            ) from e

        self._save_record(refreshed)
        logger.debug("Access token refreshed")
        return refreshed.access_token

    def is_authenticated(self) -> bool:
        """True iff a record exists and has not expired (no safety margin)."""
        record = self.current_record()
        return record is not None and record.is_valid_for(0)

    def current_record(self) -> CredentialRecord | None:
        """
        Return the stored credential record, or None.

        A record that cannot be parsed is deleted and reported as absent.
        """
        raw = self.store.get(CREDENTIAL_KEY)
        if not raw:
            return None

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise TypeError("credential record is not an object")
            return CredentialRecord.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Stored Spotify credential is corrupted, discarding it")
            self.store.delete(CREDENTIAL_KEY)
            return None

    def logout(self) -> None:
        """Erase the credential record and any pending login state."""
        self._clear_ephemeral_state()
        self.store.delete(CREDENTIAL_KEY)
        logger.debug("Spotify credentials cleared")

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _clear_ephemeral_state(self) -> None:
        self.store.delete(PKCE_VERIFIER_KEY)
        self.store.delete(OAUTH_STATE_KEY)

    def _save_record(self, record: CredentialRecord) -> None:
        self.store.set(CREDENTIAL_KEY, json.dumps(record.to_dict()))

    def _post_token(self, data: dict[str, str]) -> dict[str, Any]:
        """
        POST a form to the token endpoint and return the decoded JSON.

        Raises:
            RemoteRequestFailed: Non-2xx status, transport failure (status
                                 None) or a body that is not a JSON object.
        """
        try:
            response = self.session.post(
                TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteRequestFailed(None, TOKEN_PATH, str(e)) from e

        if not 200 <= response.status_code < 300:
            raise RemoteRequestFailed(response.status_code, TOKEN_PATH, response.text)

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteRequestFailed(response.status_code, TOKEN_PATH, response.text) from e

        if not isinstance(body, dict):
            raise RemoteRequestFailed(response.status_code, TOKEN_PATH, response.text)
        return body


def _first(params: dict[str, list[str]], key: str) -> str | None:
    values = params.get(key)
    return values[0] if values else None
