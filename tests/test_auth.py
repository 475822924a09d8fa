"""Test the Spotify credential lifecycle (PKCE login, refresh, logout)"""

import json
import urllib.parse
from unittest.mock import patch

import pytest
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
from audio_vault.core.token_store import CREDENTIAL_KEY, OAUTH_STATE_KEY, PKCE_VERIFIER_KEY
from audio_vault.spotify.auth import (
    TOKEN_URL,
    CredentialManager,
    CredentialRecord,
    derive_code_challenge,
    generate_code_verifier,
)


@pytest.fixture
def manager(token_store, spotify_config, http_session):
    return CredentialManager(token_store, spotify_config, session=http_session)


def _query(url):
    return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query))


def _callback(state, code="auth-code", extra=""):
    return f"http://127.0.0.1:8888/callback?code={code}&state={state}{extra}"


class TestPkce:
    """Test code verifier and challenge generation"""

    def test_challenge_matches_rfc7636_example(self):
        """Test S256 challenge against the RFC 7636 appendix B vector"""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert derive_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_verifier_is_alphanumeric_and_long_enough(self):
        """Test verifier length and alphabet"""
        verifier = generate_code_verifier()
        assert len(verifier) == 96
        assert verifier.isalnum()

    def test_verifier_length_bounds(self):
        """Test out-of-range lengths are rejected"""
        with pytest.raises(ValueError):
            generate_code_verifier(42)
        with pytest.raises(ValueError):
            generate_code_verifier(129)

    def test_verifiers_are_random(self):
        """Test two verifiers differ"""
        assert generate_code_verifier() != generate_code_verifier()


class TestBeginLogin:
    """Test building the authorization request"""

    def test_authorization_url_parameters(self, manager, token_store):
        """Test URL carries challenge, state and configuration"""
        url = manager.begin_login(open_browser=False)
        params = _query(url)

        assert url.startswith("https://accounts.spotify.com/authorize?")
        assert params["response_type"] == "code"
        assert params["client_id"] == "client-123"
        assert params["redirect_uri"] == "http://127.0.0.1:8888/callback"
        assert params["code_challenge_method"] == "S256"
        assert params["state"] == token_store.get(OAUTH_STATE_KEY)
        assert len(params["state"]) == 24
        assert params["code_challenge"] == derive_code_challenge(token_store.get(PKCE_VERIFIER_KEY))
        assert "user-library-read" in params["scope"].split(" ")

    def test_opens_browser(self, manager):
        """Test the system browser is asked to open the URL"""
        with patch("audio_vault.spotify.auth.webbrowser.open") as mock_open:
            url = manager.begin_login()
        mock_open.assert_called_once_with(url)

    def test_missing_client_id(self, token_store, http_session):
        """Test login fails closed without a client id"""
        manager = CredentialManager(token_store, SpotifyConfig(client_id=""), session=http_session)
        with pytest.raises(ConfigurationMissing):
            manager.begin_login(open_browser=False)
        assert token_store.keys() == []

    def test_missing_redirect_uri(self, token_store, http_session):
        """Test login fails closed without a redirect URI"""
        config = SpotifyConfig(client_id="client-123", redirect_uri="")
        manager = CredentialManager(token_store, config, session=http_session)
        with pytest.raises(ConfigurationMissing):
            manager.begin_login(open_browser=False)


class TestCompleteLogin:
    """Test handling of the authorization redirect"""

    def test_successful_exchange(self, manager, token_store, http_session, make_response):
        """Test code exchange stores the credential and clears login state"""
        manager.begin_login(open_browser=False)
        state = token_store.get(OAUTH_STATE_KEY)
        verifier = token_store.get(PKCE_VERIFIER_KEY)
        http_session.post.return_value = make_response(200, {
            "access_token": "access-new",
            "refresh_token": "refresh-new",
            "expires_in": 3600,
            "scope": "user-library-read",
            "token_type": "Bearer",
        })

        with patch("audio_vault.spotify.auth.time.time", return_value=1000.0):
            cleaned = manager.complete_login_from_redirect(_callback(state, extra="&tab=home"))

        assert cleaned == "http://127.0.0.1:8888/callback?tab=home"
        assert token_store.get(OAUTH_STATE_KEY) is None
        assert token_store.get(PKCE_VERIFIER_KEY) is None

        stored = json.loads(token_store.get(CREDENTIAL_KEY))
        assert stored["access_token"] == "access-new"
        assert stored["refresh_token"] == "refresh-new"
        assert stored["expires_at"] == 4600.0

        args, kwargs = http_session.post.call_args
        assert args[0] == TOKEN_URL
        assert kwargs["data"]["grant_type"] == "authorization_code"
        assert kwargs["data"]["code"] == "auth-code"
        assert kwargs["data"]["code_verifier"] == verifier
        assert kwargs["data"]["client_id"] == "client-123"

    def test_not_a_callback(self, manager, token_store, http_session):
        """Test URL without code is a no-op and keeps the pending login"""
        manager.begin_login(open_browser=False)
        assert manager.complete_login_from_redirect("http://127.0.0.1:8888/callback") is None
        assert token_store.get(OAUTH_STATE_KEY) is not None
        http_session.post.assert_not_called()

    def test_authorization_denied(self, manager, token_store, http_session):
        """Test error parameter raises and clears login state"""
        manager.begin_login(open_browser=False)
        with pytest.raises(AuthorizationDenied) as exc_info:
            manager.complete_login_from_redirect(
                "http://127.0.0.1:8888/callback?error=access_denied"
            )
        assert exc_info.value.error == "access_denied"
        assert token_store.get(OAUTH_STATE_KEY) is None
        assert token_store.get(PKCE_VERIFIER_KEY) is None
        http_session.post.assert_not_called()

    def test_state_mismatch_clears_state_every_time(self, manager, token_store, http_session):
        """Test wrong state raises and leaves nothing behind, also on repeat"""
        manager.begin_login(open_browser=False)
        url = _callback("not-the-state")

        for _ in range(2):
            with pytest.raises(StateMismatch):
                manager.complete_login_from_redirect(url)
            assert token_store.get(OAUTH_STATE_KEY) is None
            assert token_store.get(PKCE_VERIFIER_KEY) is None

        http_session.post.assert_not_called()

    def test_callback_without_pending_login(self, manager, http_session):
        """Test a callback when no login was started"""
        with pytest.raises(StateMismatch):
            manager.complete_login_from_redirect(_callback("anything"))
        http_session.post.assert_not_called()

    def test_failed_exchange_clears_state(self, manager, token_store, http_session, make_response):
        """Test a rejected exchange cannot be replayed"""
        manager.begin_login(open_browser=False)
        url = _callback(token_store.get(OAUTH_STATE_KEY))
        http_session.post.return_value = make_response(400, {"error": "invalid_grant"})

        with pytest.raises(RemoteRequestFailed) as exc_info:
            manager.complete_login_from_redirect(url)
        assert exc_info.value.status == 400
        assert token_store.get(CREDENTIAL_KEY) is None
        assert token_store.get(PKCE_VERIFIER_KEY) is None

        with pytest.raises(StateMismatch):
            manager.complete_login_from_redirect(url)
        assert http_session.post.call_count == 1

    def test_network_error_during_exchange(self, manager, token_store, http_session):
        """Test transport failure surfaces as a request failure without status"""
        manager.begin_login(open_browser=False)
        http_session.post.side_effect = requests.ConnectionError("down")

        with pytest.raises(RemoteRequestFailed) as exc_info:
            manager.complete_login_from_redirect(_callback(token_store.get(OAUTH_STATE_KEY)))
        assert exc_info.value.status is None
        assert token_store.get(OAUTH_STATE_KEY) is None

    def test_bare_query_string(self, manager, token_store, http_session, make_response):
        """Test a pasted query string is accepted"""
        manager.begin_login(open_browser=False)
        state = token_store.get(OAUTH_STATE_KEY)
        http_session.post.return_value = make_response(200, {"access_token": "tok"})

        assert manager.complete_login_from_redirect(f"code=abc&state={state}") is not None
        assert manager.is_authenticated()


class TestAccessToken:
    """Test token validity, refresh and expiry"""

    def test_not_authenticated(self, manager):
        """Test no record raises"""
        with pytest.raises(NotAuthenticated):
            manager.get_valid_access_token()

    def test_fresh_token_is_returned_without_refresh(self, manager, store_credential, http_session):
        """Test a token with plenty of time left is used as-is"""
        store_credential(expires_in=3600)
        assert manager.get_valid_access_token() == "access-1"
        http_session.post.assert_not_called()

    def test_margin_boundary(self, manager, token_store, http_session, make_response):
        """Test refresh happens at exactly 60 seconds left but not above"""
        record = {"access_token": "access-1", "refresh_token": "refresh-1", "expires_at": 1060.5}
        token_store.set(CREDENTIAL_KEY, json.dumps(record))
        http_session.post.return_value = make_response(200, {"access_token": "access-2"})

        with patch("audio_vault.spotify.auth.time.time", return_value=1000.0):
            assert manager.get_valid_access_token() == "access-1"
            http_session.post.assert_not_called()

            record["expires_at"] = 1060.0
            token_store.set(CREDENTIAL_KEY, json.dumps(record))
            assert manager.get_valid_access_token() == "access-2"
            http_session.post.assert_called_once()

    def test_refresh_carries_over_refresh_token(self, manager, token_store, store_credential,
                                                http_session, make_response):
        """Test refresh keeps the old refresh token when none is returned"""
        store_credential(expires_in=30)
        http_session.post.return_value = make_response(200, {
            "access_token": "access-2",
            "expires_in": 3600,
        })

        assert manager.get_valid_access_token() == "access-2"

        stored = json.loads(token_store.get(CREDENTIAL_KEY))
        assert stored["refresh_token"] == "refresh-1"
        data = http_session.post.call_args.kwargs["data"]
        assert data["grant_type"] == "refresh_token"
        assert data["refresh_token"] == "refresh-1"

    def test_refresh_uses_rotated_refresh_token(self, manager, token_store, store_credential,
                                                http_session, make_response):
        """Test a new refresh token from the provider replaces the old one"""
        store_credential(expires_in=30)
        http_session.post.return_value = make_response(200, {
            "access_token": "access-2",
            "refresh_token": "refresh-2",
        })

        manager.get_valid_access_token()
        assert json.loads(token_store.get(CREDENTIAL_KEY))["refresh_token"] == "refresh-2"

    def test_refresh_failure_logs_out(self, manager, token_store, store_credential,
                                      http_session, make_response):
        """Test a rejected refresh clears everything"""
        store_credential(expires_in=30)
        http_session.post.return_value = make_response(400, {"error": "invalid_grant"})

        with pytest.raises(SessionExpired):
            manager.get_valid_access_token()
        assert token_store.keys() == []

    def test_expiring_without_refresh_token(self, manager, token_store, store_credential, http_session):
        """Test expiring token without refresh token logs out"""
        store_credential(expires_in=30, refresh_token=None)

        with pytest.raises(SessionExpired):
            manager.get_valid_access_token()
        assert token_store.get(CREDENTIAL_KEY) is None
        http_session.post.assert_not_called()


class TestSessionState:
    """Test is_authenticated, logout and corrupted records"""

    def test_is_authenticated_ignores_margin(self, manager, store_credential):
        """Test a token inside the safety margin still counts as authenticated"""
        store_credential(expires_in=10)
        assert manager.is_authenticated() is True

    def test_is_authenticated_expired(self, manager, store_credential):
        """Test expired token"""
        store_credential(expires_in=-1)
        assert manager.is_authenticated() is False

    def test_is_authenticated_without_record(self, manager):
        assert manager.is_authenticated() is False

    def test_logout_clears_everything(self, manager, token_store, store_credential):
        """Test logout removes credential and pending login state"""
        store_credential()
        manager.begin_login(open_browser=False)
        manager.logout()
        assert token_store.keys() == []

    def test_corrupted_record_is_discarded(self, manager, token_store):
        """Test unparseable record is deleted and treated as absent"""
        token_store.set(CREDENTIAL_KEY, "{not json")
        assert manager.current_record() is None
        assert token_store.get(CREDENTIAL_KEY) is None
        with pytest.raises(NotAuthenticated):
            manager.get_valid_access_token()


class TestCredentialRecord:
    """Test token response normalization"""

    def test_default_expiry(self):
        """Test missing expires_in defaults to one hour"""
        record = CredentialRecord.from_token_response({"access_token": "a"}, now=100.0)
        assert record.expires_at == 3700.0
        assert record.token_type == "Bearer"
        assert record.refresh_token is None

    def test_zero_expiry_is_already_expired(self):
        """Test expires_in 0 is kept, not replaced by the default"""
        record = CredentialRecord.from_token_response(
            {"access_token": "a", "expires_in": 0}, now=1000.0
        )
        assert record.expires_at == 1000.0
        assert not record.is_valid_for(0, now=1000.0)

    def test_missing_access_token(self):
        with pytest.raises(ValueError):
            CredentialRecord.from_token_response({"refresh_token": "r"})

    def test_dict_round_trip(self):
        record = CredentialRecord("a", "r", "scope", "Bearer", 123.0)
        assert CredentialRecord.from_dict(record.to_dict()) == record
