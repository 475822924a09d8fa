"""Test configuration and fixtures"""

import json
import time

import pytest
import requests
from unittest.mock import Mock

from audio_vault.core.config import SpotifyConfig
from audio_vault.core.token_store import CREDENTIAL_KEY, MemoryTokenStore


def build_response(status=200, json_body=None, headers=None, text=None):
    """Build a real requests.Response with the given status, body and headers"""
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json; charset=utf-8"
    elif text is not None:
        response._content = text.encode("utf-8")
        response.headers["Content-Type"] = "text/plain"
    else:
        response._content = b""
    for key, value in (headers or {}).items():
        response.headers[key] = value
    return response


@pytest.fixture
def make_response():
    """Factory for fake HTTP responses"""
    return build_response


@pytest.fixture
def token_store():
    """Empty in-memory token store"""
    return MemoryTokenStore()


@pytest.fixture
def spotify_config():
    """Spotify settings with a loopback redirect"""
    return SpotifyConfig(
        client_id="client-123",
        redirect_uri="http://127.0.0.1:8888/callback",
    )


@pytest.fixture
def store_credential(token_store):
    """Write a credential record into the token store"""
    def _store(expires_in=3600, refresh_token="refresh-1", access_token="access-1"):
        record = {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "scope": "user-library-read",
            "token_type": "Bearer",
            "expires_at": time.time() + expires_in,
        }
        token_store.set(CREDENTIAL_KEY, json.dumps(record))
        return record
    return _store


@pytest.fixture
def credentials():
    """Credential manager stand-in handing out a fixed token"""
    provider = Mock()
    provider.get_valid_access_token.return_value = "access-1"
    return provider


@pytest.fixture
def http_session():
    """Mocked requests.Session"""
    return Mock(spec=requests.Session)


@pytest.fixture
def sample_payload_dict():
    """Backup payload in its JSON form"""
    return {
        "version": 1,
        "createdAt": "2024-05-01T12:00:00+00:00",
        "source": "spotify",
        "account": {"id": "wizzler", "displayName": "Wiz", "country": "IT"},
        "likedTracks": ["a", "b", "c"],
        "savedAlbums": ["album-1"],
        "followedArtists": ["artist-1", "artist-2"],
        "playlists": [
            {
                "id": "pl-1",
                "name": "Road Trip",
                "description": "",
                "public": False,
                "collaborative": False,
                "ownerId": "wizzler",
                "tracks": ["x", "y"],
                "unavailableTracks": 1,
            }
        ],
    }
