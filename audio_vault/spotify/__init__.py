"""
Spotify module for audio-vault.

This module handles everything that talks to Spotify:
    - auth: OAuth authorization code + PKCE credential lifecycle
    - callback_server: Loopback receiver for the authorization redirect
    - client: Resilient API client (retries, pagination, batching)
    - library: Library endpoints used by export and restore
    - models: Data classes for accounts, tracks and playlists

Usage:
    from audio_vault.spotify import CredentialManager, SpotifyClient, LibraryApi

    manager = CredentialManager(store, config.spotify)
    library = LibraryApi(SpotifyClient(manager))
"""

from audio_vault.spotify.auth import (
    SAFETY_MARGIN_SECONDS,
    CredentialManager,
    CredentialRecord,
    derive_code_challenge,
    generate_code_verifier,
)
from audio_vault.spotify.callback_server import RedirectReceiver, is_loopback_redirect
from audio_vault.spotify.client import NO_CONTENT, BatchProgress, SpotifyClient
from audio_vault.spotify.library import LibraryApi
from audio_vault.spotify.models import AccountIdentity, PlaylistSummary, TrackRef

__all__ = [
    # Auth
    "CredentialManager",
    "CredentialRecord",
    "SAFETY_MARGIN_SECONDS",
    "generate_code_verifier",
    "derive_code_challenge",
    "RedirectReceiver",
    "is_loopback_redirect",
    # Client
    "SpotifyClient",
    "BatchProgress",
    "NO_CONTENT",
    "LibraryApi",
    # Models
    "AccountIdentity",
    "TrackRef",
    "PlaylistSummary",
]
