"""
audio-vault: Back up and restore a Spotify library, securely.

This package pulls the whole listening library of an account (liked
tracks, playlists, saved albums, followed artists), writes it to a
portable file (AES-GCM encrypted under a passphrase, or plain JSON),
and replays such a file into the same or another account without
creating duplicate playlists.

Architecture:
    core/       - Configuration, logging, exceptions, token store, progress
    spotify/    - OAuth PKCE credentials, resilient API client, endpoints
    backup/     - Payload schema, vault, export flow, restore reconciler
    cli.py      - Command-line interface (`vault`)

Usage:
    Command Line:
        vault login
        vault export -o backup.vault.json
        vault restore backup.vault.json

    Python API:
        from audio_vault.core import load_config, FileTokenStore
        from audio_vault.spotify import CredentialManager, SpotifyClient, LibraryApi
        from audio_vault.backup import export_library, encrypt_payload, RestoreReconciler

        config = load_config()
        manager = CredentialManager(FileTokenStore(config.storage.token_file), config.spotify)
        library = LibraryApi(SpotifyClient(manager))

        payload = export_library(library)
        bundle = encrypt_payload(payload, passphrase)
        summary = RestoreReconciler(library).restore(payload)

Dependencies:
    - requests: HTTP client for the Web API and token endpoint
    - cryptography: PBKDF2 key derivation and AES-GCM
    - pyyaml: Configuration file parsing
    - python-dotenv: .env support for configuration overrides
    - click / rich-click: CLI and colors
    - rich: Progress bars
    - tqdm: Progress-safe console logging
"""

__version__ = "0.1.0"
__author__ = "audio-vault"
__license__ = "MIT"

from audio_vault.backup import (
    BackupPayload,
    EncryptedBundle,
    RestoreReconciler,
    RestoreSummary,
    decrypt_payload,
    encrypt_payload,
    export_library,
)
from audio_vault.core import (
    AudioVaultError,
    Config,
    FileTokenStore,
    MemoryTokenStore,
    get_logger,
    load_config,
    setup_logging,
)
from audio_vault.spotify import CredentialManager, LibraryApi, SpotifyClient

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "setup_logging",
    "get_logger",
    "AudioVaultError",
    "FileTokenStore",
    "MemoryTokenStore",
    # Spotify
    "CredentialManager",
    "SpotifyClient",
    "LibraryApi",
    # Backup
    "BackupPayload",
    "EncryptedBundle",
    "RestoreSummary",
    "RestoreReconciler",
    "encrypt_payload",
    "decrypt_payload",
    "export_library",
]
