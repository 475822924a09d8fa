"""
Core module for audio-vault.

This module provides the foundational components used throughout the engine:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - logger: Logging system with console and file outputs
    - token_store: Durable key/value storage for credentials
    - progress: Observer interface for export/restore progress

Usage:
    from audio_vault.core import (
        Config, load_config,
        FileTokenStore,
        setup_logging, get_logger,
        AudioVaultError, ConfigError
    )
"""

from audio_vault.core.config import (
    Config,
    NetworkConfig,
    SpotifyConfig,
    StorageConfig,
    load_config,
)
from audio_vault.core.exceptions import (
    AudioVaultError,
    AuthorizationDenied,
    ConfigError,
    ConfigurationMissing,
    DecryptionFailed,
    MalformedPayload,
    NotAuthenticated,
    RateLimited,
    RemoteRequestFailed,
    ServerError,
    SessionExpired,
    StateMismatch,
    WeakPassphrase,
)
from audio_vault.core.logger import (
    get_logger,
    setup_logging,
    shutdown_logging,
)
from audio_vault.core.progress import (
    LoggingProgressObserver,
    ProgressObserver,
    RestoreCounts,
    RichProgressObserver,
)
from audio_vault.core.token_store import (
    CREDENTIAL_KEY,
    OAUTH_STATE_KEY,
    PKCE_VERIFIER_KEY,
    FileTokenStore,
    MemoryTokenStore,
    TokenStore,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "StorageConfig",
    "NetworkConfig",
    "load_config",
    # Exceptions
    "AudioVaultError",
    "ConfigError",
    "ConfigurationMissing",
    "AuthorizationDenied",
    "StateMismatch",
    "NotAuthenticated",
    "SessionExpired",
    "RateLimited",
    "ServerError",
    "RemoteRequestFailed",
    "WeakPassphrase",
    "DecryptionFailed",
    "MalformedPayload",
    # Logger
    "setup_logging",
    "get_logger",
    "shutdown_logging",
    # Progress
    "ProgressObserver",
    "LoggingProgressObserver",
    "RichProgressObserver",
    "RestoreCounts",
    # Token store
    "TokenStore",
    "FileTokenStore",
    "MemoryTokenStore",
    "CREDENTIAL_KEY",
    "PKCE_VERIFIER_KEY",
    "OAUTH_STATE_KEY",
]
