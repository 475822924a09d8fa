"""
Configuration management for audio-vault.

This module handles loading, validating, and providing access to the
application configuration. Values come from three sources, in order
of increasing precedence:

    1. Built-in defaults
    2. An optional config.yaml file
    3. Environment variables (a .env file in the working directory is
       loaded first through python-dotenv)

The configuration file contains:
    - Spotify application settings (client_id, redirect_uri, scopes)
    - Storage paths (token file, log directory)
    - Network tuning (timeout, retry bound, backoff)

Configuration File Location:
    An explicit path if given, otherwise the first existing file among
    ~/.audio-vault/config.yaml and ./config.yaml. No file at all is
    valid; client id and redirect URI then stay empty unless the
    environment provides them.

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      redirect_uri: "http://127.0.0.1:8888/callback"

    storage:
      token_file: "~/.audio-vault/tokens.json"
      log_directory: "~/.audio-vault/logs"

    network:
      request_timeout: 30
      max_attempts: 5

Note:
    The client id and redirect URI are NOT validated here. The engine
    raises ConfigurationMissing at the moment it needs them, so that
    offline operations (encrypt, decrypt) work without them.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from audio_vault.core.exceptions import ConfigError


CONFIG_FILENAME = "config.yaml"
DEFAULT_CONFIG_DIRECTORY = Path("~/.audio-vault")

# Read scopes for export plus the modify scopes restore needs
DEFAULT_SCOPES = (
    "user-library-read",
    "user-library-modify",
    "playlist-read-private",
    "playlist-read-collaborative",
    "playlist-modify-private",
    "playlist-modify-public",
    "user-follow-read",
    "user-read-private",
)


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify application settings for the authorization-code + PKCE flow.

    No client secret: PKCE replaces it for public clients.

    Attributes:
        client_id: The Spotify application client ID. Empty when not configured.
        redirect_uri: Redirect URI registered in the Spotify dashboard.
                      Empty when not configured.
        scopes: Requested permission scopes.
    """
    client_id: str = ""
    redirect_uri: str = ""
    scopes: tuple[str, ...] = DEFAULT_SCOPES

    @property
    def scope_string(self) -> str:
        return " ".join(self.scopes)


@dataclass(frozen=True)
class StorageConfig:
    """
    Local storage locations.

    Attributes:
        token_file: JSON file backing the token store.
        log_directory: Directory for log files, or None for console only.
    """
    token_file: Path = DEFAULT_CONFIG_DIRECTORY.expanduser() / "tokens.json"
    log_directory: Path | None = None


@dataclass(frozen=True)
class NetworkConfig:
    """
    HTTP behaviour of the remote client.

    Attributes:
        request_timeout: Per-request timeout in seconds.
        max_attempts: Attempts per call before RateLimited / ServerError.
        rate_limit_delay: Delay used on 429 when no Retry-After is sent.
        backoff_step: Linear backoff unit for 5xx (attempt * step seconds).
    """
    request_timeout: float = 30.0
    max_attempts: int = 5
    rate_limit_delay: float = 1.25
    backoff_step: float = 1.0


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Tokens stored in: {config.storage.token_file}")
    """
    spotify: SpotifyConfig
    storage: StorageConfig
    network: NetworkConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from defaults, config.yaml and environment variables.

    Args:
        config_path: Optional explicit path to a config file. When given,
                     the file must exist.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit file is missing, the YAML is invalid,
                     or a section/value has the wrong type.
    """
    load_dotenv()

    raw_config = _read_config_file(config_path)

    spotify_config = _parse_spotify_config(_section(raw_config, "spotify"))
    storage_config = _parse_storage_config(_section(raw_config, "storage"))
    network_config = _parse_network_config(_section(raw_config, "network"))

    return Config(
        spotify=spotify_config,
        storage=storage_config,
        network=network_config,
    )


def _read_config_file(config_path: Path | None) -> dict[str, Any]:
    """Locate and parse the YAML file; an absent default file yields {}."""
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        candidates = [config_path]
    else:
        candidates = [
            DEFAULT_CONFIG_DIRECTORY.expanduser() / CONFIG_FILENAME,
            Path.cwd() / CONFIG_FILENAME,
        ]

    for path in candidates:
        if not path.exists():
            continue

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise ConfigError(
                f"Failed to read configuration file: {e}",
                details={"file_path": str(path), "original_error": str(e)}
            ) from e

        try:
            raw_config = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid YAML syntax in configuration file: {e}",
                details={"file_path": str(path), "original_error": str(e)}
            ) from e

        if raw_config is None:
            return {}

        if not isinstance(raw_config, dict):
            raise ConfigError(
                "Configuration file must contain a YAML dictionary",
                details={"file_path": str(path)}
            )
        return raw_config

    return {}


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _parse_spotify_config(spotify_section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse the Spotify section and apply environment overrides.

    Environment variables:
        SPOTIFY_CLIENT_ID, SPOTIFY_REDIRECT_URI, SPOTIFY_SCOPES (space separated)
    """
    client_id = os.getenv("SPOTIFY_CLIENT_ID") or spotify_section.get("client_id") or ""
    redirect_uri = (
        os.getenv("SPOTIFY_REDIRECT_URI")
        or spotify_section.get("redirect_uri")
        or ""
    )

    if not isinstance(client_id, str):
        raise ConfigError(
            "'spotify.client_id' must be a string",
            details={"field": "spotify.client_id"}
        )
    if not isinstance(redirect_uri, str):
        raise ConfigError(
            "'spotify.redirect_uri' must be a string",
            details={"field": "spotify.redirect_uri"}
        )

    env_scopes = os.getenv("SPOTIFY_SCOPES")
    raw_scopes = env_scopes.split() if env_scopes else spotify_section.get("scopes")
    if raw_scopes is None:
        scopes = DEFAULT_SCOPES
    elif isinstance(raw_scopes, str):
        scopes = tuple(raw_scopes.split())
    elif isinstance(raw_scopes, list) and all(isinstance(s, str) for s in raw_scopes):
        scopes = tuple(raw_scopes)
    else:
        raise ConfigError(
            "'spotify.scopes' must be a list of strings",
            details={"field": "spotify.scopes"}
        )

    return SpotifyConfig(
        client_id=client_id.strip(),
        redirect_uri=redirect_uri.strip(),
        scopes=scopes,
    )


def _parse_storage_config(storage_section: dict[str, Any]) -> StorageConfig:
    """
    Parse the storage section. Expands ~ and makes paths absolute.

    Environment variables:
        AUDIO_VAULT_TOKEN_FILE, AUDIO_VAULT_LOG_DIR
    """
    defaults = StorageConfig()

    token_file = os.getenv("AUDIO_VAULT_TOKEN_FILE") or storage_section.get("token_file")
    log_directory = os.getenv("AUDIO_VAULT_LOG_DIR") or storage_section.get("log_directory")

    for field_name, value in (("token_file", token_file), ("log_directory", log_directory)):
        if value is not None and (not isinstance(value, str) or not value.strip()):
            raise ConfigError(
                f"'storage.{field_name}' must be a non-empty string",
                details={"field": f"storage.{field_name}"}
            )

    return StorageConfig(
        token_file=(
            Path(token_file.strip()).expanduser().resolve() if token_file else defaults.token_file
        ),
        log_directory=(
            Path(log_directory.strip()).expanduser().resolve() if log_directory else None
        ),
    )


def _parse_network_config(network_section: dict[str, Any]) -> NetworkConfig:
    """Parse the network section, applying defaults for missing fields."""
    defaults = NetworkConfig()

    request_timeout = network_section.get("request_timeout", defaults.request_timeout)
    max_attempts = network_section.get("max_attempts", defaults.max_attempts)
    rate_limit_delay = network_section.get("rate_limit_delay", defaults.rate_limit_delay)
    backoff_step = network_section.get("backoff_step", defaults.backoff_step)

    if not isinstance(max_attempts, int) or isinstance(max_attempts, bool) or max_attempts < 1:
        raise ConfigError(
            "'network.max_attempts' must be a positive integer",
            details={"field": "network.max_attempts", "value": max_attempts}
        )

    for field_name, value in (
        ("request_timeout", request_timeout),
        ("rate_limit_delay", rate_limit_delay),
        ("backoff_step", backoff_step),
    ):
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            raise ConfigError(
                f"'network.{field_name}' must be a non-negative number",
                details={"field": f"network.{field_name}", "value": value}
            )

    return NetworkConfig(
        request_timeout=float(request_timeout),
        max_attempts=max_attempts,
        rate_limit_delay=float(rate_limit_delay),
        backoff_step=float(backoff_step),
    )
