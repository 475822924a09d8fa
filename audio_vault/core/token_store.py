"""
Durable key/value storage for credentials.

The token store is the only persistent state of the engine. It holds
text values under a handful of fixed keys:

    audio_vault_spotify_token   Credential record (JSON text)
    audio_vault_pkce_verifier   PKCE code verifier of a pending login
    audio_vault_oauth_state     Anti-CSRF state of a pending login

The store is a handle passed to the credential manager; there is no
module-level instance. Only the credential manager writes to it.

Implementations:
    FileTokenStore: Single JSON object file, owner read/write only.
    MemoryTokenStore: Process-local dictionary, for tests and one-shot runs.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path

from audio_vault.core.logger import get_logger


CREDENTIAL_KEY = "audio_vault_spotify_token"
PKCE_VERIFIER_KEY = "audio_vault_pkce_verifier"
OAUTH_STATE_KEY = "audio_vault_oauth_state"

logger = get_logger(__name__)


class TokenStore(ABC):
    """Abstract key -> text mapping used for credential persistence."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under key, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Removing an absent key is not an error."""


class MemoryTokenStore(TokenStore):
    """Token store backed by a dictionary. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._values)


class FileTokenStore(TokenStore):
    """
    Token store backed by a single JSON object file.

    Every write rewrites the whole file through a temporary sibling and
    an atomic rename. The temporary file is created owner read/write
    only (0600 on Unix-like systems).

    Attributes:
        path: Location of the JSON file. Parent directories are created
              on first write.

    Note:
        A file that cannot be parsed is treated as empty (and logged);
        the next write replaces it.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Token store {self.path} is unreadable, ignoring it: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Token store {self.path} does not hold a JSON object, ignoring it")
            return {}

        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def _write_all(self, values: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        # 0o600 = owner read/write only, from the moment the file exists
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(values, f, indent=2)

        try:
            # A leftover temp file keeps its old mode under O_CREAT
            tmp_path.chmod(0o600)
        except OSError:
            # Filesystems without POSIX permissions
            pass

        os.replace(tmp_path, self.path)

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._read_all()
        values[key] = value
        self._write_all(values)

    def delete(self, key: str) -> None:
        values = self._read_all()
        if key in values:
            del values[key]
            self._write_all(values)
