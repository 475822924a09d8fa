"""
Reading and writing backup artifacts on disk.

An artifact is a single JSON file holding either an EncryptedBundle or
a plain BackupPayload. read_artifact() tells them apart by shape: an
object with salt, iv and data fields is a bundle, anything else is
decoded as a payload.
"""

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from audio_vault.backup.models import BackupPayload
from audio_vault.backup.vault import EncryptedBundle
from audio_vault.core.exceptions import MalformedPayload
from audio_vault.core.logger import get_logger


ARTIFACT_PREFIX = "audio-vault-library"

logger = get_logger(__name__)


def default_artifact_name(account_id: str, encrypted: bool, now: datetime | None = None) -> str:
    """
    File name for a new export.

    Example:
        >>> default_artifact_name("wizzler", True, datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))
        'audio-vault-library-wizzler-2024-05-01T12-00-00Z.vault.json'
    """
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%SZ")
    safe_user = re.sub(r"[^a-zA-Z0-9_-]", "_", account_id or "spotify-user")
    suffix = ".vault.json" if encrypted else ".json"
    return f"{ARTIFACT_PREFIX}-{safe_user}-{stamp}{suffix}"


def _write_json(data: dict, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    return path


def write_bundle(bundle: EncryptedBundle, path: Path) -> Path:
    logger.debug(f"Writing encrypted backup to {path}")
    return _write_json(bundle.to_dict(), path)


def write_payload(payload: BackupPayload, path: Path) -> Path:
    logger.debug(f"Writing plain backup to {path}")
    return _write_json(payload.to_dict(), path)


def read_artifact(path: Path) -> EncryptedBundle | BackupPayload:
    """
    Load an artifact file.

    Raises:
        FileNotFoundError: If the file does not exist.
        MalformedPayload: If the file is not JSON, or is a plain payload
                          with the wrong shape.
        DecryptionFailed: If it looks like a bundle but a field has the
                          wrong type.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedPayload(
            f"Backup file is not valid JSON: {path}",
            details={"file_path": str(path), "original_error": str(e)}
        ) from e

    if EncryptedBundle.looks_like_bundle(data):
        return EncryptedBundle.from_dict(data)
    return BackupPayload.from_dict(data)
