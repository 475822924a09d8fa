"""
Backup module for audio-vault.

    - models: Backup payload schema and restore summary
    - vault: Passphrase-based AES-GCM encryption of payloads
    - snapshot: Export flow building a payload from the live library
    - restore: Idempotent replay of a payload into an account
    - artifact: Reading and writing backup files

Usage:
    from audio_vault.backup import export_library, encrypt_payload, write_bundle

    payload = export_library(library)
    write_bundle(encrypt_payload(payload, passphrase), path)
"""

from audio_vault.backup.artifact import (
    default_artifact_name,
    read_artifact,
    write_bundle,
    write_payload,
)
from audio_vault.backup.models import (
    AccountSnapshot,
    BackupPayload,
    PlaylistRecord,
    RestoreSummary,
    playlist_signature,
)
from audio_vault.backup.restore import RestoreReconciler
from audio_vault.backup.snapshot import build_backup_payload, build_playlist_record, export_library
from audio_vault.backup.vault import EncryptedBundle, check_passphrase, decrypt_payload, encrypt_payload

__all__ = [
    # Models
    "BackupPayload",
    "PlaylistRecord",
    "AccountSnapshot",
    "RestoreSummary",
    "playlist_signature",
    # Vault
    "EncryptedBundle",
    "encrypt_payload",
    "decrypt_payload",
    "check_passphrase",
    # Flows
    "export_library",
    "build_backup_payload",
    "build_playlist_record",
    "RestoreReconciler",
    # Files
    "read_artifact",
    "write_bundle",
    "write_payload",
    "default_artifact_name",
]
