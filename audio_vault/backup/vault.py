"""
Passphrase-based authenticated encryption of backup payloads.

Scheme:
    key   = PBKDF2-HMAC-SHA256(passphrase, salt, 310000 iterations, 32 bytes)
    data  = AES-256-GCM(key, iv, canonical JSON of the payload)

Every call to encrypt_payload() draws a fresh 16-byte salt and a fresh
12-byte nonce from os.urandom before doing anything else, so a key/nonce
pair is never used twice. The iteration count is written into the
bundle; decryption uses the recorded value.

Bundle Format (JSON, binary fields in standard base64):
    {
      "version": 1,
      "algorithm": "AES-GCM",
      "kdf": "PBKDF2-SHA256",
      "iterations": 310000,
      "salt": "...",
      "iv": "...",
      "data": "..."      # ciphertext followed by the 16-byte GCM tag
    }

Failure Policy:
    A wrong passphrase and a corrupted or tampered bundle both raise
    DecryptionFailed. The two are indistinguishable on purpose; this
    module never tries to tell them apart.

Secrets:
    Passphrases and derived keys are local variables of a single call.
    They are never stored on objects, persisted or logged.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from audio_vault.backup.models import BackupPayload
from audio_vault.core.exceptions import DecryptionFailed, MalformedPayload, WeakPassphrase
from audio_vault.core.logger import get_logger


BUNDLE_VERSION = 1
ALGORITHM = "AES-GCM"
KDF = "PBKDF2-SHA256"

ITERATIONS = 310_000
MAX_ITERATIONS = 10_000_000
SALT_BYTES = 16
IV_BYTES = 12
KEY_BYTES = 32

MIN_PASSPHRASE_LENGTH = 8

logger = get_logger(__name__)


@dataclass(frozen=True)
class EncryptedBundle:
    """
    An encrypted payload as stored on disk.

    Attributes:
        salt: Base64 KDF salt.
        iv: Base64 GCM nonce.
        data: Base64 ciphertext with the authentication tag appended.
        iterations: KDF iteration count used to derive the key.
        version: Bundle format version.
        algorithm: Cipher identifier.
        kdf: Key derivation identifier.
    """
    salt: str
    iv: str
    data: str
    iterations: int = ITERATIONS
    version: int = BUNDLE_VERSION
    algorithm: str = ALGORITHM
    kdf: str = KDF

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "algorithm": self.algorithm,
            "kdf": self.kdf,
            "iterations": self.iterations,
            "salt": self.salt,
            "iv": self.iv,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "EncryptedBundle":
        """
        Read a bundle object.

        Raises:
            DecryptionFailed: If a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise DecryptionFailed("Encrypted backup is not a JSON object")

        for key in ("salt", "iv", "data"):
            if not isinstance(data.get(key), str):
                raise DecryptionFailed(
                    f"Encrypted backup is missing '{key}'",
                    details={"field": key}
                )

        iterations = data.get("iterations", ITERATIONS)
        version = data.get("version", BUNDLE_VERSION)
        if not isinstance(iterations, int) or isinstance(iterations, bool):
            raise DecryptionFailed("Encrypted backup has an invalid iteration count")
        if not isinstance(version, int) or isinstance(version, bool):
            raise DecryptionFailed("Encrypted backup has an invalid version")

        return cls(
            salt=data["salt"],
            iv=data["iv"],
            data=data["data"],
            iterations=iterations,
            version=version,
            algorithm=data.get("algorithm", ALGORITHM),
            kdf=data.get("kdf", KDF),
        )

    @staticmethod
    def looks_like_bundle(data: Any) -> bool:
        return isinstance(data, dict) and all(k in data for k in ("salt", "iv", "data"))


def check_passphrase(passphrase: str) -> None:
    """Raise WeakPassphrase unless the passphrase has at least MIN_PASSPHRASE_LENGTH characters."""
    if not passphrase or len(passphrase) < MIN_PASSPHRASE_LENGTH:
        raise WeakPassphrase(
            f"Passphrase must be at least {MIN_PASSPHRASE_LENGTH} characters.",
            details={"min_length": MIN_PASSPHRASE_LENGTH}
        )


def _derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def canonical_json(payload: BackupPayload) -> bytes:
    """Deterministic UTF-8 JSON encoding of a payload (sorted keys, no whitespace)."""
    return json.dumps(
        payload.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def encrypt_payload(
    payload: BackupPayload,
    passphrase: str,
    iterations: int = ITERATIONS,
) -> EncryptedBundle:
    """
    Encrypt a payload under a passphrase.

    Args:
        payload: The payload to protect.
        passphrase: At least 8 characters.
        iterations: KDF iterations; recorded in the bundle.

    Returns:
        EncryptedBundle with a fresh salt and nonce.

    Raises:
        WeakPassphrase: If the passphrase is shorter than 8 characters.
    """
    check_passphrase(passphrase)
    if not 1 <= iterations <= MAX_ITERATIONS:
        raise ValueError(f"iterations must be between 1 and {MAX_ITERATIONS}")

    salt = os.urandom(SALT_BYTES)
    iv = os.urandom(IV_BYTES)

    key = _derive_key(passphrase, salt, iterations)
    ciphertext = AESGCM(key).encrypt(iv, canonical_json(payload), None)

    logger.debug(f"Encrypted backup payload ({len(ciphertext)} bytes)")
    return EncryptedBundle(
        salt=base64.b64encode(salt).decode("ascii"),
        iv=base64.b64encode(iv).decode("ascii"),
        data=base64.b64encode(ciphertext).decode("ascii"),
        iterations=iterations,
    )


def decrypt_payload(bundle: EncryptedBundle | dict[str, Any], passphrase: str) -> BackupPayload:
    """
    Decrypt and decode a bundle.

    Args:
        bundle: EncryptedBundle or its dict form.
        passphrase: The passphrase used at encryption time.

    Returns:
        The decoded BackupPayload.

    Raises:
        DecryptionFailed: Wrong passphrase, tampered data, or a malformed
                          or unsupported bundle.
        MalformedPayload: The plaintext authenticates but is not a
                          valid payload.
    """
    if not isinstance(bundle, EncryptedBundle):
        bundle = EncryptedBundle.from_dict(bundle)

    if bundle.version != BUNDLE_VERSION or bundle.algorithm != ALGORITHM or bundle.kdf != KDF:
        raise DecryptionFailed(
            "Unsupported encrypted backup format",
            details={"version": bundle.version, "algorithm": bundle.algorithm, "kdf": bundle.kdf}
        )
    if not 1 <= bundle.iterations <= MAX_ITERATIONS:
        raise DecryptionFailed(
            "Encrypted backup has an invalid iteration count",
            details={"iterations": bundle.iterations}
        )

    try:
        salt = base64.b64decode(bundle.salt, validate=True)
        iv = base64.b64decode(bundle.iv, validate=True)
        ciphertext = base64.b64decode(bundle.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionFailed("Encrypted backup is not valid base64") from e

    if len(iv) != IV_BYTES or not salt:
        raise DecryptionFailed("Encrypted backup has an invalid salt or nonce")

    key = _derive_key(passphrase or "", salt, bundle.iterations)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag as e:
        raise DecryptionFailed(
            "Could not decrypt backup: wrong passphrase or corrupted file"
        ) from e

    try:
        data = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayload("Decrypted backup is not valid JSON") from e

    return BackupPayload.from_dict(data)
