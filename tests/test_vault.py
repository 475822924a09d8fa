"""Test passphrase encryption of backup payloads"""

import base64
import json
import os

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from audio_vault.backup.models import BackupPayload
from audio_vault.backup.vault import (
    ITERATIONS,
    EncryptedBundle,
    _derive_key,
    check_passphrase,
    decrypt_payload,
    encrypt_payload,
)
from audio_vault.core.exceptions import DecryptionFailed, MalformedPayload, WeakPassphrase


# Keep key derivation fast; the default count is covered separately
FAST = 1000
PASSPHRASE = "correct horse battery"


@pytest.fixture
def payload(sample_payload_dict):
    return BackupPayload.from_dict(sample_payload_dict)


def _flip_last_byte(b64: str) -> str:
    raw = bytearray(base64.b64decode(b64))
    raw[-1] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestEncrypt:
    """Test bundle production"""

    def test_round_trip(self, payload):
        bundle = encrypt_payload(payload, PASSPHRASE, iterations=FAST)
        assert decrypt_payload(bundle, PASSPHRASE) == payload

    def test_default_iterations(self, payload):
        """Test the default KDF cost is recorded and usable"""
        bundle = encrypt_payload(payload, PASSPHRASE)
        assert bundle.iterations == ITERATIONS == 310_000
        assert decrypt_payload(bundle, PASSPHRASE) == payload

    def test_bundle_shape(self, payload):
        bundle = encrypt_payload(payload, PASSPHRASE, iterations=FAST).to_dict()

        assert bundle["version"] == 1
        assert bundle["algorithm"] == "AES-GCM"
        assert bundle["kdf"] == "PBKDF2-SHA256"
        assert len(base64.b64decode(bundle["salt"])) == 16
        assert len(base64.b64decode(bundle["iv"])) == 12
        assert "wizzler" not in bundle["data"]

    def test_fresh_salt_and_nonce(self, payload):
        """Test two encryptions of the same payload never share salt or nonce"""
        first = encrypt_payload(payload, PASSPHRASE, iterations=FAST)
        second = encrypt_payload(payload, PASSPHRASE, iterations=FAST)

        assert first.salt != second.salt
        assert first.iv != second.iv
        assert first.data != second.data

    @pytest.mark.parametrize("passphrase", ["", "short", "1234567"])
    def test_weak_passphrase(self, payload, passphrase):
        with pytest.raises(WeakPassphrase):
            encrypt_payload(payload, passphrase, iterations=FAST)

    def test_minimum_length_accepted(self, payload):
        bundle = encrypt_payload(payload, "12345678", iterations=FAST)
        assert decrypt_payload(bundle, "12345678") == payload


class TestDecrypt:
    """Test failure classification on decrypt"""

    def test_wrong_passphrase(self, payload):
        bundle = encrypt_payload(payload, PASSPHRASE, iterations=FAST)
        with pytest.raises(DecryptionFailed):
            decrypt_payload(bundle, "incorrect horse")

    def test_tampered_ciphertext(self, payload):
        bundle = encrypt_payload(payload, PASSPHRASE, iterations=FAST).to_dict()
        bundle["data"] = _flip_last_byte(bundle["data"])

        with pytest.raises(DecryptionFailed):
            decrypt_payload(bundle, PASSPHRASE)

    def test_tampered_nonce(self, payload):
        bundle = encrypt_payload(payload, PASSPHRASE, iterations=FAST).to_dict()
        bundle["iv"] = _flip_last_byte(bundle["iv"])

        with pytest.raises(DecryptionFailed):
            decrypt_payload(bundle, PASSPHRASE)

    def test_accepts_dict_form(self, payload):
        bundle = json.loads(json.dumps(encrypt_payload(payload, PASSPHRASE, iterations=FAST).to_dict()))
        assert decrypt_payload(bundle, PASSPHRASE).liked_tracks == ("a", "b", "c")

    def test_invalid_base64(self, payload):
        bundle = encrypt_payload(payload, PASSPHRASE, iterations=FAST).to_dict()
        bundle["salt"] = "not base64!!"

        with pytest.raises(DecryptionFailed):
            decrypt_payload(bundle, PASSPHRASE)

    @pytest.mark.parametrize("field,value", [
        ("algorithm", "AES-CBC"),
        ("kdf", "scrypt"),
        ("version", 2),
        ("iterations", 0),
    ])
    def test_unsupported_bundle(self, payload, field, value):
        bundle = encrypt_payload(payload, PASSPHRASE, iterations=FAST).to_dict()
        bundle[field] = value

        with pytest.raises(DecryptionFailed):
            decrypt_payload(bundle, PASSPHRASE)

    @pytest.mark.parametrize("bundle", [
        None,
        [],
        {"iv": "AAAA", "data": "AAAA"},
        {"salt": "AAAA", "iv": "AAAA", "data": "AAAA", "iterations": "many"},
    ])
    def test_malformed_bundle(self, bundle):
        with pytest.raises(DecryptionFailed):
            decrypt_payload(bundle, PASSPHRASE)

    def test_authentic_non_payload(self):
        """Test plaintext that authenticates but is not a payload is malformed, not a decrypt failure"""
        salt = os.urandom(16)
        iv = os.urandom(12)
        key = _derive_key(PASSPHRASE, salt, FAST)
        ciphertext = AESGCM(key).encrypt(iv, json.dumps({"hello": "world"}).encode(), None)
        bundle = EncryptedBundle(
            salt=base64.b64encode(salt).decode(),
            iv=base64.b64encode(iv).decode(),
            data=base64.b64encode(ciphertext).decode(),
            iterations=FAST,
        )

        with pytest.raises(MalformedPayload):
            decrypt_payload(bundle, PASSPHRASE)

    def test_authentic_non_json(self):
        salt = os.urandom(16)
        iv = os.urandom(12)
        key = _derive_key(PASSPHRASE, salt, FAST)
        bundle = EncryptedBundle(
            salt=base64.b64encode(salt).decode(),
            iv=base64.b64encode(iv).decode(),
            data=base64.b64encode(AESGCM(key).encrypt(iv, b"\xff\xfe", None)).decode(),
            iterations=FAST,
        )

        with pytest.raises(MalformedPayload):
            decrypt_payload(bundle, PASSPHRASE)


class TestLooksLikeBundle:

    def test_detection(self, sample_payload_dict):
        assert EncryptedBundle.looks_like_bundle({"salt": "", "iv": "", "data": ""})
        assert not EncryptedBundle.looks_like_bundle(sample_payload_dict)
        assert not EncryptedBundle.looks_like_bundle(["salt", "iv", "data"])


class TestCheckPassphrase:

    def test_boundaries(self):
        check_passphrase("12345678")
        with pytest.raises(WeakPassphrase):
            check_passphrase("1234567")
        with pytest.raises(WeakPassphrase):
            check_passphrase("")
