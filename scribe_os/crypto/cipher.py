"""Cipher field codec.

Every PHI field (transcript, notes, coding, stored audio) is sealed with
Fernet before it reaches persistence. Tokens are URL-safe base64 text,
carry their own IV and timestamp, and are authenticated, so a token from a
different key or a tampered token is rejected rather than decoded into
garbage.

The key is always passed in explicitly. ``create_cipher_from_settings``
is the only place that reads configuration.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from scribe_os.core.errors import CipherError


def generate_key() -> str:
    """Return a fresh Fernet key as text."""
    return Fernet.generate_key().decode("ascii")


class FieldCipher:
    """Symmetric encrypt/decrypt of opaque text blobs.

    Stateless after construction and safe to share between tasks and threads.
    ``previous_keys`` are accepted for decryption only, which lets a deployment
    rotate its key without re-encrypting every row at once.
    """

    def __init__(self, key: str | bytes, previous_keys: Optional[Iterable[str | bytes]] = None):
        keys = [key, *(previous_keys or [])]
        try:
            fernets = [Fernet(k) for k in keys]
        except (ValueError, TypeError) as e:
            raise CipherError("Encryption key is not a valid Fernet key") from e
        self._fernet = MultiFernet(fernets)

    def encrypt(self, plaintext: bytes) -> str:
        """Encrypt raw bytes into a self-describing text token."""
        if not isinstance(plaintext, (bytes, bytearray)):
            raise TypeError("plaintext must be bytes-like")
        return self._fernet.encrypt(bytes(plaintext)).decode("ascii")

    def decrypt(self, ciphertext: str) -> bytes:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            CipherError: if the token is malformed, tampered with, or was
                produced under a key this cipher does not hold
        """
        if not isinstance(ciphertext, str) or not ciphertext:
            raise CipherError("Ciphertext must be a non-empty string")
        try:
            token = ciphertext.encode("ascii")
        except UnicodeEncodeError as e:
            raise CipherError("Ciphertext contains non-ASCII characters") from e
        try:
            return self._fernet.decrypt(token)
        except InvalidToken as e:
            raise CipherError("Ciphertext could not be decrypted") from e

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt a token under the current primary key."""
        try:
            return self._fernet.rotate(ciphertext.encode("ascii")).decode("ascii")
        except (InvalidToken, UnicodeEncodeError, AttributeError) as e:
            raise CipherError("Ciphertext could not be rotated") from e

    # Text / JSON conveniences

    def encrypt_text(self, text: str) -> str:
        return self.encrypt(text.encode("utf-8"))

    def decrypt_text(self, ciphertext: str) -> str:
        raw = self.decrypt(ciphertext)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CipherError("Decrypted payload is not valid UTF-8") from e

    def encrypt_json(self, payload: Any) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        return self.encrypt_text(serialized)

    def decrypt_json(self, ciphertext: str) -> Any:
        text = self.decrypt_text(ciphertext)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise CipherError("Decrypted payload was not valid JSON") from e


def create_cipher_from_settings() -> FieldCipher:
    """Build the process cipher from application settings."""
    from scribe_os.config import get_settings

    settings = get_settings()
    if not settings.has_encryption_key:
        raise CipherError("ENCRYPTION_KEY is not configured")
    return FieldCipher(settings.encryption_key, settings.encryption_previous_keys)
