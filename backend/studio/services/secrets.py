"""Encrypted provider keys (AES-256-GCM).

Stored format, shared with the web application that writes the keys:

    v1:<iv base64>:<auth tag base64>:<ciphertext base64>

The AES key is the SHA-256 digest of SETTINGS_ENCRYPTION_KEY.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

ENCRYPTION_VERSION = "v1"
IV_BYTES = 12
TAG_BYTES = 16


class SecretDecryptionError(Exception):
    """The stored payload could not be turned back into a key."""


class SecretBox:
    def __init__(self, encryption_key: str) -> None:
        self._raw_key = encryption_key

    def _aes(self) -> AESGCM:
        if not self._raw_key:
            raise SecretDecryptionError("Missing SETTINGS_ENCRYPTION_KEY.")
        return AESGCM(hashlib.sha256(self._raw_key.encode()).digest())

    def encrypt(self, plain_text: str) -> str:
        iv = os.urandom(IV_BYTES)
        sealed = self._aes().encrypt(iv, plain_text.encode(), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return ":".join(
            [
                ENCRYPTION_VERSION,
                base64.b64encode(iv).decode("ascii"),
                base64.b64encode(tag).decode("ascii"),
                base64.b64encode(ciphertext).decode("ascii"),
            ]
        )

    def decrypt(self, payload: str) -> str:
        parts = payload.split(":")
        if len(parts) != 4 or parts[0] != ENCRYPTION_VERSION or not all(parts[1:]):
            raise SecretDecryptionError("Unsupported encrypted payload format.")

        try:
            iv, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts[1:])
        except (binascii.Error, ValueError) as exc:
            raise SecretDecryptionError("Encrypted payload is not valid base64.") from exc

        try:
            plain = self._aes().decrypt(iv, ciphertext + tag, None)
        except (InvalidTag, ValueError) as exc:
            raise SecretDecryptionError("Stored API key could not be decrypted.") from exc

        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SecretDecryptionError("Stored API key is not valid UTF-8.") from exc
