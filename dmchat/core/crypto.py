# dmchat/core/crypto.py
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from functools import lru_cache
from typing import Optional
import base64
import binascii
import os

from dmchat.config import get_settings
from dmchat.exceptions import CryptoError

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


def generate_key() -> str:
    """Return a fresh key suitable for MESSAGE_ENCRYPTION_KEY."""
    return base64.urlsafe_b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")


class MessageCipher:
    """
    AES-256-GCM codec for message text stored at rest.

    Stored form: urlsafe base64 of nonce (12) + ciphertext + tag (16).
    A fresh nonce is drawn per message, so equal plaintexts produce
    different ciphertexts.
    """

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise CryptoError(f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_settings(cls) -> "MessageCipher":
        encoded = get_settings().MESSAGE_ENCRYPTION_KEY
        if not encoded:
            raise CryptoError("MESSAGE_ENCRYPTION_KEY is not configured")
        try:
            key = base64.urlsafe_b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise CryptoError(f"MESSAGE_ENCRYPTION_KEY is not valid base64: {str(e)}") from e
        return cls(key)

    def encrypt(self, plaintext: Optional[str]) -> str:
        # Empty text stays empty so media-only messages remain distinguishable
        if not plaintext:
            return ""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, ciphertext: Optional[str]) -> str:
        if not ciphertext:
            return ""
        try:
            payload = base64.b64decode(ciphertext.encode("ascii"), altchars=b"-_", validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError) as e:
            raise CryptoError("Ciphertext is not valid base64") from e

        if len(payload) < NONCE_SIZE + TAG_SIZE:
            raise CryptoError("Ciphertext is truncated")

        nonce, body = payload[:NONCE_SIZE], payload[NONCE_SIZE:]
        try:
            plaintext = self._aesgcm.decrypt(nonce, body, None)
        except InvalidTag as e:
            raise CryptoError("Ciphertext failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError("Decrypted text is not valid UTF-8") from e


@lru_cache()
def get_cipher() -> MessageCipher:
    """Process-wide cipher built from the configured key."""
    return MessageCipher.from_settings()
