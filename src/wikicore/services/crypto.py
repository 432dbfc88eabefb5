# src/wikicore/services/crypto.py
"""Encryption-at-rest for post and revision content."""

from __future__ import annotations

import base64
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from wikicore.core.errors import EncryptionFailure
from wikicore.core.settings import settings
from wikicore.utils.hash import blake3_digest


class ContentCipher:
    """Symmetric cipher for content stored in the posts and revisions tables.

    Decryption failures raise ``EncryptionFailure``; callers must never fall
    back to treating stored ciphertext as plaintext.
    """

    def __init__(self, key: str | bytes | None = None) -> None:
        self._fernet = Fernet(key if key is not None else self.derive_key())

    @staticmethod
    def derive_key() -> bytes:
        """Return the configured Fernet key, deriving one from the secret key if unset."""
        if settings.content_key:
            return settings.content_key.encode()
        secret = str(settings.secret_key).encode()
        return base64.urlsafe_b64encode(blake3_digest(b"wikicore-content|" + secret))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt text and return an ASCII token."""
        try:
            return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")
        except (TypeError, AttributeError) as err:
            raise EncryptionFailure(f"Unable to encrypt content: {err}") from err

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionFailure: If the token is malformed or was produced with another key.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError, TypeError, AttributeError) as err:
            raise EncryptionFailure("Unable to decrypt stored content") from err


@lru_cache(maxsize=1)
def get_cipher() -> ContentCipher:
    """Return the process-wide cipher built from settings."""
    return ContentCipher()
