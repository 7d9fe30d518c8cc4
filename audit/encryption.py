"""
Audit Payload Encryption
========================
Fernet-based encryption provider for audit records at rest.
"""

import hashlib
from typing import Optional, Union
import structlog
from cryptography.fernet import Fernet, InvalidToken

from core.exceptions import EncryptionError

logger = structlog.get_logger(__name__)


class FernetEncryptionProvider:
    """
    Symmetric encryption using Fernet (AES-128-CBC + HMAC-SHA256).

    The HMAC makes tampered audit lines fail decryption instead of
    silently yielding altered content.
    """

    def __init__(self, key: Optional[Union[bytes, str]] = None):
        """
        Initialize encryption provider.

        Args:
            key: URL-safe base64 Fernet key. A fresh key is generated when None.
        """
        if key is None:
            key = Fernet.generate_key()
            logger.warning("Generated ephemeral audit encryption key")
        if isinstance(key, str):
            key = key.encode("utf-8")
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise EncryptionError(f"Invalid Fernet key: {e}", operation="init")
        self._key_id = hashlib.sha256(key).hexdigest()[:16]

    @property
    def key_id(self) -> str:
        """Non-secret identifier of the active key."""
        return self._key_id

    def encrypt(self, plaintext: bytes) -> bytes:
        return self._fernet.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        try:
            return self._fernet.decrypt(ciphertext)
        except InvalidToken:
            raise EncryptionError(
                f"Decryption failed for key {self._key_id}: invalid token",
                operation="decrypt",
            )
