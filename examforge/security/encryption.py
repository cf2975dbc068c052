"""Application-wide encryption utilities."""
from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from examforge.config import settings


class EncryptionService:
    """Wrapper around Fernet symmetric encryption."""

    def __init__(self, secret_key: str):
        try:
            key_bytes = secret_key.encode("utf-8")
            if len(key_bytes) != 44:
                raise ValueError("Fernet key must be 32 url-safe base64-encoded bytes.")
            self._fernet = Fernet(key_bytes)
        except (ValueError, InvalidToken) as exc:
            raise ValueError("Invalid encryption key configured") from exc

    def encrypt_text(self, text: str) -> str:
        if text is None:
            return text
        return self._fernet.encrypt(text.encode("utf-8")).decode("utf-8")

    def decrypt_text(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return token
        return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")

    def encrypt_credentials(self, credentials: Dict[str, Any]) -> str:
        """Serialize a credential map and encrypt it."""
        return self.encrypt_text(json.dumps(credentials, sort_keys=True))

    def decrypt_credentials(self, token: str) -> Dict[str, Any]:
        """Decrypt a credential map produced by ``encrypt_credentials``."""
        return json.loads(self.decrypt_text(token))


def _derive_encryption_key() -> str:
    """Ensure we have a valid Fernet key."""
    key = settings.ENCRYPTION_SECRET
    if key:
        return key
    # Derive from SECRET_KEY by hashing
    digest = hashlib.sha256(settings.SECRET_KEY.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8")


encryption_service = EncryptionService(_derive_encryption_key())
