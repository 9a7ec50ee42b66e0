"""Fernet encryption layer over any persistence adapter."""

from __future__ import annotations

import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from loguru import logger

from ..core.exceptions import StorageError
from ..core.interfaces import PersistenceAdapter, ReadResult

_CIPHERTEXT_FIELD = "ciphertext"


class EncryptedDocumentStore:
    """
    Encrypts documents before handing them to an inner adapter

    The inner adapter only ever sees ``{"ciphertext": "<fernet token>"}``.
    A token that cannot be decrypted (wrong key, tampered data) is reported
    as a backend error rather than as a missing document, so a key rotation
    mistake never silently resets a user's memory.
    """

    def __init__(self, inner: PersistenceAdapter, key: str | bytes):
        """
        Args:
            inner: adapter that stores the encrypted envelopes
            key: urlsafe base64 Fernet key (see ``Fernet.generate_key``)
        """
        self._inner = inner
        self._cipher = Fernet(key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    async def write(self, key: str, document: dict[str, Any]) -> None:
        try:
            payload = json.dumps(document, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise StorageError(f"Document is not JSON serializable: {e}", key=key) from e

        token = self._cipher.encrypt(payload).decode("ascii")
        await self._inner.write(key, {_CIPHERTEXT_FIELD: token})

    async def read(self, key: str) -> ReadResult:
        result = await self._inner.read(key)
        if not result.is_found:
            return result

        token = (result.document or {}).get(_CIPHERTEXT_FIELD)
        if not isinstance(token, str):
            logger.error(f"Document is not an encrypted envelope: {key}")
            return ReadResult.backend_error(
                StorageError("Document is not an encrypted envelope", key=key)
            )

        try:
            payload = self._cipher.decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError):
            logger.error(f"Failed to decrypt document: {key}")
            return ReadResult.backend_error(
                StorageError("Failed to decrypt document", key=key)
            )

        try:
            document = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            document = None

        if not isinstance(document, dict):
            logger.error(f"Decrypted payload is not a JSON document: {key}")
            return ReadResult.backend_error(
                StorageError("Decrypted payload is not a JSON document", key=key)
            )
        return ReadResult.found(document)
