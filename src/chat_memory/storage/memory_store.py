"""In-process document store, used for tests and single-process deployments."""

from __future__ import annotations

import copy
from typing import Any

from loguru import logger

from ..core.interfaces import ReadResult


class InMemoryDocumentStore:
    """
    Dictionary-backed persistence adapter

    Documents are deep-copied on the way in and out so that callers can never
    mutate stored state through a returned reference.
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    async def read(self, key: str) -> ReadResult:
        document = self._documents.get(key)
        if document is None:
            return ReadResult.not_found()
        return ReadResult.found(copy.deepcopy(document))

    async def write(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = copy.deepcopy(document)
        logger.debug(f"Stored document: {key}")

    def keys(self) -> list[str]:
        return sorted(self._documents)

    def __contains__(self, key: str) -> bool:
        return key in self._documents

    def __len__(self) -> int:
        return len(self._documents)
