"""
JSON file document store

Atomic writes and an optional backup copy protect each document.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any
from urllib.parse import quote

from loguru import logger

from ..core.exceptions import StorageError
from ..core.interfaces import ReadResult

_DOT_SEGMENTS = {".": "%2E", "..": "%2E%2E"}
_MAX_SEGMENT_LENGTH = 200


class JsonDocumentStore:
    """
    One JSON file per logical key

    Layout:
        {base_path}/
        └── memory/
            └── {user_id}/
                ├── profile.json
                ├── longterm.json
                ├── preferences.json
                └── {session_id}.json
    """

    def __init__(
        self,
        base_path: str | Path,
        create_backup: bool = True,
        pretty_print: bool = True,
    ):
        """
        Args:
            base_path: root directory for documents
            create_backup: keep a ``.bak`` copy of the previous version
            pretty_print: indent JSON output
        """
        self._base_path = Path(base_path)
        self._create_backup = create_backup
        self._pretty_print = pretty_print

        self._base_path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _encode_segment(segment: str, key: str) -> str:
        """
        Percent-encode one key segment into a file or directory name

        The mapping is one-to-one, so distinct keys never share a file.
        """
        if not segment:
            raise StorageError("Empty segment in document key", key=key)
        if segment in _DOT_SEGMENTS:
            return _DOT_SEGMENTS[segment]

        encoded = quote(segment, safe="")
        if len(encoded) > _MAX_SEGMENT_LENGTH:
            raise StorageError(
                f"Key segment too long for a file name ({len(encoded)} chars)", key=key
            )
        return encoded

    def _get_path(self, key: str) -> Path:
        segments = [self._encode_segment(part, key) for part in key.split("/")]
        return self._base_path.joinpath(*segments[:-1], f"{segments[-1]}.json")

    def _load(self, path: Path) -> dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def write(self, key: str, document: dict[str, Any]) -> None:
        """
        Write a document atomically

        1. write to a temporary file
        2. back up the existing file (optional)
        3. replace the real file with the temporary one
        """
        file_path = self._get_path(key)
        temp_path = file_path.with_suffix(".json.tmp")
        backup_path = file_path.with_suffix(".json.bak")

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            indent = 2 if self._pretty_print else None
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=indent)

            if self._create_backup and file_path.exists():
                shutil.copy2(file_path, backup_path)

            temp_path.replace(file_path)

            logger.debug(f"Document saved: {key}")

        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to save document: {e}", key=key) from e

        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as cleanup_error:
                    logger.warning(
                        f"Failed to remove temp file {temp_path}: {cleanup_error}"
                    )

    async def read(self, key: str) -> ReadResult:
        """
        Read a document

        A corrupted file is recovered from its backup when one exists.
        """
        file_path = self._get_path(key)
        backup_path = file_path.with_suffix(".json.bak")

        if not file_path.exists():
            return ReadResult.not_found()

        try:
            return ReadResult.found(self._load(file_path))

        except json.JSONDecodeError as e:
            logger.error(f"Corrupted document file: {file_path}: {e}")

            if backup_path.exists():
                logger.info(f"Attempting to restore from backup: {backup_path}")
                try:
                    document = self._load(backup_path)
                    shutil.copy2(backup_path, file_path)
                    return ReadResult.found(document)
                except (OSError, json.JSONDecodeError) as restore_error:
                    logger.error(f"Failed to restore from backup: {restore_error}")

            return ReadResult.backend_error(
                StorageError(
                    f"Corrupted file and no valid backup: {file_path}", key=key
                )
            )

        except OSError as e:
            return ReadResult.backend_error(
                StorageError(f"Failed to load document: {e}", key=key)
            )

    async def delete(self, key: str) -> bool:
        """Remove a document and its backup; returns whether it existed"""
        file_path = self._get_path(key)
        backup_path = file_path.with_suffix(".json.bak")

        if not file_path.exists():
            return False

        file_path.unlink()
        if backup_path.exists():
            backup_path.unlink()

        logger.info(f"Document deleted: {key}")
        return True
