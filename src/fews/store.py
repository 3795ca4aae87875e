"""Document storage for puzzle progress, one document per user.

Every write replaces the whole document. Writes may carry the revision the
caller read; a mismatch raises :class:`WriteConflict` so read-modify-write
cycles never silently drop a concurrent update.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class StoreError(OSError):
    """The backing store could not be read or written."""


class WriteConflict(Exception):
    """The stored revision changed between read and write."""

    def __init__(self, key: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Revision mismatch for {key!r}: expected {expected}, found {actual}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class Document:
    data: Dict[str, Any]
    version: int


class ProgressStore(Protocol):
    async def get(self, key: str) -> Optional[Document]: ...

    async def set(
        self, key: str, data: Dict[str, Any], expected_version: Optional[int] = None
    ) -> Document: ...


def _check_revision(key: str, current: Optional[Document], expected: Optional[int]) -> int:
    actual = current.version if current else 0
    if expected is not None and expected != actual:
        raise WriteConflict(key, expected, actual)
    return actual + 1


class InMemoryStore:
    """Process-local store, mainly for tests and single-instance servers."""

    def __init__(self) -> None:
        self._docs: Dict[str, Document] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Document]:
        async with self._lock:
            return self._docs.get(key)

    async def set(
        self, key: str, data: Dict[str, Any], expected_version: Optional[int] = None
    ) -> Document:
        async with self._lock:
            version = _check_revision(key, self._docs.get(key), expected_version)
            doc = Document(data=json.loads(json.dumps(data)), version=version)
            self._docs[key] = doc
            return doc


class JsonFileStore:
    """All documents in a single JSON file, replaced atomically on write."""

    def __init__(self, path: os.PathLike | str) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Document]:
        async with self._lock:
            docs = await asyncio.to_thread(self._load)
        return docs.get(key)

    async def set(
        self, key: str, data: Dict[str, Any], expected_version: Optional[int] = None
    ) -> Document:
        async with self._lock:
            docs = await asyncio.to_thread(self._load)
            version = _check_revision(key, docs.get(key), expected_version)
            doc = Document(data=dict(data), version=version)
            docs[key] = doc
            await asyncio.to_thread(self._dump, docs)
            return doc

    # ---- file helpers ----

    def _load(self) -> Dict[str, Document]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StoreError(f"Unable to read {self.path}: {exc}") from exc
        try:
            payload = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise StoreError(f"Corrupt progress file {self.path}: {exc}") from exc
        try:
            docs = {
                key: Document(data=dict(entry["data"]), version=int(entry["version"]))
                for key, entry in payload.items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Malformed entry in {self.path}: {exc!r}") from exc
        return docs

    def _dump(self, docs: Dict[str, Document]) -> None:
        payload = {
            key: {"data": doc.data, "version": doc.version}
            for key, doc in docs.items()
        }
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2, sort_keys=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreError(f"Unable to write {self.path}: {exc}") from exc
        logger.debug("Wrote %d progress documents to %s", len(docs), self.path)
