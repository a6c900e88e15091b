"""Durable JSON collections for conversation history and indexer state.

Each collection is one JSON array on disk. Every write rewrites the whole
file while holding an exclusive ``filelock`` lock, and reads take the same
lock, so a reader never sees a half-written array.
"""

import json
import logging
import os
import re
from collections.abc import Callable, Iterator
from pathlib import Path

from filelock import FileLock, Timeout

from .errors import StorageError
from .messages import now_iso

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 10  # seconds
_COLLECTION_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


class HistoryStore:
    """Ordered list of JSON records backed by one file."""

    def __init__(self, path: str | Path, lock_timeout: float = LOCK_TIMEOUT):
        self.path = Path(path)
        self._lock = FileLock(str(self.path) + ".lock", timeout=lock_timeout)
        self._entries: list[dict] = []
        self._loaded = False

    # -- Reading -----------------------------------------------------------

    def load(self) -> list[dict]:
        """Read the file once per instance. Missing or blank files are empty."""
        if self._loaded:
            return self._entries
        self._entries = self._read()
        self._loaded = True
        return self._entries

    def _read(self) -> list[dict]:
        if not self.path.exists():
            return []
        try:
            with self._lock:
                text = self.path.read_text(encoding="utf-8")
        except Timeout as e:
            raise StorageError(f"timed out waiting for lock on {self.path}") from e
        except OSError as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e

        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("corrupt history file %s, resetting: %s", self.path, e)
            return []
        if not isinstance(data, list):
            logger.warning(
                "history file %s does not hold a JSON array, resetting", self.path
            )
            return []
        records = [entry for entry in data if isinstance(entry, dict)]
        if len(records) != len(data):
            logger.warning(
                "skipping %d non-object entries in %s",
                len(data) - len(records),
                self.path,
            )
        return records

    def all(self) -> list[dict]:
        return list(self.load())

    def find_by(self, predicate: Callable[[dict], bool]) -> list[dict]:
        return [entry for entry in self.load() if predicate(entry)]

    def __len__(self) -> int:
        return len(self.load())

    def __iter__(self) -> Iterator[dict]:
        return iter(self.all())

    # -- Writing -----------------------------------------------------------

    def save(self) -> None:
        """Rewrite the whole file under an exclusive lock."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                with open(self.path, "w", encoding="utf-8") as f:
                    json.dump(self._entries, f, indent=2, ensure_ascii=False)
                    f.flush()
                    os.fsync(f.fileno())
        except Timeout as e:
            raise StorageError(f"timed out waiting for lock on {self.path}") from e
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"cannot write {self.path}: {e}") from e

    def add(self, entry: dict) -> None:
        self.load()
        record = dict(entry)
        record.setdefault("timestamp", now_iso())
        self._entries.append(record)
        self.save()

    def set_all(self, entries: list[dict]) -> None:
        self._entries = [dict(e) for e in entries]
        self._loaded = True
        self.save()

    def clear(self) -> None:
        self._entries = []
        self._loaded = True
        self.save()

    def remove_by(self, predicate: Callable[[dict], bool]) -> int:
        """Drop matching entries. The file is only rewritten if something went."""
        entries = self.load()
        kept = [entry for entry in entries if not predicate(entry)]
        removed = len(entries) - len(kept)
        if removed > 0:
            self._entries = kept
            self.save()
        return removed


class Storage:
    """Factory for named collections living under one data directory."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self._collections: dict[str, HistoryStore] = {}

    def collection(self, name: str) -> HistoryStore:
        if not _COLLECTION_NAME_RE.match(name):
            raise ValueError(f"invalid collection name {name!r}")
        if name not in self._collections:
            try:
                self.base_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    f"cannot create data directory {self.base_path}: {e}"
                ) from e
            self._collections[name] = HistoryStore(self.base_path / f"{name}.json")
        return self._collections[name]
