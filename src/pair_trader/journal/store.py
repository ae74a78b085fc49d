"""JSONL-backed key-value store for snapshots, alerts and orders."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

Predicate = Callable[[str, Any], bool]

_ALLOWED_KEY_PREFIXES = ("market:", "alerts:", "orders:")


class PersistentStore(Protocol):
    """Key-value persistence used by the monitor and decision engine."""

    def set(self, key: str, value: Any) -> None:
        """Durably record ``value`` under ``key``."""

    def get(self, key: str) -> Any | None:
        """Return the value for ``key`` or None."""

    def query_by_prefix(
        self, prefix: str, predicate: Predicate | None = None
    ) -> dict[str, Any]:
        """Return every key/value under ``prefix`` accepted by ``predicate``."""


class JournalStore:
    """Append-only JSONL write log replayed into an in-memory index.

    Each ``set`` appends one line to ``store.jsonl``; on start the log is
    replayed so the latest write per key wins. Values are stored serialized,
    so callers always receive a fresh copy. The index is bucketed by
    ``orders:`` and by ``{namespace}:{pair}:``, so a prefix query only scans
    the buckets it can match.
    """

    def __init__(self, journal_dir: Path) -> None:
        self._journal_dir = journal_dir
        self._journal_dir.mkdir(parents=True, exist_ok=True)
        self._file_path = self._journal_dir / "store.jsonl"
        self._buckets: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()
        self._replay()

    def set(self, key: str, value: Any) -> None:
        """Append one write to the log and update the index."""
        if not key.startswith(_ALLOWED_KEY_PREFIXES):
            raise ValueError(f"unsupported_key: {key}")
        serialized = json.dumps(value, ensure_ascii=True)
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "key": key,
            "value": value,
        }
        line = json.dumps(record, ensure_ascii=True) + "\n"
        with self._lock:
            with self._file_path.open("a", encoding="utf-8") as f:
                f.write(line)
            self._buckets.setdefault(_bucket_of(key), {})[key] = serialized

    def get(self, key: str) -> Any | None:
        with self._lock:
            serialized = self._buckets.get(_bucket_of(key), {}).get(key)
        if serialized is None:
            return None
        return json.loads(serialized)

    def query_by_prefix(
        self, prefix: str, predicate: Predicate | None = None
    ) -> dict[str, Any]:
        """Return matching entries ordered by key."""
        with self._lock:
            candidates = [
                bucket
                for name, bucket in self._buckets.items()
                if name.startswith(prefix) or prefix.startswith(name)
            ]
            matches = sorted(
                (key, serialized)
                for bucket in candidates
                for key, serialized in bucket.items()
                if key.startswith(prefix)
            )
        result: dict[str, Any] = {}
        for key, serialized in matches:
            value = json.loads(serialized)
            if predicate is None or predicate(key, value):
                result[key] = value
        return result

    def _replay(self) -> None:
        if not self._file_path.exists():
            return
        for line in self._file_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            record = json.loads(line)
            key = str(record["key"])
            self._buckets.setdefault(_bucket_of(key), {})[key] = json.dumps(
                record["value"], ensure_ascii=True
            )


def _bucket_of(key: str) -> str:
    namespace, _, rest = key.partition(":")
    if namespace == "orders":
        return "orders:"
    pair = rest.split(":", 1)[0]
    return f"{namespace}:{pair}:"
