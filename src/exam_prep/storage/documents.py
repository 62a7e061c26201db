"""Document store: the persistence contract the core depends on, plus two backends.

``InMemoryDocumentStore`` is used by tests and single-process runs;
``JsonFileDocumentStore`` keeps one JSON file per document
(JSON + fcntl.flock + atomic write).
"""

import copy
import fcntl
import functools
import json
import os
import re
import tempfile
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import structlog

from exam_prep.config import get_settings
from exam_prep.errors import TransientWriteError

logger = structlog.get_logger()

USERS = "users"
PROGRESS = "progress"
ANSWERS = "answers"

_SAFE_ID = re.compile(r"^[A-Za-z0-9@._\-]+$")


@dataclass(frozen=True)
class Increment:
    """Merge-write sentinel: add ``amount`` to the numeric field (missing counts as 0)."""

    amount: int | float = 1


@dataclass(frozen=True)
class DocumentSnapshot:
    """A point-in-time view of one document; ``version`` grows with every write."""

    collection: str
    doc_id: str
    data: dict[str, Any] | None
    version: int

    @property
    def exists(self) -> bool:
        return self.data is not None


Listener = Callable[[DocumentSnapshot], None]
Unsubscribe = Callable[[], None]


class DocumentStore(Protocol):
    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    def set_document(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None: ...

    def create_if_absent(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool: ...

    def subscribe_document(self, collection: str, doc_id: str, on_change: Listener) -> Unsubscribe: ...

    def list_documents(
        self, collection: str, filters: dict[str, Any] | None = None
    ) -> list[DocumentSnapshot]: ...


def _check_key(collection: str, doc_id: str) -> None:
    if not _SAFE_ID.match(collection) or not _SAFE_ID.match(doc_id) or ".." in doc_id:
        raise ValueError(f"Invalid document key: {collection}/{doc_id}")


def _set_path(target: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = target
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    if isinstance(value, Increment):
        current = node.get(leaf) or 0
        node[leaf] = current + value.amount
    elif isinstance(value, dict):
        if not isinstance(node.get(leaf), dict):
            node[leaf] = {}
        for key, sub in value.items():
            _set_path(node[leaf], key, sub)
    else:
        node[leaf] = copy.deepcopy(value)


def apply_write(existing: dict[str, Any] | None, data: dict[str, Any], merge: bool) -> dict[str, Any]:
    """Return the document that results from writing ``data`` over ``existing``.

    With ``merge`` nested maps are merged and dotted keys address nested
    fields; without it the document is replaced.
    """
    result = copy.deepcopy(existing) if (merge and existing) else {}
    for key, value in data.items():
        _set_path(result, key, value)
    return result


def _get_path(data: dict[str, Any], path: str) -> Any:
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _matches(data: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(_get_path(data, path) == expected for path, expected in filters.items())


class _ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: dict[tuple[str, str], list[Listener]] = {}

    def add(self, key: tuple[str, str], listener: Listener) -> None:
        self._listeners.setdefault(key, []).append(listener)

    def remove(self, key: tuple[str, str], listener: Listener) -> None:
        listeners = self._listeners.get(key, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self._listeners.pop(key, None)

    def notify(self, snapshot: DocumentSnapshot) -> None:
        for listener in list(self._listeners.get((snapshot.collection, snapshot.doc_id), [])):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(
                    "document_listener_error",
                    collection=snapshot.collection,
                    doc_id=snapshot.doc_id,
                )


class InMemoryDocumentStore:
    """Thread-safe dict-backed store with synchronous change push."""

    def __init__(self) -> None:
        self._docs: dict[tuple[str, str], dict[str, Any]] = {}
        self._versions: dict[tuple[str, str], int] = {}
        self._lock = threading.RLock()
        self._listeners = _ListenerRegistry()

    def _snapshot(self, key: tuple[str, str]) -> DocumentSnapshot:
        data = self._docs.get(key)
        return DocumentSnapshot(
            collection=key[0],
            doc_id=key[1],
            data=copy.deepcopy(data) if data is not None else None,
            version=self._versions.get(key, 0),
        )

    def _write(self, key: tuple[str, str], document: dict[str, Any]) -> None:
        self._docs[key] = document
        self._versions[key] = self._versions.get(key, 0) + 1
        # Listeners run under the lock so they observe writes in order
        self._listeners.notify(self._snapshot(key))

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        _check_key(collection, doc_id)
        with self._lock:
            data = self._docs.get((collection, doc_id))
            return copy.deepcopy(data) if data is not None else None

    def set_document(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        _check_key(collection, doc_id)
        key = (collection, doc_id)
        with self._lock:
            self._write(key, apply_write(self._docs.get(key), data, merge))

    def create_if_absent(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        _check_key(collection, doc_id)
        key = (collection, doc_id)
        with self._lock:
            if key in self._docs:
                return False
            self._write(key, apply_write(None, data, merge=False))
            return True

    def subscribe_document(self, collection: str, doc_id: str, on_change: Listener) -> Unsubscribe:
        _check_key(collection, doc_id)
        key = (collection, doc_id)
        with self._lock:
            self._listeners.add(key, on_change)
            on_change(self._snapshot(key))

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.remove(key, on_change)

        return unsubscribe

    def list_documents(
        self, collection: str, filters: dict[str, Any] | None = None
    ) -> list[DocumentSnapshot]:
        with self._lock:
            return [
                self._snapshot(key)
                for key, data in sorted(self._docs.items())
                if key[0] == collection and _matches(data, filters)
            ]


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


class JsonFileDocumentStore:
    """One JSON file per document under ``root/{collection}/{doc_id}.json``."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._listeners = _ListenerRegistry()

    def _path(self, collection: str, doc_id: str) -> Path:
        _check_key(collection, doc_id)
        return self.root / collection / f"{doc_id}.json"

    def _read(self, path: Path) -> tuple[dict[str, Any] | None, int]:
        if not path.exists():
            return None, 0
        with open(path, encoding="utf-8") as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            raw = json.load(f)
            fcntl.flock(f, fcntl.LOCK_UN)
        return raw.get("data"), int(raw.get("version", 0))

    def _write(self, collection: str, doc_id: str, document: dict[str, Any], version: int) -> None:
        path = self._path(collection, doc_id)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=path.parent, delete=False, suffix=".tmp", encoding="utf-8"
            ) as tmp:
                tmp_name = tmp.name
                json.dump({"version": version, "data": document}, tmp, default=_json_default)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise TransientWriteError(collection, doc_id, e) from e
        self._listeners.notify(
            DocumentSnapshot(collection, doc_id, json.loads(json.dumps(document, default=_json_default)), version)
        )

    def _locked(self, collection: str):
        lock_dir = self.root / collection
        lock_dir.mkdir(parents=True, exist_ok=True)
        return open(lock_dir / ".lock", "w")

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        data, _ = self._read(self._path(collection, doc_id))
        return data

    def set_document(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        path = self._path(collection, doc_id)
        with self._lock, self._locked(collection) as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            existing, version = self._read(path)
            self._write(collection, doc_id, apply_write(existing, data, merge), version + 1)

    def create_if_absent(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        path = self._path(collection, doc_id)
        with self._lock, self._locked(collection) as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            if path.exists():
                return False
            self._write(collection, doc_id, apply_write(None, data, merge=False), 1)
            return True

    def subscribe_document(self, collection: str, doc_id: str, on_change: Listener) -> Unsubscribe:
        path = self._path(collection, doc_id)
        key = (collection, doc_id)
        with self._lock:
            self._listeners.add(key, on_change)
            data, version = self._read(path)
            on_change(DocumentSnapshot(collection, doc_id, data, version))

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.remove(key, on_change)

        return unsubscribe

    def list_documents(
        self, collection: str, filters: dict[str, Any] | None = None
    ) -> list[DocumentSnapshot]:
        directory = self.root / collection
        if not directory.exists():
            return []
        snapshots = []
        for path in sorted(directory.glob("*.json")):
            try:
                data, version = self._read(path)
            except (OSError, json.JSONDecodeError):
                logger.warning("document_parse_error", path=str(path))
                continue
            if data is not None and _matches(data, filters):
                snapshots.append(DocumentSnapshot(collection, path.stem, data, version))
        return snapshots


@functools.lru_cache
def get_document_store() -> DocumentStore:
    """Process-wide store backed by the configured data directory."""
    return JsonFileDocumentStore(get_settings().documents_dir)
