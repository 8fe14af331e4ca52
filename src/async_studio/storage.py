"""
Key-value persistence port used by the prompt session.

Each key holds one JSON value plus a revision counter. Collections compare the
revision they loaded against the stored one before mutating, so a write made by
another process (another editor tab) is merged in instead of overwritten.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Protocol

from async_studio.config import settings

logger = logging.getLogger(__name__)


class StorageKeys:
    RECENTS = "imagegen.recents.v1"
    PROFILES = "imagegen.profiles.v1"
    TEMPLATES = "imagegen.templates.v1"
    AUTO_SYNC = "imagegen.autosync.v1"
    FORMAT = "imagegen.format.v1"
    THEME = "app.theme"


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def revision(self, key: str) -> int: ...


class MemoryStore:
    """Process-local store. Values are JSON round-tripped so callers never share references."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._revisions: dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._values.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._values[key] = encoded
            self._revisions[key] = self._revisions.get(key, 0) + 1

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._values:
                del self._values[key]
                self._revisions[key] = self._revisions.get(key, 0) + 1

    def revision(self, key: str) -> int:
        with self._lock:
            return self._revisions.get(key, 0)


def _safe_key(key: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", key)


class JsonFileStore:
    """
    One JSON document per key under `{data_dir}/state/`.
    Document shape: {"revision": int, "value": <json>}.
    """

    def __init__(self, root_dir: Path | None = None) -> None:
        self.root_dir = Path(root_dir or Path(settings.data_dir) / "state").resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        return self.root_dir / f"{_safe_key(key)}.json"

    def _read(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            doc = json.loads(path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable state file %s; treating as missing", path)
            return None
        if not isinstance(doc, dict) or "value" not in doc:
            logger.warning("Unexpected state document in %s; treating as missing", path)
            return None
        return doc

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            doc = self._read(key)
        if doc is None:
            return default
        return doc["value"]

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            doc = self._read(key)
            revision = int(doc.get("revision", 0)) + 1 if doc else 1
            path = self._path(key)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(
                json.dumps({"revision": revision, "value": value}, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            tmp_path.replace(path)

    def remove(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)

    def revision(self, key: str) -> int:
        with self._lock:
            doc = self._read(key)
        if doc is None:
            return 0
        try:
            return int(doc.get("revision", 0))
        except (TypeError, ValueError):
            return 0
