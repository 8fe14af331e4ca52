"""
Persisted collections owned by the prompt session: Recents, Profiles and Templates.

Each collection is stored as one JSON array under its own storage key and is
rewritten in full after every mutation. Field names follow the browser client's
export format so preset files can move between the two.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections import abc
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, ClassVar, Generic, TypeVar

from async_studio.errors import EmptyPromptError, PresetImportError, StructuredPromptError
from async_studio.prompt.values import StructuredPrompt
from async_studio.storage import KeyValueStore, StorageKeys

logger = logging.getLogger(__name__)

RECENTS_LIMIT = 50
PRESETS_LIMIT = 200


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


def _optional_str(data: abc.Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _required_str(data: abc.Mapping[str, Any], key: str) -> str:
    value = _optional_str(data, key)
    if value is None:
        raise ValueError(f"{key} is required")
    return value


def _timestamp(data: abc.Mapping[str, Any], key: str, fallback: int) -> int:
    value = data.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return fallback


def _entry_id(data: abc.Mapping[str, Any]) -> str:
    value = data.get("id")
    if isinstance(value, str) and value:
        return value
    return _new_id()


@dataclass(frozen=True)
class RecentEntry:
    prompt_text: str
    structured: StructuredPrompt
    created_at: int = field(default_factory=_now_ms)
    name: str | None = None
    reference_image: str | None = None
    favorite: bool = False
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_dict(cls, data: Any) -> "RecentEntry":
        if not isinstance(data, abc.Mapping):
            raise ValueError("recent entry must be an object")
        return cls(
            id=_entry_id(data),
            name=_optional_str(data, "name"),
            prompt_text=_required_str(data, "prompt"),
            structured=StructuredPrompt.from_json(data.get("json") or {}),
            reference_image=_optional_str(data, "sourceImage"),
            created_at=_timestamp(data, "timestamp", _now_ms()),
            favorite=bool(data.get("favorite", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "prompt": self.prompt_text,
            "json": self.structured.to_json(),
            "sourceImage": self.reference_image,
            "timestamp": self.created_at,
            "favorite": self.favorite,
        }

    def renamed(self, name: str) -> "RecentEntry":
        return replace(self, name=name)


@dataclass(frozen=True)
class ProfileEntry:
    name: str
    structured: StructuredPrompt
    created_at: int = field(default_factory=_now_ms)
    updated_at: int = field(default_factory=_now_ms)
    favorite: bool = False
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_dict(cls, data: Any) -> "ProfileEntry":
        if not isinstance(data, abc.Mapping):
            raise ValueError("profile must be an object")
        created = _timestamp(data, "createdAt", _now_ms())
        return cls(
            id=_entry_id(data),
            name=_required_str(data, "name"),
            structured=StructuredPrompt.from_json(data.get("json")),
            created_at=created,
            updated_at=_timestamp(data, "updatedAt", created),
            favorite=bool(data.get("favorite", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "json": self.structured.to_json(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "favorite": self.favorite,
        }

    def renamed(self, name: str) -> "ProfileEntry":
        return replace(self, name=name, updated_at=_now_ms())


@dataclass(frozen=True)
class TemplateEntry:
    name: str
    prompt_text: str
    created_at: int = field(default_factory=_now_ms)
    updated_at: int = field(default_factory=_now_ms)
    favorite: bool = False
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_dict(cls, data: Any) -> "TemplateEntry":
        if not isinstance(data, abc.Mapping):
            raise ValueError("template must be an object")
        created = _timestamp(data, "createdAt", _now_ms())
        return cls(
            id=_entry_id(data),
            name=_required_str(data, "name"),
            prompt_text=_required_str(data, "prompt"),
            created_at=created,
            updated_at=_timestamp(data, "updatedAt", created),
            favorite=bool(data.get("favorite", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "prompt": self.prompt_text,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "favorite": self.favorite,
        }

    def renamed(self, name: str) -> "TemplateEntry":
        return replace(self, name=name, updated_at=_now_ms())


E = TypeVar("E", RecentEntry, ProfileEntry, TemplateEntry)


def enforce_cap(entries: list[E], limit: int, keep_head: bool = False) -> list[E]:
    """
    Trim to `limit`, dropping the oldest (last) non-favorite entries first.
    Favorites only go once nothing else is left to drop. With `keep_head` the
    first entry is never dropped.
    """
    kept = list(entries)
    first = 1 if keep_head else 0
    while len(kept) > limit:
        for idx in range(len(kept) - 1, first - 1, -1):
            if not kept[idx].favorite:
                del kept[idx]
                break
        else:
            kept.pop()
    return kept


class EntryCollection(Generic[E]):
    """Newest-first list of entries mirrored to one storage key."""

    storage_key: ClassVar[str]
    entry_type: ClassVar[type]

    def __init__(self, store: KeyValueStore, limit: int) -> None:
        self._store = store
        self.limit = max(1, int(limit))
        self._entries: list[E] = []
        self._revision = -1
        self._load()

    def _load(self) -> None:
        self._revision = self._store.revision(self.storage_key)
        try:
            raw = self._store.get(self.storage_key, [])
        except ValueError:
            logger.warning("Stored %s is not valid JSON; starting empty", self.storage_key)
            raw = []
        if not isinstance(raw, list):
            logger.warning("Stored %s is not a list; starting empty", self.storage_key)
            raw = []
        entries: list[E] = []
        for item in raw:
            try:
                entries.append(self.entry_type.from_dict(item))
            except (ValueError, TypeError, StructuredPromptError):
                logger.warning("Skipping malformed %s item", self.storage_key)
        self._entries = entries

    def _refresh(self) -> None:
        # Another writer (e.g. a second editor) touched the key since we loaded it.
        if self._store.revision(self.storage_key) != self._revision:
            logger.info("%s changed in storage; reloading", self.storage_key)
            self._load()

    def _commit(self, entries: list[E], keep_head: bool = False) -> None:
        self._entries = enforce_cap(entries, self.limit, keep_head)
        self._store.set(self.storage_key, [entry.to_dict() for entry in self._entries])
        self._revision = self._store.revision(self.storage_key)

    def __len__(self) -> int:
        self._refresh()
        return len(self._entries)

    def list(self) -> list[E]:
        self._refresh()
        return list(self._entries)

    def get(self, entry_id: str) -> E | None:
        self._refresh()
        return next((entry for entry in self._entries if entry.id == entry_id), None)

    def add(self, entry: E) -> E:
        self._refresh()
        self._commit([entry] + [e for e in self._entries if e.id != entry.id], keep_head=True)
        return entry

    def _replace(self, entry_id: str, change) -> E | None:
        self._refresh()
        updated: E | None = None
        entries: list[E] = []
        for entry in self._entries:
            if entry.id == entry_id:
                updated = change(entry)
                entries.append(updated)
            else:
                entries.append(entry)
        if updated is None:
            return None
        self._commit(entries)
        return updated

    def rename(self, entry_id: str, name: str) -> E | None:
        return self._replace(entry_id, lambda entry: entry.renamed(name))

    def toggle_favorite(self, entry_id: str) -> E | None:
        return self._replace(entry_id, lambda entry: replace(entry, favorite=not entry.favorite))

    def delete(self, entry_id: str) -> bool:
        self._refresh()
        remaining = [entry for entry in self._entries if entry.id != entry_id]
        if len(remaining) == len(self._entries):
            return False
        self._commit(remaining)
        return True

    def clear(self) -> None:
        self._refresh()
        self._commit([])

    def export(self) -> list[dict[str, Any]]:
        self._refresh()
        return [entry.to_dict() for entry in self._entries]

    def import_entries(self, raw: Any) -> int:
        """
        Merge entries ahead of the existing ones. Anything that is not a list
        imports nothing; malformed items are skipped.
        """
        if not isinstance(raw, list):
            return 0
        imported: list[E] = []
        seen: set[str] = set()
        for item in raw:
            try:
                entry = self.entry_type.from_dict(item)
            except (ValueError, TypeError, StructuredPromptError):
                logger.warning("Skipping malformed imported %s item", self.storage_key)
                continue
            if entry.id in seen:
                continue
            seen.add(entry.id)
            imported.append(entry)
        if not imported:
            return 0
        self._refresh()
        self._commit(imported + [e for e in self._entries if e.id not in seen])
        return len(imported)


class RecentPrompts(EntryCollection[RecentEntry]):
    storage_key = StorageKeys.RECENTS
    entry_type = RecentEntry

    def __init__(self, store: KeyValueStore, limit: int = RECENTS_LIMIT) -> None:
        super().__init__(store, limit)

    def record(
        self,
        prompt_text: str,
        structured: StructuredPrompt | abc.Mapping[str, Any],
        reference_image: str | None = None,
        name: str | None = None,
    ) -> RecentEntry | None:
        """
        Prepend a generation request. An older entry with the same prompt text and
        structured prompt is removed first; its name and favorite flag carry over.
        """
        text = prompt_text.strip()
        if not text:
            return None
        structured = StructuredPrompt.from_json(structured)
        self._refresh()
        duplicate = next(
            (e for e in self._entries if e.prompt_text == text and e.structured == structured),
            None,
        )
        entry = RecentEntry(
            prompt_text=text,
            structured=structured,
            reference_image=reference_image,
            name=name or (duplicate.name if duplicate else None),
            favorite=duplicate.favorite if duplicate else False,
        )
        remaining = [e for e in self._entries if e is not duplicate]
        self._commit([entry] + remaining, keep_head=True)
        return entry

    def update(self, entry_id: str, **changes: Any) -> RecentEntry | None:
        allowed = {"name", "prompt_text", "structured", "reference_image"}
        unknown = set(changes) - allowed
        if unknown:
            raise TypeError(f"cannot update recent entry fields: {sorted(unknown)}")
        if "structured" in changes:
            changes["structured"] = StructuredPrompt.from_json(changes["structured"])
        return self._replace(entry_id, lambda entry: replace(entry, **changes))

    def sorted(self) -> list[RecentEntry]:
        """Named entries first, each group keeping newest-first order."""
        entries = self.list()
        return [e for e in entries if e.name] + [e for e in entries if not e.name]


class ProfileLibrary(EntryCollection[ProfileEntry]):
    storage_key = StorageKeys.PROFILES
    entry_type = ProfileEntry

    def __init__(self, store: KeyValueStore, limit: int = PRESETS_LIMIT) -> None:
        super().__init__(store, limit)

    def save(self, name: str, structured: StructuredPrompt | abc.Mapping[str, Any]) -> ProfileEntry:
        now = _now_ms()
        entry = ProfileEntry(
            name=name.strip() or "Untitled Profile",
            structured=StructuredPrompt.from_json(structured),
            created_at=now,
            updated_at=now,
        )
        return self.add(entry)


class TemplateLibrary(EntryCollection[TemplateEntry]):
    storage_key = StorageKeys.TEMPLATES
    entry_type = TemplateEntry

    def __init__(self, store: KeyValueStore, limit: int = PRESETS_LIMIT) -> None:
        super().__init__(store, limit)

    def save(self, name: str, prompt_text: str) -> TemplateEntry:
        text = prompt_text.strip()
        if not text:
            raise EmptyPromptError("Write a prompt to save as template")
        now = _now_ms()
        entry = TemplateEntry(
            name=name.strip() or "Untitled Template",
            prompt_text=text,
            created_at=now,
            updated_at=now,
        )
        return self.add(entry)


@dataclass(frozen=True)
class ImportCounts:
    profiles: int
    templates: int

    def to_dict(self) -> dict[str, int]:
        return {"profiles": self.profiles, "templates": self.templates}


def preset_export_filename(day: date | None = None) -> str:
    return f"imagegen-presets-{(day or date.today()).isoformat()}.json"


def export_presets(profiles: ProfileLibrary, templates: TemplateLibrary) -> str:
    return json.dumps(
        {"profiles": profiles.export(), "templates": templates.export()},
        indent=2,
        ensure_ascii=False,
    )


def import_presets(
    blob: str | bytes | abc.Mapping[str, Any],
    profiles: ProfileLibrary,
    templates: TemplateLibrary,
) -> ImportCounts:
    """
    Merge an exported preset file. Only an unreadable document fails; a missing
    or non-array `profiles` / `templates` member simply imports nothing.
    """
    if isinstance(blob, bytes):
        try:
            blob = blob.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PresetImportError("Invalid file") from exc
    if isinstance(blob, str):
        try:
            data: Any = json.loads(blob)
        except ValueError as exc:
            raise PresetImportError("Invalid file") from exc
    else:
        data = blob
    if not isinstance(data, abc.Mapping):
        return ImportCounts(profiles=0, templates=0)
    return ImportCounts(
        profiles=profiles.import_entries(data.get("profiles")),
        templates=templates.import_entries(data.get("templates")),
    )
