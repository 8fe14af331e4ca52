"""
The prompt session manager: one editable generation request plus everything
the editor keeps around it (history, recents, profiles, templates, format and
theme preferences) and the guarded call out to the image provider.
"""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
import time
import uuid
from collections import abc
from dataclasses import dataclass
from typing import Any, Callable

from async_studio.config import settings
from async_studio.errors import (
    AsyncStudioError,
    EmptyPromptError,
    EntryNotFoundError,
    GenerationError,
    GenerationInProgressError,
    GenerationServiceError,
    PresetImportError,
    PromptValidationError,
    StructuredPromptError,
)
from async_studio.formats import DEFAULT_FORMAT_ID, FORMAT_OPTIONS, FormatOption, find_by_ratio, get_format
from async_studio.gallery import GalleryItem, GalleryStore
from async_studio.images import ReferenceImage, reference_from_data_url
from async_studio.library import (
    ImportCounts,
    ProfileEntry,
    ProfileLibrary,
    RecentEntry,
    RecentPrompts,
    TemplateEntry,
    TemplateLibrary,
    export_presets,
    import_presets,
    preset_export_filename,
)
from async_studio.onboarding import OnboardingData, initial_request
from async_studio.prompt.history import HistorySnapshot, HistoryStack
from async_studio.prompt.sync import PromptSession, SyncController
from async_studio.prompt.synthesizer import synthesize
from async_studio.prompt.values import StructuredPrompt
from async_studio.providers.base import GeneratedImage, GenerationRequest, ImageProvider
from async_studio.providers.factory import build_provider
from async_studio.storage import KeyValueStore, StorageKeys

logger = logging.getLogger(__name__)

THEMES = ("light", "dark")
RANDOMIZATION_KEYS = ("seed", "timestamp", "nonce", "generationId")


@dataclass(frozen=True)
class Notice:
    title: str
    description: str = ""
    variant: str = "default"  # default | destructive

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "description": self.description, "variant": self.variant}


@dataclass(frozen=True)
class EditingSource:
    type: str  # recent | profile | template
    id: str
    name: str


@dataclass(frozen=True)
class GenerationResult:
    image: GeneratedImage
    prompt: str
    parameters: dict[str, Any]
    recent: RecentEntry | None
    gallery_item: GalleryItem | None


class GenerationGate:
    """
    At most one generation at a time. Overlapping requests are refused, not
    queued. A watchdog clears the flag if the holder never releases it.
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self._token = 0
        self._active = False
        self._watchdog: asyncio.TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._active

    def acquire(self) -> int:
        if self._active:
            raise GenerationInProgressError("Generation already in progress")
        self._token += 1
        self._active = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._watchdog = None
        else:
            self._watchdog = loop.call_later(self.timeout, self._expire, self._token)
        return self._token

    def release(self, token: int) -> None:
        # A holder whose lock already expired must not release a newer holder.
        if token != self._token:
            return
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        self._active = False

    def _expire(self, token: int) -> None:
        if token == self._token and self._active:
            logger.warning("Generation lock auto-released after %ss", self.timeout)
            self._watchdog = None
            self._active = False


class PromptSessionManager:
    def __init__(
        self,
        store: KeyValueStore,
        provider: ImageProvider | None = None,
        *,
        provider_factory: Callable[[], ImageProvider] = build_provider,
        gallery: GalleryStore | None = None,
        prompt_text: str = "",
        structured: StructuredPrompt | abc.Mapping[str, Any] | None = None,
        history_limit: int | None = None,
        recents_limit: int | None = None,
        presets_limit: int | None = None,
        lock_timeout: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.sync = SyncController(store, prompt_text, structured)
        self.history = HistoryStack(settings.history_limit if history_limit is None else history_limit)
        self.recents = RecentPrompts(store, settings.recents_limit if recents_limit is None else recents_limit)
        presets_limit = settings.presets_limit if presets_limit is None else presets_limit
        self.profiles = ProfileLibrary(store, presets_limit)
        self.templates = TemplateLibrary(store, presets_limit)
        self.gallery = gallery
        self.gate = GenerationGate(settings.generation_lock_timeout_seconds if lock_timeout is None else lock_timeout)
        self.notices: list[Notice] = []
        self.editing_source: EditingSource | None = None
        self._provider = provider
        self._provider_factory = provider_factory
        self._rng = rng or random.Random()
        self._record_history()

    @classmethod
    def from_onboarding(cls, store: KeyValueStore, data: OnboardingData, **kwargs: Any) -> "PromptSessionManager":
        prompt_text, structured = initial_request(data)
        return cls(store, prompt_text=prompt_text, structured=structured, **kwargs)

    # Notifications

    def notify(self, title: str, description: str = "", variant: str = "default") -> Notice:
        notice = Notice(title=title, description=description, variant=variant)
        self.notices.append(notice)
        log = logger.warning if variant == "destructive" else logger.info
        log("%s: %s", title, description)
        return notice

    def _report(self, exc: AsyncStudioError) -> AsyncStudioError:
        self.notify(exc.title, exc.details, variant="destructive")
        return exc

    def drain_notices(self) -> list[Notice]:
        drained, self.notices = self.notices, []
        return drained

    # Editing

    @property
    def session(self) -> PromptSession:
        return self.sync.session()

    def state(self) -> dict[str, Any]:
        source = self.editing_source
        return self.session.to_dict() | {
            "auto_sync": self.auto_sync,
            "format": self.selected_format.to_dict(),
            "theme": self.theme,
            "can_undo": self.history.can_undo,
            "can_redo": self.history.can_redo,
            "generating": self.gate.active,
            "editing_source": {"type": source.type, "id": source.id, "name": source.name} if source else None,
        }

    def _record_history(self) -> bool:
        # The editor buffer may be mid-edit and invalid; nothing to snapshot then.
        if self.sync.parse_error is not None:
            return False
        return self.history.push(
            HistorySnapshot(
                prompt_text=self.sync.prompt_text,
                structured=self.sync.structured,
                reference_image=self.sync.reference_image,
            )
        )

    def edit_prompt(self, text: str) -> PromptSession:
        self.sync.on_prompt_edited(text)
        self._record_history()
        return self.session

    def edit_structured(self, raw_text: str) -> PromptSession:
        if self.sync.on_structured_edited(raw_text):
            self._record_history()
        return self.session

    @property
    def auto_sync(self) -> bool:
        return self.sync.auto_sync

    def set_auto_sync(self, enabled: bool) -> None:
        self.sync.auto_sync = enabled

    def set_reference_image(self, image: ReferenceImage | str) -> None:
        if isinstance(image, str):
            try:
                image = reference_from_data_url(image)
            except AsyncStudioError as exc:
                raise self._report(exc)
        self.sync.reference_image = image.to_data_url()
        self._record_history()
        self.notify("Image uploaded!", "Your image will be used as a reference")

    def remove_reference_image(self) -> None:
        self.sync.reference_image = None
        self._record_history()
        self.notify("Image removed")

    def _apply_snapshot(self, snapshot: HistorySnapshot) -> None:
        self.sync.load(snapshot.prompt_text, snapshot.structured, snapshot.reference_image)

    def undo(self) -> HistorySnapshot | None:
        snapshot = self.history.undo()
        if snapshot is not None:
            self._apply_snapshot(snapshot)
        return snapshot

    def redo(self) -> HistorySnapshot | None:
        snapshot = self.history.redo()
        if snapshot is not None:
            self._apply_snapshot(snapshot)
        return snapshot

    # Preferences

    @property
    def selected_format(self) -> FormatOption:
        stored = self.store.get(StorageKeys.FORMAT)
        fmt = get_format(stored) if isinstance(stored, str) else None
        return fmt or get_format(DEFAULT_FORMAT_ID)

    def select_format(self, format_id: str) -> FormatOption:
        fmt = get_format(format_id)
        if fmt is None:
            known = ", ".join(f.id for f in FORMAT_OPTIONS)
            raise EntryNotFoundError(f"Unknown format '{format_id}'. Expected one of {known}")
        self.store.set(StorageKeys.FORMAT, fmt.id)
        return fmt

    @property
    def theme(self) -> str:
        stored = self.store.get(StorageKeys.THEME)
        return stored if stored in THEMES else "light"

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"theme must be one of {THEMES}")
        self.store.set(StorageKeys.THEME, theme)
        self.notify("Theme updated", f"Switched to {theme} mode")

    # Collections

    def _select_format_for(self, structured: StructuredPrompt) -> None:
        ratio = structured.get("aspectRatio")
        fmt = find_by_ratio(ratio.to_json()) if ratio is not None else None
        if fmt is not None:
            self.store.set(StorageKeys.FORMAT, fmt.id)

    def load_recent(self, entry_id: str) -> RecentEntry:
        entry = self.recents.get(entry_id)
        if entry is None:
            raise EntryNotFoundError("Recent prompt not found")
        self.sync.load(entry.prompt_text, entry.structured, entry.reference_image)
        self._select_format_for(entry.structured)
        name = entry.name or "Recent prompt"
        self.editing_source = EditingSource(type="recent", id=entry.id, name=name)
        self._record_history()
        self.notify("Loaded for editing", f"{name} - Make changes and regenerate")
        return entry

    def create_variation(self, entry_id: str) -> RecentEntry:
        entry = self.recents.get(entry_id)
        if entry is None:
            raise EntryNotFoundError("Recent prompt not found")
        self.sync.load(entry.prompt_text, entry.structured, entry.reference_image)
        self._select_format_for(entry.structured)
        self.editing_source = EditingSource(type="recent", id=str(uuid.uuid4()), name=entry.name or "Variation")
        self._record_history()
        self.notify("Variation created", "Modify the settings and generate a new version")
        return entry

    def delete_recent(self, entry_id: str) -> bool:
        deleted = self.recents.delete(entry_id)
        if deleted:
            self.notify("Deleted", "Prompt removed from history")
        return deleted

    def clear_recents(self) -> None:
        self.recents.clear()
        self.notify("Cleared", "All recent prompts removed")

    def save_profile(self, name: str, structured: StructuredPrompt | abc.Mapping[str, Any] | None = None) -> ProfileEntry:
        if structured is None:
            if self.sync.parse_error is not None:
                raise self._report(StructuredPromptError("Fix JSON before saving as profile"))
            structured = self.sync.structured
        entry = self.profiles.save(name, structured)
        self.notify("Profile saved", entry.name)
        return entry

    def apply_profile(self, entry_id: str) -> ProfileEntry:
        entry = self.profiles.get(entry_id)
        if entry is None:
            raise EntryNotFoundError("Profile not found")
        self.sync.load(synthesize(entry.structured), entry.structured, self.sync.reference_image)
        self.editing_source = EditingSource(type="profile", id=entry.id, name=entry.name)
        self._record_history()
        self.notify("Profile loaded", f"{entry.name} - Edit and regenerate")
        return entry

    def save_template(self, name: str, prompt_text: str | None = None) -> TemplateEntry:
        try:
            entry = self.templates.save(name, self.sync.prompt_text if prompt_text is None else prompt_text)
        except EmptyPromptError as exc:
            raise self._report(exc)
        self.notify("Template saved", entry.name)
        return entry

    def apply_template(self, entry_id: str) -> TemplateEntry:
        entry = self.templates.get(entry_id)
        if entry is None:
            raise EntryNotFoundError("Template not found")
        self.sync.prompt_text = entry.prompt_text
        self.editing_source = EditingSource(type="template", id=entry.id, name=entry.name)
        self._record_history()
        self.notify("Template loaded", f"{entry.name} - Edit and regenerate")
        return entry

    def export_presets(self) -> tuple[str, str]:
        """Returns (download filename, JSON document)."""
        return preset_export_filename(), export_presets(self.profiles, self.templates)

    def import_presets(self, blob: str | bytes | abc.Mapping[str, Any]) -> ImportCounts:
        try:
            counts = import_presets(blob, self.profiles, self.templates)
        except PresetImportError as exc:
            raise self._report(exc)
        self.notify("Imported", f"{counts.profiles} profiles, {counts.templates} templates")
        return counts

    # Generation

    def _resolve_provider(self) -> ImageProvider:
        if self._provider is None:
            self._provider = self._provider_factory()
        return self._provider

    def _randomization(self) -> dict[str, Any]:
        seed = self._rng.randrange(1_000_000_000)
        timestamp = int(time.time() * 1000)
        return {
            "seed": seed,
            "timestamp": timestamp,
            "nonce": secrets.token_hex(4),
            "generationId": f"gen-{timestamp}-{seed}",
        }

    async def generate(self) -> GenerationResult:
        """
        Send the current request to the provider.

        Refused while another generation is outstanding. On success the request
        is recorded in Recents (without the per-call randomization fields) and,
        when a gallery is attached, the image is saved there.
        """
        if self.gate.active:
            raise self._report(GenerationInProgressError("Generation already in progress"))
        if self.sync.parse_error is not None:
            raise self._report(StructuredPromptError("Cannot generate with invalid JSON"))

        structured = self.sync.structured
        prompt_text = self.sync.prompt_text.strip() or synthesize(structured)
        if not prompt_text:
            raise self._report(EmptyPromptError("Write a prompt before generating"))
        if len(prompt_text) > settings.max_prompt_length:
            raise self._report(
                PromptValidationError(
                    f"Prompt must be less than {settings.max_prompt_length} characters",
                    title="Prompt too long",
                )
            )

        try:
            provider = self._resolve_provider()
        except GenerationError as exc:
            raise self._report(exc)

        fmt = self.selected_format
        recorded = structured.with_updates(fmt.parameters())
        parameters = recorded.to_json() | self._randomization()
        reference_url = self.sync.reference_image
        reference = reference_from_data_url(reference_url) if reference_url else None
        source = self.editing_source

        token = self.gate.acquire()
        logger.info("Starting generation %s with %s", parameters["generationId"], provider.name)
        try:
            image = await provider.generate(
                GenerationRequest(
                    prompt=prompt_text,
                    parameters=parameters,
                    aspect_ratio=fmt.ratio,
                    reference_image=reference,
                )
            )
        except GenerationError as exc:
            logger.error("Generation %s failed: %s", parameters["generationId"], exc)
            raise self._report(exc)
        except Exception as exc:
            logger.exception("Generation %s failed unexpectedly", parameters["generationId"])
            raise self._report(GenerationServiceError(str(exc) or type(exc).__name__)) from exc
        finally:
            self.gate.release(token)

        recent = self.recents.record(prompt_text, recorded, reference_url, source.name if source else None)
        self.editing_source = None

        gallery_item = None
        if self.gallery is not None:
            gallery_item = self.gallery.save(image, prompt_text, parameters, reference_url)
            self.gallery.write_run_manifest(
                {
                    "type": "generate",
                    "provider": image.provider,
                    "model": image.model,
                    "inputs": {"prompt": prompt_text, "aspect_ratio": fmt.ratio, "has_reference": bool(reference)},
                    "outputs": {"image_id": gallery_item.image_id},
                }
            )
        logger.info("Generation %s finished", parameters["generationId"])
        self.notify("Image generated", fmt.name)
        return GenerationResult(
            image=image,
            prompt=prompt_text,
            parameters=parameters,
            recent=recent,
            gallery_item=gallery_item,
        )

    async def regenerate(self, item: GalleryItem) -> GenerationResult:
        """Load a previously generated image's request back into the session and run it again."""
        if self.gate.active:
            raise self._report(GenerationInProgressError("Generation already in progress"))
        structured = StructuredPrompt.from_json(item.parameters).without(*RANDOMIZATION_KEYS)
        self.sync.load(item.prompt, structured, item.reference_image)
        self._select_format_for(structured)
        self._record_history()
        return await self.generate()
