"""
Two-way sync between the free-text prompt and the structured prompt.

Invariant: a representation is never rewritten when its serialization already
matches the target value. Without this guard the two editors would keep
overwriting each other on every keystroke.
"""

from __future__ import annotations

import logging
from collections import abc
from dataclasses import dataclass
from typing import Any

from async_studio.prompt.parameters import ParameterStore
from async_studio.prompt.parser import parse
from async_studio.prompt.synthesizer import synthesize
from async_studio.prompt.values import StructuredPrompt
from async_studio.storage import KeyValueStore, StorageKeys

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptSession:
    """Read-only view of the editable generation request."""

    prompt_text: str
    structured: StructuredPrompt
    structured_text: str
    reference_image: str | None
    parse_error: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt_text,
            "json": self.structured.to_json(),
            "json_text": self.structured_text,
            "source_image": self.reference_image,
            "json_error": self.parse_error,
        }


class SyncController:
    def __init__(
        self,
        store: KeyValueStore,
        prompt_text: str = "",
        structured: StructuredPrompt | abc.Mapping[str, Any] | None = None,
    ) -> None:
        self._store = store
        self.parameters = ParameterStore(structured)
        self.prompt_text = prompt_text
        self.reference_image: str | None = None
        stored = store.get(StorageKeys.AUTO_SYNC)
        self._auto_sync = stored if isinstance(stored, bool) else True

    @property
    def auto_sync(self) -> bool:
        return self._auto_sync

    @auto_sync.setter
    def auto_sync(self, enabled: bool) -> None:
        # Re-enabling does not reconcile; it only affects later edits.
        self._auto_sync = bool(enabled)
        self._store.set(StorageKeys.AUTO_SYNC, self._auto_sync)

    @property
    def structured(self) -> StructuredPrompt:
        return self.parameters.get()

    @property
    def parse_error(self) -> str | None:
        return self.parameters.error

    def session(self) -> PromptSession:
        return PromptSession(
            prompt_text=self.prompt_text,
            structured=self.parameters.get(),
            structured_text=self.parameters.text,
            reference_image=self.reference_image,
            parse_error=self.parameters.error,
        )

    def on_structured_edited(self, raw_text: str) -> bool:
        """Returns False when the text does not parse; the prompt is then left untouched."""
        if not self.parameters.set_text(raw_text):
            return False
        if self._auto_sync:
            generated = synthesize(self.parameters.get())
            if generated != self.prompt_text:
                self.prompt_text = generated
        return True

    def on_prompt_edited(self, text: str) -> None:
        self.prompt_text = text
        if not self._auto_sync:
            return
        updated = parse(text, self.parameters.get())
        if updated.dumps() != self.parameters.text:
            self.parameters.set(updated)

    def load(
        self,
        prompt_text: str,
        structured: StructuredPrompt | abc.Mapping[str, Any],
        reference_image: str | None = None,
    ) -> None:
        """Replace the whole session without running either translation."""
        self.prompt_text = prompt_text
        self.parameters.set(structured)
        self.reference_image = reference_image
