from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from async_studio.prompt.values import StructuredPrompt

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class HistorySnapshot:
    prompt_text: str
    structured: StructuredPrompt
    reference_image: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def same_state(self, other: "HistorySnapshot") -> bool:
        return (
            self.prompt_text == other.prompt_text
            and self.structured == other.structured
            and self.reference_image == other.reference_image
        )


class HistoryStack:
    """
    Undo/redo over session snapshots.

    The head of the undo stack is the state currently displayed, so undo needs at
    least two entries. Pushing a new distinct state discards the redo stack.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.limit = max(1, int(limit))
        self._undo: list[HistorySnapshot] = []
        self._redo: list[HistorySnapshot] = []

    def __len__(self) -> int:
        return len(self._undo)

    @property
    def current(self) -> HistorySnapshot | None:
        return self._undo[0] if self._undo else None

    @property
    def can_undo(self) -> bool:
        return len(self._undo) > 1

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def push(self, snapshot: HistorySnapshot) -> bool:
        """Record a state. Returns False when it matches the current head."""
        head = self.current
        if head is not None and head.same_state(snapshot):
            return False
        self._undo.insert(0, snapshot)
        del self._undo[self.limit :]
        self._redo.clear()
        return True

    def undo(self) -> HistorySnapshot | None:
        if not self.can_undo:
            return None
        self._redo.insert(0, self._undo.pop(0))
        return self._undo[0]

    def redo(self) -> HistorySnapshot | None:
        if not self.can_redo:
            return None
        snapshot = self._redo.pop(0)
        self._undo.insert(0, snapshot)
        del self._undo[self.limit :]
        return snapshot
