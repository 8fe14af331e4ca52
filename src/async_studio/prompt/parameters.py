from __future__ import annotations

from collections import abc
from typing import Any

from async_studio.errors import StructuredPromptError
from async_studio.prompt.values import StructuredPrompt


class ParameterStore:
    """
    Holds the committed structured prompt plus the raw editor buffer.

    The buffer may temporarily hold text that does not parse; the committed
    value only ever changes to a well-formed object.
    """

    def __init__(self, initial: StructuredPrompt | abc.Mapping[str, Any] | None = None) -> None:
        self._value = StructuredPrompt.from_json(initial or {})
        self._text = self._value.dumps()
        self.error: str | None = None

    @property
    def text(self) -> str:
        return self._text

    def get(self) -> StructuredPrompt:
        return self._value

    def set(self, value: StructuredPrompt | abc.Mapping[str, Any]) -> None:
        self._value = StructuredPrompt.from_json(value)
        self._text = self._value.dumps()
        self.error = None

    def set_text(self, raw: str) -> bool:
        self._text = raw
        try:
            parsed = StructuredPrompt.loads(raw)
        except StructuredPromptError as exc:
            self.error = exc.details or "Invalid JSON format"
            return False
        self._value = parsed
        self.error = None
        return True
