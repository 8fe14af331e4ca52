from __future__ import annotations

import re

from async_studio.prompt.values import StructuredPrompt

_UPPER = re.compile(r"([A-Z])")


def format_label(key: str) -> str:
    """`aspectRatio` -> `aspect ratio`."""
    return _UPPER.sub(r" \1", key).lower().strip()


def synthesize(structured: StructuredPrompt) -> str:
    """
    Render the structured prompt as readable text, e.g.
    {"subject": "cat", "colors": ["red", "blue"]} -> "subject: cat. colors: red, blue."

    Lossy: nested values degrade to compact JSON.
    """
    fragments: list[str] = []
    for key, value in structured.items():
        if value.is_blank():
            continue
        fragments.append(f"{format_label(key)}: {value.render()}")
    if not fragments:
        return ""
    return ". ".join(fragments) + "."
