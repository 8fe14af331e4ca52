"""
Best-effort conversion of edited prompt text back into structured updates.

Only `label: value` segments are understood; everything else in the text is
free prose and is left alone. The parser never raises.
"""

from __future__ import annotations

import json
import logging
import re
from collections import abc
from typing import Any

from async_studio.prompt.values import (
    PromptValue,
    Scalar,
    Sequence,
    StructuredPrompt,
    to_value,
)

logger = logging.getLogger(__name__)

_LABELLED = re.compile(r'^([^:{}\[\]"]+):\s*(.+)$', re.DOTALL)
_OPENERS = {"{": "}", "[": "]"}


def camel_key(label: str) -> str:
    """`Aspect ratio` -> `aspectRatio`."""
    words = label.split()
    if not words:
        return ""
    return words[0].lower() + "".join(word[:1].upper() + word[1:] for word in words[1:])


def _closing_index(text: str, idx: int) -> int:
    """Index of the character closing the quote or bracket at `idx`, or -1 if it is never closed."""
    if text[idx] == '"':
        pos = idx + 1
        while pos < len(text):
            if text[pos] == "\\":
                pos += 2
                continue
            if text[pos] == '"':
                return pos
            pos += 1
        return -1

    closer = _OPENERS[text[idx]]
    pos = idx + 1
    while pos < len(text):
        ch = text[pos]
        if ch == closer:
            return pos
        if ch == '"' or ch in _OPENERS:
            end = _closing_index(text, pos)
            if end != -1:
                pos = end
        pos += 1
    return -1


def split_segments(text: str) -> list[tuple[str, str]]:
    """
    Split on `,`, `;` and `.` outside brackets and quotes.

    `.` and `;` only end a segment when followed by whitespace or the end of the
    text. A quote or bracket that is never closed is plain text. Returns
    (segment, separator-that-preceded-it) pairs.
    """
    pieces: list[tuple[str, str]] = []
    start = 0
    preceding = ""
    idx = 0

    while idx < len(text):
        ch = text[idx]
        if ch == '"' or ch in _OPENERS:
            end = _closing_index(text, idx)
            if end != -1:
                idx = end + 1
                continue
        elif ch == "," or (ch in ".;" and (idx + 1 == len(text) or text[idx + 1].isspace())):
            pieces.append((text[start:idx], preceding))
            preceding = ch
            start = idx + 1
        idx += 1

    pieces.append((text[start:], preceding))
    return pieces


def _coerce(raw: str, previous: PromptValue | None) -> PromptValue:
    if previous is not None and not previous.is_blank() and previous.render() == raw:
        return previous
    if raw[:1] in _OPENERS:
        try:
            return to_value(json.loads(raw))
        except ValueError:
            pass
    if "," in raw and "{" not in raw:
        return Sequence(tuple(item.strip() for item in raw.split(",") if item.strip()))
    return Scalar(raw)


def parse(
    prompt_text: str,
    previous: StructuredPrompt | abc.Mapping[str, Any] | None = None,
) -> StructuredPrompt:
    try:
        base = StructuredPrompt.from_json(previous or {})
    except Exception:
        logger.debug("Previous structured prompt is unusable; parsing against {}", exc_info=True)
        base = StructuredPrompt()

    if not isinstance(prompt_text, str) or not prompt_text.strip():
        return base

    try:
        labelled: list[list[str]] = []
        current: list[str] | None = None
        for piece, preceding in split_segments(prompt_text):
            segment = piece.strip()
            if not segment:
                continue
            match = _LABELLED.match(segment)
            if match and match.group(1).strip():
                current = [match.group(1).strip(), match.group(2).strip()]
                labelled.append(current)
            elif preceding == "," and current is not None:
                current[1] = f"{current[1]}, {segment}"
            else:
                current = None

        updates: dict[str, PromptValue] = {}
        for label, raw_value in labelled:
            key = camel_key(label)
            if not key or not raw_value:
                continue
            updates[key] = _coerce(raw_value, updates.get(key, base.get(key)))
        if not updates:
            return base
        return base.with_updates(updates)
    except Exception:
        logger.debug("Prompt text could not be parsed; keeping structured prompt", exc_info=True)
        return base
