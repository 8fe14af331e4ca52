from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from async_studio.config import settings
from async_studio.errors import ReferenceImageError

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?;base64,(?P<data>.*)$", re.DOTALL)


@dataclass(frozen=True)
class ReferenceImage:
    data: bytes
    mime_type: str

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"

    def open(self) -> Image.Image:
        return Image.open(BytesIO(self.data))


def _validate(data: bytes, mime_type: str, max_bytes: int | None) -> ReferenceImage:
    limit = settings.max_reference_image_bytes if max_bytes is None else max_bytes
    if not mime_type.startswith("image/"):
        raise ReferenceImageError("Please upload an image file")
    if len(data) > limit:
        raise ReferenceImageError(
            f"Please upload an image smaller than {limit // (1024 * 1024)}MB",
            title="File too large",
        )
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ReferenceImageError("The file could not be read as an image") from exc
    return ReferenceImage(data=data, mime_type=mime_type)


def reference_from_bytes(content: bytes, content_type: str | None, max_bytes: int | None = None) -> ReferenceImage:
    return _validate(content, (content_type or "").lower(), max_bytes)


def reference_from_data_url(url: str, max_bytes: int | None = None) -> ReferenceImage:
    match = _DATA_URL.match(url or "")
    if not match:
        raise ReferenceImageError("Reference image must be a base64 data URI")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ReferenceImageError("Reference image is not valid base64") from exc
    return _validate(data, (match.group("mime") or "").lower(), max_bytes)
