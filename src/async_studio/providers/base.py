from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Protocol

from PIL import Image, UnidentifiedImageError

from async_studio.errors import GenerationServiceError
from async_studio.images import ReferenceImage


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    parameters: dict[str, Any] = field(default_factory=dict)
    aspect_ratio: str = "1:1"
    reference_image: ReferenceImage | None = None


@dataclass(frozen=True)
class GeneratedImage:
    image: Image.Image
    prompt_used: str
    provider: str
    model: str
    seed: int | None
    raw_metadata: dict[str, Any]

    def to_png_bytes(self) -> bytes:
        buf = BytesIO()
        self.image.save(buf, format="PNG")
        return buf.getvalue()

    def to_data_url(self) -> str:
        return f"data:image/png;base64,{base64.b64encode(self.to_png_bytes()).decode('ascii')}"


class ImageProvider(Protocol):
    name: str
    model: str

    async def generate(self, request: GenerationRequest) -> GeneratedImage: ...


def decode_base64_image(data: str, provider: str) -> Image.Image:
    try:
        raw = base64.b64decode(data)
        image = Image.open(BytesIO(raw))
        image.load()
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError) as exc:
        raise GenerationServiceError(f"{provider} returned image data that could not be decoded") from exc
    return image
