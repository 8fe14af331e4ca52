from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Any

import httpx
from PIL import Image, UnidentifiedImageError

from async_studio.config import settings
from async_studio.errors import GenerationServiceError, error_for_status
from async_studio.providers.base import GeneratedImage, GenerationRequest

logger = logging.getLogger(__name__)


class GeminiImageProvider:
    """
    Gemini image models through `models.generate_content` with an image response
    modality. The only provider that uses the session's reference image.
    """

    name = "gemini"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        # Imported lazily so the app can start without the dependency installed.
        from google import genai  # type: ignore

        self.client = genai.Client(api_key=api_key)
        self.model = model or settings.gemini_image_model

    def build_contents(self, request: GenerationRequest) -> list[Any]:
        contents: list[Any] = [f"{request.prompt}\nDesired aspect ratio: {request.aspect_ratio}."]
        if request.reference_image is not None:
            contents.append(request.reference_image.open())
        return contents

    async def generate(self, request: GenerationRequest) -> GeneratedImage:
        from google.genai import errors, types  # type: ignore

        logger.info("Calling Gemini (%s) for prompt: %s", self.model, request.prompt[:120])
        try:
            resp = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=self.build_contents(request),
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                    image_config=types.ImageConfig(aspect_ratio=request.aspect_ratio),
                ),
            )
        except errors.APIError as exc:
            logger.error("Gemini API error %s: %s", exc.code, exc.message)
            raise error_for_status(exc.code or 500, "Gemini", exc.message or "") from exc
        except httpx.HTTPError as exc:
            logger.error("Gemini request failed: %s", exc)
            raise GenerationServiceError(f"Could not reach Gemini: {exc}") from exc

        extracted = _extract_images_from_generate_content(resp)
        if not extracted:
            logger.error("No image part in Gemini response")
            raise GenerationServiceError("No image data returned by AI service", title="Image generation failed")

        image, meta = extracted[0]
        return GeneratedImage(
            image=image,
            prompt_used=request.prompt,
            provider=self.name,
            model=self.model,
            seed=None,
            raw_metadata=meta | {"aspect_ratio": request.aspect_ratio},
        )


def _extract_images_from_generate_content(resp: Any) -> list[tuple[Image.Image, dict[str, Any]]]:
    out: list[tuple[Image.Image, dict[str, Any]]] = []
    for cand in getattr(resp, "candidates", []) or []:
        content = getattr(cand, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            mime = getattr(inline, "mime_type", None) or ""
            data = getattr(inline, "data", None)
            if not data:
                continue
            if mime and not mime.startswith("image/"):
                continue
            try:
                img = Image.open(BytesIO(data))
                img.load()
            except (UnidentifiedImageError, OSError):
                continue
            out.append((img, {"mime_type": mime}))
    return out
