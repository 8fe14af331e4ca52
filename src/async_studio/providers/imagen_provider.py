from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

from async_studio.config import settings
from async_studio.errors import GenerationServiceError, error_for_status
from async_studio.providers.base import GeneratedImage, GenerationRequest, decode_base64_image

logger = logging.getLogger(__name__)

# Imagen accepts a fixed set of ratios; map the studio formats onto the closest one.
_RATIO_MAP = {"1:1": "1:1", "3:4": "3:4", "4:3": "4:3", "9:16": "9:16", "16:9": "16:9", "4:5": "3:4", "21:9": "16:9"}


class ImagenProvider:
    """Google Imagen via the Generative Language REST `:predict` endpoint."""

    name = "imagen"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model or settings.imagen_model
        self.base_url = (base_url or settings.imagen_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        return {
            "instances": [{"prompt": request.prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": _RATIO_MAP.get(request.aspect_ratio, "1:1"),
                "safetyFilterLevel": "block_some",
                "personGeneration": "allow_adult",
            },
        }

    async def generate(self, request: GenerationRequest) -> GeneratedImage:
        url = f"{self.base_url}/models/{self.model}:predict"
        payload = self.build_payload(request)
        logger.info("Calling Imagen (%s) for prompt: %s", self.model, request.prompt[:120])

        try:
            resp = await asyncio.to_thread(
                requests.post,
                url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Imagen request failed: %s", exc)
            raise GenerationServiceError(f"Could not reach Google AI: {exc}") from exc

        if not resp.ok:
            logger.error("Google AI API error %s: %s", resp.status_code, resp.text[:1000])
            raise error_for_status(resp.status_code, "Google AI")

        try:
            data = resp.json()
        except ValueError as exc:
            raise GenerationServiceError("Unexpected response format from Google AI") from exc

        predictions = data.get("predictions") if isinstance(data, dict) else None
        first = predictions[0] if isinstance(predictions, list) and predictions else None
        if not isinstance(first, dict):
            first = {}
        nested = first.get("image") if isinstance(first.get("image"), dict) else {}
        image_b64 = first.get("bytesBase64Encoded") or nested.get("b64")
        if not image_b64 or not isinstance(image_b64, str):
            logger.error("No image data in Google AI response: %s", str(data)[:1000])
            raise GenerationServiceError("No image data returned by AI service", title="Image generation failed")

        return GeneratedImage(
            image=decode_base64_image(image_b64, "Google AI"),
            prompt_used=request.prompt,
            provider=self.name,
            model=self.model,
            seed=None,
            raw_metadata={"aspect_ratio": payload["parameters"]["aspectRatio"]},
        )
