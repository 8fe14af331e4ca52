from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

from async_studio.config import settings
from async_studio.errors import GenerationServiceError, error_for_status
from async_studio.providers.base import GeneratedImage, GenerationRequest, decode_base64_image

logger = logging.getLogger(__name__)

# SDXL only accepts a handful of resolutions.
_SDXL_SIZES: dict[str, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "16:9": (1344, 768),
    "21:9": (1536, 640),
    "4:5": (896, 1152),
    "3:4": (896, 1152),
    "4:3": (1152, 896),
    "9:16": (768, 1344),
}


class StabilityProvider:
    """Stability AI text-to-image (Stable Diffusion XL)."""

    name = "stability"

    def __init__(
        self,
        api_key: str,
        engine: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        steps: int = 30,
        cfg_scale: float = 7,
    ) -> None:
        self.api_key = api_key
        self.model = engine or settings.stability_engine
        self.base_url = (base_url or settings.stability_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self.steps = steps
        self.cfg_scale = cfg_scale

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        width, height = _SDXL_SIZES.get(request.aspect_ratio, _SDXL_SIZES["1:1"])
        payload: dict[str, Any] = {
            "text_prompts": [{"text": request.prompt, "weight": 1}],
            "cfg_scale": self.cfg_scale,
            "height": height,
            "width": width,
            "steps": self.steps,
            "samples": 1,
        }
        seed = request.parameters.get("seed")
        if isinstance(seed, int) and not isinstance(seed, bool):
            payload["seed"] = seed % 4294967295
        return payload

    async def generate(self, request: GenerationRequest) -> GeneratedImage:
        url = f"{self.base_url}/v1/generation/{self.model}/text-to-image"
        payload = self.build_payload(request)
        logger.info("Calling Stability AI (%s) for prompt: %s", self.model, request.prompt[:120])

        try:
            resp = await asyncio.to_thread(
                requests.post,
                url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Stability request failed: %s", exc)
            raise GenerationServiceError(f"Could not reach Stability AI: {exc}") from exc

        if not resp.ok:
            message = ""
            try:
                body = resp.json()
                if isinstance(body, dict):
                    message = str(body.get("message") or "")
            except ValueError:
                pass
            logger.error("Stability API error %s: %s", resp.status_code, resp.text[:1000])
            raise error_for_status(resp.status_code, "Stability AI", message)

        try:
            data = resp.json()
        except ValueError as exc:
            raise GenerationServiceError("Unexpected response format from Stability AI") from exc

        artifacts = data.get("artifacts") if isinstance(data, dict) else None
        first = artifacts[0] if isinstance(artifacts, list) and artifacts else None
        image_b64 = first.get("base64") if isinstance(first, dict) else None
        if not image_b64 or not isinstance(image_b64, str):
            logger.error("No image artifact from Stability: %s", str(data)[:1000])
            raise GenerationServiceError("No image returned by Stability AI", title="Image generation failed")

        return GeneratedImage(
            image=decode_base64_image(image_b64, "Stability AI"),
            prompt_used=request.prompt,
            provider=self.name,
            model=self.model,
            seed=first.get("seed") if isinstance(first.get("seed"), int) else None,
            raw_metadata={"width": payload["width"], "height": payload["height"]},
        )
