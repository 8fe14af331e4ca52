from __future__ import annotations

from async_studio.config import settings
from async_studio.errors import ProviderConfigurationError
from async_studio.providers.base import ImageProvider
from async_studio.providers.imagen_provider import ImagenProvider
from async_studio.providers.stability_provider import StabilityProvider

PROVIDER_NAMES = ("imagen", "stability", "gemini")


def build_provider(name: str | None = None) -> ImageProvider:
    """Instantiate the configured provider, or fail with a configuration error."""
    name = (name or settings.image_provider).strip().lower()
    if name == "imagen":
        if not settings.google_ai_api_key:
            raise ProviderConfigurationError("GOOGLE_AI_API_KEY is not set")
        return ImagenProvider(api_key=settings.google_ai_api_key)
    if name == "stability":
        if not settings.stability_api_key:
            raise ProviderConfigurationError("STABILITY_API_KEY is not set")
        return StabilityProvider(api_key=settings.stability_api_key)
    if name == "gemini":
        api_key = settings.gemini_api_key or settings.google_ai_api_key
        if not api_key:
            raise ProviderConfigurationError("GEMINI_API_KEY is not set")
        from async_studio.providers.gemini_provider import GeminiImageProvider

        return GeminiImageProvider(api_key=api_key)
    raise ProviderConfigurationError(f"Unknown image provider '{name}'. Expected one of {', '.join(PROVIDER_NAMES)}")
