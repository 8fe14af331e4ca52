from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file for convenience.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    data_dir: str = "data"
    host: str = "127.0.0.1"
    port: int = 10000

    # Keys
    google_ai_api_key: str | None = None
    gemini_api_key: str | None = None
    stability_api_key: str | None = None

    # Providers: imagen | stability | gemini
    image_provider: str = "imagen"
    imagen_model: str = "imagen-3.0-fast-generate-001"
    imagen_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_image_model: str = "gemini-2.5-flash-image"
    stability_engine: str = "stable-diffusion-xl-1024-v1-0"
    stability_base_url: str = "https://api.stability.ai"
    request_timeout_seconds: float = 120.0

    # Request limits
    max_prompt_length: int = 2000
    max_reference_image_bytes: int = 10 * 1024 * 1024

    # Generation lock is force-released after this many seconds.
    generation_lock_timeout_seconds: float = 120.0

    # Collection caps
    recents_limit: int = 50
    presets_limit: int = 200
    history_limit: int = 100


settings = Settings()
