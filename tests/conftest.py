"""Shared pytest fixtures for Async Studio tests."""
from __future__ import annotations

import asyncio
import base64
from io import BytesIO

import pytest
from PIL import Image

from async_studio.gallery import GalleryStore
from async_studio.providers.base import GeneratedImage, GenerationRequest
from async_studio.session import PromptSessionManager
from async_studio.storage import MemoryStore


class FakeProvider:
    """In-process image provider. Optionally blocks until `release` is set."""

    name = "fake"
    model = "fake-image-1"

    def __init__(self, error: Exception | None = None, release: asyncio.Event | None = None):
        self.error = error
        self.release = release
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GeneratedImage:
        self.requests.append(request)
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return GeneratedImage(
            image=Image.new("RGB", (4, 4), "red"),
            prompt_used=request.prompt,
            provider=self.name,
            model=self.model,
            seed=request.parameters.get("seed"),
            raw_metadata={},
        )


def make_png(color: str = "white", size: tuple[int, int] = (2, 2)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def store():
    return MemoryStore()


def write_raw(store: MemoryStore, key: str, raw: str) -> None:
    """Put an undecoded payload under `key`, as a corrupted browser store would hold."""
    store._values[key] = raw
    store._revisions[key] = store.revision(key) + 1


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def png_data_url(png_bytes):
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def gallery(tmp_path):
    return GalleryStore(tmp_path / "gallery")


@pytest.fixture
def manager(store, provider, gallery):
    return PromptSessionManager(store, provider, gallery=gallery)
