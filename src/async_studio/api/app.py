from __future__ import annotations

import logging
from typing import Any, Callable, Literal

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from async_studio.config import settings
from async_studio.errors import AsyncStudioError, EntryNotFoundError, PromptValidationError
from async_studio.gallery import GalleryStore
from async_studio.images import reference_from_bytes, reference_from_data_url
from async_studio.providers.base import GenerationRequest, ImageProvider
from async_studio.providers.factory import build_provider
from async_studio.session import GenerationResult, PromptSessionManager
from async_studio.storage import JsonFileStore

logger = logging.getLogger(__name__)


class GenerateImageBody(BaseModel):
    prompt: Any = None
    aspectRatio: str = "1:1"
    provider: str | None = None
    referenceImage: str | None = None


class PromptBody(BaseModel):
    prompt: str


class StructuredBody(BaseModel):
    text: str


class AutoSyncBody(BaseModel):
    enabled: bool


class FormatBody(BaseModel):
    format: str


class ThemeBody(BaseModel):
    theme: Literal["light", "dark"]


class RenameBody(BaseModel):
    name: str


class RecentPatchBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    prompt: str | None = None
    structured: dict[str, Any] | None = Field(default=None, alias="json")
    sourceImage: str | None = None


class ProfileBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    structured: dict[str, Any] | None = Field(default=None, alias="json")


class TemplateBody(BaseModel):
    name: str = ""
    prompt: str | None = None


def _found(entry: Any, label: str) -> Any:
    if entry is None:
        raise EntryNotFoundError(f"{label} not found")
    return entry


def _result_payload(result: GenerationResult) -> dict[str, Any]:
    return {
        "success": True,
        "imageUrl": result.image.to_data_url(),
        "prompt": result.prompt,
        "parameters": result.parameters,
        "recent": result.recent.to_dict() if result.recent else None,
        "image": result.gallery_item.to_dict() if result.gallery_item else None,
    }


def create_app(
    manager: PromptSessionManager | None = None,
    gallery: GalleryStore | None = None,
    provider_factory: Callable[..., ImageProvider] = build_provider,
) -> FastAPI:
    """
    Build the API around one prompt session. Without arguments the session is
    persisted under `settings.data_dir`.
    """
    gallery = gallery or (manager.gallery if manager else None) or GalleryStore()
    if manager is None:
        manager = PromptSessionManager(JsonFileStore(), provider_factory=provider_factory, gallery=gallery)
    elif manager.gallery is None:
        manager.gallery = gallery

    app = FastAPI(title="Async Studio API")
    app.state.manager = manager
    app.state.gallery = gallery
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    # Every route is a coroutine so the session is only touched from the event loop.

    @app.exception_handler(AsyncStudioError)
    async def studio_error(request: Request, exc: AsyncStudioError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/")
    async def index():
        return {"status": "API is running", "message": "Async Studio Image Generation API", "version": "0.1.0"}

    @app.post("/api/generate-image")
    async def generate_image(body: GenerateImageBody):
        # Stateless: nothing here touches the session.
        if not isinstance(body.prompt, str) or not body.prompt.strip():
            raise PromptValidationError("Prompt must be a non-empty string")
        if len(body.prompt) > settings.max_prompt_length:
            raise PromptValidationError(
                f"Maximum {settings.max_prompt_length} characters",
                title="Prompt too long",
            )
        reference = reference_from_data_url(body.referenceImage) if body.referenceImage else None
        provider = provider_factory(body.provider)
        logger.info("Stateless generation with %s: %s", provider.name, body.prompt[:100])
        image = await provider.generate(
            GenerationRequest(prompt=body.prompt, aspect_ratio=body.aspectRatio, reference_image=reference)
        )
        return {"imageUrl": image.to_data_url(), "success": True}

    # Session

    @app.get("/session")
    async def get_session():
        return manager.state()

    @app.put("/session/prompt")
    async def put_prompt(body: PromptBody):
        manager.edit_prompt(body.prompt)
        return manager.state()

    @app.put("/session/structured")
    async def put_structured(body: StructuredBody):
        manager.edit_structured(body.text)
        return manager.state()

    @app.put("/session/auto-sync")
    async def put_auto_sync(body: AutoSyncBody):
        manager.set_auto_sync(body.enabled)
        return manager.state()

    @app.put("/session/format")
    async def put_format(body: FormatBody):
        manager.select_format(body.format)
        return manager.state()

    @app.put("/session/theme")
    async def put_theme(body: ThemeBody):
        manager.set_theme(body.theme)
        return manager.state()

    @app.post("/session/reference-image")
    async def upload_reference_image(file: UploadFile = File(...)):
        content = await file.read()
        manager.set_reference_image(reference_from_bytes(content, file.content_type))
        return manager.state()

    @app.delete("/session/reference-image")
    async def delete_reference_image():
        manager.remove_reference_image()
        return manager.state()

    @app.post("/session/undo")
    async def undo():
        manager.undo()
        return manager.state()

    @app.post("/session/redo")
    async def redo():
        manager.redo()
        return manager.state()

    @app.post("/session/generate")
    async def generate():
        return _result_payload(await manager.generate())

    @app.get("/session/notices")
    async def notices():
        return [notice.to_dict() for notice in manager.drain_notices()]

    # Recents

    @app.get("/recents")
    async def list_recents():
        return [entry.to_dict() for entry in manager.recents.sorted()]

    @app.delete("/recents")
    async def clear_recents():
        manager.clear_recents()
        return {"success": True}

    @app.patch("/recents/{entry_id}")
    async def patch_recent(entry_id: str, body: RecentPatchBody):
        changes: dict[str, Any] = {}
        if body.name is not None:
            changes["name"] = body.name.strip() or None
        if body.prompt is not None:
            changes["prompt_text"] = body.prompt
        if body.structured is not None:
            changes["structured"] = body.structured
        if body.sourceImage is not None:
            changes["reference_image"] = body.sourceImage or None
        if not changes:
            return _found(manager.recents.get(entry_id), "Recent prompt").to_dict()
        return _found(manager.recents.update(entry_id, **changes), "Recent prompt").to_dict()

    @app.delete("/recents/{entry_id}")
    async def delete_recent(entry_id: str):
        if not manager.delete_recent(entry_id):
            raise EntryNotFoundError("Recent prompt not found")
        return {"success": True}

    @app.post("/recents/{entry_id}/load")
    async def load_recent(entry_id: str):
        manager.load_recent(entry_id)
        return manager.state()

    @app.post("/recents/{entry_id}/variation")
    async def create_variation(entry_id: str):
        manager.create_variation(entry_id)
        return manager.state()

    # Profiles

    @app.get("/profiles")
    async def list_profiles():
        return [entry.to_dict() for entry in manager.profiles.list()]

    @app.post("/profiles", status_code=201)
    async def create_profile(body: ProfileBody):
        return manager.save_profile(body.name, body.structured).to_dict()

    @app.patch("/profiles/{entry_id}")
    async def rename_profile(entry_id: str, body: RenameBody):
        return _found(manager.profiles.rename(entry_id, body.name), "Profile").to_dict()

    @app.delete("/profiles/{entry_id}")
    async def delete_profile(entry_id: str):
        if not manager.profiles.delete(entry_id):
            raise EntryNotFoundError("Profile not found")
        return {"success": True}

    @app.post("/profiles/{entry_id}/favorite")
    async def favorite_profile(entry_id: str):
        return _found(manager.profiles.toggle_favorite(entry_id), "Profile").to_dict()

    @app.post("/profiles/{entry_id}/apply")
    async def apply_profile(entry_id: str):
        manager.apply_profile(entry_id)
        return manager.state()

    # Templates

    @app.get("/templates")
    async def list_templates():
        return [entry.to_dict() for entry in manager.templates.list()]

    @app.post("/templates", status_code=201)
    async def create_template(body: TemplateBody):
        return manager.save_template(body.name, body.prompt).to_dict()

    @app.patch("/templates/{entry_id}")
    async def rename_template(entry_id: str, body: RenameBody):
        return _found(manager.templates.rename(entry_id, body.name), "Template").to_dict()

    @app.delete("/templates/{entry_id}")
    async def delete_template(entry_id: str):
        if not manager.templates.delete(entry_id):
            raise EntryNotFoundError("Template not found")
        return {"success": True}

    @app.post("/templates/{entry_id}/favorite")
    async def favorite_template(entry_id: str):
        return _found(manager.templates.toggle_favorite(entry_id), "Template").to_dict()

    @app.post("/templates/{entry_id}/apply")
    async def apply_template(entry_id: str):
        manager.apply_template(entry_id)
        return manager.state()

    # Presets

    @app.get("/presets/export")
    async def export_presets():
        filename, body = manager.export_presets()
        headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
        return Response(content=body, media_type="application/json", headers=headers)

    @app.post("/presets/import")
    async def import_presets(file: UploadFile = File(...)):
        return manager.import_presets(await file.read()).to_dict()

    # Gallery

    @app.get("/gallery")
    async def list_gallery():
        return [item.to_dict() for item in gallery.list()]

    @app.get("/gallery/{image_id}")
    async def download_image(image_id: str):
        item = _found(gallery.read(image_id), "Image")
        path = gallery.abs_path(item)
        if not path.exists():
            raise EntryNotFoundError("Image file missing")
        return FileResponse(path, media_type="image/png", filename=item.download_name())

    @app.delete("/gallery/{image_id}")
    async def delete_image(image_id: str):
        if not gallery.delete(image_id):
            raise EntryNotFoundError("Image not found")
        return {"success": True}

    @app.post("/gallery/{image_id}/regenerate")
    async def regenerate_image(image_id: str):
        item = _found(gallery.read(image_id), "Image")
        return _result_payload(await manager.regenerate(item))

    return app


def run() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("async_studio.api.app:create_app", factory=True, host=settings.host, port=settings.port)
