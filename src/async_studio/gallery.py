from __future__ import annotations

import hashlib
import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from async_studio.config import settings
from async_studio.providers.base import GeneratedImage

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sha256_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


@dataclass(frozen=True)
class GalleryItem:
    image_id: str
    filename: str
    rel_path: str
    sha256: str
    created_at: str
    prompt: str
    parameters: dict[str, Any]
    provider: str
    model: str
    reference_image: str | None = None

    def download_name(self) -> str:
        # Stable per image; mirrors the browser client's "Async-Ai-<ms>" naming.
        created = datetime.fromisoformat(self.created_at)
        return f"Async-Ai-{int(created.timestamp() * 1000)}.png"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class GalleryStore:
    """Generated images on disk, each with a JSON manifest next to it."""

    def __init__(self, root_dir: Path | None = None) -> None:
        self.root_dir = Path(root_dir or Path(settings.data_dir) / "gallery").resolve()
        self.images_dir = self.root_dir / "images"
        self.runs_dir = self.root_dir / "runs"
        self.images_dir.mkdir(parents=True, exist_ok=True)
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def save(
        self,
        generated: GeneratedImage,
        prompt: str,
        parameters: dict[str, Any],
        reference_image: str | None = None,
    ) -> GalleryItem:
        image_id = uuid.uuid4().hex[:12]
        content = generated.to_png_bytes()
        filename = f"{image_id}.png"
        rel_path = str(Path("images") / filename)
        (self.root_dir / rel_path).write_bytes(content)

        item = GalleryItem(
            image_id=image_id,
            filename=filename,
            rel_path=rel_path,
            sha256=_sha256_bytes(content),
            created_at=_now_iso(),
            prompt=prompt,
            parameters=dict(parameters),
            provider=generated.provider,
            model=generated.model,
            reference_image=reference_image,
        )
        self._write_manifest(item)
        return item

    def list(self) -> list[GalleryItem]:
        out: list[GalleryItem] = []
        for path in self.images_dir.glob("*.json"):
            try:
                out.append(self._read_manifest(path))
            except (OSError, ValueError, TypeError, KeyError):
                logger.warning("Ignoring unreadable gallery manifest %s", path)
                continue
        return sorted(out, key=lambda item: item.created_at, reverse=True)

    def read(self, image_id: str) -> GalleryItem | None:
        path = self.images_dir / f"{os.path.basename(image_id)}.json"
        if not path.exists():
            return None
        return self._read_manifest(path)

    def abs_path(self, item: GalleryItem) -> Path:
        return self.root_dir / item.rel_path

    def delete(self, image_id: str) -> bool:
        item = self.read(image_id)
        if item is None:
            return False
        self.abs_path(item).unlink(missing_ok=True)
        (self.images_dir / f"{item.image_id}.json").unlink(missing_ok=True)
        return True

    def write_run_manifest(self, manifest: dict[str, Any]) -> Path:
        run_id = uuid.uuid4().hex[:12]
        path = self.runs_dir / f"run_{run_id}.json"
        manifest = dict(manifest)
        manifest.setdefault("run_id", run_id)
        manifest.setdefault("created_at", _now_iso())
        path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        return path

    def _write_manifest(self, item: GalleryItem) -> None:
        path = self.images_dir / f"{item.image_id}.json"
        path.write_text(json.dumps(item.to_dict(), indent=2), encoding="utf-8")

    def _read_manifest(self, path: Path) -> GalleryItem:
        data = json.loads(path.read_text("utf-8"))
        return GalleryItem(**data)
