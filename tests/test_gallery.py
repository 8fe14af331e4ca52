"""Tests for the on-disk image gallery."""
import json
import re

from PIL import Image

from async_studio.providers.base import GeneratedImage


def _generated() -> GeneratedImage:
    return GeneratedImage(
        image=Image.new("RGB", (3, 3), "blue"),
        prompt_used="a cat",
        provider="fake",
        model="fake-image-1",
        seed=None,
        raw_metadata={},
    )


class TestGalleryStore:
    def test_save_writes_image_and_manifest(self, gallery):
        item = gallery.save(_generated(), "a cat", {"seed": 1})
        assert gallery.abs_path(item).exists()
        assert gallery.read(item.image_id) == item

    def test_list_returns_every_image(self, gallery):
        gallery.save(_generated(), "first", {})
        gallery.save(_generated(), "second", {})
        assert {i.prompt for i in gallery.list()} == {"first", "second"}

    def test_unreadable_manifest_is_skipped(self, gallery):
        item = gallery.save(_generated(), "a cat", {})
        (gallery.images_dir / "broken.json").write_text("{", encoding="utf-8")
        assert [i.image_id for i in gallery.list()] == [item.image_id]

    def test_delete(self, gallery):
        item = gallery.save(_generated(), "a cat", {})
        assert gallery.delete(item.image_id) is True
        assert gallery.read(item.image_id) is None
        assert gallery.delete(item.image_id) is False

    def test_download_name(self, gallery):
        item = gallery.save(_generated(), "a cat", {})
        assert re.fullmatch(r"Async-Ai-\d+\.png", item.download_name())

    def test_run_manifest(self, gallery):
        path = gallery.write_run_manifest({"type": "generate"})
        data = json.loads(path.read_text("utf-8"))
        assert data["type"] == "generate"
        assert "run_id" in data
