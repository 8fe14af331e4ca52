"""Tests for reference image validation."""
import pytest

from async_studio.errors import ReferenceImageError
from async_studio.images import reference_from_bytes, reference_from_data_url


class TestReferenceImages:
    def test_accepts_png(self, png_bytes):
        image = reference_from_bytes(png_bytes, "image/png")
        assert image.mime_type == "image/png"
        assert image.open().size == (2, 2)

    def test_data_url_round_trip(self, png_bytes):
        image = reference_from_bytes(png_bytes, "image/png")
        assert reference_from_data_url(image.to_data_url()).data == png_bytes

    def test_rejects_non_images(self, png_bytes):
        with pytest.raises(ReferenceImageError) as exc:
            reference_from_bytes(png_bytes, "application/pdf")
        assert exc.value.title == "Invalid file type"

    def test_rejects_large_files(self, png_bytes):
        with pytest.raises(ReferenceImageError) as exc:
            reference_from_bytes(png_bytes, "image/png", max_bytes=10)
        assert exc.value.title == "File too large"

    def test_rejects_undecodable_bytes(self):
        with pytest.raises(ReferenceImageError):
            reference_from_bytes(b"not an image", "image/png")

    def test_rejects_plain_urls(self):
        with pytest.raises(ReferenceImageError):
            reference_from_data_url("https://example.com/cat.png")
