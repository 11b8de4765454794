"""Tests for degenify.core.base_image — base image loading and MIME sniffing."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from degenify.core.base_image import ImagePayload, load_base_image, sniff_mime_type
from degenify.core.errors import BaseImageMissingError


class TestLoadBaseImage:
    def test_reads_bytes(self, base_image_path, base_image_bytes):
        payload = load_base_image(base_image_path)
        assert payload.data == base_image_bytes
        assert payload.mime_type == "image/png"

    def test_accepts_string_path(self, base_image_path):
        assert load_base_image(str(base_image_path)).mime_type == "image/png"

    def test_missing_file_raises(self, temp_dir):
        with pytest.raises(BaseImageMissingError) as exc_info:
            load_base_image(temp_dir / "nope.png")
        assert "nope.png" in str(exc_info.value)

    def test_directory_is_not_an_image(self, temp_dir):
        with pytest.raises(BaseImageMissingError):
            load_base_image(temp_dir)

    def test_reread_on_every_call(self, base_image_path):
        """Replacing the file on disk takes effect immediately."""
        load_base_image(base_image_path)
        base_image_path.write_bytes(b"replaced")
        assert load_base_image(base_image_path).data == b"replaced"


class TestSniffMimeType:
    def test_jpeg(self):
        buffer = io.BytesIO()
        Image.new("RGB", (4, 4), "red").save(buffer, format="JPEG")
        assert sniff_mime_type(buffer.getvalue()) == "image/jpeg"

    def test_unknown_bytes_fall_back(self):
        assert sniff_mime_type(b"not an image") == "image/png"

    def test_custom_default(self):
        assert sniff_mime_type(b"", default="application/octet-stream") == "application/octet-stream"


class TestImagePayload:
    @pytest.mark.parametrize(
        "mime_type, extension",
        [("image/png", "png"), ("image/jpeg", "jpg"), ("image/webp", "webp")],
    )
    def test_extension(self, mime_type, extension):
        assert ImagePayload(b"", mime_type).extension == extension
