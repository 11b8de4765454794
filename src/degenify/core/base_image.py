"""Base image loading and image type detection."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from degenify.core.errors import BaseImageMissingError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes together with their MIME type."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def extension(self) -> str:
        """File extension matching ``mime_type`` (without the dot)."""
        subtype = self.mime_type.split("/", 1)[-1]
        return "jpg" if subtype == "jpeg" else subtype


def sniff_mime_type(data: bytes, default: str = DEFAULT_MIME_TYPE) -> str:
    """Detect the MIME type of encoded image bytes.

    Only the header is parsed; pixel data is never decoded.  Unknown or
    corrupt data falls back to ``default``.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format or "", default)
    except (UnidentifiedImageError, OSError):
        return default


def load_base_image(path: Path | str) -> ImagePayload:
    """Read the base image from disk.

    The file is read on every call so that replacing it on disk takes effect
    without a restart.

    Args:
        path: Location of the base image.

    Returns:
        The image bytes and detected MIME type.

    Raises:
        BaseImageMissingError: If ``path`` does not point to a file.
    """
    path = Path(path)
    if not path.is_file():
        logger.warning(f"Base image missing at {path}")
        raise BaseImageMissingError(path)

    data = path.read_bytes()
    return ImagePayload(data=data, mime_type=sniff_mime_type(data))
