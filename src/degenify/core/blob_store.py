"""Image byte storage backends.

A blob store turns raw image bytes into an
:data:`~degenify.core.records.ImageLocation` and back:

- ``upload(record_id, payload)`` — store bytes under a per-record path
- ``fetch(location)`` — retrieve the bytes for a stored location
- ``delete(location)`` — remove stored bytes (used to compensate a failed
  metadata insert)

:class:`InlineBlobStore` keeps the bytes inside the record as base64 and
needs no external service.  :class:`CloudinaryBlobStore` uploads to
Cloudinary and records the ``secure_url`` and ``public_id``.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import Protocol

import cloudinary
import cloudinary.uploader
import httpx

from degenify.core.base_image import ImagePayload
from degenify.core.errors import PersistenceError, RecordNotFoundError
from degenify.core.records import ImageLocation, InlineImage, RemoteImage

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Capability every blob backend provides."""

    def upload(self, record_id: str, payload: ImagePayload) -> ImageLocation: ...

    def fetch(self, location: ImageLocation) -> bytes: ...

    def delete(self, location: ImageLocation) -> None: ...


def decode_inline(location: InlineImage) -> bytes:
    """Decode an inline base64 payload, raising ``PersistenceError`` if corrupt."""
    try:
        return base64.b64decode(location.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PersistenceError(f"Stored image data is not valid base64: {e}") from e


def fetch_remote(url: str, *, timeout: float = 30.0, transport: httpx.BaseTransport | None = None) -> bytes:
    """Download a remotely stored image.

    Raises:
        RecordNotFoundError: If the storage provider does not return the
            image (non-success status or transport failure).
    """
    try:
        with httpx.Client(timeout=timeout, follow_redirects=True, transport=transport) as client:
            response = client.get(url)
    except httpx.HTTPError as e:
        logger.warning(f"Fetching stored image {url} failed: {e}")
        raise RecordNotFoundError(url) from e

    if response.is_error:
        logger.warning(f"Storage returned {response.status_code} for {url}")
        raise RecordNotFoundError(url)
    return response.content


class InlineBlobStore:
    """Keep image bytes inside the record as base64."""

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        # Used only if a record written by another backend points elsewhere.
        self._transport = transport

    def upload(self, record_id: str, payload: ImagePayload) -> ImageLocation:
        return InlineImage(data=base64.b64encode(payload.data).decode("ascii"))

    def fetch(self, location: ImageLocation) -> bytes:
        if isinstance(location, InlineImage):
            return decode_inline(location)
        return fetch_remote(location.url, transport=self._transport)

    def delete(self, location: ImageLocation) -> None:
        # Inline bytes vanish with the record; nothing external to clean up.
        pass


class CloudinaryBlobStore:
    """Upload image bytes to Cloudinary.

    Each record is stored under the deterministic public id
    ``<folder>/<record_id>``.
    """

    def __init__(
        self,
        cloud_name: str | None,
        api_key: str | None,
        api_secret: str | None,
        *,
        folder: str = "degenify",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not (cloud_name and api_key and api_secret):
            raise ValueError("Cloudinary credentials are not configured")
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )
        self.folder = folder.strip("/")
        self._transport = transport

    def public_id_for(self, record_id: str) -> str:
        return f"{self.folder}/{record_id}" if self.folder else record_id

    def upload(self, record_id: str, payload: ImagePayload) -> ImageLocation:
        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(payload.data),
                public_id=self.public_id_for(record_id),
                resource_type="image",
                overwrite=False,
            )
        except Exception as e:
            # The SDK raises its own Error type as well as transport errors.
            raise PersistenceError(f"Cloudinary upload failed for {record_id}: {e}") from e

        logger.info(f"Uploaded image {record_id} to Cloudinary as {result['public_id']}")
        return RemoteImage(url=result["secure_url"], public_id=result["public_id"])

    def fetch(self, location: ImageLocation) -> bytes:
        if isinstance(location, InlineImage):
            return decode_inline(location)
        return fetch_remote(location.url, transport=self._transport)

    def delete(self, location: ImageLocation) -> None:
        if not isinstance(location, RemoteImage):
            return
        try:
            cloudinary.uploader.destroy(location.public_id, resource_type="image", invalidate=True)
        except Exception as e:
            raise PersistenceError(f"Cloudinary delete failed for {location.public_id}: {e}") from e
        logger.info(f"Deleted orphaned Cloudinary image {location.public_id}")
