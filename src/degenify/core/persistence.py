"""Two-step persistence of generated images.

Saving a generation touches two independent systems: the blob store (image
bytes) and the record store (metadata).  They cannot share a transaction, so
:class:`PersistenceAdapter` runs them as a small saga:

1. ``blob_store.upload`` — store the bytes under ``<record_id>``.
2. ``record_store.append`` — insert the metadata row.

If step 2 fails, the compensating action deletes the blob uploaded in step 1
so no orphaned image is left behind.  A failing compensation is logged with
the provider id (for manual cleanup) and does not mask the original error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from degenify.core.base_image import ImagePayload
from degenify.core.blob_store import BlobStore
from degenify.core.errors import PersistenceError
from degenify.core.record_store import RecordStore
from degenify.core.records import GeneratedImage, new_record_id, utcnow

logger = logging.getLogger(__name__)


class PersistenceAdapter:
    """Sole writer of :class:`GeneratedImage` records."""

    def __init__(
        self,
        blob_store: BlobStore,
        record_store: RecordStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_record_id,
    ) -> None:
        self.blob_store = blob_store
        self.record_store = record_store
        self._clock = clock
        self._id_factory = id_factory

    def save(self, prompt: str, payload: ImagePayload) -> GeneratedImage:
        """Store image bytes and their metadata.

        Args:
            prompt: The user's original prompt (not the composed instruction).
            payload: Generated image bytes.

        Returns:
            The newly created record.

        Raises:
            PersistenceError: If either step fails.
        """
        record_id = self._id_factory()

        try:
            location = self.blob_store.upload(record_id, payload)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Image upload failed for {record_id}: {e}") from e

        record = GeneratedImage(
            id=record_id,
            prompt=prompt,
            image_location=location,
            timestamp=self._clock(),
        )

        try:
            self.record_store.append(record)
        except Exception as e:
            logger.error(f"Metadata insert failed for {record_id}; removing uploaded image", exc_info=True)
            self._compensate(record)
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Metadata insert failed for {record_id}: {e}") from e

        logger.info(f"Stored image {record_id} ({len(payload.data)} bytes)")
        return record

    def _compensate(self, record: GeneratedImage) -> None:
        try:
            self.blob_store.delete(record.image_location)
        except Exception:
            logger.error(
                f"Could not delete orphaned image for {record.id}: {record.image_location!r}",
                exc_info=True,
            )
