"""Pydantic request and response models for the Degenify API.

Models
------
GenerateRequest
    Payload for ``POST /api/generate``.
GalleryItem
    One entry of the ``GET /api/gallery`` listing.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from degenify.core.records import GeneratedImage, ImageLocation


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    ``prompt`` is optional at the schema level so that a missing prompt is
    reported as a 400 by the compositor, like an empty one, rather than as a
    422 validation error.

    Attributes:
        prompt: Situation to place the character in.
    """

    prompt: str | None = Field(
        default=None,
        description="Situation to place the character in.",
    )


class GalleryItem(BaseModel):
    """A single gallery entry as returned by ``GET /api/gallery``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    prompt: str
    image_location: ImageLocation = Field(..., alias="imageLocation")
    timestamp: datetime

    @classmethod
    def from_record(cls, record: GeneratedImage) -> "GalleryItem":
        return cls(
            id=record.id,
            prompt=record.prompt,
            image_location=record.image_location,
            timestamp=record.timestamp,
        )
