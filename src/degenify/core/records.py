"""Generated image records and their storage locations.

A :class:`GeneratedImage` is created exactly once, by the persistence
adapter, after a successful generation.  It is never updated or deleted
through the API.

Where the image bytes live depends on the blob backend, so the location is a
tagged union discriminated by ``kind``:

- :class:`InlineImage` — base64 payload stored inside the record itself.
- :class:`RemoteImage` — public URL plus the provider's identifier.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class InlineImage(BaseModel):
    """Image bytes kept inline as base64."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["inline"] = "inline"
    data: str = Field(..., description="Base64-encoded image bytes.")


class RemoteImage(BaseModel):
    """Image stored with an object storage provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["remote"] = "remote"
    url: str = Field(..., description="Public retrieval URL.")
    public_id: str = Field(
        ...,
        alias="publicId",
        description="Provider-assigned identifier, used for deletion.",
    )


ImageLocation = Annotated[Union[InlineImage, RemoteImage], Field(discriminator="kind")]


class GeneratedImage(BaseModel):
    """One persisted generation result.

    Serialised with camelCase aliases (``imageLocation``) to match the
    gallery JSON contract; attribute access stays snake_case.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    prompt: str
    image_location: ImageLocation = Field(..., alias="imageLocation")
    timestamp: datetime


def new_record_id() -> str:
    """Return a fresh record id: creation time in ms plus 48 random bits."""
    return f"{time.time_ns() // 1_000_000}-{secrets.token_hex(6)}"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
