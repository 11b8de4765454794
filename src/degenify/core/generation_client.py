"""Client for the Gemini ``generateContent`` image editing endpoint.

One call sends the composed instruction plus the base image and expects an
edited image back.  The response is normalised once, here, into an
:class:`~degenify.core.base_image.ImagePayload`; nothing downstream inspects
raw upstream JSON.

Response Shape
--------------
Only the path to the first image part matters::

    {"candidates": [{"content": {"parts": [
        {"text": "..."},
        {"inlineData": {"mimeType": "image/png", "data": "<base64>"}}
    ]}}]}

The REST API has been observed to answer with either ``inlineData`` /
``mimeType`` or ``inline_data`` / ``mime_type``.  Both casings are accepted
through pydantic alias choices on :class:`InlineBlob` and :class:`ResponsePart`.

Resilience
----------
Server errors (5xx) and transport failures are retried up to
``max_retries`` times with exponential backoff.  Client errors (4xx) are
never retried.  Whatever is left after the last attempt surfaces as
:class:`~degenify.core.errors.UpstreamError` carrying the raw body.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from degenify.core.base_image import DEFAULT_MIME_TYPE, ImagePayload
from degenify.core.errors import NoImageReturnedError, UpstreamError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Response models.
# ---------------------------------------------------------------------------


class InlineBlob(BaseModel):
    """Inline binary part, accepted in either casing."""

    model_config = ConfigDict(extra="ignore")

    mime_type: str = Field(
        default=DEFAULT_MIME_TYPE,
        validation_alias=AliasChoices("mime_type", "mimeType"),
    )
    data: str | None = None


class ResponsePart(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str | None = None
    inline_data: InlineBlob | None = Field(
        default=None,
        validation_alias=AliasChoices("inline_data", "inlineData"),
    )


class ResponseContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    parts: list[ResponsePart] = Field(default_factory=list)


class Candidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: ResponseContent | None = None


class GenerateContentResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    candidates: list[Candidate] = Field(default_factory=list)


def extract_image(data: Any) -> ImagePayload:
    """Pull the first image out of a ``generateContent`` response.

    Args:
        data: Decoded JSON response body.

    Returns:
        The decoded image bytes and their MIME type.

    Raises:
        NoImageReturnedError: If the response has no image part, or the
            payload is not valid base64.
    """
    try:
        response = GenerateContentResponse.model_validate(data)
    except ValidationError as e:
        raise NoImageReturnedError(data) from e

    if not response.candidates or response.candidates[0].content is None:
        raise NoImageReturnedError(data)

    for part in response.candidates[0].content.parts:
        if part.inline_data is not None and part.inline_data.data:
            try:
                image_bytes = base64.b64decode(part.inline_data.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise NoImageReturnedError(data) from e
            return ImagePayload(data=image_bytes, mime_type=part.inline_data.mime_type)

    raise NoImageReturnedError(data)


def build_request_body(instruction: str, base_image: ImagePayload) -> dict:
    """Build the JSON body for a ``generateContent`` call."""
    return {
        "contents": [
            {
                "parts": [
                    {"text": instruction},
                    {
                        "inlineData": {
                            "mimeType": base_image.mime_type,
                            "data": base64.b64encode(base_image.data).decode("ascii"),
                        },
                    },
                ],
            },
        ],
    }


# ---------------------------------------------------------------------------
# Client.
# ---------------------------------------------------------------------------


class GenerationClient:
    """Asynchronous client for the image generation endpoint.

    Attributes:
        url: Full ``generateContent`` URL including the model id.
        max_retries: Extra attempts after a retryable failure.
        backoff: Base delay in seconds, doubled on every retry.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 120.0,
        max_retries: int = 2,
        backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.max_retries = max_retries
        self.backoff = backoff
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(self, instruction: str, base_image: ImagePayload) -> ImagePayload:
        """Request an edited image.

        Args:
            instruction: Composed instruction text.
            base_image: Image to edit.

        Returns:
            The generated image.

        Raises:
            UpstreamError: On transport failure, a non-success status, or a
                non-JSON success body.
            NoImageReturnedError: If the response contains no image.
        """
        body = build_request_body(instruction, base_image)
        response = await self._post_with_retry(body)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(response.status_code, response.text) from e

        return extract_image(data)

    async def _post_with_retry(self, body: dict) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._client.post(self.url, json=body)
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    await self._sleep_before_retry(attempt, f"transport error: {e}")
                    attempt += 1
                    continue
                logger.warning(f"Image generation request failed: {e}")
                raise UpstreamError(None, str(e)) from e

            if response.is_success:
                return response

            if response.is_server_error and attempt < self.max_retries:
                await self._sleep_before_retry(attempt, f"status {response.status_code}")
                attempt += 1
                continue

            logger.warning(f"Image generation returned {response.status_code}: {response.text[:500]}")
            raise UpstreamError(response.status_code, response.text)

    async def _sleep_before_retry(self, attempt: int, reason: str) -> None:
        delay = self.backoff * (2**attempt)
        logger.info(f"Retrying image generation in {delay:.2f}s ({reason})")
        await asyncio.sleep(delay)
