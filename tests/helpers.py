"""Test helpers shared by unit and integration tests."""

from __future__ import annotations

import base64
import io
import json

import httpx
from PIL import Image

TEST_API_URL = "https://upstream.test/v1beta/models/test-model:generateContent"


def make_png(color: str = "purple", size: tuple[int, int] = (8, 8)) -> bytes:
    """Encode a small solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def image_response(data: bytes, *, camel_case: bool = True, mime_type: str = "image/png") -> dict:
    """Build a ``generateContent`` success body carrying ``data``."""
    encoded = base64.b64encode(data).decode("ascii")
    if camel_case:
        part = {"inlineData": {"mimeType": mime_type, "data": encoded}}
    else:
        part = {"inline_data": {"mime_type": mime_type, "data": encoded}}
    return {"candidates": [{"content": {"parts": [{"text": "Here you go"}, part]}}]}


class FakeUpstream:
    """Scriptable stand-in for the image generation endpoint.

    ``responses`` is consumed in order; the last entry is repeated once the
    list is exhausted.  Entries are ``httpx.Response`` objects or exceptions
    to raise.

    Attributes:
        requests: Every request received, for assertions.
    """

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(entry, Exception):
            raise entry
        return entry

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def request_json(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)
