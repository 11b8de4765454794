"""Tests for degenify.core.generation_service — request orchestration.

A stub client stands in for the upstream so concurrency behaviour can be
observed directly:

- Concurrent identical prompts produce independent records.
- The number of in-flight upstream calls never exceeds the cap.
- Failures before or during generation create no records.
- Preview mode echoes the base image and stores nothing.
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from degenify.core import generation_service
from degenify.core.base_image import ImagePayload, load_base_image
from degenify.core.blob_store import InlineBlobStore
from degenify.core.errors import BaseImageMissingError, EmptyPromptError, UpstreamError
from degenify.core.generation_service import GenerationService
from degenify.core.persistence import PersistenceAdapter
from degenify.core.prompt_builder import compose_prompt
from degenify.core.record_store import InMemoryRecordStore


class StubClient:
    """Records calls and tracks peak concurrency."""

    def __init__(self, result: bytes = b"generated", *, delay: float = 0.0, error: Exception | None = None):
        self.result = result
        self.delay = delay
        self.error = error
        self.calls: list[tuple[str, ImagePayload]] = []
        self.in_flight = 0
        self.peak = 0
        self.closed = False

    async def generate(self, instruction: str, base_image: ImagePayload) -> ImagePayload:
        self.calls.append((instruction, base_image))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return ImagePayload(self.result, "image/png")
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def records() -> InMemoryRecordStore:
    return InMemoryRecordStore()


def _service(base_image_path, client, records, *, max_concurrent: int = 4) -> GenerationService:
    return GenerationService(
        base_image_path,
        client,
        PersistenceAdapter(InlineBlobStore(), records),
        max_concurrent=max_concurrent,
    )


class TestGenerate:
    def test_success_creates_one_record(self, base_image_path, base_image_bytes, records):
        client = StubClient(b"new image")
        result = asyncio.run(_service(base_image_path, client, records).generate("at the beach"))

        assert result.image.data == b"new image"
        assert result.record is not None
        assert result.record.prompt == "at the beach"
        assert [r.id for r in records.list_descending()] == [result.record.id]

    def test_client_receives_composed_prompt_and_base_image(self, base_image_path, base_image_bytes, records):
        client = StubClient()
        asyncio.run(_service(base_image_path, client, records).generate("at the beach"))

        instruction, base_image = client.calls[0]
        assert instruction == compose_prompt("at the beach")
        assert base_image.data == base_image_bytes

    def test_base_image_read_off_event_loop(self, base_image_path, records, monkeypatch):
        """The base image file is read in a worker thread."""
        threads: list[threading.Thread] = []

        def recording_load(path):
            threads.append(threading.current_thread())
            return load_base_image(path)

        monkeypatch.setattr(generation_service, "load_base_image", recording_load)
        asyncio.run(_service(base_image_path, StubClient(), records).generate("hi"))

        assert len(threads) == 1
        assert threads[0] is not threading.main_thread()

    def test_empty_prompt_creates_nothing(self, base_image_path, records):
        client = StubClient()
        with pytest.raises(EmptyPromptError):
            asyncio.run(_service(base_image_path, client, records).generate(""))
        assert client.calls == []
        assert records.list_descending() == []

    def test_missing_base_image(self, temp_dir, records):
        client = StubClient()
        with pytest.raises(BaseImageMissingError):
            asyncio.run(_service(temp_dir / "missing.png", client, records).generate("hi"))
        assert client.calls == []

    def test_upstream_error_creates_nothing(self, base_image_path, records):
        client = StubClient(error=UpstreamError(500, "down"))
        with pytest.raises(UpstreamError):
            asyncio.run(_service(base_image_path, client, records).generate("hi"))
        assert records.list_descending() == []


class TestConcurrency:
    def test_identical_concurrent_prompts_are_not_coalesced(self, base_image_path, records):
        client = StubClient(delay=0.01)
        service = _service(base_image_path, client, records)

        async def burst():
            return await asyncio.gather(*(service.generate("same prompt") for _ in range(5)))

        results = asyncio.run(burst())

        assert len(client.calls) == 5
        assert len({r.record.id for r in results}) == 5
        assert len(records.list_descending()) == 5
        assert all(r.prompt == "same prompt" for r in records.list_descending())

    def test_in_flight_calls_capped(self, base_image_path, records):
        client = StubClient(delay=0.02)
        service = _service(base_image_path, client, records, max_concurrent=2)

        async def burst():
            await asyncio.gather(*(service.generate(f"prompt {i}") for i in range(6)))

        asyncio.run(burst())

        assert len(client.calls) == 6
        assert client.peak == 2


class TestPreviewMode:
    def test_echoes_base_image_without_storing(self, base_image_path, base_image_bytes, records):
        service = _service(base_image_path, None, records)
        result = asyncio.run(service.generate("anything"))

        assert service.preview_mode is True
        assert result.image.data == base_image_bytes
        assert result.record is None
        assert records.list_descending() == []

    def test_still_validates_prompt(self, base_image_path, records):
        with pytest.raises(EmptyPromptError):
            asyncio.run(_service(base_image_path, None, records).generate(None))


def test_aclose_closes_client(base_image_path, records):
    client = StubClient()
    asyncio.run(_service(base_image_path, client, records).aclose())
    assert client.closed is True
