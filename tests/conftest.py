"""Shared pytest fixtures for Degenify tests."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from degenify.api.main import create_app
from degenify.core.blob_store import InlineBlobStore
from degenify.core.config import DegenifyConfig
from degenify.core.generation_client import GenerationClient
from degenify.core.record_store import InMemoryRecordStore

from tests.helpers import TEST_API_URL, FakeUpstream, image_response, make_png


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def base_image_bytes() -> bytes:
    return make_png("purple")


@pytest.fixture
def generated_image_bytes() -> bytes:
    return make_png("orange", size=(16, 16))


@pytest.fixture
def base_image_path(temp_dir: Path, base_image_bytes: bytes) -> Path:
    path = temp_dir / "public" / "base.png"
    path.parent.mkdir(parents=True)
    path.write_bytes(base_image_bytes)
    return path


@pytest.fixture
def test_config(temp_dir: Path, base_image_path: Path) -> DegenifyConfig:
    """Create a test configuration isolated from the environment.

    Args:
        temp_dir: Temporary directory from fixture
        base_image_path: Base image written by fixture

    Returns:
        DegenifyConfig using in-memory records and inline blobs
    """
    return DegenifyConfig(
        _env_file=None,
        google_api_key="test-key",
        google_api_base="https://upstream.test",
        model_id="test-model",
        base_image_path=base_image_path,
        record_backend="memory",
        blob_backend="inline",
        gallery_json_path=temp_dir / "data" / "gallery.json",
        database_url=f"sqlite:///{temp_dir / 'data' / 'test.db'}",
        static_dir=temp_dir / "no-static",
        generation_max_retries=1,
        generation_retry_backoff=0.0,
    )


@pytest.fixture
def fake_upstream(generated_image_bytes: bytes) -> FakeUpstream:
    """Upstream that always succeeds with ``generated_image_bytes``."""
    return FakeUpstream(httpx.Response(200, json=image_response(generated_image_bytes)))


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def make_client(
    test_config: DegenifyConfig, record_store: InMemoryRecordStore
) -> Generator[Callable[..., TestClient], None, None]:
    """Factory for TestClients wired to a fake upstream.

    The returned callable accepts an optional :class:`FakeUpstream`, an
    optional ``blob_store`` replacing the default inline store, and config
    overrides.  Clients are closed (running lifespan shutdown) after
    the test.
    """
    clients: list[TestClient] = []

    def _make(
        upstream: FakeUpstream | None = None,
        *,
        blob_store: InlineBlobStore | None = None,
        **overrides,
    ) -> TestClient:
        settings = test_config.model_copy(update=overrides) if overrides else test_config
        generation_client = None
        if upstream is not None:
            generation_client = GenerationClient(
                TEST_API_URL,
                "test-key",
                max_retries=settings.generation_max_retries,
                backoff=0.0,
                transport=upstream.transport,
            )
        app = create_app(
            settings,
            record_store=record_store,
            blob_store=blob_store if blob_store is not None else InlineBlobStore(),
            generation_client=generation_client,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def test_client(make_client, fake_upstream: FakeUpstream) -> TestClient:
    """TestClient whose upstream always returns a generated image."""
    return make_client(fake_upstream)
