"""Degenify: FastAPI Application.

This module is the single entry point for the web service.  It defines the
application factory, all REST API routes, the error-to-status mapping, and
the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :class:`~degenify.core.config.DegenifyConfig`
  (``DEGENIFY_*`` environment variables or ``.env``).
- **Generation** is orchestrated by
  :class:`~degenify.core.generation_service.GenerationService`: prompt
  composition, one upstream call, then persistence.
- **Storage** is injected: a record store (memory, JSON file or SQL) for
  metadata and a blob store (inline or Cloudinary) for image bytes.  Both
  are built in the lifespan handler and kept on ``app.state``.
- **Share pages** are rendered per request as raw ``HTMLResponse`` with no
  template engine.
- **Static assets** (the frontend) are mounted at ``/`` when the configured
  directory exists.

Endpoints
---------
========  ==========================  ======================================
Method    Path                        Purpose
========  ==========================  ======================================
POST      ``/api/generate``           Generate, store and return one image
GET       ``/api/gallery``            All records, newest first
GET       ``/api/image/{id}``         Raw image bytes
GET       ``/api/share/{id}``         HTML page with link-preview tags
GET       ``/api/download/{id}``      Attachment download or redirect
GET       ``/api/health``             Liveness probe
========  ==========================  ======================================

Usage
-----
CLI (installed entry point)::

    degenify

Direct invocation::

    python -m degenify.api.main
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles

from degenify import __version__
from degenify.api.models import GalleryItem, GenerateRequest
from degenify.api.share_page import choose_preview_image_url, render_share_page
from degenify.core.base_image import ImagePayload, sniff_mime_type
from degenify.core.blob_store import BlobStore, CloudinaryBlobStore, InlineBlobStore
from degenify.core.config import DegenifyConfig, config
from degenify.core.errors import (
    BaseImageMissingError,
    EmptyPromptError,
    NoImageReturnedError,
    PersistenceError,
    RecordNotFoundError,
    UpstreamError,
)
from degenify.core.generation_client import GenerationClient
from degenify.core.generation_service import GenerationService
from degenify.core.persistence import PersistenceAdapter
from degenify.core.record_store import (
    InMemoryRecordStore,
    JsonRecordStore,
    RecordStore,
    SqlRecordStore,
)
from degenify.core.records import GeneratedImage, RemoteImage

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Component construction from configuration.
# ---------------------------------------------------------------------------


def build_record_store(settings: DegenifyConfig) -> RecordStore:
    """Create the record store selected by ``settings.record_backend``."""
    if settings.record_backend == "memory":
        return InMemoryRecordStore()
    if settings.record_backend == "json":
        return JsonRecordStore(settings.gallery_json_path)
    return SqlRecordStore(settings.database_url)


def build_blob_store(settings: DegenifyConfig) -> BlobStore:
    """Create the blob store selected by ``settings.blob_backend``."""
    if settings.blob_backend == "cloudinary":
        return CloudinaryBlobStore(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
            folder=settings.cloudinary_folder,
        )
    return InlineBlobStore()


def build_generation_client(settings: DegenifyConfig) -> GenerationClient | None:
    """Create the upstream client, or ``None`` when no API key is configured."""
    if not settings.google_api_key:
        return None
    return GenerationClient(
        settings.generate_content_url,
        settings.google_api_key,
        timeout=settings.generation_timeout,
        max_retries=settings.generation_max_retries,
        backoff=settings.generation_retry_backoff,
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: DegenifyConfig | None = None,
    *,
    record_store: RecordStore | None = None,
    blob_store: BlobStore | None = None,
    generation_client: GenerationClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Components not passed explicitly are built from ``settings`` when the
    application starts, so importing this module never touches the database
    or the network.

    Args:
        settings: Configuration; defaults to the global ``config``.
        record_store: Metadata store override (tests).
        blob_store: Image byte store override (tests).
        generation_client: Upstream client override (tests).

    Returns:
        The configured application.
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build storage and the generation service; release them on shutdown."""
        # --- Startup -------------------------------------------------------
        records = record_store if record_store is not None else build_record_store(settings)
        blobs = blob_store if blob_store is not None else build_blob_store(settings)
        client = generation_client if generation_client is not None else build_generation_client(settings)

        app.state.record_store = records
        app.state.blob_store = blobs
        app.state.generation_service = GenerationService(
            settings.base_image_path,
            client,
            PersistenceAdapter(blobs, records),
            max_concurrent=settings.max_concurrent_generations,
        )
        if client is None:
            logger.warning("No API key configured; /api/generate will echo the base image.")
        logger.info(
            f"Degenify started (records={type(records).__name__}, blobs={type(blobs).__name__}, "
            f"model={settings.model_id})"
        )

        yield  # Application runs here.

        # --- Shutdown ------------------------------------------------------
        await app.state.generation_service.aclose()
        records.close()

    app = FastAPI(
        title="Degenify",
        description="Put the purple-hat character into any situation and share the result.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_routes(app)

    # Mounted last so that API routes take precedence over static files.
    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(settings.static_dir), html=True), name="static")

    return app


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


def _storage_error(exc: PersistenceError, path: str) -> HTTPException:
    logger.error(f"Storage error on {path}: {exc}", exc_info=exc)
    return HTTPException(status_code=500, detail="Storage error")


async def _get_record(request: Request, image_id: str) -> GeneratedImage:
    """Look up a record or raise a 404."""
    store: RecordStore = request.app.state.record_store
    try:
        record = await asyncio.to_thread(store.get_by_id, image_id)
    except PersistenceError as e:
        raise _storage_error(e, request.url.path) from e
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return record


async def _load_bytes(request: Request, record: GeneratedImage) -> ImagePayload:
    """Fetch a record's image bytes from the blob store or raise a 404."""
    blobs: BlobStore = request.app.state.blob_store
    try:
        data = await asyncio.to_thread(blobs.fetch, record.image_location)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Image not found in storage")
    except PersistenceError as e:
        raise _storage_error(e, request.url.path) from e
    return ImagePayload(data=data, mime_type=sniff_mime_type(data))


def _register_routes(app: FastAPI) -> None:
    @app.post("/api/generate")
    async def generate_image(request: Request, req: GenerateRequest | None = None) -> Response:
        """Generate one image for the prompt and store it.

        The response body is the image itself.  When a record was created
        its id is returned in the ``X-Image-Id`` header.  Upstream failures
        are answered with 502 and the raw upstream body under ``upstream``.

        Raises:
            HTTPException: 400 for a missing or blank prompt or an absent
                base image, 500 when the result could not be stored.
        """
        service: GenerationService = request.app.state.generation_service
        try:
            result = await service.generate(req.prompt if req else None)
        except (EmptyPromptError, BaseImageMissingError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except UpstreamError as e:
            logger.warning(f"Upstream error (status={e.status_code})")
            return JSONResponse(
                status_code=502,
                content={"detail": "Upstream image service error", "upstream": e.detail},
            )
        except NoImageReturnedError as e:
            logger.warning("Upstream response contained no image")
            return JSONResponse(
                status_code=502,
                content={"detail": "No image returned", "upstream": e.response},
            )
        except PersistenceError as e:
            raise _storage_error(e, request.url.path) from e

        headers = {}
        if result.record is not None:
            headers["X-Image-Id"] = result.record.id
        return Response(content=result.image.data, media_type=result.image.mime_type, headers=headers)

    @app.get("/api/gallery", response_model=list[GalleryItem])
    async def get_gallery(request: Request) -> list[GalleryItem]:
        """Return every stored record, newest first."""
        store: RecordStore = request.app.state.record_store
        try:
            records = await asyncio.to_thread(store.list_descending)
        except PersistenceError as e:
            raise _storage_error(e, request.url.path) from e
        return [GalleryItem.from_record(record) for record in records]

    @app.get("/api/image/{image_id}", name="serve_image")
    async def serve_image(request: Request, image_id: str) -> Response:
        """Serve raw image bytes; remote images are fetched server-side."""
        record = await _get_record(request, image_id)
        image = await _load_bytes(request, record)
        return Response(
            content=image.data,
            media_type=image.mime_type,
            headers={"Cache-Control": "public, max-age=31536000"},
        )

    @app.get("/api/share/{image_id}", name="share_page", response_class=HTMLResponse)
    async def share_page(request: Request, image_id: str) -> Response:
        """Render the link-preview page for one record."""
        store: RecordStore = request.app.state.record_store
        try:
            record = await asyncio.to_thread(store.get_by_id, image_id)
        except PersistenceError as e:
            raise _storage_error(e, request.url.path) from e
        if record is None:
            return PlainTextResponse("Image not found", status_code=404)

        settings: DegenifyConfig = request.app.state.settings
        direct_url = str(request.url_for("serve_image", image_id=record.id))
        html = render_share_page(
            record,
            site_url=str(request.base_url),
            share_url=str(request.url_for("share_page", image_id=record.id)),
            page_image_url=direct_url,
            preview_image_url=choose_preview_image_url(
                record, direct_url, source=settings.share_image_source
            ),
            settings=settings,
        )
        return HTMLResponse(content=html)

    @app.get("/api/download/{image_id}")
    async def download_image(request: Request, image_id: str) -> Response:
        """Download a record's image as an attachment.

        Remotely stored images are redirected to the storage URL unless the
        service is configured to proxy them.
        """
        record = await _get_record(request, image_id)
        settings: DegenifyConfig = request.app.state.settings

        location = record.image_location
        if isinstance(location, RemoteImage) and settings.download_mode == "redirect":
            return RedirectResponse(location.url, status_code=307)

        image = await _load_bytes(request, record)
        filename = f"meme-{record.id}.{image.extension}"
        return Response(
            content=image.data,
            media_type=image.mime_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~degenify.core.config.config`
    (``DEGENIFY_SERVER_HOST``, ``DEGENIFY_SERVER_PORT``,
    ``DEGENIFY_LOG_LEVEL``).  Defaults to ``0.0.0.0:3000``.

    Registered as the ``degenify`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "degenify.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
