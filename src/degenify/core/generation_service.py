"""Request orchestration for ``POST /api/generate``.

The flow is strictly sequential::

    compose_prompt -> load_base_image -> GenerationClient.generate -> PersistenceAdapter.save

Upstream calls are gated by a process-wide :class:`asyncio.Semaphore` so a
burst of requests cannot open an unbounded number of concurrent generations.
Identical prompts are not coalesced: each request produces its own upstream
call and its own record.

The persistence adapter talks to blocking SDKs (SQLAlchemy, Cloudinary), so
it runs in a worker thread via :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from degenify.core.base_image import ImagePayload, load_base_image
from degenify.core.generation_client import GenerationClient
from degenify.core.persistence import PersistenceAdapter
from degenify.core.prompt_builder import compose_prompt
from degenify.core.records import GeneratedImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one generate request.

    ``record`` is ``None`` in preview mode, where no upstream call is made
    and nothing is stored.
    """

    image: ImagePayload
    record: GeneratedImage | None


class GenerationService:
    """Wire the compositor, upstream client and persistence together.

    Args:
        base_image_path: Image every generation edits.
        client: Upstream client, or ``None`` to run in preview mode (the base
            image is echoed back unchanged).
        persistence: Writer for new records.
        max_concurrent: Cap on in-flight upstream calls.
    """

    def __init__(
        self,
        base_image_path: Path | str,
        client: GenerationClient | None,
        persistence: PersistenceAdapter,
        *,
        max_concurrent: int = 4,
    ) -> None:
        self.base_image_path = Path(base_image_path)
        self.client = client
        self.persistence = persistence
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def preview_mode(self) -> bool:
        return self.client is None

    async def generate(self, prompt: str | None) -> GenerationResult:
        """Generate, store and return one image for ``prompt``.

        Raises:
            EmptyPromptError: ``prompt`` is missing or blank.
            BaseImageMissingError: The base image file is absent.
            UpstreamError, NoImageReturnedError: The upstream call failed.
            PersistenceError: Storing the result failed.
        """
        instruction = compose_prompt(prompt)
        base_image = await asyncio.to_thread(load_base_image, self.base_image_path)

        if self.client is None:
            logger.warning("No API key configured; returning the base image unchanged")
            return GenerationResult(image=base_image, record=None)

        async with self._semaphore:
            image = await self.client.generate(instruction, base_image)

        record = await asyncio.to_thread(self.persistence.save, prompt, image)
        return GenerationResult(image=image, record=record)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
