"""Core functionality behind the Degenify API.

Architecture Overview
---------------------
The core package is layered leaf-first:

1. **Configuration** (config.py): Pydantic Settings, ``DEGENIFY_`` prefix.
2. **Inputs** (base_image.py, prompt_builder.py): the base image every
   generation edits and the instruction wrapping the user's prompt.
3. **Upstream** (generation_client.py): the image generation HTTP call and
   normalisation of its response.
4. **Storage** (records.py, record_store.py, blob_store.py, persistence.py):
   the record model, injectable metadata and byte stores, and the two-step
   save with compensation.
5. **Orchestration** (generation_service.py): one generate request end to end.

Errors raised by every layer live in errors.py.
"""

from degenify.core.config import DegenifyConfig, config
from degenify.core.errors import (
    BaseImageMissingError,
    DegenifyError,
    EmptyPromptError,
    NoImageReturnedError,
    PersistenceError,
    RecordNotFoundError,
    UpstreamError,
)
from degenify.core.records import GeneratedImage, InlineImage, RemoteImage

__all__ = [
    "BaseImageMissingError",
    "DegenifyConfig",
    "DegenifyError",
    "EmptyPromptError",
    "GeneratedImage",
    "InlineImage",
    "NoImageReturnedError",
    "PersistenceError",
    "RecordNotFoundError",
    "RemoteImage",
    "UpstreamError",
    "config",
]
