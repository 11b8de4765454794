"""Exception hierarchy for Degenify.

Every failure the service distinguishes has its own class so the HTTP layer
can map it to a status code in one place (see ``degenify.api.main``):

=========================  ======  ==========================================
Exception                  Status  Raised by
=========================  ======  ==========================================
``EmptyPromptError``       400     :func:`~degenify.core.prompt_builder.compose_prompt`
``BaseImageMissingError``  400     :func:`~degenify.core.base_image.load_base_image`
``UpstreamError``          502     :class:`~degenify.core.generation_client.GenerationClient`
``NoImageReturnedError``   502     :class:`~degenify.core.generation_client.GenerationClient`
``RecordNotFoundError``    404     record and blob stores
``PersistenceError``       500     :class:`~degenify.core.persistence.PersistenceAdapter`
=========================  ======  ==========================================
"""

from __future__ import annotations

from typing import Any


class DegenifyError(Exception):
    """Base class for all errors raised by Degenify."""


class EmptyPromptError(DegenifyError, ValueError):
    """The caller supplied no prompt, or only whitespace."""

    def __init__(self, message: str = "prompt required") -> None:
        super().__init__(message)


class BaseImageMissingError(DegenifyError):
    """The configured base image does not exist on disk."""

    def __init__(self, path: Any) -> None:
        self.path = path
        super().__init__(f"Base image missing at {path}")


class UpstreamError(DegenifyError):
    """The image generation service failed or answered with a non-success status.

    Attributes:
        status_code: HTTP status returned upstream, or ``None`` for transport
            failures where no response was received.
        detail: Raw error body (or transport error message) for diagnostics.
    """

    def __init__(self, status_code: int | None, detail: Any) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Upstream image service error (status={status_code})")


class NoImageReturnedError(DegenifyError):
    """The upstream call succeeded but its response held no image payload."""

    def __init__(self, response: Any) -> None:
        self.response = response
        super().__init__("No image returned")


class PersistenceError(DegenifyError):
    """Storing or reading image records failed."""


class RecordNotFoundError(DegenifyError, KeyError):
    """No record exists for the requested id."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(record_id)

    def __str__(self) -> str:
        return f"Image not found: {self.record_id}"
