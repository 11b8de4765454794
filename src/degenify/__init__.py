"""Degenify - put the purple-hat character into any situation and share it."""

__version__ = "1.0.0"

from degenify.core.config import DegenifyConfig, config  # noqa: E402

__all__ = [
    "DegenifyConfig",
    "config",
]
