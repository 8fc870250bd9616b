"""Optional narrative generation for resolved rounds and finished games.

Narratives are attached to rounds and rooms after the fact and never alter
a stored report or its hashes.
"""

import logging

from .base import NarrativeAdapter
from .mock_adapter import MockNarrativeAdapter
from .openai_adapter import OpenAINarrativeAdapter

logger = logging.getLogger(__name__)


def build_narrator(mode: str) -> NarrativeAdapter | None:
    """Pick the narrative backend for ``mode``; ``None`` disables narration."""

    mode = (mode or "off").strip().lower()
    if mode == "mock":
        return MockNarrativeAdapter()
    if mode == "openai":
        try:
            return OpenAINarrativeAdapter()
        except RuntimeError as exc:
            logger.warning("narrative disabled reason=%s: %s", type(exc).__name__, str(exc)[:160])
            return None
    return None
