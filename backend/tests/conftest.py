"""Shared pytest fixtures: isolated database, deterministic collaborators."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test.db")
os.environ["AUTO_FILL_ENABLED"] = "false"
os.environ["NARRATIVE_MODE"] = "off"
os.environ["CHAIN_MIRROR_URL"] = ""

import pytest

from rumorsim.config import settings
from rumorsim.db import reset_db, session_factory
from rumorsim.dispatch import BackgroundDispatcher
from rumorsim.engine.actions import ActionKind, Submission
from rumorsim.engine.catalog import default_catalog
from rumorsim.game import GameController
from rumorsim.lifecycle import RoundLifecycle


@pytest.fixture(autouse=True)
def reset_database():
    original_mode = settings.narrative_mode
    settings.narrative_mode = "off"
    reset_db()
    yield
    settings.narrative_mode = original_mode


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def dispatcher():
    runner = BackgroundDispatcher(max_workers=2, retries=0, backoff_s=0.0)
    yield runner
    runner.shutdown()


@pytest.fixture
def game(catalog, dispatcher):
    return GameController(session_factory, catalog, dispatcher=dispatcher)


@pytest.fixture
def lifecycle(catalog, game):
    return RoundLifecycle(session_factory, catalog, quorum=5, on_resolved=game.handle_resolved)


@pytest.fixture
def make_submission():
    def _make(
        name: str,
        action: ActionKind = ActionKind.WAIT,
        intensity: int = 1,
        confidence: float = 0.5,
        signals: tuple[str, ...] = ("observation",),
        narrative: str = "",
    ) -> Submission:
        return Submission(
            name=name,
            action=action,
            intensity=intensity,
            signals=signals,
            confidence=confidence,
            narrative=narrative or f"{name} holds: Panic=25 and Trust=78 look stable enough for now.",
        )

    return _make
