"""Scripted story presets replayed through the engine and the lifecycle."""

import pytest

from rumorsim.engine.catalog import GameMode, default_catalog
from rumorsim.engine.resolution import ResolveEnv, resolve_round
from rumorsim.engine.story import STORY_SUBMISSIONS
from rumorsim.engine.world import DEFAULT_WORLD
from rumorsim.schemas import SubmissionIn


def _replay():
    catalog = default_catalog()
    world, env, reports = DEFAULT_WORLD, ResolveEnv(), []
    for index, subs in enumerate(STORY_SUBMISSIONS):
        result = resolve_round(index, world, catalog.draw_for_story(index), subs, env)
        reports.append(result.report)
        world, env = result.post_state, result.env_out
    return reports


def test_presets_cover_every_story_round():
    assert len(STORY_SUBMISSIONS) == default_catalog().story_length
    for subs in STORY_SUBMISSIONS:
        assert [sub.name for sub in subs] == ["Alpha", "Bravo", "Charlie", "Delta", "Echo"]


@pytest.mark.parametrize("round_index", range(6))
def test_preset_narratives_pass_request_validation(round_index):
    for sub in STORY_SUBMISSIONS[round_index]:
        validated = SubmissionIn(
            agent_name=sub.name,
            action=sub.action,
            intensity=sub.intensity,
            signals=list(sub.signals),
            confidence=sub.confidence,
            narrative=sub.narrative,
        )
        assert validated.to_submission() == sub


def test_offline_replay_is_reproducible():
    first, second = _replay(), _replay()
    assert [r.hashes.round_hash for r in first] == [r.hashes.round_hash for r in second]
    for prev, nxt in zip(first, first[1:]):
        assert nxt.pre_state == prev.post_state


def test_lifecycle_replay_matches_offline_replay(game, lifecycle):
    offline = _replay()
    room, _ = game.create_room(GameMode.story)
    online = []
    for subs in STORY_SUBMISSIONS:
        current = game.start_or_get_current_round(room.id)
        if current is None:
            break
        receipt = None
        for slot, sub in enumerate(subs):
            receipt = lifecycle.submit(current.id, f"player-{slot}", sub)
        online.append(receipt.report)

    assert [r.hashes.round_hash for r in online] == [r.hashes.round_hash for r in offline[: len(online)]]
    assert game.game_status(room.id).over
