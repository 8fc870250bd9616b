"""Game controller: carryover threading, caps, collapse, notifications, side effects."""

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from rumorsim.chain import ChainMirror
from rumorsim.db import session_factory
from rumorsim.engine.actions import ActionKind
from rumorsim.engine.catalog import GameMode
from rumorsim.engine.resolution import RUMOR_VIRAL, SYSTEMIC_COLLAPSE
from rumorsim.game import GameController
from rumorsim.lifecycle import RoundLifecycle
from rumorsim.models import GameOverReason, Room, RoomStatus, Round, RoundState
from rumorsim.narrative.mock_adapter import MockNarrativeAdapter


class RecordingMirror(ChainMirror):
    enabled = True

    def __init__(self):
        self.calls = []

    def mirror_round(self, room_id, round_index, bundle):
        self.calls.append((room_id, round_index, bundle.round_hash))
        return f"0xtx-{room_id}-{round_index}"


class UnreachableMirror(ChainMirror):
    enabled = True

    def mirror_round(self, room_id, round_index, bundle):
        raise httpx.ConnectError("gateway down")


def _play_round(lifecycle, room_id, make_submission, action=ActionKind.WAIT, intensity=1):
    round_id = lifecycle.current_round_id(room_id)
    receipt = None
    for i in range(lifecycle.quorum):
        receipt = lifecycle.submit(round_id, f"p{i}", make_submission(f"Agent-{i}", action, intensity))
    return receipt


def _rounds(room_id):
    with session_factory() as session:
        return session.exec(select(Round).where(Round.room_id == room_id).order_by(Round.round_index)).all()


def test_create_room_opens_first_round(game):
    room, first = game.create_room(GameMode.story)
    assert room.status == RoomStatus.active
    assert first.round_index == 0
    assert first.rumor_card_id == "R-04"
    assert first.env_in == {"nextShockBonus": 0.0}
    assert game.start_or_get_current_round(room.id).id == first.id


def test_next_round_threads_post_state_and_carryover(game, lifecycle, make_submission):
    room, _ = game.create_room(GameMode.chaos, seed=5)
    receipt = _play_round(lifecycle, room.id, make_submission, ActionKind.AMPLIFY, 3)
    assert receipt.report.has_event(RUMOR_VIRAL)
    _play_round(lifecycle, room.id, make_submission)

    rounds = _rounds(room.id)
    assert [r.round_index for r in rounds] == [0, 1, 2]
    for prev, nxt in zip(rounds, rounds[1:]):
        assert nxt.pre_state == prev.post_state
        assert nxt.env_in == prev.env_out
    assert rounds[1].env_in == {"nextShockBonus": 3.0}
    assert [r.rumor_card_id for r in rounds] == [
        game._catalog.draw_for_chaos(i, seed=5).id for i in range(3)
    ]


def test_systemic_collapse_ends_game_without_next_round(game, lifecycle, make_submission):
    room, _ = game.create_room(GameMode.story)
    first = _play_round(lifecycle, room.id, make_submission, ActionKind.EXIT, 3)
    assert not first.report.has_event(SYSTEMIC_COLLAPSE)
    second = _play_round(lifecycle, room.id, make_submission, ActionKind.EXIT, 3)
    assert second.report.has_event(SYSTEMIC_COLLAPSE)

    assert [r.round_index for r in _rounds(room.id)] == [0, 1]
    assert game.start_or_get_current_round(room.id) is None
    status = game.game_status(room.id)
    assert status.over
    assert status.end_reason == GameOverReason.systemic_collapse
    assert status.rounds_played == 2


def test_story_cap_ends_game_normally(game, lifecycle, make_submission):
    room, _ = game.create_room(GameMode.story)
    for _ in range(6):
        _play_round(lifecycle, room.id, make_submission)

    assert len(_rounds(room.id)) == 6
    assert game.start_or_get_current_round(room.id) is None
    status = game.game_status(room.id).to_dict()
    assert status == {
        "roomId": room.id,
        "mode": "story",
        "over": True,
        "endReason": "cap_reached",
        "roundsPlayed": 6,
        "roundCap": 6,
    }


def test_chaos_cap_and_uncapped_survival(catalog, dispatcher, make_submission):
    game = GameController(session_factory, catalog, chaos_cap=2, dispatcher=dispatcher)
    lifecycle = RoundLifecycle(session_factory, catalog, quorum=5, on_resolved=game.handle_resolved)
    chaos, _ = game.create_room(GameMode.chaos, seed=1)
    survival, _ = game.create_room(GameMode.survival, seed=1)
    for _ in range(3):
        _play_round(lifecycle, survival.id, make_submission)
    for _ in range(2):
        _play_round(lifecycle, chaos.id, make_submission)

    assert game.game_status(chaos.id).end_reason == GameOverReason.cap_reached
    assert game.round_cap(GameMode.survival) is None
    assert not game.game_status(survival.id).over
    assert game.start_or_get_current_round(survival.id).round_index == 3


def test_lifecycle_events_are_published(game, lifecycle, make_submission):
    messages = []
    game.notifier = lambda room_id, payload: messages.append((room_id, payload))
    room, _ = game.create_room(GameMode.story)
    for _ in range(6):
        _play_round(lifecycle, room.id, make_submission)

    kinds = [payload["type"] for _, payload in messages]
    assert kinds == ["round_resolved"] * 6 + ["game_over"]
    assert all(room_id == room.id for room_id, _ in messages)
    assert messages[-1][1]["reason"] == "cap_reached"
    assert messages[-2][1]["gameOver"] is True
    assert messages[0][1]["report"]["roundIndex"] == 0


def test_side_effects_attach_after_resolution(game, lifecycle, dispatcher, make_submission):
    mirror = RecordingMirror()
    game.chain_mirror = mirror
    game.narrator = MockNarrativeAdapter()
    room, _ = game.create_room(GameMode.story)
    for _ in range(6):
        _play_round(lifecycle, room.id, make_submission)
    dispatcher.drain(timeout=10)

    rounds = _rounds(room.id)
    assert [call[1] for call in sorted(mirror.calls)] == list(range(6))
    for rnd in rounds:
        assert rnd.chain_tx_hash == f"0xtx-{room.id}-{rnd.round_index}"
        assert rnd.narrative and rnd.narrative.startswith(f"Round {rnd.round_index + 1}:")
        assert rnd.report["hashes"]["roundHash"] in {call[2] for call in mirror.calls}
    with session_factory() as session:
        stored = session.get(Room, room.id)
        assert stored.game_narrative and "cap_reached" in stored.game_narrative


def test_mirror_failure_never_blocks_resolution(game, lifecycle, dispatcher, make_submission):
    game.chain_mirror = UnreachableMirror()
    room, first = game.create_room(GameMode.story)
    receipt = _play_round(lifecycle, room.id, make_submission)
    dispatcher.drain(timeout=10)

    assert receipt.resolved
    with session_factory() as session:
        stored = session.get(Round, first.id)
        assert stored.state == RoundState.RESOLVED
        assert stored.chain_tx_hash is None
    assert game.start_or_get_current_round(room.id).round_index == 1


def test_default_room_is_reused_until_game_over(game, lifecycle, make_submission):
    room = game.get_or_create_default_room()
    assert game.get_or_create_default_room().id == room.id
    for _ in range(6):
        _play_round(lifecycle, room.id, make_submission)
    fresh = game.get_or_create_default_room()
    assert fresh.id != room.id
    assert fresh.mode == GameMode.story


def test_side_effects_still_scheduled_when_ending_the_game_fails(game, lifecycle, dispatcher, make_submission, monkeypatch):
    mirror = RecordingMirror()
    game.chain_mirror = mirror
    room, _ = game.create_room(GameMode.story)
    _play_round(lifecycle, room.id, make_submission, ActionKind.EXIT, 3)

    def failing_mark_over(session, room, reason):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(game, "_mark_over", failing_mark_over)
    final = _play_round(lifecycle, room.id, make_submission, ActionKind.EXIT, 3)
    dispatcher.drain(timeout=10)

    assert final.resolved
    assert final.report.has_event(SYSTEMIC_COLLAPSE)
    assert sorted(call[1] for call in mirror.calls) == [0, 1]
    assert [r.chain_tx_hash for r in _rounds(room.id)] == [f"0xtx-{room.id}-0", f"0xtx-{room.id}-1"]
