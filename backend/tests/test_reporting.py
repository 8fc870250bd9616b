"""Game summaries and per-agent statistics built from stored rounds."""

import pytest
from sqlmodel import select

from rumorsim.db import session_factory
from rumorsim.engine.actions import ActionKind
from rumorsim.engine.catalog import GameMode
from rumorsim.errors import RoomNotFound
from rumorsim.models import Agent, Room
from rumorsim.reporting import agent_profile, build_game_summary, summarize_room


def _play(lifecycle, room_id, make_submission, action, intensity):
    round_id = lifecycle.current_round_id(room_id)
    for i in range(5):
        lifecycle.submit(round_id, f"p{i}", make_submission(f"Agent-{i}", action, intensity))


def test_collapsed_game_summary(game, lifecycle, make_submission):
    room, _ = game.create_room(GameMode.story)
    _play(lifecycle, room.id, make_submission, ActionKind.EXIT, 3)
    _play(lifecycle, room.id, make_submission, ActionKind.EXIT, 3)

    with session_factory() as session:
        summary = build_game_summary(session, room.id)
        listed = summarize_room(session, session.get(Room, room.id))

    assert summary["rounds_played"] == 2
    assert summary["room"]["end_reason"] == "systemic_collapse"
    assert summary["action_mix"]["counts"]["EXIT"] == 10
    assert summary["action_mix"]["shares"]["EXIT"] == 1.0
    assert "systemic_collapse" in summary["timeline"][-1]["triggered_events"]
    assert summary["final_state"] == summary["timeline"][-1]["post"]
    assert "ended by systemic_collapse after 2 rounds" in summary["executive_summary"]
    assert "The dominant action was EXIT." in summary["executive_summary"]
    markdown = summary["markdown"]
    assert "## Timeline" in markdown and "## Action Mix" in markdown
    assert "## Closing Account" not in markdown
    assert summary["timeline"][0]["round_hash"] in markdown

    assert listed["collapsed"] is True
    assert listed["active"] is False
    assert listed["roundsPlayed"] == 2


def test_summary_of_fresh_room_and_missing_room(game):
    room, _ = game.create_room(GameMode.chaos, seed=4)
    with session_factory() as session:
        summary = build_game_summary(session, room.id)
        assert summary["timeline"] == []
        assert summary["final_state"] is None
        assert "no resolved rounds yet" in summary["executive_summary"]
        with pytest.raises(RoomNotFound):
            build_game_summary(session, 4242)


def test_closing_account_included_when_narrated(game, lifecycle, make_submission):
    room, _ = game.create_room(GameMode.story)
    _play(lifecycle, room.id, make_submission, ActionKind.WAIT, 1)
    with session_factory() as session:
        stored = session.get(Room, room.id)
        stored.game_narrative = "The rumor outlived the facts."
        session.add(stored)
        session.commit()
        markdown = build_game_summary(session, room.id)["markdown"]
    assert markdown.rstrip().endswith("The rumor outlived the facts.")


def test_agent_profile_statistics(game, lifecycle, make_submission):
    room, first = game.create_room(GameMode.story)
    lifecycle.submit(first.id, "human", make_submission("Human", ActionKind.EXIT, 3, confidence=0.9))
    for i in range(4):
        lifecycle.submit(first.id, f"p{i}", make_submission(f"Agent-{i}"))
    second = game.start_or_get_current_round(room.id)
    lifecycle.submit(second.id, "human", make_submission("Human", ActionKind.STABILIZE, 1, confidence=0.5))

    with session_factory() as session:
        agent = session.exec(select(Agent).where(Agent.player_id == "human")).one()
        profile = agent_profile(session, agent)

    assert profile["totalRounds"] == 2
    assert profile["submissions"] == 2
    assert profile["actionCounts"]["EXIT"] == 1
    assert profile["actionCounts"]["STABILIZE"] == 1
    assert profile["avgIntensity"] == 2.0
    assert profile["avgConfidence"] == 0.7
