"""Game summarizer and per-agent statistics.

Builds markdown + JSON summaries from persisted rounds: timeline of key
metrics per round, triggered events, round hashes and the cumulative
action mix. Everything is derived from stored reports, so a summary can be
rebuilt at any time.
"""

from collections import Counter
from typing import Any

from sqlmodel import Session, select

from .engine.actions import ActionKind
from .engine.catalog import Catalog, default_catalog
from .errors import RoomNotFound
from .models import Agent, GameOverReason, Room, RoomStatus, Round, RoundState, SubmissionRecord
from .utils import utc_iso_now

TIMELINE_METRICS = ("Panic", "Trust", "Price", "Loss")


def build_game_summary(session: Session, room_id: int, catalog: Catalog | None = None) -> dict[str, Any]:
    """Summarize a room's resolved rounds as JSON plus a markdown rendering."""

    catalog = catalog or default_catalog()
    room = session.get(Room, room_id)
    if not room:
        raise RoomNotFound(room_id)
    rounds = session.exec(
        select(Round)
        .where(Round.room_id == room_id, Round.state == RoundState.RESOLVED)
        .order_by(Round.round_index)
    ).all()
    round_ids = [rnd.id for rnd in rounds]
    records = (
        session.exec(select(SubmissionRecord).where(SubmissionRecord.round_id.in_(round_ids))).all()
        if round_ids
        else []
    )

    timeline = [_timeline_entry(rnd, catalog) for rnd in rounds if rnd.report]
    action_mix = _action_mix(records)
    payload: dict[str, Any] = {
        "title": f"Rumor Round Game {room_id} Summary",
        "generated_at": utc_iso_now(),
        "room": {
            "id": room.id,
            "mode": room.mode.value,
            "seed": room.seed,
            "status": room.status.value,
            "end_reason": room.end_reason.value if room.end_reason else None,
        },
        "rounds_played": len(timeline),
        "timeline": timeline,
        "action_mix": action_mix,
        "final_state": timeline[-1]["post"] if timeline else None,
        "game_narrative": room.game_narrative,
    }
    payload["executive_summary"] = _executive_summary(room, timeline, action_mix)
    payload["markdown"] = _summary_to_markdown(payload)
    return payload


def summarize_room(session: Session, room: Room) -> dict[str, Any]:
    """Compact history entry for one room."""

    rounds = session.exec(
        select(Round)
        .where(Round.room_id == room.id, Round.state == RoundState.RESOLVED)
        .order_by(Round.round_index)
    ).all()
    last = rounds[-1] if rounds else None
    return {
        "roomId": room.id,
        "mode": room.mode.value,
        "status": room.status.value,
        "endReason": room.end_reason.value if room.end_reason else None,
        "roundsPlayed": len(rounds),
        "finalState": last.post_state if last else None,
        "collapsed": room.end_reason == GameOverReason.systemic_collapse,
        "createdAt": room.created_at.isoformat(),
        "active": room.status == RoomStatus.active,
    }


def agent_action_stats(session: Session, player_id: str) -> dict[str, Any]:
    """Action counts, mean intensity and mean confidence across all of a player's submissions."""

    records = session.exec(select(SubmissionRecord).where(SubmissionRecord.player_id == player_id)).all()
    counts = Counter(record.action for record in records)
    return {
        "actionCounts": {kind.value: counts.get(kind.value, 0) for kind in ActionKind},
        "avgIntensity": round(_safe_mean([float(record.intensity) for record in records]), 2),
        "avgConfidence": round(_safe_mean([record.confidence for record in records]), 2),
        "submissions": len(records),
    }


def agent_profile(session: Session, agent: Agent) -> dict[str, Any]:
    return {
        "playerId": agent.player_id,
        "agentName": agent.agent_name,
        "totalRounds": agent.total_rounds,
        "createdAt": agent.created_at.isoformat(),
        **agent_action_stats(session, agent.player_id),
    }


def _timeline_entry(rnd: Round, catalog: Catalog) -> dict[str, Any]:
    report = rnd.report or {}
    pre = report.get("preState", rnd.pre_state)
    post = report.get("postState", rnd.post_state or {})
    return {
        "round_index": rnd.round_index,
        "event_id": rnd.rumor_card_id,
        "event_title": catalog.get(rnd.rumor_card_id).title,
        "pre": {key: pre.get(key) for key in TIMELINE_METRICS},
        "post": {key: post.get(key) for key in TIMELINE_METRICS},
        "triggered_events": [item["event"] for item in report.get("triggeredEvents", [])],
        "round_hash": report.get("hashes", {}).get("roundHash"),
        "narrative": rnd.narrative,
    }


def _action_mix(records: list[SubmissionRecord]) -> dict[str, Any]:
    counts = Counter(record.action for record in records)
    total = sum(counts.values())
    return {
        "total": total,
        "counts": {kind.value: counts.get(kind.value, 0) for kind in ActionKind},
        "shares": {kind.value: round(counts.get(kind.value, 0) / total, 3) if total else 0.0 for kind in ActionKind},
    }


def _executive_summary(room: Room, timeline: list[dict[str, Any]], action_mix: dict[str, Any]) -> str:
    if not timeline:
        return f"Game {room.id} ({room.mode.value}) has no resolved rounds yet."
    first, last = timeline[0], timeline[-1]
    dominant = max(action_mix["counts"].items(), key=lambda item: item[1])[0]
    outcome = (
        f"ended by {room.end_reason.value}" if room.end_reason else "is still running"
    )
    return (
        f"Game {room.id} ({room.mode.value}) {outcome} after {len(timeline)} rounds. "
        f"Panic moved {first['pre']['Panic']:.1f} -> {last['post']['Panic']:.1f} and "
        f"Price {first['pre']['Price']:.1f} -> {last['post']['Price']:.1f}. "
        f"The dominant action was {dominant}."
    )


def _summary_to_markdown(payload: dict[str, Any]) -> str:
    room = payload["room"]
    lines = [
        f"# {payload['title']}",
        "",
        f"- Generated At: {payload['generated_at']}",
        f"- Mode: {room['mode']}",
        f"- Status: {room['status']}",
        f"- End Reason: {room['end_reason'] or 'n/a'}",
        f"- Rounds Played: {payload['rounds_played']}",
        "",
        "## Executive Summary",
        payload["executive_summary"],
        "",
        "## Timeline",
    ]
    for entry in payload["timeline"]:
        moves = ", ".join(
            f"{key} {float(entry['pre'][key]):.1f}->{float(entry['post'][key]):.1f}" for key in TIMELINE_METRICS
        )
        events = ", ".join(entry["triggered_events"]) or "none"
        lines.append(f"- Round {entry['round_index'] + 1} [{entry['event_id']}] {entry['event_title']}: {moves}")
        lines.append(f"  - Events: {events}")
        lines.append(f"  - Round Hash: `{entry['round_hash']}`")
    lines.extend(["", "## Action Mix"])
    mix = payload["action_mix"]
    for action, count in mix["counts"].items():
        lines.append(f"- {action}: {count} ({mix['shares'][action] * 100:.1f}%)")
    if payload.get("game_narrative"):
        lines.extend(["", "## Closing Account", payload["game_narrative"]])
    return "\n".join(lines).strip() + "\n"


def _safe_mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)
