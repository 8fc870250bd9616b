"""FastAPI application entrypoint and REST/WebSocket surface.

Thin glue over the lifecycle and game controllers: request bodies are
validated by the schemas, named lifecycle conflicts are mapped to 404/409.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, NoReturn

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session, select

from .autofill import IdleAutoFill
from .chain import build_chain_mirror, verify_round
from .config import settings
from .db import engine, init_db, session_factory
from .dispatch import BackgroundDispatcher
from .engine.catalog import default_catalog
from .engine.integrity import IntegrityBundle, compute_bundle, verify_bundle
from .engine.world import WorldState
from .errors import (
    DuplicateSubmission,
    NoActiveRound,
    RoomNotFound,
    RoundNotFound,
    RoundResolved,
    RumorSimError,
)
from .game import GameController
from .lifecycle import RoundLifecycle, record_to_submission
from .messaging import ConnectionManager, LoopNotifier
from .models import Agent, Room, RoomStatus, Round, RoundState, SubmissionRecord
from .narrative import build_narrator
from .reporting import agent_profile, build_game_summary, summarize_room
from .schemas import RoomCreate, SubmitRequest

catalog = default_catalog()
ws_manager = ConnectionManager()
notifier = LoopNotifier(ws_manager)
dispatcher = BackgroundDispatcher(max_workers=settings.background_workers)
game = GameController(
    session_factory,
    catalog,
    story_cap=settings.story_round_cap,
    chaos_cap=settings.chaos_round_cap,
    default_seed=settings.chaos_seed,
    chain_mirror=build_chain_mirror(settings.chain_mirror_url, settings.chain_mirror_timeout_ms),
    narrator=build_narrator(settings.narrative_mode),
    dispatcher=dispatcher,
    notifier=notifier,
)
lifecycle = RoundLifecycle(session_factory, catalog, quorum=settings.round_quorum, on_resolved=game.handle_resolved)
autofill = IdleAutoFill(
    lifecycle,
    session_factory,
    catalog,
    timeout_ms=settings.auto_fill_timeout_ms,
    interval_ms=settings.auto_fill_check_interval_ms,
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    notifier.bind(asyncio.get_running_loop())
    if settings.auto_fill_enabled:
        await autofill.start()
    yield
    await autofill.stop()
    notifier.bind(None)
    await asyncio.to_thread(dispatcher.drain, 10.0)
    game.chain_mirror.close()


app = FastAPI(title="Rumor Round Simulator", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_session():
    with Session(engine) as session:
        yield session


def _raise_http(exc: RumorSimError) -> NoReturn:
    if isinstance(exc, (RoomNotFound, RoundNotFound)):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, (NoActiveRound, RoundResolved, DuplicateSubmission)):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/health")
def health():
    return {"ok": True, "quorum": lifecycle.quorum, "chain": game.chain_mirror.enabled}


@app.post("/api/v1/rooms")
def create_room(payload: RoomCreate, session: Session = Depends(get_session)):
    room, _ = game.create_room(payload.mode, seed=payload.seed)
    assert room.id is not None
    return {"room": _serialize_room(room), "current": _current_pack(session, room.id)}


@app.get("/api/v1/rooms/default")
def get_default_room(session: Session = Depends(get_session)):
    room = game.get_or_create_default_room()
    assert room.id is not None
    return _current_pack(session, room.id)


@app.get("/api/v1/rooms/history")
def list_games(session: Session = Depends(get_session)):
    rooms = session.exec(select(Room).order_by(Room.id.desc())).all()
    return {"games": [summarize_room(session, room) for room in rooms]}


@app.get("/api/v1/rooms/{room_id}/current")
def get_current_round(room_id: int, session: Session = Depends(get_session)):
    return _current_pack(session, room_id)


@app.post("/api/v1/rooms/{room_id}/submit")
def submit(room_id: int, payload: SubmitRequest):
    try:
        rnd = game.start_or_get_current_round(room_id)
        if rnd is None or rnd.id is None:
            raise NoActiveRound(room_id)
        receipt = lifecycle.submit(rnd.id, payload.player_id, payload.submission.to_submission())
    except RumorSimError as exc:
        _raise_http(exc)
    return {
        "ok": True,
        "roomId": room_id,
        "roundId": receipt.round_id,
        "roundIndex": rnd.round_index,
        "submissionHash": receipt.submission_hash,
        "count": receipt.count,
        "quorum": lifecycle.quorum,
        "resolved": receipt.resolved,
        "report": receipt.report.to_dict() if receipt.report else None,
    }


@app.get("/api/v1/rooms/{room_id}/rounds")
def list_rounds(room_id: int, session: Session = Depends(get_session)):
    if not session.get(Room, room_id):
        raise HTTPException(status_code=404, detail="Room not found")
    rounds = session.exec(select(Round).where(Round.room_id == room_id).order_by(Round.round_index)).all()
    return {"roomId": room_id, "rounds": [_serialize_round(session, rnd) for rnd in rounds]}


@app.get("/api/v1/rooms/{room_id}/rounds/{round_index}")
def get_round(room_id: int, round_index: int, session: Session = Depends(get_session)):
    rnd = _get_round(session, room_id, round_index)
    records = _records(session, rnd)
    return {
        **_serialize_round(session, rnd),
        "submissions": [
            {
                "playerId": record.player_id,
                "agent_name": record.agent_name,
                "action": record.action,
                "intensity": record.intensity,
                "signals": record.signals,
                "confidence": record.confidence,
                "narrative": record.narrative,
                "submissionHash": record.submission_hash,
            }
            for record in records
        ],
    }


@app.get("/api/v1/rooms/{room_id}/rounds/{round_index}/verify")
def verify_round_integrity(room_id: int, round_index: int, session: Session = Depends(get_session)):
    rnd = _get_round(session, room_id, round_index)
    if rnd.state != RoundState.RESOLVED or not rnd.report or not rnd.post_state:
        raise HTTPException(status_code=409, detail="Round not resolved yet")
    pre = WorldState.from_dict(rnd.pre_state)
    post = WorldState.from_dict(rnd.post_state)
    event = catalog.get(rnd.rumor_card_id)
    submissions = [record_to_submission(record) for record in _records(session, rnd)]
    stored = IntegrityBundle.from_dict(rnd.report["hashes"])
    recomputed = compute_bundle(pre, post, event, submissions)
    return {
        "roomId": room_id,
        "roundIndex": round_index,
        "verified": verify_bundle(stored, pre, event, submissions, post),
        "stored": stored.to_dict(),
        "recomputed": recomputed.to_dict(),
    }


@app.get("/api/v1/rooms/{room_id}/rounds/{round_index}/chain")
def verify_round_on_chain(room_id: int, round_index: int, session: Session = Depends(get_session)):
    rnd = _get_round(session, room_id, round_index)
    hashes = (rnd.report or {}).get("hashes")
    result = verify_round(game.chain_mirror, room_id, round_index, hashes, rnd.chain_tx_hash)
    return {"roomId": room_id, "roundIndex": round_index, **result.to_dict()}


@app.get("/api/v1/rooms/{room_id}/report")
def get_game_report(room_id: int, session: Session = Depends(get_session)):
    try:
        summary = build_game_summary(session, room_id, catalog)
    except RoomNotFound as exc:
        _raise_http(exc)
    return {"roomId": room_id, "status": game.game_status(room_id).to_dict(), "report": summary}


@app.get("/api/v1/agents")
def list_agents(session: Session = Depends(get_session)):
    agents = session.exec(select(Agent).order_by(Agent.total_rounds.desc(), Agent.id)).all()
    return {"agents": [agent_profile(session, agent) for agent in agents]}


@app.get("/api/v1/agents/{player_id}")
def get_agent(player_id: str, session: Session = Depends(get_session)):
    agent = session.exec(select(Agent).where(Agent.player_id == player_id)).first()
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent_profile(session, agent)


@app.websocket("/ws/rooms/{room_id}")
async def room_ws(websocket: WebSocket, room_id: int):
    await ws_manager.connect(room_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await ws_manager.disconnect(room_id, websocket)


def _current_pack(session: Session, room_id: int) -> dict[str, Any]:
    try:
        rnd = game.start_or_get_current_round(room_id)
        status = game.game_status(room_id)
    except RumorSimError as exc:
        _raise_http(exc)
    if rnd is None:
        last = session.exec(
            select(Round).where(Round.room_id == room_id).order_by(Round.round_index.desc())
        ).first()
        room = session.get(Room, room_id)
        return {
            "roomId": room_id,
            "gameOver": True,
            "status": status.to_dict(),
            "roundIndex": last.round_index if last else 0,
            "report": last.report if last else None,
            "narrative": last.narrative if last else None,
            "gameNarrative": room.game_narrative if room else None,
        }
    return {
        "roomId": room_id,
        "gameOver": False,
        "status": status.to_dict(),
        "roundId": rnd.id,
        "round": rnd.round_index,
        "mode": status.mode.value,
        "rumor_card": catalog.get(rnd.rumor_card_id).to_dict(),
        "world": rnd.pre_state,
        "carryover": rnd.env_in,
        "submissionsCount": lifecycle.submission_count(rnd.id) if rnd.id is not None else 0,
        "quorum": lifecycle.quorum,
    }


def _get_round(session: Session, room_id: int, round_index: int) -> Round:
    rnd = session.exec(select(Round).where(Round.room_id == room_id, Round.round_index == round_index)).first()
    if not rnd:
        raise HTTPException(status_code=404, detail="Round not found")
    return rnd


def _records(session: Session, rnd: Round) -> list[SubmissionRecord]:
    return list(
        session.exec(
            select(SubmissionRecord)
            .where(SubmissionRecord.round_id == rnd.id)
            .order_by(SubmissionRecord.id)
            .limit(lifecycle.quorum)
        ).all()
    )


def _serialize_room(room: Room) -> dict[str, Any]:
    return {
        "id": room.id,
        "mode": room.mode.value,
        "seed": room.seed,
        "status": room.status.value,
        "endReason": room.end_reason.value if room.end_reason else None,
        "active": room.status == RoomStatus.active,
        "createdAt": room.created_at.isoformat(),
    }


def _serialize_round(session: Session, rnd: Round) -> dict[str, Any]:
    return {
        "roundId": rnd.id,
        "roundIndex": rnd.round_index,
        "state": rnd.state.value,
        "rumorCardId": rnd.rumor_card_id,
        "preState": rnd.pre_state,
        "postState": rnd.post_state,
        "envIn": rnd.env_in,
        "envOut": rnd.env_out,
        "report": rnd.report,
        "narrative": rnd.narrative,
        "chainTxHash": rnd.chain_tx_hash,
        "submissionsCount": len(_records(session, rnd)),
    }
