"""Room/game controller: mode, round caps, next-round threading, game over.

The controller reacts to ``RoundResolvedEvent``s published by the round
lifecycle. It either ends the game (systemic collapse or round cap) or opens
the next round, whose pre-state is the previous post-state and whose
carryover is the previous outgoing environment. Chain mirroring and
narrative generation are scheduled on the background dispatcher only after
the round is durably RESOLVED; neither can affect the stored report.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .chain import ChainMirror, DisabledChainMirror
from .dispatch import BackgroundDispatcher
from .engine.catalog import Catalog, GameMode
from .engine.integrity import IntegrityBundle
from .engine.resolution import SYSTEMIC_COLLAPSE, ResolveEnv, RoundReport
from .engine.world import DEFAULT_WORLD, WorldState
from .errors import RoomNotFound, RumorSimError
from .lifecycle import RoundResolvedEvent
from .models import GameOverReason, Room, RoomStatus, Round, RoundState
from .narrative import NarrativeAdapter
from .narrative.base import GameNarrativeContext, RoundNarrativeContext, TimelineEntry

logger = logging.getLogger(__name__)

Notifier = Callable[[int, dict[str, Any]], None]


@dataclass(frozen=True)
class GameOver:
    room_id: int
    reason: GameOverReason
    rounds_played: int

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "game_over",
            "roomId": self.room_id,
            "reason": self.reason.value,
            "roundsPlayed": self.rounds_played,
        }


@dataclass(frozen=True)
class GameStatus:
    room_id: int
    mode: GameMode
    over: bool
    end_reason: GameOverReason | None
    rounds_played: int
    round_cap: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "roomId": self.room_id,
            "mode": self.mode.value,
            "over": self.over,
            "endReason": self.end_reason.value if self.end_reason else None,
            "roundsPlayed": self.rounds_played,
            "roundCap": self.round_cap,
        }


class GameController:
    """Owns room state and the transition from one round to the next."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        catalog: Catalog,
        *,
        story_cap: int = 6,
        chaos_cap: int = 10,
        default_seed: int | None = None,
        chain_mirror: ChainMirror | None = None,
        narrator: NarrativeAdapter | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog
        self._story_cap = min(story_cap, catalog.story_length)
        self._chaos_cap = chaos_cap
        self._default_seed = default_seed
        self.chain_mirror = chain_mirror or DisabledChainMirror()
        self.narrator = narrator
        self.dispatcher = dispatcher
        self.notifier = notifier

    def round_cap(self, mode: GameMode) -> int | None:
        if mode == GameMode.story:
            return self._story_cap
        if mode == GameMode.chaos:
            return self._chaos_cap
        return None

    def create_room(self, mode: GameMode = GameMode.story, seed: int | None = None) -> tuple[Room, Round]:
        with self._session_factory() as session:
            room = Room(mode=mode, seed=seed)
            session.add(room)
            session.commit()
            session.refresh(room)
        assert room.id is not None
        logger.info("room created room=%s mode=%s seed=%s", room.id, mode.value, seed)
        first = self.start_or_get_current_round(room.id)
        assert first is not None
        return room, first

    def get_or_create_default_room(self) -> Room:
        """Latest active room, or a fresh story room when none is active."""

        with self._session_factory() as session:
            room = session.exec(
                select(Room).where(Room.status == RoomStatus.active).order_by(Room.id.desc())
            ).first()
        if room:
            return room
        room, _ = self.create_room(GameMode.story)
        return room

    def start_or_get_current_round(self, room_id: int) -> Round | None:
        """Current WAITING round, creating the next one if needed; ``None`` once the game is over."""

        with self._session_factory() as session:
            room = session.get(Room, room_id)
            if not room:
                raise RoomNotFound(room_id)
            if room.status == RoomStatus.over:
                return None
            waiting = self._waiting_round(session, room_id)
            if waiting:
                return waiting

            latest = session.exec(
                select(Round)
                .where(Round.room_id == room_id, Round.state == RoundState.RESOLVED)
                .order_by(Round.round_index.desc())
            ).first()
            if latest is None:
                round_index, pre_state, env_in = 0, DEFAULT_WORLD, ResolveEnv()
            else:
                reason = self._end_reason(room.mode, latest.round_index, latest.report)
                if reason:
                    self._mark_over(session, room, reason)
                    return None
                round_index = latest.round_index + 1
                pre_state = WorldState.from_dict(latest.post_state or latest.pre_state)
                env_in = ResolveEnv.from_dict(latest.env_out)

            seed = room.seed if room.seed is not None else self._default_seed
            event = self._catalog.draw(room.mode, round_index, seed=seed)
            rnd = Round(
                room_id=room_id,
                round_index=round_index,
                rumor_card_id=event.id,
                pre_state=pre_state.to_dict(),
                env_in=env_in.to_dict(),
            )
            session.add(rnd)
            try:
                session.commit()
            except IntegrityError:
                # Someone else opened this round index first.
                session.rollback()
                return self._waiting_round(session, room_id)
            session.refresh(rnd)
            logger.info(
                "round opened room=%s index=%s event=%s carryover=%s",
                room_id,
                round_index,
                event.id,
                env_in.next_shock_bonus,
            )
            return rnd

    def handle_resolved(self, event: RoundResolvedEvent) -> GameOver | None:
        """React to a committed resolution: end the game or open the next round.

        The chain mirror and narration are scheduled even when advancing the
        room fails, since the resolved round is already durable.
        """

        game_over: GameOver | None = None
        try:
            with self._session_factory() as session:
                room = session.get(Room, event.room_id)
                if not room:
                    raise RoomNotFound(event.room_id)
                reason = self._end_reason(room.mode, event.round_index, event.report.to_dict())
                if reason:
                    self._mark_over(session, room, reason)
                    game_over = GameOver(room_id=event.room_id, reason=reason, rounds_played=event.round_index + 1)

            if game_over is None:
                try:
                    self.start_or_get_current_round(event.room_id)
                except (RumorSimError, SQLAlchemyError) as exc:
                    # The next read of the room's current round retries the creation.
                    logger.warning(
                        "next round not opened room=%s reason=%s: %s",
                        event.room_id,
                        type(exc).__name__,
                        str(exc)[:160],
                    )

            self._notify(
                event.room_id,
                {
                    "type": "round_resolved",
                    "roomId": event.room_id,
                    "roundIndex": event.round_index,
                    "report": event.report.to_dict(),
                    "gameOver": game_over is not None,
                },
            )
            if game_over:
                self._notify(event.room_id, game_over.to_message())
        finally:
            self._schedule_side_effects(event, game_over)
        return game_over

    def game_status(self, room_id: int) -> GameStatus:
        with self._session_factory() as session:
            room = session.get(Room, room_id)
            if not room:
                raise RoomNotFound(room_id)
            resolved = session.exec(
                select(Round.id).where(Round.room_id == room_id, Round.state == RoundState.RESOLVED)
            ).all()
            return GameStatus(
                room_id=room_id,
                mode=room.mode,
                over=room.status == RoomStatus.over,
                end_reason=room.end_reason,
                rounds_played=len(resolved),
                round_cap=self.round_cap(room.mode),
            )

    def _waiting_round(self, session: Session, room_id: int) -> Round | None:
        return session.exec(
            select(Round).where(Round.room_id == room_id, Round.state == RoundState.WAITING_SUBMISSIONS)
        ).first()

    def _end_reason(self, mode: GameMode, round_index: int, report: dict[str, Any] | None) -> GameOverReason | None:
        events = [item.get("event") for item in (report or {}).get("triggeredEvents", [])]
        if SYSTEMIC_COLLAPSE in events:
            return GameOverReason.systemic_collapse
        cap = self.round_cap(mode)
        if cap is not None and round_index + 1 >= cap:
            return GameOverReason.cap_reached
        return None

    def _mark_over(self, session: Session, room: Room, reason: GameOverReason) -> None:
        if room.status == RoomStatus.over:
            return
        room.status = RoomStatus.over
        room.end_reason = reason
        session.add(room)
        session.commit()
        logger.info("game over room=%s reason=%s", room.id, reason.value)

    def _notify(self, room_id: int, payload: dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(room_id, payload)
        except RuntimeError as exc:
            logger.warning("notify failed room=%s type=%s: %s", room_id, payload.get("type"), str(exc)[:160])

    def _schedule_side_effects(self, event: RoundResolvedEvent, game_over: GameOver | None) -> None:
        if self.dispatcher is None:
            return
        if self.chain_mirror.enabled:
            self.dispatcher.submit(
                f"chain_mirror:{event.round_id}",
                self._mirror_round,
                event.room_id,
                event.round_id,
                event.round_index,
                event.report.hashes,
            )
        if self.narrator is not None:
            self.dispatcher.submit(f"round_narrative:{event.round_id}", self._narrate_round, event)
            if game_over:
                self.dispatcher.submit(f"game_narrative:{event.room_id}", self._narrate_game, game_over)

    def _mirror_round(self, room_id: int, round_id: int, round_index: int, bundle: IntegrityBundle) -> None:
        tx_hash = self.chain_mirror.mirror_round(room_id, round_index, bundle)
        if not tx_hash:
            return
        with self._session_factory() as session:
            rnd = session.get(Round, round_id)
            if rnd:
                rnd.chain_tx_hash = tx_hash
                session.add(rnd)
                session.commit()
        logger.info("round mirrored room=%s index=%s tx=%s", room_id, round_index, tx_hash)

    async def _narrate_round(self, event: RoundResolvedEvent) -> None:
        if self.narrator is None:
            return
        with self._session_factory() as session:
            room = session.get(Room, event.room_id)
            mode = room.mode.value if room else GameMode.story.value
        ctx = RoundNarrativeContext(
            room_id=event.room_id,
            mode=mode,
            event=self._catalog.get(event.report.rumor_card_id),
            report=event.report,
            submissions=list(event.submissions),
        )
        text = await self.narrator.narrate_round(ctx)
        if not text:
            return
        with self._session_factory() as session:
            rnd = session.get(Round, event.round_id)
            if rnd:
                rnd.narrative = text
                session.add(rnd)
                session.commit()

    async def _narrate_game(self, game_over: GameOver) -> None:
        if self.narrator is None:
            return
        with self._session_factory() as session:
            room = session.get(Room, game_over.room_id)
            if not room:
                return
            rounds = session.exec(
                select(Round)
                .where(Round.room_id == game_over.room_id, Round.state == RoundState.RESOLVED)
                .order_by(Round.round_index)
            ).all()
            timeline = [
                TimelineEntry(
                    round_index=rnd.round_index,
                    event_title=self._catalog.get(rnd.rumor_card_id).title,
                    report=RoundReport.from_dict(rnd.report),
                )
                for rnd in rounds
                if rnd.report
            ]
            ctx = GameNarrativeContext(
                room_id=game_over.room_id,
                mode=room.mode.value,
                end_reason=game_over.reason.value,
                timeline=timeline,
            )
        text = await self.narrator.narrate_game(ctx)
        if not text:
            return
        with self._session_factory() as session:
            room = session.get(Room, game_over.room_id)
            if room:
                room.game_narrative = text
                session.add(room)
                session.commit()
