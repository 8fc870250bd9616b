"""Idle auto-fill: synthesize the remaining quorum slots for stalled rounds.

A WAITING round qualifies when its latest accepted submission (or its
creation, if it has none) is older than the configured timeout and at least
one submission came from a real participant. Rounds with only synthetic
submissions, or none at all, are never filled.

Synthetic submissions go through ``RoundLifecycle.submit`` like any other,
so they share the per-round lock; if a real submission completes the quorum
first, the sweep sees ``RoundResolved`` and moves on.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlmodel import Session, select

from .engine.actions import ActionKind, Submission
from .engine.catalog import Catalog, RumorEvent
from .engine.world import WorldState
from .errors import DuplicateSubmission, RoundResolved
from .lifecycle import NPC_PLAYER_PREFIX, RoundLifecycle, is_synthetic_player
from .models import Round, RoundState, SubmissionRecord
from .utils import as_utc, utc_now

logger = logging.getLogger(__name__)

NPC_NAMES = ("Observer-A", "Observer-B", "Observer-C", "Observer-D", "Observer-E")


def _npc_cautious(w: WorldState, title: str) -> tuple[ActionKind, int, list[str], float, str]:
    panic_high, liquidity_low = w.Panic > 60, w.Liquidity < 50
    if panic_high or liquidity_low:
        return (
            ActionKind.EXIT,
            3 if panic_high and liquidity_low else 2,
            ["risk_aversion"],
            0.7,
            f"Panic={round(w.Panic)}, Liquidity={round(w.Liquidity)}. Risk keeps piling up and a careful "
            f"retreat is the rational move. The news about \"{title}\" makes everyone uneasy.",
        )
    return (
        ActionKind.WAIT,
        1,
        ["observation"],
        0.4,
        f"The system is running normally with Panic={round(w.Panic)} and Trust={round(w.Trust)} under "
        f"control. The impact of \"{title}\" remains to be seen, so there is no rush to act.",
    )


def _npc_stabilizer(w: WorldState, title: str) -> tuple[ActionKind, int, list[str], float, str]:
    if w.Panic > 60:
        return (
            ActionKind.STABILIZE,
            3 if w.Trust < 40 else 2,
            ["counter_narrative"],
            0.55,
            f"Trust={round(w.Trust)} needs repair and Panic={round(w.Panic)} needs a hedge. \"{title}\" is "
            f"probably exaggerated, so step in and calm the market down actively.",
        )
    return (
        ActionKind.STABILIZE,
        1,
        ["preventive"],
        0.5,
        f"Preventive stabilisation. Trust={round(w.Trust)} is still fine but needs upkeep and "
        f"Panic={round(w.Panic)} is contained. The shock from \"{title}\" can be absorbed.",
    )


def _npc_opportunist(w: WorldState, title: str) -> tuple[ActionKind, int, list[str], float, str]:
    if w.Price < 60:
        return (
            ActionKind.ARBITRAGE,
            2,
            ["price_dip"],
            0.5,
            f"Price={round(w.Price)} is already low and the fear-driven mispricing is an arbitrage window. "
            f"Liquidity={round(w.Liquidity)} still leaves room to operate after \"{title}\".",
        )
    if w.Panic > 60:
        return (
            ActionKind.AMPLIFY,
            1,
            ["trend_following"],
            0.6,
            f"Panic={round(w.Panic)} is rising and \"{title}\" adds uncertainty. Ride the trend; with "
            f"Rumor={round(w.Rumor)} more information helps the market clear faster.",
        )
    return (
        ActionKind.WAIT,
        1,
        ["no_opportunity"],
        0.35,
        f"Price={round(w.Price)} is stable and Liquidity={round(w.Liquidity)} is fine, so there is no clear "
        f"arbitrage window yet. The effect of \"{title}\" is still unclear.",
    )


def _npc_pessimist(w: WorldState, title: str) -> tuple[ActionKind, int, list[str], float, str]:
    if w.Panic > 60 and w.Trust < 40:
        return (
            ActionKind.EXIT,
            3,
            ["systemic_risk"],
            0.8,
            f"Panic={round(w.Panic)} and Trust={round(w.Trust)}: the system is coming apart and \"{title}\" "
            f"is just one more confirming signal. Full retreat before it is too late.",
        )
    if w.Rumor > 40:
        return (
            ActionKind.AMPLIFY,
            2,
            ["rumor_spread"],
            0.65,
            f"Rumor={round(w.Rumor)} keeps spreading and \"{title}\" adds credibility. With Trust={round(w.Trust)} "
            f"slipping, the more people hear, the more they fear. A prophecy starts this way.",
        )
    return (
        ActionKind.WAIT,
        1,
        ["skeptical"],
        0.4,
        f"The shock from \"{title}\" looks limited, but Rumor={round(w.Rumor)} creeps upward while "
        f"Panic={round(w.Panic)} holds. Stay alert and keep watching the numbers.",
    )


def _npc_follower(w: WorldState, title: str) -> tuple[ActionKind, int, list[str], float, str]:
    if w.Panic > 60:
        return (
            ActionKind.EXIT,
            2,
            ["herd_behavior"],
            0.55,
            f"Everyone is running: Panic={round(w.Panic)} says most people already chose to leave and "
            f"Trust={round(w.Trust)} agrees. Following the crowd feels safe; \"{title}\" made it worse.",
        )
    if w.Trust > 60:
        return (
            ActionKind.STABILIZE,
            1,
            ["consensus"],
            0.45,
            f"Trust={round(w.Trust)} is still decent and Panic={round(w.Panic)} is moderate, so most people "
            f"seem to be holding on. \"{title}\" is manageable; follow the mainstream.",
        )
    return (
        ActionKind.WAIT,
        1,
        ["indecisive"],
        0.3,
        f"The picture is unclear with Panic={round(w.Panic)} and Trust={round(w.Trust)}. \"{title}\" makes "
        f"people hesitate, so first see what everyone else decides to do.",
    )


_PERSONALITIES = (_npc_cautious, _npc_stabilizer, _npc_opportunist, _npc_pessimist, _npc_follower)


def npc_submission(world: WorldState, slot: int, event: RumorEvent) -> Submission:
    """Deterministic synthetic submission for quorum slot ``slot``, biased by world thresholds."""

    personality = _PERSONALITIES[slot % len(_PERSONALITIES)]
    action, intensity, signals, confidence, narrative = personality(world, event.title)
    return Submission(
        name=NPC_NAMES[slot % len(NPC_NAMES)],
        action=action,
        intensity=intensity,
        signals=tuple(signals),
        confidence=confidence,
        narrative=narrative,
    )


@dataclass(frozen=True)
class _FillCandidate:
    round_id: int
    round_index: int
    rumor_card_id: str
    world: WorldState
    count: int
    used_player_ids: frozenset[str]


class IdleAutoFill:
    """Periodic sweep that fills idle rounds, decoupled from request handling."""

    def __init__(
        self,
        lifecycle: RoundLifecycle,
        session_factory: Callable[[], Session],
        catalog: Catalog,
        timeout_ms: int,
        interval_ms: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._lifecycle = lifecycle
        self._session_factory = session_factory
        self._catalog = catalog
        self._timeout = timedelta(milliseconds=timeout_ms)
        self._interval_s = max(0.01, interval_ms / 1000)
        self._clock = clock
        self._task: asyncio.Task | None = None

    def sweep(self, now: datetime | None = None) -> int:
        """Fill every qualifying round once; returns the number of synthetic submissions accepted."""

        now = as_utc(now or self._clock())
        filled = 0
        for candidate in self._candidates(now):
            event = self._catalog.get(candidate.rumor_card_id)
            logger.info(
                "auto-fill round=%s index=%s filling=%s",
                candidate.round_id,
                candidate.round_index,
                self._lifecycle.quorum - candidate.count,
            )
            slot = candidate.count
            for _ in range(self._lifecycle.quorum - candidate.count):
                player_id = f"{NPC_PLAYER_PREFIX}{candidate.round_id}-{slot}"
                while player_id in candidate.used_player_ids:
                    slot += 1
                    player_id = f"{NPC_PLAYER_PREFIX}{candidate.round_id}-{slot}"
                submission = npc_submission(candidate.world, slot, event)
                slot += 1
                try:
                    receipt = self._lifecycle.submit(candidate.round_id, player_id, submission)
                except (RoundResolved, DuplicateSubmission) as exc:
                    logger.info("auto-fill yielded round=%s reason=%s", candidate.round_id, type(exc).__name__)
                    break
                filled += 1
                if receipt.resolved:
                    break
        return filled

    def _candidates(self, now: datetime) -> list[_FillCandidate]:
        candidates: list[_FillCandidate] = []
        with self._session_factory() as session:
            rounds = session.exec(select(Round).where(Round.state == RoundState.WAITING_SUBMISSIONS)).all()
            for rnd in rounds:
                if rnd.id is None:
                    continue
                records = session.exec(select(SubmissionRecord).where(SubmissionRecord.round_id == rnd.id)).all()
                if len(records) >= self._lifecycle.quorum:
                    continue
                if not any(not is_synthetic_player(record.player_id) for record in records):
                    continue
                last_activity = max((as_utc(record.created_at) for record in records), default=as_utc(rnd.created_at))
                if now - last_activity < self._timeout:
                    continue
                candidates.append(
                    _FillCandidate(
                        round_id=rnd.id,
                        round_index=rnd.round_index,
                        rumor_card_id=rnd.rumor_card_id,
                        world=WorldState.from_dict(rnd.pre_state),
                        count=len(records),
                        used_player_ids=frozenset(record.player_id for record in records),
                    )
                )
        return candidates

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        logger.info(
            "auto-fill started timeout=%ss interval=%ss",
            self._timeout.total_seconds(),
            self._interval_s,
        )
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as exc:
                logger.warning("auto-fill sweep failed reason=%s: %s", type(exc).__name__, str(exc)[:160])
