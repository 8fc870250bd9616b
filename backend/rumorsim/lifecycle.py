"""Round lifecycle: quorum-gated submission intake and exactly-once resolution.

Each round moves WAITING_SUBMISSIONS -> RESOLVED exactly once. Duplicate
detection, the quorum count and the resolution itself run inside one
critical section guarded by a lock that belongs to that round only, so
submissions for different rounds proceed in parallel. The RESOLVED
transition is additionally a conditional UPDATE, so a second writer that
somehow reaches it observes zero affected rows and backs off.
"""

import logging
import threading
import weakref
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .engine.actions import ActionKind, Submission
from .engine.catalog import Catalog
from .engine.integrity import submission_receipt
from .engine.resolution import ResolveEnv, RoundReport, resolve_round
from .engine.world import WorldState
from .errors import DuplicateSubmission, NoActiveRound, RoomNotFound, RoundNotFound, RoundResolved
from .models import Agent, Room, Round, RoundState, SubmissionRecord
from .utils import utc_now

logger = logging.getLogger(__name__)

NPC_PLAYER_PREFIX = "npc-"


def is_synthetic_player(player_id: str) -> bool:
    return player_id.startswith(NPC_PLAYER_PREFIX)


@dataclass(frozen=True)
class RoundResolvedEvent:
    """Published once per round, after the RESOLVED transition has committed."""

    room_id: int
    round_id: int
    round_index: int
    report: RoundReport
    submissions: tuple[Submission, ...]
    env_out: ResolveEnv


@dataclass(frozen=True)
class SubmissionReceipt:
    round_id: int
    player_id: str
    submission_hash: str
    count: int
    resolved: bool
    report: RoundReport | None = None


class _RoundLock:
    __slots__ = ("_lock", "__weakref__")

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __enter__(self) -> "_RoundLock":
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


class RoundLockRegistry:
    """Hands out one lock per round id; never a global lock.

    Entries are weak: once no caller holds or waits on a round's lock it
    drops out of the registry, so resolved or abandoned rounds leave nothing
    behind.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[int, _RoundLock] = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def lock_for(self, round_id: int) -> _RoundLock:
        with self._guard:
            lock = self._locks.get(round_id)
            if lock is None:
                lock = _RoundLock()
                self._locks[round_id] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def record_to_submission(record: SubmissionRecord) -> Submission:
    return Submission(
        name=record.agent_name,
        action=ActionKind(record.action),
        intensity=record.intensity,
        signals=tuple(record.signals or ()),
        confidence=record.confidence,
        narrative=record.narrative,
    )


class RoundLifecycle:
    """Owns submission intake and the WAITING -> RESOLVED transition."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        catalog: Catalog,
        quorum: int = 5,
        on_resolved: Callable[[RoundResolvedEvent], None] | None = None,
    ) -> None:
        if quorum < 1:
            raise ValueError("quorum must be at least 1")
        self._session_factory = session_factory
        self._catalog = catalog
        self.quorum = quorum
        self.on_resolved = on_resolved
        self._locks = RoundLockRegistry()

    def submit(self, round_id: int, player_id: str, submission: Submission) -> SubmissionReceipt:
        """Accept one validated submission; resolve the round when the quorum fills.

        The quorum-filling record and the RESOLVED transition commit in the
        same transaction: if resolution fails, the record is rolled back with
        it and the round stays open for a retry.
        """

        resolved_event: RoundResolvedEvent | None = None
        stranded = False
        with self._locks.lock_for(round_id):
            with self._session_factory() as session:
                rnd = session.get(Round, round_id)
                if not rnd:
                    raise RoundNotFound(round_id)
                if rnd.state == RoundState.RESOLVED:
                    raise RoundResolved(round_id)

                if self._count(session, round_id) >= self.quorum:
                    # Left WAITING with a full quorum; finish it instead of over-filling.
                    stranded = True
                    resolved_event = self._resolve(session, round_id)
                else:
                    receipt_hash = self._insert(session, round_id, player_id, submission)
                    count = self._count(session, round_id)
                    if count >= self.quorum:
                        try:
                            resolved_event = self._resolve(session, round_id)
                        except Exception:
                            session.rollback()
                            raise
                        if resolved_event is None:
                            raise RoundResolved(round_id)
                    else:
                        session.commit()

                    if not is_synthetic_player(player_id):
                        self._record_agent(session, player_id, submission.name)

        if stranded:
            if resolved_event is not None:
                self._publish(resolved_event)
            raise RoundResolved(round_id)

        if resolved_event is None:
            return SubmissionReceipt(
                round_id=round_id,
                player_id=player_id,
                submission_hash=receipt_hash,
                count=count,
                resolved=False,
            )

        self._publish(resolved_event)
        return SubmissionReceipt(
            round_id=round_id,
            player_id=player_id,
            submission_hash=receipt_hash,
            count=count,
            resolved=True,
            report=resolved_event.report,
        )

    def _publish(self, resolved_event: RoundResolvedEvent) -> None:
        logger.info(
            "round resolved room=%s round=%s index=%s events=%s round_hash=%s",
            resolved_event.room_id,
            resolved_event.round_id,
            resolved_event.round_index,
            ",".join(resolved_event.report.event_names()) or "-",
            resolved_event.report.hashes.round_hash,
        )
        if self.on_resolved is None:
            return
        try:
            self.on_resolved(resolved_event)
        except Exception as exc:
            # Resolution is committed; listener failures are only logged.
            logger.warning(
                "post-resolution handler failed round=%s reason=%s: %s",
                resolved_event.round_id,
                type(exc).__name__,
                str(exc)[:160],
            )

    def submit_to_current(self, room_id: int, player_id: str, submission: Submission) -> SubmissionReceipt:
        round_id = self.current_round_id(room_id)
        return self.submit(round_id, player_id, submission)

    def current_round_id(self, room_id: int) -> int:
        with self._session_factory() as session:
            if not session.get(Room, room_id):
                raise RoomNotFound(room_id)
            rnd = session.exec(
                select(Round)
                .where(Round.room_id == room_id, Round.state == RoundState.WAITING_SUBMISSIONS)
                .order_by(Round.round_index.desc())
            ).first()
            if not rnd or rnd.id is None:
                raise NoActiveRound(room_id)
            return rnd.id

    def submission_count(self, round_id: int) -> int:
        with self._session_factory() as session:
            return self._count(session, round_id)

    def _count(self, session: Session, round_id: int) -> int:
        return int(
            session.exec(
                select(func.count()).select_from(SubmissionRecord).where(SubmissionRecord.round_id == round_id)
            ).one()
        )

    def _insert(self, session: Session, round_id: int, player_id: str, submission: Submission) -> str:
        """Stage one submission row (flushed, not committed) and return its receipt hash."""
        existing = session.exec(
            select(SubmissionRecord).where(
                SubmissionRecord.round_id == round_id,
                SubmissionRecord.player_id == player_id,
            )
        ).first()
        if existing:
            raise DuplicateSubmission(round_id, player_id)

        receipt_hash = submission_receipt(round_id, player_id, submission)
        session.add(
            SubmissionRecord(
                round_id=round_id,
                player_id=player_id,
                agent_name=submission.name,
                action=submission.action.value,
                intensity=submission.intensity,
                signals=list(submission.signals),
                confidence=submission.confidence,
                narrative=submission.narrative,
                submission_hash=receipt_hash,
            )
        )
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateSubmission(round_id, player_id) from exc
        return receipt_hash

    def _record_agent(self, session: Session, player_id: str, agent_name: str) -> None:
        for _ in range(2):
            outcome = session.exec(  # type: ignore[call-overload]
                update(Agent)
                .where(Agent.player_id == player_id)
                .values(total_rounds=Agent.total_rounds + 1, agent_name=agent_name)
            )
            if outcome.rowcount:
                session.commit()
                return
            session.add(Agent(player_id=player_id, agent_name=agent_name, total_rounds=1))
            try:
                session.commit()
                return
            except IntegrityError:
                # Another round created this agent first; retry as an increment.
                session.rollback()

    def _resolve(self, session: Session, round_id: int) -> RoundResolvedEvent | None:
        rnd = session.get(Round, round_id)
        if not rnd:
            raise RoundNotFound(round_id)
        records = session.exec(
            select(SubmissionRecord)
            .where(SubmissionRecord.round_id == round_id)
            .order_by(SubmissionRecord.id)
            .limit(self.quorum)
        ).all()
        submissions = tuple(record_to_submission(record) for record in records)
        event = self._catalog.get(rnd.rumor_card_id)
        result = resolve_round(
            rnd.round_index,
            WorldState.from_dict(rnd.pre_state),
            event,
            submissions,
            ResolveEnv.from_dict(rnd.env_in),
            quorum=self.quorum,
        )
        outcome = session.exec(  # type: ignore[call-overload]
            update(Round)
            .where(Round.id == round_id, Round.state == RoundState.WAITING_SUBMISSIONS)
            .values(
                state=RoundState.RESOLVED,
                post_state=result.post_state.to_dict(),
                env_out=result.env_out.to_dict(),
                report=result.report.to_dict(),
                resolved_at=utc_now(),
            )
        )
        if outcome.rowcount != 1:
            session.rollback()
            logger.warning("round already resolved by another writer round=%s", round_id)
            return None
        session.commit()
        return RoundResolvedEvent(
            room_id=rnd.room_id,
            round_id=round_id,
            round_index=rnd.round_index,
            report=result.report,
            submissions=submissions,
            env_out=result.env_out,
        )
