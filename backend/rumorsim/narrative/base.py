"""Shared data contracts for pluggable narrative adapters."""

from dataclasses import dataclass, field

from ..engine.actions import Submission
from ..engine.catalog import RumorEvent
from ..engine.resolution import RoundReport


@dataclass
class RoundNarrativeContext:
    """Everything an adapter may draw on to narrate one resolved round."""

    room_id: int
    mode: str
    event: RumorEvent
    report: RoundReport
    submissions: list[Submission] = field(default_factory=list)


@dataclass
class TimelineEntry:
    round_index: int
    event_title: str
    report: RoundReport


@dataclass
class GameNarrativeContext:
    """Full timeline of a finished game."""

    room_id: int
    mode: str
    end_reason: str
    timeline: list[TimelineEntry] = field(default_factory=list)


class NarrativeAdapter:
    """Minimal interface implemented by all narrative backends."""

    async def narrate_round(self, ctx: RoundNarrativeContext) -> str:
        raise NotImplementedError

    async def narrate_game(self, ctx: GameNarrativeContext) -> str:
        raise NotImplementedError
