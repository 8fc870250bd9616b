"""Participant action kinds and the immutable submission record."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionKind(str, Enum):
    EXIT = "EXIT"
    AMPLIFY = "AMPLIFY"
    STABILIZE = "STABILIZE"
    WAIT = "WAIT"
    ARBITRAGE = "ARBITRAGE"


INTENSITY_LEVELS = (1, 2, 3)


@dataclass(frozen=True)
class Submission:
    """One participant's declared action for one round."""

    name: str
    action: ActionKind
    intensity: int
    signals: tuple[str, ...] = field(default_factory=tuple)
    confidence: float = 0.5
    narrative: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_name": self.name,
            "action": self.action.value,
            "intensity": self.intensity,
            "signals": list(self.signals),
            "confidence": self.confidence,
            "narrative": self.narrative,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Submission":
        return cls(
            name=str(data["agent_name"]),
            action=ActionKind(data["action"]),
            intensity=int(data["intensity"]),
            signals=tuple(data.get("signals") or ()),
            confidence=float(data["confidence"]),
            narrative=str(data.get("narrative", "")),
        )
