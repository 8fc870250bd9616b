"""Bounded seven-metric world state and its pure helpers."""

from dataclasses import asdict, dataclass, replace
from typing import Any

WORLD_KEYS: tuple[str, ...] = ("Panic", "Trust", "Liquidity", "Load", "Rumor", "Price", "Loss")

METRIC_MIN = 0.0
METRIC_MAX = 100.0


@dataclass(frozen=True)
class WorldState:
    """Immutable snapshot of the simulated market at one point in time."""

    Panic: float
    Trust: float
    Liquidity: float
    Load: float
    Rumor: float
    Price: float
    Loss: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorldState":
        return cls(**{key: float(data[key]) for key in WORLD_KEYS})


DEFAULT_WORLD = WorldState(
    Panic=25.0,
    Trust=78.0,
    Liquidity=85.0,
    Load=30.0,
    Rumor=15.0,
    Price=88.0,
    Loss=2.0,
)


def clamp(value: float) -> float:
    return max(METRIC_MIN, min(METRIC_MAX, value))


def clamp_state(state: WorldState) -> WorldState:
    return WorldState(**{key: clamp(getattr(state, key)) for key in WORLD_KEYS})


def copy_state(state: WorldState, **changes: float) -> WorldState:
    return replace(state, **changes)


def delta_state(pre: WorldState, post: WorldState) -> WorldState:
    """Per-metric change, rounded to two decimals for reporting only."""

    return WorldState(**{key: round(getattr(post, key) - getattr(pre, key), 2) for key in WORLD_KEYS})
