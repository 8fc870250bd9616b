"""Pydantic request schemas for the HTTP API.

Submission validation happens here, before anything reaches the lifecycle
controller: enum membership, intensity/confidence ranges, signal tags and
the narrative length/metric-reference rule.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .engine.actions import ActionKind, Submission
from .engine.catalog import GameMode

NARRATIVE_MIN_LENGTH = 100
NARRATIVE_MAX_LENGTH = 500
MIN_METRIC_REFERENCES = 2

METRIC_REF_PATTERN = re.compile(r"(Panic|Trust|Liquidity|Load|Rumor|Price|Loss)\s*[=＝]\s*\d+")


def metric_references(narrative: str) -> set[str]:
    """Distinct metric names referenced with a numeric value, e.g. ``Panic=82``."""

    return {match.group(1) for match in METRIC_REF_PATTERN.finditer(narrative)}


class SubmissionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    agent_name: str = Field(min_length=1, max_length=50)
    action: ActionKind
    intensity: Literal[1, 2, 3]
    signals: list[Annotated[str, Field(min_length=1, max_length=64)]] = Field(min_length=1, max_length=10)
    confidence: float = Field(ge=0.0, le=1.0)
    narrative: str = Field(min_length=NARRATIVE_MIN_LENGTH, max_length=NARRATIVE_MAX_LENGTH)

    @field_validator("narrative")
    @classmethod
    def _narrative_references_metrics(cls, value: str) -> str:
        if len(metric_references(value)) < MIN_METRIC_REFERENCES:
            raise ValueError(
                "narrative must reference at least 2 world metrics with values (e.g. Panic=82 Trust=38)"
            )
        return value

    def to_submission(self) -> Submission:
        return Submission(
            name=self.agent_name,
            action=self.action,
            intensity=self.intensity,
            signals=tuple(self.signals),
            confidence=self.confidence,
            narrative=self.narrative,
        )


class SubmitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    player_id: str = Field(alias="playerId", min_length=1, max_length=100)
    submission: SubmissionIn


class RoomCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: GameMode = GameMode.story
    seed: int | None = None
