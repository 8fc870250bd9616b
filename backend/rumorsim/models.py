from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, JSON, SQLModel

from .engine.catalog import GameMode
from .utils import utc_now


class RoomStatus(str, Enum):
    active = "active"
    over = "over"


class RoundState(str, Enum):
    WAITING_SUBMISSIONS = "WAITING_SUBMISSIONS"
    RESOLVED = "RESOLVED"


class GameOverReason(str, Enum):
    cap_reached = "cap_reached"
    systemic_collapse = "systemic_collapse"


class Room(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    mode: GameMode = Field(default=GameMode.story)
    seed: Optional[int] = None
    status: RoomStatus = Field(default=RoomStatus.active)
    end_reason: Optional[GameOverReason] = None
    game_narrative: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Round(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("room_id", "round_index"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: int = Field(index=True)
    round_index: int = Field(default=0)
    rumor_card_id: str
    state: RoundState = Field(default=RoundState.WAITING_SUBMISSIONS, index=True)
    pre_state: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    post_state: Optional[dict[str, Any]] = Field(default=None, sa_type=JSON)
    env_in: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    env_out: Optional[dict[str, Any]] = Field(default=None, sa_type=JSON)
    report: Optional[dict[str, Any]] = Field(default=None, sa_type=JSON)
    narrative: Optional[str] = None
    chain_tx_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None


class SubmissionRecord(SQLModel, table=True):
    __tablename__ = "submission"
    __table_args__ = (UniqueConstraint("round_id", "player_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    round_id: int = Field(index=True)
    player_id: str = Field(index=True)
    agent_name: str
    action: str
    intensity: int
    signals: list[str] = Field(default_factory=list, sa_type=JSON)
    confidence: float
    narrative: str = ""
    submission_hash: str = ""
    created_at: datetime = Field(default_factory=utc_now)


class Agent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: str = Field(index=True, unique=True)
    agent_name: str
    total_rounds: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now)
