"""
Pydantic models for roster state.

The wire shape uses camelCase keys (lastPlayed, eligibilityExpiresAt,
playerName, historyLog), so the same snapshot can be passed between
either persistence strategy.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class Status(str, Enum):
    ELIGIBLE = "Eligible"
    NOT_ELIGIBLE = "Not Eligible"
    INACTIVE = "Inactive"


# Most recent entries kept in the history log
HISTORY_LIMIT = 100

# Name used for roster-wide actions in the history log
ADMIN_NAME = "Admin"


def generate_id() -> str:
    return str(uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC so comparisons never mix kinds."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------

class Player(BaseModel):
    """
    A member of the rotation.

    Players are immutable; every mutation produces a new instance via
    model_copy so the transition evaluator can stay pure.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=generate_id)
    name: str
    last_played: datetime | None = Field(default=None, alias="lastPlayed")
    eligibility_expires_at: datetime | None = Field(
        default=None, alias="eligibilityExpiresAt"
    )
    status: Status = Status.NOT_ELIGIBLE

    @field_validator("last_played", "eligibility_expires_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class HistoryEntry(BaseModel):
    """One audit record. player_name is a snapshot, not a reference."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=generate_id)
    player_name: str = Field(alias="playerName")
    action: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


class RosterState(BaseModel):
    """Players plus history: the unit of persistence and synchronization."""
    model_config = ConfigDict(populate_by_name=True)

    players: list[Player] = Field(default_factory=list)
    history_log: list[HistoryEntry] = Field(default_factory=list, alias="historyLog")

    def is_empty(self) -> bool:
        return not self.players and not self.history_log

    def to_wire(self) -> dict:
        """Dump to the JSON-compatible persisted shape."""
        return self.model_dump(mode="json", by_alias=True)
