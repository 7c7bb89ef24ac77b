"""
Shared command logic for the CLI and the headless runner.

Pure functions over the tracker that return structured data or raise
TrackerError. No Rich, no prompt_toolkit: presentation lives in the
callers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ..errors import ValidationError
from ..state.schema import Player, Status
from ..state.store import SnapshotAdapter
from ..timefmt import format_time_left

if TYPE_CHECKING:
    from ..app import Tracker


# =============================================================================
# Result Types
# =============================================================================

@dataclass
class CommandResult:
    """Base result for command operations."""
    success: bool
    message: str
    data: dict | None = None


# =============================================================================
# Parsing
# =============================================================================

def parse_status(value: str | None) -> Status:
    """Status from its display value, case-insensitive ("not eligible" works)."""
    if not value:
        raise ValidationError("No status provided")
    wanted = value.strip().casefold().replace("_", " ")
    for status in Status:
        if status.value.casefold() == wanted:
            return status
    choices = ", ".join(s.value for s in Status)
    raise ValidationError(f"Unknown status: {value} (expected one of {choices})")


def parse_expiry(value: str | None) -> datetime | None:
    """ISO timestamp, or None for no expiry. Naive times are read as UTC."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"Invalid expiry timestamp: {value}")


# =============================================================================
# Roster Views
# =============================================================================

def player_json(player: Player) -> dict:
    return player.model_dump(mode="json", by_alias=True)


def list_players(tracker: "Tracker") -> list[dict]:
    """Roster sorted by name, with a human time-left column."""
    now = tracker.roster.clock.now()
    return [
        {**player_json(p), "time_left": format_time_left(p.eligibility_expires_at, now)}
        for p in sorted(tracker.roster.players, key=lambda p: p.name.casefold())
    ]


def share_link(tracker: "Tracker", base_url: str = "") -> CommandResult:
    """Shareable locator for the current state."""
    adapter = tracker.roster.adapter
    if not isinstance(adapter, SnapshotAdapter):
        return CommandResult(
            success=False,
            message="Sharing links need the snapshot backend",
        )
    return CommandResult(
        success=True,
        message=adapter.locator(base_url) if adapter.token else "Nothing to share yet",
        data={"token": adapter.token, "locator": adapter.locator(base_url)},
    )


def split_locator(value: str) -> tuple[str, str | None]:
    """'https://host/page#TOKEN' -> ('https://host/page', 'TOKEN')."""
    base, sep, token = value.partition("#")
    return base, (token or None) if sep else None
