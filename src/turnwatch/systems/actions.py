"""
Confirmation gate for roster mutations.

    stage(intent) -> PendingAction      nothing changes yet
    confirm(action_id) -> ActionResult  the mutation runs
    cancel(action_id)                   discarded, zero side effects

The pending intent is plain data (an Intent model), not a captured
callback, so it can be shown to the user, serialized, or dropped.

Only one action is pending at a time, like a single confirmation dialog:
staging a new action discards the previous one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import uuid4

from pydantic import BaseModel, Field

from ..errors import ActionRejectedError
from ..state.event_bus import RosterEventType
from ..state.schema import Player, Status

if TYPE_CHECKING:
    from ..state.roster import RosterStore

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    """Mutations that need confirmation."""
    MARK_PLAYED = "mark_played"
    OVERRIDE = "override"
    CLEANUP_INACTIVE = "cleanup_inactive"
    RESET_ALL = "reset_all"


class Intent(BaseModel):
    """What the user asked for. Read-only until confirmed."""
    kind: ActionKind
    player_id: str | None = None
    status: Status | None = None  # override only
    expires_at: datetime | None = None  # override only

    @classmethod
    def mark_played(cls, player_id: str) -> "Intent":
        return cls(kind=ActionKind.MARK_PLAYED, player_id=player_id)

    @classmethod
    def override(cls, player_id: str, status: Status, expires_at: datetime | None) -> "Intent":
        return cls(kind=ActionKind.OVERRIDE, player_id=player_id, status=status, expires_at=expires_at)

    @classmethod
    def cleanup_inactive(cls) -> "Intent":
        return cls(kind=ActionKind.CLEANUP_INACTIVE)

    @classmethod
    def reset_all(cls) -> "Intent":
        return cls(kind=ActionKind.RESET_ALL)


class PendingAction(BaseModel):
    """A staged intent plus the confirmation prompt shown for it."""
    action_id: str = Field(default_factory=lambda: str(uuid4())[:8])
    intent: Intent
    title: str
    message: str


class ActionResult(BaseModel):
    """Outcome of a confirmed action."""
    action_id: str
    kind: ActionKind
    summary: str
    players: list[Player] = Field(default_factory=list)  # players written or removed


class ActionGate:
    """
    Stages, confirms and cancels roster mutations.

    Validation happens at stage time so the prompt never offers something
    that cannot run; the player is looked up again at confirm time.
    """

    def __init__(self, roster: "RosterStore"):
        self._roster = roster
        self._pending: PendingAction | None = None

    @property
    def pending(self) -> PendingAction | None:
        return self._pending

    def stage(self, intent: Intent) -> PendingAction:
        """
        Build the confirmation prompt for an intent. No state mutation.

        Raises:
            PlayerNotFoundError: The intent names an unknown player
            ActionRejectedError: Mark-played on a player who is already Eligible,
                or an override without a status
        """
        title, message = self._describe(intent)
        if self._pending is not None:
            logger.debug(f"Discarding pending action {self._pending.action_id}")
        self._pending = PendingAction(intent=intent, title=title, message=message)
        self._roster.bus.emit(
            RosterEventType.ACTION_STAGED,
            action_id=self._pending.action_id,
            kind=intent.kind.value,
        )
        return self._pending

    def cancel(self, action_id: str) -> PendingAction:
        """Discard the pending action. Nothing is applied."""
        pending = self._take(action_id, "cancel")
        self._roster.bus.emit(
            RosterEventType.ACTION_CANCELLED,
            action_id=action_id,
            kind=pending.intent.kind.value,
        )
        return pending

    def confirm(self, action_id: str) -> ActionResult:
        """
        Run the pending action.

        The action is consumed even if the mutation fails, like a dialog
        that closes on confirm.
        """
        pending = self._take(action_id, "confirm")
        intent = pending.intent
        roster = self._roster

        if intent.kind == ActionKind.MARK_PLAYED:
            player = roster.mark_played(intent.player_id)
            return ActionResult(
                action_id=action_id,
                kind=intent.kind,
                summary=f"{player.name} marked as played",
                players=[player],
            )
        elif intent.kind == ActionKind.OVERRIDE:
            player = roster.override(intent.player_id, intent.status, intent.expires_at)
            return ActionResult(
                action_id=action_id,
                kind=intent.kind,
                summary=f"{player.name} set to {player.status.value}",
                players=[player],
            )
        elif intent.kind == ActionKind.CLEANUP_INACTIVE:
            removed = roster.cleanup_inactive()
            return ActionResult(
                action_id=action_id,
                kind=intent.kind,
                summary=f"Removed {len(removed)} inactive player(s)",
                players=removed,
            )
        elif intent.kind == ActionKind.RESET_ALL:
            roster.reset_all()
            return ActionResult(
                action_id=action_id,
                kind=intent.kind,
                summary="All player data cleared",
            )
        raise ActionRejectedError(f"Unknown action kind: {intent.kind}")

    def _take(self, action_id: str, verb: str) -> PendingAction:
        if self._pending is None or self._pending.action_id != action_id:
            raise ActionRejectedError(f"Cannot {verb}: no pending action {action_id}")
        pending = self._pending
        self._pending = None
        return pending

    def _describe(self, intent: Intent) -> tuple[str, str]:
        if intent.kind == ActionKind.MARK_PLAYED:
            player = self._roster.get(intent.player_id)
            if player.status == Status.ELIGIBLE:
                raise ActionRejectedError(f"{player.name} is already eligible")
            return (
                "Confirm Action",
                f"Mark {player.name} as played? This will reset their eligibility timer.",
            )
        elif intent.kind == ActionKind.OVERRIDE:
            player = self._roster.get(intent.player_id)
            if intent.status is None:
                raise ActionRejectedError("Override needs a status")
            return (
                "Confirm Manual Override",
                f"Are you sure you want to apply these changes to {player.name}?",
            )
        elif intent.kind == ActionKind.CLEANUP_INACTIVE:
            return (
                "Cleanup Inactive Players",
                "Are you sure you want to permanently remove all inactive players?",
            )
        elif intent.kind == ActionKind.RESET_ALL:
            return (
                "Reset All Data",
                "Are you sure you want to reset all player data? This cannot be undone.",
            )
        raise ActionRejectedError(f"Unknown action kind: {intent.kind}")
