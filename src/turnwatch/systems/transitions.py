"""
Time-driven status transitions.

    Eligible ──(now > expiry)──▶ Not Eligible ──(now > expiry + inactivity)──▶ Inactive

Inactive is terminal here; only a manual override leaves it. A player with
no expiry never moves. The inactivity window is measured from the
original expiry, not from when the player became Not Eligible.

Everything in this module is pure: no clock, no storage, no events.
"""

from datetime import datetime, timedelta
from typing import Iterable, assert_never

from ..state.schema import Player, Status


def step(player: Player, now: datetime, inactivity_window: timedelta) -> Status:
    """Status after one transition rule, or the current status if none applies."""
    expiry = player.eligibility_expires_at
    status = player.status

    if status == Status.ELIGIBLE:
        if expiry is not None and now > expiry:
            return Status.NOT_ELIGIBLE
        return status
    elif status == Status.NOT_ELIGIBLE:
        if expiry is not None and now > expiry + inactivity_window:
            return Status.INACTIVE
        return status
    elif status == Status.INACTIVE:
        return status
    else:
        assert_never(status)


def settle(player: Player, now: datetime, inactivity_window: timedelta) -> Player:
    """
    Apply rules until none fires.

    Returns the same object when nothing changed.
    """
    current = player
    while True:
        following = step(current, now, inactivity_window)
        if following == current.status:
            return current
        current = current.model_copy(update={"status": following})


def evaluate(
    players: Iterable[Player],
    now: datetime,
    inactivity_window: timedelta,
) -> list[Player]:
    """
    Recompute every player's status at `now`.

    Idempotent: evaluate(evaluate(p, t), t) == evaluate(p, t).
    """
    return [settle(player, now, inactivity_window) for player in players]


def changed_players(before: Iterable[Player], after: Iterable[Player]) -> list[Player]:
    """Players in `after` whose status differs from their entry in `before`."""
    previous = {p.id: p.status for p in before}
    return [p for p in after if p.id in previous and previous[p.id] != p.status]
