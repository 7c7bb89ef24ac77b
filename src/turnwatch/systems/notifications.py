"""
Expiry alerts for players about to lose eligibility.

Two channels with different triggering:
- On-screen alerts are level-triggered: every scan rebuilds the list from
  the current roster.
- External notifications are edge-triggered: a player fires once when the
  alert condition becomes true, and can fire again only after the
  condition has cleared.

External delivery goes through an injected Notifier. A notifier without
permission is skipped; on-screen alerts keep working.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Protocol, runtime_checkable

from ..errors import PermissionDeniedError
from ..state.event_bus import EventBus, RosterEventType
from ..state.schema import Player, Status

logger = logging.getLogger(__name__)


ALERT_TITLE = "Player Eligibility Alert"


class NotificationPermission(str, Enum):
    DEFAULT = "default"  # Not asked yet
    GRANTED = "granted"
    DENIED = "denied"


@runtime_checkable
class Notifier(Protocol):
    """External (OS-level) notification capability."""

    @property
    def permission(self) -> NotificationPermission:
        ...

    def request_permission(self) -> NotificationPermission:
        ...

    def notify(self, title: str, body: str, tag: str) -> None:
        """Deliver one notification. Raises PermissionDeniedError if refused."""
        ...


class NullNotifier:
    """Notifier that never has permission. Used when none is wired up."""

    @property
    def permission(self) -> NotificationPermission:
        return NotificationPermission.DENIED

    def request_permission(self) -> NotificationPermission:
        return NotificationPermission.DENIED

    def notify(self, title: str, body: str, tag: str) -> None:
        raise PermissionDeniedError("No notifier available")


def _hours(window: timedelta) -> str:
    hours = window.total_seconds() / 3600
    return str(int(hours)) if hours == int(hours) else f"{hours:g}"


def alert_message(
    player: Player,
    now: datetime,
    warning_window: timedelta = timedelta(hours=24),
) -> str | None:
    """
    Alert text when an Eligible player's expiry is in (now, now + window].

    Returns None otherwise, including Eligible players with no expiry.
    """
    if player.status != Status.ELIGIBLE or player.eligibility_expires_at is None:
        return None
    remaining = player.eligibility_expires_at - now
    if timedelta(0) < remaining <= warning_window:
        return f"Player {player.name}'s eligibility ends in less than {_hours(warning_window)} hours."
    return None


class NotificationTracker:
    """
    Builds on-screen alerts and de-duplicates external notifications.

    The dedup memory lives here, not in storage: a restarted client may
    notify again for a player that is still inside the window.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        warning_window: timedelta = timedelta(hours=24),
        enabled: bool = True,
        bus: EventBus | None = None,
    ):
        self.notifier: Notifier = notifier or NullNotifier()
        self.warning_window = warning_window
        self.enabled = enabled
        self.bus = bus
        self.alerts: list[str] = []
        self._notified: set[str] = set()

    @property
    def notified_ids(self) -> frozenset[str]:
        return frozenset(self._notified)

    def start(self) -> NotificationPermission:
        """Ask for permission up front when alerts are on."""
        if self.enabled and self.notifier.permission != NotificationPermission.GRANTED:
            return self.notifier.request_permission()
        return self.notifier.permission

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if enabled:
            self.start()
        else:
            self.alerts = []

    def scan(self, players: Iterable[Player], now: datetime) -> list[str]:
        """
        Recompute alerts for the roster at `now`.

        While disabled, returns nothing and leaves the dedup memory alone.
        """
        if not self.enabled:
            self.alerts = []
            return []

        players = list(players)
        alerts: list[str] = []
        for player in players:
            message = alert_message(player, now, self.warning_window)
            if message is None:
                self._notified.discard(player.id)
                continue
            alerts.append(message)
            if player.id not in self._notified and self._dispatch(player, message):
                self._notified.add(player.id)

        # Deleted players no longer meet the condition
        present = {p.id for p in players}
        self._notified &= present

        self.alerts = alerts
        return alerts

    def _dispatch(self, player: Player, message: str) -> bool:
        if self.notifier.permission != NotificationPermission.GRANTED:
            return False
        try:
            self.notifier.notify(ALERT_TITLE, message, tag=player.id)
        except PermissionDeniedError as e:
            logger.info(f"External notification skipped for {player.name}: {e}")
            return False
        if self.bus is not None:
            self.bus.emit(RosterEventType.ALERT_RAISED, player_id=player.id, message=message)
        return True

    def reset(self) -> None:
        """Forget everything (teardown)."""
        self._notified.clear()
        self.alerts = []
