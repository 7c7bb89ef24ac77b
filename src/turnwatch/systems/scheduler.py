"""
Periodic re-evaluation of the roster.

One tick:
    poll backend → evaluate transitions → persist changes → scan alerts

The loop ticks once immediately and then every interval. Ticks run to
completion inside a single asyncio task, so two ticks never overlap.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..state.schema import Player

if TYPE_CHECKING:
    from ..state.roster import RosterStore
    from .notifications import NotificationTracker

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    at: datetime
    changed: list[Player] = field(default_factory=list)
    alerts: list[str] = field(default_factory=list)


class Scheduler:
    """Drives the evaluator and the notification scan on a fixed period."""

    def __init__(
        self,
        roster: "RosterStore",
        tracker: "NotificationTracker",
        interval: timedelta | None = None,
    ):
        self._roster = roster
        self._tracker = tracker
        self.interval = interval or roster.settings.tick_interval
        self.tick_count = 0
        self._task: asyncio.Task | None = None
        self._stop: asyncio.Event | None = None

    def tick(self) -> TickResult:
        """Run one evaluation pass synchronously."""
        self._roster.adapter.poll()
        now = self._roster.clock.now()
        changed = self._roster.apply_transitions(now)
        alerts = self._tracker.scan(self._roster.players, now)
        self.tick_count += 1

        result = TickResult(at=now, changed=changed, alerts=alerts)
        if changed:
            logger.debug(f"Tick {self.tick_count}: {len(changed)} status change(s)")
        return result

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Tick now, then every interval until `stop` is set."""
        self._stop = stop or asyncio.Event()
        seconds = self.interval.total_seconds()
        while True:
            try:
                self.tick()
            except Exception as e:
                # One bad tick must not end the loop
                logger.error(f"Scheduler tick failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=seconds)
                break
            except asyncio.TimeoutError:
                continue

    def start(self) -> asyncio.Task:
        """Start the loop as a background task on the running event loop."""
        if self._task is None or self._task.done():
            self._stop = asyncio.Event()
            self._task = asyncio.create_task(self.run(self._stop))
        return self._task

    async def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
