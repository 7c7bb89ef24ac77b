"""
Roster systems.

Domain logic that runs on top of the roster: the status evaluator, the
confirmation gate, expiry alerts and the periodic scheduler.
"""

from .transitions import evaluate, settle, step
from .actions import ActionGate, ActionKind, ActionResult, Intent, PendingAction
from .notifications import (
    ALERT_TITLE,
    NotificationPermission,
    NotificationTracker,
    Notifier,
    NullNotifier,
)
from .scheduler import Scheduler, TickResult

__all__ = [
    "evaluate",
    "settle",
    "step",
    # Confirmation gate
    "ActionGate",
    "ActionKind",
    "ActionResult",
    "Intent",
    "PendingAction",
    # Alerts
    "ALERT_TITLE",
    "NotificationPermission",
    "NotificationTracker",
    "Notifier",
    "NullNotifier",
    # Scheduling
    "Scheduler",
    "TickResult",
]
