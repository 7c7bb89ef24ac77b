"""
Headless runner for the tracker.

Provides JSON I/O interface for programmatic control.
Input: JSON commands, one object per line
Output: JSON responses, one object per line

Used by scripts and tests that drive the roster without a terminal.
Mutations that need confirmation go through the same stage/confirm/cancel
gate as the interactive CLI.
"""

import json
import logging
import sys
from typing import TextIO

from ..app import Tracker
from ..errors import TrackerError, ValidationError
from ..state.event_bus import RosterEvent, RosterEventType
from ..systems.actions import Intent, PendingAction
from .shared import list_players, parse_expiry, parse_status, player_json, share_link

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class HeadlessRunner:
    """
    Tracker runner with JSON I/O.

    Commands are read as JSON objects. Every response carries "ok";
    failures carry "error" and leave the roster untouched.
    """

    def __init__(
        self,
        tracker: Tracker,
        output: TextIO = sys.stdout,
        base_url: str = "",
    ):
        self.tracker = tracker
        self.output = output
        self.base_url = base_url
        self._warnings: list[str] = []
        tracker.bus.on(RosterEventType.PERSISTENCE_FAILED, self._on_write_failed)

    def _on_write_failed(self, event: RosterEvent) -> None:
        self._warnings.append(f"Saved in memory only: {event.data.get('error')}")

    @property
    def roster(self):
        return self.tracker.roster

    def _write_json(self, obj: dict):
        """Write a JSON object to output followed by newline."""
        json.dump(obj, self.output, default=str)
        self.output.write("\n")
        self.output.flush()

    def _emit_response(self, response_type: str, **data):
        """Emit a response object."""
        self._write_json({
            "type": response_type,
            **data,
        })

    def handle_command(self, cmd: dict) -> dict:
        """
        Handle a JSON command.

        Commands:
            {"cmd": "status"} - Header counts and pending action
            {"cmd": "players"} - Full roster
            {"cmd": "history"} - History log, newest first
            {"cmd": "alerts"} - Current on-screen alerts
            {"cmd": "add", "name": "..."} - Add a player
            {"cmd": "mark_played", "player": "..."} - Stage mark-as-played
            {"cmd": "override", "player": "...", "status": "...", "expires_at": "..."} - Stage override
            {"cmd": "cleanup"} - Stage removal of inactive players
            {"cmd": "reset"} - Stage full reset
            {"cmd": "confirm", "action_id": "..."} - Run the pending action
            {"cmd": "cancel", "action_id": "..."} - Drop the pending action
            {"cmd": "tick"} - Run one scheduler pass now
            {"cmd": "share"} - Shareable locator (snapshot backend)
            {"cmd": "notifications", "enabled": true} - Toggle alerts
            {"cmd": "quit"} - Exit

        "player" accepts a player id or a name.

        A mutation whose write failed on the snapshot backend still
        succeeds, with the failure reported under "warning".

        Returns:
            Response dict
        """
        self._warnings.clear()
        result = self._dispatch(cmd)
        if result.get("ok") and self._warnings:
            result["warning"] = "; ".join(self._warnings)
        return result

    def _dispatch(self, cmd: dict) -> dict:
        cmd_type = cmd.get("cmd", "")

        try:
            if cmd_type == "status":
                return self._cmd_status()
            elif cmd_type == "players":
                return self._cmd_players()
            elif cmd_type == "history":
                return self._cmd_history()
            elif cmd_type == "alerts":
                return {"ok": True, "alerts": list(self.tracker.notifications.alerts)}
            elif cmd_type == "add":
                return self._cmd_add(_text(cmd, "name"))
            elif cmd_type == "mark_played":
                player = self.roster.resolve(_text(cmd, "player"))
                return self._staged(self.tracker.gate.stage(Intent.mark_played(player.id)))
            elif cmd_type == "override":
                return self._cmd_override(
                    _text(cmd, "player"),
                    _text(cmd, "status"),
                    _text(cmd, "expires_at", required=False),
                )
            elif cmd_type == "cleanup":
                return self._staged(self.tracker.gate.stage(Intent.cleanup_inactive()))
            elif cmd_type == "reset":
                return self._staged(self.tracker.gate.stage(Intent.reset_all()))
            elif cmd_type == "confirm":
                return self._cmd_confirm(_text(cmd, "action_id"))
            elif cmd_type == "cancel":
                return self._cmd_cancel(_text(cmd, "action_id"))
            elif cmd_type == "tick":
                return self._cmd_tick()
            elif cmd_type == "share":
                return self._cmd_share()
            elif cmd_type == "notifications":
                return self._cmd_notifications(cmd.get("enabled"))
            elif cmd_type == "quit":
                return {"ok": True, "action": "quit"}
            else:
                return {"ok": False, "error": f"Unknown command: {cmd_type}"}
        except TrackerError as e:
            return {"ok": False, "error": str(e)}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _cmd_status(self) -> dict:
        pending = self.tracker.gate.pending
        roster = self.roster
        return {
            "ok": True,
            "header": roster.header(),
            "eligible": roster.eligible_count(),
            "total": len(roster.players),
            "notifications_enabled": self.tracker.notifications.enabled,
            "pending": pending.model_dump(mode="json") if pending else None,
            "last_write_error": str(roster.last_write_error) if roster.last_write_error else None,
        }

    def _cmd_players(self) -> dict:
        return {"ok": True, "players": list_players(self.tracker)}

    def _cmd_history(self) -> dict:
        return {
            "ok": True,
            "history": [
                e.model_dump(mode="json", by_alias=True) for e in self.roster.history.entries
            ],
        }

    def _cmd_share(self) -> dict:
        result = share_link(self.tracker, self.base_url)
        if not result.success:
            return {"ok": False, "error": result.message}
        return {"ok": True, **result.data}

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _cmd_add(self, name: str) -> dict:
        player = self.roster.add_player(name)
        return {"ok": True, "player": player_json(player)}

    def _cmd_override(self, ref: str, status: str, expires_at: str | None) -> dict:
        player = self.roster.resolve(ref)
        expiry = parse_expiry(expires_at)
        new_status = parse_status(status)
        return self._staged(self.tracker.gate.stage(Intent.override(player.id, new_status, expiry)))

    def _cmd_confirm(self, action_id: str) -> dict:
        result = self.tracker.gate.confirm(action_id)
        return {
            "ok": True,
            "result": {
                "action_id": result.action_id,
                "kind": result.kind.value,
                "summary": result.summary,
                "players": [player_json(p) for p in result.players],
            },
        }

    def _cmd_cancel(self, action_id: str) -> dict:
        if self.tracker.gate.pending is None:
            return {"ok": True, "message": "No pending action to cancel"}
        pending = self.tracker.gate.cancel(action_id)
        return {"ok": True, "message": f"{pending.title} cancelled"}

    def _cmd_tick(self) -> dict:
        result = self.tracker.scheduler.tick()
        return {
            "ok": True,
            "at": result.at.isoformat(),
            "changed": [player_json(p) for p in result.changed],
            "alerts": result.alerts,
        }

    def _cmd_notifications(self, enabled) -> dict:
        if not isinstance(enabled, bool):
            return {"ok": False, "error": "enabled must be true or false"}
        self.tracker.set_notifications(enabled)
        return {"ok": True, "notifications_enabled": enabled}

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _staged(self, pending: PendingAction) -> dict:
        return {
            "ok": True,
            "pending": {
                "action_id": pending.action_id,
                "kind": pending.intent.kind.value,
                "title": pending.title,
                "message": pending.message,
            },
        }

    def run(self, input_stream: TextIO = sys.stdin):
        """
        Main loop: read JSON commands, write responses.

        One JSON object per line. Exit on EOF or quit command. Statuses are
        brought up to date before the ready message.
        """
        self.tracker.scheduler.tick()
        self._emit_response(
            "ready",
            version=VERSION,
            backend=type(self.roster.adapter).__name__,
            players=len(self.roster.players),
        )

        for line in input_stream:
            line = line.strip()
            if not line:
                continue

            try:
                cmd = json.loads(line)
            except json.JSONDecodeError as e:
                self._emit_response("error", error=f"Invalid JSON: {e}")
                continue

            if not isinstance(cmd, dict):
                self._emit_response("error", error="Command must be a JSON object")
                continue

            result = self.handle_command(cmd)
            self._emit_response("result", **result)

            if result.get("action") == "quit":
                break


def _text(cmd: dict, key: str, required: bool = True) -> str | None:
    """String field of a command. A missing optional field comes back as None."""
    value = cmd.get(key)
    if value is None:
        return "" if required else None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def run_headless(tracker: Tracker, base_url: str = ""):
    """Entry point for headless mode."""
    tracker.open()
    try:
        HeadlessRunner(tracker, base_url=base_url).run()
    finally:
        tracker.close()
