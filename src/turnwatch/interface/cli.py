"""
Command-line interface for the tracker.

Main entry point and interactive loop. The scheduler runs as an asyncio
task next to the prompt, so status changes and alerts show up while the
user is idle.
"""

import argparse
import asyncio
import logging
import shlex
import sys
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.patch_stdout import patch_stdout

from ..app import BACKENDS, Tracker, build_adapter
from ..config import load_config, set_backend
from ..errors import TrackerError
from ..state.event_bus import RosterEvent, RosterEventType
from ..systems.actions import Intent
from .headless import run_headless
from .renderer import (
    console, THEME, pt_style,
    ConsoleNotifier,
    render_alerts, render_history, render_pending, render_roster,
    show_error, show_help, show_info,
)
from .shared import parse_expiry, parse_status, share_link, split_locator

logger = logging.getLogger(__name__)

COMMANDS = [
    "list", "add", "played", "override", "cleanup", "reset",
    "history", "alerts", "share", "notify", "help", "quit",
]


class InteractiveSession:
    """One prompt loop bound to a tracker."""

    def __init__(self, tracker: Tracker, base_url: str = ""):
        self.tracker = tracker
        self.base_url = base_url
        self.prompt = PromptSession(
            completer=WordCompleter(COMMANDS, ignore_case=True),
            style=pt_style,
        )
        tracker.bus.on(RosterEventType.STATUS_CHANGED, self._on_status_changed)
        tracker.bus.on(RosterEventType.PERSISTENCE_FAILED, self._on_write_failed)

    def _on_status_changed(self, event: RosterEvent) -> None:
        player = self.tracker.roster.get(event.data["player_id"])
        show_info(f"{player.name} is now {event.data['after']}")

    def _on_write_failed(self, event: RosterEvent) -> None:
        show_error(f"Save failed, change kept in memory only: {event.data.get('error')}")

    def show_roster(self) -> None:
        roster = self.tracker.roster
        console.print(render_roster(roster.players, roster.clock.now(), roster.header()))
        panel = render_alerts(self.tracker.notifications.alerts)
        if panel is not None:
            console.print(panel)
        if roster.last_write_error is not None:
            show_error(f"Last save failed: {roster.last_write_error}")

    async def confirm(self, intent: Intent) -> None:
        """Stage an intent, ask, then confirm or cancel it."""
        gate = self.tracker.gate
        pending = gate.stage(intent)
        console.print(render_pending(pending))
        try:
            answer = await self.prompt.prompt_async("Confirm? [y/N] ")
        except (EOFError, KeyboardInterrupt):
            answer = ""
        if answer.strip().lower() in ("y", "yes"):
            result = gate.confirm(pending.action_id)
            console.print(f"[{THEME['accent']}]{result.summary}[/{THEME['accent']}]")
        else:
            gate.cancel(pending.action_id)
            show_info("Cancelled")

    async def dispatch(self, line: str) -> bool:
        """Run one command line. Returns False to exit."""
        try:
            parts = shlex.split(line)
        except ValueError as e:
            show_error(f"Could not parse command: {e}")
            return True
        if not parts:
            return True

        cmd, args = parts[0].lower().lstrip("/"), parts[1:]
        roster = self.tracker.roster

        if cmd in ("quit", "exit"):
            return False
        elif cmd == "help":
            show_help()
        elif cmd == "list":
            self.show_roster()
        elif cmd == "add":
            player = roster.add_player(" ".join(args))
            console.print(f"[{THEME['accent']}]Added {player.name}[/{THEME['accent']}]")
        elif cmd == "played":
            player = roster.resolve(" ".join(args))
            await self.confirm(Intent.mark_played(player.id))
        elif cmd == "override":
            if len(args) < 2:
                show_error("Usage: override <name> <status> [expiry]")
                return True
            player = roster.resolve(args[0])
            status = parse_status(args[1])
            expiry = parse_expiry(args[2] if len(args) > 2 else None)
            await self.confirm(Intent.override(player.id, status, expiry))
        elif cmd == "cleanup":
            await self.confirm(Intent.cleanup_inactive())
        elif cmd == "reset":
            await self.confirm(Intent.reset_all())
        elif cmd == "history":
            console.print(render_history(roster.history.entries, roster.clock.now()))
        elif cmd == "alerts":
            panel = render_alerts(self.tracker.notifications.alerts)
            console.print(panel if panel is not None else f"[{THEME['dim']}]No alerts[/{THEME['dim']}]")
        elif cmd == "share":
            result = share_link(self.tracker, self.base_url)
            (console.print if result.success else show_error)(result.message)
        elif cmd == "notify":
            if not args or args[0].lower() not in ("on", "off"):
                show_error("Usage: notify on|off")
                return True
            self.tracker.set_notifications(args[0].lower() == "on")
            show_info(f"Alerts {'enabled' if self.tracker.notifications.enabled else 'disabled'}")
        else:
            show_error(f"Unknown command: {cmd} (type help)")
        return True

    async def run(self) -> None:
        scheduler = self.tracker.scheduler
        with patch_stdout():
            scheduler.start()
            # Let the immediate first tick land before drawing the roster
            await asyncio.sleep(0)
            self.show_roster()
            try:
                while True:
                    try:
                        line = await self.prompt.prompt_async("> ")
                    except (EOFError, KeyboardInterrupt):
                        break
                    try:
                        if not await self.dispatch(line):
                            break
                    except TrackerError as e:
                        show_error(str(e))
            finally:
                await scheduler.stop()


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Turnwatch - player rotation eligibility tracker")
    parser.add_argument(
        "--backend", "-b",
        choices=BACKENDS,
        help="Persistence backend (default: saved preference)",
    )
    parser.add_argument(
        "--data-dir", "-d",
        type=Path,
        default=Path("data"),
        help="Directory for the local cache, database and config",
    )
    parser.add_argument(
        "--token", "-t",
        help="Shared locator (URL#token) or bare token to load from",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="SQLite file for the sqlite backend (default: <data-dir>/roster.db)",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="JSON lines on stdin/stdout instead of the interactive prompt",
    )
    parser.add_argument(
        "--mute",
        action="store_true",
        help="Keep alerts on screen but skip the terminal bell popups",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )
    return parser


def main(argv: list[str] | None = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(message)s',
        stream=sys.stderr,
    )

    config = load_config(args.data_dir)
    backend = args.backend or config.get("backend", "snapshot")
    if args.backend:
        set_backend(args.backend, args.data_dir)

    base_url, token = "", None
    if args.token:
        base_url, token = split_locator(args.token)
        if token is None:
            base_url, token = "", base_url

    adapter = build_adapter(backend, args.data_dir, token=token, db_path=args.db)
    tracker = Tracker(
        adapter,
        config=config,
        notifier=None if args.headless else ConsoleNotifier(muted=args.mute),
        data_dir=args.data_dir,
    )

    if args.headless:
        run_headless(tracker, base_url=base_url)
        return

    tracker.open()
    console.print(f"[{THEME['dim']}]Backend: {backend} | Type help for commands[/{THEME['dim']}]")
    try:
        asyncio.run(InteractiveSession(tracker, base_url).run())
    finally:
        tracker.close()


if __name__ == "__main__":
    main()
