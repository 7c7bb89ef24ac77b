"""
Display and rendering helpers for the tracker CLI.

Handles theming, the roster table, alerts, history and confirmation panels.
"""

from datetime import datetime

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from prompt_toolkit.styles import Style as PTStyle

from ..errors import PermissionDeniedError
from ..state.schema import HistoryEntry, Player, Status
from ..systems.actions import PendingAction
from ..systems.notifications import NotificationPermission
from ..timefmt import format_last_played, format_relative_time, format_time_left


# Shared console instance
console = Console()

THEME = {
    "primary": "steel_blue",
    "secondary": "grey70",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "accent": "cyan",
    "dim": "dim",
    "text": "grey85",
}

STATUS_STYLES = {
    Status.ELIGIBLE: "green3",
    Status.NOT_ELIGIBLE: THEME["warning"],
    Status.INACTIVE: THEME["dim"],
}

# Prompt toolkit style to match theme
pt_style = PTStyle.from_dict({
    "completion-menu.completion": "bg:#1e3a5f #c0c0c0",
    "completion-menu.completion.current": "bg:#3a6a9f #ffffff bold",
    "scrollbar.background": "bg:#1e3a5f",
    "scrollbar.button": "bg:#3a6a9f",
})


def render_roster(players: list[Player], now: datetime, header: str) -> Table:
    """Roster table, eligible players first, then by name."""
    order = {Status.ELIGIBLE: 0, Status.NOT_ELIGIBLE: 1, Status.INACTIVE: 2}
    table = Table(
        title=f"[bold {THEME['primary']}]{header}[/bold {THEME['primary']}]",
        title_justify="left",
    )
    table.add_column("Name", style=THEME["text"])
    table.add_column("Status")
    table.add_column("Time Left", style=THEME["secondary"])
    table.add_column("Last Played", style=THEME["dim"])
    table.add_column("Id", style=THEME["dim"])

    for player in sorted(players, key=lambda p: (order[p.status], p.name.casefold())):
        style = STATUS_STYLES[player.status]
        time_left = (
            format_time_left(player.eligibility_expires_at, now)
            if player.status == Status.ELIGIBLE else "-"
        )
        table.add_row(
            player.name,
            f"[{style}]{player.status.value}[/{style}]",
            time_left,
            format_last_played(player.last_played),
            player.id[:8],
        )
    return table


def render_alerts(alerts: list[str]) -> Panel | None:
    if not alerts:
        return None
    body = "\n".join(f"[{THEME['warning']}]![/{THEME['warning']}] {a}" for a in alerts)
    return Panel(body, title="Alerts", border_style=THEME["warning"])


def render_history(entries: list[HistoryEntry], now: datetime, limit: int = 20) -> Table:
    table = Table(show_header=False, box=None)
    table.add_column("When", style=THEME["dim"])
    table.add_column("Entry", style=THEME["text"])
    for entry in entries[:limit]:
        table.add_row(
            format_relative_time(entry.timestamp, now),
            f"[bold]{entry.player_name}[/bold] {entry.action}",
        )
    return table


def render_pending(pending: PendingAction) -> Panel:
    return Panel(
        pending.message,
        title=f"[bold]{pending.title}[/bold]",
        border_style=THEME["danger"] if pending.intent.kind.value == "reset_all" else THEME["accent"],
    )


def show_error(message: str) -> None:
    console.print(f"[{THEME['danger']}]{message}[/{THEME['danger']}]")


def show_info(message: str) -> None:
    console.print(f"[{THEME['dim']}]{message}[/{THEME['dim']}]")


def show_help():
    """Show available commands."""
    help_text = """
## Commands

| Command | Description |
|---------|-------------|
| `list` | Show the roster |
| `add <name>` | Add a player |
| `played <name>` | Mark a player as played |
| `override <name> <status> [expiry]` | Force status (Eligible, "Not Eligible", Inactive) |
| `cleanup` | Remove all inactive players |
| `reset` | Clear all player data |
| `history` | Show recent history |
| `alerts` | Show current alerts |
| `share` | Print the shareable link |
| `notify on\\|off` | Toggle alerts |
| `help` | This table |
| `quit` | Exit |

Expiry is an ISO timestamp, e.g. `2026-01-05T18:00`.
"""
    console.print(Markdown(help_text))


class ConsoleNotifier:
    """
    Delivers external alerts as a bell plus a highlighted panel.

    Permission is granted on request unless the user has muted the
    terminal for this run.
    """

    def __init__(self, muted: bool = False):
        self.muted = muted
        self._permission = NotificationPermission.DEFAULT

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    def request_permission(self) -> NotificationPermission:
        self._permission = (
            NotificationPermission.DENIED if self.muted else NotificationPermission.GRANTED
        )
        return self._permission

    def notify(self, title: str, body: str, tag: str) -> None:
        if self._permission != NotificationPermission.GRANTED:
            raise PermissionDeniedError("Terminal alerts are muted")
        console.bell()
        console.print(Panel(body, title=f"[bold]{title}[/bold]", border_style=THEME["warning"]))
