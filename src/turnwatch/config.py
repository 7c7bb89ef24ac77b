"""
User configuration persistence.

Stores the timing windows, backend choice and the alert preference in a
JSON file next to the roster data.
"""

import json
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TypedDict


class Config(TypedDict, total=False):
    """User configuration."""
    eligibility_hours: float  # How long a player stays Eligible after playing
    inactivity_days: float  # Days after expiry before Not Eligible decays to Inactive
    warning_hours: float  # Alert window before eligibility ends
    tick_seconds: float  # Scheduler period
    notifications_enabled: bool  # Show alerts and send external notifications
    backend: str  # snapshot or sqlite


DEFAULT_CONFIG: Config = {
    "eligibility_hours": 72,
    "inactivity_days": 3,
    "warning_hours": 24,
    "tick_seconds": 60,
    "notifications_enabled": True,
    "backend": "snapshot",
}

CONFIG_FILENAME = ".turnwatch_config.json"


@dataclass(frozen=True)
class RosterSettings:
    """Timing windows used by the roster core."""
    eligibility_window: timedelta = timedelta(hours=72)
    inactivity_window: timedelta = timedelta(days=3)
    warning_window: timedelta = timedelta(hours=24)
    tick_interval: timedelta = timedelta(seconds=60)

    @classmethod
    def from_config(cls, config: Config) -> "RosterSettings":
        merged = DEFAULT_CONFIG.copy()
        merged.update(config)
        return cls(
            eligibility_window=timedelta(hours=merged["eligibility_hours"]),
            inactivity_window=timedelta(days=merged["inactivity_days"]),
            warning_window=timedelta(hours=merged["warning_hours"]),
            tick_interval=timedelta(seconds=merged["tick_seconds"]),
        )


def get_config_path(data_dir: Path | str = "data") -> Path:
    """Get path to config file."""
    return Path(data_dir) / CONFIG_FILENAME


def load_config(data_dir: Path | str = "data") -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(data_dir)

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        if not isinstance(saved, dict):
            return DEFAULT_CONFIG.copy()
        # Merge with defaults to handle missing keys
        config = DEFAULT_CONFIG.copy()
        config.update({k: v for k, v in saved.items() if k in DEFAULT_CONFIG})
        return config
    except (json.JSONDecodeError, IOError):
        return DEFAULT_CONFIG.copy()


def save_config(config: Config, data_dir: Path | str = "data") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(data_dir)

    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False


def set_notifications_enabled(enabled: bool, data_dir: Path | str = "data") -> None:
    """Save alert preference."""
    config = load_config(data_dir)
    config["notifications_enabled"] = enabled
    save_config(config, data_dir)


def set_backend(backend: str, data_dir: Path | str = "data") -> None:
    """Save backend preference."""
    config = load_config(data_dir)
    config["backend"] = backend
    save_config(config, data_dir)
