"""
Exceptions raised by the roster core.

None of these are fatal. Drivers catch TrackerError and turn it into a
user-visible message; storage code catches DecodeError and falls back.
"""


class TrackerError(Exception):
    """Base class for all tracker errors."""
    pass


# ============ Validation ============

class ValidationError(TrackerError):
    """Bad user input. Nothing was mutated."""
    pass


class DuplicateNameError(ValidationError):
    """A player with the same name (case-insensitive) already exists."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Player with this name already exists: {name}")


class PlayerNotFoundError(ValidationError):
    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class ActionRejectedError(TrackerError):
    """A staged action cannot be created, confirmed or cancelled."""
    pass


# ============ Storage ============

class DecodeError(TrackerError):
    """A persisted snapshot is corrupt, truncated or the wrong shape."""
    pass


class PersistenceWriteError(TrackerError):
    """A backend write failed."""
    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


# ============ Notifications ============

class PermissionDeniedError(TrackerError):
    """The external notifier refused to deliver."""
    pass
