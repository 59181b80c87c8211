"""User-facing notifications emitted while compressing."""

from dataclasses import dataclass


class NotificationKind:
    """Severity of a notification."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A human-readable message for the user."""
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


def info(message: str) -> Notification:
    return Notification(NotificationKind.INFO, message)


def success(message: str) -> Notification:
    return Notification(NotificationKind.SUCCESS, message)


def warning(message: str) -> Notification:
    return Notification(NotificationKind.WARNING, message)


def error(message: str) -> Notification:
    return Notification(NotificationKind.ERROR, message)
