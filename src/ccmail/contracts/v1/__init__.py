from .ipc import DaemonError, DaemonRequest, DaemonResponse
from .mail import MailMessage, WatchStatus
from .settings import MailboxSettings

__all__ = [
    "DaemonError",
    "DaemonRequest",
    "DaemonResponse",
    "MailMessage",
    "MailboxSettings",
    "WatchStatus",
]
