"""Exception types for kernel-monitor."""

from pathlib import Path


class MonitorError(Exception):
    """Base class for kernel-monitor errors."""


class PlatformUnavailable(MonitorError):
    """A host facility (CPU, memory or process accounting) could not be read."""


class RegistrationFailure(MonitorError):
    """The snapshot endpoint could not be created; nothing is exposed."""


class FetchFailure(MonitorError):
    """A client could not retrieve a snapshot from the endpoint."""

    action = "access"

    def __init__(self, path: Path, cause: BaseException | str):
        self.path = path
        self.cause = cause
        reason = cause if isinstance(cause, str) else _describe(cause)
        super().__init__(f"Failed to {self.action} {path}: {reason}")


class OpenFailure(FetchFailure):
    """The endpoint could not be opened (daemon not running, permission denied)."""

    action = "open"


class ReadFailure(FetchFailure):
    """The endpoint was opened but reading the snapshot failed."""

    action = "read from"


def _describe(exc: BaseException) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    return str(exc) or type(exc).__name__
