"""Exception hierarchy for PiTooth.

Every error raised by the manager derives from :class:`PiToothError` so
callers can catch the whole family in one place. Errors that wrap a lower
level failure keep it on ``cause`` and are raised with ``from``.
"""

from __future__ import annotations

from typing import Optional


class PiToothError(Exception):
    """Base class for all PiTooth errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        if self.cause is not None:
            return f"{base}: {self.cause}"
        return base


class UnsupportedHost(PiToothError):
    """The host is not Linux or not a Raspberry-Pi-class board."""


class AdapterError(PiToothError):
    """A Bluetooth controller operation failed."""


class AgentRegistrationError(PiToothError):
    """The pairing agent could not be exported or made the default agent."""


class SampleError(PiToothError):
    """Device enumeration failed while sampling nearby peers."""


class ObexIOError(PiToothError, OSError):
    """The OBEX receive directory could not be created."""


class ProcessError(PiToothError):
    """The OBEX daemon could not be probed, spawned or terminated."""


class BusyError(PiToothError):
    """A discoverability session is already running."""


class InvalidArgumentError(PiToothError, ValueError):
    """A caller supplied an invalid argument."""
