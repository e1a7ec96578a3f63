"""System bus connection and dispatcher thread.

dbus-python only delivers incoming method calls (such as agent prompts)
while a GLib main loop is running. The dispatcher runs that loop on a daemon
thread so the caller's thread stays free for discoverability sessions.
"""

from __future__ import annotations

import threading
from typing import Optional

import dbus
import dbus.mainloop.glib
from gi.repository import GLib

from ..errors import AgentRegistrationError
from ..logging.logger import get_logger

logger = get_logger()

_BUS: Optional[dbus.SystemBus] = None
_DISPATCHER: Optional["BusDispatcher"] = None
_lock = threading.Lock()


class BusDispatcher:
    """Runs a GLib main loop on a background daemon thread."""

    def __init__(self) -> None:
        self._loop = GLib.MainLoop()
        self._thread = threading.Thread(
            target=self._loop.run, name="pitooth-bus", daemon=True
        )

    def start(self) -> None:
        self._thread.start()
        logger.debug("D-Bus dispatcher thread started")


def get_system_bus() -> dbus.SystemBus:
    """Return the shared system bus connection, starting the dispatcher once.

    Raises:
        AgentRegistrationError: If the system bus cannot be reached. The
            agent cannot be served without it, whichever component asks first.
    """
    global _BUS, _DISPATCHER
    with _lock:
        if _BUS is not None:
            return _BUS

        dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
        try:
            bus = dbus.SystemBus()
        except dbus.exceptions.DBusException as exc:
            raise AgentRegistrationError("Failed to connect to system bus", cause=exc) from exc

        dispatcher = BusDispatcher()
        dispatcher.start()

        _BUS = bus
        _DISPATCHER = dispatcher
        return bus
