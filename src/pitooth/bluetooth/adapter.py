"""Bluetooth adapter handle.

Defines the small surface PiTooth needs from the local controller and a
thread-safe wrapper around it. The concrete BlueZ implementation lives in
:mod:`pitooth.bluetooth.bluez` and is only imported when a real adapter is
opened, so the rest of the package works without dbus-python installed.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Protocol, TypeVar

from ..errors import AdapterError, PiToothError

T = TypeVar("T")


class DeviceInfo(NamedTuple):
    """A device as reported by the controller."""

    address: str
    alias: str
    connected: bool


class AdapterHandle(Protocol):
    """Operations PiTooth performs on the default controller.

    Every method raises :class:`AdapterError` on failure.
    """

    def set_alias(self, alias: str) -> None: ...

    def set_powered(self, value: bool) -> None: ...

    def set_pairable(self, value: bool) -> None: ...

    def set_discoverable(self, value: bool) -> None: ...

    def start_discovery(self) -> None: ...

    def stop_discovery(self) -> None: ...

    def get_devices(self) -> List[DeviceInfo]: ...

    def get_connection(self) -> Any: ...


@dataclass
class AdapterState:
    """Last known adapter flags, as set through :class:`GuardedAdapter`."""

    powered: bool = False
    pairable: bool = False
    discoverable: bool = False
    discovery_active: bool = False
    alias: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GuardedAdapter:
    """Serialises controller calls and tracks adapter state.

    The pairing agent is served from the bus dispatcher thread while a
    discoverability session runs on the caller's thread, so every flag
    transition goes through one lock. The lock is held for a single
    controller call only, never across a sleep or a process spawn.
    """

    def __init__(self, adapter: AdapterHandle) -> None:
        self._adapter = adapter
        self._lock = threading.Lock()
        self._state = AdapterState()

    @property
    def handle(self) -> AdapterHandle:
        """The wrapped adapter handle."""
        return self._adapter

    @property
    def state(self) -> AdapterState:
        """Return a copy of the last known adapter state."""
        with self._lock:
            return AdapterState(**self._state.to_dict())

    def _call(self, fn: Callable[[], T], what: str, **changes: Any) -> T:
        with self._lock:
            try:
                result = fn()
            except PiToothError:
                raise
            except Exception as exc:
                # Injected adapters may raise anything; normalise it
                raise AdapterError(f"Failed to {what}", cause=exc) from exc
            for name, value in changes.items():
                setattr(self._state, name, value)
            return result

    def set_alias(self, alias: str) -> None:
        self._call(lambda: self._adapter.set_alias(alias), "set bluetooth alias", alias=alias)

    def set_powered(self, value: bool) -> None:
        changes = {"powered": value}
        if not value:
            # The controller drops these when it powers down
            changes.update(discoverable=False, discovery_active=False)
        self._call(lambda: self._adapter.set_powered(value), "set powered", **changes)

    def ensure_powered(self) -> None:
        """Power the adapter on unless we already know it is on."""
        if not self.state.powered:
            self.set_powered(True)

    def set_pairable(self, value: bool) -> None:
        self._call(lambda: self._adapter.set_pairable(value), "set pairable", pairable=value)

    def set_discoverable(self, value: bool) -> None:
        if value:
            self.ensure_powered()
        self._call(
            lambda: self._adapter.set_discoverable(value),
            "set discoverable",
            discoverable=value,
        )

    def start_discovery(self) -> None:
        self.ensure_powered()
        self._call(
            self._adapter.start_discovery, "start bluetooth discovery", discovery_active=True
        )

    def stop_discovery(self) -> None:
        self._call(
            self._adapter.stop_discovery, "stop bluetooth discovery", discovery_active=False
        )

    def get_devices(self) -> List[DeviceInfo]:
        return self._call(self._adapter.get_devices, "get bluetooth devices")

    def get_connection(self) -> Any:
        return self._adapter.get_connection()


def open_default_adapter(prefer: str = "hci0") -> AdapterHandle:
    """Open the default BlueZ adapter on the system bus.

    Raises:
        AgentRegistrationError: If the system bus is unreachable.
        AdapterError: If no adapter is present.
    """
    from .bluez import BluezAdapter

    return BluezAdapter.open_default(prefer=prefer)
