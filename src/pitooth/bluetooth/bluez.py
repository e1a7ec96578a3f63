"""BlueZ implementation of the adapter handle.

Talks to ``org.bluez`` on the system bus using dbus-python. Adapter flags are
written through ``org.freedesktop.DBus.Properties``; devices are enumerated
from the BlueZ object manager.
"""

from __future__ import annotations

from typing import Any, List

import dbus

from ..errors import AdapterError
from ..logging.logger import get_logger
from ..utils.helpers import canonical_address
from .adapter import DeviceInfo
from .bus import get_system_bus

logger = get_logger()

BLUEZ = "org.bluez"
ADAPTER_IFACE = "org.bluez.Adapter1"
DEVICE_IFACE = "org.bluez.Device1"
PROP_IFACE = "org.freedesktop.DBus.Properties"
OM_IFACE = "org.freedesktop.DBus.ObjectManager"

# BlueZ reports these for discovery calls that are already in the wanted state
_ALREADY_DISCOVERING = ("org.bluez.Error.InProgress",)
_NOT_DISCOVERING = ("org.bluez.Error.NotReady",)
_NO_DISCOVERY_STARTED = "No discovery started"


def _managed_objects(bus: Any) -> dict:
    om = dbus.Interface(bus.get_object(BLUEZ, "/"), OM_IFACE)
    return om.GetManagedObjects()


def _not_discovering(exc: dbus.exceptions.DBusException) -> bool:
    if exc.get_dbus_name() in _NOT_DISCOVERING:
        return True
    # Newer BlueZ answers a stop without a start with a generic Failed
    return (
        exc.get_dbus_name() == "org.bluez.Error.Failed"
        and _NO_DISCOVERY_STARTED in (exc.get_dbus_message() or "")
    )


def find_adapter(bus: Any, prefer: str = "hci0") -> str:
    """Return the object path of the preferred adapter, or the first one found."""
    objects = _managed_objects(bus)

    for path, ifaces in objects.items():
        if ADAPTER_IFACE in ifaces and str(path).endswith(prefer):
            return str(path)

    for path, ifaces in objects.items():
        if ADAPTER_IFACE in ifaces:
            return str(path)

    raise AdapterError("No BlueZ adapter found")


class BluezAdapter:
    """The default local controller, reached over D-Bus."""

    def __init__(self, bus: Any, path: str) -> None:
        self.bus = bus
        self.path = path
        obj = bus.get_object(BLUEZ, path)
        self._props = dbus.Interface(obj, PROP_IFACE)
        self._adapter = dbus.Interface(obj, ADAPTER_IFACE)

    @classmethod
    def open_default(cls, prefer: str = "hci0") -> "BluezAdapter":
        """Open the preferred adapter on the shared system bus.

        Raises:
            AgentRegistrationError: If the system bus is unreachable.
            AdapterError: If BlueZ lists no adapter.
        """
        bus = get_system_bus()
        try:
            path = find_adapter(bus, prefer)
        except dbus.exceptions.DBusException as exc:
            raise AdapterError("Failed to get default adapter", cause=exc) from exc
        logger.debug("Using Bluetooth adapter %s", path)
        return cls(bus, path)

    def _set(self, name: str, value: Any) -> None:
        try:
            self._props.Set(ADAPTER_IFACE, name, value)
        except dbus.exceptions.DBusException as exc:
            raise AdapterError(f"Failed to set {name}", cause=exc) from exc

    def set_alias(self, alias: str) -> None:
        self._set("Alias", dbus.String(alias))

    def set_powered(self, value: bool) -> None:
        self._set("Powered", dbus.Boolean(value))

    def set_pairable(self, value: bool) -> None:
        self._set("Pairable", dbus.Boolean(value))

    def set_discoverable(self, value: bool) -> None:
        self._set("Discoverable", dbus.Boolean(value))

    def start_discovery(self) -> None:
        try:
            self._adapter.StartDiscovery()
        except dbus.exceptions.DBusException as exc:
            if exc.get_dbus_name() in _ALREADY_DISCOVERING:
                logger.debug("Discovery already in progress on %s", self.path)
                return
            raise AdapterError("Failed to start bluetooth discovery", cause=exc) from exc

    def stop_discovery(self) -> None:
        try:
            self._adapter.StopDiscovery()
        except dbus.exceptions.DBusException as exc:
            if _not_discovering(exc):
                logger.debug("Discovery not active on %s", self.path)
                return
            raise AdapterError("Failed to stop bluetooth discovery", cause=exc) from exc

    def get_devices(self) -> List[DeviceInfo]:
        try:
            objects = _managed_objects(self.bus)
        except dbus.exceptions.DBusException as exc:
            raise AdapterError("Failed to get bluetooth devices", cause=exc) from exc

        devices: List[DeviceInfo] = []
        for _path, ifaces in objects.items():
            props = ifaces.get(DEVICE_IFACE)
            if props is None or str(props.get("Adapter", "")) != self.path:
                continue
            address = props.get("Address")
            if not address:
                continue
            name = props.get("Alias", props.get("Name", ""))
            devices.append(
                DeviceInfo(
                    address=canonical_address(str(address)),
                    alias=str(name),
                    connected=bool(props.get("Connected", False)),
                )
            )
        return devices

    def get_connection(self) -> Any:
        return self.bus
