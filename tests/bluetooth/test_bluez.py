"""Tests for the BlueZ adapter implementation.

These need dbus-python and PyGObject and are skipped where they are not
installed.
"""
from unittest.mock import MagicMock

import pytest

dbus = pytest.importorskip("dbus")
pytest.importorskip("gi")

from pitooth.bluetooth.bluez import (  # noqa: E402
    ADAPTER_IFACE,
    DEVICE_IFACE,
    BluezAdapter,
    find_adapter,
)
from pitooth.errors import AdapterError, AgentRegistrationError  # noqa: E402

OBJECTS = {
    "/org/bluez/hci1": {ADAPTER_IFACE: {"Address": "00:00:00:00:00:01"}},
    "/org/bluez/hci0": {ADAPTER_IFACE: {"Address": "00:00:00:00:00:00"}},
    "/org/bluez/hci0/dev_AA_BB_CC_DD_EE_FF": {
        DEVICE_IFACE: {
            "Adapter": "/org/bluez/hci0",
            "Address": "aa:bb:cc:dd:ee:ff",
            "Alias": "Phone",
            "Connected": True,
        }
    },
    "/org/bluez/hci0/dev_11_22_33_44_55_66": {
        DEVICE_IFACE: {
            "Adapter": "/org/bluez/hci0",
            "Address": "11:22:33:44:55:66",
            "Name": "Speaker",
        }
    },
    "/org/bluez/hci1/dev_77_77_77_77_77_77": {
        DEVICE_IFACE: {"Adapter": "/org/bluez/hci1", "Address": "77:77:77:77:77:77"}
    },
}


def make_bus(objects=OBJECTS, errors=None):
    errors = errors or {}
    bus = MagicMock()

    def get_dbus_method(member, iface):
        def call(*args):
            if member in errors:
                raise errors[member]
            if member == "GetManagedObjects":
                return objects
            return None

        return call

    bus.get_object.return_value.get_dbus_method.side_effect = get_dbus_method
    return bus


def test_find_adapter_prefers_hci0():
    """hci0 wins unless another adapter is preferred."""
    assert find_adapter(make_bus()) == "/org/bluez/hci0"
    assert find_adapter(make_bus(), prefer="hci1") == "/org/bluez/hci1"


def test_find_adapter_none():
    """No adapter object means AdapterError."""
    with pytest.raises(AdapterError):
        find_adapter(make_bus(objects={}))


def test_get_devices_filters_by_adapter():
    """Only this adapter's devices are listed, with Name as alias fallback."""
    adapter = BluezAdapter(make_bus(), "/org/bluez/hci0")
    devices = sorted(adapter.get_devices())

    assert [d.address for d in devices] == ["11:22:33:44:55:66", "AA:BB:CC:DD:EE:FF"]
    assert devices[0].alias == "Speaker"
    assert devices[0].connected is False
    assert devices[1].alias == "Phone"
    assert devices[1].connected is True


def test_set_failure_raises_adapter_error():
    """A failed property write raises AdapterError."""
    err = dbus.exceptions.DBusException("busy", name="org.bluez.Error.Busy")
    adapter = BluezAdapter(make_bus(errors={"Set": err}), "/org/bluez/hci0")
    with pytest.raises(AdapterError):
        adapter.set_discoverable(True)


def test_discovery_already_in_state_is_success():
    """InProgress on start and NotReady on stop are not errors."""
    errors = {
        "StartDiscovery": dbus.exceptions.DBusException("x", name="org.bluez.Error.InProgress"),
        "StopDiscovery": dbus.exceptions.DBusException("x", name="org.bluez.Error.NotReady"),
    }
    adapter = BluezAdapter(make_bus(errors=errors), "/org/bluez/hci0")
    adapter.start_discovery()
    adapter.stop_discovery()


def test_discovery_failure():
    """Other StartDiscovery errors are reported."""
    errors = {
        "StartDiscovery": dbus.exceptions.DBusException("x", name="org.bluez.Error.NotReady"),
    }
    adapter = BluezAdapter(make_bus(errors=errors), "/org/bluez/hci0")
    with pytest.raises(AdapterError):
        adapter.start_discovery()


def test_stop_discovery_without_start_is_success():
    """BlueZ's generic Failed for a stop without a start counts as stopped."""
    errors = {
        "StopDiscovery": dbus.exceptions.DBusException(
            "No discovery started", name="org.bluez.Error.Failed"
        ),
    }
    BluezAdapter(make_bus(errors=errors), "/org/bluez/hci0").stop_discovery()


def test_stop_discovery_real_failure():
    """Any other Failed from StopDiscovery is reported."""
    errors = {
        "StopDiscovery": dbus.exceptions.DBusException(
            "Operation failed", name="org.bluez.Error.Failed"
        ),
    }
    adapter = BluezAdapter(make_bus(errors=errors), "/org/bluez/hci0")
    with pytest.raises(AdapterError):
        adapter.stop_discovery()


def test_unreachable_system_bus(monkeypatch):
    """Failing to reach the system bus is an agent registration failure."""

    def no_bus():
        raise dbus.exceptions.DBusException("no bus", name="org.freedesktop.DBus.Error.NoServer")

    monkeypatch.setattr("pitooth.bluetooth.bus._BUS", None)
    monkeypatch.setattr("pitooth.bluetooth.bus.dbus.mainloop.glib.DBusGMainLoop", MagicMock())
    monkeypatch.setattr("pitooth.bluetooth.bus.dbus.SystemBus", no_bus)

    with pytest.raises(AgentRegistrationError):
        BluezAdapter.open_default()
