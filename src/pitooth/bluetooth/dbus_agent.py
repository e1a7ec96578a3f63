"""D-Bus export of the pairing agent.

``AgentObject`` implements ``org.bluez.Agent1`` and forwards every call to a
:class:`~pitooth.bluetooth.agent.PairingAgent` it holds.
"""

from __future__ import annotations

from typing import Any

import dbus
import dbus.service

from ..errors import AgentRegistrationError
from ..logging.logger import get_logger
from .agent import AGENT_PATH, CAPABILITY, PairingAgent

logger = get_logger()

BLUEZ = "org.bluez"
AGENT_IFACE = "org.bluez.Agent1"
AGENT_MGR_IFACE = "org.bluez.AgentManager1"


class AgentObject(dbus.service.Object):
    def __init__(self, agent: PairingAgent, bus: Any = None, path: str = AGENT_PATH):
        super().__init__(bus, path)
        self.agent = agent

    @dbus.service.method(AGENT_IFACE, in_signature="", out_signature="")
    def Release(self):
        self.agent.release()

    @dbus.service.method(AGENT_IFACE, in_signature="o", out_signature="s")
    def RequestPinCode(self, device):
        return dbus.String(self.agent.request_pin_code(device))

    @dbus.service.method(AGENT_IFACE, in_signature="o", out_signature="u")
    def RequestPasskey(self, device):
        return dbus.UInt32(self.agent.request_passkey(device))

    @dbus.service.method(AGENT_IFACE, in_signature="os", out_signature="")
    def DisplayPinCode(self, device, pincode):
        self.agent.display_pin_code(device, pincode)

    @dbus.service.method(AGENT_IFACE, in_signature="ouq", out_signature="")
    def DisplayPasskey(self, device, passkey, entered):
        self.agent.display_passkey(device, passkey, entered)

    @dbus.service.method(AGENT_IFACE, in_signature="ou", out_signature="")
    def RequestConfirmation(self, device, passkey):
        self.agent.request_confirmation(device, passkey)

    @dbus.service.method(AGENT_IFACE, in_signature="o", out_signature="")
    def RequestAuthorization(self, device):
        self.agent.request_authorization(device)

    @dbus.service.method(AGENT_IFACE, in_signature="os", out_signature="")
    def AuthorizeService(self, device, uuid):
        self.agent.authorize_service(device, uuid)

    @dbus.service.method(AGENT_IFACE, in_signature="", out_signature="")
    def Cancel(self):
        self.agent.cancel()


_exported = {}


def _agent_manager(bus: Any) -> dbus.Interface:
    return dbus.Interface(bus.get_object(BLUEZ, "/org/bluez"), AGENT_MGR_IFACE)


def expose_agent(
    bus: Any,
    agent: PairingAgent,
    path: str = AGENT_PATH,
    capability: str = CAPABILITY,
) -> AgentObject:
    """Export ``agent`` at ``path`` and make it BlueZ's default agent.

    Raises:
        AgentRegistrationError: If any bus step fails.
    """
    try:
        obj = AgentObject(agent, bus, path)
    except (dbus.exceptions.DBusException, KeyError) as exc:
        # KeyError: the path is already exported on this connection
        raise AgentRegistrationError(f"Failed to export agent at {path}", cause=exc) from exc

    try:
        mgr = _agent_manager(bus)
        try:
            mgr.UnregisterAgent(path)
        except dbus.exceptions.DBusException:
            pass  # nothing stale to drop
        mgr.RegisterAgent(path, capability)
        mgr.RequestDefaultAgent(path)
    except dbus.exceptions.DBusException as exc:
        obj.remove_from_connection()
        raise AgentRegistrationError("Failed to expose BT agent", cause=exc) from exc

    _exported[path] = obj
    logger.debug("Agent exported at %s with capability %s", path, capability)
    return obj


def unexpose_agent(bus: Any, path: str = AGENT_PATH) -> None:
    """Unregister the agent from BlueZ and remove it from the connection."""
    try:
        _agent_manager(bus).UnregisterAgent(path)
    except dbus.exceptions.DBusException as exc:
        logger.debug("UnregisterAgent(%s) failed: %s", path, exc)

    obj = _exported.pop(path, None)
    if obj is not None:
        obj.remove_from_connection()
