"""PiTooth Bluetooth manager.

A small Bluetooth manager for Raspberry Pi devices:
  - accept incoming connections for a pairing window
  - get a list of nearby/connected devices
  - control the OBEX server that receives files from connected devices

Construction probes the host, opens the default adapter, registers a
``NoInputNoOutput`` pairing agent as the default agent, sets the alias and
powers the adapter on.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .bluetooth.adapter import AdapterHandle, GuardedAdapter, open_default_adapter
from .bluetooth.agent import PairingAgent, register_agent, release_registered_agent
from .bluetooth.sampler import Device, PeerSampler
from .bluetooth.session import DiscoverabilitySession, Window
from .errors import InvalidArgumentError, PiToothError
from .logging.logger import get_logger
from .obex.supervisor import ObexSupervisor
from .utils.host import check_host


class BluetoothManager:
    """Facade over the adapter, pairing agent, sessions and OBEX supervisor.

    Args:
        alias: Alias to advertise. Required; it gets tricky without one.
        logger: Logger to use instead of the default ``pitooth`` logger.
        adapter: Pre-built adapter handle to use instead of BlueZ's default.
        obex_binary: Name or path of the OBEX daemon.

    Raises:
        InvalidArgumentError: If ``alias`` is empty.
        UnsupportedHost: If this is not a Linux Raspberry-Pi-class host.
        AdapterError: If the adapter cannot be opened, named or powered on.
        AgentRegistrationError: If the system bus is unreachable (this
            surfaces while opening the default adapter) or the pairing agent
            cannot be registered.
    """

    def __init__(
        self,
        alias: str,
        logger: Optional[logging.Logger] = None,
        adapter: Optional[AdapterHandle] = None,
        obex_binary: str = "obexd",
    ) -> None:
        if not alias:
            raise InvalidArgumentError("Bluetooth device alias cannot be empty")

        check_host()

        self.logger = logger or get_logger()
        self._adapter = GuardedAdapter(adapter if adapter is not None else open_default_adapter())
        self._agent = register_agent(self._adapter.get_connection(), self.logger)
        self._session = DiscoverabilitySession(self._adapter, self.logger)
        self._obex = ObexSupervisor(self.logger, binary=obex_binary)

        self._adapter.set_alias(alias)
        self._adapter.set_powered(True)
        self.logger.debug("PiTooth: Bluetooth manager ready (alias=%s)", alias)

    def __enter__(self) -> "BluetoothManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @property
    def agent(self) -> PairingAgent:
        return self._agent

    def get_adapter(self) -> GuardedAdapter:
        return self._adapter

    def accept_connections(
        self, window: Window = 0, cancel: Optional[threading.Event] = None
    ) -> Dict[str, Device]:
        """Open the adapter to accept connections for ``window`` seconds.

        A window of zero means 30 seconds. Setting ``cancel`` ends the
        window early; the adapter is restored either way.

        Returns:
            The peers seen during the window, keyed by address.
        """
        return self._session.run(window, cancel)

    def get_nearby_devices(self) -> Dict[str, Device]:
        """Sample the adapter's devices every second for five seconds."""
        self.logger.debug("PiTooth: Starting GetNearbyDevices...")
        devices = PeerSampler(self._adapter, self.logger).run()

        self.logger.debug("PiTooth: # of nearby devices: %d", len(devices))
        for device in devices.values():
            self.logger.debug(
                "PiTooth: Nearby device: %s : %s : %s : %s",
                device.name,
                device.address,
                device.last_seen,
                device.connected,
            )
        return devices

    def control_obex_server(self, start: bool, receive_dir: str = "") -> None:
        """Start or stop the OBEX daemon receiving into ``receive_dir``."""
        if start and not receive_dir:
            raise InvalidArgumentError("OBEX path is required when enabling OBEX server")
        self._obex.control(start, receive_dir)

    def start(self) -> None:
        """Power on and open the adapter for pairing. Failures are logged."""
        self._best_effort("power on", lambda: self._adapter.set_powered(True))
        self._best_effort("set pairable", lambda: self._adapter.set_pairable(True))
        self._best_effort("set discoverable", lambda: self._adapter.set_discoverable(True))

    def stop(self) -> None:
        """Close the adapter and power it off. Failures are logged.

        The pairing agent stays registered; see :meth:`release_agent`.
        """
        self._best_effort("stop discovery", self._adapter.stop_discovery)
        self._best_effort("set undiscoverable", lambda: self._adapter.set_discoverable(False))
        self._best_effort("set unpairable", lambda: self._adapter.set_pairable(False))
        self._best_effort("power off", lambda: self._adapter.set_powered(False))

    def release_agent(self) -> None:
        """Unregister the pairing agent. It cannot be registered again."""
        release_registered_agent(self._adapter.get_connection())

    def _best_effort(self, what: str, fn) -> None:
        try:
            fn()
        except PiToothError as exc:
            self.logger.error("PiTooth: Failed to %s: %s", what, exc)
