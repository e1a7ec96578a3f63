"""Pairing agent.

An agent is how BlueZ drives the pairing process: it asks the agent to show
or enter PINs and passkeys and to authorize devices and services. This agent
declares ``NoInputNoOutput`` so the controller falls back to "Just Works"
pairing, and it consents to every prompt without user interaction.

The prompt logic here is plain Python. :mod:`pitooth.bluetooth.dbus_agent`
exports it on the system bus as ``org.bluez.Agent1``.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Optional

from ..errors import AgentRegistrationError
from ..logging.logger import get_logger

AGENT_PATH = "/pitooth/agent"
CAPABILITY = "NoInputNoOutput"


class AgentState(enum.Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    RELEASED = "released"


def dev_short(path: str) -> str:
    return str(path).split("/")[-1] if path else "<?>"


class PairingAgent:
    """Answers every BlueZ pairing prompt with consent.

    Prompts are answered synchronously on the bus dispatcher thread; there is
    no queueing. ``cancel`` only clears the in-flight prompt and
    ``release`` is terminal for the lifetime of the process.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or get_logger()
        self._lock = threading.Lock()
        self._state = AgentState.UNREGISTERED
        self._pending: Optional[str] = None
        # Preset values are only echoed into logs
        self.pin_code: Optional[str] = None
        self.passkey: Optional[int] = None

    @property
    def state(self) -> AgentState:
        with self._lock:
            return self._state

    @property
    def pending(self) -> Optional[str]:
        """Name of the prompt currently being answered, if any."""
        with self._lock:
            return self._pending

    def set_pin_code(self, pin_code: str) -> None:
        self.pin_code = pin_code

    def set_passkey(self, passkey: int) -> None:
        self.passkey = passkey

    def mark_registered(self) -> None:
        with self._lock:
            if self._state is AgentState.RELEASED:
                raise AgentRegistrationError("Agent was released and cannot be registered again")
            self._state = AgentState.REGISTERED

    def _begin(self, prompt: str, device: str) -> None:
        with self._lock:
            state = self._state
            self._pending = prompt
        if state is AgentState.RELEASED:
            self.logger.warning("%s(%s) received after agent release", prompt, dev_short(device))

    def _end(self) -> None:
        with self._lock:
            self._pending = None

    def request_pin_code(self, device: str) -> str:
        self._begin("RequestPinCode", device)
        self.logger.debug(
            "RequestPinCode(%s) called, returning empty string (preset pin=%s)",
            dev_short(device),
            self.pin_code,
        )
        self._end()
        return ""

    def request_passkey(self, device: str) -> int:
        self._begin("RequestPasskey", device)
        self.logger.debug(
            "RequestPasskey(%s) called, returning zero (preset passkey=%s)",
            dev_short(device),
            self.passkey,
        )
        self._end()
        return 0

    def display_pin_code(self, device: str, pin_code: str) -> None:
        self._begin("DisplayPinCode", device)
        self.logger.debug("DisplayPinCode(%s) pin=%s, ignoring", dev_short(device), pin_code)
        self._end()

    def display_passkey(self, device: str, passkey: int, entered: int) -> None:
        self._begin("DisplayPasskey", device)
        self.logger.debug(
            "DisplayPasskey(%s) passkey=%06d entered=%d, ignoring",
            dev_short(device),
            int(passkey),
            int(entered),
        )
        self._end()

    def request_confirmation(self, device: str, passkey: int) -> None:
        self._begin("RequestConfirmation", device)
        self.logger.debug(
            "RequestConfirmation(%s) passkey=%06d, auto-confirming",
            dev_short(device),
            int(passkey),
        )
        self._end()

    def request_authorization(self, device: str) -> None:
        self._begin("RequestAuthorization", device)
        self.logger.debug("RequestAuthorization(%s), auto-authorizing", dev_short(device))
        self._end()

    def authorize_service(self, device: str, uuid: str) -> None:
        self._begin("AuthorizeService", device)
        self.logger.debug(
            "AuthorizeService(%s) uuid=%s, auto-authorizing", dev_short(device), uuid
        )
        self._end()

    def cancel(self) -> None:
        with self._lock:
            aborted = self._pending
            self._pending = None
        self.logger.info("Pairing agent Cancel() called (in-flight prompt: %s)", aborted)

    def release(self) -> None:
        with self._lock:
            self._state = AgentState.RELEASED
            self._pending = None
        self.logger.info("Pairing agent released")


_REGISTERED: Optional[PairingAgent] = None
_registry_lock = threading.Lock()


def _expose(bus: Any, agent: PairingAgent, path: str) -> None:
    from .dbus_agent import expose_agent

    expose_agent(bus, agent, path=path, capability=CAPABILITY)


def _unexpose(bus: Any, path: str) -> None:
    from .dbus_agent import unexpose_agent

    unexpose_agent(bus, path)


def register_agent(
    bus: Any, logger: Optional[logging.Logger] = None, path: str = AGENT_PATH
) -> PairingAgent:
    """Register the process-wide pairing agent and make it the default.

    Only one agent object is ever exported per process. Later calls return
    the agent that is already registered.

    Raises:
        AgentRegistrationError: If exporting or registering fails, or the
            process agent was already released.
    """
    global _REGISTERED
    with _registry_lock:
        if _REGISTERED is not None:
            if _REGISTERED.state is AgentState.RELEASED:
                raise AgentRegistrationError("Pairing agent already released in this process")
            return _REGISTERED

        agent = PairingAgent(logger)
        _expose(bus, agent, path)
        agent.mark_registered()
        agent.logger.debug("Pairing agent registered at %s (capability=%s)", path, CAPABILITY)
        _REGISTERED = agent
        return agent


def release_registered_agent(bus: Any, path: str = AGENT_PATH) -> None:
    """Unregister the process agent from BlueZ and mark it released."""
    with _registry_lock:
        agent = _REGISTERED
        if agent is None or agent.state is AgentState.RELEASED:
            return
        try:
            _unexpose(bus, path)
        finally:
            agent.release()
