"""Shared test fixtures and configuration for pytest.

This module provides common fixtures used across all test modules. Bluetooth
hardware and the system bus are replaced by an in-memory fake adapter, and
the OBEX process table by a fake pgrep/Popen/kill trio.
"""
import itertools
import logging
import subprocess

import pytest

from pitooth.errors import AdapterError
from pitooth.utils.helpers import canonical_address


class FakeAdapter:
    """In-memory adapter handle with call recording and failure injection."""

    def __init__(self):
        self.alias = ""
        self.powered = False
        self.pairable = False
        self.discoverable = False
        self.discovering = False
        self.devices = []
        self.calls = []
        self.failures = {}
        self.bus = object()

    def fail(self, name, value=None, exc=None):
        """Make ``name`` raise; only for calls with ``value`` when given."""
        self.failures[name] = (value, exc or AdapterError(f"{name} failed"))

    def add_device(self, address, alias="", connected=False):
        from pitooth.bluetooth.adapter import DeviceInfo

        self.devices.append(DeviceInfo(canonical_address(address), alias, connected))

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.failures:
            value, exc = self.failures[name]
            if value is None or (args and args[0] == value):
                raise exc

    def set_alias(self, alias):
        self._record("set_alias", alias)
        self.alias = alias

    def set_powered(self, value):
        self._record("set_powered", value)
        self.powered = value

    def set_pairable(self, value):
        self._record("set_pairable", value)
        self.pairable = value

    def set_discoverable(self, value):
        self._record("set_discoverable", value)
        self.discoverable = value

    def start_discovery(self):
        self._record("start_discovery")
        self.discovering = True

    def stop_discovery(self):
        self._record("stop_discovery")
        self.discovering = False

    def get_devices(self):
        self._record("get_devices")
        devices = self.devices() if callable(self.devices) else self.devices
        return list(devices)

    def get_connection(self):
        return self.bus


class FakeProcessTable:
    """Stands in for pgrep, Popen and os.kill in OBEX supervisor tests."""

    def __init__(self):
        self.pids = set()
        self.spawned = []
        self.killed = []
        self.ignore_kill = False
        self._next_pid = itertools.count(4000)

    def run(self, args, **kwargs):
        assert args[0] == "pgrep"
        out = "\n".join(str(p) for p in sorted(self.pids))
        return subprocess.CompletedProcess(
            args=args, returncode=0 if self.pids else 1, stdout=out, stderr=""
        )

    def popen(self, args, **kwargs):
        table = self

        class _Proc:
            def __init__(self):
                self.args = args
                self.kwargs = kwargs
                self.pid = next(table._next_pid)
                self.returncode = None
                self.exited = False

            def exit(self, code=1):
                """Die on its own; the pid stays listed until reaped."""
                self.exited = True
                self.returncode = code

            def poll(self):
                if self.exited:
                    table.pids.discard(self.pid)
                return self.returncode

            def wait(self, timeout=None):
                return self.returncode or 0

            def kill(self):
                table.pids.discard(self.pid)

        proc = _Proc()
        self.spawned.append(proc)
        self.pids.add(proc.pid)
        return proc

    def kill(self, pid, sig):
        self.killed.append((pid, sig))
        if pid not in self.pids:
            raise ProcessLookupError(pid)
        if not self.ignore_kill:
            self.pids.discard(pid)


@pytest.fixture
def fake_adapter():
    """Provide a fresh FakeAdapter."""
    return FakeAdapter()


@pytest.fixture
def test_logger():
    """A logger that is not the package default, for injection."""
    logger = logging.getLogger("pitooth_test")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def fake_procs(monkeypatch):
    """Patch the OBEX supervisor's process access with a fake table.

    Yields:
        The FakeProcessTable tracking spawned and signalled daemons.
    """
    table = FakeProcessTable()
    monkeypatch.setattr("pitooth.obex.supervisor.subprocess.run", table.run)
    monkeypatch.setattr("pitooth.obex.supervisor.subprocess.Popen", table.popen)
    monkeypatch.setattr("pitooth.obex.supervisor.os.kill", table.kill)
    monkeypatch.setattr("pitooth.obex.supervisor.POLL_INTERVAL", 0.01)
    yield table


@pytest.fixture(autouse=True)
def reset_agent_registry():
    """Reset the process-wide pairing agent between tests."""
    import pitooth.bluetooth.agent as agent_module

    agent_module._REGISTERED = None
    yield
    agent_module._REGISTERED = None


@pytest.fixture
def exposed_agents(monkeypatch):
    """Replace the D-Bus agent export with a recorder.

    Yields:
        Dictionary recording expose/unexpose calls; set ``fail`` to make
        exporting raise.
    """
    from pitooth.errors import AgentRegistrationError

    tracker = {"exposed": [], "unexposed": [], "fail": False}

    def fake_expose(bus, agent, path):
        if tracker["fail"]:
            raise AgentRegistrationError("RegisterAgent failed")
        tracker["exposed"].append((bus, agent, path))

    def fake_unexpose(bus, path):
        tracker["unexposed"].append((bus, path))

    monkeypatch.setattr("pitooth.bluetooth.agent._expose", fake_expose)
    monkeypatch.setattr("pitooth.bluetooth.agent._unexpose", fake_unexpose)
    yield tracker


@pytest.fixture
def pi_host(monkeypatch):
    """Pretend the tests run on a Raspberry Pi."""
    calls = {"count": 0}

    def fake_check_host():
        calls["count"] += 1
        return "Raspberry Pi 4 Model B Rev 1.4"

    monkeypatch.setattr("pitooth.manager.check_host", fake_check_host)
    yield calls


@pytest.fixture
def manager(pi_host, exposed_agents, fake_adapter, test_logger):
    """A BluetoothManager wired to the fake adapter."""
    from pitooth.manager import BluetoothManager

    return BluetoothManager("TestDev", logger=test_logger, adapter=fake_adapter)


@pytest.fixture
def temp_config(tmp_path, monkeypatch):
    """Create a temporary config file and point ConfigManager at it.

    Yields:
        Path to the temporary config file
    """
    import json

    cfg_file = tmp_path / "config.json"
    cfg_file.write_text(
        json.dumps(
            {
                "DeviceAlias": "ConfigDevice",
                "LogLevel": "debug",
                "ObexPath": str(tmp_path / "obex"),
                "ConnectionWindow": 15,
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("PITOOTH_CONFIG", str(cfg_file))

    from pitooth.config.manager import ConfigManager

    ConfigManager._instance = None
    yield cfg_file
    ConfigManager._instance = None


@pytest.fixture
def temp_log_dir(tmp_path, monkeypatch):
    """Redirect file logging to a temporary directory and reset the logger.

    Yields:
        Path to the temporary log file
    """
    log_file = tmp_path / "logs" / "test.log"
    monkeypatch.setenv("PITOOTH_LOG_FILE", str(log_file))

    import pitooth.logging.logger as logger_module

    def _reset():
        logger_module._LOGGER = None
        for handler in list(logging.getLogger("pitooth").handlers):
            logging.getLogger("pitooth").removeHandler(handler)
            handler.close()

    _reset()
    yield log_file
    _reset()
