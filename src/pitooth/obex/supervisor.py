"""OBEX server supervision.

OBEX is the Bluetooth profile used to push files between devices. PiTooth
does not speak OBEX itself; it starts ``obexd`` in auto-accept mode so that
paired peers can push files (OBEX Object Push / File Transfer) into a
receive directory, and stops it again on request.

The daemon is found by process name, so concurrent supervisors in different
processes may race. Each call is idempotent.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..errors import ObexIOError, ProcessError

STOP_TIMEOUT = 5.0
POLL_INTERVAL = 0.1
DIR_MODE = 0o755


@dataclass
class ObexStatus:
    running: bool
    pid: Optional[int] = None
    receive_dir: Optional[str] = None


def ensure_receive_dir(path: Path) -> None:
    """Create ``path`` and any missing parents with mode 0755.

    The mode is applied explicitly so the process umask does not narrow it.
    """
    missing: List[Path] = []
    current = path
    while not current.exists():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent

    path.mkdir(parents=True, exist_ok=True)
    for created in missing:
        os.chmod(created, DIR_MODE)


class ObexSupervisor:
    """Starts and stops the OBEX daemon as a detached child process."""

    def __init__(self, logger: logging.Logger, binary: str = "obexd") -> None:
        self.logger = logger
        self.binary = binary
        self.name = os.path.basename(binary)
        self._proc: Optional[subprocess.Popen] = None
        self._receive_dir: Optional[str] = None

    def pids(self) -> List[int]:
        """Return the PIDs of every running OBEX daemon.

        Raises:
            ProcessError: If the process table cannot be queried.
        """
        self._poll_child()
        try:
            result = subprocess.run(
                ["pgrep", "-x", self.name],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ProcessError("Failed to probe for OBEX daemon", cause=exc) from exc

        # pgrep exits 1 when nothing matches
        if result.returncode == 1:
            return []
        if result.returncode != 0:
            raise ProcessError(
                f"pgrep exited with status {result.returncode}: {result.stderr.strip()}"
            )
        return [int(tok) for tok in result.stdout.split() if tok.isdigit()]

    def is_running(self) -> bool:
        return bool(self.pids())

    def status(self) -> ObexStatus:
        pids = self.pids()
        if not pids:
            return ObexStatus(running=False)
        own = self._proc.pid if self._proc is not None else None
        pid = own if own in pids else pids[0]
        receive_dir = self._receive_dir if pid == own else None
        return ObexStatus(running=True, pid=pid, receive_dir=receive_dir)

    def control(self, start: bool, receive_dir: str = "") -> None:
        """Start or stop the OBEX daemon.

        Args:
            start: True to start the daemon, False to stop it.
            receive_dir: Directory incoming files are written to. Only used
                when starting.

        Raises:
            ObexIOError: If the receive directory cannot be created.
            ProcessError: If the daemon cannot be probed, spawned or stopped.
        """
        active = self.is_running()
        if start and active:
            self.logger.debug("obexd is already running.")
            return
        if not start and not active:
            self.logger.debug("obexd is already stopped.")
            return

        if start:
            self.start(receive_dir)
        else:
            self.stop()

    def start(self, receive_dir: str) -> int:
        target = Path(receive_dir).expanduser()
        try:
            ensure_receive_dir(target)
        except OSError as exc:
            raise ObexIOError(
                f"failed to create output directory {target}", cause=exc
            ) from exc

        self.logger.debug("Starting obexd service...")
        try:
            proc = subprocess.Popen(
                [self.binary, "-a", "-r", str(target)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise ProcessError("failed to start obexd", cause=exc) from exc

        self._proc = proc
        self._receive_dir = str(target)
        self.logger.info("obexd [PID: %d] started successfully", proc.pid)
        return proc.pid

    def stop(self) -> None:
        pids = self.pids()
        self.logger.debug("Stopping obexd service...")
        for pid in pids:
            try:
                os.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                continue
            except OSError as exc:
                raise ProcessError(f"failed to stop obexd [PID: {pid}]", cause=exc) from exc

        self._reap()

        deadline = time.monotonic() + STOP_TIMEOUT
        while self.is_running():
            if time.monotonic() >= deadline:
                raise ProcessError("obexd still running after SIGTERM")
            time.sleep(POLL_INTERVAL)

        self.logger.info("obexd [PID: %s] stopped successfully", ", ".join(map(str, pids)))

    def _poll_child(self) -> None:
        # A child that exited on its own is a zombie until waited on, and
        # pgrep still matches zombies
        if self._proc is None or self._proc.poll() is None:
            return
        self.logger.warning(
            "obexd [PID: %d] exited with status %s", self._proc.pid, self._proc.returncode
        )
        self._proc = None
        self._receive_dir = None

    def _reap(self) -> None:
        # Our own child would linger as a zombie and keep matching pgrep
        proc, self._proc = self._proc, None
        self._receive_dir = None
        if proc is None:
            return
        try:
            proc.wait(timeout=STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
