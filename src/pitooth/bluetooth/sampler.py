"""Nearby peer sampling.

Polls the adapter's known devices on a fixed cadence and folds every report
into an address-keyed snapshot.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..errors import AdapterError, SampleError
from .adapter import GuardedAdapter

DEFAULT_INTERVAL = 1.0
DEFAULT_HORIZON = 5.0


@dataclass
class Device:
    """A peer seen during a sampling run."""

    address: str
    name: str
    last_seen: float
    connected: bool


class PeerSampler:
    """One finite sampling run over ``horizon`` seconds.

    Every call to :meth:`run` starts a fresh snapshot. The cancel event is
    checked between ticks, so a cancel is honoured within one ``interval``.
    """

    def __init__(
        self,
        adapter: GuardedAdapter,
        logger: logging.Logger,
        interval: float = DEFAULT_INTERVAL,
        horizon: float = DEFAULT_HORIZON,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.adapter = adapter
        self.logger = logger
        self.interval = interval
        self.horizon = horizon
        self._clock = clock

    def run(self, cancel: Optional[threading.Event] = None) -> Dict[str, Device]:
        """Sample until the horizon passes or ``cancel`` is set.

        Returns:
            The final snapshot, keyed by device address. It may be empty.

        Raises:
            SampleError: If the adapter fails to enumerate devices. The
                partial snapshot is discarded.
        """
        waiter = cancel if cancel is not None else threading.Event()
        snapshot: Dict[str, Device] = {}
        deadline = time.monotonic() + self.horizon

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if waiter.wait(min(self.interval, remaining)):
                self.logger.debug("Peer sampling cancelled")
                break
            self.tick(snapshot)

        return snapshot

    def tick(self, snapshot: Dict[str, Device]) -> None:
        """Fold one device enumeration into ``snapshot``."""
        try:
            devices = self.adapter.get_devices()
        except AdapterError as exc:
            raise SampleError("Failed to get bluetooth devices", cause=exc) from exc

        now = self._clock()
        for info in devices:
            self.logger.debug("Discovered bluetooth device: %s : %s", info.alias, info.address)
            prev = snapshot.get(info.address)
            last_seen = now if prev is None else max(prev.last_seen, now)
            snapshot[info.address] = Device(
                address=info.address,
                name=info.alias,
                last_seen=last_seen,
                connected=info.connected,
            )
