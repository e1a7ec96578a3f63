"""Discoverability session.

Opens the adapter for pairing for a bounded window, samples the peers that
show up, then puts the adapter back. Flag changes happen in a fixed order
and are rolled back in reverse on failure.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Dict, Optional, Union

from ..errors import AdapterError, BusyError, InvalidArgumentError
from .adapter import GuardedAdapter
from .sampler import DEFAULT_INTERVAL, Device, PeerSampler

DEFAULT_WINDOW = 30.0

Window = Union[int, float, timedelta]


def window_seconds(window: Window) -> float:
    """Convert ``window`` to seconds, substituting the default for zero."""
    if isinstance(window, timedelta):
        seconds = window.total_seconds()
    else:
        seconds = float(window)
    if seconds < 0:
        raise InvalidArgumentError(f"Connection window cannot be negative: {seconds}")
    if seconds == 0:
        return DEFAULT_WINDOW
    return seconds


class DiscoverabilitySession:
    """Runs non-overlapping discoverability windows on one adapter."""

    def __init__(
        self,
        adapter: GuardedAdapter,
        logger: logging.Logger,
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        self.adapter = adapter
        self.logger = logger
        self.interval = interval
        self._running = threading.Lock()

    def run(
        self, window: Window = 0, cancel: Optional[threading.Event] = None
    ) -> Dict[str, Device]:
        """Accept pairing for ``window`` seconds and return the peers seen.

        Raises:
            BusyError: If another session is running.
            InvalidArgumentError: If ``window`` is negative.
            AdapterError: If the adapter could not be opened up for pairing.
            SampleError: If device enumeration failed during the window.
        """
        seconds = window_seconds(window)
        if not self._running.acquire(blocking=False):
            raise BusyError("A discoverability session is already running")
        try:
            return self._run(seconds, cancel)
        finally:
            self._running.release()

    def _run(self, seconds: float, cancel: Optional[threading.Event]) -> Dict[str, Device]:
        self.logger.debug("PiTooth: Starting pairing window of %.0f seconds...", seconds)
        # Power can be cut outside this process, so do not trust the cached flag
        self.adapter.set_powered(True)

        self.logger.debug("PiTooth: Setting Pairable...")
        self.adapter.set_pairable(True)

        self.logger.debug("PiTooth: Setting Discoverable...")
        try:
            self.adapter.set_discoverable(True)
        except AdapterError:
            self._best_effort("set pairable off", lambda: self.adapter.set_pairable(False))
            raise

        self.logger.debug("PiTooth: Starting Discovery...")
        try:
            self.adapter.start_discovery()
        except AdapterError:
            self._best_effort(
                "set discoverable off", lambda: self.adapter.set_discoverable(False)
            )
            self._best_effort("set pairable off", lambda: self.adapter.set_pairable(False))
            raise

        self.logger.info("PiTooth: Accepting Connections...")
        try:
            sampler = PeerSampler(
                self.adapter, self.logger, interval=self.interval, horizon=seconds
            )
            devices = sampler.run(cancel)
        finally:
            self._restore()

        self.logger.debug("PiTooth: Found %d devices: %s", len(devices), devices)
        return devices

    def _restore(self) -> None:
        self.logger.debug("PiTooth: Closing pairing window...")
        self._best_effort("stop discovery", self.adapter.stop_discovery)
        self._best_effort("set discoverable off", lambda: self.adapter.set_discoverable(False))
        self._best_effort("set pairable off", lambda: self.adapter.set_pairable(False))

    def _best_effort(self, what: str, fn) -> None:
        try:
            fn()
        except AdapterError as exc:
            self.logger.error("PiTooth: Failed to %s: %s", what, exc)
