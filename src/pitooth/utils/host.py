"""Host environment probe.

PiTooth only drives the on-board controller of a Raspberry-Pi-class Linux
device. The probe runs before any bus traffic so a misconfigured host fails
fast instead of hanging on D-Bus calls.
"""

from __future__ import annotations

import platform
from pathlib import Path
from typing import Callable

from ..errors import UnsupportedHost

DEVICE_TREE_MODEL = Path("/proc/device-tree/model")


def check_host(
    system: Callable[[], str] = platform.system,
    model_path: Path = DEVICE_TREE_MODEL,
) -> str:
    """Verify that we are running on a supported board.

    Args:
        system: Callable returning the OS name (``platform.system`` by default).
        model_path: Device-tree model file that only exists on SBC-class hosts.

    Returns:
        The board model string, e.g. ``"Raspberry Pi 4 Model B Rev 1.4"``.

    Raises:
        UnsupportedHost: When the OS is not Linux or the model file is missing
            or unreadable.
    """
    os_name = system()
    if os_name != "Linux":
        raise UnsupportedHost(f"Unsupported OS: {os_name}")

    try:
        raw = model_path.read_bytes()
    except OSError as exc:
        raise UnsupportedHost(
            "Not a Raspberry Pi, can't enable Bluetooth discovery", cause=exc
        ) from exc

    # The device-tree string is NUL-terminated
    return raw.rstrip(b"\x00").decode("utf-8", errors="replace").strip()
