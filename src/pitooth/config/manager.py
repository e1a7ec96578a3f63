"""Configuration management module.

Provides thread-safe configuration management backed by a JSON file and a
singleton for application-wide config access. Command line flags take
precedence; the file only supplies their defaults.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..logging.logger import LEVELS, get_logger
from ..utils.helpers import config_path, load_json

logger = get_logger()


@dataclass
class AppConfig:
    """Application configuration dataclass.

    Attributes:
        DeviceAlias: Alias the Bluetooth adapter advertises.
        LogLevel: One of "debug", "info" or "error".
        ObexPath: Directory the OBEX daemon writes received files to.
        ObexBinary: Name or path of the OBEX daemon executable.
        ConnectionWindow: Length of a pairing window in seconds.
    """

    DeviceAlias: str = "PiToothDevice"
    LogLevel: str = "info"
    ObexPath: str = ""
    ObexBinary: str = "obexd"
    ConnectionWindow: int = 30

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Create an AppConfig instance from a dictionary."""
        base = cls()
        for field in asdict(base).keys():
            if field in data:
                setattr(base, field, data[field])

        level = str(base.LogLevel).lower()
        base.LogLevel = level if level in LEVELS else "info"

        try:
            window = int(base.ConnectionWindow)
        except (TypeError, ValueError):
            window = 30
        base.ConnectionWindow = window if window > 0 else 30

        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert the AppConfig to a dictionary."""
        return asdict(self)


class ConfigManager:
    """Thread-safe configuration manager with JSON backing.

    Implements a simple singleton so the whole application shares the same
    loaded configuration instance.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path: Path = path or config_path()
        self._cfg_lock = threading.RLock()
        self._cfg = AppConfig.from_dict(self._load())

    @classmethod
    def instance(cls) -> "ConfigManager":
        """Get the singleton ConfigManager instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = ConfigManager()
            return cls._instance

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Any]:
        try:
            return load_json(self._path)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", self._path, exc)
            return {}

    def get(self) -> AppConfig:
        """Return a shallow copy of the current configuration."""
        with self._cfg_lock:
            return AppConfig.from_dict(self._cfg.to_dict())

