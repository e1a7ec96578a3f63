"""Utility helper functions.

Provides config path resolution and JSON file loading.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict

DEFAULT_CONFIG_PATH = Path("/etc/pitooth/config.json")


def config_path() -> Path:
    """Get the path to the main configuration file.

    Returns:
        The path named by ``PITOOTH_CONFIG``, or /etc/pitooth/config.json.
    """
    override = os.environ.get("PITOOTH_CONFIG", "").strip()
    if override:
        return Path(override)
    return DEFAULT_CONFIG_PATH


def load_json(path: Path) -> Dict[str, Any]:
    """Load JSON data from a file.

    Args:
        path: Path to the JSON file.

    Returns:
        Dictionary containing the JSON data, or an empty dictionary
        if the file doesn't exist.
    """
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def canonical_address(address: str) -> str:
    """Normalise a Bluetooth MAC to upper-case colon-separated form."""
    return str(address).strip().replace("-", ":").upper()
