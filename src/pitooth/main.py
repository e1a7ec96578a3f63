"""Command line front end for PiTooth."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .config.manager import AppConfig, ConfigManager
from .errors import PiToothError
from .logging.logger import get_logger, set_level
from .manager import BluetoothManager

EXAMPLES = """\
Examples:
	Enable OBEX server with a specific path for server files:
		{prog} --enableObex --obexPath=/path/to/obex/files
	Disable OBEX server:
		{prog} --disableObex
	Accept incoming connections with a custom connection window:
		{prog} --acceptConnections --connectionWindow=60
"""


def build_parser(cfg: AppConfig) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pitooth",
        description=(
            "PiTooth is a command-line tool for managing Bluetooth connections "
            "and OBEX server."
        ),
    )
    ap.add_argument("--config", help="Path to a JSON configuration file")
    # Device settings
    ap.add_argument("--alias", default=cfg.DeviceAlias, help="Bluetooth device alias")
    ap.add_argument(
        "--log",
        default=cfg.LogLevel,
        help="Log level (debug, info, error); anything else means info",
    )
    # OBEX options
    ap.add_argument("--enableObex", action="store_true", help="Enable OBEX server")
    ap.add_argument("--disableObex", action="store_true", help="Disable OBEX server")
    ap.add_argument("--obexPath", default=cfg.ObexPath, help="Path for OBEX server files")
    # Connection options
    ap.add_argument(
        "--acceptConnections", action="store_true", help="Accept incoming connections"
    )
    ap.add_argument(
        "--connectionWindow",
        type=int,
        default=cfg.ConnectionWindow,
        help="Connection window in seconds",
    )
    return ap


def load_config(argv: List[str]) -> ConfigManager:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config")
    known, _ = pre.parse_known_args(argv)
    if known.config:
        return ConfigManager(Path(known.config))
    return ConfigManager.instance()


def print_usage(ap: argparse.ArgumentParser) -> None:
    ap.print_help(sys.stderr)
    print("\n" + EXAMPLES.format(prog=ap.prog), file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    cfg = load_config(argv).get()
    ap = build_parser(cfg)
    args = ap.parse_args(argv)

    set_level(args.log)
    logger = get_logger()

    if not (args.enableObex or args.disableObex or args.acceptConnections):
        print_usage(ap)
        return 1

    if args.enableObex and not args.obexPath:
        print("Error: OBEX path is required when enabling OBEX server.", file=sys.stderr)
        ap.print_usage(sys.stderr)
        return 1

    try:
        manager = BluetoothManager(args.alias, logger=logger, obex_binary=cfg.ObexBinary)
    except PiToothError as exc:
        print(f"Error initializing Bluetooth manager: {exc}", file=sys.stderr)
        return 1

    try:
        if args.enableObex:
            manager.control_obex_server(True, args.obexPath)
            print("OBEX server controlled successfully.")
        elif args.disableObex:
            manager.control_obex_server(False, "")
            print("OBEX server controlled successfully.")
        else:
            window = args.connectionWindow
            if window <= 0:
                print("Setting connection window to 30 seconds.")
                window = 30
            devices = manager.accept_connections(window)
            print(f"{len(devices)} active connections.")
    except PiToothError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
