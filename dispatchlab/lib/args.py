import argparse
import logging

from dispatchlab.lib.get_platform import get_default_store_path

# Default values for CLI args
default_port = 5757
default_log_level = logging.INFO
default_config_file_path = "config.ini"


def parse_log_level(value) -> int:
    """Accept an int ("10") or a level name ("debug")."""
    if isinstance(value, int):
        return value
    if str(value).isdigit():
        return int(value)
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise argparse.ArgumentTypeError(f"Unknown log level: {value}")
    return level


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).lower()
    if lowered in ("true", "yes", "on", "1"):
        return True
    if lowered in ("false", "no", "off", "0"):
        return False
    raise argparse.ArgumentTypeError(f"Expected a boolean, got {value}")


def parse_dispatchlab_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="dispatchlab",
        description="Event dispatch and configuration store demonstration harness",
    )

    parser.add_argument(
        "-p",
        "--port",
        help="Desired http port (default: %d)" % default_port,
        default=default_port,
        type=int,
        required=False,
    )
    parser.add_argument(
        "--store-path",
        help="Path of the SQLite file backing the configuration store. (default: <data dir>/registry.db)",
        default=None,
        required=False,
    )
    parser.add_argument(
        "--scene",
        help="JSON scene file describing the widget tree. Uses the built-in Root/Mid/Leaf scene if omitted.",
        default=None,
        required=False,
    )
    parser.add_argument(
        "-l",
        "--log-level",
        help=f"Logging level as int (DEBUG: 10, INFO: 20, ...) or name. (default: {default_log_level})",
        default=default_log_level,
        type=parse_log_level,
        required=False,
    )
    parser.add_argument(
        "--elevated",
        action="store_true",
        help="Allow writes to protected hives such as HKEY_LOCAL_MACHINE.",
        required=False,
    )
    parser.add_argument(
        "--config-file-path",
        help=f"Path to a config file for harness preferences. (default: {default_config_file_path} in the data directory)",
        default=default_config_file_path,
        required=False,
    )
    parser.add_argument(
        "--record-trace",
        help="Record dispatch traces (true/false). Overrides the saved preference.",
        default=None,
        type=parse_bool,
        required=False,
    )
    parser.add_argument(
        "--headless-demo",
        action="store_true",
        help="Dispatch one mouse press on the Leaf widget, print the trace and exit.",
        required=False,
    )

    args = parser.parse_args(argv)
    if args.store_path is None:
        args.store_path = get_default_store_path()
    return args
