import os
import sys

APP_DIR_NAME = "dispatchlab"


def is_windows() -> bool:
    return sys.platform.startswith("win")


def get_platform():
    if sys.platform == "darwin":
        return "osx"
    elif sys.platform.startswith("linux"):
        return "linux"
    elif is_windows():
        return "windows"
    else:
        return "unknown"


def get_data_directory():
    """
    Returns the writable data directory for the application.
    Windows: %APPDATA%/dispatchlab
    Linux/Mac: ~/.dispatchlab
    """
    if is_windows():
        # Result: C:\Users\Username\AppData\Roaming\dispatchlab
        base_path = os.environ.get("APPDATA") or os.path.expanduser("~")
        path = os.path.join(base_path, APP_DIR_NAME)
    else:
        # Result: /home/username/.dispatchlab
        path = os.path.expanduser(f"~/.{APP_DIR_NAME}")

    # Ensure the directory exists
    if not os.path.exists(path):
        os.makedirs(path)

    return path


def get_default_store_path() -> str:
    return os.path.join(get_data_directory(), "registry.db")
