import logging
import logging.handlers
import os
from datetime import datetime
from pathlib import Path

from dispatchlab.lib.get_platform import APP_DIR_NAME, get_platform

FILE_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(message)s"
MAX_LOG_BYTES = 10 * 1024**2


def get_log_directory() -> Path:
    """Per-user log folder: AppData/Local on Windows, ~/.config elsewhere.

    Raises:
        OSError: On a platform we cannot place logs for.
    """
    platform = get_platform()
    if platform == "unknown":
        raise OSError("Unsupported OS. Can't determine logs folder.")

    if platform == "windows":
        return Path.home() / "AppData" / "Local" / APP_DIR_NAME / "Logs"
    return Path.home() / ".config" / APP_DIR_NAME / "logs"


def clean_old_logs(log_dir: Path, max_files: int = 5):
    """Delete the oldest *.log files in ``log_dir`` until ``max_files`` remain."""
    if not log_dir.exists():
        return

    by_age = sorted(log_dir.glob("*.log"), key=os.path.getmtime)
    for stale in by_age[: max(len(by_age) - max_files, 0)]:
        stale.unlink()


class CustomFormatter(logging.Formatter):
    """Pads the level name so file log columns line up."""

    def format(self, record):
        record.levelname = record.levelname.ljust(8)
        return super().format(record)


def configure_logger(
    log_level: int = logging.DEBUG, log_dir: Path | None = None, max_log_files: int = 5
) -> Path:
    """Log to a new timestamped file in ``log_dir`` and to the console.

    Dispatch steps are logged at DEBUG, so a DEBUG run leaves a complete
    filter/hook/handler trace in the file. Loggers created by libraries before
    this call (werkzeug, gevent) are pointed at the same handlers.

    Returns:
        Path: The log file written to.
    """
    log_dir = log_dir or get_log_directory()
    clean_old_logs(log_dir=log_dir, max_files=max_log_files)
    log_dir.mkdir(exist_ok=True, parents=True)
    log_file = log_dir / datetime.now().strftime("%Y-%m-%d_%H-%M-%S.log")

    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=MAX_LOG_BYTES, backupCount=5
    )
    file_handler.setFormatter(CustomFormatter(FILE_FORMAT, datefmt="%d.%m.%Y %H:%M:%S"))
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handlers = [file_handler, stream_handler]

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    for logger in list(logging.root.manager.loggerDict.values()):
        if isinstance(logger, logging.Logger):
            logger.handlers = list(handlers)
            logger.setLevel(log_level)

    return log_file
