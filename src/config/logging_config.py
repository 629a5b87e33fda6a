# src/config/logging_config.py

"""Per-launch logging for product_finder.

Every launch writes its own file under ``logs/``, named after the mode it
runs in and the launch time (``logs/local_20260214_153045.log``,
``logs/serve_20260214_160000.log``).  Records from all ``product_finder.*``
loggers carry the mode as ``%(mode)s`` so a line copied out of a log still
says whether it came from a local run, a Dropbox run or the webhook server.

Per-item failures are logged, not raised, by the orchestrator, so the file
format keeps the module and line of the failing call.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(mode)s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | [%(mode)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ModeFilter(logging.Filter):
    """Stamp each record with the launch mode."""

    def __init__(self, mode: str) -> None:
        super().__init__()
        self.mode = mode

    def filter(self, record: logging.LogRecord) -> bool:
        record.mode = self.mode
        return True


def setup_logging(mode: str = "run") -> Path:
    """Attach file and console handlers to the ``product_finder`` logger.

    Args:
        mode: launch mode (``local``, ``dropbox``, ``serve``, ``publish``,
            ``setup-webhook``); names the log file and tags every record.

    Returns:
        Path of the log file for this launch.  Later calls keep the
        handlers of the first one and only compute the path.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / (
        f"{mode}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    )

    root_logger = logging.getLogger("product_finder")
    root_logger.setLevel(logging.DEBUG)
    if root_logger.handlers:
        return log_file

    mode_filter = ModeFilter(mode)

    # Everything goes to the file
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(mode_filter)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )

    # Rich tables own stdout/stderr for progress; console gets problems only
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.addFilter(mode_filter)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.info("Logging initialised for %s, file: %s", mode, log_file)
    return log_file
