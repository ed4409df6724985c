"""Console and log-file output for a deployment run.

Each invocation writes one append-only ``deploy_YYYYMMDD_HHMMSS.log``.
The console gets the same lines with ANSI colors; the file keeps them
plain, plus DEBUG output such as captured remote command output.
"""
from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path


ROOT_LOGGER = "scripts.deploy"

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

RED = "\033[0;31m"
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
BLUE = "\033[0;34m"
NC = "\033[0m"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_PATTERN = "deploy_%Y%m%d_%H%M%S.log"


class DeployFormatter(logging.Formatter):
    """Render records as ``[timestamp] <marker> message``."""

    _MARKERS = {
        SUCCESS: "✓ ",
        logging.WARNING: "⚠ ",
        logging.ERROR: "✗ ERROR: ",
        logging.CRITICAL: "✗ ERROR: ",
    }
    _COLORS = {
        SUCCESS: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED,
    }

    def __init__(self, *, color: bool) -> None:
        super().__init__(datefmt=TIMESTAMP_FORMAT)
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        marker = self._MARKERS.get(record.levelno, "")
        message = record.getMessage()
        if record.exc_info and not self.color:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if not self.color:
            return f"[{timestamp}] {marker}{message}"

        color = self._COLORS.get(record.levelno)
        if color is None:
            # INFO and DEBUG only color the timestamp.
            return f"{BLUE}[{timestamp}]{NC} {message}"
        return f"{color}[{timestamp}] {marker}{message}{NC}"


def log_file_name(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(LOG_FILE_PATTERN)


def setup_logging(*, log_dir: Path, verbose: bool = False) -> Path:
    """Attach console and file handlers to the deploy logger tree.

    Returns the path of the log file for this invocation. Calling it again
    replaces the handlers installed by the previous call.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_file_name()

    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(DeployFormatter(color=sys.stdout.isatty()))
    logger.addHandler(console)

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(DeployFormatter(color=False))
    logger.addHandler(file_handler)

    return log_path


def log_success(logger: logging.Logger, message: str, *args: object) -> None:
    logger.log(SUCCESS, message, *args)


def redact(text: str, secret: str | None) -> str:
    """Mask *secret* wherever it appears in *text*."""
    if not secret:
        return text
    return text.replace(secret, "****")
