"""
Centralized Logging Configuration for benchledger

Console output goes to stderr so that stdout stays reserved for results
(``benchledger run --json`` pipes cleanly). An optional rotating file
handler writes everything to ``<log_dir>/benchledger.log``.

Usage in any module:
    import logging
    logger = logging.getLogger(__name__)

    # Call once at CLI startup
    from benchledger.core.logging_config import setup_logging
    setup_logging(level="DEBUG")
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_LOG_DIR = Path(".benchledger/logs")
LOG_FILENAME = "benchledger.log"
MAX_LOG_SIZE = 5 * 1024 * 1024  # 5 MB per file
BACKUP_COUNT = 3

DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-5s | %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"

# =============================================================================
# Global State
# =============================================================================

_logging_configured = False


def setup_logging(
    level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    log_dir: Optional[Path] = None,
    service_name: str = "benchledger",
) -> None:
    """
    Configure logging for a benchledger process.

    Call once at startup; later calls are no-ops.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO.
        log_to_console: Whether to log to stderr
        log_to_file: Whether to log to the rotating log file
        log_dir: Directory for the log file (default .benchledger/logs)
        service_name: Logger name for the startup marker
    """
    global _logging_configured

    if _logging_configured:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_file = None
    if log_to_file:
        directory = log_dir or DEFAULT_LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        log_file = directory / LOG_FILENAME
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root_logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, CONSOLE_DATE_FORMAT))
        root_logger.addHandler(console_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    _logging_configured = True

    logger = logging.getLogger(service_name)
    logger.debug(f"Logging initialized (level={level.upper()}, file={log_file})")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module."""
    return logging.getLogger(name)


def reset_logging() -> None:
    """Drop configured handlers so setup_logging can run again (tests)."""
    global _logging_configured

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    _logging_configured = False
