"""
Centralized logging configuration for the production billing service.

Every log record carries the name of the thread that produced it. Flask
serves requests on worker threads, and two operators finalizing the same
billing context show up as interleaved lines that can only be told apart
by thread.

Handlers:
    - stdout, always
    - production_billing.log and production_billing_error.log, rotated at
      10 MB with 5 backups, when file logging is enabled

Billing contexts get their own child logger (``get_context_logger``) so
one group's drafts and finalizes can be filtered out of the main log.

Log Format:
    2026-10-18 10:15:30 [INFO    ] [MainThread] production_billing.app - Starting application
    2026-10-18 10:15:31 [INFO    ] [Thread-3] production_billing.services.run_service - Run 4f1c configured
    2026-10-18 10:15:32 [INFO    ] [Thread-4] production_billing.billing.9ab2c3d4 - Finalized v3

Usage:
    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    logger = get_logger(__name__)
    context_logger = get_context_logger(context_id)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_LOGGER_NAME = "production_billing"

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


# =============================================================================
# THREAD CONTEXT FILTER
# =============================================================================

class ThreadContextFilter(logging.Filter):
    """Stamps ``thread_name`` and ``thread_id`` on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.thread_name = threading.current_thread().name
        record.thread_id = threading.get_ident()
        return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

def _attach(logger: logging.Logger, handler: logging.Handler, level: int,
            formatter: logging.Formatter, thread_filter: logging.Filter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(thread_filter)
    logger.addHandler(handler)


def setup_logging(
    app_name: str = APP_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the application logger.

    Safe to call again (each app created by ``create_app`` does): existing
    handlers are replaced, not duplicated.

    Args:
        app_name: Name of the root application logger
        log_level: Minimum level for the console and main log file
        log_dir: Directory for log files (default: ./logs beside this file)
        enable_file_logging: Also write rotating log files

    Returns:
        The configured application logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    thread_filter = ThreadContextFilter()

    _attach(logger, logging.StreamHandler(sys.stdout), log_level, formatter, thread_filter)

    if enable_file_logging:
        log_dir = log_dir or Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        for filename, level in (
            (f"{app_name}.log", log_level),
            (f"{app_name}_error.log", logging.ERROR),
        ):
            handler = RotatingFileHandler(
                filename=log_dir / filename,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
            _attach(logger, handler, level, formatter, thread_filter)

        logger.info(f"File logging enabled in {log_dir}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


# =============================================================================
# LOGGER FACTORY FUNCTIONS
# =============================================================================

def get_logger(name: str) -> logging.Logger:
    """
    Child logger under the application namespace.

    Example:
        get_logger("services.billing_service")
        # -> "production_billing.services.billing_service"
    """
    if not name.startswith(APP_LOGGER_NAME):
        name = f"{APP_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def get_context_logger(context_id: str) -> logging.Logger:
    """
    Logger for one billing context, named by the first 8 characters of its ID.

    Example:
        get_context_logger("9ab2c3d4-e5f6-7890-...")
        # -> "production_billing.billing.9ab2c3d4"
    """
    return logging.getLogger(f"{APP_LOGGER_NAME}.billing.{context_id[:8]}")
