"""
Logging Configuration for pipechain.

Provides centralized logger setup for chain evaluation traces.
Loggers write to stderr and, when enabled, to a file in the log directory.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "pipechain"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# Log directory priority:
# 1. PIPECHAIN_LOG_DIR (explicit)
# 2. CWD/.pipechain (fallback)
def _get_log_directory() -> Path:
    """Get the log directory path."""
    log_dir = os.getenv("PIPECHAIN_LOG_DIR")
    if not log_dir:
        log_dir = str(Path.cwd() / ".pipechain")
    return Path(log_dir)


def _ensure_log_directory() -> Path:
    """Ensure log directory exists and return its path."""
    log_dir = _get_log_directory()
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def is_file_logging_enabled() -> bool:
    """File logging is opt-in: set PIPECHAIN_DEBUG_LOG to a non-empty value."""
    return bool(os.getenv("PIPECHAIN_DEBUG_LOG"))


def _create_file_handler(log_filename: str) -> Optional[logging.FileHandler]:
    """
    Create a file handler for the specified log file.

    Args:
        log_filename: Name of the log file (e.g., 'chain_trace.log')

    Returns:
        Configured FileHandler, or None if file logging is disabled
    """
    if not is_file_logging_enabled():
        return None

    try:
        log_path = _ensure_log_directory() / log_filename
        handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
    except OSError as e:
        print(f"pipechain: cannot open log file: {e}", file=sys.stderr)
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a handler.
    ::: This is stateless.
    """
    def emit(self, record):
        super().emit(record)
        self.flush()


def _create_stderr_handler(level: int) -> logging.StreamHandler:
    """Create a stderr handler for console output with auto-flush."""
    handler = FlushingStreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _own_handlers(logger: logging.Logger) -> list:
    """Handlers this module installed on ``logger``."""
    return [
        h for h in logger.handlers
        if isinstance(h, (FlushingStreamHandler, logging.FileHandler))
    ]


def get_chain_logger(level: int = logging.WARNING) -> logging.Logger:
    """
    Get the package logger used by the evaluator and parser.

    Child loggers created with ``logging.getLogger(__name__)`` inside the
    package propagate here. Output goes to stderr at ``level`` and, when
    PIPECHAIN_DEBUG_LOG is set, to .pipechain/chain_trace.log at DEBUG.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Only configure once; handlers attached by others (e.g. log capture) do not count
    if not _own_handlers(logger):
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        file_handler = _create_file_handler("chain_trace.log")
        if file_handler:
            logger.addHandler(file_handler)

        logger.addHandler(_create_stderr_handler(level))

    return logger


def set_stderr_level(level: int) -> None:
    """Change the stderr threshold of the package logger (e.g. DEBUG for demos)."""
    logger = get_chain_logger()
    for handler in _own_handlers(logger):
        if isinstance(handler, FlushingStreamHandler):
            handler.setLevel(level)


def reset_chain_logger() -> None:
    """Close and remove the package handlers so the next call reconfigures from env."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in _own_handlers(logger):
        handler.close()
        logger.removeHandler(handler)


# Pre-create the package logger for import convenience
chain_logger = get_chain_logger()
