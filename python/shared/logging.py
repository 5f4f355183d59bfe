"""
Standardized logging for the equipment tracker backends.

Every backend logs to <tmp>/equiptrack-{module}.log with one format, so the
API server and the detection feed can be read side by side.

Usage:
    from shared.logging import setup_logging, get_logger

    # At startup:
    setup_logging('api')

    # In your code:
    logger = get_logger(__name__)
    logger.info('Equipment moved')

Log format:
    2026-01-16T20:30:00 - INFO - [equiptrack.movement] message
"""

import logging
import logging.handlers
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional

LOG_DIR = tempfile.gettempdir()
LOG_PREFIX = 'equiptrack'

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'

# Track initialized modules
_initialized_modules: set[str] = set()


def get_log_path(module: str) -> str:
    """Get the log file path for a module.

    Args:
        module: Module name (e.g., 'api', 'feed')

    Returns:
        Path to the log file (e.g., '/tmp/equiptrack-api.log')
    """
    safe_module = ''.join(c for c in module if c.isalnum() or c == '-')
    return os.path.join(LOG_DIR, f'{LOG_PREFIX}-{safe_module}.log')


def setup_logging(
    module: str,
    level: int = logging.INFO,
    also_stdout: bool = True,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """Set up logging for a backend module.

    Args:
        module: Module name (e.g., 'api', 'feed')
        level: Minimum log level (default: INFO)
        also_stdout: Also log to stdout (default: True)
        max_bytes: Size at which the log file rolls over (default: 5MB)
        backup_count: Rolled-over files to keep

    Returns:
        The configured root logger
    """
    if module in _initialized_modules:
        return logging.getLogger()

    log_path = get_log_path(module)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        print(f"Warning: Could not create log file at {log_path}: {e}", file=sys.stderr)

    if also_stdout:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(level)
        stdout_handler.setFormatter(formatter)
        root_logger.addHandler(stdout_handler)

    _initialized_modules.add(module)
    root_logger.info(f'Logging initialized for {module}')

    return root_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance (typically for __name__)."""
    return logging.getLogger(name)


def get_all_log_paths() -> list[str]:
    """Paths of every existing equiptrack-*.log file."""
    return [
        str(p) for p in Path(LOG_DIR).glob(f'{LOG_PREFIX}-*.log')
        if p.is_file()
    ]


def clear_logs(module: Optional[str] = None) -> None:
    """Truncate one module's log, or all tracker logs when module is None."""
    paths = [get_log_path(module)] if module else get_all_log_paths()
    for path in paths:
        if os.path.exists(path):
            with open(path, 'w'):
                pass
