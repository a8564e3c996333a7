"""
Centralized Logging Configuration Module

Provides standardized logging setup with:
- One directory per area under /logs (import, api, cli), or temp during tests
- Daily log rotation with date stamps
- Optional size-based rotation for large imports
- Configurable retention policy (default 30 days)

Test Environment Behavior:
- Logs written to a temp directory instead of /logs
- Call cleanup_test_logs() at session end to remove them

Usage:
    from carre_vert.logging_config import get_logger

    logger = get_logger('reconciliation', 'import')
    logger.info('Reconciling 2026')
"""

import logging
import os
import shutil
import sys
import tempfile
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Optional


IS_TEST_ENV = 'pytest' in sys.modules

TEST_LOG_DIR = Path(tempfile.gettempdir()) / 'carre_vert_test_logs'
LOG_BASE_DIR = TEST_LOG_DIR if IS_TEST_ENV else Path(os.getenv('LOG_DIR', 'logs'))
DEFAULT_LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_RETENTION_DAYS = int(os.getenv('LOG_RETENTION_DAYS', '30'))
MAX_LOG_SIZE_MB = int(os.getenv('MAX_LOG_SIZE_MB', '10'))

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def ensure_log_directory(log_subdir: str) -> Path:
    """Create (if needed) and return the directory for one log area."""
    log_dir = LOG_BASE_DIR / log_subdir
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def cleanup_old_logs(log_dir: Path, retention_days: int = LOG_RETENTION_DAYS):
    """
    Remove log files older than the retention period.

    Args:
        log_dir: Directory containing log files
        retention_days: Number of days to retain logs
    """
    if not log_dir.exists():
        return

    cutoff = datetime.now() - timedelta(days=retention_days)

    for log_file in log_dir.glob('*.log'):
        if log_file.stat().st_mtime < cutoff.timestamp():
            try:
                log_file.unlink()
            except OSError:
                pass  # another process may hold or have removed it


def _resolve_level(level: Optional[str]) -> int:
    return getattr(logging, level.upper()) if level else getattr(logging, DEFAULT_LOG_LEVEL)


def get_logger(
    name: str,
    log_subdir: str,
    level: Optional[str] = None,
    use_size_rotation: bool = False,
    console_output: bool = True
) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (e.g., 'reconciliation', 'api')
        log_subdir: Subdirectory under /logs (e.g., 'import', 'api', 'cli')
        level: Log level name. Defaults to DEFAULT_LOG_LEVEL
        use_size_rotation: Also keep a size-rotated rolling file
        console_output: Also log to the console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)  # handlers filter
    log_level = _resolve_level(level)

    log_dir = ensure_log_directory(log_subdir)
    cleanup_old_logs(log_dir)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_filename = log_dir / f"{log_subdir}_{datetime.now().strftime('%Y-%m-%d')}.log"
    file_handler = TimedRotatingFileHandler(
        filename=log_filename,
        when='midnight',
        interval=1,
        backupCount=LOG_RETENTION_DAYS,
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if use_size_rotation:
        size_handler = RotatingFileHandler(
            filename=log_dir / f"{log_subdir}_rolling.log",
            maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        size_handler.setLevel(log_level)
        size_handler.setFormatter(formatter)
        logger.addHandler(size_handler)

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def cleanup_test_logs():
    """
    Remove the temporary log directory used while pytest is running.

    Has no effect outside the test environment.
    """
    if not IS_TEST_ENV:
        return

    if TEST_LOG_DIR.exists():
        shutil.rmtree(TEST_LOG_DIR, ignore_errors=True)
