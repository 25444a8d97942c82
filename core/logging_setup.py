"""Centralized logging configuration with rotation."""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that flood DEBUG output while reports are rendered.
_NOISY_LOGGERS = ("matplotlib", "PIL")


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def _quiet_third_party() -> None:
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def teardown_logging(logger: Optional[logging.Logger] = None) -> None:
    """Flush, detach, and close all handlers from the provided logger."""
    target = logger or logging.getLogger()
    for handler in list(target.handlers):
        target.removeHandler(handler)
        try:
            handler.flush()
            handler.close()
        except Exception:
            # Best-effort cleanup; logging should never crash the app.
            pass


def setup_logging(
    log_level: str = 'INFO',
    logs_dir: Optional[Path] = None,
    console_output: bool = True,
    log_file_name: str = 'optimizer.log',
) -> logging.Logger:
    """
    Set up the optimizer's root logger.

    The rotating file always records DEBUG detail; the console follows
    ``log_level`` so long optimization runs stay readable.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logs_dir: Directory for log files. If None, uses 'logs/' in current directory.
        console_output: Whether to output logs to console
        log_file_name: File name inside ``logs_dir``

    Returns:
        Configured root logger
    """
    logs_dir = Path(logs_dir) if logs_dir is not None else Path.cwd() / 'logs'
    logs_dir.mkdir(parents=True, exist_ok=True)

    console_level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Close previous handlers so file descriptors are released on Windows.
    teardown_logging(root)

    log_file = logs_dir / log_file_name
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding='utf-8',
        delay=True,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(_formatter())
    root.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(_formatter())
        root.addHandler(console_handler)

    _quiet_third_party()

    root.info("Logging initialized at %s level", log_level.upper())
    root.info("Log file: %s", log_file)
    return root


def configure_worker_logging(log_level: str = 'WARNING') -> None:
    """
    Process-pool initializer for search workers.

    Spawned workers start without handlers; give them a single stderr handler
    at ``log_level`` so warnings and errors from a chunk still surface while
    per-trial chatter stays out of the console.
    """
    root = logging.getLogger()
    teardown_logging(root)
    level = getattr(logging, log_level.upper(), logging.WARNING)
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(_formatter())
    root.addHandler(handler)
    _quiet_third_party()
