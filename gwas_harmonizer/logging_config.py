"""
Centralized logging configuration for the GWAS harmonizer.

Provides:
- Console handler: Shows only warnings and errors
- File handler: Captures all details with rotation (DEBUG level)
"""

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path


# Module-level state
_logging_initialized = False
_log_file_path: str | None = None


def setup_logging(
    log_dir: Path | None = None,
    job_name: str = "harmonize",
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
    max_bytes: int = 5 * 1024 * 1024,  # 5MB
    backup_count: int = 3,
) -> str:
    """
    Initialize logging with console and rotating file handlers.

    Args:
        log_dir: Directory for log files. If None, logs to current directory.
        job_name: Name prefix for log file.
        console_level: Log level for console output (default: WARNING).
        file_level: Log level for file output (default: DEBUG).
        max_bytes: Maximum size per log file before rotation.
        backup_count: Number of backup files to keep.

    Returns:
        Path to the log file.
    """
    global _logging_initialized, _log_file_path

    # Avoid re-initialization
    if _logging_initialized:
        return _log_file_path or ""

    log_path = (log_dir or Path.cwd()) / "logs"
    log_path.mkdir(parents=True, exist_ok=True)

    # Generate log filename with timestamp
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_path / f"{job_name}_{timestamp}.log"
    _log_file_path = str(log_file)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers filter
    root_logger.handlers.clear()

    # Console handler - minimal output
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root_logger.addHandler(console_handler)

    # File handler - detailed output with rotation
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(file_handler)

    _logging_initialized = True

    return _log_file_path


def reset_logging() -> None:
    """Reset logging state. Useful for testing."""
    global _logging_initialized, _log_file_path
    _logging_initialized = False
    _log_file_path = None

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
