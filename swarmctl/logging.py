"""Logging configuration for the swarmctl package."""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from swarmctl.config import Config

# Libraries that are too chatty at DEBUG/INFO
NOISY_LOGGERS = ('paramiko', 'urllib3', 'uvicorn.access')

def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)

        formatter = logging.Formatter(Config.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
        handler.setFormatter(formatter)

        logger.addHandler(handler)

    return logger

def setup_logging(
    debug_mode: bool = False,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_size_mb: int = 100,
    backup_count: int = 5,
) -> None:
    """Configure root logging for a CLI or API process.

    Args:
        debug_mode: Force DEBUG level and keep library loggers verbose
        level: Level name used when not in debug mode (defaults to LOG_LEVEL)
        log_file: Optional path of a rotating log file
        max_size_mb: Rotation size for the log file
        backup_count: Rotated files to keep
    """
    if debug_mode:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    if log_file:
        path = Path(log_file).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            filename=path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count
        ))

    logging.basicConfig(level=log_level, format=Config.LOG_FORMAT, handlers=handlers, force=True)

    # Disable debug logging for noisy libraries
    if not debug_mode:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
