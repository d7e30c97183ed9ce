"""Logging configuration for the reconciliation engine."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
)


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    log_format: Optional[str] = None,
    sql_echo: bool = False,
) -> logging.Logger:
    """
    Configure logging for the reconciliation engine.

    Args:
        level: Logging level, either a logging constant or a name like "DEBUG"
        log_file: Optional path to a rotating log file
        log_format: Optional custom console format string
        sql_echo: Route SQLAlchemy statement logging through our handlers

    Returns:
        The package root logger
    """
    level = _resolve_level(level)

    logger = logging.getLogger("readymix_recon")
    logger.setLevel(level)

    # Avoid duplicate handlers when called more than once (CLI + tests)
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    sql_logger = logging.getLogger("sqlalchemy.engine")
    if sql_echo:
        sql_logger.setLevel(logging.INFO)
        sql_logger.handlers = list(logger.handlers)
    else:
        sql_logger.setLevel(logging.WARNING)

    return logger
