"""Console and rotating-file logging shared by the daemon, the API and the CLI."""
from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Mapping

from rich.logging import RichHandler

from taskbridge.core.config import AppConfig

_LEVELS: Mapping[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

# Chatty third-party loggers, capped at WARNING unless running at DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default")


def parse_level(value: str | int) -> int:
    """Turn a level name (any case) or number into a logging level number.

    Raises:
        ValueError: If the name is not a known level
    """
    if isinstance(value, int):
        return value
    name = str(value).upper()
    if name not in _LEVELS:
        raise ValueError(f"Unsupported log level: {value}")
    return _LEVELS[name]


class LoggerLevelFilter(logging.Filter):
    """Per-logger minimum levels taken from ``general.log_overrides``.

    Keys are logger name prefixes, e.g. ``{"taskbridge.core.sweeper": "WARNING"}``.
    """

    def __init__(self, overrides: Mapping[str, str]):
        super().__init__()
        self.overrides = sorted(
            ((prefix, parse_level(level)) for prefix, level in overrides.items()),
            key=lambda item: len(item[0]),
            reverse=True,
        )

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, levelno in self.overrides:
            if record.name == prefix or record.name.startswith(prefix + "."):
                return record.levelno >= levelno
        return True


def build_console_handler(levelno: int) -> logging.Handler:
    handler = RichHandler(rich_tracebacks=True, show_time=False)
    handler.setLevel(levelno)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def build_file_handler(config: AppConfig) -> logging.Handler:
    log_dir = config.general.data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_dir / config.general.log_file_name,
        maxBytes=config.general.log_file_max_bytes,
        backupCount=config.general.log_file_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    return handler


def setup_logging(config: AppConfig, *, level_name: str | None = None) -> Path:
    """Install the console and rotating file handlers on the root logger.

    Args:
        config: Application configuration
        level_name: Console level; overrides ``general.log_level`` when given

    Returns:
        Path to the log file
    """
    levelno = parse_level(level_name or config.general.log_level)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG)

    overrides = LoggerLevelFilter(config.general.log_overrides)
    for handler in (build_console_handler(levelno), build_file_handler(config)):
        handler.addFilter(overrides)
        root.addHandler(handler)

    logging.captureWarnings(True)

    # uvicorn installs its own handlers; route everything through ours
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).handlers.clear()
        logging.getLogger(logger_name).propagate = True

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(levelno, logging.WARNING))

    return config.general.data_dir / "logs" / config.general.log_file_name
