"""
Logging for TuneBridge

TuneBridge is a library, so importing it never touches logging configuration.
All loggers live under the "tunebridge" package logger; the host application
either configures that logger itself or calls setup_logging() /
configure_from_settings() to get the library's two-channel setup:

- **Console**: only what a listener should see. Warnings and errors, plus
  info records sent through the console_* helpers ("Now playing ...").
- **File**: everything down to DEBUG (cache hits, strategy fallbacks, state
  transitions), rotated by size.

Usage:

    logger = get_logger(__name__)
    logger.debug("Cache miss for search/songs")
    logger.console_info("Now playing: Believer - Imagine Dragons")
"""

import functools
import inspect
import logging
import logging.handlers
import re
import sys
import time
from pathlib import Path
from typing import Dict, Optional

import colorama
from colorama import Back, Fore, Style

from ..config.settings import get_settings


colorama.init()

PACKAGE_LOGGER = 'tunebridge'

# Transport libraries log every connection at DEBUG
NOISY_LOGGERS = ['aiohttp', 'aiohttp.client', 'aiohttp.internal', 'asyncio']

CONSOLE_FORMAT = '%(levelname)s %(message)s'
FILE_FORMAT = '%(asctime)s | %(name)-32s | %(levelname)-8s | %(message)s'

SIZE_UNITS = {'B': 1, 'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}

_SIZE_PATTERN = re.compile(r'^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)$')


class ConsoleMessageFilter(logging.Filter):
    """Let through warnings and above, and records flagged with console_output"""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return bool(getattr(record, 'console_output', False))


class ColoredFormatter(logging.Formatter):
    """
    Console formatter that colors the level name

    The record is copied before coloring so other handlers attached to the
    same logger keep the plain level name.
    """

    LEVEL_COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Back.WHITE + Style.BRIGHT,
    }

    def __init__(self, fmt: str = CONSOLE_FORMAT, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname) if self.use_colors else None
        if color is None:
            return super().format(record)

        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        return super().format(colored)


class ConsoleLogger(logging.LoggerAdapter):
    """
    Module logger with helpers for listener-facing messages

    console_info marks an INFO record for the console channel; warnings and
    errors reach the console anyway, the helpers exist so call sites read
    the same way for every level.
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        return msg, kwargs

    def console_info(self, message: str) -> None:
        self.logger.info(message, extra={'console_output': True}, stacklevel=2)

    def console_warning(self, message: str) -> None:
        self.logger.warning(message, stacklevel=2)

    def console_error(self, message: str) -> None:
        self.logger.error(message, stacklevel=2)


_loggers: Dict[str, ConsoleLogger] = {}


def get_logger(name: str) -> ConsoleLogger:
    """
    Get the logger for a module

    Args:
        name: Logger name, normally __name__

    Returns:
        ConsoleLogger wrapping logging.getLogger(name)
    """
    logger = _loggers.get(name)
    if logger is None:
        logger = _loggers[name] = ConsoleLogger(logging.getLogger(name))
    return logger


def parse_size(size_str: str) -> int:
    """
    Convert a size such as "10MB" or "512 KB" to bytes

    Raises:
        ValueError: If the string has no recognised unit
    """
    match = _SIZE_PATTERN.match(size_str.strip().upper())
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    number, unit = match.groups()
    return int(float(number) * SIZE_UNITS[unit])


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    colored_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 3
) -> logging.Logger:
    """
    Attach console and file handlers to the package logger

    Calling it again replaces the handlers installed by the previous call.
    The root logger is never modified.

    Args:
        level: Level of the package logger (DEBUG, INFO, ...)
        log_file: Rotating log file, None to disable file logging
        console_output: Install the console handler
        colored_output: Color level names on the console
        max_size: Rotation threshold, e.g. "10MB"
        backup_count: Rotated files to keep

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.addFilter(ConsoleMessageFilter())
        console_handler.setFormatter(ColoredFormatter(use_colors=colored_output))
        package_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=parse_size(max_size),
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        package_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    package_logger.debug(f"Logging configured: level={level} console={console_output} file={log_file}")
    return package_logger


def configure_from_settings(settings=None) -> logging.Logger:
    """
    Configure logging from the logging section of Settings

    A relative log file name is placed in the config directory.

    Args:
        settings: Settings instance, the global settings when omitted
    """
    settings = settings or get_settings()
    log_settings = settings.logging

    log_file = None
    if log_settings.file:
        log_file = Path(log_settings.file).expanduser()
        if not log_file.is_absolute():
            log_file = settings.get_config_directory() / log_file

    return setup_logging(
        level=log_settings.level,
        log_file=str(log_file) if log_file else None,
        console_output=log_settings.console_output,
        colored_output=log_settings.colored_output,
        max_size=log_settings.max_size,
        backup_count=log_settings.backup_count
    )


def log_performance(func):
    """Log the duration of a function or coroutine at DEBUG level"""
    logger = get_logger(func.__module__)

    def report(started: float, error: Optional[Exception] = None) -> None:
        elapsed = time.monotonic() - started
        if error is None:
            logger.debug(f"{func.__qualname__} took {elapsed:.3f}s")
        else:
            logger.debug(f"{func.__qualname__} failed after {elapsed:.3f}s: {error}")

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            started = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                report(started, e)
                raise
            report(started)
            return result

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            report(started, e)
            raise
        report(started)
        return result

    return wrapper
