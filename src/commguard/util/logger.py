"""
Logging setup shared by every commguard module.

Each module asks for its own logger with :func:`get_logger`. Loggers write
INFO and above to the terminal through prompt_toolkit (colored when stderr is
a TTY) and everything down to DEBUG into one rotating log file per process
under ``logs/``.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

LOGS_DIR: Path = (Path(__file__).parents[3] / "logs").resolve()

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

LOG_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

# Chatty dependencies only reach the log when something is actually wrong
QUIET_LOGGERS = ("openai", "openai._base_client", "httpx", "httpcore", "aiosqlite", "asyncio")

_session_log_file: Path | None = None


class ColorFormatter(logging.Formatter):
    """Formatter that paints the whole line in its level's color."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = LOG_COLORS.get(record.levelname)
        if color is None:
            return line
        return f"{color}{line}{RESET_COLOR}"


class PromptToolkitHandler(logging.Handler):
    """
    Console handler printing through ``print_formatted_text``.

    Keeps log lines from tearing an active prompt when the service runs in
    an interactive terminal.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter is not None:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """True when stderr is a terminal that can render ANSI colors."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def get_log_filepath() -> Path:
    """
    Path of this process's log file.

    Chosen on first use from the start time and reused afterwards, so every
    logger of a run writes into the same file.
    """
    global _session_log_file

    if _session_log_file is None:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        started = datetime.now().strftime(DATE_FORMAT)
        _session_log_file = LOGS_DIR / f"commguard {started}.log"
    return _session_log_file


def _console_handler() -> logging.Handler:
    formatter = (
        ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        if should_use_color()
        else logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    )
    handler = PromptToolkitHandler(formatter)
    handler.setLevel(logging.INFO)
    return handler


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the console and file handlers to ``logger_name`` once.

    Calling it again for the same name returns the already configured
    logger untouched.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(_console_handler())
    logger.addHandler(_file_handler())
    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Logger for one commguard module."""
    return setup_logger(logger_name)


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    ``sys.excepthook`` that sends uncaught exceptions to the log.

    KeyboardInterrupt still goes through the default hook.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.error("Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback))


for _name in QUIET_LOGGERS:
    _quiet = logging.getLogger(_name)
    _quiet.setLevel(logging.ERROR)
    _quiet.propagate = False
    _quiet.handlers = []

sys.excepthook = handle_exception
