"""
FuelStack Logging System
========================

A unified, thread-safe logging utility for the keeper and solver processes.
It integrates the standard Python `logging` library with `rich` so that order
lifecycle lines (tags, order ids, statuses, hashes) stand out on the console,
while a rotating file keeps a plain copy for reconstructing order histories.

Usage:
    >>> from fuelstack.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("[ledger] Order 421614:7 OPENED")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "fuelstack.log"

NOISY_LIBRARIES = ("httpx", "httpcore", "web3", "urllib3", "aiosqlite", "asyncio")


class LogManager:
    """
    Manages logging configuration via the Singleton pattern.

    The keeper and the solver each call `get_logger` from many modules; this
    class makes sure handlers are attached to the root logger exactly once.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._configured = False
        self._initialized = True

    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """
        Checks that a logging format string can format a record.

        Returns the format unchanged, or the default `LOG_FORMAT` if it is
        malformed.
        """
        if not log_format:
            return str(LOG_FORMAT.default())
        try:
            formatter = logging.Formatter(fmt=str(log_format))
            record = logging.LogRecord(
                name="check", level=logging.INFO, pathname="", lineno=0,
                msg="check", args=(), exc_info=None,
            )
            formatter.format(record)
            return str(log_format)
        except (ValueError, KeyError, TypeError) as e:
            print(
                f"{time.strftime('%Y-%m-%d %H:%M:%S')} - fuelstack.logger - "
                f"Invalid LOG_FORMAT ({e}). Using default.",
                file=sys.stderr,
            )
            return str(LOG_FORMAT.default())

    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """Accepts a strftime format containing at least one directive."""
        if not date_format or not re.search(r"%[A-Za-z]", str(date_format)):
            return str(LOG_DATE_FORMAT.default())
        return str(date_format)

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Configures the root logger with console and file handlers.

        Args:
            log_level: Logging level name. Defaults to `LOG_LEVEL` from `.env`.
            log_file: Path of the rotating log file. Defaults to `logs/fuelstack.log`.
            console_output: Attach the console handler.
            file_output: Attach the rotating file handler. Defaults to `LOG_FILE_OUTPUT`.
        """
        with self._lock:
            if self._configured:
                return

            level_str = log_level or str(LOG_LEVEL)
            numeric_level = getattr(logging, level_str.upper(), logging.INFO)

            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)

            for lib in NOISY_LIBRARIES:
                logging.getLogger(lib).setLevel(logging.WARNING)

            root_logger.handlers.clear()

            log_format = self.validate_log_format(LOG_FORMAT)
            date_format = self.validate_date_format(LOG_DATE_FORMAT)

            # UTC timestamps so keeper and solver logs line up across hosts
            formatter = TerminalSafeFormatter(fmt=log_format, datefmt=date_format + " UTC")
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    theme = Theme(
                        {
                            "fuelstack.tag":            "bold magenta",
                            "fuelstack.order_key":      "bold cyan",
                            "fuelstack.status_opened":  "bold yellow",
                            "fuelstack.status_filled":  "bold blue",
                            "fuelstack.status_settled": "bold green",
                            "fuelstack.status_bad":     "bold red",
                            "fuelstack.hash":           "dim cyan",
                            "fuelstack.principal":      "cyan",
                            "fuelstack.level_error":    "bold red",
                            "fuelstack.level_warning":  "bold yellow",
                            "fuelstack.level_info":     "bold green",
                            "fuelstack.level_debug":    "bold dim",
                            "fuelstack.logger_name":    "magenta",
                            "fuelstack.timestamp":      "bold cyan",
                            "fuelstack.url":            "cyan",
                        }
                    )
                    console = Console(theme=theme, highlight=False)
                    rich_handler = RichHandler(
                        console=console,
                        highlighter=OrderLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                    rich_handler.setLevel(numeric_level)
                    rich_handler.setFormatter(formatter)
                    root_logger.addHandler(rich_handler)
                else:
                    console_handler = logging.StreamHandler(sys.stdout)
                    console_handler.setLevel(numeric_level)
                    console_handler.setFormatter(formatter)
                    root_logger.addHandler(console_handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)

            if file_output:
                log_file_path = log_file or LOG_FILE_PATH
                log_file_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(log_file_path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(numeric_level)
                file_handler.setFormatter(formatter)
                root_logger.addHandler(file_handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        """Returns a standard logger for `name`, configuring logging on first use."""
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    Strips ANSI escape sequences and control characters from formatted records.

    Event payloads (Clarity repr strings, recipient principals) come from
    untrusted chains and end up verbatim in log lines.
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Control chars excluding Tab and Newline
    _control_chars_re = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
    _carriage_return_re = re.compile(r"\r")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = cls._carriage_return_re.sub("", text)
        text = cls._control_chars_re.sub("", text)
        return text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class OrderLogHighlighter(RegexHighlighter):
    """Rich highlighter for order lifecycle log lines."""

    base_style = "fuelstack."
    highlights = [
        r"(?P<tag>^\[[a-z\-]+\]|\s\[[a-z\-]+\])",
        r"(?P<order_key>\b\d+:\d+\b)",
        r"(?P<status_opened>\bOPENED\b)",
        r"(?P<status_filled>\bFILLED\b)",
        r"(?P<status_settled>\bSETTLED\b)",
        r"(?P<status_bad>\b(REFUNDED|REJECTED|[A-Z_]+_MISMATCH|DEADLINE_EXCEEDED|ORDER_NOT_FOUND|WRONG_STATUS)\b)",
        r"(?P<hash>\b0x[0-9a-fA-F]{64}\b)",
        r"(?P<principal>\bS[PTMN][0-9A-HJKMNP-TV-Z]{28,41}(\.[a-zA-Z][\w\-]*)?\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<url>https?://\S+)",
    ]


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system.

    Args:
        name: The name of the module requesting the logger.

    Returns:
        The configured logger instance.
    """
    return _manager.get_logger(name)


def configure_logging(**kwargs) -> None:
    """Explicit configuration hook for the CLI entry points."""
    _manager.configure(**kwargs)
