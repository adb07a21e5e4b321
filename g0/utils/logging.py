"""
Logging of the g0 assistant.

The components of the package do not call the logging module
directly. The agent loop, the tool dispatcher and the tools receive a
`LoggerBase` object as an argument, defaulting to a module logger
obtained from `get_logger`. An application embedding the assistant
may pass a `LoglistLogger` instead, to collect the diagnostics of a
run and show them in its own interface; the tests use it to check
what was logged.

Console loggers write to stderr, leaving stdout to the replies of the
assistant.

Usage:
    ```python
    from g0.utils.logging import get_logger, LoglistLogger

    logger = get_logger(__name__)
    logger.info("Tool registry assembled")

    collected = LoglistLogger()
    agent = Agent(model, registry, logger=collected)
    ...
    for line in collected.get_logs(level=1):
        print(line)
    ```
"""

import logging
import sys
from abc import ABC, abstractmethod
from typing import NamedTuple

PACKAGE_LOGGER = "g0"
LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'
DATE_FORMAT = '%H:%M:%S'

# levels selected by the filter argument of LoglistLogger.get_logs
_LOG_FILTERS = (logging.DEBUG, logging.WARNING, logging.ERROR)


class LoggerBase(ABC):
    """
    Interface of the logger objects passed to the components.
    Implementations only provide `log` and the level accessors.
    """

    @abstractmethod
    def log(self, level: int, msg: str) -> None:
        """Log a message at a level of the logging module."""

    @abstractmethod
    def set_level(self, level: int) -> None:
        pass

    @abstractmethod
    def get_level(self) -> int:
        pass

    def debug(self, msg: str) -> None:
        self.log(logging.DEBUG, msg)

    def info(self, msg: str) -> None:
        self.log(logging.INFO, msg)

    def warning(self, msg: str) -> None:
        self.log(logging.WARNING, msg)

    def error(self, msg: str) -> None:
        self.log(logging.ERROR, msg)

    def critical(self, msg: str) -> None:
        self.log(logging.CRITICAL, msg)


def _add_console_handler(log: logging.Logger) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    log.addHandler(handler)


def _in_package(name: str) -> bool:
    return name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + ".")


def _configure_package_logger() -> None:
    """The 'g0' logger owns the console handler of the package, once."""
    package = logging.getLogger(PACKAGE_LOGGER)
    if not package.handlers:
        _add_console_handler(package)
    if package.level == logging.NOTSET:
        package.setLevel(logging.INFO)


class ConsoleLogger(LoggerBase):
    """
    Delegates to a logger of the logging module.

    Args:
        name: the name of the logger, usually the module name. The
            loggers of the modules of the package propagate to the
            'g0' logger, which owns the console handler and sets the
            INFO level. Loggers outside the package get their own
            handler.
    """

    def __init__(self, name: str | None = None) -> None:
        name = name or PACKAGE_LOGGER
        self.logger = logging.getLogger(name)
        if _in_package(name):
            _configure_package_logger()
        elif not self.logger.hasHandlers():
            _add_console_handler(self.logger)
            self.logger.setLevel(logging.INFO)

    def log(self, level: int, msg: str) -> None:
        self.logger.log(level, msg, stack_info=level >= logging.CRITICAL)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    def get_level(self) -> int:
        return self.logger.getEffectiveLevel()


class LogEntry(NamedTuple):
    level: int
    message: str

    def __str__(self) -> str:
        return f"{logging.getLevelName(self.level)} - {self.message}"


class LoglistLogger(LoggerBase):
    """
    Records the logged messages in a list, to be inspected by the
    creator of the object. Messages below the level of the logger
    (INFO, unless changed) are not recorded.
    """

    def __init__(self, level: int = logging.INFO) -> None:
        self.entries: list[LogEntry] = []
        self.level = level

    def log(self, level: int, msg: str) -> None:
        if level >= self.level:
            self.entries.append(LogEntry(level, msg))

    def set_level(self, level: int) -> None:
        self.level = level

    def get_level(self) -> int:
        return self.level

    def get_logs(self, level: int = 0) -> list[str]:
        """
        The recorded messages, formatted as 'LEVEL - message'.

        Args:
            level: a filter on the messages. 0 or less returns all
                messages, 1 warnings and errors, 2 or more only errors
                (and critical messages)
        """
        selected = _LOG_FILTERS[min(max(level, 0), len(_LOG_FILTERS) - 1)]
        return [str(entry) for entry in self.entries if entry.level >= selected]

    def count_logs(self, level: int = 0) -> int:
        """The number of recorded messages passing the filter `level`
        (see `get_logs`)."""
        return len(self.get_logs(level))

    def clear_logs(self) -> None:
        self.entries.clear()


def get_logger(name: str) -> LoggerBase:
    """The console logger of a module (pass `__name__`)."""
    return ConsoleLogger(name)


def set_log_level(level: int) -> None:
    """
    Set the level of the package logger and of the module loggers
    created so far.

    Args:
        level: a level of the logging module (e.g. logging.DEBUG)
    """
    for name, obj in list(logging.Logger.manager.loggerDict.items()):
        if not isinstance(obj, logging.Logger):
            continue
        if _in_package(name):
            obj.setLevel(level)
