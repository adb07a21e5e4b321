# pyright: reportUnusedImport=false
# flake8: noqa

# the package logger owns the console handler of the module loggers
from .logging import LoggerBase, ConsoleLogger

logger: LoggerBase = ConsoleLogger("g0")
