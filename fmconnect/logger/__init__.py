"""Logger module for fmconnect service."""

from fmconnect.logger.logger import Logger, get_logger, init_logger
from fmconnect.logger.postgres_writer import PostgresWriter
from fmconnect.logger.types import Category, Field, Level, LogEntry

__all__ = [
    "Logger",
    "get_logger",
    "init_logger",
    "PostgresWriter",
    "Category",
    "Level",
    "LogEntry",
    "Field",
]
