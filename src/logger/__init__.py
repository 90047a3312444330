"""Logger module for persistent config."""

from src.logger.logger import Logger, get_logger, init_logger
from src.logger.types import Category, Field, Level, LogEntry
from src.logger.writer import MemoryWriter, StreamWriter

__all__ = [
    "Logger",
    "get_logger",
    "init_logger",
    "StreamWriter",
    "MemoryWriter",
    "Category",
    "Level",
    "LogEntry",
    "Field",
]
