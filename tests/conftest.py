"""Pytest configuration for repository test runs."""

from __future__ import annotations

import pytest

from src.logger.logger import init_logger
from src.logger.writer import MemoryWriter


@pytest.fixture(autouse=True)
def log_writer() -> MemoryWriter:
    """Initialize the global logger with an in-memory writer for every test."""
    writer = MemoryWriter()
    init_logger(service_name="persistent-config-test", environment="test", writer=writer)
    return writer
