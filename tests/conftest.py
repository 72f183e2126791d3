"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before anything imports the settings module.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("APP_AUTH_REQUIRED", "true")

import logging

import pytest

from crudgate.core.logging import MemoryLogHandler


class FakeClock:
    """Deterministic millisecond clock for limiter tests."""

    def __init__(self, start: int = 0) -> None:
        self.current = start

    def __call__(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start=1_000_000)


@pytest.fixture
def memory_log():
    """A logger wired to an in-memory handler, for asserting on log events."""
    log = logging.getLogger("crudgate.tests")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    handler = MemoryLogHandler()
    log.addHandler(handler)
    try:
        yield log, handler
    finally:
        log.removeHandler(handler)
