"""
Shared fixtures for unit tests.
"""

from io import StringIO
from typing import List

import pytest

from storywriter.utils.logging import LogLevel, StructuredLogger


class Streams:
    """StringIO sinks for the three logger output streams."""

    def __init__(self):
        self.info = StringIO()
        self.warn = StringIO()
        self.error = StringIO()


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def streams() -> Streams:
    return Streams()


@pytest.fixture
def sink_events() -> list:
    return []


@pytest.fixture
def logger(streams: Streams, sink_events: list) -> StructuredLogger:
    """Logger writing to in-memory streams, at DEBUG in a development env."""
    return StructuredLogger(
        min_level=LogLevel.DEBUG,
        app_env="development",
        info_stream=streams.info,
        warn_stream=streams.warn,
        error_stream=streams.error,
        external_sink=sink_events.append,
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
