from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from sensor_sim.observability.logging import LogMessage


class RecordingSink:
    # In-memory OutputSink that also enforces the "no write after close" rule.
    def __init__(self) -> None:
        self.lines: list[str] = []
        self.flushes = 0
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def write_line(self, line: str) -> None:
        if self.close_calls:
            raise AssertionError(f"write after close: {line!r}")
        self.lines.append(line)

    def flush(self) -> None:
        self.flushes += 1

    def close(self) -> None:
        self.close_calls += 1


class CollectingLogSink:
    def __init__(self) -> None:
        self.messages: list[LogMessage] = []

    def emit(self, message: LogMessage) -> None:
        self.messages.append(message)

    def close(self) -> None:
        return None

    def named(self, text: str) -> list[LogMessage]:
        return [message for message in self.messages if message.message == text]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def log_sink() -> CollectingLogSink:
    return CollectingLogSink()


@pytest.fixture
def short_tmp() -> Iterator[Path]:
    # Unix socket paths are length-limited, so keep the directory short.
    path = Path(tempfile.mkdtemp(prefix="ss", dir="/tmp"))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
