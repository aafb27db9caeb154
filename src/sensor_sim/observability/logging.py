from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, TextIO

LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}


@dataclass(frozen=True, slots=True)
class LogMessage:
    # Structured log payload; rendered as one JSON object per line.
    level: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    fields: dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.level or not self.message:
            raise ValueError("LogMessage requires non-empty level/message")
        if self.level not in LEVELS:
            raise ValueError(f"Unknown log level: {self.level}")


class LogSink(Protocol):
    def emit(self, message: LogMessage) -> None:
        raise NotImplementedError("LogSink is a port; use a concrete adapter.")

    def close(self) -> None:
        raise NotImplementedError("LogSink is a port; use a concrete adapter.")


class StderrLogSink:
    # Default sink; writes to the process stderr.
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def emit(self, message: LogMessage) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        stream.write(_render(message) + "\n")
        stream.flush()

    def close(self) -> None:
        return None


class JsonlLogSink:
    # File-backed structured log sink for run diagnostics.
    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file: TextIO | None = self._path.open("a", encoding="utf-8")

    def emit(self, message: LogMessage) -> None:
        if self._file is None:
            return
        self._file.write(_render(message) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is None:
            return
        self._file.close()
        self._file = None


class RunLogger:
    """Level-filtering front end over a LogSink.

    Components take an optional ``RunLogger`` and stay silent without one.
    """

    def __init__(self, sink: LogSink, *, level: str = "info") -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        self._sink = sink
        self._threshold = LEVELS[level]

    def log(self, level: str, message: str, **fields: object) -> None:
        if LEVELS[level] < self._threshold:
            return
        self._sink.emit(LogMessage(level=level, message=message, fields=fields))

    def debug(self, message: str, **fields: object) -> None:
        self.log("debug", message, **fields)

    def info(self, message: str, **fields: object) -> None:
        self.log("info", message, **fields)

    def warning(self, message: str, **fields: object) -> None:
        self.log("warning", message, **fields)

    def error(self, message: str, **fields: object) -> None:
        self.log("error", message, **fields)

    def close(self) -> None:
        self._sink.close()


def build_log_sink(kind: str, path: str | None) -> LogSink:
    if kind == "stderr":
        return StderrLogSink()
    if kind == "jsonl":
        if not path:
            raise ValueError("jsonl log sink requires a path")
        return JsonlLogSink(Path(path))
    raise ValueError(f"Unknown log sink: {kind}")


def _render(message: LogMessage) -> str:
    payload = {
        "level": message.level,
        "message": message.message,
        "timestamp": message.timestamp.isoformat().replace("+00:00", "Z"),
        "fields": message.fields,
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
