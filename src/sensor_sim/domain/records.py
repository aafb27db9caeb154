from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SourceStatus(str, Enum):
    # Lifecycle of a configured source inside the merge engine.
    ACTIVE = "ACTIVE"
    EXHAUSTED = "EXHAUSTED"


@dataclass(frozen=True, slots=True)
class Record:
    # One timestamped sample; timestamp is nanoseconds, payload is opaque text.
    timestamp: int
    payload: str


def format_record_line(index: int, record: Record) -> str:
    # Wire shape consumed by downstream prototypes: "<source>, <timestamp>, <payload>".
    return f"{index}, {record.timestamp}, {record.payload}"


def sample_period_ns(sample_rate: float) -> int:
    # Nanoseconds between samples, rounded half up.
    if sample_rate <= 0:
        raise ValueError("sample_rate must be > 0")
    return int(1_000_000_000 / sample_rate + 0.5)
