from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from sensor_sim.config.models import DataSourceConfig
from sensor_sim.domain.records import Record, sample_period_ns
from sensor_sim.drivers.contracts import driver

DEFAULT_CHUNK_SIZE = 64 * 1024


class DecodeError(ValueError):
    # Raised when a line cannot be turned into a record.
    pass


class LineDecoder:
    """Incremental newline-delimited decoder.

    ``feed`` accepts arbitrary text chunks and returns the records for every line
    completed so far; a partial trailing line is held until the next chunk or
    :meth:`finish`. Timestamps come from the leading comma-delimited field unless a
    sample rate is given, in which case they are synthesized from the line index.
    """

    def __init__(self, sample_rate: float | None = None) -> None:
        self._period = sample_period_ns(sample_rate) if sample_rate is not None else None
        self._pending = ""
        self._count = 0
        self._line_no = 0

    def feed(self, chunk: str) -> list[Record]:
        if self._pending:
            chunk = self._pending + chunk
        lines = chunk.split("\n")
        self._pending = lines.pop()
        return self._decode(lines)

    def finish(self) -> list[Record]:
        # A last line without a trailing newline is still a line.
        pending, self._pending = self._pending, ""
        return self._decode([pending])

    def _decode(self, lines: list[str]) -> list[Record]:
        records: list[Record] = []
        for line in lines:
            self._line_no += 1
            text = line.rstrip("\r")
            if not text.strip():
                continue
            records.append(Record(timestamp=self._timestamp(text), payload=text))
        return records

    def _timestamp(self, text: str) -> int:
        if self._period is not None:
            timestamp = self._count * self._period
            self._count += 1
            return timestamp
        field_text = text.split(",", 1)[0].strip()
        try:
            return int(field_text)
        except ValueError:
            raise DecodeError(
                f"line {self._line_no}: timestamp field {field_text!r} is not an integer"
            ) from None


@dataclass
class CsvLineSource:
    # Line-oriented file source; the file is opened lazily on iteration.
    path: Path
    sample_rate: float | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    encoding: str = "utf-8"
    _consumed: bool = field(default=False, init=False, repr=False)

    def batches(self) -> Iterator[list[Record]]:
        if self._consumed:
            raise RuntimeError(f"Source {self.path} was already read")
        self._consumed = True
        decoder = LineDecoder(self.sample_rate)
        with self.path.open("r", encoding=self.encoding) as handle:
            while True:
                chunk = handle.read(self.chunk_size)
                if not chunk:
                    break
                yield decoder.feed(chunk)
        tail = decoder.finish()
        if tail:
            yield tail


@driver(filetype="csv")
def csv_driver(source: DataSourceConfig) -> CsvLineSource:
    return CsvLineSource(
        path=Path(source.filename),
        sample_rate=source.sample_rate,
        chunk_size=source.chunk_size or DEFAULT_CHUNK_SIZE,
    )
