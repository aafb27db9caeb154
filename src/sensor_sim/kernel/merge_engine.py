from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field

from sensor_sim.domain.records import Record, SourceStatus, format_record_line
from sensor_sim.observability.logging import RunLogger
from sensor_sim.ports.output_sink import OutputSink


class MergeEngineError(RuntimeError):
    # Raised when a handler is invoked in a state the event contract forbids.
    pass


class SourceOrderError(MergeEngineError):
    # A source delivered a record older than one it already delivered.
    def __init__(self, index: int, previous: int, timestamp: int) -> None:
        super().__init__(
            f"Source {index} went back in time: {timestamp} after {previous}"
        )
        self.index = index
        self.previous = previous
        self.timestamp = timestamp


class SourceFailedError(MergeEngineError):
    # Adapter failure; fatal for the whole run.
    def __init__(self, index: int, cause: BaseException) -> None:
        super().__init__(f"Source {index} failed: {cause}")
        self.index = index
        self.cause = cause


@dataclass(slots=True)
class SourceState:
    # Per-source buffer of records not yet written to the sink.
    index: int
    buffer: deque[Record] = field(default_factory=deque)
    status: SourceStatus = SourceStatus.ACTIVE
    last_timestamp: int | None = None
    received: int = 0
    emitted: int = 0
    warned: bool = False

    @property
    def active(self) -> bool:
        return self.status is SourceStatus.ACTIVE


class MergeEngine:
    """Reactive k-way merge of per-source record streams into one ordered sink.

    The engine performs work only inside ``on_batch``, ``on_end`` and ``on_error``.
    Callers must serialize those calls; the engine itself holds no locks.

    A record is written only when it is the smallest ``(timestamp, index)`` among
    all buffered fronts and no ACTIVE source has an empty buffer, because such a
    source may still deliver something earlier.
    """

    def __init__(
        self,
        sink: OutputSink,
        source_count: int,
        *,
        log: RunLogger | None = None,
        buffer_warn_threshold: int | None = None,
    ) -> None:
        if source_count <= 0:
            raise ValueError("source_count must be > 0")
        if buffer_warn_threshold is not None and buffer_warn_threshold <= 0:
            raise ValueError("buffer_warn_threshold must be > 0")
        self._sink = sink
        self._log = log
        self._warn_threshold = buffer_warn_threshold
        self._states = [SourceState(index=i) for i in range(source_count)]
        # Active sources whose buffer is empty; emission is blocked while non-empty.
        self._starved: set[int] = set(range(source_count))
        self._emitted = 0
        self._finished = False
        self._failed = False

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def emitted(self) -> int:
        return self._emitted

    @property
    def states(self) -> tuple[SourceState, ...]:
        return tuple(self._states)

    def on_batch(self, index: int, records: Sequence[Record]) -> None:
        state = self._active_state(index)
        last = state.last_timestamp
        for record in records:
            if last is not None and record.timestamp < last:
                self._failed = True
                raise SourceOrderError(index, last, record.timestamp)
            last = record.timestamp
        if records:
            state.buffer.extend(records)
            state.last_timestamp = last
            state.received += len(records)
            self._starved.discard(index)
            self._check_buffer_size(state)
        self._flush()

    def on_end(self, index: int) -> None:
        state = self._active_state(index)
        state.status = SourceStatus.EXHAUSTED
        self._starved.discard(index)
        if self._log is not None:
            self._log.info(
                "source ended",
                source=index,
                received=state.received,
                pending=len(state.buffer),
            )
        self._flush()

    def on_error(self, index: int, err: BaseException) -> None:
        # No partial completion: ordering cannot be honoured with a source missing.
        self._failed = True
        if self._log is not None:
            self._log.error("source failed", source=index, error=str(err))
        raise SourceFailedError(index, err) from err

    def _active_state(self, index: int) -> SourceState:
        if self._finished:
            raise MergeEngineError("Merge already finished")
        if self._failed:
            raise MergeEngineError("Merge aborted after a failure")
        if index < 0 or index >= len(self._states):
            raise MergeEngineError(f"Unknown source index: {index}")
        state = self._states[index]
        if not state.active:
            raise MergeEngineError(f"Source {index} already ended")
        return state

    def _flush(self) -> None:
        written = 0
        while not self._starved:
            chosen: SourceState | None = None
            for state in self._states:
                if not state.buffer:
                    continue
                # Strict comparison keeps the lowest index on timestamp ties.
                if chosen is None or state.buffer[0].timestamp < chosen.buffer[0].timestamp:
                    chosen = state
            if chosen is None:
                # Nothing buffered and nobody starved: every source is exhausted.
                self._finish(written)
                return
            record = chosen.buffer.popleft()
            self._sink.write_line(format_record_line(chosen.index, record))
            chosen.emitted += 1
            written += 1
            if not chosen.buffer and chosen.active:
                self._starved.add(chosen.index)
        if written:
            self._emitted += written
            self._sink.flush()

    def _finish(self, written: int) -> None:
        self._emitted += written
        self._finished = True
        if written:
            self._sink.flush()
        self._sink.close()
        if self._log is not None:
            self._log.info("merge complete", emitted=self._emitted)

    def _check_buffer_size(self, state: SourceState) -> None:
        if self._warn_threshold is None or state.warned:
            return
        if len(state.buffer) > self._warn_threshold:
            state.warned = True
            if self._log is not None:
                self._log.warning(
                    "source buffer above threshold",
                    source=state.index,
                    buffered=len(state.buffer),
                    threshold=self._warn_threshold,
                )
