from __future__ import annotations

import queue
import threading
from collections.abc import Sequence
from dataclasses import dataclass

from sensor_sim.domain.records import Record
from sensor_sim.kernel.merge_engine import MergeEngine
from sensor_sim.observability.logging import RunLogger
from sensor_sim.ports.output_sink import SinkError
from sensor_sim.ports.source_adapter import SourceAdapter


@dataclass(frozen=True, slots=True)
class BatchEvent:
    index: int
    records: list[Record]


@dataclass(frozen=True, slots=True)
class EndEvent:
    index: int


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    index: int
    error: BaseException


@dataclass(frozen=True, slots=True)
class SinkClosedEvent:
    # Posted by the socket watcher when the consumer disconnects.
    reason: str


Event = BatchEvent | EndEvent | ErrorEvent | SinkClosedEvent


class EventQueue:
    # Single inbound queue; producers are pump/watcher threads, the consumer is the dispatcher.
    def __init__(self) -> None:
        self._queue: queue.Queue[Event] = queue.Queue()

    def post(self, event: Event) -> None:
        self._queue.put(event)

    def take(self, timeout: float | None = None) -> Event:
        return self._queue.get(timeout=timeout)

    def size(self) -> int:
        return self._queue.qsize()


class SourcePump:
    # Drives one adapter on its own thread and forwards its batches as events.
    def __init__(self, index: int, adapter: SourceAdapter, events: EventQueue) -> None:
        self.index = index
        self._adapter = adapter
        self._events = events
        self._thread = threading.Thread(
            target=self._run,
            name=f"source-{index}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        try:
            for batch in self._adapter.batches():
                if batch:
                    self._events.post(BatchEvent(self.index, list(batch)))
        except Exception as exc:
            # Handed to the dispatcher thread, which raises it as a fatal run error.
            self._events.post(ErrorEvent(self.index, exc))
            return
        self._events.post(EndEvent(self.index))


class EventDispatcher:
    """Runs every source pump and serializes their events into the merge engine.

    Only the thread calling :meth:`run` touches engine state. The run returns once
    the engine has closed the sink, and raises on the first fatal event.
    """

    def __init__(
        self,
        engine: MergeEngine,
        adapters: Sequence[SourceAdapter],
        *,
        events: EventQueue | None = None,
        log: RunLogger | None = None,
    ) -> None:
        self._engine = engine
        self._events = events if events is not None else EventQueue()
        self._pumps = [SourcePump(i, adapter, self._events) for i, adapter in enumerate(adapters)]
        self._log = log

    @property
    def events(self) -> EventQueue:
        return self._events

    def run(self) -> int:
        for pump in self._pumps:
            if self._log is not None:
                self._log.debug("source started", source=pump.index)
            pump.start()
        while not self._engine.finished:
            self._dispatch(self._events.take())
        return self._engine.emitted

    def _dispatch(self, event: Event) -> None:
        if isinstance(event, BatchEvent):
            self._engine.on_batch(event.index, event.records)
        elif isinstance(event, EndEvent):
            self._engine.on_end(event.index)
        elif isinstance(event, ErrorEvent):
            self._engine.on_error(event.index, event.error)
        elif isinstance(event, SinkClosedEvent):
            raise SinkError(f"Other end closed socket: {event.reason}")
        else:
            raise TypeError(f"Unsupported event: {event!r}")
