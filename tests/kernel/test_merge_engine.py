from __future__ import annotations

import random

import pytest

from sensor_sim.domain.records import Record, SourceStatus
from sensor_sim.kernel.merge_engine import (
    MergeEngine,
    MergeEngineError,
    SourceFailedError,
    SourceOrderError,
)
from sensor_sim.observability.logging import RunLogger


def _r(timestamp: int, payload: str) -> Record:
    return Record(timestamp=timestamp, payload=payload)


def test_two_sources_interleave_by_timestamp(sink) -> None:
    # A delivers 0 and 20, B delivers 10; output is globally ordered, then the sink closes.
    engine = MergeEngine(sink, 2)
    engine.on_batch(0, [_r(0, "x"), _r(20, "y")])
    engine.on_end(0)
    engine.on_batch(1, [_r(10, "z")])
    engine.on_end(1)
    assert sink.lines == ["0, 0, x", "1, 10, z", "0, 20, y"]
    assert sink.close_calls == 1
    assert engine.finished
    assert engine.emitted == 3


def test_silent_source_blocks_emission(sink) -> None:
    # B has neither delivered nor ended, so A's record must wait.
    engine = MergeEngine(sink, 2)
    engine.on_batch(0, [_r(0, "a")])
    assert sink.lines == []
    assert not engine.finished


def test_empty_source_does_not_block_others(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_end(0)
    engine.on_batch(1, [_r(5, "b")])
    engine.on_end(1)
    assert sink.lines == ["1, 5, b"]
    assert sink.close_calls == 1


def test_no_emission_while_any_active_source_is_starved(sink) -> None:
    engine = MergeEngine(sink, 3)
    engine.on_batch(0, [_r(i, f"a{i}") for i in range(100)])
    engine.on_batch(1, [_r(i, f"b{i}") for i in range(100)])
    assert sink.lines == []
    engine.on_batch(2, [_r(50, "c")])
    # A and B fronts at 50 precede C by index; C then drains and blocks A51/B51.
    assert sink.lines[-3:] == ["0, 50, a50", "1, 50, b50", "2, 50, c"]
    assert len(sink.lines) == 103


def test_emission_stops_when_a_buffer_drains(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_batch(0, [_r(1, "a1")])
    engine.on_batch(1, [_r(2, "b2"), _r(3, "b3")])
    # A drained after its single record; B must wait for more A data.
    assert sink.lines == ["0, 1, a1"]
    engine.on_batch(0, [_r(4, "a4")])
    assert sink.lines == ["0, 1, a1", "1, 2, b2", "1, 3, b3"]


def test_end_releases_buffered_backlog(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_batch(0, [_r(10, "a")])
    engine.on_batch(1, [_r(1, "b1")])
    assert sink.lines == ["1, 1, b1"]
    engine.on_end(1)
    assert sink.lines == ["1, 1, b1", "0, 10, a"]
    assert not engine.finished
    engine.on_end(0)
    assert engine.finished


def test_exhausted_source_trailing_records_stay_candidates(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_batch(0, [_r(5, "a5"), _r(30, "a30")])
    engine.on_end(0)
    engine.on_batch(1, [_r(10, "b10")])
    engine.on_batch(1, [_r(40, "b40")])
    engine.on_end(1)
    assert sink.lines == ["0, 5, a5", "1, 10, b10", "0, 30, a30", "1, 40, b40"]


def test_equal_timestamps_break_ties_by_source_index(sink) -> None:
    engine = MergeEngine(sink, 3)
    engine.on_batch(2, [_r(7, "c")])
    engine.on_batch(1, [_r(7, "b")])
    engine.on_batch(0, [_r(7, "a")])
    for index in (2, 0, 1):
        engine.on_end(index)
    assert sink.lines == ["0, 7, a", "1, 7, b", "2, 7, c"]


def test_sink_closed_exactly_once_and_later_calls_rejected(sink) -> None:
    engine = MergeEngine(sink, 1)
    engine.on_batch(0, [_r(1, "x")])
    engine.on_end(0)
    assert sink.close_calls == 1
    with pytest.raises(MergeEngineError):
        engine.on_batch(0, [_r(2, "y")])
    with pytest.raises(MergeEngineError):
        engine.on_end(0)
    assert sink.lines == ["0, 1, x"]
    assert sink.close_calls == 1


def test_all_sources_empty_closes_without_writes(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_end(1)
    assert sink.close_calls == 0
    engine.on_end(0)
    assert sink.lines == []
    assert sink.close_calls == 1


def test_double_end_is_rejected(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_end(0)
    with pytest.raises(MergeEngineError):
        engine.on_end(0)


def test_unknown_source_index_is_rejected(sink) -> None:
    engine = MergeEngine(sink, 1)
    with pytest.raises(MergeEngineError):
        engine.on_batch(3, [_r(1, "x")])


def test_out_of_order_record_is_rejected(sink) -> None:
    # Monotonicity violations are treated as fatal adapter defects.
    engine = MergeEngine(sink, 1)
    engine.on_batch(0, [_r(10, "a")])
    with pytest.raises(SourceOrderError) as info:
        engine.on_batch(0, [_r(9, "b")])
    assert info.value.previous == 10
    assert info.value.timestamp == 9
    assert engine.failed


def test_out_of_order_within_a_batch_is_rejected(sink) -> None:
    engine = MergeEngine(sink, 2)
    with pytest.raises(SourceOrderError):
        engine.on_batch(1, [_r(3, "a"), _r(2, "b")])
    assert sink.lines == []


def test_error_is_fatal_and_stops_the_engine(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_batch(0, [_r(1, "a")])
    cause = OSError("disk gone")
    with pytest.raises(SourceFailedError) as info:
        engine.on_error(1, cause)
    assert info.value.index == 1
    assert info.value.__cause__ is cause
    assert sink.close_calls == 0
    with pytest.raises(MergeEngineError):
        engine.on_batch(0, [_r(2, "b")])


def test_sink_failure_propagates(sink) -> None:
    class _BrokenSink:
        def write_line(self, line: str) -> None:
            raise BrokenPipeError("peer gone")

        def flush(self) -> None:
            return None

        def close(self) -> None:
            return None

    engine = MergeEngine(_BrokenSink(), 1)
    with pytest.raises(BrokenPipeError):
        engine.on_batch(0, [_r(1, "a")])


def test_empty_batch_only_reruns_flush(sink) -> None:
    engine = MergeEngine(sink, 2)
    engine.on_batch(0, [])
    engine.on_batch(1, [_r(1, "b")])
    assert sink.lines == []
    assert engine.states[0].status is SourceStatus.ACTIVE
    assert engine.states[0].received == 0
    engine.on_batch(0, [_r(0, "a")])
    engine.on_end(0)
    engine.on_batch(1, [])
    assert sink.lines == ["0, 0, a", "1, 1, b"]
    assert sink.close_calls == 0


def test_flush_called_after_each_productive_pass(sink) -> None:
    engine = MergeEngine(sink, 1)
    engine.on_batch(0, [_r(1, "a"), _r(2, "b")])
    assert sink.flushes == 1
    engine.on_batch(0, [_r(3, "c")])
    assert sink.flushes == 2


def test_buffer_threshold_warns_once_per_source(sink, log_sink) -> None:
    engine = MergeEngine(sink, 2, log=RunLogger(log_sink), buffer_warn_threshold=3)
    engine.on_batch(0, [_r(i, "a") for i in range(5)])
    engine.on_batch(0, [_r(10 + i, "a") for i in range(5)])
    warnings = log_sink.named("source buffer above threshold")
    assert len(warnings) == 1
    assert warnings[0].fields["source"] == 0
    assert warnings[0].level == "warning"


def test_source_end_is_logged_with_counts(sink, log_sink) -> None:
    engine = MergeEngine(sink, 1, log=RunLogger(log_sink))
    engine.on_batch(0, [_r(1, "a"), _r(2, "b")])
    engine.on_end(0)
    ended = log_sink.named("source ended")
    assert ended[0].fields == {"source": 0, "received": 2, "pending": 0}
    assert log_sink.named("merge complete")[0].fields == {"emitted": 2}


def test_constructor_rejects_invalid_arguments(sink) -> None:
    with pytest.raises(ValueError):
        MergeEngine(sink, 0)
    with pytest.raises(ValueError):
        MergeEngine(sink, 1, buffer_warn_threshold=0)


@pytest.mark.parametrize("seed", range(20))
def test_any_interleaving_produces_the_stable_global_order(sink, seed: int) -> None:
    rng = random.Random(seed)
    source_count = rng.randint(1, 5)
    streams: list[list[Record]] = []
    for index in range(source_count):
        timestamps = sorted(rng.randint(0, 50) for _ in range(rng.randint(0, 30)))
        streams.append([_r(ts, f"s{index}-{pos}") for pos, ts in enumerate(timestamps)])

    # Split every stream into random batches and finish with an end marker.
    pending: list[list[tuple[str, list[Record]]]] = []
    for stream in streams:
        events: list[tuple[str, list[Record]]] = []
        pos = 0
        while pos < len(stream):
            size = rng.randint(1, 7)
            events.append(("batch", stream[pos : pos + size]))
            pos += size
        events.append(("end", []))
        pending.append(events)

    engine = MergeEngine(sink, source_count)
    while any(pending):
        index = rng.choice([i for i, events in enumerate(pending) if events])
        kind, records = pending[index].pop(0)
        if kind == "batch":
            engine.on_batch(index, records)
        else:
            engine.on_end(index)

    expected = sorted(
        ((record.timestamp, index, pos, record.payload)
         for index, stream in enumerate(streams)
         for pos, record in enumerate(stream)),
    )
    assert sink.lines == [f"{index}, {ts}, {payload}" for ts, index, _, payload in expected]
    assert sink.close_calls == 1
