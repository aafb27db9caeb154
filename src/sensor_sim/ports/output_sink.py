from __future__ import annotations

from typing import Protocol, runtime_checkable


class SinkError(OSError):
    # Raised when the downstream consumer can no longer accept output.
    pass


# OutputSink port defines how merged lines leave the process.
@runtime_checkable
class OutputSink(Protocol):
    def write_line(self, line: str) -> None:
        """Write a single output line (newline is appended by the sink)."""
        # Port contract has no implementation; calling it directly is a wiring error.
        raise NotImplementedError("OutputSink is a port; use a concrete adapter.")

    def flush(self) -> None:
        """Push buffered output to the consumer."""
        raise NotImplementedError("OutputSink is a port; use a concrete adapter.")

    def close(self) -> None:
        """Finalize and release resources held by the sink."""
        raise NotImplementedError("OutputSink is a port; use a concrete adapter.")
