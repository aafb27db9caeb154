from __future__ import annotations

import socket
import threading
from pathlib import Path
from typing import BinaryIO

from sensor_sim.kernel.dispatcher import EventQueue, SinkClosedEvent
from sensor_sim.ports.output_sink import OutputSink, SinkError


class UnixSocketServer:
    """Listening Unix socket that hands out exactly one connection.

    A stale socket file at ``path`` is removed before binding. After the first
    accept the listener is closed and the file removed, so later clients are refused.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._listener: socket.socket | None = None

    def listen(self) -> None:
        self.path.unlink(missing_ok=True)
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(str(self.path))
            listener.listen(1)
        except OSError:
            listener.close()
            raise
        self._listener = listener

    def accept(self, timeout: float | None = None) -> socket.socket:
        if self._listener is None:
            raise RuntimeError("listen() must be called before accept()")
        self._listener.settimeout(timeout)
        try:
            conn, _ = self._listener.accept()
        finally:
            self.stop()
        conn.settimeout(None)
        return conn

    def stop(self) -> None:
        # Safe to call repeatedly.
        if self._listener is None:
            return
        self._listener.close()
        self._listener = None
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> UnixSocketServer:
        self.listen()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


class SocketOutputSink(OutputSink):
    # Buffered line writer over an accepted stream connection.
    def __init__(self, conn: socket.socket, *, encoding: str = "utf-8") -> None:
        self._conn = conn
        self._encoding = encoding
        self._writer: BinaryIO | None = conn.makefile("wb")
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write_line(self, line: str) -> None:
        if self._writer is None:
            raise SinkError("Sink is closed")
        try:
            self._writer.write((line + "\n").encode(self._encoding))
        except OSError as exc:
            raise SinkError(f"Write failed: {exc}") from exc

    def flush(self) -> None:
        if self._writer is None:
            return
        try:
            self._writer.flush()
        except OSError as exc:
            raise SinkError(f"Write failed: {exc}") from exc

    def close(self) -> None:
        # Idempotent.
        if self._closed:
            return
        self._closed = True
        writer, self._writer = self._writer, None
        try:
            if writer is not None:
                # Closing the buffered writer flushes it first.
                writer.close()
        except OSError as exc:
            raise SinkError(f"Write failed: {exc}") from exc
        finally:
            try:
                self._conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Peer may already be gone; the descriptor is released below either way.
                pass
            self._conn.close()


class PeerWatcher:
    # Reads the connection in the background; EOF or an error from the peer aborts the run.
    def __init__(self, conn: socket.socket, sink: SocketOutputSink, events: EventQueue) -> None:
        self._conn = conn
        self._sink = sink
        self._events = events
        self._thread = threading.Thread(target=self._run, name="peer-watcher", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        reason = "connection closed by peer"
        try:
            # Anything the consumer sends is ignored.
            while self._conn.recv(4096):
                pass
        except OSError as exc:
            reason = f"socket error: {exc}"
        if not self._sink.closed:
            self._events.post(SinkClosedEvent(reason))
