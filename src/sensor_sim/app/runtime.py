from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
from pathlib import Path

from sensor_sim.adapters.socket_sink import PeerWatcher, SocketOutputSink, UnixSocketServer
from sensor_sim.config.models import SimulatorConfig
from sensor_sim.drivers.registry import DriverRegistry, build_default_registry
from sensor_sim.kernel.dispatcher import EventDispatcher, EventQueue
from sensor_sim.kernel.merge_engine import MergeEngine
from sensor_sim.observability.logging import RunLogger
from sensor_sim.ports.output_sink import SinkError
from sensor_sim.ports.source_adapter import SourceAdapter


def build_adapters(config: SimulatorConfig, registry: DriverRegistry | None = None) -> list[SourceAdapter]:
    # Resolve every driver up front so unknown filetypes fail before the socket opens.
    if registry is None:
        driver_dir = Path(config.driver_dir) if config.driver_dir else None
        registry = build_default_registry(driver_dir)
    return [registry.build(source) for source in config.data_sources]


def run_simulation(
    config: SimulatorConfig,
    log: RunLogger,
    *,
    registry: DriverRegistry | None = None,
    on_listening: Callable[[Path], None] | None = None,
    accept_timeout: float | None = None,
) -> int:
    """Serve one consumer on the configured socket and stream the merged sources to it.

    Returns the number of lines written. Any source or sink failure propagates.
    """
    adapters = build_adapters(config, registry)
    socket_path = Path(config.socket)
    with UnixSocketServer(socket_path) as server:
        log.info("listening", socket=str(socket_path), sources=len(adapters))
        if on_listening is not None:
            on_listening(socket_path)
        conn = server.accept(timeout=accept_timeout)
    log.info("client connected", socket=str(socket_path))

    sink = SocketOutputSink(conn)
    events = EventQueue()
    PeerWatcher(conn, sink, events).start()
    engine = MergeEngine(
        sink,
        len(adapters),
        log=log,
        buffer_warn_threshold=config.merge.buffer_warn_threshold,
    )
    dispatcher = EventDispatcher(engine, adapters, events=events, log=log)
    try:
        emitted = dispatcher.run()
    except BaseException:
        if not sink.closed:
            with suppress(SinkError):
                sink.close()
        raise
    log.info("run complete", emitted=emitted)
    return emitted
