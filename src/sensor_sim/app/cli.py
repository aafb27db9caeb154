from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from sensor_sim.app.runtime import run_simulation
from sensor_sim.config.loader import ConfigError, load_config
from sensor_sim.config.models import LoggingConfig, SimulatorConfig
from sensor_sim.drivers.registry import DriverRegistryError
from sensor_sim.kernel.merge_engine import MergeEngineError
from sensor_sim.observability.logging import RunLogger, StderrLogSink, build_log_sink
from sensor_sim.ports.output_sink import SinkError

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sensor-sim",
        description="Replay sensor data files as one time-ordered stream on a Unix socket",
    )
    parser.add_argument("config", help="Path to YAML or JSON config file")
    parser.add_argument("socket", nargs="?", help="Override the socket path from the config")
    parser.add_argument("--log-jsonl", help="Write structured logs to this JSONL file")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Override the configured log level",
    )
    return parser


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    # Parse CLI arguments; caller passes argv for testability.
    return build_parser().parse_args(argv)


def apply_overrides(config: SimulatorConfig, args: argparse.Namespace) -> None:
    # CLI values take precedence over the config file.
    if args.socket:
        config.socket = args.socket
    if args.log_jsonl:
        config.logging = LoggingConfig(sink="jsonl", path=args.log_jsonl, level=config.logging.level)
    if args.log_level:
        config.logging.level = args.log_level


def run(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        RunLogger(StderrLogSink()).error("invalid configuration", config=args.config, error=str(exc))
        return EXIT_CONFIG
    apply_overrides(config, args)

    try:
        log_sink = build_log_sink(config.logging.sink, config.logging.path)
    except (OSError, ValueError) as exc:
        RunLogger(StderrLogSink()).error("invalid configuration", config=args.config, error=str(exc))
        return EXIT_CONFIG
    log = RunLogger(log_sink, level=config.logging.level)
    log.info("config loaded", config=args.config, sources=len(config.data_sources))
    try:
        run_simulation(config, log)
    except (ConfigError, DriverRegistryError) as exc:
        log.error("invalid configuration", error=str(exc))
        return EXIT_CONFIG
    except (MergeEngineError, SinkError, OSError) as exc:
        log.error("run aborted", error=str(exc), kind=type(exc).__name__)
        return EXIT_RUN_FAILED
    finally:
        log.close()
    return EXIT_OK
