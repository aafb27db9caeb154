from .cli import apply_overrides, build_parser, parse_args, run
from .runtime import build_adapters, run_simulation

# app package exports CLI helpers for reuse in tests and entrypoints.
__all__ = ["apply_overrides", "build_adapters", "build_parser", "parse_args", "run", "run_simulation"]
