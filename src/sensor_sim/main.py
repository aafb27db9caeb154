from __future__ import annotations

from collections.abc import Sequence

from sensor_sim.app import run


def main(argv: Sequence[str] | None = None) -> int:
    # Single-line entrypoint delegating to the CLI runtime.
    return run(list(argv) if argv is not None else None)


def console_main() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    console_main()
