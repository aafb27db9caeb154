from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from sensor_sim.config.models import SimulatorConfig


# ConfigError is raised for invalid configuration (fail fast, before any source starts).
class ConfigError(ValueError):
    pass


def load_config(path: Path) -> SimulatorConfig:
    # YAML loader; JSON config files parse unchanged since JSON is a YAML subset.
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Error reading {path}: {exc.strerror or exc}") from exc
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error parsing {path}: {exc}") from exc
    return parse_config(raw)


def parse_config(raw: Any) -> SimulatorConfig:
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    _validate_data_sources(raw)
    try:
        return SimulatorConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(_describe(exc)) from exc


def _validate_data_sources(raw: dict[str, Any]) -> None:
    # Mirror the operator-facing messages for the most common mistakes.
    sources = raw.get("dataSources", raw.get("data_sources"))
    if sources is None:
        raise ConfigError("At least one datasource must be specified")
    if not isinstance(sources, list):
        raise ConfigError("'dataSources' config element must be an array")
    if not sources:
        raise ConfigError("At least one datasource must be specified")
    for which, source in enumerate(sources):
        if not isinstance(source, dict):
            raise ConfigError(f"dataSource {which} must be a mapping")
        if not source.get("filename"):
            raise ConfigError(f"No filename specified for dataSource {which}")
        if not source.get("filetype"):
            raise ConfigError(f"No filetype specified for dataSource {which}")


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"])
        parts.append(f"{location}: {error['msg']}")
    return "Invalid config: " + "; ".join(parts)
