from __future__ import annotations

import importlib.util
from collections.abc import Callable, Iterable
from pathlib import Path
from types import ModuleType

from sensor_sim.config.models import DataSourceConfig
from sensor_sim.drivers.contracts import get_driver_meta
from sensor_sim.ports.source_adapter import SourceAdapter

DriverFactory = Callable[[DataSourceConfig], SourceAdapter]


class DriverRegistryError(ValueError):
    # Raised when driver lookup, loading or registration fails.
    pass


class DriverRegistry:
    """Maps filetype tags to source adapter factories.

    Tags not registered up front are looked up as ``<driver_dir>/<filetype>.py``,
    which must define a ``get_stream(source)`` callable. Loaded modules are cached.
    """

    def __init__(self, driver_dir: Path | None = None) -> None:
        self._factories: dict[str, DriverFactory] = {}
        self._driver_dir = driver_dir

    def register(self, filetype: str, factory: DriverFactory) -> None:
        if filetype in self._factories:
            raise DriverRegistryError(f"Duplicate driver registration: {filetype}")
        self._factories[filetype] = factory

    def filetypes(self) -> list[str]:
        return sorted(self._factories)

    def resolve(self, filetype: str) -> DriverFactory:
        factory = self._factories.get(filetype)
        if factory is not None:
            return factory
        if self._driver_dir is None:
            raise DriverRegistryError(f"Unknown driver filetype: {filetype}")
        factory = _load_driver_file(self._driver_dir, filetype)
        self._factories[filetype] = factory
        return factory

    def build(self, source: DataSourceConfig) -> SourceAdapter:
        factory = self.resolve(source.filetype)
        try:
            return factory(source)
        except DriverRegistryError:
            raise
        except Exception as exc:
            raise DriverRegistryError(
                f"Driver {source.filetype} could not open {source.filename}: {exc}"
            ) from exc


def discover_drivers(modules: Iterable[ModuleType]) -> dict[str, DriverFactory]:
    # Collect factories declared via @driver(filetype=...).
    discovered: dict[str, DriverFactory] = {}
    for module in modules:
        for value in module.__dict__.values():
            meta = get_driver_meta(value)
            if meta is None:
                continue
            if not callable(value):
                raise DriverRegistryError(f"Driver '{meta.filetype}' target is not callable")
            existing = discovered.get(meta.filetype)
            if existing is not None and existing is not value:
                raise DriverRegistryError(f"Duplicate driver filetype discovered: {meta.filetype}")
            discovered[meta.filetype] = value
    return discovered


def build_default_registry(driver_dir: Path | None = None) -> DriverRegistry:
    from sensor_sim.drivers import audio_pcm, csv_lines

    registry = DriverRegistry(driver_dir=driver_dir)
    for filetype, factory in discover_drivers([csv_lines, audio_pcm]).items():
        registry.register(filetype, factory)
    return registry


def _load_driver_file(driver_dir: Path, filetype: str) -> DriverFactory:
    if not filetype.isidentifier():
        raise DriverRegistryError(f"Invalid driver filetype: {filetype}")
    path = driver_dir / f"{filetype}.py"
    if not path.is_file():
        raise DriverRegistryError(f"No driver for filetype {filetype} in {driver_dir}")
    spec = importlib.util.spec_from_file_location(f"sensor_sim_driver_{filetype}", path)
    if spec is None or spec.loader is None:
        raise DriverRegistryError(f"Cannot load driver {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise DriverRegistryError(f"Error loading driver {path}: {exc}") from exc
    factory = getattr(module, "get_stream", None)
    if not callable(factory):
        raise DriverRegistryError(f"Driver {filetype} has not exported a function called 'get_stream'")
    return factory
