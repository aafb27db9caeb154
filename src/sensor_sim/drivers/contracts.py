from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DriverMeta:
    # Filetype tag a driver factory answers to.
    filetype: str


def driver(*, filetype: str) -> Callable[[T], T]:
    # Decorator marks a factory as the driver for one filetype tag.
    if not isinstance(filetype, str) or not filetype:
        raise ValueError("driver filetype must be a non-empty string")

    def _decorate(target: T) -> T:
        setattr(target, "__driver_meta__", DriverMeta(filetype=filetype))
        return target

    return _decorate


def get_driver_meta(target: object) -> DriverMeta | None:
    meta = getattr(target, "__driver_meta__", None)
    if isinstance(meta, DriverMeta):
        return meta
    return None
