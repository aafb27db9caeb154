from .dispatcher import (
    BatchEvent,
    EndEvent,
    ErrorEvent,
    EventDispatcher,
    EventQueue,
    SinkClosedEvent,
    SourcePump,
)
from .merge_engine import (
    MergeEngine,
    MergeEngineError,
    SourceFailedError,
    SourceOrderError,
    SourceState,
)

# Kernel exports are minimal and runtime-focused.
__all__ = [
    "BatchEvent",
    "EndEvent",
    "ErrorEvent",
    "EventDispatcher",
    "EventQueue",
    "MergeEngine",
    "MergeEngineError",
    "SinkClosedEvent",
    "SourceFailedError",
    "SourceOrderError",
    "SourcePump",
    "SourceState",
]
