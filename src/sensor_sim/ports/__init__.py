from .output_sink import OutputSink, SinkError
from .source_adapter import SourceAdapter

# Public port exports keep wiring explicit at composition time.
__all__ = ["OutputSink", "SinkError", "SourceAdapter"]
