from .records import Record, SourceStatus, format_record_line, sample_period_ns

# Public domain exports keep imports explicit across layers.
__all__ = ["Record", "SourceStatus", "format_record_line", "sample_period_ns"]
