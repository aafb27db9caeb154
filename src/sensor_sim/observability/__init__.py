from .logging import JsonlLogSink, LogMessage, LogSink, RunLogger, StderrLogSink, build_log_sink

__all__ = ["JsonlLogSink", "LogMessage", "LogSink", "RunLogger", "StderrLogSink", "build_log_sink"]
