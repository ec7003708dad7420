from .log_channel import CONTINUED_MARKER, LogChannel, LogSink, NullLogChannel

__all__ = [
    "CONTINUED_MARKER",
    "LogChannel",
    "LogSink",
    "NullLogChannel",
]
