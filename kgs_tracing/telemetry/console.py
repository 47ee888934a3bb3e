"""Local console log sink with trace correlation."""

import logging
import sys
from datetime import datetime, timezone
from typing import IO, Optional

from opentelemetry import trace

NO_TRACE = "-"

_LEVEL_COLORS = {
    "TRACE": "\033[35m",
    "DEBUG": "\033[34m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}
_RESET = "\033[0m"


class TraceContextFilter(logging.Filter):
    """Attach trace_id and span_id of the current span to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = NO_TRACE
            record.span_id = NO_TRACE
        return True


class ConsoleFormatter(logging.Formatter):
    """Single-line formatter: time, level, logger, trace id, message."""

    def __init__(self, colored: bool = False):
        super().__init__()
        self.colored = colored

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
            timespec="microseconds"
        )
        level = f"{record.levelname:>5}"
        if self.colored:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"
        trace_id = getattr(record, "trace_id", NO_TRACE)

        line = f"{timestamp} {level} {record.name} [{trace_id}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        if record.stack_info:
            line = f"{line}\n{self.formatStack(record.stack_info)}"
        return line


def create_console_handler(level: int, stream: Optional[IO[str]] = None) -> logging.Handler:
    """Build the console handler installed by the first build stage.

    Args:
        level: Numeric logging level threshold
        stream: Output stream, stderr when omitted

    Returns:
        Configured StreamHandler
    """
    stream = stream if stream is not None else sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.addFilter(TraceContextFilter())
    isatty = getattr(stream, "isatty", None)
    handler.setFormatter(ConsoleFormatter(colored=bool(isatty and isatty())))
    return handler
