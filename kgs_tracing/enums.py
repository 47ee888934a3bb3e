"""Log level enum shared by the telemetry builder and settings."""

import logging
from enum import Enum
from typing import Union

# logging has no TRACE level; register one below DEBUG
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class LogLevel(str, Enum):
    """Severity threshold for the local console sink and log shipping."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    def __str__(self) -> str:
        return self.value

    def to_logging_level(self) -> int:
        """Map to the numeric level used by the logging module."""
        return _LOGGING_LEVELS[self]

    @classmethod
    def parse(cls, value: Union["LogLevel", str]) -> "LogLevel":
        """Parse a level from its name, case-insensitively.

        "WARNING" is accepted as an alias of WARN.
        """
        if isinstance(value, LogLevel):
            return value
        name = str(value).strip().upper()
        if name == "WARNING":
            name = "WARN"
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown log level: {value!r}") from None


_LOGGING_LEVELS = {
    LogLevel.TRACE: TRACE,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}
