"""User-facing notifications for mutation outcomes."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Något gick fel"


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget sink for toast-style messages."""

    def error(self, message: str) -> None:
        """Show a failure message."""
        ...

    def success(self, message: str) -> None:
        """Show a confirmation message."""
        ...


class LoggingNotifier:
    """Notifier that writes messages to a logger."""

    def __init__(self, name: str = "optimist.notifications") -> None:
        self._logger = logging.getLogger(name)

    def error(self, message: str) -> None:
        self._logger.error(message)

    def success(self, message: str) -> None:
        self._logger.info(message)


class RecordingNotifier:
    """Notifier that keeps every message, for tests and headless callers."""

    def __init__(self) -> None:
        self.errors: list[str] = []
        self.successes: list[str] = []

    def error(self, message: str) -> None:
        self.errors.append(message)

    def success(self, message: str) -> None:
        self.successes.append(message)


__all__ = [
    "DEFAULT_ERROR_MESSAGE",
    "LoggingNotifier",
    "Notifier",
    "RecordingNotifier",
]
