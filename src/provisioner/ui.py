"""Operator-facing progress sinks.

Steps narrate what they are doing through the ``ui`` entry of the state
bag. Sinks must never raise into a step.
"""

from __future__ import annotations

from .observability.logging import get_logger


class LoggingUi:
    """Ui that forwards narration to the structured log."""

    def __init__(self, name: str = 'provisioner.ui') -> None:
        self._logger = get_logger(name)

    def say(self, message: str) -> None:
        self._logger.info('ui_say', message=message)

    def error(self, message: str) -> None:
        self._logger.error('ui_error', message=message)


class RecordingUi:
    """Ui that keeps every message, for tests and dry runs."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def say(self, message: str) -> None:
        self.messages.append(('say', message))

    def error(self, message: str) -> None:
        self.messages.append(('error', message))

    @property
    def errors(self) -> list[str]:
        return [m for level, m in self.messages if level == 'error']
