from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class Diagnostics(Protocol):
    def report(
        self, level: int, message: str, error: Optional[BaseException] = None
    ) -> None: ...


@dataclass(frozen=True)
class Diagnostic:
    level: int
    message: str
    error: Optional[BaseException] = None


class LoggingDiagnostics:
    """Sink that forwards every report to a standard library logger."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    def report(
        self, level: int, message: str, error: Optional[BaseException] = None
    ) -> None:
        self.log.log(level, message, exc_info=error)


class CollectingDiagnostics(LoggingDiagnostics):
    """Keeps every report so callers can inspect what went wrong.

    Reports are still forwarded to logging.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        super().__init__(log)
        self.records: list[Diagnostic] = []

    def report(
        self, level: int, message: str, error: Optional[BaseException] = None
    ) -> None:
        self.records.append(Diagnostic(level, message, error))
        super().report(level, message, error)

    @property
    def messages(self) -> list[str]:
        return [record.message for record in self.records]

    def __len__(self) -> int:
        return len(self.records)
