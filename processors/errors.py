"""
errors.py

One exception type for the whole pipeline.

Every failure carries an ErrorKind so callers branch on the kind instead of
on exception classes. Only the CLI turns kinds into exit codes.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    REPAIR_FAILED = "repair_failed"
    MALFORMED_SCHEMA = "malformed_schema"
    CANCELED = "canceled"
    IO_FAILURE = "io_failure"
    INVALID_SELECTION = "invalid_selection"


class ExportError(Exception):
    """
    Raised by every stage of the pipeline.

    path/operation are filled in for IO_FAILURE so the message can say which
    file and what we were doing with it.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        path: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        self.kind = kind
        self.message = message
        self.path = path
        self.operation = operation
        super().__init__(self._format())

    def _format(self) -> str:
        if self.path and self.operation:
            return f"{self.operation} {self.path}: {self.message}"
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message

    @property
    def is_canceled(self) -> bool:
        return self.kind is ErrorKind.CANCELED


def canceled(reason: str = "operation canceled") -> ExportError:
    return ExportError(ErrorKind.CANCELED, reason)
