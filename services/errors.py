"""
Error taxonomy shared by the engines, job runners and routers.

ValidationError        caller input is malformed; fix the input, do not retry.
InsufficientDataError  input is well-formed but too thin to compute a result;
                       retry only with new input (e.g. a fresh OCR pass).
ExternalServiceError   a third-party call failed; `retryable` says whether backoff helps.
ReconciliationWarning  not an exception; recorded on the analysis as a risk factor.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class LendingError(Exception):
    """Base class for every domain error raised by this service."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LendingError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidTransitionError(ValidationError):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"{entity} cannot move from '{current}' to '{target}'", field="status")
        self.entity = entity
        self.current = current
        self.target = target


class NotFoundError(LendingError):
    pass


class ConflictError(LendingError):
    pass


class InsufficientDataError(LendingError):
    pass


class StatementParseError(InsufficientDataError):
    """No line layout covered enough of the statement to trust the extraction."""

    def __init__(self, message: str, coverage: float = 0.0):
        super().__init__(message)
        self.coverage = coverage


class ExternalServiceError(LendingError):
    def __init__(self, service: str, message: str, retryable: bool = True, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.retryable = retryable
        self.status_code = status_code


@dataclass(frozen=True)
class ReconciliationWarning:
    expected_closing: float
    actual_closing: float
    tolerance: float

    @property
    def discrepancy(self) -> float:
        return round(abs(self.actual_closing - self.expected_closing), 2)
