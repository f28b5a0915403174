from __future__ import annotations

from typing import Optional


class SaferowsError(Exception):
    """Base exception for saferows errors."""


class ValidationError(SaferowsError):
    """Request rejected before touching the database."""


class OperationDenied(ValidationError):
    """Operation disabled or over the configured limits."""


class SynthesisError(SaferowsError):
    """Generation spec could not be turned into rows."""


class SafetyLimitExceeded(SaferowsError):
    """
    A rule or a whole request affected more rows than allowed.

    ``rule_index`` is 0-based, or None when the request-wide ceiling was breached.
    """

    def __init__(self, message: str, *, rule_index: Optional[int], affected: int, limit: int) -> None:
        super().__init__(message)
        self.rule_index = rule_index
        self.affected = affected
        self.limit = limit


class ExecutionError(SaferowsError):
    """Driver-level failure while running a compiled statement."""

    def __init__(self, message: str, *, rule_index: Optional[int], sql: str, param_count: int) -> None:
        super().__init__(message)
        self.rule_index = rule_index
        self.sql = sql
        self.param_count = param_count
