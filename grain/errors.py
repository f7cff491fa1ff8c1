from __future__ import annotations


class GrainError(Exception):
    """Base class for domain errors raised by grain services."""


class InvalidPeriodError(GrainError):
    pass


class InvalidRuleError(GrainError):
    pass


class RecordNotFoundError(GrainError):
    pass
