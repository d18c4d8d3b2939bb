"""Exception hierarchy for the JAX TRON solver.

Exceptions are only raised from host-side code (input validation, the callback
driven solver). Traced kernels report failures through status codes instead.
"""

from __future__ import annotations

from .types import ErrorCode


class TronException(Exception):
    """Base exception class for TRON solver errors."""

    def __init__(self, message: str, error_code: ErrorCode) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message

    def __str__(self) -> str:
        return f"TRON Error {self.error_code.value}: {self.message}"


class DimensionError(TronException):
    """Exception for dimension-related errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.DIMENSION_MISMATCH) -> None:
        super().__init__(message, error_code)


class BoundsError(TronException):
    """Exception for inconsistent bound constraints."""

    def __init__(
        self, message: str, error_code: ErrorCode = ErrorCode.INVALID_BOUND_CONSTRAINT
    ) -> None:
        super().__init__(message, error_code)


class InitializationError(TronException):
    """Exception for solver setup errors."""

    def __init__(
        self, message: str, error_code: ErrorCode = ErrorCode.SOLVER_NOT_INITIALIZED
    ) -> None:
        super().__init__(message, error_code)


class OptimizationError(TronException):
    """Exception for a solve that ended in an error state."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.SOLVE_FAILED) -> None:
        super().__init__(message, error_code)


def _error_code_to_string(error_code: ErrorCode) -> str:
    """Convert error code to a descriptive string."""
    error_messages = {
        ErrorCode.NO_ERROR: "no error",
        ErrorCode.DIMENSION_MISMATCH: "dimension mismatch",
        ErrorCode.DIMENSION_TOO_LARGE: "problem dimension exceeds the per-instance limit",
        ErrorCode.NON_POSITIVE: "expected a positive value",
        ErrorCode.INVALID_BOUND_CONSTRAINT: "Invalid bound constraint. Make sure all upper bounds are greater than or equal to the lower bounds",
        ErrorCode.INVALID_HESSIAN_STRUCTURE: "Hessian structure must address the lower triangle",
        ErrorCode.SOLVER_NOT_INITIALIZED: "solver not initialized",
        ErrorCode.SOLVE_FAILED: "solve terminated with an error task",
    }
    return error_messages.get(error_code, "unknown error")


def _tron_throw(message: str, error_code: ErrorCode) -> None:
    """Raise the exception class matching the error code."""
    if error_code in (ErrorCode.DIMENSION_MISMATCH, ErrorCode.DIMENSION_TOO_LARGE):
        raise DimensionError(message, error_code)
    if error_code == ErrorCode.INVALID_BOUND_CONSTRAINT:
        raise BoundsError(message, error_code)
    if error_code in (ErrorCode.INVALID_HESSIAN_STRUCTURE, ErrorCode.SOLVER_NOT_INITIALIZED):
        raise InitializationError(message, error_code)
    if error_code == ErrorCode.SOLVE_FAILED:
        raise OptimizationError(message, error_code)
    raise TronException(message, error_code)
