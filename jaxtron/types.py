"""Core type definitions for the JAX TRON bound-constrained solver.

This module provides the array type aliases, callback signatures and the
integer enums that travel through traced code as task, phase and status codes.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum, IntEnum
from typing import Any, TypeAlias

from jax import Array


# Core JAX array types
Vector: TypeAlias = Array  # length-n vectors (x, xl, xu, g, s)
Matrix: TypeAlias = Array  # dense n x n matrices (Hessian, factors)
Scalar: TypeAlias = Array  # 0-d arrays produced inside traced code

# Scalar types
Float: TypeAlias = float

# Traceable problem callbacks: fun(x, params) etc.
ObjectiveFunction: TypeAlias = Callable[[Vector, Any], Scalar]
GradientFunction: TypeAlias = Callable[[Vector, Any], Vector]
HessianFunction: TypeAlias = Callable[[Vector, Any], Matrix]

# Host-side callbacks used by TronSolver
HostObjective: TypeAlias = Callable[[Any], float]
HostGradient: TypeAlias = Callable[[Any], Any]
HostHessian: TypeAlias = Callable[[Any, "HessianMode", Any, Any, Any], None]

# Largest problem size handled per instance
MAX_VARIABLES = 32


class Task(IntEnum):
    """Task codes returned by the driver to tell the caller what to do next."""

    START = 0
    EVAL_F = 1
    EVAL_GH = 2
    NEWX = 3
    CONVERGENCE = 4
    WARNING = 5
    ERROR = 6


class Work(IntEnum):
    """Internal phase persisted in the workspace between driver calls."""

    START = 0
    INITIALIZE = 1
    COMPUTE = 2
    EVALUATE = 3
    NEWX = 4
    DONE = 5


class TerminationReason(IntEnum):
    """Why a terminal task code was issued."""

    NONE = 0
    GTOL = 1
    FATOL = 2
    FRTOL = 3
    FMIN = 4
    MAX_FEVAL = 5
    MAX_ITER = 6
    STAGNATION = 7
    INVALID_BOUNDS = 8


class CholeskyStatus(IntEnum):
    """Outcome of the shifted Cholesky factorization."""

    SUCCESS = 0
    SHIFT_BUDGET_EXCEEDED = 1


class TrustRegionCGStatus(IntEnum):
    """Exit branch of the preconditioned trust-region CG iteration."""

    RUNNING = 0
    CONVERGED = 1
    SMALL_RESIDUAL = 2
    NEGATIVE_CURVATURE = 3
    BOUNDARY = 4
    MAX_ITERATIONS = 5


class SubspaceStatus(IntEnum):
    """Exit status of the subspace (active-set) CG loop."""

    RUNNING = 0
    CONVERGED = 1
    TRUST_REGION_BOUND = 2
    MAX_ITERATIONS = 3


class HessianMode(Enum):
    """Phase of the two-phase Hessian callback contract."""

    STRUCTURE = "Structure"
    VALUES = "Values"


class Verbosity(Enum):
    """Verbosity levels for host-side logging."""

    SILENT = "Silent"
    OUTER = "Outer"
    INNER = "Inner"


class ErrorCode(Enum):
    """Error codes carried by host-side exceptions."""

    NO_ERROR = "NoError"
    DIMENSION_MISMATCH = "DimensionMismatch"
    DIMENSION_TOO_LARGE = "DimensionTooLarge"
    NON_POSITIVE = "NonPositive"
    INVALID_BOUND_CONSTRAINT = "InvalidBoundConstraint"
    INVALID_HESSIAN_STRUCTURE = "InvalidHessianStructure"
    SOLVER_NOT_INITIALIZED = "SolverNotInitialized"
    SOLVE_FAILED = "SolveFailed"


TERMINAL_TASKS = (Task.CONVERGENCE, Task.WARNING, Task.ERROR)

_REASON_MESSAGES = {
    TerminationReason.NONE: "",
    TerminationReason.GTOL: "CONVERGENCE: GTOL TEST SATISFIED",
    TerminationReason.FATOL: "CONVERGENCE: FATOL TEST SATISFIED",
    TerminationReason.FRTOL: "CONVERGENCE: FRTOL TEST SATISFIED",
    TerminationReason.FMIN: "CONVERGENCE: F .LT. FMIN (PROBLEM UNBOUNDED)",
    TerminationReason.MAX_FEVAL: "WARNING: MAXIMUM FUNCTION EVALUATIONS REACHED",
    TerminationReason.MAX_ITER: "WARNING: MAXIMUM ITERATIONS REACHED",
    TerminationReason.STAGNATION: "WARNING: TRUST REGION RADIUS TOO SMALL",
    TerminationReason.INVALID_BOUNDS: "ERROR: XL .GT. XU",
}


def reason_message(reason: int) -> str:
    """Convert a termination reason code to its task message."""
    return _REASON_MESSAGES.get(TerminationReason(int(reason)), "unknown reason")
