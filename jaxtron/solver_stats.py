"""Solver statistics for the JAX TRON solver."""

from __future__ import annotations

from dataclasses import dataclass

from .types import Float, Task, TerminationReason, reason_message


@dataclass
class TronStats:
    """Performance statistics for a single TRON solve.

    Tracks the terminal task, timing, evaluation counts and final optimality measures.
    """

    # Solver termination status
    status: Task = Task.START
    reason: TerminationReason = TerminationReason.NONE

    # Timing information (in milliseconds)
    solve_time: Float = 0.0

    # Iteration and evaluation counts
    iterations: int = 0
    cg_iterations: int = 0
    nfev: int = 0
    ngev: int = 0

    # Convergence metrics
    objective_value: Float = 0.0
    projected_gradient_norm: Float = 0.0

    # Factorizations that fell back to a best-effort shift
    shift_failures: int = 0

    def reset(self) -> None:
        """Reset all statistics to initial values."""
        self.status = Task.START
        self.reason = TerminationReason.NONE
        self.solve_time = 0.0
        self.iterations = 0
        self.cg_iterations = 0
        self.nfev = 0
        self.ngev = 0
        self.objective_value = 0.0
        self.projected_gradient_norm = 0.0
        self.shift_failures = 0

    def is_converged(self) -> bool:
        """Check if solver has converged successfully."""
        return self.status == Task.CONVERGENCE

    def get_message(self) -> str:
        """Get the task message describing the termination."""
        return reason_message(self.reason)

    def get_solve_time_ms(self) -> Float:
        """Get solve time in milliseconds."""
        return self.solve_time

    def get_iterations(self) -> int:
        """Get number of accepted iterations."""
        return self.iterations

    def get_final_objective(self) -> Float:
        """Get final objective value."""
        return self.objective_value
