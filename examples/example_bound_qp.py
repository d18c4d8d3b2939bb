"""Bound-constrained example demonstrating the callback-driven TRON solver.

This example shows how to:
1. Define objective, gradient and a lower-triangle Hessian callback
2. Create a TronSolver with box constraints
3. Solve the problem and inspect the statistics
4. Solve a batch of related problems with automatic differentiation

The problem is a box-constrained extended Rosenbrock function, whose
unconstrained minimizer (1, ..., 1) lies outside the box.
"""

from __future__ import annotations

import logging

import jax.numpy as jnp
import numpy as np

from jaxtron import HessianMode, TronOptions, TronSolver, Verbosity, solve_batch


def rosenbrock(x, params=None):
    """Extended Rosenbrock function."""
    return jnp.sum(100.0 * (x[1:] - x[:-1] ** 2) ** 2 + (1.0 - x[:-1]) ** 2)


def rosenbrock_gradient(x: np.ndarray) -> np.ndarray:
    g = np.zeros_like(x)
    t = x[1:] - x[:-1] ** 2
    g[:-1] = -400.0 * x[:-1] * t - 2.0 * (1.0 - x[:-1])
    g[1:] += 200.0 * t
    return g


def rosenbrock_hessian(x, mode, rows, cols, values):
    """Tridiagonal Hessian: diagonal entries first, then the subdiagonal."""
    n = x.shape[0]
    if mode == HessianMode.STRUCTURE:
        rows[:n] = np.arange(n)
        cols[:n] = np.arange(n)
        rows[n:] = np.arange(1, n)
        cols[n:] = np.arange(n - 1)
        return

    diag = np.zeros(n)
    diag[:-1] = 1200.0 * x[:-1] ** 2 - 400.0 * x[1:] + 2.0
    diag[1:] += 200.0
    values[:n] = diag
    values[n:] = -400.0 * x[:-1]


def solve_single_example(n: int = 8) -> TronSolver:
    """Solve one instance through the host callback interface."""
    xl = np.full(n, -1.5)
    xu = np.full(n, 0.8)

    solver = TronSolver(
        n,
        xl,
        xu,
        2 * n - 1,
        lambda x: float(rosenbrock(x)),
        rosenbrock_gradient,
        rosenbrock_hessian,
        options=TronOptions(gtol=1e-8, verbose=Verbosity.OUTER),
        x0=np.tile([-1.2, 1.0], n // 2),
    )
    status = solver.solve()

    print(f"\nStatus:      {status.name}")
    print(f"Message:     {solver.get_message()}")
    print(f"Objective:   {solver.get_final_objective():.10e}")
    print(f"Iterations:  {solver.get_iterations()}")
    print(f"Solve time:  {solver.get_solve_time_ms():.1f} ms")
    print(f"Solution:    {np.array2string(solver.get_x(), precision=6)}")
    return solver


def solve_batch_example(batch: int = 64, n: int = 8) -> None:
    """Solve many random starting points at once with JAX derivatives."""
    rng = np.random.default_rng(0)
    x0 = rng.uniform(-1.5, 0.8, (batch, n))
    xl = np.full((batch, n), -1.5)
    xu = np.full((batch, n), 0.8)

    result = solve_batch(
        rosenbrock, x0, xl, xu, options=TronOptions(gtol=1e-8, verbose=Verbosity.OUTER)
    )

    f = np.asarray(result.f)
    print(f"\nBatch of {batch}: best f = {f.min():.6e}, worst f = {f.max():.6e}")
    print(f"Max iterations: {int(np.max(result.iterations))}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    solve_single_example()
    solve_batch_example()
