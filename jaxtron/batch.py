"""Batched solves of many independent bound-constrained problems.

Each instance runs the full TRON driver loop inside a single
``lax.while_loop``; batches are formed with ``jax.vmap`` over the leading
axis of the inputs. Instances never share state, so one instance stopping
with a warning or error has no effect on the others.
"""

from __future__ import annotations

import logging
from collections import Counter
from functools import partial
from typing import Any, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array, lax

from .projection import project_to_box, projected_gradient_norm
from .solver_options import DEFAULT_OPTIONS, TronOptions
from .tron import check_gradient_convergence, tron
from .types import (
    GradientFunction,
    HessianFunction,
    Matrix,
    ObjectiveFunction,
    Task,
    TerminationReason,
    Vector,
    Verbosity,
)
from .workspace import TronWorkspace, create_workspace


logger = logging.getLogger(__name__)


class TronResult(NamedTuple):
    """Outcome of a solve; every field gains a leading axis for batches."""

    x: Vector
    f: Array
    task: Array
    reason: Array
    iterations: Array
    nfev: Array
    ngev: Array
    cg_iterations: Array
    gpnorm: Array
    shift_failures: Array


@partial(jax.jit, static_argnames=("options",))
def tron_batch(
    ws: TronWorkspace,
    f: Array,
    g: Array,
    A: Array,
    options: TronOptions = DEFAULT_OPTIONS,
) -> TronWorkspace:
    """Advance every instance of a stacked workspace by one driver call."""
    return jax.vmap(partial(tron, options=options))(ws, f, g, A)


def _derivatives(
    fun: ObjectiveFunction,
    grad: GradientFunction | None,
    hess: HessianFunction | None,
) -> tuple[GradientFunction, HessianFunction]:
    """Fill in missing derivatives with automatic differentiation."""
    return (grad if grad is not None else jax.grad(fun)), (
        hess if hess is not None else jax.hessian(fun)
    )


class _LoopState(NamedTuple):
    ws: TronWorkspace
    f: Array
    g: Vector
    A: Matrix


@partial(jax.jit, static_argnames=("fun", "grad", "hess", "options"))
def solve(
    fun: ObjectiveFunction,
    x0: Vector,
    xl: Vector,
    xu: Vector,
    params: Any = None,
    *,
    grad: GradientFunction | None = None,
    hess: HessianFunction | None = None,
    options: TronOptions = DEFAULT_OPTIONS,
) -> TronResult:
    """Solve ``min fun(x, params)`` subject to ``xl <= x <= xu``.

    Args:
        fun: Traceable objective ``fun(x, params) -> scalar``.
        x0: Initial point; it is projected into the box.
        xl: Lower bounds.
        xu: Upper bounds.
        params: Pytree of problem data passed through to the callbacks.
        grad: Gradient ``grad(x, params)``; defaults to ``jax.grad(fun)``.
        hess: Dense Hessian ``hess(x, params)``; defaults to ``jax.hessian(fun)``.
        options: Static solver options.

    Returns:
        TronResult for the instance.
    """
    grad, hess = _derivatives(fun, grad, hess)

    def objective(x):
        return jnp.asarray(fun(x, params), dtype=jnp.float64)

    def derivatives(x):
        return (
            jnp.asarray(grad(x, params), dtype=jnp.float64),
            jnp.asarray(hess(x, params), dtype=jnp.float64),
        )

    ws = create_workspace(x0, xl, xu)
    x = project_to_box(ws.x, ws.xl, ws.xu)
    ws = ws._replace(x=x)

    # START only needs the objective value
    n = x.shape[0]
    g = jnp.zeros(n, dtype=jnp.float64)
    A = jnp.zeros((n, n), dtype=jnp.float64)
    f = objective(x)
    ws = tron(ws, f, g, A, options)

    def running(state: _LoopState) -> Array:
        return state.ws.task < int(Task.CONVERGENCE)

    def step(state: _LoopState) -> _LoopState:
        ws = state.ws

        # Evaluate what the driver asked for
        f = lax.cond(ws.task == int(Task.EVAL_F), objective, lambda _: state.f, ws.x)
        g, A = lax.cond(
            ws.task == int(Task.EVAL_GH), derivatives, lambda _: (state.g, state.A), ws.x
        )

        ws = tron(ws, f, g, A, options)
        ws = check_gradient_convergence(ws, g, options.gtol)
        return _LoopState(ws=ws, f=f, g=g, A=A)

    state = lax.while_loop(running, step, _LoopState(ws=ws, f=f, g=g, A=A))
    ws = state.ws

    gfinal, _ = derivatives(ws.x)
    return TronResult(
        x=ws.x,
        f=ws.f,
        task=ws.task,
        reason=ws.reason,
        iterations=ws.iter,
        nfev=ws.nfev,
        ngev=ws.ngev,
        cg_iterations=ws.iterscg,
        gpnorm=projected_gradient_norm(ws.x, ws.xl, ws.xu, gfinal),
        shift_failures=ws.nshift_fail,
    )


def _log_summary(result: TronResult, options: TronOptions) -> None:
    """Log how the instances of a batch terminated."""
    tasks = np.atleast_1d(np.asarray(result.task))
    reasons = np.atleast_1d(np.asarray(result.reason))
    shift_failures = int(np.sum(np.asarray(result.shift_failures)))

    if shift_failures:
        logger.warning(f"{shift_failures} factorizations exhausted the shift budget")

    if options.verbose == Verbosity.SILENT:
        return

    counts = Counter(
        (Task(int(t)).name, TerminationReason(int(r)).name) for t, r in zip(tasks, reasons)
    )
    logger.info(f"solved {tasks.size} instances")
    for (task, reason), count in sorted(counts.items()):
        logger.info(f"  {task:<12} {reason:<15} {count}")
    if options.verbose == Verbosity.INNER:
        logger.info(
            f"  iterations: max {int(np.max(result.iterations))}, "
            f"cg iterations: max {int(np.max(result.cg_iterations))}, "
            f"gpnorm: max {float(np.max(result.gpnorm)):.3e}"
        )


def _concatenate(results: list[TronResult]) -> TronResult:
    return jax.tree_util.tree_map(lambda *leaves: jnp.concatenate(leaves), *results)


def solve_batch(
    fun: ObjectiveFunction,
    x0: Array,
    xl: Array,
    xu: Array,
    params: Any = None,
    *,
    grad: GradientFunction | None = None,
    hess: HessianFunction | None = None,
    options: TronOptions = DEFAULT_OPTIONS,
    chunk_size: int | None = None,
) -> TronResult:
    """Solve a batch of independent problems stacked along the leading axis.

    Instances of different sizes share a batch by padding with fixed
    coordinates (``xl == xu``), see ``workspace.pad_problem``.

    Args:
        fun: Traceable objective ``fun(x, params) -> scalar`` for one instance.
        x0: Initial points, shape ``(batch, n)``.
        xl: Lower bounds, shape ``(batch, n)``.
        xu: Upper bounds, shape ``(batch, n)``.
        params: Pytree whose leaves carry a leading batch axis, or None.
        grad: Per-instance gradient; defaults to automatic differentiation.
        hess: Per-instance Hessian; defaults to automatic differentiation.
        options: Static solver options shared by all instances.
        chunk_size: Number of instances per vectorized call. None solves
            the whole batch at once.

    Returns:
        TronResult with a leading batch axis on every field.
    """
    x0 = jnp.asarray(x0, dtype=jnp.float64)
    xl = jnp.asarray(xl, dtype=jnp.float64)
    xu = jnp.asarray(xu, dtype=jnp.float64)
    if x0.ndim != 2:
        raise ValueError(f"expected x0 of shape (batch, n), got {x0.shape}")
    if chunk_size is not None and chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    params_axis = None if params is None else 0
    batched = jax.vmap(
        partial(solve, fun, grad=grad, hess=hess, options=options),
        in_axes=(0, 0, 0, params_axis),
    )

    batch = x0.shape[0]
    step = batch if chunk_size is None else chunk_size
    results = []
    for start in range(0, batch, step):
        stop = min(start + step, batch)
        chunk_params = (
            None
            if params is None
            else jax.tree_util.tree_map(lambda leaf: leaf[start:stop], params)
        )
        results.append(batched(x0[start:stop], xl[start:stop], xu[start:stop], chunk_params))

    result = results[0] if len(results) == 1 else _concatenate(results)
    _log_summary(result, options)
    return result


def solve_reference(
    fun: ObjectiveFunction,
    x0: Array,
    xl: Array,
    xu: Array,
    params: Any = None,
    *,
    grad: GradientFunction | None = None,
    hess: HessianFunction | None = None,
    options: TronOptions = DEFAULT_OPTIONS,
) -> TronResult:
    """Solve a batch one instance at a time with the single-instance solver.

    Serves as the sequential reference for ``solve_batch``; the two agree up
    to floating-point summation order.
    """
    x0 = jnp.asarray(x0, dtype=jnp.float64)
    results = []
    for i in range(x0.shape[0]):
        instance_params = (
            None if params is None else jax.tree_util.tree_map(lambda leaf: leaf[i], params)
        )
        result = solve(
            fun, x0[i], xl[i], xu[i], instance_params, grad=grad, hess=hess, options=options
        )
        results.append(result)

    stacked = jax.tree_util.tree_map(lambda *leaves: jnp.stack(leaves), *results)
    _log_summary(stacked, options)
    return stacked
