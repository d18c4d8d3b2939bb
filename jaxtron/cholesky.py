"""Dense Cholesky factorization with diagonal shifting.

Provides the plain column factorization used as a positive-definiteness test,
the scaled and shifted variant that always returns a usable preconditioner,
and the triangular solves applied with the resulting factor.
"""

from __future__ import annotations

from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp
import jax.scipy as jsp
from jax import Array, lax

from .blas import dsynrm2, symmetrize_lower
from .types import CholeskyStatus, Matrix, Vector


class CholeskyResult(NamedTuple):
    """Factor ``L`` with ``L @ L.T == A + shift * diag(scale) ** -2``."""

    L: Matrix
    shift: Array
    scale: Vector
    info: Array


@jax.jit
def cholesky_factor(A: Matrix) -> tuple[Matrix, Array]:
    """Left-looking Cholesky factorization of the lower triangle of ``A``.

    Args:
        A: Symmetric matrix; only the lower triangle is read.

    Returns:
        Tuple ``(L, info)``. ``info`` is 0 on success, or ``-(j + 1)`` when the
        pivot of column ``j`` is not positive. Columns after a failed pivot are
        left as they were in ``A``.
    """
    n = A.shape[0]
    idx = jnp.arange(n)

    def column(j, carry):
        L, info = carry

        # Update column j with the already factored columns
        row_j = jnp.where(idx < j, L[j, :], 0.0)
        col = L[:, j] - L @ row_j
        pivot = col[j]

        ok = (info == 0) & (pivot > 0)
        safe_pivot = jnp.where(pivot > 0, pivot, 1.0)
        new_col = jnp.where(idx >= j, col / jnp.sqrt(safe_pivot), L[:, j])
        L = jnp.where(ok, L.at[:, j].set(new_col), L)

        # NaN pivots also fail the test
        failed = (info == 0) & ~(pivot > 0)
        info = jnp.where(failed, -(j + 1), info).astype(jnp.int32)
        return L, info

    L, info = lax.fori_loop(0, n, column, (jnp.tril(A), jnp.int32(0)))
    return jnp.tril(L), info


class _ShiftState(NamedTuple):
    L: Matrix
    shift: Array
    have_factor: Array
    trial_shift: Array
    lower: Array
    reductions: Array
    attempts: Array
    done: Array


@partial(
    jax.jit,
    static_argnames=("shift_min", "shift_reductions", "shift_factor", "max_attempts"),
)
def cholesky_shifted(
    A: Matrix,
    alpha: Array | float = 0.0,
    *,
    shift_min: float = 1e-3,
    shift_reductions: int = 3,
    shift_factor: float = 512.0,
    max_attempts: int = 50,
) -> CholeskyResult:
    """Cholesky factorization of ``D A D + shift I`` with an adaptive shift.

    ``D`` scales every column of ``A`` to unit 2-norm. The shift starts from a
    diagonal estimate and grows until the factorization succeeds. While the
    shift sits on its lower bound, the bound is divided by ``shift_factor`` a
    limited number of times to look for a smaller acceptable shift.

    Args:
        A: Symmetric matrix; the lower triangle is authoritative.
        alpha: Lower bound on the shift. Non-positive values use ``shift_min``.
        shift_min: Default lower bound on the shift.
        shift_reductions: Number of times the lower bound may be reduced.
        shift_factor: Divisor applied to the lower bound on each reduction.
        max_attempts: Maximum number of trial factorizations.

    Returns:
        CholeskyResult with the unscaled factor. ``info`` reports
        ``SHIFT_BUDGET_EXCEEDED`` when the attempts ran out and a best-effort
        factor was returned instead.
    """
    n = A.shape[0]
    A = symmetrize_lower(A)
    eye = jnp.eye(n, dtype=A.dtype)

    # Scale columns to unit norm
    norms = dsynrm2(A)
    scale = jnp.where(norms > 0, 1.0 / jnp.sqrt(jnp.where(norms > 0, norms, 1.0)), 1.0)
    scaled = A * scale[:, None] * scale[None, :]

    # Initial shift from the diagonal
    lower = jnp.where(alpha > 0, alpha, shift_min).astype(A.dtype)
    diag = jnp.diag(A)
    candidates = jnp.where(diag == 0, lower, -diag * scale**2)
    shift0 = jnp.maximum(jnp.max(candidates, initial=0.0), 0.0)
    shift0 = jnp.where(shift0 > 0, jnp.maximum(shift0, lower), shift0)

    def keep_trying(state: _ShiftState) -> Array:
        return ~state.done & (state.attempts < max_attempts)

    def attempt(state: _ShiftState) -> _ShiftState:
        L, info = cholesky_factor(scaled + state.trial_shift * eye)
        ok = info == 0

        # Try a smaller shift while the lower bound is still being hit
        reduce = ok & (state.trial_shift == state.lower) & (state.reductions < shift_reductions)
        new_lower = jnp.where(reduce, state.lower / shift_factor, state.lower)
        next_shift = jnp.where(
            ok,
            jnp.where(reduce, new_lower, state.trial_shift),
            jnp.maximum(2.0 * state.trial_shift, state.lower),
        )

        return _ShiftState(
            L=jnp.where(ok, L, state.L),
            shift=jnp.where(ok, state.trial_shift, state.shift),
            have_factor=state.have_factor | ok,
            trial_shift=next_shift,
            lower=new_lower,
            reductions=state.reductions + reduce.astype(jnp.int32),
            attempts=state.attempts + 1,
            done=ok & ~reduce,
        )

    init = _ShiftState(
        L=jnp.zeros_like(A),
        shift=jnp.zeros((), dtype=A.dtype),
        have_factor=jnp.array(False),
        trial_shift=shift0,
        lower=lower,
        reductions=jnp.int32(0),
        attempts=jnp.int32(0),
        done=jnp.array(False),
    )
    state = lax.while_loop(keep_trying, attempt, init)

    def gershgorin(_):
        # Diagonally dominant shift always factors
        shift = jnp.max(jnp.sum(jnp.abs(scaled), axis=1)) + state.lower
        L, _ = cholesky_factor(scaled + shift * eye)
        return L, shift

    def best_effort(_):
        return state.L, state.shift

    L, shift = lax.cond(state.have_factor, best_effort, gershgorin, None)

    info = jnp.where(
        state.done, int(CholeskyStatus.SUCCESS), int(CholeskyStatus.SHIFT_BUDGET_EXCEEDED)
    ).astype(jnp.int32)

    # Undo the scaling
    L = L / scale[:, None]
    return CholeskyResult(L=L, shift=shift, scale=scale, info=info)


@jax.jit
def solve_lower(L: Matrix, r: Vector) -> Vector:
    """Compute ``L^{-1} r`` for lower-triangular ``L``."""
    return jsp.linalg.solve_triangular(L, r, lower=True)


@jax.jit
def solve_upper(L: Matrix, r: Vector) -> Vector:
    """Compute ``L^{-T} r`` for lower-triangular ``L``."""
    return jsp.linalg.solve_triangular(L.T, r, lower=False)
