"""Generalized Cauchy step along the projected steepest descent path."""

from __future__ import annotations

from functools import partial

import jax
import jax.numpy as jnp
from jax import Array, lax

from .blas import ddot, dnrm2, dssyax
from .projection import breakpoints, projected_step
from .types import Matrix, Vector


@partial(jax.jit, static_argnames=("mu0", "interpf", "extrapf", "max_iters"))
def cauchy_step(
    x: Vector,
    xl: Vector,
    xu: Vector,
    A: Matrix,
    g: Vector,
    delta: Array,
    alpha: Array,
    *,
    mu0: float = 1e-2,
    interpf: float = 0.1,
    extrapf: float = 10.0,
    max_iters: int = 50,
) -> tuple[Vector, Array, Array]:
    """Compute a Cauchy step ``s = P(x - alpha g) - x``.

    The step must satisfy ``||s|| <= delta`` and the sufficient decrease
    condition ``q(s) <= mu0 * g's`` with ``q(s) = 0.5 s'As + g's``. Starting
    from the previous ``alpha``, the step length is interpolated down until
    both conditions hold, or extrapolated up while they keep holding.

    Args:
        x: Current iterate, inside the box.
        xl: Lower bounds.
        xu: Upper bounds.
        A: Symmetric Hessian.
        g: Gradient at ``x``.
        delta: Trust region radius.
        alpha: Initial step length, normally the previous Cauchy step length.
        mu0: Sufficient decrease parameter.
        interpf: Interpolation factor.
        extrapf: Extrapolation factor.
        max_iters: Bound on the trial steps of each search.

    Returns:
        Tuple ``(s, alpha, iters)`` with the Cauchy step, its step length and the
        number of trial steps taken.
    """

    def acceptable(alpha):
        s = projected_step(x, xl, xu, -alpha, g)
        gts = ddot(g, s)
        q = 0.5 * ddot(s, dssyax(A, s)) + gts
        return (dnrm2(s) <= delta) & (q <= mu0 * gts)

    # Extrapolation stops at the last breakpoint unless some coordinate runs
    # toward an infinite bound
    _, _, brptmax = breakpoints(x, xl, xu, -g)
    unbounded = jnp.any(((-g > 0) & jnp.isposinf(xu)) | ((-g < 0) & jnp.isneginf(xl)))
    limit = jnp.where(unbounded, jnp.inf, brptmax)

    def interpolate(alpha):
        def cond(state):
            _, iters, search = state
            return search & (iters < max_iters)

        def body(state):
            alpha, iters, _ = state
            alpha = interpf * alpha
            return alpha, iters + 1, ~acceptable(alpha)

        alpha, iters, _ = lax.while_loop(cond, body, (alpha, jnp.int32(0), jnp.array(True)))
        return alpha, iters

    def extrapolate(alpha):
        def cond(state):
            alpha, _, iters, search = state
            return search & (alpha <= limit) & (iters < max_iters)

        def body(state):
            alpha, alphas, iters, _ = state
            alpha = extrapf * alpha
            ok = acceptable(alpha)
            return alpha, jnp.where(ok, alpha, alphas), iters + 1, ok

        _, alphas, iters, _ = lax.while_loop(
            cond, body, (alpha, alpha, jnp.int32(0), jnp.array(True))
        )
        return alphas, iters

    alpha = jnp.asarray(alpha, dtype=x.dtype)
    alpha, iters = lax.cond(acceptable(alpha), extrapolate, interpolate, alpha)

    s = projected_step(x, xl, xu, -alpha, g)
    return s, alpha, iters
