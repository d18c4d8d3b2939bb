"""Projected backtracking search on the quadratic model.

Used by the subspace CG loop to move along a CG direction while staying in the
box. The search stops at the first step length along the projected path that
gives sufficient decrease, and never stops short of the first breakpoint.
"""

from __future__ import annotations

from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array, lax

from .blas import ddot, dssyax
from .projection import breakpoints, project_to_box, projected_step
from .types import Matrix, Vector


class SearchResult(NamedTuple):
    """Result of a projected search."""

    x: Vector
    s: Vector
    alpha: Array
    iters: Array


@partial(jax.jit, static_argnames=("mu0", "interpf", "max_iters"))
def projected_search(
    x: Vector,
    xl: Vector,
    xu: Vector,
    A: Matrix,
    g: Vector,
    w: Vector,
    *,
    mu0: float = 1e-2,
    interpf: float = 0.5,
    max_iters: int = 60,
) -> SearchResult:
    """Backtracking search along ``P(x + alpha w)`` for the model ``0.5 s'As + g's``.

    Args:
        x: Current point, inside the box.
        xl: Lower bounds.
        xu: Upper bounds.
        A: Symmetric Hessian of the model.
        g: Model gradient at ``x``.
        w: Search direction.
        mu0: Sufficient decrease parameter.
        interpf: Backtracking factor.
        max_iters: Bound on the number of trial steps.

    Returns:
        SearchResult with the new point, the step taken from ``x``, the final
        step length and the number of trial steps.
    """
    _, brptmin, _ = breakpoints(x, xl, xu, w)

    def sufficient_decrease(alpha):
        s = projected_step(x, xl, xu, alpha, w)
        gts = ddot(g, s)
        q = 0.5 * ddot(s, dssyax(A, s)) + gts
        return q <= mu0 * gts

    def cond(state):
        alpha, iters, search = state
        return search & (alpha > brptmin) & (iters < max_iters)

    def body(state):
        alpha, iters, _ = state
        found = sufficient_decrease(alpha)
        alpha = jnp.where(found, alpha, interpf * alpha)
        return alpha, iters + 1, ~found

    init = (jnp.ones((), dtype=x.dtype), jnp.int32(0), jnp.array(True))
    alpha, iters, _ = lax.while_loop(cond, body, init)

    # Never stop short of the first breakpoint
    alpha = jnp.where((alpha < 1.0) & (alpha < brptmin), brptmin, alpha)

    s = projected_step(x, xl, xu, alpha, w)
    return SearchResult(x=project_to_box(x + alpha * w, xl, xu), s=s, alpha=alpha, iters=iters)
