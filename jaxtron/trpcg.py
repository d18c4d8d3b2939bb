"""Preconditioned conjugate gradient method for the trust region subproblem.

Solves ``min 0.5 w'Bw + g'w  s.t.  ||w|| <= delta`` in the variables scaled by
the preconditioner ``L``, where ``B = L^{-1} A L^{-T}``. Negative curvature and
boundary crossing are checked before a plain CG step is accepted.
"""

from __future__ import annotations

from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array, lax

from .blas import ddot, dnrm2, dssyax
from .cholesky import solve_lower, solve_upper
from .types import Matrix, TrustRegionCGStatus, Vector


@jax.jit
def trust_region_boundary(x: Vector, p: Vector, delta: Array) -> Array:
    """Largest non-negative ``sigma`` with ``||x + sigma p|| = delta``.

    Assumes ``||x|| <= delta``. The root is computed in a form that avoids
    cancellation between ``x'p`` and the square root of the discriminant.
    """
    ptx = ddot(p, x)
    ptp = ddot(p, p)
    xtx = ddot(x, x)
    dsq = delta * delta

    # Guard against ||x|| slightly larger than delta
    rad = jnp.sqrt(jnp.maximum(0.0, ptx * ptx + ptp * (dsq - xtx)))

    safe_plus = jnp.where(ptx + rad != 0, ptx + rad, 1.0)
    safe_ptp = jnp.where(ptp > 0, ptp, 1.0)
    return jnp.where(
        ptx > 0,
        (dsq - xtx) / safe_plus,
        jnp.where(rad > 0, (rad - ptx) / safe_ptp, 0.0),
    )


class _CGState(NamedTuple):
    w: Vector
    r: Vector
    t: Vector
    p: Vector
    rho: Array
    iters: Array
    info: Array


@partial(jax.jit, static_argnames=("itermax",))
def trust_region_cg(
    A: Matrix,
    g: Vector,
    delta: Array,
    L: Matrix,
    tol: Array,
    stol: Array,
    itermax: int,
    budget: Array | None = None,
) -> tuple[Vector, Array, Array]:
    """Preconditioned CG on the trust region subproblem.

    Args:
        A: Symmetric matrix of the quadratic.
        g: Gradient of the quadratic at zero.
        delta: Trust region radius in the scaled variables.
        L: Lower-triangular preconditioner factor.
        tol: Tolerance on the residual ``t = -g - A s`` in the original variables.
        stol: Tolerance on the preconditioned residual.
        itermax: Maximum number of CG iterations.
        budget: Traced cap on the iterations, at most ``itermax``. Lets a
            caller share one iteration budget between several solves.

    Returns:
        Tuple ``(w, info, iters)``. The step in the original variables is
        ``solve_upper(L, w)``; ``info`` is a TrustRegionCGStatus code.
    """
    # Residuals in original and preconditioned variables
    t = -g
    r = solve_lower(L, t)
    p = r
    rho = ddot(r, r)
    rnorm0 = jnp.sqrt(rho)

    info0 = jnp.where(
        rnorm0 == 0, int(TrustRegionCGStatus.CONVERGED), int(TrustRegionCGStatus.RUNNING)
    ).astype(jnp.int32)

    limit = itermax if budget is None else jnp.minimum(budget, itermax)

    def cond(state: _CGState) -> Array:
        return (state.info == int(TrustRegionCGStatus.RUNNING)) & (state.iters < limit)

    def body(state: _CGState) -> _CGState:
        w, r, t, p, rho = state.w, state.r, state.t, state.p, state.rho

        # Compute q = B p
        z = solve_upper(L, p)
        Az = dssyax(A, z)
        q = solve_lower(L, Az)

        ptq = ddot(p, q)
        alpha = jnp.where(ptq > 0, rho / jnp.where(ptq > 0, ptq, 1.0), 0.0)
        sigma = trust_region_boundary(w, p, delta)

        # Negative curvature or boundary crossing ends on the boundary
        to_boundary = (ptq <= 0) | (alpha >= sigma)
        boundary_info = jnp.where(
            ptq <= 0,
            int(TrustRegionCGStatus.NEGATIVE_CURVATURE),
            int(TrustRegionCGStatus.BOUNDARY),
        )

        w_cg = w + alpha * p
        r_cg = r - alpha * q
        t_cg = t - alpha * Az
        cg_info = jnp.where(
            dnrm2(t_cg) <= tol,
            int(TrustRegionCGStatus.CONVERGED),
            jnp.where(
                dnrm2(r_cg) <= stol,
                int(TrustRegionCGStatus.SMALL_RESIDUAL),
                int(TrustRegionCGStatus.RUNNING),
            ),
        )

        rtr = ddot(r_cg, r_cg)
        beta = rtr / jnp.where(rho > 0, rho, 1.0)
        p_cg = r_cg + beta * p

        return _CGState(
            w=jnp.where(to_boundary, w + sigma * p, w_cg),
            r=jnp.where(to_boundary, r, r_cg),
            t=jnp.where(to_boundary, t, t_cg),
            p=jnp.where(to_boundary, p, p_cg),
            rho=jnp.where(to_boundary, rho, rtr),
            iters=state.iters + 1,
            info=jnp.where(to_boundary, boundary_info, cg_info).astype(jnp.int32),
        )

    init = _CGState(
        w=jnp.zeros_like(g),
        r=r,
        t=t,
        p=p,
        rho=rho,
        iters=jnp.int32(0),
        info=info0,
    )
    state = lax.while_loop(cond, body, init)

    info = jnp.where(
        state.info == int(TrustRegionCGStatus.RUNNING),
        int(TrustRegionCGStatus.MAX_ITERATIONS),
        state.info,
    ).astype(jnp.int32)
    return state.w, info, state.iters
