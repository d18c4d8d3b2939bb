"""Subspace preconditioned CG for the bound-constrained quadratic subproblem.

Starting from the Cauchy step, each pass fixes the variables sitting on a
bound, solves the trust region subproblem on the free variables with a
shifted Cholesky preconditioner, and moves with a projected search. Passes
repeat while the search keeps activating new bounds.
"""

from __future__ import annotations

from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array, lax

from .blas import dnrm2, dssyax
from .cholesky import cholesky_shifted, solve_upper
from .line_search import projected_search
from .projection import project_to_box, projected_gradient_norm
from .trpcg import trust_region_cg
from .types import CholeskyStatus, Matrix, SubspaceStatus, TrustRegionCGStatus, Vector


class SubspaceResult(NamedTuple):
    """Result of the subspace CG loop."""

    x: Vector
    s: Vector
    info: Array
    iters: Array
    nshift_fail: Array


class _FaceState(NamedTuple):
    x: Vector
    s: Vector
    As: Vector
    info: Array
    iters: Array
    nshift_fail: Array
    faces: Array


@partial(
    jax.jit,
    static_argnames=(
        "itermax",
        "search_mu0",
        "search_interpf",
        "search_max_iters",
        "shift_min",
        "shift_reductions",
        "shift_factor",
        "max_shift_attempts",
    ),
)
def subspace_cg(
    x: Vector,
    xl: Vector,
    xu: Vector,
    A: Matrix,
    g: Vector,
    s: Vector,
    delta: Array,
    rtol: Array,
    itermax: int,
    *,
    search_mu0: float = 1e-2,
    search_interpf: float = 0.5,
    search_max_iters: int = 60,
    shift_min: float = 1e-3,
    shift_reductions: int = 3,
    shift_factor: float = 512.0,
    max_shift_attempts: int = 50,
) -> SubspaceResult:
    """Minimize ``q(s) = 0.5 s'As + g's`` over the box starting from a Cauchy step.

    Args:
        x: Current iterate, inside the box.
        xl: Lower bounds.
        xu: Upper bounds.
        A: Symmetric Hessian.
        g: Gradient at ``x``.
        s: Cauchy step.
        delta: Trust region radius.
        rtol: Relative tolerance on the reduced gradient.
        itermax: Limit on the CG iterations summed over all faces.
        search_mu0: Sufficient decrease parameter of the projected search.
        search_interpf: Backtracking factor of the projected search.
        search_max_iters: Trial step limit of the projected search.
        shift_min: Default lower bound on the Cholesky shift.
        shift_reductions: Number of reductions of the Cholesky shift bound.
        shift_factor: Divisor of the Cholesky shift bound.
        max_shift_attempts: Trial factorization limit.

    Returns:
        SubspaceResult with the trial point ``x + s`` (projected), the full step,
        a SubspaceStatus code, the total CG iterations and the number of
        factorizations that exhausted the shift budget.
    """
    n = x.shape[0]

    def keep_going(state: _FaceState) -> Array:
        return (state.info == int(SubspaceStatus.RUNNING)) & (state.faces < n)

    def face(state: _FaceState) -> _FaceState:
        x, s, As = state.x, state.s, state.As

        # Free variables of the current face
        free = (xl < x) & (x < xu)
        nfree = jnp.sum(free)

        def empty_face(_):
            return state._replace(
                info=jnp.int32(int(SubspaceStatus.CONVERGED)), faces=state.faces + 1
            )

        def solve_face(_):
            # Reduced Hessian with fixed rows and columns zeroed
            B = jnp.where(free[:, None] & free[None, :], A, 0.0)
            chol = cholesky_shifted(
                B,
                shift_min=shift_min,
                shift_reductions=shift_reductions,
                shift_factor=shift_factor,
                max_attempts=max_shift_attempts,
            )

            # Gradient of q at the current point, reduced to the free set
            gq = As + g
            gfree = jnp.where(free, gq, 0.0)
            gfnorm = dnrm2(jnp.where(free, g, 0.0))

            # The faces share one CG iteration budget
            w, cg_info, cg_iters = trust_region_cg(
                B, gfree, delta, chol.L, rtol * gfnorm, 0.0, itermax, itermax - state.iters
            )
            iters = state.iters + cg_iters
            direction = solve_upper(chol.L, w)

            search = projected_search(
                x,
                xl,
                xu,
                A,
                gq,
                direction,
                mu0=search_mu0,
                interpf=search_interpf,
                max_iters=search_max_iters,
            )
            s_new = s + search.s
            As_new = dssyax(A, s_new)

            gpnorm = projected_gradient_norm(search.x, xl, xu, As_new + g)
            hit_boundary = (cg_info == int(TrustRegionCGStatus.NEGATIVE_CURVATURE)) | (
                cg_info == int(TrustRegionCGStatus.BOUNDARY)
            )
            exhausted = (cg_info == int(TrustRegionCGStatus.MAX_ITERATIONS)) | (iters >= itermax)
            info = jnp.where(
                hit_boundary,
                int(SubspaceStatus.TRUST_REGION_BOUND),
                jnp.where(
                    gpnorm <= rtol * gfnorm,
                    int(SubspaceStatus.CONVERGED),
                    jnp.where(
                        exhausted,
                        int(SubspaceStatus.MAX_ITERATIONS),
                        int(SubspaceStatus.RUNNING),
                    ),
                ),
            ).astype(jnp.int32)

            shift_failed = (chol.info != int(CholeskyStatus.SUCCESS)).astype(jnp.int32)
            return _FaceState(
                x=search.x,
                s=s_new,
                As=As_new,
                info=info,
                iters=iters,
                nshift_fail=state.nshift_fail + shift_failed,
                faces=state.faces + 1,
            )

        return lax.cond(nfree == 0, empty_face, solve_face, None)

    init = _FaceState(
        x=project_to_box(x + s, xl, xu),
        s=s,
        As=dssyax(A, s),
        info=jnp.int32(int(SubspaceStatus.RUNNING)),
        iters=jnp.int32(0),
        nshift_fail=jnp.int32(0),
        faces=jnp.int32(0),
    )
    state = lax.while_loop(keep_going, face, init)

    # Every face was visited without meeting a stopping test
    info = jnp.where(
        state.info == int(SubspaceStatus.RUNNING), int(SubspaceStatus.MAX_ITERATIONS), state.info
    ).astype(jnp.int32)
    return SubspaceResult(
        x=state.x, s=state.s, info=info, iters=state.iters, nshift_fail=state.nshift_fail
    )
