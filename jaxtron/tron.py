"""Re-entrant TRON driver.

``tron`` advances one problem instance by one bounded unit of work and
returns a new workspace whose ``task`` tells the caller what to do next:

- ``EVAL_F``: evaluate ``f`` at ``ws.x`` and call again.
- ``EVAL_GH``: evaluate ``g`` and ``A`` at ``ws.x`` and call again.
- ``NEWX``: a step was accepted; test convergence with
  ``check_gradient_convergence`` and call again.
- ``CONVERGENCE``, ``WARNING``, ``ERROR``: terminal, ``ws.reason`` says why.

The internal phase ``ws.work`` selects the branch with ``lax.switch`` so the
same compiled step serves every instance of a batch.
"""

from __future__ import annotations

from functools import partial

import jax
import jax.numpy as jnp
from jax import Array, lax

from .blas import ddot, dnrm2, dssyax, symmetrize_lower
from .cauchy import cauchy_step
from .projection import project_to_box, projected_gradient_norm
from .solver_options import DEFAULT_OPTIONS, TronOptions
from .spcg import subspace_cg
from .types import Matrix, Task, TerminationReason, Vector, Work
from .workspace import TronWorkspace


def _cast_like(new: TronWorkspace, like: TronWorkspace) -> TronWorkspace:
    """Give every field the dtype and shape of the incoming workspace."""
    return jax.tree_util.tree_map(
        lambda a, b: jnp.broadcast_to(jnp.asarray(a, dtype=b.dtype), b.shape), new, like
    )


def _select(pred: Array, a: TronWorkspace, b: TronWorkspace) -> TronWorkspace:
    """Elementwise choice between two workspaces."""
    return jax.tree_util.tree_map(lambda x, y: jnp.where(pred, x, y), a, b)


def _terminate(ws: TronWorkspace, task: int | Array, reason: int | Array) -> TronWorkspace:
    return ws._replace(task=task, reason=reason, work=int(Work.DONE))


def _start(ws: TronWorkspace, f: Array, g: Vector, A: Matrix, options: TronOptions):
    # Check the bounds before any iteration
    invalid = jnp.any(ws.xl > ws.xu)

    x = project_to_box(ws.x, ws.xl, ws.xu)
    started = ws._replace(
        x=x,
        xc=x,
        f=f,
        fc=f,
        iter=1,
        iterscg=0,
        alphac=1.0,
        nfev=1,
        ngev=0,
        nsmall=0,
        nshift_fail=0,
        task=int(Task.EVAL_GH),
        work=int(Work.INITIALIZE),
        reason=int(TerminationReason.NONE),
    )
    failed = _terminate(ws, int(Task.ERROR), int(TerminationReason.INVALID_BOUNDS))
    return _cast_like(_select(invalid, failed, _cast_like(started, ws)), ws)


def _initialize(ws: TronWorkspace, f: Array, g: Vector, A: Matrix, options: TronOptions):
    # Initial trust region radius
    if options.delta0 is None:
        default_delta = dnrm2(g)
    else:
        default_delta = jnp.asarray(options.delta0, dtype=ws.delta.dtype)
    delta = jnp.where(ws.delta > 0, ws.delta, default_delta)

    ws = _cast_like(ws._replace(ngev=ws.ngev + 1, delta=delta), ws)
    return _compute(ws, ws.f, g, A, options)


def _compute(ws: TronWorkspace, f: Array, g: Vector, A: Matrix, options: TronOptions):
    over_feval = ws.nfev >= options.max_feval
    over_iter = ws.iter > options.max_iter

    def stop(ws):
        reason = jnp.where(
            over_feval, int(TerminationReason.MAX_FEVAL), int(TerminationReason.MAX_ITER)
        )
        return _cast_like(_terminate(ws, int(Task.WARNING), reason), ws)

    def step(ws):
        # Save the current iterate
        x, xl, xu = ws.x, ws.xl, ws.xu

        s, alphac, _ = cauchy_step(
            x,
            xl,
            xu,
            A,
            g,
            ws.delta,
            ws.alphac,
            mu0=options.cauchy_mu0,
            interpf=options.cauchy_interpf,
            extrapf=options.cauchy_extrapf,
            max_iters=options.cauchy_max_iters,
        )

        itermax = options.cg_itermax if options.cg_itermax is not None else ws.n
        sub = subspace_cg(
            x,
            xl,
            xu,
            A,
            g,
            s,
            ws.delta,
            options.cgtol,
            itermax,
            search_mu0=options.search_mu0,
            search_interpf=options.search_interpf,
            search_max_iters=options.search_max_iters,
            shift_min=options.shift_min,
            shift_reductions=options.shift_reductions,
            shift_factor=options.shift_factor,
            max_shift_attempts=options.max_shift_attempts,
        )

        # Predicted reduction of the quadratic model
        prered = -(ddot(sub.s, g) + 0.5 * ddot(sub.s, dssyax(A, sub.s)))

        trial = ws._replace(
            x=sub.x,
            xc=x,
            fc=ws.f,
            s=sub.s,
            alphac=alphac,
            prered=prered,
            cg_info=sub.info,
            iterscg=ws.iterscg + sub.iters,
            nshift_fail=ws.nshift_fail + sub.nshift_fail,
            task=int(Task.EVAL_F),
            work=int(Work.EVALUATE),
        )
        return _cast_like(trial, ws)

    return lax.cond(over_feval | over_iter, stop, step, ws)


def _evaluate(ws: TronWorkspace, f: Array, g: Vector, A: Matrix, options: TronOptions):
    o = options
    nfev = ws.nfev + 1
    actred = ws.fc - f
    prered = ws.prered

    # On the first iteration, adjust the initial step bound
    snorm = dnrm2(ws.s)
    delta = jnp.where(ws.iter == 1, jnp.minimum(ws.delta, snorm), ws.delta)

    # Minimizer of the quadratic interpolating f along the step
    g0 = ddot(g, ws.s)
    denom = f - ws.fc - g0
    safe_denom = jnp.where(denom > 0, denom, 1.0)
    alpha = jnp.where(denom <= 0, o.sigma3, jnp.maximum(o.sigma1, -0.5 * g0 / safe_denom))

    # Update the trust region bound
    delta = jnp.where(
        actred < o.eta0 * prered,
        jnp.minimum(jnp.maximum(alpha, o.sigma1) * snorm, o.sigma2 * delta),
        jnp.where(
            actred < o.eta1 * prered,
            jnp.maximum(o.sigma1 * delta, jnp.minimum(alpha * snorm, o.sigma2 * delta)),
            jnp.where(
                actred < o.eta2 * prered,
                jnp.maximum(o.sigma1 * delta, jnp.minimum(alpha * snorm, o.sigma3 * delta)),
                jnp.maximum(delta, jnp.minimum(alpha * snorm, o.sigma3 * delta)),
            ),
        ),
    )

    # Accept or reject the step
    accept = actred > o.eta0 * prered
    x = jnp.where(accept, ws.x, ws.xc)
    f_new = jnp.where(accept, f, ws.fc)

    # Function value tests
    fabs = jnp.abs(f_new)
    fatol_hit = (jnp.abs(actred) <= o.fatol) & (prered <= o.fatol)
    frtol_hit = (jnp.abs(actred) <= o.frtol * fabs) & (prered <= o.frtol * fabs)

    # Count consecutive accepted steps with a small reduction
    small_step = fatol_hit | frtol_hit
    nsmall = jnp.where(accept, jnp.where(small_step, ws.nsmall + 1, 0), ws.nsmall)

    updated = _cast_like(
        ws._replace(
            x=x,
            f=f_new,
            delta=delta,
            nfev=nfev,
            nsmall=nsmall,
            iter=ws.iter + accept.astype(ws.iter.dtype),
            task=int(Task.EVAL_GH),
            work=int(Work.NEWX),
        ),
        ws,
    )

    # Later tests take precedence
    stagnant = delta <= o.xtol * jnp.maximum(1.0, dnrm2(x))
    unbounded = f_new < o.fmin
    # A rejected small step only ends the solve when one small step suffices
    small = small_step & jnp.where(accept, nsmall >= o.ftol_patience, o.ftol_patience == 1)
    task = jnp.where(small | unbounded, int(Task.CONVERGENCE), int(Task.WARNING))
    reason = jnp.where(
        small,
        jnp.where(frtol_hit, int(TerminationReason.FRTOL), int(TerminationReason.FATOL)),
        jnp.where(unbounded, int(TerminationReason.FMIN), int(TerminationReason.STAGNATION)),
    )
    terminal = stagnant | unbounded | small
    finished = _cast_like(_terminate(updated, task, reason), ws)

    def done(_):
        return finished

    def advance(_):
        # A rejected step recomputes from the restored iterate in the same call
        return lax.cond(accept, lambda u: u, lambda u: _compute(u, u.f, g, A, o), updated)

    return lax.cond(terminal, done, advance, None)


def _newx(ws: TronWorkspace, f: Array, g: Vector, A: Matrix, options: TronOptions):
    newx = ws._replace(ngev=ws.ngev + 1, task=int(Task.NEWX), work=int(Work.COMPUTE))
    return _cast_like(newx, ws)


def _finished(ws: TronWorkspace, f: Array, g: Vector, A: Matrix, options: TronOptions):
    return ws


_BRANCHES = (_start, _initialize, _compute, _evaluate, _newx, _finished)


@partial(jax.jit, static_argnames=("options",))
def tron(
    ws: TronWorkspace,
    f: Array | float,
    g: Vector,
    A: Matrix,
    options: TronOptions = DEFAULT_OPTIONS,
) -> TronWorkspace:
    """Advance one instance of the TRON state machine.

    The call is a pure function of its inputs: the same workspace and the same
    ``f``, ``g`` and ``A`` always give the same result.

    Args:
        ws: Workspace returned by the previous call, or by ``create_workspace``.
        f: Objective value at ``ws.x``. At START it must be the value at the
            projection of ``ws.x`` onto the box.
        g: Gradient at ``ws.x`` (last requested by ``EVAL_GH``).
        A: Hessian at ``ws.x``; the lower triangle is authoritative.
        options: Static solver options.

    Returns:
        The updated workspace.
    """
    f = jnp.asarray(f, dtype=ws.f.dtype)
    g = jnp.asarray(g, dtype=ws.x.dtype)
    A = symmetrize_lower(jnp.asarray(A, dtype=ws.x.dtype))

    branches = [partial(branch, options=options) for branch in _BRANCHES]
    return lax.switch(ws.work, branches, ws, f, g, A)


@partial(jax.jit, static_argnames=("gtol",))
def check_gradient_convergence(ws: TronWorkspace, g: Vector, gtol: float) -> TronWorkspace:
    """Declare convergence at a new iterate whose projected gradient is small.

    Only acts when ``ws.task == NEWX``; other workspaces are returned unchanged.
    """
    gpnorm = projected_gradient_norm(ws.x, ws.xl, ws.xu, jnp.asarray(g, dtype=ws.x.dtype))
    converged = (ws.task == int(Task.NEWX)) & (gpnorm <= gtol)
    done = _cast_like(_terminate(ws, int(Task.CONVERGENCE), int(TerminationReason.GTOL)), ws)
    return _select(converged, done, ws)
