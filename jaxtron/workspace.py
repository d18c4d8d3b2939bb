"""Per-instance persisted state of the TRON driver.

A workspace is an immutable pytree. Every driver call returns a new one, so
instances stacked into a batch can never alias each other's buffers.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array

from .exceptions import ErrorCode, _tron_throw
from .types import MAX_VARIABLES, Task, TerminationReason, Vector, Work


class TronWorkspace(NamedTuple):
    """All state the driver carries between calls for one problem instance."""

    # Iterate, bounds and the saved iterate of the current step
    x: Vector
    xl: Vector
    xu: Vector
    xc: Vector
    s: Vector

    # Function values at the current and saved iterate
    f: Array
    fc: Array

    # Trust region state
    delta: Array
    alphac: Array
    prered: Array

    # Control codes
    task: Array
    work: Array
    reason: Array
    cg_info: Array

    # Counters
    iter: Array
    iterscg: Array
    nfev: Array
    ngev: Array
    nsmall: Array
    nshift_fail: Array

    @property
    def n(self) -> int:
        """Number of variables (the padded width for batched workspaces)."""
        return self.x.shape[-1]


def _check_dimensions(x0, xl, xu) -> None:
    """Validate static shapes on the host."""
    if x0.ndim != 1:
        _tron_throw(
            f"expected a vector of variables, got shape {x0.shape}", ErrorCode.DIMENSION_MISMATCH
        )
    if xl.shape != x0.shape or xu.shape != x0.shape:
        _tron_throw(
            f"bound shapes {xl.shape} and {xu.shape} do not match x0 of shape {x0.shape}",
            ErrorCode.DIMENSION_MISMATCH,
        )
    if x0.shape[0] > MAX_VARIABLES:
        _tron_throw(
            f"{x0.shape[0]} variables exceed the limit of {MAX_VARIABLES} per instance",
            ErrorCode.DIMENSION_TOO_LARGE,
        )


def create_workspace(x0, xl, xu, delta: float = 0.0) -> TronWorkspace:
    """Create a fresh workspace in the START phase.

    Args:
        x0: Initial point; it is projected into the box at START.
        xl: Lower bounds (``-inf`` allowed).
        xu: Upper bounds (``inf`` allowed).
        delta: Initial trust region radius. Non-positive values defer the
            choice to the options or to the norm of the first gradient.

    Returns:
        TronWorkspace with all counters zeroed and ``task == START``.
    """
    x0 = jnp.asarray(x0, dtype=jnp.float64)
    xl = jnp.asarray(xl, dtype=jnp.float64)
    xu = jnp.asarray(xu, dtype=jnp.float64)
    _check_dimensions(x0, xl, xu)

    zero = jnp.zeros((), dtype=jnp.float64)
    izero = jnp.zeros((), dtype=jnp.int32)
    return TronWorkspace(
        x=x0,
        xl=xl,
        xu=xu,
        xc=x0,
        s=jnp.zeros_like(x0),
        f=zero,
        fc=zero,
        delta=jnp.asarray(delta, dtype=jnp.float64),
        alphac=jnp.ones((), dtype=jnp.float64),
        prered=zero,
        task=jnp.int32(int(Task.START)),
        work=jnp.int32(int(Work.START)),
        reason=jnp.int32(int(TerminationReason.NONE)),
        cg_info=izero,
        iter=izero,
        iterscg=izero,
        nfev=izero,
        ngev=izero,
        nsmall=izero,
        nshift_fail=izero,
    )


def stack_workspaces(workspaces: Sequence[TronWorkspace]) -> TronWorkspace:
    """Stack workspaces of equal width along a new leading batch axis."""
    if not workspaces:
        _tron_throw("cannot stack an empty sequence of workspaces", ErrorCode.DIMENSION_MISMATCH)
    widths = {ws.n for ws in workspaces}
    if len(widths) != 1:
        _tron_throw(
            f"workspaces have different widths {sorted(widths)}", ErrorCode.DIMENSION_MISMATCH
        )
    return jax.tree_util.tree_map(lambda *leaves: jnp.stack(leaves), *workspaces)


def unstack_workspace(ws: TronWorkspace, index: int) -> TronWorkspace:
    """Extract one instance from a stacked workspace."""
    return jax.tree_util.tree_map(lambda leaf: leaf[index], ws)


def pad_problem(x0, xl, xu, width: int) -> tuple[Array, Array, Array]:
    """Pad a problem to ``width`` variables with fixed dummy coordinates.

    Padding coordinates have ``xl == xu == 0`` so they are never free.
    """
    x0 = jnp.asarray(x0, dtype=jnp.float64)
    n = x0.shape[0]
    if n > width:
        _tron_throw(f"cannot pad {n} variables to width {width}", ErrorCode.DIMENSION_MISMATCH)
    pad = (0, width - n)
    return (
        jnp.pad(x0, pad),
        jnp.pad(jnp.asarray(xl, dtype=jnp.float64), pad),
        jnp.pad(jnp.asarray(xu, dtype=jnp.float64), pad),
    )
