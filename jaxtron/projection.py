"""Box projection primitives.

All functions are elementwise over the variable vector and branch with
``jnp.where`` so they trace without data-dependent control flow.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jax import Array

from .types import Vector


@jax.jit
def project_to_box(x: Vector, xl: Vector, xu: Vector) -> Vector:
    """Project ``x`` onto the box ``[xl, xu]``."""
    return jnp.maximum(xl, jnp.minimum(x, xu))


@jax.jit
def breakpoints(x: Vector, xl: Vector, xu: Vector, w: Vector) -> tuple[Array, Array, Array]:
    """Breakpoints of the projected path ``P(x + alpha w)`` for ``alpha > 0``.

    Args:
        x: Point inside the box.
        xl: Lower bounds.
        xu: Upper bounds.
        w: Search direction.

    Returns:
        Tuple ``(nbrpt, brptmin, brptmax)``: the number of finite breakpoints
        and their smallest and largest values (both 0 when there are none).
    """
    # Compute the breakpoint of every coordinate
    toward_upper = (x < xu) & (w > 0)
    toward_lower = (x > xl) & (w < 0)
    safe_w = jnp.where(w != 0, w, 1.0)
    brpt = jnp.where(
        toward_upper,
        (xu - x) / safe_w,
        jnp.where(toward_lower, (xl - x) / safe_w, jnp.inf),
    )

    finite = jnp.isfinite(brpt)
    nbrpt = jnp.sum(finite).astype(jnp.int32)
    brptmin = jnp.where(nbrpt > 0, jnp.min(jnp.where(finite, brpt, jnp.inf)), 0.0)
    brptmax = jnp.where(nbrpt > 0, jnp.max(jnp.where(finite, brpt, -jnp.inf)), 0.0)
    return nbrpt, brptmin, brptmax


@jax.jit
def projected_step(x: Vector, xl: Vector, xu: Vector, alpha: Array, w: Vector) -> Vector:
    """Return ``P(x + alpha w) - x`` where ``P`` projects onto the box."""
    trial = x + alpha * w
    return jnp.where(trial < xl, xl - x, jnp.where(trial > xu, xu - x, alpha * w))


@jax.jit
def projected_gradient_norm(x: Vector, xl: Vector, xu: Vector, g: Vector) -> Array:
    """Infinity norm of the projected gradient.

    At a lower bound only descent into the box counts (``min(0, g)``), at an
    upper bound only ``max(0, g)``. Fixed variables contribute zero.
    """
    at_lower = x <= xl
    at_upper = x >= xu
    component = jnp.where(
        xl == xu,
        0.0,
        jnp.where(
            at_lower,
            jnp.minimum(0.0, g),
            jnp.where(at_upper, jnp.maximum(0.0, g), g),
        ),
    )
    return jnp.max(jnp.abs(component), initial=0.0)
