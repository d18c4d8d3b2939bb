"""Level-1 vector kernels and symmetric matrix helpers.

Each kernel takes an optional static ``n``: only the first ``n`` entries take
part in the operation, the remaining entries are left untouched (or treated
as zero for reductions). This lets padded instances share array shapes.
"""

from __future__ import annotations

from functools import partial

import jax
import jax.numpy as jnp
from jax import Array

from .types import Matrix, Vector


def _head(x: Vector, n: int | None) -> Vector:
    """Return the leading ``n`` entries, or the whole vector."""
    return x if n is None else x[:n]


@partial(jax.jit, static_argnames=("n",))
def ddot(x: Vector, y: Vector, n: int | None = None) -> Array:
    """Dot product of the first ``n`` entries."""
    return jnp.dot(_head(x, n), _head(y, n))


@partial(jax.jit, static_argnames=("n",))
def daxpy(a: Array, x: Vector, y: Vector, n: int | None = None) -> Vector:
    """Return ``y + a * x`` on the first ``n`` entries."""
    if n is None:
        return y + a * x
    return y.at[:n].add(a * x[:n])


@partial(jax.jit, static_argnames=("n",))
def dcopy(x: Vector, y: Vector, n: int | None = None) -> Vector:
    """Return ``y`` with its first ``n`` entries replaced by those of ``x``."""
    if n is None:
        return jnp.array(x, dtype=y.dtype)
    return y.at[:n].set(x[:n])


@partial(jax.jit, static_argnames=("n",))
def dscal(a: Array, x: Vector, n: int | None = None) -> Vector:
    """Return ``a * x`` on the first ``n`` entries."""
    if n is None:
        return a * x
    return x.at[:n].multiply(a)


@partial(jax.jit, static_argnames=("n",))
def dnrm2(x: Vector, n: int | None = None) -> Array:
    """Euclidean norm with scaling by the largest magnitude.

    Scaling keeps the sum of squares finite for entries near the overflow and
    underflow thresholds (1e200 and 1e-200 in double precision).
    """
    v = _head(x, n)
    scale = jnp.max(jnp.abs(v), initial=0.0)
    safe_scale = jnp.where(scale > 0, scale, 1.0)
    return jnp.where(scale > 0, scale * jnp.sqrt(jnp.sum((v / safe_scale) ** 2)), 0.0)


def symmetrize_lower(A: Matrix) -> Matrix:
    """Mirror the lower triangle of ``A`` into its upper triangle."""
    lower = jnp.tril(A)
    return lower + jnp.tril(A, -1).T


@partial(jax.jit, static_argnames=("n",))
def dssyax(A: Matrix, z: Vector, n: int | None = None) -> Vector:
    """Symmetric matrix-vector product using only the lower triangle of ``A``."""
    if n is None:
        return symmetrize_lower(A) @ z
    head = symmetrize_lower(A[:n, :n]) @ z[:n]
    return jnp.zeros_like(z).at[:n].set(head)


@partial(jax.jit, static_argnames=("n",))
def dsynrm2(A: Matrix, n: int | None = None) -> Vector:
    """Column 2-norms of the symmetric matrix stored in the lower triangle."""
    if n is None:
        return jax.vmap(dnrm2)(symmetrize_lower(A).T)
    head = jax.vmap(dnrm2)(symmetrize_lower(A[:n, :n]).T)
    return jnp.zeros(A.shape[0], dtype=A.dtype).at[:n].set(head)
