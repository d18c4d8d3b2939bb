"""Test problems and an independent reference solver."""

import itertools

import numpy


def random_spd(rng, n, shift=None):
    """Random symmetric positive definite matrix."""
    M = rng.standard_normal((n, n))
    return M @ M.T + (n if shift is None else shift) * numpy.eye(n)


def well_conditioned_factor(rng, n):
    """Random lower-triangular factor with a dominant diagonal."""
    L = numpy.tril(0.5 * rng.standard_normal((n, n)), -1)
    return L + numpy.diag(2.0 + rng.uniform(0.0, 0.5, n))


def box_qp_reference(A, c, xl, xu, tol=1e-9):
    """Solve min 0.5 x'Ax + c'x over a box by enumerating active sets.

    Every coordinate is either at its lower bound, at its upper bound or free.
    For a strictly convex problem exactly one assignment satisfies the KKT
    conditions.
    """
    n = len(c)
    for assignment in itertools.product((-1, 0, 1), repeat=n):
        state = numpy.array(assignment)
        x = numpy.where(state < 0, xl, numpy.where(state > 0, xu, 0.0))
        free = state == 0
        if numpy.any(free):
            fixed = ~free
            rhs = -(c[free] + A[numpy.ix_(free, fixed)] @ x[fixed])
            x[free] = numpy.linalg.solve(A[numpy.ix_(free, free)], rhs)
        if numpy.any(x < xl - tol) or numpy.any(x > xu + tol):
            continue
        g = A @ x + c
        if numpy.any(g[state < 0] < -tol) or numpy.any(g[state > 0] > tol):
            continue
        return x
    raise RuntimeError('no KKT point found')


def random_box_qp(rng, n):
    """Convex QP data (A, c, x0, xl, xu) with a box around x0."""
    L = well_conditioned_factor(rng, n)
    A = L @ L.T
    x0 = rng.standard_normal(n)
    dx = rng.standard_normal(n)
    c = 3.0 * rng.standard_normal(n)
    return A, c, x0, x0 - numpy.abs(dx), x0 + numpy.abs(dx)


def quadratic(x, params):
    A, c = params
    return 0.5 * x @ A @ x + c @ x


def rosenbrock(x, params=None):
    return sum(
        100.0 * (x[i + 1] - x[i] ** 2) ** 2 + (1.0 - x[i]) ** 2
        for i in range(x.shape[0] - 1)
    )
