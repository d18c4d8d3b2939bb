import jax.numpy as jnp
import numpy
import pytest

from jaxtron import CholeskyStatus
from jaxtron.cholesky import cholesky_factor, cholesky_shifted, solve_lower, solve_upper
from problems import random_spd


def relative_error(B, A):
    return numpy.linalg.norm(B - A) / numpy.linalg.norm(A)


@pytest.mark.parametrize('n', [1, 2, 4, 16, 32])
def test_factor_round_trip(rng, n):
    A = random_spd(rng, n)
    L, info = cholesky_factor(jnp.asarray(A))
    L = numpy.asarray(L)

    assert int(info) == 0
    assert numpy.all(numpy.triu(L, 1) == 0.0)
    assert relative_error(L @ L.T, A) <= 1e-10


def test_factor_ignores_upper_triangle(rng):
    A = random_spd(rng, 6)
    garbage = A + numpy.triu(rng.standard_normal((6, 6)), 1)
    L, info = cholesky_factor(jnp.asarray(garbage))
    assert int(info) == 0
    assert relative_error(numpy.asarray(L @ L.T), A) <= 1e-10


@pytest.mark.parametrize('diag, column', [([-1.0, 1.0], 0), ([1.0, -1.0, 1.0], 1)])
def test_factor_reports_failing_column(diag, column):
    L, info = cholesky_factor(jnp.diag(jnp.array(diag)))
    assert int(info) == -(column + 1)


def test_factor_rejects_nan_pivot():
    A = jnp.array([[1.0, 0.0], [0.0, jnp.nan]])
    _, info = cholesky_factor(A)
    assert int(info) == -2


def test_shifted_keeps_positive_definite_matrix(rng):
    A = random_spd(rng, 8)
    result = cholesky_shifted(jnp.asarray(A))
    L = numpy.asarray(result.L)

    assert int(result.info) == CholeskyStatus.SUCCESS
    assert float(result.shift) == 0.0
    assert relative_error(L @ L.T, A) <= 1e-10


@pytest.mark.parametrize('n', [2, 5, 12])
def test_shifted_on_negated_diagonal(rng, n):
    A = random_spd(rng, n)
    A[numpy.diag_indices(n)] *= -1.0

    result = cholesky_shifted(jnp.asarray(A))
    L = numpy.asarray(result.L)
    scale = numpy.asarray(result.scale)
    shift = float(result.shift)
    shifted = A + shift * numpy.diag(scale ** -2)

    assert int(result.info) == CholeskyStatus.SUCCESS
    assert shift > 0.0
    assert numpy.all(numpy.triu(L, 1) == 0.0)
    assert relative_error(L @ L.T, shifted) <= 1e-10


def test_shifted_zero_matrix_uses_small_shift():
    result = cholesky_shifted(jnp.zeros((3, 3)))
    L = numpy.asarray(result.L)
    assert int(result.info) == CholeskyStatus.SUCCESS
    assert 0.0 < float(result.shift) <= 1e-3
    numpy.testing.assert_allclose(L @ L.T, float(result.shift) * numpy.eye(3), rtol=1e-12)


def test_shifted_budget_exhaustion_still_factors(rng):
    A = random_spd(rng, 4)
    A[numpy.diag_indices(4)] *= -1.0

    result = cholesky_shifted(jnp.asarray(A), max_attempts=1)
    L = numpy.asarray(result.L)
    assert int(result.info) == CholeskyStatus.SHIFT_BUDGET_EXCEEDED
    assert numpy.all(numpy.isfinite(L))
    assert numpy.all(numpy.diag(L) > 0.0)


def test_triangular_solves(rng):
    A = random_spd(rng, 5)
    L = numpy.linalg.cholesky(A)
    r = rng.standard_normal(5)

    numpy.testing.assert_allclose(L @ numpy.asarray(solve_lower(jnp.asarray(L), r)), r, atol=1e-12)
    numpy.testing.assert_allclose(
        L.T @ numpy.asarray(solve_upper(jnp.asarray(L), r)), r, atol=1e-12
    )
