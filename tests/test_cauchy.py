import jax.numpy as jnp
import numpy
import pytest

from jaxtron.cauchy import cauchy_step
from jaxtron.projection import project_to_box
from problems import random_spd


def model(A, g, s):
    return 0.5 * s @ A @ s + g @ s


@pytest.mark.parametrize('seed', range(5))
@pytest.mark.parametrize('delta', [0.01, 1.0, 100.0])
def test_cauchy_step_is_feasible_and_decreases(seed, delta):
    rng = numpy.random.default_rng(seed)
    n = 6
    M = rng.standard_normal((n, n))
    A = M + M.T
    xl = -rng.uniform(0.1, 2.0, n)
    xu = rng.uniform(0.1, 2.0, n)
    x = numpy.asarray(project_to_box(rng.standard_normal(n), xl, xu))
    g = rng.standard_normal(n)

    s, alpha, iters = cauchy_step(x, xl, xu, A, g, delta, 1.0)
    s = numpy.asarray(s)

    assert numpy.all(x + s >= xl - 1e-14) and numpy.all(x + s <= xu + 1e-14)
    assert numpy.linalg.norm(s) <= delta * (1 + 1e-12)
    assert model(A, g, s) <= 1e-2 * (g @ s) + 1e-14
    assert float(alpha) > 0.0
    assert 0 <= int(iters) <= 50


def test_cauchy_step_extrapolates_for_small_initial_alpha(rng):
    A = random_spd(rng, 3)
    g = rng.standard_normal(3)
    x = numpy.zeros(3)
    xl = numpy.full(3, -10.0)
    xu = numpy.full(3, 10.0)

    _, alpha, _ = cauchy_step(x, xl, xu, A, g, 1e3, 1e-8)
    assert float(alpha) > 1e-8


def test_cauchy_step_zero_gradient():
    A = jnp.eye(3)
    s, _, _ = cauchy_step(jnp.zeros(3), -jnp.ones(3), jnp.ones(3), A, jnp.zeros(3), 1.0, 1.0)
    numpy.testing.assert_array_equal(s, 0.0)


def test_cauchy_step_with_infinite_bounds(rng):
    A = random_spd(rng, 4)
    g = rng.standard_normal(4)
    xl = numpy.full(4, -numpy.inf)
    xu = numpy.full(4, numpy.inf)

    s, _, _ = cauchy_step(numpy.zeros(4), xl, xu, A, g, 0.5, 1.0)
    s = numpy.asarray(s)
    assert numpy.all(numpy.isfinite(s))
    assert numpy.linalg.norm(s) <= 0.5 * (1 + 1e-12)
    assert model(A, g, s) < 0.0


def test_reads_lower_triangle_only(rng):
    n = 5
    A = random_spd(rng, n)
    g = rng.standard_normal(n)
    x = numpy.zeros(n)
    xl = -numpy.ones(n)
    xu = numpy.ones(n)

    s_full, alpha_full, _ = cauchy_step(x, xl, xu, A, g, 1.0, 1.0)
    s_lower, alpha_lower, _ = cauchy_step(x, xl, xu, numpy.tril(A), g, 1.0, 1.0)

    numpy.testing.assert_array_equal(s_lower, s_full)
    assert float(alpha_lower) == float(alpha_full)
