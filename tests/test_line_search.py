import numpy
import pytest

from jaxtron.line_search import projected_search
from jaxtron.projection import breakpoints
from problems import random_spd


def model(A, g, s):
    return 0.5 * s @ A @ s + g @ s


def test_full_newton_step_inside_box(rng):
    A = random_spd(rng, 4)
    g = rng.standard_normal(4)
    w = -numpy.linalg.solve(A, g)
    x = numpy.zeros(4)
    xl = numpy.full(4, -100.0)
    xu = numpy.full(4, 100.0)

    result = projected_search(x, xl, xu, A, g, w)

    assert float(result.alpha) == 1.0
    numpy.testing.assert_allclose(result.s, w, rtol=1e-14)
    numpy.testing.assert_allclose(result.x, x + w, rtol=1e-14)


@pytest.mark.parametrize('seed', range(5))
def test_search_respects_bounds_and_decreases(seed):
    rng = numpy.random.default_rng(seed)
    n = 5
    A = random_spd(rng, n)
    g = rng.standard_normal(n)
    x = rng.uniform(-0.5, 0.5, n)
    xl = numpy.full(n, -1.0)
    xu = numpy.full(n, 1.0)
    w = -10.0 * g

    result = projected_search(x, xl, xu, A, g, w)
    s = numpy.asarray(result.s)
    x_new = numpy.asarray(result.x)

    assert numpy.all(x_new >= xl) and numpy.all(x_new <= xu)
    numpy.testing.assert_allclose(x_new, x + s, atol=1e-14)

    # Either sufficient decrease holds or the search stopped at the first breakpoint
    _, brptmin, _ = breakpoints(x, xl, xu, w)
    alpha = float(result.alpha)
    assert alpha >= min(1.0, float(brptmin)) - 1e-15
    if alpha > float(brptmin):
        assert model(A, g, s) <= 1e-2 * (g @ s) + 1e-14
