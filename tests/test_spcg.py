import numpy
import pytest

from jaxtron import SubspaceStatus
from jaxtron.cauchy import cauchy_step
from jaxtron.spcg import subspace_cg
from problems import random_spd


def model(A, g, s):
    return 0.5 * s @ A @ s + g @ s


def test_interior_problem_reaches_newton_step(rng):
    n = 5
    A = random_spd(rng, n)
    g = rng.standard_normal(n)
    x = numpy.zeros(n)
    xl = numpy.full(n, -100.0)
    xu = numpy.full(n, 100.0)
    delta = 1e3

    s, _, _ = cauchy_step(x, xl, xu, A, g, delta, 1.0)
    result = subspace_cg(x, xl, xu, A, g, s, delta, 0.1, n)

    assert int(result.info) == SubspaceStatus.CONVERGED
    numpy.testing.assert_allclose(result.s, -numpy.linalg.solve(A, g), rtol=1e-8, atol=1e-10)
    numpy.testing.assert_allclose(result.x, x + numpy.asarray(result.s), atol=1e-14)
    assert int(result.nshift_fail) == 0


@pytest.mark.parametrize('indefinite', [False, True])
@pytest.mark.parametrize('seed', range(4))
def test_subspace_step_stays_feasible(seed, indefinite):
    rng = numpy.random.default_rng(seed)
    n = 6
    if indefinite:
        M = rng.standard_normal((n, n))
        A = M + M.T
    else:
        A = random_spd(rng, n)
    g = 3.0 * rng.standard_normal(n)
    xl = -rng.uniform(0.1, 1.0, n)
    xu = rng.uniform(0.1, 1.0, n)
    x = rng.uniform(xl, xu)
    delta = 1.0

    s, _, _ = cauchy_step(x, xl, xu, A, g, delta, 1.0)
    result = subspace_cg(x, xl, xu, A, g, s, delta, 0.1, n)
    x_new = numpy.asarray(result.x)

    assert numpy.all(x_new >= xl) and numpy.all(x_new <= xu)
    numpy.testing.assert_allclose(x_new, x + numpy.asarray(result.s), atol=1e-13)
    assert int(result.info) in (
        SubspaceStatus.CONVERGED,
        SubspaceStatus.TRUST_REGION_BOUND,
        SubspaceStatus.MAX_ITERATIONS,
    )
    if not indefinite:
        # The subspace iterations only decrease the model below the Cauchy value
        assert model(A, g, numpy.asarray(result.s)) <= model(A, g, numpy.asarray(s)) + 1e-12


def test_all_variables_fixed():
    A = numpy.eye(2)
    g = numpy.array([1.0, -1.0])
    x = numpy.array([0.0, 1.0])
    xl = numpy.array([0.0, 0.0])
    xu = numpy.array([1.0, 1.0])

    s, _, _ = cauchy_step(x, xl, xu, A, g, 1.0, 1.0)
    result = subspace_cg(x, xl, xu, A, g, s, 1.0, 0.1, 2)

    assert int(result.info) == SubspaceStatus.CONVERGED
    assert int(result.iters) == 0
    numpy.testing.assert_array_equal(result.s, 0.0)


@pytest.mark.parametrize('seed', range(12))
def test_faces_share_one_cg_budget(seed):
    rng = numpy.random.default_rng(seed)
    n = 8
    M = rng.standard_normal((n, n))
    A = M @ M.T + 0.1 * numpy.eye(n)
    g = 3.0 * rng.standard_normal(n)
    xl = -rng.uniform(0.1, 1.0, n)
    xu = rng.uniform(0.1, 1.0, n)
    x = rng.uniform(xl, xu)
    delta = 10.0
    itermax = 3

    s, _, _ = cauchy_step(x, xl, xu, A, g, delta, 1.0)
    result = subspace_cg(x, xl, xu, A, g, s, delta, 1e-8, itermax)

    assert int(result.iters) <= itermax
    assert int(result.info) != SubspaceStatus.RUNNING
