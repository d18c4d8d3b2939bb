import numpy
import pytest

import jaxtron  # noqa: F401  (enables 64-bit arrays before any test runs)
from problems import box_qp_reference, random_box_qp


@pytest.fixture
def rng():
    return numpy.random.default_rng(20240607)


@pytest.fixture
def qp4(rng):
    """Box-constrained convex QP with four variables and its solution."""
    A, c, x0, xl, xu = random_box_qp(rng, 4)
    return {
        'A': A, 'c': c, 'x0': x0, 'xl': xl, 'xu': xu,
        'xstar': box_qp_reference(A, c, xl, xu),
    }
