import logging

import numpy
import pytest

from jaxtron import (
    DimensionError,
    Task,
    TerminationReason,
    TronOptions,
    Verbosity,
    create_workspace,
    pad_problem,
    solve,
    solve_batch,
    solve_reference,
    stack_workspaces,
    tron_batch,
    unstack_workspace,
)
from problems import box_qp_reference, quadratic, random_box_qp


OPTIONS = TronOptions(gtol=1e-10)


@pytest.fixture
def qp_batch(rng):
    problems = [random_box_qp(rng, 4) for _ in range(8)]
    A, c, x0, xl, xu = (numpy.stack(leaves) for leaves in zip(*problems))
    xstar = numpy.stack([box_qp_reference(*p[:2], *p[3:]) for p in problems])
    return {'A': A, 'c': c, 'x0': x0, 'xl': xl, 'xu': xu, 'xstar': xstar}


def run(solver, data, **kwargs):
    return solver(
        quadratic,
        data['x0'],
        data['xl'],
        data['xu'],
        (data['A'], data['c']),
        options=OPTIONS,
        **kwargs,
    )


def test_batch_matches_sequential(qp_batch):
    batched = run(solve_batch, qp_batch)
    sequential = run(solve_reference, qp_batch)

    assert batched.x.shape == (8, 4)
    numpy.testing.assert_array_equal(batched.task, sequential.task)
    numpy.testing.assert_allclose(batched.x, sequential.x, atol=1e-10)
    numpy.testing.assert_allclose(batched.f, sequential.f, rtol=1e-10, atol=1e-10)


def test_batch_finds_box_qp_solutions(qp_batch):
    result = run(solve_batch, qp_batch)

    numpy.testing.assert_array_equal(result.task, int(Task.CONVERGENCE))
    numpy.testing.assert_allclose(result.x, qp_batch['xstar'], atol=1e-10)
    assert numpy.all(result.x >= qp_batch['xl']) and numpy.all(result.x <= qp_batch['xu'])


def test_chunked_batch_matches_single_call(qp_batch):
    whole = run(solve_batch, qp_batch)
    chunked = run(solve_batch, qp_batch, chunk_size=3)

    numpy.testing.assert_array_equal(chunked.task, whole.task)
    numpy.testing.assert_array_equal(chunked.iterations, whole.iterations)
    numpy.testing.assert_allclose(chunked.x, whole.x, atol=1e-10)


def test_invalid_chunk_size(qp_batch):
    with pytest.raises(ValueError):
        run(solve_batch, qp_batch, chunk_size=0)


def test_instances_are_independent():
    n = 2
    good = create_workspace(numpy.zeros(n), -numpy.ones(n), numpy.ones(n))
    bad = create_workspace(numpy.zeros(n), numpy.ones(n), -numpy.ones(n))
    ws = stack_workspaces([good, bad, good])

    ws = tron_batch(ws, numpy.zeros(3), numpy.zeros((3, n)), numpy.zeros((3, n, n)))

    numpy.testing.assert_array_equal(
        ws.task, [int(Task.EVAL_GH), int(Task.ERROR), int(Task.EVAL_GH)]
    )
    numpy.testing.assert_array_equal(
        ws.reason,
        [
            int(TerminationReason.NONE),
            int(TerminationReason.INVALID_BOUNDS),
            int(TerminationReason.NONE),
        ],
    )


def test_padding_does_not_change_the_solution(rng):
    A, c, x0, xl, xu = random_box_qp(rng, 3)
    plain = solve(quadratic, x0, xl, xu, (A, c), options=OPTIONS)

    px0, pxl, pxu = pad_problem(x0, xl, xu, 4)
    pA = numpy.zeros((4, 4))
    pA[:3, :3] = A
    pc = numpy.append(c, 0.0)
    padded = solve(quadratic, px0, pxl, pxu, (pA, pc), options=OPTIONS)

    assert int(padded.task) == int(plain.task)
    numpy.testing.assert_allclose(padded.x[:3], plain.x, atol=1e-10)
    assert float(padded.x[3]) == 0.0


def test_summary_is_logged(qp_batch, caplog):
    caplog.set_level(logging.INFO, logger='jaxtron')
    solve_batch(
        quadratic,
        qp_batch['x0'],
        qp_batch['xl'],
        qp_batch['xu'],
        (qp_batch['A'], qp_batch['c']),
        options=TronOptions(gtol=1e-10, verbose=Verbosity.OUTER),
    )

    assert 'solved 8 instances' in caplog.text
    assert 'CONVERGENCE' in caplog.text


def test_stack_and_unstack_workspaces():
    first = create_workspace(numpy.zeros(2), -numpy.ones(2), numpy.ones(2), delta=1.0)
    second = create_workspace(numpy.ones(2), -numpy.ones(2), 2.0 * numpy.ones(2), delta=2.0)
    ws = stack_workspaces([first, second])

    assert ws.x.shape == (2, 2)
    assert ws.n == 2
    back = unstack_workspace(ws, 1)
    numpy.testing.assert_array_equal(back.x, second.x)
    numpy.testing.assert_array_equal(back.xu, second.xu)
    assert float(back.delta) == 2.0

    with pytest.raises(DimensionError):
        stack_workspaces([first, create_workspace(numpy.zeros(3), -numpy.ones(3), numpy.ones(3))])
    with pytest.raises(DimensionError):
        pad_problem(numpy.zeros(5), numpy.zeros(5), numpy.ones(5), 4)
