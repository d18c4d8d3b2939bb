import dataclasses

import pytest

from jaxtron import (
    DEFAULT_OPTIONS,
    TerminationReason,
    TronOptions,
    TronStats,
    Task,
    Verbosity,
    reason_message,
)


def test_defaults():
    options = TronOptions()

    assert options.frtol == 1e-12
    assert options.fatol == 0.0
    assert options.gtol == 1e-6
    assert options.cgtol == 0.1
    assert options.max_feval == 500
    assert options.delta0 is None
    assert options.verbose == Verbosity.SILENT
    assert options == DEFAULT_OPTIONS


def test_options_are_static_arguments():
    options = TronOptions(gtol=1e-8)

    assert hash(options) == hash(TronOptions(gtol=1e-8))
    with pytest.raises(dataclasses.FrozenInstanceError):
        options.gtol = 1.0


@pytest.mark.parametrize(
    'kwargs',
    [
        {'frtol': -1.0},
        {'gtol': -1e-3},
        {'cgtol': 0.0},
        {'cgtol': 1.0},
        {'cg_itermax': 0},
        {'max_feval': 0},
        {'max_iter': -5},
        {'delta0': 0.0},
        {'ftol_patience': 0},
        {'eta0': 0.5},
        {'eta2': 1.5},
        {'sigma2': 0.1},
        {'sigma3': 1.0},
        {'cauchy_extrapf': 0.5},
        {'search_interpf': 1.0},
        {'shift_min': 0.0},
        {'shift_factor': 1.0},
        {'max_shift_attempts': 0},
    ],
)
def test_invalid_options(kwargs):
    with pytest.raises(ValueError):
        TronOptions(**kwargs)


def test_reason_messages():
    assert reason_message(TerminationReason.GTOL) == 'CONVERGENCE: GTOL TEST SATISFIED'
    assert reason_message(int(TerminationReason.MAX_FEVAL)).startswith('WARNING')
    assert reason_message(TerminationReason.INVALID_BOUNDS).startswith('ERROR')
    assert reason_message(TerminationReason.NONE) == ''


def test_stats_reset():
    stats = TronStats(status=Task.CONVERGENCE, reason=TerminationReason.GTOL, iterations=7)
    assert stats.is_converged()
    assert stats.get_message() == 'CONVERGENCE: GTOL TEST SATISFIED'

    stats.reset()
    assert not stats.is_converged()
    assert stats.get_iterations() == 0
    assert stats.get_message() == ''
