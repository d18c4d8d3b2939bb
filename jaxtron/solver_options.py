from __future__ import annotations

from dataclasses import dataclass

from .types import Float, Verbosity


@dataclass(frozen=True)
class TronOptions:
    # Function value tolerances
    frtol: Float = 1e-12
    fatol: Float = 0.0
    fmin: Float = -1e32

    # Projected gradient tolerance checked at every new iterate
    gtol: Float = 1e-6

    # Conjugate gradient tolerance and iteration limit (None uses n)
    cgtol: Float = 0.1
    cg_itermax: int | None = None

    # Evaluation and iteration limits
    max_feval: int = 500
    max_iter: int = 100

    # Initial trust region radius (None uses the gradient norm)
    delta0: Float | None = None

    # Relative radius below which the solve is declared stagnant
    xtol: Float = 1e-15

    # Consecutive small-reduction steps required by the FATOL/FRTOL tests
    ftol_patience: int = 1

    # Step acceptance and radius update parameters
    eta0: Float = 1e-4
    eta1: Float = 0.25
    eta2: Float = 0.75
    sigma1: Float = 0.25
    sigma2: Float = 0.5
    sigma3: Float = 4.0

    # Cauchy point search
    cauchy_mu0: Float = 1e-2
    cauchy_interpf: Float = 0.1
    cauchy_extrapf: Float = 10.0
    cauchy_max_iters: int = 50

    # Projected search
    search_mu0: Float = 1e-2
    search_interpf: Float = 0.5
    search_max_iters: int = 60

    # Shifted Cholesky factorization
    shift_min: Float = 1e-3
    shift_reductions: int = 3
    shift_factor: Float = 512.0
    max_shift_attempts: int = 50

    # Verbosity level
    verbose: Verbosity = Verbosity.SILENT

    # Exception handling
    throw_errors: bool = True

    def __post_init__(self) -> None:
        """Validate option values after initialization."""
        if self.frtol < 0 or self.fatol < 0:
            raise ValueError("frtol and fatol must be non-negative")
        if self.gtol < 0:
            raise ValueError("gtol must be non-negative")
        if not 0 < self.cgtol < 1:
            raise ValueError("cgtol must lie in (0, 1)")
        if self.cg_itermax is not None and self.cg_itermax <= 0:
            raise ValueError("cg_itermax must be positive")
        if self.max_feval <= 0:
            raise ValueError("max_feval must be positive")
        if self.max_iter <= 0:
            raise ValueError("max_iter must be positive")
        if self.delta0 is not None and self.delta0 <= 0:
            raise ValueError("delta0 must be positive")
        if self.ftol_patience <= 0:
            raise ValueError("ftol_patience must be positive")
        if not 0 < self.eta0 < self.eta1 < self.eta2 < 1:
            raise ValueError("eta0 < eta1 < eta2 must lie in (0, 1)")
        if not 0 < self.sigma1 < self.sigma2 < 1 < self.sigma3:
            raise ValueError("sigma1 < sigma2 < 1 < sigma3 is required")
        if not 0 < self.cauchy_interpf < 1 < self.cauchy_extrapf:
            raise ValueError("cauchy_interpf must lie in (0, 1) and cauchy_extrapf exceed 1")
        if not 0 < self.search_interpf < 1:
            raise ValueError("search_interpf must lie in (0, 1)")
        if self.cauchy_max_iters <= 0 or self.search_max_iters <= 0:
            raise ValueError("search iteration limits must be positive")
        if self.shift_min <= 0 or self.shift_factor <= 1:
            raise ValueError("shift_min must be positive and shift_factor greater than 1")
        if self.shift_reductions <= 0 or self.max_shift_attempts <= 0:
            raise ValueError("shift_reductions and max_shift_attempts must be positive")


DEFAULT_OPTIONS = TronOptions()
