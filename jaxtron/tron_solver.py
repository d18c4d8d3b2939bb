"""User-facing TRON solver for problems defined by Python callbacks.

The callbacks are ordinary host functions working on NumPy arrays; the solver
drives the compiled ``tron`` step from a Python loop and performs whatever
evaluation each returned task asks for. The Hessian uses a two-phase
contract: its sparsity structure (lower triangle coordinates) is requested
once, then only the values at every new point.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import jax.numpy as jnp
import numpy as np

from .exceptions import ErrorCode, _error_code_to_string, _tron_throw
from .projection import projected_gradient_norm
from .solver_options import DEFAULT_OPTIONS, TronOptions
from .solver_stats import TronStats
from .tron import check_gradient_convergence, tron
from .types import (
    MAX_VARIABLES,
    TERMINAL_TASKS,
    Float,
    HessianMode,
    HostGradient,
    HostHessian,
    HostObjective,
    Task,
    TerminationReason,
    Verbosity,
    reason_message,
)
from .workspace import TronWorkspace, create_workspace


logger = logging.getLogger(__name__)


def dense_hessian(fn: Callable[[np.ndarray], np.ndarray]) -> HostHessian:
    """Adapt a dense Hessian function to the two-phase callback contract.

    The structure phase reports the whole lower triangle, so the solver must be
    created with ``nele_hess = n * (n + 1) // 2``.
    """

    def eval_h(x, mode, rows, cols, values):
        n = x.shape[0]
        if mode == HessianMode.STRUCTURE:
            lower_rows, lower_cols = np.tril_indices(n)
            rows[:] = lower_rows
            cols[:] = lower_cols
        else:
            H = np.asarray(fn(x))
            values[:] = H[rows, cols]

    return eval_h


class TronSolver:
    """Bound-constrained minimization with callbacks for f, g and the Hessian.

    Create the solver with the problem data, then call ``solve``. The final
    point and statistics are available through the getters afterwards.
    """

    def __init__(
        self,
        n: int,
        xl,
        xu,
        nele_hess: int,
        eval_f: HostObjective,
        eval_g: HostGradient,
        eval_h: HostHessian,
        options: TronOptions = DEFAULT_OPTIONS,
        x0=None,
    ):
        if n <= 0:
            _tron_throw("Number of variables must be positive", ErrorCode.NON_POSITIVE)
        if n > MAX_VARIABLES:
            _tron_throw(
                f"{n} variables exceed the limit of {MAX_VARIABLES}",
                ErrorCode.DIMENSION_TOO_LARGE,
            )

        self.n = n
        self.xl = np.asarray(xl, dtype=np.float64)
        self.xu = np.asarray(xu, dtype=np.float64)
        if self.xl.shape != (n,) or self.xu.shape != (n,):
            _tron_throw(
                f"Bounds must have shape ({n},), got {self.xl.shape} and {self.xu.shape}",
                ErrorCode.DIMENSION_MISMATCH,
            )

        max_nele = n * (n + 1) // 2
        if not 0 < nele_hess <= max_nele:
            _tron_throw(
                f"Hessian must have between 1 and {max_nele} entries, got {nele_hess}",
                ErrorCode.INVALID_HESSIAN_STRUCTURE,
            )
        self.nele_hess = nele_hess

        self.x = np.zeros(n) if x0 is None else np.array(x0, dtype=np.float64)
        if self.x.shape != (n,):
            _tron_throw(
                f"Initial point must have shape ({n},), got {self.x.shape}",
                ErrorCode.DIMENSION_MISMATCH,
            )

        self.eval_f = eval_f
        self.eval_g = eval_g
        self.eval_h = eval_h
        self.opts = options
        self.stats = TronStats()

        self._rows: np.ndarray | None = None
        self._cols: np.ndarray | None = None
        self._workspace: TronWorkspace | None = None

    def set_options(self, opts: TronOptions) -> None:
        """Set solver options."""
        self.opts = opts

    def get_options(self) -> TronOptions:
        """Get current solver options."""
        return self.opts

    def set_initial_point(self, x0) -> None:
        """Set the starting point of the next solve."""
        x0 = np.array(x0, dtype=np.float64)
        if x0.shape != (self.n,):
            _tron_throw(
                f"Initial point must have shape ({self.n},), got {x0.shape}",
                ErrorCode.DIMENSION_MISMATCH,
            )
        self.x = x0

    def _hessian_structure(self) -> None:
        """Request the lower triangle coordinates from the callback once."""
        rows = np.zeros(self.nele_hess, dtype=np.int64)
        cols = np.zeros(self.nele_hess, dtype=np.int64)
        self.eval_h(self.x.copy(), HessianMode.STRUCTURE, rows, cols, None)

        in_range = (rows >= 0) & (rows < self.n) & (cols >= 0) & (cols < self.n)
        if not np.all(in_range):
            _tron_throw("Hessian coordinates out of range", ErrorCode.INVALID_HESSIAN_STRUCTURE)
        if np.any(cols > rows):
            _tron_throw(
                _error_code_to_string(ErrorCode.INVALID_HESSIAN_STRUCTURE),
                ErrorCode.INVALID_HESSIAN_STRUCTURE,
            )
        self._rows, self._cols = rows, cols

    def _hessian(self, x: np.ndarray) -> np.ndarray:
        """Scatter the callback values into a dense lower triangle."""
        values = np.zeros(self.nele_hess)
        self.eval_h(x, HessianMode.VALUES, self._rows, self._cols, values)

        A = np.zeros((self.n, self.n))
        np.add.at(A, (self._rows, self._cols), values)
        return A

    def _gradient(self, x: np.ndarray) -> np.ndarray:
        g = np.asarray(self.eval_g(x), dtype=np.float64)
        if g.shape != (self.n,):
            _tron_throw(
                f"Gradient must have shape ({self.n},), got {g.shape}",
                ErrorCode.DIMENSION_MISMATCH,
            )
        return g

    def solve(self) -> Task:
        """Run the driver loop until a terminal task is returned.

        Returns:
            The terminal task: CONVERGENCE, WARNING or ERROR.

        Raises:
            OptimizationError: The solve ended with ERROR and ``throw_errors``
                is set.
            BoundsError: Some lower bound exceeds its upper bound and
                ``throw_errors`` is set.
        """
        self.stats.reset()
        start_time = time.time()
        verbose = self.opts.verbose

        if self._rows is None:
            self._hessian_structure()

        ws = create_workspace(self.x, self.xl, self.xu)

        # The driver projects x at START, so evaluate f there
        x = np.clip(self.x, self.xl, self.xu)
        f = float(self.eval_f(x))
        g = jnp.zeros(self.n)
        A = jnp.zeros((self.n, self.n))

        if verbose != Verbosity.SILENT:
            logger.info("STARTING TRON SOLVE....")
            logger.info(f"  Initial objective: {f}")

        ws = tron(ws, f, g, A, self.opts)
        while int(ws.task) not in TERMINAL_TASKS:
            task = int(ws.task)
            x = np.asarray(ws.x)

            if task == Task.EVAL_F:
                f = float(self.eval_f(x.copy()))
            elif task == Task.EVAL_GH:
                g = jnp.asarray(self._gradient(x.copy()))
                A = jnp.asarray(self._hessian(x.copy()))

            ws = tron(ws, f, g, A, self.opts)

            if int(ws.task) == Task.NEWX:
                ws = check_gradient_convergence(ws, g, self.opts.gtol)
                if verbose != Verbosity.SILENT:
                    self._log_iterate(ws, g)
            elif int(ws.task) == Task.EVAL_F and verbose == Verbosity.INNER:
                logger.info(
                    f"    trial step: |s| = {float(jnp.linalg.norm(ws.s)):10.3e}, "
                    f"prered = {float(ws.prered):10.3e}, subspace status = {int(ws.cg_info)}"
                )

        self._workspace = ws
        self.x = np.asarray(ws.x)
        self._finalize(ws, g, start_time)

        if verbose != Verbosity.SILENT:
            logger.info(f"TRON SOLVE FINISHED: {self.stats.get_message()}")

        if self.stats.shift_failures > 0:
            logger.warning(
                f"{self.stats.shift_failures} factorizations exhausted the shift budget"
            )

        if self.stats.status == Task.ERROR and self.opts.throw_errors:
            if self.stats.reason == TerminationReason.INVALID_BOUNDS:
                _tron_throw(
                    _error_code_to_string(ErrorCode.INVALID_BOUND_CONSTRAINT),
                    ErrorCode.INVALID_BOUND_CONSTRAINT,
                )
            _tron_throw(self.stats.get_message(), ErrorCode.SOLVE_FAILED)

        return self.stats.status

    def _log_iterate(self, ws: TronWorkspace, g) -> None:
        gpnorm = float(projected_gradient_norm(ws.x, ws.xl, ws.xu, g))
        logger.info(
            f"  iter = {int(ws.iter) - 1:3d}, f = {float(ws.f):14.7e}, "
            f"|pg| = {gpnorm:9.3e}, delta = {float(ws.delta):9.3e}, "
            f"cg iters = {int(ws.iterscg):4d}, nfev = {int(ws.nfev):3d}"
        )

    def _finalize(self, ws: TronWorkspace, g, start_time: float) -> None:
        """Copy the final workspace counters into the statistics."""
        self.stats.status = Task(int(ws.task))
        self.stats.reason = TerminationReason(int(ws.reason))
        self.stats.solve_time = (time.time() - start_time) * 1000  # Convert to milliseconds
        self.stats.iterations = int(ws.iter)
        self.stats.cg_iterations = int(ws.iterscg)
        self.stats.nfev = int(ws.nfev)
        self.stats.ngev = int(ws.ngev)
        self.stats.objective_value = float(ws.f)
        self.stats.projected_gradient_norm = float(projected_gradient_norm(ws.x, ws.xl, ws.xu, g))
        self.stats.shift_failures = int(ws.nshift_fail)

    def get_status(self) -> Task:
        """Get the terminal task of the last solve."""
        return self.stats.status

    def get_message(self) -> str:
        """Get the termination message of the last solve."""
        return reason_message(self.stats.reason)

    def get_x(self) -> np.ndarray:
        """Get the current (final after ``solve``) point."""
        return self.x.copy()

    def get_final_objective(self) -> Float:
        """Get final objective value."""
        return self.stats.objective_value

    def get_iterations(self) -> int:
        """Get number of iterations."""
        return self.stats.iterations

    def get_solve_time_ms(self) -> Float:
        """Get solve time in milliseconds."""
        return self.stats.solve_time

    def get_workspace(self) -> TronWorkspace:
        """Get the final workspace of the last solve."""
        if self._workspace is None:
            _tron_throw("Solver must be run first", ErrorCode.SOLVER_NOT_INITIALIZED)
        return self._workspace
