"""JAX-based TRON bound-constrained optimization package.

This package provides a JAX implementation of the TRON trust-region Newton
method for problems of the form ``min f(x)`` subject to ``xl <= x <= xu``
with a few variables per instance, solved for many independent instances at
once with ``jax.vmap``.
"""

from __future__ import annotations

import jax


# Enable 64-bit precision for numerical stability
jax.config.update("jax_enable_x64", True)

# Batched solves
from .batch import TronResult, solve, solve_batch, solve_reference, tron_batch  # noqa: E402

# Level-1 kernels
from .blas import daxpy, dcopy, ddot, dnrm2, dscal, dssyax, dsynrm2  # noqa: E402
from .cauchy import cauchy_step  # noqa: E402

# Linear algebra
from .cholesky import (  # noqa: E402
    CholeskyResult,
    cholesky_factor,
    cholesky_shifted,
    solve_lower,
    solve_upper,
)

# Exception hierarchy
from .exceptions import (  # noqa: E402
    BoundsError,
    DimensionError,
    InitializationError,
    OptimizationError,
    TronException,
)
from .line_search import SearchResult, projected_search  # noqa: E402

# Projection primitives
from .projection import (  # noqa: E402
    breakpoints,
    project_to_box,
    projected_gradient_norm,
    projected_step,
)

# Configuration classes
from .solver_options import DEFAULT_OPTIONS, TronOptions  # noqa: E402
from .solver_stats import TronStats  # noqa: E402
from .spcg import SubspaceResult, subspace_cg  # noqa: E402
from .trpcg import trust_region_boundary, trust_region_cg  # noqa: E402

# Driver and callback interface
from .tron import check_gradient_convergence, tron  # noqa: E402
from .tron_solver import TronSolver, dense_hessian  # noqa: E402

# Type definitions
from .types import (  # noqa: E402
    MAX_VARIABLES,
    CholeskyStatus,
    ErrorCode,
    Float,
    HessianMode,
    SubspaceStatus,
    Task,
    TerminationReason,
    TrustRegionCGStatus,
    Verbosity,
    Work,
    reason_message,
)
from .workspace import (  # noqa: E402
    TronWorkspace,
    create_workspace,
    pad_problem,
    stack_workspaces,
    unstack_workspace,
)


# Version information
__version__ = "1.0.0"
__author__ = "JAX TRON Development Team"
__license__ = "MIT"

# Public API
__all__ = [
    "DEFAULT_OPTIONS",
    "MAX_VARIABLES",
    "BoundsError",
    "CholeskyResult",
    "CholeskyStatus",
    "DimensionError",
    "ErrorCode",
    "Float",
    "HessianMode",
    "InitializationError",
    "OptimizationError",
    "SearchResult",
    "SubspaceResult",
    "SubspaceStatus",
    "Task",
    "TerminationReason",
    "TronException",
    # Configuration
    "TronOptions",
    "TronResult",
    # Main solver interfaces
    "TronSolver",
    "TronStats",
    "TronWorkspace",
    "TrustRegionCGStatus",
    "Verbosity",
    "Work",
    "__author__",
    "__license__",
    # Version info
    "__version__",
    "breakpoints",
    "cauchy_step",
    "check_gradient_convergence",
    "cholesky_factor",
    "cholesky_shifted",
    "create_workspace",
    # Kernels
    "daxpy",
    "dcopy",
    "ddot",
    "dense_hessian",
    "dnrm2",
    "dscal",
    "dssyax",
    "dsynrm2",
    "pad_problem",
    "project_to_box",
    "projected_gradient_norm",
    "projected_search",
    "projected_step",
    "reason_message",
    "solve",
    "solve_batch",
    "solve_lower",
    "solve_reference",
    "solve_upper",
    "stack_workspaces",
    "subspace_cg",
    "tron",
    "tron_batch",
    "trust_region_boundary",
    "trust_region_cg",
    "unstack_workspace",
]


def _check_jax_installation() -> None:
    """Check that JAX is properly installed and accessible."""
    try:
        import jax.numpy as jnp

        # Test basic JAX functionality
        _ = jnp.array([1.0, 2.0, 3.0])
        _ = jax.grad(lambda x: x**2)(1.0)
    except Exception as e:
        raise RuntimeError(
            "JAX installation appears to be broken. "
            "Please reinstall JAX with: pip install --upgrade jax jaxlib"
        ) from e


# Perform installation check on import
_check_jax_installation()
