"""
Flexible Krylov Solvers for Large Sparse Linear Systems

This package provides right preconditioned Krylov methods for A x = b:

- VFGMRES: flexible GMRES whose restart length adapts to the observed
  convergence rate between cycles
- GCR: restarted generalized conjugate residual method

Both engines work on compressed sparse row, block sparse row, block composite
(saddle point) and matrix-free operators, accept any preconditioner action
z = M^{-1} r, and support three stopping criteria.
"""

from .constants import MatrixFormat, PrintLevel, SolverType, StopType
from .convergence import ConvergenceInfo, ConvergenceMonitor
from .exceptions import (
    ConfigurationError,
    ErrorCode,
    KrylovError,
    RestartReducedWarning,
    UnknownMatrixFormatError,
    UnknownSolverTypeError,
    UnknownStopTypeError,
    WorkspaceAllocationError,
)
from .gcr import pgcr
from .operators import (
    BlockOperator,
    BSROperator,
    CSROperator,
    MatrixFreeOperator,
    Operator,
    make_operator,
)
from .params import SolverParams
from .preconditioners import (
    NO_PRECONDITIONER,
    FunctionPreconditioner,
    IdentityPreconditioner,
    ILUPreconditioner,
    JacobiPreconditioner,
    MatrixPreconditioner,
    Preconditioner,
    as_preconditioner,
    make_preconditioner,
)
from .solver import KrylovSolver, itsolver, krylov, solve
from .utils import load_matrix_market, poisson_2d
from .vfgmres import RestartController, pvfgmres

__version__ = "0.3.0"
__all__ = [
    # Solve interface
    "solve",
    "KrylovSolver",
    "itsolver",
    "krylov",
    "pvfgmres",
    "pgcr",
    "RestartController",
    "SolverParams",
    "ConvergenceInfo",
    "ConvergenceMonitor",
    # Operators
    "Operator",
    "CSROperator",
    "BSROperator",
    "BlockOperator",
    "MatrixFreeOperator",
    "make_operator",
    # Preconditioners
    "NO_PRECONDITIONER",
    "Preconditioner",
    "IdentityPreconditioner",
    "FunctionPreconditioner",
    "MatrixPreconditioner",
    "JacobiPreconditioner",
    "ILUPreconditioner",
    "as_preconditioner",
    "make_preconditioner",
    # Enumerations
    "StopType",
    "SolverType",
    "MatrixFormat",
    "PrintLevel",
    "ErrorCode",
    # Errors
    "KrylovError",
    "ConfigurationError",
    "UnknownSolverTypeError",
    "UnknownStopTypeError",
    "UnknownMatrixFormatError",
    "WorkspaceAllocationError",
    "RestartReducedWarning",
    # Utilities
    "load_matrix_market",
    "poisson_2d",
]
