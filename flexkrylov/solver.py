"""
Solver dispatch and the high-level solve interface.

:func:`itsolver` is the integer call surface: it returns the number of
iterations or a negative :class:`~flexkrylov.constants.ErrorCode`.
:class:`KrylovSolver` and :func:`solve` wrap it into ``(x, ConvergenceInfo)``.
"""

import logging
import time
from typing import Any, Callable, Mapping, Optional, Union

import numpy as np

from .constants import ErrorCode, MatrixFormat, PrintLevel, SolverType
from .convergence import ConvergenceInfo, ConvergenceMonitor
from .exceptions import ConfigurationError
from .gcr import pgcr
from .operators import make_operator
from .params import SolverParams
from .preconditioners import PRECONDITIONERS, make_preconditioner
from .vfgmres import pvfgmres

logger = logging.getLogger(__name__)

_ENGINES = {
    SolverType.VFGMRES: pvfgmres,
    SolverType.GCR: pgcr,
}


def _resolve_params(params, overrides):
    if params is None:
        params = SolverParams()
    elif isinstance(params, Mapping):
        params = SolverParams.from_dict(params)
    return params.replace(**overrides) if overrides else params.validate()


def itsolver(A: Any,
             b: np.ndarray,
             x: np.ndarray,
             pc: Any = None,
             params: Union[SolverParams, Mapping, None] = None,
             *,
             matrix_format: Any = None,
             monitor: Optional[ConvergenceMonitor] = None,
             **overrides) -> int:
    """
    Solve A x = b in place with the Krylov method selected by ``params``.

    Parameters
    ----------
    A : Operator, sparse matrix, block grid, LinearOperator or callable
        Coefficient operator; its storage format is inferred unless
        ``matrix_format`` is given
    b : numpy.ndarray
        Right hand side
    x : numpy.ndarray
        Initial guess on entry, solution on return
    pc : Preconditioner, matrix or callable, optional
        Preconditioner; ``None`` means none
    params : SolverParams or mapping, optional
        Solver parameters. Defaults to ``SolverParams()``.
    matrix_format : MatrixFormat, int or str, optional
        Storage format of ``A``
    monitor : ConvergenceMonitor, optional
        Receives the residual history
    **overrides
        Individual fields of :class:`SolverParams` (e.g. ``tol=1e-8``)

    Returns
    -------
    status : int
        Iterations used on success, a negative error code otherwise.
        Configuration errors are returned as codes; running out of memory
        for the workspace raises :class:`WorkspaceAllocationError`.
    """
    try:
        params = _resolve_params(params, overrides)
        op = make_operator(A, matrix_format, n=np.size(b))
        engine = _ENGINES[params.solver_type]

        if params.print_level > PrintLevel.NONE:
            logger.info("Calling %s solver (%s) ...", params.solver_type.name, op.format.name)

        t0 = time.perf_counter()
        status = engine(op, b, x, pc, params.tol, params.maxit, params.restart,
                        params.stop_type, params.print_level, monitor=monitor)
        t1 = time.perf_counter()
    except ConfigurationError as exc:
        logger.error("itsolver: %s", exc)
        return int(exc.code)

    if params.print_level >= PrintLevel.SOME:
        logger.info("Iterative method costs %.4f seconds", t1 - t0)
    return int(status)


def krylov(A: Any, b: np.ndarray, x: np.ndarray, params=None, **kwargs) -> int:
    """Solve A x = b without preconditioning. See :func:`itsolver`."""
    t0 = time.perf_counter()
    status = itsolver(A, b, x, None, params, **kwargs)
    t1 = time.perf_counter()

    if status < 0 and status != ErrorCode.ERROR_SOLVER_MAXIT:
        return status
    level = kwargs.get("print_level")
    if level is None:
        level = params.get("print_level", 0) if isinstance(params, Mapping) else getattr(params, "print_level", 0)
    if PrintLevel.parse(level) >= PrintLevel.MIN:
        logger.info("Krylov method totally costs %.4f seconds", t1 - t0)
    return status


class KrylovSolver:
    """
    Reusable Krylov solver returning ``(x, ConvergenceInfo)``.

    The configuration is checked when the solver is created; invalid options
    raise :class:`~flexkrylov.exceptions.ConfigurationError`.
    """

    def __init__(self,
                 solver_type: Any = "vfgmres",
                 preconditioner: Any = None,
                 tol: float = 1e-6,
                 maxit: int = 500,
                 restart: int = 25,
                 stop_type: Any = "rel_res",
                 print_level: Any = 0,
                 matrix_format: Any = None,
                 **preconditioner_kwargs):
        """
        Parameters
        ----------
        solver_type : str, int or SolverType
            "vfgmres" or "gcr"
        preconditioner : str, Preconditioner, matrix or callable, optional
            "none", "jacobi" and "ilu" are built from ``A`` for every solve;
            anything else is used as given
        tol, maxit, restart, stop_type, print_level
            See :class:`SolverParams`
        matrix_format : str, int or MatrixFormat, optional
            Storage format of ``A``, inferred when omitted
        **preconditioner_kwargs
            Additional preconditioner parameters (e.g., drop_tol, fill_factor)
            for a named preconditioner
        """
        self.params = SolverParams(solver_type, stop_type, tol, maxit, restart, print_level).validate()
        self.matrix_format = None if matrix_format is None else MatrixFormat.parse(matrix_format)
        if isinstance(preconditioner, str) and preconditioner.lower() not in PRECONDITIONERS:
            raise ConfigurationError(
                f"Unknown preconditioner: {preconditioner!r}. Available: {', '.join(PRECONDITIONERS)}"
            )
        if preconditioner_kwargs and not isinstance(preconditioner, str):
            raise ConfigurationError(
                f"Preconditioner options {sorted(preconditioner_kwargs)} need a named preconditioner, "
                f"got {type(preconditioner).__name__}"
            )
        self.preconditioner = preconditioner
        self.preconditioner_kwargs = preconditioner_kwargs

    def solve(self,
              A: Any,
              b: Any,
              x0: Optional[Any] = None,
              callback: Optional[Callable] = None) -> tuple[np.ndarray, ConvergenceInfo]:
        """
        Solve Ax = b.

        Parameters
        ----------
        A : sparse matrix, Operator, block grid or callable
            System operator
        b : array-like
            Right-hand side vector
        x0 : array-like, optional
            Initial guess (not modified). Defaults to zero.
        callback : callable, optional
            ``callback(iteration, relres, absres, factor)`` after every iteration

        Returns
        -------
        x : numpy.ndarray
            Approximate solution
        info : ConvergenceInfo
            Convergence information
        """
        b = np.asarray(b, dtype=np.float64).ravel()
        x = np.zeros_like(b) if x0 is None else np.array(x0, dtype=np.float64).ravel()

        t0 = time.perf_counter()
        if isinstance(self.preconditioner, str):
            M = make_preconditioner(A, self.preconditioner, **self.preconditioner_kwargs)
        else:
            M = self.preconditioner
        setup_time = time.perf_counter() - t0

        name = self.params.solver_type.name
        monitor = ConvergenceMonitor(self.params.stop_type, self.params.print_level, callback, name=name)
        op = make_operator(A, self.matrix_format, n=b.size)
        engine = _ENGINES[self.params.solver_type]

        t0 = time.perf_counter()
        status = engine(op, b, x, M, self.params.tol, self.params.maxit, self.params.restart,
                        self.params.stop_type, self.params.print_level, monitor=monitor)
        solve_time = time.perf_counter() - t0

        return x, monitor.summary(status, solve_time=solve_time, setup_time=setup_time)

    def __repr__(self):
        return (f"KrylovSolver(solver_type={self.params.solver_type.name.lower()!r}, "
                f"preconditioner={self.preconditioner!r}, tol={self.params.tol}, "
                f"maxit={self.params.maxit}, restart={self.params.restart})")


def solve(A: Any,
          b: Any,
          x0: Optional[Any] = None,
          callback: Optional[Callable] = None,
          **kwargs) -> tuple[np.ndarray, ConvergenceInfo]:
    """
    High-level one-shot solve.

    Parameters
    ----------
    A : sparse matrix, Operator, block grid or callable
        System operator
    b : array-like
        Right-hand side vector
    x0 : array-like, optional
        Initial guess
    callback : callable, optional
        Per-iteration progress callback
    **kwargs
        Options of :class:`KrylovSolver`

    Returns
    -------
    x : numpy.ndarray
        Solution vector
    info : ConvergenceInfo
        Convergence information

    Examples
    --------
    >>> from flexkrylov import solve, poisson_2d
    >>> import numpy as np
    >>> A = poisson_2d(32, 32)
    >>> x, info = solve(A, np.ones(A.shape[0]), preconditioner="ilu", tol=1e-8)
    >>> info.converged
    True
    """
    solver = KrylovSolver(**kwargs)
    return solver.solve(A, b, x0=x0, callback=callback)
