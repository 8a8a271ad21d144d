"""
Convergence information, residual history and progress reporting.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from .constants import SMALLREAL, ErrorCode, PrintLevel, StopType

logger = logging.getLogger(__name__)

_HEADERS = {
    StopType.REL_RES: "It Num |   ||r||/||b||   |     ||r||      |  Conv. Factor",
    StopType.REL_PRECRES: "It Num | ||r||_B/||b||_B |    ||r||_B     |  Conv. Factor",
    StopType.MOD_REL_RES: "It Num |   ||r||/||x||   |     ||r||      |  Conv. Factor",
}


@dataclass
class ConvergenceInfo:
    """
    Information about the convergence of a linear solver.

    Attributes
    ----------
    converged : bool
        Whether the solver converged to the specified tolerance
    iterations : int
        Number of iterations performed
    residual_norm : float
        Final residual norm under the active stopping metric
    relative_residual : float
        Final relative residual under the active stopping metric
    solve_time : float
        Time taken for the solve (seconds)
    setup_time : float
        Time taken for preconditioner setup (seconds)
    reason : str
        Human-readable reason for termination
    status : int
        Return value of the integer call surface (iterations or error code)
    restart : int, optional
        Effective restart length of the last cycle
    history : list of float
        Residual norm after every iteration, starting with the initial one
    """
    converged: bool
    iterations: int
    residual_norm: float
    relative_residual: float
    solve_time: float
    setup_time: float = 0.0
    reason: str = ""
    status: int = 0
    restart: Optional[int] = None
    history: List[float] = field(default_factory=list)

    def __str__(self):
        status = "Converged" if self.converged else "Not converged"
        return (
            f"{status} in {self.iterations} iterations\n"
            f"  Residual norm: {self.residual_norm:.2e}\n"
            f"  Relative residual: {self.relative_residual:.2e}\n"
            f"  Solve time: {self.solve_time:.4f}s"
        )

    def to_dict(self):
        return {
            "converged": self.converged,
            "niter": self.iterations,
            "residual_norm": self.residual_norm,
            "relative_residual": self.relative_residual,
            "time": self.solve_time,
            "setup_time": self.setup_time,
            "reason": self.reason,
            "status": self.status,
            "restart": self.restart,
        }


class ConvergenceMonitor:
    """
    Residual bookkeeping for one solve.

    The monitor only records and reports; the engines decide what to do with
    its answers. ``callback(iteration, relres, absres, factor)`` is called for
    every recorded norm, including the initial one.

    Parameters
    ----------
    stop_type : StopType, int or str
        Residual metric used for the convergence decision
    print_level : PrintLevel or int
        Per-iteration lines are logged from ``PrintLevel.SOME`` on
    callback : callable, optional
        Progress sink
    name : str, optional
        Solver name used as a prefix in log messages
    """

    def __init__(self, stop_type=StopType.REL_RES, print_level=PrintLevel.NONE,
                 callback: Optional[Callable] = None, name: str = ""):
        self.stop_type = StopType.parse(stop_type)
        self.print_level = PrintLevel.parse(print_level)
        self.callback = callback
        self.name = name
        self.reset()

    def reset(self):
        self.history: List[float] = []
        self.relres_history: List[float] = []
        self.cycle_starts: List[int] = []
        self.restarts: List[int] = []
        self.false_convergences = 0
        self.den_norm = 1.0
        self.final_relres = math.nan
        self.final_absres = math.nan
        self._last_iteration = 0

    @property
    def verbose(self):
        return self.print_level >= PrintLevel.SOME

    @property
    def iterations(self) -> int:
        return self._last_iteration

    @property
    def last_residual(self) -> float:
        return self.history[-1] if self.history else math.nan

    def ratios(self):
        """Reduction factors ||r_k|| / ||r_{k-1}|| of consecutive recorded norms."""
        h = np.asarray(self.history, dtype=np.float64)
        prev = h[:-1]
        return np.divide(h[1:], prev, out=np.zeros_like(prev), where=prev > 0)

    def start(self, b_norm, r_norm, den_norm):
        self.reset()
        self.den_norm = den_norm
        if self.verbose:
            logger.info("%s: ||b|| = %e, initial residual ||r0|| = %e", self.name, b_norm, r_norm)
            logger.info(_HEADERS[self.stop_type])
        relres = r_norm / den_norm if den_norm > 0 else r_norm
        self._push(0, r_norm, relres, 0.0)

    def record(self, iteration, absres, relres=None):
        if relres is None:
            relres = absres / self.den_norm if self.den_norm > 0 else absres
        prev = self.history[-1] if self.history else 0.0
        factor = absres / prev if prev > 0 else 0.0
        self._push(iteration, absres, relres, factor)

    def _push(self, iteration, absres, relres, factor):
        self.history.append(float(absres))
        self.relres_history.append(float(relres))
        self._last_iteration = iteration
        if self.verbose:
            logger.info("%6d | %13.6e | %13.6e | %10.4f", iteration, relres, absres, factor)
        if self.callback is not None:
            self.callback(iteration, relres, absres, factor)

    def new_cycle(self, iteration, restart):
        self.cycle_starts.append(iteration)
        self.restarts.append(restart)
        logger.debug("%s: cycle at iteration %d with restart %d", self.name, iteration, restart)

    def false_convergence(self):
        self.false_convergences += 1
        if self.verbose:
            logger.warning("%s: False convergence!", self.name)

    def relative_residual(self, r, x, den_norm, pc):
        """
        Evaluate the stopping metric on a true residual ``r = b - A x``.

        Returns
        -------
        absres, relres : float
        """
        if self.stop_type == StopType.REL_PRECRES:
            absres = math.sqrt(abs(float(np.dot(pc(r), r))))
            return absres, absres / den_norm
        absres = float(np.linalg.norm(r))
        if self.stop_type == StopType.MOD_REL_RES:
            return absres, absres / max(SMALLREAL, float(np.linalg.norm(x)))
        return absres, absres / den_norm

    @staticmethod
    def converged(relres, tol):
        return relres <= tol

    def finish(self, iterations, status, relres, absres=None):
        self.final_relres = float(relres)
        if absres is not None:
            self.final_absres = float(absres)
        if status >= 0:
            logger.info("%s: Number of iterations = %d with relative residual %e.",
                        self.name, iterations, relres)
        else:
            logger.warning("%s: Max iter %d reached with rel. resid. %e.",
                           self.name, iterations, relres)

    def summary(self, status, solve_time=0.0, setup_time=0.0):
        """Build a :class:`ConvergenceInfo` from the recorded state."""
        converged = status >= 0
        if converged:
            reason = "converged"
        elif status == ErrorCode.ERROR_SOLVER_MAXIT:
            reason = "maximum number of iterations reached"
        else:
            reason = f"failed with code {status}"
        return ConvergenceInfo(
            converged=converged,
            iterations=int(status) if converged else self.iterations,
            residual_norm=self.last_residual if math.isnan(self.final_absres) else self.final_absres,
            relative_residual=self.final_relres,
            solve_time=solve_time,
            setup_time=setup_time,
            reason=reason,
            status=int(status),
            restart=self.restarts[-1] if self.restarts else None,
            history=list(self.history),
        )
