"""
Right preconditioned flexible GMRES with a variable restart length.

The restart length is adapted between cycles from the observed convergence
rate (Baker, Jessup and Kolev, "A simple strategy for varying the restart
parameter in GMRES(m)", 2009). The preconditioner may change from one
application to the next, so the preconditioned basis is kept explicitly.
"""

import logging
import math

import numpy as np

from .constants import (
    CR_MAX,
    CR_MIN,
    RESTART_MIN,
    RESTART_STEP,
    SMALLREAL,
    ErrorCode,
    PrintLevel,
    SolverType,
    StopType,
)
from .convergence import ConvergenceMonitor
from .operators import bind_system
from .params import SolverParams
from .preconditioners import as_preconditioner
from .workspace import VFGMRESWorkspace, allocate_workspace

logger = logging.getLogger(__name__)


class RestartController:
    """
    Chooses the restart length of the next cycle.

    With ``cr = ||r_new|| / ||r_old||`` of the last cycle: a stagnating cycle
    (``cr > CR_MAX``) or the first one uses ``restart_max``, a very fast one
    (``cr < CR_MIN``) keeps its length, anything in between shortens the
    cycle by ``step``, wrapping around to ``restart_max`` at the floor.
    """

    def __init__(self, restart_max, adaptive=True, restart_min=RESTART_MIN, step=RESTART_STEP):
        self.restart_max = restart_max
        self.restart_min = restart_min
        self.step = step
        self.adaptive = adaptive
        self.restart = restart_max

    def update(self, cr, first=False):
        if not self.adaptive or first or cr > CR_MAX:
            self.restart = self.restart_max
        elif cr < CR_MIN:
            pass
        elif self.restart - self.step > self.restart_min:
            self.restart -= self.step
        else:
            self.restart = self.restart_max
        return self.restart


def pvfgmres(A, b, x, pc=None, tol=1e-6, maxit=500, restart=25,
             stop_type=StopType.REL_RES, print_level=PrintLevel.NONE,
             *, min_iter=0, adaptive=True, monitor=None):
    """
    Solve A x = b with variable restart flexible GMRES.

    Parameters
    ----------
    A : Operator or anything accepted by :func:`make_operator`
        Coefficient operator
    b : numpy.ndarray
        Right hand side
    x : numpy.ndarray
        Initial guess on entry, approximate solution on return (float64)
    pc : Preconditioner, matrix or callable, optional
        Right preconditioner; ``None`` means no preconditioning
    tol : float, optional
        Tolerance for the selected stopping criterion. Default is 1e-6.
    maxit : int, optional
        Maximal number of iterations. Default is 500.
    restart : int, optional
        Maximal restart length. Default is 25.
    stop_type : StopType, int or str, optional
        Stopping criterion. Default is ``REL_RES``.
    print_level : PrintLevel or int, optional
        Verbosity. Default is ``NONE``.
    min_iter : int, optional
        Do not stop before this many iterations
    adaptive : bool, optional
        Adapt the restart length between cycles. With ``False`` the method
        is plain flexible GMRES(restart).
    monitor : ConvergenceMonitor, optional
        Monitor receiving the residual history

    Returns
    -------
    status : int
        Number of iterations on success, ``ErrorCode.ERROR_SOLVER_MAXIT``
        when the tolerance was not reached within ``maxit`` iterations
    """
    params = SolverParams(SolverType.VFGMRES, stop_type, tol, maxit, restart, print_level).validate()
    op, b = bind_system(A, b, x)
    pc = as_preconditioner(pc)
    if monitor is None:
        monitor = ConvergenceMonitor(params.stop_type, params.print_level, name="VFGMRES")
    else:
        monitor.stop_type = params.stop_type
        monitor.print_level = params.print_level
    tol, maxit = params.tol, params.maxit

    logger.debug("VFGMRES: n = %d, maxit = %d, tol = %.4e", op.n, maxit, tol)

    if maxit == 0:
        monitor.finish(0, ErrorCode.ERROR_SOLVER_MAXIT, math.nan)
        return ErrorCode.ERROR_SOLVER_MAXIT

    ws = allocate_workspace(VFGMRESWorkspace, op.n, params.restart, name="VFGMRES")
    r, rs, c, s, p, hh, z = ws.r, ws.rs, ws.c, ws.s, ws.p, ws.hh, ws.z
    controller = RestartController(ws.restart, adaptive=adaptive)

    p[0] = b - op.apply(x)
    b_norm = float(np.linalg.norm(b))
    r_norm = float(np.linalg.norm(p[0]))
    den_norm = b_norm if b_norm > 0.0 else r_norm
    epsilon = tol * den_norm
    monitor.start(b_norm, r_norm, den_norm)

    absres = r_norm
    relres = r_norm / den_norm if den_norm > 0.0 else 0.0

    # already converged
    if r_norm < epsilon or r_norm < 1e-3 * tol:
        monitor.finish(0, 0, relres, absres)
        return 0

    iteration = 0
    converged = False
    cr = 1.0

    while iteration < maxit:
        rs[0] = r_norm_old = r_norm
        if r_norm == 0.0:
            converged = True
            break

        Restart = controller.update(cr, first=(iteration == 0))
        monitor.new_cycle(iteration, Restart)

        p[0] /= r_norm
        i = 0

        while i < Restart and iteration < maxit:
            i += 1
            iteration += 1

            z[i - 1] = pc.apply(p[i - 1])
            p[i] = op.apply(z[i - 1])

            # modified Gram-Schmidt
            for j in range(i):
                hh[j, i - 1] = np.dot(p[j], p[i])
                p[i] -= hh[j, i - 1] * p[j]
            t = float(np.linalg.norm(p[i]))
            hh[i, i - 1] = t
            if t != 0.0:
                p[i] /= t

            # previous rotations on the new column, then the new rotation
            for j in range(1, i):
                t = hh[j - 1, i - 1]
                hh[j - 1, i - 1] = s[j - 1] * hh[j, i - 1] + c[j - 1] * t
                hh[j, i - 1] = -s[j - 1] * t + c[j - 1] * hh[j, i - 1]
            gamma = math.hypot(hh[i, i - 1], hh[i - 1, i - 1])
            if gamma == 0.0:
                gamma = SMALLREAL
            c[i - 1] = hh[i - 1, i - 1] / gamma
            s[i - 1] = hh[i, i - 1] / gamma
            rs[i] = -s[i - 1] * rs[i - 1]
            rs[i - 1] = c[i - 1] * rs[i - 1]
            hh[i - 1, i - 1] = gamma

            r_norm = abs(rs[i])
            absres, relres = r_norm, r_norm / den_norm
            monitor.record(iteration, r_norm)

            if r_norm <= epsilon and iteration >= min_iter:
                break

        # back substitution for the coefficients of z
        rs[i - 1] /= hh[i - 1, i - 1]
        for k in range(i - 2, -1, -1):
            rs[k] = (rs[k] - np.dot(hh[k, k + 1:i], rs[k + 1:i])) / hh[k, k]
        r[:] = rs[:i] @ z[:i]
        x += r

        if r_norm <= epsilon and iteration >= min_iter:
            r[:] = b - op.apply(x)
            absres, relres = monitor.relative_residual(r, x, den_norm, pc)
            if monitor.converged(relres, tol):
                converged = True
                break
            monitor.false_convergence()
            r_norm = float(np.linalg.norm(r))
            p[0] = r
            i = 0

        # residual of the cycle as a combination of the basis
        for j in range(i, 0, -1):
            rs[j - 1] = -s[j - 1] * rs[j]
            rs[j] = c[j - 1] * rs[j]
        if i:
            p[0] = rs[:i + 1] @ p[:i + 1]

        cr = r_norm / r_norm_old

    status = iteration if converged else ErrorCode.ERROR_SOLVER_MAXIT
    monitor.finish(iteration, status, relres, absres)
    logger.debug("VFGMRES: finished with status %d", status)
    return status
