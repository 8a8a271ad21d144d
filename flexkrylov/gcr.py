"""
Preconditioned generalized conjugate residual method.
"""

import logging
import math

import numpy as np

from .constants import SMALLREAL, ErrorCode, PrintLevel, SolverType, StopType
from .convergence import ConvergenceMonitor
from .operators import bind_system
from .params import SolverParams
from .preconditioners import as_preconditioner
from .workspace import GCRWorkspace, allocate_workspace

logger = logging.getLogger(__name__)


def pgcr(A, b, x, pc=None, tol=1e-6, maxit=500, restart=25,
         stop_type=StopType.REL_RES, print_level=PrintLevel.NONE,
         *, monitor=None):
    """
    Solve A x = b with restarted, right preconditioned GCR.

    The search directions ``c_i = A z_i`` with ``z_i = M^{-1} r`` are made
    mutually orthogonal by modified Gram-Schmidt and the residual is updated
    directly. Convergence is measured by ``||r|| / ||r0||``; ``stop_type`` is
    checked but does not change the criterion.

    Parameters are those of :func:`flexkrylov.vfgmres.pvfgmres`. The restart
    length is at most ``maxit``.

    Returns
    -------
    status : int
        Number of iterations on success, ``ErrorCode.ERROR_SOLVER_MAXIT``
        otherwise
    """
    params = SolverParams(SolverType.GCR, stop_type, tol, maxit, restart, print_level).validate()
    op, b = bind_system(A, b, x)
    pc = as_preconditioner(pc)
    if monitor is None:
        monitor = ConvergenceMonitor(params.stop_type, params.print_level, name="GCR")
    else:
        monitor.stop_type = params.stop_type
        monitor.print_level = params.print_level
    tol, maxit = params.tol, params.maxit

    logger.debug("GCR: n = %d, maxit = %d, tol = %.4e", op.n, maxit, tol)

    if maxit == 0:
        monitor.finish(0, ErrorCode.ERROR_SOLVER_MAXIT, math.nan)
        return ErrorCode.ERROR_SOLVER_MAXIT

    ws = allocate_workspace(GCRWorkspace, op.n, min(params.restart, maxit), name="GCR")
    Restart = ws.restart
    r, z, c, h, alp, tmpx = ws.r, ws.z, ws.c, ws.h, ws.alp, ws.tmpx

    r[:] = b - op.apply(x)
    absres = float(np.dot(r, r))
    absres0 = max(SMALLREAL, absres)
    relres = absres / absres0
    monitor.start(float(np.linalg.norm(b)), math.sqrt(absres), math.sqrt(absres0))

    checktol = max(tol * tol * absres0, absres * 1.0e-4)
    zero_guess = not np.any(x)

    iteration = 0
    cycle = 0
    converged = math.sqrt(relres) < tol

    while iteration < maxit and not converged:
        monitor.new_cycle(iteration, Restart)
        i = -1

        while i < Restart - 1 and iteration < maxit:
            i += 1
            iteration += 1

            z[i] = pc.apply(r)
            c[i] = op.apply(z[i])

            # modified Gram-Schmidt against the previous directions
            for j in range(i):
                gamma = np.dot(c[j], c[i])
                h[i, j] = gamma / h[j, j]
                c[i] -= h[i, j] * c[j]

            gamma = float(np.dot(c[i], c[i]))
            if gamma == 0.0:
                gamma = SMALLREAL
            h[i, i] = gamma

            alpha = float(np.dot(c[i], r))
            alp[i] = alpha / gamma
            r -= alp[i] * c[i]

            # ||r||^2 updated incrementally, recomputed once it gets small
            absres -= alpha * alpha / gamma
            if absres < checktol:
                absres = float(np.dot(r, r))
                checktol = max(tol * tol * absres0, absres * 1.0e-4)

            relres = absres / absres0
            monitor.record(iteration, math.sqrt(max(absres, 0.0)), math.sqrt(max(relres, 0.0)))

            if math.sqrt(max(relres, 0.0)) < tol:
                converged = True
                break

        # coefficients of z from the orthogonalized directions
        for k in range(i, -1, -1):
            tmpx[k] = alp[k]
            alp[:k] -= h[k, :k] * tmpx[k]

        update = tmpx[:i + 1] @ z[:i + 1]
        if cycle == 0 and zero_guess:
            x[:] = update
        else:
            x += update
        cycle += 1

    relres = math.sqrt(max(relres, 0.0))
    status = iteration if converged else ErrorCode.ERROR_SOLVER_MAXIT
    monitor.finish(iteration, status, relres, math.sqrt(max(absres, 0.0)))
    logger.debug("GCR: finished with status %d", status)
    return status
