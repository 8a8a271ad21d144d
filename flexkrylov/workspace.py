"""
Per-solve scratch storage for the Krylov engines.

Each workspace is one flat float64 arena carved into named views, so a solve
performs a single allocation. The views are owned by the running call and are
released with the workspace object on every exit path.
"""

import logging
import warnings

import numpy as np

from .constants import RESTART_SHRINK
from .exceptions import RestartReducedWarning, WorkspaceAllocationError

logger = logging.getLogger(__name__)


def _allocate(size):
    try:
        return np.zeros(size, dtype=np.float64)
    except (ValueError, OverflowError) as exc:
        # numpy refuses sizes beyond the address space before trying to allocate
        raise MemoryError(f"cannot allocate {size} float64 values: {exc}") from exc


class _Arena:
    """Hands out consecutive views of a flat buffer."""

    __slots__ = ("buf", "pos")

    def __init__(self, buf):
        self.buf = buf
        self.pos = 0

    def take(self, *shape):
        size = int(np.prod(shape))
        view = self.buf[self.pos:self.pos + size].reshape(shape)
        self.pos += size
        return view


class VFGMRESWorkspace:
    """
    Scratch arrays for one VFGMRES solve with restart length R.

    Attributes
    ----------
    r : (n,) residual
    rs : (R+1,) rotated residual projection
    c, s : (R,) Givens cosines and sines
    p : (R+1, n) orthonormal Krylov basis
    hh : (R+1, R) Hessenberg matrix
    z : (R+1, n) preconditioned basis
    """

    __slots__ = ("n", "restart", "arena", "r", "rs", "c", "s", "p", "hh", "z")

    def __init__(self, n, restart):
        self.n = n
        self.restart = restart
        self.arena = _allocate(self.worksize(n, restart))
        a = _Arena(self.arena)
        R = restart
        self.r = a.take(n)
        self.rs = a.take(R + 1)
        self.c = a.take(R)
        self.s = a.take(R)
        self.p = a.take(R + 1, n)
        self.hh = a.take(R + 1, R)
        self.z = a.take(R + 1, n)

    @staticmethod
    def worksize(n, restart):
        R = restart
        return n + (R + 1) + 2 * R + 2 * (R + 1) * n + (R + 1) * R


class GCRWorkspace:
    """
    Scratch arrays for one GCR solve with restart length R.

    ``z`` holds the preconditioned residuals, ``c = A z`` the search
    directions, ``h`` the lower triangular Gram-Schmidt coefficients.
    """

    __slots__ = ("n", "restart", "arena", "r", "z", "c", "h", "alp", "tmpx")

    def __init__(self, n, restart):
        self.n = n
        self.restart = restart
        self.arena = _allocate(self.worksize(n, restart))
        a = _Arena(self.arena)
        R = restart
        self.r = a.take(n)
        self.z = a.take(R, n)
        self.c = a.take(R, n)
        self.h = a.take(R, R)
        self.alp = a.take(R)
        self.tmpx = a.take(R)

    @staticmethod
    def worksize(n, restart):
        R = restart
        return n + 2 * R * n + 2 * R + R * R


def allocate_workspace(cls, n, restart, name=""):
    """
    Allocate a workspace of type ``cls``, shrinking the restart on failure.

    Parameters
    ----------
    cls : type
        :class:`VFGMRESWorkspace` or :class:`GCRWorkspace`
    n : int
        Problem size
    restart : int
        Requested restart length. A basis longer than the problem size is
        never useful, so at most ``n`` is tried.
    name : str, optional
        Solver name used in messages

    Returns
    -------
    ws : cls
        Workspace whose ``restart`` attribute is the effective restart length

    Raises
    ------
    WorkspaceAllocationError
        When no restart length above the shrink floor fits in memory
    """
    requested = attempt = max(1, min(restart, n))
    while True:
        try:
            ws = cls(n, attempt)
            break
        except MemoryError:
            if attempt > RESTART_SHRINK:
                attempt -= RESTART_SHRINK
                logger.debug("%s: workspace for restart %d failed, retrying", name, attempt + RESTART_SHRINK)
                continue
            logger.error("%s: cannot allocate workspace (n=%d, restart=%d)", name, n, attempt)
            raise WorkspaceAllocationError(
                f"{name}: not enough memory for n={n}, restart={attempt}", restart=attempt
            ) from None

    if ws.restart < requested:
        msg = f"{name}: restart reduced from {requested} to {ws.restart} to fit in memory"
        logger.warning(msg)
        warnings.warn(msg, RestartReducedWarning, stacklevel=3)
    return ws
