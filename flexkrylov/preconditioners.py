"""
Preconditioner implementations: z = M^{-1} r as an approximate inverse action.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import numpy as np
import scipy.sparse as sp

from .exceptions import ConfigurationError

# Sentinel for "no preconditioner"; the engines map it onto the identity
NO_PRECONDITIONER = None

PRECONDITIONERS = ("none", "jacobi", "ilu")


class Preconditioner(ABC):
    """Approximate inverse action of the coefficient operator."""

    @abstractmethod
    def apply(self, r: np.ndarray) -> np.ndarray:
        """
        Compute z ≈ A^{-1} r.

        Must return a new vector; ``r`` is not modified.
        """
        pass

    def __call__(self, r):
        return self.apply(r)


class IdentityPreconditioner(Preconditioner):
    def apply(self, r):
        return r.copy()


class FunctionPreconditioner(Preconditioner):
    """
    Preconditioner given as a user function.

    ``fct(r, data)`` is called when ``data`` is given, ``fct(r)`` otherwise.
    """

    def __init__(self, fct: Callable, data: Any = None):
        if not callable(fct):
            raise ConfigurationError("Preconditioner function must be callable")
        self.fct = fct
        self.data = data

    def apply(self, r):
        if self.data is None:
            return np.asarray(self.fct(r), dtype=np.float64)
        return np.asarray(self.fct(r, self.data), dtype=np.float64)


class MatrixPreconditioner(Preconditioner):
    """Explicit approximate inverse (sparse matrix, dense array or LinearOperator)."""

    def __init__(self, Minv: Any):
        if not sp.issparse(Minv) and not hasattr(Minv, "matvec"):
            Minv = np.asarray(Minv, dtype=np.float64)
        self.Minv = Minv

    def apply(self, r):
        if sp.issparse(self.Minv) or isinstance(self.Minv, np.ndarray):
            return np.asarray(self.Minv @ r, dtype=np.float64)
        return np.asarray(self.Minv.matvec(r), dtype=np.float64).ravel()


class JacobiPreconditioner(Preconditioner):
    """
    Jacobi (diagonal) preconditioner, z = D^{-1} r with D = diag(A).

    Parameters
    ----------
    A : scipy.sparse.spmatrix or numpy.ndarray
        Coefficient matrix
    """

    def __init__(self, A: Any):
        D = A.diagonal() if sp.issparse(A) else np.diag(np.asarray(A))
        if np.any(D == 0):
            raise ValueError("Zero diagonal entry, cannot build Jacobi preconditioner.")
        self.Dinv = 1.0 / D

    def apply(self, r):
        return self.Dinv * r


class ILUPreconditioner(Preconditioner):
    """
    Incomplete LU preconditioner built with scipy.sparse.linalg.spilu.

    Parameters
    ----------
    A : scipy.sparse.spmatrix
        Sparse matrix
    drop_tol : float, optional
        Drop tolerance for ILU factorization. Default is 0.0.
    fill_factor : float, optional
        Fill factor for ILU factorization. Default is 1.0 (ILU(0)).
    """

    def __init__(self, A: Any, drop_tol: float = 0.0, fill_factor: float = 1.0):
        from scipy.sparse.linalg import spilu

        # SuperLU prefers CSC format
        A_csc = sp.csc_matrix(A)
        self.ilu = spilu(A_csc, drop_tol=drop_tol, fill_factor=fill_factor)

    def apply(self, r):
        return self.ilu.solve(r)


def as_preconditioner(M: Any) -> Preconditioner:
    """
    Coerce ``M`` to a :class:`Preconditioner`.

    ``None`` becomes the identity. Sparse or dense matrices and objects with
    ``matvec`` are applied as explicit inverses, objects with ``solve`` (such
    as an spilu factorization) through their solve method, and any other
    callable as a function preconditioner.
    """
    if M is NO_PRECONDITIONER:
        return IdentityPreconditioner()
    if isinstance(M, Preconditioner):
        return M
    if sp.issparse(M) or isinstance(M, np.ndarray) or hasattr(M, "matvec"):
        return MatrixPreconditioner(M)
    if hasattr(M, "solve"):
        return FunctionPreconditioner(M.solve)
    if callable(M):
        return FunctionPreconditioner(M)
    raise ConfigurationError(f"Cannot use {type(M).__name__} as a preconditioner")


def make_preconditioner(A: Any, kind: Optional[str] = "none", **kwargs) -> Preconditioner:
    """
    Build a preconditioner for ``A``.

    Parameters
    ----------
    A : scipy.sparse.spmatrix or numpy.ndarray
        Coefficient matrix
    kind : str, optional
        "none", "jacobi" or "ilu". Default is "none".
    **kwargs
        Passed to the preconditioner constructor (e.g. ``drop_tol`` for ILU)

    Returns
    -------
    M : Preconditioner
    """
    key = "none" if kind is None else str(kind).lower()
    if key == "none":
        return IdentityPreconditioner()
    elif key == "jacobi":
        return JacobiPreconditioner(A)
    elif key == "ilu":
        return ILUPreconditioner(A, **kwargs)
    else:
        raise ConfigurationError(
            f"Unknown preconditioner: {kind!r}. Available: {', '.join(PRECONDITIONERS)}"
        )
