"""
Operator abstraction: the action y = A @ x for several storage layouts.

The Krylov engines only ever call :meth:`Operator.apply`, so the same engine
runs unchanged on CSR, block CSR, block composite and matrix-free operators.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import LinearOperator

from .constants import MatrixFormat
from .exceptions import ConfigurationError, UnknownMatrixFormatError


class Operator(ABC):
    """
    Abstract square linear operator.

    Subclasses set ``self.shape`` in their constructor and implement
    :meth:`apply`. Operators are never modified by a solve.
    """

    shape: tuple[int, int]
    format: MatrixFormat

    @property
    def n(self) -> int:
        return self.shape[0]

    @abstractmethod
    def apply(self, x: np.ndarray) -> np.ndarray:
        """
        Compute y = A @ x.

        Parameters
        ----------
        x : numpy.ndarray
            Vector of length ``n``

        Returns
        -------
        y : numpy.ndarray
            New vector of length ``n``
        """
        pass

    def __call__(self, x):
        return self.apply(x)

    def __repr__(self):
        return f"{type(self).__name__}(n={self.n})"


def _check_square(shape, what):
    if len(shape) != 2 or shape[0] != shape[1]:
        raise ConfigurationError(f"{what} must be square, got shape {tuple(shape)}")


class CSROperator(Operator):
    """Compressed sparse row matrix."""

    format = MatrixFormat.CSR

    def __init__(self, matrix: Any):
        if sp.issparse(matrix):
            self.matrix = matrix.tocsr()
        else:
            self.matrix = sp.csr_matrix(np.asarray(matrix, dtype=np.float64))
        _check_square(self.matrix.shape, "CSR matrix")
        self.shape = self.matrix.shape

    def apply(self, x):
        return self.matrix @ x

    @property
    def nnz(self) -> int:
        return self.matrix.nnz


class BSROperator(Operator):
    """Block compressed sparse row matrix."""

    format = MatrixFormat.BSR

    def __init__(self, matrix: Any, blocksize: Optional[tuple[int, int]] = None):
        if sp.issparse(matrix) and matrix.format == "bsr" and blocksize in (None, matrix.blocksize):
            self.matrix = matrix
        elif sp.issparse(matrix):
            self.matrix = matrix.tobsr(blocksize=blocksize)
        else:
            self.matrix = sp.bsr_matrix(np.asarray(matrix, dtype=np.float64), blocksize=blocksize)
        _check_square(self.matrix.shape, "BSR matrix")
        self.shape = self.matrix.shape

    def apply(self, x):
        return self.matrix @ x

    @property
    def blocksize(self) -> tuple[int, int]:
        return self.matrix.blocksize


class BlockOperator(Operator):
    """
    Block composite operator, e.g. a saddle point system [[A, B^T], [B, C]].

    Parameters
    ----------
    blocks : sequence of sequences
        2-D grid of sub-blocks. Each entry is an :class:`Operator`, a sparse
        or dense matrix, or ``None`` for a zero block.
    """

    format = MatrixFormat.BLC

    def __init__(self, blocks: Sequence[Sequence[Any]]):
        grid = [list(row) for row in blocks]
        if not grid or not grid[0]:
            raise ConfigurationError("BlockOperator needs at least one block")
        nbr, nbc = len(grid), len(grid[0])
        if any(len(row) != nbc for row in grid):
            raise ConfigurationError("All block rows must have the same number of blocks")

        row_sizes: list[Optional[int]] = [None] * nbr
        col_sizes: list[Optional[int]] = [None] * nbc
        self.blocks = [[None] * nbc for _ in range(nbr)]
        for i, row in enumerate(grid):
            for j, block in enumerate(row):
                if block is None:
                    continue
                if not isinstance(block, Operator) and not sp.issparse(block):
                    block = np.asarray(block, dtype=np.float64)
                m, n = block.shape
                if row_sizes[i] not in (None, m) or col_sizes[j] not in (None, n):
                    raise ConfigurationError(f"Block ({i}, {j}) has inconsistent shape {block.shape}")
                row_sizes[i], col_sizes[j] = m, n
                self.blocks[i][j] = block

        if None in row_sizes or None in col_sizes:
            raise ConfigurationError("Every block row and column needs at least one nonzero block")

        self.row_offsets = np.concatenate(([0], np.cumsum(row_sizes)))
        self.col_offsets = np.concatenate(([0], np.cumsum(col_sizes)))
        self.shape = (int(self.row_offsets[-1]), int(self.col_offsets[-1]))
        _check_square(self.shape, "Block operator")

    def apply(self, x):
        y = np.zeros(self.shape[0], dtype=np.result_type(x, np.float64))
        ro, co = self.row_offsets, self.col_offsets
        for i, row in enumerate(self.blocks):
            yi = y[ro[i]:ro[i + 1]]
            for j, block in enumerate(row):
                if block is None:
                    continue
                xj = x[co[j]:co[j + 1]]
                yi += block.apply(xj) if isinstance(block, Operator) else block @ xj
        return y


class MatrixFreeOperator(Operator):
    """
    Operator known only through a user supplied function.

    ``fct(x, data)`` is called when ``data`` is given, ``fct(x)`` otherwise.
    """

    format = MatrixFormat.MATFREE

    def __init__(self, fct: Callable, n: int, data: Any = None):
        if not callable(fct):
            raise ConfigurationError("Matrix-free operator needs a callable")
        if n is None or int(n) < 0:
            raise ConfigurationError("Matrix-free operator needs its dimension n")
        self.fct = fct
        self.data = data
        self.shape = (int(n), int(n))

    def apply(self, x):
        if self.data is None:
            return np.asarray(self.fct(x))
        return np.asarray(self.fct(x, self.data))


def make_operator(A: Any,
                  matrix_format: Any = None,
                  n: Optional[int] = None) -> Operator:
    """
    Wrap ``A`` into the operator variant for ``matrix_format``.

    Parameters
    ----------
    A : Operator, sparse matrix, ndarray, nested list, LinearOperator or callable
        Coefficient operator
    matrix_format : MatrixFormat, int or str, optional
        Storage layout. Inferred from ``A`` when omitted.
    n : int, optional
        Dimension, required for a bare callable

    Returns
    -------
    op : Operator
    """
    if matrix_format is None:
        return _infer_operator(A, n)

    fmt = MatrixFormat.parse(matrix_format)
    if isinstance(A, Operator):
        if A.format != fmt:
            raise UnknownMatrixFormatError(f"Operator is {A.format.name}, expected {fmt.name}")
        return A
    if fmt == MatrixFormat.CSR:
        return CSROperator(A)
    if fmt == MatrixFormat.BSR:
        return BSROperator(A)
    if fmt == MatrixFormat.BLC:
        return BlockOperator(A)
    if isinstance(A, LinearOperator):
        _check_square(A.shape, "LinearOperator")
        return MatrixFreeOperator(A.matvec, A.shape[0])
    return MatrixFreeOperator(A, n if n is not None else _guess_dim(A))


def _infer_operator(A, n):
    if isinstance(A, Operator):
        return A
    if sp.issparse(A):
        return BSROperator(A) if A.format == "bsr" else CSROperator(A)
    if isinstance(A, np.ndarray):
        return CSROperator(A)
    if isinstance(A, (list, tuple)) and A and isinstance(A[0], (list, tuple)):
        if any(b is None or sp.issparse(b) or isinstance(b, Operator) for row in A for b in row):
            return BlockOperator(A)
        return CSROperator(np.asarray(A, dtype=np.float64))
    if isinstance(A, LinearOperator):
        _check_square(A.shape, "LinearOperator")
        return MatrixFreeOperator(A.matvec, A.shape[0])
    if callable(A):
        return MatrixFreeOperator(A, n if n is not None else _guess_dim(A))
    raise UnknownMatrixFormatError(f"Cannot build an operator from {type(A).__name__}")


def _guess_dim(fct):
    shape = getattr(fct, "shape", None)
    if shape is None:
        raise ConfigurationError("Dimension n is required for a matrix-free operator")
    _check_square(shape, "Matrix-free operator")
    return shape[0]


def bind_system(A: Any, b: Any, x: np.ndarray):
    """
    Check a linear system before solving it in place.

    Returns the operator for ``A`` and ``b`` as a float64 vector. ``x`` must
    be a float64 array of the same length, since it is overwritten.
    """
    b = np.asarray(b, dtype=np.float64).ravel()
    op = make_operator(A, n=b.shape[0])
    if op.n != b.shape[0]:
        raise ConfigurationError(f"Operator of size {op.n} does not match b of size {b.shape[0]}")
    if not isinstance(x, np.ndarray) or x.dtype != np.float64 or x.shape != b.shape:
        raise ConfigurationError("x must be a float64 numpy array with the shape of b")
    return op, b
