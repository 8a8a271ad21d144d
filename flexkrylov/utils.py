"""
Test problem generation and matrix loading.
"""

import numpy as np
import scipy.sparse as sp


def poisson_2d(nx: int, ny: int):
    """
    Five point Laplacian on an nx * ny grid with Dirichlet boundaries.

    Parameters
    ----------
    nx : int
        Number of grid points in x-direction
    ny : int
        Number of grid points in y-direction

    Returns
    -------
    A : scipy.sparse.csr_matrix
        Symmetric positive definite matrix of size (nx*ny, nx*ny)
    """
    if nx < 1 or ny < 1:
        raise ValueError(f"Grid must have at least one point per direction, got {nx}x{ny}")
    Tx = sp.diags([-np.ones(nx - 1), 2.0 * np.ones(nx), -np.ones(nx - 1)], [-1, 0, 1])
    Ty = sp.diags([-np.ones(ny - 1), 2.0 * np.ones(ny), -np.ones(ny - 1)], [-1, 0, 1])
    A = sp.kron(sp.identity(ny), Tx, format="csr") + sp.kron(Ty, sp.identity(nx), format="csr")
    A.eliminate_zeros()
    return A


def load_matrix_market(filename: str):
    """
    Load a sparse matrix from a Matrix Market file (.mtx) as CSR.
    """
    from scipy.io import mmread

    A = mmread(filename)
    return A.tocsr() if sp.issparse(A) else sp.csr_matrix(A)
