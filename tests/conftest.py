import numpy as np
import pytest
import scipy.sparse as sp

from flexkrylov import MatrixFormat, Operator, poisson_2d


class CountingOperator(Operator):
    """Matrix-free operator that counts its applications."""

    format = MatrixFormat.MATFREE

    def __init__(self, A):
        self.A = sp.csr_matrix(A)
        self.shape = self.A.shape
        self.calls = 0

    def apply(self, x):
        self.calls += 1
        return self.A @ x


@pytest.fixture
def rng():
    return np.random.default_rng(20240501)


@pytest.fixture
def diag4():
    A = sp.diags([1.0, 2.0, 3.0, 4.0]).tocsr()
    b = np.ones(4)
    return A, b


@pytest.fixture
def poisson():
    A = poisson_2d(8, 8)
    b = np.ones(A.shape[0])
    return A, b


@pytest.fixture
def counting_operator():
    return CountingOperator


@pytest.fixture
def random_dd(rng):
    """Random nonsymmetric, strictly diagonally dominant matrices."""
    def build(n):
        M = rng.standard_normal((n, n))
        M += np.diag(np.abs(M).sum(axis=1) + 1.0)
        return sp.csr_matrix(M)
    return build


@pytest.fixture
def saddle_point(rng):
    """[[K, B^T], [B, -I]] with K the 4x4 grid Laplacian."""
    K = poisson_2d(4, 4)
    B = sp.csr_matrix(rng.standard_normal((4, K.shape[0])))
    C = -sp.identity(4, format="csr")
    return K, B, C
