import numpy as np
import pytest
import scipy.sparse as sp
from numpy.testing import assert_allclose
from scipy.sparse.linalg import aslinearoperator

from flexkrylov import (
    BlockOperator,
    BSROperator,
    ConfigurationError,
    CSROperator,
    ErrorCode,
    MatrixFormat,
    MatrixFreeOperator,
    UnknownMatrixFormatError,
    make_operator,
    poisson_2d,
)
from flexkrylov.operators import bind_system


def test_csr_from_dense_and_sparse(rng):
    M = rng.standard_normal((6, 6))
    x = rng.standard_normal(6)
    assert_allclose(CSROperator(M).apply(x), M @ x)
    op = CSROperator(sp.coo_matrix(M))
    assert op.n == 6
    assert op.format is MatrixFormat.CSR
    assert_allclose(op(x), M @ x)


def test_bsr_matches_csr(rng):
    A = poisson_2d(4, 4)
    x = rng.standard_normal(16)
    op = BSROperator(A, blocksize=(2, 2))
    assert op.blocksize == (2, 2)
    assert_allclose(op.apply(x), A @ x)


def test_non_square_is_rejected():
    with pytest.raises(ConfigurationError):
        CSROperator(np.ones((3, 4)))
    with pytest.raises(ConfigurationError):
        BSROperator(sp.csr_matrix(np.ones((4, 2))))


def test_block_operator_matches_assembled(saddle_point, rng):
    K, B, C = saddle_point
    op = BlockOperator([[K, B.T], [B, C]])
    full = sp.bmat([[K, B.T], [B, C]]).tocsr()
    x = rng.standard_normal(full.shape[0])
    assert op.shape == full.shape
    assert_allclose(op.apply(x), full @ x)


def test_block_operator_zero_block_and_nested_operator(saddle_point, rng):
    K, B, _ = saddle_point
    op = BlockOperator([[CSROperator(K), B.T.toarray()], [B, None]])
    full = sp.bmat([[K, B.T], [B, None]]).tocsr()
    x = rng.standard_normal(full.shape[0])
    assert_allclose(op.apply(x), full @ x)


def test_block_operator_shape_errors(saddle_point):
    K, B, C = saddle_point
    with pytest.raises(ConfigurationError):
        BlockOperator([[K, B.T]])
    with pytest.raises(ConfigurationError):
        BlockOperator([[K, B], [B, C]])
    with pytest.raises(ConfigurationError):
        BlockOperator([[K, None], [B, None]])
    with pytest.raises(ConfigurationError):
        BlockOperator([[K, B.T], [B]])


def test_matrix_free_with_and_without_data(rng):
    A = poisson_2d(3, 3)
    x = rng.standard_normal(9)

    op = MatrixFreeOperator(lambda v, data: data["A"] @ v, 9, data={"A": A})
    assert_allclose(op.apply(x), A @ x)

    op = MatrixFreeOperator(lambda v: 2.0 * v, 9)
    assert_allclose(op.apply(x), 2.0 * x)
    assert op.format is MatrixFormat.MATFREE


def test_make_operator_infers_format(saddle_point):
    K, B, C = saddle_point
    assert isinstance(make_operator(K), CSROperator)
    assert isinstance(make_operator(K.toarray()), CSROperator)
    assert isinstance(make_operator(K.tobsr(blocksize=(2, 2))), BSROperator)
    assert isinstance(make_operator([[K, B.T], [B, C]]), BlockOperator)
    assert isinstance(make_operator(aslinearoperator(K)), MatrixFreeOperator)
    assert isinstance(make_operator(lambda v: v, n=4), MatrixFreeOperator)

    op = CSROperator(K)
    assert make_operator(op) is op


def test_make_operator_explicit_format():
    A = poisson_2d(4, 4)
    assert isinstance(make_operator(A, "bsr"), BSROperator)
    assert isinstance(make_operator(A, MatrixFormat.CSR), CSROperator)
    assert isinstance(make_operator(lambda v: v, 9, n=16), MatrixFreeOperator)

    with pytest.raises(UnknownMatrixFormatError):
        make_operator(CSROperator(A), "bsr")


def test_make_operator_errors():
    with pytest.raises(ConfigurationError):
        make_operator(lambda v: v)
    with pytest.raises(UnknownMatrixFormatError) as exc:
        make_operator(object())
    assert exc.value.code == ErrorCode.ERROR_DATA_STRUCTURE


def test_bind_system_checks_vectors():
    A = poisson_2d(3, 3)
    op, b = bind_system(A, [1] * 9, np.zeros(9))
    assert b.dtype == np.float64
    with pytest.raises(ConfigurationError):
        bind_system(A, np.ones(9), np.zeros(9, dtype=int))
    with pytest.raises(ConfigurationError):
        bind_system(A, np.ones(9), np.zeros(8))
    with pytest.raises(ConfigurationError):
        bind_system(A, np.ones(8), np.zeros(8))
