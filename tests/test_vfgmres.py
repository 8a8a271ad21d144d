import numpy as np
import pytest
import scipy.sparse as sp
from numpy.testing import assert_allclose

from flexkrylov import (
    ConvergenceMonitor,
    ErrorCode,
    FunctionPreconditioner,
    IdentityPreconditioner,
    JacobiPreconditioner,
    RestartController,
    StopType,
    UnknownStopTypeError,
    ConfigurationError,
    poisson_2d,
    pvfgmres,
)
from flexkrylov.constants import RESTART_MIN


def test_diagonal_scenario(diag4):
    A, b = diag4
    x = np.zeros(4)
    status = pvfgmres(A, b, x, None, tol=1e-10, maxit=10, restart=4)
    assert 0 <= status <= 4
    assert_allclose(x, [1.0, 0.5, 1.0 / 3.0, 0.25], rtol=1e-8)


def test_success_on_last_allowed_iteration(diag4):
    A, b = diag4
    x = np.zeros(4)
    assert pvfgmres(A, b, x, tol=1e-10, maxit=4, restart=4) == 4


@pytest.mark.parametrize("n", [5, 12, 30])
def test_finite_termination(random_dd, rng, n):
    A = random_dd(n)
    b = rng.standard_normal(n)
    x = np.zeros(n)
    status = pvfgmres(A, b, x, tol=1e-8, maxit=2 * n, restart=n)
    assert 0 < status <= n
    assert np.linalg.norm(b - A @ x) <= 1e-8 * np.linalg.norm(b)


def test_residual_monotone_within_cycles(poisson):
    A, b = poisson
    monitor = ConvergenceMonitor()
    x = np.zeros(b.size)
    status = pvfgmres(A, b, x, tol=1e-8, maxit=2000, restart=5, monitor=monitor)
    assert status > 0
    assert len(monitor.cycle_starts) > 1

    bounds = monitor.cycle_starts[1:] + [len(monitor.history) - 1]
    for start, end in zip(monitor.cycle_starts, bounds):
        cycle = np.asarray(monitor.history[start + 1:end + 1])
        assert np.all(np.diff(cycle) <= 1e-12 * cycle[:-1])


def test_identity_preconditioner_matches_none(rng):
    A = poisson_2d(6, 6)
    b = rng.standard_normal(36)
    runs = []
    for pc in (None, IdentityPreconditioner()):
        monitor = ConvergenceMonitor()
        x = np.zeros(36)
        status = pvfgmres(A, b, x, pc, tol=1e-10, maxit=200, restart=10, monitor=monitor)
        runs.append((status, x, monitor.history))
    assert runs[0][0] == runs[1][0]
    assert_allclose(runs[0][1], runs[1][1], rtol=1e-14, atol=0)
    assert_allclose(runs[0][2], runs[1][2], rtol=1e-14, atol=0)


def test_restart_controller_rule():
    ctl = RestartController(10)
    assert ctl.update(1.0, first=True) == 10
    assert ctl.update(0.5) == 7
    assert ctl.update(0.5) == 4
    # 4 - 3 would drop below the floor
    assert ctl.update(0.5) == 10
    assert ctl.update(0.5) == 7
    assert ctl.update(0.1) == 7
    assert ctl.update(0.999) == 10

    fixed = RestartController(10, adaptive=False)
    assert [fixed.update(cr) for cr in (1.0, 0.5, 0.5, 0.1)] == [10, 10, 10, 10]


def test_engine_restarts_stay_in_bounds(poisson):
    A, b = poisson
    monitor = ConvergenceMonitor()
    status = pvfgmres(A, b, np.zeros(b.size), tol=1e-10, maxit=2000, restart=12, monitor=monitor)
    assert status > 0
    assert monitor.restarts[0] == 12
    assert all(RESTART_MIN < r <= 12 for r in monitor.restarts)


def test_fixed_restart(poisson):
    A, b = poisson
    monitor = ConvergenceMonitor()
    pvfgmres(A, b, np.zeros(b.size), tol=1e-8, maxit=2000, restart=8, adaptive=False, monitor=monitor)
    assert set(monitor.restarts) == {8}


def test_rel_res_bound_with_jacobi():
    A = poisson_2d(10, 10)
    b = np.linspace(1.0, 2.0, 100)
    x = np.zeros(100)
    r0 = np.linalg.norm(b - A @ x)
    status = pvfgmres(A, b, x, JacobiPreconditioner(A), tol=1e-8, maxit=500, restart=25)
    assert status > 0
    assert np.linalg.norm(b - A @ x) / max(np.linalg.norm(b), r0) <= 1e-8


def test_nonzero_initial_guess(poisson):
    A, b = poisson
    x = np.full(b.size, 3.0)
    status = pvfgmres(A, b, x, tol=1e-10, maxit=1000, restart=20)
    assert status > 0
    assert_allclose(A @ x, b, atol=1e-8)


def test_rel_precres_criterion():
    A = poisson_2d(10, 10)
    b = np.ones(100)
    M = JacobiPreconditioner(A)
    x = np.zeros(100)
    status = pvfgmres(A, b, x, M, tol=1e-8, maxit=500, restart=25, stop_type="rel_precres")
    assert status > 0
    r = b - A @ x
    assert np.sqrt(abs(M.apply(r) @ r)) / np.linalg.norm(b) <= 1e-8


def test_mod_rel_res_false_convergence():
    # ||x|| is about ||b|| / 300, so ||r|| <= tol ||b|| is far from enough
    d = np.linspace(200.0, 400.0, 20)
    A = sp.diags(d).tocsr()
    b = np.ones(20)
    x = np.zeros(20)
    monitor = ConvergenceMonitor()
    status = pvfgmres(A, b, x, tol=1e-6, maxit=500, restart=25,
                      stop_type=StopType.MOD_REL_RES, monitor=monitor)
    assert status > 0
    assert monitor.false_convergences >= 1
    assert np.linalg.norm(b - A @ x) / np.linalg.norm(x) <= 1e-6


def test_flexible_preconditioner(poisson):
    A, b = poisson
    D = A.diagonal()
    calls = []

    def varying(r):
        calls.append(1)
        return r / D if len(calls) % 2 else r.copy()

    x = np.zeros(b.size)
    status = pvfgmres(A, b, x, FunctionPreconditioner(varying), tol=1e-8, maxit=1000, restart=30)
    assert status > 0
    assert len(calls) == status
    assert np.linalg.norm(b - A @ x) <= 1e-8 * np.linalg.norm(b)


def test_maxit_zero_does_no_work(counting_operator, diag4):
    A, b = diag4
    op = counting_operator(A)
    x = np.full(4, 0.5)
    assert pvfgmres(op, b, x, maxit=0) == ErrorCode.ERROR_SOLVER_MAXIT
    assert op.calls == 0
    assert_allclose(x, 0.5)


def test_zero_right_hand_side(diag4):
    A, _ = diag4
    x = np.zeros(4)
    assert pvfgmres(A, np.zeros(4), x) == 0
    assert not np.any(x)


def test_zero_matrix_exhausts_iterations():
    A = sp.csr_matrix((5, 5))
    x = np.zeros(5)
    monitor = ConvergenceMonitor()
    status = pvfgmres(A, np.ones(5), x, maxit=20, monitor=monitor)
    assert status == ErrorCode.ERROR_SOLVER_MAXIT
    assert np.all(np.isfinite(x))
    assert monitor.false_convergences == 20


def test_configuration_errors_before_any_work(counting_operator, diag4):
    A, b = diag4
    op = counting_operator(A)
    with pytest.raises(UnknownStopTypeError):
        pvfgmres(op, b, np.zeros(4), stop_type="energy")
    with pytest.raises(ConfigurationError):
        pvfgmres(op, b, np.zeros(4), tol=-1.0)
    with pytest.raises(ConfigurationError):
        pvfgmres(op, b, np.zeros(4), restart=0)
    assert op.calls == 0


def test_operator_and_preconditioner_applications(counting_operator, diag4):
    A, b = diag4
    op = counting_operator(A)
    calls = []
    pc = FunctionPreconditioner(lambda r: calls.append(1) or r.copy())
    status = pvfgmres(op, b, np.zeros(4), pc, tol=1e-10, maxit=10, restart=4)
    # one product per iteration plus the initial and the checked residual
    assert op.calls == status + 2
    assert len(calls) == status
