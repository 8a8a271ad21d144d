"""
Examples for the flexkrylov package.
"""

import logging

import numpy as np
import scipy.sparse as sp

from flexkrylov import (
    BlockOperator,
    ConvergenceMonitor,
    KrylovSolver,
    MatrixFreeOperator,
    SolverParams,
    itsolver,
    poisson_2d,
    pvfgmres,
    solve,
)


def example_solve():
    """One-shot solve() returning ConvergenceInfo."""
    print("=" * 70)
    print("Example 1: solve() with ConvergenceInfo")
    print("=" * 70)

    A = poisson_2d(100, 100)
    b = np.random.rand(A.shape[0])

    x, info = solve(A, b, solver_type="vfgmres", preconditioner="ilu",
                    tol=1e-8, restart=30, drop_tol=1e-4)

    print(f"Converged: {info.converged}")
    print(f"Iterations: {info.iterations}")
    print(f"Residual norm: {info.residual_norm:.2e}")
    print(f"Relative residual: {info.relative_residual:.2e}")
    print(f"Setup time: {info.setup_time:.4f}s")
    print(f"Reason: {info.reason}")
    print()
    print(info)
    print()


def example_adaptive_restart():
    """Restart lengths chosen by VFGMRES cycle by cycle."""
    print("=" * 70)
    print("Example 2: Adaptive restart")
    print("=" * 70)

    A = poisson_2d(60, 60)
    b = np.random.rand(A.shape[0])

    for adaptive in (True, False):
        monitor = ConvergenceMonitor()
        x = np.zeros(A.shape[0])
        status = pvfgmres(A, b, x, tol=1e-8, maxit=5000, restart=30,
                          adaptive=adaptive, monitor=monitor)
        label = "adaptive" if adaptive else "fixed"
        print(f"  {label:<9} iterations = {status:5d}, restarts used: {sorted(set(monitor.restarts))}")
    print()


def example_callback():
    """Callback for monitoring convergence."""
    print("=" * 70)
    print("Example 3: Callback for monitoring convergence")
    print("=" * 70)

    A = poisson_2d(60, 60)
    b = np.random.rand(A.shape[0])

    def callback(iteration, relres, absres, factor):
        if iteration % 10 == 0:
            print(f"  Iteration {iteration}: relres = {relres:.2e}, factor = {factor:.4f}")

    x, info = solve(A, b, solver_type="gcr", preconditioner="jacobi", tol=1e-8, callback=callback)
    print(f"\nTotal iterations: {info.iterations}")
    print()


def example_matrix_free():
    """Matrix-free operator with a user-defined preconditioner."""
    print("=" * 70)
    print("Example 4: Matrix-free operator")
    print("=" * 70)

    n = 2000
    h2 = 1.0 / (n + 1) ** 2

    def laplace_1d(v, shift):
        y = (2.0 + shift) * v
        y[1:] -= v[:-1]
        y[:-1] -= v[1:]
        return y / h2

    A = MatrixFreeOperator(laplace_1d, n, data=0.01)
    b = np.ones(n)

    x, info = solve(A, b, preconditioner=lambda r: r * h2 / 2.01, tol=1e-6, maxit=20000, restart=50)
    print(f"Converged: {info.converged}")
    print(f"Iterations: {info.iterations}")
    print()


def example_saddle_point():
    """Block composite operator for a saddle point system."""
    print("=" * 70)
    print("Example 5: Saddle point system [[K, B^T], [B, -eps I]]")
    print("=" * 70)

    K = poisson_2d(30, 30)
    m = 50
    B = sp.random(m, K.shape[0], density=0.05, format="csr", random_state=1)
    C = -1e-2 * sp.identity(m, format="csr")
    A = BlockOperator([[K, B.T], [B, C]])
    b = np.random.rand(A.n)

    x = np.zeros(A.n)
    params = SolverParams(solver_type="vfgmres", tol=1e-8, maxit=2000, restart=40, print_level=1)
    status = itsolver(A, b, x, None, params)
    print(f"Return value: {status}")
    print()


def example_tolerance_control():
    """Tolerance and stopping criterion control."""
    print("=" * 70)
    print("Example 6: Tolerance and stopping criteria")
    print("=" * 70)

    A = poisson_2d(80, 80)
    b = np.random.rand(A.shape[0])

    print(f"{'Configuration':<28} {'Iterations':<12} {'Time (s)':<12} {'Residual':<15}")
    print("-" * 70)

    for stop_type in ("rel_res", "rel_precres", "mod_rel_res"):
        for tol in (1e-6, 1e-10):
            solver = KrylovSolver(preconditioner="ilu", tol=tol, stop_type=stop_type)
            x, info = solver.solve(A, b)
            name = f"{stop_type}, tol={tol:.0e}"
            print(f"{name:<28} {info.iterations:<12} {info.solve_time:<12.4f} {info.residual_norm:<15.2e}")
    print()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    example_solve()
    example_adaptive_restart()
    example_callback()
    example_matrix_free()
    example_saddle_point()
    example_tolerance_control()
