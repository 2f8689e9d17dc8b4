# -*- coding: utf-8; -*-

import numpy as np
import pytest
import scipy.sparse
import scipy.sparse.linalg

from flowfeathers import DirectSolver, KrylovSolver, SolveError


def tridiagonal(n):
    """Nonsymmetric, diagonally dominant test matrix."""
    return scipy.sparse.diags([-1.0 * np.ones(n - 1), 4.0 * np.ones(n), -2.0 * np.ones(n - 1)],
                              [-1, 0, 1], format="csc")


def test_direct_solver():
    A = tridiagonal(20)
    expected = np.linspace(0.0, 1.0, 20)
    x = DirectSolver().solve(A.indptr, A.indices, A.data, A @ expected)
    assert x.shape == (20,)
    assert np.allclose(x, expected)


@pytest.mark.parametrize("method", ["bicgstab", "gmres"])
@pytest.mark.parametrize("ilu", [True, False])
def test_krylov_solver(method, ilu):
    A = tridiagonal(50)
    expected = np.sin(np.arange(50.0))
    x = KrylovSolver(method=method, ilu=ilu, rtol=1e-12).solve(A.indptr, A.indices, A.data, A @ expected)
    assert np.allclose(x, expected, atol=1e-8)


def test_singular_matrix():
    # The second column is empty.
    indptr = np.array([0, 1, 1])
    indices = np.array([0])
    data = np.array([1.0])
    with pytest.raises(SolveError):
        DirectSolver().solve(indptr, indices, data, np.array([1.0, 1.0]))


def test_no_convergence():
    A = tridiagonal(50)
    with pytest.raises(SolveError):
        KrylovSolver(method="bicgstab", ilu=False, rtol=1e-14, maxiter=1).solve(A.indptr, A.indices, A.data, np.ones(50))


def test_inconsistent_input():
    A = tridiagonal(5)
    with pytest.raises(SolveError):
        DirectSolver().solve(A.indptr[:-1], A.indices, A.data, np.ones(5))
    with pytest.raises(SolveError):
        DirectSolver().solve(A.indptr, A.indices[:-1], A.data, np.ones(5))
    with pytest.raises(SolveError):
        DirectSolver().solve(A.indptr, A.indices, A.data, np.ones(4))


def test_unknown_method():
    with pytest.raises(ValueError):
        KrylovSolver(method="cg")


def test_numerically_singular_matrix():
    A = scipy.sparse.csc_matrix(np.array([[1.0, 1.0],
                                          [1.0, 1.0 + 1e-15]]))
    with pytest.raises(SolveError):
        DirectSolver().solve(A.indptr, A.indices, A.data, np.array([1.0, 0.0]))


def test_condition_limit():
    A = scipy.sparse.csc_matrix(np.array([[1.0, 1.0],
                                          [1.0, 1.0 + 1e-12]]))
    rhs = np.array([2.0, 2.0])
    assert DirectSolver.condition_estimate(A, scipy.sparse.linalg.splu(A)) > 1e12
    with pytest.raises(SolveError):
        DirectSolver(max_condition=1e10).solve(A.indptr, A.indices, A.data, rhs)
    for solver in (DirectSolver(), DirectSolver(max_condition=None)):
        x = solver.solve(A.indptr, A.indices, A.data, rhs)
        assert np.allclose(x, [2.0, 0.0])


def test_well_conditioned_matrix_passes_the_check():
    A = tridiagonal(200)
    assert DirectSolver.condition_estimate(A, scipy.sparse.linalg.splu(A)) < 10.0
