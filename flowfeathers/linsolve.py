# -*- coding: utf-8; -*-
"""Linear solve service.

The solvers take the global matrix as compressed sparse column arrays::

    indptr   length n + 1
    indices  length nnz = indptr[n]
    data     length nnz

plus a dense right-hand side of length `n`, and return the dense solution of
length `n`. Anything else (singular matrix, no convergence, non-finite result,
inconsistent input) raises `SolveError`; a partial solution is never returned.

Calling a solver instance on a `LinearSystem` is a shorthand for passing its
`csc_arrays()` and `rhs`.
"""

__all__ = ["LinearSolver", "DirectSolver", "KrylovSolver"]

import typing

import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from unpythonic import timer

from .errors import SolveError
from .log import begin, end, info


def _as_csc(indptr: np.array, indices: np.array, data: np.array, rhs: np.array) -> scipy.sparse.csc_matrix:
    indptr = np.asarray(indptr)
    indices = np.asarray(indices)
    data = np.asarray(data, dtype=np.float64)
    n = len(rhs)
    if len(indptr) != n + 1:
        raise SolveError(f"indptr has length {len(indptr)}, expected n + 1 = {n + 1}")
    nnz = int(indptr[-1]) if len(indptr) else 0
    if len(indices) != nnz or len(data) != nnz:
        raise SolveError(f"indices/data have lengths {len(indices)}/{len(data)}, expected nnz = {nnz}")
    return scipy.sparse.csc_matrix((data, indices, indptr), shape=(n, n))


def _check_result(x: np.array, n: int) -> np.array:
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    if len(x) != n:
        raise SolveError(f"Solver returned a vector of length {len(x)}, expected {n}")
    if not np.all(np.isfinite(x)):
        raise SolveError("Solution contains non-finite values")
    return x


class LinearSolver:
    """Base class. Subclasses implement `_solve(A, rhs) -> x`."""
    name = "linear solver"

    def solve(self, indptr: np.array, indices: np.array, data: np.array, rhs: np.array) -> np.array:
        rhs = np.asarray(rhs, dtype=np.float64).reshape(-1)
        A = _as_csc(indptr, indices, data, rhs)
        begin(f"Solving with {self.name}")
        try:
            with timer() as tim:
                x = _check_result(self._solve(A, rhs), len(rhs))
        finally:
            end()
        info(f"Solve completed in {tim.dt:0.6g} seconds.")
        return x

    def __call__(self, system) -> np.array:
        return self.solve(*system.csc_arrays(), system.rhs)

    def _solve(self, A: scipy.sparse.csc_matrix, rhs: np.array) -> np.array:
        raise NotImplementedError


class DirectSolver(LinearSolver):
    """Sparse LU (`scipy.sparse.linalg.splu`).

    `max_condition`: upper limit for the estimated 1-norm condition number of
                     the matrix. Above it, the matrix is treated as numerically
                     singular, and the solve fails. A numerically singular system
                     (e.g. spurious pressure modes of an unstable element pair)
                     has a condition number near `1 / eps`, and its "solution"
                     is dominated by roundoff. `None` disables the check.

    Raises `SolveError` if the matrix is exactly or numerically singular.
    """
    name = "sparse LU"

    def __init__(self, max_condition: typing.Optional[float] = 1e13):
        self.max_condition = max_condition

    def _solve(self, A, rhs):
        try:
            lu = scipy.sparse.linalg.splu(A)
        except RuntimeError as err:  # "Factor is exactly singular", or another SuperLU failure
            raise SolveError(f"Sparse LU failed: {err}") from err
        if self.max_condition is not None:
            # A rank-deficient matrix leaves a roundoff-sized pivot.
            pivots = np.abs(lu.U.diagonal())
            if not pivots.min() > 1e-14 * pivots.max():
                raise SolveError(f"Matrix is numerically singular: smallest LU pivot {pivots.min():0.6g}, "
                                 f"largest {pivots.max():0.6g}")
            condition = self.condition_estimate(A, lu)
            if not condition < self.max_condition:
                raise SolveError(f"Matrix is numerically singular: estimated condition number {condition:0.6g} "
                                 f"exceeds {self.max_condition:0.6g}")
        return lu.solve(rhs)

    @staticmethod
    def condition_estimate(A: scipy.sparse.csc_matrix, lu) -> float:
        """Estimate the 1-norm condition number `‖A‖₁ ‖A⁻¹‖₁`, using the LU factorization `lu` of `A`."""
        Ainv = scipy.sparse.linalg.LinearOperator(A.shape,
                                                  matvec=lu.solve,
                                                  rmatvec=lambda y: lu.solve(y, trans="T"),
                                                  dtype=np.float64)
        with np.errstate(over="ignore", invalid="ignore"):
            condition = scipy.sparse.linalg.onenormest(A) * scipy.sparse.linalg.onenormest(Ainv)
        return float(condition) if np.isfinite(condition) else np.inf


class KrylovSolver(LinearSolver):
    """Iterative solve, for systems too large for a direct solver.

    `method`: "bicgstab" or "gmres". The system is nonsymmetric (convection),
              so CG is not applicable.
    `rtol`: relative residual tolerance.
    `maxiter`: iteration limit; `None` for the scipy default.
    `ilu`: whether to precondition with an incomplete LU factorization.
           Strongly recommended for the saddle-point systems of incompressible flow.
    `drop_tol`, `fill_factor`: passed to `scipy.sparse.linalg.spilu`.

    Raises `SolveError` if the iteration does not converge.
    """
    _methods = {"bicgstab": scipy.sparse.linalg.bicgstab,
                "gmres": scipy.sparse.linalg.gmres}

    def __init__(self, method: str = "bicgstab", rtol: float = 1e-10,
                 maxiter: typing.Optional[int] = None, ilu: bool = True,
                 drop_tol: float = 1e-5, fill_factor: float = 20.0):
        if method not in self._methods:
            raise ValueError(f"Unknown Krylov method {method!r}; expected one of {list(self._methods)}")
        self.method = method
        self.rtol = rtol
        self.maxiter = maxiter
        self.ilu = ilu
        self.drop_tol = drop_tol
        self.fill_factor = fill_factor
        self.name = f"{method}{' + ILU' if ilu else ''}"

    def _solve(self, A, rhs):
        M = None
        if self.ilu:
            try:
                factor = scipy.sparse.linalg.spilu(A, drop_tol=self.drop_tol, fill_factor=self.fill_factor)
            except RuntimeError as err:
                raise SolveError(f"ILU preconditioner failed: {err}") from err
            M = scipy.sparse.linalg.LinearOperator(A.shape, matvec=factor.solve)
        x, status = self._methods[self.method](A, rhs, rtol=self.rtol, maxiter=self.maxiter, M=M)
        if status > 0:
            raise SolveError(f"{self.method} did not converge in {status} iterations")
        if status < 0:
            raise SolveError(f"{self.method} failed (illegal input or breakdown, status {status})")
        return x
