# -*- coding: utf-8; -*-
"""Global assembly of the linear system from a weak form.

**Background**

The global system has one block row and one block column per field; block
`(r, c)` occupies the rows of the DOF window of field `r` and the columns of
the DOF window of field `c`. The windows are disjoint and contiguous, and the
first one starts at zero, so the system dimension is the sum of the per-field
DOF counts.

For each element, each term contributes a local matrix (or vector), computed
by Gauss quadrature on the reference triangle (see `shapeset.quadrature`).
The quadrature degree of a term is the sum of the polynomial orders of the
trial, test and dependency fields, plus the term's `extra_order`. The local
contributions are scatter-added to the global system; duplicate `(row, col)`
entries are summed, never overwritten.

Nodes on essential boundaries have no DOF. Their rows are dropped, and the
contributions of their columns are moved to the right-hand side, multiplied
by the prescribed values (lifting).

**Determinism**

The elements are processed in fixed-size chunks. Each chunk produces its own
list of `(row, col, value)` triplets and RHS contributions, and the lists are
merged in chunk order, no matter in which order the chunks were computed. So
the assembled system is bit-for-bit identical for any number of worker threads,
and for repeated calls with the same input.

The dependency fields (previous timestep) are evaluated once per assembly pass,
at the quadrature points of each degree needed, and the arrays are made
read-only; all kernels in the pass see exactly the same values.
"""

__all__ = ["LinearSystem", "Assembler"]

import concurrent.futures
import typing

import numpy as np
import scipy.sparse

from unpythonic import timer

from .errors import AssemblyError
from .geometry import element_geometry, map_points, physical_gradients
from .log import begin, end, info
from .shapeset import quadrature
from .solution import FieldValues
from .weakform import ElementContext, ShapeValues, Symmetry


class LinearSystem:
    """An assembled linear system `A x = b`.

    `matrix`: `scipy.sparse.csc_matrix`, `n × n`.
    `rhs`: `np.array`, length `n`.
    `spaces`: the function spaces, in block order.
    """
    def __init__(self, matrix: scipy.sparse.csc_matrix, rhs: np.array, spaces: typing.Sequence):
        self.matrix = matrix
        self.rhs = rhs
        self.spaces = tuple(spaces)

    @property
    def n(self) -> int:
        return len(self.rhs)

    def __repr__(self):
        return f"<LinearSystem: n = {self.n}, nnz = {self.matrix.nnz}>"

    def csc_arrays(self) -> typing.Tuple[np.array, np.array, np.array]:
        """Return the compressed sparse column arrays `(indptr, indices, data)`.

        `indptr` has length `n + 1`; `indices` and `data` have length `nnz = indptr[n]`.
        """
        return self.matrix.indptr, self.matrix.indices, self.matrix.data

    def block(self, row: int, col: int) -> scipy.sparse.csc_matrix:
        """Extract block `(row, col)` of the matrix (for inspection and testing)."""
        rows, cols = self.spaces[row].dof_range, self.spaces[col].dof_range
        return self.matrix[rows.start:rows.stop, :][:, cols.start:cols.stop]


class Assembler:
    """Assemble a `WeakForm` on a set of function spaces into a `LinearSystem`.

    `workers`: number of threads computing element chunks. The result does not
               depend on this.
    `chunk_size`: number of elements per chunk.
    """
    def __init__(self, workers: int = 1, chunk_size: int = 512):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        self.workers = int(workers)
        self.chunk_size = int(chunk_size)

    def assemble(self, weak_form, spaces: typing.Sequence,
                 previous: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                 time_state=None) -> LinearSystem:
        """Assemble `weak_form` on `spaces` (one per field, in field order).

        `previous`: mapping of field name to `SolutionField`; the dependencies of
                    the terms are looked up here. This is the frozen linearization
                    anchor; it is only read.
        `time_state`: passed to the kernels in the element context. Default is the
                      time state bound to the first space.

        Raises `AssemblyError` if the system cannot be assembled. Nothing is
        returned in that case.
        """
        previous = previous if previous is not None else {}
        spaces = list(spaces)
        if time_state is None:
            time_state = spaces[0].time_state if spaces else None

        begin("Assembling")
        try:
            with timer() as tim:
                mesh, n = self._check_spaces(weak_form, spaces)
                geometry = element_geometry(mesh)
                plan = _Plan(weak_form, spaces, previous, mesh, geometry, time_state)
                chunks = [np.arange(start, min(start + self.chunk_size, mesh.num_elements))
                          for start in range(0, mesh.num_elements, self.chunk_size)]
                if self.workers > 1 and len(chunks) > 1:
                    with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as pool:
                        parts = list(pool.map(plan.assemble_chunk, chunks))
                else:
                    parts = [plan.assemble_chunk(chunk) for chunk in chunks]

                rows = np.concatenate([part[0] for part in parts])
                cols = np.concatenate([part[1] for part in parts])
                vals = np.concatenate([part[2] for part in parts])
                rhs_rows = np.concatenate([part[3] for part in parts])
                rhs_vals = np.concatenate([part[4] for part in parts])
                matrix = scipy.sparse.coo_matrix((vals, (rows, cols)), shape=(n, n)).tocsc()
                rhs = np.bincount(rhs_rows, weights=rhs_vals, minlength=n).astype(np.float64)
        finally:
            end()
        info(f"Assembly completed in {tim.dt:0.6g} seconds; n = {n}, nnz = {matrix.nnz}.")
        return LinearSystem(matrix, rhs, spaces)

    def _check_spaces(self, weak_form, spaces):
        if len(spaces) != weak_form.num_fields:
            raise AssemblyError(f"The weak form has {weak_form.num_fields} fields, but {len(spaces)} spaces were given")
        mesh = spaces[0].mesh
        if mesh is None:
            raise AssemblyError(f"{spaces[0].name}: no mesh bound")
        expected_start = 0
        for name, space in zip(weak_form.fields, spaces):
            if space.mesh is not mesh:
                raise AssemblyError(f"All spaces must share the same mesh; space of field {name!r} does not")
            if not space.dofs_assigned:
                raise AssemblyError(f"Field {name!r} has no DOFs assigned (on the current mesh)")
            if space.first_dof != expected_start:
                raise AssemblyError(f"DOF windows must be contiguous from 0; field {name!r} starts at {space.first_dof}, expected {expected_start}")
            expected_start += space.num_dofs
        return mesh, expected_start


class _Plan:
    """Everything one assembly pass needs, precomputed; `assemble_chunk` is pure w.r.t. the plan."""
    def __init__(self, weak_form, spaces, previous, mesh, geometry, time_state):
        self.weak_form = weak_form
        self.spaces = spaces
        self.geometry = geometry
        self.time_state = time_state
        self.element_dofs = [space.element_dofs for space in spaces]
        self.prescribed = [space.prescribed_values[space.element_nodes] for space in spaces]

        fields = {}
        for name in weak_form.dependencies():
            if name not in previous:
                raise AssemblyError(f"Dependency {name!r} is not available in the previous solution (have {sorted(previous)})")
            fields[name] = previous[name]

        # Dependency values, evaluated once per pass and frozen: (name, degree) -> FieldValues (ne, nq)
        self.dependency_values = {}
        self.bilinear = [self._prepare(term, fields, mesh) for term in weak_form.bilinear_terms]
        self.linear = [self._prepare(term, fields, mesh) for term in weak_form.linear_terms]

    def _prepare(self, term, fields, mesh):
        row_space = self.spaces[term.row]
        col_space = self.spaces[term.col] if hasattr(term, "col") else None
        degree = row_space.order + (col_space.order if col_space is not None else 0)
        degree += sum(fields[name].order for name in term.dependencies)
        degree += term.extra_order
        points, weights = quadrature(degree)

        for name in term.dependencies:
            key = (name, degree)
            if key not in self.dependency_values:
                values = fields[name].evaluate_reference(points, mesh=mesh, geometry=self.geometry)
                frozen = []
                for a in values:
                    a = np.array(a, dtype=np.float64)
                    a.flags.writeable = False
                    frozen.append(a)
                self.dependency_values[key] = FieldValues(*frozen)

        def basis(space):
            if space is None:
                return None
            dξ, dη = space.shapeset.gradients(points)
            return space.shapeset.values(points), dξ, dη

        return term, degree, points, weights, basis(row_space), basis(col_space)

    # --------------------------------------------------------------------------------

    def assemble_chunk(self, chunk: np.array):
        """Compute the contributions of the elements in `chunk`.

        Returns `(rows, cols, vals, rhs_rows, rhs_vals)`, in a fixed order
        (terms in registration order, elements in chunk order).
        """
        triplets = []  # [(rows, cols, vals), ...]
        rhs = []  # [(rows, vals), ...]
        for term, degree, points, weights, test, trial in self.bilinear:
            self._bilinear_chunk(chunk, term, degree, points, weights, test, trial, triplets, rhs)
        for term, degree, points, weights, test, _ in self.linear:
            self._linear_chunk(chunk, term, degree, points, weights, test, rhs)

        def cat(parts, k, dtype):
            if not parts:
                return np.zeros(0, dtype=dtype)
            return np.concatenate([p[k] for p in parts]).astype(dtype, copy=False)
        return (cat(triplets, 0, np.int64), cat(triplets, 1, np.int64), cat(triplets, 2, np.float64),
                cat(rhs, 0, np.int64), cat(rhs, 1, np.float64))

    def _context(self, chunk, points, weights, shape):
        absdet = np.abs(self.geometry.detJ[chunk])
        wt = (absdet[:, np.newaxis] * weights[np.newaxis, :]).reshape(shape)
        x, y = map_points(self.geometry, points, chunk)
        return ElementContext(wt, x.reshape(shape), y.reshape(shape), self.time_state, chunk)

    def _ext(self, chunk, term, degree, shape):
        ext = {}
        for name in term.dependencies:
            arrays = []
            for a in self.dependency_values[(name, degree)]:
                a = a[chunk].reshape(shape)
                a.flags.writeable = False
                arrays.append(a)
            ext[name] = FieldValues(*arrays)
        return ext

    def _shape_values(self, chunk, basis, shape):
        phi, dξ, dη = basis
        dx, dy = physical_gradients(self.geometry, dξ, dη, chunk)  # (m, nb, nq)
        m = len(chunk)
        val = np.broadcast_to(phi[np.newaxis], (m,) + phi.shape)
        return ShapeValues(val.reshape(shape), dx.reshape(shape), dy.reshape(shape))

    def _call(self, term, args, expected_shape):
        try:
            result = term.kernel(*args)
        except KeyError as err:
            raise AssemblyError(f"Kernel {getattr(term.kernel, '__name__', term.kernel)!r} looked up {err}, "
                                f"but its declared dependencies are {list(term.dependencies)}") from err
        except (ArithmeticError, LookupError, ValueError, TypeError) as err:
            raise AssemblyError(f"Kernel {getattr(term.kernel, '__name__', term.kernel)!r} failed: {type(err).__name__}: {err}") from err
        try:
            result = np.broadcast_to(np.asarray(result, dtype=np.float64), expected_shape)
        except ValueError as err:
            raise AssemblyError(f"Kernel {getattr(term.kernel, '__name__', term.kernel)!r} returned shape {np.shape(result)}, expected {expected_shape}") from err
        if not np.all(np.isfinite(result)):
            raise AssemblyError(f"Kernel {getattr(term.kernel, '__name__', term.kernel)!r} produced non-finite values")
        return result

    def _bilinear_chunk(self, chunk, term, degree, points, weights, test, trial, triplets, rhs):
        m, nq = len(chunk), len(weights)
        nv, nu = len(test[0]), len(trial[0])
        v = self._shape_values(chunk, test, (m, nv, 1, nq))
        u = self._shape_values(chunk, trial, (m, 1, nu, nq))
        e = self._context(chunk, points, weights, (m, 1, 1, nq))
        ext = self._ext(chunk, term, degree, (m, 1, 1, nq))
        K = self._call(term, (u, v, e, ext), (m, nv, nu))

        r, c = term.row, term.col
        if term.symmetry is Symmetry.SYMMETRIC:
            if r == c:
                upper = np.triu(K, 1)
                K = np.triu(K) + np.swapaxes(upper, 1, 2)
            else:
                self._scatter(chunk, c, r, np.swapaxes(K, 1, 2), triplets, rhs)
        elif term.symmetry is Symmetry.ANTISYMMETRIC:
            if r == c:
                upper = np.triu(K, 1)
                K = upper - np.swapaxes(upper, 1, 2)
            else:
                self._scatter(chunk, c, r, -np.swapaxes(K, 1, 2), triplets, rhs)
        self._scatter(chunk, r, c, K, triplets, rhs)

    def _scatter(self, chunk, r, c, K, triplets, rhs):
        """Scatter local matrices `K` `(m, nr, nc)` into block `(r, c)`; lift essential columns to the RHS."""
        rdofs = self.element_dofs[r][chunk]  # (m, nr)
        cdofs = self.element_dofs[c][chunk]  # (m, nc)
        free_rows = rdofs >= 0
        free_cols = cdofs >= 0

        mask = free_rows[:, :, np.newaxis] & free_cols[:, np.newaxis, :]
        rows = np.broadcast_to(rdofs[:, :, np.newaxis], K.shape)[mask]
        cols = np.broadcast_to(cdofs[:, np.newaxis, :], K.shape)[mask]
        triplets.append((rows, cols, K[mask]))

        if not np.all(free_cols):
            g = np.where(free_cols, 0.0, self.prescribed[c][chunk])  # (m, nc)
            lift = -np.einsum("mij,mj->mi", K, g)
            rhs.append((rdofs[free_rows], lift[free_rows]))

    def _linear_chunk(self, chunk, term, degree, points, weights, test, rhs):
        m, nq = len(chunk), len(weights)
        nv = len(test[0])
        v = self._shape_values(chunk, test, (m, nv, nq))
        e = self._context(chunk, points, weights, (m, 1, nq))
        ext = self._ext(chunk, term, degree, (m, 1, nq))
        F = self._call(term, (v, e, ext), (m, nv))
        rdofs = self.element_dofs[term.row][chunk]
        free = rdofs >= 0
        rhs.append((rdofs[free], F[free]))
