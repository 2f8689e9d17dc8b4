# -*- coding: utf-8; -*-
"""Weak form registry: bilinear and linear terms of a system of PDEs.

**Background**

A weak form of a system with fields `u₀, u₁, ...` is a sum of bilinear terms
`a_rc(u_c, v_r)` (trial field `c`, test field `r`), which go into block `(r, c)`
of the global matrix, and linear terms `l_r(v_r)`, which go into the block `r`
of the right-hand side.

Each term is registered with a *kernel*, a plain function that computes the
element integrals. The kernels are written with numpy broadcasting, so that
one call computes the local matrices of a whole batch of elements.

A bilinear kernel is called as `kernel(u, v, e, ext)`, where

  - `u`: trial basis, a `ShapeValues(val, dx, dy)`, each of shape `(m, 1, nu, nq)`,
  - `v`: test basis, the same, each of shape `(m, nv, 1, nq)`,
  - `e`: an `ElementContext`; `e.wt` (quadrature weights times `|det J|`), `e.x`,
    `e.y` of shape `(m, 1, 1, nq)`, and the shared `e.time_state`,
  - `ext`: the dependency fields, `{name: FieldValues(val, dx, dy)}`, each of
    shape `(m, 1, 1, nq)`, evaluated from the previous timestep's solution,

and must return the local matrices, shape `(m, nv, nu)`. Here `m` is the number
of elements in the batch, `nu`/`nv` the numbers of trial/test basis functions,
and `nq` the number of quadrature points. Integrating over the last axis gives
exactly that shape; see `flowfeathers.integrals`.

A linear kernel is called as `kernel(v, e, ext)`, with the last two axes dropped
to one: `v.val` of shape `(m, nv, nq)`, `e.wt` and the dependencies of shape
`(m, 1, nq)`. It must return the local vectors, shape `(m, nv)`.

The kernels must be pure: the assembler may call them in any order, from
several threads at once, and the dependency arrays they receive are read-only.

**Symmetry**

`SYMMETRIC`: the kernel satisfies `a(φ_i, φ_j) = a(φ_j, φ_i)`. For a diagonal
block (`row == col`), only the upper triangle of the local matrix is used, and
mirrored. For an off-diagonal block, the kernel fills block `(row, col)`, and
its exact transpose is added to block `(col, row)`.

`ANTISYMMETRIC`: the same, but the mirrored part is the exact negative transpose.
This is the natural tagging of the pressure coupling in a saddle-point problem;
the term `-∫ p ∂v/∂x` in block `(u, p)` produces `+∫ q ∂u/∂x` in block `(p, u)`.

`UNSYMMETRIC`: the kernel fills block `(row, col)`, and nothing else.
"""

__all__ = ["Symmetry", "SYM", "UNSYM", "ANTISYM",
           "ShapeValues", "ElementContext",
           "BilinearTerm", "LinearTerm", "WeakForm"]

from collections import namedtuple
from enum import IntEnum
import typing

from .errors import ConfigurationError


class Symmetry(IntEnum):
    UNSYMMETRIC = 0
    SYMMETRIC = 1
    ANTISYMMETRIC = -1

SYM = Symmetry.SYMMETRIC
UNSYM = Symmetry.UNSYMMETRIC
ANTISYM = Symmetry.ANTISYMMETRIC

ShapeValues = namedtuple("ShapeValues", ["val", "dx", "dy"])
ElementContext = namedtuple("ElementContext", ["wt", "x", "y", "time_state", "elements"])

BilinearTerm = namedtuple("BilinearTerm", ["row", "col", "kernel", "symmetry", "dependencies", "extra_order"])
LinearTerm = namedtuple("LinearTerm", ["row", "kernel", "dependencies", "extra_order"])


class WeakForm:
    """An ordered collection of weak form terms for a system of `len(fields)` fields.

    `fields`: names of the fields, in the order of the blocks of the global system.
              An integer `n` is also accepted, giving the names "0", "1", ...

    Terms are kept in registration order. Several terms may share the same block;
    their contributions are summed.
    """
    def __init__(self, fields: typing.Union[int, typing.Sequence[str]]):
        if isinstance(fields, int):
            fields = [str(k) for k in range(fields)]
        fields = list(fields)
        if not fields:
            raise ConfigurationError("A weak form needs at least one field")
        if len(set(fields)) != len(fields):
            raise ConfigurationError(f"Field names must be unique, got {fields}")
        self.fields = fields
        self.bilinear_terms = []
        self.linear_terms = []

    @property
    def num_fields(self) -> int:
        return len(self.fields)

    def __repr__(self):
        return f"<WeakForm: fields {self.fields}, {len(self.bilinear_terms)} bilinear and {len(self.linear_terms)} linear terms>"

    def field_index(self, field: typing.Union[int, str]) -> int:
        """Resolve a field index or name to an index. Raises `ConfigurationError` if out of range."""
        if isinstance(field, str):
            try:
                return self.fields.index(field)
            except ValueError:
                raise ConfigurationError(f"Unknown field {field!r}; this form has fields {self.fields}")
        index = int(field)
        if not (0 <= index < self.num_fields):
            raise ConfigurationError(f"Field index {field} out of range for a form with {self.num_fields} fields")
        return index

    def add_bilinear_term(self, row: typing.Union[int, str], col: typing.Union[int, str],
                          kernel: typing.Callable,
                          symmetry: Symmetry = Symmetry.UNSYMMETRIC,
                          dependencies: typing.Sequence[str] = (),
                          extra_order: int = 0) -> BilinearTerm:
        """Register a bilinear term in block `(row, col)`. See the module docstring for the kernel contract.

        `dependencies`: names of the fields (from the previous timestep) whose values
                        the kernel reads from `ext`.
        `extra_order`: added to the quadrature degree, for kernels that are not
                       polynomial in the basis functions.
        """
        if not callable(kernel):
            raise ConfigurationError(f"Kernel must be callable, got {type(kernel)}")
        term = BilinearTerm(self.field_index(row), self.field_index(col), kernel,
                            Symmetry(symmetry), tuple(dependencies), int(extra_order))
        self.bilinear_terms.append(term)
        return term

    def add_linear_term(self, row: typing.Union[int, str],
                        kernel: typing.Callable,
                        dependencies: typing.Sequence[str] = (),
                        extra_order: int = 0) -> LinearTerm:
        """Register a linear (right-hand side) term in block `row`."""
        if not callable(kernel):
            raise ConfigurationError(f"Kernel must be callable, got {type(kernel)}")
        term = LinearTerm(self.field_index(row), kernel, tuple(dependencies), int(extra_order))
        self.linear_terms.append(term)
        return term

    def dependencies(self) -> typing.List[str]:
        """Names of all fields the terms depend on, in order of first appearance."""
        out = []
        for term in self.bilinear_terms + self.linear_terms:
            for name in term.dependencies:
                if name not in out:
                    out.append(name)
        return out
