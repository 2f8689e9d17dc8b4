# -*- coding: utf-8; -*-
"""Solution fields: finite element coefficients bound to their function space.

A `SolutionField` is immutable once set up. The timestepper creates new fields
for each timestep, and the previous ones are simply dropped (or kept by an
archive sink); they are never updated in place. Hence the arrays are frozen
(read-only), so that everyone who holds a reference sees the same data.

A decoded field remembers the node layout token of its space. If the mesh is
refined (or rebound) afterward, the field can no longer be evaluated, because
its node values no longer match the space's nodes.
"""

__all__ = ["FieldValues", "SolutionField"]

from collections import namedtuple
import typing

import numpy as np

from .errors import AssemblyError
from .geometry import element_geometry, physical_gradients

FieldValues = namedtuple("FieldValues", ["val", "dx", "dy"])


def _freeze(a: np.array) -> np.array:
    a.flags.writeable = False
    return a


class SolutionField:
    """A scalar finite element function.

    Create with `SolutionField.zero(mesh)` (initial condition) or
    `SolutionField.from_coefficients(space, coefficients)` (decode a solution vector);
    or call `set_zero` / `set_from_coefficients` on an empty instance.

    `name`: optional name of the field, e.g. "xvel". The timestepper sets it.
    `time`: simulation time of the data; set by the timestepper.
    """
    def __init__(self, name: typing.Optional[str] = None):
        self.name = name
        self.time = None
        self.space = None
        self.mesh = None
        self._node_values = None
        self._coefficients = None
        self._token = None

    def __repr__(self):
        what = "zero" if self.is_zero else (f"on {self.space.name}" if self.space is not None else "empty")
        return f"<SolutionField {self.name or ''}: {what}, time {self.time}>"

    @classmethod
    def zero(cls, mesh, name: typing.Optional[str] = None) -> "SolutionField":
        field = cls(name)
        field.set_zero(mesh)
        return field

    @classmethod
    def from_coefficients(cls, space, coefficients: np.array, name: typing.Optional[str] = None) -> "SolutionField":
        field = cls(name)
        field.set_from_coefficients(space, coefficients)
        return field

    def set_zero(self, mesh) -> None:
        """Make this the zero function on `mesh`. It evaluates to zero on any layout of the mesh."""
        self.mesh = mesh
        self.space = None
        self._node_values = None
        self._coefficients = None
        self._token = None

    def set_from_coefficients(self, space, coefficients: np.array) -> None:
        """Decode `coefficients`, the global solution vector, into this field on `space`.

        Only the DOF window of `space` is read. Essential boundary nodes get the
        values `space` currently prescribes for them.

        Raises `AssemblyError` if `space` has no DOFs assigned, or if `coefficients`
        is too short to contain the DOF window.
        """
        if not space.dofs_assigned:
            raise AssemblyError(f"{space.name}: cannot decode a solution before DOFs are assigned")
        coefficients = np.asarray(coefficients, dtype=np.float64).reshape(-1)
        window = space.dof_range
        if len(coefficients) < window.stop:
            raise AssemblyError(f"{space.name}: solution vector has length {len(coefficients)}, but the DOFs of this field end at {window.stop}")
        own = coefficients[window.start:window.stop].copy()

        node_values = space.prescribed_values.copy()
        free = space.node_dofs >= 0
        node_values[free] = own[space.node_dofs[free] - window.start]

        self.mesh = space.mesh
        self.space = space
        self._coefficients = _freeze(own)
        self._node_values = _freeze(node_values)
        self._token = space.layout_token

    @property
    def is_zero(self) -> bool:
        return self.mesh is not None and self.space is None

    @property
    def order(self) -> int:
        """Polynomial order of the field (0 for the zero field)."""
        return self.space.order if self.space is not None else 0

    @property
    def layout_token(self) -> typing.Optional[tuple]:
        """The node layout token this field was decoded against."""
        return self._token

    @property
    def coefficients(self) -> np.array:
        """The DOF values of this field (its window of the global solution vector)."""
        if self.is_zero:
            return np.zeros(0)
        return self._coefficients

    @property
    def node_values(self) -> np.array:
        """Values at all nodes of the space, including the essential boundary nodes."""
        if self.is_zero:
            raise AssemblyError("The zero field has no node layout")
        self.check_layout()
        return self._node_values

    def check_layout(self) -> None:
        """Raise `AssemblyError` if the space's node layout has changed since this field was decoded."""
        if self.mesh is None:
            raise AssemblyError(f"Field {self.name} has no data")
        if self.space is not None and self.space.layout_token != self._token:
            raise AssemblyError(f"Field {self.name} was decoded against a stale node layout (the mesh was refined or rebound)")

    def evaluate_reference(self, points: np.array, mesh=None, geometry=None) -> FieldValues:
        """Evaluate the field at reference `points` `(npts, 2)` in every element.

        `mesh`: if given, the field must live on this mesh.
        `geometry`: precomputed `element_geometry(mesh)`, to save some work.

        Returns `FieldValues(val, dx, dy)`, each of shape `(ne, npts)`.
        """
        self.check_layout()
        if mesh is not None and mesh is not self.mesh:
            raise AssemblyError(f"Field {self.name} lives on a different mesh")
        points = np.atleast_2d(points)
        if self.is_zero:
            zeros = np.zeros((self.mesh.num_elements, len(points)))
            return FieldValues(zeros, zeros, zeros)
        if geometry is None:
            geometry = element_geometry(self.mesh)
        shapeset = self.space.shapeset
        local = self._node_values[self.space.element_nodes]  # (ne, nb)
        phi = shapeset.values(points)  # (nb, npts)
        dξ, dη = shapeset.gradients(points)
        dphidx, dphidy = physical_gradients(geometry, dξ, dη)  # (ne, nb, npts)
        val = local @ phi
        dx = np.einsum("eb,ebq->eq", local, dphidx)
        dy = np.einsum("eb,ebq->eq", local, dphidy)
        return FieldValues(val, dx, dy)
