# -*- coding: utf-8; -*-
"""Function spaces: per-field basis, polynomial order, and DOF numbering.

**Background**

A function space couples a mesh with a finite element family and order. It
owns the *node layout* (which global node each local shape function of each
element belongs to, and where that node is), and the *DOF numbering* (which
row of the global linear system each node corresponds to).

Two families are supported:

  - "H1": continuous Lagrange elements, order 1...10. Nodes on shared vertices
    and edges are shared between elements. The global nodes are numbered:
    all mesh vertices first (in mesh vertex order), then the `order - 1` nodes
    of each unique mesh edge (in mesh edge order; along each edge, from the
    lower vertex id toward the higher one), then the interior nodes of each
    element (in element order).

  - "L2": discontinuous Lagrange elements, order 0...10. Every element has its
    own copy of its nodes, so the layout is just element-local nodes stacked
    in element order. Order 0 is the piecewise constant.

The node layout depends only on the mesh topology, the family and the order.
It is identified by a *layout token* `(id(mesh), mesh.generation, family, order)`.

Boundary conditions are configured per boundary marker. Nodes on essential
boundary edges get no DOF; their values are prescribed, and the assembler
lifts their contributions to the right-hand side. A node that lies on several
essential edges (a corner) takes its value from the smallest marker.

Free nodes are numbered consecutively, in global node order, starting from
the `start` index given to `assign_dofs`. Call `assign_dofs` for each field in
turn, passing the running total, to get disjoint, contiguous DOF windows::

    ndofs = 0
    ndofs += xvel.assign_dofs(ndofs)
    ndofs += yvel.assign_dofs(ndofs)
    ndofs += press.assign_dofs(ndofs)

`assign_dofs` also re-evaluates the prescribed boundary values at the current
`time_state`, so it must be called again whenever time advances.
"""

__all__ = ["FunctionSpace", "FAMILIES", "NodeLayout"]

from collections import namedtuple
import typing

import numpy as np

from .boundary import BoundaryClassifier, ConstantValue, EssentialValue, FunctionValue
from .errors import ConfigurationError
from .meshmagic import TriangleMesh
from .shapeset import MAX_ORDER, get_shapeset, reference_edges

# family -> (min order, max order)
FAMILIES = {"H1": (1, MAX_ORDER),
            "L2": (0, MAX_ORDER)}

NodeLayout = namedtuple("NodeLayout", ["token",
                                       "num_nodes",
                                       "element_nodes",  # (ne, nb) global node of each local node
                                       "node_coordinates",  # (num_nodes, 2)
                                       "edge_nodes"])  # (nE, order + 1) nodes on each edge, or None (L2)


class FunctionSpace:
    """A scalar finite element space on a triangle mesh.

    `mesh`: a `TriangleMesh`, or `None` to bind one later (`space.mesh = mesh`).
    `basis_family`: "H1" (continuous) or "L2" (discontinuous).
    `order`: polynomial order of the Lagrange basis.
    `name`: optional name, used in messages.

    Raises `ConfigurationError` if the family is unknown or the order is out of
    range for the family.
    """
    def __init__(self, mesh: typing.Optional[TriangleMesh], basis_family: str, order: int,
                 name: typing.Optional[str] = None):
        family = str(basis_family).upper()
        if family not in FAMILIES:
            raise ConfigurationError(f"Unknown basis family {basis_family!r}; expected one of {list(FAMILIES)}")
        lo, hi = FAMILIES[family]
        if int(order) != order or not (lo <= order <= hi):
            raise ConfigurationError(f"Order {order} is not valid for an {family} space; expected {lo} ≤ order ≤ {hi}")
        self.family = family
        self.order = int(order)
        self.name = name or f"{family}({order})"
        self.shapeset = get_shapeset(self.order)
        self.classifier = BoundaryClassifier()
        self.essential_values = {}  # marker -> EssentialValue
        self.time_state = None  # bound by the timestepper
        self._mesh = mesh
        self._layout = None
        self._clear_dofs()

    def __repr__(self):
        return f"<FunctionSpace {self.name}: {self.family}, order {self.order}, {self.num_dofs} DOFs>"

    def _clear_dofs(self) -> None:
        self.first_dof = None
        self.num_dofs = 0
        self.node_dofs = None  # (num_nodes,) DOF of each node, -1 for essential nodes
        self.node_markers = None  # (num_nodes,) essential marker of each node, 0 for free nodes
        self.prescribed_values = None  # (num_nodes,) essential values, 0 for free nodes
        self._dof_token = None

    def _get_mesh(self) -> typing.Optional[TriangleMesh]:
        return self._mesh
    def _set_mesh(self, mesh: TriangleMesh) -> None:
        self._mesh = mesh
        self._layout = None
        self._clear_dofs()
    mesh = property(fget=_get_mesh, fset=_set_mesh, doc="The mesh this space lives on. Rebinding invalidates the DOFs.")

    # --------------------------------------------------------------------------------
    # Boundary conditions

    def set_boundary_classification(self, classifier) -> None:
        """Set the boundary condition kind per marker.

        `classifier`: a mapping `{marker: kind}` (unlisted markers are natural),
                      or a callable `marker -> kind`. See `BoundaryClassifier`.

        Raises `ConfigurationError` if an L2 space is given an essential condition;
        discontinuous spaces have no boundary nodes to prescribe.
        """
        classifier = BoundaryClassifier(classifier)
        if self.family == "L2":
            markers = list(self._mesh.markers) if self._mesh is not None else []
            markers += classifier.listed_markers
            if classifier.essential_markers(markers):
                raise ConfigurationError(f"{self.name}: an L2 space cannot have essential boundary conditions")
        self.classifier = classifier
        self._dof_token = None

    def set_essential_value(self, marker: int, value: typing.Union[EssentialValue, typing.Callable, float]) -> None:
        """Set the prescribed value on the boundary part tagged with `marker`.

        `value`: an `EssentialValue`, a plain callable `f(marker, x, y, time_state)`,
                 or a number (constant value).

        Essential markers that have no value set are prescribed zero.
        """
        if isinstance(value, EssentialValue):
            pass
        elif callable(value):
            value = FunctionValue(value)
        else:
            value = ConstantValue(value)
        self.essential_values[int(marker)] = value

    # --------------------------------------------------------------------------------
    # Node layout

    @property
    def layout_token(self) -> typing.Optional[tuple]:
        """Identifies the node layout. `None` if no mesh is bound."""
        if self._mesh is None:
            return None
        return (id(self._mesh), self._mesh.generation, self.family, self.order)

    @property
    def layout(self) -> NodeLayout:
        """The node layout on the current mesh (computed on first access, recomputed after refinement)."""
        if self._mesh is None:
            raise ConfigurationError(f"{self.name}: no mesh bound")
        token = self.layout_token
        if self._layout is None or self._layout.token != token:
            self._layout = self._build_layout(token)
        return self._layout

    @property
    def num_nodes(self) -> int:
        return self.layout.num_nodes

    @property
    def element_nodes(self) -> np.array:
        return self.layout.element_nodes

    @property
    def node_coordinates(self) -> np.array:
        return self.layout.node_coordinates

    def _build_layout(self, token) -> NodeLayout:
        mesh = self._mesh
        shapeset = self.shapeset
        nb = shapeset.nnodes
        ne = mesh.num_elements

        if self.family == "L2":
            element_nodes = np.arange(ne * nb, dtype=np.int64).reshape(ne, nb)
            num_nodes = ne * nb
            edge_nodes = None
        else:
            p = self.order
            nv = mesh.num_vertices
            nE = mesh.num_edges
            nedge = p - 1
            nint = shapeset.ninterior
            element_nodes = np.empty((ne, nb), dtype=np.int64)
            element_nodes[:, :3] = mesh.elements
            col = 3
            if nedge:
                j = np.arange(nedge)  # position along the local edge, from its first vertex
                for k in range(len(reference_edges)):
                    e = mesh.element_edges[:, k][:, np.newaxis]
                    forward = mesh.element_edge_forward[:, k][:, np.newaxis]
                    along = np.where(forward, j, nedge - 1 - j)  # position from the lower vertex id
                    element_nodes[:, col:col + nedge] = nv + e * nedge + along
                    col += nedge
            if nint:
                first = nv + nE * nedge
                element_nodes[:, col:] = first + np.arange(ne * nint, dtype=np.int64).reshape(ne, nint)
            num_nodes = nv + nE * nedge + ne * nint

            edge_nodes = np.empty((nE, p + 1), dtype=np.int64)
            edge_nodes[:, :2] = mesh.edges
            edge_nodes[:, 2:] = nv + np.arange(nE, dtype=np.int64)[:, np.newaxis] * nedge + np.arange(nedge)

        # Map the reference nodes to physical space.
        xy = mesh.element_coordinates()  # (ne, 3, 2)
        ref = shapeset.nodes  # (nb, 2)
        J = np.stack([xy[:, 1] - xy[:, 0], xy[:, 2] - xy[:, 0]], axis=2)  # (ne, 2, 2); columns are the edge vectors
        physical = xy[:, np.newaxis, 0, :] + np.einsum("eij,nj->eni", J, ref)  # (ne, nb, 2)
        node_coordinates = np.empty((num_nodes, 2))
        node_coordinates[element_nodes.ravel()] = physical.reshape(-1, 2)

        return NodeLayout(token, num_nodes, element_nodes, node_coordinates, edge_nodes)

    # --------------------------------------------------------------------------------
    # DOFs

    @property
    def dofs_assigned(self) -> bool:
        """Whether `assign_dofs` has been called for the current node layout."""
        return self._dof_token is not None and self._dof_token == self.layout_token

    @property
    def dof_range(self) -> range:
        return range(self.first_dof, self.first_dof + self.num_dofs)

    @property
    def element_dofs(self) -> np.array:
        """`(ne, nb)`: DOF of each local node of each element; -1 for essential nodes."""
        return self.node_dofs[self.element_nodes]

    def assign_dofs(self, start: int = 0) -> int:
        """Number the DOFs of this space, starting from global index `start`.

        Also (re)evaluates the prescribed values on the essential boundary nodes,
        at the current `time_state`.

        Returns the number of DOFs. Repeated calls on an unchanged mesh produce
        the same numbering.

        Raises `ConfigurationError` if no mesh is bound, if an L2 space has an
        essential marker, or if a boundary value has the wrong shape or is not finite.
        """
        if self._mesh is None:
            raise ConfigurationError(f"{self.name}: cannot assign DOFs before a mesh is bound")
        layout = self.layout
        x, y = layout.node_coordinates[:, 0], layout.node_coordinates[:, 1]

        node_markers = np.zeros(layout.num_nodes, dtype=np.int64)
        essential_markers = self.classifier.essential_markers(self._mesh.markers)
        if essential_markers and self.family == "L2":
            raise ConfigurationError(f"{self.name}: an L2 space cannot have essential boundary conditions (markers {essential_markers})")
        for marker in essential_markers:  # ascending, so the smallest marker wins at corners
            nodes = np.unique(layout.edge_nodes[self._mesh.edge_markers == marker])
            unclaimed = nodes[node_markers[nodes] == 0]
            node_markers[unclaimed] = marker

        essential = node_markers > 0
        count = int(np.count_nonzero(~essential))
        node_dofs = np.full(layout.num_nodes, -1, dtype=np.int64)
        node_dofs[~essential] = start + np.arange(count, dtype=np.int64)

        prescribed = np.zeros(layout.num_nodes)
        for marker in essential_markers:
            nodes = np.flatnonzero(node_markers == marker)
            value = self.essential_values.get(marker)
            if value is None or not len(nodes):
                continue
            vals = np.asarray(value(marker, x[nodes], y[nodes], self.time_state), dtype=np.float64)
            if vals.shape != nodes.shape:
                raise ConfigurationError(f"{self.name}: boundary value on marker {marker} returned shape {vals.shape}, expected {nodes.shape}")
            if not np.all(np.isfinite(vals)):
                raise ConfigurationError(f"{self.name}: boundary value on marker {marker} is not finite")
            prescribed[nodes] = vals

        node_dofs.flags.writeable = False
        node_markers.flags.writeable = False
        prescribed.flags.writeable = False
        self.first_dof = int(start)
        self.num_dofs = count
        self.node_dofs = node_dofs
        self.node_markers = node_markers
        self.prescribed_values = prescribed
        self._dof_token = layout.token
        return count
