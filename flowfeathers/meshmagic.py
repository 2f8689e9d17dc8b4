# -*- coding: utf-8; -*-
"""Triangle meshes with tagged boundaries, and a-priori refinement.

The mesh is stored as plain arrays:

  - `vertices`: `(nv, 2)` float, vertex coordinates,
  - `elements`: `(ne, 3)` int, vertex indices of each triangle, anticlockwise,
  - `boundary_edges`: `(nb, 2)` int, vertex indices of each tagged boundary edge,
  - `boundary_markers`: `(nb,)` int, the marker of each boundary edge (positive).

The unique edges are derived from the elements; they are numbered in
lexicographic order of their sorted vertex pairs, so each edge is oriented
from its lower vertex id toward its higher one.

Refinement happens in place, and bumps `mesh.generation`. Anything that has
computed a node layout on the mesh (function spaces, decoded fields) can
compare generations to detect that its layout is stale.
"""

__all__ = ["TriangleMesh",
           "find_boundary_edges", "quad_to_tri", "channel_mesh"]

import typing

import numpy as np

from .boundary import Boundaries
from .errors import MeshError

# Local edges of a triangle, as pairs of local vertex numbers.
_local_edges = np.array([[0, 1], [1, 2], [2, 0]])


class TriangleMesh:
    """A 2D triangle mesh with boundary markers.

    `vertices`: `(nv, 2)` coordinates. A third coordinate column, if any, is dropped.
    `elements`: `(ne, 3)` vertex indices. Clockwise triangles are reoriented.
    `boundary_edges`, `boundary_markers`: optional boundary tagging.
                      Each boundary edge must be an edge of some element.

    Raises `MeshError` if the data is inconsistent.
    """
    def __init__(self, vertices: np.array,
                 elements: np.array,
                 boundary_edges: typing.Optional[np.array] = None,
                 boundary_markers: typing.Optional[np.array] = None):
        vertices = np.array(vertices, dtype=np.float64)
        elements = np.array(elements, dtype=np.int64)
        if vertices.ndim != 2 or vertices.shape[1] not in (2, 3):
            raise MeshError(f"Expected vertices of shape (nv, 2), got {vertices.shape}")
        if elements.ndim != 2 or elements.shape[1] != 3 or not len(elements):
            raise MeshError(f"Expected a nonempty array of triangles of shape (ne, 3), got {elements.shape}")
        vertices = np.ascontiguousarray(vertices[:, :2])
        if np.any(elements < 0) or np.any(elements >= len(vertices)):
            raise MeshError(f"Element vertex index out of range [0, {len(vertices)})")
        if not np.all(np.isfinite(vertices)):
            raise MeshError("Non-finite vertex coordinates")

        if boundary_edges is None:
            boundary_edges = np.zeros((0, 2), dtype=np.int64)
            boundary_markers = np.zeros((0,), dtype=np.int64)
        boundary_edges = np.array(boundary_edges, dtype=np.int64).reshape(-1, 2)
        boundary_markers = np.array(boundary_markers, dtype=np.int64).reshape(-1)
        if len(boundary_markers) != len(boundary_edges):
            raise MeshError(f"Got {len(boundary_edges)} boundary edges but {len(boundary_markers)} markers")
        if np.any(boundary_markers <= 0):
            raise MeshError("Boundary markers must be positive integers")

        self.vertices = vertices
        self.elements = _orient_anticlockwise(vertices, elements)
        self.boundary_edges = boundary_edges
        self.boundary_markers = boundary_markers
        self.generation = 0
        self._topology = None
        self._build_topology()  # validates the boundary edges

    # --------------------------------------------------------------------------------
    # Topology

    def _build_topology(self) -> None:
        local = self.elements[:, _local_edges]  # (ne, 3, 2)
        pairs = np.sort(local, axis=2).reshape(-1, 2)
        edges, inverse = np.unique(pairs, axis=0, return_inverse=True)
        element_edges = np.asarray(inverse).reshape(-1, 3)
        forward = local[:, :, 0] < local[:, :, 1]  # local edge direction agrees with global?

        edge_index = {(int(a), int(b)): k for k, (a, b) in enumerate(edges)}
        edge_markers = np.zeros(len(edges), dtype=np.int64)
        for (a, b), marker in zip(self.boundary_edges, self.boundary_markers):
            key = (min(int(a), int(b)), max(int(a), int(b)))
            if key not in edge_index:
                raise MeshError(f"Boundary edge {key} is not an edge of any element")
            edge_markers[edge_index[key]] = marker
        self._topology = (edges, element_edges, forward, edge_markers)

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_elements(self) -> int:
        return len(self.elements)

    @property
    def num_edges(self) -> int:
        return len(self._topology[0])

    @property
    def edges(self) -> np.array:
        """Unique edges, `(nE, 2)`, each sorted so that the lower vertex id comes first."""
        return self._topology[0]

    @property
    def element_edges(self) -> np.array:
        """`(ne, 3)`: global edge number of each local edge (0-1, 1-2, 2-0) of each element."""
        return self._topology[1]

    @property
    def element_edge_forward(self) -> np.array:
        """`(ne, 3)` bool: whether the local edge runs from the lower to the higher vertex id."""
        return self._topology[2]

    @property
    def edge_markers(self) -> np.array:
        """`(nE,)`: boundary marker of each unique edge; 0 for interior or untagged edges."""
        return self._topology[3]

    @property
    def markers(self) -> typing.List[int]:
        """The boundary markers in use, ascending."""
        return sorted(int(m) for m in np.unique(self.boundary_markers))

    def element_coordinates(self) -> np.array:
        """Vertex coordinates of each element, `(ne, 3, 2)`."""
        return self.vertices[self.elements]

    def boundary_vertices(self, marker: int) -> np.array:
        """Sorted vertex ids on boundary edges tagged with `marker`."""
        return np.unique(self.boundary_edges[self.boundary_markers == marker])

    def copy(self) -> "TriangleMesh":
        """Return an independent copy (generation reset to 0)."""
        return TriangleMesh(self.vertices.copy(), self.elements.copy(),
                            self.boundary_edges.copy(), self.boundary_markers.copy())

    def __repr__(self):
        return (f"<TriangleMesh: {self.num_vertices} vertices, {self.num_elements} elements, "
                f"markers {self.markers}, generation {self.generation}>")

    # --------------------------------------------------------------------------------
    # Refinement

    def refine_all_elements(self) -> None:
        """Uniform refinement: split each triangle into four by connecting the edge midpoints."""
        self._refine(np.ones(self.num_edges, dtype=bool))

    def refine_towards_boundary(self, marker: int, levels: int = 1, aniso: bool = False) -> None:
        """Refine the elements touching the boundary part tagged with `marker`, `levels` times.

        Each level refines, in the then-current mesh, every element that has at
        least one vertex on the boundary part. So the refinement zone shrinks
        geometrically toward the boundary.

        `aniso`: If `False`, the touching elements are split into four (red refinement).
                 If `True`, only the boundary edges themselves are split, which bisects
                 the adjacent elements toward the boundary (anisotropic; produces
                 elements that are thin in the direction normal to the boundary).

        Conformity is restored by red-green closure; elements with one split edge
        are bisected, elements with two or more are split into four.

        Raises `MeshError` if no boundary edge is tagged with `marker`.
        """
        if int(marker) not in self.markers:
            raise MeshError(f"Unknown boundary marker {marker}; mesh has markers {self.markers}")
        if levels < 0:
            raise ValueError(f"levels must be nonnegative, got {levels}")
        for _ in range(levels):
            on_boundary = self.edge_markers == marker
            if aniso:
                marked = on_boundary
            else:
                boundary_vertices = self.boundary_vertices(marker)
                touching = np.any(np.isin(self.elements, boundary_vertices), axis=1)
                marked = np.zeros(self.num_edges, dtype=bool)
                marked[self.element_edges[touching].ravel()] = True
            self._refine(marked)

    def _refine(self, marked: np.array) -> None:
        """Refine the mesh in place, splitting the edges flagged in `marked` (red-green closure)."""
        marked = marked.copy()
        element_edges = self.element_edges
        # Closure: an element with two or more split edges gets all three split.
        while True:
            count = np.count_nonzero(marked[element_edges], axis=1)
            red = count >= 2
            newly = red & (count < 3)
            if not np.any(newly):
                break
            marked[element_edges[newly].ravel()] = True

        edges = self.edges
        split = np.flatnonzero(marked)  # ascending edge number
        midpoint = np.full(len(edges), -1, dtype=np.int64)
        midpoint[split] = self.num_vertices + np.arange(len(split))
        new_vertices = 0.5 * (self.vertices[edges[split, 0]] + self.vertices[edges[split, 1]])

        new_elements = []
        for el, (vs, es) in enumerate(zip(self.elements, element_edges)):
            ms = midpoint[es]  # midpoints of local edges 0-1, 1-2, 2-0
            nsplit = np.count_nonzero(ms >= 0)
            if nsplit == 0:
                new_elements.append(vs)
            elif nsplit == 3:
                v0, v1, v2 = vs
                m01, m12, m20 = ms
                new_elements.extend([[v0, m01, m20],
                                     [m01, v1, m12],
                                     [m20, m12, v2],
                                     [m01, m12, m20]])
            else:  # green: bisect from the opposite vertex
                k = int(np.flatnonzero(ms >= 0)[0])
                a, b, c = vs[k], vs[(k + 1) % 3], vs[(k + 2) % 3]
                m = ms[k]
                new_elements.extend([[a, m, c],
                                     [m, b, c]])

        # Split boundary edges keep their marker.
        edge_index = {(int(a), int(b)): k for k, (a, b) in enumerate(edges)}
        new_bedges = []
        new_bmarkers = []
        for (a, b), marker in zip(self.boundary_edges, self.boundary_markers):
            m = midpoint[edge_index[(int(min(a, b)), int(max(a, b)))]]
            if m >= 0:
                new_bedges.extend([[a, m], [m, b]])
                new_bmarkers.extend([marker, marker])
            else:
                new_bedges.append([a, b])
                new_bmarkers.append(marker)

        self.vertices = np.concatenate([self.vertices, new_vertices])
        self.elements = np.array(new_elements, dtype=np.int64)
        self.boundary_edges = np.array(new_bedges, dtype=np.int64).reshape(-1, 2)
        self.boundary_markers = np.array(new_bmarkers, dtype=np.int64)
        self.generation += 1
        self._build_topology()


def _orient_anticlockwise(vertices: np.array, elements: np.array) -> np.array:
    p = vertices[elements]
    area2 = ((p[:, 1, 0] - p[:, 0, 0]) * (p[:, 2, 1] - p[:, 0, 1]) -
             (p[:, 2, 0] - p[:, 0, 0]) * (p[:, 1, 1] - p[:, 0, 1]))
    out = elements.copy()
    clockwise = area2 < 0
    out[clockwise, 1], out[clockwise, 2] = elements[clockwise, 2], elements[clockwise, 1]
    return out


def find_boundary_edges(elements: np.array) -> np.array:
    """Return the edges that belong to exactly one triangle, `(nb, 2)`, each sorted.

    These are the edges on the boundary of the domain (outer boundary and holes).
    """
    elements = np.asarray(elements)
    pairs = np.sort(elements[:, _local_edges], axis=2).reshape(-1, 2)
    edges, counts = np.unique(pairs, axis=0, return_counts=True)
    return edges[counts == 1]


def quad_to_tri(vertices: np.array, quads: np.array) -> typing.Tuple[np.array, np.array]:
    r"""Split quadrilaterals into triangles.

    Each quadrilateral is split into four triangles with a cross-diagonal pattern::

        3---2       3---2
        |   |       |\ /|
        |   |  -->  | X |
        |   |       |/ \|
        0---1       0---1

    where the `X` denotes the added node, at the mean of the quad vertices.
    The cross-diagonal mesh has no preferred diagonal, so a symmetric quad mesh
    remains symmetric.

    `vertices`: `(nv, 2)` coordinates.
    `quads`: `(nq, 4)` vertex indices, going around the quadrilateral (Gmsh/VTK order).

    The return value is `(new_vertices, triangles)`. The original vertices keep their
    indices; the new midpoint nodes are appended at the end, in the order of `quads`.
    The edges of the quads remain edges of the triangle mesh, so boundary tags
    defined on the quad edges can be used as-is.
    """
    vertices = np.asarray(vertices, dtype=np.float64)
    quads = np.asarray(quads, dtype=np.int64)
    if quads.ndim != 2 or quads.shape[1] != 4:
        raise ValueError(f"Expected quadrilaterals of shape (nq, 4), got {quads.shape}")
    centers = np.mean(vertices[quads], axis=1)
    new = len(vertices) + np.arange(len(quads))
    triangles = np.stack([np.stack([quads[:, 0], quads[:, 1], new], axis=1),  # bottom
                          np.stack([quads[:, 1], quads[:, 2], new], axis=1),  # right
                          np.stack([quads[:, 2], quads[:, 3], new], axis=1),  # top
                          np.stack([quads[:, 3], quads[:, 0], new], axis=1)],  # left
                         axis=1).reshape(-1, 3)
    return np.concatenate([vertices, centers]), triangles


def channel_mesh(length: float, height: float, nx: int, ny: int,
                 obstacle: typing.Optional[typing.Tuple[float, float, float, float]] = None) -> TriangleMesh:
    """Generate a structured mesh for flow in a rectangular channel, optionally with an obstacle.

    The channel is `[0, length] × [0, height]`, divided into `nx × ny` rectangles,
    each split into four triangles (see `quad_to_tri`).

    `obstacle`: optional `(xmin, ymin, xmax, ymax)`. Rectangles whose center lies
                inside the box are removed. For a clean obstacle boundary, place the
                box edges on grid lines.

    The boundary is tagged automatically with the `Boundaries` markers: `INLET` at
    `x = 0`, `OUTLET` at `x = length`, `BOTTOM` at `y = 0`, `TOP` at `y = height`,
    and `OBSTACLE` on all remaining boundary edges.
    """
    if length <= 0 or height <= 0:
        raise ValueError(f"Channel dimensions must be positive, got {length} × {height}")
    if nx < 1 or ny < 1:
        raise ValueError(f"Need at least one cell in each direction, got {nx} × {ny}")

    xs = np.linspace(0.0, length, nx + 1)
    ys = np.linspace(0.0, height, ny + 1)
    X, Y = np.meshgrid(xs, ys, indexing="xy")
    grid = np.stack([X.ravel(), Y.ravel()], axis=1)

    def vid(i, j):
        return j * (nx + 1) + i

    quads = []
    for j in range(ny):
        for i in range(nx):
            if obstacle is not None:
                cx, cy = 0.5 * (xs[i] + xs[i + 1]), 0.5 * (ys[j] + ys[j + 1])
                x0, y0, x1, y1 = obstacle
                if x0 < cx < x1 and y0 < cy < y1:
                    continue
            quads.append([vid(i, j), vid(i + 1, j), vid(i + 1, j + 1), vid(i, j + 1)])
    if not quads:
        raise ValueError("The obstacle covers the whole channel")
    quads = np.array(quads, dtype=np.int64)

    # Drop the grid vertices inside the obstacle, and renumber.
    used = np.unique(quads)
    renumber = np.full(len(grid), -1, dtype=np.int64)
    renumber[used] = np.arange(len(used))
    vertices, triangles = quad_to_tri(grid[used], renumber[quads])

    bedges = find_boundary_edges(triangles)
    mid = 0.5 * (vertices[bedges[:, 0]] + vertices[bedges[:, 1]])
    tol = 1e-9 * max(length, height)
    markers = np.full(len(bedges), int(Boundaries.OBSTACLE), dtype=np.int64)
    markers[np.abs(mid[:, 1] - height) < tol] = Boundaries.TOP
    markers[np.abs(mid[:, 1]) < tol] = Boundaries.BOTTOM
    markers[np.abs(mid[:, 0] - length) < tol] = Boundaries.OUTLET
    markers[np.abs(mid[:, 0]) < tol] = Boundaries.INLET
    return TriangleMesh(vertices, triangles, bedges, markers)
