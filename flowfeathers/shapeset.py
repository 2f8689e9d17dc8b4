# -*- coding: utf-8; -*-
r"""Reference triangle: Lagrange shape functions and quadrature.

The reference triangle has the vertices (0, 0), (1, 0), (0, 1).

Node ordering on the reference element (order `p ≥ 1`)::

    2
    |\
    | \         vertices first: 0, 1, 2;
    5  4        then the `p - 1` nodes of each edge, for the edges
    |   \       (0, 1), (1, 2), (2, 0) in this order, each edge listed
    |    \      from its first vertex toward its second one;
    0--3--1     then the interior nodes, row by row (ascending y, then x).

                (The picture is for `p = 2`.)

Order 0 (piecewise constant, only meaningful for discontinuous spaces) has a
single node at the centroid.

The shape functions are the nodal (Lagrange) basis on the equispaced lattice,
computed by inverting the Vandermonde matrix of the monomials. This is
well-conditioned enough for the low orders used in practice (up to ~10).
"""

__all__ = ["MAX_ORDER",
           "Shapeset", "get_shapeset",
           "reference_nodes", "reference_edges",
           "quadrature", "reference_lattice"]

from functools import lru_cache
import math
import typing

import numpy as np

MAX_ORDER = 10

# Local edges of a triangle, as pairs of local vertex numbers.
reference_edges = ((0, 1), (1, 2), (2, 0))

_reference_vertices = np.array([[0.0, 0.0],
                                [1.0, 0.0],
                                [0.0, 1.0]])


def _monomial_exponents(p: int) -> typing.List[typing.Tuple[int, int]]:
    return [(a, n - a) for n in range(p + 1) for a in range(n, -1, -1)]


def reference_nodes(p: int) -> np.array:
    """Return the coordinates of the Lagrange nodes of order `p` on the reference triangle.

    Shape `(nnodes, 2)`, in the local node ordering documented in the module docstring.
    """
    if p == 0:
        return np.array([[1.0 / 3.0, 1.0 / 3.0]])
    nodes = [list(v) for v in _reference_vertices]
    for a, b in reference_edges:
        va, vb = _reference_vertices[a], _reference_vertices[b]
        for k in range(1, p):
            nodes.append(list(va + (k / p) * (vb - va)))
    for j in range(1, p):
        for i in range(1, p - j):
            nodes.append([i / p, j / p])
    return np.array(nodes)


class Shapeset:
    """Lagrange shape functions of order `p` on the reference triangle.

    `nnodes`: number of shape functions (= number of local nodes).
    `nedge`: number of nodes in the interior of each edge (`p - 1`).
    `ninterior`: number of nodes in the interior of the element.
    """
    def __init__(self, p: int):
        if not (0 <= p <= MAX_ORDER):
            raise ValueError(f"Shapeset order must be in [0, {MAX_ORDER}], got {p}")
        self.order = p
        self.nodes = reference_nodes(p)
        self.nnodes = len(self.nodes)
        self.nedge = max(p - 1, 0)
        self.ninterior = (p - 1) * (p - 2) // 2 if p >= 3 else 0
        self._exponents = _monomial_exponents(p)
        V = self._monomials(self.nodes)
        self._coeffs = np.linalg.inv(V)  # column k: monomial coefficients of shape function k

    def _monomials(self, points: np.array) -> np.array:
        x, y = points[:, 0], points[:, 1]
        return np.stack([x**a * y**b for a, b in self._exponents], axis=1)

    def _monomial_derivatives(self, points: np.array) -> typing.Tuple[np.array, np.array]:
        x, y = points[:, 0], points[:, 1]
        dx = np.stack([a * x**max(a - 1, 0) * y**b for a, b in self._exponents], axis=1)
        dy = np.stack([b * x**a * y**max(b - 1, 0) for a, b in self._exponents], axis=1)
        return dx, dy

    def values(self, points: np.array) -> np.array:
        """Shape function values at reference `points` (shape `(npts, 2)`); result `(nnodes, npts)`."""
        return (self._monomials(np.atleast_2d(points)) @ self._coeffs).T

    def gradients(self, points: np.array) -> typing.Tuple[np.array, np.array]:
        """Reference gradients `(d/dξ, d/dη)`, each of shape `(nnodes, npts)`."""
        dx, dy = self._monomial_derivatives(np.atleast_2d(points))
        return (dx @ self._coeffs).T, (dy @ self._coeffs).T


@lru_cache(maxsize=None)
def get_shapeset(p: int) -> Shapeset:
    """Return the (cached, shared) shapeset of order `p`."""
    return Shapeset(p)


@lru_cache(maxsize=None)
def quadrature(degree: int) -> typing.Tuple[np.array, np.array]:
    """Quadrature rule on the reference triangle, exact for polynomials up to `degree`.

    Return value is `(points, weights)`, with shapes `(nq, 2)` and `(nq,)`.
    The weights sum to 1/2, the area of the reference triangle.

    This is a collapsed (Duffy) Gauss-Legendre rule::

        x = (1 + ξ) (1 - η) / 4,   y = (1 + η) / 2,   (ξ, η) ∈ [-1, 1]²

    with Jacobian determinant `(1 - η) / 8`. A polynomial of degree `d` in
    (x, y) becomes a polynomial of degree `d` in ξ and `d + 1` in η, so
    `ceil((d + 2) / 2)` Gauss points per direction suffice.

    The returned arrays are read-only, since they are shared.
    """
    degree = max(int(degree), 0)
    n = math.ceil((degree + 2) / 2)
    g, w = np.polynomial.legendre.leggauss(n)
    ξ, η = np.meshgrid(g, g, indexing="ij")
    wξ, wη = np.meshgrid(w, w, indexing="ij")
    x = (1 + ξ) * (1 - η) / 4
    y = (1 + η) / 2
    weights = (wξ * wη * (1 - η) / 8).ravel()
    points = np.stack([x.ravel(), y.ravel()], axis=1)
    points.flags.writeable = False
    weights.flags.writeable = False
    return points, weights


def reference_lattice(n: int) -> typing.Tuple[np.array, np.array]:
    """Subdivide the reference triangle into `n²` subtriangles, for visualization.

    Return value is `(points, triangles)`: lattice points `(npts, 2)` and
    anticlockwise subtriangles `(n², 3)` as indices into `points`.
    """
    n = max(int(n), 1)
    index = {}
    points = []
    for j in range(n + 1):
        for i in range(n + 1 - j):
            index[(i, j)] = len(points)
            points.append([i / n, j / n])
    triangles = []
    for j in range(n):
        for i in range(n - j):
            triangles.append([index[(i, j)], index[(i + 1, j)], index[(i, j + 1)]])
            if i + j + 2 <= n:
                triangles.append([index[(i + 1, j)], index[(i + 1, j + 1)], index[(i, j + 1)]])
    return np.array(points), np.array(triangles, dtype=int)
