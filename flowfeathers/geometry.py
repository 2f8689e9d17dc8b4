# -*- coding: utf-8; -*-
"""Affine element maps from the reference triangle to the physical elements.

Each triangle with vertices `p0`, `p1`, `p2` is the image of the reference
triangle under the affine map::

    x = p0 + J ξ,   J = [[x1 - x0, x2 - x0],
                         [y1 - y0, y2 - y0]]

so the physical gradient of a shape function is `J⁻ᵀ` applied to its
reference gradient, and integrals pick up the factor `|det J|`.
"""

__all__ = ["ElementGeometry", "element_geometry",
           "map_points", "physical_gradients"]

from collections import namedtuple

import numpy as np

from .errors import AssemblyError

ElementGeometry = namedtuple("ElementGeometry", ["origin",  # (ne, 2)
                                                 "J",  # (ne, 2, 2)
                                                 "detJ",  # (ne,)
                                                 "invJ"])  # (ne, 2, 2)

# Relative tolerance (w.r.t. the squared longest edge) for detecting collapsed elements.
_degeneracy_tol = 1e-12


def element_geometry(mesh) -> ElementGeometry:
    """Compute the affine maps of all elements of `mesh`.

    Raises `AssemblyError` if some element is degenerate (zero area).
    """
    xy = mesh.element_coordinates()  # (ne, 3, 2)
    J = np.stack([xy[:, 1] - xy[:, 0], xy[:, 2] - xy[:, 0]], axis=2)
    detJ = J[:, 0, 0] * J[:, 1, 1] - J[:, 0, 1] * J[:, 1, 0]

    h2 = np.max(np.sum((xy - np.roll(xy, 1, axis=1))**2, axis=2), axis=1)
    bad = np.flatnonzero(~(np.abs(detJ) > _degeneracy_tol * h2))  # catches NaN, too
    if len(bad):
        raise AssemblyError(f"Degenerate element geometry in {len(bad)} element(s), first one is element {bad[0]} with vertices {xy[bad[0]].tolist()}")

    invJ = np.empty_like(J)
    invJ[:, 0, 0] = J[:, 1, 1] / detJ
    invJ[:, 0, 1] = -J[:, 0, 1] / detJ
    invJ[:, 1, 0] = -J[:, 1, 0] / detJ
    invJ[:, 1, 1] = J[:, 0, 0] / detJ
    return ElementGeometry(xy[:, 0], J, detJ, invJ)


def map_points(geometry: ElementGeometry, points: np.array, elements=slice(None)):
    """Map reference `points` `(npts, 2)` into the given `elements`.

    Returns `(x, y)`, each of shape `(m, npts)`.
    """
    origin = geometry.origin[elements]
    J = geometry.J[elements]
    xy = origin[:, np.newaxis, :] + np.einsum("eij,nj->eni", J, points)
    return xy[:, :, 0], xy[:, :, 1]


def physical_gradients(geometry: ElementGeometry, dξ: np.array, dη: np.array, elements=slice(None)):
    """Transform reference gradients `(..., npts)` to physical gradients in the given `elements`.

    Returns `(dx, dy)`, each of shape `(m, ..., npts)`.
    """
    invJ = geometry.invJ[elements]
    extra = (np.newaxis,) * np.ndim(dξ)
    a, b = invJ[(slice(None), 0, 0) + extra], invJ[(slice(None), 1, 0) + extra]
    c, d = invJ[(slice(None), 0, 1) + extra], invJ[(slice(None), 1, 1) + extra]
    return a * dξ + b * dη, c * dξ + d * dη
