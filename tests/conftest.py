# -*- coding: utf-8; -*-
"""Shared fixtures: small meshes and function spaces."""

import numpy as np
import pytest

from flowfeathers import Boundaries, TriangleMesh, channel_mesh


def unit_square_mesh() -> TriangleMesh:
    """The unit square, split into two triangles along the diagonal (0, 0)-(1, 1).

    Markers: bottom 1, right 2, top 3, left 4.
    """
    vertices = np.array([[0.0, 0.0],
                         [1.0, 0.0],
                         [1.0, 1.0],
                         [0.0, 1.0]])
    elements = np.array([[0, 1, 2],
                         [0, 2, 3]])
    edges = np.array([[0, 1], [1, 2], [2, 3], [3, 0]])
    markers = np.array([Boundaries.BOTTOM, Boundaries.OUTLET, Boundaries.TOP, Boundaries.INLET])
    return TriangleMesh(vertices, elements, edges, markers)


@pytest.fixture
def square():
    return unit_square_mesh()


@pytest.fixture
def channel():
    """A 4 × 2 channel, 4 × 2 cells, no obstacle: 32 triangles."""
    return channel_mesh(4.0, 2.0, 4, 2)


@pytest.fixture
def obstacle_channel():
    """A 6 × 4 channel with a 1 × 2 obstacle (one grid column, two grid rows)."""
    return channel_mesh(6.0, 4.0, 6, 4, obstacle=(2.0, 1.0, 3.0, 3.0))
