# -*- coding: utf-8; -*-

from math import factorial

import numpy as np
import pytest

from flowfeathers.shapeset import (MAX_ORDER, Shapeset, get_shapeset,
                                   reference_nodes, quadrature, reference_lattice)


@pytest.mark.parametrize("p", range(0, 7))
def test_node_count(p):
    shapeset = get_shapeset(p)
    assert shapeset.nnodes == (p + 1) * (p + 2) // 2
    assert shapeset.nnodes == 3 * (p >= 1) + 3 * shapeset.nedge + shapeset.ninterior + (p == 0)


@pytest.mark.parametrize("p", range(0, 7))
def test_nodal_basis(p):
    shapeset = get_shapeset(p)
    values = shapeset.values(shapeset.nodes)
    assert np.allclose(values, np.eye(shapeset.nnodes), atol=1e-8)


@pytest.mark.parametrize("p", range(0, 6))
def test_partition_of_unity(p):
    rng = np.random.default_rng(42)
    points = rng.uniform(0.0, 0.5, size=(10, 2))
    shapeset = get_shapeset(p)
    assert np.allclose(np.sum(shapeset.values(points), axis=0), 1.0)
    dξ, dη = shapeset.gradients(points)
    assert np.allclose(np.sum(dξ, axis=0), 0.0, atol=1e-8)
    assert np.allclose(np.sum(dη, axis=0), 0.0, atol=1e-8)


def test_gradients_of_p1():
    dξ, dη = get_shapeset(1).gradients(np.array([[0.2, 0.3]]))
    assert np.allclose(dξ[:, 0], [-1.0, 1.0, 0.0])
    assert np.allclose(dη[:, 0], [-1.0, 0.0, 1.0])


def test_node_ordering_p2():
    nodes = reference_nodes(2)
    assert np.allclose(nodes, [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0],
                               [0.5, 0.0], [0.5, 0.5], [0.0, 0.5]])


def test_node_ordering_p3_edges_run_from_first_vertex():
    nodes = reference_nodes(3)
    # edge (1, 2), from vertex 1 toward vertex 2
    assert np.allclose(nodes[5], [2 / 3, 1 / 3])
    assert np.allclose(nodes[6], [1 / 3, 2 / 3])
    # one interior node, at the centroid
    assert np.allclose(nodes[9], [1 / 3, 1 / 3])


def test_invalid_order():
    with pytest.raises(ValueError):
        Shapeset(-1)
    with pytest.raises(ValueError):
        Shapeset(MAX_ORDER + 1)


def test_shapesets_are_cached():
    assert get_shapeset(2) is get_shapeset(2)


@pytest.mark.parametrize("degree", range(0, 9))
def test_quadrature_exactness(degree):
    points, weights = quadrature(degree)
    assert np.isclose(np.sum(weights), 0.5)
    x, y = points[:, 0], points[:, 1]
    for a in range(degree + 1):
        for b in range(degree + 1 - a):
            exact = factorial(a) * factorial(b) / factorial(a + b + 2)
            assert np.isclose(np.sum(weights * x**a * y**b), exact, rtol=1e-12, atol=1e-15)


def test_quadrature_points_inside_reference_triangle():
    points, _ = quadrature(6)
    assert np.all(points >= 0.0)
    assert np.all(np.sum(points, axis=1) <= 1.0)


def test_quadrature_is_read_only():
    points, weights = quadrature(3)
    with pytest.raises(ValueError):
        points[0, 0] = 1.0
    with pytest.raises(ValueError):
        weights[0] = 1.0


@pytest.mark.parametrize("n", [1, 2, 3, 5])
def test_reference_lattice(n):
    points, triangles = reference_lattice(n)
    assert len(points) == (n + 1) * (n + 2) // 2
    assert triangles.shape == (n * n, 3)
    p = points[triangles]
    area2 = ((p[:, 1, 0] - p[:, 0, 0]) * (p[:, 2, 1] - p[:, 0, 1]) -
             (p[:, 2, 0] - p[:, 0, 0]) * (p[:, 1, 1] - p[:, 0, 1]))
    assert np.all(area2 > 0)
    assert np.isclose(np.sum(area2) / 2, 0.5)
