# -*- coding: utf-8; -*-

import numpy as np
import pytest

from flowfeathers import (Boundaries, BoundaryClassifier, BoundaryKind,
                          ConfigurationError, FunctionSpace, InletProfile, TimeState)
from flowfeathers.shapeset import get_shapeset


@pytest.mark.parametrize("family, order, expected", [("H1", 1, 4),
                                                     ("H1", 2, 4 + 5),
                                                     ("H1", 3, 4 + 2 * 5 + 2),
                                                     ("L2", 0, 2),
                                                     ("L2", 1, 6),
                                                     ("L2", 2, 12)])
def test_dof_counts_without_boundary_conditions(square, family, order, expected):
    space = FunctionSpace(square, family, order)
    assert space.num_nodes == expected
    assert space.assign_dofs() == expected
    assert space.dofs_assigned
    assert space.node_dofs.tolist() == list(range(expected))


def test_family_is_case_insensitive(square):
    assert FunctionSpace(square, "h1", 1).family == "H1"


@pytest.mark.parametrize("family, order", [("H1", 0), ("H1", 11), ("L2", -1), ("L2", 11), ("H1", 1.5), ("Hdiv", 1)])
def test_invalid_family_or_order(square, family, order):
    with pytest.raises(ConfigurationError):
        FunctionSpace(square, family, order)


def test_no_mesh():
    space = FunctionSpace(None, "H1", 2)
    with pytest.raises(ConfigurationError):
        space.assign_dofs()
    with pytest.raises(ConfigurationError):
        space.layout


def test_binding_mesh_later(square):
    space = FunctionSpace(None, "H1", 1)
    space.mesh = square
    assert space.assign_dofs() == 4


def test_edge_nodes_are_shared(square):
    space = FunctionSpace(square, "H1", 2)
    # The diagonal (0, 2) is mesh edge 1; its midpoint node is shared by both elements.
    node = 4 + 1
    assert node in space.element_nodes[0]
    assert node in space.element_nodes[1]
    assert np.allclose(space.node_coordinates[node], [0.5, 0.5])


@pytest.mark.parametrize("order", [2, 3, 4])
def test_node_coordinates_agree_between_elements(obstacle_channel, order):
    """Shared edge nodes must be at the same physical point, seen from each element."""
    space = FunctionSpace(obstacle_channel, "H1", order)
    xy = obstacle_channel.element_coordinates()
    ref = get_shapeset(order).nodes
    physical = (xy[:, np.newaxis, 0, :] +
                ref[np.newaxis, :, 0, np.newaxis] * (xy[:, np.newaxis, 1, :] - xy[:, np.newaxis, 0, :]) +
                ref[np.newaxis, :, 1, np.newaxis] * (xy[:, np.newaxis, 2, :] - xy[:, np.newaxis, 0, :]))
    assert np.allclose(space.node_coordinates[space.element_nodes], physical)
    # every node is used by some element
    assert np.array_equal(np.unique(space.element_nodes), np.arange(space.num_nodes))


def test_dof_windows_are_contiguous(channel):
    spaces = [FunctionSpace(channel, "H1", 2), FunctionSpace(channel, "H1", 2), FunctionSpace(channel, "L2", 1)]
    for space in spaces[:2]:
        space.set_boundary_classification({Boundaries.INLET: "essential", Boundaries.TOP: "essential"})
    ndofs = 0
    for space in spaces:
        ndofs += space.assign_dofs(ndofs)
    assert spaces[0].dof_range == range(0, spaces[0].num_dofs)
    assert spaces[1].dof_range.start == spaces[0].dof_range.stop
    assert spaces[2].dof_range.start == spaces[1].dof_range.stop
    assert spaces[2].dof_range.stop == ndofs
    for space in spaces:
        dofs = space.node_dofs[space.node_dofs >= 0]
        assert np.array_equal(dofs, np.arange(space.first_dof, space.first_dof + space.num_dofs))


def test_numbering_is_stable(obstacle_channel):
    space = FunctionSpace(obstacle_channel, "H1", 3)
    space.set_boundary_classification({Boundaries.OBSTACLE: BoundaryKind.ESSENTIAL})
    space.assign_dofs(7)
    first = space.node_dofs.copy()
    space.assign_dofs(7)
    assert np.array_equal(space.node_dofs, first)
    other = FunctionSpace(obstacle_channel, "H1", 3)
    other.set_boundary_classification({Boundaries.OBSTACLE: BoundaryKind.ESSENTIAL})
    other.assign_dofs(7)
    assert np.array_equal(other.node_dofs, first)


def test_essential_nodes_get_no_dof(square):
    space = FunctionSpace(square, "H1", 2)
    space.set_boundary_classification({Boundaries.INLET: "essential"})
    # edge (0, 3) is mesh edge 2; its nodes are vertices 0, 3 and the edge node 4 + 2
    assert space.assign_dofs() == 9 - 3
    assert np.flatnonzero(space.node_dofs < 0).tolist() == [0, 3, 6]
    assert space.element_dofs.shape == (2, 6)


def test_corner_takes_smallest_marker(square):
    space = FunctionSpace(square, "H1", 2)
    space.set_boundary_classification({Boundaries.BOTTOM: "essential", Boundaries.INLET: "essential"})
    space.set_essential_value(Boundaries.BOTTOM, lambda marker, x, y, time_state: x + 10.0)
    space.set_essential_value(Boundaries.INLET, 2.0)
    space.assign_dofs()
    assert space.node_markers[0] == Boundaries.BOTTOM
    assert space.node_markers[1] == Boundaries.BOTTOM
    assert space.node_markers[3] == Boundaries.INLET
    assert space.node_markers[2] == 0
    assert space.prescribed_values[0] == 10.0
    assert space.prescribed_values[1] == 11.0
    assert space.prescribed_values[4] == 10.5  # midpoint of the bottom edge (mesh edge 0)
    assert space.prescribed_values[3] == 2.0
    assert space.prescribed_values[6] == 2.0
    assert space.prescribed_values[2] == 0.0


def test_essential_marker_without_value_is_zero(square):
    space = FunctionSpace(square, "H1", 1)
    space.set_boundary_classification(lambda marker: "essential" if marker == Boundaries.TOP else "none")
    assert space.assign_dofs() == 2
    assert np.all(space.prescribed_values == 0.0)


def test_dof_arrays_are_read_only(square):
    space = FunctionSpace(square, "H1", 1)
    space.assign_dofs()
    with pytest.raises(ValueError):
        space.node_dofs[0] = 42


def test_time_dependent_boundary_values(channel):
    space = FunctionSpace(channel, "H1", 2)
    space.set_boundary_classification({Boundaries.INLET: "essential"})
    space.set_essential_value(Boundaries.INLET, InletProfile(velocity=1.0, height=2.0))
    center = int(np.flatnonzero(np.all(np.isclose(channel.vertices, [0.0, 1.0]), axis=1))[0])

    space.assign_dofs()  # no time state bound yet: the ramp factor is zero
    assert space.prescribed_values[center] == 0.0

    space.time_state = TimeState(0.5, 10.0, ramp_time=1.0)
    space.time_state.advance()
    space.assign_dofs()
    assert np.isclose(space.prescribed_values[center], 0.5)

    space.time_state.advance()
    space.time_state.advance()
    space.assign_dofs()
    assert np.isclose(space.prescribed_values[center], 1.0)


def test_bad_boundary_values(square):
    space = FunctionSpace(square, "H1", 1)
    space.set_boundary_classification({Boundaries.INLET: "essential"})
    space.set_essential_value(Boundaries.INLET, lambda marker, x, y, time_state: np.array([1.0, 2.0, 3.0]))
    with pytest.raises(ConfigurationError):
        space.assign_dofs()
    space.set_essential_value(Boundaries.INLET, lambda marker, x, y, time_state: np.full_like(x, np.inf))
    with pytest.raises(ConfigurationError):
        space.assign_dofs()


def test_l2_space_cannot_have_essential_conditions(square):
    space = FunctionSpace(square, "L2", 1)
    with pytest.raises(ConfigurationError):
        space.set_boundary_classification({Boundaries.INLET: "essential"})
    with pytest.raises(ConfigurationError):
        space.set_boundary_classification(lambda marker: BoundaryKind.ESSENTIAL)
    space.set_boundary_classification(lambda marker: BoundaryKind.NONE)
    assert space.assign_dofs() == 6


def test_refinement_invalidates_dofs(square):
    space = FunctionSpace(square, "H1", 2)
    space.assign_dofs()
    token = space.layout_token
    square.refine_all_elements()
    assert not space.dofs_assigned
    assert space.layout_token != token
    assert space.assign_dofs() == square.num_vertices + square.num_edges


def test_boundary_classifier():
    classifier = BoundaryClassifier({5: "essential", 2: "none", 3: BoundaryKind.ESSENTIAL})
    assert classifier(5) is BoundaryKind.ESSENTIAL
    assert classifier(2) is BoundaryKind.NATURAL
    assert classifier(1) is BoundaryKind.NATURAL
    assert classifier.listed_markers == [2, 3, 5]
    assert classifier.essential_markers([1, 2, 3, 4, 5]) == [3, 5]
    assert BoundaryClassifier(classifier)(3) is BoundaryKind.ESSENTIAL
    with pytest.raises(ConfigurationError):
        BoundaryClassifier({1: "dirichlet"})
    with pytest.raises(ConfigurationError):
        BoundaryClassifier(lambda marker: 42)(1)


def test_inlet_profile():
    profile = InletProfile(velocity=2.0, height=10.0)
    y = np.array([0.0, 2.5, 5.0, 10.0])
    x = np.zeros_like(y)
    assert np.all(profile(Boundaries.INLET, x, y, None) == 0.0)
    state = TimeState(0.25, 10.0, ramp_time=1.0, step_index=2)
    assert np.allclose(profile(Boundaries.INLET, x, y, state), [0.0, 0.75, 1.0, 0.0])
    state = TimeState(0.25, 10.0, ramp_time=1.0, step_index=8)
    assert np.allclose(profile(Boundaries.INLET, x, y, state), [0.0, 1.5, 2.0, 0.0])
    with pytest.raises(ConfigurationError):
        InletProfile(1.0, 0.0)
