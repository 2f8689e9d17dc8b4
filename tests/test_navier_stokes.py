# -*- coding: utf-8; -*-

import numpy as np
import pytest

from flowfeathers import Assembler, Boundaries, FlowParameters, MeshError, SolveError, StepperState, meshutil
from flowfeathers.geometry import element_geometry
from flowfeathers.pdes import NavierStokes, FIELDS
from flowfeathers.shapeset import quadrature


def small_params(**changes):
    params = FlowParameters(reynolds=10.0, time_step=0.5, final_time=2.0, domain_height=2.0)
    return params.replace(**changes)


def vertex_index(mesh, xy):
    return int(np.flatnonzero(np.all(np.isclose(mesh.vertices, xy), axis=1))[0])


def test_setup(channel):
    solver = NavierStokes(channel, small_params())
    assert solver.weak_form.fields == list(FIELDS)
    assert len(solver.weak_form.bilinear_terms) == 6
    assert len(solver.weak_form.linear_terms) == 2
    assert solver.weak_form.dependencies() == ["xvel", "yvel"]
    assert solver.V_x.family == "H1" and solver.V_x.order == 2
    assert solver.Q.family == "L2" and solver.Q.order == 0
    assert solver.state is StepperState.INITIALIZED
    assert solver.t == 0.0
    assert solver.max_speed() == 0.0
    assert solver.stepper.ndofs == solver.V_x.num_dofs + solver.V_y.num_dofs + solver.Q.num_dofs
    # every element has one pressure DOF
    assert solver.Q.num_dofs == channel.num_elements


def test_boundary_classification(channel):
    solver = NavierStokes(channel, small_params())
    outlet = vertex_index(channel, [4.0, 1.0])
    wall = vertex_index(channel, [2.0, 2.0])
    assert solver.V_x.node_dofs[outlet] >= 0
    assert solver.V_x.node_dofs[wall] < 0
    assert solver.V_y.node_dofs[wall] < 0
    assert np.all(solver.Q.node_dofs >= 0)


def test_inlet_profile_is_ramped(channel):
    solver = NavierStokes(channel, small_params())
    center = vertex_index(channel, [0.0, 1.0])
    corner = vertex_index(channel, [0.0, 0.0])

    fields = solver.step()
    assert solver.t == 0.5
    assert np.isclose(fields["xvel"].node_values[center], 0.5)
    assert fields["xvel"].node_values[corner] == 0.0
    assert fields["yvel"].node_values[center] == 0.0

    solver.step()
    fields = solver.step()
    assert solver.t == 1.5
    assert np.isclose(fields["xvel"].node_values[center], 1.0)


def test_zero_inflow_is_a_fixed_point(channel):
    solver = NavierStokes(channel, small_params(inlet_velocity=0.0, final_time=3.0))
    system = Assembler().assemble(solver.weak_form, solver.stepper.spaces, solver.fields, solver.time_state)
    assert len(system.rhs) == solver.stepper.ndofs
    assert np.all(system.rhs == 0.0)

    seen = []
    def check(stepper, fields):
        seen.append(stepper.time_state.step_index)
        for name in FIELDS:
            assert np.all(fields[name].node_values == 0.0)
    solver.add_sink(check)
    solver.run()
    assert solver.state is StepperState.DONE
    assert seen == [1, 2, 3, 4, 5, 6]


def test_velocity_is_divergence_free_elementwise(obstacle_channel):
    solver = NavierStokes(obstacle_channel, small_params(domain_height=4.0))
    solver.step()
    fields = solver.step()
    points, weights = quadrature(2)
    ux = fields["xvel"].evaluate_reference(points)
    uy = fields["yvel"].evaluate_reference(points)
    detJ = np.abs(element_geometry(obstacle_channel).detJ)
    div = np.sum((ux.dx + uy.dy) * weights, axis=1) * detJ
    assert solver.max_speed() > 0.1
    assert np.max(np.abs(div)) < 1e-8


def test_pressure_coupling_is_antisymmetric(channel):
    solver = NavierStokes(channel, small_params())
    system = Assembler().assemble(solver.weak_form, solver.stepper.spaces, solver.fields, solver.time_state)
    for velocity in (0, 1):
        B = system.block(velocity, 2).toarray()
        assert np.any(B != 0.0)
        assert np.array_equal(system.block(2, velocity).toarray(), -B.T)
    assert system.block(2, 2).nnz == 0
    assert system.block(0, 1).nnz == 0


def test_run(channel):
    sink_calls = []
    solver = NavierStokes(channel, small_params(),
                          sinks=[lambda stepper, fields: sink_calls.append(stepper.time_state.time)])
    fields = solver.run()
    assert solver.state is StepperState.DONE
    assert solver.t == 2.0
    assert sink_calls == [0.5, 1.0, 1.5, 2.0]
    assert all(field.time == 2.0 for field in fields.values())
    assert np.isfinite(solver.max_speed())
    assert solver.max_speed() > 0.5


def test_parallel_assembly_gives_the_same_flow(obstacle_channel):
    serial = NavierStokes(obstacle_channel, small_params(domain_height=4.0))
    serial.stepper.assembler = Assembler(workers=1, chunk_size=16)
    parallel = NavierStokes(obstacle_channel, small_params(domain_height=4.0))
    parallel.stepper.assembler = Assembler(workers=4, chunk_size=16)
    for _ in range(2):
        a = serial.step()
        b = parallel.step()
    for name in FIELDS:
        assert np.array_equal(a[name].node_values, b[name].node_values)


def test_reynolds_number(channel):
    solver = NavierStokes(channel, small_params(reynolds=1000.0))
    assert solver.reynolds(1.0, 2.0) == 2000.0


def test_higher_order_pair(channel):
    solver = NavierStokes(channel, small_params(velocity_order=3, pressure_order=0, final_time=1.0))
    solver.run()
    assert np.isfinite(solver.max_speed())


@pytest.mark.parametrize("marker", [Boundaries.INLET, Boundaries.TOP, Boundaries.BOTTOM, Boundaries.OBSTACLE])
def test_velocity_vanishes_on_walls(obstacle_channel, marker):
    solver = NavierStokes(obstacle_channel, small_params(domain_height=4.0))
    fields = solver.step()
    nodes = obstacle_channel.boundary_vertices(marker)
    y = obstacle_channel.vertices[nodes, 1]
    assert np.all(fields["yvel"].node_values[nodes] == 0.0)
    if marker != Boundaries.INLET:
        assert np.all(fields["xvel"].node_values[nodes] == 0.0)
    else:
        expected = 1.0 * y * (4.0 - y) / 4.0 * 0.5
        assert np.allclose(fields["xvel"].node_values[nodes], expected)


def test_unstable_element_pair_is_rejected(obstacle_channel):
    # P2/P1disc on the criss-cross mesh has spurious pressure modes; the system is singular.
    solver = NavierStokes(obstacle_channel, small_params(domain_height=4.0, pressure_order=1))
    with pytest.raises(SolveError) as excinfo:
        solver.step()
    assert excinfo.value.last_completed_time == 0.0
    assert solver.state is StepperState.FAILED
    assert solver.fields["press"].is_zero  # nothing was fed forward


def test_mesh_from_parameters(obstacle_channel, tmp_path):
    filename = tmp_path / "obstacle_channel.h5"
    meshutil.save(obstacle_channel, filename)
    solver = NavierStokes(None, small_params(domain_height=4.0, mesh_path=str(filename)))
    assert solver.mesh.num_elements == obstacle_channel.num_elements
    assert solver.mesh.markers == [1, 2, 3, 4, 5]
    solver.step()
    assert solver.max_speed() > 0.1


def test_missing_mesh_file_fails_before_stepping(tmp_path):
    with pytest.raises(MeshError):
        NavierStokes(None, small_params(mesh_path=str(tmp_path / "nonexistent.h5")))


def test_default_mesh():
    solver = NavierStokes(None, small_params())
    # 15 × 10 grid cells, minus 2 × 2 for the obstacle, four triangles each
    assert solver.mesh.num_elements == 4 * (15 * 10 - 4)
    assert Boundaries.OBSTACLE in solver.mesh.markers
    assert np.allclose(solver.mesh.vertices.max(axis=0), [3.0, 2.0])


def test_explicit_mesh_wins(channel, tmp_path):
    solver = NavierStokes(channel, small_params(mesh_path=str(tmp_path / "nonexistent.h5")))
    assert solver.mesh is channel
