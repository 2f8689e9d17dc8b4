# -*- coding: utf-8; -*-

from types import MappingProxyType

import numpy as np
import pytest

from flowfeathers import (AssemblyError, Boundaries, ConfigurationError, DirectSolver,
                          FunctionSpace, SolveError, StepperState, TimeState, TimeStepper,
                          WeakForm, SYM, channel_mesh)
from flowfeathers.integrals import int_grad_u_grad_v, int_u_v, int_w_v


def heat_problem(mesh, τ=0.5, source=None):
    """Implicit Euler for the heat equation, with u = t on the inlet."""
    space = FunctionSpace(mesh, "H1", 2, name="u")
    space.set_boundary_classification({Boundaries.INLET: "essential"})
    space.set_essential_value(Boundaries.INLET, lambda marker, x, y, time_state: np.full_like(x, time_state.time))

    def bilinear_form(u, v, e, ext):
        return int_grad_u_grad_v(u, v, e) + int_u_v(u, v, e) / τ

    def linear_form(v, e, ext):
        return int_w_v(ext["u"], v, e) / τ

    wf = WeakForm(["u"])
    wf.add_bilinear_term(0, 0, bilinear_form, SYM)
    wf.add_linear_term(0, source or linear_form, dependencies=("u",))
    return wf, {"u": space}


class CountingSolver:
    """Direct solver that counts calls, and fails at call number `fail_at`."""
    def __init__(self, fail_at=None):
        self.calls = 0
        self.fail_at = fail_at

    def __call__(self, system):
        self.calls += 1
        if self.calls == self.fail_at:
            raise SolveError("simulated failure")
        return DirectSolver()(system)


def test_time_state():
    state = TimeState(0.5, 3000.0)
    assert state.num_steps == 6000
    assert state.time == 0.0
    assert state.ramp_factor() == 0.0
    assert state.advance() == 0.5
    assert state.ramp_factor() == 0.5
    state.advance()
    state.advance()
    assert state.ramp_factor() == 1.0
    assert not state.done


@pytest.mark.parametrize("step, final, expected", [(0.1, 0.3, 3), (0.3, 1.0, 4), (0.25, 1.0, 4),
                                                  (0.1, 1.1, 11), (1.0, 3.0000000001, 3), (1.0, 3.00001, 4)])
def test_number_of_steps(step, final, expected):
    state = TimeState(step, final)
    assert state.num_steps == expected
    for _ in range(expected):
        assert not state.done
        state.advance()
    assert state.done


def test_time_does_not_accumulate_rounding_error():
    state = TimeState(0.1, 1000.0, step_index=9999)
    state.advance()
    assert state.time == 1000.0


@pytest.mark.parametrize("args", [(0.0, 1.0), (-0.5, 1.0), (0.5, 0.0), (0.5, 1.0, 0.0)])
def test_invalid_time_state(args):
    with pytest.raises(ConfigurationError):
        TimeState(*args)


def test_run(channel):
    wf, spaces = heat_problem(channel)
    calls = []
    stepper = TimeStepper(wf, spaces, TimeState(0.5, 2.0),
                          sinks=[lambda stepper, fields: calls.append((stepper.time_state.time, fields["u"].time))])
    assert stepper.state is StepperState.INITIALIZED
    assert stepper.previous["u"].is_zero
    assert spaces["u"].time_state is stepper.time_state

    fields = stepper.run()
    assert stepper.state is StepperState.DONE
    assert calls == [(0.5, 0.5), (1.0, 1.0), (1.5, 1.5), (2.0, 2.0)]
    assert fields["u"].time == 2.0
    assert stepper.last_completed_time == 2.0
    assert stepper.last_completed_step == 4
    assert stepper.ndofs == spaces["u"].num_dofs

    with pytest.raises(RuntimeError):
        stepper.step()


def test_boundary_values_follow_time(channel):
    wf, spaces = heat_problem(channel)
    stepper = TimeStepper(wf, spaces, TimeState(0.5, 2.0))
    inlet = channel.boundary_vertices(Boundaries.INLET)
    for n in range(1, 4):
        fields = stepper.step()
        assert np.allclose(fields["u"].node_values[inlet], 0.5 * n)
        assert fields is stepper.previous


def test_previous_is_read_only(channel):
    wf, spaces = heat_problem(channel)
    stepper = TimeStepper(wf, spaces, TimeState(0.5, 2.0))
    fields = stepper.step()
    assert isinstance(fields, MappingProxyType)
    with pytest.raises(TypeError):
        fields["u"] = None
    with pytest.raises(ValueError):
        fields["u"].node_values[0] = 42.0


def test_sequence_of_spaces(channel):
    wf, spaces = heat_problem(channel)
    stepper = TimeStepper(wf, [spaces["u"]], TimeState(0.5, 1.0))
    stepper.run()
    assert stepper.state is StepperState.DONE


def test_solve_failure(channel):
    wf, spaces = heat_problem(channel)
    solver = CountingSolver(fail_at=2)
    stepper = TimeStepper(wf, spaces, TimeState(0.5, 2.0), solver=solver)
    stepper.step()
    with pytest.raises(SolveError) as excinfo:
        stepper.step()
    assert excinfo.value.last_completed_time == 0.5
    assert excinfo.value.last_completed_step == 1
    assert stepper.state is StepperState.FAILED
    # the last good solution is kept
    assert stepper.previous["u"].time == 0.5
    with pytest.raises(RuntimeError):
        stepper.step()
    assert solver.calls == 2


def test_assembly_failure_never_calls_the_solver(channel):
    def broken_form(v, e, ext):
        return int_w_v(ext["u"], v, e) * np.nan
    wf, spaces = heat_problem(channel, source=broken_form)
    solver = CountingSolver()
    stepper = TimeStepper(wf, spaces, TimeState(0.5, 2.0), solver=solver)
    with pytest.raises(AssemblyError) as excinfo:
        stepper.step()
    assert excinfo.value.last_completed_time == 0.0
    assert stepper.state is StepperState.FAILED
    assert stepper.previous["u"].is_zero
    assert solver.calls == 0


def test_configuration_errors(channel, square):
    wf, spaces = heat_problem(channel)
    with pytest.raises(ConfigurationError):
        TimeStepper(wf, {"v": spaces["u"]}, TimeState(0.5, 1.0))
    with pytest.raises(ConfigurationError):
        TimeStepper(wf, [], TimeState(0.5, 1.0))
    with pytest.raises(ConfigurationError):
        TimeStepper(wf, [FunctionSpace(None, "H1", 1)], TimeState(0.5, 1.0))

    two = WeakForm(["u", "p"])
    with pytest.raises(ConfigurationError):
        TimeStepper(two, [spaces["u"], FunctionSpace(square, "L2", 0)], TimeState(0.5, 1.0))


def test_refinement_between_steps():
    mesh = channel_mesh(4.0, 2.0, 4, 2)
    wf, spaces = heat_problem(mesh)
    stepper = TimeStepper(wf, spaces, TimeState(0.5, 2.0))
    stepper.step()
    mesh.refine_all_elements()
    # The previous solution was decoded on the coarse layout; it cannot be used as-is.
    with pytest.raises(AssemblyError):
        stepper.step()
    assert stepper.state is StepperState.FAILED
