# -*- coding: utf-8; -*-
"""Outer timestep loop: implicit Euler with a Picard-linearized convection term.

Each timestep is one linear solve. The convection velocity, and the old value
in the time derivative, are taken from the previous timestep's solution, which
is frozen for the duration of the step::

    (u - u_prev) / τ + (u_prev · ∇) u - Δu / Re + ∇p = 0
                                               ∇ · u = 0

There is no iteration within a timestep, no adaptive step size, and no
divergence detection; the loop runs a fixed number of steps. If the chosen
step is too large, the solution may blow up; then the solve (or the assembly,
on the next step) fails with a non-finite value, and the loop stops.
"""

__all__ = ["TimeState", "StepperState", "TimeStepper"]

from enum import IntEnum
import math
from types import MappingProxyType
import typing

from unpythonic import timer

from .assembly import Assembler
from .errors import ConfigurationError, FlowfeathersError
from .linsolve import DirectSolver
from .log import begin, end, info
from .solution import SolutionField


class TimeState:
    """Simulation time, shared by reference by everything that depends on it.

    `step_size`: fixed timestep `τ`.
    `final_time`: end of the simulated time interval.
    `ramp_time`: duration of the startup ramp (see `ramp_factor`).
    `step_index`: number of completed advances; normally starts at 0.

    The current time is always computed as `step_index * step_size`, so that no
    rounding error accumulates over long runs.
    """
    def __init__(self, step_size: float, final_time: float, ramp_time: float = 1.0, step_index: int = 0):
        if not step_size > 0:
            raise ConfigurationError(f"Timestep must be positive, got {step_size}")
        if not final_time > 0:
            raise ConfigurationError(f"Final time must be positive, got {final_time}")
        if not ramp_time > 0:
            raise ConfigurationError(f"Ramp time must be positive, got {ramp_time}")
        self.step_size = float(step_size)
        self.final_time = float(final_time)
        self.ramp_time = float(ramp_time)
        self.step_index = int(step_index)

    def __repr__(self):
        return f"<TimeState: step {self.step_index}/{self.num_steps}, t = {self.time:g}>"

    @property
    def time(self) -> float:
        return self.step_index * self.step_size

    @property
    def num_steps(self) -> int:
        """Number of steps to reach `final_time`; a partial last step counts as a full one.

        This is `ceil(final_time / step_size)`, except that a quotient exceeding an
        integer by less than `1e-9` (floating-point noise, as in `1.1 / 0.1`) is
        rounded down to that integer instead of adding a nearly empty extra step.
        """
        return math.ceil(self.final_time / self.step_size - 1e-9)

    @property
    def done(self) -> bool:
        return self.step_index >= self.num_steps

    def ramp_factor(self) -> float:
        """Startup ramp, `min(1, t / ramp_time)`: rises linearly from 0 to 1, then holds."""
        return min(1.0, self.time / self.ramp_time)

    def advance(self) -> float:
        """Advance by one step. Return the new time."""
        self.step_index += 1
        return self.time


class StepperState(IntEnum):
    INITIALIZED = 1
    STEPPING = 2
    DONE = 3
    FAILED = 4


class TimeStepper:
    """Drive the timestep loop for a weak form.

    `weak_form`: the `WeakForm` of the problem.
    `spaces`: the function spaces, either a mapping `{field_name: space}` or a sequence
              in the field order of `weak_form`. All must live on the same mesh.
    `time_state`: the shared `TimeState`. It is bound to all spaces, so that their
                  time-dependent boundary values see the current time.
    `solver`: linear solve service; a callable `solver(system) -> x`.
              Default is `DirectSolver()`.
    `assembler`: default is `Assembler()`.
    `sinks`: callables `sink(stepper, fields)`, called after each completed step
             with the (read-only) mapping of the new fields.

    The "previous" fields start at zero. The DOFs are assigned once at construction,
    so configuration errors are caught before the loop starts.

    Usage::

        stepper = TimeStepper(wf, {"xvel": V, "yvel": V2, "press": Q}, TimeState(0.5, 3000.0))
        stepper.run()

    or step manually::

        while stepper.state is not StepperState.DONE:
            fields = stepper.step()
    """
    def __init__(self, weak_form, spaces, time_state: TimeState,
                 solver: typing.Optional[typing.Callable] = None,
                 assembler: typing.Optional[Assembler] = None,
                 sinks: typing.Sequence[typing.Callable] = ()):
        if isinstance(spaces, typing.Mapping):
            missing = [name for name in weak_form.fields if name not in spaces]
            if missing:
                raise ConfigurationError(f"No function space given for fields {missing}")
            spaces = [spaces[name] for name in weak_form.fields]
        spaces = list(spaces)
        if len(spaces) != weak_form.num_fields:
            raise ConfigurationError(f"The weak form has {weak_form.num_fields} fields, but {len(spaces)} spaces were given")
        mesh = spaces[0].mesh
        if mesh is None or any(space.mesh is not mesh for space in spaces):
            raise ConfigurationError("All function spaces must be bound to the same mesh")

        self.weak_form = weak_form
        self.spaces = spaces
        self.time_state = time_state
        self.solver = solver if solver is not None else DirectSolver()
        self.assembler = assembler if assembler is not None else Assembler()
        self.sinks = list(sinks)
        for space in spaces:
            space.time_state = time_state

        self.ndofs = self.assign_dofs()
        self.previous = MappingProxyType({name: SolutionField.zero(mesh, name)
                                          for name in weak_form.fields})
        for field in self.previous.values():
            field.time = time_state.time
        self.last_completed_time = time_state.time
        self.last_completed_step = time_state.step_index
        self.last_step_walltime = None
        self.state = StepperState.DONE if time_state.done else StepperState.INITIALIZED

    def __repr__(self):
        return f"<TimeStepper: {self.state.name}, {self.time_state!r}, {self.ndofs} DOFs>"

    def add_sink(self, sink: typing.Callable) -> None:
        self.sinks.append(sink)

    def assign_dofs(self) -> int:
        """Number the DOFs of all fields contiguously; refresh the boundary values. Return the total."""
        ndofs = 0
        for space in self.spaces:
            ndofs += space.assign_dofs(ndofs)
        return ndofs

    def step(self) -> typing.Mapping[str, SolutionField]:
        """Advance one timestep. Return the new fields (which are now also `self.previous`).

        On error, the stepper goes to `FAILED`, and the exception is re-raised, with the
        attributes `last_completed_time` and `last_completed_step` attached (for
        `flowfeathers` errors). The previous fields are left as they were.

        Raises `RuntimeError` if called after the run is complete, or after a failure.
        """
        if self.state in (StepperState.DONE, StepperState.FAILED):
            raise RuntimeError(f"Cannot step: the stepper is {self.state.name}")
        self.state = StepperState.STEPPING

        t = self.time_state.advance()
        begin(f"Time step {self.time_state.step_index}/{self.time_state.num_steps}, time = {t:g}")
        try:
            with timer() as tim:
                self.ndofs = self.assign_dofs()  # this is needed to update the time-dependent boundary conditions
                system = self.assembler.assemble(self.weak_form, self.spaces, self.previous, self.time_state)
                x = self.solver(system)
                fields = {}
                for name, space in zip(self.weak_form.fields, self.spaces):
                    field = SolutionField.from_coefficients(space, x, name)
                    field.time = t
                    fields[name] = field
        except Exception as err:
            self.state = StepperState.FAILED
            if isinstance(err, FlowfeathersError):
                err.last_completed_time = self.last_completed_time
                err.last_completed_step = self.last_completed_step
            raise
        finally:
            end()

        # Accept the timestep. Ownership transfer: the new mapping replaces the old one.
        self.previous = MappingProxyType(fields)
        self.last_completed_time = t
        self.last_completed_step = self.time_state.step_index
        self.last_step_walltime = tim.dt
        info(f"Time step {self.last_completed_step} completed in {tim.dt:0.6g} seconds.")
        if self.time_state.done:
            self.state = StepperState.DONE

        for sink in self.sinks:
            sink(self, self.previous)
        return self.previous

    def run(self) -> typing.Mapping[str, SolutionField]:
        """Step until `final_time`. Return the final fields."""
        while self.state is not StepperState.DONE:
            self.step()
        return self.previous
