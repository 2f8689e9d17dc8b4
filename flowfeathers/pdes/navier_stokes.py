# -*- coding: utf-8; -*-
"""
Incompressible Navier-Stokes equations, nondimensional form:

  ∂u/∂t + (u·∇)u - Δu / Re + ∇p = 0
                          ∇·u = 0

in a channel `[0, L] × [0, H]`, with a parabolic inflow profile at the inlet,
no-slip on the walls and on the obstacle, and "do nothing" at the outlet.
"""

__all__ = ["NavierStokes", "FIELDS"]

import typing

import numpy as np

from ..assembly import Assembler
from ..boundary import Boundaries, BoundaryKind, InletProfile
from .. import meshutil
from ..config import FlowParameters
from ..integrals import int_grad_u_grad_v, int_u_v, int_w_nabla_u_v, int_u_dvdx, int_u_dvdy, int_w_v
from ..meshmagic import channel_mesh
from ..spaces import FunctionSpace
from ..timestepper import TimeState, TimeStepper
from ..weakform import WeakForm, SYM, UNSYM, ANTISYM

FIELDS = ("xvel", "yvel", "press")


def velocity_bc_type(marker: int) -> BoundaryKind:
    """Velocity: prescribed everywhere except at the outlet."""
    if marker == Boundaries.OUTLET:
        return BoundaryKind.NONE
    return BoundaryKind.ESSENTIAL


def pressure_bc_type(marker: int) -> BoundaryKind:
    """Pressure: no boundary conditions (it is an L2 field)."""
    return BoundaryKind.NONE


class NavierStokes:
    """Unsteady incompressible Navier-Stokes solver, no turbulence model.

    Velocity components are continuous (H1), pressure is discontinuous (L2).
    This makes the velocity discretely divergence-free elementwise: the integral
    of `div u` over every element is zero (for `pressure_order = 0`, exactly that;
    for higher orders, also its low moments).

    Time integration is implicit Euler. The convective term is linearized by
    taking the advection velocity from the previous timestep, so each timestep
    is one linear solve (a single Picard iteration). The problem has a steady
    symmetric solution that is unstable; after some time, numerical noise
    triggers vortex shedding even on a perfectly symmetric mesh.

    `mesh`: a `TriangleMesh` tagged with the `Boundaries` markers. If `None`, the mesh
            is loaded from `params.mesh_path`, or generated (see `make_mesh`).
            A mesh given here takes precedence over `params.mesh_path`.
    `params`: a `FlowParameters`. Default is the classical setup (Re = 1000).
    `solver`: linear solve service; default `DirectSolver()`.
    `workers`: number of assembly threads.
    `sinks`: callables `sink(stepper, fields)`, called after each timestep.

    The weak form, with trial functions `u` (velocity component), `p` (pressure)
    and test functions `v`, `q`, and `w` the previous velocity::

        ∫ ∇u·∇v / Re + ∫ u v / τ      (blocks (0, 0) and (1, 1), symmetric)
        ∫ (w·∇u) v                    (blocks (0, 0) and (1, 1), unsymmetric)
        -∫ p ∂v/∂x,  -∫ p ∂v/∂y       (blocks (0, 2) and (1, 2), antisymmetric;
                                       the mirrored blocks (2, 0) and (2, 1)
                                       are the continuity equation)
        ∫ w_x v / τ,  ∫ w_y v / τ     (right-hand side, blocks 0 and 1)
    """
    def __init__(self, mesh=None, params: typing.Optional[FlowParameters] = None, *,
                 solver: typing.Optional[typing.Callable] = None,
                 workers: int = 1,
                 sinks: typing.Sequence[typing.Callable] = ()):
        self.params = params if params is not None else FlowParameters()
        p = self.params
        if mesh is None:
            mesh = self.make_mesh(p)
        self.mesh = mesh

        # H1 spaces for the velocity components, L2 for pressure
        self.V_x = FunctionSpace(mesh, "H1", p.velocity_order, name="xvel")
        self.V_y = FunctionSpace(mesh, "H1", p.velocity_order, name="yvel")
        self.Q = FunctionSpace(mesh, "L2", p.pressure_order, name="press")

        # Boundary conditions. The walls and the obstacle get the default zero value.
        self.V_x.set_boundary_classification(velocity_bc_type)
        self.V_y.set_boundary_classification(velocity_bc_type)
        self.Q.set_boundary_classification(pressure_bc_type)
        self.inlet_profile = InletProfile(p.inlet_velocity, p.domain_height)
        self.V_x.set_essential_value(Boundaries.INLET, self.inlet_profile)

        self.time_state = TimeState(p.time_step, p.final_time, p.ramp_time)
        self.weak_form = self.compile_forms()
        self.stepper = TimeStepper(self.weak_form,
                                   {"xvel": self.V_x, "yvel": self.V_y, "press": self.Q},
                                   self.time_state,
                                   solver=solver,
                                   assembler=Assembler(workers=workers),
                                   sinks=sinks)

    @staticmethod
    def make_mesh(params: FlowParameters):
        """Load the mesh file `params.mesh_path`, or if it is `None`, generate the default mesh.

        The default mesh is the classical geometry scaled to the channel height `H`:
        a `1.5 H × H` channel with a square obstacle of side `0.2 H`, its upstream
        edge at `x = 0.3 H`, centered on the centerline, on a `15 × 10` grid.

        Raises `MeshError` if the mesh file cannot be read.
        """
        if params.mesh_path is not None:
            return meshutil.load(params.mesh_path)
        H = params.domain_height
        return channel_mesh(1.5 * H, H, 15, 10, obstacle=(0.3 * H, 0.4 * H, 0.5 * H, 0.6 * H))

    def reynolds(self, u: float, L: float) -> float:
        """Return the Reynolds number of the flow.

        `u`: characteristic speed (scalar), in units of the velocity scale
        `L`: length scale, in units of the length scale

        In the nondimensional equations, the kinematic viscosity is `ν = 1 / Re`,
        so the Reynolds number of a flow feature is::

            Re_local = u L / ν = u L Re

        For the flow past the obstacle, `u` is the inlet centerline speed and `L`
        the size of the obstacle across the stream.
        """
        return u * L * self.params.reynolds

    def compile_forms(self) -> WeakForm:
        Re = self.params.reynolds
        τ = self.params.time_step

        def bilinear_form_sym_0_0_1_1(u, v, e, ext):
            return int_grad_u_grad_v(u, v, e) / Re + int_u_v(u, v, e) / τ

        def bilinear_form_unsym_0_0_1_1(u, v, e, ext):
            return int_w_nabla_u_v(ext["xvel"], ext["yvel"], u, v, e)

        def bilinear_form_unsym_0_2(p, v, e, ext):
            return -int_u_dvdx(p, v, e)

        def bilinear_form_unsym_1_2(p, v, e, ext):
            return -int_u_dvdy(p, v, e)

        def linear_form_0(v, e, ext):
            return int_w_v(ext["xvel"], v, e) / τ

        def linear_form_1(v, e, ext):
            return int_w_v(ext["yvel"], v, e) / τ

        wf = WeakForm(FIELDS)
        wf.add_bilinear_term(0, 0, bilinear_form_sym_0_0_1_1, SYM)
        wf.add_bilinear_term(0, 0, bilinear_form_unsym_0_0_1_1, UNSYM, dependencies=("xvel", "yvel"))
        wf.add_bilinear_term(1, 1, bilinear_form_sym_0_0_1_1, SYM)
        wf.add_bilinear_term(1, 1, bilinear_form_unsym_0_0_1_1, UNSYM, dependencies=("xvel", "yvel"))
        wf.add_bilinear_term(0, 2, bilinear_form_unsym_0_2, ANTISYM)
        wf.add_bilinear_term(1, 2, bilinear_form_unsym_1_2, ANTISYM)
        wf.add_linear_term(0, linear_form_0, dependencies=("xvel",))
        wf.add_linear_term(1, linear_form_1, dependencies=("yvel",))
        return wf

    # --------------------------------------------------------------------------------
    # Timestepping

    @property
    def fields(self):
        """The latest solution, `{"xvel": ..., "yvel": ..., "press": ...}` (read-only mapping)."""
        return self.stepper.previous

    @property
    def t(self) -> float:
        return self.time_state.time

    @property
    def state(self):
        return self.stepper.state

    def step(self):
        """Take a timestep of length `params.time_step`. Return the new fields."""
        return self.stepper.step()

    def run(self):
        """Step until `params.final_time`. Return the final fields."""
        return self.stepper.run()

    def add_sink(self, sink: typing.Callable) -> None:
        self.stepper.add_sink(sink)

    def max_speed(self) -> float:
        """Maximum nodal `|u|` of the latest solution (0 before the first step)."""
        ux, uy = self.fields["xvel"], self.fields["yvel"]
        if ux.is_zero or uy.is_zero:
            return 0.0
        return float(np.max(np.hypot(ux.node_values, uy.node_values)))
