# -*- coding: utf-8; -*-
"""Configuration for the channel flow demo.

Simulation parameters, file paths, etcetera.
"""

from flowfeathers import Boundaries, FlowParameters  # noqa: F401, the markers are part of the config

# --------------------------------------------------------------------------------
# Physical

# The problem is nondimensional. The Reynolds number characterizing the flow is
#
#   Re = u L / ν
#
# where `u` is the velocity scale (the inlet centerline velocity), `L` the length
# scale, and ν the kinematic viscosity. At Re = 1000, the steady symmetric
# solution is unstable, and a vortex street develops behind the obstacle.
reynolds = 1000.0

# Velocity at the center point of the inflow profile, reached after `ramp_time`.
# During the ramp, the inlet velocity increases linearly from zero.
inlet_velocity = 1.0
ramp_time = 1.0

# --------------------------------------------------------------------------------
# Numerical

time_step = 0.5      # τ
final_time = 3000.0  # length of the simulated time interval

# Polynomial orders. The velocity order must be greater than the pressure order,
# because of the inf-sup condition.
#
# The pressure is discontinuous. On the cross-diagonal triangle mesh, P2/P1
# has spurious pressure modes at the vertices where four triangles meet along
# two straight lines, so we use P2/P0, which is stable on any triangle mesh.
velocity_order = 2
pressure_order = 0

# Number of threads for the element loop in the assembly.
workers = 1

# --------------------------------------------------------------------------------
# Mesh

# Channel `[0, length] × [0, height]`. The height is needed to define the
# parabolic velocity profile at the inlet.
length = 15.0
height = 10.0

# Square obstacle, `(xmin, ymin, xmax, ymax)`, symmetric with respect to the centerline.
obstacle = (3.0, 4.0, 5.0, 6.0)

# Coarse grid resolution for the mesh generator, `main00_mesh.py`.
# The obstacle edges must fall on grid lines.
nx, ny = 15, 10

# A-priori refinements
refine_all = 1
refine_obstacle_levels = 4

# Characteristic length scale for computing the Reynolds number: the size of
# the obstacle across the stream.
L = obstacle[3] - obstacle[1]

# Plot every this many timesteps
vis_every = 50

# --------------------------------------------------------------------------------
# File paths

# The solvers expect to be run from the top level of the project as e.g.
#   python -m demo.channel.main01_flow
# so the CWD is expected to be the top level, hence the "demo/" at the
# beginning of each path.

mesh_filename = "demo/meshes/channel_with_obstacle.h5"  # for input and output

# For visualization in ParaView
vis_filename = "demo/output/channel/flow.xdmf"

# Raw node values of the solution, for postprocessing.
sol_filename = "demo/output/channel/flow_series.h5"


def parameters() -> FlowParameters:
    """The settings above, as a validated `FlowParameters`."""
    return FlowParameters(reynolds=reynolds,
                          inlet_velocity=inlet_velocity,
                          ramp_time=ramp_time,
                          time_step=time_step,
                          final_time=final_time,
                          velocity_order=velocity_order,
                          pressure_order=pressure_order,
                          domain_height=height,
                          mesh_path=mesh_filename)
