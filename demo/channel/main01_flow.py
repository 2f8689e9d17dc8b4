# -*- coding: utf-8; -*-
"""First pass main program for the channel flow demo: flow past an obstacle.

Run `main00_mesh.py` first to generate the mesh; if the mesh file is missing,
the mesh is generated here, with the same settings.
"""

import logging
import os

import matplotlib.pyplot as plt

from unpythonic import ETAEstimator, timer

from flowfeathers import log, meshmagic, plotmagic
from flowfeathers.linsolve import DirectSolver
from flowfeathers.pdes import NavierStokes
from flowfeathers.timeseries import ArchiveSink, TimeSeries, XdmfSink

from .config import (Boundaries, parameters, workers,
                     length, height, nx, ny, obstacle,
                     refine_all, refine_obstacle_levels, L,
                     vis_every, vis_filename, sol_filename)

log.set_log_level(logging.WARNING)

params = parameters()

# --------------------------------------------------------------------------------
# Mesh

if os.path.isfile(params.mesh_path):
    mesh = None  # the solver loads `params.mesh_path`
else:
    print(f"Mesh file {params.mesh_path} not found, generating the mesh.")
    mesh = meshmagic.channel_mesh(length, height, nx, ny, obstacle=obstacle)
    for _ in range(refine_all):
        mesh.refine_all_elements()
    mesh.refine_towards_boundary(Boundaries.OBSTACLE, refine_obstacle_levels)

# --------------------------------------------------------------------------------
# Solver

solver = NavierStokes(mesh, params, solver=DirectSolver(), workers=workers)
print(f"Mesh: {solver.mesh.num_vertices} vertices, {solver.mesh.num_elements} elements.")

ndofs = solver.stepper.ndofs
print(f"Number of DOFs: velocity {solver.V_x.num_dofs} + {solver.V_y.num_dofs}, "
      f"pressure {solver.Q.num_dofs}, total {ndofs}.")
print(f"Flow Reynolds number based on obstacle size is Re = {solver.reynolds(params.inlet_velocity, L):0.12g}.")

timeseries = TimeSeries(sol_filename, mode="w")
xdmf = XdmfSink(vis_filename, every=vis_every)
solver.add_sink(ArchiveSink(timeseries, every=vis_every))
solver.add_sink(xdmf)
solver.add_sink(plotmagic.PlotSink(every=vis_every))

# --------------------------------------------------------------------------------
# Timestep loop

plt.ion()

nt = params.num_steps
est = ETAEstimator(nt)
msg = "Starting. Progress information will be available shortly..."
try:
    with timer() as tim_total:
        while not solver.time_state.done:
            n = solver.time_state.step_index + 1
            print(f"{msg} Solving timestep {n}/{nt}, t = {solver.t + params.time_step:0.6g}.")
            with timer() as tim:
                solver.step()
            est.tick()

            maxu = solver.max_speed()
            Re_local = solver.reynolds(maxu, L)
            msg = (f"{n}/{nt}: t = {solver.t:0.6g}, |u|_max = {maxu:0.6g}, Re_local = {Re_local:0.6g}, "
                   f"step {tim.dt:0.6g} s; ETA {est.formatted_eta}")

            # Allow the GUI to update (plt.pause not enough, it would steal focus).
            plotmagic.pause(0.001)
finally:
    xdmf.close()
    timeseries.close()

print(f"Simulation of {nt} timesteps completed in {tim_total.dt:0.6g} seconds.")

# Hold the plot
plt.ioff()
plt.show()
