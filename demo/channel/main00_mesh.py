# -*- coding: utf-8; -*-
"""Zeroth pass main program for the channel flow demo: generate the mesh.

A structured coarse mesh of the channel, with the obstacle cut out, refined
once uniformly, and then toward the obstacle. The boundaries are tagged
automatically.

Alternatively, you can make a mesh in Gmsh; tag the boundary lines with
physical groups numbered as in `Boundaries`, and convert the `.msh` file with
`flowfeathers.meshutil.load` and `flowfeathers.meshutil.save`.
"""

import matplotlib.pyplot as plt

from unpythonic import timer

from flowfeathers import meshmagic, meshutil, plotmagic

from .config import (Boundaries,
                     length, height, nx, ny, obstacle,
                     refine_all, refine_obstacle_levels,
                     mesh_filename)


def main():
    """Generate the mesh."""
    with timer() as tim:
        mesh = meshmagic.channel_mesh(length, height, nx, ny, obstacle=obstacle)
        for _ in range(refine_all):
            mesh.refine_all_elements()
        mesh.refine_towards_boundary(Boundaries.OBSTACLE, refine_obstacle_levels)
    print(f"Mesh generated in {tim.dt:0.6g} seconds: {mesh.num_vertices} vertices, {mesh.num_elements} elements.")

    meshutil.save(mesh, mesh_filename)
    print(f"Saved to {mesh_filename}.")

    # Visualize the mesh and the boundary tags, to check that they are as expected.
    plt.figure(1)
    plt.clf()
    plotmagic.plot_mesh(mesh)
    plotmagic.plot_boundaries(mesh, names=Boundaries)
    plt.axis("equal")
    plt.legend(loc="best")
    plt.title("Generated mesh")
    plt.show()


if __name__ == "__main__":
    main()
