# -*- coding: utf-8; -*-
"""Plotting utilities, using `matplotlib` as the backend.

- `linearize` turns a finite element field into a `matplotlib.tri.Triangulation`
  and nodal values on it. Higher-order and discontinuous fields are handled by
  subdividing each element into P1 triangles, each element separately.

- `plot_field`, `plot_velocity`, `plot_mesh` and `plot_boundaries` do exactly as
  they say on the tin. `plot_boundaries` is often useful for checking whether
  the boundaries have been tagged as expected after generating or importing a mesh.

- `PlotSink` is a timestepper sink that redraws the pressure and the speed `|u|`
  every few timesteps, for monitoring a running simulation.
"""

__all__ = ["pause",
           "linearize",
           "plot_field", "plot_velocity", "plot_mesh", "plot_boundaries",
           "PlotSink"]

from collections import defaultdict
from enum import IntEnum
import typing

import numpy as np
import matplotlib as mpl
import matplotlib.tri as mtri
import matplotlib.pyplot as plt
from matplotlib.backends import BackendFilter, backend_registry

from .shapeset import reference_lattice
from .solution import SolutionField


def pause(interval: float) -> None:
    """Redraw the current Matplotlib figure **without stealing focus**.

    **IMPORTANT**:

    Works after `plt.show()` has been called at least once.

    **Background**:

    Matplotlib has a habit of popping the figure window to top when it is
    updated using show() or pause(), which effectively prevents using the
    machine for anything else while a simulation is in progress.

    So, we redraw the figure by running the GUI event loop directly, based on
    the StackOverflow answer by user @ImportanceOfBeingErnest:
        https://stackoverflow.com/a/45734500
    """
    backend = plt.rcParams["backend"].lower()
    if backend in backend_registry.list_builtin(BackendFilter.INTERACTIVE):
        figManager = mpl._pylab_helpers.Gcf.get_active()
        if figManager is not None:
            canvas = figManager.canvas
            if canvas.figure.stale:
                canvas.draw_idle()
            canvas.start_event_loop(interval)


def linearize(field: SolutionField,
              subdivisions: typing.Optional[int] = None) -> typing.Tuple[mtri.Triangulation, np.array]:
    """Represent `field` as a P1 triangulation, for plotting.

    `subdivisions`: each element is split into `subdivisions²` triangles.
                    Default is the polynomial order of the field (at least 1),
                    so that for Lagrange fields, the vis vertices are exactly
                    the nodes.

    The vis vertices are not shared between elements, so discontinuous fields
    show their jumps.

    Returns `(triangulation, values)`, where `values` holds the field value
    at each vertex of the triangulation.
    """
    mesh = field.mesh
    if mesh is None:
        raise ValueError("Cannot linearize a field that has no data")
    n = subdivisions if subdivisions is not None else max(field.order, 1)
    points, triangles = reference_lattice(n)
    values = field.evaluate_reference(points).val  # (ne, npts)

    xy = mesh.element_coordinates()
    J = np.stack([xy[:, 1] - xy[:, 0], xy[:, 2] - xy[:, 0]], axis=2)
    physical = xy[:, np.newaxis, 0, :] + np.einsum("eij,nj->eni", J, points)  # (ne, npts, 2)

    ne, npts = values.shape
    offsets = (np.arange(ne) * npts)[:, np.newaxis, np.newaxis]
    all_triangles = (triangles[np.newaxis, :, :] + offsets).reshape(-1, 3)
    physical = physical.reshape(-1, 2)
    tri = mtri.Triangulation(physical[:, 0], physical[:, 1], triangles=all_triangles)
    return tri, values.reshape(-1)


def plot_field(field: SolutionField, *,
               show_mesh: bool = False,
               subdivisions: typing.Optional[int] = None,
               **kwargs: typing.Any) -> typing.Any:
    """Plot a scalar field.

    `show_mesh`: if `True`, show the element edges.
    `kwargs`: passed through to `matplotlib.pyplot.tricontourf`

    Returns the plot object.
    """
    tri, values = linearize(field, subdivisions)
    kwargs.setdefault("levels", 32)
    theplot = plt.tricontourf(tri, values, **kwargs)
    if show_mesh:
        plot_mesh(field.mesh)
    return theplot


def plot_velocity(xvel: SolutionField, yvel: SolutionField, **kwargs: typing.Any) -> typing.Any:
    """Quiver plot of a velocity field, at the mesh vertices.

    `kwargs`: passed through to `matplotlib.pyplot.quiver`

    Returns the plot object.
    """
    mesh = xvel.mesh
    nv = mesh.num_vertices
    if xvel.is_zero or yvel.is_zero:
        ux = uy = np.zeros(nv)
    else:
        if xvel.space.family != "H1" or yvel.space.family != "H1":
            raise ValueError("Velocity quiver plot needs H1 (continuous) velocity components")
        ux = xvel.node_values[:nv]  # H1 spaces number the vertex nodes first
        uy = yvel.node_values[:nv]
    return plt.quiver(mesh.vertices[:, 0], mesh.vertices[:, 1], ux, uy, np.hypot(ux, uy), **kwargs)


def plot_mesh(mesh, *, main_color: str = "#80808040") -> typing.Any:
    """Plot the element edges of a `TriangleMesh`. Returns the plot object."""
    tri = mtri.Triangulation(mesh.vertices[:, 0], mesh.vertices[:, 1], triangles=mesh.elements)
    return plt.triplot(tri, color=main_color)


# Use `matplotlib`'s default color sequence.
# https://matplotlib.org/stable/gallery/color/named_colors.html
colors = [item["color"] for item in mpl.rcParams["axes.prop_cycle"]]
def plot_boundaries(mesh, names: typing.Optional[typing.Type[IntEnum]] = None) -> None:
    """Plot the tagged boundary edges of a `TriangleMesh`, colored by marker.

    `names`: If provided, names for the markers are looked up in this `IntEnum`,
             and the lines are labeled (so that `matplotlib.pyplot.legend` can then
             be used to see which is which). Markers not in `names` are not plotted.

    Colors follow `matplotlib`'s default color cycle, with the marker value 0 mapped
    to the zeroth color.
    """
    if names:
        tag_to_name = {item.value: item.name for item in names}

    def empty_list() -> typing.List:
        return []
    plot_data = defaultdict(empty_list)
    for (a, b), tag in zip(mesh.boundary_edges, mesh.boundary_markers):
        tag = int(tag)
        if names and tag not in tag_to_name:
            continue
        plot_data[tag].append(mesh.vertices[[a, b]])
        # A NaN entry forces matplotlib to draw each edge separately, instead of connecting them.
        plot_data[tag].append(np.array([[np.nan, np.nan]]))

    for tag, vtxss in sorted(plot_data.items(), key=lambda item: item[0]):
        vtxs = np.concatenate(vtxss)
        label = f"{tag_to_name[tag]} (ID#{tag})" if names else f"<boundary> (ID#{tag})"
        plt.plot(vtxs[:, 0], vtxs[:, 1], color=colors[tag % len(colors)], label=label)


class PlotSink:
    """Timestepper sink: plot the pressure and the speed `|u|` every `every` steps.

    `every`: plot interval, in timesteps. The last step is always plotted.
    `figure`: matplotlib figure number to draw into.
    `velocity`, `pressure`: field names.
    """
    def __init__(self, every: int = 50, figure: int = 1,
                 velocity: typing.Tuple[str, str] = ("xvel", "yvel"),
                 pressure: str = "press"):
        self.every = every
        self.figure = figure
        self.velocity = velocity
        self.pressure = pressure
        self.first = True

    def __call__(self, stepper, fields) -> None:
        n = stepper.time_state.step_index
        if n % self.every != 0 and not stepper.time_state.done:
            return
        t = stepper.time_state.time
        p = fields[self.pressure]
        ux, uy = (fields[name] for name in self.velocity)

        plt.figure(self.figure)
        plt.clf()

        # Center the pressure color scale on zero.
        plt.subplot(2, 1, 1)
        tri, pvals = linearize(p)
        absmaxp = max(float(np.max(np.abs(pvals))), 1e-12)
        theplot = plt.tricontourf(tri, pvals, levels=32, cmap="RdBu_r", vmin=-absmaxp, vmax=+absmaxp)
        plt.axis("equal")
        plt.colorbar(theplot)
        plt.ylabel(r"$p$")
        plt.title(f"Pressure, time {t:g}")

        plt.subplot(2, 1, 2)
        tri, uxvals = linearize(ux)
        _, uyvals = linearize(uy)
        theplot = plt.tricontourf(tri, np.hypot(uxvals, uyvals), levels=32)
        plt.axis("equal")
        plt.colorbar(theplot)
        plt.ylabel(r"$|u|$")
        plt.title(f"Velocity, time {t:g}")

        plt.draw()
        if self.first:
            plt.show()
            self.first = False
        pause(0.001)
