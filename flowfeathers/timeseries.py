# -*- coding: utf-8; -*-
"""Archiving and export of simulation results.

`TimeSeries` stores the raw node values of fields into an HDF5 file (h5py),
for postprocessing, or for use as input data in other solvers. The layout is::

    /<field name>/times         (nsteps,) float, extendable
    /<field name>/<k>           node values at times[k]
    /<field name>/<k>.attrs     time, family, order

`write_vtu` and `XdmfSink` export for visualization in ParaView (meshio).
The export is at the mesh vertices: H1 fields become point data (their vertex
nodes), L2 fields become cell data (the element mean of the node values).
For higher-order fields, this loses the extra resolution; refine the mesh for
export if needed.

`ArchiveSink` connects a `TimeSeries` to the timestepper.
"""

__all__ = ["TimeSeries", "ArchiveSink",
           "vertex_data", "write_vtu", "XdmfSink"]

import pathlib
import typing

import h5py
import meshio
import numpy as np


def _absolute_path(filename_or_path: typing.Union[pathlib.Path, str]) -> pathlib.Path:
    return pathlib.Path(filename_or_path).expanduser().resolve()


class TimeSeries:
    """HDF5 time series of raw node values.

    `filename`: the HDF5 file. Parent directories are created as needed.
    `mode`: h5py file mode. Default "a" (read/write, create if missing).

    Use as a context manager, or call `close()` when done.
    """
    def __init__(self, filename: typing.Union[pathlib.Path, str], mode: str = "a"):
        path = _absolute_path(filename)
        if mode != "r":
            path.parent.mkdir(parents=True, exist_ok=True)
        self.filename = str(path)
        self.hdf = h5py.File(self.filename, mode)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self) -> None:
        self.hdf.close()

    def store(self, field, t: typing.Optional[float] = None) -> None:
        """Store the node values of `field` (a decoded `SolutionField`) at time `t`.

        `t`: default is `field.time`.
        """
        if field.name is None:
            raise ValueError("Cannot store an unnamed field")
        t = field.time if t is None else t
        if t is None:
            raise ValueError(f"Field {field.name} has no time tag; pass `t` explicitly")
        group = self.hdf.require_group(field.name)
        if "times" not in group:
            group.create_dataset("times", shape=(0,), maxshape=(None,), dtype="f8")
        times = group["times"]
        k = times.shape[0]
        times.resize((k + 1,))
        times[k] = t
        data = group.create_dataset(str(k), data=np.asarray(field.node_values))
        data.attrs["time"] = t
        data.attrs["family"] = field.space.family
        data.attrs["order"] = field.space.order
        self.hdf.flush()

    def names(self) -> typing.List[str]:
        return sorted(self.hdf.keys())

    def times(self, name: str) -> np.array:
        """The stored times of field `name`."""
        return self.hdf[name]["times"][()]

    def retrieve(self, name: str, t: float) -> np.array:
        """Return the node values of field `name` stored at the time closest to `t`."""
        times = self.times(name)
        if not len(times):
            raise ValueError(f"No data stored for field {name}")
        k = int(np.argmin(np.abs(times - t)))
        return self.hdf[name][str(k)][()]


class ArchiveSink:
    """Timestepper sink: store the named fields into a `TimeSeries` every `every` steps.

    `timeseries`: a `TimeSeries`.
    `names`: fields to store; default all.
    `every`: interval, in timesteps. The last step is always stored.
    """
    def __init__(self, timeseries: TimeSeries,
                 names: typing.Optional[typing.Sequence[str]] = None,
                 every: int = 1):
        self.timeseries = timeseries
        self.names = names
        self.every = every

    def __call__(self, stepper, fields) -> None:
        n = stepper.time_state.step_index
        if n % self.every != 0 and not stepper.time_state.done:
            return
        for name in (self.names if self.names is not None else fields.keys()):
            self.timeseries.store(fields[name])


def vertex_data(fields: typing.Mapping[str, typing.Any]) -> typing.Tuple[dict, dict]:
    """Sample fields at the mesh vertices (H1) or elements (L2), for vertex-based export formats.

    Returns `(point_data, cell_data)`, in meshio format.
    """
    point_data = {}
    cell_data = {}
    for name, field in fields.items():
        mesh = field.mesh
        if field.is_zero:
            point_data[name] = np.zeros(mesh.num_vertices)
        elif field.space.family == "H1":
            point_data[name] = np.array(field.node_values[:mesh.num_vertices])  # vertex nodes come first
        else:
            cell_data[name] = [np.mean(field.node_values[field.space.element_nodes], axis=1)]
    return point_data, cell_data


def _points_cells(mesh):
    points = np.hstack([mesh.vertices, np.zeros((mesh.num_vertices, 1))])
    return points, [("triangle", mesh.elements)]


def write_vtu(filename: typing.Union[pathlib.Path, str], fields: typing.Mapping[str, typing.Any]) -> None:
    """Write a snapshot of `fields` (all on the same mesh) into a single VTU file."""
    if not fields:
        raise ValueError("No fields to write")
    mesh = next(iter(fields.values())).mesh
    path = _absolute_path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    points, cells = _points_cells(mesh)
    point_data, cell_data = vertex_data(fields)
    meshio.write(str(path), meshio.Mesh(points, cells, point_data=point_data, cell_data=cell_data))


class XdmfSink:
    """Timestepper sink: write the fields into an XDMF time series, for ParaView.

    The mesh is written once, at the first call; the mesh is assumed constant in time.
    Call `close()` when done (or use as a context manager).

    `filename`: the ".xdmf" file (meshio writes the heavy data next to it, in HDF5).
    `every`: interval, in timesteps. The last step is always written.
    """
    def __init__(self, filename: typing.Union[pathlib.Path, str], every: int = 1):
        path = _absolute_path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.filename = str(path)
        self.every = every
        self._writer = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __call__(self, stepper, fields) -> None:
        n = stepper.time_state.step_index
        if n % self.every != 0 and not stepper.time_state.done:
            return
        if self._writer is None:
            mesh = next(iter(fields.values())).mesh
            self._writer = meshio.xdmf.TimeSeriesWriter(self.filename)
            self._writer.__enter__()
            self._writer.write_points_cells(*_points_cells(mesh))
        point_data, cell_data = vertex_data(fields)
        self._writer.write_data(stepper.time_state.time, point_data=point_data, cell_data=cell_data)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.__exit__(None, None, None)
            self._writer = None
