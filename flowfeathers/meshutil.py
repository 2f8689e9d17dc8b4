# -*- coding: utf-8; -*-
"""Mesh file I/O, built on top of meshio and h5py.

Any format meshio can read is accepted (Gmsh `.msh`, `.vtu`, `.xdmf`, ...).
Triangle cells form the mesh; quadrilateral cells are split into triangles
(see `meshmagic.quad_to_tri`). Line cells, with the physical tags in
`cell_data["gmsh:physical"]`, become the tagged boundary edges.

We also provide a compact native HDF5 format, which round-trips exactly:

  - "/mesh/vertices": `(nv, 2)` float
  - "/mesh/elements": `(ne, 3)` int
  - "/boundary_parts/edges": `(nb, 2)` int (optional)
  - "/boundary_parts/markers": `(nb,)` int (optional)
"""

__all__ = ["load", "save", "read_hdf5_mesh", "write_hdf5_mesh"]

import pathlib
import typing

import h5py
import meshio
import numpy as np

from .errors import MeshError
from .meshmagic import TriangleMesh, quad_to_tri

mesh_dataset_name = "mesh"
boundary_dataset_name = "boundary_parts"
physical_tag_name = "gmsh:physical"

_hdf5_suffixes = (".h5", ".hdf5")
_nodes_per_cell = {"line": 2, "triangle": 3, "quad": 4}


def _absolute_path(filename_or_path: typing.Union[pathlib.Path, str]) -> pathlib.Path:
    return pathlib.Path(filename_or_path).expanduser().resolve()


def _stack_cells(msh: meshio.Mesh, type: str) -> typing.Tuple[np.array, typing.Optional[np.array]]:
    """From `msh`, concatenate all cells of given `type` into one big `np.array`.

    Some mesh files have several cell blocks of the same type (e.g. one per physical tag).

    Return value is `(cells, tags)`, where `tags` is `None` if the file has no physical tags.
    """
    blocks = [k for k, block in enumerate(msh.cells) if block.type == type]
    if not blocks:
        return np.zeros((0, _nodes_per_cell[type]), dtype=np.int64), None
    cells = np.vstack([msh.cells[k].data for k in blocks])
    tags = None
    if physical_tag_name in msh.cell_data:
        tags = np.concatenate([np.asarray(msh.cell_data[physical_tag_name][k]).reshape(-1) for k in blocks])
    return cells, tags


def load(filename: typing.Union[pathlib.Path, str]) -> TriangleMesh:
    """Load a mesh file. HDF5 files (`.h5`, `.hdf5`) are read with `read_hdf5_mesh`.

    Raises `MeshError` if the file cannot be read or contains no triangles or quadrilaterals.
    """
    path = _absolute_path(filename)
    if path.suffix.lower() in _hdf5_suffixes:
        return read_hdf5_mesh(path)
    if not path.exists():
        raise MeshError(f"Mesh file {path} not found")
    try:
        msh = meshio.read(str(path))
    except (meshio.ReadError, OSError, ValueError, KeyError) as err:
        raise MeshError(f"Could not read mesh file {path}: {err}") from err

    vertices = np.asarray(msh.points)[:, :2]
    triangles, _ = _stack_cells(msh, "triangle")
    quads, _ = _stack_cells(msh, "quad")
    if len(quads):
        vertices, split = quad_to_tri(vertices, quads)
        triangles = np.concatenate([triangles.reshape(-1, 3), split])
    if not len(triangles):
        raise MeshError(f"No triangle or quadrilateral cells in mesh file {path}")

    lines, tags = _stack_cells(msh, "line")
    if not len(lines) or tags is None:
        lines, tags = np.zeros((0, 2), dtype=np.int64), np.zeros((0,), dtype=np.int64)

    # Mesh files may contain points not used by any cell (e.g. geometry points). Drop them.
    used = np.unique(triangles)
    renumber = np.full(len(vertices), -1, dtype=np.int64)
    renumber[used] = np.arange(len(used))
    lines = renumber[lines]
    keep = (tags > 0) & np.all(lines >= 0, axis=1)
    return TriangleMesh(vertices[used], renumber[triangles], lines[keep], tags[keep])


def save(mesh: TriangleMesh, filename: typing.Union[pathlib.Path, str]) -> None:
    """Save `mesh` in any format meshio can write (chosen by file extension), or in HDF5.

    The boundary edges are written as line cells, with their markers as `gmsh:physical` tags.
    """
    path = _absolute_path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in _hdf5_suffixes:
        write_hdf5_mesh(path, mesh)
        return
    cells = [("triangle", mesh.elements)]
    cell_data = {physical_tag_name: [np.zeros(mesh.num_elements, dtype=np.int64)]}
    if len(mesh.boundary_edges):
        cells.append(("line", mesh.boundary_edges))
        cell_data[physical_tag_name].append(mesh.boundary_markers)
    points = np.hstack([mesh.vertices, np.zeros((mesh.num_vertices, 1))])
    meshio.write(str(path), meshio.Mesh(points, cells, cell_data=cell_data))


def read_hdf5_mesh(filename: typing.Union[pathlib.Path, str]) -> TriangleMesh:
    """Read an HDF5 mesh file created using `write_hdf5_mesh`.

    Raises `MeshError` if the file does not have a "/mesh" group.

    The "/boundary_parts" group is optional. If the file does not have it,
    the mesh has no tagged boundaries.
    """
    path = _absolute_path(filename)
    try:
        with h5py.File(path, "r") as hdf:
            if mesh_dataset_name not in hdf:
                raise MeshError(f"{mesh_dataset_name} dataset not found in mesh file {path}")
            vertices = hdf[mesh_dataset_name]["vertices"][()]
            elements = hdf[mesh_dataset_name]["elements"][()]
            if boundary_dataset_name in hdf:
                edges = hdf[boundary_dataset_name]["edges"][()]
                markers = hdf[boundary_dataset_name]["markers"][()]
            else:
                edges = markers = None
    except (OSError, KeyError) as err:
        raise MeshError(f"Could not read mesh file {path}: {err}") from err
    return TriangleMesh(vertices, elements, edges, markers)


def write_hdf5_mesh(filename: typing.Union[pathlib.Path, str], mesh: TriangleMesh) -> None:
    """Write a mesh and its boundary tags into an HDF5 file.

    The output is a single HDF5 file with two groups:
      - "/mesh" contains the mesh itself.
      - "/boundary_parts" (if the mesh has tagged boundaries) contains the
        boundary edges and their markers.
    """
    path = _absolute_path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(path, "w") as hdf:
        group = hdf.create_group(mesh_dataset_name)
        group.create_dataset("vertices", data=mesh.vertices)
        group.create_dataset("elements", data=mesh.elements)
        if len(mesh.boundary_edges):
            group = hdf.create_group(boundary_dataset_name)
            group.create_dataset("edges", data=mesh.boundary_edges)
            group.create_dataset("markers", data=mesh.boundary_markers)
