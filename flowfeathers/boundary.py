# -*- coding: utf-8; -*-
"""Boundary markers, boundary classification, and essential boundary values.

The mesh tags each boundary edge with a small positive integer, the *marker*.
Each function space decides, per marker, whether the boundary condition is
essential (the value is prescribed, and the nodes get no DOF), or natural
(nothing to do; the boundary integral vanishes, or is part of the weak form).

Prescribed values are small capability objects. They are called as::

    value(marker, x, y, time_state) -> np.array

where `x`, `y` are arrays of node coordinates, and `time_state` is the shared
`TimeState` of the simulation (or `None` before the timestepper binds one).
The return value must have the same shape as `x`.
"""

__all__ = ["Boundaries", "BoundaryKind", "BoundaryClassifier",
           "EssentialValue", "ConstantValue", "FunctionValue", "InletProfile"]

from enum import IntEnum
import typing

import numpy as np

from .errors import ConfigurationError


class Boundaries(IntEnum):
    """Boundary markers of the channel-flow geometry.

    The numbering matches the tags in the mesh files, so that Gmsh-imported
    meshes and generated meshes work the same way.
    """
    BOTTOM = 1
    OUTLET = 2
    TOP = 3
    INLET = 4
    OBSTACLE = 5


class BoundaryKind(IntEnum):
    ESSENTIAL = 1
    NATURAL = 2
    NONE = 2  # alias: "do nothing" is the natural BC


class BoundaryClassifier:
    """Map boundary markers to `BoundaryKind`.

    `classification`: one of
        - a mapping `{marker: kind, ...}`; unlisted markers are natural,
        - a callable `marker -> kind`,
        - a `BoundaryClassifier` (copied).

    Kinds can also be given as strings, `"essential"`, `"natural"` or `"none"`.
    """
    def __init__(self, classification: typing.Union[typing.Mapping[int, typing.Any],
                                                    typing.Callable[[int], typing.Any],
                                                    "BoundaryClassifier",
                                                    None] = None):
        if isinstance(classification, BoundaryClassifier):
            self._table = dict(classification._table)
            self._function = classification._function
        elif classification is None:
            self._table = {}
            self._function = None
        elif callable(classification):
            self._table = {}
            self._function = classification
        else:
            self._table = {int(marker): _as_kind(kind) for marker, kind in classification.items()}
            self._function = None

    def __call__(self, marker: int) -> BoundaryKind:
        marker = int(marker)
        if self._function is not None:
            return _as_kind(self._function(marker))
        return self._table.get(marker, BoundaryKind.NATURAL)

    @property
    def listed_markers(self) -> typing.List[int]:
        """Markers listed explicitly in the classification table (empty for a callable)."""
        return sorted(self._table)

    def essential_markers(self, markers: typing.Iterable[int]) -> typing.List[int]:
        """From `markers`, return those classified essential, in ascending order."""
        return sorted(int(m) for m in set(markers) if self(m) is BoundaryKind.ESSENTIAL)

    def __repr__(self):
        if self._function is not None:
            return f"<BoundaryClassifier: {self._function!r}>"
        items = ", ".join(f"{m}: {k.name}" for m, k in sorted(self._table.items()))
        return f"<BoundaryClassifier: {{{items}}}>"


def _as_kind(kind) -> BoundaryKind:
    if isinstance(kind, BoundaryKind):
        return kind
    if isinstance(kind, str):
        try:
            return BoundaryKind[kind.upper()]
        except KeyError:
            pass
    raise ConfigurationError(f"Unknown boundary kind {kind!r}; expected one of {[k.name for k in BoundaryKind]}")


class EssentialValue:
    """Base class for prescribed (essential) boundary values."""
    def __call__(self, marker: int, x: np.array, y: np.array, time_state) -> np.array:
        raise NotImplementedError


class ConstantValue(EssentialValue):
    """The same value everywhere on the boundary part, at all times (e.g. a no-slip wall)."""
    def __init__(self, value: float = 0.0):
        self.value = float(value)

    def __call__(self, marker, x, y, time_state):
        return np.full(np.shape(x), self.value, dtype=np.float64)

    def __repr__(self):
        return f"<ConstantValue: {self.value}>"


class FunctionValue(EssentialValue):
    """Wrap a plain function `f(marker, x, y, time_state)` as an `EssentialValue`."""
    def __init__(self, function: typing.Callable):
        if not callable(function):
            raise TypeError(f"Expected a callable, got {type(function)} with value {function}")
        self.function = function

    def __call__(self, marker, x, y, time_state):
        return np.broadcast_to(np.asarray(self.function(marker, x, y, time_state), dtype=np.float64),
                               np.shape(x)).copy()

    def __repr__(self):
        return f"<FunctionValue: {self.function!r}>"


class InletProfile(EssentialValue):
    """Parabolic inflow profile, ramped up linearly in time.

        u(y, t) = U y (H - y) / (H / 2)² · r(t)

    where `r(t) = min(1, t / ramp_time)` is the ramp factor of the time state.
    The profile is zero at the walls `y = 0` and `y = H`, and `U` at the
    centerline `y = H / 2`. Before a time state is bound, the ramp factor is zero.

    `velocity`: centerline velocity `U` of the fully developed profile.
    `height`: channel height `H`.
    """
    def __init__(self, velocity: float, height: float):
        if height <= 0:
            raise ConfigurationError(f"Channel height must be positive, got {height}")
        self.velocity = float(velocity)
        self.height = float(height)

    def __call__(self, marker, x, y, time_state):
        ramp = time_state.ramp_factor() if time_state is not None else 0.0
        H = self.height
        return self.velocity * y * (H - y) / (H / 2)**2 * ramp

    def __repr__(self):
        return f"<InletProfile: U={self.velocity}, H={self.height}>"
