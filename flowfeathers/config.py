# -*- coding: utf-8; -*-
"""Parameters of the channel-flow problem.

The problem is nondimensional: lengths are scaled by the channel height scale,
velocities by the inlet velocity scale, and the viscosity enters only through
the Reynolds number.
"""

__all__ = ["FlowParameters"]

import dataclasses
import math
import typing

from .errors import ConfigurationError


@dataclasses.dataclass(frozen=True)
class FlowParameters:
    """Validated problem parameters. Defaults reproduce the classical flow-past-obstacle setup.

    `reynolds`: Reynolds number `Re > 0`.
    `inlet_velocity`: centerline velocity of the fully developed inlet profile.
    `ramp_time`: the inlet velocity ramps up linearly from zero over this time.
    `time_step`: fixed timestep `τ`.
    `final_time`: length of the simulated time interval.
    `velocity_order`, `pressure_order`: polynomial orders. The velocity order must be
        strictly higher than the pressure order (inf-sup condition).
    `domain_height`: channel height `H`, used by the parabolic inlet profile.
    `mesh_path`: mesh file to load; `None` to generate the default channel mesh.

    Raises `ConfigurationError` on invalid values.
    """
    reynolds: float = 1000.0
    inlet_velocity: float = 1.0
    ramp_time: float = 1.0
    time_step: float = 0.5
    final_time: float = 3000.0
    velocity_order: int = 2
    pressure_order: int = 0
    domain_height: float = 10.0
    mesh_path: typing.Optional[str] = None

    def __post_init__(self):
        def check(ok, msg):
            if not ok:
                raise ConfigurationError(msg)
        for name in ("reynolds", "inlet_velocity", "ramp_time", "time_step", "final_time", "domain_height"):
            value = getattr(self, name)
            check(isinstance(value, (int, float)) and math.isfinite(value), f"{name} must be a finite number, got {value!r}")
        check(self.reynolds > 0, f"reynolds must be positive, got {self.reynolds}")
        check(self.ramp_time > 0, f"ramp_time must be positive, got {self.ramp_time}")
        check(self.time_step > 0, f"time_step must be positive, got {self.time_step}")
        check(self.final_time > self.time_step, f"final_time ({self.final_time}) must be greater than time_step ({self.time_step})")
        check(self.domain_height > 0, f"domain_height must be positive, got {self.domain_height}")
        for name in ("velocity_order", "pressure_order"):
            value = getattr(self, name)
            check(isinstance(value, int) and not isinstance(value, bool), f"{name} must be an integer, got {value!r}")
        check(self.velocity_order >= 1, f"velocity_order must be at least 1, got {self.velocity_order}")
        check(self.pressure_order >= 0, f"pressure_order must be at least 0, got {self.pressure_order}")
        check(self.velocity_order > self.pressure_order,
              f"velocity_order ({self.velocity_order}) must be greater than pressure_order ({self.pressure_order}) (inf-sup condition)")

    @classmethod
    def from_mapping(cls, mapping: typing.Mapping[str, typing.Any]) -> "FlowParameters":
        """Build from a mapping (e.g. parsed from a config file). Unknown keys are an error."""
        known = {field.name for field in dataclasses.fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ConfigurationError(f"Unknown parameters {unknown}; known parameters are {sorted(known)}")
        return cls(**mapping)

    def replace(self, **changes) -> "FlowParameters":
        """Return a copy with some parameters changed (validated again)."""
        return dataclasses.replace(self, **changes)

    @property
    def num_steps(self) -> int:
        """Number of timesteps, as `TimeState.num_steps` computes it (floating-point noise below `1e-9` does not add a step)."""
        return math.ceil(self.final_time / self.time_step - 1e-9)
