# -*- coding: utf-8; -*-
"""Exception types raised by `flowfeathers`.

The errors are grouped by when they can occur:

  - `ConfigurationError` and `MeshError` are raised during setup, before
    the timestep loop starts. They are fatal; fix the input and try again.

  - `AssemblyError` and `SolveError` are raised inside the timestep loop.
    They abort the current run. The timestepper attaches the last successfully
    completed simulation time to the exception (as `last_completed_time`), so
    that the caller can report it, or resume from an archived snapshot.

None of these are ever recovered from silently.
"""

__all__ = ["FlowfeathersError",
           "ConfigurationError", "MeshError",
           "AssemblyError", "SolveError"]


class FlowfeathersError(Exception):
    """Base class for all errors raised by `flowfeathers`."""


class ConfigurationError(FlowfeathersError, ValueError):
    """Invalid setup: incompatible element orders, bad time parameters, missing mesh binding..."""


class MeshError(FlowfeathersError):
    """Unreadable or corrupt mesh data, or refinement against an unknown boundary marker."""


class AssemblyError(FlowfeathersError):
    """The global system could not be assembled.

    For example, degenerate element geometry, a form term referring to a field
    that has no DOFs assigned, or a form kernel producing a non-finite value.

    A failed assembly never produces a partial system.
    """


class SolveError(FlowfeathersError):
    """The linear solve service failed (singular matrix, no convergence, non-finite result)."""
