# -*- coding: utf-8; -*-
"""Ready-made problem setups built on the `flowfeathers` core."""

# export the public API
from .navier_stokes import *  # noqa: F401, F403
