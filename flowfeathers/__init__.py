# -*- coding: utf-8; -*-
"""A small finite element toolkit for unsteady incompressible flow in 2D.

Continuous (H1) and discontinuous (L2) Lagrange elements on triangle meshes,
a weak form registry with symmetry-aware assembly, and a timestepper for
implicit Euler with a linearized convection term.

See individual submodules for more information.

There is also a subpackage `flowfeathers.pdes`, containing ready-made problem
setups (currently, Navier-Stokes flow past an obstacle in a channel). The
subpackage is not automatically loaded; if you need it, import it explicitly.
"""

__version__ = "0.1.0"

# export the public API
from .errors import *  # noqa: F401, F403
from .boundary import *  # noqa: F401, F403
from .meshmagic import *  # noqa: F401, F403
from .meshutil import *  # noqa: F401, F403
from .shapeset import *  # noqa: F401, F403
from .spaces import *  # noqa: F401, F403
from .solution import *  # noqa: F401, F403
from .weakform import *  # noqa: F401, F403
from .integrals import *  # noqa: F401, F403
from .assembly import *  # noqa: F401, F403
from .linsolve import *  # noqa: F401, F403
from .timestepper import *  # noqa: F401, F403
from .config import *  # noqa: F401, F403
