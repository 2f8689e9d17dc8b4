# -*- coding: utf-8; -*-
"""Building blocks for weak form kernels.

Each function integrates over the element by summing over the last axis
(the quadrature points) against the weights `e.wt`. The argument shapes are
as documented in `flowfeathers.weakform`; numpy broadcasting produces the
`(m, nv, nu)` local matrices for bilinear terms, and the `(m, nv)` local
vectors for linear terms, with the same code.

Naming follows the integrand: `u` is the trial function, `v` the test function,
and `w`, `w1`, `w2` are given (dependency) fields.
"""

__all__ = ["int_u_v", "int_grad_u_grad_v",
           "int_w_nabla_u_v",
           "int_u_dvdx", "int_u_dvdy",
           "int_w_v", "int_v"]

import numpy as np


def int_u_v(u, v, e):
    """∫ u v"""
    return np.sum(e.wt * u.val * v.val, axis=-1)


def int_grad_u_grad_v(u, v, e):
    """∫ ∇u · ∇v"""
    return np.sum(e.wt * (u.dx * v.dx + u.dy * v.dy), axis=-1)


def int_w_nabla_u_v(w1, w2, u, v, e):
    """∫ ((w1, w2) · ∇) u v, the linearized convection term."""
    return np.sum(e.wt * (w1.val * u.dx + w2.val * u.dy) * v.val, axis=-1)


def int_u_dvdx(u, v, e):
    """∫ u ∂v/∂x"""
    return np.sum(e.wt * u.val * v.dx, axis=-1)


def int_u_dvdy(u, v, e):
    """∫ u ∂v/∂y"""
    return np.sum(e.wt * u.val * v.dy, axis=-1)


def int_w_v(w, v, e):
    """∫ w v, for a given field `w` (linear form)."""
    return np.sum(e.wt * w.val * v.val, axis=-1)


def int_v(v, e):
    """∫ v (linear form)."""
    return np.sum(e.wt * v.val, axis=-1)
