# colloclab/problem/states.py
"""
State-model descriptions consumed by segments.

A state model only declares sizes: the generalized state dimension ``nx``,
the (Euclidean) deviation dimension ``ndx`` and the control dimension ``nu``.
Manifold structure lives entirely in the integration map supplied alongside.
"""

from __future__ import annotations

from dataclasses import dataclass

import casadi as ca

from ..exceptions import ConfigurationError
from ..input_validation import _validate_positive_integer


@dataclass(frozen=True)
class States:
    """Sizes of the state, deviation and control vectors."""

    nx: int
    ndx: int
    nu: int

    def __post_init__(self) -> None:
        _validate_positive_integer(self.nx, "nx")
        _validate_positive_integer(self.ndx, "ndx")
        _validate_positive_integer(self.nu, "nu")

    def symbols(self) -> tuple[ca.SX, ca.SX, ca.SX, ca.SX]:
        """Fresh ``(x, dx, u, t)`` symbols sized for this model."""
        return (
            ca.SX.sym("x", self.nx),
            ca.SX.sym("dx", self.ndx),
            ca.SX.sym("u", self.nu),
            ca.SX.sym("t"),
        )


class BasicStates(States):
    """Euclidean state model where deviations live in the state space itself."""

    def __init__(self, nx: int, nu: int) -> None:
        super().__init__(nx=nx, ndx=nx, nu=nu)


def euclidean_integration_functions(states: States) -> tuple[ca.Function, ca.Function]:
    """``Fint(x, dx, dt) = x + dx`` and its inverse ``Fdif(x, x2, dt) = x2 - x``."""
    if states.nx != states.ndx:
        raise ConfigurationError("Euclidean integration requires nx == ndx")
    x, dx, _, dt = states.symbols()
    x2 = ca.SX.sym("x2", states.nx)
    fint = ca.Function("Fint", [x, dx, dt], [x + dx], ["x", "dx", "dt"], ["xf"])
    fdif = ca.Function("Fdif", [x, x2, dt], [x2 - x], ["x", "x2", "dt"], ["dx"])
    return fint, fdif
