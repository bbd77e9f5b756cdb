# colloclab/problem/constraint.py
"""
Constraint-builder protocol and the data records exchanged with segments.

A constraint generator turns problem-specific data into a ``ConstraintData``:
a function ``G(x, u)`` of residuals plus lower/upper bound functions of time
(or constants), and the knots it applies at. Segments treat every generator
identically through this record.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import casadi as ca
import numpy as np

from ..cl_types import IntArray, NumericArrayLike, PhaseIndex
from ..exceptions import ConfigurationError
from ..input_validation import (
    _validate_difference_function,
    _validate_dynamics_function,
    _validate_integration_function,
    _validate_running_cost_function,
    _validate_terminal_cost_function,
)
from .states import States


logger = logging.getLogger(__name__)

ProblemDataT = TypeVar("ProblemDataT")


@dataclass
class GeneralProblemData:
    """
    Functions shared by every segment of a trajectory.

    Args:
        Fint: Maps a reference state and a Euclidean deviation onto the state
            space, ``Fint(x, dx, dt) -> x'``. Decision variables are deviations,
            which lets states lie on a manifold.
        Fdif: Inverse of ``Fint``, ``Fdif(x, x2, dt) -> dx``. Used to turn state
            guesses into deviation guesses.
        F: Continuous dynamics ``F(x, u) -> dx/dt``.
        L: Running cost ``L(x, u) -> scalar``.
        Phi: Terminal cost ``Phi(x) -> scalar``.
    """

    Fint: ca.Function
    Fdif: ca.Function
    F: ca.Function
    L: ca.Function
    Phi: ca.Function

    def validate(self, states: States) -> None:
        _validate_integration_function(self.Fint, states.nx, states.ndx)
        _validate_difference_function(self.Fdif, states.nx, states.ndx)
        _validate_dynamics_function(self.F, states.nx, states.ndx, states.nu)
        _validate_running_cost_function(self.L, states.nx, states.nu)
        _validate_terminal_cost_function(self.Phi, states.nx)


@dataclass
class ConstraintData:
    """
    A built constraint: residual function, bounds and applicability.

    Attributes:
        G: ``G(x, u) -> (ng, 1)`` residuals evaluated at every collocation point.
        lower_bound: Function of time ``t -> (ng, 1)`` or constant function with no inputs.
        upper_bound: Same signature as ``lower_bound``.
        is_global: Applies at every knot of a segment when true.
        apply_at: Knot mask used when ``is_global`` is false; non-zero entries
            select the knots the constraint is enforced at.
    """

    G: ca.Function
    lower_bound: ca.Function
    upper_bound: ca.Function
    is_global: bool = True
    apply_at: IntArray | None = None

    def active_knots(self, knot_num: int) -> list[int]:
        """Ascending knot indices the constraint is enforced at."""
        if self.is_global:
            return list(range(knot_num))
        if self.apply_at is None:
            raise ConfigurationError(
                f"Constraint {self.G.name()} is not global but has no apply_at mask"
            )
        mask = np.asarray(self.apply_at).flatten()
        if mask.shape[0] != knot_num:
            raise ConfigurationError(
                f"apply_at mask of {self.G.name()} has {mask.shape[0]} entries, "
                f"segment has {knot_num} knots"
            )
        return [int(k) for k in np.flatnonzero(mask)]


@dataclass
class DecisionData:
    """
    Bounds and initial guess for the decision variables at one point.

    Attributes:
        lower_bound: ``t -> (ndx + nu, 1)`` lower bounds on ``[dx; u]``.
        upper_bound: ``t -> (ndx + nu, 1)`` upper bounds on ``[dx; u]``.
        initial_guess: ``t -> (nx + nu, 1)`` guess for ``[x; u]``. State guesses
            are turned into deviations with ``Fdif``.
    """

    lower_bound: ca.Function | None = None
    upper_bound: ca.Function | None = None
    initial_guess: ca.Function | None = None


def constant_bound(name: str, values: NumericArrayLike | float) -> ca.Function:
    """Bound function with no inputs returning ``values`` as a column."""
    flat = np.asarray(values, dtype=np.float64).flatten()
    if flat.size == 0:
        return ca.Function(name, [], [ca.SX(0, 1)])
    column = ca.SX(ca.DM(flat.tolist()))
    return ca.Function(name, [], [column])


def time_bound(name: str, t: ca.SX, expression: ca.SX) -> ca.Function:
    """Bound function of time built from an expression in ``t``."""
    return ca.Function(name, [t], [ca.vec(expression)])


class ConstraintBuilder(ABC, Generic[ProblemDataT]):
    """
    Extend this class to implement constraints.

    ``build_constraint`` is a template method: subclasses provide the residual
    function and its bounds for a phase, and optionally restrict the knots the
    constraint applies at.
    """

    def build_constraint(self, problem_data: ProblemDataT, phase_index: PhaseIndex) -> ConstraintData:
        """Build constraint data for ``phase_index`` from ``problem_data``."""
        upper_bound, lower_bound = self.create_bounds(problem_data, phase_index)
        G = self.create_function(problem_data, phase_index)
        apply_at = self.create_apply_at(problem_data, phase_index)

        logger.debug(
            "Built constraint %s for phase %d: %d rows, %s",
            G.name(),
            phase_index,
            G.numel_out(0),
            "global" if apply_at is None else f"{int(np.count_nonzero(apply_at))} knots",
        )
        return ConstraintData(
            G=G,
            lower_bound=lower_bound,
            upper_bound=upper_bound,
            is_global=apply_at is None,
            apply_at=apply_at,
        )

    @abstractmethod
    def create_bounds(
        self, problem_data: ProblemDataT, phase_index: PhaseIndex
    ) -> tuple[ca.Function, ca.Function]:
        """Return ``(upper_bound, lower_bound)`` functions for the phase."""

    @abstractmethod
    def create_function(self, problem_data: ProblemDataT, phase_index: PhaseIndex) -> ca.Function:
        """Return ``G(x, u)`` for the phase."""

    def create_apply_at(
        self, problem_data: ProblemDataT, phase_index: PhaseIndex
    ) -> IntArray | None:
        """Knot mask for the phase; ``None`` applies the constraint at every knot."""
        return None


def build_constraint_datas(
    builders: Sequence[ConstraintBuilder[ProblemDataT]],
    problem_data: ProblemDataT,
    phase_index: PhaseIndex,
) -> list[ConstraintData]:
    return [builder.build_constraint(problem_data, phase_index) for builder in builders]
