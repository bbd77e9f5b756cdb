# colloclab/legged/constraints.py
"""
Constraint builders for legged locomotion.

Each builder reads the contact mode of a phase and emits one stacked residual
function over all end effectors together with constant bounds.
"""

from __future__ import annotations

import logging

import casadi as ca
import numpy as np

from ..cl_types import IntArray, PhaseIndex
from ..problem.constraint import ConstraintBuilder, constant_bound
from ..utils.constants import FORCE_DIMENSION
from .contact import LeggedProblemData


logger = logging.getLogger(__name__)


def _stacked_function(
    name: str, problem_data: LeggedProblemData, rows: list[ca.SX]
) -> ca.Function:
    expression = ca.vertcat(*rows) if rows else ca.SX(0, 1)
    return ca.Function(name, [problem_data.x, problem_data.u], [expression], ["x", "u"], ["g"])


class ContactConstraintBuilder(ConstraintBuilder[LeggedProblemData]):
    """
    Keeps stance feet on their surface.

    For every end effector in contact with surface ``(A, b, height)``:
    ``A p_xy <= b`` and ``p_z == height``.
    """

    def create_function(self, problem_data: LeggedProblemData, phase_index: PhaseIndex) -> ca.Function:
        mode = problem_data.get_mode(phase_index)
        rows = []
        for ee in problem_data.end_effectors:
            if not mode.in_contact(ee.name):
                continue
            surface = problem_data.get_surface(mode.surface_id(ee.name))
            p = ee.position(problem_data.x)
            rows.append(ca.mtimes(ca.DM(surface.A), p[0:2]))
            rows.append(p[2])
        return _stacked_function(f"G_Contact_{phase_index}", problem_data, rows)

    def create_bounds(
        self, problem_data: LeggedProblemData, phase_index: PhaseIndex
    ) -> tuple[ca.Function, ca.Function]:
        mode = problem_data.get_mode(phase_index)
        upper, lower = [], []
        for ee in problem_data.end_effectors:
            if not mode.in_contact(ee.name):
                continue
            surface = problem_data.get_surface(mode.surface_id(ee.name))
            upper.extend([*surface.b, surface.height])
            lower.extend([-np.inf] * surface.num_region_rows + [surface.height])
        return (
            constant_bound(f"upper_bound_Contact_{phase_index}", upper),
            constant_bound(f"lower_bound_Contact_{phase_index}", lower),
        )

    def create_apply_at(
        self, problem_data: LeggedProblemData, phase_index: PhaseIndex
    ) -> IntArray | None:
        knot_num = problem_data.contact_sequence.get_phase(phase_index).knot_num
        return np.ones(knot_num, dtype=np.int_)


class FrictionConeConstraintBuilder(ConstraintBuilder[LeggedProblemData]):
    """
    Linearized friction pyramid on stance forces, zero force on swing feet.

    Stance rows are ``mu fz - fx``, ``mu fz + fx``, ``mu fz - fy``,
    ``mu fz + fy`` and ``fz``, all bounded below by zero.
    """

    def create_function(self, problem_data: LeggedProblemData, phase_index: PhaseIndex) -> ca.Function:
        mode = problem_data.get_mode(phase_index)
        mu = problem_data.mu
        rows = []
        for ee in problem_data.end_effectors:
            f = ee.force(problem_data.u)
            if mode.in_contact(ee.name):
                rows.extend(
                    [
                        mu * f[2] - f[0],
                        mu * f[2] + f[0],
                        mu * f[2] - f[1],
                        mu * f[2] + f[1],
                        f[2],
                    ]
                )
            else:
                rows.append(f)
        return _stacked_function(f"G_FrictionCone_{phase_index}", problem_data, rows)

    def create_bounds(
        self, problem_data: LeggedProblemData, phase_index: PhaseIndex
    ) -> tuple[ca.Function, ca.Function]:
        mode = problem_data.get_mode(phase_index)
        upper, lower = [], []
        for ee in problem_data.end_effectors:
            if mode.in_contact(ee.name):
                upper.extend([np.inf] * 5)
                lower.extend([0.0] * 5)
            else:
                upper.extend([0.0] * FORCE_DIMENSION)
                lower.extend([0.0] * FORCE_DIMENSION)
        return (
            constant_bound(f"upper_bound_FrictionCone_{phase_index}", upper),
            constant_bound(f"lower_bound_FrictionCone_{phase_index}", lower),
        )


class VelocityConstraintBuilder(ConstraintBuilder[LeggedProblemData]):
    """Stance feet do not slide: end-effector velocity is zero while in contact."""

    def create_function(self, problem_data: LeggedProblemData, phase_index: PhaseIndex) -> ca.Function:
        mode = problem_data.get_mode(phase_index)
        rows = [
            ee.velocity(problem_data.x)
            for ee in problem_data.end_effectors
            if mode.in_contact(ee.name)
        ]
        return _stacked_function(f"G_Velocity_{phase_index}", problem_data, rows)

    def create_bounds(
        self, problem_data: LeggedProblemData, phase_index: PhaseIndex
    ) -> tuple[ca.Function, ca.Function]:
        mode = problem_data.get_mode(phase_index)
        num_rows = FORCE_DIMENSION * sum(
            1 for ee in problem_data.end_effectors if mode.in_contact(ee.name)
        )
        zeros = np.zeros(num_rows)
        return (
            constant_bound(f"upper_bound_Velocity_{phase_index}", zeros),
            constant_bound(f"lower_bound_Velocity_{phase_index}", zeros),
        )
