# colloclab/direct_solver/types_solver.py
"""
Containers for the flat NLP vectors shared by all segments of a problem.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import casadi as ca
import numpy as np

from ..cl_types import FloatArray, IndexRange
from ..exceptions import DataIntegrityError


@dataclass
class NLPVectors:
    """
    Assembler-owned arena of flat NLP vectors.

    Every entry of ``w`` and ``g`` is a scalar expression so index ranges
    recorded by segments address scalars directly. Segments only append.
    """

    w: list[ca.SX] = field(default_factory=list)
    g: list[ca.SX] = field(default_factory=list)
    lbg: list[float] = field(default_factory=list)
    ubg: list[float] = field(default_factory=list)
    lbx: list[float] = field(default_factory=list)
    ubx: list[float] = field(default_factory=list)
    w0: list[float] = field(default_factory=list)
    times: list[float] = field(default_factory=list)

    def append_constraint(self, expression: ca.SX, lower: float, upper: float) -> IndexRange:
        """Append an assembler-level constraint block with uniform bounds."""
        scalars = split_scalars(expression)
        start = len(self.g)
        self.g.extend(scalars)
        self.lbg.extend([lower] * len(scalars))
        self.ubg.extend([upper] * len(scalars))
        return IndexRange(start, len(self.g))

    def decision_vector(self) -> ca.SX:
        return ca.vertcat(*self.w) if self.w else ca.SX(0, 1)

    def constraint_vector(self) -> ca.SX:
        return ca.vertcat(*self.g) if self.g else ca.SX(0, 1)

    def as_arrays(self) -> dict[str, FloatArray]:
        return {
            "x0": np.asarray(self.w0, dtype=np.float64),
            "lbx": np.asarray(self.lbx, dtype=np.float64),
            "ubx": np.asarray(self.ubx, dtype=np.float64),
            "lbg": np.asarray(self.lbg, dtype=np.float64),
            "ubg": np.asarray(self.ubg, dtype=np.float64),
        }

    def check_consistency(self) -> None:
        if not (len(self.w) == len(self.lbx) == len(self.ubx) == len(self.w0)):
            raise DataIntegrityError(
                f"Decision vector sizes differ: w={len(self.w)}, lbx={len(self.lbx)}, "
                f"ubx={len(self.ubx)}, w0={len(self.w0)}",
                "NLP assembly",
            )
        if not (len(self.g) == len(self.lbg) == len(self.ubg)):
            raise DataIntegrityError(
                f"Constraint vector sizes differ: g={len(self.g)}, lbg={len(self.lbg)}, "
                f"ubg={len(self.ubg)}",
                "NLP assembly",
            )


def split_scalars(expression: ca.SX) -> list[ca.SX]:
    """Split a column expression into its scalar entries, column-major."""
    column = ca.vec(expression)
    return [column[i] for i in range(column.numel())]


@dataclass(frozen=True)
class SegmentDecisionValues:
    """
    Numeric decision values of one segment, split by block.

    Attributes:
        collocation_deviations: ``(knot_num, d, ndx)`` deviations at collocation roots
        boundary_deviations: ``(knot_num + 1, ndx)`` deviations at knot boundaries
        controls: ``(knot_num, num_control_samples, nu)`` control samples
    """

    collocation_deviations: FloatArray
    boundary_deviations: FloatArray
    controls: FloatArray
