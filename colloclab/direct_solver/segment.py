# colloclab/direct_solver/segment.py
"""
Pseudospectral segment: one fixed-step run of knots discretized with a
Lagrange basis.

A segment owns the decision symbols of its knots, turns continuous dynamics and
running cost into collocation/continuity equations and a folded quadrature
cost, maps external constraints across its collocation grid and appends the
flattened result to assembler-owned vectors, recording where it landed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import casadi as ca
import numpy as np

from ..cl_types import FloatArray, IndexRange
from ..exceptions import DataIntegrityError
from ..input_validation import (
    _validate_array_numerical_integrity,
    _validate_bound_function,
    _validate_column_vector,
    _validate_constraint_function,
    _validate_difference_function,
    _validate_dynamics_function,
    _validate_integration_function,
    _validate_map_parallelization,
    _validate_polynomial_degree,
    _validate_positive_integer,
    _validate_positive_number,
    _validate_running_cost_function,
)
from ..lagrange import LagrangeBasis, build_lagrange_basis
from ..problem.constraint import ConstraintData, DecisionData
from ..problem.states import States
from ..utils.constants import (
    BOUNDARY_INTEGRATION_STEP,
    DEFAULT_COLLOCATION_SCHEME,
    DEFAULT_MAP_PARALLELIZATION,
)
from .types_solver import SegmentDecisionValues, split_scalars


logger = logging.getLogger(__name__)


class PseudospectralSegment:
    """
    A segment of ``knot_num`` knots of width ``h`` sharing one polynomial degree.

    Lifecycle:
        1. Construct with ``(degree, knot_num, h, states, Fint)``.
        2. ``initialize_knot_segments(x0)`` declares the decision variables
           relative to the reference state ``x0``.
        3. ``initialize_expression_graph(F, L, constraints)`` builds the
           collocation, continuity, cost and constraint maps.
        4. ``fill_*`` / ``evaluate_expression_graph`` append the segment's
           contribution to the assembler's vectors and record index ranges.
    """

    def __init__(
        self,
        degree: int,
        knot_num: int,
        h: float,
        states: States,
        Fint: ca.Function,
        scheme: str = DEFAULT_COLLOCATION_SCHEME,
        parallelization: str = DEFAULT_MAP_PARALLELIZATION,
    ) -> None:
        _validate_polynomial_degree(degree, "d")
        _validate_positive_integer(knot_num, "knot_num")
        _validate_positive_number(h, "h")
        _validate_integration_function(Fint, states.nx, states.ndx)
        _validate_map_parallelization(parallelization)

        self.knot_num = int(knot_num)
        self.h = float(h)
        self.st_m = states
        self.Fint = Fint
        self.parallelization = parallelization
        self.T = (self.knot_num + 1) * self.h

        self._initialize_expression_variables(int(degree), scheme)
        self._initialize_time_vector()

        self._x_ref: ca.SX | None = None
        self._x_ref_numeric: FloatArray | None = None
        self.dXc_var_vec: list[ca.SX] = []
        self.U_var_vec: list[ca.SX] = []
        self.dX0_var_vec: list[ca.SX] = []
        self.X0_var_vec: list[ca.SX] = []

        self.collocation_constraint_map: ca.Function | None = None
        self.xf_constraint_map: ca.Function | None = None
        self.q_cost_fold: ca.Function | None = None
        self.general_constraint_maps: list[tuple[ca.Function, list[int]]] = []
        self.general_lbg: FloatArray = np.zeros(0, dtype=np.float64)
        self.general_ubg: FloatArray = np.zeros(0, dtype=np.float64)

        self.w_range: IndexRange | None = None
        self.g_range: IndexRange | None = None
        self.lbg_ubg_range: IndexRange | None = None
        self.lbx_ubx_range: IndexRange | None = None

        logger.debug(
            "Created segment: d=%d, knots=%d, h=%.6g, scheme=%s",
            self.degree,
            self.knot_num,
            self.h,
            scheme,
        )

    # ------------------------------------------------------------------
    # Symbols and time grid
    # ------------------------------------------------------------------

    def _initialize_expression_variables(self, degree: int, scheme: str) -> None:
        self.dX_poly: LagrangeBasis = build_lagrange_basis(degree, scheme)
        self.U_poly: LagrangeBasis = build_lagrange_basis(degree - 1, scheme)

        ndx, nu = self.st_m.ndx, self.st_m.nu
        self.dXc = [ca.SX.sym(f"dXc_{j}", ndx, 1) for j in range(degree)]
        self.Uc = [ca.SX.sym(f"Uc_{j}", nu, 1) for j in range(self.num_control_samples)]
        self.dX0 = ca.SX.sym("dX0", ndx, 1)
        self.X0 = ca.SX.sym("X0", self.st_m.nx, 1)
        self.Lc = ca.SX.sym("Lc", 1, 1)

    def _initialize_time_vector(self) -> None:
        d = self.degree
        times = np.zeros(self.knot_num * (d + 1) + 1, dtype=np.float64)
        for k in range(self.knot_num):
            for j in range(d + 1):
                times[k * (d + 1) + j] = (k + self.dX_poly.tau_root[j]) * self.h
        times[-1] = self.knot_num * self.h
        self.times = times

    @property
    def degree(self) -> int:
        return self.dX_poly.degree

    @property
    def num_control_samples(self) -> int:
        # A degree-1 state basis holds a single control sample over the knot
        return max(self.dX_poly.degree - 1, 1)

    @property
    def control_roots(self) -> FloatArray:
        if self.degree > 1:
            return self.U_poly.collocation_roots
        return np.array([0.0], dtype=np.float64)

    @property
    def collocation_times(self) -> FloatArray:
        """Times of every collocation point, knot-major."""
        roots = self.dX_poly.collocation_roots
        return np.array(
            [(k + tau) * self.h for k in range(self.knot_num) for tau in roots], dtype=np.float64
        )

    @property
    def knot_times(self) -> FloatArray:
        return np.arange(self.knot_num + 1, dtype=np.float64) * self.h

    @property
    def control_times(self) -> FloatArray:
        return np.array(
            [(k + tau) * self.h for k in range(self.knot_num) for tau in self.control_roots],
            dtype=np.float64,
        )

    @property
    def num_decision_variables(self) -> int:
        ndx, nu = self.st_m.ndx, self.st_m.nu
        return (
            self.knot_num * ndx * self.degree
            + (self.knot_num + 1) * ndx
            + self.knot_num * nu * self.num_control_samples
        )

    @property
    def num_constraints(self) -> int:
        return int(self.general_lbg.shape[0])

    def _interpolate_control(self, tau: float) -> ca.SX:
        if self.degree > 1:
            return self.U_poly.interpolate_collocation(tau, self.Uc)
        return self.Uc[0]

    def _collocation_step(self, j: int) -> float:
        tau_root = self.dX_poly.tau_root
        return float((tau_root[j] - tau_root[j - 1]) * self.h)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_knot_segments(self, x0: Any) -> None:
        """Declare the decision variables of every knot relative to ``x0``."""
        _validate_column_vector(x0, self.st_m.nx, "x0")

        if isinstance(x0, ca.SX):
            self._x_ref = x0
            self._x_ref_numeric = None
        else:
            numeric = np.asarray(ca.DM(x0).full() if isinstance(x0, ca.DM) else x0, dtype=np.float64)
            numeric = numeric.reshape(-1, 1)
            _validate_array_numerical_integrity(numeric, "x0", "segment reference state")
            self._x_ref = ca.SX(ca.DM(numeric))
            self._x_ref_numeric = numeric

        ndx, nu = self.st_m.ndx, self.st_m.nu
        self.dXc_var_vec = [
            ca.SX.sym(f"dXc_{k}", ndx * self.degree, 1) for k in range(self.knot_num)
        ]
        self.U_var_vec = [
            ca.SX.sym(f"U_{k}", nu * self.num_control_samples, 1) for k in range(self.knot_num)
        ]
        self.dX0_var_vec = [ca.SX.sym(f"dX0_{k}", ndx, 1) for k in range(self.knot_num + 1)]
        self.X0_var_vec = [
            self.Fint(self._x_ref, dx0, BOUNDARY_INTEGRATION_STEP) for dx0 in self.dX0_var_vec
        ]

    def initialize_expression_graph(
        self,
        F: ca.Function,
        L: ca.Function,
        G: Sequence[ConstraintData] = (),
    ) -> None:
        """
        Build the per-knot collocation, continuity and cost maps.

        For every collocation root ``j = 1..d`` of a knot:

        * ``dxp_j = sum_r C[r, j] v_r`` with ``v_0 = dX0`` and ``v_r = dXc[r-1]``
        * ``x_c = Fint(X0, dXc[j-1], dt_j)``, ``u_c`` the control polynomial at ``tau_j``
        * collocation defect ``h F(x_c, u_c) - dxp_j``
        * running cost ``B[j] L(x_c, u_c) h``

        and the continuity estimate ``D[0] dX0 + sum_j D[j] dXc[j-1]``, which is
        matched against the next knot's boundary deviation at evaluation.
        """
        if self._x_ref is None:
            raise DataIntegrityError(
                "Decision variables have not been declared",
                "Call initialize_knot_segments before initialize_expression_graph",
            )

        nx, ndx, nu = self.st_m.nx, self.st_m.ndx, self.st_m.nu
        _validate_dynamics_function(F, nx, ndx, nu)
        _validate_running_cost_function(L, nx, nu)

        basis = self.dX_poly
        tau_root, B, C, D = basis.tau_root, basis.B, basis.C, basis.D

        eq = []
        dXf = float(D[0]) * self.dX0
        Qf = ca.SX(0)
        x_at_c = []
        u_at_c = []

        for j in range(1, self.degree + 1):
            dt_j = self._collocation_step(j)

            dxp = float(C[0, j]) * self.dX0
            for r in range(self.degree):
                dxp += float(C[r + 1, j]) * self.dXc[r]

            # Deviations stay Euclidean; Fint recovers the actual state for F and L
            x_c = self.Fint(self.X0, self.dXc[j - 1], dt_j)
            u_c = self._interpolate_control(float(tau_root[j]))
            x_at_c.append(x_c)
            u_at_c.append(u_c)

            eq.append(self.h * F(x_c, u_c) - dxp)
            Qf += float(B[j]) * L(x_c, u_c) * self.h
            dXf += float(D[j]) * self.dXc[j - 1]

        knot_inputs = [self.X0, ca.vertcat(*self.dXc), self.dX0, ca.vertcat(*self.Uc)]
        knot_input_names = ["X0", "dXc", "dX0", "Uc"]

        self.collocation_constraint_map = ca.Function(
            "feq", knot_inputs, [ca.vertcat(*eq)], knot_input_names, ["eq"]
        ).map(self.knot_num, self.parallelization)

        # Evaluated against the boundary deviations offset by one knot
        self.xf_constraint_map = ca.Function(
            "fxf", knot_inputs, [dXf], knot_input_names, ["dXf"]
        ).map(self.knot_num, self.parallelization)

        self.q_cost_fold = ca.Function(
            "fxq", [self.Lc, *knot_inputs], [self.Lc + Qf], ["Lc", *knot_input_names], ["Lf"]
        ).fold(self.knot_num)

        num_defects = ndx * self.degree * self.knot_num + ndx * self.knot_num
        lbg_blocks = [np.zeros(num_defects, dtype=np.float64)]
        ubg_blocks = [np.zeros(num_defects, dtype=np.float64)]

        self.general_constraint_maps = []
        collocation_times = self.collocation_times.reshape(self.knot_num, self.degree)
        x_points = ca.horzcat(*x_at_c)
        u_points = ca.horzcat(*u_at_c)

        for index, g_data in enumerate(G):
            name = f"G[{index}] ({g_data.G.name()})"
            ng = _validate_constraint_function(g_data.G, nx, nu, name)
            _validate_bound_function(g_data.lower_bound, ng, f"lower bound of {name}")
            _validate_bound_function(g_data.upper_bound, ng, f"upper bound of {name}")

            knots = g_data.active_knots(self.knot_num)
            if ng == 0 or not knots:
                logger.debug("Constraint %s contributes no rows to this segment", name)
                continue

            # Constraint at every collocation point of a knot, then across knots
            per_point = g_data.G.map(self.degree, "serial")(x_points, u_points)
            knot_map = ca.Function(
                "fg", knot_inputs, [ca.vec(per_point)], knot_input_names, ["g"]
            ).map(len(knots), self.parallelization)
            self.general_constraint_maps.append((knot_map, knots))

            bound_times = collocation_times[knots, :].flatten()
            lbg_blocks.append(_evaluate_bound(g_data.lower_bound, bound_times, ng))
            ubg_blocks.append(_evaluate_bound(g_data.upper_bound, bound_times, ng))

        self.general_lbg = np.concatenate(lbg_blocks)
        self.general_ubg = np.concatenate(ubg_blocks)

        logger.debug(
            "Segment expression graph: %d defect rows, %d constraint maps, %d rows total",
            num_defects,
            len(self.general_constraint_maps),
            self.num_constraints,
        )

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _knot_arguments(self, knots: Sequence[int] | None = None) -> list[ca.SX]:
        if knots is None:
            knots = range(self.knot_num)
        knots = list(knots)
        return [
            ca.repmat(self._x_ref, 1, len(knots)),
            ca.horzcat(*[self.dXc_var_vec[k] for k in knots]),
            ca.horzcat(*[self.dX0_var_vec[k] for k in knots]),
            ca.horzcat(*[self.U_var_vec[k] for k in knots]),
        ]

    def evaluate_expression_graph(self, J0: Any, g: list[ca.SX]) -> ca.SX:
        """
        Append this segment's constraint expressions to ``g`` and fold the cost.

        Returns the running cost accumulated on top of ``J0``; the occupied
        range of ``g`` is recorded in ``g_range``.
        """
        if self.collocation_constraint_map is None:
            raise DataIntegrityError(
                "Expression graph has not been built",
                "Call initialize_expression_graph before evaluate_expression_graph",
            )
        J0 = J0 if isinstance(J0, ca.SX) else ca.SX(J0)
        if J0.shape != (1, 1):
            raise DataIntegrityError(f"J0 must be a scalar, got shape {J0.shape}")

        args = self._knot_arguments()
        dxs_offset = ca.horzcat(*self.dX0_var_vec[1:])

        col_con_mat = self.collocation_constraint_map(*args)
        xf_con_mat = self.xf_constraint_map(*args)

        result = [ca.vec(col_con_mat), ca.vec(xf_con_mat) - ca.vec(dxs_offset)]
        for knot_map, knots in self.general_constraint_maps:
            result.append(ca.vec(knot_map(*self._knot_arguments(knots))))

        cost = self.q_cost_fold(J0, *args)

        start = len(g)
        for block in result:
            g.extend(split_scalars(block))
        self.g_range = IndexRange(start, len(g))
        return cost

    def fill_w(self, w: list[ca.SX]) -> IndexRange:
        """Append collocation deviations, boundary deviations and controls to ``w``."""
        self._require_knot_segments()
        start = len(w)
        for block in (*self.dXc_var_vec, *self.dX0_var_vec, *self.U_var_vec):
            w.extend(split_scalars(block))
        self.w_range = IndexRange(start, len(w))
        return self.w_range

    def fill_lbg_ubg(self, lbg: list[float], ubg: list[float]) -> IndexRange:
        start = len(lbg)
        lbg.extend(self.general_lbg.tolist())
        ubg.extend(self.general_ubg.tolist())
        self.lbg_ubg_range = IndexRange(start, len(lbg))
        return self.lbg_ubg_range

    def fill_lbx_ubx(
        self,
        lbx: list[float],
        ubx: list[float],
        decision_data: DecisionData | None = None,
    ) -> IndexRange:
        """Append decision-variable bounds in the same order as ``fill_w``."""
        ndx = self.st_m.ndx
        lower = np.full(self.num_decision_variables, -np.inf, dtype=np.float64)
        upper = np.full(self.num_decision_variables, np.inf, dtype=np.float64)

        if decision_data is not None:
            width = ndx + self.st_m.nu
            if decision_data.lower_bound is not None:
                _validate_bound_function(decision_data.lower_bound, width, "decision lower bound")
                lower = self._layout_point_values(
                    lambda t: _evaluate_bound(decision_data.lower_bound, t, width), ndx
                )
            if decision_data.upper_bound is not None:
                _validate_bound_function(decision_data.upper_bound, width, "decision upper bound")
                upper = self._layout_point_values(
                    lambda t: _evaluate_bound(decision_data.upper_bound, t, width), ndx
                )

        start = len(lbx)
        lbx.extend(lower.tolist())
        ubx.extend(upper.tolist())
        self.lbx_ubx_range = IndexRange(start, len(lbx))
        return self.lbx_ubx_range

    def _layout_point_values(self, evaluate, ndx: int) -> FloatArray:
        """Lay out ``[dx; u]`` point values in decision-vector order."""
        width = ndx + self.st_m.nu
        colloc = evaluate(self.collocation_times).reshape(-1, width)
        knots = evaluate(self.knot_times).reshape(-1, width)
        controls = evaluate(self.control_times).reshape(-1, width)
        return np.concatenate(
            [colloc[:, :ndx].flatten(), knots[:, :ndx].flatten(), controls[:, ndx:].flatten()]
        )

    def fill_initial_guess(
        self,
        w0: list[float],
        Fdif: ca.Function,
        decision_data: DecisionData | None = None,
    ) -> IndexRange:
        """
        Append a numeric initial guess in the same order as ``fill_w``.

        State guesses are converted to deviations from the reference state with
        ``Fdif``, using the same step ``Fint`` sees at each point. Without a
        guess function every decision variable starts at zero, i.e. on the
        reference state.
        """
        nx, ndx, nu = self.st_m.nx, self.st_m.ndx, self.st_m.nu
        guess = np.zeros(self.num_decision_variables, dtype=np.float64)

        if decision_data is not None and decision_data.initial_guess is not None:
            _validate_difference_function(Fdif, nx, ndx)
            _validate_bound_function(decision_data.initial_guess, nx + nu, "initial guess")
            if self._x_ref_numeric is None:
                raise DataIntegrityError(
                    "A numeric reference state is required to convert state guesses",
                    "Initial guess",
                )
            x_ref = ca.DM(self._x_ref_numeric)
            guess_fn = decision_data.initial_guess

            def state_deviations(times: FloatArray, steps: Sequence[float]) -> FloatArray:
                points = _evaluate_bound(guess_fn, times, nx + nu).reshape(-1, nx + nu)
                deviations = [
                    np.asarray(Fdif(x_ref, ca.DM(point[:nx]), step).full()).flatten()
                    for point, step in zip(points, steps, strict=True)
                ]
                return np.concatenate(deviations) if deviations else np.zeros(0)

            colloc_steps = [self._collocation_step(j) for j in range(1, self.degree + 1)]
            colloc_guess = state_deviations(self.collocation_times, colloc_steps * self.knot_num)
            knot_guess = state_deviations(
                self.knot_times, [BOUNDARY_INTEGRATION_STEP] * (self.knot_num + 1)
            )
            control_points = _evaluate_bound(guess_fn, self.control_times, nx + nu)
            control_guess = control_points.reshape(-1, nx + nu)[:, nx:].flatten()
            guess = np.concatenate([colloc_guess, knot_guess, control_guess])

        _validate_array_numerical_integrity(guess, "initial guess", "segment initial guess")
        start = len(w0)
        w0.extend(guess.tolist())
        return IndexRange(start, len(w0))

    def fill_times(self, all_times: list[float]) -> IndexRange:
        start = len(all_times)
        all_times.extend(self.times.tolist())
        return IndexRange(start, len(all_times))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _require_knot_segments(self) -> None:
        if not self.dX0_var_vec:
            raise DataIntegrityError(
                "Decision variables have not been declared",
                "initialize_knot_segments must be called first",
            )

    def get_initial_state_deviant(self) -> ca.SX:
        self._require_knot_segments()
        return self.dX0_var_vec[0]

    def get_initial_state(self) -> ca.SX:
        self._require_knot_segments()
        return self.X0_var_vec[0]

    def get_final_state_deviant(self) -> ca.SX:
        self._require_knot_segments()
        return self.dX0_var_vec[-1]

    def get_final_state(self) -> ca.SX:
        self._require_knot_segments()
        return self.X0_var_vec[-1]

    def get_range_idx_decision_variables(self) -> IndexRange:
        return _require_range(self.w_range, "decision variables")

    def get_range_idx_constraint_expressions(self) -> IndexRange:
        return _require_range(self.g_range, "constraint expressions")

    def get_range_idx_bg(self) -> IndexRange:
        return _require_range(self.lbg_ubg_range, "constraint bounds")

    def get_range_idx_bx(self) -> IndexRange:
        return _require_range(self.lbx_ubx_range, "decision variable bounds")

    def unpack_decision_values(self, values: Any) -> SegmentDecisionValues:
        """Split this segment's slice of a numeric decision vector into its blocks."""
        flat = np.asarray(values, dtype=np.float64).flatten()
        if flat.shape[0] != self.num_decision_variables:
            raise DataIntegrityError(
                f"Expected {self.num_decision_variables} values, got {flat.shape[0]}",
                "Segment decision vector",
            )
        K, d, ndx, nu = self.knot_num, self.degree, self.st_m.ndx, self.st_m.nu
        n_colloc = K * d * ndx
        n_knot = (K + 1) * ndx
        return SegmentDecisionValues(
            collocation_deviations=flat[:n_colloc].reshape(K, d, ndx),
            boundary_deviations=flat[n_colloc : n_colloc + n_knot].reshape(K + 1, ndx),
            controls=flat[n_colloc + n_knot :].reshape(K, self.num_control_samples, nu),
        )

    def boundary_states(self, values: SegmentDecisionValues) -> FloatArray:
        """Actual states at every knot boundary, ``(knot_num + 1, nx)``."""
        if self._x_ref_numeric is None:
            raise DataIntegrityError("A numeric reference state is required", "Boundary states")
        x_ref = ca.DM(self._x_ref_numeric)
        return np.vstack(
            [
                np.asarray(self.Fint(x_ref, ca.DM(dx), BOUNDARY_INTEGRATION_STEP).full()).flatten()
                for dx in values.boundary_deviations
            ]
        )

    def __repr__(self) -> str:
        return (
            f"PseudospectralSegment(d={self.degree}, knot_num={self.knot_num}, "
            f"h={self.h}, scheme={self.dX_poly.scheme!r})"
        )


def _evaluate_bound(bound: ca.Function, times: FloatArray, num_rows: int) -> FloatArray:
    """Evaluate a bound function at every time, returned point-major."""
    num_points = len(times)
    if num_points == 0 or num_rows == 0:
        return np.zeros(0, dtype=np.float64)
    if bound.n_in() == 0:
        value = np.asarray(bound.call([])[0].full(), dtype=np.float64).flatten()
        return np.tile(value, num_points)
    row = ca.DM(np.asarray(times, dtype=np.float64).reshape(1, -1))
    values = bound.map(num_points, "serial").call([row])[0]
    result = np.asarray(ca.DM(values).full(), dtype=np.float64).flatten(order="F")
    _validate_array_numerical_integrity(
        result, bound.name(), "bound evaluation", allow_infinite=True
    )
    return result


def _require_range(index_range: IndexRange | None, name: str) -> IndexRange:
    if index_range is None:
        raise DataIntegrityError(f"Range of {name} has not been recorded", "Segment assembly")
    return index_range
