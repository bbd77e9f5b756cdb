import casadi as ca
import numpy as np
import pytest
from numpy.testing import assert_allclose

from colloclab.cl_types import IndexRange
from colloclab.direct_solver.segment import PseudospectralSegment
from colloclab.direct_solver.types_solver import NLPVectors
from colloclab.exceptions import ConfigurationError, DataIntegrityError
from colloclab.lagrange import build_lagrange_basis
from colloclab.problem.constraint import ConstraintData, DecisionData, constant_bound, time_bound
from colloclab.problem.states import BasicStates, euclidean_integration_functions


@pytest.fixture
def scalar_problem():
    states = BasicStates(1, 1)
    Fint, Fdif = euclidean_integration_functions(states)
    x, _, u, t = states.symbols()
    F = ca.Function("F", [x, u], [u])
    L = ca.Function("L", [x, u], [u**2])
    return {"states": states, "Fint": Fint, "Fdif": Fdif, "F": F, "L": L, "x": x, "u": u, "t": t}


def _built_segment(problem, d=3, knot_num=2, h=0.1, x0=0.0, constraints=(), scheme="radau"):
    segment = PseudospectralSegment(d, knot_num, h, problem["states"], problem["Fint"], scheme)
    segment.initialize_knot_segments(np.array([x0]))
    segment.initialize_expression_graph(problem["F"], problem["L"], list(constraints))
    return segment


def _numeric(expressions, w, values):
    fn = ca.Function("numeric", [ca.vertcat(*w)], [ca.vertcat(*expressions)])
    return np.asarray(fn(values).full()).flatten()


class TestSegmentConstructionBoundaries:
    @pytest.mark.parametrize("d", [0, 10])
    def test_invalid_degree_raises(self, scalar_problem, d):
        with pytest.raises(ConfigurationError):
            PseudospectralSegment(d, 2, 0.1, scalar_problem["states"], scalar_problem["Fint"])

    @pytest.mark.parametrize("h", [0.0, -0.1, float("nan"), float("inf")])
    def test_invalid_step_raises(self, scalar_problem, h):
        with pytest.raises(ConfigurationError):
            PseudospectralSegment(3, 2, h, scalar_problem["states"], scalar_problem["Fint"])

    def test_integration_function_with_two_inputs_raises(self, scalar_problem):
        x, dx, _, _ = scalar_problem["states"].symbols()
        Fint = ca.Function("Fint", [x, dx], [x + dx])
        with pytest.raises(ConfigurationError):
            PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], Fint)

    def test_integration_function_with_wrong_output_size_raises(self, scalar_problem):
        x, dx, _, dt = scalar_problem["states"].symbols()
        Fint = ca.Function("Fint", [x, dx, dt], [ca.vertcat(x, dx)])
        with pytest.raises(ConfigurationError):
            PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], Fint)

    def test_dynamics_with_wrong_output_size_raises(self, scalar_problem):
        segment = PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], scalar_problem["Fint"])
        segment.initialize_knot_segments(np.zeros(1))
        x, u = scalar_problem["x"], scalar_problem["u"]
        F = ca.Function("F", [x, u], [ca.vertcat(u, u)])
        with pytest.raises(ConfigurationError):
            segment.initialize_expression_graph(F, scalar_problem["L"])

    def test_expression_graph_before_variables_raises(self, scalar_problem):
        segment = PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], scalar_problem["Fint"])
        with pytest.raises(DataIntegrityError):
            segment.initialize_expression_graph(scalar_problem["F"], scalar_problem["L"])

    def test_evaluation_before_graph_raises(self, scalar_problem):
        segment = PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], scalar_problem["Fint"])
        segment.initialize_knot_segments(np.zeros(1))
        with pytest.raises(DataIntegrityError):
            segment.evaluate_expression_graph(0.0, [])

    def test_endpoint_states_before_variables_raise(self, scalar_problem):
        segment = PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], scalar_problem["Fint"])
        for getter in (
            segment.get_initial_state,
            segment.get_initial_state_deviant,
            segment.get_final_state,
            segment.get_final_state_deviant,
        ):
            with pytest.raises(DataIntegrityError):
                getter()
        with pytest.raises(DataIntegrityError):
            segment.fill_w([])

    def test_reference_state_with_wrong_size_raises(self, scalar_problem):
        segment = PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], scalar_problem["Fint"])
        with pytest.raises(ConfigurationError):
            segment.initialize_knot_segments(np.zeros(2))


class TestSegmentEndToEndScenario:
    def test_counts_of_defects_continuity_and_times(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        g = []
        cost = segment.evaluate_expression_graph(0.0, g)

        assert len(g) == 2 * 3 + 2, f"Expected 8 constraint scalars, got {len(g)}"
        assert segment.get_range_idx_constraint_expressions().length == 8
        assert cost.shape == (1, 1)
        assert segment.num_constraints == 8
        assert segment.T == pytest.approx(0.3)

    def test_time_grid_literal_values(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        tau = build_lagrange_basis(3, "radau").tau_root
        expected = np.concatenate([tau * 0.1, 0.1 + tau * 0.1, [0.2]])
        assert len(segment.times) == 9
        assert_allclose(segment.times, expected, atol=1e-15)

        all_times = [-1.0]
        times_range = segment.fill_times(all_times)
        assert times_range.start == 1 and times_range.length == 9
        assert_allclose(all_times[1:], expected, atol=1e-15)

    def test_cost_is_nonnegative_for_any_controls(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        w, g = [], []
        segment.fill_w(w)
        cost = segment.evaluate_expression_graph(0.0, g)
        rng = np.random.default_rng(3)
        for _ in range(5):
            values = rng.normal(scale=10.0, size=len(w))
            assert _numeric([cost], w, values)[0] >= 0.0

    def test_cost_matches_quadrature_of_control_polynomial(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        w, g = [], []
        segment.fill_w(w)
        cost = segment.evaluate_expression_graph(1.5, g)

        values = np.random.default_rng(4).normal(size=len(w))
        unpacked = segment.unpack_decision_values(values)
        basis = segment.dX_poly
        expected = 1.5
        for k in range(segment.knot_num):
            samples = list(unpacked.controls[k, :, 0])
            for j in range(1, basis.degree + 1):
                u_c = segment.U_poly.interpolate_collocation(basis.tau_root[j], samples)
                expected += basis.B[j] * u_c**2 * segment.h

        assert abs(_numeric([cost], w, values)[0] - expected) < 1e-12


class TestSegmentCollocationIdentity:
    @pytest.mark.parametrize("scheme", ["radau", "legendre"])
    @pytest.mark.parametrize("d", [1, 2, 3, 4])
    def test_defects_reduce_to_finite_difference_identity(self, scalar_problem, d, scheme):
        segment = _built_segment(scalar_problem, d=d, knot_num=3, h=0.2, scheme=scheme)
        w, g = [], []
        segment.fill_w(w)
        segment.evaluate_expression_graph(0.0, g)

        values = np.random.default_rng(d).normal(size=len(w))
        residuals = _numeric(g, w, values)
        unpacked = segment.unpack_decision_values(values)
        basis = segment.dX_poly

        for k in range(segment.knot_num):
            v = [unpacked.boundary_deviations[k, 0], *unpacked.collocation_deviations[k, :, 0]]
            samples = list(unpacked.controls[k, :, 0])
            for j in range(1, d + 1):
                dxp = sum(basis.C[r, j] * v[r] for r in range(d + 1))
                if d > 1:
                    u_c = segment.U_poly.interpolate_collocation(basis.tau_root[j], samples)
                else:
                    u_c = samples[0]
                expected = segment.h * u_c - dxp
                actual = residuals[k * d + (j - 1)]
                assert abs(actual - expected) < 1e-10, (
                    f"Defect mismatch at knot {k}, root {j}: {actual} vs {expected}"
                )

        offset = segment.knot_num * d
        for k in range(segment.knot_num):
            v = [unpacked.boundary_deviations[k, 0], *unpacked.collocation_deviations[k, :, 0]]
            dxf = float(np.dot(basis.D, v))
            expected = dxf - unpacked.boundary_deviations[k + 1, 0]
            assert abs(residuals[offset + k] - expected) < 1e-10

    def test_exact_linear_trajectory_satisfies_all_defects(self, scalar_problem):
        # x(t) = c t with u = c is reproduced exactly by every basis
        segment = _built_segment(scalar_problem, d=3, knot_num=2, h=0.1)
        w, g = [], []
        segment.fill_w(w)
        segment.evaluate_expression_graph(0.0, g)

        c = 2.5
        tau = segment.dX_poly.tau_root
        colloc = [c * (k + tau[j]) * 0.1 for k in range(2) for j in range(1, 4)]
        knots = [c * k * 0.1 for k in range(3)]
        controls = [c] * (2 * segment.num_control_samples)
        residuals = _numeric(g, w, np.array(colloc + knots + controls))
        assert_allclose(residuals, 0.0, atol=1e-12)


class TestSegmentIndexRanges:
    def test_decision_range_round_trip(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        w = [ca.SX.sym(f"pre_{i}") for i in range(5)]
        w_range = segment.fill_w(w)

        expected = 2 * 3 + 3 + 2 * 2
        assert w_range.start == 5
        assert w_range.length == expected == segment.num_decision_variables
        assert len(w) == 5 + expected
        assert segment.get_range_idx_decision_variables() == w_range

        blocks = [*segment.dXc_var_vec, *segment.dX0_var_vec, *segment.U_var_vec]
        flat = [block[i] for block in blocks for i in range(block.numel())]
        for stored, original in zip(w[w_range.as_slice()], flat, strict=True):
            assert ca.is_equal(stored, original)

    def test_bound_ranges_align_with_expressions(self, scalar_problem):
        x, u, t = scalar_problem["x"], scalar_problem["u"], scalar_problem["t"]
        G = ca.Function("G", [x, u], [ca.vertcat(x, u)])
        data = ConstraintData(
            G=G,
            lower_bound=constant_bound("lb", [-1.0, -2.0]),
            upper_bound=time_bound("ub", t, ca.vertcat(t, 2 * t)),
        )
        segment = _built_segment(scalar_problem, constraints=[data])
        vectors = NLPVectors()
        vectors.lbg.extend([0.0, 0.0])
        vectors.ubg.extend([0.0, 0.0])
        vectors.g.extend([ca.SX(0), ca.SX(0)])

        segment.evaluate_expression_graph(0.0, vectors.g)
        bg_range = segment.fill_lbg_ubg(vectors.lbg, vectors.ubg)
        assert bg_range == segment.get_range_idx_constraint_expressions()
        assert bg_range.length == 8 + 2 * 3 * 2
        vectors.check_consistency()

    def test_ranges_not_recorded_raise(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        with pytest.raises(DataIntegrityError):
            segment.get_range_idx_bx()
        with pytest.raises(DataIntegrityError):
            segment.get_range_idx_bg()


class TestSegmentGeneralConstraints:
    def test_global_constraint_bounds_follow_collocation_times(self, scalar_problem):
        x, u, t = scalar_problem["x"], scalar_problem["u"], scalar_problem["t"]
        G = ca.Function("G", [x, u], [ca.vertcat(x, u)])
        data = ConstraintData(
            G=G,
            lower_bound=constant_bound("lb", [-1.0, -2.0]),
            upper_bound=time_bound("ub", t, ca.vertcat(t, 2 * t)),
        )
        segment = _built_segment(scalar_problem, constraints=[data])

        times = segment.collocation_times
        assert len(times) == 6
        assert_allclose(segment.general_lbg[:8], 0.0)
        assert_allclose(segment.general_lbg[8:], np.tile([-1.0, -2.0], 6))
        expected_upper = np.column_stack([times, 2 * times]).flatten()
        assert_allclose(segment.general_ubg[8:], expected_upper, atol=1e-15)

    def test_global_constraint_expressions_at_collocation_points(self, scalar_problem):
        x, u = scalar_problem["x"], scalar_problem["u"]
        G = ca.Function("G", [x, u], [u])
        data = ConstraintData(G, constant_bound("lb", [0.0]), constant_bound("ub", [1.0]))
        segment = _built_segment(scalar_problem, constraints=[data])
        w, g = [], []
        segment.fill_w(w)
        segment.evaluate_expression_graph(0.0, g)

        values = np.random.default_rng(7).normal(size=len(w))
        residuals = _numeric(g, w, values)[8:]
        unpacked = segment.unpack_decision_values(values)
        tau = segment.dX_poly.tau_root
        expected = [
            segment.U_poly.interpolate_collocation(tau[j], list(unpacked.controls[k, :, 0]))
            for k in range(2)
            for j in range(1, 4)
        ]
        assert_allclose(residuals, expected, atol=1e-12)

    def test_knot_mask_selects_ascending_knots_without_padding(self, scalar_problem):
        x, u, t = scalar_problem["x"], scalar_problem["u"], scalar_problem["t"]
        G = ca.Function("G", [x, u], [x])
        data = ConstraintData(
            G=G,
            lower_bound=time_bound("lb", t, -t),
            upper_bound=constant_bound("ub", [np.inf]),
            is_global=False,
            apply_at=np.array([0, 1, 0, 1]),
        )
        segment = _built_segment(scalar_problem, knot_num=4, constraints=[data])
        g = []
        segment.evaluate_expression_graph(0.0, g)

        num_defects = 4 * 3 + 4
        assert len(g) == num_defects + 2 * 3
        tau = segment.dX_poly.collocation_roots
        expected_lower = -np.concatenate([(1 + tau) * 0.1, (3 + tau) * 0.1])
        assert_allclose(segment.general_lbg[num_defects:], expected_lower, atol=1e-15)
        assert np.all(np.isinf(segment.general_ubg[num_defects:]))

    def test_empty_mask_adds_nothing(self, scalar_problem):
        x, u = scalar_problem["x"], scalar_problem["u"]
        data = ConstraintData(
            G=ca.Function("G", [x, u], [x]),
            lower_bound=constant_bound("lb", [0.0]),
            upper_bound=constant_bound("ub", [0.0]),
            is_global=False,
            apply_at=np.zeros(2, dtype=int),
        )
        segment = _built_segment(scalar_problem, constraints=[data])
        assert segment.num_constraints == 8

    def test_mask_with_wrong_length_raises(self, scalar_problem):
        x, u = scalar_problem["x"], scalar_problem["u"]
        data = ConstraintData(
            G=ca.Function("G", [x, u], [x]),
            lower_bound=constant_bound("lb", [0.0]),
            upper_bound=constant_bound("ub", [0.0]),
            is_global=False,
            apply_at=np.ones(3, dtype=int),
        )
        with pytest.raises(ConfigurationError):
            _built_segment(scalar_problem, constraints=[data])

    def test_bound_size_mismatch_raises(self, scalar_problem):
        x, u = scalar_problem["x"], scalar_problem["u"]
        data = ConstraintData(
            G=ca.Function("G", [x, u], [ca.vertcat(x, u)]),
            lower_bound=constant_bound("lb", [0.0]),
            upper_bound=constant_bound("ub", [0.0, 1.0]),
        )
        with pytest.raises(ConfigurationError):
            _built_segment(scalar_problem, constraints=[data])


class TestSegmentBoundsAndInitialGuess:
    def test_default_decision_bounds_are_unbounded(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        lbx, ubx = [], []
        bx_range = segment.fill_lbx_ubx(lbx, ubx)
        assert bx_range.length == segment.num_decision_variables
        assert np.all(np.isneginf(lbx)) and np.all(np.isposinf(ubx))

    def test_decision_bounds_split_states_and_controls(self, scalar_problem):
        segment = _built_segment(scalar_problem)
        decision = DecisionData(
            lower_bound=constant_bound("lbx", [-1.0, -2.0]),
            upper_bound=constant_bound("ubx", [1.0, 2.0]),
        )
        lbx, ubx = [], []
        segment.fill_lbx_ubx(lbx, ubx, decision)
        num_states = 2 * 3 + 3
        assert_allclose(lbx[:num_states], -1.0)
        assert_allclose(lbx[num_states:], -2.0)
        assert_allclose(ubx[:num_states], 1.0)
        assert_allclose(ubx[num_states:], 2.0)

    def test_default_initial_guess_is_reference_state(self, scalar_problem):
        segment = _built_segment(scalar_problem, x0=0.7)
        w0 = []
        segment.fill_initial_guess(w0, scalar_problem["Fdif"])
        assert_allclose(w0, 0.0)
        assert len(w0) == segment.num_decision_variables

    def test_initial_guess_converted_to_deviations(self, scalar_problem):
        t = scalar_problem["t"]
        segment = _built_segment(scalar_problem, x0=0.5)
        decision = DecisionData(initial_guess=time_bound("guess", t, ca.vertcat(t, 2 * t)))
        w0 = []
        segment.fill_initial_guess(w0, scalar_problem["Fdif"], decision)

        expected = np.concatenate(
            [
                segment.collocation_times - 0.5,
                segment.knot_times - 0.5,
                2 * segment.control_times,
            ]
        )
        assert_allclose(w0, expected, atol=1e-14)

    def test_initial_guess_needs_numeric_reference(self, scalar_problem):
        t = scalar_problem["t"]
        segment = PseudospectralSegment(3, 2, 0.1, scalar_problem["states"], scalar_problem["Fint"])
        segment.initialize_knot_segments(ca.SX.sym("x_ref"))
        decision = DecisionData(initial_guess=time_bound("guess", t, ca.vertcat(t, t)))
        with pytest.raises(DataIntegrityError):
            segment.fill_initial_guess([], scalar_problem["Fdif"], decision)


    def test_infinite_initial_guess_raises(self, scalar_problem):
        t = scalar_problem["t"]
        segment = _built_segment(scalar_problem)
        decision = DecisionData(initial_guess=time_bound("guess", t, ca.vertcat(ca.inf, 0.0)))
        w0 = []
        with pytest.raises(DataIntegrityError):
            segment.fill_initial_guess(w0, scalar_problem["Fdif"], decision)
        assert w0 == []

    def test_infinite_decision_bounds_are_accepted(self, scalar_problem):
        t = scalar_problem["t"]
        segment = _built_segment(scalar_problem)
        decision = DecisionData(upper_bound=time_bound("ubx", t, ca.vertcat(ca.inf, t)))
        lbx, ubx = [], []
        segment.fill_lbx_ubx(lbx, ubx, decision)
        assert np.all(np.isposinf(ubx[: 2 * 3 + 3]))

class TestNLPVectors:
    def test_append_constraint_records_scalar_range(self):
        vectors = NLPVectors()
        vectors.g.append(ca.SX(1))
        vectors.lbg.append(0.0)
        vectors.ubg.append(0.0)
        index_range = vectors.append_constraint(ca.SX.sym("c", 3), -1.0, 1.0)
        assert (index_range.start, index_range.stop) == (1, 4)
        assert vectors.lbg[1:] == [-1.0] * 3
        vectors.check_consistency()

    @pytest.mark.parametrize("start, stop", [(-1, 2), (3, 2)])
    def test_invalid_index_range_raises(self, start, stop):
        with pytest.raises(DataIntegrityError):
            IndexRange(start, stop)

    def test_inconsistent_sizes_raise(self):
        vectors = NLPVectors()
        vectors.w.append(ca.SX.sym("w"))
        with pytest.raises(DataIntegrityError):
            vectors.check_consistency()
