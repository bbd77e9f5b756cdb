# colloclab/direct_solver/trajectory.py
"""
Problem assembler: one pseudospectral segment per contact phase, stitched
together into a single NLP handed to ``casadi.nlpsol``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Generic, Protocol, TypeVar

import casadi as ca
import numpy as np

from ..exceptions import DataIntegrityError
from ..input_validation import _validate_column_vector
from ..problem.constraint import (
    ConstraintBuilder,
    DecisionData,
    GeneralProblemData,
    build_constraint_datas,
)
from ..problem.states import States
from ..solution import TrajectorySolution
from ..utils.constants import (
    BOUNDARY_INTEGRATION_STEP,
    DEFAULT_COLLOCATION_SCHEME,
    DEFAULT_IPOPT_OPTIONS,
    DEFAULT_MAP_PARALLELIZATION,
    DEFAULT_NLP_SOLVER,
)
from .segment import PseudospectralSegment
from .types_solver import NLPVectors


logger = logging.getLogger(__name__)


class _PhaseLike(Protocol):
    knot_num: int
    duration: float


class _PhaseSequenceLike(Protocol):
    @property
    def num_phases(self) -> int: ...

    def get_phase(self, index: int) -> _PhaseLike: ...


class TrajectoryProblemData(Protocol):
    """What the assembler reads from problem data; builders may read more."""

    general_problem_data: GeneralProblemData
    states: States
    contact_sequence: _PhaseSequenceLike


ProblemDataT = TypeVar("ProblemDataT", bound=TrajectoryProblemData)


class TrajectoryOpt(Generic[ProblemDataT]):
    """
    Assemble and solve a trajectory optimization problem.

    Args:
        problem_data: Functions, state model and phase sequence of the problem
        builders: Constraint builders evaluated once per phase
        solver_options: Options passed to ``casadi.nlpsol``; defaults to quiet IPOPT
        decision_data: Optional bounds and initial guess applied to every segment
    """

    def __init__(
        self,
        problem_data: ProblemDataT,
        builders: Sequence[ConstraintBuilder[ProblemDataT]] = (),
        solver_options: dict[str, Any] | None = None,
        decision_data: DecisionData | None = None,
        scheme: str = DEFAULT_COLLOCATION_SCHEME,
        parallelization: str = DEFAULT_MAP_PARALLELIZATION,
    ) -> None:
        self.problem_data = problem_data
        self.builders = list(builders)
        self.solver_options = (
            dict(DEFAULT_IPOPT_OPTIONS) if solver_options is None else dict(solver_options)
        )
        self.decision_data = decision_data
        self.scheme = scheme
        self.parallelization = parallelization

        self.gp_data: GeneralProblemData = problem_data.general_problem_data
        self.states: States = problem_data.states
        self.gp_data.validate(self.states)

        self.segments: list[PseudospectralSegment] = []
        self.vectors = NLPVectors()
        self.J: ca.SX = ca.SX(0)
        self.nlp: dict[str, ca.SX] | None = None
        self.x0: ca.DM | None = None

    def init_finite_elements(self, d: int, x0: Any) -> None:
        """
        Build every segment and the assembled NLP.

        ``x0`` is the numeric initial state; every segment deviates from it and
        the first boundary state is pinned to it.
        """
        _validate_column_vector(x0, self.states.nx, "x0")
        self.x0 = ca.reshape(ca.DM(x0), self.states.nx, 1)
        self.segments = []
        self.vectors = NLPVectors()
        self.J = ca.SX(0)

        sequence = self.problem_data.contact_sequence
        num_phases = sequence.num_phases
        if num_phases == 0:
            raise DataIntegrityError("Contact sequence has no phases", "Trajectory assembly")

        logger.info("Building trajectory: %d phases, degree %d", num_phases, d)

        vectors = self.vectors
        start_time = 0.0
        for phase_index in range(num_phases):
            phase = sequence.get_phase(phase_index)
            segment = PseudospectralSegment(
                d,
                phase.knot_num,
                phase.duration / phase.knot_num,
                self.states,
                self.gp_data.Fint,
                scheme=self.scheme,
                parallelization=self.parallelization,
            )
            constraint_datas = build_constraint_datas(self.builders, self.problem_data, phase_index)

            segment.initialize_knot_segments(self.x0)
            segment.initialize_expression_graph(self.gp_data.F, self.gp_data.L, constraint_datas)

            segment.fill_w(vectors.w)
            segment.fill_lbx_ubx(vectors.lbx, vectors.ubx, self.decision_data)
            segment.fill_initial_guess(vectors.w0, self.gp_data.Fdif, self.decision_data)
            self.J = segment.evaluate_expression_graph(self.J, vectors.g)
            segment.fill_lbg_ubg(vectors.lbg, vectors.ubg)

            times_range = segment.fill_times(vectors.times)
            for i in times_range:
                vectors.times[i] += start_time
            start_time += phase.duration

            if self.segments:
                # Segments share one reference state, so deviations match when states do
                previous = self.segments[-1]
                vectors.append_constraint(
                    previous.get_final_state_deviant() - segment.get_initial_state_deviant(),
                    0.0,
                    0.0,
                )
            self.segments.append(segment)

            logger.debug(
                "Phase %d: %d knots, %d decision variables, %d constraint rows",
                phase_index,
                phase.knot_num,
                segment.num_decision_variables,
                segment.num_constraints,
            )

        # Initial state: the first boundary deviation maps onto x0
        first = self.segments[0]
        initial_state = self.gp_data.Fint(
            self.x0, first.get_initial_state_deviant(), BOUNDARY_INTEGRATION_STEP
        )
        vectors.append_constraint(initial_state - self.x0, 0.0, 0.0)

        self.J = self.J + self.gp_data.Phi(self.segments[-1].get_final_state())

        vectors.check_consistency()
        self.nlp = {
            "x": vectors.decision_vector(),
            "f": self.J,
            "g": vectors.constraint_vector(),
        }
        logger.info(
            "Trajectory NLP assembled: %d variables, %d constraints",
            len(vectors.w),
            len(vectors.g),
        )

    def optimize(self, solver_options: dict[str, Any] | None = None) -> TrajectorySolution:
        """Solve the assembled NLP; failures are reported on the returned solution."""
        if self.nlp is None:
            raise DataIntegrityError(
                "NLP has not been assembled", "Call init_finite_elements before optimize"
            )
        options = self.solver_options if solver_options is None else dict(solver_options)

        solver = ca.nlpsol("solver", DEFAULT_NLP_SOLVER, self.nlp, options)
        arrays = self.vectors.as_arrays()
        logger.info("Solving trajectory NLP with %s", DEFAULT_NLP_SOLVER)

        result = solver(**arrays)
        stats = solver.stats()
        success = bool(stats.get("success", False))
        message = str(stats.get("return_status", "unknown"))
        if success:
            logger.info("NLP solved: %s", message)
        else:
            logger.warning("NLP solver did not converge: %s", message)

        return TrajectorySolution(
            w=np.asarray(result["x"].full(), dtype=np.float64).flatten(),
            objective=float(result["f"]),
            success=success,
            message=message,
            segments=self.segments,
            phase_durations=[
                self.problem_data.contact_sequence.get_phase(i).duration
                for i in range(len(self.segments))
            ],
        )
