"""
Solution interface for trajectory optimization results.

The raw solver vector is mapped back onto segments through the decision
variable ranges each segment recorded while the NLP was assembled.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from .cl_types import FloatArray
from .exceptions import DataIntegrityError, SolutionExtractionError


if TYPE_CHECKING:
    from .direct_solver.segment import PseudospectralSegment


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentTrajectory:
    """
    Trajectory of one segment in absolute time.

    Attributes:
        times: ``(knot_num + 1,)`` knot boundary times
        states: ``(knot_num + 1, nx)`` actual states at the knot boundaries
        control_times: ``(knot_num * samples,)`` times of the control samples
        controls: ``(knot_num * samples, nu)`` control samples
    """

    times: FloatArray
    states: FloatArray
    control_times: FloatArray
    controls: FloatArray


class TrajectorySolution:
    """Result of ``TrajectoryOpt.optimize``."""

    def __init__(
        self,
        w: FloatArray,
        objective: float,
        success: bool,
        message: str,
        segments: Sequence[PseudospectralSegment],
        phase_durations: Sequence[float],
    ) -> None:
        self.w = np.asarray(w, dtype=np.float64).flatten()
        self.objective = objective
        self.success = success
        self.message = message
        self._segments = list(segments)
        self._start_times = np.concatenate([[0.0], np.cumsum(phase_durations)])[:-1]

    @property
    def num_segments(self) -> int:
        return len(self._segments)

    @property
    def status(self) -> dict[str, object]:
        return {"success": self.success, "message": self.message, "objective": self.objective}

    def segment_trajectory(self, index: int) -> SegmentTrajectory:
        """States and controls of segment ``index``, extracted by its decision range."""
        if not 0 <= index < len(self._segments):
            raise SolutionExtractionError(
                f"Segment {index} does not exist", f"{len(self._segments)} segments"
            )
        segment = self._segments[index]
        offset = float(self._start_times[index])

        try:
            w_range = segment.get_range_idx_decision_variables()
            if w_range.stop > self.w.shape[0]:
                raise SolutionExtractionError(
                    f"Decision range {w_range} exceeds solution of size {self.w.shape[0]}"
                )
            values = segment.unpack_decision_values(self.w[w_range.as_slice()])
            states = segment.boundary_states(values)
        except DataIntegrityError as e:
            raise SolutionExtractionError(
                f"Failed to extract segment {index}: {e}", "Solution extraction"
            ) from e

        return SegmentTrajectory(
            times=segment.knot_times + offset,
            states=states,
            control_times=segment.control_times + offset,
            controls=values.controls.reshape(-1, segment.st_m.nu),
        )

    def states_array(self) -> FloatArray:
        """Knot states of all segments; shared segment boundaries appear once."""
        blocks = []
        for index in range(self.num_segments):
            states = self.segment_trajectory(index).states
            blocks.append(states if index == 0 else states[1:])
        return np.vstack(blocks)

    def times_array(self) -> FloatArray:
        blocks = []
        for index in range(self.num_segments):
            times = self.segment_trajectory(index).times
            blocks.append(times if index == 0 else times[1:])
        return np.concatenate(blocks)

    def controls_array(self) -> tuple[FloatArray, FloatArray]:
        """``(control_times, controls)`` of all segments."""
        trajectories = [self.segment_trajectory(i) for i in range(self.num_segments)]
        return (
            np.concatenate([traj.control_times for traj in trajectories]),
            np.vstack([traj.controls for traj in trajectories]),
        )

    def plot(self, show: bool = True):
        from .plot import plot_trajectory

        return plot_trajectory(self, show=show)

    def __repr__(self) -> str:
        return (
            f"TrajectorySolution(success={self.success}, message={self.message!r}, "
            f"objective={self.objective:.6g}, segments={self.num_segments})"
        )
