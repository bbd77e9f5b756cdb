"""
Plotting for trajectory solutions.

States are drawn at knot boundaries and controls at their sample times, with
optional vertical lines at segment boundaries.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes as MplAxes
from matplotlib.figure import Figure as MplFigure

from .cl_types import FloatArray
from .utils.constants import (
    DEFAULT_FIGURE_SIZE,
    DEFAULT_GRID_ALPHA,
    DEFAULT_SEGMENT_BOUNDARY_ALPHA,
)


if TYPE_CHECKING:
    from .solution import TrajectorySolution


logger = logging.getLogger(__name__)


def plot_trajectory(
    solution: TrajectorySolution,
    state_names: Sequence[str] | None = None,
    control_names: Sequence[str] | None = None,
    figsize: tuple[float, float] = DEFAULT_FIGURE_SIZE,
    show_segment_boundaries: bool = True,
    show: bool = True,
) -> list[MplFigure]:
    """
    Plot state and control trajectories in separate figures.

    Args:
        solution: Solved trajectory
        state_names: Labels for the state components (defaults to ``x[i]``)
        control_names: Labels for the control components (defaults to ``u[i]``)
        figsize: Figure size for each window
        show_segment_boundaries: Draw vertical lines where segments meet
        show: Call ``plt.show()`` once the figures are built

    Returns:
        The created figures, states first.
    """
    if not solution.success:
        logger.warning("Plotting unconverged solution: %s", solution.message)

    times = solution.times_array()
    states = solution.states_array()
    control_times, controls = solution.controls_array()

    boundaries: list[float] = []
    if show_segment_boundaries:
        boundaries = [
            float(solution.segment_trajectory(i).times[0]) for i in range(1, solution.num_segments)
        ]

    figures = [
        _create_component_figure(
            "States",
            times,
            states,
            _labels(state_names, states.shape[1], "x"),
            figsize,
            boundaries,
            marker="o",
        ),
        _create_component_figure(
            "Controls",
            control_times,
            controls,
            _labels(control_names, controls.shape[1], "u"),
            figsize,
            boundaries,
            marker="x",
        ),
    ]

    if show:
        plt.show()
    return figures


def _labels(names: Sequence[str] | None, count: int, prefix: str) -> list[str]:
    if names is None:
        return [f"{prefix}[{i}]" for i in range(count)]
    if len(names) != count:
        raise ValueError(f"Expected {count} labels, got {len(names)}")
    return list(names)


def _create_component_figure(
    title: str,
    times: FloatArray,
    values: FloatArray,
    labels: list[str],
    figsize: tuple[float, float],
    boundaries: list[float],
    marker: str,
) -> MplFigure:
    num_plots = values.shape[1]
    rows, cols = _determine_subplot_layout(num_plots)
    fig, axes = plt.subplots(rows, cols, figsize=figsize, sharex=True, squeeze=False)
    fig.suptitle(title)
    flat_axes: list[MplAxes] = list(axes.flatten())

    for i, label in enumerate(labels):
        ax = flat_axes[i]
        ax.plot(times, values[:, i], marker=marker, markersize=3, linewidth=1.5)
        for boundary in boundaries:
            ax.axvline(boundary, color="red", linestyle="--", alpha=DEFAULT_SEGMENT_BOUNDARY_ALPHA)
        ax.set_ylabel(label)
        ax.set_xlabel("Time")
        ax.grid(True, alpha=DEFAULT_GRID_ALPHA)

    # Hide unused subplots
    for ax in flat_axes[num_plots:]:
        ax.set_visible(False)

    fig.tight_layout()
    return fig


def _determine_subplot_layout(num_plots: int) -> tuple[int, int]:
    if num_plots <= 1:
        return (1, 1)
    rows = int(np.ceil(np.sqrt(num_plots)))
    cols = int(np.ceil(num_plots / rows))
    return (rows, cols)
