# colloclab/legged/contact.py
"""
Contact descriptions for legged systems: surfaces, end effectors, contact modes
and the phase sequence that assigns a mode and a knot budget to each segment.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field

import casadi as ca
import numpy as np

from ..cl_types import FloatArray, PhaseIndex
from ..exceptions import ConfigurationError, ContactSequenceError
from ..input_validation import (
    _validate_array_numerical_integrity,
    _validate_function_arity,
    _validate_function_input_size,
    _validate_function_output_size,
    _validate_positive_integer,
    _validate_positive_number,
)
from ..problem.constraint import GeneralProblemData
from ..problem.states import States
from ..utils.constants import DEFAULT_FRICTION_COEFFICIENT, FORCE_DIMENSION


logger = logging.getLogger(__name__)

SurfaceID = int


@dataclass(frozen=True)
class EnvironmentSurface:
    """
    Flat contact surface: a convex region ``A p_xy <= b`` at a fixed ``height``.

    Attributes:
        A: ``(m, 2)`` region matrix acting on the horizontal foot position
        b: ``(m,)`` region offsets
        height: Height of the surface plane
    """

    A: FloatArray
    b: FloatArray
    height: float = 0.0

    def __post_init__(self) -> None:
        A = np.atleast_2d(np.asarray(self.A, dtype=np.float64))
        b = np.asarray(self.b, dtype=np.float64).flatten()
        if A.shape[1] != 2:
            raise ConfigurationError(f"Surface region matrix must have 2 columns, got {A.shape}")
        if A.shape[0] != b.shape[0]:
            raise ConfigurationError(
                f"Surface region has {A.shape[0]} rows but {b.shape[0]} offsets"
            )
        _validate_array_numerical_integrity(A, "A", "environment surface")
        _validate_array_numerical_integrity(b, "b", "environment surface", allow_infinite=True)
        object.__setattr__(self, "A", A)
        object.__setattr__(self, "b", b)
        object.__setattr__(self, "height", float(self.height))

    @property
    def num_region_rows(self) -> int:
        return int(self.A.shape[0])


def create_infinite_ground(height: float = 0.0) -> EnvironmentSurface:
    """Ground plane without a horizontal boundary."""
    return EnvironmentSurface(A=np.zeros((1, 2)), b=np.zeros(1), height=height)


@dataclass(frozen=True)
class EndEffector:
    """
    A frame that can make contact with the environment.

    Attributes:
        name: Unique end-effector name
        position: ``p(x) -> (3, 1)`` world position of the contact frame
        velocity: ``v(x) -> (3, 1)`` world velocity of the contact frame
        force_offset: Index of the contact force ``[fx, fy, fz]`` inside ``u``
    """

    name: str
    position: ca.Function
    velocity: ca.Function
    force_offset: int

    def validate(self, states: States) -> None:
        for label, function in (("position", self.position), ("velocity", self.velocity)):
            fn_name = f"{self.name} {label}"
            _validate_function_arity(function, 1, 1, fn_name)
            _validate_function_input_size(function, 0, states.nx, 1, fn_name)
            _validate_function_output_size(function, 0, FORCE_DIMENSION, 1, fn_name)
        _validate_positive_integer(self.force_offset, f"{self.name} force offset", min_value=0)
        if self.force_offset + FORCE_DIMENSION > states.nu:
            raise ConfigurationError(
                f"Force of {self.name} at offset {self.force_offset} exceeds nu={states.nu}"
            )

    def force(self, u: ca.SX) -> ca.SX:
        return u[self.force_offset : self.force_offset + FORCE_DIMENSION]


@dataclass(frozen=True)
class ContactMode:
    """
    Which end effectors touch which surface.

    ``contacts`` maps end-effector names to a surface index; a name that is
    missing or mapped to ``None`` is in swing.
    """

    contacts: Mapping[str, SurfaceID | None] = field(default_factory=dict)

    def in_contact(self, end_effector: str) -> bool:
        return self.contacts.get(end_effector) is not None

    def surface_id(self, end_effector: str) -> SurfaceID:
        surface = self.contacts.get(end_effector)
        if surface is None:
            raise ContactSequenceError(f"End effector {end_effector} is not in contact")
        return surface

    @property
    def num_contacts(self) -> int:
        return sum(1 for surface in self.contacts.values() if surface is not None)


@dataclass(frozen=True)
class Phase:
    mode: ContactMode
    knot_num: int
    duration: float

    @property
    def h(self) -> float:
        return self.duration / self.knot_num


class ContactSequence:
    """Ordered contact phases, each discretized by one segment."""

    def __init__(self, num_end_effectors: int) -> None:
        _validate_positive_integer(num_end_effectors, "num_end_effectors", min_value=0)
        self.num_end_effectors = num_end_effectors
        self._phases: list[Phase] = []

    def add_phase(self, mode: ContactMode, knot_num: int, duration: float) -> PhaseIndex:
        _validate_positive_integer(knot_num, "knot_num")
        _validate_positive_number(duration, "duration")
        if mode.num_contacts > self.num_end_effectors:
            raise ContactSequenceError(
                f"Mode has {mode.num_contacts} contacts but sequence tracks "
                f"{self.num_end_effectors} end effectors"
            )
        self._phases.append(Phase(mode=mode, knot_num=int(knot_num), duration=float(duration)))
        logger.debug(
            "Added contact phase %d: %d knots over %.4g s",
            len(self._phases) - 1,
            knot_num,
            duration,
        )
        return len(self._phases) - 1

    @property
    def num_phases(self) -> int:
        return len(self._phases)

    @property
    def total_knots(self) -> int:
        return sum(phase.knot_num for phase in self._phases)

    @property
    def total_duration(self) -> float:
        return sum(phase.duration for phase in self._phases)

    def __iter__(self) -> Iterator[Phase]:
        return iter(self._phases)

    def __len__(self) -> int:
        return len(self._phases)

    def get_phase(self, index: PhaseIndex) -> Phase:
        if not 0 <= index < len(self._phases):
            raise ContactSequenceError(
                f"Phase index {index} out of range", f"{len(self._phases)} phases"
            )
        return self._phases[index]

    def get_phase_index_at_knot(self, knot_index: int) -> PhaseIndex:
        """Phase covering a knot counted across the whole sequence."""
        start = 0
        for index, phase in enumerate(self._phases):
            if start <= knot_index < start + phase.knot_num:
                return index
            start += phase.knot_num
        raise ContactSequenceError(
            f"No phase covers knot {knot_index}", f"{self.total_knots} knots in sequence"
        )

    def get_phase_at_knot(self, knot_index: int) -> Phase:
        return self._phases[self.get_phase_index_at_knot(knot_index)]

    def get_phase_index_at_time(self, time: float) -> PhaseIndex:
        start = 0.0
        for index, phase in enumerate(self._phases):
            if start <= time < start + phase.duration:
                return index
            start += phase.duration
        if self._phases and np.isclose(time, start):
            return len(self._phases) - 1
        raise ContactSequenceError(
            f"No phase covers time {time}", f"sequence duration {self.total_duration}"
        )


@dataclass
class LeggedProblemData:
    """
    Everything legged constraint builders and the assembler need.

    ``x``, ``u`` and ``t`` are the symbols every constraint function is
    expressed in; they are created from ``states`` when not supplied.
    """

    general_problem_data: GeneralProblemData
    states: States
    contact_sequence: ContactSequence
    environment_surfaces: Sequence[EnvironmentSurface]
    end_effectors: Sequence[EndEffector]
    x: ca.SX | None = None
    u: ca.SX | None = None
    t: ca.SX | None = None
    mu: float = DEFAULT_FRICTION_COEFFICIENT

    def __post_init__(self) -> None:
        x, _, u, t = self.states.symbols()
        self.x = x if self.x is None else self.x
        self.u = u if self.u is None else self.u
        self.t = t if self.t is None else self.t
        if self.x.shape != (self.states.nx, 1) or self.u.shape != (self.states.nu, 1):
            raise ConfigurationError(
                f"Symbols x{self.x.shape} and u{self.u.shape} do not match the state model"
            )
        _validate_positive_number(self.mu, "friction coefficient")

        names = [ee.name for ee in self.end_effectors]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate end-effector names: {names}")
        for ee in self.end_effectors:
            ee.validate(self.states)

        self.general_problem_data.validate(self.states)

    @property
    def num_knots(self) -> int:
        return self.contact_sequence.total_knots

    def get_mode(self, phase_index: PhaseIndex) -> ContactMode:
        return self.contact_sequence.get_phase(phase_index).mode

    def get_surface(self, surface_id: SurfaceID) -> EnvironmentSurface:
        if not 0 <= surface_id < len(self.environment_surfaces):
            raise ContactSequenceError(
                f"Surface {surface_id} does not exist",
                f"{len(self.environment_surfaces)} surfaces",
            )
        return self.environment_surfaces[surface_id]
