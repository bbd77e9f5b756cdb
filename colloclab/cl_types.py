# colloclab/cl_types.py
"""
Core type definitions shared by the basis builder, segments and assembler.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .exceptions import DataIntegrityError


# --- NUMERICAL SAFETY TYPES ---
FloatArray: TypeAlias = NDArray[np.float64]
IntArray: TypeAlias = NDArray[np.int_]
NumericArrayLike: TypeAlias = (
    NDArray[np.floating[Any]]
    | NDArray[np.integer[Any]]
    | Sequence[float]
    | Sequence[int]
    | list[float]
    | list[int]
)

PhaseIndex: TypeAlias = int
"""Index of a contact phase in a contact sequence."""


@dataclass(frozen=True)
class IndexRange:
    """Half-open ``[start, stop)`` range into an assembler-owned flat vector."""

    start: int
    stop: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.stop < self.start:
            raise DataIntegrityError(f"Invalid index range [{self.start}, {self.stop})")

    @property
    def length(self) -> int:
        return self.stop - self.start

    def as_slice(self) -> slice:
        return slice(self.start, self.stop)

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.stop))

    def __len__(self) -> int:
        return self.length

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and self.start <= index < self.stop
