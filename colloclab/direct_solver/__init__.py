from .segment import PseudospectralSegment
from .trajectory import TrajectoryOpt
from .types_solver import NLPVectors, SegmentDecisionValues


__all__ = [
    "NLPVectors",
    "PseudospectralSegment",
    "SegmentDecisionValues",
    "TrajectoryOpt",
]
