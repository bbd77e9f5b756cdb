# colloclab/__init__.py
"""
CollocLab: pseudospectral direct collocation for trajectory optimization

This package discretizes continuous dynamics with Lagrange polynomial segments,
maps pluggable constraints across the collocation grid and assembles a single
NLP solved with CasADi. Legged-locomotion constraint builders are provided in
``colloclab.legged``.

Logging:
By default, CollocLab produces no output. To enable logging::

    import logging
    logging.getLogger('colloclab').setLevel(logging.INFO)  # Major operations
    logging.getLogger('colloclab').setLevel(logging.DEBUG)  # Detailed debugging
"""

import logging

from colloclab.cl_types import IndexRange
from colloclab.direct_solver import NLPVectors, PseudospectralSegment, TrajectoryOpt
from colloclab.exceptions import (
    CollocLabBaseError,
    ConfigurationError,
    ContactSequenceError,
    DataIntegrityError,
    SolutionExtractionError,
)
from colloclab.lagrange import LagrangeBasis, build_lagrange_basis
from colloclab.problem import (
    BasicStates,
    ConstraintBuilder,
    ConstraintData,
    DecisionData,
    GeneralProblemData,
    States,
    constant_bound,
    euclidean_integration_functions,
    time_bound,
)
from colloclab.solution import SegmentTrajectory, TrajectorySolution


__all__ = [
    "BasicStates",
    "CollocLabBaseError",
    "ConfigurationError",
    "ConstraintBuilder",
    "ConstraintData",
    "ContactSequenceError",
    "DataIntegrityError",
    "DecisionData",
    "GeneralProblemData",
    "IndexRange",
    "LagrangeBasis",
    "NLPVectors",
    "PseudospectralSegment",
    "SegmentTrajectory",
    "SolutionExtractionError",
    "States",
    "TrajectoryOpt",
    "TrajectorySolution",
    "build_lagrange_basis",
    "constant_bound",
    "euclidean_integration_functions",
    "time_bound",
]

__version__ = "0.1.0"


# Configure logging - no handlers, let user control output
logging.getLogger(__name__).addHandler(logging.NullHandler())
