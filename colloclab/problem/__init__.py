"""
Problem description: state models, shared problem functions and the
constraint-builder protocol.
"""

from .constraint import (
    ConstraintBuilder,
    ConstraintData,
    DecisionData,
    GeneralProblemData,
    build_constraint_datas,
    constant_bound,
    time_bound,
)
from .states import BasicStates, States, euclidean_integration_functions


__all__ = [
    "BasicStates",
    "ConstraintBuilder",
    "ConstraintData",
    "DecisionData",
    "GeneralProblemData",
    "States",
    "build_constraint_datas",
    "constant_bound",
    "euclidean_integration_functions",
    "time_bound",
]
