"""
Legged-locomotion contact descriptions and constraint builders.
"""

from .constraints import (
    ContactConstraintBuilder,
    FrictionConeConstraintBuilder,
    VelocityConstraintBuilder,
)
from .contact import (
    ContactMode,
    ContactSequence,
    EndEffector,
    EnvironmentSurface,
    LeggedProblemData,
    Phase,
    create_infinite_ground,
)


__all__ = [
    "ContactConstraintBuilder",
    "ContactMode",
    "ContactSequence",
    "EndEffector",
    "EnvironmentSurface",
    "FrictionConeConstraintBuilder",
    "LeggedProblemData",
    "Phase",
    "VelocityConstraintBuilder",
    "create_infinite_ground",
]
