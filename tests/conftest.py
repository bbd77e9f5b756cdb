import casadi as ca
import numpy as np
import pytest

from colloclab.legged import (
    ContactMode,
    ContactSequence,
    EndEffector,
    EnvironmentSurface,
    LeggedProblemData,
    create_infinite_ground,
)
from colloclab.problem import BasicStates, GeneralProblemData, euclidean_integration_functions


GRAVITY = 9.81


def point_foot_problem(phases, surfaces=None, mu=0.7):
    """
    Point-mass body with a single foot at its position.

    State is ``[p; v]`` and the control is the contact force on the foot.
    """
    states = BasicStates(6, 3)
    Fint, Fdif = euclidean_integration_functions(states)
    x, _, u, t = states.symbols()
    p, v = x[0:3], x[3:6]

    F = ca.Function("F", [x, u], [ca.vertcat(v, u - ca.DM([0.0, 0.0, GRAVITY]))])
    L = ca.Function("L", [x, u], [1e-3 * ca.sumsqr(u)])
    Phi = ca.Function("Phi", [x], [ca.sumsqr(v)])
    general = GeneralProblemData(Fint=Fint, Fdif=Fdif, F=F, L=L, Phi=Phi)

    foot = EndEffector(
        name="foot",
        position=ca.Function("p_foot", [x], [p]),
        velocity=ca.Function("v_foot", [x], [v]),
        force_offset=0,
    )

    sequence = ContactSequence(1)
    for mode, knot_num, duration in phases:
        sequence.add_phase(mode, knot_num, duration)

    return LeggedProblemData(
        general_problem_data=general,
        states=states,
        contact_sequence=sequence,
        environment_surfaces=surfaces if surfaces is not None else [create_infinite_ground()],
        end_effectors=[foot],
        x=x,
        u=u,
        t=t,
        mu=mu,
    )


@pytest.fixture
def stance_mode():
    return ContactMode({"foot": 0})


@pytest.fixture
def swing_mode():
    return ContactMode({"foot": None})


@pytest.fixture
def bounded_surface():
    A = np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0], [0.0, -1.0]])
    return EnvironmentSurface(A=A, b=np.ones(4), height=0.2)


@pytest.fixture
def make_point_foot_problem():
    return point_foot_problem
