import casadi as ca
import numpy as np

import colloclab as cl
from colloclab.legged import (
    ContactConstraintBuilder,
    ContactMode,
    ContactSequence,
    EndEffector,
    FrictionConeConstraintBuilder,
    LeggedProblemData,
    VelocityConstraintBuilder,
    create_infinite_ground,
)


GRAVITY = 9.81
MASS = 10.0
LEG_LENGTH = 0.5

# State [p; v] of a point-mass body on a rigid massless leg
states = cl.BasicStates(nx=6, nu=3)
Fint, Fdif = cl.euclidean_integration_functions(states)
x, _, u, t = states.symbols()
p, v = x[0:3], x[3:6]

F = ca.Function("F", [x, u], [ca.vertcat(v, u / MASS - ca.DM([0.0, 0.0, GRAVITY]))])
L = ca.Function("L", [x, u], [1e-4 * ca.sumsqr(u)])
Phi = ca.Function("Phi", [x], [ca.sumsqr(v)])

foot = EndEffector(
    name="foot",
    position=ca.Function("p_foot", [x], [p - ca.DM([0.0, 0.0, LEG_LENGTH])]),
    velocity=ca.Function("v_foot", [x], [v]),
    force_offset=0,
)

# Two stance phases; the friction cone and contact rows hold the body up
stance = ContactMode({"foot": 0})
sequence = ContactSequence(num_end_effectors=1)
sequence.add_phase(stance, knot_num=10, duration=0.5)
sequence.add_phase(stance, knot_num=10, duration=0.5)

problem = LeggedProblemData(
    general_problem_data=cl.GeneralProblemData(Fint=Fint, Fdif=Fdif, F=F, L=L, Phi=Phi),
    states=states,
    contact_sequence=sequence,
    environment_surfaces=[create_infinite_ground()],
    end_effectors=[foot],
    x=x,
    u=u,
    t=t,
    mu=0.7,
)

builders = [
    FrictionConeConstraintBuilder(),
    VelocityConstraintBuilder(),
    ContactConstraintBuilder(),
]

traj = cl.TrajectoryOpt(
    problem,
    builders,
    solver_options={"ipopt.print_level": 3, "ipopt.max_iter": 500},
)
traj.init_finite_elements(3, np.array([0.0, 0.0, LEG_LENGTH, 0.0, 0.0, 0.0]))
solution = traj.optimize()

print(solution)
if solution.success:
    _, forces = solution.controls_array()
    print(f"Mean vertical force: {forces[:, 2].mean():.3f} (weight {MASS * GRAVITY:.3f})")
    solution.plot(show=True)
