import casadi as ca
import numpy as np

import colloclab as cl
from colloclab.legged import ContactMode, ContactSequence, LeggedProblemData


# State model: position and velocity, force control
states = cl.BasicStates(nx=2, nu=1)
Fint, Fdif = cl.euclidean_integration_functions(states)
x, _, u, t = states.symbols()

# Dynamics and costs
F = ca.Function("F", [x, u], [ca.vertcat(x[1], u)])
L = ca.Function("L", [x, u], [u**2])
Phi = ca.Function("Phi", [x], [100.0 * ((x[0] - 1.0) ** 2 + x[1] ** 2)])

# Single phase without contacts
sequence = ContactSequence(0)
sequence.add_phase(ContactMode(), knot_num=10, duration=2.0)

problem = LeggedProblemData(
    general_problem_data=cl.GeneralProblemData(Fint=Fint, Fdif=Fdif, F=F, L=L, Phi=Phi),
    states=states,
    contact_sequence=sequence,
    environment_surfaces=[],
    end_effectors=[],
    x=x,
    u=u,
    t=t,
)

# Control limits through decision bounds on [dx; u]
decision = cl.DecisionData(
    lower_bound=cl.constant_bound("lbx", [-np.inf, -np.inf, -2.0]),
    upper_bound=cl.constant_bound("ubx", [np.inf, np.inf, 2.0]),
)

traj = cl.TrajectoryOpt(problem, decision_data=decision)
traj.init_finite_elements(4, np.zeros(2))
solution = traj.optimize()

if solution.success:
    print(f"Objective: {solution.objective:.6f}")
    print(f"Final state: {solution.states_array()[-1]}")
    solution.plot()
else:
    print(f"Failed: {solution.message}")
