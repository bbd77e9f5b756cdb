from typing import Any, TypeAlias


_Tolerance: TypeAlias = float
_Degree: TypeAlias = int

# Floating point tolerances
COORDINATE_PRECISION: _Tolerance = 1e-12  # Operations on normalized [0, 1] coordinates

INTERPOLATION_TOLERANCE: _Tolerance = COORDINATE_PRECISION
"""Slack allowed on the [0, 1] interpolation domain before rejecting a query."""

# Polynomial basis
MIN_POLYNOMIAL_DEGREE: _Degree = 1
MAX_POLYNOMIAL_DEGREE: _Degree = 9
SUPPORTED_COLLOCATION_SCHEMES: tuple[str, ...] = ("legendre", "radau")
DEFAULT_COLLOCATION_SCHEME: str = "radau"

# Expression graph construction
DEFAULT_MAP_PARALLELIZATION: str = "serial"
"""Parallelization string handed to casadi.Function.map for per-knot blocks."""

SUPPORTED_MAP_PARALLELIZATIONS: tuple[str, ...] = ("serial", "openmp", "thread", "unroll")

# Boundary deviations are mapped onto the manifold with a unit step
BOUNDARY_INTEGRATION_STEP: float = 1.0

# NLP solver defaults
DEFAULT_NLP_SOLVER: str = "ipopt"
DEFAULT_NLP_MAX_ITERATIONS: int = 3000
DEFAULT_NLP_TOLERANCE: _Tolerance = 1e-8
DEFAULT_IPOPT_OPTIONS: dict[str, Any] = {
    "ipopt.max_iter": DEFAULT_NLP_MAX_ITERATIONS,
    "ipopt.tol": DEFAULT_NLP_TOLERANCE,
    "ipopt.print_level": 0,
    "print_time": False,
}

# Legged constraint defaults
DEFAULT_FRICTION_COEFFICIENT: float = 0.7
FORCE_DIMENSION: int = 3

# Plotting constants (aesthetic, no numerical impact)
DEFAULT_FIGURE_SIZE: tuple[float, float] = (12.0, 8.0)
DEFAULT_GRID_ALPHA: float = 0.3
DEFAULT_SEGMENT_BOUNDARY_ALPHA: float = 0.7
