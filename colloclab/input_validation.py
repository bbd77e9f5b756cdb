import logging
import math
from typing import Any

import casadi as ca
import numpy as np

from .cl_types import FloatArray
from .exceptions import ConfigurationError, DataIntegrityError
from .utils.constants import (
    INTERPOLATION_TOLERANCE,
    MAX_POLYNOMIAL_DEGREE,
    MIN_POLYNOMIAL_DEGREE,
    SUPPORTED_COLLOCATION_SCHEMES,
    SUPPORTED_MAP_PARALLELIZATIONS,
)


logger = logging.getLogger(__name__)


# ==========================
# CORE VALIDATION PRIMITIVES
# ==========================


def _validate_positive_integer(value: Any, name: str, min_value: int = 1) -> None:
    if not isinstance(value, int | np.integer) or isinstance(value, bool):
        raise ConfigurationError(f"{name} must be integer, got {type(value)}")
    if value < min_value:
        raise ConfigurationError(f"{name} must be >= {min_value}, got {value}")


def _validate_positive_number(value: Any, name: str) -> None:
    if not isinstance(value, int | float | np.integer | np.floating) or isinstance(value, bool):
        raise ConfigurationError(f"{name} must be numeric, got {type(value)}")
    if math.isnan(value) or math.isinf(value):
        raise ConfigurationError(f"{name} cannot be NaN or infinite, got {value}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")


def _validate_array_numerical_integrity(
    array: FloatArray, name: str, context: str = "validation", allow_infinite: bool = False
) -> None:
    # External boundary check prevents corruption propagation into solver
    if np.any(np.isnan(array)):
        raise DataIntegrityError(f"{name} contains NaN values", f"Numerical corruption in {context}")
    # Bounds may be unbounded; values handed to the solver as numbers may not
    if not allow_infinite and np.any(np.isinf(array)):
        raise DataIntegrityError(
            f"{name} contains infinite values", f"Numerical corruption in {context}"
        )


# ================
# BASIS VALIDATION
# ================


def _validate_polynomial_degree(degree: Any, name: str = "polynomial degree") -> None:
    # State polynomials need at least one collocation root per knot
    _validate_positive_integer(degree, name, min_value=MIN_POLYNOMIAL_DEGREE)
    if degree > MAX_POLYNOMIAL_DEGREE:
        raise ConfigurationError(
            f"{name} must be < {MAX_POLYNOMIAL_DEGREE + 1}, got {degree}",
            "Polynomial degree must lie in (0, 10)",
        )


def _validate_collocation_scheme(scheme: Any) -> None:
    if scheme not in SUPPORTED_COLLOCATION_SCHEMES:
        raise ConfigurationError(
            f"Unknown collocation scheme {scheme!r}, expected one of {SUPPORTED_COLLOCATION_SCHEMES}"
        )


def _validate_interpolation_point(t: float) -> None:
    if not (-INTERPOLATION_TOLERANCE <= t <= 1.0 + INTERPOLATION_TOLERANCE):
        raise ConfigurationError(
            f"Interpolation point must lie in [0, 1], got {t}", "Lagrange interpolation"
        )


def _validate_map_parallelization(parallelization: str) -> None:
    if parallelization not in SUPPORTED_MAP_PARALLELIZATIONS:
        raise ConfigurationError(
            f"Unknown map parallelization {parallelization!r}, "
            f"expected one of {SUPPORTED_MAP_PARALLELIZATIONS}"
        )


# ==============================
# CASADI FUNCTION SIGNATURE CHECKS
# ==============================


def _validate_function_arity(function: Any, n_in: int, n_out: int, name: str) -> None:
    if not isinstance(function, ca.Function):
        raise ConfigurationError(f"{name} must be a casadi.Function, got {type(function)}")
    if function.n_in() != n_in:
        raise ConfigurationError(f"{name} must have {n_in} inputs, got {function.n_in()}")
    if function.n_out() != n_out:
        raise ConfigurationError(f"{name} must have {n_out} outputs, got {function.n_out()}")


def _validate_function_input_size(
    function: ca.Function, index: int, rows: int, cols: int, name: str
) -> None:
    actual = function.size_in(index)
    if tuple(actual) != (rows, cols):
        raise ConfigurationError(
            f"{name} input {index} has size {tuple(actual)}, expected ({rows}, {cols})",
            "Function signature mismatch",
        )


def _validate_function_output_size(
    function: ca.Function, index: int, rows: int, cols: int, name: str
) -> None:
    actual = function.size_out(index)
    if tuple(actual) != (rows, cols):
        raise ConfigurationError(
            f"{name} output {index} has size {tuple(actual)}, expected ({rows}, {cols})",
            "Function signature mismatch",
        )


def _validate_integration_function(fint: Any, nx: int, ndx: int) -> None:
    """Fint(x, dx, dt) -> x' must map a reference state and deviation onto the state space."""
    _validate_function_arity(fint, 3, 1, "Fint")
    _validate_function_input_size(fint, 0, nx, 1, "Fint")
    _validate_function_input_size(fint, 1, ndx, 1, "Fint")
    _validate_function_input_size(fint, 2, 1, 1, "Fint")
    _validate_function_output_size(fint, 0, nx, 1, "Fint")


def _validate_difference_function(fdif: Any, nx: int, ndx: int) -> None:
    _validate_function_arity(fdif, 3, 1, "Fdif")
    _validate_function_input_size(fdif, 0, nx, 1, "Fdif")
    _validate_function_input_size(fdif, 1, nx, 1, "Fdif")
    _validate_function_input_size(fdif, 2, 1, 1, "Fdif")
    _validate_function_output_size(fdif, 0, ndx, 1, "Fdif")


def _validate_dynamics_function(dynamics: Any, nx: int, ndx: int, nu: int) -> None:
    _validate_function_arity(dynamics, 2, 1, "F")
    _validate_function_input_size(dynamics, 0, nx, 1, "F")
    _validate_function_input_size(dynamics, 1, nu, 1, "F")
    _validate_function_output_size(dynamics, 0, ndx, 1, "F")


def _validate_running_cost_function(cost: Any, nx: int, nu: int) -> None:
    _validate_function_arity(cost, 2, 1, "L")
    _validate_function_input_size(cost, 0, nx, 1, "L")
    _validate_function_input_size(cost, 1, nu, 1, "L")
    _validate_function_output_size(cost, 0, 1, 1, "L")


def _validate_terminal_cost_function(cost: Any, nx: int) -> None:
    _validate_function_arity(cost, 1, 1, "Phi")
    _validate_function_input_size(cost, 0, nx, 1, "Phi")
    _validate_function_output_size(cost, 0, 1, 1, "Phi")


def _validate_constraint_function(constraint: Any, nx: int, nu: int, name: str) -> int:
    """Validate G(x, u) and return its number of rows."""
    _validate_function_arity(constraint, 2, 1, name)
    _validate_function_input_size(constraint, 0, nx, 1, name)
    _validate_function_input_size(constraint, 1, nu, 1, name)
    rows, cols = constraint.size_out(0)
    if cols != 1 and rows * cols != 0:
        raise ConfigurationError(
            f"{name} must return a column vector, got size ({rows}, {cols})",
            "Function signature mismatch",
        )
    return int(rows * cols)


def _validate_bound_function(bound: Any, num_rows: int, name: str) -> None:
    # Bounds are either constants (0 inputs) or functions of time (1 scalar input)
    if not isinstance(bound, ca.Function):
        raise ConfigurationError(f"{name} must be a casadi.Function, got {type(bound)}")
    if bound.n_in() not in (0, 1):
        raise ConfigurationError(f"{name} must have 0 or 1 inputs, got {bound.n_in()}")
    if bound.n_in() == 1:
        _validate_function_input_size(bound, 0, 1, 1, name)
    if bound.n_out() != 1:
        raise ConfigurationError(f"{name} must have 1 output, got {bound.n_out()}")
    rows, cols = bound.size_out(0)
    if rows * cols != num_rows:
        raise ConfigurationError(
            f"{name} produces {rows * cols} values, constraint has {num_rows} rows",
            "Bound size mismatch",
        )


def _validate_column_vector(value: Any, rows: int, name: str) -> None:
    shape = value.shape if hasattr(value, "shape") else np.shape(value)
    if len(shape) == 1:
        shape = (shape[0], 1)
    if tuple(shape) != (rows, 1):
        raise ConfigurationError(f"{name} must be a column vector of size {rows}, got {shape}")
