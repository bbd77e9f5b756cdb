"""
Lagrange polynomial basis on the unit interval for pseudospectral collocation.

The basis is built from ``d`` roots of an orthogonal polynomial family mapped
onto ``(0, 1]`` with the root ``0`` prepended. Quadrature, differentiation and
continuity coefficients are derived from the barycentric form of the Lagrange
polynomials, so they stay accurate up to the highest supported degree and do
not depend on any step size.
"""

from __future__ import annotations

import functools
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, cast

import numpy as np
from scipy.special import roots_jacobi as _scipy_roots_jacobi

from .cl_types import FloatArray
from .exceptions import ConfigurationError
from .input_validation import (
    _validate_collocation_scheme,
    _validate_interpolation_point,
    _validate_positive_integer,
)
from .utils.constants import DEFAULT_COLLOCATION_SCHEME, MAX_POLYNOMIAL_DEGREE


@dataclass(frozen=True, eq=False)
class LagrangeBasis:
    """Lagrange basis of degree ``d`` on ``[0, 1]``.

    Attributes:
        degree: Number of collocation roots ``d``
        scheme: Collocation scheme the roots were drawn from
        tau_root: ``d + 1`` roots, ``tau_root[0] == 0``
        B: Quadrature weights, ``B[j]`` is the integral of basis ``j`` over ``[0, 1]``
        C: Differentiation coefficients, ``C[j, r]`` is the derivative of basis ``j`` at root ``r``
        D: Continuity coefficients, ``D[j]`` is basis ``j`` evaluated at ``t = 1``
        barycentric_weights: Barycentric weights of ``tau_root``
        collocation_weights: Barycentric weights of the collocation roots alone
    """

    degree: int
    scheme: str
    tau_root: FloatArray
    B: FloatArray
    C: FloatArray
    D: FloatArray
    barycentric_weights: FloatArray
    collocation_weights: FloatArray

    @property
    def num_roots(self) -> int:
        return self.degree + 1

    @property
    def collocation_roots(self) -> FloatArray:
        """Roots of the scheme without the prepended ``0``."""
        return self.tau_root[1:]

    def evaluate_basis(self, t: float) -> FloatArray:
        """Values of every basis polynomial at ``t``."""
        _validate_interpolation_point(t)
        return _evaluate_lagrange_basis_at_point(self.tau_root, self.barycentric_weights, float(t))

    def interpolate(self, t: float, values: Sequence[Any]) -> Any:
        """Evaluate the interpolant through ``values`` (one per root) at ``t``.

        ``values`` may hold floats, numpy arrays or CasADi expressions; the
        result has the same type as the weighted sum of its entries.
        """
        if len(values) != self.num_roots:
            raise ConfigurationError(
                f"Expected {self.num_roots} basis values, got {len(values)}",
                "Lagrange interpolation",
            )
        weights = self.evaluate_basis(t)
        return _weighted_sum(weights, values)

    def interpolate_collocation(self, t: float, values: Sequence[Any]) -> Any:
        """Interpolate through the collocation roots only, excluding ``tau_root[0]``.

        Control trajectories carry one sample per collocation root; the
        resulting polynomial has degree ``d - 1``.
        """
        _validate_interpolation_point(t)
        if len(values) != self.degree:
            raise ConfigurationError(
                f"Expected {self.degree} collocation values, got {len(values)}",
                "Lagrange interpolation",
            )
        weights = _evaluate_lagrange_basis_at_point(
            self.collocation_roots, self.collocation_weights, float(t)
        )
        return _weighted_sum(weights, values)


def _weighted_sum(weights: FloatArray, values: Sequence[Any]) -> Any:
    result = float(weights[0]) * values[0]
    for weight, value in zip(weights[1:], values[1:], strict=True):
        result = result + float(weight) * value
    return result


def _roots_jacobi(n: int, alpha: float, beta: float) -> tuple[FloatArray, FloatArray]:
    x_val, w_val = _scipy_roots_jacobi(n, alpha, beta, mu=False)
    return (
        x_val.astype(np.float64),
        w_val.astype(np.float64),
    )


def _compute_collocation_points(degree: int, scheme: str) -> FloatArray:
    """Roots of the scheme mapped from ``[-1, 1]`` onto ``(0, 1]``."""
    if degree == 0:
        return np.array([], dtype=np.float64)

    if scheme == "legendre":
        roots, _ = _roots_jacobi(degree, 0.0, 0.0)
    else:
        # Right-sided Radau includes the terminal endpoint
        if degree == 1:
            roots = np.array([], dtype=np.float64)
        else:
            roots, _ = _roots_jacobi(degree - 1, 1.0, 0.0)
        roots = np.concatenate([roots, np.array([1.0], dtype=np.float64)])

    return np.sort((roots + 1.0) / 2.0).astype(np.float64)


def _compute_barycentric_weights(nodes: FloatArray) -> FloatArray:
    num_nodes = len(nodes)
    if num_nodes == 1:
        return np.array([1.0], dtype=np.float64)

    differences_matrix = nodes[:, np.newaxis] - nodes[np.newaxis, :]
    differences_matrix[np.eye(num_nodes, dtype=bool)] = 1.0
    products = np.prod(differences_matrix, axis=1, dtype=np.float64)

    return (1.0 / products).astype(np.float64)


def _evaluate_lagrange_basis_at_point(
    nodes: FloatArray, barycentric_weights: FloatArray, t: float
) -> FloatArray:
    """Barycentric (second form) evaluation of every basis polynomial at ``t``."""
    differences = t - nodes
    coincident = differences == 0.0
    if np.any(coincident):
        values = np.zeros(len(nodes), dtype=np.float64)
        values[int(np.argmax(coincident))] = 1.0
        return values

    terms = barycentric_weights / differences
    return cast(FloatArray, terms / np.sum(terms))


def _compute_differentiation_matrix(
    nodes: FloatArray, barycentric_weights: FloatArray
) -> FloatArray:
    """``C[j, r]``: derivative of basis ``j`` at node ``r``.

    Off-diagonal entries come from the barycentric weights; each diagonal entry
    is the negative sum of its column, so the derivative of a constant is zero
    to rounding.
    """
    num_nodes = len(nodes)
    C = np.zeros((num_nodes, num_nodes), dtype=np.float64)
    for r in range(num_nodes):
        for j in range(num_nodes):
            if j != r:
                weight_ratio = barycentric_weights[j] / barycentric_weights[r]
                C[j, r] = weight_ratio / (nodes[r] - nodes[j])
        C[r, r] = -np.sum(C[:, r])
    return C


def _compute_quadrature_weights(nodes: FloatArray, barycentric_weights: FloatArray) -> FloatArray:
    """Integrals of the basis polynomials over ``[0, 1]``.

    A Gauss-Legendre rule with ``len(nodes)`` points integrates the degree
    ``len(nodes) - 1`` basis exactly.
    """
    gauss_points, gauss_weights = np.polynomial.legendre.leggauss(len(nodes))
    gauss_points = (gauss_points + 1.0) / 2.0
    gauss_weights = gauss_weights / 2.0

    basis_at_gauss = np.array(
        [_evaluate_lagrange_basis_at_point(nodes, barycentric_weights, t) for t in gauss_points]
    )
    return cast(FloatArray, gauss_weights @ basis_at_gauss)


@functools.lru_cache(maxsize=2 * (MAX_POLYNOMIAL_DEGREE + 1))
def _compute_lagrange_basis(degree: int, scheme: str) -> LagrangeBasis:
    tau_root = np.concatenate(
        [np.array([0.0], dtype=np.float64), _compute_collocation_points(degree, scheme)]
    )
    barycentric_weights = _compute_barycentric_weights(tau_root)

    # Continuity coefficients close the interval at t = 1
    D = _evaluate_lagrange_basis_at_point(tau_root, barycentric_weights, 1.0)
    C = _compute_differentiation_matrix(tau_root, barycentric_weights)
    B = _compute_quadrature_weights(tau_root, barycentric_weights)

    collocation_roots = tau_root[1:]
    collocation_weights = _compute_barycentric_weights(collocation_roots)

    for array in (tau_root, barycentric_weights, collocation_weights, B, C, D):
        array.setflags(write=False)

    return LagrangeBasis(
        degree=degree,
        scheme=scheme,
        tau_root=cast(FloatArray, tau_root),
        B=B,
        C=C,
        D=D,
        barycentric_weights=barycentric_weights,
        collocation_weights=collocation_weights,
    )


def build_lagrange_basis(degree: int, scheme: str = DEFAULT_COLLOCATION_SCHEME) -> LagrangeBasis:
    """Build (or fetch from cache) the Lagrange basis for ``(degree, scheme)``.

    Degree ``0`` is accepted and yields the constant basis on the single root
    ``0``; segments only ever request degrees in ``(0, 10)``.
    """
    _validate_positive_integer(degree, "polynomial degree", min_value=0)
    if degree > MAX_POLYNOMIAL_DEGREE:
        raise ConfigurationError(
            f"polynomial degree must be <= {MAX_POLYNOMIAL_DEGREE}, got {degree}"
        )
    _validate_collocation_scheme(scheme)
    return _compute_lagrange_basis(int(degree), scheme)
