"""Core univariate B-spline basis function evaluation.

This module provides the numba kernel evaluating the non-vanishing B-spline
basis functions of a knot span, together with their first derivatives, and
the array-level wrapper that allocates its buffers.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import numba as nb
import numpy as np
import numpy.typing as npt

F = TypeVar("F", bound=Callable[..., Any])

if TYPE_CHECKING:
    # During type-checking, make the decorator a no-op that preserves types.
    def nb_jit(*args: object, **kwargs: object) -> Callable[[F], F]:
        def decorator(func: F) -> F:
            return func

        return decorator
else:
    # At runtime, use the real Numba decorator.
    nb_jit = nb.jit  # type: ignore[attr-defined]


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _compute_basis_and_derivatives_impl(  # noqa: PLR0913
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    spans: npt.NDArray[np.int_],
    pts: npt.NDArray[np.float32 | np.float64],
    with_derivatives: bool,
    basis: npt.NDArray[np.float32 | np.float64],
    derivs: npt.NDArray[np.float32 | np.float64],
) -> None:
    """Evaluate the active B-spline basis functions (and first derivatives) on given spans.

    This function implements Algorithm A2.3 of "The NURBS Book" (Piegl and
    Tiller), restricted to the first derivative. The basis functions of the
    span ``spans[i]`` are evaluated at ``pts[i]``, even if the point lies
    on the boundary of (or slightly outside) the span.
    Results are written in place into the given buffers.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector.
        degree (int): B-spline degree.
        spans (npt.NDArray[np.int_]): Knot span index for each point. Each span
            must be non-empty, i.e., ``knots[span] < knots[span + 1]``.
        pts (npt.NDArray[np.float32 | np.float64]): Points (1D array).
        with_derivatives (bool): Whether to compute the first derivatives.
        basis (npt.NDArray[np.float32 | np.float64]): Buffer receiving the values,
            of shape (n_pts, degree+1).
        derivs (npt.NDArray[np.float32 | np.float64]): Buffer receiving the first
            derivatives. Must have shape (n_pts, degree+1) if `with_derivatives`
            is True; it is not accessed otherwise.

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    order = degree + 1
    dtype = knots.dtype
    zero = dtype.type(0.0)
    one = dtype.type(1.0)

    # ndu stores the basis functions in its upper triangle and the
    # knot differences in its strictly lower triangle.
    ndu = np.empty((order, order), dtype=dtype)
    left = np.empty(order, dtype=dtype)
    right = np.empty(order, dtype=dtype)

    for pt_id in range(pts.size):
        span = spans[pt_id]
        pt = pts[pt_id]

        ndu[0, 0] = one
        for j in range(1, order):
            left[j] = pt - knots[span + 1 - j]
            right[j] = knots[span + j] - pt
            saved = zero
            for r in range(j):
                ndu[j, r] = right[r + 1] + left[j - r]
                temp = ndu[r, j - 1] / ndu[j, r]
                ndu[r, j] = saved + right[r + 1] * temp
                saved = left[j - r] * temp
            ndu[j, j] = saved

        for r in range(order):
            basis[pt_id, r] = ndu[r, degree]

        if not with_derivatives:
            continue

        for r in range(order):
            deriv = zero
            if r >= 1:
                deriv += ndu[r - 1, degree - 1] / ndu[degree, r - 1]
            if r <= degree - 1:
                deriv -= ndu[r, degree - 1] / ndu[degree, r]
            derivs[pt_id, r] = deriv * degree


def _tabulate_Bspline_basis_on_spans_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    spans: npt.NDArray[np.int_],
    pts: npt.NDArray[np.float32 | np.float64],
    gradient: bool = False,
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64] | None]:
    """Evaluate the active B-spline basis functions of the given spans at the given points.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector.
        degree (int): B-spline degree.
        spans (npt.NDArray[np.int_]): 1D array of knot span indices, one per point.
        pts (npt.NDArray[np.float32 | np.float64]): 1D array of evaluation points,
            with the same dtype as `knots`.
        gradient (bool): Whether to compute the first derivatives too.
            Defaults to False.

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64] | None]:
            The values and the first derivatives, both of shape
            (num_pts, degree+1). The derivatives are None if `gradient` is False.

    Raises:
        ValueError: If `spans` and `pts` are not 1D arrays of the same size.
    """
    if spans.shape != pts.shape or pts.ndim != 1:
        raise ValueError("spans and pts must be 1D arrays with the same size")

    dtype = knots.dtype
    basis = np.empty((pts.size, degree + 1), dtype=dtype)
    # The kernel never touches the derivatives buffer when gradient is False.
    derivs = np.empty_like(basis) if gradient else np.empty((0, 0), dtype=dtype)

    _compute_basis_and_derivatives_impl(
        knots,
        degree,
        np.ascontiguousarray(spans, dtype=np.int_),
        np.ascontiguousarray(pts, dtype=dtype),
        gradient,
        basis,
        derivs,
    )

    return basis, (derivs if gradient else None)


def _warmup_numba_functions() -> None:
    """Precompile numba functions with float64 signatures for faster first call."""
    knots = np.array([0.0, 0.0, 0.0, 1.0, 1.0, 1.0], dtype=np.float64)
    _tabulate_Bspline_basis_on_spans_impl(
        knots, 2, np.array([2], dtype=np.int_), np.array([0.5], dtype=np.float64), True
    )


# Precompile numba functions on module import (skip during type checking)
if not TYPE_CHECKING:
    _warmup_numba_functions()


__all__ = [
    "_compute_basis_and_derivatives_impl",
    "_tabulate_Bspline_basis_on_spans_impl",
]
