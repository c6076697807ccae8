"""B-spline knot vector utilities and analysis.

This module provides numba kernels for querying open knot vectors
(multiplicities, domain checks, span lookup) and the validation helpers used
when generating knot vectors.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar, cast

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
def _get_unique_knots_and_multiplicity_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    tol: float,
    in_domain: bool = False,
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
    """Get unique knots and their multiplicities.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector.
        degree (int): B-spline degree.
        tol (float): Tolerance for numerical comparisons.
        in_domain (bool): If True, only consider knots in the domain.
            Defaults to False.

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]: Tuple of
            (unique_knots, multiplicities). Both arrays have the same length.

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    # Round to tolerance precision for grouping
    dtype = knots.dtype
    scale = dtype.type(1.0 / tol)
    rounded_knots = np.round(knots * scale) / scale

    n = knots.size
    unique_ids = np.empty(n, dtype=np.int_)
    mult = np.zeros(n, dtype=np.int_)

    if in_domain:
        rknot_0, rknot_1 = rounded_knots[degree], rounded_knots[-degree - 1]
    else:
        rknot_0, rknot_1 = rounded_knots[0], rounded_knots[-1]

    j = -1
    last_rknot = np.nan

    for i, rknot in enumerate(rounded_knots):
        if rknot < rknot_0:
            continue
        elif rknot > rknot_1:
            break

        if rknot == last_rknot:
            mult[j] += 1
        else:
            j += 1
            last_rknot = rknot
            unique_ids[j] = i
            mult[j] = 1

    # Return the original knot values, not the rounded ones.
    unique_knots = knots[unique_ids[: j + 1]]
    mults = mult[: j + 1]
    return unique_knots, mults


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _is_in_domain_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    pts: npt.NDArray[np.float32 | np.float64],
    tol: float,
) -> npt.NDArray[np.bool_]:
    """Check if points are within the B-spline domain (up to tolerance).

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector.
        degree (int): B-spline degree.
        pts (npt.NDArray[np.float32 | np.float64]): Points to check.
        tol (float): Tolerance for numerical comparisons.

    Returns:
        npt.NDArray[np.bool_]: Boolean array where True indicates points
            are within the domain.
    """
    knot_begin, knot_end = knots[degree], knots[-degree - 1]
    return np.logical_and(  # type: ignore[no-any-return]
        pts > knot_begin - tol,
        pts < knot_end + tol,
    )


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _get_Bspline_num_basis_1D_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
) -> int:
    """Compute the number of basis functions of a non-periodic B-spline.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector.
        degree (int): B-spline degree.

    Returns:
        int: Number of basis functions, i.e., number of knots minus degree minus 1.
    """
    return int(len(knots) - degree - 1)


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _find_spans_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    pts: npt.NDArray[np.float32 | np.float64],
) -> npt.NDArray[np.int_]:
    """Find the knot span index of each point.

    The span of a point ``u`` is the index ``i`` such that
    ``knots[i] <= u < knots[i+1]``, clamped to ``[degree, num_basis - 1]``
    so that points on the right end of the domain fall in the last
    non-empty span.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector
            (must be non-decreasing).
        pts (npt.NDArray[np.float32 | np.float64]): Points (1D array).

    Returns:
        npt.NDArray[np.int_]: Span index for each point.

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    num_basis = _get_Bspline_num_basis_1D_impl(knots, degree)
    spans = np.searchsorted(knots, pts, side="right") - 1
    return np.minimum(np.maximum(spans, degree), num_basis - 1)


def _validate_knot_input(
    num_intervals: int,
    degree: int,
    continuity: int,
    domain: tuple[np.floating[Any], np.floating[Any]],
    dtype: npt.DTypeLike,
) -> None:
    """Validate input parameters for knot vector generation.

    Args:
        num_intervals (int): Number of intervals in the domain.
        degree (int): B-spline degree.
        continuity (int): Continuity level at interior knots.
        domain (tuple[np.floating, np.floating]): Domain boundaries as (start, end).
        dtype (np.dtype): Data type for the knot vector.

    Raises:
        ValueError: If any parameter is invalid.
    """
    if domain[0] >= domain[1]:
        raise ValueError("domain[0] must be less than domain[1]")

    if num_intervals < 1:
        raise ValueError("num_intervals must be at least 1")

    if degree < 0:
        raise ValueError("degree must be non-negative")

    if continuity < -1 or continuity >= degree:
        raise ValueError(f"Continuity must be between -1 and {degree - 1} for degree {degree}.")

    if np.dtype(dtype) not in (np.dtype(np.float64), np.dtype(np.float32)):
        raise ValueError("dtype must be float64 or float32")


def _get_knots_ends_and_dtype(
    domain: tuple[float, float] | None,
    dtype: npt.DTypeLike | None,
) -> tuple[np.floating[Any], np.floating[Any], np.dtype[np.floating[Any]]]:
    """Get the start, end, and dtype for a knot vector.

    Args:
        domain (tuple[float, float] | None): Domain boundaries. Defaults to
            (0.0, 1.0) if None.
        dtype (npt.DTypeLike | None): Data type for the knot vector. If None,
            inferred from the domain values (float64 for Python scalars).

    Returns:
        tuple[np.floating, np.floating, np.dtype]: Tuple of (start, end, dtype).

    Raises:
        ValueError: If the domain values are not scalars or the dtype is not
            a floating-point type.
    """
    start_raw, end_raw = (0.0, 1.0) if domain is None else domain
    start_arr, end_arr = np.asarray(start_raw), np.asarray(end_raw)
    if start_arr.ndim != 0 or end_arr.ndim != 0:
        raise ValueError("domain values must be scalars")

    if dtype is None:
        inferred = np.result_type(start_arr, end_arr)
        dtype_obj = inferred if inferred.kind == "f" else np.dtype(np.float64)
    else:
        dtype_obj = np.dtype(dtype)
        if dtype_obj.kind != "f":
            raise ValueError("dtype must be a floating-point type")

    dtype_obj = cast(np.dtype[np.floating[Any]], dtype_obj)
    return dtype_obj.type(start_arr.item()), dtype_obj.type(end_arr.item()), dtype_obj


def _warmup_numba_functions() -> None:
    """Precompile numba functions with float64 signatures for faster first call."""
    knots_dummy = np.array([0.0, 0.0, 0.0, 1.0, 1.0, 1.0], dtype=np.float64)
    pts_dummy = np.array([0.5], dtype=np.float64)
    tol_dummy = 1e-10
    degree_dummy = 2

    _get_unique_knots_and_multiplicity_impl(knots_dummy, degree_dummy, tol_dummy, False)
    _is_in_domain_impl(knots_dummy, degree_dummy, pts_dummy, tol_dummy)
    _get_Bspline_num_basis_1D_impl(knots_dummy, degree_dummy)
    _find_spans_impl(knots_dummy, degree_dummy, pts_dummy)


# Precompile numba functions on module import (skip during type checking)
if not TYPE_CHECKING:
    _warmup_numba_functions()


__all__ = [
    "_find_spans_impl",
    "_get_Bspline_num_basis_1D_impl",
    "_get_knots_ends_and_dtype",
    "_get_unique_knots_and_multiplicity_impl",
    "_is_in_domain_impl",
    "_validate_knot_input",
]
