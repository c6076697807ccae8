"""Floating-point thresholds used by knot handling and slice evaluation.

Only the two data types the package computes in, float32 and float64, are
supported.
"""

from functools import cache
from typing import Any, cast

import numpy as np
from numpy import typing as npt

# Absolute tolerance for snapping nearly coincident knots and for locating
# points in the knot vector domain.
_KNOT_TOLERANCE = {"float32": 1e-7, "float64": 1e-15}


@cache
def _float_dtype_from_name(name: str) -> np.dtype[np.floating[Any]]:
    if name not in _KNOT_TOLERANCE:
        raise ValueError(f"Unsupported dtype: {name}; expected float32 or float64")
    return cast(np.dtype[np.floating[Any]], np.dtype(name))


def _check_float_dtype(dtype: npt.DTypeLike) -> np.dtype[np.floating[Any]]:
    """Return `dtype` as a float32 or float64 dtype object.

    Raises:
        ValueError: If `dtype` is neither float32 nor float64.
    """
    return _float_dtype_from_name(np.dtype(dtype).name)


def get_knot_tolerance(dtype: npt.DTypeLike) -> float:
    """Get the absolute tolerance used to compare knot values.

    Args:
        dtype (npt.DTypeLike): float32 or float64.

    Returns:
        float: The tolerance for the given dtype.

    Raises:
        ValueError: If dtype is not supported.

    Example:
        >>> get_knot_tolerance(np.float32)
        1e-07
    """
    return _KNOT_TOLERANCE[_check_float_dtype(dtype).name]


def get_machine_epsilon(dtype: npt.DTypeLike) -> float:
    """Get the machine epsilon of `dtype`.

    The singular Jacobian check scales it by the magnitude of the Jacobian
    entries.

    Raises:
        ValueError: If dtype is not supported.
    """
    return float(np.finfo(_check_float_dtype(dtype)).eps)


def get_smallest_normal(dtype: npt.DTypeLike) -> float:
    """Get the smallest positive normal number of `dtype`.

    Rational denominators below it in magnitude are treated as vanishing.

    Raises:
        ValueError: If dtype is not supported.
    """
    return float(np.finfo(_check_float_dtype(dtype)).tiny)
