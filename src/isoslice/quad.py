"""Quadrature rules for 1D integration and their per-element mapping."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal, cast

import numpy as np
import numpy.typing as npt
from numpy.polynomial import legendre

QuadratureRule = Literal["gauss-legendre", "gauss-lobatto-legendre"]


def _scale_and_cast_nodes_and_weights(
    nodes: npt.NDArray[np.float64], weights: npt.NDArray[np.float64], dtype: npt.DTypeLike
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Scale nodes and weights from [-1, 1] to [0, 1] and cast them to the given dtype."""
    nodes = ((nodes + 1.0) * 0.5).astype(dtype)
    weights = (weights * 0.5).astype(dtype)
    return nodes, weights


def _validate_n_pts_and_dtype(n_pts: int, dtype: npt.DTypeLike) -> None:
    """Validate the number of points and dtype.

    Args:
        n_pts (int): The number of points. Must be at least 1.
        dtype (npt.DTypeLike): The dtype of the nodes. It must be float32 or float64.

    Raises:
        ValueError: If n_pts is less than 1 or dtype is not float32 or float64.
    """
    if n_pts < 1:
        raise ValueError("n_pts must be at least 1")

    dtype_obj = np.dtype(dtype)
    if dtype_obj.type not in (np.float32, np.float64):
        raise ValueError("dtype must be float32 or float64")


def get_gauss_legendre_quadrature_1D(
    n_pts: int, dtype: npt.DTypeLike = np.float64
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Get Gauss-Legendre quadrature nodes on [0, 1] for the given number of points.

    Args:
        n_pts (int): The number of points. Must be at least 1.
        dtype (npt.DTypeLike): The dtype of the nodes. It must be float32 or float64.
            Defaults to float64.

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
            The nodes and weights.

    Raises:
        ValueError: If n_pts is less than 1 or dtype is not float32 or float64.
    """
    _validate_n_pts_and_dtype(n_pts, dtype)

    leggauss_t = cast(
        Callable[[int], tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]],
        legendre.leggauss,
    )
    nodes, weights = leggauss_t(n_pts)

    return _scale_and_cast_nodes_and_weights(nodes, weights, dtype)


def get_gauss_lobatto_legendre_quadrature_1D(
    n_pts: int, dtype: npt.DTypeLike = np.float64
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Get Gauss-Lobatto-Legendre quadrature nodes on [0, 1] for the given number of points.

    The end points 0 and 1 are nodes of the rule, which makes it suitable for
    evaluating on element boundaries.

    Args:
        n_pts (int): The number of points. Must be at least 2.
        dtype (npt.DTypeLike): The dtype of the nodes. It must be float32 or float64.
            Defaults to float64.

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
            The nodes and weights.

    Raises:
        ValueError: If n_pts is less than 2 or dtype is not float32 or float64.
    """
    _validate_n_pts_and_dtype(n_pts, dtype)

    if n_pts < 2:  # noqa: PLR2004
        raise ValueError("n_pts must be at least 2")

    # GLL nodes are [-1, roots of P_N'(x), 1] on [-1, 1]
    N = n_pts - 1
    basis_t = cast(Callable[[int], Any], legendre.Legendre.basis)
    P_N = basis_t(N)
    interior_nodes = np.sort(np.real(cast(npt.NDArray[np.float64], P_N.deriv().roots())))
    nodes = np.concatenate((np.array([-1.0]), interior_nodes, np.array([1.0])))

    # Weights on [-1, 1]: w_i = 2 / (N (N+1) [P_N(x_i)]^2)
    P_vals = cast(npt.NDArray[np.float64], P_N(nodes))
    weights = 2.0 / (float(N) * float(N + 1)) / (P_vals * P_vals)

    return _scale_and_cast_nodes_and_weights(nodes, weights, dtype)


_QUADRATURE_RULES: dict[
    str,
    Callable[
        [int, npt.DTypeLike],
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]],
    ],
] = {
    "gauss-legendre": get_gauss_legendre_quadrature_1D,
    "gauss-lobatto-legendre": get_gauss_lobatto_legendre_quadrature_1D,
}


def create_element_quadrature_1D(
    breaks: npt.ArrayLike,
    n_pts: int,
    rule: QuadratureRule = "gauss-legendre",
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Map a [0, 1] quadrature rule to every element of a 1D partition.

    Args:
        breaks (npt.ArrayLike): Strictly increasing element boundaries, with at least
            two values. Their dtype (float32 or float64) is used for the result;
            other dtypes are converted to float64.
        n_pts (int): Number of quadrature points per element.
        rule (QuadratureRule): Name of the quadrature rule. Defaults to "gauss-legendre".

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
            The nodes and weights, both of shape (n_pts, nel), where column ``e``
            corresponds to the element ``[breaks[e], breaks[e+1]]``. The weights
            include the element length.

    Raises:
        ValueError: If the breaks are invalid, the rule is unknown, or the number of
            points is not valid for the rule.
    """
    breaks = np.asarray(breaks)
    if breaks.dtype not in (np.float32, np.float64):
        breaks = breaks.astype(np.float64)

    if breaks.ndim != 1 or breaks.size < 2:  # noqa: PLR2004
        raise ValueError("breaks must be a 1D array with at least 2 values")
    if not np.all(np.diff(breaks) > 0):
        raise ValueError("breaks must be strictly increasing")

    try:
        rule_fn = _QUADRATURE_RULES[rule]
    except KeyError:
        raise ValueError(
            f"Unknown quadrature rule {rule!r}; expected one of {sorted(_QUADRATURE_RULES)}"
        ) from None

    ref_nodes, ref_weights = rule_fn(n_pts, breaks.dtype)

    lengths = np.diff(breaks)
    nodes = breaks[np.newaxis, :-1] + ref_nodes[:, np.newaxis] * lengths[np.newaxis, :]
    weights = ref_weights[:, np.newaxis] * lengths[np.newaxis, :]

    return nodes.astype(breaks.dtype), weights.astype(breaks.dtype)
