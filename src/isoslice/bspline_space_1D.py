"""BsplineSpace1D, its per-element basis record, and open knot vector utilities."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import cast

import numpy as np
from numpy import typing as npt

from ._basis_utils import _normalize_points_1D
from ._bspline_basis_core import _tabulate_Bspline_basis_on_spans_impl
from ._bspline_knots import (
    _find_spans_impl,
    _get_Bspline_num_basis_1D_impl,
    _get_knots_ends_and_dtype,
    _get_unique_knots_and_multiplicity_impl,
    _is_in_domain_impl,
    _validate_knot_input,
)
from .tolerance import get_knot_tolerance


def create_uniform_open_knot_vector(
    num_intervals: int,
    degree: int,
    continuity: int | None = None,
    domain: tuple[float, float] | None = None,
    dtype: npt.DTypeLike | None = None,
) -> npt.NDArray[np.float32 | np.float64]:
    """Create a uniform open knot vector.

    An open knot vector has the first and last knots repeated (degree+1) times,
    ensuring the B-spline interpolates the first and last control points.

    Args:
        num_intervals (int): Number of intervals in the domain. Must be at least 1.
        degree (int): B-spline degree. Must be non-negative.
        continuity (int | None): Continuity level at interior knots.
            Must be between -1 and degree-1. Defaults to degree-1 (maximum continuity).
        domain (tuple[float, float] | None): Domain boundaries as (start, end).
            Defaults to (0.0, 1.0) if not provided.
        dtype (npt.DTypeLike | None): Data type for the knot vector.
            If None, inferred from the domain or defaults to float64.

    Returns:
        npt.NDArray[np.float32 | np.float64]: Open knot vector with uniform spacing.

    Raises:
        ValueError: If any parameter is invalid.

    Example:
        >>> create_uniform_open_knot_vector(2, 2, domain=(0.0, 1.0))
        array([0. , 0. , 0. , 0.5, 1. , 1. , 1. ])
    """
    start, end, dtype_obj = _get_knots_ends_and_dtype(domain, dtype)

    continuity = degree - 1 if continuity is None else continuity

    _validate_knot_input(num_intervals, degree, continuity, (start, end), dtype_obj)

    unique_knots = np.linspace(start, end, num_intervals + 1, dtype=dtype_obj)
    interior_multiplicity = degree - continuity

    return np.concatenate(
        (
            np.full(degree + 1, start, dtype=dtype_obj),
            np.repeat(unique_knots[1:-1], interior_multiplicity),
            np.full(degree + 1, end, dtype=dtype_obj),
        )
    )


@dataclass(frozen=True)
class UnivariateBasis:
    """Univariate basis functions evaluated at per-element nodes.

    Element, node and slot axes follow the conventions of the slice evaluator:
    ``shape_functions[q, a, e]`` is the value of the ``a``-th active basis
    function of element ``e`` at its ``q``-th node, and ``connectivity[a, e]``
    is the global index of that function (``-1`` for unused slots).

    Attributes:
        nsh (npt.NDArray[np.int_]): Number of non-vanishing functions per element.
        nsh_max (int): Maximum of `nsh`.
        ndof (int): Total number of basis functions.
        connectivity (npt.NDArray[np.int_]): Array of shape (nsh_max, nel).
        shape_functions (npt.NDArray[np.float32 | np.float64]): Array of shape
            (nqn, nsh_max, nel).
        shape_function_gradients (npt.NDArray[np.float32 | np.float64] | None): Array
            of shape (nqn, nsh_max, nel), or None if not computed.
    """

    nsh: npt.NDArray[np.int_]
    nsh_max: int
    ndof: int
    connectivity: npt.NDArray[np.int_]
    shape_functions: npt.NDArray[np.float32 | np.float64]
    shape_function_gradients: npt.NDArray[np.float32 | np.float64] | None = None

    @property
    def nel(self) -> int:
        """Number of elements."""
        return int(self.connectivity.shape[1])

    @property
    def nqn(self) -> int:
        """Number of nodes per element."""
        return int(self.shape_functions.shape[0])


class BsplineSpace1D:
    """A class representing a 1D (non-periodic) B-spline space.

    This class validates the knot vector and degree, exposes the spline's
    properties, and evaluates its basis functions and first derivatives,
    either at arbitrary points or element by element.

    Attributes:
        _tol (float): Tolerance value for numerical comparisons.
        _knots (npt.NDArray[np.float32 | np.float64]): Knot vector defining the B-spline.
        _degree (int): Polynomial degree of the B-spline.
    """

    _tol: float
    _knots: npt.NDArray[np.float32 | np.float64]
    _degree: int

    def __init__(
        self,
        knots: npt.ArrayLike,
        degree: int,
        snap_knots: bool = True,
    ) -> None:
        """Initialize a B-spline 1D space.

        Args:
            knots (npt.ArrayLike): Knot vector defining the B-spline. Must be non-decreasing
                and have at least 2*degree+2 elements.
            degree (int): Polynomial degree of the B-spline. Must be non-negative.
            snap_knots (bool): Whether to snap nearby knots to avoid numerical issues.
                Defaults to True.

        Raises:
            ValueError: If degree is negative, knots are insufficient, not
                non-decreasing, or the domain is empty.
            TypeError: If knots is not a 1D numpy array or Python list.
        """
        BsplineSpace1D._validate_input(knots, degree)

        self._knots = np.ascontiguousarray(knots)
        if np.issubdtype(self._knots.dtype, np.integer):
            self._knots = self._knots.astype(np.float64)

        self._tol = BsplineSpace1D._create_tolerance(self.dtype)
        self._degree = int(degree)

        if snap_knots:
            self._snap_knots()

    @staticmethod
    def _validate_input(knots: npt.ArrayLike, degree: int) -> None:
        """Validate the B-spline input parameters.

        Args:
            knots (npt.ArrayLike): Knot vector to validate.
            degree (int): Degree to validate.

        Raises:
            ValueError: If degree is negative, knots are insufficient,
                not non-decreasing, or the domain is empty.
            TypeError: If knots cannot be converted to a numpy array.
        """
        if degree < 0:
            raise ValueError("degree must be non-negative")

        if isinstance(knots, list):
            knots = np.array(knots)
        elif not isinstance(knots, np.ndarray):
            raise TypeError("knots must be a 1D numpy array or Python list")

        if np.issubdtype(knots.dtype, np.integer):
            knots = knots.astype(np.float64)

        if knots.ndim != 1:
            raise TypeError("knots must be a 1D numpy array or Python list")

        if knots.dtype not in (np.float32, np.float64):
            raise ValueError("knots type must be float (32 or 64 bits)")

        if knots.size < (2 * degree + 2):
            raise ValueError("knots must have at least 2*degree+2 elements")

        if not np.all(np.diff(knots) >= 0):
            raise ValueError("knots must be non-decreasing")

        if not knots[degree] < knots[-degree - 1]:
            raise ValueError("knots must define a non-empty domain")

    @staticmethod
    def _create_tolerance(dtype: npt.DTypeLike) -> float:
        """Knot comparison tolerance of the data type."""
        return float(get_knot_tolerance(dtype))

    def _snap_knots(self) -> None:
        """Snap knots within tolerance to avoid numerical precision issues.

        This method rounds knots to a precision determined by the stored tolerance
        and then averages any knots that are close together.
        """
        scale = 1.0 / self._tol
        rounded = np.round(self._knots * scale) / scale

        snapped_knots = self._knots.copy()
        for val in np.unique(rounded):
            mask = rounded == val
            snapped_knots[mask] = np.mean(self._knots[mask], dtype=self.dtype)
        self._knots = snapped_knots

    @property
    def degree(self) -> int:
        """Get the polynomial degree of the B-spline."""
        return self._degree

    @property
    def knots(self) -> npt.NDArray[np.float32 | np.float64]:
        """Get the knot vector."""
        return self._knots

    @property
    def tolerance(self) -> float:
        """Get the tolerance value used for numerical comparisons."""
        return self._tol

    @property
    def dtype(self) -> np.dtype[np.float32 | np.float64]:
        """Get the data type of the knot vector (and used in computations)."""
        return self._knots.dtype

    @functools.cached_property
    def num_basis(self) -> int:
        """Get the number of basis functions (degrees of freedom).

        Returns:
            int: Number of basis functions.
        """
        return int(_get_Bspline_num_basis_1D_impl(self._knots, self._degree))

    @property
    def ndof(self) -> int:
        """Alias of `num_basis`."""
        return self.num_basis

    def get_unique_knots_and_multiplicity(
        self,
        in_domain: bool = False,
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Get unique knots and their multiplicities.

        Args:
            in_domain (bool): If True, only consider knots in the domain.
                Defaults to False.

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]: Tuple of
            (unique_knots, multiplicities).
        """
        return cast(
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]],
            _get_unique_knots_and_multiplicity_impl(
                self._knots, self._degree, self._tol, in_domain
            ),
        )

    @functools.cached_property
    def breaks(self) -> npt.NDArray[np.float32 | np.float64]:
        """Get the unique knots in the domain, i.e., the element boundaries.

        Example:
            >>> BsplineSpace1D([0, 0, 0, 1, 2, 2, 2], 2).breaks
            array([0., 1., 2.])
        """
        unique_knots, _ = self.get_unique_knots_and_multiplicity(in_domain=True)
        return unique_knots

    @property
    def num_intervals(self) -> int:
        """Get the number of intervals (elements) in the domain."""
        return int(self.breaks.size - 1)

    @functools.cached_property
    def domain(self) -> tuple[np.float32 | np.float64, np.float32 | np.float64]:
        """Get the knot vector domain as (start_value, end_value).

        Example:
            >>> BsplineSpace1D([0, 0, 0, 1, 2, 2, 2], 2).domain
            (0.0, 2.0)
        """
        return (self._knots[self._degree], self._knots[-self._degree - 1])

    @functools.cached_property
    def element_spans(self) -> npt.NDArray[np.int_]:
        """Get the knot span index of every element.

        Returns:
            npt.NDArray[np.int_]: Array of length `num_intervals`.
        """
        breaks = self.breaks
        midpoints = np.ascontiguousarray(0.5 * (breaks[:-1] + breaks[1:]), dtype=self.dtype)
        return cast(npt.NDArray[np.int_], _find_spans_impl(self._knots, self._degree, midpoints))

    def tabulate_basis(
        self,
        pts: npt.ArrayLike,
        gradient: bool = False,
    ) -> tuple[
        npt.NDArray[np.float32 | np.float64],
        npt.NDArray[np.float32 | np.float64] | None,
        npt.NDArray[np.int_],
    ]:
        """Evaluate the non-vanishing B-spline basis functions at the given points.

        Args:
            pts (npt.ArrayLike): Evaluation points. They are flattened.
            gradient (bool): Whether to compute first derivatives too. Defaults to False.

        Returns:
            tuple: Tuple containing:
                - basis_values: array of shape (n_pts, degree+1).
                - basis_derivatives: array of shape (n_pts, degree+1), or None
                  if `gradient` is False.
                - first_basis_indices: 1D integer array with the index of the
                  first non-zero basis function of each point.

        Raises:
            ValueError: If any evaluation points are outside the B-spline domain.

        Example:
            >>> bspline = BsplineSpace1D([0, 0, 0, 0.25, 0.7, 0.7, 1, 1, 1], 2)
            >>> values, _, first = bspline.tabulate_basis([0.0, 0.5, 0.75, 1.0])
            >>> first
            array([0, 1, 3, 3])
        """
        pts = _normalize_points_1D(pts).astype(self.dtype, copy=False)

        if not np.all(_is_in_domain_impl(self._knots, self._degree, pts, self._tol)):
            raise ValueError(
                f"One or more values in pts are outside the knot vector domain {self.domain}"
            )

        spans = _find_spans_impl(self._knots, self._degree, pts)
        values, derivs = _tabulate_Bspline_basis_on_spans_impl(
            self._knots, self._degree, spans, pts, gradient
        )
        return values, derivs, spans - self._degree

    def evaluate_on_elements(
        self,
        quad_nodes: npt.ArrayLike,
        gradient: bool = True,
    ) -> UnivariateBasis:
        """Evaluate the basis functions element by element.

        The nodes of every element are evaluated on that element's knot span,
        so nodes lying on element boundaries get the element's own functions.

        Args:
            quad_nodes (npt.ArrayLike): Nodes of shape (nqn, nel), where column
                ``e`` holds the nodes of element ``e``.
            gradient (bool): Whether to compute the first derivatives. Defaults to True.

        Returns:
            UnivariateBasis: The per-element basis record.

        Raises:
            ValueError: If `quad_nodes` is not a 2D array with one column per
                element, or if some node lies outside its element.
        """
        nodes = np.asarray(quad_nodes, dtype=self.dtype)
        if nodes.ndim != 2 or nodes.shape[1] != self.num_intervals:  # noqa: PLR2004
            raise ValueError(
                f"quad_nodes must have shape (nqn, {self.num_intervals}), got {nodes.shape}"
            )

        breaks = self.breaks
        tol = self._tol
        if np.any(nodes < breaks[:-1] - tol) or np.any(nodes > breaks[1:] + tol):
            raise ValueError("All nodes must lie inside their element")

        nqn, nel = nodes.shape
        order = self._degree + 1

        # Element-major flattening, so that each element's nodes are contiguous.
        pts = np.ascontiguousarray(nodes.T).reshape(-1)
        spans = np.repeat(self.element_spans, nqn)
        values, derivs = _tabulate_Bspline_basis_on_spans_impl(
            self._knots, self._degree, spans, pts, gradient
        )

        shape_functions = values.reshape(nel, nqn, order).transpose(1, 2, 0)
        shape_function_gradients = (
            None if derivs is None else derivs.reshape(nel, nqn, order).transpose(1, 2, 0)
        )

        first_basis = self.element_spans - self._degree
        connectivity = first_basis[np.newaxis, :] + np.arange(order)[:, np.newaxis]

        return UnivariateBasis(
            nsh=np.full(nel, order, dtype=np.int_),
            nsh_max=order,
            ndof=self.num_basis,
            connectivity=connectivity.astype(np.int_),
            shape_functions=np.ascontiguousarray(shape_functions),
            shape_function_gradients=(
                None
                if shape_function_gradients is None
                else np.ascontiguousarray(shape_function_gradients)
            ),
        )
