"""Tests for BsplineSpace1D and its per-element evaluation."""

from __future__ import annotations

import numpy as np
import numpy.testing as nptest
import numpy.typing as npt
import pytest
from scipy.interpolate import BSpline

from isoslice._bspline_basis_core import _tabulate_Bspline_basis_on_spans_impl
from isoslice.bspline_space_1D import (
    BsplineSpace1D,
    UnivariateBasis,
    create_uniform_open_knot_vector,
)
from isoslice.quad import create_element_quadrature_1D
from isoslice.tolerance import get_machine_epsilon


def _scipy_basis(
    knots: npt.NDArray[np.float64], degree: int, pts: npt.NDArray[np.float64]
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Evaluate all the basis functions (and derivatives) with scipy, shape (n_pts, n)."""
    n = knots.size - degree - 1
    values = np.empty((pts.size, n))
    derivs = np.empty((pts.size, n))
    for i in range(n):
        coefs = np.zeros(n)
        coefs[i] = 1.0
        spline = BSpline(knots, coefs, degree)
        values[:, i] = spline(pts)
        derivs[:, i] = spline.derivative()(pts)
    return values, derivs


def _scatter_local(
    local: npt.NDArray[np.float64], first: npt.NDArray[np.int_], n: int
) -> npt.NDArray[np.float64]:
    """Place local basis values (n_pts, order) into a dense (n_pts, n) array."""
    dense = np.zeros((local.shape[0], n))
    for i, (row, f) in enumerate(zip(local, first, strict=True)):
        dense[i, f : f + local.shape[1]] = row
    return dense


class TestBsplineSpace1DInit:
    """Test BsplineSpace1D initialization and validation."""

    def test_valid_initialization(self) -> None:
        """Test initialization with an open quadratic knot vector."""
        knots = [0.0, 0.0, 0.0, 1.0, 1.0, 1.0]
        space = BsplineSpace1D(knots, 2)

        assert space.degree == 2  # noqa: PLR2004
        assert space.dtype == np.dtype(np.float64)
        nptest.assert_array_equal(space.knots, np.array(knots))

    def test_integer_knots_are_converted(self) -> None:
        """Test that integer knots are converted to float64."""
        space = BsplineSpace1D(np.array([0, 0, 1, 2, 2]), 1)
        assert space.dtype == np.dtype(np.float64)

    def test_float32_knots_keep_dtype(self) -> None:
        """Test that float32 knots keep their dtype."""
        space = BsplineSpace1D(np.array([0, 0, 1, 1], dtype=np.float32), 1)
        assert space.dtype == np.dtype(np.float32)

    def test_negative_degree(self) -> None:
        """Test that a negative degree is rejected."""
        with pytest.raises(ValueError, match="degree must be non-negative"):
            BsplineSpace1D([0.0, 1.0], -1)

    def test_too_few_knots(self) -> None:
        """Test that the knot vector must be long enough for the degree."""
        with pytest.raises(ValueError, match="at least 2\\*degree\\+2"):
            BsplineSpace1D([0.0, 0.0, 1.0, 1.0], 2)

    def test_decreasing_knots(self) -> None:
        """Test that knots must be non-decreasing."""
        with pytest.raises(ValueError, match="non-decreasing"):
            BsplineSpace1D([0.0, 0.0, 1.0, 0.5, 1.0, 1.0], 1)

    def test_empty_domain(self) -> None:
        """Test that the domain must be non-empty."""
        with pytest.raises(ValueError, match="non-empty domain"):
            BsplineSpace1D([0.0, 0.0, 0.0, 0.0], 1)

    def test_wrong_container(self) -> None:
        """Test that tuples are not accepted as knots."""
        with pytest.raises(TypeError, match="1D numpy array or Python list"):
            BsplineSpace1D((0.0, 0.0, 1.0, 1.0), 1)  # type: ignore[arg-type]

    def test_2D_knots(self) -> None:
        """Test that knots must be one-dimensional."""
        with pytest.raises(TypeError, match="1D numpy array or Python list"):
            BsplineSpace1D(np.zeros((2, 4)), 1)

    def test_knot_snapping(self) -> None:
        """Test that nearly coincident knots are merged unless disabled."""
        knots = [0.0, 0.0, 0.5, 0.5 + 1e-16, 1.0, 1.0]
        space = BsplineSpace1D(knots, 1)
        assert space.knots[2] == space.knots[3]
        assert space.num_intervals == 2  # noqa: PLR2004
        space_raw = BsplineSpace1D(knots, 1, snap_knots=False)
        assert space_raw.knots[2] < space_raw.knots[3]


class TestBsplineSpace1DProperties:
    """Test the derived properties of BsplineSpace1D."""

    space = BsplineSpace1D([0.0, 0.0, 0.0, 0.25, 0.7, 0.7, 1.0, 1.0, 1.0], 2)

    def test_num_basis(self) -> None:
        """Test the number of basis functions."""
        assert self.space.num_basis == 6  # noqa: PLR2004
        assert self.space.ndof == self.space.num_basis

    def test_breaks(self) -> None:
        """Test the distinct knot values."""
        nptest.assert_allclose(self.space.breaks, [0.0, 0.25, 0.7, 1.0])
        assert self.space.num_intervals == 3  # noqa: PLR2004

    def test_domain(self) -> None:
        """Test the parametric domain."""
        assert self.space.domain == (0.0, 1.0)

    def test_element_spans(self) -> None:
        """Test the span index of every element."""
        nptest.assert_array_equal(self.space.element_spans, [2, 3, 5])

    def test_unique_knots_and_multiplicity(self) -> None:
        """Test the unique knots and their multiplicities."""
        unique, mult = self.space.get_unique_knots_and_multiplicity()
        nptest.assert_allclose(unique, [0.0, 0.25, 0.7, 1.0])
        nptest.assert_array_equal(mult, [3, 1, 2, 3])


class TestTabulateBasis:
    """Test BsplineSpace1D.tabulate_basis against scipy."""

    @pytest.mark.parametrize(
        ("knots", "degree"),
        [
            ([0.0, 0.0, 1.0, 1.0], 1),
            ([0.0, 0.0, 0.0, 0.25, 0.7, 0.7, 1.0, 1.0, 1.0], 2),
            (list(create_uniform_open_knot_vector(5, 3, domain=(-1.0, 2.0))), 3),
            (list(create_uniform_open_knot_vector(3, 4, continuity=1)), 4),
        ],
    )
    def test_values_and_derivatives_match_scipy(self, knots: list[float], degree: int) -> None:
        """Test values and derivatives against scipy BSpline."""
        space = BsplineSpace1D(knots, degree)
        start, end = (float(d) for d in space.domain)
        pts = np.linspace(start, end, 23)[1:-1]

        values, derivs, first = space.tabulate_basis(pts, gradient=True)
        assert derivs is not None
        assert values.shape == (pts.size, degree + 1)

        ref_values, ref_derivs = _scipy_basis(np.asarray(knots), degree, pts)
        n = space.num_basis
        nptest.assert_allclose(_scatter_local(values, first, n), ref_values, atol=1e-12)
        nptest.assert_allclose(_scatter_local(derivs, first, n), ref_derivs, atol=1e-10)

    @pytest.mark.parametrize("dtype", [np.float32, np.float64])
    def test_partition_of_unity(self, dtype: npt.DTypeLike) -> None:
        """Test that values sum to one and derivatives to zero."""
        knots = create_uniform_open_knot_vector(4, 3, dtype=dtype)
        space = BsplineSpace1D(knots, 3)
        pts = np.linspace(0.0, 1.0, 17, dtype=dtype)

        values, derivs, _ = space.tabulate_basis(pts, gradient=True)
        assert derivs is not None
        tol = 1000 * get_machine_epsilon(dtype)
        nptest.assert_allclose(values.sum(axis=1), 1.0, atol=tol)
        nptest.assert_allclose(derivs.sum(axis=1), 0.0, atol=tol * 10)
        assert values.dtype == np.dtype(dtype)

    def test_no_gradient(self) -> None:
        """Test that derivatives are skipped unless requested."""
        space = BsplineSpace1D([0.0, 0.0, 1.0, 1.0], 1)
        values, derivs, first = space.tabulate_basis([0.5])
        assert derivs is None
        nptest.assert_allclose(values, [[0.5, 0.5]])
        nptest.assert_array_equal(first, [0])

    def test_first_basis_indices(self) -> None:
        """Test the index of the first non-zero function at each point."""
        space = BsplineSpace1D([0, 0, 0, 0.25, 0.7, 0.7, 1, 1, 1], 2)
        _, _, first = space.tabulate_basis([0.0, 0.5, 0.75, 1.0])
        nptest.assert_array_equal(first, [0, 1, 3, 3])

    def test_outside_domain(self) -> None:
        """Test that points outside the domain are rejected."""
        space = BsplineSpace1D([0.0, 0.0, 1.0, 1.0], 1)
        with pytest.raises(ValueError, match="outside the knot vector domain"):
            space.tabulate_basis([0.5, 1.5])


class TestEvaluateOnElements:
    """Test the per-element univariate basis records."""

    def test_shapes_and_connectivity(self) -> None:
        """Test the sizes and connectivity of the element record."""
        space = BsplineSpace1D(create_uniform_open_knot_vector(4, 2), 2)
        nodes, _ = create_element_quadrature_1D(space.breaks, 3)
        basis = space.evaluate_on_elements(nodes)

        assert isinstance(basis, UnivariateBasis)
        assert basis.nel == 4  # noqa: PLR2004
        assert basis.nqn == 3  # noqa: PLR2004
        assert basis.nsh_max == 3  # noqa: PLR2004
        assert basis.ndof == 6  # noqa: PLR2004
        nptest.assert_array_equal(basis.nsh, [3, 3, 3, 3])
        nptest.assert_array_equal(
            basis.connectivity, [[0, 1, 2, 3], [1, 2, 3, 4], [2, 3, 4, 5]]
        )
        assert basis.shape_functions.shape == (3, 3, 4)
        assert basis.shape_function_gradients is not None
        assert basis.shape_function_gradients.shape == (3, 3, 4)
        nptest.assert_allclose(basis.shape_functions.sum(axis=1), 1.0, atol=1e-14)

    def test_matches_tabulate_basis(self) -> None:
        """Test that element records match pointwise tabulation."""
        space = BsplineSpace1D([0, 0, 0, 0.25, 0.7, 0.7, 1, 1, 1], 2)
        nodes, _ = create_element_quadrature_1D(space.breaks, 4)
        basis = space.evaluate_on_elements(nodes)
        assert basis.shape_function_gradients is not None

        for e in range(basis.nel):
            values, derivs, first = space.tabulate_basis(nodes[:, e], gradient=True)
            assert derivs is not None
            nptest.assert_array_equal(first, basis.connectivity[0, e])
            nptest.assert_allclose(basis.shape_functions[:, :, e], values, atol=1e-14)
            nptest.assert_allclose(basis.shape_function_gradients[:, :, e], derivs, atol=1e-12)

    def test_boundary_nodes_use_own_element(self) -> None:
        """Test that nodes on a break use the element they belong to."""
        # C^0 quadratic: the derivative of function 2 jumps from 4 to -4 at u = 0.5.
        space = BsplineSpace1D(create_uniform_open_knot_vector(2, 2, continuity=0), 2)
        nodes, _ = create_element_quadrature_1D(space.breaks, 3, "gauss-lobatto-legendre")
        basis = space.evaluate_on_elements(nodes)
        grads = basis.shape_function_gradients
        assert grads is not None

        nptest.assert_array_equal(basis.connectivity[:, 0], [0, 1, 2])
        nptest.assert_array_equal(basis.connectivity[:, 1], [2, 3, 4])
        nptest.assert_allclose(basis.shape_functions[-1, 2, 0], 1.0)
        nptest.assert_allclose(basis.shape_functions[0, 0, 1], 1.0)
        nptest.assert_allclose(grads[-1, 2, 0], 4.0)
        nptest.assert_allclose(grads[0, 0, 1], -4.0)

    def test_without_gradients(self) -> None:
        """Test that gradients are skipped unless requested."""
        space = BsplineSpace1D(create_uniform_open_knot_vector(2, 1), 1)
        nodes, _ = create_element_quadrature_1D(space.breaks, 2)
        assert space.evaluate_on_elements(nodes, gradient=False).shape_function_gradients is None

    def test_wrong_number_of_elements(self) -> None:
        """Test that the node array must have one column per element."""
        space = BsplineSpace1D(create_uniform_open_knot_vector(2, 1), 1)
        with pytest.raises(ValueError, match="quad_nodes must have shape"):
            space.evaluate_on_elements(np.full((2, 3), 0.5))

    def test_node_outside_element(self) -> None:
        """Test that nodes must lie inside their element."""
        space = BsplineSpace1D(create_uniform_open_knot_vector(2, 1), 1)
        nodes = np.array([[0.25, 0.25], [0.4, 0.9]])
        with pytest.raises(ValueError, match="inside their element"):
            space.evaluate_on_elements(nodes)


class TestTabulateOnSpans:
    """Test the span-wise basis kernel wrapper."""

    knots = np.array([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0])

    def test_allocates_its_own_arrays(self) -> None:
        """Test that values and derivatives are fresh arrays of the knot dtype."""
        spans = np.array([2, 3], dtype=np.int_)
        pts = np.array([0.25, 0.75])
        values, derivs = _tabulate_Bspline_basis_on_spans_impl(
            self.knots, 2, spans, pts, gradient=True
        )
        assert derivs is not None
        assert values.shape == derivs.shape == (2, 3)
        assert values.dtype == self.knots.dtype
        assert not np.shares_memory(values, derivs)
        nptest.assert_allclose(values.sum(axis=1), 1.0, atol=1e-15)
        nptest.assert_allclose(derivs.sum(axis=1), 0.0, atol=1e-13)

    def test_no_gradient(self) -> None:
        """Test that derivatives are None unless requested."""
        values, derivs = _tabulate_Bspline_basis_on_spans_impl(
            self.knots, 2, np.array([2], dtype=np.int_), np.array([0.0])
        )
        assert derivs is None
        nptest.assert_allclose(values, [[1.0, 0.0, 0.0]], atol=1e-15)

    def test_mismatched_spans_and_points(self) -> None:
        """Test that one span is required per point."""
        with pytest.raises(ValueError, match="same size"):
            _tabulate_Bspline_basis_on_spans_impl(
                self.knots, 2, np.array([2, 3], dtype=np.int_), np.array([0.25])
            )
