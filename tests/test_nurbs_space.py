"""Tests for the NurbsSpace2D rational space descriptor."""

from __future__ import annotations

import numpy as np
import numpy.testing as nptest
import pytest

from isoslice.bspline_space_1D import BsplineSpace1D, create_uniform_open_knot_vector
from isoslice.geometry import create_quarter_annulus_geometry, create_rectangle_geometry
from isoslice.mesh import StructuredMesh2D
from isoslice.nurbs_space import NurbsSpace2D
from isoslice.slice import SliceOptions, evaluate_col, evaluate_row


@pytest.fixture
def spaces() -> tuple[BsplineSpace1D, BsplineSpace1D]:
    space_u = BsplineSpace1D(create_uniform_open_knot_vector(3, 2), 2)
    space_v = BsplineSpace1D(create_uniform_open_knot_vector(2, 1), 1)
    return space_u, space_v


@pytest.fixture
def mesh(spaces: tuple[BsplineSpace1D, BsplineSpace1D]) -> StructuredMesh2D:
    space_u, space_v = spaces
    return StructuredMesh2D(
        space_u.breaks, space_v.breaks, create_quarter_annulus_geometry(), nqn_dir=(3, 2)
    )


@pytest.fixture
def space(
    spaces: tuple[BsplineSpace1D, BsplineSpace1D], mesh: StructuredMesh2D
) -> NurbsSpace2D:
    space_u, space_v = spaces
    weights = np.linspace(1.0, 2.0, space_u.num_basis * space_v.num_basis)
    return NurbsSpace2D(space_u, space_v, weights, mesh)


class TestNurbsSpace2DSizes:
    """Tests for the sizes and univariate records of NurbsSpace2D."""

    def test_sizes(self, space: NurbsSpace2D) -> None:
        """Test the sizes derived from the univariate spaces."""
        assert space.ndof_dir == (5, 3)
        assert space.ndof == 15  # noqa: PLR2004
        assert space.nsh_max == 6  # noqa: PLR2004
        nptest.assert_array_equal(space.nsh, np.full(6, 6))
        assert space.dtype == np.dtype(np.float64)

    def test_univariate_records(self, space: NurbsSpace2D, mesh: StructuredMesh2D) -> None:
        """Test that the univariate bases carry values and gradients."""
        assert space.spu.shape_functions.shape == (3, 3, 3)
        assert space.spv.shape_functions.shape == (2, 2, 2)
        assert space.spu.shape_function_gradients is not None
        assert space.spv.shape_function_gradients is not None
        assert space.mesh is mesh

    def test_connectivity(self, space: NurbsSpace2D) -> None:
        """Test the tensor-product connectivity with u as the fast index."""
        conn = space.connectivity
        assert conn.shape == (6, 6)
        # Element (iu, iv) = (2, 1), slot (a, b) = (1, 1): function (3, 2).
        element = 2 + 3 * 1
        slot = 1 + 3 * 1
        assert conn[slot, element] == 3 + 5 * 2
        nptest.assert_array_equal(conn[:, 0], [0, 1, 2, 5, 6, 7])

    def test_connectivity_with_reduced_continuity(self, mesh: StructuredMesh2D) -> None:
        """Test the connectivity of C^0 knot vectors."""
        space_u = BsplineSpace1D(create_uniform_open_knot_vector(3, 2, continuity=0), 2)
        space_v = BsplineSpace1D(create_uniform_open_knot_vector(2, 1), 1)
        space = NurbsSpace2D(space_u, space_v, np.ones(7 * 3), mesh)
        # With C^0 knots, element iu starts at function 2 * iu.
        nptest.assert_array_equal(space.connectivity[:3, :3], [[0, 2, 4], [1, 3, 5], [2, 4, 6]])

    def test_every_function_appears(self, space: NurbsSpace2D) -> None:
        """Test that every basis function is active on some element."""
        nptest.assert_array_equal(np.unique(space.connectivity), np.arange(space.ndof))


class TestNurbsSpace2DWeights:
    """Tests for weight handling."""

    def test_grid_shaped_weights(
        self, spaces: tuple[BsplineSpace1D, BsplineSpace1D], mesh: StructuredMesh2D
    ) -> None:
        """Test that grid-shaped weights are flattened with u as the fast index."""
        grid = np.arange(1.0, 16.0).reshape(3, 5)
        space = NurbsSpace2D(*spaces, grid, mesh)
        # u is the fast index
        assert space.weights[1 + 5 * 2] == grid[2, 1]

    def test_get_weights(self, space: NurbsSpace2D) -> None:
        """Test the weight lookup, with zero at unused slots."""
        weights = space.get_weights(np.array([[0, -1], [14, 3]]))
        nptest.assert_allclose(weights, [[1.0, 0.0], [2.0, space.weights[3]]])
        assert weights.dtype == space.dtype

    def test_get_weights_out_of_range(self, space: NurbsSpace2D) -> None:
        """Test that out of range indices are rejected."""
        with pytest.raises(IndexError):
            space.get_weights([15])
        with pytest.raises(IndexError):
            space.get_weights([-2])

    def test_wrong_size(
        self, spaces: tuple[BsplineSpace1D, BsplineSpace1D], mesh: StructuredMesh2D
    ) -> None:
        """Test that the number of weights must match the number of functions."""
        with pytest.raises(ValueError, match="weights must have 15 entries"):
            NurbsSpace2D(*spaces, np.ones(14), mesh)

    @pytest.mark.parametrize("bad", [-1.0, np.nan, np.inf])
    def test_invalid_values(
        self, spaces: tuple[BsplineSpace1D, BsplineSpace1D], mesh: StructuredMesh2D, bad: float
    ) -> None:
        """Test that negative and non-finite weights are rejected."""
        weights = np.ones(15)
        weights[4] = bad
        with pytest.raises(ValueError, match="finite and non-negative"):
            NurbsSpace2D(*spaces, weights, mesh)


class TestNurbsSpace2DValidation:
    """Tests for the consistency checks between spaces and mesh."""

    def test_mesh_breaks_must_match(self, spaces: tuple[BsplineSpace1D, BsplineSpace1D]) -> None:
        """Test that the mesh must match the knot breaks."""
        mesh = StructuredMesh2D([0.0, 0.5, 1.0], [0.0, 0.5, 1.0], create_rectangle_geometry())
        with pytest.raises(ValueError, match="direction 0 do not match"):
            NurbsSpace2D(*spaces, np.ones(15), mesh)

    def test_dtypes_must_match(self, spaces: tuple[BsplineSpace1D, BsplineSpace1D]) -> None:
        """Test that the spaces and mesh must share a dtype."""
        space_u, space_v = spaces
        mesh = StructuredMesh2D(
            space_u.breaks, space_v.breaks, create_rectangle_geometry(dtype=np.float32)
        )
        with pytest.raises(ValueError, match="same data type"):
            NurbsSpace2D(space_u, space_v, np.ones(15), mesh)

    def test_get_connectivity(self, space: NurbsSpace2D) -> None:
        """Test the connectivity lookup of some elements."""
        nptest.assert_array_equal(space.get_connectivity([4, 1]), space.connectivity[:, [4, 1]])
        with pytest.raises(IndexError):
            space.get_connectivity([6])


class TestNurbsSpace2DEvaluation:
    """The evaluation methods delegate to the slice evaluators."""

    def test_evaluate_row(self, space: NurbsSpace2D, mesh: StructuredMesh2D) -> None:
        """Test that evaluate_row delegates to the row evaluator."""
        result, elements = space.evaluate_row(1)
        expected, expected_elements = evaluate_row(space, mesh, 1)
        nptest.assert_array_equal(elements, expected_elements)
        nptest.assert_array_equal(result["shape_functions"], expected["shape_functions"])

    def test_evaluate_col(self, space: NurbsSpace2D, mesh: StructuredMesh2D) -> None:
        """Test that evaluate_col delegates to the column evaluator."""
        result, elements = space.evaluate_col(2, SliceOptions(value=False))
        expected, expected_elements = evaluate_col(space, mesh, 2, SliceOptions(value=False))
        nptest.assert_array_equal(elements, expected_elements)
        assert "shape_functions" not in result
        nptest.assert_array_equal(
            result["shape_function_gradients"], expected["shape_function_gradients"]
        )

    def test_evaluate_slice(self, space: NurbsSpace2D) -> None:
        """Test that columns are numbered from 1."""
        _, elements = space.evaluate_slice(1, direction="col")
        nptest.assert_array_equal(elements, [0, 3])
