"""Planar tensor-product NURBS geometry maps."""

from __future__ import annotations

import numpy as np
from numpy import typing as npt

from .bspline_space_1D import BsplineSpace1D, create_uniform_open_knot_vector


class NurbsGeometry2D:
    """A planar geometry map given by a tensor-product NURBS.

    The map sends the parametric domain of ``space_u x space_v`` to the
    physical plane. Control points and weights are numbered with the u index
    running fastest, i.e., the global index of the function ``(iu, iv)`` is
    ``iu + ndof_u * iv``.
    """

    def __init__(
        self,
        space_u: BsplineSpace1D,
        space_v: BsplineSpace1D,
        control_points: npt.ArrayLike,
        weights: npt.ArrayLike | None = None,
    ) -> None:
        """Initialize the geometry map.

        Args:
            space_u (BsplineSpace1D): B-spline space along the first parametric direction.
            space_v (BsplineSpace1D): B-spline space along the second parametric direction.
            control_points (npt.ArrayLike): Control points with shape (ndof, 2) or
                (ndof_v, ndof_u, 2).
            weights (npt.ArrayLike | None): Positive weights with shape (ndof,) or
                (ndof_v, ndof_u). If None, the map is polynomial (all weights one).

        Raises:
            ValueError: If the spaces have different dtypes, or control points
                or weights have wrong sizes, or some weight is not positive.
        """
        if space_u.dtype != space_v.dtype:
            raise ValueError("All B-spline spaces must have the same data type.")

        self._space_u = space_u
        self._space_v = space_v
        shape = (space_v.num_basis, space_u.num_basis)
        ndof = shape[0] * shape[1]

        ctrl = np.asarray(control_points, dtype=space_u.dtype)
        if ctrl.size != 2 * ndof or ctrl.shape[-1] != 2:  # noqa: PLR2004
            raise ValueError(
                f"control_points must have shape ({ndof}, 2) or {(*shape, 2)}; "
                f"got {ctrl.shape}"
            )
        self._control_points = ctrl.reshape(*shape, 2)

        self._is_rational = weights is not None
        if weights is None:
            w = np.ones(shape, dtype=space_u.dtype)
        else:
            w = np.asarray(weights, dtype=space_u.dtype)
            if w.size != ndof:
                raise ValueError(f"weights must have {ndof} entries; got {w.size}")
            w = w.reshape(shape)
            if not np.all(w > 0):
                raise ValueError("NURBS weights must be positive")
        self._weights = w

        # Homogeneous coordinates (w x, w y, w).
        self._homogeneous = np.concatenate(
            (self._control_points * w[..., np.newaxis], w[..., np.newaxis]), axis=-1
        )

    @property
    def space_u(self) -> BsplineSpace1D:
        """The B-spline space along u."""
        return self._space_u

    @property
    def space_v(self) -> BsplineSpace1D:
        """The B-spline space along v."""
        return self._space_v

    @property
    def control_points(self) -> npt.NDArray[np.float32 | np.float64]:
        """The control points, with shape (ndof_v, ndof_u, 2)."""
        return self._control_points

    @property
    def weights(self) -> npt.NDArray[np.float32 | np.float64]:
        """The weights, with shape (ndof_v, ndof_u)."""
        return self._weights

    @property
    def is_rational(self) -> bool:
        """Whether the geometry was given with weights."""
        return self._is_rational

    @property
    def dtype(self) -> np.dtype[np.float32 | np.float64]:
        """The data type of the geometry."""
        return self._space_u.dtype

    def _grid_homogeneous(
        self,
        pts_u: npt.ArrayLike,
        pts_v: npt.ArrayLike,
        gradient: bool,
    ) -> tuple[
        npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64] | None
    ]:
        """Evaluate the homogeneous map (and its parametric derivatives) on a grid.

        Returns:
            The values of shape (npts_v, npts_u, 3) and, if `gradient` is True, the
            derivatives of shape (npts_v, npts_u, 3, 2), whose last axis runs over
            the parametric directions.
        """
        Nu, dNu, first_u = self._space_u.tabulate_basis(pts_u, gradient)
        Nv, dNv, first_v = self._space_v.tabulate_basis(pts_v, gradient)

        ids_u = first_u[:, np.newaxis] + np.arange(self._space_u.degree + 1)
        ids_v = first_v[:, np.newaxis] + np.arange(self._space_v.degree + 1)
        # (npts_v, npts_u, order_v, order_u, 3)
        local = self._homogeneous[
            ids_v[:, np.newaxis, :, np.newaxis], ids_u[np.newaxis, :, np.newaxis, :]
        ]

        values = np.einsum("jb,ia,jibac->jic", Nv, Nu, local)
        if not gradient:
            return values, None

        assert dNu is not None and dNv is not None
        derivs = np.stack(
            (
                np.einsum("jb,ia,jibac->jic", Nv, dNu, local),
                np.einsum("jb,ia,jibac->jic", dNv, Nu, local),
            ),
            axis=-1,
        )
        return values, derivs

    def grid_eval(
        self, pts_u: npt.ArrayLike, pts_v: npt.ArrayLike
    ) -> npt.NDArray[np.float32 | np.float64]:
        """Evaluate the map on the tensor grid ``pts_u x pts_v``.

        Args:
            pts_u (npt.ArrayLike): Points along u.
            pts_v (npt.ArrayLike): Points along v.

        Returns:
            npt.NDArray[np.float32 | np.float64]: Physical points with shape
            (npts_v, npts_u, 2).

        Raises:
            ValueError: If some point lies outside the parametric domain.
        """
        values, _ = self._grid_homogeneous(pts_u, pts_v, gradient=False)
        return values[..., :2] / values[..., 2:]

    def grid_jacobian(
        self, pts_u: npt.ArrayLike, pts_v: npt.ArrayLike
    ) -> npt.NDArray[np.float32 | np.float64]:
        """Evaluate the Jacobian of the map on the tensor grid ``pts_u x pts_v``.

        Args:
            pts_u (npt.ArrayLike): Points along u.
            pts_v (npt.ArrayLike): Points along v.

        Returns:
            npt.NDArray[np.float32 | np.float64]: Jacobians with shape
            (npts_v, npts_u, 2, 2), where entry ``[..., i, j]`` is the derivative
            of the i-th physical coordinate along the j-th parametric direction.

        Raises:
            ValueError: If some point lies outside the parametric domain.
        """
        values, derivs = self._grid_homogeneous(pts_u, pts_v, gradient=True)
        assert derivs is not None

        V = values[..., :2, np.newaxis]
        W = values[..., 2:, np.newaxis]
        Vjac = derivs[..., :2, :]
        Wjac = derivs[..., 2:, :]
        # Quotient rule for (V/W)'
        return (Vjac * W - V * Wjac) / (W**2)


def create_rectangle_geometry(
    domain_x: tuple[float, float] = (0.0, 1.0),
    domain_y: tuple[float, float] = (0.0, 1.0),
    dtype: npt.DTypeLike = np.float64,
) -> NurbsGeometry2D:
    """Create the bilinear map from [0, 1]^2 onto an axis-aligned rectangle.

    Args:
        domain_x (tuple[float, float]): Extent along x. Defaults to (0.0, 1.0).
        domain_y (tuple[float, float]): Extent along y. Defaults to (0.0, 1.0).
        dtype (npt.DTypeLike): Floating point type. Defaults to float64.

    Returns:
        NurbsGeometry2D: The (polynomial) geometry map.
    """
    knots = create_uniform_open_knot_vector(1, 1, dtype=dtype)
    (x0, x1), (y0, y1) = domain_x, domain_y
    control_points = [[x0, y0], [x1, y0], [x0, y1], [x1, y1]]
    return NurbsGeometry2D(BsplineSpace1D(knots, 1), BsplineSpace1D(knots, 1), control_points)


def create_quarter_annulus_geometry(
    r1: float = 1.0,
    r2: float = 2.0,
    dtype: npt.DTypeLike = np.float64,
) -> NurbsGeometry2D:
    """Create an exact NURBS representation of a quarter annulus in the first quadrant.

    The u direction is radial (from `r1` to `r2`) and the v direction is angular
    (from the x axis to the y axis).

    Args:
        r1 (float): Inner radius. Defaults to 1.0.
        r2 (float): Outer radius. Defaults to 2.0.
        dtype (npt.DTypeLike): Floating point type. Defaults to float64.

    Returns:
        NurbsGeometry2D: The rational geometry map.

    Raises:
        ValueError: If the radii are not positive and increasing.
    """
    if not 0.0 < r1 < r2:
        raise ValueError("radii must satisfy 0 < r1 < r2")

    space_u = BsplineSpace1D(create_uniform_open_knot_vector(1, 1, dtype=dtype), 1)
    space_v = BsplineSpace1D(create_uniform_open_knot_vector(1, 2, dtype=dtype), 2)
    control_points = [
        [r1, 0.0],
        [r2, 0.0],
        [r1, r1],
        [r2, r2],
        [0.0, r1],
        [0.0, r2],
    ]
    s = 1.0 / np.sqrt(2.0)
    weights = [1.0, 1.0, s, s, 1.0, 1.0]
    return NurbsGeometry2D(space_u, space_v, control_points, weights)
