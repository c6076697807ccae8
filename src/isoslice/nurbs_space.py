"""NurbsSpace2D: a bivariate tensor-product rational space on a structured mesh."""

from __future__ import annotations

import functools
from collections.abc import Mapping
from typing import TYPE_CHECKING

import numpy as np
from numpy import typing as npt

from .slice import (
    SliceDirection,
    SliceOptions,
    SliceResult,
    evaluate_col,
    evaluate_row,
    evaluate_slice,
)

if TYPE_CHECKING:
    from .bspline_space_1D import BsplineSpace1D, UnivariateBasis
    from .mesh import StructuredMesh2D


class NurbsSpace2D:
    """A scalar NURBS space built as the weighted tensor product of two B-spline spaces.

    The univariate bases are evaluated once, at the quadrature nodes of the
    mesh, and combined lazily one slice at a time (see `evaluate_row` and
    `evaluate_col`).

    Global basis functions are numbered with the u index running fastest:
    the function ``(iu, iv)`` has index ``iu + ndof_u * iv``. The local shape
    slot ``(a, b)`` of an element has index ``a + nsh_max_u * b``.

    Attributes:
        _space_u (BsplineSpace1D): B-spline space along u.
        _space_v (BsplineSpace1D): B-spline space along v.
        _mesh (StructuredMesh2D): The mesh the space is evaluated on.
        _spu (UnivariateBasis): Univariate basis along u at the mesh nodes.
        _spv (UnivariateBasis): Univariate basis along v at the mesh nodes.
        _weights (npt.NDArray[np.float32 | np.float64]): Weights of shape (ndof,).
    """

    _space_u: BsplineSpace1D
    _space_v: BsplineSpace1D
    _mesh: StructuredMesh2D
    _spu: UnivariateBasis
    _spv: UnivariateBasis
    _weights: npt.NDArray[np.float32 | np.float64]

    def __init__(
        self,
        space_u: BsplineSpace1D,
        space_v: BsplineSpace1D,
        weights: npt.ArrayLike,
        mesh: StructuredMesh2D,
    ) -> None:
        """Initialize the space.

        Args:
            space_u (BsplineSpace1D): B-spline space along u.
            space_v (BsplineSpace1D): B-spline space along v.
            weights (npt.ArrayLike): Non-negative weights, with shape (ndof,) or
                (ndof_v, ndof_u). They must be positive for the space to be a
                valid rational space; zero weights are accepted here and
                detected at evaluation.
            mesh (StructuredMesh2D): A mesh whose elements are the knot spans
                of the two spaces.

        Raises:
            ValueError: If the dtypes differ, the mesh does not match the knot
                spans, or the weights have a wrong size or invalid values.
        """
        if not space_u.dtype == space_v.dtype == mesh.dtype:
            raise ValueError("The B-spline spaces and the mesh must have the same data type.")

        for dir, (space, breaks) in enumerate(zip((space_u, space_v), mesh.breaks, strict=True)):
            if breaks.shape != space.breaks.shape or not np.allclose(
                breaks, space.breaks, rtol=0.0, atol=space.tolerance
            ):
                raise ValueError(
                    f"The mesh breaks along direction {dir} do not match the knot spans "
                    "of the B-spline space"
                )

        self._space_u = space_u
        self._space_v = space_v
        self._mesh = mesh
        self._spu = space_u.evaluate_on_elements(mesh.quad_nodes_u, gradient=True)
        self._spv = space_v.evaluate_on_elements(mesh.quad_nodes_v, gradient=True)

        w = np.asarray(weights, dtype=space_u.dtype)
        if w.size != self.ndof:
            raise ValueError(f"weights must have {self.ndof} entries; got {w.size}")
        w = np.ascontiguousarray(w.reshape(-1))
        if not np.all(np.isfinite(w)) or np.any(w < 0):
            raise ValueError("weights must be finite and non-negative")
        self._weights = w

    @property
    def space_u(self) -> BsplineSpace1D:
        """The B-spline space along u."""
        return self._space_u

    @property
    def space_v(self) -> BsplineSpace1D:
        """The B-spline space along v."""
        return self._space_v

    @property
    def mesh(self) -> StructuredMesh2D:
        """The mesh the space is evaluated on."""
        return self._mesh

    @property
    def spu(self) -> UnivariateBasis:
        """The univariate basis along u, evaluated at the mesh nodes."""
        return self._spu

    @property
    def spv(self) -> UnivariateBasis:
        """The univariate basis along v, evaluated at the mesh nodes."""
        return self._spv

    @property
    def dtype(self) -> np.dtype[np.float32 | np.float64]:
        """The data type of the space."""
        return self._space_u.dtype

    @property
    def ndof_dir(self) -> tuple[int, int]:
        """Number of degrees of freedom along u and v."""
        return (self._spu.ndof, self._spv.ndof)

    @property
    def ndof(self) -> int:
        """Total number of degrees of freedom."""
        return self._spu.ndof * self._spv.ndof

    @property
    def nsh_max(self) -> int:
        """Maximum number of shape functions per element."""
        return self._spu.nsh_max * self._spv.nsh_max

    @functools.cached_property
    def nsh(self) -> npt.NDArray[np.int_]:
        """Number of shape functions of every element, with shape (nel,)."""
        return (self._spv.nsh[:, np.newaxis] * self._spu.nsh[np.newaxis, :]).reshape(-1)

    @property
    def weights(self) -> npt.NDArray[np.float32 | np.float64]:
        """The weights, with shape (ndof,)."""
        return self._weights

    @functools.cached_property
    def connectivity(self) -> npt.NDArray[np.int_]:
        """Global indices of the shape functions of every element.

        Returns:
            npt.NDArray[np.int_]: Array of shape (nsh_max, nel), ``-1`` for
            unused slots.
        """
        conn_u = self._spu.connectivity
        conn_v = self._spv.connectivity
        ndof_u = self._spu.ndof

        # (b, a, iv, iu): C-order flattening gives slot a + nsh_u * b and
        # element iu + nelu * iv.
        cu = conn_u[np.newaxis, :, np.newaxis, :]
        cv = conn_v[:, np.newaxis, :, np.newaxis]
        conn = np.where((cu < 0) | (cv < 0), -1, cu + ndof_u * cv)
        return conn.reshape(self.nsh_max, -1).astype(np.int_)

    def get_weights(self, indices: npt.ArrayLike) -> npt.NDArray[np.float32 | np.float64]:
        """Look up the weights of some global basis functions.

        Args:
            indices (npt.ArrayLike): Global indices of any shape; ``-1`` marks an
                unused slot.

        Returns:
            npt.NDArray[np.float32 | np.float64]: The weights, with the shape of
            `indices` and zero at unused slots.

        Raises:
            IndexError: If some index is not in [-1, ndof).
        """
        idx = np.asarray(indices, dtype=np.int_)
        if np.any(idx < -1) or np.any(idx >= self.ndof):
            raise IndexError(f"Basis function indices must be in [0, {self.ndof})")
        used = idx >= 0
        return np.where(used, self._weights[np.where(used, idx, 0)], 0).astype(self.dtype)

    def get_connectivity(self, elements: npt.ArrayLike) -> npt.NDArray[np.int_]:
        """Get the columns of the connectivity table of some elements.

        Args:
            elements (npt.ArrayLike): Flat element indices.

        Returns:
            npt.NDArray[np.int_]: Array of shape (nsh_max, len(elements)).

        Raises:
            IndexError: If some element index is out of range.
        """
        elements = np.asarray(elements, dtype=np.int_)
        self._mesh.element_indices(elements)
        return self.connectivity[:, elements]

    def evaluate_row(
        self,
        rownum: int,
        options: SliceOptions | Mapping[str, bool] | None = None,
    ) -> tuple[SliceResult, npt.NDArray[np.int_]]:
        """Evaluate the space on one row of the mesh. See `isoslice.evaluate_row`."""
        return evaluate_row(self, self._mesh, rownum, options)

    def evaluate_col(
        self,
        colnum: int,
        options: SliceOptions | Mapping[str, bool] | None = None,
    ) -> tuple[SliceResult, npt.NDArray[np.int_]]:
        """Evaluate the space on one column of the mesh. See `isoslice.evaluate_col`."""
        return evaluate_col(self, self._mesh, colnum, options)

    def evaluate_slice(
        self,
        slice_index: int,
        options: SliceOptions | Mapping[str, bool] | None = None,
        direction: SliceDirection = "row",
    ) -> tuple[SliceResult, npt.NDArray[np.int_]]:
        """Evaluate the space on one row or column. See `isoslice.evaluate_slice`."""
        return evaluate_slice(self, self._mesh, slice_index, options, direction)
