"""Structured 2D mesh with tensor-product quadrature and a geometry map."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np
from numpy import typing as npt

from .quad import QuadratureRule, create_element_quadrature_1D

if TYPE_CHECKING:
    from .geometry import NurbsGeometry2D


class StructuredMesh2D:
    """A structured grid of ``nelu x nelv`` elements of the parametric domain.

    Elements are numbered with the u index running fastest: element ``(iu, iv)``
    has flat index ``iu + nelu * iv``. The same convention applies to the
    tensor-product quadrature nodes within an element: node ``(qu, qv)`` has
    index ``qu + nqnu * qv``.

    The mesh owns the geometry map and provides its Jacobian at the quadrature
    nodes of any subset of elements.
    """

    def __init__(
        self,
        breaks_u: npt.ArrayLike,
        breaks_v: npt.ArrayLike,
        geometry: NurbsGeometry2D,
        nqn_dir: Sequence[int] = (3, 3),
        rule: QuadratureRule = "gauss-legendre",
    ) -> None:
        """Initialize the mesh.

        Args:
            breaks_u (npt.ArrayLike): Strictly increasing element boundaries along u.
            breaks_v (npt.ArrayLike): Strictly increasing element boundaries along v.
            geometry (NurbsGeometry2D): The geometry map. Its parametric domain must
                contain the mesh.
            nqn_dir (Sequence[int]): Number of quadrature nodes per element along
                each direction. Defaults to (3, 3).
            rule (QuadratureRule): Quadrature rule. Defaults to "gauss-legendre".

        Raises:
            ValueError: If the breaks, the number of nodes or the rule are invalid.
        """
        if len(nqn_dir) != 2:  # noqa: PLR2004
            raise ValueError("nqn_dir must contain two values")

        # Breaks are cast to the geometry's dtype.
        breaks_u = np.asarray(breaks_u, dtype=geometry.dtype)
        breaks_v = np.asarray(breaks_v, dtype=geometry.dtype)

        self._geometry = geometry
        self._breaks = (breaks_u, breaks_v)
        self._quad_u = create_element_quadrature_1D(breaks_u, int(nqn_dir[0]), rule)
        self._quad_v = create_element_quadrature_1D(breaks_v, int(nqn_dir[1]), rule)

    @property
    def geometry(self) -> NurbsGeometry2D:
        """The geometry map."""
        return self._geometry

    @property
    def dtype(self) -> np.dtype[np.float32 | np.float64]:
        """The floating point type of the mesh."""
        return self._geometry.dtype

    @property
    def breaks(
        self,
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
        """The element boundaries along u and v."""
        return self._breaks

    @property
    def nelu(self) -> int:
        """Number of elements along u."""
        return int(self._breaks[0].size - 1)

    @property
    def nelv(self) -> int:
        """Number of elements along v."""
        return int(self._breaks[1].size - 1)

    @property
    def nel_dir(self) -> tuple[int, int]:
        """Number of elements along each direction."""
        return (self.nelu, self.nelv)

    @property
    def nel(self) -> int:
        """Total number of elements."""
        return self.nelu * self.nelv

    @property
    def nqnu(self) -> int:
        """Number of quadrature nodes per element along u."""
        return int(self._quad_u[0].shape[0])

    @property
    def nqnv(self) -> int:
        """Number of quadrature nodes per element along v."""
        return int(self._quad_v[0].shape[0])

    @property
    def nqn_dir(self) -> tuple[int, int]:
        """Number of quadrature nodes per element along each direction."""
        return (self.nqnu, self.nqnv)

    @property
    def nqn(self) -> int:
        """Number of quadrature nodes per element."""
        return self.nqnu * self.nqnv

    @property
    def quad_nodes_u(self) -> npt.NDArray[np.float32 | np.float64]:
        """Quadrature nodes along u, with shape (nqnu, nelu)."""
        return self._quad_u[0]

    @property
    def quad_nodes_v(self) -> npt.NDArray[np.float32 | np.float64]:
        """Quadrature nodes along v, with shape (nqnv, nelv)."""
        return self._quad_v[0]

    @property
    def quad_weights_u(self) -> npt.NDArray[np.float32 | np.float64]:
        """Quadrature weights along u, with shape (nqnu, nelu)."""
        return self._quad_u[1]

    @property
    def quad_weights_v(self) -> npt.NDArray[np.float32 | np.float64]:
        """Quadrature weights along v, with shape (nqnv, nelv)."""
        return self._quad_v[1]

    def element_indices(
        self, elements: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.int_], npt.NDArray[np.int_]]:
        """Split flat element indices into their (iu, iv) grid indices.

        Args:
            elements (npt.ArrayLike): Flat element indices.

        Returns:
            tuple[npt.NDArray[np.int_], npt.NDArray[np.int_]]: The u and v indices.

        Raises:
            IndexError: If some index is out of range.
        """
        elements = np.asarray(elements, dtype=np.int_)
        if np.any(elements < 0) or np.any(elements >= self.nel):
            raise IndexError(f"Element indices must be in [0, {self.nel})")
        iv, iu = np.divmod(elements, self.nelu)
        return iu, iv

    def element_index(self, iu: int, iv: int) -> int:
        """Get the flat index of element ``(iu, iv)``."""
        if not (0 <= iu < self.nelu and 0 <= iv < self.nelv):
            raise IndexError(f"Element ({iu}, {iv}) is out of range {self.nel_dir}")
        return iu + self.nelu * iv

    def _element_jacobian(self, iu: int, iv: int) -> npt.NDArray[np.float32 | np.float64]:
        """Jacobian at the nodes of element ``(iu, iv)``, with shape (2, 2, nqn)."""
        jac = self._geometry.grid_jacobian(self.quad_nodes_u[:, iu], self.quad_nodes_v[:, iv])
        # (nqnv, nqnu, 2, 2) -> (nqn, 2, 2), u fastest
        return jac.reshape(self.nqn, 2, 2).transpose(1, 2, 0)

    def geo_map_jac(self, elements: npt.ArrayLike) -> npt.NDArray[np.float32 | np.float64]:
        """Evaluate the Jacobian of the geometry map at the nodes of some elements.

        Args:
            elements (npt.ArrayLike): Flat element indices.

        Returns:
            npt.NDArray[np.float32 | np.float64]: Array of shape
            (2, 2, nqn, len(elements)), where entry ``[i, j, q, e]`` is the
            derivative of the i-th physical coordinate along the j-th parametric
            direction at node ``q`` of element ``elements[e]``.

        Raises:
            IndexError: If some element index is out of range.
        """
        iu, iv = self.element_indices(elements)
        jac = np.empty((2, 2, self.nqn, iu.size), dtype=self.dtype)
        for pos, (eu, ev) in enumerate(zip(iu.tolist(), iv.tolist(), strict=True)):
            jac[..., pos] = self._element_jacobian(eu, ev)
        return jac

    def quad_weights(self, elements: npt.ArrayLike) -> npt.NDArray[np.float32 | np.float64]:
        """Get the parametric tensor-product quadrature weights of some elements.

        Args:
            elements (npt.ArrayLike): Flat element indices.

        Returns:
            npt.NDArray[np.float32 | np.float64]: Array of shape (nqn, len(elements)).

        Raises:
            IndexError: If some element index is out of range.
        """
        iu, iv = self.element_indices(elements)
        wu = self.quad_weights_u[:, iu]
        wv = self.quad_weights_v[:, iv]
        return (wv[:, np.newaxis, :] * wu[np.newaxis, :, :]).reshape(self.nqn, iu.size)
