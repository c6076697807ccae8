"""Tensor-product broadcast, rational weighting and gradient kernels of slice evaluation.

All the functions in this module work on dense per-slice tensors with the
following axis conventions:

- univariate tensors have shape (nqn_dir, nsh_dir, ne_dir);
- bivariate tensors have shape (nqn, nsh_max, ne), where the node index is
  ``qu + nqnu * qv`` and the shape slot index is ``a + nsh_u * b``;
- gradients have shape (2, nqn, nsh_max, ne), the leading axis running over
  the (parametric or physical) directions;
- Jacobians have shape (2, 2, nqn, ne), entry ``[i, j]`` being the derivative
  of the i-th physical coordinate along the j-th parametric direction.

The u direction is always the fast index, no matter which direction the
slice fixes, so that the slot ordering matches the connectivity table.
"""

from __future__ import annotations

from typing import Literal

import numpy as np
import numpy.typing as npt

from .errors import DegenerateBasisError, SingularJacobianError, SliceIndexError
from .tolerance import get_machine_epsilon, get_smallest_normal

SliceDirection = Literal["row", "col"]


def _check_direction(direction: str) -> None:
    """Check that `direction` is either "row" or "col".

    Raises:
        ValueError: If the direction is not valid.
    """
    if direction not in ("row", "col"):
        raise ValueError(f"direction must be 'row' or 'col'; got {direction!r}")


def _select_slice_elements_impl(
    nel_dir: tuple[int, int], index: int, direction: SliceDirection
) -> npt.NDArray[np.int_]:
    """Compute the flat indices of the elements of a row or a column.

    Slices are numbered from 1. Row ``k`` fixes the v index to ``k - 1`` and
    runs along u; column ``k`` fixes the u index to ``k - 1`` and runs along
    v. Element ``(iu, iv)`` has the 0-based flat index ``iu + nelu * iv``.

    Args:
        nel_dir (tuple[int, int]): Number of elements along u and v.
        index (int): Row number in [1, nelv] or column number in [1, nelu].
        direction (SliceDirection): Either "row" or "col".

    Returns:
        npt.NDArray[np.int_]: Element indices, ordered along the varying direction.

    Raises:
        SliceIndexError: If `index` is out of range.
        ValueError: If `direction` is not valid.
    """
    _check_direction(direction)
    nelu, nelv = (int(n) for n in nel_dir)

    if direction == "row":
        if not 1 <= index <= nelv:
            raise SliceIndexError(f"Row number {index} out of range [1, {nelv}]")
        return nelu * (index - 1) + np.arange(nelu, dtype=np.int_)

    if not 1 <= index <= nelu:
        raise SliceIndexError(f"Column number {index} out of range [1, {nelu}]")
    return (index - 1) + nelu * np.arange(nelv, dtype=np.int_)


def _restrict_to_slice(
    tensor_u: npt.NDArray[np.float32 | np.float64],
    tensor_v: npt.NDArray[np.float32 | np.float64],
    index: int,
    direction: SliceDirection,
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Keep only slice number `index` along the fixed direction (as an axis of length 1)."""
    pos = index - 1
    if direction == "row":
        return tensor_u, tensor_v[:, :, pos : pos + 1]
    return tensor_u[:, :, pos : pos + 1], tensor_v


def _broadcast_tensor_product(
    tensor_u: npt.NDArray[np.float32 | np.float64],
    tensor_v: npt.NDArray[np.float32 | np.float64],
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Expand two univariate tensors into two bivariate tensors of identical shape.

    The fixed direction is the one whose element axis has length 1: it is
    replicated across all the elements of the slice. Each tensor is also
    replicated across the nodes and shape slots of the other direction.

    Args:
        tensor_u (npt.NDArray[np.float32 | np.float64]): Array of shape
            (nqnu, nsh_u, ne_u).
        tensor_v (npt.NDArray[np.float32 | np.float64]): Array of shape
            (nqnv, nsh_v, ne_v).

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
            The broadcast u and v tensors, both of shape
            (nqnu * nqnv, nsh_u * nsh_v, max(ne_u, ne_v)).

    Raises:
        ValueError: If the element axes are incompatible.
    """
    nqnu, nsh_u, ne_u = tensor_u.shape
    nqnv, nsh_v, ne_v = tensor_v.shape
    if ne_u != ne_v and 1 not in (ne_u, ne_v):
        raise ValueError(f"Incompatible element axes: {ne_u} and {ne_v}")
    ne = max(ne_u, ne_v)

    # (qv, qu, b, a, e): C-order flattening makes u the fast index.
    full_shape = (nqnv, nqnu, nsh_v, nsh_u, ne)
    flat_shape = (nqnv * nqnu, nsh_v * nsh_u, ne)

    broad_u = np.broadcast_to(tensor_u[np.newaxis, :, np.newaxis, :, :], full_shape)
    broad_v = np.broadcast_to(tensor_v[:, np.newaxis, :, np.newaxis, :], full_shape)

    return broad_u.reshape(flat_shape), broad_v.reshape(flat_shape)


def _compute_rational_values(
    weights: npt.NDArray[np.float32 | np.float64],
    values_u: npt.NDArray[np.float32 | np.float64],
    values_v: npt.NDArray[np.float32 | np.float64],
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Compute the rational basis values and their common denominator.

    Args:
        weights (npt.NDArray[np.float32 | np.float64]): Weights of shape
            (nsh_max, ne), zero for unused slots.
        values_u (npt.NDArray[np.float32 | np.float64]): Broadcast u values of
            shape (nqn, nsh_max, ne).
        values_v (npt.NDArray[np.float32 | np.float64]): Broadcast v values of
            shape (nqn, nsh_max, ne).

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
            The rational values of shape (nqn, nsh_max, ne) and the denominator
            of shape (nqn, 1, ne).

    Raises:
        DegenerateBasisError: If the denominator vanishes (or is not finite)
            at some node.
    """
    raw = weights[np.newaxis, :, :] * values_u * values_v
    denominator = np.sum(raw, axis=1, keepdims=True)

    tiny = get_smallest_normal(denominator.dtype)
    bad = ~np.isfinite(denominator) | (np.abs(denominator) < tiny)
    if np.any(bad):
        _, bad_elems = np.nonzero(bad[:, 0, :])
        raise DegenerateBasisError(
            "The rational denominator vanishes at "
            f"{int(np.count_nonzero(bad))} node(s) of the slice elements at "
            f"positions {np.unique(bad_elems).tolist()}; check that the weights "
            "of the active functions are positive"
        )

    return raw / denominator, denominator


def _compute_rational_gradients(  # noqa: PLR0913
    weights: npt.NDArray[np.float32 | np.float64],
    rational: npt.NDArray[np.float32 | np.float64],
    denominator: npt.NDArray[np.float32 | np.float64],
    values_u: npt.NDArray[np.float32 | np.float64],
    values_v: npt.NDArray[np.float32 | np.float64],
    grads_u: npt.NDArray[np.float32 | np.float64],
    grads_v: npt.NDArray[np.float32 | np.float64],
) -> npt.NDArray[np.float32 | np.float64]:
    """Compute the parametric gradients of the rational basis by the quotient rule.

    With ``B_u = w * dN_u * N_v`` and ``B_v = w * N_u * dN_v``, the derivatives are
    ``dR/du = (B_u - R * sum(B_u)) / D`` and ``dR/dv = (B_v - R * sum(B_v)) / D``,
    where ``R`` and ``D`` are the values and denominator computed by
    `_compute_rational_values`.

    Returns:
        npt.NDArray[np.float32 | np.float64]: Array of shape (2, nqn, nsh_max, ne).
    """
    w = weights[np.newaxis, :, :]
    gradients = np.empty((2, *rational.shape), dtype=rational.dtype)
    for d, B in enumerate((w * grads_u * values_v, w * values_u * grads_v)):
        dsum = np.sum(B, axis=1, keepdims=True)
        gradients[d] = (B - rational * dsum) / denominator
    return gradients


def _invert_transpose_jacobian(
    jacobian: npt.NDArray[np.float32 | np.float64],
) -> npt.NDArray[np.float32 | np.float64]:
    """Compute the inverse transpose of a field of 2x2 Jacobians.

    Args:
        jacobian (npt.NDArray[np.float32 | np.float64]): Array of shape (2, 2, ...).

    Returns:
        npt.NDArray[np.float32 | np.float64]: Array of the same shape.

    Raises:
        SingularJacobianError: If some Jacobian is (numerically) singular.
    """
    J00, J01 = jacobian[0, 0], jacobian[0, 1]
    J10, J11 = jacobian[1, 0], jacobian[1, 1]

    diag = J00 * J11
    off = J01 * J10
    det = diag - off

    eps = get_machine_epsilon(jacobian.dtype)
    scale = np.maximum(np.abs(diag), np.abs(off))
    singular = ~np.isfinite(det) | (np.abs(det) <= eps * scale)
    if np.any(singular):
        raise SingularJacobianError(
            f"The geometry Jacobian is singular at {int(np.count_nonzero(singular))} "
            "evaluation point(s)"
        )

    # inv(J)^T = [[J11, -J10], [-J01, J00]] / det
    return np.stack((np.stack((J11, -J10)), np.stack((-J01, J00)))) / det


def _push_forward_gradients_impl(
    gradients: npt.NDArray[np.float32 | np.float64],
    jacobian: npt.NDArray[np.float32 | np.float64],
) -> npt.NDArray[np.float32 | np.float64]:
    """Map parametric gradients (2, nqn, nsh, ne) with Jacobians (2, 2, nqn, ne)."""
    if gradients.ndim != 4 or gradients.shape[0] != 2:  # noqa: PLR2004
        raise ValueError(f"gradients must have shape (2, nqn, nsh, ne); got {gradients.shape}")
    expected = (2, 2, gradients.shape[1], gradients.shape[3])
    if jacobian.shape != expected:
        raise ValueError(f"jacobian must have shape {expected}; got {jacobian.shape}")

    inv_t = _invert_transpose_jacobian(jacobian)
    return np.einsum("ijqe,jqse->iqse", inv_t, gradients)


__all__ = [
    "SliceDirection",
    "_broadcast_tensor_product",
    "_check_direction",
    "_compute_rational_gradients",
    "_compute_rational_values",
    "_invert_transpose_jacobian",
    "_push_forward_gradients_impl",
    "_restrict_to_slice",
    "_select_slice_elements_impl",
]
