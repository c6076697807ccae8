"""Row and column evaluation of bivariate NURBS bases.

A slice is a row (fixed v index) or a column (fixed u index) of the element
grid of a `StructuredMesh2D`. Rows and columns are numbered from 1, while
element and basis function indices start at 0. Evaluating one slice at a time bounds the
memory of the shape function tensors by ``nqn * nsh_max * nelu`` (or
``nelv``) instead of ``nqn * nsh_max * nel``, and lets independent slices
be evaluated concurrently.

Example:
    >>> result, elements = evaluate_row(space, mesh, 1)
    >>> result["shape_functions"].shape
    (9, 9, 4)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, TypedDict

import numpy as np
import numpy.typing as npt

from ._slice_impl import (
    SliceDirection,
    _broadcast_tensor_product,
    _check_direction,
    _compute_rational_gradients,
    _compute_rational_values,
    _push_forward_gradients_impl,
    _restrict_to_slice,
    _select_slice_elements_impl,
)
from .errors import InvalidOptionListError, UnknownOptionError

if TYPE_CHECKING:
    from .mesh import StructuredMesh2D
    from .nurbs_space import NurbsSpace2D

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SliceOptions:
    """Outputs requested from a slice evaluation.

    Attributes:
        value (bool): Whether to compute the shape functions. Defaults to True.
        gradient (bool): Whether to compute the shape function gradients.
            Defaults to True.
    """

    value: bool = True
    gradient: bool = True

    def __post_init__(self) -> None:
        """Validate that every option is a boolean.

        Raises:
            TypeError: If some option is not a boolean.
        """
        for field in fields(self):
            flag = getattr(self, field.name)
            if not isinstance(flag, bool | np.bool_):
                raise TypeError(
                    f"Option {field.name!r} must be a boolean; got {type(flag).__name__}"
                )
            object.__setattr__(self, field.name, bool(flag))

    @classmethod
    def from_mapping(cls, options: Mapping[str, bool]) -> SliceOptions:
        """Create the options from a mapping of option names to flags.

        Option names are case-insensitive.

        Args:
            options (Mapping[str, bool]): The options to set. Unset ones keep
                their defaults.

        Returns:
            SliceOptions: The validated options.

        Raises:
            UnknownOptionError: If some option name is not recognized.
            TypeError: If some flag is not a boolean.
        """
        known = {field.name for field in fields(cls)}
        flags: dict[str, bool] = {}
        for key, flag in options.items():
            name = key.lower() if isinstance(key, str) else key
            if name not in known:
                raise UnknownOptionError(
                    f"Unknown option {key!r}; expected one of {sorted(known)}"
                )
            flags[name] = flag
        return cls(**flags)

    @classmethod
    def from_pairs(cls, *args: object) -> SliceOptions:
        """Create the options from a flat sequence of name/flag pairs.

        Later pairs override earlier ones with the same name.

        Example:
            >>> SliceOptions.from_pairs("value", False, "Gradient", True)
            SliceOptions(value=False, gradient=True)

        Raises:
            InvalidOptionListError: If the arguments are not complete pairs, or
                some name is not a string.
            UnknownOptionError: If some option name is not recognized.
            TypeError: If some flag is not a boolean.
        """
        if len(args) % 2 != 0:
            raise InvalidOptionListError(
                "Options must be passed as (name, value) pairs; "
                f"got an odd number ({len(args)}) of arguments"
            )
        pairs: dict[str, bool] = {}
        for key, flag in zip(args[::2], args[1::2], strict=True):
            if not isinstance(key, str):
                raise InvalidOptionListError(f"Option names must be strings; got {key!r}")
            pairs[key.lower()] = flag  # type: ignore[assignment]
        return cls.from_mapping(pairs)


class _SliceResultRequired(TypedDict):
    nsh_max: int
    nsh: npt.NDArray[np.int_]
    ndof: int
    ndof_dir: tuple[int, int]
    connectivity: npt.NDArray[np.int_]
    ncomp: int
    physical_gradients: bool


class SliceResult(_SliceResultRequired, total=False):
    """Shape function data of the elements of one slice.

    The optional keys are present only when requested.

    Attributes:
        nsh_max (int): Maximum number of shape functions per element.
        nsh (npt.NDArray[np.int_]): Number of shape functions of each element.
        ndof (int): Total number of degrees of freedom of the space.
        ndof_dir (tuple[int, int]): Degrees of freedom along u and v.
        connectivity (npt.NDArray[np.int_]): Global indices of the shape
            functions, of shape (nsh_max, ne), ``-1`` for unused slots.
        ncomp (int): Number of components of the shape functions (always 1).
        physical_gradients (bool): Whether the gradients are taken with respect
            to the physical coordinates (True) or the parametric ones (False).
        shape_functions (npt.NDArray[np.float32 | np.float64]): Values of shape
            (nqn, nsh_max, ne).
        shape_function_gradients (npt.NDArray[np.float32 | np.float64]): Gradients
            of shape (2, nqn, nsh_max, ne).
    """

    shape_functions: npt.NDArray[np.float32 | np.float64]
    shape_function_gradients: npt.NDArray[np.float32 | np.float64]


def _resolve_options(options: SliceOptions | Mapping[str, bool] | None) -> SliceOptions:
    if options is None:
        return SliceOptions()
    if isinstance(options, SliceOptions):
        return options
    if isinstance(options, Mapping):
        return SliceOptions.from_mapping(options)
    raise TypeError(
        f"options must be SliceOptions, a mapping or None; got {type(options).__name__}"
    )


def _check_mesh(space: NurbsSpace2D, mesh: StructuredMesh2D) -> None:
    if space.mesh is mesh:
        return
    if mesh.nel_dir != space.mesh.nel_dir or mesh.nqn_dir != space.mesh.nqn_dir:
        raise ValueError(
            f"The mesh ({mesh.nel_dir} elements, {mesh.nqn_dir} nodes) does not match "
            f"the mesh of the space ({space.mesh.nel_dir} elements, "
            f"{space.mesh.nqn_dir} nodes)"
        )


def select_slice_elements(
    nel_dir: tuple[int, int], index: int, direction: SliceDirection = "row"
) -> npt.NDArray[np.int_]:
    """Get the flat indices of the elements of a row or a column.

    Row ``k`` is made of the ``nelu`` consecutive elements with v index
    ``k - 1``; column ``k`` is made of the ``nelv`` elements with u index
    ``k - 1``, with stride ``nelu``.

    Args:
        nel_dir (tuple[int, int]): Number of elements along u and v.
        index (int): Row number in [1, nelv] or column number in [1, nelu].
        direction (SliceDirection): Either "row" or "col". Defaults to "row".

    Returns:
        npt.NDArray[np.int_]: The element indices.

    Raises:
        SliceIndexError: If `index` is out of range.
        ValueError: If `direction` is not valid.

    Example:
        >>> select_slice_elements((3, 2), 2, "row")
        array([3, 4, 5])
        >>> select_slice_elements((3, 2), 2, "col")
        array([1, 4])
    """
    return _select_slice_elements_impl(nel_dir, int(index), direction)


def push_forward_gradients(
    gradients: npt.ArrayLike, jacobian: npt.ArrayLike
) -> npt.NDArray[np.float32 | np.float64]:
    """Map parametric gradients to physical gradients.

    Every gradient is multiplied by the inverse transpose of the Jacobian at
    its node: ``grad_x R = J^{-T} grad_u R``.

    Args:
        gradients (npt.ArrayLike): Parametric gradients of shape (2, nqn, nsh, ne).
        jacobian (npt.ArrayLike): Jacobians of shape (2, 2, nqn, ne), where entry
            ``[i, j, q, e]`` is the derivative of the i-th physical coordinate
            along the j-th parametric direction.

    Returns:
        npt.NDArray[np.float32 | np.float64]: Physical gradients of shape
        (2, nqn, nsh, ne).

    Raises:
        ValueError: If the shapes are inconsistent.
        SingularJacobianError: If some Jacobian is singular.
    """
    return _push_forward_gradients_impl(np.asarray(gradients), np.asarray(jacobian))


def map_gradients_to_physical(
    result: SliceResult, mesh: StructuredMesh2D, elements: npt.ArrayLike
) -> SliceResult:
    """Return a copy of a slice result with its gradients mapped to physical space.

    It is meant for the results of `evaluate_col`, whose gradients are
    parametric. Results whose gradients are already physical are rejected.

    Args:
        result (SliceResult): A slice result with parametric gradients.
        mesh (StructuredMesh2D): The mesh providing the geometry Jacobian.
        elements (npt.ArrayLike): The elements of the slice.

    Returns:
        SliceResult: A new result whose ``shape_function_gradients`` are physical.

    Raises:
        ValueError: If the result has no gradients, or its gradients are
            already physical.
        SingularJacobianError: If some Jacobian is singular.
    """
    if "shape_function_gradients" not in result:
        raise ValueError("The slice result has no shape function gradients")
    if result["physical_gradients"]:
        raise ValueError("The shape function gradients are already physical")

    mapped = result.copy()
    mapped["shape_function_gradients"] = push_forward_gradients(
        result["shape_function_gradients"], mesh.geo_map_jac(elements)
    )
    mapped["physical_gradients"] = True
    return mapped


def _evaluate_slice_impl(  # noqa: PLR0913
    space: NurbsSpace2D,
    mesh: StructuredMesh2D,
    index: int,
    direction: SliceDirection,
    options: SliceOptions,
    physical_gradients: bool,
) -> tuple[SliceResult, npt.NDArray[np.int_]]:
    _check_mesh(space, mesh)
    elements = select_slice_elements(mesh.nel_dir, index, direction)

    _LOGGER.debug(
        "Evaluating %s %d (%d elements): value=%s, gradient=%s",
        direction,
        index,
        elements.size,
        options.value,
        options.gradient,
    )

    spu, spv = space.spu, space.spv
    if direction == "row":
        nsh = spu.nsh * spv.nsh[index - 1]
    else:
        nsh = spu.nsh[index - 1] * spv.nsh

    connectivity = space.get_connectivity(elements)

    result = SliceResult(
        nsh_max=space.nsh_max,
        nsh=nsh,
        ndof=space.ndof,
        ndof_dir=space.ndof_dir,
        connectivity=connectivity,
        ncomp=1,
        physical_gradients=physical_gradients,
    )

    if not (options.value or options.gradient):
        return result, elements

    values_u, values_v = _broadcast_tensor_product(
        *_restrict_to_slice(spu.shape_functions, spv.shape_functions, index, direction)
    )
    weights = space.get_weights(connectivity)
    rational, denominator = _compute_rational_values(weights, values_u, values_v)

    if options.value:
        result["shape_functions"] = rational

    if options.gradient:
        if spu.shape_function_gradients is None or spv.shape_function_gradients is None:
            raise ValueError("The univariate bases were evaluated without gradients")
        grads_u, grads_v = _broadcast_tensor_product(
            *_restrict_to_slice(
                spu.shape_function_gradients, spv.shape_function_gradients, index, direction
            )
        )
        gradients = _compute_rational_gradients(
            weights, rational, denominator, values_u, values_v, grads_u, grads_v
        )
        if physical_gradients:
            gradients = _push_forward_gradients_impl(gradients, mesh.geo_map_jac(elements))
        result["shape_function_gradients"] = gradients

    return result, elements


def evaluate_row(
    space: NurbsSpace2D,
    mesh: StructuredMesh2D,
    rownum: int,
    options: SliceOptions | Mapping[str, bool] | None = None,
) -> tuple[SliceResult, npt.NDArray[np.int_]]:
    """Evaluate the rational basis on the elements of one row.

    Row ``rownum`` is made of the ``nelu`` elements with v index
    ``rownum - 1``. Gradients are mapped to physical space through the geometry
    Jacobian.

    Args:
        space (NurbsSpace2D): The rational space.
        mesh (StructuredMesh2D): The mesh the space was built on.
        rownum (int): Row number, in [1, nelv].
        options (SliceOptions | Mapping[str, bool] | None): Requested outputs.
            Defaults to values and gradients.

    Returns:
        tuple[SliceResult, npt.NDArray[np.int_]]: The slice result and the
        indices of its elements.

    Raises:
        SliceIndexError: If `rownum` is out of range.
        UnknownOptionError: If some option is not recognized.
        DegenerateBasisError: If the rational denominator vanishes.
        SingularJacobianError: If the geometry Jacobian is singular.
    """
    return _evaluate_slice_impl(
        space, mesh, int(rownum), "row", _resolve_options(options), physical_gradients=True
    )


def evaluate_col(
    space: NurbsSpace2D,
    mesh: StructuredMesh2D,
    colnum: int,
    options: SliceOptions | Mapping[str, bool] | None = None,
) -> tuple[SliceResult, npt.NDArray[np.int_]]:
    """Evaluate the rational basis on the elements of one column.

    Column ``colnum`` is made of the ``nelv`` elements with u index
    ``colnum - 1``. Gradients are left in parametric coordinates; use
    `map_gradients_to_physical` to map them.

    Args:
        space (NurbsSpace2D): The rational space.
        mesh (StructuredMesh2D): The mesh the space was built on.
        colnum (int): Column number, in [1, nelu].
        options (SliceOptions | Mapping[str, bool] | None): Requested outputs.
            Defaults to values and gradients.

    Returns:
        tuple[SliceResult, npt.NDArray[np.int_]]: The slice result and the
        indices of its elements.

    Raises:
        SliceIndexError: If `colnum` is out of range.
        UnknownOptionError: If some option is not recognized.
        DegenerateBasisError: If the rational denominator vanishes.
    """
    return _evaluate_slice_impl(
        space, mesh, int(colnum), "col", _resolve_options(options), physical_gradients=False
    )


def evaluate_slice(
    space: NurbsSpace2D,
    mesh: StructuredMesh2D,
    slice_index: int,
    options: SliceOptions | Mapping[str, bool] | None = None,
    direction: SliceDirection = "row",
) -> tuple[SliceResult, npt.NDArray[np.int_]]:
    """Evaluate the rational basis on one row or one column.

    Dispatches to `evaluate_row` or `evaluate_col`.

    Raises:
        ValueError: If `direction` is not valid.
    """
    _check_direction(direction)
    if direction == "row":
        return evaluate_row(space, mesh, slice_index, options)
    return evaluate_col(space, mesh, slice_index, options)


def iterate_slices(
    space: NurbsSpace2D,
    mesh: StructuredMesh2D,
    direction: SliceDirection = "row",
    options: SliceOptions | Mapping[str, bool] | None = None,
) -> Iterator[tuple[int, SliceResult, npt.NDArray[np.int_]]]:
    """Evaluate all the rows (or columns) of the mesh, one at a time.

    Args:
        space (NurbsSpace2D): The rational space.
        mesh (StructuredMesh2D): The mesh the space was built on.
        direction (SliceDirection): Either "row" or "col". Defaults to "row".
        options (SliceOptions | Mapping[str, bool] | None): Requested outputs.

    Yields:
        tuple[int, SliceResult, npt.NDArray[np.int_]]: The slice number (from
        1), its result and its elements.
    """
    _check_direction(direction)
    resolved = _resolve_options(options)
    num_slices = mesh.nelv if direction == "row" else mesh.nelu
    for index in range(1, num_slices + 1):
        result, elements = evaluate_slice(space, mesh, index, resolved, direction)
        yield index, result, elements
