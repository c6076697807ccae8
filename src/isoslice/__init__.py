"""Public API surface for isoslice.

Defines package metadata and exported interfaces.
"""

import logging
from typing import Final

# Private API imports (accessible but not in __all__)
# Users can access private functions via: isoslice._slice_impl._function_name, etc.
from . import (
    _basis_utils,  # noqa: F401
    _slice_impl,  # noqa: F401
)

# Public API imports
from .bspline_space_1D import BsplineSpace1D, UnivariateBasis, create_uniform_open_knot_vector
from .errors import (
    DegenerateBasisError,
    InvalidOptionListError,
    SingularJacobianError,
    SliceEvaluationError,
    SliceIndexError,
    UnknownOptionError,
)
from .geometry import NurbsGeometry2D, create_quarter_annulus_geometry, create_rectangle_geometry
from .mesh import StructuredMesh2D
from .nurbs_space import NurbsSpace2D
from .quad import (
    QuadratureRule,
    create_element_quadrature_1D,
    get_gauss_legendre_quadrature_1D,
    get_gauss_lobatto_legendre_quadrature_1D,
)
from .slice import (
    SliceDirection,
    SliceOptions,
    SliceResult,
    evaluate_col,
    evaluate_row,
    evaluate_slice,
    iterate_slices,
    map_gradients_to_physical,
    push_forward_gradients,
    select_slice_elements,
)
from .tolerance import (
    get_knot_tolerance,
    get_machine_epsilon,
    get_smallest_normal,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Package metadata
__version__: Final[str] = "0.1.0"
__license__: Final[str] = "MIT"
__author__: Final[str] = "Pablo Antolin <pablo.antolin@epfl.ch>"

# Public interface: only functions/classes that don't start with _
__all__ = [
    "BsplineSpace1D",
    "DegenerateBasisError",
    "InvalidOptionListError",
    "NurbsGeometry2D",
    "NurbsSpace2D",
    "QuadratureRule",
    "SingularJacobianError",
    "SliceDirection",
    "SliceEvaluationError",
    "SliceIndexError",
    "SliceOptions",
    "SliceResult",
    "StructuredMesh2D",
    "UnivariateBasis",
    "UnknownOptionError",
    "__author__",
    "__license__",
    "__version__",
    "create_element_quadrature_1D",
    "create_quarter_annulus_geometry",
    "create_rectangle_geometry",
    "create_uniform_open_knot_vector",
    "evaluate_col",
    "evaluate_row",
    "evaluate_slice",
    "get_gauss_legendre_quadrature_1D",
    "get_gauss_lobatto_legendre_quadrature_1D",
    "get_knot_tolerance",
    "get_machine_epsilon",
    "get_smallest_normal",
    "iterate_slices",
    "map_gradients_to_physical",
    "push_forward_gradients",
    "select_slice_elements",
]
