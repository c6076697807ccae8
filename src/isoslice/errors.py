"""Exceptions raised by slice evaluation.

Every exception derives from `SliceEvaluationError` and from the builtin
exception that best describes it, so callers can catch either.
"""

import numpy as np


class SliceEvaluationError(Exception):
    """Base class of all slice evaluation errors."""


class SliceIndexError(SliceEvaluationError, IndexError):
    """The requested row or column does not exist in the element grid."""


class InvalidOptionListError(SliceEvaluationError, ValueError):
    """Options were not given as complete key/value pairs."""


class UnknownOptionError(SliceEvaluationError, ValueError):
    """An option key is not recognized."""


class DegenerateBasisError(SliceEvaluationError, ZeroDivisionError):
    """The rational denominator vanishes at some evaluation point.

    This indicates an invalid weight configuration, e.g., zero weights on
    all the active functions of an element.
    """


class SingularJacobianError(SliceEvaluationError, np.linalg.LinAlgError):
    """The geometry Jacobian is not invertible at some evaluation point."""
