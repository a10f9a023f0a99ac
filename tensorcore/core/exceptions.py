"""
Exception hierarchy for tensorcore.

All exceptions inherit from TensorCoreError to allow catching any
library-specific error.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Shape and type errors are raised before any data is touched
"""

from typing import Any


class TensorCoreError(Exception):
    """Base exception for all tensorcore errors."""
    pass


class ValidationError(TensorCoreError):
    """
    Operand validation failed.

    Raised when containers handed to an operation fail a compatibility
    check. Always raised before any output is written.
    """
    pass


class DimensionError(ValidationError):
    """
    Container dimensions are incorrect or inconsistent.

    Attributes:
        expected: The shape (or length) the operation required
        actual: The shape (or length) it was given
    """

    def __init__(
        self,
        message: str,
        expected: Any = None,
        actual: Any = None,
    ):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ShapeMismatchError(DimensionError):
    """Operand or output shapes disagree (Tensor and Matrix operands)."""
    pass


class LengthMismatchError(DimensionError):
    """Vector lengths disagree."""
    pass


class InvalidDimensionsError(DimensionError):
    """
    Declared shape does not match the supplied buffer.

    Raised at construction when product(shape) != len(data).
    """
    pass


class InvalidTypeError(ValidationError):
    """
    Operands are of incompatible kinds or element types.

    Raised when a Matrix is compared against a Vector, when element types
    differ, when a scalar does not match the element type, or when a
    container is defined over a non-numeric element type.
    """
    pass


class OutOfBoundsError(TensorCoreError, IndexError):
    """
    Indexed access outside the container's extents.

    Attributes:
        index: The offending index
        shape: The container shape
    """

    def __init__(self, message: str, index: tuple[int, ...], shape: tuple[int, ...]):
        super().__init__(message)
        self.index = index
        self.shape = shape


class BackendError(TensorCoreError):
    """
    Device-level failure on the GPU path.

    Raised for missing kernel pipelines, failed buffer creation or copies,
    a missing result, or a buffer returned to the pool twice.
    """
    pass


class OutOfMemoryError(TensorCoreError, MemoryError):
    """
    Buffer allocation failed.

    Attributes:
        nbytes: Size of the failed request in bytes, if known
    """

    def __init__(self, message: str, nbytes: int | None = None):
        super().__init__(message)
        self.nbytes = nbytes
