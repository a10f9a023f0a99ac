"""
Core infrastructure for tensorcore.

Shared abstractions used by every backend and by the TensorContext facade.

Key components:
    containers: Tensor, Matrix, Vector
    validation: Shape and compatibility checks
    protocols: Backend protocol
    exceptions: Exception hierarchy
    allocator: Buffer allocators
    device: Hardware detection
"""

from tensorcore.core.allocator import (
    Allocator,
    FailingAllocator,
    NumpyAllocator,
    TrackingAllocator,
)
from tensorcore.core.containers import Matrix, NumericBuffer, Tensor, Vector
from tensorcore.core.exceptions import (
    BackendError,
    DimensionError,
    InvalidDimensionsError,
    InvalidTypeError,
    LengthMismatchError,
    OutOfBoundsError,
    OutOfMemoryError,
    ShapeMismatchError,
    TensorCoreError,
    ValidationError,
)
from tensorcore.core.protocols import Backend
from tensorcore.core.validation import ensure_equal_shape

__all__ = [
    # Containers
    "Tensor",
    "Matrix",
    "Vector",
    "NumericBuffer",
    # Allocators
    "Allocator",
    "NumpyAllocator",
    "TrackingAllocator",
    "FailingAllocator",
    # Protocols
    "Backend",
    # Validation
    "ensure_equal_shape",
    # Exceptions
    "TensorCoreError",
    "ValidationError",
    "DimensionError",
    "ShapeMismatchError",
    "LengthMismatchError",
    "InvalidDimensionsError",
    "InvalidTypeError",
    "OutOfBoundsError",
    "BackendError",
    "OutOfMemoryError",
]
