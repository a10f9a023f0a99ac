"""
tensorcore: tensor, matrix and vector arithmetic on interchangeable backends.

Element-wise arithmetic, dot products, norms, matrix-vector and
matrix-matrix multiplication and transposition over Tensor, Matrix and
Vector containers, executed by one of three backends:

    cpu:  reference loops, the correctness baseline
    simd: chunked vector-width numpy kernels
    gpu:  PyTorch device kernels (CUDA, MPS) with CPU fallback

Submodules:
    core: containers, validation, exceptions, allocators, device detection
    backends: CPU, SIMD and GPU backends
    context: the TensorContext facade
    ops: named element-wise functions
"""

__version__ = "0.1.0"

from tensorcore import ops
from tensorcore.context import TensorContext
from tensorcore.core.containers import Matrix, Tensor, Vector
from tensorcore.core.exceptions import (
    BackendError,
    InvalidDimensionsError,
    InvalidTypeError,
    LengthMismatchError,
    OutOfBoundsError,
    OutOfMemoryError,
    ShapeMismatchError,
    TensorCoreError,
)
from tensorcore.backends import CPUBackend, GPUBackend, GPUContext, SIMDBackend

__all__ = [
    "__version__",
    "ops",
    "TensorContext",
    "Tensor",
    "Matrix",
    "Vector",
    "CPUBackend",
    "SIMDBackend",
    "GPUBackend",
    "GPUContext",
    "TensorCoreError",
    "ShapeMismatchError",
    "LengthMismatchError",
    "InvalidDimensionsError",
    "InvalidTypeError",
    "OutOfBoundsError",
    "BackendError",
    "OutOfMemoryError",
]
