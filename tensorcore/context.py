"""
TensorContext: the public operation surface.

A TensorContext binds an allocator and one backend, chosen at
construction and never switched per call. It exposes container factories
and every backend operation in up to three forms:

    add(a, b)               allocates and returns a new result
    add_in_place(a, b)      writes the result into a
    add_with_out(a, b, out) writes into a caller-supplied output

Allocating forms create a result matching the operands, delegate to the
backend, and release the result again if the backend raises, so a failed
call never leaks an allocation.

Example:
    >>> import numpy as np
    >>> from tensorcore import TensorContext
    >>>
    >>> ctx = TensorContext.create('simd')
    >>> a = ctx.matrix_from_owned_data(np.arange(1, 7, dtype=np.float32), 2, 3)
    >>> b = ctx.matrix_from_owned_data(np.arange(7, 13, dtype=np.float32), 3, 2)
    >>> ctx.matrix_multiply(a, b).to_numpy()
    array([[ 58.,  64.],
           [139., 154.]], dtype=float32)
"""

from __future__ import annotations

import warnings
from typing import Any, Callable, Literal, Sequence

from numpy.typing import DTypeLike, NDArray

from tensorcore import ops
from tensorcore.core.allocator import Allocator, default_allocator
from tensorcore.core.containers import Matrix, NumericBuffer, Tensor, Vector
from tensorcore.core.device import select_device
from tensorcore.core.exceptions import BackendError
from tensorcore.core.protocols import Backend, BinaryFn, UnaryFn
from tensorcore.core.validation import check_kind
from tensorcore.backends.cpu import CPUBackend
from tensorcore.backends.simd import SIMDBackend
from tensorcore.backends.gpu import GPUBackend, GPUContext

# Type alias for backend selection
BackendChoice = Literal['auto', 'cpu', 'simd', 'gpu']


def _empty_like(a: NumericBuffer, allocator: Allocator) -> NumericBuffer:
    check_kind(a, NumericBuffer, 'a')
    if isinstance(a, Matrix):
        return Matrix.empty(a.rows, a.columns, a.dtype, allocator)
    if isinstance(a, Vector):
        return Vector.empty(a.length, a.dtype, allocator)
    return Tensor.empty(a.shape, a.dtype, allocator)


def _elementwise(fn: BinaryFn) -> tuple[Callable, Callable, Callable]:
    """Build the allocating, in-place and with-out methods for one op."""

    def allocating(self: TensorContext, a, b):
        return self.op(a, b, fn)

    def in_place(self: TensorContext, a, b) -> None:
        self.op_in_place(a, b, fn)

    def with_out(self: TensorContext, a, b, out) -> None:
        self.op_with_out(a, b, out, fn)

    name = fn.__name__
    allocating.__name__ = name
    allocating.__doc__ = f"Element-wise {name} into a new container."
    in_place.__name__ = f"{name}_in_place"
    in_place.__doc__ = f"Element-wise {name}, result written into a."
    with_out.__name__ = f"{name}_with_out"
    with_out.__doc__ = f"Element-wise {name}, result written into out."
    return allocating, in_place, with_out


class TensorContext:
    """
    Facade binding an allocator and a backend.

    Args:
        backend: Backend instance (CPUBackend, SIMDBackend, GPUBackend)
        allocator: Allocator for containers created by this context.
            Defaults to the process-wide numpy allocator.
    """

    def __init__(self, backend: Backend, allocator: Allocator | None = None):
        self.backend = backend
        self.allocator = allocator if allocator is not None else default_allocator()

    @classmethod
    def create(
        cls,
        backend: BackendChoice = 'auto',
        *,
        allocator: Allocator | None = None,
        gpu_context: GPUContext | None = None,
    ) -> TensorContext:
        """
        Build a context for a named backend.

        Args:
            backend: Computational backend to use:
                - 'auto': GPU if a device is available, else SIMD
                - 'cpu': Reference backend
                - 'simd': Chunked vector-width backend
                - 'gpu': GPU backend; falls back to SIMD per call when no
                  device can be initialized
            allocator: Allocator for containers created by the context
            gpu_context: Device context for the GPU backend. Initialized
                here if it is not already; a new one is created if None.

        Returns:
            TensorContext bound to the selected backend

        Raises:
            ValueError: If unknown backend specified
        """
        if backend == 'auto':
            device = select_device('auto')
            if device.is_gpu or gpu_context is not None:
                return cls(cls._gpu_backend(gpu_context, warn=False), allocator)
            return cls(SIMDBackend(), allocator)

        elif backend == 'cpu':
            return cls(CPUBackend(), allocator)

        elif backend == 'simd':
            return cls(SIMDBackend(), allocator)

        elif backend == 'gpu':
            return cls(cls._gpu_backend(gpu_context, warn=True), allocator)

        else:
            raise ValueError(f"Unknown backend: {backend!r}")

    @staticmethod
    def _gpu_backend(gpu_context: GPUContext | None, warn: bool) -> GPUBackend:
        ctx = gpu_context if gpu_context is not None else GPUContext()
        try:
            ctx.init()
        except BackendError as e:
            if warn:
                warnings.warn(f"{e}; GPU backend will run on the CPU")
        return GPUBackend(ctx)

    @property
    def backend_name(self) -> str:
        return self.backend.name

    # === Factories ===

    def tensor_empty(self, shape: Sequence[int], dtype: DTypeLike) -> Tensor:
        return Tensor.empty(shape, dtype, self.allocator)

    def tensor_zeros(self, shape: Sequence[int], dtype: DTypeLike) -> Tensor:
        return Tensor.zeros(shape, dtype, self.allocator)

    def tensor_splat(self, shape: Sequence[int], value: Any, dtype: DTypeLike) -> Tensor:
        return Tensor.splat(shape, value, dtype, self.allocator)

    def tensor_from_owned_data(self, data: NDArray, shape: Sequence[int]) -> Tensor:
        return Tensor.from_owned_data(data, shape)

    def matrix_empty(self, rows: int, columns: int, dtype: DTypeLike) -> Matrix:
        return Matrix.empty(rows, columns, dtype, self.allocator)

    def matrix_zeros(self, rows: int, columns: int, dtype: DTypeLike) -> Matrix:
        return Matrix.zeros(rows, columns, dtype, self.allocator)

    def matrix_splat(self, rows: int, columns: int, value: Any, dtype: DTypeLike) -> Matrix:
        return Matrix.splat(rows, columns, value, dtype, self.allocator)

    def matrix_from_owned_data(self, data: NDArray, rows: int, columns: int) -> Matrix:
        return Matrix.from_owned_data(data, rows, columns)

    def vector_empty(self, length: int, dtype: DTypeLike) -> Vector:
        return Vector.empty(length, dtype, self.allocator)

    def vector_zeros(self, length: int, dtype: DTypeLike) -> Vector:
        return Vector.zeros(length, dtype, self.allocator)

    def vector_splat(self, length: int, value: Any, dtype: DTypeLike) -> Vector:
        return Vector.splat(length, value, dtype, self.allocator)

    def vector_from_owned_data(self, data: NDArray, length: int | None = None) -> Vector:
        return Vector.from_owned_data(data, length)

    # === Element-wise ===

    def op(self, a: NumericBuffer, b: NumericBuffer, fn: BinaryFn) -> NumericBuffer:
        result = _empty_like(a, self.allocator)
        try:
            self.backend.op(a, b, result, fn)
        except BaseException:
            result.release()
            raise
        return result

    def op_in_place(self, a: NumericBuffer, b: NumericBuffer, fn: BinaryFn) -> None:
        self.backend.op(a, b, a, fn)

    def op_with_out(self, a: NumericBuffer, b: NumericBuffer, out: NumericBuffer, fn: BinaryFn) -> None:
        self.backend.op(a, b, out, fn)

    add, add_in_place, add_with_out = _elementwise(ops.add)
    subtract, subtract_in_place, subtract_with_out = _elementwise(ops.subtract)
    multiply, multiply_in_place, multiply_with_out = _elementwise(ops.multiply)
    divide, divide_in_place, divide_with_out = _elementwise(ops.divide)

    def map(self, a: NumericBuffer, fn: UnaryFn) -> NumericBuffer:
        """
        Apply fn to every element into a new container.

        fn may work on arrays (ufuncs, arithmetic) or only on scalars, like
        math.sqrt. The vectorized backends hand fn whole array chunks and
        switch to per-element calls when fn rejects them, so scalar-only
        functions run at CPU-loop speed.
        """
        result = _empty_like(a, self.allocator)
        try:
            self.backend.map(a, result, fn)
        except BaseException:
            result.release()
            raise
        return result

    def map_in_place(self, a: NumericBuffer, fn: UnaryFn) -> None:
        self.backend.map(a, a, fn)

    def map_with_out(self, a: NumericBuffer, out: NumericBuffer, fn: UnaryFn) -> None:
        self.backend.map(a, out, fn)

    def scalar_multiply(self, a: NumericBuffer, scalar: Any) -> NumericBuffer:
        result = _empty_like(a, self.allocator)
        try:
            self.backend.scalar_multiply(a, scalar, result)
        except BaseException:
            result.release()
            raise
        return result

    def scalar_multiply_in_place(self, a: NumericBuffer, scalar: Any) -> None:
        self.backend.scalar_multiply(a, scalar, a)

    def scalar_multiply_with_out(self, a: NumericBuffer, scalar: Any, out: NumericBuffer) -> None:
        self.backend.scalar_multiply(a, scalar, out)

    # === Vector reductions ===

    def vector_dot(self, a: Vector, b: Vector) -> Any:
        return self.backend.vector_dot(a, b)

    def vector_norm(self, v: Vector) -> Any:
        return self.backend.vector_norm(v)

    # === Matrix operations ===

    def matrix_vector_multiply(self, m: Matrix, v: Vector) -> Vector:
        check_kind(m, Matrix, 'm')
        check_kind(v, Vector, 'v')
        result = Vector.empty(m.rows, v.dtype, self.allocator)
        try:
            self.backend.matrix_vector_multiply(m, v, result)
        except BaseException:
            result.release()
            raise
        return result

    def matrix_vector_multiply_with_out(self, m: Matrix, v: Vector, out: Vector) -> None:
        self.backend.matrix_vector_multiply(m, v, out)

    def matrix_multiply(self, a: Matrix, b: Matrix) -> Matrix:
        check_kind(a, Matrix, 'a')
        check_kind(b, Matrix, 'b')
        result = Matrix.empty(a.rows, b.columns, a.dtype, self.allocator)
        try:
            self.backend.matrix_multiply(a, b, result)
        except BaseException:
            result.release()
            raise
        return result

    def matrix_multiply_with_out(self, a: Matrix, b: Matrix, out: Matrix) -> None:
        self.backend.matrix_multiply(a, b, out)

    def matrix_transpose(self, m: Matrix) -> Matrix:
        check_kind(m, Matrix, 'm')
        result = Matrix.empty(m.columns, m.rows, m.dtype, self.allocator)
        try:
            self.backend.matrix_transpose(m, result)
        except BaseException:
            result.release()
            raise
        return result

    def matrix_transpose_with_out(self, m: Matrix, out: Matrix) -> None:
        self.backend.matrix_transpose(m, out)

    def __repr__(self) -> str:
        return f"TensorContext(backend={self.backend.name!r})"
