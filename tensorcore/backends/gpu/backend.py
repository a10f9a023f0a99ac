"""
GPU backend using PyTorch.

Offloads element-wise arithmetic, dot/norm reductions, matrix-vector and
matrix-matrix multiplication and transposition to device kernels.
Supports CUDA (Linux/Windows) and MPS (macOS Apple Silicon); float32 only.

Every operation first validates shapes, then decides whether the device
path applies. The call falls back to the SIMD backend, with identical
signature and result semantics, when:
    - the GPUContext is not initialized (no device, or torn down)
    - the element type is not float32
    - the binary function has no device kernel (anything other than
      tensorcore.ops.add/subtract/multiply/divide), and for map()

On the device path each operation is one synchronous round trip:
    1. check out pool buffers (next-power-of-two sizes) for operands,
       result and dimension side buffers
    2. copy operands in, upload dimensions
    3. encode one dispatch on the operation's pipeline, commit, wait
    4. copy the result back into the output container
Pool buffers are returned on every exit path, errors included.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Any, Sequence

import numpy as np

from tensorcore import ops
from tensorcore.core import dtypes
from tensorcore.core.capabilities import (
    OP_MATRIX_MULTIPLY,
    OP_MATRIX_TRANSPOSE,
    OP_MATRIX_VECTOR_MULTIPLY,
    OP_SCALAR_MULTIPLY,
    OP_VECTOR_DOT,
    OP_VECTOR_NORM,
)
from tensorcore.core.containers import Matrix, NumericBuffer, Vector
from tensorcore.core.exceptions import BackendError
from tensorcore.core.protocols import Backend, BinaryFn, UnaryFn
from tensorcore.core.validation import (
    check_elementwise,
    check_kind,
    check_matrix_multiply_shapes,
    check_matrix_vector_shapes,
    check_transpose_shapes,
    check_vector_lengths,
    ensure_equal_shape,
)
from tensorcore.backends.simd import SIMDBackend
from tensorcore.backends.gpu.context import GPUContext

logger = logging.getLogger(__name__)


class GPUBackend:
    """
    Device backend with transparent CPU fallback.

    Implements the Backend protocol.

    Args:
        context: Device context to run on. Its lifecycle (init/teardown)
            belongs to the caller; an uninitialized context makes every
            call take the fallback path.
        fallback: Backend used when the device path does not apply.
            Defaults to SIMDBackend.
    """

    def __init__(self, context: GPUContext | None = None, fallback: Backend | None = None):
        self.context = context if context is not None else GPUContext()
        self._fallback = fallback if fallback is not None else SIMDBackend()

    @property
    def name(self) -> str:
        return 'gpu'

    @property
    def fallback(self) -> Backend:
        return self._fallback

    def _device_context(self, op_name: str, dtype: np.dtype) -> GPUContext | None:
        """The context to run on, or None when the call must fall back."""
        ctx = self.context
        if not ctx.is_initialized:
            logger.debug("%s: GPU context not initialized, using %s", op_name, self._fallback.name)
            return None
        if dtype != dtypes.GPU_DTYPE:
            logger.debug("%s: %s not supported on device, using %s", op_name, dtype, self._fallback.name)
            return None
        return ctx

    def _run(
        self,
        ctx: GPUContext,
        op_name: str,
        inputs: Sequence[np.ndarray],
        result: np.ndarray,
        grid: tuple[int, ...],
        dims: Sequence[int] = (),
        scalar: float | None = None,
    ) -> None:
        """
        One device round trip: upload, dispatch, wait, download into `result`.

        Binding order is inputs, result, then the scalar or dimension side
        buffer, matching the kernel signatures.
        """
        import torch

        pool = ctx.buffer_pool
        with ExitStack() as stack:

            def borrow(nbytes: int):
                buffer = pool.get_buffer(nbytes)
                stack.callback(pool.return_buffer, buffer)
                return buffer

            bound: list[torch.Tensor] = []
            for array in inputs:
                view = borrow(array.nbytes).view(torch.float32, array.shape[0])
                view.copy_(torch.from_numpy(array))
                bound.append(view)

            result_view = borrow(result.nbytes).view(torch.float32, result.shape[0])
            bound.append(result_view)

            if scalar is not None:
                scalar_view = borrow(4).view(torch.float32, 1)
                scalar_view.fill_(scalar)
                bound.append(scalar_view)
            if dims:
                dims_view = borrow(4 * len(dims)).view(torch.int32, len(dims))
                dims_view.copy_(torch.tensor(list(dims), dtype=torch.int32))
                bound.append(dims_view)

            command_buffer = ctx.command_queue.create_command_buffer()
            encoder = command_buffer.compute_encoder()
            encoder.set_pipeline(ctx.pipeline(op_name))
            for index, view in enumerate(bound):
                encoder.set_buffer(view, index)
            encoder.dispatch(*grid)
            encoder.end_encoding()

            command_buffer.commit()
            command_buffer.wait_until_completed()

            host = result_view.cpu().numpy()
            if host.shape != result.shape:
                raise BackendError(
                    f"{op_name}: device returned {host.shape[0]} elements, expected {result.shape[0]}"
                )
            # copy before the buffer goes back to the pool
            np.copyto(result, host)

    # === Element-wise ===

    def op(self, a: NumericBuffer, b: NumericBuffer, out: NumericBuffer, fn: BinaryFn) -> None:
        check_elementwise(a, b, out)
        kernel = ops.kernel_name(fn)
        ctx = self._device_context(kernel or 'op', a.dtype)
        if ctx is not None and kernel is None:
            logger.debug("op: %r has no device kernel, using %s", fn, self._fallback.name)
        if ctx is None or kernel is None:
            self._fallback.op(a, b, out, fn)
            return
        n = a.size
        if n == 0:
            return
        self._run(ctx, kernel, [a.data, b.data], out.data, grid=(n,))

    def map(self, a: NumericBuffer, out: NumericBuffer, fn: UnaryFn) -> None:
        # arbitrary Python functions cannot be compiled into kernels
        ensure_equal_shape(a, out, ('a', 'out'))
        self._fallback.map(a, out, fn)

    def scalar_multiply(self, a: NumericBuffer, scalar: Any, out: NumericBuffer) -> None:
        ensure_equal_shape(a, out, ('a', 'out'))
        dtypes.check_scalar_type(a.dtype, scalar)
        ctx = self._device_context(OP_SCALAR_MULTIPLY, a.dtype)
        if ctx is None:
            self._fallback.scalar_multiply(a, scalar, out)
            return
        n = a.size
        if n == 0:
            return
        self._run(
            ctx, OP_SCALAR_MULTIPLY, [a.data], out.data,
            grid=(n,), scalar=float(a.dtype.type(scalar)),
        )

    # === Vector reductions ===

    def vector_dot(self, a: Vector, b: Vector) -> Any:
        check_vector_lengths(a, b)
        if a.length == 0:
            return dtypes.zero(a.dtype)
        ctx = self._device_context(OP_VECTOR_DOT, a.dtype)
        if ctx is None:
            return self._fallback.vector_dot(a, b)
        result = np.zeros(1, dtype=a.dtype)
        self._run(
            ctx, OP_VECTOR_DOT, [a.data, b.data], result,
            grid=(a.length,), dims=(a.length,),
        )
        return result[0]

    def vector_norm(self, v: Vector) -> Any:
        check_kind(v, Vector, 'v')
        if v.length == 0:
            return dtypes.zero(v.dtype)
        ctx = self._device_context(OP_VECTOR_NORM, v.dtype)
        if ctx is None:
            return self._fallback.vector_norm(v)
        result = np.zeros(1, dtype=v.dtype)
        self._run(
            ctx, OP_VECTOR_NORM, [v.data], result,
            grid=(v.length,), dims=(v.length,),
        )
        return result[0]

    # === Matrix operations ===

    def matrix_vector_multiply(self, m: Matrix, v: Vector, out: Vector) -> None:
        check_matrix_vector_shapes(m, v, out)
        ctx = self._device_context(OP_MATRIX_VECTOR_MULTIPLY, m.dtype)
        if ctx is None:
            self._fallback.matrix_vector_multiply(m, v, out)
            return
        if m.rows == 0:
            return
        if m.columns == 0:
            out.data.fill(0)
            return
        self._run(
            ctx, OP_MATRIX_VECTOR_MULTIPLY, [m.data, v.data], out.data,
            grid=(m.rows,), dims=(m.rows, m.columns),
        )

    def matrix_multiply(self, a: Matrix, b: Matrix, out: Matrix) -> None:
        check_matrix_multiply_shapes(a, b, out)
        ctx = self._device_context(OP_MATRIX_MULTIPLY, a.dtype)
        if ctx is None:
            self._fallback.matrix_multiply(a, b, out)
            return
        if out.size == 0:
            return
        if a.columns == 0:
            out.data.fill(0)
            return
        # 2-D grid: width = result columns, height = result rows
        self._run(
            ctx, OP_MATRIX_MULTIPLY, [a.data, b.data], out.data,
            grid=(b.columns, a.rows), dims=(a.rows, b.columns, a.columns),
        )

    def matrix_transpose(self, m: Matrix, out: Matrix) -> None:
        check_transpose_shapes(m, out)
        ctx = self._device_context(OP_MATRIX_TRANSPOSE, m.dtype)
        if ctx is None:
            self._fallback.matrix_transpose(m, out)
            return
        if m.size == 0:
            return
        self._run(
            ctx, OP_MATRIX_TRANSPOSE, [m.data], out.data,
            grid=(m.columns, m.rows), dims=(m.rows, m.columns),
        )
