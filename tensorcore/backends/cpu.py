"""
CPU reference backend.

Straightforward linear scans and nested loops over flat row-major
indices. No algorithmic shortcuts: this is the reference implementation
that the SIMD and GPU backends are validated against.

Elements are read as numpy scalars, so arithmetic happens in the
container's element type (float32 rounding, integer width) exactly as in
the vectorized backends.
"""

from typing import Any

from tensorcore.core import dtypes
from tensorcore.core.containers import Matrix, NumericBuffer, Vector
from tensorcore.core.protocols import BinaryFn, UnaryFn
from tensorcore.core.validation import (
    check_elementwise,
    check_kind,
    check_matrix_multiply_shapes,
    check_matrix_vector_shapes,
    check_transpose_shapes,
    check_vector_lengths,
    ensure_equal_shape,
)


class CPUBackend:
    """
    Reference backend.

    Implements the Backend protocol. Stateless.
    """

    @property
    def name(self) -> str:
        return 'cpu'

    def op(self, a: NumericBuffer, b: NumericBuffer, out: NumericBuffer, fn: BinaryFn) -> None:
        check_elementwise(a, b, out)
        a_data, b_data, out_data = a.data, b.data, out.data
        for i in range(a_data.shape[0]):
            out_data[i] = fn(a_data[i], b_data[i])

    def map(self, a: NumericBuffer, out: NumericBuffer, fn: UnaryFn) -> None:
        ensure_equal_shape(a, out, ('a', 'out'))
        a_data, out_data = a.data, out.data
        for i in range(a_data.shape[0]):
            out_data[i] = fn(a_data[i])

    def scalar_multiply(self, a: NumericBuffer, scalar: Any, out: NumericBuffer) -> None:
        ensure_equal_shape(a, out, ('a', 'out'))
        dtypes.check_scalar_type(a.dtype, scalar)
        scalar = a.dtype.type(scalar)
        a_data, out_data = a.data, out.data
        for i in range(a_data.shape[0]):
            out_data[i] = a_data[i] * scalar

    def vector_dot(self, a: Vector, b: Vector) -> Any:
        check_vector_lengths(a, b)
        result = dtypes.zero(a.dtype)
        a_data, b_data = a.data, b.data
        for i in range(a.length):
            result += a_data[i] * b_data[i]
        return result

    def vector_norm(self, v: Vector) -> Any:
        check_kind(v, Vector, 'v')
        sum_sq = dtypes.zero(v.dtype)
        data = v.data
        for i in range(v.length):
            sum_sq += data[i] * data[i]
        return dtypes.sqrt(v.dtype, sum_sq)

    def matrix_vector_multiply(self, m: Matrix, v: Vector, out: Vector) -> None:
        check_matrix_vector_shapes(m, v, out)
        rows, columns = m.rows, m.columns
        m_data, v_data, out_data = m.data, v.data, out.data
        for i in range(rows):
            acc = dtypes.zero(m.dtype)
            for j in range(columns):
                acc += m_data[i * columns + j] * v_data[j]
            out_data[i] = acc

    def matrix_multiply(self, a: Matrix, b: Matrix, out: Matrix) -> None:
        check_matrix_multiply_shapes(a, b, out)
        m = a.rows      # rows of result
        n = b.columns   # columns of result
        k = a.columns   # common dimension, same as b.rows
        a_data, b_data, out_data = a.data, b.data, out.data
        for i in range(m):
            for j in range(n):
                acc = dtypes.zero(a.dtype)
                for l in range(k):
                    acc += a_data[i * k + l] * b_data[l * n + j]
                out_data[i * n + j] = acc

    def matrix_transpose(self, m: Matrix, out: Matrix) -> None:
        check_transpose_shapes(m, out)
        rows, columns = m.rows, m.columns
        m_data, out_data = m.data, out.data
        for i in range(rows):
            for j in range(columns):
                out_data[j * rows + i] = m_data[i * columns + j]
