"""
SIMD backend.

Same operation set as the CPU reference, restructured for vector-width
parallelism: data is processed in fixed-width chunks of CHUNK_SIZE lanes,
each chunk a single vectorized numpy load/compute/store, and indices past
the last full chunk are processed one element at a time.

Reductions (dot, norm, matrix-vector rows) accumulate into a CHUNK_SIZE
lane accumulator, reduce it horizontally, then add the scalar remainder.
Below one full chunk the scalar algorithm runs unchanged.

Transpose of larger matrices walks BLOCK_SIZE x BLOCK_SIZE blocks so the
source rows and scattered destination columns of one block stay cache
resident.

Shape checks are identical to the CPU backend and run before any
divergent code path.
"""

import logging
from typing import Any

import numpy as np

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

logger = logging.getLogger(__name__)

# Lanes per vector operation
CHUNK_SIZE = 16

# Square block edge for the cache-blocked transpose
BLOCK_SIZE = 32

# Matrices with a dimension at or below this use the plain double loop
SMALL_TRANSPOSE_LIMIT = 4


def _horizontal_sum(lanes: np.ndarray) -> Any:
    """Reduce a lane accumulator to a scalar in the element type."""
    total = dtypes.zero(lanes.dtype)
    for lane in lanes:
        total += lane
    return total


def _apply_chunked(fn, inputs: tuple[np.ndarray, ...], out_data: np.ndarray) -> None:
    """
    out = fn(*inputs) over full chunks, then the scalar remainder.

    A function that rejects array chunks (math.sqrt, scalar-only
    branching) raises TypeError or ValueError on a chunk; from
    that chunk on it is applied one element at a time.
    """
    n = out_data.shape[0]
    end = (n // CHUNK_SIZE) * CHUNK_SIZE
    scalar_start = end

    for offset in range(0, end, CHUNK_SIZE):
        chunk = slice(offset, offset + CHUNK_SIZE)
        try:
            result = fn(*(x[chunk] for x in inputs))
        except (TypeError, ValueError) as e:
            logger.debug("%r rejected an array chunk (%s), applying per element", fn, e)
            scalar_start = offset
            break
        out_data[chunk] = result

    for i in range(scalar_start, n):
        out_data[i] = fn(*(x[i] for x in inputs))


class SIMDBackend:
    """
    Chunked vector-width backend.

    Implements the Backend protocol. Stateless.
    """

    @property
    def name(self) -> str:
        return 'simd'

    # === Element-wise ===

    def op(self, a: NumericBuffer, b: NumericBuffer, out: NumericBuffer, fn: BinaryFn) -> None:
        check_elementwise(a, b, out)
        _apply_chunked(fn, (a.data, b.data), out.data)

    def map(self, a: NumericBuffer, out: NumericBuffer, fn: UnaryFn) -> None:
        ensure_equal_shape(a, out, ('a', 'out'))
        _apply_chunked(fn, (a.data,), out.data)

    def scalar_multiply(self, a: NumericBuffer, scalar: Any, out: NumericBuffer) -> None:
        ensure_equal_shape(a, out, ('a', 'out'))
        dtypes.check_scalar_type(a.dtype, scalar)
        scalar = a.dtype.type(scalar)
        a_data, out_data = a.data, out.data
        n = a_data.shape[0]
        end = (n // CHUNK_SIZE) * CHUNK_SIZE

        if end:
            scalar_vec = np.full(CHUNK_SIZE, scalar, dtype=a.dtype)
            for offset in range(0, end, CHUNK_SIZE):
                chunk = slice(offset, offset + CHUNK_SIZE)
                np.multiply(a_data[chunk], scalar_vec, out=out_data[chunk])

        for i in range(end, n):
            out_data[i] = a_data[i] * scalar

    # === Vector reductions ===

    def vector_dot(self, a: Vector, b: Vector) -> Any:
        check_vector_lengths(a, b)
        a_data, b_data = a.data, b.data
        n = a.length
        result = dtypes.zero(a.dtype)

        if n < CHUNK_SIZE:
            for i in range(n):
                result += a_data[i] * b_data[i]
            return result

        end = (n // CHUNK_SIZE) * CHUNK_SIZE
        partial_sums = np.zeros(CHUNK_SIZE, dtype=a.dtype)
        for offset in range(0, end, CHUNK_SIZE):
            chunk = slice(offset, offset + CHUNK_SIZE)
            partial_sums += a_data[chunk] * b_data[chunk]

        result += _horizontal_sum(partial_sums)
        for i in range(end, n):
            result += a_data[i] * b_data[i]
        return result

    def vector_norm(self, v: Vector) -> Any:
        check_kind(v, Vector, 'v')
        data = v.data
        n = v.length
        sum_sq = dtypes.zero(v.dtype)

        if n < CHUNK_SIZE:
            for i in range(n):
                sum_sq += data[i] * data[i]
            return dtypes.sqrt(v.dtype, sum_sq)

        end = (n // CHUNK_SIZE) * CHUNK_SIZE
        partial_sums = np.zeros(CHUNK_SIZE, dtype=v.dtype)
        for offset in range(0, end, CHUNK_SIZE):
            chunk_data = data[offset:offset + CHUNK_SIZE]
            partial_sums += chunk_data * chunk_data

        sum_sq += _horizontal_sum(partial_sums)
        for i in range(end, n):
            sum_sq += data[i] * data[i]
        return dtypes.sqrt(v.dtype, sum_sq)

    # === Matrix operations ===

    def matrix_vector_multiply(self, m: Matrix, v: Vector, out: Vector) -> None:
        check_matrix_vector_shapes(m, v, out)
        rows, columns = m.rows, m.columns
        m_data, v_data, out_data = m.data, v.data, out.data

        if columns < CHUNK_SIZE:
            for i in range(rows):
                acc = dtypes.zero(m.dtype)
                for j in range(columns):
                    acc += m_data[i * columns + j] * v_data[j]
                out_data[i] = acc
            return

        end = (columns // CHUNK_SIZE) * CHUNK_SIZE
        lanes = np.empty(CHUNK_SIZE, dtype=m.dtype)
        for i in range(rows):
            row_offset = i * columns
            lanes.fill(0)
            for offset in range(0, end, CHUNK_SIZE):
                lanes += (
                    m_data[row_offset + offset:row_offset + offset + CHUNK_SIZE]
                    * v_data[offset:offset + CHUNK_SIZE]
                )
            acc = _horizontal_sum(lanes)
            for j in range(end, columns):
                acc += m_data[row_offset + j] * v_data[j]
            out_data[i] = acc

    def matrix_multiply(self, a: Matrix, b: Matrix, out: Matrix) -> None:
        check_matrix_multiply_shapes(a, b, out)
        a_data, b_data, out_data = a.data, b.data, out.data
        out_data.fill(0)

        m = a.rows      # rows of result
        n = b.columns   # columns of result
        k = a.columns   # common dimension, same as b.rows
        end = (n // CHUNK_SIZE) * CHUNK_SIZE

        for i in range(m):
            result_row = i * n
            for l in range(k):
                # broadcast a[i, l] across the lanes of b's row l
                a_val = a_data[i * k + l]
                other_row = l * n
                for base_j in range(0, end, CHUNK_SIZE):
                    out_data[result_row + base_j:result_row + base_j + CHUNK_SIZE] += (
                        a_val * b_data[other_row + base_j:other_row + base_j + CHUNK_SIZE]
                    )
                for j in range(end, n):
                    out_data[result_row + j] += a_val * b_data[other_row + j]

    def matrix_transpose(self, m: Matrix, out: Matrix) -> None:
        check_transpose_shapes(m, out)
        rows, columns = m.rows, m.columns
        m_data, out_data = m.data, out.data

        if m_data.shape[0] == 0:
            return
        if rows == 1 and columns == 1:
            out_data[0] = m_data[0]
            return

        if rows <= SMALL_TRANSPOSE_LIMIT or columns <= SMALL_TRANSPOSE_LIMIT:
            for i in range(rows):
                for j in range(columns):
                    out_data[j * rows + i] = m_data[i * columns + j]
            return

        for bi in range(0, rows, BLOCK_SIZE):
            i_end = min(bi + BLOCK_SIZE, rows)
            for bj in range(0, columns, BLOCK_SIZE):
                j_end = min(bj + BLOCK_SIZE, columns)

                for i in range(bi, i_end):
                    src_row = i * columns
                    j = bj
                    while j + CHUNK_SIZE <= j_end:
                        # scatter one source chunk down a destination column
                        out_data[j * rows + i:(j + CHUNK_SIZE) * rows + i:rows] = (
                            m_data[src_row + j:src_row + j + CHUNK_SIZE]
                        )
                        j += CHUNK_SIZE
                    for j2 in range(j, j_end):
                        out_data[j2 * rows + i] = m_data[src_row + j2]
