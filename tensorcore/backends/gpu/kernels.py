"""
Device kernel library for the GPU backend.

One kernel per operation, written as whole-grid torch expressions: each
kernel computes every grid position at once, the torch equivalent of one
device thread per output element. Kernels read their operands from the
buffers bound by the encoder (in binding order) and their dimensions from
small int32 side buffers, and write into the bound result buffer.

Kernels are grouped into libraries the way they are compiled and loaded
by GPUContext:

    ELEMENTWISE_LIBRARY:    add, subtract, multiply, divide, scalar_multiply
    VECTOR_LIBRARY:         vector_dot, vector_norm
    MATRIX_VECTOR_LIBRARY:  matrix_vector_multiply
    MATRIX_LIBRARY:         matrix_multiply, matrix_transpose

Only float32 is supported.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Sequence

from tensorcore.core.capabilities import (
    OP_ADD,
    OP_DIVIDE,
    OP_MATRIX_MULTIPLY,
    OP_MATRIX_TRANSPOSE,
    OP_MATRIX_VECTOR_MULTIPLY,
    OP_MULTIPLY,
    OP_SCALAR_MULTIPLY,
    OP_SUBTRACT,
    OP_VECTOR_DOT,
    OP_VECTOR_NORM,
)

if TYPE_CHECKING:
    import torch

# Threads cooperating in one reduction group
THREADGROUP_SIZE = 256

Kernel = Callable[[Sequence['torch.Tensor'], tuple[int, ...]], None]


def _dims(params: torch.Tensor, count: int) -> list[int]:
    values = params[:count].tolist()
    return [int(v) for v in values]


def _tree_reduce(values: torch.Tensor) -> torch.Tensor:
    """
    Threadgroup-cooperative tree reduction.

    Values are padded with zeros into groups of THREADGROUP_SIZE lanes.
    Within each group, lane i takes lane i + stride for stride = 128, 64,
    ..., 1 (one barrier step each), leaving the group sum in lane 0. The
    group sums are reduced again the same way until one value remains.
    """
    import torch

    while True:
        n = values.shape[0]
        groups = max(1, -(-n // THREADGROUP_SIZE))
        lanes = torch.zeros(groups * THREADGROUP_SIZE, dtype=values.dtype, device=values.device)
        lanes[:n] = values
        lanes = lanes.view(groups, THREADGROUP_SIZE)

        stride = THREADGROUP_SIZE // 2
        while stride > 0:
            lanes = lanes[:, :stride] + lanes[:, stride:2 * stride]
            stride //= 2

        values = lanes[:, 0]
        if groups == 1:
            return values[:1]


# === Element-wise ===


def add(buffers, grid):
    a, b, result = buffers[0], buffers[1], buffers[2]
    n = grid[0]
    result[:n] = a[:n] + b[:n]


def subtract(buffers, grid):
    a, b, result = buffers[0], buffers[1], buffers[2]
    n = grid[0]
    result[:n] = a[:n] - b[:n]


def multiply(buffers, grid):
    a, b, result = buffers[0], buffers[1], buffers[2]
    n = grid[0]
    result[:n] = a[:n] * b[:n]


def divide(buffers, grid):
    import torch

    a, b, result = buffers[0], buffers[1], buffers[2]
    n = grid[0]
    if a.is_floating_point():
        result[:n] = a[:n] / b[:n]
    else:
        result[:n] = torch.div(a[:n], b[:n], rounding_mode='trunc')


def scalar_multiply(buffers, grid):
    a, result, scalar = buffers[0], buffers[1], buffers[2]
    n = grid[0]
    result[:n] = a[:n] * scalar[0]


# === Vector reductions ===


def vector_dot(buffers, grid):
    a, b, result, length = buffers[0], buffers[1], buffers[2], buffers[3]
    (n,) = _dims(length, 1)
    result[:1] = _tree_reduce(a[:n] * b[:n])


def vector_norm(buffers, grid):
    v, result, length = buffers[0], buffers[1], buffers[2]
    (n,) = _dims(length, 1)
    result[:1] = _tree_reduce(v[:n] * v[:n]).sqrt()


# === Matrix-vector ===


def matrix_vector_multiply(buffers, grid):
    m, v, result, dims = buffers[0], buffers[1], buffers[2], buffers[3]
    rows, columns = _dims(dims, 2)
    # one thread per output row
    result[:rows] = (m[:rows * columns].view(rows, columns) * v[:columns]).sum(dim=1)


# === Matrix ===


def matrix_multiply(buffers, grid):
    a, b, result, dims = buffers[0], buffers[1], buffers[2], buffers[3]
    m, n, k = _dims(dims, 3)
    # 2-D grid: one thread per (row, column) of the result
    product = a[:m * k].view(m, k) @ b[:k * n].view(k, n)
    result[:m * n] = product.reshape(-1)


def matrix_transpose(buffers, grid):
    m, result, dims = buffers[0], buffers[1], buffers[2]
    rows, columns = _dims(dims, 2)
    result[:rows * columns] = m[:rows * columns].view(rows, columns).t().reshape(-1)


ELEMENTWISE_LIBRARY: dict[str, Kernel] = {
    OP_ADD: add,
    OP_SUBTRACT: subtract,
    OP_MULTIPLY: multiply,
    OP_DIVIDE: divide,
    OP_SCALAR_MULTIPLY: scalar_multiply,
}

VECTOR_LIBRARY: dict[str, Kernel] = {
    OP_VECTOR_DOT: vector_dot,
    OP_VECTOR_NORM: vector_norm,
}

MATRIX_VECTOR_LIBRARY: dict[str, Kernel] = {
    OP_MATRIX_VECTOR_MULTIPLY: matrix_vector_multiply,
}

MATRIX_LIBRARY: dict[str, Kernel] = {
    OP_MATRIX_MULTIPLY: matrix_multiply,
    OP_MATRIX_TRANSPOSE: matrix_transpose,
}

LIBRARIES: dict[str, dict[str, Kernel]] = {
    'elementwise': ELEMENTWISE_LIBRARY,
    'vector_ops': VECTOR_LIBRARY,
    'matrix_vector_ops': MATRIX_VECTOR_LIBRARY,
    'matrix_ops': MATRIX_LIBRARY,
}
