"""
Named element-wise arithmetic functions.

These work on numpy scalars and on numpy arrays alike, so the CPU backend
can call them per element and the SIMD backend per chunk. The GPU backend
recognizes them by identity and dispatches the matching device kernel;
any other function runs through the SIMD fallback.
"""

import numpy as np

from tensorcore.core.capabilities import OP_ADD, OP_DIVIDE, OP_MULTIPLY, OP_SUBTRACT


def add(x, y):
    return x + y


def subtract(x, y):
    return x - y


def multiply(x, y):
    return x * y


def divide(x, y):
    # Integer element types truncate toward zero, computed exactly
    if np.issubdtype(np.result_type(x, y), np.integer):
        quotient = np.floor_divide(x, y)
        inexact = np.remainder(x, y) != 0
        return quotient + (inexact & ((x < 0) != (y < 0)))
    return x / y


KERNEL_NAMES = {
    add: OP_ADD,
    subtract: OP_SUBTRACT,
    multiply: OP_MULTIPLY,
    divide: OP_DIVIDE,
}


def kernel_name(fn) -> str | None:
    """Device kernel name for a binary function, or None if it has none."""
    return KERNEL_NAMES.get(fn)
