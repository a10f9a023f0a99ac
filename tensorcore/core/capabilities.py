"""
Operation name constants for tensorcore.

This module is the SINGLE SOURCE OF TRUTH for operation names. The GPU
kernel library registers one kernel per name and the GPU context builds
one pipeline per name. Import from here, never use raw strings.
"""

OP_ADD = 'add'
OP_SUBTRACT = 'subtract'
OP_MULTIPLY = 'multiply'
OP_DIVIDE = 'divide'
OP_SCALAR_MULTIPLY = 'scalar_multiply'
OP_VECTOR_DOT = 'vector_dot'
OP_VECTOR_NORM = 'vector_norm'
OP_MATRIX_VECTOR_MULTIPLY = 'matrix_vector_multiply'
OP_MATRIX_MULTIPLY = 'matrix_multiply'
OP_MATRIX_TRANSPOSE = 'matrix_transpose'

# Binary element-wise operations with a dedicated device kernel
ELEMENTWISE_OPS = frozenset({
    OP_ADD,
    OP_SUBTRACT,
    OP_MULTIPLY,
    OP_DIVIDE,
})

# Every operation the GPU context compiles a pipeline for
ALL_OPS = frozenset(ELEMENTWISE_OPS | {
    OP_SCALAR_MULTIPLY,
    OP_VECTOR_DOT,
    OP_VECTOR_NORM,
    OP_MATRIX_VECTOR_MULTIPLY,
    OP_MATRIX_MULTIPLY,
    OP_MATRIX_TRANSPOSE,
})

__all__ = [
    'OP_ADD',
    'OP_SUBTRACT',
    'OP_MULTIPLY',
    'OP_DIVIDE',
    'OP_SCALAR_MULTIPLY',
    'OP_VECTOR_DOT',
    'OP_VECTOR_NORM',
    'OP_MATRIX_VECTOR_MULTIPLY',
    'OP_MATRIX_MULTIPLY',
    'OP_MATRIX_TRANSPOSE',
    'ELEMENTWISE_OPS',
    'ALL_OPS',
]
