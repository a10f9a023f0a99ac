"""
Shape and compatibility checks for tensorcore operations.

Every element-wise or output-writing operation runs these checks before
any data is touched, so a failed check never leaves a partially written
output. Backends call them first and then trust their operands.

Design principles:
    - Each function validates ONE thing
    - Clear, actionable error messages with actual values
    - Kind and element-type disagreements are InvalidTypeError; extent
      disagreements are ShapeMismatchError (Tensor/Matrix) or
      LengthMismatchError (Vector)
"""

from typing import Any

from tensorcore.core.containers import Matrix, NumericBuffer, Tensor, Vector
from tensorcore.core.exceptions import (
    InvalidTypeError,
    LengthMismatchError,
    ShapeMismatchError,
)


def check_kind(value: Any, kind: type, name: str) -> None:
    """
    Verify an operand is a container of the given kind.

    Raises:
        InvalidTypeError: If value is not an instance of kind
    """
    if not isinstance(value, kind):
        raise InvalidTypeError(
            f"{name}: expected {kind.__name__}, got {type(value).__name__}"
        )


def check_same_dtype(a: NumericBuffer, b: NumericBuffer, names: tuple[str, str]) -> None:
    """
    Verify two containers share an element type.

    Raises:
        InvalidTypeError: If element types differ
    """
    if a.dtype != b.dtype:
        raise InvalidTypeError(
            f"element types differ: {names[0]}={a.dtype}, {names[1]}={b.dtype}"
        )


def ensure_equal_shape(
    a: NumericBuffer,
    b: NumericBuffer,
    names: tuple[str, str] = ('a', 'b'),
) -> None:
    """
    Verify two containers are of the same kind, element type and shape.

    Tensor compares shape tuples, Matrix compares (rows, columns),
    Vector compares lengths.

    Raises:
        InvalidTypeError: If the containers are of different kinds or
            element types, or either is not a container
        ShapeMismatchError: If Tensor or Matrix shapes differ
        LengthMismatchError: If Vector lengths differ
    """
    if not isinstance(a, NumericBuffer) or type(a) is not type(b):
        raise InvalidTypeError(
            f"cannot compare {type(a).__name__} ({names[0]}) "
            f"with {type(b).__name__} ({names[1]})"
        )
    check_same_dtype(a, b, names)

    if type(a) is Tensor:
        if a.shape != b.shape:
            raise ShapeMismatchError(
                f"shape mismatch: {names[0]}={a.shape}, {names[1]}={b.shape}",
                expected=a.shape,
                actual=b.shape,
            )
    elif type(a) is Matrix:
        if a.rows != b.rows or a.columns != b.columns:
            raise ShapeMismatchError(
                f"shape mismatch: {names[0]}=({a.rows}, {a.columns}), "
                f"{names[1]}=({b.rows}, {b.columns})",
                expected=(a.rows, a.columns),
                actual=(b.rows, b.columns),
            )
    elif type(a) is Vector:
        if a.length != b.length:
            raise LengthMismatchError(
                f"length mismatch: {names[0]}={a.length}, {names[1]}={b.length}",
                expected=a.length,
                actual=b.length,
            )
    else:
        raise InvalidTypeError(f"unsupported container kind {type(a).__name__}")


def check_elementwise(a: NumericBuffer, b: NumericBuffer, out: NumericBuffer) -> None:
    """Operands and output of a binary element-wise op must all agree."""
    ensure_equal_shape(a, b, ('a', 'b'))
    ensure_equal_shape(a, out, ('a', 'out'))


def check_vector_lengths(a: Vector, b: Vector) -> None:
    """
    Verify two vectors can be combined (dot product).

    Raises:
        InvalidTypeError: If either operand is not a Vector
        LengthMismatchError: If lengths differ
    """
    check_kind(a, Vector, 'a')
    check_kind(b, Vector, 'b')
    ensure_equal_shape(a, b)


def check_matrix_vector_shapes(m: Matrix, v: Vector, out: Vector) -> None:
    """
    Verify shapes for out = m @ v.

    Raises:
        InvalidTypeError: If operands are of the wrong kind or element type
        ShapeMismatchError: If m.columns != v.length or out.length != m.rows
    """
    check_kind(m, Matrix, 'm')
    check_kind(v, Vector, 'v')
    check_kind(out, Vector, 'out')
    check_same_dtype(m, v, ('m', 'v'))
    check_same_dtype(m, out, ('m', 'out'))

    if m.columns != v.length:
        raise ShapeMismatchError(
            f"matrix-vector: m has {m.columns} columns but v has length {v.length}",
            expected=m.columns,
            actual=v.length,
        )
    if out.length != m.rows:
        raise ShapeMismatchError(
            f"matrix-vector: out has length {out.length}, expected {m.rows}",
            expected=m.rows,
            actual=out.length,
        )


def check_matrix_multiply_shapes(a: Matrix, b: Matrix, out: Matrix) -> None:
    """
    Verify shapes for out = a @ b.

    Raises:
        InvalidTypeError: If operands are of the wrong kind or element type
        ShapeMismatchError: If a.columns != b.rows or out is not
            (a.rows, b.columns)
    """
    check_kind(a, Matrix, 'a')
    check_kind(b, Matrix, 'b')
    check_kind(out, Matrix, 'out')
    check_same_dtype(a, b, ('a', 'b'))
    check_same_dtype(a, out, ('a', 'out'))

    if a.columns != b.rows:
        raise ShapeMismatchError(
            f"matrix multiply: a is ({a.rows}, {a.columns}) but b is ({b.rows}, {b.columns})",
            expected=a.columns,
            actual=b.rows,
        )
    if out.rows != a.rows or out.columns != b.columns:
        raise ShapeMismatchError(
            f"matrix multiply: out is ({out.rows}, {out.columns}), "
            f"expected ({a.rows}, {b.columns})",
            expected=(a.rows, b.columns),
            actual=(out.rows, out.columns),
        )


def check_transpose_shapes(m: Matrix, out: Matrix) -> None:
    """
    Verify out can hold the transpose of m.

    Raises:
        InvalidTypeError: If operands are of the wrong kind or element type
        ShapeMismatchError: If out is not (m.columns, m.rows)
    """
    check_kind(m, Matrix, 'm')
    check_kind(out, Matrix, 'out')
    check_same_dtype(m, out, ('m', 'out'))

    if out.rows != m.columns or out.columns != m.rows:
        raise ShapeMismatchError(
            f"transpose: out is ({out.rows}, {out.columns}), "
            f"expected ({m.columns}, {m.rows})",
            expected=(m.columns, m.rows),
            actual=(out.rows, out.columns),
        )
