"""
Supported element types.

Containers are defined over a closed set of numeric element types. Any
other dtype is rejected when a container is defined, before allocation.
"""

import numbers

import numpy as np
from numpy.typing import DTypeLike

from tensorcore.core.exceptions import InvalidTypeError


FLOAT32 = np.dtype(np.float32)
FLOAT64 = np.dtype(np.float64)
INT32 = np.dtype(np.int32)
INT64 = np.dtype(np.int64)

SUPPORTED_DTYPES: frozenset[np.dtype] = frozenset({FLOAT32, FLOAT64, INT32, INT64})

# The only element type the GPU kernels are built for
GPU_DTYPE = FLOAT32


def resolve_dtype(dtype: DTypeLike, name: str = "dtype") -> np.dtype:
    """
    Normalize and validate an element type.

    Args:
        dtype: Anything numpy accepts as a dtype
        name: Parameter name for error messages

    Returns:
        The canonical numpy dtype

    Raises:
        InvalidTypeError: If dtype is not one of the supported numeric types
    """
    try:
        resolved = np.dtype(dtype)
    except TypeError as e:
        raise InvalidTypeError(f"{name}: not a dtype: {dtype!r}") from e

    if resolved not in SUPPORTED_DTYPES:
        supported = ", ".join(sorted(str(d) for d in SUPPORTED_DTYPES))
        raise InvalidTypeError(
            f"{name}: unsupported element type {resolved}, expected one of {supported}"
        )
    return resolved


def is_floating(dtype: np.dtype) -> bool:
    return np.issubdtype(dtype, np.floating)


def check_scalar_type(dtype: np.dtype, scalar: object, name: str = "scalar") -> None:
    """
    Verify a scalar may be used with containers of the given element type.

    Integer containers accept only integral scalars within the range of
    the element type. Floating containers accept integral or real
    scalars. Booleans are rejected everywhere.

    Raises:
        InvalidTypeError: If the scalar does not match the element type
    """
    if isinstance(scalar, (bool, np.bool_)):
        raise InvalidTypeError(f"{name}: bool is not a numeric scalar")

    if is_floating(dtype):
        ok = isinstance(scalar, numbers.Real)
    else:
        ok = isinstance(scalar, numbers.Integral)

    if not ok:
        raise InvalidTypeError(
            f"{name}: {type(scalar).__name__} scalar does not match element type {dtype}"
        )

    if not is_floating(dtype):
        info = np.iinfo(dtype)
        if not info.min <= int(scalar) <= info.max:
            raise InvalidTypeError(
                f"{name}: {scalar} out of range for element type {dtype} "
                f"[{info.min}, {info.max}]"
            )


def zero(dtype: np.dtype) -> np.generic:
    """Additive identity of the element type."""
    return dtype.type(0)


def sqrt(dtype: np.dtype, value: np.generic) -> np.generic:
    """
    Square root in the element type.

    Integer element types truncate toward zero.
    """
    if is_floating(dtype):
        return dtype.type(np.sqrt(value))
    return dtype.type(np.floor(np.sqrt(np.float64(value))))
