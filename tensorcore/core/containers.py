"""
Numeric containers: Tensor (rank N), Matrix (rank 2) and Vector (rank 1).

Each container owns one flat, contiguous, row-major numpy buffer of a
supported element type, plus its shape. Invariant:

    product(shape) == len(data)

Matrix and Vector keep their extents (rows/columns, length) directly so
backends never walk a shape sequence for them.

Lifecycle:
    - Created by an explicit factory: empty() (uninitialized), zeros(),
      splat() (scalar-filled), or from_owned_data() which takes ownership
      of an existing 1-D buffer that must already match the shape.
    - Destroyed by release(), exactly once. Containers are context
      managers; leaving the with-block releases them.

Operations never take ownership of their operands.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np
from numpy.typing import DTypeLike, NDArray

from tensorcore.core.allocator import Allocator, default_allocator
from tensorcore.core.dtypes import check_scalar_type, resolve_dtype
from tensorcore.core.exceptions import (
    InvalidDimensionsError,
    InvalidTypeError,
    OutOfBoundsError,
)


def _check_extent(value: Any, name: str) -> int:
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise InvalidDimensionsError(f"{name}: extent must be an int, got {value!r}")
    if value < 0:
        raise InvalidDimensionsError(f"{name}: extent must be non-negative, got {value}")
    return int(value)


def _adopt_buffer(data: Any, expected_length: int, shape: tuple[int, ...]) -> NDArray:
    """Validate a caller-supplied buffer before taking ownership of it."""
    if not isinstance(data, np.ndarray):
        raise InvalidTypeError(
            f"data: expected a numpy.ndarray buffer, got {type(data).__name__}"
        )
    resolve_dtype(data.dtype, "data")
    if data.ndim != 1 or not data.flags.c_contiguous:
        raise InvalidDimensionsError(
            f"data: expected a flat contiguous buffer, got {data.ndim}D array",
            expected=(expected_length,),
            actual=data.shape,
        )
    if data.shape[0] != expected_length:
        raise InvalidDimensionsError(
            f"data: shape {shape} needs {expected_length} elements, buffer has {data.shape[0]}",
            expected=expected_length,
            actual=data.shape[0],
        )
    return data


class NumericBuffer:
    """
    Common base for Tensor, Matrix and Vector.

    Not instantiated directly; use the factories of the concrete classes.
    """

    __slots__ = ('_data', '_shape', '_allocator')

    def __init__(
        self,
        data: NDArray,
        shape: tuple[int, ...],
        allocator: Allocator | None,
    ):
        self._data: NDArray | None = data
        self._shape = shape
        # None for buffers adopted through from_owned_data()
        self._allocator = allocator

    @property
    def data(self) -> NDArray:
        """The flat row-major element buffer."""
        if self._data is None:
            raise RuntimeError(f"{type(self).__name__} used after release()")
        return self._data

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def size(self) -> int:
        """Total number of elements."""
        return self.data.shape[0]

    @property
    def released(self) -> bool:
        return self._data is None

    def release(self) -> None:
        """
        Free the buffer and shape storage.

        Raises:
            RuntimeError: If the container was already released
        """
        if self._data is None:
            raise RuntimeError(f"{type(self).__name__} released twice")
        data, self._data = self._data, None
        self._shape = ()
        if self._allocator is not None:
            self._allocator.free(data)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._data is not None:
            self.release()

    def _flat_index(self, index: int | tuple[int, ...]) -> int:
        if not isinstance(index, tuple):
            index = (index,)
        shape = self._shape
        if len(index) != len(shape):
            raise OutOfBoundsError(
                f"index {index} has {len(index)} components, shape {shape} has rank {len(shape)}",
                index=index,
                shape=shape,
            )
        flat = 0
        for i, extent in zip(index, shape):
            if not 0 <= i < extent:
                raise OutOfBoundsError(
                    f"index {index} out of bounds for shape {shape}",
                    index=index,
                    shape=shape,
                )
            flat = flat * extent + i
        return flat

    def get(self, index: int | tuple[int, ...]) -> np.generic:
        """
        Read one element.

        Raises:
            OutOfBoundsError: If any index component is outside its extent
        """
        data = self.data
        return data[self._flat_index(index)]

    def set(self, index: int | tuple[int, ...], value: Any) -> None:
        """
        Write one element.

        Raises:
            OutOfBoundsError: If any index component is outside its extent
            InvalidTypeError: If value does not match the element type
        """
        data = self.data
        check_scalar_type(data.dtype, value, "value")
        data[self._flat_index(index)] = value

    __getitem__ = get
    __setitem__ = set

    def fill(self, value: Any) -> None:
        check_scalar_type(self.dtype, value, "value")
        self.data.fill(value)

    def to_numpy(self) -> NDArray:
        """Shaped copy of the contents."""
        return self.data.reshape(self._shape).copy()

    def copy(self, allocator: Allocator | None = None):
        """Duplicate the container, buffer included."""
        allocator = allocator or self._allocator or default_allocator()
        clone = object.__new__(type(self))
        NumericBuffer.__init__(clone, allocator.dupe(self.data), self._shape, allocator)
        return clone

    def __repr__(self) -> str:
        if self._data is None:
            return f"{type(self).__name__}(<released>)"
        return f"{type(self).__name__}(shape={self._shape}, dtype={self._data.dtype})"


class Tensor(NumericBuffer):
    """Rank-N container with an arbitrary shape tuple."""

    __slots__ = ()

    @classmethod
    def empty(
        cls,
        shape: Sequence[int],
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Tensor:
        """Allocate an uninitialized tensor."""
        dtype = resolve_dtype(dtype)
        shape = tuple(_check_extent(d, f"shape[{i}]") for i, d in enumerate(shape))
        allocator = allocator or default_allocator()
        return cls(allocator.alloc(math.prod(shape), dtype), shape, allocator)

    @classmethod
    def zeros(
        cls,
        shape: Sequence[int],
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Tensor:
        tensor = cls.empty(shape, dtype, allocator)
        tensor.data.fill(0)
        return tensor

    @classmethod
    def splat(
        cls,
        shape: Sequence[int],
        value: Any,
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Tensor:
        """Allocate a tensor with every element set to `value`."""
        check_scalar_type(resolve_dtype(dtype), value, "value")
        tensor = cls.empty(shape, dtype, allocator)
        tensor.data.fill(value)
        return tensor

    @classmethod
    def from_owned_data(cls, data: NDArray, shape: Sequence[int]) -> Tensor:
        """
        Take ownership of a flat buffer.

        Raises:
            InvalidDimensionsError: If product(shape) != len(data)
            InvalidTypeError: If data is not a numpy array of a supported dtype
        """
        shape = tuple(_check_extent(d, f"shape[{i}]") for i, d in enumerate(shape))
        return cls(_adopt_buffer(data, math.prod(shape), shape), shape, None)

    @property
    def rank(self) -> int:
        return len(self._shape)


class Matrix(NumericBuffer):
    """Row-major rank-2 container."""

    __slots__ = ('rows', 'columns')

    def __init__(
        self,
        data: NDArray,
        rows: int,
        columns: int,
        allocator: Allocator | None,
    ):
        super().__init__(data, (rows, columns), allocator)
        self.rows = rows
        self.columns = columns

    @classmethod
    def empty(
        cls,
        rows: int,
        columns: int,
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Matrix:
        dtype = resolve_dtype(dtype)
        rows = _check_extent(rows, "rows")
        columns = _check_extent(columns, "columns")
        allocator = allocator or default_allocator()
        return cls(allocator.alloc(rows * columns, dtype), rows, columns, allocator)

    @classmethod
    def zeros(
        cls,
        rows: int,
        columns: int,
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Matrix:
        matrix = cls.empty(rows, columns, dtype, allocator)
        matrix.data.fill(0)
        return matrix

    @classmethod
    def splat(
        cls,
        rows: int,
        columns: int,
        value: Any,
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Matrix:
        check_scalar_type(resolve_dtype(dtype), value, "value")
        matrix = cls.empty(rows, columns, dtype, allocator)
        matrix.data.fill(value)
        return matrix

    @classmethod
    def from_owned_data(cls, data: NDArray, rows: int, columns: int) -> Matrix:
        rows = _check_extent(rows, "rows")
        columns = _check_extent(columns, "columns")
        buffer = _adopt_buffer(data, rows * columns, (rows, columns))
        return cls(buffer, rows, columns, None)

    def copy(self, allocator: Allocator | None = None) -> Matrix:
        allocator = allocator or self._allocator or default_allocator()
        return Matrix(allocator.dupe(self.data), self.rows, self.columns, allocator)

    def release(self) -> None:
        super().release()
        self.rows = 0
        self.columns = 0


class Vector(NumericBuffer):
    """Rank-1 container."""

    __slots__ = ('length',)

    def __init__(self, data: NDArray, length: int, allocator: Allocator | None):
        super().__init__(data, (length,), allocator)
        self.length = length

    @classmethod
    def empty(
        cls,
        length: int,
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Vector:
        dtype = resolve_dtype(dtype)
        length = _check_extent(length, "length")
        allocator = allocator or default_allocator()
        return cls(allocator.alloc(length, dtype), length, allocator)

    @classmethod
    def zeros(
        cls,
        length: int,
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Vector:
        vector = cls.empty(length, dtype, allocator)
        vector.data.fill(0)
        return vector

    @classmethod
    def splat(
        cls,
        length: int,
        value: Any,
        dtype: DTypeLike,
        allocator: Allocator | None = None,
    ) -> Vector:
        check_scalar_type(resolve_dtype(dtype), value, "value")
        vector = cls.empty(length, dtype, allocator)
        vector.data.fill(value)
        return vector

    @classmethod
    def from_owned_data(cls, data: NDArray, length: int | None = None) -> Vector:
        """
        Take ownership of a flat buffer.

        Args:
            data: 1-D numpy array
            length: Declared length; defaults to len(data)
        """
        if length is None:
            if not isinstance(data, np.ndarray):
                raise InvalidTypeError(
                    f"data: expected a numpy.ndarray buffer, got {type(data).__name__}"
                )
            length = data.shape[0] if data.ndim == 1 else data.size
        length = _check_extent(length, "length")
        return cls(_adopt_buffer(data, length, (length,)), length, None)

    def copy(self, allocator: Allocator | None = None) -> Vector:
        allocator = allocator or self._allocator or default_allocator()
        return Vector(allocator.dupe(self.data), self.length, allocator)

    def release(self) -> None:
        super().release()
        self.length = 0

    def __len__(self) -> int:
        return self.length


Container = Tensor | Matrix | Vector
