"""
Buffer allocators.

Containers obtain and release their flat buffers through an Allocator so
that callers can observe or constrain memory use. Three implementations:

    NumpyAllocator: default, plain numpy allocation
    TrackingAllocator: records live buffers; used to detect leaks
    FailingAllocator: fails after a fixed number of allocations; used to
        exercise out-of-memory paths
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray

from tensorcore.core.exceptions import OutOfMemoryError


@runtime_checkable
class Allocator(Protocol):
    """
    Minimal protocol for raw buffer allocation.

    Buffers are flat, contiguous 1-D numpy arrays.
    """

    def alloc(self, length: int, dtype: np.dtype) -> NDArray:
        """Allocate an uninitialized buffer of `length` elements."""
        ...

    def free(self, buffer: NDArray) -> None:
        """Release a buffer previously returned by alloc() or dupe()."""
        ...

    def dupe(self, buffer: NDArray) -> NDArray:
        """Allocate a new buffer holding a copy of `buffer`."""
        ...


class NumpyAllocator:
    """Allocator backed directly by numpy."""

    def alloc(self, length: int, dtype: np.dtype) -> NDArray:
        try:
            return np.empty(length, dtype=dtype)
        except MemoryError as e:
            raise OutOfMemoryError(
                f"failed to allocate {length} elements of {dtype}",
                nbytes=length * np.dtype(dtype).itemsize,
            ) from e

    def free(self, buffer: NDArray) -> None:
        # numpy owns the memory; dropping the reference is the release
        pass

    def dupe(self, buffer: NDArray) -> NDArray:
        copy = self.alloc(buffer.shape[0], buffer.dtype)
        copy[...] = buffer
        return copy


class TrackingAllocator(NumpyAllocator):
    """
    Allocator that records every live buffer.

    Usage:
        allocator = TrackingAllocator()
        ctx = TensorContext(CPUBackend(), allocator=allocator)
        ...
        assert allocator.live_count == 0

    Freeing a buffer this allocator does not own raises RuntimeError,
    which catches double frees.
    """

    def __init__(self) -> None:
        self._live: dict[int, NDArray] = {}
        self.total_allocations = 0

    def alloc(self, length: int, dtype: np.dtype) -> NDArray:
        buffer = super().alloc(length, dtype)
        self._live[id(buffer)] = buffer
        self.total_allocations += 1
        return buffer

    def free(self, buffer: NDArray) -> None:
        if self._live.pop(id(buffer), None) is None:
            raise RuntimeError("free() of a buffer not owned by this allocator")

    @property
    def live_count(self) -> int:
        """Number of buffers allocated and not yet freed."""
        return len(self._live)


class FailingAllocator(TrackingAllocator):
    """
    Tracking allocator that raises OutOfMemoryError on the
    `fail_index`-th allocation (zero-based) and every one after it.
    """

    def __init__(self, fail_index: int) -> None:
        super().__init__()
        self.fail_index = fail_index

    def alloc(self, length: int, dtype: np.dtype) -> NDArray:
        if self.total_allocations >= self.fail_index:
            raise OutOfMemoryError(
                f"allocation #{self.total_allocations} refused (fail_index={self.fail_index})",
                nbytes=length * np.dtype(dtype).itemsize,
            )
        return super().alloc(length, dtype)


_default_allocator = NumpyAllocator()


def default_allocator() -> Allocator:
    """Process-wide default allocator."""
    return _default_allocator
