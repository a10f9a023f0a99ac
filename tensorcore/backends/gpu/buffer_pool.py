"""
Device buffer pool for the GPU backend.

Device allocations are expensive relative to the small kernels tensorcore
dispatches, so buffers are cached by size and reused across operations.

Requests are rounded up to the next power of two bytes. This bounds
fragmentation and raises the hit rate: a 3000-byte and a 4000-byte request
share the 4096-byte bucket.

Ownership is explicit: get_buffer() checks a buffer out and
return_buffer() checks it back in. The pool tracks every checked-out
buffer, so it never hands one out twice and rejects a second return.
Callers must not keep a reference to a buffer after returning it.

Not thread-safe. Concurrent use needs an external lock around whole
operations, not just around the pool.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from tensorcore.core.exceptions import BackendError, OutOfMemoryError

if TYPE_CHECKING:
    import torch

logger = logging.getLogger(__name__)


def next_power_of_two(n: int) -> int:
    """
    Smallest power of two >= n.

    Args:
        n: Requested size in bytes

    Returns:
        n rounded up to a power of two (1 for n <= 1)
    """
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


class DeviceBuffer:
    """
    One raw device allocation.

    The storage is a flat uint8 torch tensor of `nbytes` bytes on the
    pool's device. Typed windows over its prefix are taken with view().
    """

    __slots__ = ('storage', 'nbytes')

    def __init__(self, storage: torch.Tensor):
        self.storage = storage
        self.nbytes = storage.numel()

    def view(self, dtype: torch.dtype, count: int) -> torch.Tensor:
        """
        Typed view of the first `count` elements.

        Raises:
            BackendError: If the buffer is too small for the view
        """
        itemsize = dtype.itemsize
        needed = count * itemsize
        if needed > self.nbytes:
            raise BackendError(
                f"buffer of {self.nbytes} bytes cannot hold {count} x {dtype}"
            )
        return self.storage[:needed].view(dtype)

    def __repr__(self) -> str:
        return f"DeviceBuffer(nbytes={self.nbytes}, device={self.storage.device})"


class BufferPool:
    """
    Power-of-two keyed cache of reusable device buffers.

    Usage:
        pool = BufferPool(torch.device('cuda'))
        buf = pool.get_buffer(4000)        # 4096-byte buffer
        ...
        pool.return_buffer(buf)
        assert pool.get_buffer(4000) is buf

        with pool.borrow(4000) as buf:     # returned on every exit path
            ...

    Attributes:
        device: torch device the buffers live on
        allocations: Number of device allocations made
        hits: Number of requests served from the cache
    """

    def __init__(self, device: torch.device):
        self.device = device
        self._free: dict[int, list[DeviceBuffer]] = {}
        self._checked_out: dict[int, DeviceBuffer] = {}
        self.allocations = 0
        self.hits = 0

    def _allocate(self, size: int) -> DeviceBuffer:
        import torch

        try:
            storage = torch.empty(size, dtype=torch.uint8, device=self.device)
        except torch.cuda.OutOfMemoryError as e:
            raise OutOfMemoryError(
                f"device allocation of {size} bytes failed on {self.device}",
                nbytes=size,
            ) from e
        except RuntimeError as e:
            raise BackendError(
                f"device allocation of {size} bytes failed on {self.device}: {e}"
            ) from e
        self.allocations += 1
        logger.debug("allocated %d-byte device buffer on %s", size, self.device)
        return DeviceBuffer(storage)

    def get_buffer(self, nbytes: int) -> DeviceBuffer:
        """
        Check out a buffer of at least `nbytes` bytes.

        Args:
            nbytes: Requested size; rounded up to the next power of two

        Returns:
            A buffer owned by the caller until return_buffer()
        """
        size = next_power_of_two(nbytes)
        bucket = self._free.get(size)
        if bucket:
            buffer = bucket.pop()
            self.hits += 1
        else:
            buffer = self._allocate(size)
        self._checked_out[id(buffer)] = buffer
        return buffer

    def return_buffer(self, buffer: DeviceBuffer) -> None:
        """
        Check a buffer back in for reuse.

        Raises:
            BackendError: If the buffer is not currently checked out from
                this pool (double return or foreign buffer)
        """
        if self._checked_out.pop(id(buffer), None) is None:
            raise BackendError(f"{buffer!r} is not checked out from this pool")
        self._free.setdefault(buffer.nbytes, []).append(buffer)

    @contextmanager
    def borrow(self, nbytes: int) -> Iterator[DeviceBuffer]:
        """Check out a buffer for the duration of a with-block."""
        buffer = self.get_buffer(nbytes)
        try:
            yield buffer
        finally:
            self.return_buffer(buffer)

    @property
    def free_count(self) -> int:
        """Number of cached buffers available for reuse."""
        return sum(len(bucket) for bucket in self._free.values())

    @property
    def checked_out_count(self) -> int:
        return len(self._checked_out)

    def release(self) -> None:
        """
        Drop every cached buffer.

        Raises:
            RuntimeError: If buffers are still checked out; the pool must
                outlive every operation that borrowed from it
        """
        if self._checked_out:
            raise RuntimeError(
                f"BufferPool released with {len(self._checked_out)} buffers checked out"
            )
        self._free.clear()
