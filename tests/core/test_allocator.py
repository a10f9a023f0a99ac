"""
Tests for buffer allocators.
"""

import numpy as np
import pytest

from tensorcore.core.allocator import (
    Allocator,
    FailingAllocator,
    NumpyAllocator,
    TrackingAllocator,
    default_allocator,
)
from tensorcore.core.containers import Matrix, Vector
from tensorcore.core.exceptions import OutOfMemoryError


class TestNumpyAllocator:

    def test_satisfies_protocol(self):
        assert isinstance(NumpyAllocator(), Allocator)
        assert isinstance(default_allocator(), Allocator)

    def test_alloc_shape_and_dtype(self):
        buf = NumpyAllocator().alloc(7, np.dtype(np.int64))
        assert buf.shape == (7,)
        assert buf.dtype == np.int64

    def test_dupe_copies(self):
        allocator = NumpyAllocator()
        src = np.arange(4, dtype=np.float32)
        copy = allocator.dupe(src)
        assert copy is not src
        np.testing.assert_array_equal(copy, src)


class TestTrackingAllocator:

    def test_counts_live_buffers(self):
        allocator = TrackingAllocator()
        a = allocator.alloc(3, np.dtype(np.float32))
        b = allocator.dupe(a)
        assert allocator.live_count == 2
        assert allocator.total_allocations == 2
        allocator.free(a)
        allocator.free(b)
        assert allocator.live_count == 0

    def test_double_free_raises(self):
        allocator = TrackingAllocator()
        buf = allocator.alloc(3, np.dtype(np.float32))
        allocator.free(buf)
        with pytest.raises(RuntimeError):
            allocator.free(buf)

    def test_foreign_buffer_raises(self):
        with pytest.raises(RuntimeError):
            TrackingAllocator().free(np.zeros(3))

    def test_container_release_frees(self):
        allocator = TrackingAllocator()
        v = Vector.zeros(8, np.float64, allocator)
        v.release()
        assert allocator.live_count == 0


class TestFailingAllocator:

    def test_fails_at_index(self):
        allocator = FailingAllocator(fail_index=1)
        Vector.zeros(2, np.float32, allocator)
        with pytest.raises(OutOfMemoryError) as exc_info:
            Vector.zeros(2, np.float32, allocator)
        assert exc_info.value.nbytes == 8

    def test_fail_index_zero_fails_immediately(self):
        with pytest.raises(OutOfMemoryError):
            Matrix.zeros(2, 2, np.float32, FailingAllocator(fail_index=0))

    def test_out_of_memory_is_memory_error(self):
        with pytest.raises(MemoryError):
            FailingAllocator(fail_index=0).alloc(1, np.dtype(np.int32))
