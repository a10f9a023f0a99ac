"""
GPU device context, command submission, kernel libraries and buffer pool.

Everything here runs on torch's CPU device and is skipped without torch.
"""

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from tensorcore.backends.gpu import kernels
from tensorcore.backends.gpu.buffer_pool import BufferPool, DeviceBuffer, next_power_of_two
from tensorcore.backends.gpu.context import GPUContext, KernelLibrary
from tensorcore.core.capabilities import ALL_OPS
from tensorcore.core.exceptions import BackendError


# ═══════════════════════════════════════════════════════════════════════
# Buffer pool
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("n,expected", [
    (0, 1), (1, 1), (2, 2), (3, 4), (4, 4), (5, 8), (3000, 4096), (4096, 4096), (4097, 8192),
])
def test_next_power_of_two(n, expected):
    assert next_power_of_two(n) == expected


class TestBufferPool:

    @pytest.fixture
    def pool(self):
        return BufferPool(torch.device('cpu'))

    def test_rounds_up(self, pool):
        buf = pool.get_buffer(3000)
        assert buf.nbytes == 4096

    def test_returned_buffer_is_reused(self, pool):
        buf = pool.get_buffer(4000)
        pool.return_buffer(buf)
        assert pool.get_buffer(3000) is buf
        assert pool.allocations == 1
        assert pool.hits == 1

    def test_checked_out_buffer_not_handed_out_twice(self, pool):
        first = pool.get_buffer(64)
        second = pool.get_buffer(64)
        assert first is not second
        assert pool.checked_out_count == 2

    def test_different_buckets(self, pool):
        small = pool.get_buffer(100)
        pool.return_buffer(small)
        large = pool.get_buffer(1000)
        assert large is not small
        assert pool.free_count == 1

    def test_double_return_raises(self, pool):
        buf = pool.get_buffer(16)
        pool.return_buffer(buf)
        with pytest.raises(BackendError):
            pool.return_buffer(buf)

    def test_foreign_buffer_rejected(self, pool):
        other = BufferPool(torch.device('cpu'))
        with pytest.raises(BackendError):
            pool.return_buffer(other.get_buffer(16))

    def test_borrow_returns_on_error(self, pool):
        with pytest.raises(ValueError):
            with pool.borrow(32):
                raise ValueError("boom")
        assert pool.checked_out_count == 0
        assert pool.free_count == 1

    def test_release_with_checked_out_raises(self, pool):
        pool.get_buffer(8)
        with pytest.raises(RuntimeError):
            pool.release()

    def test_release_drops_cache(self, pool):
        pool.return_buffer(pool.get_buffer(8))
        pool.release()
        assert pool.free_count == 0


class TestDeviceBuffer:

    def test_typed_view(self):
        buf = DeviceBuffer(torch.zeros(64, dtype=torch.uint8))
        view = buf.view(torch.float32, 10)
        assert view.shape == (10,)
        assert view.dtype == torch.float32

    def test_view_shares_storage(self):
        buf = DeviceBuffer(torch.zeros(16, dtype=torch.uint8))
        buf.view(torch.int32, 4).fill_(1)
        assert buf.view(torch.int32, 4).tolist() == [1, 1, 1, 1]

    def test_view_too_large(self):
        buf = DeviceBuffer(torch.zeros(8, dtype=torch.uint8))
        with pytest.raises(BackendError):
            buf.view(torch.float32, 3)


# ═══════════════════════════════════════════════════════════════════════
# Kernels
# ═══════════════════════════════════════════════════════════════════════


class TestKernels:

    def test_every_operation_has_one_kernel(self):
        provided = [name for library in kernels.LIBRARIES.values() for name in library]
        assert sorted(provided) == sorted(ALL_OPS)

    @pytest.mark.parametrize("n", [1, 2, 255, 256, 257, 1000, 256 * 256 + 1])
    def test_tree_reduce(self, n):
        values = torch.ones(n, dtype=torch.float32)
        assert kernels._tree_reduce(values).item() == float(n)

    def test_kernel_honours_dims_not_buffer_length(self):
        # pool buffers are larger than the operands
        m = torch.arange(8, dtype=torch.float32)
        result = torch.full((8,), -1.0)
        dims = torch.tensor([2, 3, 0, 0], dtype=torch.int32)

        kernels.matrix_transpose([m, result, dims], (3, 2))

        assert result[:6].tolist() == [0.0, 3.0, 1.0, 4.0, 2.0, 5.0]
        assert result[6:].tolist() == [-1.0, -1.0]

    def test_integer_divide_kernel_is_exact(self):
        big = 2**53 + 1
        a = torch.tensor([big, -7, 7, -big], dtype=torch.int64)
        b = torch.tensor([1, 2, -2, 1], dtype=torch.int64)
        result = torch.zeros(4, dtype=torch.int64)

        kernels.divide([a, b, result], (4,))

        assert result.tolist() == [big, -3, -3, -big]


# ═══════════════════════════════════════════════════════════════════════
# Context lifecycle
# ═══════════════════════════════════════════════════════════════════════


class TestContextLifecycle:

    def test_init_builds_pipelines(self):
        ctx = GPUContext(device='cpu')
        assert not ctx.is_initialized
        ctx.init()
        assert ctx.is_initialized
        assert set(ctx.pipelines) == set(ALL_OPS)
        assert ctx.pipeline('matrix_multiply').library == 'matrix_ops'
        ctx.teardown()

    def test_init_is_idempotent(self):
        ctx = GPUContext(device='cpu')
        ctx.init()
        pool = ctx.buffer_pool
        ctx.init()
        assert ctx.buffer_pool is pool
        ctx.teardown()

    def test_teardown_releases(self):
        ctx = GPUContext(device='cpu')
        ctx.init()
        ctx.teardown()
        assert not ctx.is_initialized
        assert ctx.buffer_pool is None
        assert ctx.pipelines == {}
        with pytest.raises(BackendError):
            ctx.pipeline('add')

    def test_refused_teardown_leaves_context_usable(self):
        ctx = GPUContext(device='cpu')
        ctx.init()
        buf = ctx.buffer_pool.get_buffer(16)

        with pytest.raises(RuntimeError, match="checked out"):
            ctx.teardown()

        assert ctx.is_initialized
        assert set(ctx.pipelines) == set(ALL_OPS)
        assert 'add' in ctx.libraries['elementwise']
        assert ctx.pipeline('add').name == 'add'

        ctx.buffer_pool.return_buffer(buf)
        ctx.teardown()
        assert not ctx.is_initialized

    def test_teardown_uninitialized_is_noop(self):
        GPUContext(device='cpu').teardown()

    def test_context_manager(self):
        with GPUContext(device='cpu') as ctx:
            assert ctx.is_initialized
        assert not ctx.is_initialized

    def test_unknown_pipeline(self):
        with GPUContext(device='cpu') as ctx:
            with pytest.raises(BackendError, match="no pipeline"):
                ctx.pipeline('convolve')

    def test_repr(self):
        ctx = GPUContext(device='cpu')
        assert repr(ctx) == "GPUContext(<uninitialized>)"
        with ctx:
            assert "device=cpu" in repr(ctx)

    def test_no_gpu_raises_backend_error(self, monkeypatch):
        monkeypatch.setenv('TENSORCORE_DEVICE', 'cpu')
        with pytest.raises(BackendError, match="No GPU available"):
            GPUContext().init()


class TestKernelLibrary:

    def test_missing_function(self):
        library = KernelLibrary('empty', {})
        with pytest.raises(BackendError, match="not found in library 'empty'"):
            library.get_function('add')

    def test_contains(self):
        library = KernelLibrary('elementwise', kernels.ELEMENTWISE_LIBRARY)
        assert 'add' in library
        assert 'vector_dot' not in library


class TestCommandBuffer:

    def test_wait_before_commit_raises(self):
        with GPUContext(device='cpu') as ctx:
            command_buffer = ctx.command_queue.create_command_buffer()
            with pytest.raises(BackendError):
                command_buffer.wait_until_completed()

    def test_double_commit_raises(self):
        with GPUContext(device='cpu') as ctx:
            command_buffer = ctx.command_queue.create_command_buffer()
            command_buffer.commit()
            with pytest.raises(BackendError):
                command_buffer.commit()

    def test_encoder_without_dispatch_raises(self):
        with GPUContext(device='cpu') as ctx:
            encoder = ctx.command_queue.create_command_buffer().compute_encoder()
            encoder.set_pipeline(ctx.pipeline('add'))
            with pytest.raises(BackendError):
                encoder.end_encoding()

    def test_encode_and_run(self):
        with GPUContext(device='cpu') as ctx:
            a = torch.tensor([1.0, 2.0, 3.0])
            b = torch.tensor([10.0, 20.0, 30.0])
            result = torch.zeros(3)

            command_buffer = ctx.command_queue.create_command_buffer()
            encoder = command_buffer.compute_encoder()
            encoder.set_pipeline(ctx.pipeline('add'))
            encoder.set_buffer(a, 0)
            encoder.set_buffer(b, 1)
            encoder.set_buffer(result, 2)
            encoder.dispatch(3)
            encoder.end_encoding()
            command_buffer.commit()
            command_buffer.wait_until_completed()

            np.testing.assert_array_equal(result.numpy(), [11.0, 22.0, 33.0])
