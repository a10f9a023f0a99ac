"""
Tests for the TensorContext facade.

Validates:
    - Backend selection by name, including GPU unavailability
    - Allocating, in-place and with-out forms
    - No leaked allocation on any failure path
"""

import warnings

import numpy as np
import pytest

from tensorcore import (
    GPUContext,
    InvalidTypeError,
    LengthMismatchError,
    Matrix,
    OutOfMemoryError,
    ShapeMismatchError,
    TensorContext,
    Vector,
    ops,
)
from tensorcore.core.allocator import FailingAllocator, TrackingAllocator


@pytest.fixture
def allocator():
    return TrackingAllocator()


@pytest.fixture(params=['cpu', 'simd', 'gpu'])
def ctx(request, allocator, monkeypatch):
    # without a device 'gpu' falls back; silence the notice here
    monkeypatch.setenv('TENSORCORE_DEVICE', 'cpu')
    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        return TensorContext.create(request.param, allocator=allocator)


# ═══════════════════════════════════════════════════════════════════════
# Backend selection
# ═══════════════════════════════════════════════════════════════════════


class TestCreate:

    @pytest.mark.parametrize("name", ['cpu', 'simd'])
    def test_named_backend(self, name):
        assert TensorContext.create(name).backend_name == name

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            TensorContext.create('tpu')

    def test_auto_without_gpu_is_simd(self, monkeypatch):
        monkeypatch.setenv('TENSORCORE_DEVICE', 'cpu')
        assert TensorContext.create('auto').backend_name == 'simd'

    def test_gpu_without_device_warns_and_falls_back(self, monkeypatch):
        monkeypatch.setenv('TENSORCORE_DEVICE', 'cpu')
        with pytest.warns(UserWarning, match="GPU backend will run on the CPU"):
            ctx = TensorContext.create('gpu')
        assert ctx.backend_name == 'gpu'
        assert not ctx.backend.context.is_initialized

        a = ctx.vector_splat(4, 2.0, np.float32)
        assert ctx.vector_dot(a, a) == 16.0

    def test_gpu_with_explicit_context(self):
        pytest.importorskip("torch")
        gpu_context = GPUContext(device='cpu')
        ctx = TensorContext.create('gpu', gpu_context=gpu_context)
        assert gpu_context.is_initialized
        assert ctx.backend.context is gpu_context
        gpu_context.teardown()

    def test_repr(self):
        assert repr(TensorContext.create('cpu')) == "TensorContext(backend='cpu')"


# ═══════════════════════════════════════════════════════════════════════
# Operation forms
# ═══════════════════════════════════════════════════════════════════════


class TestForms:

    def test_matrix_multiply_known_value(self, ctx):
        a = ctx.matrix_from_owned_data(np.arange(1, 7, dtype=np.float32), 2, 3)
        b = ctx.matrix_from_owned_data(np.arange(7, 13, dtype=np.float32), 3, 2)

        result = ctx.matrix_multiply(a, b)

        assert isinstance(result, Matrix)
        np.testing.assert_array_equal(result.to_numpy(), [[58, 64], [139, 154]])
        result.release()

    def test_add_allocating(self, ctx, allocator):
        a = ctx.vector_splat(5, 1, np.int32)
        b = ctx.vector_splat(5, 2, np.int32)

        result = ctx.add(a, b)

        assert isinstance(result, Vector)
        assert np.all(result.data == 3)
        assert allocator.live_count == 3
        for v in (a, b, result):
            v.release()
        assert allocator.live_count == 0

    def test_in_place(self, ctx):
        a = ctx.matrix_splat(2, 2, 6.0, np.float64)
        b = ctx.matrix_splat(2, 2, 4.0, np.float64)

        ctx.subtract_in_place(a, b)
        ctx.divide_in_place(a, b)

        assert np.all(a.data == 0.5)

    def test_with_out(self, ctx):
        a = ctx.tensor_splat((2, 2, 2), 3.0, np.float32)
        out = ctx.tensor_zeros((2, 2, 2), np.float32)

        ctx.multiply_with_out(a, a, out)

        assert np.all(out.data == 9.0)

    def test_generic_op(self, ctx):
        a = ctx.vector_splat(3, 5, np.int64)
        result = ctx.op(a, a, lambda x, y: x * y - y)
        np.testing.assert_array_equal(result.data, [20, 20, 20])

    def test_map_forms(self, ctx):
        a = ctx.vector_splat(17, -2.0, np.float32)
        result = ctx.map(a, np.abs)
        assert np.all(result.data == 2.0)
        ctx.map_in_place(a, lambda x: x * 3)
        assert np.all(a.data == -6.0)

    def test_scalar_multiply_forms(self, ctx):
        a = ctx.vector_splat(4, 3, np.int32)
        result = ctx.scalar_multiply(a, 2)
        assert np.all(result.data == 6)
        out = ctx.vector_zeros(4, np.int32)
        ctx.scalar_multiply_with_out(a, -1, out)
        assert np.all(out.data == -3)
        ctx.scalar_multiply_in_place(a, 0)
        assert np.all(a.data == 0)

    def test_reductions(self, ctx):
        v = ctx.vector_from_owned_data(np.array([3.0, 4.0], dtype=np.float64))
        assert ctx.vector_norm(v) == 5.0
        assert ctx.vector_dot(v, v) == 25.0

    def test_matrix_vector_multiply(self, ctx):
        m = ctx.matrix_splat(3, 2, 1.0, np.float32)
        v = ctx.vector_from_owned_data(np.array([2.0, 5.0], dtype=np.float32))
        result = ctx.matrix_vector_multiply(m, v)
        assert result.length == 3
        assert np.all(result.data == 7.0)

    def test_transpose_involution(self, ctx):
        m = ctx.matrix_from_owned_data(np.arange(35, dtype=np.int64), 5, 7)
        once = ctx.matrix_transpose(m)
        assert (once.rows, once.columns) == (7, 5)
        twice = ctx.matrix_transpose(once)
        np.testing.assert_array_equal(twice.data, m.data)

    def test_transpose_with_out(self, ctx):
        m = ctx.matrix_from_owned_data(np.arange(6, dtype=np.float32), 2, 3)
        out = ctx.matrix_zeros(3, 2, np.float32)
        ctx.matrix_transpose_with_out(m, out)
        np.testing.assert_array_equal(out.to_numpy(), [[0, 3], [1, 4], [2, 5]])


# ═══════════════════════════════════════════════════════════════════════
# Failure paths leak nothing
# ═══════════════════════════════════════════════════════════════════════


class TestNoLeaks:

    def test_shape_mismatch_releases_result(self, ctx, allocator):
        a = ctx.matrix_zeros(2, 3, np.float32)
        b = ctx.matrix_zeros(3, 2, np.float32)

        with pytest.raises(ShapeMismatchError):
            ctx.add(a, b)

        assert allocator.live_count == 2

    def test_matrix_multiply_mismatch_releases_result(self, ctx, allocator):
        a = ctx.matrix_zeros(2, 3, np.float32)
        with pytest.raises(ShapeMismatchError):
            ctx.matrix_multiply(a, a)
        assert allocator.live_count == 1

    def test_dot_length_mismatch(self, ctx, allocator):
        with pytest.raises(LengthMismatchError):
            ctx.vector_dot(ctx.vector_zeros(2, np.float32), ctx.vector_zeros(3, np.float32))
        assert allocator.live_count == 2

    def test_wrong_kind_allocates_nothing(self, ctx, allocator):
        v = ctx.vector_zeros(3, np.float32)
        with pytest.raises(InvalidTypeError):
            ctx.matrix_transpose(v)
        assert allocator.live_count == 1

    def test_raising_function_releases_result(self, ctx, allocator):
        a = ctx.vector_splat(4, 1.0, np.float64)

        def boom(x):
            raise ArithmeticError("boom")

        with pytest.raises(ArithmeticError):
            ctx.map(a, boom)
        assert allocator.live_count == 1

    def test_bad_scalar_releases_result(self, ctx, allocator):
        a = ctx.vector_zeros(3, np.int64)
        with pytest.raises(InvalidTypeError):
            ctx.scalar_multiply(a, 1.5)
        assert allocator.live_count == 1

    def test_out_of_memory_on_result(self):
        allocator = FailingAllocator(fail_index=2)
        ctx = TensorContext.create('simd', allocator=allocator)
        a = ctx.vector_splat(3, 1.0, np.float32)
        b = ctx.vector_splat(3, 2.0, np.float32)

        with pytest.raises(OutOfMemoryError):
            ctx.add(a, b)

        assert allocator.live_count == 2
        a.release()
        b.release()
        assert allocator.live_count == 0
