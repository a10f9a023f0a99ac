"""
Tests for the named element-wise functions.
"""

import numpy as np
import pytest

from tensorcore import ops
from tensorcore.core.capabilities import ELEMENTWISE_OPS


@pytest.mark.parametrize("fn,expected", [
    (ops.add, 8.0),
    (ops.subtract, 4.0),
    (ops.multiply, 12.0),
    (ops.divide, 3.0),
])
def test_scalar_and_array(fn, expected):
    assert fn(np.float32(6), np.float32(2)) == expected
    np.testing.assert_array_equal(fn(np.full(3, 6.0), np.full(3, 2.0)), np.full(3, expected))


def test_every_named_function_has_a_kernel():
    assert set(ops.KERNEL_NAMES.values()) == ELEMENTWISE_OPS
    assert ops.kernel_name(ops.add) == 'add'


def test_unnamed_function_has_no_kernel():
    assert ops.kernel_name(lambda x, y: x + y) is None
    assert ops.kernel_name(np.add) is None


@pytest.mark.parametrize("x,y,expected", [
    (7, 2, 3),
    (-7, 2, -3),
    (7, -2, -3),
    (-7, -2, 3),
    (-6, 3, -2),
    (2**62 + 1, 1, 2**62 + 1),
])
def test_integer_divide_truncates_exactly(x, y, expected):
    result = ops.divide(np.int64(x), np.int64(y))
    assert result == expected
    assert np.issubdtype(result.dtype, np.integer)


def test_integer_divide_on_arrays_keeps_dtype():
    result = ops.divide(np.array([9, -9], dtype=np.int32), np.array([4, 4], dtype=np.int32))
    assert result.dtype == np.int32
    assert result.tolist() == [2, -2]
