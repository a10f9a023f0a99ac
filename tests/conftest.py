"""
pytest configuration and shared fixtures.
"""

import logging

import pytest
import numpy as np

from tensorcore.core.containers import Matrix, Vector


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture(autouse=True)
def _no_device_override(monkeypatch):
    """Tests choose devices explicitly; ignore the caller's environment."""
    monkeypatch.delenv('TENSORCORE_DEVICE', raising=False)


@pytest.fixture
def host_gpu_context():
    """
    GPU context running the device kernels on the host through torch.

    Exercises the full device path (pool, command buffers, kernels)
    without a GPU.
    """
    pytest.importorskip("torch")
    from tensorcore.backends.gpu import GPUContext

    ctx = GPUContext(device='cpu')
    ctx.init()
    yield ctx
    ctx.teardown()


@pytest.fixture
def gpu_debug_log(caplog):
    caplog.set_level(logging.DEBUG, logger='tensorcore.backends.gpu')
    return caplog


@pytest.fixture
def make_vector(rng):
    """Factory for random vectors: make_vector(length, dtype=np.float32)."""

    def make(length, dtype=np.float32):
        if np.issubdtype(dtype, np.integer):
            data = rng.integers(-20, 20, size=length).astype(dtype)
        else:
            data = rng.standard_normal(length).astype(dtype)
        return Vector.from_owned_data(data)

    return make


@pytest.fixture
def make_matrix(rng):
    """Factory for random matrices: make_matrix(rows, columns, dtype=np.float32)."""

    def make(rows, columns, dtype=np.float32):
        if np.issubdtype(dtype, np.integer):
            data = rng.integers(-20, 20, size=rows * columns).astype(dtype)
        else:
            data = rng.standard_normal(rows * columns).astype(dtype)
        return Matrix.from_owned_data(data, rows, columns)

    return make
