"""
Backend fixtures.

`backend` runs a test once per backend:

    cpu           reference loops
    simd          chunked vector-width kernels
    gpu_fallback  GPUBackend on an uninitialized context (SIMD path)
    gpu_host      GPUBackend on torch's CPU device (full device path)
"""

import pytest

from tensorcore.backends import CPUBackend, GPUBackend, GPUContext, SIMDBackend


@pytest.fixture(params=['cpu', 'simd', 'gpu_fallback', 'gpu_host'])
def backend(request):
    if request.param == 'cpu':
        yield CPUBackend()
    elif request.param == 'simd':
        yield SIMDBackend()
    elif request.param == 'gpu_fallback':
        yield GPUBackend(GPUContext())
    else:
        pytest.importorskip("torch")
        ctx = GPUContext(device='cpu')
        ctx.init()
        yield GPUBackend(ctx)
        ctx.teardown()


@pytest.fixture
def reference():
    return CPUBackend()
