"""
GPU backend.

Available components:
    GPUBackend: Backend protocol implementation on torch devices
    GPUContext: Explicit device context (device, queue, pipelines, pool)
    BufferPool: Power-of-two keyed device buffer cache

PyTorch is imported lazily; importing this package does not require it.
"""

from tensorcore.backends.gpu.backend import GPUBackend
from tensorcore.backends.gpu.buffer_pool import BufferPool, DeviceBuffer, next_power_of_two
from tensorcore.backends.gpu.context import GPUContext

__all__ = [
    "GPUBackend",
    "GPUContext",
    "BufferPool",
    "DeviceBuffer",
    "next_power_of_two",
]
