"""
Compute backends.

Available backends:
    CPUBackend: Reference implementation (plain loops)
    SIMDBackend: Chunked vector-width implementation
    GPUBackend: PyTorch device implementation with CPU fallback
"""

from tensorcore.backends.cpu import CPUBackend
from tensorcore.backends.simd import SIMDBackend
from tensorcore.backends.gpu import GPUBackend, GPUContext

__all__ = [
    "CPUBackend",
    "SIMDBackend",
    "GPUBackend",
    "GPUContext",
]
