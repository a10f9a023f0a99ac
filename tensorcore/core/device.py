"""
Device detection for the GPU backend.

Looks for a torch-visible accelerator in priority order (CUDA, then MPS)
and describes it with a DeviceInfo. PyTorch is imported lazily, so
CPU-only use never pays for it and works without torch installed.

The TENSORCORE_DEVICE environment variable narrows detection:

    TENSORCORE_DEVICE=cpu    never report a GPU
    TENSORCORE_DEVICE=cuda   only consider CUDA
    TENSORCORE_DEVICE=mps    only consider MPS
"""

import os
import platform
from dataclasses import dataclass
from typing import Callable, Literal

DEVICE_ENV_VAR = 'TENSORCORE_DEVICE'

# Detection order when no override is set
GPU_PRIORITY = ('cuda', 'mps')

DeviceType = Literal['cpu', 'cuda', 'mps']


@dataclass(frozen=True)
class DeviceInfo:
    """
    A compute device tensorcore can run on.

    Attributes:
        device_type: 'cpu', 'cuda' or 'mps'
        device_index: Ordinal for CUDA devices, 0 for MPS, None for the host
        name: Human-readable device name
        memory_bytes: Total device memory, None where the driver hides it
    """
    device_type: DeviceType
    device_index: int | None
    name: str
    memory_bytes: int | None

    @property
    def is_gpu(self) -> bool:
        return self.device_type != 'cpu'

    @property
    def torch_device(self) -> str:
        """Device string for torch.device()."""
        if self.device_type == 'cuda':
            return f"cuda:{self.device_index or 0}"
        return self.device_type

    def __str__(self) -> str:
        if not self.is_gpu:
            return f"CPU ({self.name})"
        label = f"{self.device_type.upper()}:{self.device_index} ({self.name}"
        if self.memory_bytes is not None:
            label += f", {self.memory_bytes / 1024**3:.1f}GB"
        return label + ")"


def _import_torch():
    try:
        import torch
    except ImportError:
        return None
    return torch


def _cuda_info() -> DeviceInfo | None:
    torch = _import_torch()
    if torch is None or not torch.cuda.is_available():
        return None
    index = torch.cuda.current_device()
    props = torch.cuda.get_device_properties(index)
    return DeviceInfo('cuda', index, props.name, props.total_memory)


def _mps_info() -> DeviceInfo | None:
    torch = _import_torch()
    if torch is None:
        return None
    mps = getattr(torch.backends, 'mps', None)
    if mps is None or not mps.is_available():
        return None
    # MPS does not report memory
    return DeviceInfo('mps', 0, 'Apple Silicon GPU', None)


_DETECTORS: dict[str, Callable[[], DeviceInfo | None]] = {
    'cuda': _cuda_info,
    'mps': _mps_info,
}


def _candidates() -> tuple[str, ...]:
    forced = os.environ.get(DEVICE_ENV_VAR, '').strip().lower()
    if not forced:
        return GPU_PRIORITY
    if forced == 'cpu':
        return ()
    if forced in _DETECTORS:
        return (forced,)
    raise ValueError(
        f"{DEVICE_ENV_VAR}={forced!r}: expected one of 'cpu', 'cuda', 'mps'"
    )


def detect_gpu() -> DeviceInfo | None:
    """
    Find the best available GPU.

    Returns:
        DeviceInfo for the first device found in priority order, or None

    Raises:
        ValueError: If TENSORCORE_DEVICE holds an unknown device type
    """
    for device_type in _candidates():
        info = _DETECTORS[device_type]()
        if info is not None:
            return info
    return None


def host_device() -> DeviceInfo:
    """DeviceInfo describing the host CPU."""
    name = platform.processor() or platform.machine() or "Unknown CPU"
    return DeviceInfo('cpu', None, name, None)


def select_device(prefer: Literal['cpu', 'gpu', 'auto'] = 'auto') -> DeviceInfo:
    """
    Pick the device for a backend choice.

    Args:
        prefer: 'cpu' always returns the host; 'gpu' requires a GPU;
            'auto' returns a GPU when one is found, else the host

    Raises:
        RuntimeError: If 'gpu' is requested and none is available
    """
    if prefer == 'cpu':
        return host_device()

    gpu = detect_gpu()
    if gpu is not None:
        return gpu
    if prefer == 'gpu':
        raise RuntimeError(
            "GPU requested but none found. Install PyTorch with CUDA or MPS "
            f"support, or check {DEVICE_ENV_VAR}."
        )
    return host_device()
