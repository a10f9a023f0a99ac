"""
GPU device context.

A GPUContext holds everything the GPU backend needs on the device side:
the torch device, a command queue, one compiled pipeline per operation,
and the buffer pool. It is constructed explicitly and handed to
GPUBackend; there is no process-global context.

Lifecycle:
    ctx = GPUContext()          # nothing touches the device yet
    ctx.init()                  # idempotent; raises BackendError if no device
    ...
    ctx.teardown()              # releases pipelines, libraries, pool, queue, device

    with GPUContext() as ctx:   # init on entry, teardown on exit
        ...

After teardown the context reports is_initialized == False and the
backend falls back to the CPU path; pipeline lookups raise BackendError.

Work is submitted through command buffers, Metal style: encode one or
more dispatches, commit(), then wait_until_completed(). Every operation
is one synchronous round trip; there is no overlap between operations,
no cancellation and no timeout.

Not thread-safe. Concurrent callers must serialize whole operations.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tensorcore.core.capabilities import ALL_OPS
from tensorcore.core.device import detect_gpu
from tensorcore.core.exceptions import BackendError
from tensorcore.backends.gpu import kernels
from tensorcore.backends.gpu.buffer_pool import BufferPool
from tensorcore.backends.gpu.kernels import Kernel

if TYPE_CHECKING:
    import torch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComputePipeline:
    """
    A kernel ready for dispatch.

    Attributes:
        name: Operation name (see core.capabilities)
        library: Name of the kernel library it was built from
        kernel: The kernel function
    """
    name: str
    library: str
    kernel: Kernel


class KernelLibrary:
    """A loaded group of kernels, looked up by function name."""

    def __init__(self, name: str, functions: dict[str, Kernel]):
        self.name = name
        self._functions = dict(functions)

    def get_function(self, function_name: str) -> Kernel:
        """
        Raises:
            BackendError: If the library has no such function
        """
        try:
            return self._functions[function_name]
        except KeyError:
            raise BackendError(
                f"kernel {function_name!r} not found in library {self.name!r}"
            ) from None

    def __contains__(self, function_name: str) -> bool:
        return function_name in self._functions

    def release(self) -> None:
        self._functions.clear()


class ComputeEncoder:
    """Records the pipeline, buffer bindings and grid of one dispatch."""

    def __init__(self, command_buffer: CommandBuffer):
        self._command_buffer = command_buffer
        self._pipeline: ComputePipeline | None = None
        self._buffers: dict[int, torch.Tensor] = {}
        self._grid: tuple[int, ...] | None = None

    def set_pipeline(self, pipeline: ComputePipeline) -> None:
        self._pipeline = pipeline

    def set_buffer(self, buffer: torch.Tensor, index: int) -> None:
        self._buffers[index] = buffer

    def dispatch(self, *grid: int) -> None:
        """Dispatch one thread per grid position: (n,) or (columns, rows)."""
        self._grid = tuple(grid)

    def end_encoding(self) -> None:
        if self._pipeline is None or self._grid is None:
            raise BackendError("encoder ended without a pipeline and a dispatch")
        bound = [self._buffers[i] for i in sorted(self._buffers)]
        self._command_buffer._append(self._pipeline, bound, self._grid)


class CommandBuffer:
    """An ordered batch of dispatches submitted to the command queue."""

    def __init__(self, queue: CommandQueue):
        self._queue = queue
        self._dispatches: list[tuple[ComputePipeline, list[Any], tuple[int, ...]]] = []
        self._committed = False

    def compute_encoder(self) -> ComputeEncoder:
        return ComputeEncoder(self)

    def _append(self, pipeline, buffers, grid) -> None:
        if self._committed:
            raise BackendError("command buffer already committed")
        self._dispatches.append((pipeline, buffers, grid))

    def commit(self) -> None:
        """
        Submit every encoded dispatch.

        Raises:
            BackendError: If a kernel fails on the device
        """
        if self._committed:
            raise BackendError("command buffer committed twice")
        self._committed = True
        with self._queue.stream_scope():
            for pipeline, buffers, grid in self._dispatches:
                try:
                    pipeline.kernel(buffers, grid)
                except (RuntimeError, IndexError, ValueError) as e:
                    raise BackendError(
                        f"kernel {pipeline.name!r} failed on {self._queue.device}: {e}"
                    ) from e

    def wait_until_completed(self) -> None:
        """Block until the device has finished this command buffer."""
        if not self._committed:
            raise BackendError("wait_until_completed() before commit()")
        self._queue.synchronize()


class CommandQueue:
    """
    Submission queue for one device.

    On CUDA this owns a dedicated stream; elsewhere it submits to the
    device's default queue.
    """

    def __init__(self, device: torch.device):
        import torch

        self.device = device
        self._stream = torch.cuda.Stream(device=device) if device.type == 'cuda' else None

    def create_command_buffer(self) -> CommandBuffer:
        return CommandBuffer(self)

    def stream_scope(self):
        if self._stream is None:
            return nullcontext()
        import torch
        # uploads were issued on the default stream
        self._stream.wait_stream(torch.cuda.current_stream(self.device))
        return torch.cuda.stream(self._stream)

    def synchronize(self) -> None:
        import torch

        if self._stream is not None:
            self._stream.synchronize()
        elif self.device.type == 'mps':
            torch.mps.synchronize()

    def release(self) -> None:
        self._stream = None


class GPUContext:
    """
    Device handle, command queue, pipelines and buffer pool.

    Args:
        device: torch device string. None auto-detects (CUDA, then MPS).
            'cpu' runs the device kernels on the host through torch,
            which exercises the full device path without a GPU.
    """

    def __init__(self, device: str | None = None):
        self._requested_device = device
        self.device: torch.device | None = None
        self.device_name: str | None = None
        self.command_queue: CommandQueue | None = None
        self.libraries: dict[str, KernelLibrary] = {}
        self.pipelines: dict[str, ComputePipeline] = {}
        self.buffer_pool: BufferPool | None = None

    @property
    def is_initialized(self) -> bool:
        return self.device is not None

    @staticmethod
    def is_available(device: str | None = None) -> bool:
        """Check whether a device can be created, without creating one."""
        try:
            import torch
        except ImportError:
            return False
        if device is None:
            return detect_gpu() is not None
        kind = torch.device(device).type
        if kind == 'cpu':
            return True
        if kind == 'cuda':
            return torch.cuda.is_available()
        if kind == 'mps':
            return hasattr(torch.backends, 'mps') and torch.backends.mps.is_available()
        return False

    def _resolve_device(self) -> tuple[torch.device, str]:
        try:
            import torch
        except ImportError as e:
            raise BackendError(
                "GPU backend requires PyTorch. Install with: pip install tensorcore[gpu]"
            ) from e

        if self._requested_device is None:
            info = detect_gpu()
            if info is None:
                raise BackendError(
                    "No GPU available. Ensure PyTorch is installed with CUDA/MPS support."
                )
            return torch.device(info.torch_device), info.name

        device = torch.device(self._requested_device)
        if not self.is_available(self._requested_device):
            raise BackendError(f"Device {device} not available")
        if device.type == 'cuda':
            return device, torch.cuda.get_device_name(device)
        if device.type == 'mps':
            return device, 'Apple Silicon GPU (MPS)'
        return device, 'host (torch CPU)'

    def init(self) -> None:
        """
        Create the device, command queue, pipelines and buffer pool.

        Idempotent: a second call on an initialized context does nothing.

        Raises:
            BackendError: If no device is available or a kernel is missing
        """
        if self.is_initialized:
            return

        device, device_name = self._resolve_device()
        command_queue = CommandQueue(device)

        libraries = {
            name: KernelLibrary(name, functions)
            for name, functions in kernels.LIBRARIES.items()
        }
        pipelines: dict[str, ComputePipeline] = {}
        for op_name in sorted(ALL_OPS):
            library = next((lib for lib in libraries.values() if op_name in lib), None)
            if library is None:
                raise BackendError(f"no kernel library provides {op_name!r}")
            pipelines[op_name] = ComputePipeline(
                name=op_name,
                library=library.name,
                kernel=library.get_function(op_name),
            )

        self.device = device
        self.device_name = device_name
        self.command_queue = command_queue
        self.libraries = libraries
        self.pipelines = pipelines
        self.buffer_pool = BufferPool(device)
        logger.debug(
            "GPU context initialized on %s (%s) with %d pipelines",
            device, device_name, len(pipelines),
        )

    def teardown(self) -> None:
        """
        Release pipelines, libraries, buffer pool, command queue and device.

        Safe to call on an uninitialized context.

        Raises:
            RuntimeError: If pool buffers are still checked out; the
                context is left initialized and usable
        """
        if not self.is_initialized:
            return

        if self.buffer_pool is not None:
            self.buffer_pool.release()
        self.buffer_pool = None
        self.pipelines.clear()
        for library in self.libraries.values():
            library.release()
        self.libraries = {}
        if self.command_queue is not None:
            self.command_queue.release()
        self.command_queue = None
        logger.debug("GPU context on %s torn down", self.device)
        self.device = None
        self.device_name = None

    def pipeline(self, name: str) -> ComputePipeline:
        """
        Look up the pipeline for an operation.

        Raises:
            BackendError: If the context is not initialized or has no
                pipeline for the operation
        """
        if not self.is_initialized:
            raise BackendError("GPU context is not initialized")
        try:
            return self.pipelines[name]
        except KeyError:
            raise BackendError(f"no pipeline for operation {name!r}") from None

    def __enter__(self) -> GPUContext:
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()

    def __repr__(self) -> str:
        if not self.is_initialized:
            return "GPUContext(<uninitialized>)"
        return f"GPUContext(device={self.device}, name={self.device_name!r})"
