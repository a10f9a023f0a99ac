"""
Backend protocol for tensorcore.

Structural interface that every compute backend (CPU, SIMD, GPU) satisfies.
We use Protocol (structural typing) rather than ABC (nominal typing), so a
backend only needs the right methods, not a common base class.

Contract shared by all backends:
    - Shape and type checks run before any data is touched
    - Operations write strictly into the supplied output and never
      allocate result containers
    - Results agree with the CPU reference backend within floating
      tolerance; error behavior is identical
"""

from typing import Any, Callable, Protocol, runtime_checkable

from tensorcore.core.containers import Matrix, NumericBuffer, Vector

# Scalar functions applied element-wise. SIMD paths first call them with
# numpy arrays (one chunk at a time); functions that only accept scalars
# (TypeError or ValueError on an array) are applied per element instead.
BinaryFn = Callable[[Any, Any], Any]
UnaryFn = Callable[[Any], Any]


@runtime_checkable
class Backend(Protocol):
    """
    Protocol for compute backends.

    Backends are chosen once, when a TensorContext is constructed, and
    are not switched per call.
    """

    @property
    def name(self) -> str:
        """Backend identifier: 'cpu', 'simd' or 'gpu'."""
        ...

    def op(self, a: NumericBuffer, b: NumericBuffer, out: NumericBuffer, fn: BinaryFn) -> None:
        """out[i] = fn(a[i], b[i]) for every position."""
        ...

    def map(self, a: NumericBuffer, out: NumericBuffer, fn: UnaryFn) -> None:
        """out[i] = fn(a[i]) for every position."""
        ...

    def scalar_multiply(self, a: NumericBuffer, scalar: Any, out: NumericBuffer) -> None:
        """out[i] = a[i] * scalar; scalar must match the element type."""
        ...

    def vector_dot(self, a: Vector, b: Vector) -> Any:
        """Sum of element-wise products; 0 for empty vectors."""
        ...

    def vector_norm(self, v: Vector) -> Any:
        """Euclidean norm; 0 for an empty vector."""
        ...

    def matrix_vector_multiply(self, m: Matrix, v: Vector, out: Vector) -> None:
        """out = m @ v."""
        ...

    def matrix_multiply(self, a: Matrix, b: Matrix, out: Matrix) -> None:
        """out = a @ b."""
        ...

    def matrix_transpose(self, m: Matrix, out: Matrix) -> None:
        """out = m.T."""
        ...
