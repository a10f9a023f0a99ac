"""
Tolerance tiers for comparing backends against the CPU reference.

The CPU backend is the semantic oracle. The SIMD backend reorders sums
(lane accumulators, horizontal reduction) and the GPU backend reduces in
a tree, so floating results agree only within rounding. Integer results
must agree exactly.
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


EXACT = ToleranceTier(
    rtol=0.0,
    atol=0.0,
    name='exact',
    description='integer element types: bitwise identical',
)

FP64 = ToleranceTier(
    rtol=1e-10,
    atol=1e-12,
    name='fp64',
    description='double precision, reordered summation',
)

FP32 = ToleranceTier(
    rtol=1e-4,
    atol=1e-5,
    name='fp32',
    description='single precision, reordered summation',
)


def select_tolerance(dtype: np.dtype) -> ToleranceTier:
    """Select the tolerance tier for results of the given element type."""
    dtype = np.dtype(dtype)
    if dtype == np.float32:
        return FP32
    if dtype == np.float64:
        return FP64
    return EXACT
