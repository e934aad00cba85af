from __future__ import annotations

import unittest

import numpy as np

from src.fastumap.infrastructure.ops.pairwise_distance_cuda import (
    cuda_device_count,
    cupy_available,
)


def cuda_available(index: int = 0) -> bool:
    """
    True if CuPy imports and device `index` is visible (tests should skip otherwise).
    """
    return cupy_available() and cuda_device_count() > index


def skip_without_cuda(index: int = 0):
    return unittest.skipUnless(
        cuda_available(index), f"CuPy or CUDA device {index} not available"
    )


def to_cuda(arr: np.ndarray, index: int = 0):
    import cupy as cp

    with cp.cuda.Device(index):
        return cp.asarray(arr)


def to_host(arr) -> np.ndarray:
    import cupy as cp

    return cp.asnumpy(arr)
