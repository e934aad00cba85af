"""
NumPy backend for CPU tensors.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from ...domain.device._device import Device, DeviceType
from .._config import get_config
from ..ops.pairwise_distance_cpu import (
    pairwise_distance_backward_cpu,
    pairwise_distance_forward_cpu,
)


class NumpyCpuBackend:
    """
    CPU backend storing tensors as NumPy arrays.

    Satisfies `IPairwiseDistanceAutodiffBackend`: it provides storage, gradient
    accumulation, and both pairwise-distance kernels. Block size and worker
    count are read from the runtime configuration on every call, so
    `reload_config()` takes effect without recreating the backend.
    """

    name = "numpy-cpu"
    device_type = DeviceType.CPU
    xp = np

    def __init__(self, device: Device | None = None) -> None:
        self.device = device if device is not None else Device("cpu")

    @property
    def row_block(self) -> int:
        return get_config().cpu_row_block

    @property
    def num_workers(self) -> int:
        return get_config().cpu_num_workers

    def from_numpy(self, arr: Any, dtype: Any = None) -> np.ndarray:
        return np.array(arr, dtype=dtype, copy=True)

    def to_numpy(self, arr: np.ndarray) -> np.ndarray:
        return arr

    def zeros(self, shape: tuple[int, ...], dtype: Any) -> np.ndarray:
        return np.zeros(shape, dtype=dtype)

    def full(self, shape: tuple[int, ...], value: float, dtype: Any) -> np.ndarray:
        return np.full(shape, value, dtype=dtype)

    def accumulate(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return a + b

    def euclidean_pairwise_distance(self, x: np.ndarray) -> np.ndarray:
        return pairwise_distance_forward_cpu(
            x, row_block=self.row_block, num_workers=self.num_workers
        )

    def euclidean_pairwise_distance_backward(
        self, x: np.ndarray, grad_out: np.ndarray
    ) -> np.ndarray:
        return pairwise_distance_backward_cpu(
            x, grad_out, row_block=self.row_block, num_workers=self.num_workers
        )
