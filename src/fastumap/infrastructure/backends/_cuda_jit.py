"""
CuPy backend for CUDA tensors (just-in-time compiled kernels).

Construction fails fast with `DeviceNotSupportedError` when CuPy is not
installed or the requested device ordinal is not visible, so a missing GPU is
reported at the first tensor placed on it rather than at kernel launch.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from ...domain.device._device import Device, DeviceType
from ...domain._errors import BackendExecutionError, DeviceNotSupportedError
from .._config import get_config
from ..ops import pairwise_distance_cuda as _cuda
from ..ops.pairwise_distance_cuda import (
    pairwise_distance_backward_cuda,
    pairwise_distance_forward_cuda,
)


class CupyJitBackend:
    """
    CUDA backend storing tensors as CuPy arrays on one device.

    Every allocation and launch runs inside `cupy.cuda.Device(index)`, so
    tensors on "cuda:1" never touch device 0.
    Block size and the debug flag follow the current runtime configuration.
    """

    name = "cupy-jit"
    device_type = DeviceType.CUDA

    def __init__(self, device: Device) -> None:
        index = 0 if device.index is None else int(device.index)
        if not _cuda.cupy_available():
            raise DeviceNotSupportedError(
                op="backend",
                device=str(device),
                reason="CuPy is not installed (pip install 'fastumap[cuda]').",
            )
        count = _cuda.cuda_device_count()
        if index >= count:
            raise DeviceNotSupportedError(
                op="backend",
                device=str(device),
                reason=f"{count} CUDA device(s) visible.",
            )
        self.device = device
        self.index = index
        self.xp = _cuda.cp

    @property
    def block_size(self) -> int:
        return get_config().cuda_block_size

    @property
    def debug(self) -> bool:
        return get_config().cuda_debug

    def _oom(self, op: str, e: Exception) -> BackendExecutionError:
        return BackendExecutionError(op, str(self.device), e)

    def from_numpy(self, arr: Any, dtype: Any = None):
        cp = self.xp
        host = np.asarray(arr, dtype=dtype)
        try:
            with cp.cuda.Device(self.index):
                return cp.array(host, copy=True)
        except cp.cuda.memory.OutOfMemoryError as e:
            raise self._oom("from_numpy", e) from e

    def to_numpy(self, arr) -> np.ndarray:
        cp = self.xp
        with cp.cuda.Device(self.index):
            return cp.asnumpy(arr)

    def zeros(self, shape: tuple[int, ...], dtype: Any):
        cp = self.xp
        try:
            with cp.cuda.Device(self.index):
                return cp.zeros(shape, dtype=dtype)
        except cp.cuda.memory.OutOfMemoryError as e:
            raise self._oom("zeros", e) from e

    def full(self, shape: tuple[int, ...], value: float, dtype: Any):
        cp = self.xp
        try:
            with cp.cuda.Device(self.index):
                return cp.full(shape, value, dtype=dtype)
        except cp.cuda.memory.OutOfMemoryError as e:
            raise self._oom("full", e) from e

    def accumulate(self, a, b):
        with self.xp.cuda.Device(self.index):
            return a + b

    def euclidean_pairwise_distance(self, x):
        return pairwise_distance_forward_cuda(
            x, device_index=self.index, block_size=self.block_size, debug=self.debug
        )

    def euclidean_pairwise_distance_backward(self, x, grad_out):
        return pairwise_distance_backward_cuda(
            x,
            grad_out,
            device_index=self.index,
            block_size=self.block_size,
            debug=self.debug,
        )
