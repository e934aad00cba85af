"""
CUDA implementations of the pairwise Euclidean distance (CuPy JIT backend).

Kernels are written in CUDA C and compiled at first use with NVRTC through
`cupy.RawKernel`. Each kernel is specialized for one (input shape, dtype,
device) combination: the shape is baked in as preprocessor constants, so the
loop bounds are compile-time constants. Compiled kernels live in the
process-wide `KernelCache` and are reused by every later call with the same
key.

Launch model
------------
- forward: one thread per output entry (i, j). Threads with j > i compute the
  distance once and write both (i, j) and (j, i), which makes the output
  exactly symmetric; diagonal threads write 0; threads with j < i exit.
- backward: the forward kernel first recomputes the distances, then one
  thread per gradient entry (i, k) sums its N contributions in a fixed order.
  No atomics are used, so the result is deterministic for a given device.

Launches are asynchronous on the current CuPy stream; the returned arrays
synchronize when copied to host.
"""

from __future__ import annotations

from typing import Any

import numpy as np

try:
    import cupy as cp

    _HAS_CUPY = True
except ImportError:
    cp = None
    _HAS_CUPY = False

from ...domain._errors import (
    BackendExecutionError,
    DeviceNotSupportedError,
    KernelCompilationError,
)
from .._logging import get_logger
from ._kernel_cache import KernelKey, get_kernel_cache

logger = get_logger("fastumap.ops.pairwise_distance_cuda")

_SCALAR_TYPES = {
    np.dtype(np.float32): ("float", "sqrtf"),
    np.dtype(np.float64): ("double", "sqrt"),
}

source = r"""
extern "C" __global__
void pairwise_distance_forward(
    const SCALAR_T* __restrict__ x,
    SCALAR_T* __restrict__ out
){
    const long long idx = (long long)blockIdx.x * blockDim.x + threadIdx.x;
    if (idx >= (long long)N_ROWS * N_ROWS) return;

    const long long i = idx / N_ROWS;
    const long long j = idx % N_ROWS;
    if (j < i) return;
    if (i == j) {
        out[idx] = (SCALAR_T)0;
        return;
    }

    SCALAR_T acc = (SCALAR_T)0;
    for (int k = 0; k < N_COLS; ++k) {
        const SCALAR_T diff = x[i * N_COLS + k] - x[j * N_COLS + k];
        acc += diff * diff;
    }
    const SCALAR_T dist = SQRT_FN(acc > (SCALAR_T)0 ? acc : (SCALAR_T)0);
    out[i * N_ROWS + j] = dist;
    out[j * N_ROWS + i] = dist;
}

extern "C" __global__
void pairwise_distance_backward(
    const SCALAR_T* __restrict__ x,
    const SCALAR_T* __restrict__ dist,
    const SCALAR_T* __restrict__ grad_out,
    SCALAR_T* __restrict__ grad_x
){
    const long long idx = (long long)blockIdx.x * blockDim.x + threadIdx.x;
    if (idx >= (long long)N_ROWS * N_COLS) return;

    const long long i = idx / N_COLS;
    const long long k = idx % N_COLS;
    const SCALAR_T xik = x[i * N_COLS + k];

    SCALAR_T acc = (SCALAR_T)0;
    for (long long j = 0; j < N_ROWS; ++j) {
        const SCALAR_T d = dist[i * N_ROWS + j];
        if (d > (SCALAR_T)0) {
            const SCALAR_T w = (grad_out[i * N_ROWS + j] + grad_out[j * N_ROWS + i]) / d;
            acc += w * (xik - x[j * N_COLS + k]);
        }
    }
    grad_x[idx] = acc;
}
"""


def cupy_available() -> bool:
    """Return True if CuPy imported successfully."""
    return _HAS_CUPY


def cuda_device_count() -> int:
    """
    Return the number of visible CUDA devices (0 if CuPy or the driver is missing).
    """
    if not _HAS_CUPY:
        return 0
    try:
        return int(cp.cuda.runtime.getDeviceCount())
    except cp.cuda.runtime.CUDARuntimeError:
        return 0


def _require_cupy(op: str, device_index: int) -> None:
    if not _HAS_CUPY:
        raise DeviceNotSupportedError(
            op=op,
            device=f"cuda:{device_index}",
            reason="CuPy is not installed (pip install 'fastumap[cuda]').",
        )


def _scalar_type(dtype: Any, op: str) -> tuple[str, str]:
    dt = np.dtype(dtype)
    if dt not in _SCALAR_TYPES:
        raise TypeError(f"{op}: unsupported dtype {dt} (expected float32 or float64)")
    return _SCALAR_TYPES[dt]


def _compile_kernel(
    name: str,
    shape: tuple[int, int],
    dtype: Any,
    device_index: int,
    *,
    debug: bool = False,
):
    """
    Return the compiled kernel `name` for (shape, dtype, device, debug), compiling once.

    Raises
    ------
    KernelCompilationError
        If NVRTC rejects the source.
    """
    key = KernelKey.make(name, shape, dtype, device_index, debug=debug)
    cache = get_kernel_cache()

    def _build():
        n_rows, n_cols = shape
        scalar_t, sqrt_fn = _scalar_type(dtype, name)
        options = (
            f"-DSCALAR_T={scalar_t}",
            f"-DSQRT_FN={sqrt_fn}",
            f"-DN_ROWS={int(n_rows)}",
            f"-DN_COLS={int(n_cols)}",
        )
        if debug:
            options = options + ("-lineinfo",)

        logger.info("compiling %s", key)
        kernel = cp.RawKernel(source, name, options=options)
        try:
            with cp.cuda.Device(device_index):
                kernel.compile()
        except cp.cuda.compiler.CompileException as e:
            logger.error("compilation of %s failed", key)
            raise KernelCompilationError(
                op=name,
                device=f"cuda:{device_index}",
                key=key,
                log=str(e),
            ) from e
        if debug:
            logger.debug("compiled %s with options %s", key, options)
        return kernel

    return cache.get_or_compile(key, _build)


def _launch(
    kernel,
    n_threads: int,
    block_size: int,
    args: tuple,
    *,
    op: str,
    device_index: int,
) -> None:
    grid = (n_threads + block_size - 1) // block_size
    try:
        kernel((grid,), (block_size,), args)
    except (
        cp.cuda.driver.CUDADriverError,
        cp.cuda.runtime.CUDARuntimeError,
        cp.cuda.memory.OutOfMemoryError,
    ) as e:
        raise BackendExecutionError(op, f"cuda:{device_index}", e) from e


def pairwise_distance_forward_cuda(
    x,
    *,
    device_index: int = 0,
    block_size: int = 256,
    debug: bool = False,
):
    """
    Pairwise Euclidean distance forward pass (CUDA, CuPy).

    Parameters
    ----------
    x : cupy.ndarray
        Input of shape (N, D), float32 or float64, resident on `device_index`.
    device_index : int, optional
        CUDA device ordinal on which to compile and launch.
    block_size : int, optional
        Threads per block.
    debug : bool, optional
        Compile with line information.

    Returns
    -------
    cupy.ndarray
        Distances of shape (N, N).

    Raises
    ------
    DeviceNotSupportedError
        If CuPy is not installed.
    KernelCompilationError, BackendExecutionError
        On compilation or launch failures.
    """
    op = "pairwise_distance_forward"
    _require_cupy(op, device_index)
    if x.ndim != 2:
        raise ValueError(f"x must be 2-D (N, D), got shape {x.shape}")

    with cp.cuda.Device(device_index):
        x = cp.ascontiguousarray(x)
        N, D = (int(s) for s in x.shape)
        try:
            out = cp.zeros((N, N), dtype=x.dtype)
        except cp.cuda.memory.OutOfMemoryError as e:
            raise BackendExecutionError(op, f"cuda:{device_index}", e) from e
        if N == 0 or D == 0:
            return out

        kernel = _compile_kernel(op, (N, D), x.dtype, device_index, debug=debug)
        _launch(kernel, N * N, block_size, (x, out), op=op, device_index=device_index)
        return out


def pairwise_distance_backward_cuda(
    x,
    grad_out,
    *,
    device_index: int = 0,
    block_size: int = 256,
    debug: bool = False,
):
    """
    Pairwise Euclidean distance backward pass (CUDA, CuPy).

    Parameters
    ----------
    x : cupy.ndarray
        Original input of shape (N, D).
    grad_out : cupy.ndarray
        Upstream gradient of shape (N, N).
    device_index, block_size, debug
        See `pairwise_distance_forward_cuda`.

    Returns
    -------
    cupy.ndarray
        Gradient with respect to `x`, shape (N, D).
    """
    op = "pairwise_distance_backward"
    _require_cupy(op, device_index)
    if x.ndim != 2:
        raise ValueError(f"x must be 2-D (N, D), got shape {x.shape}")
    N, D = (int(s) for s in x.shape)
    if tuple(grad_out.shape) != (N, N):
        raise ValueError(
            f"grad_out must have shape {(N, N)}, got {tuple(grad_out.shape)}"
        )

    with cp.cuda.Device(device_index):
        x = cp.ascontiguousarray(x)
        g = cp.ascontiguousarray(grad_out, dtype=x.dtype)
        try:
            grad_x = cp.zeros((N, D), dtype=x.dtype)
        except cp.cuda.memory.OutOfMemoryError as e:
            raise BackendExecutionError(op, f"cuda:{device_index}", e) from e
        if N == 0 or D == 0:
            return grad_x

        dist = pairwise_distance_forward_cuda(
            x, device_index=device_index, block_size=block_size, debug=debug
        )
        kernel = _compile_kernel(op, (N, D), x.dtype, device_index, debug=debug)
        _launch(
            kernel,
            N * D,
            block_size,
            (x, dist, g, grad_x),
            op=op,
            device_index=device_index,
        )
        return grad_x
