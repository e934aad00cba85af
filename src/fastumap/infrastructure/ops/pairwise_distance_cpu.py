"""
CPU implementations of the pairwise Euclidean distance (NumPy backend).

This module provides the forward and backward kernels of

    d(i, j) = || x[i] - x[j] ||_2          x : (N, D),  d : (N, N)

for NumPy arrays. They serve as:

- the kernels executed by the CPU backend,
- the numerical reference for the CUDA kernels in tests.

Forward
-------
The *direct* formulation sqrt(sum_k (x[i,k] - x[j,k])^2) is used. Output rows
are computed in independent blocks of `row_block` rows (bounded temporary
memory of row_block * N * D elements); blocks may run on a thread pool since
NumPy releases the GIL inside its vectorized loops. The squared sum is
clamped at 0 before the square root, the strict lower triangle is mirrored
from the upper one (exact symmetry) and the diagonal is overwritten with 0.

Backward
--------
With upstream gradient G (N, N):

    W[i, j] = (G[i, j] + G[j, i]) / d(i, j)     if d(i, j) > 0, else 0
    grad[i] = sum_j W[i, j] * (x[i] - x[j])
            = x[i] * sum_j W[i, j] - (W @ x)[i]

Pairs of coincident rows (d == 0) contribute nothing, so the gradient stays
finite. The cost is O(N^2 * D), like the forward pass.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np


def _check_2d(x: np.ndarray, name: str) -> None:
    if x.ndim != 2:
        raise ValueError(f"{name} must be 2-D (N, D), got shape {x.shape}")


def _row_blocks(n: int, row_block: int) -> list[tuple[int, int]]:
    return [(i0, min(i0 + row_block, n)) for i0 in range(0, n, row_block)]


def pairwise_distance_forward_cpu(
    x: np.ndarray,
    *,
    row_block: int = 128,
    num_workers: int = 1,
) -> np.ndarray:
    """
    Pairwise Euclidean distance forward pass (CPU, NumPy).

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, D), floating dtype.
    row_block : int, optional
        Number of output rows computed per vectorized block.
    num_workers : int, optional
        Number of threads used to process independent row blocks. 1 runs the
        blocks sequentially on the calling thread.

    Returns
    -------
    np.ndarray
        Distances of shape (N, N) and dtype `x.dtype`: exactly symmetric,
        exactly zero on the diagonal, non-negative.
    """
    _check_2d(x, "x")
    if row_block < 1:
        raise ValueError(f"row_block must be >= 1, got {row_block}")

    N = x.shape[0]
    x = np.ascontiguousarray(x)
    y = np.empty((N, N), dtype=x.dtype)

    def _fill(bounds: tuple[int, int]) -> None:
        i0, i1 = bounds
        diff = x[i0:i1, None, :] - x[None, :, :]
        sq = np.einsum("ijk,ijk->ij", diff, diff)
        np.maximum(sq, 0, out=sq)
        np.sqrt(sq, out=y[i0:i1])

    blocks = _row_blocks(N, row_block)
    if num_workers > 1 and len(blocks) > 1:
        with ThreadPoolExecutor(max_workers=num_workers) as pool:
            # list() re-raises the first worker exception, if any
            list(pool.map(_fill, blocks))
    else:
        for b in blocks:
            _fill(b)

    lower = np.tril_indices(N, k=-1)
    y[lower] = y.T[lower]
    np.fill_diagonal(y, 0)
    return y


def pairwise_distance_backward_cpu(
    x: np.ndarray,
    grad_out: np.ndarray,
    *,
    dist: Optional[np.ndarray] = None,
    row_block: int = 128,
    num_workers: int = 1,
) -> np.ndarray:
    """
    Pairwise Euclidean distance backward pass (CPU, NumPy).

    Parameters
    ----------
    x : np.ndarray
        Original input of shape (N, D).
    grad_out : np.ndarray
        Gradient of the loss with respect to the distances, shape (N, N).
    dist : Optional[np.ndarray], optional
        Forward distances, if already available. Recomputed from `x` when None.
    row_block, num_workers : int, optional
        Forwarded to `pairwise_distance_forward_cpu` when `dist` is recomputed.

    Returns
    -------
    np.ndarray
        Gradient with respect to `x`, shape (N, D), dtype `x.dtype`.

    Raises
    ------
    ValueError
        If `grad_out` is not (N, N).
    """
    _check_2d(x, "x")
    N = x.shape[0]
    if grad_out.shape != (N, N):
        raise ValueError(
            f"grad_out must have shape {(N, N)}, got {tuple(grad_out.shape)}"
        )

    if dist is None:
        dist = pairwise_distance_forward_cpu(
            x, row_block=row_block, num_workers=num_workers
        )

    g = np.asarray(grad_out, dtype=x.dtype)
    g_sym = g + g.T

    w = np.zeros_like(dist)
    np.divide(g_sym, dist, out=w, where=dist > 0)

    grad = x * w.sum(axis=1, keepdims=True) - w @ x
    return grad.astype(x.dtype, copy=False)
