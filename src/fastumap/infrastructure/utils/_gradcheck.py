"""
Finite-difference gradient checking.

`gradcheck` compares the analytic gradient produced by the autograd engine
against central differences of a scalar loss. It works on CPU tensors in
float64, which is the setting where a relative error of 1e-3 is meaningful.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from ..tensor._tensor import Tensor


@dataclass(frozen=True)
class GradcheckResult:
    """
    Outcome of a gradient check.

    Attributes
    ----------
    analytic : np.ndarray
        Gradient from `Tensor.backward()`.
    numeric : np.ndarray
        Central-difference estimate.
    max_rel_error : float
        max |analytic - numeric| / max(|numeric|, |analytic|, floor).
    ok : bool
        True if `max_rel_error <= rtol`.
    """

    analytic: np.ndarray
    numeric: np.ndarray
    max_rel_error: float
    ok: bool


def gradcheck(
    fn: Callable[[Tensor], Tensor],
    x: np.ndarray,
    *,
    eps: float = 1e-6,
    rtol: float = 1e-3,
    device: str = "cpu",
) -> GradcheckResult:
    """
    Check the gradient of `sum(fn(x))` against central differences.

    Parameters
    ----------
    fn : Callable[[Tensor], Tensor]
        Differentiable function of one tensor.
    x : np.ndarray
        Point at which the gradient is checked (cast to float64).
    eps : float, optional
        Finite-difference step.
    rtol : float, optional
        Accepted relative error.
    device : str, optional
        Device on which `fn` is evaluated.

    Returns
    -------
    GradcheckResult
    """
    x64 = np.asarray(x, dtype=np.float64)

    xt = Tensor._from_numpy(x64, device=device, requires_grad=True, dtype=np.float64)
    fn(xt).sum().backward()
    if xt.grad is None:
        raise RuntimeError("gradcheck: fn output does not depend on its input")
    analytic = xt.grad.to_numpy().astype(np.float64)

    def _loss(arr: np.ndarray) -> float:
        t = Tensor._from_numpy(arr, device=device, dtype=np.float64)
        return float(fn(t).to_numpy().sum())

    numeric = np.zeros_like(x64)
    for idx in np.ndindex(x64.shape):
        xp = x64.copy()
        xm = x64.copy()
        xp[idx] += eps
        xm[idx] -= eps
        numeric[idx] = (_loss(xp) - _loss(xm)) / (2.0 * eps)

    denom = np.maximum(np.maximum(np.abs(numeric), np.abs(analytic)), 1e-8)
    max_rel = float(np.max(np.abs(analytic - numeric) / denom)) if x64.size else 0.0
    return GradcheckResult(
        analytic=analytic, numeric=numeric, max_rel_error=max_rel, ok=max_rel <= rtol
    )
