"""
Pairwise-distance kernels with device-dispatch boundaries.

This module is the Tensor-level boundary of the pairwise Euclidean distance
operator:

- Validate the operands (Tensor type, rank 2, floating dtype, gradient shape)
  before anything is dispatched.
- Resolve the backend bound to the tensor's device and check that it provides
  the required capability.
- Call the backend kernel on native storage and wrap the result in a new
  `Tensor` on the same device.

Autograd wiring (Context attachment) happens in the functional wrapper, not
here; tensors returned by these functions have no graph history.
"""

from __future__ import annotations

import numpy as np

from ...domain._backend import (
    IPairwiseDistanceAutodiffBackend,
    IPairwiseDistanceBackend,
)
from ...domain._errors import DeviceMismatchError, InvalidInputError
from ..backends._registry import resolve_backend
from ..tensor._tensor import Tensor

_OP = "euclidean_pairwise_distance"


def validate_pairwise_distance_input(x: Tensor, op: str = _OP) -> None:
    """
    Check that `x` is a 2-D floating-point Tensor.

    Raises
    ------
    TypeError
        If `x` is not a Tensor.
    InvalidInputError
        If `x` is not 2-D or its dtype is not floating-point.
    """
    if not isinstance(x, Tensor):
        raise TypeError(f"{op} expects a Tensor, got {type(x)!r}")
    if len(x.shape) != 2:
        raise InvalidInputError(
            op, f"expected a 2-D tensor (N, D), got shape {x.shape}", shape=x.shape
        )
    if not np.issubdtype(x.dtype, np.floating):
        raise InvalidInputError(op, f"expected a floating dtype, got {x.dtype}")


def pairwise_distance_forward(x: Tensor) -> Tensor:
    """
    Compute pairwise Euclidean distances between the rows of `x`.

    Parameters
    ----------
    x : Tensor
        Input of shape (N, D) on any device with a registered backend.

    Returns
    -------
    Tensor
        Output of shape (N, N), same device and dtype, `requires_grad=False`.

    Raises
    ------
    InvalidInputError
        On invalid rank or dtype.
    CapabilityNotSupportedError
        If the device backend does not provide the forward kernel.
    """
    validate_pairwise_distance_input(x)
    backend = resolve_backend(x.device, IPairwiseDistanceBackend, _OP)
    y = backend.euclidean_pairwise_distance(x.data)
    return Tensor._from_native(y, device=x.device)


def pairwise_distance_backward(x: Tensor, grad_out: Tensor) -> Tensor:
    """
    Gradient of the pairwise distance with respect to `x`.

    Parameters
    ----------
    x : Tensor
        Original input of shape (N, D).
    grad_out : Tensor
        Upstream gradient of shape (N, N), same device as `x`.

    Returns
    -------
    Tensor
        Gradient of shape (N, D), `requires_grad=False`.

    Raises
    ------
    InvalidInputError
        If `grad_out` is not (N, N).
    DeviceMismatchError
        If `grad_out` is on another device.
    CapabilityNotSupportedError
        If the device backend is not differentiable for this operator.
    """
    op = _OP + "_backward"
    validate_pairwise_distance_input(x, op)
    n = x.shape[0]
    if grad_out.shape != (n, n):
        raise InvalidInputError(
            op, f"grad_out must have shape {(n, n)}, got {grad_out.shape}", shape=grad_out.shape
        )
    if grad_out.device != x.device:
        raise DeviceMismatchError(str(x.device), str(grad_out.device))

    backend = resolve_backend(x.device, IPairwiseDistanceAutodiffBackend, op)
    g = backend.euclidean_pairwise_distance_backward(x.data, grad_out.data)
    return Tensor._from_native(g, device=x.device)
