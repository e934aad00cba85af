"""
Differentiable pairwise Euclidean distance.

The operator is expressed in the function-style autograd API:

- `PairwiseDistanceFn` is a `Function` subclass with static `forward(ctx, x)`
  and `backward(ctx, grad_out)` methods. Both delegate to the device
  dispatcher in `ops.pairwise_distance_ext`.
- The public wrapper `euclidean_pairwise_distance` validates the input,
  builds the `Context`, runs `forward` and attaches the context to the output
  when the input requires gradients.

The backward kernel is not executed here. It runs only when
`Tensor.backward()` reaches the output node with a gradient.

Only the input is saved for backward; distances are recomputed by the
backward kernel, so the node holds no (N, N) buffer between passes.
"""

from ..domain._function import Function
from ..domain._backend import IPairwiseDistanceAutodiffBackend
from .backends._registry import resolve_backend
from .ops.pairwise_distance_ext import (
    pairwise_distance_backward,
    pairwise_distance_forward,
    validate_pairwise_distance_input,
)
from .tensor import Context, Tensor


class PairwiseDistanceFn(Function):
    """
    Pairwise Euclidean distance between the rows of a matrix.

    Implements:

        out[i, j] = || x[i] - x[j] ||_2

    Backward:

        grad[i] = sum_j (G[i, j] + G[j, i]) / d(i, j) * (x[i] - x[j])

    with pairs at distance 0 contributing nothing.
    """

    @staticmethod
    def forward(ctx: Context, x: Tensor) -> Tensor:
        """
        Compute the (N, N) distance matrix of `x` and save `x` for backward.
        """
        ctx.save_for_backward(x)
        ctx.saved_meta["shape"] = x.shape
        return pairwise_distance_forward(x)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Tensor:
        """
        Compute the gradient with respect to the saved input.
        """
        (x,) = ctx.saved_tensors
        return pairwise_distance_backward(x, grad_out)


def euclidean_pairwise_distance(x: Tensor) -> Tensor:
    """
    Compute pairwise Euclidean distances with autograd support.

    Parameters
    ----------
    x : Tensor
        Input of shape (N, D), float32 or float64.

    Returns
    -------
    Tensor
        Distances of shape (N, N): symmetric, exactly zero on the diagonal,
        non-negative. `requires_grad` follows `x`.

    Raises
    ------
    TypeError
        If `x` is not a Tensor.
    InvalidInputError
        If `x` is not 2-D or not floating-point.
    CapabilityNotSupportedError
        If `x.requires_grad` is set and the backend of its device has no
        backward kernel, or the backend has no forward kernel at all.
    """
    validate_pairwise_distance_input(x)
    if x.requires_grad:
        resolve_backend(
            x.device, IPairwiseDistanceAutodiffBackend, "euclidean_pairwise_distance"
        )

    ctx = Context(
        parents=(x,),
        backward_fn=lambda grad_out: (PairwiseDistanceFn.backward(ctx, grad_out),),
    )

    out = PairwiseDistanceFn.forward(ctx, x)

    if x.requires_grad:
        out.requires_grad = True
        out._set_ctx(ctx)

    return out


pairwise_distance = euclidean_pairwise_distance
