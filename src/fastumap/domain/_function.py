"""
Differentiable operator contract.

An operator such as the pairwise distance is written as a `Function`
subclass with two static methods. The functional wrapper of the operator
(e.g. `euclidean_pairwise_distance`) owns the graph wiring:

1. it creates the `Context` whose single parent is the input tensor,
2. calls `forward(ctx, x)`, which saves what backward will need,
3. attaches the context to the output only if the input requires gradients.

`backward(ctx, grad_out)` is never called by the wrapper. The autograd engine
calls it through the context's `backward_fn`, at most once per traversal, and
only if a gradient reaches the output node.
"""

from abc import ABC, abstractmethod
from typing import Union, Any
from ._tensor import ITensor


class Function(ABC):
    """
    Stateless forward/backward pair of a differentiable operator.

    Everything that must survive between the passes lives on `ctx`
    (`save_for_backward`, `saved_meta`), never on the class. The same
    subclass therefore serves any number of graphs and threads at once.
    """

    @staticmethod
    @abstractmethod
    def forward(ctx, *inputs: Union[ITensor, Any]) -> ITensor:
        """
        Compute the operator output and record backward state on `ctx`.

        Parameters
        ----------
        ctx : Context
            Per-call context. Single-input operators save their input with
            `ctx.save_for_backward(x)`.
        *inputs : Tensor
            Operator inputs, already validated by the functional wrapper.

        Returns
        -------
        Tensor
            A new output tensor without graph history; the wrapper attaches
            `ctx` to it.
        """
        ...

    @staticmethod
    @abstractmethod
    def backward(ctx, grad_out: ITensor) -> ITensor:
        """
        Vector-Jacobian product for the saved input.

        Parameters
        ----------
        ctx : Context
            The context filled by `forward`.
        grad_out : Tensor
            Gradient of the loss with respect to the output, same shape and
            device as the output.

        Returns
        -------
        Tensor
            Gradient with respect to the single input, same shape and device
            as that input.
        """
        ...
