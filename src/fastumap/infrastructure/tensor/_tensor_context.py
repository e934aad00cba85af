from enum import Enum
from typing import Any, Callable, Sequence, Optional
from dataclasses import dataclass, field

from ...domain._tensor import ITensor


class NodeState(Enum):
    """
    Lifecycle of a tensor with respect to the autograd graph.

    UNTRACKED
        The tensor has no backward context (leaf or no gradient needed).
    TRACKED
        A context is attached; its backward has not run yet.
    DIFFERENTIATED
        The backward of the context has run at least once.
    DISCARDED
        The context was released; its parents and saved tensors are gone.
    """

    UNTRACKED = "untracked"
    TRACKED = "tracked"
    DIFFERENTIATED = "differentiated"
    DISCARDED = "discarded"


@dataclass
class Context:
    """
    Backward context attached to a Tensor produced by an operation.

    A `Context` records the information required to compute gradients for an
    operation during backpropagation. It is owned by the output tensor only;
    once that tensor is unreachable the context, and whatever it saved, is
    garbage-collected with it.

    Attributes
    ----------
    parents : Sequence[Tensor]
        The input tensors used to compute the output tensor. Gradients will
        be produced for these parents during the backward pass.
    backward_fn : Callable[[Tensor], Sequence[Optional[Tensor]]]
        A function that takes the gradient w.r.t. the output (`grad_out`) and
        returns gradients w.r.t. each `parents` entry, in the same order.
        Entries may be None for parents that do not require gradients.
    saved_tensors : list[ITensor]
        Tensors explicitly saved during the forward pass for use in backward.
    saved_meta : dict[str, Any]
        Non-tensor metadata required for backward (e.g., shapes, flags).
    state : NodeState
        TRACKED on creation, then DIFFERENTIATED or DISCARDED.
    """

    parents: Sequence["ITensor"]
    backward_fn: Callable[["ITensor"], Sequence[Optional["ITensor"]]]
    saved_tensors: list["ITensor"] = field(default_factory=list)
    saved_meta: dict[str, Any] = field(default_factory=dict)
    state: NodeState = NodeState.TRACKED
    _freed: bool = field(default=False, repr=False)

    def save_for_backward(self, *tensors: "ITensor") -> None:
        """
        Save tensors for use during the backward computation.

        Parameters
        ----------
        *tensors : Tensor
            Any number of tensors to be stored in `saved_tensors`.
        """
        self.saved_tensors.extend(tensors)

    def run_backward(
        self, grad_out: "ITensor", *, retain_graph: bool = False
    ) -> Sequence[Optional["ITensor"]]:
        """
        Execute `backward_fn` and advance the node state.

        Parameters
        ----------
        grad_out : Tensor
            Gradient w.r.t. the output of this node.
        retain_graph : bool, optional
            If False, saved tensors are freed after the call and running
            backward through this node again raises.

        Raises
        ------
        RuntimeError
            If the saved tensors were already freed by an earlier backward
            pass, or the node was discarded.
        """
        if self.state is NodeState.DISCARDED:
            raise RuntimeError("Trying to backward through a discarded graph node.")
        if self._freed:
            raise RuntimeError(
                "Trying to backward through the graph a second time; "
                "saved tensors were freed. Pass retain_graph=True to the "
                "first backward call."
            )

        grads = self.backward_fn(grad_out)
        self.state = NodeState.DIFFERENTIATED
        if not retain_graph:
            self.saved_tensors.clear()
            self._freed = True
        return grads

    def release(self) -> None:
        """
        Drop parents, saved tensors and metadata (graph pruning).
        """
        self.parents = ()
        self.saved_tensors.clear()
        self.saved_meta.clear()
        self.state = NodeState.DISCARDED
