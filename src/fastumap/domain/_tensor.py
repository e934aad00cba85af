"""
Tensor interface definitions.

This module defines the domain-level interface for tensor-like objects using
structural typing. The interface captures the backend-agnostic properties
required for tensors to participate in computation graphs and to be consumed
by callers outside the framework (e.g. an embedding optimizer or a plotting
collaborator that only needs `tolist()`).
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from .device._device_protocol import DeviceLike


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` represents a multi-dimensional array that participates in
    numerical computation and, optionally, automatic differentiation.
    Different concrete storages (NumPy on CPU, CuPy on CUDA) satisfy the same
    contract.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """Return the shape of the tensor."""
        ...

    @property
    def device(self) -> DeviceLike:
        """Return the device on which this tensor resides."""
        ...

    @property
    def dtype(self) -> Any:
        """Return the element dtype of the tensor."""
        ...

    @property
    def requires_grad(self) -> bool:
        """Indicate whether this tensor should accumulate gradients."""
        ...

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None: ...

    @property
    def grad(self) -> Optional["ITensor"]:
        """Return the accumulated gradient, or None."""
        ...

    def zero_grad(self) -> None:
        """Clear the stored gradient."""
        ...

    def backward(
        self, grad_out: Optional["ITensor"] = None, *, retain_graph: bool = False
    ) -> None:
        """
        Backpropagate gradients through the autograd graph.

        Parameters
        ----------
        grad_out : Optional[ITensor]
            Gradient with respect to this tensor. May be omitted for scalars.
        retain_graph : bool
            Keep saved tensors so the graph can be traversed again.
        """
        ...

    def to_numpy(self) -> Any:
        """Return a host-side NumPy copy of the tensor data."""
        ...

    def tolist(self) -> Any:
        """Return the tensor data as (nested) Python lists of floats."""
        ...
