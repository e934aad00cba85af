"""
Backend capability contracts.

A *backend* executes tensor operations for one device category on its own
native array type (NumPy arrays on CPU, CuPy arrays on CUDA). Capabilities
are expressed as runtime-checkable protocols rather than a class hierarchy:
a backend supports an operator simply by providing the methods the
corresponding protocol names, and the dispatcher verifies this structurally
before any computation begins.

Capability layering
-------------------
- `IComputeBackend`: what the host tensor framework needs to store data.
- `IAutodiffBackend`: the host framework's differentiable-backend capability
  (gradient accumulation during reverse traversal).
- `IPairwiseDistanceBackend`: exactly one operator method, the forward
  pairwise Euclidean distance. Inference-only backends stop here.
- `IPairwiseDistanceAutodiffBackend`: a backend is differentiable for the
  operator only if it is also an `IAutodiffBackend`; it adds the backward
  kernel.

No default implementations are provided: the efficient strategy differs per
backend (vectorized NumPy blocks vs. GPU thread grids).
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IComputeBackend(Protocol):
    """
    Host framework backend contract.

    Attributes
    ----------
    name : str
        Human-readable backend name (used in error messages and logs).
    device_type : object
        The `DeviceType` this backend serves.
    xp : module
        Array module with a NumPy-compatible API (`numpy` or `cupy`).
    """

    name: str
    device_type: Any
    xp: Any

    def from_numpy(self, arr: Any, dtype: Any = None) -> Any:
        """Move a host NumPy array into backend-native storage."""
        ...

    def to_numpy(self, arr: Any) -> Any:
        """Copy backend-native storage back into a host NumPy array."""
        ...

    def zeros(self, shape: tuple[int, ...], dtype: Any) -> Any:
        """Allocate a zero-filled native array."""
        ...

    def full(self, shape: tuple[int, ...], value: float, dtype: Any) -> Any:
        """Allocate a native array filled with `value`."""
        ...


@runtime_checkable
class IAutodiffBackend(IComputeBackend, Protocol):
    """
    Differentiable backend capability of the host framework.

    Backends satisfying this protocol can take part in reverse-mode
    traversal: gradients flowing into the same tensor from several graph
    paths are summed with `accumulate`.
    """

    def accumulate(self, a: Any, b: Any) -> Any:
        """Return `a + b` as a new native array (no graph history)."""
        ...


@runtime_checkable
class IPairwiseDistanceBackend(IComputeBackend, Protocol):
    """
    Backend extension providing the pairwise Euclidean distance operator.
    """

    def euclidean_pairwise_distance(self, x: Any) -> Any:
        """
        Compute pairwise Euclidean distances between the rows of `x`.

        Parameters
        ----------
        x : native array
            Input of shape (N, D).

        Returns
        -------
        native array
            Output of shape (N, N), symmetric, zero diagonal, non-negative.
        """
        ...


@runtime_checkable
class IPairwiseDistanceAutodiffBackend(
    IPairwiseDistanceBackend, IAutodiffBackend, Protocol
):
    """
    Marks a backend as differentiable for the pairwise-distance operator.
    """

    def euclidean_pairwise_distance_backward(self, x: Any, grad_out: Any) -> Any:
        """
        Vector-Jacobian product of the pairwise distance.

        Parameters
        ----------
        x : native array
            Original input of shape (N, D).
        grad_out : native array
            Upstream gradient of shape (N, N).

        Returns
        -------
        native array
            Gradient with respect to `x`, shape (N, D).
        """
        ...


def supports(backend: object, capability: type) -> bool:
    """
    Return True if `backend` structurally satisfies `capability`.
    """
    return isinstance(backend, capability)
