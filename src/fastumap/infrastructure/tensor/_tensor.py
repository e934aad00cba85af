"""
Concrete Tensor implementation and reverse-mode autograd engine.

This module provides the host tensor used by the pairwise-distance operator.
A `Tensor` stores its data in the native array type of the backend bound to
its device:

- CPU tensors hold a NumPy ndarray,
- CUDA tensors hold a CuPy ndarray (device memory owned by CuPy's pool).

Every storage-level operation (allocation, host transfer, elementwise math,
gradient accumulation) goes through the backend returned by the registry, so
the same `Tensor` code serves both devices.

Autograd
--------
Differentiable operations attach a `Context` to their output when any input
requires gradients. `Tensor.backward()` collects the nodes reachable from the
output, visits them in reverse topological order, and calls each node's
backward only if a gradient actually reached it. Gradients are accumulated in
a dict keyed by tensor identity and written into `.grad` of tensors that
require gradients.

Design notes
------------
- Tensors produced by operations are new objects; inputs are never mutated.
- Broadcasting is not implemented; binary ops require exact shape matches
  (scalars are lifted to the other operand's shape).
"""

from __future__ import annotations

from typing import Any, Union, Optional

import numpy as np
from typing_extensions import Self

from ...domain._tensor import ITensor
from ...domain._backend import IAutodiffBackend, supports
from ...domain.device._device import Device
from ...domain._errors import (
    CapabilityNotSupportedError,
    DeviceMismatchError,
    InvalidInputError,
)
from ..backends._registry import get_backend
from ._tensor_context import Context, NodeState

Number = Union[int, float]

_FLOAT_DTYPES = (np.dtype(np.float32), np.dtype(np.float64))


def _as_device(device: Union[Device, str]) -> Device:
    return Device(device) if isinstance(device, str) else device


class Tensor(ITensor):
    """
    Concrete tensor implementation (NumPy on CPU, CuPy on CUDA).

    Parameters
    ----------
    shape : tuple[int, ...]
        Tensor shape.
    device : Device
        Target device placement for the tensor.
    requires_grad : bool, optional
        Whether this tensor should accumulate gradients during backprop.
        Defaults to False.
    ctx : Optional[Context], optional
        Backward context for autograd graph traversal. Typically set internally
        by differentiable operations. Defaults to None.
    dtype : np.dtype, optional
        Element dtype, float32 (default) or float64.

    Notes
    -----
    - Storage is zero-initialized on construction.
    - Gradients (if any) are stored as another `Tensor` in `_grad`.
    """

    def __init__(
        self,
        shape: tuple[int, ...],
        device: Device,
        *,
        requires_grad: bool = False,
        ctx: Optional[Context] = None,
        dtype: np.dtype = np.float32,
    ) -> None:
        self._shape = tuple(int(s) for s in shape)
        self._device = _as_device(device)
        self._dtype = np.dtype(dtype)
        if self._dtype not in _FLOAT_DTYPES:
            raise TypeError(
                f"Unsupported tensor dtype {self._dtype}; expected float32 or float64"
            )
        self._data = self._backend().zeros(self._shape, self._dtype)

        # --- autograd fields (optional) ---
        self._requires_grad: bool = bool(requires_grad)
        self._grad: Optional["Tensor"] = None
        self._ctx: Optional[Context] = ctx

    @classmethod
    def _from_native(
        cls,
        arr: Any,
        *,
        device: Device,
        requires_grad: bool = False,
        ctx: Optional[Context] = None,
    ) -> "Tensor":
        """
        Wrap an existing backend-native array without copying.

        Parameters
        ----------
        arr : numpy.ndarray or cupy.ndarray
            Native storage for `device`. Ownership passes to the tensor.
        device : Device
            Device the array lives on.
        requires_grad : bool, optional
            Gradient flag of the new tensor.
        ctx : Optional[Context], optional
            Optional autograd context to attach.

        Returns
        -------
        Tensor
            A tensor whose storage is `arr`.
        """
        dtype = np.dtype(arr.dtype)
        if dtype not in _FLOAT_DTYPES:
            raise TypeError(
                f"Unsupported tensor dtype {dtype}; expected float32 or float64"
            )
        obj = cls.__new__(cls)  # bypass __init__ (no allocation)
        obj._shape = tuple(int(s) for s in arr.shape)
        obj._device = _as_device(device)
        obj._dtype = dtype
        obj._data = arr
        obj._requires_grad = bool(requires_grad)
        obj._grad = None
        obj._ctx = ctx
        return obj

    @staticmethod
    def _from_numpy(
        arr: Any,
        *,
        device: Union[Device, str],
        requires_grad: bool = False,
        dtype: Optional[np.dtype] = None,
    ) -> "Tensor":
        """
        Construct a Tensor from a NumPy array (or array-like).

        Parameters
        ----------
        arr : array-like
            Source data. Its shape determines the tensor shape.
        device : Device or str
            Target device.
        requires_grad : bool, optional
            Whether the tensor participates in automatic differentiation.
        dtype : np.dtype, optional
            Element dtype. Defaults to float32.

        Returns
        -------
        Tensor
            A new tensor whose contents are copied from `arr`.
        """
        device = _as_device(device)
        arr_nd = np.asarray(arr, dtype=np.float32 if dtype is None else dtype)
        backend = get_backend(device)
        return Tensor._from_native(
            backend.from_numpy(arr_nd, arr_nd.dtype),
            device=device,
            requires_grad=requires_grad,
        )

    def __repr__(self) -> str:
        return (
            f"Tensor(shape={self._shape}, device={self._device}, dtype={self._dtype}, "
            f"requires_grad={self._requires_grad})"
        )

    # ----------------------------
    # Properties
    # ----------------------------
    @property
    def dtype(self) -> np.dtype:
        """Return the element dtype of this tensor."""
        return self._dtype

    @property
    def data(self) -> Any:
        """
        Return the backend-native storage (NumPy or CuPy ndarray).

        Notes
        -----
        The returned array is the tensor's own storage; callers must not
        mutate it.
        """
        return self._data

    @property
    def shape(self) -> tuple[int, ...]:
        """Return the tensor shape."""
        return self._shape

    @property
    def device(self) -> Device:
        """Return the device on which this tensor resides."""
        return self._device

    @property
    def requires_grad(self) -> bool:
        """
        Indicate whether this tensor should accumulate gradients.
        """
        return self._requires_grad

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        self._requires_grad = bool(value)

    @property
    def grad(self) -> Optional["Tensor"]:
        """
        Return the gradient tensor associated with this tensor (if any).
        """
        return self._grad

    @property
    def graph_state(self) -> NodeState:
        """
        Return the autograd lifecycle state of this tensor.

        Returns
        -------
        NodeState
            UNTRACKED when no context is attached, otherwise the state of the
            attached context (TRACKED, DIFFERENTIATED or DISCARDED).
        """
        if self._ctx is None:
            return NodeState.UNTRACKED
        return self._ctx.state

    def zero_grad(self) -> None:
        """
        Clear the stored gradient.
        """
        self._grad = None

    def _set_ctx(self, ctx: Optional[Context]) -> None:
        """
        Attach or detach the backward context (internal hook for operations).
        """
        self._ctx = ctx

    def _get_ctx(self) -> Optional[Context]:
        """
        Return the backward context attached to this tensor, if any.
        """
        return self._ctx

    # ----------------------------
    # Internal helpers
    # ----------------------------
    def _backend(self):
        return get_backend(self._device)

    @staticmethod
    def _result_requires_grad(*parents: "Tensor") -> bool:
        """
        Return True if any parent requires gradients.
        """
        return any(p.requires_grad for p in parents)

    @staticmethod
    def _as_tensor_like(x: Union["Tensor", Number], like: "Tensor") -> "Tensor":
        """
        Convert an operand into a Tensor compatible with a reference tensor.

        Python scalars are lifted to a tensor with the shape, device and dtype
        of `like`.

        Raises
        ------
        TypeError
            If `x` is neither a Tensor nor a supported scalar type.
        """
        if isinstance(x, Tensor):
            return x
        if isinstance(x, (int, float)):
            return Tensor.full(
                shape=like.shape, value=float(x), device=like.device, dtype=like.dtype
            )
        raise TypeError(f"Unsupported operand type: {type(x)!r}")

    @staticmethod
    def _binary_op_check(a: "Tensor", b: "Tensor") -> None:
        """
        Validate device, shape and dtype compatibility for elementwise ops.

        Raises
        ------
        DeviceMismatchError
            If the operands live on different devices.
        ValueError
            If shapes do not match exactly.
        TypeError
            If dtypes differ.
        """
        if a.device != b.device:
            raise DeviceMismatchError(str(a.device), str(b.device))
        if a.shape != b.shape:
            raise ValueError(f"Shape mismatch: {a.shape} vs {b.shape}")
        if a.dtype != b.dtype:
            raise TypeError(f"dtype mismatch: {a.dtype} vs {b.dtype}")

    def numel(self) -> int:
        """
        Return the total number of elements in the tensor.
        """
        n = 1
        for d in self._shape:
            n *= d
        return n

    # ----------------------------
    # Factories
    # ----------------------------
    @staticmethod
    def zeros(
        *,
        shape: tuple[int, ...],
        device: Union[Device, str],
        requires_grad: bool = False,
        dtype: np.dtype = np.float32,
    ) -> "Tensor":
        """
        Create a tensor filled with zeros on the specified device.
        """
        return Tensor(
            shape=shape, device=_as_device(device), requires_grad=requires_grad, dtype=dtype
        )

    @staticmethod
    def full(
        *,
        shape: tuple[int, ...],
        value: float,
        device: Union[Device, str],
        requires_grad: bool = False,
        dtype: np.dtype = np.float32,
    ) -> "Tensor":
        """
        Create a tensor filled with `value` on the specified device.
        """
        device = _as_device(device)
        backend = get_backend(device)
        return Tensor._from_native(
            backend.full(tuple(shape), float(value), np.dtype(dtype)),
            device=device,
            requires_grad=requires_grad,
        )

    @staticmethod
    def ones(
        *,
        shape: tuple[int, ...],
        device: Union[Device, str],
        requires_grad: bool = False,
        dtype: np.dtype = np.float32,
    ) -> "Tensor":
        """
        Create a tensor filled with ones on the specified device.
        """
        return Tensor.full(
            shape=shape, value=1.0, device=device, requires_grad=requires_grad, dtype=dtype
        )

    # ----------------------------
    # Host boundary
    # ----------------------------
    def copy_from_numpy(self, arr: Any) -> None:
        """
        Copy data from a NumPy array (or array-like / scalar) into this tensor.

        The data is cast to `self.dtype` and replaces the tensor storage.

        Raises
        ------
        ValueError
            If the array shape differs from the tensor shape.
        """
        arr_nd = np.asarray(arr, dtype=self._dtype)
        if arr_nd.shape != self._shape:
            raise ValueError(
                f"Shape mismatch: tensor {self._shape} vs array {arr_nd.shape}"
            )
        self._data = self._backend().from_numpy(arr_nd, self._dtype)

    def to_numpy(self) -> np.ndarray:
        """
        Return the tensor data as a host NumPy ndarray.

        Notes
        -----
        - CPU tensors return their storage array.
        - CUDA tensors are copied device-to-host; this synchronizes with any
          kernel still writing the storage.
        """
        return self._backend().to_numpy(self._data)

    def tolist(self) -> Any:
        """
        Return the tensor data as (nested) Python lists of floats.

        A 2-D tensor of shape (N, 2) becomes a list of N coordinate pairs,
        the form plotting collaborators consume.
        """
        return self.to_numpy().tolist()

    def item(self) -> float:
        """
        Return the value of a scalar (or single-element) tensor as a Python float.

        Raises
        ------
        ValueError
            If the tensor does not contain exactly 1 element.
        """
        if self.numel() != 1:
            raise ValueError(
                f"Tensor.item() requires a scalar/1-element tensor, got shape={self.shape}"
            )
        return float(self.to_numpy().reshape(-1)[0])

    def fill(self, value: float) -> None:
        """
        Fill the tensor with `value` (replaces storage, no autograd history).
        """
        self._data = self._backend().full(self._shape, float(value), self._dtype)

    def to(self, device: Union[Device, str], *, copy: bool = False) -> "Tensor":
        """
        Return this tensor's data on `device`.

        The result is a new leaf tensor (no autograd history) that keeps
        `requires_grad`. When `device` is the current device, `self` is
        returned unless `copy=True`.
        """
        device = _as_device(device)
        if device == self._device and not copy:
            return self
        host = np.array(self.to_numpy(), dtype=self._dtype, copy=True)
        return Tensor._from_numpy(
            host, device=device, requires_grad=self._requires_grad, dtype=self._dtype
        )

    # ----------------------------
    # Graph management
    # ----------------------------
    def detach(self) -> "Tensor":
        """
        Return a new tensor sharing this tensor's data without autograd history.
        """
        return Tensor._from_native(self._data, device=self._device, requires_grad=False)

    def detach_(self) -> Self:
        """
        Prune the graph behind this tensor in place.

        The attached context (if any) is released: its parents and cached
        inputs are dropped and its state becomes DISCARDED. Returns `self`.
        """
        if self._ctx is not None:
            self._ctx.release()
        self._requires_grad = False
        return self

    # ----------------------------
    # Differentiable elementwise ops
    # ----------------------------
    def __add__(self, other: Union["Tensor", Number]) -> "Tensor":
        """
        Elementwise addition.

        Backward rule: d(a + b)/da = 1, d(a + b)/db = 1.
        """
        other_t = self._as_tensor_like(other, self)
        self._binary_op_check(self, other_t)

        req = self._result_requires_grad(self, other_t)
        xp = self._backend().xp
        out = Tensor._from_native(
            xp.add(self._data, other_t.data), device=self._device, requires_grad=req
        )
        if req:
            ctx = Context(
                parents=(self, other_t),
                backward_fn=lambda grad_out: (grad_out, grad_out),
            )
            out._set_ctx(ctx)
        return out

    def __radd__(self, other: Number) -> "Tensor":
        return self.__add__(other)

    def __neg__(self) -> "Tensor":
        """
        Elementwise negation. Backward rule: d(-x)/dx = -1.
        """
        xp = self._backend().xp
        out = Tensor._from_native(
            xp.negative(self._data), device=self._device, requires_grad=self._requires_grad
        )
        if self._requires_grad:
            ctx = Context(
                parents=(self,),
                backward_fn=lambda grad_out: (-grad_out,),
            )
            out._set_ctx(ctx)
        return out

    def __sub__(self, other: Union["Tensor", Number]) -> "Tensor":
        """
        Elementwise subtraction, expressed as `self + (-other)`.
        """
        other_t = self._as_tensor_like(other, self)
        return self + (-other_t)

    def __rsub__(self, other: Number) -> "Tensor":
        return self._as_tensor_like(other, self) - self

    def __mul__(self, other: Union["Tensor", Number]) -> "Tensor":
        """
        Elementwise multiplication.

        Backward rule: d(a * b)/da = b, d(a * b)/db = a.
        """
        other_t = self._as_tensor_like(other, self)
        self._binary_op_check(self, other_t)

        req = self._result_requires_grad(self, other_t)
        xp = self._backend().xp
        out = Tensor._from_native(
            xp.multiply(self._data, other_t.data), device=self._device, requires_grad=req
        )
        if req:
            a, b = self, other_t
            ctx = Context(
                parents=(a, b),
                backward_fn=lambda grad_out: (
                    grad_out * b.detach() if a.requires_grad else None,
                    grad_out * a.detach() if b.requires_grad else None,
                ),
            )
            out._set_ctx(ctx)
        return out

    def __rmul__(self, other: Number) -> "Tensor":
        return self.__mul__(other)

    def sum(self) -> "Tensor":
        """
        Sum of all elements as a scalar tensor (shape ()).

        Backward rule: the upstream scalar gradient is broadcast to the input
        shape.
        """
        backend = self._backend()
        total = backend.xp.asarray(self._data.sum(), dtype=self._dtype)
        out = Tensor._from_native(
            total, device=self._device, requires_grad=self._requires_grad
        )
        if self._requires_grad:
            shape, device, dtype = self._shape, self._device, self._dtype

            def backward_fn(grad_out: "Tensor"):
                g = backend.xp.broadcast_to(grad_out.data, shape).copy()
                return (Tensor._from_native(g.astype(dtype, copy=False), device=device),)

            out._set_ctx(Context(parents=(self,), backward_fn=backward_fn))
        return out

    # ----------------------------
    # Backward
    # ----------------------------
    def _accumulate_grad_(self, g: "Tensor") -> None:
        """
        Accumulate gradient `g` into `self.grad` (no autograd history).
        """
        g0 = self._detach_no_grad(g)
        if self._grad is None:
            self._grad = g0
            return
        if self._grad.shape != g0.shape:
            raise ValueError(f"Grad shape mismatch: {self._grad.shape} vs {g0.shape}")
        self._grad = self._add_no_grad(self._grad, g0)

    @staticmethod
    def _detach_no_grad(t: "Tensor") -> "Tensor":
        """
        Return a copy of `t` that does not track gradients and has no ctx.
        """
        return Tensor._from_native(t.data.copy(), device=t.device, requires_grad=False)

    @staticmethod
    def _add_no_grad(a: "Tensor", b: "Tensor") -> "Tensor":
        """
        Add two tensors without creating autograd history.
        """
        if a.device != b.device:
            raise DeviceMismatchError(str(a.device), str(b.device))
        if a.shape != b.shape:
            raise ValueError("Shape mismatch in _add_no_grad")
        backend = a._backend()
        if not supports(backend, IAutodiffBackend):
            raise CapabilityNotSupportedError(
                "accumulate_grad", backend.name, IAutodiffBackend.__name__
            )
        return Tensor._from_native(
            backend.accumulate(a.data, b.data), device=a.device, requires_grad=False
        )

    def backward(
        self, grad_out: Optional["Tensor"] = None, *, retain_graph: bool = False
    ) -> None:
        """
        Backpropagate gradients from this tensor through the autograd graph.

        Parameters
        ----------
        grad_out : Optional[Tensor], optional
            Gradient w.r.t. this tensor. If omitted, this tensor must have a
            single element and the gradient is assumed to be 1.0.
        retain_graph : bool, optional
            Keep the saved tensors of every visited node so the graph can be
            traversed again. Defaults to False.

        Raises
        ------
        ValueError
            If grad_out is None and this tensor is not a scalar.
        InvalidInputError
            If the shape of grad_out (or of a gradient returned by a node)
            does not match the tensor it belongs to.
        DeviceMismatchError
            If a gradient lives on another device than its tensor.
        RuntimeError
            If a visited node was already freed by an earlier backward pass.

        Notes
        -----
        - Gradients are accumulated into `.grad` of tensors that have
          `requires_grad=True`.
        - A node's backward runs only if a gradient reaches it.
        """
        if grad_out is None:
            if self.numel() != 1:
                raise ValueError(
                    "grad_out must be provided for non-scalar tensors. "
                    f"Got shape={self.shape}."
                )
            grad_out = Tensor.ones(shape=self.shape, device=self.device, dtype=self.dtype)
        else:
            if not isinstance(grad_out, Tensor):
                raise TypeError(f"grad_out must be a Tensor, got {type(grad_out)!r}")
            if grad_out.device != self.device:
                raise DeviceMismatchError(str(self.device), str(grad_out.device))
            if grad_out.shape != self.shape:
                raise InvalidInputError(
                    "backward",
                    f"grad_out shape mismatch: expected {self.shape}, got {grad_out.shape}",
                    shape=grad_out.shape,
                )

        # Build reverse topological order of nodes reachable from `self`
        topo: list[Tensor] = []
        visited: set[int] = set()

        # iterative post-order DFS; deep chains must not hit the recursion limit
        stack: list[tuple[Tensor, bool]] = [(self, False)]
        while stack:
            t, expanded = stack.pop()
            if expanded:
                topo.append(t)
                continue
            tid = id(t)
            if tid in visited:
                continue
            visited.add(tid)

            stack.append((t, True))
            ctx = t._get_ctx()
            if ctx is not None:
                for p in reversed(tuple(ctx.parents)):
                    if id(p) not in visited:
                        stack.append((p, False))

        # Map from tensor id -> accumulated gradient tensor
        grads: dict[int, Tensor] = {id(self): self._detach_no_grad(grad_out)}

        # Traverse in reverse topo order (from outputs back to leaves)
        for t in reversed(topo):
            ctx = t._get_ctx()
            if ctx is None or ctx.state is NodeState.DISCARDED:
                continue

            grad_t = grads.get(id(t))
            if grad_t is None:
                # No gradient flowing to this node; skip
                continue

            parent_grads = ctx.run_backward(grad_t, retain_graph=retain_graph)
            if len(parent_grads) != len(ctx.parents):
                raise RuntimeError(
                    "backward_fn must return one grad per parent. "
                    f"Got {len(parent_grads)} grads for {len(ctx.parents)} parents."
                )

            for parent, g in zip(ctx.parents, parent_grads):
                if g is None:
                    continue
                if not isinstance(g, Tensor):
                    raise TypeError(
                        f"backward_fn must return Tensor or None, got {type(g)!r}"
                    )
                if g.device != parent.device:
                    raise DeviceMismatchError(str(parent.device), str(g.device))
                if g.shape != parent.shape:
                    raise InvalidInputError(
                        "backward",
                        f"gradient shape mismatch for parent: expected {parent.shape}, got {g.shape}",
                        shape=g.shape,
                    )

                pid = id(parent)
                if pid in grads:
                    grads[pid] = self._add_no_grad(grads[pid], g)
                else:
                    grads[pid] = self._detach_no_grad(g)

        # Write accumulated grads into tensors that require grad
        for t in topo:
            g = grads.get(id(t))
            if g is not None and t.requires_grad and t._get_ctx() is None:
                t._accumulate_grad_(g)
