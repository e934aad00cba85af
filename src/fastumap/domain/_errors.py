"""
Device-, input- and backend-related exceptions for fastumap.

This module defines the error taxonomy used by tensor operations and by the
pairwise-distance operator. Structural problems (bad shapes, unsupported
devices, missing backend capabilities) fail fast before any kernel is
dispatched; device-level failures (kernel compilation, launch, out of memory)
are surfaced to the caller for the current call only.

Numerical edge cases (near-zero or exactly-zero distances) are never reported
through these exceptions; they are resolved inside the kernels.
"""

from __future__ import annotations

from typing import Any, Optional


class DeviceNotSupportedError(RuntimeError):
    """
    Raised when a tensor operation is requested on a device backend
    that is not available.

    Typical causes are a CUDA device requested while CuPy is not installed,
    or while no CUDA-capable GPU is visible to the process.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted (e.g., "add", "pairwise_distance").
    device : str
        String representation of the device on which the operation
        was attempted.
    """

    def __init__(self, op: str, device: str, reason: Optional[str] = None) -> None:
        """
        Initialize the DeviceNotSupportedError.

        Parameters
        ----------
        op : str
            The operation name that is not supported on the given device.
        device : str
            The device identifier (e.g., "cuda:0").
        reason : Optional[str], optional
            Extra detail appended to the message.
        """
        msg = f"{op} is not implemented for device '{device}'."
        if reason:
            msg = f"{msg} {reason}"
        super().__init__(msg)
        self.op = op
        self.device = device


class DeviceMismatchError(RuntimeError):
    """
    Raised when an operation is attempted between tensors on different devices.
    """

    def __init__(self, device_a: str, device_b: str) -> None:
        """
        Initialize the DeviceMismatchError.

        Parameters
        ----------
        device_a : str
            Device identifier of the first operand.
        device_b : str
            Device identifier of the second operand.
        """
        super().__init__(f"Device mismatch: '{device_a}' vs '{device_b}'.")
        self.device_a = device_a
        self.device_b = device_b


class InvalidInputError(ValueError):
    """
    Raised when an operator receives an input it cannot process.

    Examples are a rank-1 or rank-3 tensor passed to the pairwise-distance
    operator, an integer dtype, or an upstream gradient whose shape does not
    match the operator output.

    Attributes
    ----------
    op : str
        Operation name.
    shape : Optional[tuple[int, ...]]
        Offending shape, when the error concerns a shape.
    """

    def __init__(
        self, op: str, message: str, *, shape: Optional[tuple[int, ...]] = None
    ) -> None:
        super().__init__(f"{op}: {message}")
        self.op = op
        self.shape = shape


class CapabilityNotSupportedError(RuntimeError):
    """
    Raised when the backend bound to a device does not implement a capability
    an operator requires.

    This is a configuration error: it is raised before any computation begins,
    e.g. when a tensor requiring gradients is passed to an inference-only
    backend.

    Attributes
    ----------
    op : str
        Operation name.
    backend : str
        Name of the backend that lacks the capability.
    capability : str
        Name of the missing capability protocol.
    """

    def __init__(self, op: str, backend: str, capability: str) -> None:
        super().__init__(
            f"{op}: backend '{backend}' does not implement capability '{capability}'."
        )
        self.op = op
        self.backend = backend
        self.capability = capability


class BackendExecutionError(RuntimeError):
    """
    Raised when a device backend fails while executing a kernel.

    Covers launch failures and device out-of-memory conditions. The original
    backend exception is chained as `__cause__`. Calls are never retried.
    """

    def __init__(self, op: str, device: str, detail: Any = None) -> None:
        msg = f"{op} failed on device '{device}'"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.op = op
        self.device = device


class KernelCompilationError(BackendExecutionError):
    """
    Raised when a just-in-time kernel fails to compile.

    Attributes
    ----------
    key : object
        Cache key of the kernel that failed (op, shape, dtype, device).
    log : str
        Compiler log, if the backend provided one.
    """

    def __init__(self, op: str, device: str, key: object, log: str = "") -> None:
        super().__init__(op, device, f"kernel compilation failed for {key}")
        self.key = key
        self.log = log
