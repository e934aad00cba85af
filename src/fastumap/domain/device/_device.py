"""
Device abstraction utilities.

This module defines lightweight abstractions for representing computation
devices (CPU and CUDA GPUs) in a framework-agnostic way. It provides:

- `DeviceType`: an enumeration of supported device categories
- `Device`: a concrete device descriptor that validates and normalizes
  user-facing device strings such as "cpu" or "cuda:0"

Devices are hashable; the backend registry and the kernel cache use them
(or their index) as part of their keys.
"""

from enum import Enum
import re


class DeviceType(Enum):
    """
    Enumeration of supported device categories.

    Attributes
    ----------
    CPU : DeviceType
        Central Processing Unit (NumPy backend).
    CUDA : DeviceType
        NVIDIA CUDA-enabled GPU (just-in-time compiled kernels).
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Concrete computation device descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be either:
        - "cpu"
        - "cuda" (shorthand for "cuda:0")
        - "cuda:<index>", where <index> is a non-negative integer

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.

    Notes
    -----
    `__slots__` is used to prevent dynamic attribute creation. The class does
    not allocate or manage any backend resources.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        elif device == "cuda":
            self.type = DeviceType.CUDA
            self.index = 0
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        """
        Compare two Device objects for semantic equality.

        Devices are equal if they have the same type and (for CUDA) the same
        index.
        """
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """Return True if the device type is CPU."""
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """Return True if the device type is CUDA."""
        return self.type is DeviceType.CUDA
