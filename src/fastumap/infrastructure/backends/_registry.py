"""
Device -> backend resolution.

The registry maps each `DeviceType` to a factory and keeps at most one
backend instance per concrete device (e.g. one for "cuda:0", one for
"cuda:1"). Instances are created lazily on first use under a lock, so
concurrent first calls from several threads share the same backend.

The default registry binds CPU to `NumpyCpuBackend` and CUDA to
`CupyJitBackend`. Custom backends (for instance an inference-only one) are
installed with `register`; doing so drops cached instances of that device
type.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Union

from ...domain.device._device import Device, DeviceType
from ...domain._errors import CapabilityNotSupportedError
from .._logging import get_logger

logger = get_logger("fastumap.backends.registry")

BackendFactory = Callable[[Device], object]


class BackendRegistry:
    """
    Thread-safe registry of backend factories and backend instances.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._factories: Dict[DeviceType, BackendFactory] = {}
        self._instances: Dict[Device, object] = {}

    def register(self, device_type: DeviceType, factory: BackendFactory) -> None:
        """
        Bind `factory` to `device_type`.

        Parameters
        ----------
        device_type : DeviceType
            Device category served by the factory.
        factory : Callable[[Device], backend]
            Called once per concrete device to build its backend.
        """
        with self._lock:
            self._factories[device_type] = factory
            for dev in [d for d in self._instances if d.type is device_type]:
                del self._instances[dev]

    def get(self, device: Union[Device, str]) -> object:
        """
        Return the backend bound to `device`, creating it on first use.

        Raises
        ------
        DeviceNotSupportedError
            Propagated from the factory when the device is unavailable.
        KeyError
            If no factory is registered for the device type.
        """
        if isinstance(device, str):
            device = Device(device)
        with self._lock:
            backend = self._instances.get(device)
            if backend is not None:
                return backend
            factory = self._factories.get(device.type)
            if factory is None:
                raise KeyError(f"No backend registered for device type {device.type}")
            backend = factory(device)
            self._instances[device] = backend
            logger.info("created backend %s for %s", getattr(backend, "name", backend), device)
            return backend

    def reset(self) -> None:
        """Drop every cached backend instance (factories are kept)."""
        with self._lock:
            self._instances.clear()


def _default_registry() -> BackendRegistry:
    from ._cpu import NumpyCpuBackend
    from ._cuda_jit import CupyJitBackend

    registry = BackendRegistry()
    registry.register(DeviceType.CPU, NumpyCpuBackend)
    registry.register(DeviceType.CUDA, CupyJitBackend)
    return registry


_REGISTRY = _default_registry()


def get_registry() -> BackendRegistry:
    """Return the process-wide backend registry."""
    return _REGISTRY


def get_backend(device: Union[Device, str]) -> object:
    """Return the backend bound to `device` in the default registry."""
    return _REGISTRY.get(device)


def register_backend(device_type: DeviceType, factory: BackendFactory) -> None:
    """Install `factory` for `device_type` in the default registry."""
    _REGISTRY.register(device_type, factory)


def resolve_backend(device: Union[Device, str], capability: type, op: str) -> object:
    """
    Return the backend of `device`, checking that it provides `capability`.

    Raises
    ------
    CapabilityNotSupportedError
        If the backend does not structurally satisfy `capability`. Raised
        before any computation is dispatched.
    """
    backend = get_backend(device)
    if not isinstance(backend, capability):
        raise CapabilityNotSupportedError(
            op, getattr(backend, "name", type(backend).__name__), capability.__name__
        )
    return backend
