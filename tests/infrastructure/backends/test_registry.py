import os
import threading
import unittest
from unittest import mock

from src.fastumap.domain.device._device import Device, DeviceType
from src.fastumap.domain._backend import IPairwiseDistanceAutodiffBackend
from src.fastumap.domain._errors import (
    CapabilityNotSupportedError,
    DeviceNotSupportedError,
)
from src.fastumap.infrastructure._config import reload_config
from src.fastumap.infrastructure.backends import _cuda_jit
from src.fastumap.infrastructure.backends._cpu import NumpyCpuBackend
from src.fastumap.infrastructure.backends._cuda_jit import CupyJitBackend
from src.fastumap.infrastructure.backends._registry import (
    BackendRegistry,
    get_backend,
    resolve_backend,
)


class _Counting:
    instances = 0
    lock = threading.Lock()

    def __init__(self, device: Device) -> None:
        with _Counting.lock:
            _Counting.instances += 1
        self.device = device
        self.name = "counting"


class TestBackendRegistry(unittest.TestCase):
    def setUp(self) -> None:
        _Counting.instances = 0

    def test_one_instance_per_device(self) -> None:
        reg = BackendRegistry()
        reg.register(DeviceType.CUDA, _Counting)
        a = reg.get("cuda:0")
        self.assertIs(reg.get(Device("cuda")), a)
        self.assertIsNot(reg.get("cuda:1"), a)
        self.assertEqual(_Counting.instances, 2)

    def test_concurrent_first_use_creates_one_instance(self) -> None:
        reg = BackendRegistry()
        reg.register(DeviceType.CPU, _Counting)
        barrier = threading.Barrier(8)
        out = []

        def worker() -> None:
            barrier.wait()
            out.append(reg.get("cpu"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(_Counting.instances, 1)
        self.assertTrue(all(b is out[0] for b in out))

    def test_register_drops_cached_instances(self) -> None:
        reg = BackendRegistry()
        reg.register(DeviceType.CPU, NumpyCpuBackend)
        first = reg.get("cpu")
        reg.register(DeviceType.CPU, _Counting)
        self.assertIsInstance(reg.get("cpu"), _Counting)
        self.assertIsNot(reg.get("cpu"), first)

    def test_unregistered_device_type(self) -> None:
        with self.assertRaises(KeyError):
            BackendRegistry().get("cpu")

    def test_creation_is_logged(self) -> None:
        reg = BackendRegistry()
        reg.register(DeviceType.CPU, NumpyCpuBackend)
        with self.assertLogs("fastumap", level="INFO") as cm:
            reg.get("cpu")
        self.assertTrue(any("numpy-cpu" in line for line in cm.output))


class TestDefaultBackends(unittest.TestCase):
    def test_cpu_default(self) -> None:
        self.assertIsInstance(get_backend("cpu"), NumpyCpuBackend)

    def test_resolve_backend_checks_capability(self) -> None:
        b = resolve_backend("cpu", IPairwiseDistanceAutodiffBackend, "op")
        self.assertIs(b, get_backend(Device("cpu")))

        from typing import Protocol, runtime_checkable

        @runtime_checkable
        class IUnrelated(Protocol):
            def unrelated(self) -> None: ...

        with self.assertRaises(CapabilityNotSupportedError):
            resolve_backend("cpu", IUnrelated, "op")

    def test_cpu_backend_follows_reloaded_config(self) -> None:
        backend = NumpyCpuBackend()
        try:
            with mock.patch.dict(
                os.environ, {"FASTUMAP_CPU_ROW_BLOCK": "8", "FASTUMAP_CPU_WORKERS": "2"}
            ):
                reload_config()
                self.assertEqual((backend.row_block, backend.num_workers), (8, 2))
        finally:
            reload_config()
        self.assertEqual(backend.row_block, 128)

    def test_cuda_backend_without_cupy(self) -> None:
        with mock.patch.object(_cuda_jit._cuda, "_HAS_CUPY", False):
            with self.assertRaises(DeviceNotSupportedError):
                CupyJitBackend(Device("cuda:0"))

    def test_cuda_backend_without_device(self) -> None:
        with mock.patch.object(_cuda_jit._cuda, "_HAS_CUPY", True), mock.patch.object(
            _cuda_jit._cuda, "cuda_device_count", return_value=0
        ):
            with self.assertRaisesRegex(DeviceNotSupportedError, "0 CUDA device"):
                CupyJitBackend(Device("cuda:0"))


if __name__ == "__main__":
    unittest.main()
