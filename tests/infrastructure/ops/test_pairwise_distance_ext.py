# tests/infrastructure/ops/test_pairwise_distance_ext.py
"""
Unit tests for the Tensor-boundary pairwise-distance dispatcher
(pairwise_distance_ext.py).

These tests validate that the dispatcher:
- Rejects non-Tensor inputs, wrong ranks and wrong gradient shapes before
  any backend kernel is called
- Raises CapabilityNotSupportedError for backends lacking a capability
- Returns new Tensors on the input device without graph history
"""

from __future__ import annotations

import unittest
from unittest import mock

import numpy as np

from src.fastumap.domain.device._device import Device, DeviceType
from src.fastumap.domain._errors import (
    CapabilityNotSupportedError,
    InvalidInputError,
)
from src.fastumap.infrastructure.backends._cpu import NumpyCpuBackend
from src.fastumap.infrastructure.backends._registry import (
    get_backend,
    register_backend,
)
from src.fastumap.infrastructure.ops.pairwise_distance_cpu import (
    pairwise_distance_forward_cpu,
)
from src.fastumap.infrastructure.ops.pairwise_distance_ext import (
    pairwise_distance_backward,
    pairwise_distance_forward,
)
from src.fastumap.infrastructure.tensor import NodeState, Tensor


def make_cpu_tensor(arr, *, requires_grad: bool = False) -> Tensor:
    return Tensor._from_numpy(
        np.asarray(arr, dtype=np.float32), device="cpu", requires_grad=requires_grad
    )


class InferenceOnlyCpuBackend:
    """CPU backend with storage and the forward kernel only."""

    name = "inference-only-cpu"
    device_type = DeviceType.CPU
    xp = np

    def __init__(self, device: Device) -> None:
        self.device = device

    def from_numpy(self, arr, dtype=None):
        return np.array(arr, dtype=dtype, copy=True)

    def to_numpy(self, arr):
        return arr

    def zeros(self, shape, dtype):
        return np.zeros(shape, dtype=dtype)

    def full(self, shape, value, dtype):
        return np.full(shape, value, dtype=dtype)

    def euclidean_pairwise_distance(self, x):
        return pairwise_distance_forward_cpu(x)


class TestPairwiseDistanceDispatch(unittest.TestCase):
    def test_forward_returns_untracked_tensor(self) -> None:
        x = make_cpu_tensor([[0.0, 0.0], [3.0, 4.0]], requires_grad=True)
        y = pairwise_distance_forward(x)
        self.assertIsInstance(y, Tensor)
        self.assertEqual(y.shape, (2, 2))
        self.assertEqual(y.device, Device("cpu"))
        self.assertFalse(y.requires_grad)
        self.assertIs(y.graph_state, NodeState.UNTRACKED)
        np.testing.assert_array_equal(y.to_numpy(), [[0.0, 5.0], [5.0, 0.0]])

    def test_backward_shape(self) -> None:
        x = make_cpu_tensor(np.arange(6).reshape(3, 2))
        g = pairwise_distance_backward(x, make_cpu_tensor(np.ones((3, 3))))
        self.assertEqual(g.shape, (3, 2))
        self.assertEqual(g.dtype, np.float32)

    def test_rejects_non_tensor(self) -> None:
        with self.assertRaises(TypeError):
            pairwise_distance_forward(np.zeros((2, 2)))

    def test_rejects_wrong_rank_before_dispatch(self) -> None:
        backend = get_backend("cpu")
        with mock.patch.object(
            backend,
            "euclidean_pairwise_distance",
            wraps=backend.euclidean_pairwise_distance,
        ) as fwd:
            for shape in ((4,), (2, 2, 2)):
                with self.subTest(shape=shape):
                    with self.assertRaises(InvalidInputError) as cm:
                        pairwise_distance_forward(make_cpu_tensor(np.zeros(shape)))
                    self.assertEqual(cm.exception.shape, shape)
            fwd.assert_not_called()

    def test_backward_rejects_wrong_grad_shape(self) -> None:
        x = make_cpu_tensor(np.zeros((3, 2)))
        with self.assertRaises(InvalidInputError):
            pairwise_distance_backward(x, make_cpu_tensor(np.zeros((3, 2))))


class TestCapabilityDispatch(unittest.TestCase):
    def setUp(self) -> None:
        register_backend(DeviceType.CPU, InferenceOnlyCpuBackend)

    def tearDown(self) -> None:
        register_backend(DeviceType.CPU, NumpyCpuBackend)

    def test_forward_works_on_inference_only_backend(self) -> None:
        x = make_cpu_tensor([[0.0, 0.0], [3.0, 4.0]])
        self.assertIsInstance(get_backend("cpu"), InferenceOnlyCpuBackend)
        np.testing.assert_array_equal(
            pairwise_distance_forward(x).to_numpy(), [[0.0, 5.0], [5.0, 0.0]]
        )

    def test_backward_raises_capability_error(self) -> None:
        x = make_cpu_tensor([[0.0, 0.0], [3.0, 4.0]])
        with self.assertRaises(CapabilityNotSupportedError) as cm:
            pairwise_distance_backward(x, make_cpu_tensor(np.ones((2, 2))))
        self.assertEqual(cm.exception.backend, "inference-only-cpu")
        self.assertEqual(cm.exception.capability, "IPairwiseDistanceAutodiffBackend")


if __name__ == "__main__":
    unittest.main()
