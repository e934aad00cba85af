# tests/infrastructure/ops/test_pairwise_distance_cpu.py
"""
Unit tests for the NumPy pairwise-distance kernels (pairwise_distance_cpu.py).

These tests validate that the CPU kernels:
- Match a brute-force reference for the forward pass
- Produce an exactly symmetric, zero-diagonal, non-negative, NaN-free output
- Are independent of the row-block size and worker count
- Produce finite gradients with zero contribution from coincident rows
- Match central differences for the backward pass
"""

from __future__ import annotations

import itertools
import unittest

import numpy as np

from src.fastumap.infrastructure.ops.pairwise_distance_cpu import (
    pairwise_distance_backward_cpu,
    pairwise_distance_forward_cpu,
)


def _ref_forward(x: np.ndarray) -> np.ndarray:
    n = x.shape[0]
    out = np.zeros((n, n), dtype=np.float64)
    for i in range(n):
        for j in range(n):
            out[i, j] = np.sqrt(np.sum((x[i].astype(np.float64) - x[j]) ** 2))
    return out


class TestPairwiseDistanceForwardCPU(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(0)

    def test_matches_reference(self) -> None:
        for dtype in (np.float32, np.float64):
            with self.subTest(dtype=dtype):
                x = self.rng.standard_normal((7, 3)).astype(dtype)
                y = pairwise_distance_forward_cpu(x)
                self.assertEqual(y.dtype, dtype)
                self.assertEqual(y.shape, (7, 7))
                np.testing.assert_allclose(y, _ref_forward(x), rtol=1e-5, atol=1e-5)

    def test_exact_symmetry_and_zero_diagonal(self) -> None:
        x = (self.rng.standard_normal((50, 5)) * 100.0).astype(np.float32)
        y = pairwise_distance_forward_cpu(x, row_block=7)
        np.testing.assert_array_equal(y, y.T)
        np.testing.assert_array_equal(np.diag(y), np.zeros(50, dtype=np.float32))

    def test_non_negative_and_finite(self) -> None:
        # large common offset makes cancellation likely
        x = (1e4 + self.rng.standard_normal((30, 4)) * 1e-3).astype(np.float32)
        y = pairwise_distance_forward_cpu(x)
        self.assertTrue(np.all(y >= 0))
        self.assertFalse(np.any(np.isnan(y)))

    def test_triangle_inequality(self) -> None:
        x = self.rng.standard_normal((12, 3)).astype(np.float32)
        y = pairwise_distance_forward_cpu(x)
        for i, j, k in itertools.product(range(12), repeat=3):
            self.assertLessEqual(y[i, j], y[i, k] + y[k, j] + 1e-5)

    def test_block_size_and_workers_do_not_change_result(self) -> None:
        x = self.rng.standard_normal((65, 6))
        base = pairwise_distance_forward_cpu(x, row_block=128)
        for row_block, workers in ((1, 1), (8, 4), (64, 2), (100, 3)):
            with self.subTest(row_block=row_block, workers=workers):
                y = pairwise_distance_forward_cpu(x, row_block=row_block, num_workers=workers)
                np.testing.assert_allclose(y, base, rtol=0, atol=1e-12)

    def test_known_example(self) -> None:
        x = np.array([[0.0, 0.0], [3.0, 4.0], [0.0, 0.0]], dtype=np.float32)
        y = pairwise_distance_forward_cpu(x)
        np.testing.assert_array_equal(
            y, np.array([[0, 5, 0], [5, 0, 5], [0, 5, 0]], dtype=np.float32)
        )

    def test_degenerate_shapes(self) -> None:
        self.assertEqual(pairwise_distance_forward_cpu(np.zeros((0, 3))).shape, (0, 0))
        np.testing.assert_array_equal(
            pairwise_distance_forward_cpu(np.zeros((3, 0))), np.zeros((3, 3))
        )
        np.testing.assert_array_equal(
            pairwise_distance_forward_cpu(np.ones((1, 4))), np.zeros((1, 1))
        )

    def test_rejects_non_2d(self) -> None:
        with self.assertRaises(ValueError):
            pairwise_distance_forward_cpu(np.zeros(4))
        with self.assertRaises(ValueError):
            pairwise_distance_forward_cpu(np.zeros((2, 2)), row_block=0)


class TestPairwiseDistanceBackwardCPU(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(1)

    def test_matches_central_differences(self) -> None:
        x = self.rng.standard_normal((5, 3))
        g = self.rng.standard_normal((5, 5))
        grad = pairwise_distance_backward_cpu(x, g)

        eps = 1e-6
        num = np.zeros_like(x)
        for idx in np.ndindex(x.shape):
            xp, xm = x.copy(), x.copy()
            xp[idx] += eps
            xm[idx] -= eps
            num[idx] = (
                np.sum(g * pairwise_distance_forward_cpu(xp))
                - np.sum(g * pairwise_distance_forward_cpu(xm))
            ) / (2 * eps)
        np.testing.assert_allclose(grad, num, rtol=1e-5, atol=1e-6)

    def test_identical_rows_contribute_nothing(self) -> None:
        x = np.array([[1.0, 2.0], [1.0, 2.0], [4.0, 6.0]])
        g = np.ones((3, 3))
        grad = pairwise_distance_backward_cpu(x, g)
        self.assertTrue(np.all(np.isfinite(grad)))
        np.testing.assert_allclose(grad[0], grad[1])
        # only the pair with the third row contributes: 2 * (x0 - x2) / 5
        np.testing.assert_allclose(grad[0], [-1.2, -1.6])

    def test_all_rows_identical_gives_zero_gradient(self) -> None:
        x = np.tile(np.array([[0.5, -1.0, 2.0]]), (4, 1))
        grad = pairwise_distance_backward_cpu(x, np.ones((4, 4)))
        np.testing.assert_array_equal(grad, np.zeros_like(x))

    def test_uses_supplied_distances(self) -> None:
        x = self.rng.standard_normal((6, 2))
        g = self.rng.standard_normal((6, 6))
        d = pairwise_distance_forward_cpu(x)
        np.testing.assert_allclose(
            pairwise_distance_backward_cpu(x, g, dist=d),
            pairwise_distance_backward_cpu(x, g),
        )

    def test_dtype_preserved(self) -> None:
        x = self.rng.standard_normal((4, 2)).astype(np.float32)
        grad = pairwise_distance_backward_cpu(x, np.ones((4, 4), dtype=np.float64))
        self.assertEqual(grad.dtype, np.float32)

    def test_grad_out_shape_check(self) -> None:
        with self.assertRaises(ValueError):
            pairwise_distance_backward_cpu(np.zeros((3, 2)), np.zeros((3, 2)))


if __name__ == "__main__":
    unittest.main()
