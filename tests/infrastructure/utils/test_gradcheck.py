import unittest

import numpy as np

from src.fastumap.infrastructure.tensor import Context, Tensor
from src.fastumap.infrastructure.utils._gradcheck import gradcheck


def _square(t: Tensor) -> Tensor:
    return t * t


def _wrong_gradient(t: Tensor) -> Tensor:
    out = Tensor._from_native(t.data * 2.0, device=t.device, requires_grad=True)
    out._set_ctx(Context(parents=(t,), backward_fn=lambda g: (g * 0.0,)))
    return out


class TestGradcheck(unittest.TestCase):
    def test_correct_gradient_passes(self) -> None:
        x = np.array([[1.0, -2.0], [0.5, 3.0]])
        result = gradcheck(_square, x)
        self.assertTrue(result.ok)
        np.testing.assert_allclose(result.analytic, 2.0 * x)
        np.testing.assert_allclose(result.numeric, 2.0 * x, rtol=1e-6)

    def test_wrong_gradient_is_reported(self) -> None:
        result = gradcheck(_wrong_gradient, np.ones((2, 2)))
        self.assertFalse(result.ok)
        self.assertGreater(result.max_rel_error, 0.5)

    def test_output_independent_of_input(self) -> None:
        with self.assertRaises(RuntimeError):
            gradcheck(
                lambda t: Tensor.ones(shape=t.shape, device=t.device, dtype=t.dtype),
                np.ones((2, 2)),
            )


if __name__ == "__main__":
    unittest.main()
