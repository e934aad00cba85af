import unittest

from src.fastumap.domain._function import Function
from src.fastumap.infrastructure._function import PairwiseDistanceFn


class TestFunctionContract(unittest.TestCase):
    def test_incomplete_subclass_cannot_be_instantiated(self) -> None:
        class ForwardOnly(Function):
            @staticmethod
            def forward(ctx, x):
                return x

        with self.assertRaises(TypeError):
            ForwardOnly()

    def test_pairwise_distance_fn_implements_contract(self) -> None:
        self.assertTrue(issubclass(PairwiseDistanceFn, Function))
        self.assertEqual(PairwiseDistanceFn.__abstractmethods__, frozenset())


if __name__ == "__main__":
    unittest.main()
