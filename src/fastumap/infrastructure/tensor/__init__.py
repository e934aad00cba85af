from ._tensor import Tensor
from ._tensor_context import Context, NodeState

__all__ = [Tensor.__name__, Context.__name__, NodeState.__name__]
