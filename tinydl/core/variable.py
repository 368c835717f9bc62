"""
Reverse-mode automatic differentiation, the graph side.

The computation graph is built while the forward pass runs (define-by-run):

1. Variable:
A node holding a value (`np.ndarray`), an optional accumulated `grad`, and an
optional `creator`, the Function application that produced it. Leaves
(inputs, parameters, constants) have no creator.

2. Function:
An edge with payload, see `function.py`. It remembers its input Variables so
that backward can walk from any output towards the leaves.

Every Variable carries a `generation`: 0 for leaves, one more than the
deepest input for outputs. Backward processes Functions from the highest
generation down, which guarantees a Function only runs once every consumer
of its output has already contributed to the output's gradient.

Example:
  x = Variable(3.0)
  y = square(x)            # generation 1, creator Square
  z = add(y, 2.0)          # generation 2, creator Add
  z.backward()
  x.grad                   # 6.0 = 2x
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Optional

import numpy as np

from .errors import ShapeMismatchError
from .mode import Mode

if TYPE_CHECKING:
  from .function import Function


def _to_array(value):
  array = np.asarray(value)
  if not np.issubdtype(array.dtype, np.floating):
    array = array.astype(np.float32)
  return array


class Variable:
  __slots__ = (
    "value", "grad", "creator", "generation", "requires_grad", "name",
    "_seed_pending", "__weakref__",
  )

  def __init__(self, value, name: Optional[str] = None, requires_grad: bool = True):
    if value is None:
      raise TypeError("Variable value must not be None")
    self.value = _to_array(value.value if isinstance(value, Variable) else value)
    self.grad: Optional[np.ndarray] = None
    self.creator: Optional["Function"] = None
    self.generation: int = 0
    self.requires_grad = requires_grad
    self.name: str = name or f"variable_{uuid.uuid4().hex[:8]}"
    self._seed_pending = False

  def __repr__(self):
    creator = self.creator.name if self.creator is not None else None
    return (
      f"Variable(name={self.name}, shape={self.value.shape}, dtype={self.value.dtype}, "
      f"creator={creator}, generation={self.generation}, "
      f"requires_grad={self.requires_grad})"
    )

  @property
  def shape(self) -> tuple[int, ...]:
    return self.value.shape

  @property
  def ndim(self) -> int:
    return self.value.ndim

  @property
  def size(self) -> int:
    return self.value.size

  @property
  def dtype(self):
    return self.value.dtype

  def __len__(self):
    return len(self.value)

  def item(self) -> float:
    if self.value.size != 1:
      raise TypeError("Only single-element Variables can convert to Python scalars")
    return self.value.item()

  def __float__(self):
    return float(self.item())

  def __array__(self, dtype=None, copy=None):
    return self.value if dtype is None else self.value.astype(dtype)

  # Graph bookkeeping

  def set_creator(self, function: "Function") -> None:
    self.creator = function
    self.generation = function.generation + 1

  def set_value(self, value) -> None:
    self.value = _to_array(value)

  def get_grad(self) -> Optional[np.ndarray]:
    return self.grad

  def set_grad(self, gradient) -> None:
    """
    Also marks the gradient as the seed for the next `backward()` started
    from this Variable.
    """
    if gradient is None:
      self.clear_grad()
      return
    gradient = np.array(gradient, dtype=self.value.dtype, copy=True)
    if gradient.shape != self.value.shape:
      raise ShapeMismatchError(
        f"set_grad({self.name})", self.value.shape, gradient.shape
      )
    self.grad = gradient
    self._seed_pending = True

  def clear_grad(self) -> None:
    self.grad = None
    self._seed_pending = False

  def has_explicit_seed(self) -> bool:
    return self._seed_pending

  def consume_seed(self) -> None:
    self._seed_pending = False

  def unchain(self) -> None:
    self.creator = None

  def unchain_backward(self) -> None:
    """
    Cut every Variable upstream of this one off from its creator.

    Used after each optimizer step so the previous iteration's graph becomes
    collectible. Walks with an explicit stack, so unrolled recurrent graphs
    of any depth are fine.
    """
    visited_functions: set[int] = set()
    pending: list[Variable] = [self]
    while pending:
      variable = pending.pop()
      function = variable.creator
      if function is None:
        continue
      variable.unchain()
      if id(function) in visited_functions:
        continue
      visited_functions.add(id(function))
      pending.extend(function.inputs)

  def backward(
    self,
    retain_graph: bool = False,
    recursive: bool = False,
    mode: Mode | None = None,
  ) -> None:
    from .scheduler import run_backward

    run_backward(self, retain_graph=retain_graph, recursive=recursive, mode=mode)

  # Operator sugar

  def __neg__(self):
    from .ops import neg

    return neg(self)

  def __add__(self, other):
    from .ops import add

    return add(self, other)

  def __radd__(self, other):
    from .ops import add

    return add(other, self)

  def __sub__(self, other):
    from .ops import sub

    return sub(self, other)

  def __rsub__(self, other):
    from .ops import sub

    return sub(other, self)

  def __mul__(self, other):
    from .ops import mul

    return mul(self, other)

  def __rmul__(self, other):
    from .ops import mul

    return mul(other, self)

  def __truediv__(self, other):
    from .ops import div

    return div(self, other)

  def __rtruediv__(self, other):
    from .ops import div

    return div(other, self)

  def __pow__(self, exponent):
    from .ops import power

    return power(self, exponent)

  def __matmul__(self, other):
    from .ops import matmul

    return matmul(self, other)

  def __getitem__(self, index):
    from .ops import get_item

    return get_item(self, index)

  def reshape(self, *shape):
    from .ops import reshape

    if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
      shape = tuple(shape[0])
    return reshape(self, shape)

  def transpose(self):
    from .ops import transpose

    return transpose(self)

  @property
  def T(self):
    return self.transpose()

  def sum(self, axis=None, keepdims=False):
    from .ops import sum as _sum

    return _sum(self, axis, keepdims)

  def mean(self, axis=None, keepdims=False):
    from .ops import mean as _mean

    return _mean(self, axis, keepdims)


def as_variable(value) -> Variable:
  if isinstance(value, Variable):
    return value
  return Variable(value, requires_grad=False)


__all__ = ["Variable", "as_variable"]
