"""
Differentiable operations.

A `Function` is one application of an operation: `apply` runs the forward
pass on raw arrays and, when the mode records a graph, becomes the `creator`
of the Variable it returns. During backward it turns the gradient of that
output into one gradient per input.

Design
∘ `forward(ctx, *arrays, **kwargs)` is static and receives the fresh instance
  as `ctx`; it keeps only what its gradient needs via `save_for_backward`.
∘ `backward(gradient_output)` returns one array per Variable input, in input
  order, or `None` for an input that receives no gradient.
∘ Inputs are held strongly, the output weakly: the output already owns its
  creator, so the graph has no reference cycles.
∘ `generation` is the deepest input generation; outputs sit one level higher.
"""

from __future__ import annotations

import itertools
import weakref
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from .errors import BroadcastReductionError, InputArityError, NoGraphError
from .mode import Mode, resolve
from .variable import Variable

_recording_order = itertools.count()


def sum_to(
  gradient_array: np.ndarray, target_shape: tuple[int, ...], name: str = ""
) -> np.ndarray:
  """
  Reduce a broadcast gradient back to `target_shape`.

  (4, 3) -> (1, 3): sum over axis 0 keeping the dimension.
  (4, 3) -> (3,)  : sum over the leading axis.
  Shapes that could not have been produced by broadcasting raise
  BroadcastReductionError.
  """
  gradient_array = np.asarray(gradient_array)
  target_shape = tuple(target_shape)
  if gradient_array.shape == target_shape:
    return gradient_array
  try:
    broadcast_shape = np.broadcast_shapes(gradient_array.shape, target_shape)
  except ValueError:
    raise BroadcastReductionError(gradient_array.shape, target_shape, name) from None
  if broadcast_shape == target_shape and gradient_array.size == int(
    np.prod(target_shape)
  ):
    return gradient_array.reshape(target_shape)
  if broadcast_shape != gradient_array.shape:
    raise BroadcastReductionError(gradient_array.shape, target_shape, name)
  leading_axes = gradient_array.ndim - len(target_shape)
  if leading_axes:
    gradient_array = gradient_array.sum(axis=tuple(range(leading_axes)))
  stretched_axes = tuple(
    axis_index
    for axis_index, size in enumerate(target_shape)
    if size == 1 and gradient_array.shape[axis_index] != 1
  )
  if stretched_axes:
    gradient_array = gradient_array.sum(axis=stretched_axes, keepdims=True)
  return gradient_array


class Function(ABC):
  # -1 accepts any number of Variable inputs, a tuple lists the allowed counts
  required_input_count: int | tuple[int, ...] = -1

  def __init__(self) -> None:
    self.inputs: list[Variable] = []
    self.output: Optional[weakref.ref] = None
    self.generation: int = 0
    self.sequence: int = 0
    self.saved_tensors: tuple = ()
    self.released: bool = False

  @property
  def name(self) -> str:
    return type(self).__name__

  def __repr__(self):
    return f"<{self.name} generation={self.generation}>"

  def save_for_backward(self, *tensors) -> None:
    self.saved_tensors = tuple(tensors)

  def release(self) -> None:
    self.saved_tensors = ()
    self.released = True

  def output_variable(self) -> Variable:
    output = self.output() if self.output is not None else None
    if output is None:
      raise NoGraphError(f"{self.name} no longer has a live output Variable.")
    return output

  @classmethod
  def _accepts_input_count(cls, count: int) -> bool:
    expected = cls.required_input_count
    if isinstance(expected, tuple):
      return count in expected
    return expected < 0 or count == expected

  @classmethod
  def apply(cls, *args, mode: Mode | None = None, **kwargs) -> Variable:
    mode = resolve(mode)
    inputs = [argument for argument in args if isinstance(argument, Variable)]
    if not cls._accepts_input_count(len(inputs)):
      raise InputArityError(cls.__name__, cls.required_input_count, len(inputs))

    context = cls()
    raw_arguments = [
      argument.value if isinstance(argument, Variable) else argument
      for argument in args
    ]
    output_data = cls.forward(context, *raw_arguments, **kwargs)

    if not (mode.training and any(variable.requires_grad for variable in inputs)):
      return Variable(output_data, requires_grad=False)

    output_variable = Variable(output_data, requires_grad=True)
    context.inputs = inputs
    context.generation = max(variable.generation for variable in inputs)
    context.sequence = next(_recording_order)
    context.output = weakref.ref(output_variable)
    output_variable.set_creator(context)
    return output_variable

  def run_backward(self, gradient_output: np.ndarray) -> tuple:
    if self.released:
      raise NoGraphError(
        f"{self.name} already released its saved state; "
        "call backward(retain_graph=True) to differentiate the same graph twice."
      )
    gradients = self.backward(gradient_output)
    if not isinstance(gradients, tuple):
      gradients = (gradients,)
    if len(gradients) != len(self.inputs):
      raise RuntimeError(
        f"{self.name}.backward returned {len(gradients)} gradient(s) "
        f"for {len(self.inputs)} input(s)."
      )
    return gradients

  @staticmethod
  @abstractmethod
  def forward(ctx, *args, **kwargs):
    raise NotImplementedError

  @abstractmethod
  def backward(self, gradient_output) -> np.ndarray | tuple[np.ndarray | None, ...]:
    raise NotImplementedError


__all__ = ["Function", "sum_to"]
