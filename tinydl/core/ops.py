"""
Operation catalog built on `Function`.

Design
∘ Function.apply builds the forward result and links the graph.
∘ Broadcasting-aware gradients via `sum_to`.
∘ Operand shapes are checked up front; a mismatch raises ShapeMismatchError
  before anything is linked.
∘ Coverage: element-wise {add, sub, mul, div, neg, square, power}, transcendental
  {exp, log, sin, cos, tanh, sigmoid}, {relu, clip}, matmul / linear,
  reductions {sum, mean, max, min}, shape {reshape, transpose, broadcast_to,
  sum_to, get_item}, softmax.

Each op stores only what is indispensable for its gradient,
which keeps the memory footprint predictable.
Every helper accepts `mode=` and plain numbers / arrays as operands.
"""

from __future__ import annotations

import numpy as np

from .errors import ShapeMismatchError
from .function import Function, sum_to as _sum_to_array
from .mode import Mode
from .variable import Variable, as_variable


def _broadcast_shape(operation: str, left_shape, right_shape) -> tuple[int, ...]:
  try:
    return np.broadcast_shapes(left_shape, right_shape)
  except ValueError:
    raise ShapeMismatchError(
      operation, left_shape, right_shape, "Operands are not broadcast-compatible."
    ) from None


def _normalize_axis(axis) -> tuple[int, ...] | None:
  if axis is None:
    return None
  return (axis,) if isinstance(axis, int) else tuple(axis)


def _expand_reduced(gradient_output, input_shape, axis, keepdims):
  axis_tuple = _normalize_axis(axis)
  if axis_tuple is not None and not keepdims:
    gradient_output = np.expand_dims(gradient_output, axis_tuple)
  return np.broadcast_to(gradient_output, input_shape)


class Add(Function):
  required_input_count = 2

  @staticmethod
  def forward(ctx, *args, **kwargs):
    left_operand, right_operand = args
    _broadcast_shape("Add", left_operand.shape, right_operand.shape)
    ctx.save_for_backward(left_operand.shape, right_operand.shape)
    return left_operand + right_operand

  def backward(self, gradient_output):
    left_shape, right_shape = self.saved_tensors
    return (
      _sum_to_array(gradient_output, left_shape),
      _sum_to_array(gradient_output, right_shape),
    )


def add(a, b, mode: Mode | None = None) -> Variable:
  return Add.apply(as_variable(a), as_variable(b), mode=mode)


class Sub(Function):
  required_input_count = 2

  @staticmethod
  def forward(ctx, *args, **kwargs):
    left_operand, right_operand = args
    _broadcast_shape("Sub", left_operand.shape, right_operand.shape)
    ctx.save_for_backward(left_operand.shape, right_operand.shape)
    return left_operand - right_operand

  def backward(self, gradient_output):
    left_shape, right_shape = self.saved_tensors
    return (
      _sum_to_array(gradient_output, left_shape),
      _sum_to_array(-gradient_output, right_shape),
    )


def sub(a, b, mode: Mode | None = None) -> Variable:
  return Sub.apply(as_variable(a), as_variable(b), mode=mode)


class Neg(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    return -input_array

  def backward(self, gradient_output):
    return -gradient_output


def neg(x, mode: Mode | None = None) -> Variable:
  return Neg.apply(as_variable(x), mode=mode)


class Mul(Function):
  required_input_count = 2

  @staticmethod
  def forward(ctx, *args, **kwargs):
    left_operand, right_operand = args
    _broadcast_shape("Mul", left_operand.shape, right_operand.shape)
    ctx.save_for_backward(left_operand, right_operand)
    return left_operand * right_operand

  def backward(self, gradient_output):
    left_operand, right_operand = self.saved_tensors
    gradient_left = _sum_to_array(gradient_output * right_operand, left_operand.shape)
    gradient_right = _sum_to_array(gradient_output * left_operand, right_operand.shape)
    return gradient_left, gradient_right


def mul(a, b, mode: Mode | None = None) -> Variable:
  return Mul.apply(as_variable(a), as_variable(b), mode=mode)


class Div(Function):
  required_input_count = 2

  @staticmethod
  def forward(ctx, *args, **kwargs):
    numerator, denominator = args
    _broadcast_shape("Div", numerator.shape, denominator.shape)
    ctx.save_for_backward(numerator, denominator)
    return numerator / denominator

  def backward(self, gradient_output):
    numerator, denominator = self.saved_tensors
    gradient_numerator = _sum_to_array(gradient_output / denominator, numerator.shape)
    gradient_denominator = _sum_to_array(
      -gradient_output * numerator / (denominator * denominator), denominator.shape
    )
    return gradient_numerator, gradient_denominator


def div(a, b, mode: Mode | None = None) -> Variable:
  return Div.apply(as_variable(a), as_variable(b), mode=mode)


class Square(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    ctx.save_for_backward(input_array)
    return input_array * input_array

  def backward(self, gradient_output):
    (input_array,) = self.saved_tensors
    return 2.0 * input_array * gradient_output


def square(x, mode: Mode | None = None) -> Variable:
  return Square.apply(as_variable(x), mode=mode)


class Power(Function):
  """
  Power with a constant exponent
  Forward y = xᶜ
  Backward ∂ℒ/∂x = ∂ℒ/∂y · c · xᶜ⁻¹
  """

  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, exponent):
    ctx.save_for_backward(input_array, exponent)
    return np.power(input_array, exponent)

  def backward(self, gradient_output):
    input_array, exponent = self.saved_tensors
    return gradient_output * exponent * np.power(input_array, exponent - 1)


def power(x, exponent: float, mode: Mode | None = None) -> Variable:
  return Power.apply(as_variable(x), exponent, mode=mode)


class Exp(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    output_array = np.exp(input_array)
    ctx.save_for_backward(output_array)
    return output_array

  def backward(self, gradient_output):
    (output_array,) = self.saved_tensors
    return gradient_output * output_array


def exp(x, mode: Mode | None = None) -> Variable:
  return Exp.apply(as_variable(x), mode=mode)


class Log(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    ctx.save_for_backward(input_array)
    return np.log(input_array)

  def backward(self, gradient_output):
    (input_array,) = self.saved_tensors
    return gradient_output / input_array


def log(x, mode: Mode | None = None) -> Variable:
  return Log.apply(as_variable(x), mode=mode)


class Sin(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    ctx.save_for_backward(input_array)
    return np.sin(input_array)

  def backward(self, gradient_output):
    (input_array,) = self.saved_tensors
    return gradient_output * np.cos(input_array)


def sin(x, mode: Mode | None = None) -> Variable:
  return Sin.apply(as_variable(x), mode=mode)


class Cos(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    ctx.save_for_backward(input_array)
    return np.cos(input_array)

  def backward(self, gradient_output):
    (input_array,) = self.saved_tensors
    return -gradient_output * np.sin(input_array)


def cos(x, mode: Mode | None = None) -> Variable:
  return Cos.apply(as_variable(x), mode=mode)


class Tanh(Function):
  """
  Tanh
  Forward tanh(x)=sinh(x) ÷ cosh(x)
  Backward ∂ℒ/∂x = ∂ℒ/∂y · (1−tanh²(x))
  """

  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    output_array = np.tanh(input_array)
    ctx.save_for_backward(output_array)
    return output_array

  def backward(self, gradient_output):
    (output_array,) = self.saved_tensors
    return gradient_output * (1.0 - output_array * output_array)


def tanh(x, mode: Mode | None = None) -> Variable:
  return Tanh.apply(as_variable(x), mode=mode)


class Sigmoid(Function):
  """
  Sigmoid
  Forward σ(x)=1 ÷ (1+e^(−x))
  Backward ∂ℒ/∂x = ∂ℒ/∂y · σ(x) · (1−σ(x))
  """

  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    output_array = 0.5 * (np.tanh(0.5 * input_array) + 1.0)
    ctx.save_for_backward(output_array)
    return output_array

  def backward(self, gradient_output):
    (output_array,) = self.saved_tensors
    return gradient_output * output_array * (1.0 - output_array)


def sigmoid(x, mode: Mode | None = None) -> Variable:
  return Sigmoid.apply(as_variable(x), mode=mode)


class ReLU(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, *args, **kwargs):
    (input_array,) = args
    mask = (input_array > 0).astype(input_array.dtype)
    ctx.save_for_backward(mask)
    return input_array * mask

  def backward(self, gradient_output):
    (mask,) = self.saved_tensors
    return gradient_output * mask


def relu(x, mode: Mode | None = None) -> Variable:
  return ReLU.apply(as_variable(x), mode=mode)


class Clip(Function):
  """
  Clip
  Forward c(x)=min(max(x, lo), hi)
  Backward ∂ℒ/∂x = ∂ℒ/∂y · {1 if lo ≤ x ≤ hi else 0}
  """

  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, minimum, maximum):
    pass_through_mask = ((input_array >= minimum) & (input_array <= maximum)).astype(
      input_array.dtype
    )
    ctx.save_for_backward(pass_through_mask)
    return np.clip(input_array, minimum, maximum)

  def backward(self, gradient_output):
    (pass_through_mask,) = self.saved_tensors
    return gradient_output * pass_through_mask


def clip(x, minimum: float, maximum: float, mode: Mode | None = None) -> Variable:
  return Clip.apply(as_variable(x), minimum, maximum, mode=mode)


class MatMul(Function):
  """
  Computes the matrix product of two tensors.

  The forward pass computes:
  Y = A @ B

  The backward pass computes the gradients with respect to the inputs A and B:
  ∂L/∂A = ∂L/∂Y @ B.T
  ∂L/∂B = A.T @ ∂L/∂Y
  """

  required_input_count = 2

  @staticmethod
  def forward(ctx, *args, **kwargs):
    matrix_a, matrix_b = args
    if matrix_a.ndim < 2 or matrix_b.ndim < 2:
      raise ShapeMismatchError(
        "MatMul", "two operands with ndim >= 2", (matrix_a.shape, matrix_b.shape)
      )
    if matrix_a.shape[-1] != matrix_b.shape[-2]:
      raise ShapeMismatchError(
        "MatMul",
        (*matrix_a.shape[:-1], "k"),
        matrix_b.shape,
        f"Inner dimensions differ: {matrix_a.shape[-1]} vs {matrix_b.shape[-2]}.",
      )
    ctx.save_for_backward(matrix_a, matrix_b)
    return np.matmul(matrix_a, matrix_b)

  def backward(self, gradient_output):
    matrix_a, matrix_b = self.saved_tensors
    gradient_a = _sum_to_array(
      np.matmul(gradient_output, matrix_b.swapaxes(-1, -2)), matrix_a.shape
    )
    gradient_b = _sum_to_array(
      np.matmul(matrix_a.swapaxes(-1, -2), gradient_output), matrix_b.shape
    )
    return gradient_a, gradient_b


def matmul(a, b, mode: Mode | None = None) -> Variable:
  return MatMul.apply(as_variable(a), as_variable(b), mode=mode)


class Linear(Function):
  """
  Affine map y = x W + b; the bias is optional, so the arity is 2 or 3.
  Inputs are batched: x has at least two dimensions.
  """

  required_input_count = (2, 3)

  @staticmethod
  def forward(ctx, input_array, weight_array, bias_array=None):
    if input_array.ndim < 2 or weight_array.ndim != 2:
      raise ShapeMismatchError(
        "Linear",
        "input with ndim >= 2 and a 2-D weight",
        (input_array.shape, weight_array.shape),
      )
    if input_array.shape[-1] != weight_array.shape[0]:
      raise ShapeMismatchError(
        "Linear",
        (*input_array.shape[:-1], weight_array.shape[0]),
        input_array.shape,
      )
    output_array = np.matmul(input_array, weight_array)
    if bias_array is not None:
      _broadcast_shape("Linear", output_array.shape, bias_array.shape)
      output_array = output_array + bias_array
    ctx.save_for_backward(
      input_array, weight_array, None if bias_array is None else bias_array.shape
    )
    return output_array

  def backward(self, gradient_output):
    input_array, weight_array, bias_shape = self.saved_tensors
    gradient_input = np.matmul(gradient_output, weight_array.T)
    gradient_weight = _sum_to_array(
      np.matmul(input_array.swapaxes(-1, -2), gradient_output), weight_array.shape
    )
    if bias_shape is None:
      return gradient_input, gradient_weight
    return gradient_input, gradient_weight, _sum_to_array(gradient_output, bias_shape)


def linear(x, weight, bias=None, mode: Mode | None = None) -> Variable:
  if bias is None:
    return Linear.apply(as_variable(x), as_variable(weight), mode=mode)
  return Linear.apply(as_variable(x), as_variable(weight), as_variable(bias), mode=mode)


class Sum(Function):
  required_input_count = 1

  @staticmethod
  def forward(
    ctx, input_array, axis: tuple[int, ...] | None = None, keepdims: bool = False
  ):
    ctx.axis = axis
    ctx.keepdims = keepdims
    ctx.input_shape = input_array.shape
    return input_array.sum(axis=axis, keepdims=keepdims)

  def backward(self, gradient_output):
    return _expand_reduced(gradient_output, self.input_shape, self.axis, self.keepdims)


def sum(
  x, axis: int | tuple[int, ...] | None = None, keepdims: bool = False,
  mode: Mode | None = None,
) -> Variable:
  return Sum.apply(as_variable(x), _normalize_axis(axis), keepdims, mode=mode)


class Mean(Function):
  required_input_count = 1

  @staticmethod
  def forward(
    ctx, input_array, axis: tuple[int, ...] | None = None, keepdims: bool = False
  ):
    ctx.axis = axis
    ctx.keepdims = keepdims
    ctx.input_shape = input_array.shape
    axes = range(input_array.ndim) if axis is None else _normalize_axis(axis)
    ctx.count = int(np.prod([input_array.shape[index] for index in axes]))
    return input_array.mean(axis=axis, keepdims=keepdims)

  def backward(self, gradient_output):
    gradient_output = _expand_reduced(
      gradient_output, self.input_shape, self.axis, self.keepdims
    )
    return gradient_output / self.count


def mean(
  x, axis: int | tuple[int, ...] | None = None, keepdims: bool = False,
  mode: Mode | None = None,
) -> Variable:
  return Mean.apply(as_variable(x), _normalize_axis(axis), keepdims, mode=mode)


class Max(Function):
  """
  Max along an axis; every element equal to the selected value receives the
  full upstream gradient.
  """

  required_input_count = 1
  reduction = staticmethod(np.max)

  @classmethod
  def _reduce(cls, input_array, axis, keepdims):
    return cls.reduction(input_array, axis=axis, keepdims=keepdims)

  @staticmethod
  def forward(ctx, input_array, axis=None, keepdims: bool = False):
    output_array = ctx._reduce(input_array, axis, keepdims)
    ctx.axis = axis
    ctx.keepdims = keepdims
    ctx.save_for_backward(input_array, output_array)
    return output_array

  def backward(self, gradient_output):
    input_array, output_array = self.saved_tensors
    selected = _expand_reduced(output_array, input_array.shape, self.axis, self.keepdims)
    gradient_output = _expand_reduced(
      gradient_output, input_array.shape, self.axis, self.keepdims
    )
    return gradient_output * (input_array == selected)


class Min(Max):
  reduction = staticmethod(np.min)


def max(x, axis=None, keepdims: bool = False, mode: Mode | None = None) -> Variable:
  return Max.apply(as_variable(x), _normalize_axis(axis), keepdims, mode=mode)


def min(x, axis=None, keepdims: bool = False, mode: Mode | None = None) -> Variable:
  return Min.apply(as_variable(x), _normalize_axis(axis), keepdims, mode=mode)


class Reshape(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, shape):
    ctx.input_shape = input_array.shape
    try:
      return input_array.reshape(shape)
    except ValueError:
      raise ShapeMismatchError(
        "Reshape", shape, input_array.shape, "Element counts differ."
      ) from None

  def backward(self, gradient_output):
    return gradient_output.reshape(self.input_shape)


def reshape(x, shape: tuple[int, ...], mode: Mode | None = None) -> Variable:
  return Reshape.apply(as_variable(x), tuple(shape), mode=mode)


class Transpose(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, axes=None):
    ctx.axes = axes
    return np.transpose(input_array, axes)

  def backward(self, gradient_output):
    if self.axes is None:
      return np.transpose(gradient_output)
    return np.transpose(gradient_output, np.argsort(self.axes))


def transpose(x, axes=None, mode: Mode | None = None) -> Variable:
  return Transpose.apply(as_variable(x), axes, mode=mode)


class BroadcastTo(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, shape):
    if _broadcast_shape("BroadcastTo", input_array.shape, shape) != tuple(shape):
      raise ShapeMismatchError("BroadcastTo", shape, input_array.shape)
    ctx.input_shape = input_array.shape
    return np.broadcast_to(input_array, shape).copy()

  def backward(self, gradient_output):
    return _sum_to_array(gradient_output, self.input_shape)


def broadcast_to(x, shape: tuple[int, ...], mode: Mode | None = None) -> Variable:
  return BroadcastTo.apply(as_variable(x), tuple(shape), mode=mode)


class SumTo(Function):
  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, shape):
    ctx.input_shape = input_array.shape
    return _sum_to_array(input_array, shape)

  def backward(self, gradient_output):
    return np.broadcast_to(gradient_output, self.input_shape)


def sum_to(x, shape: tuple[int, ...], mode: Mode | None = None) -> Variable:
  return SumTo.apply(as_variable(x), tuple(shape), mode=mode)


class GetItem(Function):
  """
  Indexing / slicing. Backward scatters into zeros with `np.add.at`, so
  repeated indices add up.
  """

  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, index):
    ctx.index = index
    ctx.input_shape = input_array.shape
    ctx.input_dtype = input_array.dtype
    return np.asarray(input_array[index])

  def backward(self, gradient_output):
    gradient_input = np.zeros(self.input_shape, dtype=self.input_dtype)
    np.add.at(gradient_input, self.index, gradient_output)
    return gradient_input


def get_item(x, index, mode: Mode | None = None) -> Variable:
  return GetItem.apply(as_variable(x), index, mode=mode)


class Softmax(Function):
  """
  Softmax
  Forward s(z)ⱼ = exp(zⱼ − max(z)) ⁄ ∑ₖ exp(zₖ − max(z))
  Backward ∂ℒ/∂z = s · (∂ℒ/∂s − ∑ⱼ ∂ℒ/∂sⱼ · sⱼ)
  """

  required_input_count = 1

  @staticmethod
  def forward(ctx, input_array, axis: int = -1):
    shifted = input_array - np.max(input_array, axis=axis, keepdims=True)
    exp_shifted = np.exp(shifted)
    output_array = exp_shifted / np.sum(exp_shifted, axis=axis, keepdims=True)
    ctx.axis = axis
    ctx.save_for_backward(output_array)
    return output_array

  def backward(self, gradient_output):
    (output_array,) = self.saved_tensors
    weighted = gradient_output * output_array
    return weighted - output_array * weighted.sum(axis=self.axis, keepdims=True)


def softmax(x, axis: int = -1, mode: Mode | None = None) -> Variable:
  return Softmax.apply(as_variable(x), axis, mode=mode)


__all__ = [
  "Add", "Sub", "Neg", "Mul", "Div", "Square", "Power", "Exp", "Log", "Sin",
  "Cos", "Tanh", "Sigmoid", "ReLU", "Clip", "MatMul", "Linear", "Sum", "Mean",
  "Max", "Min", "Reshape", "Transpose", "BroadcastTo", "SumTo", "GetItem",
  "Softmax",
  "add", "sub", "neg", "mul", "div", "square", "power", "exp", "log", "sin",
  "cos", "tanh", "sigmoid", "relu", "clip", "matmul", "linear", "sum", "mean",
  "max", "min", "reshape", "transpose", "broadcast_to", "sum_to", "get_item",
  "softmax",
]
