import numpy as np
import pytest

from tinydl.core.errors import NoGraphError, ShapeMismatchError
from tinydl.core.ops import add, exp, mul, square
from tinydl.core.variable import Variable, as_variable


def test_accessors():
  x = Variable(np.arange(6).reshape(2, 3), name="x")
  assert x.shape == (2, 3)
  assert x.ndim == 2
  assert x.size == 6
  assert len(x) == 2
  assert x.dtype == np.float32
  assert x.creator is None and x.generation == 0
  assert "name=x" in repr(x)


def test_float64_values_keep_their_precision():
  assert Variable(np.zeros(3)).dtype == np.float64
  assert Variable(2.5).shape == ()


def test_none_value_is_rejected():
  with pytest.raises(TypeError):
    Variable(None)


def test_item_only_for_single_element():
  assert Variable(np.array([[4.0]])).item() == 4.0
  assert float(Variable(1.5)) == 1.5
  with pytest.raises(TypeError):
    Variable(np.ones(2)).item()


def test_set_grad_validates_shape_and_copies():
  x = Variable(np.zeros((2, 2)), name="w")
  gradient = np.ones((2, 2))
  x.set_grad(gradient)
  gradient[0, 0] = 10.0
  assert np.array_equal(x.get_grad(), np.ones((2, 2)))
  with pytest.raises(ShapeMismatchError, match="w"):
    x.set_grad(np.ones(3))
  x.set_grad(None)
  assert x.grad is None


def test_clear_grad_resets_to_none():
  x = Variable(np.ones(3))
  square(x).sum().backward()
  assert x.grad is not None
  x.clear_grad()
  assert x.grad is None


def test_generation_follows_deepest_input():
  x = Variable(1.0)
  a = square(x)
  b = exp(a)
  c = add(b, x)
  assert (a.generation, b.generation, c.generation) == (1, 2, 3)
  assert c.creator.generation == 2


def test_unchain_makes_backward_fail():
  x = Variable(2.0)
  y = square(x)
  y.unchain()
  assert y.creator is None
  with pytest.raises(NoGraphError):
    y.backward()


def test_unchain_backward_cuts_diamond_and_chain():
  x = Variable(np.ones(3))
  a = mul(x, 2.0)
  left = square(a)
  right = exp(a)
  top = add(left, right).sum()
  top.unchain_backward()
  for variable in (top, left, right, a, x):
    assert variable.creator is None


def test_unchain_backward_keeps_values_and_leaf_grads():
  x = Variable(np.array([1.0, 2.0]))
  y = square(x).sum()
  y.backward()
  gradient = x.grad.copy()
  y.unchain_backward()
  assert np.array_equal(x.grad, gradient)
  assert y.item() == 5.0


def test_unchain_backward_on_deep_chain():
  x = Variable(np.ones(2))
  y = x
  for _ in range(5000):
    y = mul(y, 1.0)
  y.unchain_backward()
  assert y.creator is None


def test_function_holds_its_output_weakly():
  x = Variable(np.ones(2))
  y = square(x)
  function = y.creator
  assert function.output_variable() is y
  del y
  with pytest.raises(NoGraphError):
    function.output_variable()


def test_operator_sugar():
  x = Variable(np.array([[1.0, 2.0], [3.0, 4.0]]))
  y = (-x + 1.0) * 2.0 - x / 2.0 + x**2
  assert np.allclose(y.value, (-x.value + 1.0) * 2.0 - x.value / 2.0 + x.value**2)
  assert np.allclose((x @ x.T).value, x.value @ x.value.T)
  assert x.reshape(4).shape == (4,)
  assert np.isclose(x.mean().item(), 2.5)
  assert np.allclose(np.asarray(x), x.value)


def test_as_variable_wraps_constants():
  constant = as_variable([1.0, 2.0])
  assert isinstance(constant, Variable)
  assert not constant.requires_grad
  x = Variable(1.0)
  assert as_variable(x) is x
