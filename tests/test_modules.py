import weakref

import numpy as np
import pytest

from tinydl.core.losses import mean_squared_error
from tinydl.core.modules import Linear, ReLU, Sequential, SimpleRNN, Tanh
from tinydl.core.variable import Variable
from tests.utils import assertion, finite_difference_gradients


def test_linear_shapes_and_parameters():
  layer = Linear(4, 3)
  assert layer(Variable(np.ones((5, 4)))).shape == (5, 3)
  assert [name for name, _ in layer.named_parameters()] == ["weight", "bias"]
  assert [name for name, _ in Linear(4, 3, bias=False).named_parameters()] == ["weight"]


def test_sequential_gradients_match_finite_differences():
  model = Sequential(Linear(3, 5), Tanh(), Linear(5, 2), ReLU())
  for parameter in model.parameters():
    parameter.set_value(parameter.value.astype(np.float64))
  x = np.random.randn(6, 3)
  target = np.random.randn(6, 2)
  mean_squared_error(model(Variable(x, requires_grad=False)), target).backward()

  first_weight = model.layers[0].weight

  def loss_for(weight):
    hidden = np.tanh(x @ weight + model.layers[0].bias.value)
    output = np.maximum(hidden @ model.layers[2].weight.value + model.layers[2].bias.value, 0)
    return np.mean((output - target) ** 2)

  (numerical,) = finite_difference_gradients(loss_for, [first_weight.value.copy()])
  assertion(first_weight.grad, numerical, name="sequential")


def test_named_parameters_walk_nested_lists():
  model = Sequential([Linear(2, 2), Tanh()], Linear(2, 1))
  names = [name for name, _ in model.named_parameters()]
  assert names == ["layers.0.weight", "layers.0.bias", "layers.2.weight", "layers.2.bias"]


def test_state_dict_round_trip():
  source = Sequential(Linear(3, 4), Linear(4, 2))
  target = Sequential(Linear(3, 4), Linear(4, 2))
  target.load_state_dict(source.state_dict())
  for (name, a), (_, b) in zip(source.named_parameters(), target.named_parameters()):
    assert np.array_equal(a.value, b.value), name


def test_load_state_dict_missing_key():
  model = Linear(2, 2)
  with pytest.raises(KeyError, match="bias"):
    model.load_state_dict({"weight": np.zeros((2, 2))})


def test_zero_grad_clears_every_parameter():
  model = Sequential(Linear(2, 3), Linear(3, 1))
  model(Variable(np.ones((1, 2)))).sum().backward()
  assert all(parameter.grad is not None for parameter in model.parameters())
  model.zero_grad()
  assert all(parameter.grad is None for parameter in model.parameters())


def test_simple_rnn_keeps_state_until_reset():
  rnn = SimpleRNN(2, 4)
  assert rnn.hidden_state is None
  first = rnn(Variable(np.ones((1, 2))))
  second = rnn(Variable(np.ones((1, 2))))
  assert first.shape == second.shape == (1, 4)
  assert second.generation > first.generation
  rnn.reset_state()
  assert rnn.hidden_state is None


def test_simple_rnn_truncated_backpropagation():
  rnn = SimpleRNN(1, 3)
  head = Linear(3, 1)
  for _ in range(3):
    loss = None
    for _ in range(5):
      prediction = head(rnn(Variable(np.random.randn(1, 1), requires_grad=False)))
      step_loss = mean_squared_error(prediction, np.zeros((1, 1)))
      loss = step_loss if loss is None else loss + step_loss
    rnn.zero_grad()
    head.zero_grad()
    loss.backward()
    assert rnn.h2h.weight.grad is not None
    window_root = weakref.ref(loss.creator)
    loss.unchain_backward()
    assert rnn.hidden_state.creator is None
    # nothing keeps the finished window's graph alive
    assert window_root() is None


def test_reset_state_reaches_nested_rnn():
  model = Sequential(SimpleRNN(1, 2), Linear(2, 1))
  model(Variable(np.ones((1, 1))))
  model.reset_state()
  assert model.layers[0].hidden_state is None
