import numpy as np
import pytest
from numpy.random import randn

from tinydl.core.errors import ShapeMismatchError
from tinydl.core.losses import (
  mean_squared_error,
  sigmoid_cross_entropy,
  softmax_cross_entropy,
)
from tinydl.core.variable import Variable
from tests.utils import assertion, finite_difference_gradients


@pytest.mark.parametrize("shape", [(8, 3), (5, 7)])
def test_mse_grad(shape):
  predictions = Variable(randn(*shape))
  targets = Variable(randn(*shape))
  mean_squared_error(predictions, targets).backward()
  num_predictions, num_targets = finite_difference_gradients(
    lambda x, y: np.mean((x - y) ** 2),
    [predictions.value.copy(), targets.value.copy()],
  )
  assertion(predictions.grad, num_predictions)
  assertion(targets.grad, num_targets)


def test_mse_rejects_mismatched_shapes():
  with pytest.raises(ShapeMismatchError):
    mean_squared_error(Variable(np.zeros((4, 1))), np.zeros((4,)))


@pytest.mark.parametrize("batch,classes", [(9, 4), (6, 8)])
def test_softmax_cross_entropy_grad(batch, classes):
  logits = Variable(randn(batch, classes))
  labels = np.random.randint(0, classes, size=(batch,))
  loss = softmax_cross_entropy(logits, labels)
  loss.backward()

  def reference(z):
    shifted = z - z.max(axis=1, keepdims=True)
    log_probabilities = shifted - np.log(np.exp(shifted).sum(axis=1, keepdims=True))
    return -log_probabilities[np.arange(batch), labels].mean()

  (num_logits,) = finite_difference_gradients(reference, [logits.value.copy()])
  assertion(logits.grad, num_logits)
  assert np.isclose(loss.item(), reference(logits.value))


def test_softmax_cross_entropy_labels_get_no_gradient():
  logits = Variable(randn(3, 5))
  labels = Variable(np.array([0, 4, 2]))
  softmax_cross_entropy(logits, labels).backward()
  assert labels.grad is None
  assert logits.grad.shape == (3, 5)


@pytest.mark.parametrize("shape", [(7, 1), (5,)])
def test_sigmoid_cross_entropy_grad(shape):
  logits = Variable(3.0 * randn(*shape))
  labels = Variable(np.random.randint(0, 2, size=shape))
  loss = sigmoid_cross_entropy(logits, labels)
  loss.backward()

  def reference(z):
    probabilities = 1.0 / (1.0 + np.exp(-z))
    y = labels.value
    return -np.mean(y * np.log(probabilities) + (1 - y) * np.log(1 - probabilities))

  (num_logits,) = finite_difference_gradients(reference, [logits.value.copy()])
  assertion(logits.grad, num_logits)
  assert np.isclose(loss.item(), reference(logits.value))
  assert labels.grad is None


def test_sigmoid_cross_entropy_rejects_multi_column_logits():
  with pytest.raises(ShapeMismatchError):
    sigmoid_cross_entropy(Variable(np.zeros((4, 2))), np.zeros((4, 2)))
