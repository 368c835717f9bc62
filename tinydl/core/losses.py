"""
Differentiable loss functions. Each one is a `Function`, so the returned
scalar Variable sits at the top of the graph and `loss.backward()` reaches
the model parameters directly.

Implemented losses
• mean_squared_error          ℓ = 1⁄n ∑(ŷ − y)²
• softmax_cross_entropy       ℓ = −1⁄n ∑ log σ(z)ᵧ
• sigmoid_cross_entropy       ℓ = −1⁄n ∑ [y log s(z) + (1 − y) log(1 − s(z))]

Targets of the cross-entropies (class indices, binary labels) get no gradient.
Numerical stability is enforced via log-sum-exp.
"""

import numpy as np

from .errors import ShapeMismatchError
from .function import Function
from .mode import Mode
from .variable import Variable, as_variable


def _log_softmax(z: np.ndarray) -> np.ndarray:
  """
  log σ(z)ⱼ = zⱼ − max(z) − log ∑ₖ exp(zₖ − max(z))
  """
  shifted = z - np.max(z, axis=1, keepdims=True)
  return shifted - np.log(np.sum(np.exp(shifted), axis=1, keepdims=True))


class MeanSquaredError(Function):
  """
  ℓ(ŷ, y) = 1 ⁄ n ∑ᵢ (ŷᵢ − yᵢ)²
  ∂ℓ ⁄ ∂ŷ = 2 (ŷ − y) ⁄ n,  ∂ℓ ⁄ ∂y = −∂ℓ ⁄ ∂ŷ
  """

  required_input_count = 2

  @staticmethod
  def forward(ctx, predictions, targets):
    if predictions.shape != targets.shape:
      raise ShapeMismatchError("MeanSquaredError", predictions.shape, targets.shape)
    difference = predictions - targets
    ctx.save_for_backward(difference)
    return np.mean(difference**2)

  def backward(self, gradient_output):
    (difference,) = self.saved_tensors
    gradient_predictions = gradient_output * 2.0 * difference / difference.size
    return gradient_predictions, -gradient_predictions


def mean_squared_error(predictions, targets, mode: Mode | None = None) -> Variable:
  return MeanSquaredError.apply(as_variable(predictions), as_variable(targets), mode=mode)


class SoftmaxCrossEntropy(Function):
  """
  ℓ(z, y) = −1 ⁄ n ∑ᵢ log σ(zᵢ)ᵧᵢ
  ∂ℓ ⁄ ∂z = (σ(z) − one_hot(y)) ⁄ n
  """

  required_input_count = 2

  @staticmethod
  def forward(ctx, logits, class_indices):
    y_indices = class_indices.astype(np.int64).reshape(-1)
    if logits.ndim != 2 or y_indices.size != logits.shape[0]:
      raise ShapeMismatchError(
        "SoftmaxCrossEntropy", (y_indices.size, "classes"), logits.shape
      )
    log_probabilities = _log_softmax(logits)
    ctx.save_for_backward(log_probabilities, y_indices)
    return -log_probabilities[np.arange(y_indices.size), y_indices].mean()

  def backward(self, gradient_output):
    log_probabilities, y_indices = self.saved_tensors
    probabilities = np.exp(log_probabilities)
    one_hot_targets = np.zeros_like(probabilities)
    one_hot_targets[np.arange(y_indices.size), y_indices] = 1.0
    gradient_logits = gradient_output * (probabilities - one_hot_targets) / y_indices.size
    return gradient_logits, None


def softmax_cross_entropy(logits, class_indices, mode: Mode | None = None) -> Variable:
  return SoftmaxCrossEntropy.apply(
    as_variable(logits), as_variable(class_indices), mode=mode
  )


class SigmoidCrossEntropy(Function):
  """
  Binary cross-entropy on logits z of shape (n, 1) or (n,), labels y in {0, 1}.

  ℓ(z, y) = 1 ⁄ n ∑ᵢ max(zᵢ, 0) − zᵢ yᵢ + log(1 + e^(−|zᵢ|))
  ∂ℓ ⁄ ∂z = (s(z) − y) ⁄ n
  """

  required_input_count = 2

  @staticmethod
  def forward(ctx, logits, labels):
    single_column = logits.ndim == 1 or (logits.ndim == 2 and logits.shape[1] == 1)
    if not single_column or labels.shape != logits.shape:
      raise ShapeMismatchError(
        "SigmoidCrossEntropy", "(n, 1) logits and labels", (logits.shape, labels.shape)
      )
    labels = labels.astype(logits.dtype)
    ctx.save_for_backward(0.5 * (np.tanh(0.5 * logits) + 1.0), labels)
    losses = np.maximum(logits, 0) - logits * labels + np.log1p(np.exp(-np.abs(logits)))
    return losses.sum() / logits.shape[0]

  def backward(self, gradient_output):
    probabilities, labels = self.saved_tensors
    gradient_logits = gradient_output * (probabilities - labels) / labels.shape[0]
    return gradient_logits, None


def sigmoid_cross_entropy(logits, labels, mode: Mode | None = None) -> Variable:
  return SigmoidCrossEntropy.apply(as_variable(logits), as_variable(labels), mode=mode)


__all__ = [
  "MeanSquaredError",
  "SoftmaxCrossEntropy",
  "mean_squared_error",
  "softmax_cross_entropy",
  "SigmoidCrossEntropy",
  "sigmoid_cross_entropy",
]
