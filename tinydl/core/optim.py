"""
An optimizer is an algorithm that updates the parameters of a model,
to minimize the loss function during training.

Given:
∘ Parameters: θ
∘ Loss Function: ℒ(θ)
∘ Gradient: ∇(ℒ)
∘ Learning Rate: η

An optimizer updates the parameters using the gradient:
θ ←--- θ - η . ∇(ℒ)

Optimizers only read `Variable.grad` and write `Variable.value`; they never
touch the graph. Parameters without a gradient are skipped.
"""

from typing import Iterable

import numpy as np

from .variable import Variable


class Optimizer:
  def __init__(self, parameters: Iterable[Variable], learning_rate: float = 0.01):
    self.parameters = [parameter for parameter in parameters if parameter.requires_grad]
    self.learning_rate = learning_rate

  def zero_grad(self):
    for parameter in self.parameters:
      parameter.clear_grad()

  def step(self):
    raise NotImplementedError


class Adam(Optimizer):
  """
  ADAM stands for Adaptive Moment Estimation.
  It combines the advantages of Momentum and RMSProp by adapting the step of
  each parameter from running estimates of the first and second moments of
  its gradients.

  Momentum Estimation: mₜ = β₁ × mₜ₋₁ + (1 - β₁) × gₜ
  RMS Estimation: vₜ = β₂ × vₜ₋₁ + (1 - β₂) × gₜ²
  Bias Correction: m̂ₜ = mₜ / (1 - β₁ᵗ), v̂ₜ = vₜ / (1 - β₂ᵗ)
  Paramater Update: θₜ₊₁ = θₜ - η × m̂ₜ / (√v̂ₜ + ε)
  """

  def __init__(
    self,
    parameters: Iterable[Variable],
    learning_rate: float = 0.01,
    β_1: float = 0.9,
    β_2: float = 0.999,
    ε: float = 1e-8,
    weight_decay: float = 0.0,
    maximum_gradient_norm: float | None = None,
  ):
    super().__init__(parameters, learning_rate)
    self.β_1 = β_1
    self.β_2 = β_2
    self.ε = ε
    self.weight_decay = weight_decay
    self.maximum_gradient_norm = maximum_gradient_norm

    self._step_count = 0
    self._first_moment = [np.zeros_like(parameter.value) for parameter in self.parameters]
    self._second_moment = [np.zeros_like(parameter.value) for parameter in self.parameters]

  def _clip_gradients(self):
    all_grads = [p.grad for p in self.parameters if p.grad is not None]
    if not all_grads:
      return
    l2_norm = np.sqrt(np.sum([np.sum(g**2) for g in all_grads]))
    if l2_norm > self.maximum_gradient_norm:
      clip_coefficient = self.maximum_gradient_norm / (l2_norm + self.ε)
      for p in self.parameters:
        if p.grad is not None:
          p.grad *= clip_coefficient

  def step(self):
    self._step_count += 1
    if self.maximum_gradient_norm is not None:
      self._clip_gradients()

    t = self._step_count
    for parameter, first_moment, second_moment in zip(
      self.parameters, self._first_moment, self._second_moment
    ):
      if parameter.grad is None:
        continue
      grad = parameter.grad

      if self.weight_decay:
        parameter.value -= self.learning_rate * self.weight_decay * parameter.value

      first_moment[:] = self.β_1 * first_moment + (1 - self.β_1) * grad
      second_moment[:] = self.β_2 * second_moment + (1 - self.β_2) * (grad**2)

      corrected_first_moment = first_moment / (1 - self.β_1**t)
      corrected_second_moment = second_moment / (1 - self.β_2**t)

      parameter.value -= (
        self.learning_rate
        * corrected_first_moment
        / (np.sqrt(corrected_second_moment) + self.ε)
      )


class SGD(Optimizer):
  """
  Stochastic Gradient Descent with optional momentum and Nesterov acceleration.

  v_{t+1} = μ·v_t + g_t          (g_t includes the weight-decay term)
  θ_{t+1} = θ_t − η · v_{t+1}

  If nesterov=True:
    θ_{t+1} = θ_t − η · (μ·v_{t+1} + g_t)
  """

  def __init__(
    self,
    parameters: Iterable[Variable],
    learning_rate: float = 0.01,
    momentum: float = 0.0,
    weight_decay: float = 0.0,
    nesterov: bool = False,
  ):
    super().__init__(parameters, learning_rate)
    self.momentum = momentum
    self.weight_decay = weight_decay
    self.nesterov = nesterov
    self._velocity = [np.zeros_like(p.value) for p in self.parameters]

  def step(self):
    for p, v in zip(self.parameters, self._velocity):
      if p.grad is None:
        continue
      grad = p.grad
      if self.weight_decay:
        grad = grad + self.weight_decay * p.value

      v *= self.momentum
      v += grad
      update = self.momentum * v + grad if self.nesterov else v
      p.value -= self.learning_rate * update


__all__ = ["Optimizer", "Adam", "SGD"]
