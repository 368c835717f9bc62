"""
Learning-rate schedules for any Optimizer.

∘ StepLR             ηₜ = η₀ · γ^{⌊t / step_size⌋}
∘ CosineAnnealingLR  ηₜ = η_min + ½ (η₀ − η_min)(1 + cos(t / T_max · π))

`step()` is called once per epoch.
"""

from typing import Callable, Optional

from numpy import cos
from numpy import pi as π

from .optim import Optimizer


class StepLR:
  """
  Decays the learning rate by gamma every step_size epochs.

  Args:
      optimizer (Optimizer): Wrapped optimizer.
      step_size (int): Period of learning rate decay.
      gamma (float): Multiplicative factor of learning rate decay.
      log_message (callable): Optional logger from `utils.common.create_logger`.
  """

  def __init__(
    self,
    optimizer: Optimizer,
    step_size: int,
    gamma: float = 0.1,
    log_message: Optional[Callable[..., None]] = None,
  ):
    if step_size < 1:
      raise ValueError(f"step_size must be positive, got {step_size}")
    self.optimizer = optimizer
    self.step_size = step_size
    self.gamma = gamma
    self.epoch = 0
    self._log_message = log_message

  def step(self):
    self.epoch += 1
    if self.epoch % self.step_size == 0:
      self.optimizer.learning_rate *= self.gamma
      if self._log_message is not None:
        self._log_message(
          f"Decaying learning rate to {self.optimizer.learning_rate:.6f}", "DEBUG"
        )


class CosineAnnealingLR:
  """
  Sets the learning rate using a cosine annealing schedule.

  Args:
      optimizer (Optimizer): Wrapped optimizer.
      T_max (int): Maximum number of epochs.
      eta_min (float): Minimum learning rate. Default: 0.
  """

  def __init__(self, optimizer: Optimizer, T_max: int, eta_min: float = 0.0):
    self.optimizer = optimizer
    self.T_max = T_max
    self.η_min = eta_min
    self.base_lr = optimizer.learning_rate
    self.last_epoch = 0

  def step(self):
    if self.last_epoch < self.T_max:
      self.last_epoch += 1
      self.optimizer.learning_rate = self.η_min + 0.5 * (self.base_lr - self.η_min) * (
        1 + cos(self.last_epoch / self.T_max * π)
      )
    else:
      self.optimizer.learning_rate = self.η_min
