"""
NN layer functionalities.

∘ Module          –  PyTorch-style base: tracks sub-modules, parameters, toggles train/eval, supports state-dict I/O.
∘ Linear          –  y = x W + b  with He-initialization (√(2/n)).
∘ SimpleRNN       –  hₜ = tanh(xₜ Wₓ + b + hₜ₋₁ Wₕ), stateful across calls.
∘ Tanh / ReLU     –  thin wrappers over `ops.tanh` / `ops.relu`.
∘ Sequential      –  for-loop composition.

Everything returns/accepts `Variable`, so gradients flow automatically.
A module in evaluation mode runs its ops with `INFERENCE`, so no graph is kept.
"""
from typing import Iterable

import numpy as np

from .mode import INFERENCE, TRAIN, Mode
from .ops import add, linear, relu, tanh
from .variable import Variable


class Module:
  training: bool = True

  @property
  def mode(self) -> Mode:
    return TRAIN if self.training else INFERENCE

  def named_parameters(self, prefix: str = "") -> Iterable[tuple[str, Variable]]:
    for name, attr in self.__dict__.items():
      if name.startswith("_"):
        continue

      full_name = f"{prefix}.{name}" if prefix else name
      if isinstance(attr, Variable):
        yield full_name, attr
      elif isinstance(attr, Module):
        yield from attr.named_parameters(full_name)
      elif isinstance(attr, (list, tuple)):
        for i, elem in enumerate(attr):
          if isinstance(elem, Module):
            yield from elem.named_parameters(f"{full_name}.{i}")

  def parameters(self) -> Iterable[Variable]:
    for _, param in self.named_parameters():
      yield param

  def state_dict(self) -> dict[str, np.ndarray]:
    return {name: param.value.copy() for name, param in self.named_parameters()}

  def load_state_dict(self, state_dict: dict[str, np.ndarray]):
    for name, param in self.named_parameters():
      if name not in state_dict:
        raise KeyError(f"Missing key in state_dict: {name}")
      param.set_value(state_dict[name])

  def set_to_training(self, mode: bool = True):
    self.training = mode
    for attr in self.__dict__.values():
      if isinstance(attr, Module):
        attr.set_to_training(mode)
      elif isinstance(attr, (list, tuple)):
        for elem in attr:
          if isinstance(elem, Module):
            elem.set_to_training(mode)
    return self

  def set_to_evaluation(self):
    return self.set_to_training(False)

  def zero_grad(self):
    for p in self.parameters():
      p.clear_grad()

  def reset_state(self):
    for attr in self.__dict__.values():
      if isinstance(attr, Module):
        attr.reset_state()
      elif isinstance(attr, (list, tuple)):
        for elem in attr:
          if isinstance(elem, Module):
            elem.reset_state()

  def __call__(self, *args, **kwargs):
    raise NotImplementedError


class Linear(Module):
  """
  Applies a linear transformation to the incoming data: y = x W + b

  The weights are initialized using Kaiming (He) initialization,
  W ~ N(0, √(2 / in_features)).
  """

  def __init__(self, in_features: int, out_features: int, bias: bool = True):
    w = np.random.randn(in_features, out_features).astype(np.float32) * np.sqrt(
      2.0 / in_features
    )
    self.weight = Variable(w, name="weight")
    self.bias = (
      Variable(np.zeros(out_features, dtype=np.float32), name="bias") if bias else None
    )

  def __call__(self, x: Variable) -> Variable:
    return linear(x, self.weight, self.bias, mode=self.mode)


class SimpleRNN(Module):
  """
  Elman recurrence, one time step per call.

  hₜ = tanh(xₜ Wₓ + b + hₜ₋₁ Wₕ)

  The hidden state is kept between calls, so a sequence unrolls into one long
  graph. Training loops cut it with `loss.unchain_backward()` after every
  update (truncated BPTT) and call `reset_state()` between sequences.
  """

  def __init__(self, input_size: int, hidden_size: int):
    self.hidden_size = hidden_size
    self.x2h = Linear(input_size, hidden_size)
    self.h2h = Linear(hidden_size, hidden_size, bias=False)
    self.h2h.weight.set_value(
      np.random.randn(hidden_size, hidden_size).astype(np.float32)
      * np.sqrt(1.0 / hidden_size)
    )
    self._hidden_state: Variable | None = None

  def reset_state(self):
    self._hidden_state = None

  @property
  def hidden_state(self) -> Variable | None:
    return self._hidden_state

  def __call__(self, x: Variable) -> Variable:
    pre_activation = self.x2h(x)
    if self._hidden_state is not None:
      pre_activation = add(pre_activation, self.h2h(self._hidden_state), mode=self.mode)
    self._hidden_state = tanh(pre_activation, mode=self.mode)
    return self._hidden_state


class Tanh(Module):
  def __call__(self, x: Variable) -> Variable:
    return tanh(x, mode=self.mode)


class ReLU(Module):
  def __call__(self, x: Variable) -> Variable:
    return relu(x, mode=self.mode)


class Sequential(Module):
  def __init__(self, *modules: Module | Iterable[Module]):
    flat: list[Module] = []
    for m in modules:
      if isinstance(m, (list, tuple)):
        flat.extend(m)
      else:
        flat.append(m)
    self.layers: list[Module] = flat

  def __call__(self, x: Variable) -> Variable:
    for layer in self.layers:
      x = layer(x)
    return x


__all__ = ["Module", "Linear", "SimpleRNN", "Tanh", "ReLU", "Sequential"]
