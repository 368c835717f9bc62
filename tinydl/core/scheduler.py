"""
Backward scheduling.

Given a terminal Variable y with seed gradient dy, every ancestor x reachable
through `creator` links receives dx = Σ over all paths y→x of ∂y/∂path.

A Variable can feed several Functions (fan-out), so the Function that
produced it may only run once all of those consumers have added their share
to its gradient. Generations make this cheap: a consumer's generation is at
least the output's generation, which is strictly above the producer's. So
processing Functions in non-increasing generation order is enough, without a
full topological sort.

Two realisations share one ordering key, (-generation, recording order):
∘ iterative  –  a heap worklist seeded with y.creator; the default, with no
                depth limit.
∘ recursive  –  depth-first discovery with a visited set, then the same
                ordering; bounded by `max_depth`.

Both accumulate in exactly the same order, so they agree bit for bit.

A pass collects its gradients privately and only writes them to `.grad`
(and releases saved tensors) once every Function has run. A pass that raises
leaves all gradients and the graph as they were.
"""

from __future__ import annotations

import heapq
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

import numpy as np

from .errors import GraphDepthError, NoGraphError
from .function import sum_to
from .mode import Mode, resolve

if TYPE_CHECKING:
  from .function import Function
  from .variable import Variable

DEFAULT_MAX_RECURSION_DEPTH = 20_000
_RECURSION_HEADROOM = 1_000


def _priority(function: "Function") -> tuple[int, int]:
  # equal generations run in the order they were recorded
  return (-function.generation, function.sequence)


class _BackwardPass:
  def __init__(self, root: "Variable", seed: np.ndarray, retain_graph: bool):
    self.retain_graph = retain_graph
    self.variables: dict[int, "Variable"] = {id(root): root}
    self.gradients: dict[int, np.ndarray] = {id(root): seed}
    self.processed: list["Function"] = []

  def accumulate(self, variable: "Variable", gradient: np.ndarray) -> None:
    """First contribution stores a copy; later ones add in place."""
    gradient = sum_to(gradient, variable.value.shape, variable.name)
    key = id(variable)
    if key in self.gradients:
      self.gradients[key] += gradient
    else:
      self.variables[key] = variable
      self.gradients[key] = np.array(gradient, dtype=variable.value.dtype, copy=True)

  def propagate(self, function: "Function") -> list["Function"]:
    output_variable = function.output_variable()
    gradient_output = self.gradients.get(id(output_variable))
    if gradient_output is None:
      # every consumer skipped this output
      return []
    gradients = function.run_backward(gradient_output)
    self.processed.append(function)

    reached: list["Function"] = []
    for input_variable, input_gradient in zip(function.inputs, gradients):
      if input_gradient is None or not input_variable.requires_grad:
        continue
      self.accumulate(input_variable, input_gradient)
      if input_variable.creator is not None:
        reached.append(input_variable.creator)
    return reached

  def commit(self) -> None:
    """
    Leaves keep accumulating across passes until `clear_grad()`; a Variable
    with a creator holds only this pass's gradient.
    """
    for key, gradient in self.gradients.items():
      variable = self.variables[key]
      if variable.creator is None and variable.grad is not None:
        variable.grad += gradient
      else:
        variable.grad = gradient
    if not self.retain_graph:
      for function in self.processed:
        function.release()


def iterative_backward(
  root: "Variable", seed: np.ndarray, retain_graph: bool = False
) -> None:
  backward_pass = _BackwardPass(root, seed, retain_graph)
  enqueued: set[int] = {id(root.creator)}
  # priorities are unique per Function, so heap entries never compare Functions
  worklist: list[tuple[tuple[int, int], "Function"]] = [
    (_priority(root.creator), root.creator)
  ]

  while worklist:
    _, function = heapq.heappop(worklist)
    for upstream in backward_pass.propagate(function):
      if id(upstream) in enqueued:
        continue
      enqueued.add(id(upstream))
      heapq.heappush(worklist, (_priority(upstream), upstream))
  backward_pass.commit()


@contextmanager
def _recursion_limit(limit: int) -> Iterator[None]:
  previous_limit = sys.getrecursionlimit()
  if limit > previous_limit:
    sys.setrecursionlimit(limit)
  try:
    yield
  finally:
    sys.setrecursionlimit(previous_limit)


def _discover(root_function: "Function", max_depth: int) -> list["Function"]:
  visited: set[int] = set()
  discovered: list["Function"] = []

  def depth_first_search(function: "Function", depth: int) -> None:
    if depth > max_depth:
      raise GraphDepthError(
        f"Graph deeper than {max_depth} Functions; "
        "use the iterative backward for unrolled graphs this long."
      )
    visited.add(id(function))
    discovered.append(function)
    for input_variable in function.inputs:
      upstream = input_variable.creator
      if upstream is None or not input_variable.requires_grad:
        continue
      if id(upstream) in visited or upstream.generation >= function.generation:
        continue
      depth_first_search(upstream, depth + 1)

  with _recursion_limit(max_depth + _RECURSION_HEADROOM):
    depth_first_search(root_function, 1)
  return discovered


def recursive_backward(
  root: "Variable",
  seed: np.ndarray,
  retain_graph: bool = False,
  max_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
) -> None:
  backward_pass = _BackwardPass(root, seed, retain_graph)
  for function in sorted(_discover(root.creator, max_depth), key=_priority):
    backward_pass.propagate(function)
  backward_pass.commit()


def run_backward(
  root: "Variable",
  retain_graph: bool = False,
  recursive: bool = False,
  mode: Mode | None = None,
  max_depth: int = DEFAULT_MAX_RECURSION_DEPTH,
) -> None:
  """
  Seeds with `root.grad` only when the caller set it through `set_grad()`
  since the last pass, otherwise with ones.
  """
  if not resolve(mode).training:
    raise NoGraphError("backward() is unavailable in inference mode.")
  if root.creator is None:
    raise NoGraphError(
      f"{root.name} has no creator: it is a leaf, was unchained, "
      "or was computed without recording a graph."
    )
  if root.has_explicit_seed() and root.grad is not None:
    seed = np.array(root.grad, copy=True)
  else:
    seed = np.ones_like(root.value)

  if recursive:
    recursive_backward(root, seed, retain_graph, max_depth)
  else:
    iterative_backward(root, seed, retain_graph)
  root.consume_seed()


__all__ = [
  "DEFAULT_MAX_RECURSION_DEPTH",
  "iterative_backward",
  "recursive_backward",
  "run_backward",
]
