"""
Training / inference mode.

Graph construction is gated by a `Mode` value handed to every
`Function.apply` and `Variable.backward` call instead of a process-wide flag,
so two threads working on disjoint graphs can run in different modes.

∘ TRAIN      –  record creators and inputs, backward is allowed.
∘ INFERENCE  –  outputs come back detached, nothing upstream is retained.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Mode:
  training: bool = True


TRAIN = Mode(training=True)
INFERENCE = Mode(training=False)


def resolve(mode: Mode | None) -> Mode:
  return TRAIN if mode is None else mode


__all__ = ["Mode", "TRAIN", "INFERENCE", "resolve"]
