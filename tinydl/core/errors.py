"""
Failures raised by the autograd engine.

∘ InputArityError          –  wrong number of Variable operands for a Function.
∘ ShapeMismatchError       –  operand shapes the operation's algebra cannot combine.
∘ NoGraphError             –  backward requested where no creator chain exists.
∘ BroadcastReductionError  –  a gradient cannot be summed down to its Variable's shape.
∘ GraphDepthError          –  recursive backward went past its depth limit.

Each one also derives from the builtin a caller would naturally catch.
"""


class AutogradError(Exception):
  pass


class InputArityError(AutogradError, TypeError):
  def __init__(self, operation: str, expected: int | tuple[int, ...], actual: int):
    self.operation = operation
    self.expected = expected
    self.actual = actual
    if isinstance(expected, tuple):
      expected = " or ".join(str(count) for count in expected)
    super().__init__(
      f"{operation} expects {expected} input Variable(s), got {actual}."
    )


class ShapeMismatchError(AutogradError, ValueError):
  def __init__(self, operation: str, expected, actual, detail: str = ""):
    self.operation = operation
    self.expected = expected
    self.actual = actual
    message = f"{operation}: expected shape {expected}, got {actual}."
    if detail:
      message = f"{message} {detail}"
    super().__init__(message)


class NoGraphError(AutogradError, RuntimeError):
  pass


class BroadcastReductionError(AutogradError, ValueError):
  def __init__(self, source: tuple[int, ...], target: tuple[int, ...], name: str = ""):
    self.source = source
    self.target = target
    where = f" for {name}" if name else ""
    super().__init__(f"Cannot reduce gradient of shape {source} to {target}{where}.")


class GraphDepthError(AutogradError, RecursionError):
  pass


__all__ = [
  "AutogradError",
  "InputArityError",
  "ShapeMismatchError",
  "NoGraphError",
  "BroadcastReductionError",
  "GraphDepthError",
]
