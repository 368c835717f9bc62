import numpy as np

from tinydl.core.variable import Variable

EPS = 1e-6
RTOL = 1e-4
ATOL = 1e-6


def assertion(
  computed: np.ndarray,
  numerical: np.ndarray,
  rtol: float = RTOL,
  atol: float = ATOL,
  name: str = "",
) -> None:
  """
  Assert ‖computed − numerical‖ ≤ atol + rtol·|numerical| element-wise.
  On failure raises a single-line AssertionError pointing to the worst element.
  """
  computed = np.asarray(computed)
  numerical = np.asarray(numerical)
  if computed.shape != numerical.shape:
    raise AssertionError(
      f"{name} - shape mismatch: Computed={computed.shape}, Numerical={numerical.shape}"
    )
  diff = np.abs(computed - numerical)
  tol = atol + rtol * np.abs(numerical)
  mask = diff > tol
  if mask.any():
    worst = np.unravel_index(np.argmax(diff / tol), diff.shape)
    raise AssertionError(
      f"{name} - grad mismatch at {worst} : "
      f"Computed={computed[worst]:.6g}, Numerical={numerical[worst]:.6g}, "
      f"Absolute Error={diff[worst]:.6g}, "
      f"Allowed Absolute={atol}, Relative={rtol}"
    )


def finite_difference_gradients(f, inputs, eps=EPS):
  """Central-difference gradient for scalar-output f(*inputs)."""
  gradients = []
  for input_array in inputs:
    gradient = np.zeros_like(input_array)
    iterator = np.nditer(input_array, flags=["multi_index"], op_flags=["readwrite"])
    while not iterator.finished:
      idx = iterator.multi_index
      original_value = input_array[idx]
      input_array[idx] = original_value + eps
      f_plus = f(*inputs)
      input_array[idx] = original_value - eps
      f_minus = f(*inputs)
      input_array[idx] = original_value
      gradient[idx] = (f_plus - f_minus) / (2 * eps)
      iterator.iternext()
    gradients.append(gradient)
  return gradients


def check_operation_gradients(operation, *arrays, name: str = "", **tolerances):
  """
  Differentiate sum(operation(*variables)) analytically and numerically.

  `operation` maps Variables to a Variable; inputs are float64 so the central
  difference is accurate.
  """
  arrays = [np.asarray(array, dtype=np.float64) for array in arrays]
  variables = [Variable(array.copy()) for array in arrays]
  operation(*variables).sum().backward()

  def scalar_output(*raw_arrays):
    wrapped = [Variable(array, requires_grad=False) for array in raw_arrays]
    return float(np.sum(operation(*wrapped).value))

  numerical = finite_difference_gradients(scalar_output, [a.copy() for a in arrays])
  for index, (variable, expected) in enumerate(zip(variables, numerical)):
    assertion(variable.grad, expected, name=f"{name}[{index}]", **tolerances)
