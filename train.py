import json
import time
from pathlib import Path

import numpy as np
from tqdm import tqdm

from tinydl.core.losses import mean_squared_error
from tinydl.core.modules import Linear, Module, SimpleRNN
from tinydl.core.optim import Adam
from tinydl.core.schedulers import StepLR
from tinydl.core.variable import Variable
from tinydl.utils.common import create_logger


def sine_sequence(length: int, period: float, noise: float, rng: np.random.Generator):
  steps = np.arange(length + 1, dtype=np.float32)
  series = np.sin(2.0 * np.pi * steps / period).astype(np.float32)
  series += rng.normal(0.0, noise, size=series.shape).astype(np.float32)
  return series[:-1].reshape(-1, 1, 1), series[1:].reshape(-1, 1, 1)


class SineRegressor(Module):
  def __init__(self, hidden_size: int):
    self.rnn = SimpleRNN(1, hidden_size)
    self.head = Linear(hidden_size, 1)

  def __call__(self, x: Variable) -> Variable:
    return self.head(self.rnn(x))


def evaluate(model: SineRegressor, inputs: np.ndarray, targets: np.ndarray) -> float:
  model.set_to_evaluation()
  model.reset_state()
  total_loss = 0.0
  for x, y in zip(inputs, targets):
    prediction = model(Variable(x, requires_grad=False))
    total_loss += mean_squared_error(prediction, y, mode=model.mode).item()
  model.set_to_training()
  return total_loss / len(inputs)


def train(args):
  INITIAL_START_TIME = time.time()
  CONSOLE_LOG_FILE_PATH = Path(args.console_log_file)
  if CONSOLE_LOG_FILE_PATH.exists():
    CONSOLE_LOG_FILE_PATH.unlink()
  log_message = create_logger(CONSOLE_LOG_FILE_PATH, INITIAL_START_TIME)

  log_message("Starting Training Script")
  rng = np.random.default_rng(args.seed)
  np.random.seed(args.seed)

  train_inputs, train_targets = sine_sequence(
    args.sequence_length, args.period, args.noise, rng
  )
  validation_inputs, validation_targets = sine_sequence(
    args.sequence_length, args.period, 0.0, rng
  )
  log_message(f"Generated {len(train_inputs)} training steps", indent=1)

  model = SineRegressor(args.hidden_size)
  optimizer = Adam(model.parameters(), learning_rate=args.lr)
  scheduler = StepLR(
    optimizer, step_size=args.lr_step_size, gamma=args.lr_gamma, log_message=log_message
  )
  log_message("Model and Optimizer Initialized")

  training_log_file_path = Path(args.training_log_file)
  if training_log_file_path.exists():
    training_log_file_path.unlink()

  history = []
  for epoch_index in range(args.epochs):
    epoch_start_time = time.time()
    log_message(f"Epoch: {epoch_index + 1}/{args.epochs}")
    model.set_to_training()
    model.reset_state()
    total_training_loss = 0.0
    number_of_updates = 0
    window_loss = None
    window_steps = 0

    for step_index, (x, y) in enumerate(
      tqdm(zip(train_inputs, train_targets), total=len(train_inputs), leave=False)
    ):
      prediction = model(Variable(x, requires_grad=False))
      step_loss = mean_squared_error(prediction, y, mode=model.mode)
      window_loss = step_loss if window_loss is None else window_loss + step_loss
      window_steps += 1

      if window_steps == args.bptt_length or step_index == len(train_inputs) - 1:
        optimizer.zero_grad()
        window_loss.backward()
        optimizer.step()
        window_loss.unchain_backward()
        total_training_loss += window_loss.item() / window_steps
        number_of_updates += 1
        window_loss = None
        window_steps = 0

    average_training_loss = (
      total_training_loss / number_of_updates if number_of_updates > 0 else 0.0
    )
    validation_loss = evaluate(model, validation_inputs, validation_targets)
    log_message(f"Average Training Loss: {average_training_loss:.6f}", indent=1)
    log_message(f"Validation Loss: {validation_loss:.6f}", "DEBUG", indent=1)

    epoch_end_time = time.time()
    log_entry = {
      "epoch": epoch_index + 1,
      "average_training_loss": average_training_loss,
      "validation_loss": validation_loss,
      "learning_rate": optimizer.learning_rate,
      "epoch_duration_seconds": epoch_end_time - epoch_start_time,
      "total_elapsed_time_seconds": epoch_end_time - INITIAL_START_TIME,
    }
    history.append(log_entry)
    with open(training_log_file_path, "a") as file_handle:
      file_handle.write(json.dumps(log_entry) + "\n")

    scheduler.step()

  if args.save_checkpoint:
    np.savez(args.save_checkpoint, **model.state_dict())
    log_message(f"Model saved to {args.save_checkpoint}", indent=1)

  log_message("Finished Training.")
  return history
