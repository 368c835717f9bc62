import argparse
import re

import numpy as np
import pytest

from tinydl.core.optim import SGD
from tinydl.core.schedulers import CosineAnnealingLR, StepLR
from tinydl.core.variable import Variable
from tinydl.utils.common import add_path_arguments, create_logger, load_config


def test_load_config_strips_comments(tmp_path):
  config_path = tmp_path / "config.jsonc"
  config_path.write_text(
    '{\n  // line comment\n  "train": {"epochs": 3, /* block */ "lr": 0.5}\n}\n'
  )
  assert load_config(config_path) == {"train": {"epochs": 3, "lr": 0.5}}


def test_path_arguments_default_from_config():
  parser = add_path_arguments(
    argparse.ArgumentParser(), {"paths": {"console_log_file": "out.txt"}}
  )
  args = parser.parse_args([])
  assert args.console_log_file == "out.txt"
  assert args.training_log_file == "training_log.json"


def test_logger_format_and_file(tmp_path, capsys):
  log_file = tmp_path / "console.txt"
  log_message = create_logger(log_file)
  log_message("hello")
  log_message("nested", "DEBUG", indent=1)
  printed = capsys.readouterr().out.splitlines()
  assert re.fullmatch(r"○ \[INFO\] \d\d:\d\d:\d\d ∘ hello", printed[0])
  assert printed[1].startswith("  ○ [DEBUG]")
  assert log_file.read_text().splitlines() == printed


def test_logger_rejects_unknown_level():
  log_message = create_logger()
  with pytest.raises(ValueError, match="WARNING"):
    log_message("oops", "WARNING")


def _optimizer(learning_rate=1.0):
  return SGD([Variable(np.zeros(1))], learning_rate=learning_rate)


def test_step_lr_decays_every_step_size_epochs():
  optimizer = _optimizer()
  messages = []
  scheduler = StepLR(
    optimizer, step_size=2, gamma=0.5, log_message=lambda *a, **k: messages.append(a)
  )
  rates = []
  for _ in range(4):
    scheduler.step()
    rates.append(optimizer.learning_rate)
  assert rates == [1.0, 0.5, 0.5, 0.25]
  assert len(messages) == 2 and messages[0][1] == "DEBUG"


def test_step_lr_rejects_non_positive_step_size():
  with pytest.raises(ValueError):
    StepLR(_optimizer(), step_size=0)


def test_cosine_annealing_reaches_minimum():
  optimizer = _optimizer(1.0)
  scheduler = CosineAnnealingLR(optimizer, T_max=4, eta_min=0.1)
  scheduler.step()
  scheduler.step()
  assert np.isclose(optimizer.learning_rate, 0.55)
  for _ in range(4):
    scheduler.step()
  assert np.isclose(optimizer.learning_rate, 0.1)
