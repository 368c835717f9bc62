import argparse
import json
import re
import time
from pathlib import Path
from typing import Callable, Optional

LOG_LEVELS = {"INFO", "ERROR", "DEBUG"}


def load_config(config_path: str | Path = "config.jsonc") -> dict:
  raw_text = Path(config_path).read_text()
  cleaned_text = re.sub(r"//.*?\n|/\*.*?\*/", "", raw_text, flags=re.S)
  return json.loads(cleaned_text)


def add_path_arguments(
  parser: argparse.ArgumentParser, config: dict | None = None
) -> argparse.ArgumentParser:
  config = config if config is not None else load_config()
  path_section = config.get("paths", {})
  parser.add_argument(
    "--console-log-file",
    type=str,
    default=path_section.get("console_log_file", "console_log.txt"),
  )
  parser.add_argument(
    "--training-log-file",
    type=str,
    default=path_section.get("training_log_file", "training_log.json"),
  )
  return parser


def create_logger(
  console_log_file: Optional[str | Path] = None,
  start_time: Optional[float] = None,
) -> Callable[..., None]:
  """
  Console logger used by the training scripts.

  Lines look like `○ [INFO] 00:01:05 ∘ message`, with the time elapsed since
  `start_time`; each line is also appended to `console_log_file` when given.
  """
  initial_start_time = time.time() if start_time is None else start_time
  console_log_file_path = Path(console_log_file) if console_log_file else None

  def log_message(message: str, level: str = "INFO", indent: int = 0):
    if level not in LOG_LEVELS:
      raise ValueError(f"Invalid log level: '{level}'. Must be one of {LOG_LEVELS}")
    elapsed_time_seconds = time.time() - initial_start_time
    time_string = time.strftime("%H:%M:%S", time.gmtime(elapsed_time_seconds))
    indentation = " " * (indent * 2)
    formatted_log_message = f"{indentation}○ [{level}] {time_string} ∘ {message}"
    print(formatted_log_message)
    if console_log_file_path:
      with open(console_log_file_path, "a") as file_handle:
        file_handle.write(formatted_log_message + "\n")

  return log_message
