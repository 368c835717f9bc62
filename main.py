import argparse
from datetime import datetime
from pathlib import Path

import train
from tinydl.utils.common import add_path_arguments, load_config


def build_parser(config: dict) -> argparse.ArgumentParser:
  train_config = config.get("train", {})

  parser = argparse.ArgumentParser()
  parser.add_argument("--epochs", type=int, default=train_config.get("epochs", 20))
  parser.add_argument(
    "--sequence-length", type=int, default=train_config.get("sequence_length", 200)
  )
  parser.add_argument("--period", type=float, default=train_config.get("period", 25.0))
  parser.add_argument("--noise", type=float, default=train_config.get("noise", 0.05))
  parser.add_argument(
    "--bptt-length", type=int, default=train_config.get("bptt_length", 30)
  )
  parser.add_argument(
    "--hidden-size", type=int, default=train_config.get("hidden_size", 16)
  )
  parser.add_argument("--lr", type=float, default=train_config.get("lr", 1e-2))
  parser.add_argument(
    "--lr-step-size", type=int, default=train_config.get("lr_step_size", 10)
  )
  parser.add_argument("--lr-gamma", type=float, default=train_config.get("lr_gamma", 0.5))
  parser.add_argument("--seed", type=int, default=train_config.get("seed", 42))
  parser.add_argument(
    "--save-checkpoint", type=str, default=train_config.get("save_checkpoint", None)
  )
  return add_path_arguments(parser, config)


if __name__ == "__main__":
  config = load_config()
  args = build_parser(config).parse_args()

  run_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
  run_directory = Path("runs") / run_timestamp
  run_directory.mkdir(parents=True, exist_ok=True)
  args.console_log_file = run_directory / Path(args.console_log_file).name
  args.training_log_file = run_directory / Path(args.training_log_file).name

  train.train(args)
