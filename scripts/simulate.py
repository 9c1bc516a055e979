"""CLI entry point to run an MPM scene."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Allow running from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from tqdm import tqdm
from mpm_engine import WorldContainer, setup_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an MPM snow/elastic simulation")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config/rolling_snowball.yaml"),
        help="Path to the scene configuration YAML file.",
    )
    parser.add_argument("--steps", type=int, default=None, help="Optional override for number of steps")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (DEBUG adds periodic solver statistics)",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    parser.add_argument("--no-dump", action="store_true", help="Do not write .poly frames")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging(getattr(logging, args.log_level), str(args.log_file) if args.log_file else None)

    container = WorldContainer.from_config_file(args.config, dump=not args.no_dump)

    steps = args.steps if args.steps is not None else container.config.simulation.total_steps
    for _ in tqdm(range(steps), desc="Simulating"):
        container.step()


if __name__ == "__main__":
    main()
