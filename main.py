import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from config.settings import ConfigError, load_settings
from battery.app import BatteryApp
from battery.tasks import TASK_REGISTRY


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_args(argv=None) -> argparse.Namespace:
    """Command line for running a single test."""
    parser = argparse.ArgumentParser(description="Run one cognitive test and print its score report")
    parser.add_argument("--task", choices=sorted(TASK_REGISTRY), default="attention_network")
    parser.add_argument("--config", type=Path, default=None, help="JSON settings overrides")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--repetitions", type=int, default=None, help="design repetitions (attention, stroop)")
    parser.add_argument("--lag", type=int, default=None, help="n-back level 1-3")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, default="INFO")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Run one test and print its report.

    Exit codes: 0 finished, 1 aborted by the participant, 2 bad configuration.
    """
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.config)
        section = settings.for_task(args.task)
        if args.repetitions is not None and hasattr(section, "repetitions"):
            section = replace(section, repetitions=args.repetitions)
        if args.lag is not None and hasattr(section, "lag"):
            section = replace(section, lag=args.lag)
        settings = replace(settings, **{args.task: section})
        app = BatteryApp(settings, args.task, seed=args.seed)
        report = app.run()
    except ConfigError as exc:
        logging.getLogger(__name__).error("Configuration error: %s", exc)
        return 2

    if report is None:
        print("Test aborted")
        return 1
    print(json.dumps(report.as_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
