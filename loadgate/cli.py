"""
Command-line entry point: ``loadgate <scenario> [options]``.

Builds the run configuration (profile defaults, then environment, then
flags), runs the scenario, prints the summary and exits with a
three-state code so CI can tell a breached threshold from a run that
never got going:

- ``0`` -- all thresholds passed
- ``1`` -- at least one threshold was breached
- ``2`` -- the run could not execute (setup failure, bad configuration)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import build_run_config
from .exceptions import LoadgateError
from .report import print_summary
from .scenarios import SCENARIOS, get_scenario
from .scheduler import run
from .thresholds import evaluate, verdict

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_RUN_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="loadgate",
        description="Run a virtual-user load scenario and gate on thresholds.",
    )
    parser.add_argument("scenario", choices=sorted(SCENARIOS), help="Scenario to run")
    parser.add_argument("--vus", type=int, help="Number of concurrent virtual users (env: VUS)")
    parser.add_argument("--duration", help="Load phase length, e.g. 30s or 1m (env: DURATION)")
    parser.add_argument("--base-url", help="Root URL of the API under test (env: BASE_URL)")
    parser.add_argument("--pacing", type=float, help="Seconds between iterations (env: PACING)")
    parser.add_argument("--seed", type=int, help="Seed for reproducible randomness (env: SEED)")
    parser.add_argument(
        "--write-probability",
        type=float,
        help="Share of shared_token iterations that also create a user (env: WRITE_PROBABILITY)",
    )
    parser.add_argument(
        "--thresholds",
        type=Path,
        help="YAML file of threshold rules, replacing the profile's (env: THRESHOLDS_FILE)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log iteration tracebacks")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: configure, run, evaluate, print.

    Returns:
        ``EXIT_PASS``, ``EXIT_THRESHOLD_BREACH`` or ``EXIT_RUN_ERROR``.
    """
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger("loadgate").setLevel(logging.DEBUG)

    scenario = get_scenario(args.scenario)
    try:
        config = build_run_config(
            scenario.profile,
            vus=args.vus,
            duration=args.duration,
            base_url=args.base_url,
            pacing=args.pacing,
            seed=args.seed,
            write_probability=args.write_probability,
            thresholds_file=args.thresholds,
        )
    except (LoadgateError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_RUN_ERROR

    report = run(config, scenario.run, setup=scenario.setup, teardown=scenario.teardown)
    if report.aborted:
        print_summary(report, [])
        return EXIT_RUN_ERROR

    results = evaluate(config.thresholds, report.metrics)
    print_summary(report, results)
    return EXIT_PASS if verdict(results) else EXIT_THRESHOLD_BREACH


if __name__ == "__main__":
    raise SystemExit(main())
