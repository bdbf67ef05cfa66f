"""
loadgate -- virtual-user load generation with threshold gates.

Runs fixed, compiled scenarios against an authentication-gated HTTP API
with many concurrent virtual users, records request timings and named
checks, and turns them into a pass/fail verdict against declarative
thresholds.

Typical use::

    from loadgate import build_run_config, evaluate, run, verdict
    from loadgate.scenarios import get_scenario

    scenario = get_scenario("register_login")
    config = build_run_config(scenario.profile, vus=20, duration="30s")
    report = run(config, scenario.run, scenario.setup, scenario.teardown)
    passed = verdict(evaluate(config.thresholds, report.metrics))
"""

from __future__ import annotations

import logging

from .config import build_run_config, get_config, parse_duration
from .exceptions import LoadgateError, SetupFailure, ThresholdConfigError
from .metrics import MetricsCollector
from .models import RunConfig, RunReport, RunStatus, Sample, ThresholdResult, ThresholdSpec
from .scheduler import Scheduler, run
from .thresholds import evaluate, load_thresholds, parse_threshold, verdict

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

__version__ = "0.1.0"

__all__ = [
    "LoadgateError",
    "MetricsCollector",
    "RunConfig",
    "RunReport",
    "RunStatus",
    "Sample",
    "Scheduler",
    "SetupFailure",
    "ThresholdConfigError",
    "ThresholdResult",
    "ThresholdSpec",
    "build_run_config",
    "evaluate",
    "get_config",
    "load_thresholds",
    "parse_duration",
    "parse_threshold",
    "run",
    "verdict",
]
