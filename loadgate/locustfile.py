"""
Locust entrypoint running the compiled loadgate scenarios.

Lets the same scenario functions run under Locust -- for its web UI or
distributed workers -- instead of the built-in thread scheduler.  Each
Locust user wraps its ``HttpSession`` in a
:class:`~loadgate.client.RequestClient`, so Locust's statistics see every
request while loadgate's collector still records checks and feeds the
threshold gate at the end of the test.

Usage examples::

    # Both scenarios:
    locust -f loadgate/locustfile.py --host http://127.0.0.1:3002

    # Only the shared-token read load, headless, for one minute:
    locust -f loadgate/locustfile.py --tags shared_token --headless -u 50 -t 1m ...

Exit codes match the ``loadgate`` CLI: ``2`` when a scenario setup
fails (the test is stopped and reported as ``ABORTED``), ``1`` when a
threshold is breached.

Run state (configuration, collector, the setup token) lives on a single
:class:`LocustRunState` attached to the Locust environment, never in
module globals.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Any

import gevent
from locust import HttpUser, events, tag, task
from locust.exception import StopUser

from loadgate.client import RequestClient
from loadgate.config import build_run_config
from loadgate.exceptions import SetupFailure
from loadgate.lifecycle import Lifecycle
from loadgate.metrics import MetricsCollector
from loadgate.models import RunConfig, RunReport, RunStatus
from loadgate.report import print_summary
from loadgate.scenarios import REGISTER_LOGIN, SHARED_TOKEN, Scenario
from loadgate.thresholds import evaluate, verdict
from loadgate.user import VirtualUser

logger = logging.getLogger(__name__)

EXIT_THRESHOLD_BREACH = 1
EXIT_RUN_ERROR = 2

_user_numbers = itertools.count(1)


class LocustRunState:
    """Per-test state shared by every Locust user of one environment."""

    def __init__(self, config: RunConfig) -> None:
        self.config = config
        self.metrics = MetricsCollector()
        self.shared: dict[str, Any] = {}
        self.setup_error: SetupFailure | None = None
        self.started = time.monotonic()
        self.iterations = 0
        self.failed_iterations = 0


def _state(environment: Any) -> LocustRunState:
    state = getattr(environment, "loadgate", None)
    if state is None:
        scenarios = [getattr(cls, "scenario", None) for cls in environment.user_classes]
        profiles = {scenario.profile for scenario in scenarios if scenario is not None}
        profile = profiles.pop() if len(profiles) == 1 else None
        state = LocustRunState(build_run_config(profile, base_url=environment.host or None))
        environment.loadgate = state
    return state


class ScenarioUser(HttpUser):
    """Base Locust user executing one loadgate scenario per task run."""

    abstract = True
    scenario: Scenario

    def wait_time(self) -> float:
        return _state(self.environment).config.pacing

    def on_start(self) -> None:
        state = _state(self.environment)
        if state.setup_error is not None:
            raise StopUser()
        client = RequestClient(
            self.host or state.config.base_url,
            timeout=state.config.request_timeout,
            session=self.client,
            label_requests=True,
        )
        self.virtual_user = VirtualUser(next(_user_numbers), state.config, client, state.metrics)

    def run_scenario(self) -> None:
        """Run one iteration and count it the way the thread scheduler does."""
        state = _state(self.environment)
        shared = state.shared.get(self.scenario.name)
        completed = self.virtual_user.run_iteration(self.scenario.run, shared)
        state.iterations += 1
        if not completed:
            state.failed_iterations += 1


@tag("register_login")
class RegisterLoginUser(ScenarioUser):
    scenario = REGISTER_LOGIN

    @task
    def register_login(self) -> None:
        self.run_scenario()


@tag("shared_token")
class SharedTokenUser(ScenarioUser):
    scenario = SHARED_TOKEN

    @task
    def shared_token(self) -> None:
        self.run_scenario()


TAG_TO_USER_CLASS = {
    "register_login": RegisterLoginUser,
    "shared_token": SharedTokenUser,
}


@events.init.add_listener
def _filter_user_classes_by_tag(environment, **_kwargs):
    """Spawn only the user classes whose scenario tag was requested."""
    parsed = getattr(environment, "parsed_options", None)
    selected_tags = set(getattr(parsed, "tags", None) or [])
    if not selected_tags:
        return

    selected_classes = [
        user_class for name, user_class in TAG_TO_USER_CLASS.items() if name in selected_tags
    ]
    if selected_classes:
        environment.user_classes = selected_classes


@events.test_start.add_listener
def _run_scenario_setups(environment, **_kwargs):
    """
    Run each active scenario's setup once before users spawn.

    On failure the test is stopped: the runner is quit from a separate
    greenlet, since quitting inside ``test_start`` would be undone by the
    spawn that follows it.
    """
    state = _state(environment)
    state.started = time.monotonic()
    for user_class in environment.user_classes:
        scenario = getattr(user_class, "scenario", None)
        if scenario is None or scenario.setup is None:
            continue

        setup_user = VirtualUser(
            0,
            state.config,
            RequestClient(state.config.base_url, timeout=state.config.request_timeout),
            state.metrics,
        )
        try:
            state.shared[scenario.name] = Lifecycle(scenario.setup).run_setup(setup_user)
        except SetupFailure as exc:
            logger.error("Setup for %s failed: %s", scenario.name, exc)
            state.setup_error = exc
            environment.process_exit_code = EXIT_RUN_ERROR
            if environment.runner is not None:
                gevent.spawn(environment.runner.quit)
            return
        finally:
            setup_user.client.close()


@events.test_stop.add_listener
def _apply_thresholds(environment, **_kwargs):
    """Evaluate thresholds against loadgate's collector and set the exit code."""
    state = _state(environment)
    report = RunReport(
        status=RunStatus.ABORTED if state.setup_error is not None else RunStatus.COMPLETED,
        elapsed=time.monotonic() - state.started,
        iterations=state.iterations,
        failed_iterations=state.failed_iterations,
        metrics=state.metrics,
        setup_error=state.setup_error,
    )
    if report.aborted:
        print_summary(report, [])
        environment.process_exit_code = EXIT_RUN_ERROR
        return

    results = evaluate(state.config.thresholds, state.metrics)
    print_summary(report, results)
    if not verdict(results) and not environment.process_exit_code:
        environment.process_exit_code = EXIT_THRESHOLD_BREACH
