"""
Unit tests for the virtual user scheduler.

Key SDET Concepts Demonstrated:
- Observing concurrency with a lock-guarded in-flight counter
- Timing assertions with generous upper slack to avoid flakiness
- Lifecycle guarantees: setup once, teardown once, abort on setup failure
- Failure isolation: one bad iteration never stops a worker
"""

from __future__ import annotations

import threading
import time

import pytest

from loadgate.exceptions import SetupFailure
from loadgate.models import CHECKS, ITERATION_FAILED, ITERATIONS, RunStatus
from loadgate.scheduler import Scheduler, run
from loadgate.user import ITERATION_CHECK
from shared.test_helpers import ScriptedClient, make_user

pytestmark = pytest.mark.unit

SLACK = 1.5


def _client_factory(config):
    return ScriptedClient({})


class _Concurrency:
    """Tracks how many scenario invocations overlap."""

    def __init__(self, hold: float = 0.02) -> None:
        self.hold = hold
        self.lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0
        self.calls = 0
        self.users = set()

    def __call__(self, user, shared):
        with self.lock:
            self.in_flight += 1
            self.calls += 1
            self.peak = max(self.peak, self.in_flight)
            self.users.add(user.index)
        time.sleep(self.hold)
        with self.lock:
            self.in_flight -= 1


# =============================================================================
# Concurrency & timing
# =============================================================================

def test_virtual_users_run_concurrently(config_factory):
    """Test that N users overlap and never exceed N in flight."""
    # Arrange
    config = config_factory(vus=5, duration=0.3, pacing=0.0)
    scenario = _Concurrency(hold=0.05)

    # Act
    report = run(config, scenario, client_factory=_client_factory)

    # Assert
    assert report.status is RunStatus.COMPLETED
    assert scenario.peak <= 5
    assert scenario.peak >= 2
    assert scenario.users == {1, 2, 3, 4, 5}
    assert report.iterations == scenario.calls


def test_run_lasts_at_least_duration(config_factory):
    """Test that the load phase spans the configured duration, not much more."""
    config = config_factory(vus=3, duration=0.4, pacing=0.05)

    started = time.monotonic()
    report = run(config, _Concurrency(hold=0.01), client_factory=_client_factory)
    wall = time.monotonic() - started

    assert report.elapsed >= 0.4
    assert wall < 0.4 + SLACK


def test_pacing_wait_is_capped_by_remaining_time(config_factory):
    """Test that a long pacing does not hold the run past its deadline."""
    config = config_factory(vus=2, duration=0.2, pacing=30.0)

    started = time.monotonic()
    report = run(config, _Concurrency(hold=0.0), client_factory=_client_factory)

    assert time.monotonic() - started < 0.2 + SLACK
    assert report.iterations == 2


def test_iterations_within_a_user_are_sequential(config_factory):
    """Test that one virtual user never runs two iterations at once."""
    # Arrange
    config = config_factory(vus=3, duration=0.3, pacing=0.0)
    lock = threading.Lock()
    active = {}
    overlaps = []

    def scenario(user, shared):
        with lock:
            if active.get(user.index):
                overlaps.append(user.index)
            active[user.index] = True
        time.sleep(0.005)
        with lock:
            active[user.index] = False

    # Act
    run(config, scenario, client_factory=_client_factory)

    # Assert
    assert overlaps == []


def test_iteration_numbers_increase_per_user(config_factory):
    """Test that each user counts its own iterations from 1."""
    config = config_factory(vus=2, duration=0.2, pacing=0.01)
    seen = {}
    lock = threading.Lock()

    def scenario(user, shared):
        with lock:
            seen.setdefault(user.index, []).append(user.iteration)

    run(config, scenario, client_factory=_client_factory)

    for numbers in seen.values():
        assert numbers == list(range(1, len(numbers) + 1))


def test_stop_ends_run_early(config_factory):
    """Test that ``stop()`` releases workers before the deadline."""
    # Arrange
    config = config_factory(vus=2, duration=30, pacing=0.05)
    scheduler = Scheduler(config, client_factory=_client_factory)
    timer = threading.Timer(0.2, scheduler.stop)

    # Act
    timer.start()
    started = time.monotonic()
    report = scheduler.run(_Concurrency(hold=0.0))

    # Assert
    assert time.monotonic() - started < 5
    assert report.status is RunStatus.COMPLETED
    assert report.iterations >= 2


def test_worker_clients_are_closed(config_factory):
    """Test that every client built for the run is closed afterwards."""
    clients = []

    def factory(config):
        client = ScriptedClient({})
        clients.append(client)
        return client

    run(config_factory(vus=3, duration=0.1), _Concurrency(hold=0.0), client_factory=factory)

    assert len(clients) == 4
    assert all(client.closed for client in clients)


# =============================================================================
# Failure isolation
# =============================================================================

def test_failing_iterations_do_not_stop_workers(config_factory):
    """Test that an exception costs one iteration and the worker continues."""
    # Arrange
    config = config_factory(vus=2, duration=0.3, pacing=0.01)

    def scenario(user, shared):
        if user.iteration % 2 == 1:
            raise RuntimeError("boom")

    # Act
    report = run(config, scenario, client_factory=_client_factory)

    # Assert
    collector = report.metrics
    assert report.iterations >= 4
    assert 0 < report.failed_iterations < report.iterations
    assert collector.count(ITERATIONS) == report.iterations
    assert collector.total(ITERATION_FAILED) == report.failed_iterations
    assert collector.count(CHECKS, {"check": ITERATION_CHECK}) == report.iterations


def test_every_iteration_failing_still_completes(config_factory):
    """Test that a scenario that always raises yields a completed run."""
    def scenario(user, shared):
        raise KeyError("missing")

    report = run(config_factory(), scenario, client_factory=_client_factory)

    assert report.status is RunStatus.COMPLETED
    assert report.failed_iterations == report.iterations
    assert report.metrics.rate(ITERATION_FAILED) == 1.0


# =============================================================================
# Setup & teardown
# =============================================================================

def test_setup_runs_once_and_value_is_shared(config_factory):
    """Test that setup runs once and every invocation sees its value."""
    # Arrange
    setup_calls = []
    seen = set()
    lock = threading.Lock()

    def setup(user):
        setup_calls.append(user.index)
        return {"token": "shared-token"}

    def scenario(user, shared):
        with lock:
            seen.add(shared["token"])

    # Act
    report = run(config_factory(vus=4), scenario, setup=setup, client_factory=_client_factory)

    # Assert
    assert setup_calls == [0]
    assert seen == {"shared-token"}
    assert report.iterations > 0


def test_failed_setup_aborts_without_invocations(config_factory):
    """Test that a setup failure aborts before any scenario runs."""
    # Arrange
    scenario = _Concurrency(hold=0.0)
    teardown_calls = []

    def setup(user):
        raise SetupFailure("login failed: 401")

    # Act
    report = run(
        config_factory(vus=4),
        scenario,
        setup=setup,
        teardown=lambda user, shared: teardown_calls.append(shared),
        client_factory=_client_factory,
    )

    # Assert
    assert report.status is RunStatus.ABORTED
    assert report.aborted is True
    assert isinstance(report.setup_error, SetupFailure)
    assert scenario.calls == 0
    assert report.iterations == 0
    assert teardown_calls == []


def test_unexpected_setup_exception_is_wrapped(config_factory):
    """Test that any setup exception aborts the run as a SetupFailure."""
    def setup(user):
        raise ConnectionError("refused")

    report = run(config_factory(), _Concurrency(hold=0.0), setup=setup, client_factory=_client_factory)

    assert report.aborted is True
    assert isinstance(report.setup_error, SetupFailure)
    assert isinstance(report.setup_error.__cause__, ConnectionError)


def test_teardown_runs_once_after_workers(config_factory):
    """Test that teardown runs once, after the load phase, with the setup value."""
    # Arrange
    scenario = _Concurrency(hold=0.0)
    teardown_calls = []

    def teardown(user, shared):
        teardown_calls.append((user.index, shared, scenario.in_flight))

    # Act
    report = run(
        config_factory(vus=3),
        scenario,
        setup=lambda user: "shared",
        teardown=teardown,
        client_factory=_client_factory,
    )

    # Assert
    assert teardown_calls == [(0, "shared", 0)]
    assert report.teardown_error is None


def test_teardown_error_is_recorded_not_raised(config_factory):
    """Test that a failing teardown is reported while the run completes."""
    def teardown(user, shared):
        raise RuntimeError("cleanup failed")

    report = run(config_factory(), _Concurrency(hold=0.0), teardown=teardown, client_factory=_client_factory)

    assert report.status is RunStatus.COMPLETED
    assert isinstance(report.teardown_error, RuntimeError)


def test_scheduler_can_run_again_after_stop(config_factory):
    """Test that a second run starts fresh after the first was stopped."""
    # Arrange
    scheduler = Scheduler(config_factory(vus=2, duration=0.2, pacing=0.01), client_factory=_client_factory)
    scheduler.stop()
    first = scheduler.run(_Concurrency(hold=0.0))

    # Act
    scenario = _Concurrency(hold=0.0)
    second = scheduler.run(scenario)

    # Assert
    assert first.iterations > 0
    assert second.iterations == scenario.calls
    assert second.iterations > 2
    assert second.elapsed >= 0.2


def test_run_iteration_records_outcome_without_raising(collector):
    """Test that a virtual user turns a raising iteration into metrics."""
    # Arrange
    user = make_user(ScriptedClient({}), collector=collector)

    def scenario(user, shared):
        if shared == "bad":
            raise ValueError("boom")

    # Act
    outcomes = [user.run_iteration(scenario, "ok"), user.run_iteration(scenario, "bad")]

    # Assert
    assert outcomes == [True, False]
    assert user.iteration == 2
    assert collector.count(ITERATIONS) == 2
    assert collector.values(ITERATION_FAILED) == [0.0, 1.0]
    assert collector.check_results()[ITERATION_CHECK] == (1, 1)
