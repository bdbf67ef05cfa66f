"""
Virtual user scheduler.

Runs ``config.vus`` worker threads for ``config.duration`` seconds.  Each
worker owns one :class:`~loadgate.user.VirtualUser` and loops:

1. stop if the deadline has passed,
2. invoke ``scenario(user, shared)``,
3. wait ``min(pacing, time remaining)`` before the next iteration.

A scenario that raises costs exactly one iteration: the exception is
logged, counted in ``iteration_failed`` and as a failed
``iteration completed`` check, and the worker carries on.  Only a setup
failure stops a run, and it does so before any worker is spawned.

Iterations already in flight when the deadline passes are allowed to
finish, so the load phase lasts at least ``duration`` and at most
``duration`` plus one iteration.

Key Concepts Demonstrated:
- One OS thread per virtual user so blocking I/O truly overlaps
- ``threading.Event`` as an interruptible pacing sleep
- Per-iteration failure isolation
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from .exceptions import SetupFailure
from .lifecycle import Lifecycle, SetupFn, TeardownFn
from .metrics import MetricsCollector
from .models import RunConfig, RunReport, RunStatus
from .user import ClientFactory, VirtualUser, default_client_factory

logger = logging.getLogger(__name__)

ScenarioFn = Callable[[VirtualUser, Any], None]


class Scheduler:
    """
    Drives one load run.

    A scheduler may be run again; each :meth:`run` starts with cleared
    counters and stop flag.  The collector is reused across runs unless a
    fresh one is passed in.

    Args:
        config: Immutable run configuration.
        client_factory: Builds one HTTP client per virtual user; tests
            inject fakes here.
        collector: Collector to record into; a fresh one by default.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        client_factory: ClientFactory | None = None,
        collector: MetricsCollector | None = None,
    ) -> None:
        self.config = config
        self.client_factory = client_factory or default_client_factory
        self.collector = collector if collector is not None else MetricsCollector()
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._iterations = 0
        self._failed_iterations = 0

    def stop(self) -> None:
        """Ask every worker of the current run to exit at its next iteration boundary."""
        self._stop_event.set()

    def _make_user(self, index: int) -> VirtualUser:
        return VirtualUser(index, self.config, self.client_factory(self.config), self.collector)

    def run(
        self,
        scenario: ScenarioFn,
        setup: SetupFn | None = None,
        teardown: TeardownFn | None = None,
    ) -> RunReport:
        """
        Execute setup, the concurrent load phase and teardown.

        Returns:
            A :class:`RunReport`.  On setup failure its status is
            ``ABORTED`` and no scenario invocation has happened.
        """
        self._stop_event.clear()
        with self._lock:
            self._iterations = 0
            self._failed_iterations = 0

        lifecycle = Lifecycle(setup, teardown)
        setup_user = self._make_user(0)
        scenario_name = getattr(scenario, "__name__", "scenario")

        started = time.monotonic()
        try:
            shared = lifecycle.run_setup(setup_user)
        except SetupFailure as exc:
            setup_user.client.close()
            logger.error("Run aborted before load phase: %s", exc)
            return RunReport(
                status=RunStatus.ABORTED,
                elapsed=time.monotonic() - started,
                iterations=0,
                failed_iterations=0,
                metrics=self.collector,
                setup_error=exc,
            )

        logger.info(
            "Starting load phase: scenario=%s vus=%d duration=%.1fs pacing=%.2fs",
            scenario_name,
            self.config.vus,
            self.config.duration,
            self.config.pacing,
        )
        load_started = time.monotonic()
        deadline = load_started + self.config.duration

        workers = []
        for index in range(1, self.config.vus + 1):
            user = self._make_user(index)
            thread = threading.Thread(
                target=self._worker,
                args=(user, scenario, shared, deadline),
                name=f"vu-{index}",
                daemon=True,
            )
            workers.append(thread)
        for thread in workers:
            thread.start()

        try:
            for thread in workers:
                thread.join()
        except KeyboardInterrupt:
            logger.warning("Interrupted; stopping virtual users at the next iteration boundary")
            self.stop()
            for thread in workers:
                thread.join()

        elapsed = time.monotonic() - load_started
        teardown_error = lifecycle.run_teardown(setup_user, shared)
        setup_user.client.close()

        logger.info(
            "Load phase finished: %d iteration(s), %d failed, %.2fs",
            self._iterations,
            self._failed_iterations,
            elapsed,
        )
        return RunReport(
            status=RunStatus.COMPLETED,
            elapsed=elapsed,
            iterations=self._iterations,
            failed_iterations=self._failed_iterations,
            metrics=self.collector,
            teardown_error=teardown_error,
        )

    def _worker(self, user: VirtualUser, scenario: ScenarioFn, shared: Any, deadline: float) -> None:
        try:
            while not self._stop_event.is_set() and time.monotonic() < deadline:
                self._run_iteration(user, scenario, shared)

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                if self.config.pacing > 0:
                    self._stop_event.wait(min(self.config.pacing, remaining))
        finally:
            user.client.close()

    def _run_iteration(self, user: VirtualUser, scenario: ScenarioFn, shared: Any) -> None:
        completed = user.run_iteration(scenario, shared)
        with self._lock:
            self._iterations += 1
            if not completed:
                self._failed_iterations += 1


def run(
    config: RunConfig,
    scenario: ScenarioFn,
    setup: SetupFn | None = None,
    teardown: TeardownFn | None = None,
    *,
    client_factory: ClientFactory | None = None,
    collector: MetricsCollector | None = None,
) -> RunReport:
    """Run *scenario* under *config*; see :class:`Scheduler`."""
    scheduler = Scheduler(config, client_factory=client_factory, collector=collector)
    return scheduler.run(scenario, setup=setup, teardown=teardown)
