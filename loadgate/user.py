"""
Per-worker virtual user state.

A :class:`VirtualUser` is what a scenario function receives as its first
argument.  It bundles everything one simulated client owns -- its index,
its random generator, its HTTP client -- together with helpers that
record request timings and check outcomes into the shared collector.

Nothing on a virtual user is shared with any other virtual user; the
only cross-worker values are the collector (internally locked) and the
read-only setup value passed alongside it.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Mapping

from .client import RequestClient, Response
from .metrics import MetricsCollector
from .models import (
    HTTP_REQ_DURATION,
    HTTP_REQ_FAILED,
    HTTP_REQS,
    ITERATION_DURATION,
    ITERATION_FAILED,
    ITERATIONS,
    RunConfig,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[RunConfig], RequestClient]

ITERATION_CHECK = "iteration completed"


def default_client_factory(config: RunConfig) -> RequestClient:
    """Build a ``requests``-backed client for one virtual user."""
    return RequestClient(config.base_url, timeout=config.request_timeout)


def request_failed(status: int) -> bool:
    """Transport errors (status 0) and anything outside 2xx/3xx count as failed."""
    return not 200 <= status < 400


def user_rng(seed: int | None, index: int) -> random.Random:
    """Independent generator per user; reproducible when *seed* is set."""
    if seed is None:
        return random.Random()
    return random.Random(seed * 1_000_003 + index)


class VirtualUser:
    """
    One simulated client.

    Attributes:
        index: 1-based worker number; ``0`` is the setup/teardown user.
        config: The run's immutable configuration.
        client: This user's own HTTP client.
        metrics: Shared collector (thread-safe).
        rng: This user's own random generator.
        iteration: Number of the iteration currently executing.
    """

    def __init__(
        self,
        index: int,
        config: RunConfig,
        client: RequestClient,
        metrics: MetricsCollector,
        rng: random.Random | None = None,
    ) -> None:
        self.index = index
        self.config = config
        self.client = client
        self.metrics = metrics
        self.rng = rng if rng is not None else user_rng(config.seed, index)
        self.iteration = 0

    def __repr__(self) -> str:
        return f"VirtualUser(index={self.index}, iteration={self.iteration})"

    @property
    def env(self) -> Mapping[str, str]:
        return self.config.env

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        name: str | None = None,
    ) -> Response:
        """
        Issue a request and record ``http_req_duration``, ``http_reqs``
        and ``http_req_failed`` for it.
        """
        label = name or f"{method.upper()} {path}"
        response = self.client.request(method, path, json=json, headers=headers, name=label)

        tags = {"method": method.upper(), "name": label, "status": str(response.status)}
        self.metrics.add(HTTP_REQ_DURATION, response.duration_ms, tags)
        self.metrics.add(HTTP_REQS, 1, tags)
        self.metrics.add(HTTP_REQ_FAILED, 1 if request_failed(response.status) else 0, tags)
        return response

    def get(self, path: str, **kwargs: Any) -> Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Response:
        return self.request("POST", path, **kwargs)

    def check(self, name: str, passed: bool) -> bool:
        """Record a named check and return its outcome."""
        return self.metrics.record_check(name, passed)

    def unique_email(self, prefix: str = "loaduser") -> str:
        """
        Email that is unlikely to collide with any other user's.

        The worker index namespaces the address; the random draw separates
        this user's own iterations.  A rare repeat is tolerated by the
        scenarios, which accept ``409 Conflict`` on registration.
        """
        return f"{prefix}_{self.index}_{self.rng.randrange(1_000_000)}@example.test"


    def run_iteration(self, scenario: Callable[["VirtualUser", Any], None], shared: Any) -> bool:
        """
        Run one scenario iteration and record its outcome.

        Exceptions raised by *scenario* are logged and counted in
        ``iteration_failed`` and the ``iteration completed`` check; they
        never propagate to the caller.

        Returns:
            ``True`` if the iteration completed without raising.
        """
        self.iteration += 1
        failed = False
        started = time.perf_counter()
        try:
            scenario(self, shared)
        except Exception as exc:
            failed = True
            logger.warning(
                "VU %d iteration %d failed: %s: %s", self.index, self.iteration, type(exc).__name__, exc
            )
            logger.debug("Iteration traceback", exc_info=True)
        duration_ms = (time.perf_counter() - started) * 1000

        self.metrics.add(ITERATIONS, 1)
        self.metrics.add(ITERATION_DURATION, duration_ms)
        self.metrics.add(ITERATION_FAILED, 1 if failed else 0)
        self.check(ITERATION_CHECK, not failed)
        return not failed
