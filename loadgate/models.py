"""
Data model for load runs.

Defines the immutable value types that flow between the scheduler, the
metrics collector and the threshold evaluator:

- :class:`RunConfig` -- everything a run needs, built once before
  scheduling starts and read (never written) by every worker.
- :class:`ThresholdSpec` -- one declarative pass/fail rule.
- :class:`Sample` / :class:`CheckResult` -- single observations.
- :class:`RunReport` / :class:`ThresholdResult` -- run outcome.

Key Concepts Demonstrated:
- Frozen dataclasses with ``__post_init__`` validation
- ``MappingProxyType`` for read-only tag and environment mappings
- Enum-backed metric kinds so aggregations can be validated up front
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from .metrics import MetricsCollector


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, str]:
    """Return a read-only copy of *mapping* with string keys and values."""
    return MappingProxyType({str(k): str(v) for k, v in (mapping or {}).items()})


class MetricKind(str, Enum):
    """How samples of a metric are aggregated."""

    TREND = "trend"
    RATE = "rate"
    COUNTER = "counter"


# Built-in metric names
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"
HTTP_REQS = "http_reqs"
CHECKS = "checks"
ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
ITERATION_FAILED = "iteration_failed"

# Share of shared-token iterations that also create a user
DEFAULT_WRITE_PROBABILITY = 0.05

METRIC_KINDS: Mapping[str, MetricKind] = MappingProxyType(
    {
        HTTP_REQ_DURATION: MetricKind.TREND,
        HTTP_REQ_FAILED: MetricKind.RATE,
        HTTP_REQS: MetricKind.COUNTER,
        CHECKS: MetricKind.RATE,
        ITERATIONS: MetricKind.COUNTER,
        ITERATION_DURATION: MetricKind.TREND,
        ITERATION_FAILED: MetricKind.RATE,
    }
)


class RunStatus(str, Enum):
    """Lifecycle outcome of a run."""

    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ThresholdSpec:
    """
    A single threshold rule such as ``http_req_duration: p(95)<500``.

    Attributes:
        metric: Name of a metric in :data:`METRIC_KINDS`.
        aggregation: ``avg``, ``min``, ``max``, ``med``, ``p(N)``,
            ``rate`` or ``count``.
        comparator: One of ``<``, ``<=``, ``==``, ``>=``, ``>``, ``!=``.
        value: Right-hand side of the comparison.
        tags: Optional tag filter, e.g. ``{"status": "500"}``.
        source: The expression text this rule was parsed from.
    """

    metric: str
    aggregation: str
    comparator: str
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)
    source: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", _freeze(self.tags))

    @property
    def metric_key(self) -> str:
        """Metric name with its tag filter, in ``name{k:v}`` form."""
        if not self.tags:
            return self.metric
        rendered = ",".join(f'{k}:"{v}"' if "," in v else f"{k}:{v}" for k, v in self.tags.items())
        return f"{self.metric}{{{rendered}}}"

    @property
    def expression(self) -> str:
        if self.source:
            return self.source
        return f"{self.aggregation}{self.comparator}{self.value:g}"


@dataclass(frozen=True)
class RunConfig:
    """
    Immutable configuration for one run.

    Attributes:
        vus: Number of concurrent virtual users.
        duration: Length of the load phase in seconds.
        base_url: Root URL of the API under test.
        thresholds: Ordered threshold rules evaluated after the run.
        env: Free-form string overrides (e.g. ``TEST_EMAIL``) that
            scenarios and setup routines may consult.
        pacing: Seconds each virtual user waits between iterations.
        seed: Base seed for per-user random generators; ``None`` means
            non-deterministic.
        request_timeout: Per-request timeout in seconds.
        write_probability: Chance, within [0, 1], that a shared-token
            iteration also creates a user.
    """

    vus: int
    duration: float
    base_url: str
    thresholds: tuple[ThresholdSpec, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    pacing: float = 1.0
    seed: int | None = None
    request_timeout: float = 10.0
    write_probability: float = DEFAULT_WRITE_PROBABILITY

    def __post_init__(self) -> None:
        if int(self.vus) < 1:
            raise ValueError(f"vus must be a positive integer, got {self.vus}")
        if not math.isfinite(float(self.duration)) or float(self.duration) <= 0:
            raise ValueError(f"duration must be positive, got {self.duration}")
        if not math.isfinite(float(self.pacing)) or float(self.pacing) < 0:
            raise ValueError(f"pacing must be >= 0, got {self.pacing}")
        if float(self.request_timeout) <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if not str(self.base_url).strip():
            raise ValueError("base_url must be a non-empty string")
        if not 0.0 <= float(self.write_probability) <= 1.0:
            raise ValueError(f"write_probability must be within [0, 1], got {self.write_probability}")

        object.__setattr__(self, "vus", int(self.vus))
        object.__setattr__(self, "duration", float(self.duration))
        object.__setattr__(self, "pacing", float(self.pacing))
        object.__setattr__(self, "write_probability", float(self.write_probability))
        object.__setattr__(self, "base_url", str(self.base_url).rstrip("/"))
        object.__setattr__(self, "thresholds", tuple(self.thresholds))
        object.__setattr__(self, "env", _freeze(self.env))


@dataclass(frozen=True)
class Sample:
    """One observation of a metric. Never mutated after recording."""

    metric: str
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "tags", _freeze(self.tags))


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one named assertion inside a scenario iteration."""

    name: str
    passed: bool


@dataclass
class RunReport:
    """
    Outcome of :func:`loadgate.scheduler.run`.

    ``metrics`` is the collector that workers wrote into; pass it to
    :func:`loadgate.thresholds.evaluate` for the verdict.
    """

    status: RunStatus
    elapsed: float
    iterations: int
    failed_iterations: int
    metrics: MetricsCollector
    setup_error: BaseException | None = None
    teardown_error: BaseException | None = None

    @property
    def aborted(self) -> bool:
        return self.status is RunStatus.ABORTED


@dataclass(frozen=True)
class ThresholdResult:
    """Evaluated threshold: the rule, the observed value and the outcome."""

    spec: ThresholdSpec
    actual: float | None
    passed: bool
    no_samples: bool = False
