"""
Thread-safe metrics collector.

Every virtual user writes into a single :class:`MetricsCollector`.
Writes are appends to a per-metric list guarded by one lock, so
concurrent workers never lose or tear a sample.

Aggregations are computed on demand over every sample recorded up to the
moment of the query (normally once, after the run).

Empty-metric semantics:

- ``count`` over zero samples is ``0``
- ``rate`` over zero samples is ``0.0``
- trend aggregations (``avg``, ``min``, ``max``, ``med``, ``p(N)``) over
  zero samples are ``None``
"""

from __future__ import annotations

import re
import threading
from collections import defaultdict
from typing import Mapping

from .models import CHECKS, CheckResult, Sample

_PERCENTILE_RE = re.compile(r"^p\((\d+(?:\.\d+)?)\)$")


def _matches(sample: Sample, tags: Mapping[str, str] | None) -> bool:
    if not tags:
        return True
    return all(sample.tags.get(key) == str(value) for key, value in tags.items())


def percentile(sorted_values: list[float], p: float) -> float:
    """
    Return the *p*-th percentile of already-sorted values.

    Uses linear interpolation between the two closest ranks, which is
    what most load tools report for ``p(95)`` and friends.
    """
    count = len(sorted_values)
    if count == 1:
        return sorted_values[0]
    k = (count - 1) * p / 100
    lower = int(k)
    upper = lower + 1 if lower + 1 < count else lower
    return sorted_values[lower] + (k - lower) * (sorted_values[upper] - sorted_values[lower])


class MetricsCollector:
    """Accumulates samples and check outcomes from concurrent workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._samples: dict[str, list[Sample]] = defaultdict(list)
        self._checks: list[CheckResult] = []

    # ---- write side -------------------------------------------------

    def record(self, sample: Sample) -> None:
        """Store *sample*; the collector owns it from here on."""
        with self._lock:
            self._samples[sample.metric].append(sample)

    def add(self, metric: str, value: float, tags: Mapping[str, str] | None = None) -> None:
        """Convenience wrapper building a :class:`Sample` and recording it."""
        self.record(Sample(metric, value, tags or {}))

    def record_check(
        self, name: str, passed: bool, tags: Mapping[str, str] | None = None
    ) -> bool:
        """
        Record the outcome of a named check.

        The outcome lands in the ``checks`` rate metric tagged with
        ``check=<name>`` so per-check pass rates can be queried and
        thresholded like any other rate.

        Returns:
            *passed*, so callers can branch on the check inline.
        """
        passed = bool(passed)
        merged = dict(tags or {})
        merged["check"] = name
        sample = Sample(CHECKS, 1.0 if passed else 0.0, merged)
        with self._lock:
            self._samples[CHECKS].append(sample)
            self._checks.append(CheckResult(name, passed))
        return passed

    # ---- read side --------------------------------------------------

    def samples(self, metric: str, tags: Mapping[str, str] | None = None) -> list[Sample]:
        """Snapshot of samples for *metric* matching every tag in *tags*."""
        with self._lock:
            recorded = list(self._samples.get(metric, ()))
        return [sample for sample in recorded if _matches(sample, tags)]

    def values(self, metric: str, tags: Mapping[str, str] | None = None) -> list[float]:
        return [sample.value for sample in self.samples(metric, tags)]

    def metric_names(self) -> list[str]:
        with self._lock:
            return sorted(name for name, recorded in self._samples.items() if recorded)

    def count(self, metric: str, tags: Mapping[str, str] | None = None) -> int:
        return len(self.samples(metric, tags))

    def total(self, metric: str, tags: Mapping[str, str] | None = None) -> float:
        return sum(self.values(metric, tags))

    def rate(self, metric: str, tags: Mapping[str, str] | None = None) -> float:
        """Fraction of non-zero samples; ``0.0`` when nothing was recorded."""
        values = self.values(metric, tags)
        if not values:
            return 0.0
        return sum(1 for value in values if value) / len(values)

    def percentile(
        self, metric: str, p: float, tags: Mapping[str, str] | None = None
    ) -> float | None:
        if not 0 <= p <= 100:
            raise ValueError(f"percentile must be within [0, 100], got {p}")
        values = sorted(self.values(metric, tags))
        if not values:
            return None
        return percentile(values, p)

    def average(self, metric: str, tags: Mapping[str, str] | None = None) -> float | None:
        values = self.values(metric, tags)
        if not values:
            return None
        return sum(values) / len(values)

    def minimum(self, metric: str, tags: Mapping[str, str] | None = None) -> float | None:
        values = self.values(metric, tags)
        return min(values) if values else None

    def maximum(self, metric: str, tags: Mapping[str, str] | None = None) -> float | None:
        values = self.values(metric, tags)
        return max(values) if values else None

    def aggregate(
        self, metric: str, aggregation: str, tags: Mapping[str, str] | None = None
    ) -> float | None:
        """
        Compute a named aggregation (as used in threshold expressions).

        Args:
            metric: Metric name.
            aggregation: ``avg``, ``min``, ``max``, ``med``, ``p(N)``,
                ``rate`` or ``count``.
            tags: Optional tag filter.

        Returns:
            The aggregated value, following the empty-metric semantics
            described in the module docstring.

        Raises:
            ValueError: If *aggregation* is not recognised.
        """
        if aggregation == "count":
            return float(self.count(metric, tags))
        if aggregation == "rate":
            return self.rate(metric, tags)
        if aggregation == "avg":
            return self.average(metric, tags)
        if aggregation == "min":
            return self.minimum(metric, tags)
        if aggregation == "max":
            return self.maximum(metric, tags)
        if aggregation == "med":
            return self.percentile(metric, 50, tags)

        match = _PERCENTILE_RE.match(aggregation)
        if match:
            return self.percentile(metric, float(match.group(1)), tags)
        raise ValueError(f"Unknown aggregation: {aggregation}")

    def check_results(self) -> dict[str, tuple[int, int]]:
        """Return ``{check name: (passes, fails)}`` in first-seen order."""
        with self._lock:
            checks = list(self._checks)

        summary: dict[str, list[int]] = {}
        for result in checks:
            counts = summary.setdefault(result.name, [0, 0])
            counts[0 if result.passed else 1] += 1
        return {name: (passes, fails) for name, (passes, fails) in summary.items()}
