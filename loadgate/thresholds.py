"""
Threshold parsing and evaluation.

Thresholds are declared k6-style, as a mapping from a metric key to a
list of expressions::

    http_req_duration:
      - p(95)<500
    "http_req_failed{status:500}":
      - rate==0

After a run completes, :func:`evaluate` compares each rule against the
collector and :func:`verdict` folds the results into a single pass/fail.
A threshold over a metric with zero matching samples passes trivially
and is flagged with ``no_samples=True``.

Key Concepts Demonstrated:
- Fail-fast validation: unknown metrics or aggregations raise
  :class:`~loadgate.exceptions.ThresholdConfigError` at load time
- YAML-backed configuration via ``yaml.safe_load``
- Operator table instead of ``eval`` for comparisons
"""

from __future__ import annotations

import logging
import operator
import re
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import yaml

from .exceptions import ThresholdConfigError
from .metrics import MetricsCollector
from .models import METRIC_KINDS, MetricKind, ThresholdResult, ThresholdSpec

logger = logging.getLogger(__name__)

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
    ">=": operator.ge,
    ">": operator.gt,
}

_METRIC_KEY_RE = re.compile(r"^\s*(?P<name>[A-Za-z_][A-Za-z0-9_]*)\s*(?:\{(?P<tags>[^}]*)\})?\s*$")
# One ``key:value`` pair; values containing commas must be quoted.
_TAG_RE = re.compile(
    r"""\s*(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*:\s*
        (?:"(?P<double>[^"]*)"|'(?P<single>[^']*)'|(?P<bare>[^,]*?))
        \s*(?:,|$)""",
    re.VERBOSE,
)
_EXPRESSION_RE = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|rate|count|p\(\s*\d+(?:\.\d+)?\s*\))"
    r"\s*(?P<op><=|>=|==|!=|<|>)"
    r"\s*(?P<value>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$"
)

_TREND_AGGREGATIONS = {"avg", "min", "max", "med"}


def _aggregation_allowed(kind: MetricKind, aggregation: str) -> bool:
    if aggregation == "count":
        return True
    if kind is MetricKind.TREND:
        return aggregation in _TREND_AGGREGATIONS or aggregation.startswith("p(")
    if kind is MetricKind.RATE:
        return aggregation == "rate"
    return False


def parse_metric_key(metric_key: str) -> tuple[str, dict[str, str]]:
    """
    Split ``name{k:v,k2:v2}`` into the metric name and its tag filter.

    Tag values run up to the next comma; quote a value that contains one,
    as in ``checks{check:"create, then read"}``.

    Raises:
        ThresholdConfigError: If the key is malformed or names a metric
            the collector never records.
    """
    match = _METRIC_KEY_RE.match(metric_key)
    if not match:
        raise ThresholdConfigError(f"Malformed metric key: {metric_key!r}")

    name = match.group("name")
    if name not in METRIC_KINDS:
        known = ", ".join(sorted(METRIC_KINDS))
        raise ThresholdConfigError(f"Unknown metric {name!r}; expected one of: {known}")

    tags: dict[str, str] = {}
    raw_tags = (match.group("tags") or "").strip()
    pos = 0
    while pos < len(raw_tags):
        tag_match = _TAG_RE.match(raw_tags, pos)
        if not tag_match:
            raise ThresholdConfigError(f"Malformed tag filter {raw_tags[pos:]!r} in {metric_key!r}")
        value = next(
            group for group in tag_match.group("double", "single", "bare") if group is not None
        ).strip()
        if not value:
            raise ThresholdConfigError(f"Malformed tag filter {tag_match.group(0)!r} in {metric_key!r}")
        tags[tag_match.group("key")] = value
        pos = tag_match.end()
    return name, tags


def parse_threshold(metric_key: str, expression: str) -> ThresholdSpec:
    """
    Build a :class:`ThresholdSpec` from a metric key and an expression.

    Args:
        metric_key: e.g. ``"http_req_duration"`` or
            ``"http_req_failed{status:500}"``.
        expression: e.g. ``"p(95)<500"`` or ``"rate==0"``.

    Returns:
        The parsed, validated spec.

    Raises:
        ThresholdConfigError: On syntax errors or an aggregation that
            makes no sense for the metric (``rate`` on a trend, say).
    """
    name, tags = parse_metric_key(metric_key)

    match = _EXPRESSION_RE.match(str(expression))
    if not match:
        raise ThresholdConfigError(f"Malformed threshold expression for {metric_key}: {expression!r}")

    aggregation = re.sub(r"\s+", "", match.group("agg"))
    if aggregation.startswith("p("):
        pct = float(aggregation[2:-1])
        if not 0 < pct <= 100:
            raise ThresholdConfigError(f"Percentile out of range in {expression!r}")

    kind = METRIC_KINDS[name]
    if not _aggregation_allowed(kind, aggregation):
        raise ThresholdConfigError(
            f"Aggregation {aggregation!r} is not valid for {kind.value} metric {name!r}"
        )

    return ThresholdSpec(
        metric=name,
        aggregation=aggregation,
        comparator=match.group("op"),
        value=float(match.group("value")),
        tags=tags,
        source=str(expression).strip(),
    )


def parse_thresholds(mapping: Mapping[str, Any]) -> tuple[ThresholdSpec, ...]:
    """Parse a ``{metric_key: [expression, ...]}`` mapping in declaration order."""
    if not isinstance(mapping, Mapping):
        raise ThresholdConfigError("Thresholds must be a mapping of metric key to expressions")

    specs: list[ThresholdSpec] = []
    for metric_key, expressions in mapping.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not isinstance(expressions, (list, tuple)):
            raise ThresholdConfigError(f"Thresholds for {metric_key!r} must be a list of expressions")
        for expression in expressions:
            specs.append(parse_threshold(str(metric_key), expression))
    return tuple(specs)


def load_thresholds(path: Path | str) -> tuple[ThresholdSpec, ...]:
    """
    Read threshold rules from a YAML file.

    The file may either be the mapping itself or contain it under a
    top-level ``thresholds`` key.

    Raises:
        ThresholdConfigError: If the file cannot be read or parsed.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ThresholdConfigError(f"Unable to load thresholds from {path}: {exc}") from exc

    if isinstance(data, Mapping) and "thresholds" in data:
        data = data["thresholds"] or {}
    specs = parse_thresholds(data)
    logger.info("Loaded %d threshold(s) from %s", len(specs), path)
    return specs


def evaluate(specs: Iterable[ThresholdSpec], collector: MetricsCollector) -> list[ThresholdResult]:
    """
    Evaluate each threshold against the collected metrics.

    Returns:
        One :class:`ThresholdResult` per spec, in input order.
    """
    results: list[ThresholdResult] = []
    for spec in specs:
        if spec.metric not in METRIC_KINDS:
            raise ThresholdConfigError(f"Unknown metric {spec.metric!r}")
        compare = COMPARATORS.get(spec.comparator)
        if compare is None:
            raise ThresholdConfigError(f"Unknown comparator {spec.comparator!r}")

        actual = collector.aggregate(spec.metric, spec.aggregation, spec.tags)
        if collector.count(spec.metric, spec.tags) == 0:
            results.append(ThresholdResult(spec, actual, passed=True, no_samples=True))
            continue

        passed = actual is not None and compare(actual, spec.value)
        if not passed:
            logger.warning(
                "Threshold breached: %s %s (actual %s)", spec.metric_key, spec.expression, actual
            )
        results.append(ThresholdResult(spec, actual, passed=passed))
    return results


def verdict(results: Iterable[ThresholdResult]) -> bool:
    """Overall pass/fail: every threshold must pass."""
    return all(result.passed for result in results)
