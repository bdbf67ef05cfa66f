"""
Human-readable run summary.

Renders the table printed at the end of a run: every threshold with its
actual and expected value, request latency percentiles, per-check pass
rates, and the overall verdict.  A run aborted during setup is reported
as ``ABORTED`` rather than ``FAIL`` so CI logs distinguish "could not
run" from "ran but breached a threshold".
"""

from __future__ import annotations

from typing import Iterable

from .models import HTTP_REQ_DURATION, HTTP_REQS, RunReport, ThresholdResult
from .thresholds import verdict

WIDTH = 72


def _fmt(value: float | None) -> str:
    return "-" if value is None else f"{value:.2f}"


def overall_status(report: RunReport, results: Iterable[ThresholdResult]) -> str:
    if report.aborted:
        return "ABORTED"
    return "PASS" if verdict(results) else "FAIL"


def render_summary(report: RunReport, results: list[ThresholdResult]) -> str:
    """Return the summary table as a single string."""
    lines: list[str] = ["Load Run Summary", "-" * WIDTH]

    if report.aborted:
        lines.append(f"Setup failed: {report.setup_error}")
        lines.append("-" * WIDTH)
        lines.append("Overall: ABORTED")
        return "\n".join(lines)

    metrics = report.metrics
    lines.append(f"{'Threshold':<36}{'Rule':<14}{'Actual':>12}{'Status':>10}")
    lines.append("-" * WIDTH)
    for result in results:
        status = "PASS" if result.passed else "FAIL"
        if result.no_samples:
            status = "PASS*"
        lines.append(
            f"{result.spec.metric_key:<36}{result.spec.expression:<14}"
            f"{_fmt(result.actual):>12}{status:>10}"
        )
    if not results:
        lines.append("(no thresholds configured)")
    if any(result.no_samples for result in results):
        lines.append("* no matching samples; passes trivially")

    lines.append("-" * WIDTH)
    lines.append(f"{'Latency (ms)':<22}{'avg':>12}{'p90':>12}{'p95':>12}{'p99':>12}")
    lines.append(
        f"{HTTP_REQ_DURATION:<22}"
        f"{_fmt(metrics.average(HTTP_REQ_DURATION)):>12}"
        f"{_fmt(metrics.percentile(HTTP_REQ_DURATION, 90)):>12}"
        f"{_fmt(metrics.percentile(HTTP_REQ_DURATION, 95)):>12}"
        f"{_fmt(metrics.percentile(HTTP_REQ_DURATION, 99)):>12}"
    )

    checks = metrics.check_results()
    if checks:
        lines.append("-" * WIDTH)
        lines.append(f"{'Check':<44}{'Pass':>8}{'Fail':>8}{'Rate':>12}")
        for name, (passes, fails) in checks.items():
            rate = 100.0 * passes / (passes + fails)
            lines.append(f"{name:<44}{passes:>8}{fails:>8}{rate:>11.2f}%")

    lines.append("-" * WIDTH)
    lines.append(
        f"Iterations: {report.iterations} ({report.failed_iterations} failed)  "
        f"Requests: {metrics.count(HTTP_REQS)}  Elapsed: {report.elapsed:.2f}s"
    )
    if report.teardown_error is not None:
        lines.append(f"Teardown failed: {report.teardown_error}")
    lines.append(f"Overall: {overall_status(report, results)}")
    return "\n".join(lines)


def print_summary(report: RunReport, results: list[ThresholdResult]) -> None:
    """Print :func:`render_summary` to stdout for CI logs."""
    print(render_summary(report, results))
