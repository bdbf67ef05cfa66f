"""
Exception types raised by the load harness.

Only configuration mistakes and setup failures are raised as exceptions.
Everything that happens *during* the load phase (a scenario raising, a
failed check, a breached threshold) is recorded as metric data instead,
so that one bad iteration never ends a virtual user or the run.
"""

from __future__ import annotations


class LoadgateError(Exception):
    """Base class for all harness errors."""


class SetupFailure(LoadgateError):
    """The one-time setup routine failed; no load is generated."""


class ThresholdConfigError(LoadgateError, ValueError):
    """A threshold expression is malformed or references an unknown metric."""
