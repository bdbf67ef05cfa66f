"""
Run configuration profiles.

Follows the familiar configuration-class pattern: a shared ``Config``
base class holds defaults, scenario-specific subclasses override only
what differs, and :func:`get_config` resolves a class by name.

Unlike a web app, the harness must not read environment variables from
hot-path code.  :func:`build_run_config` is therefore the single place
where ``os.environ`` is consulted; it folds profile defaults, environment
overrides and explicit (CLI) overrides into one immutable
:class:`~loadgate.models.RunConfig`.

Precedence, highest first: explicit keyword overrides, environment
variables, profile class attributes.

Recognised environment variables:
    ``VUS``, ``DURATION``, ``BASE_URL``, ``PACING``, ``SEED``,
    ``REQUEST_TIMEOUT``, ``WRITE_PROBABILITY``, ``THRESHOLDS_FILE``, plus
    the pass-through credentials ``TEST_EMAIL`` and ``TEST_PASSWORD`` that
    the shared-token setup reads from ``RunConfig.env``.

Each profile's thresholds live in a YAML file under ``profiles/``,
read with :func:`~loadgate.thresholds.load_thresholds`.
"""

from __future__ import annotations

import math
import os
import re
from pathlib import Path
from typing import Any, Mapping

from .models import DEFAULT_WRITE_PROBABILITY, RunConfig, ThresholdSpec
from .thresholds import load_thresholds, parse_thresholds

DEFAULT_BASE_URL = "http://127.0.0.1:3002"

PROFILES_DIR = Path(__file__).resolve().parent / "profiles"

# Values handed through to scenarios untouched via ``RunConfig.env``.
PASSTHROUGH_ENV_VARS = ("TEST_EMAIL", "TEST_PASSWORD")

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str | float | int) -> float:
    """
    Convert a duration such as ``"30s"``, ``"1m"``, ``"1h30m"`` or
    ``"500ms"`` to seconds.  Bare numbers are taken as seconds.

    Raises:
        ValueError: If the text is not a recognisable positive duration.
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        if not text:
            raise ValueError("Duration must not be empty")
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART_RE.findall(text)
            if not parts or "".join(num + unit for num, unit in parts) != text:
                raise ValueError(f"Invalid duration: {value!r}") from None
            seconds = sum(float(num) * _DURATION_UNITS[unit] for num, unit in parts)

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"Duration must be a finite positive value, got {value!r}")
    return seconds


class Config:
    """
    Defaults shared by every scenario profile.

    ``THRESHOLDS_FILE`` names the profile's YAML threshold file; ``None``
    means the profile gates on nothing unless thresholds are supplied.
    """

    VUS: int = 10
    DURATION: str = "30s"
    BASE_URL: str = DEFAULT_BASE_URL
    PACING: float = 1.0
    REQUEST_TIMEOUT: float = 10.0
    WRITE_PROBABILITY: float = DEFAULT_WRITE_PROBABILITY
    THRESHOLDS_FILE: Path | None = None


class RegisterLoginConfig(Config):
    """Register → login → authenticated read, one fresh identity per iteration."""

    VUS: int = 20
    DURATION: str = "30s"
    THRESHOLDS_FILE: Path | None = PROFILES_DIR / "register_login.yml"


class SharedTokenConfig(Config):
    """Read-heavy traffic with a single token obtained during setup."""

    VUS: int = 50
    DURATION: str = "1m"
    THRESHOLDS_FILE: Path | None = PROFILES_DIR / "shared_token.yml"


config = {
    "register_login": RegisterLoginConfig,
    "shared_token": SharedTokenConfig,
    "default": RegisterLoginConfig,
}


def get_config(name: str | None = None) -> type[Config]:
    """
    Resolve a profile class by scenario name.

    Args:
        name: ``"register_login"`` or ``"shared_token"``.  ``None`` or an
            unrecognised name falls back to the default profile.

    Returns:
        The configuration class (not an instance).
    """
    if name is None:
        return config["default"]
    return config.get(name, config["default"])


def _pick(overrides: Mapping[str, Any], key: str, environ: Mapping[str, str], env_var: str, default: Any) -> Any:
    value = overrides.get(key)
    if value is not None:
        return value
    raw = environ.get(env_var, "").strip()
    if raw:
        return raw
    return default


def build_run_config(
    profile: str | type[Config] | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> RunConfig:
    """
    Assemble the immutable :class:`RunConfig` for a run.

    Args:
        profile: Profile name or class; see :func:`get_config`.
        environ: Environment mapping to read; defaults to ``os.environ``.
        **overrides: Explicit values that win over both environment and
            profile: ``vus``, ``duration``, ``base_url``, ``pacing``,
            ``seed``, ``request_timeout``, ``write_probability``,
            ``thresholds`` (a sequence of
            :class:`ThresholdSpec` or a ``{metric_key: [expr]}``
            mapping), ``thresholds_file`` and ``env`` (extra entries
            merged into ``RunConfig.env``).

    Returns:
        A validated, frozen :class:`RunConfig`.

    Raises:
        ValueError: On non-numeric or out-of-range values.
        ThresholdConfigError: On invalid threshold rules.
    """
    profile_class = profile if isinstance(profile, type) else get_config(profile)
    environ = os.environ if environ is None else environ

    vus = int(_pick(overrides, "vus", environ, "VUS", profile_class.VUS))
    duration = parse_duration(_pick(overrides, "duration", environ, "DURATION", profile_class.DURATION))
    base_url = str(_pick(overrides, "base_url", environ, "BASE_URL", profile_class.BASE_URL))
    pacing = float(_pick(overrides, "pacing", environ, "PACING", profile_class.PACING))
    timeout = float(
        _pick(overrides, "request_timeout", environ, "REQUEST_TIMEOUT", profile_class.REQUEST_TIMEOUT)
    )
    raw_seed = _pick(overrides, "seed", environ, "SEED", None)
    seed = int(raw_seed) if raw_seed is not None else None
    write_probability = float(
        _pick(overrides, "write_probability", environ, "WRITE_PROBABILITY", profile_class.WRITE_PROBABILITY)
    )

    thresholds_file = _pick(
        overrides, "thresholds_file", environ, "THRESHOLDS_FILE", profile_class.THRESHOLDS_FILE
    )
    explicit = overrides.get("thresholds")
    thresholds: tuple[ThresholdSpec, ...]
    if explicit is not None:
        if isinstance(explicit, Mapping):
            thresholds = parse_thresholds(explicit)
        else:
            thresholds = tuple(explicit)
    elif thresholds_file:
        thresholds = load_thresholds(Path(thresholds_file))
    else:
        thresholds = ()

    env = {key: environ[key] for key in PASSTHROUGH_ENV_VARS if environ.get(key)}
    env.update(overrides.get("env") or {})

    return RunConfig(
        vus=vus,
        duration=duration,
        base_url=base_url,
        thresholds=thresholds,
        env=env,
        pacing=pacing,
        seed=seed,
        request_timeout=timeout,
        write_probability=write_probability,
    )
