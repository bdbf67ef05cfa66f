"""
Shared pieces for scenario modules.

A :class:`Scenario` bundles the per-iteration function with its optional
setup and teardown routines and the configuration profile it is normally
run with.  The request helpers below wrap the auth endpoints every
scenario talks to, so the JSON shapes live in exactly one place.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..client import Response
from ..config import Config
from ..lifecycle import SetupFn, TeardownFn
from ..scheduler import ScenarioFn
from ..user import VirtualUser

DEFAULT_PASSWORD = "password123"
DEFAULT_NAME = "Load User"


@dataclass(frozen=True)
class Scenario:
    """A compiled workflow plus its lifecycle hooks."""

    name: str
    run: ScenarioFn
    profile: type[Config]
    setup: SetupFn | None = None
    teardown: TeardownFn | None = None
    description: str = ""


def register(user: VirtualUser, *, email: str, password: str, name: str = DEFAULT_NAME) -> Response:
    """POST ``/register``; 201 means created, 409 means the email exists."""
    return user.post(
        "/register",
        json={"name": name, "email": email, "password": password},
        headers={"Content-Type": "application/json"},
        name="POST /register",
    )


def login(user: VirtualUser, *, email: str, password: str) -> Response:
    """POST ``/login``; a 200 carries the token at ``data.token``."""
    return user.post(
        "/login",
        json={"email": email, "password": password},
        headers={"Content-Type": "application/json"},
        name="POST /login",
    )


def accepted_registration(status: int) -> bool:
    """Both a fresh account and an already-existing one count as success."""
    return status in (201, 409)
