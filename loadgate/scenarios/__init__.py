"""
Compiled load scenarios.

- :mod:`.register_login` -- register, log in, authenticated read
- :mod:`.shared_token` -- one setup token, read-heavy with rare writes

Scenarios are registered here by name; there is no runtime plugin
loading.
"""

from __future__ import annotations

from .base import Scenario
from .register_login import SCENARIO as REGISTER_LOGIN
from .shared_token import SCENARIO as SHARED_TOKEN

SCENARIOS: dict[str, Scenario] = {
    REGISTER_LOGIN.name: REGISTER_LOGIN,
    SHARED_TOKEN.name: SHARED_TOKEN,
}


def get_scenario(name: str) -> Scenario:
    """Look up a scenario by name; raises ``KeyError`` listing valid names."""
    try:
        return SCENARIOS[name]
    except KeyError:
        raise KeyError(f"Unknown scenario {name!r}; choose from {', '.join(SCENARIOS)}") from None


__all__ = ["REGISTER_LOGIN", "SCENARIOS", "SHARED_TOKEN", "Scenario", "get_scenario"]
