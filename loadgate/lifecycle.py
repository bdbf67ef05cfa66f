"""
One-time setup and teardown around the load phase.

Setup runs exactly once, before any worker starts, and its return value
becomes the read-only shared value handed to every scenario invocation.
If it raises, the whole run is aborted -- there is no partial fallback.

Teardown runs exactly once after every worker has exited.  Its failures
are captured and logged but never re-raised: by the time it runs, the
load phase is over and its metrics already stand on their own.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .exceptions import SetupFailure
from .user import VirtualUser

logger = logging.getLogger(__name__)

SetupFn = Callable[[VirtualUser], Any]
TeardownFn = Callable[[VirtualUser, Any], None]


class Lifecycle:
    """Coordinates the optional setup and teardown routines of a run."""

    def __init__(self, setup: SetupFn | None = None, teardown: TeardownFn | None = None) -> None:
        self.setup = setup
        self.teardown = teardown
        self.setup_calls = 0
        self.teardown_calls = 0

    def run_setup(self, user: VirtualUser) -> Any:
        """
        Invoke setup once and return the shared value.

        Returns:
            The setup's return value, or ``None`` when no setup is set.

        Raises:
            SetupFailure: Wrapping whatever the setup routine raised.
        """
        if self.setup is None:
            return None

        self.setup_calls += 1
        logger.info("Running setup")
        try:
            value = self.setup(user)
        except SetupFailure:
            logger.error("Setup failed", exc_info=True)
            raise
        except Exception as exc:
            logger.error("Setup failed: %s", exc, exc_info=True)
            raise SetupFailure(f"Setup raised {type(exc).__name__}: {exc}") from exc

        logger.info("Setup completed")
        return value

    def run_teardown(self, user: VirtualUser, shared: Any) -> BaseException | None:
        """
        Invoke teardown once with the shared value.

        Returns:
            The exception teardown raised, or ``None`` on success or when
            no teardown is set.
        """
        if self.teardown is None:
            return None

        self.teardown_calls += 1
        logger.info("Running teardown")
        try:
            self.teardown(user, shared)
        except Exception as exc:
            logger.error("Teardown failed: %s", exc, exc_info=True)
            return exc

        logger.info("Teardown completed")
        return None
