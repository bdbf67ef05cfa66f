"""
Sustained read load on a single shared token.

Setup obtains one token -- with pre-provisioned credentials when
``TEST_EMAIL``/``TEST_PASSWORD`` are configured, otherwise by registering
a run-unique shared account -- and every virtual user reuses it.  Each
iteration reads ``/users``; a small fraction also creates a user, giving
a read-heavy, write-light mix from a single scenario.

The write fraction is ``RunConfig.write_probability`` (default
:data:`~loadgate.models.DEFAULT_WRITE_PROBABILITY`, set through the
``WRITE_PROBABILITY`` variable or ``--write-probability``), validated
once when the configuration is built.  The draw comes from the virtual
user's own generator, so a seeded run or an injected
``random.Random`` makes the branch deterministic.
"""

from __future__ import annotations

import logging
import time

from ..client import auth_header, decode_token
from ..config import SharedTokenConfig
from ..exceptions import SetupFailure
from ..user import VirtualUser
from .base import DEFAULT_NAME, DEFAULT_PASSWORD, Scenario, accepted_registration, login, register

logger = logging.getLogger(__name__)


def setup_shared_token(user: VirtualUser) -> str:
    """
    Log in once and return the token every virtual user will share.

    Raises:
        SetupFailure: If login does not answer 200 with a token.
    """
    email = user.env.get("TEST_EMAIL")
    password = user.env.get("TEST_PASSWORD")

    if not email or not password:
        email = f"shared_{int(time.time() * 1000)}@example.test"
        password = DEFAULT_PASSWORD
        logger.info("No test credentials configured; registering shared user %s", email)
        register_res = register(user, email=email, password=password, name="Shared User")
        if not accepted_registration(register_res.status):
            logger.warning("Shared user registration returned %s", register_res.status)
    else:
        logger.info("Logging in with configured test credentials for %s", email)

    login_res = login(user, email=email, password=password)
    if login_res.status != 200:
        raise SetupFailure(f"Failed to log in shared user {email}: status {login_res.status}")

    token = decode_token(login_res)
    if token is None:
        raise SetupFailure(f"Login for shared user {email} returned no token")
    return token


def shared_token(user: VirtualUser, token: str) -> None:
    headers = auth_header(token)

    users_res = user.get("/users", headers=headers, name="GET /users")
    user.check("get users 200", users_res.status == 200)

    if user.rng.random() < user.config.write_probability:
        create_res = user.post(
            "/users",
            json={"name": DEFAULT_NAME, "email": user.unique_email(), "password": DEFAULT_PASSWORD},
            headers=headers,
            name="POST /users",
        )
        user.check("create user 201 or 409", accepted_registration(create_res.status))


SCENARIO = Scenario(
    name="shared_token",
    run=shared_token,
    profile=SharedTokenConfig,
    setup=setup_shared_token,
    description="Read /users with one setup token; occasionally create a user",
)
