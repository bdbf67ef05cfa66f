"""
Register → login → authenticated read.

Every iteration creates (or collides with) a fresh identity, logs in as
it, and uses the token for one protected read.  This exercises password
hashing, token issuance and token verification on every pass.

Checks recorded per iteration:

- ``register: status 201 or 409``
- ``login: status 200``
- ``login: token exists``
- ``users: status 200`` (only when login produced a token)
"""

from __future__ import annotations

from typing import Any

from ..client import auth_header, decode_token
from ..config import RegisterLoginConfig
from ..user import VirtualUser
from .base import DEFAULT_PASSWORD, Scenario, accepted_registration, login, register


def register_login(user: VirtualUser, shared: Any = None) -> None:
    email = user.unique_email()
    password = DEFAULT_PASSWORD

    register_res = register(user, email=email, password=password)
    user.check("register: status 201 or 409", accepted_registration(register_res.status))

    login_res = login(user, email=email, password=password)
    login_ok = user.check("login: status 200", login_res.status == 200)
    token = decode_token(login_res)
    user.check("login: token exists", token is not None)

    if login_ok and token is not None:
        users_res = user.get("/users", headers=auth_header(token), name="GET /users")
        user.check("users: status 200", users_res.status == 200)


SCENARIO = Scenario(
    name="register_login",
    run=register_login,
    profile=RegisterLoginConfig,
    description="Register a fresh identity, log in, call /users with the token",
)
