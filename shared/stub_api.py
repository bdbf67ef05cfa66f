"""
Flask stub of the API the load scenarios target.

Implements just enough of the real service for end-to-end runs:

    GET  /health    -- liveness probe
    POST /register  -- 201 created, 409 duplicate email, 400 missing fields
    POST /login     -- 200 ``{"data": {"token": ...}}`` or 401
    GET  /users     -- bearer-protected list
    POST /users     -- bearer-protected create, 201 or 409

Tokens are HS256 JWTs issued with PyJWT.  Two knobs on ``app.config``
let tests provoke failures: ``FORCE_USERS_STATUS`` makes ``GET /users``
answer with that status, and ``OMIT_LOGIN_TOKEN`` drops the token from
successful login bodies.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import Flask, Response, current_app, jsonify, request

STUB_JWT_SECRET = "stub-api-secret-for-load-tests-0123456789"


def _json(payload: dict[str, Any], status: int) -> tuple[Response, int]:
    return jsonify(payload), status


def _issue_token(email: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=1)).timestamp()),
    }
    return jwt.encode(payload, STUB_JWT_SECRET, algorithm="HS256")


def _bearer_identity() -> str | None:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    try:
        claims = jwt.decode(header[len("Bearer "):], STUB_JWT_SECRET, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None
    return claims.get("sub")


def _store_user(data: dict[str, Any]) -> tuple[Response, int]:
    missing = [field for field in ("name", "email", "password") if not data.get(field)]
    if missing:
        return _json({"success": False, "message": "Validation error", "data": {"missing": missing}}, 400)

    email = str(data["email"]).strip().lower()
    store = current_app.config["USERS"]
    with current_app.config["USERS_LOCK"]:
        if email in store:
            return _json({"success": False, "message": "Email already exists"}, 409)
        store[email] = {"name": data["name"], "password": data["password"]}
    return _json({"success": True, "message": "User created", "data": {"email": email}}, 201)


def create_stub_app() -> Flask:
    """Build a fresh stub app with an empty in-memory user store."""
    app = Flask(__name__)
    app.config.update(
        USERS={},
        USERS_LOCK=threading.Lock(),
        FORCE_USERS_STATUS=None,
        OMIT_LOGIN_TOKEN=False,
    )

    @app.get("/health")
    def health():
        return _json({"success": True, "message": "ok"}, 200)

    @app.post("/register")
    def register():
        return _store_user(request.get_json(silent=True) or {})

    @app.post("/login")
    def login():
        data = request.get_json(silent=True) or {}
        email = str(data.get("email", "")).strip().lower()
        with current_app.config["USERS_LOCK"]:
            user = current_app.config["USERS"].get(email)
        if user is None or user["password"] != data.get("password"):
            return _json({"success": False, "message": "Unauthorized"}, 401)

        if current_app.config["OMIT_LOGIN_TOKEN"]:
            return _json({"success": True, "message": "Login successful", "data": {}}, 200)
        return _json(
            {"success": True, "message": "Login successful", "data": {"token": _issue_token(email)}},
            200,
        )

    @app.get("/users")
    def list_users():
        forced = current_app.config["FORCE_USERS_STATUS"]
        if forced:
            return _json({"success": False, "message": "Forced failure"}, int(forced))
        if _bearer_identity() is None:
            return _json({"success": False, "message": "Unauthorized"}, 401)
        with current_app.config["USERS_LOCK"]:
            emails = sorted(current_app.config["USERS"])
        return _json({"success": True, "message": "Users", "data": emails}, 200)

    @app.post("/users")
    def create_user():
        if _bearer_identity() is None:
            return _json({"success": False, "message": "Unauthorized"}, 401)
        return _store_user(request.get_json(silent=True) or {})

    return app
