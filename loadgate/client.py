"""
HTTP request client used by virtual users.

Wraps a :class:`requests.Session` (one per virtual user, since sessions
are not safe to share across threads) and returns a small
:class:`Response` value carrying status, body and wall-clock timing.

Transport failures -- timeouts, refused connections -- never raise out
of :meth:`RequestClient.request`.  They come back as a response with
``status == 0`` and the error text, so a flaky network shows up in
``http_req_failed`` instead of killing an iteration.

Key Concepts Demonstrated:
- Session-per-worker connection pooling
- Converting ``requests.RequestException`` into data, not control flow
- Explicit optional decoding of nested JSON fields (:func:`decode_token`)
"""

from __future__ import annotations

import json as jsonlib
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import requests


@dataclass(frozen=True)
class Response:
    """Result of one HTTP request."""

    status: int
    body: bytes = b""
    duration_ms: float = 0.0
    error: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Parse the body as JSON; raises ``ValueError`` on malformed bodies."""
        return jsonlib.loads(self.body)


def safe_json(response: Response) -> dict[str, Any]:
    """
    Return response JSON as a dict, or ``{}`` if parsing fails.

    Error bodies (5xx pages, proxies timing out) are frequently not JSON,
    and a top-level JSON array is just as useless to callers expecting an
    object, so both collapse to an empty dict.
    """
    try:
        data = response.json()
    except ValueError:
        return {}

    if isinstance(data, dict):
        return data
    return {}


def decode_token(response: Response) -> str | None:
    """
    Extract the bearer token from a login response.

    The login endpoint answers ``{"data": {"token": "..."}}``.  Any other
    shape -- missing keys, ``data`` not being an object, an empty or
    non-string token -- yields ``None``.
    """
    data = safe_json(response).get("data")
    if not isinstance(data, dict):
        return None
    token = data.get("token")
    if not isinstance(token, str) or not token:
        return None
    return token


def auth_header(token: str) -> dict[str, str]:
    """Build bearer auth headers for JSON API requests."""
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


class RequestClient:
    """
    Thin synchronous HTTP client bound to a base URL.

    Args:
        base_url: Root URL; request paths are appended to it.
        timeout: Per-request timeout in seconds.
        session: Optional pre-built session (Locust passes its own
            ``HttpSession`` here so its statistics see every request).
        label_requests: Forward each request's ``name`` to the session.
            Only Locust sessions understand that keyword.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        label_requests: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self.label_requests = label_requests

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        name: str | None = None,
    ) -> Response:
        """
        Issue one request and time it.

        Args:
            method: HTTP verb.
            path: Path relative to ``base_url`` (or an absolute URL).
            json: Optional JSON-serialisable request body.
            headers: Extra request headers.
            name: Label used by Locust to group statistics; ignored by
                plain ``requests`` sessions.

        Returns:
            A :class:`Response`; ``status`` is ``0`` on transport errors.
        """
        kwargs: dict[str, Any] = {
            "json": json,
            "headers": dict(headers or {}),
            "timeout": self.timeout,
        }
        if name is not None and self.label_requests:
            kwargs["name"] = name

        started = time.perf_counter()
        try:
            raw = self.session.request(method.upper(), self.url_for(path), **kwargs)
        except requests.RequestException as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            return Response(status=0, duration_ms=duration_ms, error=str(exc) or type(exc).__name__)

        duration_ms = (time.perf_counter() - started) * 1000
        return Response(
            status=raw.status_code,
            body=raw.content or b"",
            duration_ms=duration_ms,
            headers=dict(raw.headers),
        )

    def get(self, path: str, **kwargs: Any) -> Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Response:
        return self.request("POST", path, **kwargs)

    def close(self) -> None:
        self.session.close()
