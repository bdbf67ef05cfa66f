"""Live-server helpers for integration test suites."""

from __future__ import annotations

import threading
import time
from collections.abc import Generator
from contextlib import contextmanager

import requests
from flask import Flask
from werkzeug.serving import make_server


def is_api_ready(url: str, timeout: int = 2) -> bool:
    """Return True when the API health endpoint responds with 200."""
    try:
        response = requests.get(f"{url}/health", timeout=timeout)
    except requests.RequestException:
        return False
    return response.status_code == 200


def wait_for_api_healthy(url: str, timeout: float = 10, interval: float = 0.1) -> None:
    """Poll the health endpoint until ready or timeout."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if is_api_ready(url):
            return
        time.sleep(interval)
    raise RuntimeError(f"API at {url} not healthy after {timeout}s")


@contextmanager
def serve_app(app: Flask, host: str = "127.0.0.1") -> Generator[str, None, None]:
    """
    Serve *app* on an ephemeral port in a background thread.

    Yields the base URL and shuts the server down on exit.  Threaded so
    concurrent virtual users are served concurrently.
    """
    server = make_server(host, 0, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="stub-api", daemon=True)
    thread.start()
    base_url = f"http://{host}:{server.server_port}"
    try:
        wait_for_api_healthy(base_url)
        yield base_url
    finally:
        server.shutdown()
        thread.join(timeout=5)

