"""
End-to-end runs against the live Flask stub API.

Each test starts a fresh stub server, runs a small number of virtual
users for well under a second, and asserts on the collected metrics and
the threshold verdict.

Key SDET Concepts Demonstrated:
- Live-server fixtures on ephemeral ports (no fixed-port collisions)
- Failure injection via application config knobs
- Asserting on CI exit codes end to end
"""

from __future__ import annotations

import pytest

from loadgate import cli
from loadgate.models import CHECKS, HTTP_REQS, ITERATION_FAILED, RunStatus
from loadgate.scenarios import REGISTER_LOGIN, SHARED_TOKEN
from loadgate.scenarios.base import register
from loadgate.scheduler import run
from loadgate.thresholds import evaluate, parse_thresholds, verdict
from loadgate.user import VirtualUser, default_client_factory
from shared.test_helpers import make_config

pytestmark = pytest.mark.integration

LENIENT_GATE = {
    "http_req_duration": ["p(95)<2000"],
    "http_req_failed{status:500}": ["rate==0"],
}


@pytest.fixture
def live_config(stub_url):
    """Factory for small run configurations aimed at the live stub."""
    def _create(**overrides):
        params = {
            "vus": 3,
            "duration": 0.5,
            "pacing": 0.02,
            "base_url": stub_url,
            "thresholds": parse_thresholds(LENIENT_GATE),
        }
        params.update(overrides)
        return make_config(**params)

    return _create


def _check_rate(collector, name):
    return collector.rate(CHECKS, {"check": name})


def _run_shared_token(config):
    return run(config, SHARED_TOKEN.run, setup=SHARED_TOKEN.setup, teardown=SHARED_TOKEN.teardown)


class TestRegisterLoginRun:
    """Register -> login -> read against the live stub."""

    def test_run_passes_every_check(self, live_config):
        """
        Test that a small run passes its checks and thresholds.

        Arrange: Three users for half a second
        Act: Run the register/login scenario over HTTP
        Assert: Every check passes and the gate verdict is PASS
        """
        # Arrange
        config = live_config()

        # Act
        report = run(config, REGISTER_LOGIN.run)

        # Assert
        collector = report.metrics
        assert report.iterations >= 3
        assert report.failed_iterations == 0
        for name in ("register: status 201 or 409", "login: status 200",
                     "login: token exists", "users: status 200"):
            assert _check_rate(collector, name) == 1.0
        assert collector.count(HTTP_REQS, {"name": "GET /users"}) == report.iterations
        assert verdict(evaluate(config.thresholds, collector))

    def test_duplicate_registration_returns_conflict(self, live_config, collector):
        """Test that registering the same email twice answers 201 then 409."""
        # Arrange
        config = live_config()
        user = VirtualUser(1, config, default_client_factory(config), collector)

        # Act
        first = register(user, email="dup@example.test", password="password123")
        second = register(user, email="dup@example.test", password="password123")
        user.client.close()

        # Assert
        assert (first.status, second.status) == (201, 409)

    def test_forced_server_errors_breach_gate(self, stub_app, live_config):
        """Test that 500s on /users fail ``http_req_failed{status:500}: rate==0``."""
        # Arrange
        stub_app.config["FORCE_USERS_STATUS"] = 500
        config = live_config(vus=2, duration=0.3)

        # Act
        report = run(config, REGISTER_LOGIN.run)
        results = evaluate(config.thresholds, report.metrics)

        # Assert
        assert _check_rate(report.metrics, "users: status 200") == 0.0
        failed = [result for result in results if not result.passed]
        assert [result.spec.metric_key for result in failed] == ["http_req_failed{status:500}"]
        assert verdict(results) is False

    def test_login_without_token_does_not_crash(self, stub_app, live_config):
        """Test that token-less login bodies fail the check, not the iteration."""
        # Arrange
        stub_app.config["OMIT_LOGIN_TOKEN"] = True

        # Act
        report = run(live_config(vus=2, duration=0.3), REGISTER_LOGIN.run)

        # Assert
        assert report.failed_iterations == 0
        assert report.metrics.rate(ITERATION_FAILED) == 0.0
        assert _check_rate(report.metrics, "login: token exists") == 0.0
        assert report.metrics.count(HTTP_REQS, {"name": "GET /users"}) == 0


class TestSharedTokenRun:
    """Setup token -> read-heavy load against the live stub."""

    def test_setup_token_is_shared_by_all_users(self, live_config):
        """Test that one setup login backs every read and the rare writes."""
        # Arrange
        config = live_config(vus=4, write_probability=0.5)

        # Act
        report = _run_shared_token(config)

        # Assert
        collector = report.metrics
        assert report.status is RunStatus.COMPLETED
        assert collector.count(HTTP_REQS, {"name": "POST /login"}) == 1
        assert _check_rate(collector, "get users 200") == 1.0
        assert collector.count(HTTP_REQS, {"name": "POST /users"}) > 0
        assert _check_rate(collector, "create user 201 or 409") == 1.0

    def test_rejected_credentials_abort_run(self, live_config):
        """Test that a failed setup login aborts before any /users call."""
        # Arrange
        config = live_config(
            env={"TEST_EMAIL": "nobody@example.test", "TEST_PASSWORD": "wrong-password"}
        )

        # Act
        report = _run_shared_token(config)

        # Assert
        assert report.aborted is True
        assert "status 401" in str(report.setup_error)
        assert report.iterations == 0
        assert report.metrics.count(HTTP_REQS, {"name": "GET /users"}) == 0


class TestCommandLine:
    """Exit codes of ``loadgate`` against the live stub."""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        for name in ("VUS", "DURATION", "PACING", "SEED", "THRESHOLDS_FILE",
                     "TEST_EMAIL", "TEST_PASSWORD", "WRITE_PROBABILITY"):
            monkeypatch.delenv(name, raising=False)

    def _argv(self, scenario, stub_url):
        return [scenario, "--base-url", stub_url, "--vus", "2", "--duration", "0.4", "--pacing", "0.05"]

    def test_healthy_api_exits_zero(self, stub_url):
        """Test that a healthy run exits 0."""
        assert cli.main(self._argv("register_login", stub_url)) == cli.EXIT_PASS

    def test_server_errors_exit_one(self, stub_app, stub_url):
        """Test that a breached status:500 threshold exits 1."""
        stub_app.config["FORCE_USERS_STATUS"] = 500

        assert cli.main(self._argv("register_login", stub_url)) == cli.EXIT_THRESHOLD_BREACH

    def test_setup_failure_exits_two(self, stub_url, monkeypatch):
        """Test that rejected shared credentials exit 2."""
        monkeypatch.setenv("TEST_EMAIL", "nobody@example.test")
        monkeypatch.setenv("TEST_PASSWORD", "wrong-password")

        assert cli.main(self._argv("shared_token", stub_url)) == cli.EXIT_RUN_ERROR
