"""Tests for the client-side tampering preview."""

import random

import pytest

from chaosctl.core.evaluate import (
    TAMPER_HEADERS,
    TAMPER_LAG_AND_HEADERS,
    TAMPER_MOCK,
    describe_tampering,
    is_chaos_route,
    match_mock_rule,
    match_status_rule,
    route_target,
    traffic_tamper_type,
)
from chaosctl.core.model import (
    FailureMode,
    HeaderRules,
    MockRule,
    ProxyConfiguration,
    ProxyMode,
    StatusRule,
)


@pytest.fixture
def config():
    return ProxyConfiguration(
        status_rules=[
            StatusRule(id="s1", path_pattern="/api/users", status_code=503, error_rate=50),
            StatusRule(id="s2", path_pattern="/api", status_code=500, error_rate=0),
        ],
        mock_rules=[
            MockRule(id="m1", path_pattern="/api/orders", active=False),
            MockRule(id="m2", path_pattern="/api/orders", body="[]"),
        ],
    )


def test_is_chaos_route():
    assert is_chaos_route("/api, /graphql", "/api/users")
    assert is_chaos_route(["/graphql"], "/graphql")
    assert not is_chaos_route("/api", "/index.html")
    assert not is_chaos_route("", "/api")


class TestStatusRules:
    def test_worst_case_skips_zero_rate(self, config):
        assert match_status_rule(config.status_rules, "/api/users/1").id == "s1"
        assert match_status_rule(config.status_rules, "/api/other") is None

    def test_roll(self, config):
        assert match_status_rule(config.status_rules, "/api/users", roll=10).id == "s1"
        assert match_status_rule(config.status_rules, "/api/users", roll=75) is None

    def test_empty_pattern_matches_everything(self):
        rules = [StatusRule(id="x", path_pattern="")]
        assert match_status_rule(rules, "/anything").id == "x"


class TestMockRules:
    def test_inactive_rules_skipped(self, config):
        assert match_mock_rule(config.mock_rules, "/api/orders/7").id == "m2"

    def test_no_match(self, config):
        assert match_mock_rule(config.mock_rules, "/api/users") is None


class TestRouting:
    def test_split_mode(self, config):
        assert route_target(config, "/api/users") == "http://localhost:4000"
        assert route_target(config, "/index.html") == "http://localhost:3000"

    def test_unified_mode(self):
        config = ProxyConfiguration(mode=ProxyMode.UNIFIED)
        assert route_target(config, "/index.html") == "http://localhost:80"

    def test_routes_override(self, config):
        assert route_target(config, "/v2/x", "/v2") == "http://localhost:4000"


class TestTamperType:
    def test_clean(self):
        assert traffic_tamper_type(ProxyConfiguration()) == ""

    def test_failure_mode_wins(self):
        config = ProxyConfiguration(failure_mode=FailureMode.TIMEOUT, request_delay_ms=100)
        assert traffic_tamper_type(config) == "timeout"

    def test_lag(self):
        config = ProxyConfiguration(request_delay_ms=100, response_delay_ms=50)
        assert traffic_tamper_type(config) == "LAG +150ms"

    def test_headers(self):
        config = ProxyConfiguration(header_rules=HeaderRules(strip_cors=True))
        assert traffic_tamper_type(config) == TAMPER_HEADERS

    def test_lag_and_headers(self):
        config = ProxyConfiguration(request_delay_ms=10, header_rules=HeaderRules(strip_cache=True))
        assert traffic_tamper_type(config) == TAMPER_LAG_AND_HEADERS


class TestDescribe:
    def test_status_injection(self, config):
        result = describe_tampering(config, "/api/users")
        assert result["tampered"] is True
        assert result["status_rule"] == "s1"
        assert result["status_code"] == 503
        assert result["probability"] == 50
        assert result["tamper_type"] == "INJECT 503"

    def test_mock(self, config):
        result = describe_tampering(config, "/api/orders")
        assert result["mock_rule"] == "m2"
        assert result["tamper_type"] == TAMPER_MOCK

    def test_chaos_route_with_lag(self):
        config = ProxyConfiguration(request_delay_ms=300)
        result = describe_tampering(config, "/graphql")
        assert result["chaos_route"] is True
        assert result["tamper_type"] == "LAG +300ms"

    def test_non_chaos_route_passes_through(self):
        config = ProxyConfiguration(request_delay_ms=300, failure_mode=FailureMode.CLOSE_BODY)
        result = describe_tampering(config, "/static/app.js")
        assert result["tampered"] is False
        assert result["target"] == "http://localhost:3000"

    def test_routes_text_override(self):
        config = ProxyConfiguration(request_delay_ms=300)
        result = describe_tampering(config, "/api/users", routes="/v2")
        assert result["chaos_route"] is False
        assert result["tampered"] is False

    def test_rng_roll(self, config):
        rng = random.Random()
        rng.random = lambda: 0.9
        result = describe_tampering(config, "/api/users", rng=rng)
        assert result["status_rule"] is None
        assert result["tampered"] is False
