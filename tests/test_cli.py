"""
Tests for the chaosctl command line and REPL command handling.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
from click.testing import CliRunner

from chaosctl import __version__
from chaosctl.cli import ChaosApp, get_prompt, main, parse_assignment
from chaosctl.config import ChaosctlConfig


# ── Helpers ──────────────────────────────────────────────────────────────────


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def _session(engine_config=None, post_status=200):
    session = MagicMock()
    session.get.return_value = _response(200, engine_config if engine_config is not None else {})
    session.post.return_value = _response(post_status, {})
    return session


@pytest.fixture
def session():
    return _session({"Mode": "split", "LagToReq": 50, "LagToResp": 80,
                     "bandwidthUp": 750, "bandwidthDown": 2000, "jitter": 30})


@pytest.fixture
def settings():
    cfg = ChaosctlConfig()
    cfg.ui.revert_delay = 0
    return cfg


@pytest.fixture
def cli_env(session, settings):
    """Patch settings, logging and HTTP for CLI invocations."""
    with patch("chaosctl.cli.load_config", return_value=settings), \
         patch("chaosctl.cli.setup_logging"), \
         patch("chaosctl.core.sync.build_session", return_value=session), \
         patch("chaosctl.core.feed.build_session", return_value=MagicMock()):
        yield session


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def app(settings):
    with patch("chaosctl.core.sync.build_session", return_value=_session()), \
         patch("chaosctl.core.feed.build_session", return_value=MagicMock()):
        application = ChaosApp(settings)
    application.sync.pull()
    yield application
    application.close()


# ── parse_assignment ─────────────────────────────────────────────────────────


class TestParseAssignment:
    def test_equals(self):
        assert parse_assignment("LagToReq=150") == ("LagToReq", "150")

    def test_space(self):
        assert parse_assignment("LagToReq 150") == ("LagToReq", "150")

    def test_value_with_spaces(self):
        assert parse_assignment("ChaosRoutes /api, /v2") == ("ChaosRoutes", "/api, /v2")
        assert parse_assignment("ChaosRoutes=/api, /v2") == ("ChaosRoutes", "/api, /v2")

    def test_empty(self):
        assert parse_assignment("") == ("", "")


# ── Subcommands ──────────────────────────────────────────────────────────────


class TestCommands:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_show(self, runner, cli_env):
        result = runner.invoke(main, ["show"])
        assert result.exit_code == 0, result.output
        assert "Fast 4G" in result.output
        assert "Ready" in result.output

    def test_show_offline(self, runner, cli_env):
        cli_env.get.side_effect = requests.ConnectionError("refused")
        result = runner.invoke(main, ["show"])
        assert result.exit_code == 1
        assert "Offline" in result.output

    def test_url_option(self, runner, cli_env):
        runner.invoke(main, ["--url", "http://engine:9000", "show"])
        assert cli_env.get.call_args.args[0] == "http://engine:9000/api/config"

    def test_set_pushes_full_config(self, runner, cli_env):
        result = runner.invoke(main, ["set", "LagToReq=150", "jitter=20"])
        assert result.exit_code == 0, result.output
        payload = cli_env.post.call_args.kwargs["json"]
        assert payload["LagToReq"] == 150
        assert payload["jitter"] == 20
        assert payload["LagToResp"] == 80
        assert payload["Mode"] == "split"

    def test_set_preset_and_failure(self, runner, cli_env):
        result = runner.invoke(main, ["set", "--preset", "3g", "--failure", "timeout"])
        assert result.exit_code == 0, result.output
        payload = cli_env.post.call_args.kwargs["json"]
        assert payload["LagToReq"] == 300
        assert payload["failureMode"] == "timeout"

    def test_set_unknown_field(self, runner, cli_env):
        result = runner.invoke(main, ["set", "packetLoss=5"])
        assert result.exit_code == 2
        cli_env.post.assert_not_called()

    def test_set_rule_list_rejected(self, runner, cli_env):
        result = runner.invoke(main, ["set", "statusRules=x"])
        assert result.exit_code == 2
        assert "/rule" in result.output
        cli_env.post.assert_not_called()

    def test_set_bad_failure_mode(self, runner, cli_env):
        result = runner.invoke(main, ["set", "--failure", "explode"])
        assert result.exit_code == 2
        cli_env.post.assert_not_called()

    def test_set_nothing(self, runner, cli_env):
        result = runner.invoke(main, ["set"])
        assert result.exit_code == 2

    def test_set_push_rejected(self, runner, cli_env):
        cli_env.post.return_value = _response(500)
        result = runner.invoke(main, ["set", "jitter=1"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_presets(self, runner, cli_env):
        result = runner.invoke(main, ["presets"])
        assert result.exit_code == 0
        assert "fast4g" in result.output
        assert "hang_body" in result.output

    def test_explain(self, runner, cli_env):
        cli_env.get.return_value = _response(200, {
            "statusRules": [{"id": "1", "pathPattern": "/api/users", "statusCode": 503, "errorRate": 100}],
        })
        result = runner.invoke(main, ["explain", "/api/users"])
        assert result.exit_code == 0, result.output
        assert "INJECT 503" in result.output

    def test_launch_exit_code(self, runner, cli_env):
        with patch("chaosctl.cli.launch_engine", return_value=3) as mock_launch:
            result = runner.invoke(main, ["launch", "--port", "8080"])
        assert result.exit_code == 3
        mock_launch.assert_called_once_with(("--port", "8080"), override="")

    def test_launch_killed_by_signal(self, runner, cli_env):
        with patch("chaosctl.cli.launch_engine", return_value=None):
            result = runner.invoke(main, ["launch"])
        assert result.exit_code == 0

    def test_launch_missing_binary(self, runner, cli_env):
        with patch("chaosctl.cli.launch_engine", side_effect=FileNotFoundError("Proxy engine binary not found: x")):
            result = runner.invoke(main, ["launch"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_config(self, runner, cli_env):
        result = runner.invoke(main, ["config"])
        assert result.exit_code == 0
        assert "http://localhost:9000" in result.output


# ── REPL commands ────────────────────────────────────────────────────────────


class TestChaosApp:
    def test_quit(self, app):
        assert app.handle_input("/quit") is False
        assert app.handle_input("/q") is False

    def test_empty_and_unknown(self, app):
        assert app.handle_input("") is True
        assert app.handle_input("/bogus") is True
        assert app.handle_input("hello") is True

    def test_set(self, app):
        app.handle_input("/set LagToReq 150")
        assert app.state.config.request_delay_ms == 150
        assert app.state.preset == "custom"
        assert app.state.can_apply

    def test_set_routes(self, app):
        app.handle_input("/set ChaosRoutes /v1, /v2")
        assert app.state.routes_text == "/v1, /v2"

    def test_set_unknown_field(self, app):
        app.handle_input("/set nope 1")
        assert app.state.can_apply is False

    def test_preset(self, app):
        app.handle_input("/preset edge")
        assert app.state.preset == "edge"
        assert app.state.config.jitter_ms == 500

    def test_failure(self, app):
        app.handle_input("/failure close_body")
        assert app.state.config.failure_mode.value == "close_body"
        app.handle_input("/failure explode")
        assert app.state.config.failure_mode.value == "close_body"

    def test_header(self, app):
        app.handle_input("/header cors on")
        assert app.state.config.header_rules.strip_cors is True
        app.handle_input("/header cors off")
        assert app.state.config.header_rules.strip_cors is False

    def test_rule_lifecycle(self, app):
        app.handle_input("/rule add /api/users 503 25")
        rules = app.state.config.status_rules
        assert len(rules) == 1
        assert (rules[0].path_pattern, rules[0].status_code, rules[0].error_rate) == ("/api/users", 503, 25)

        app.handle_input("/rule set 1 code 404")
        assert app.state.config.status_rules[0].status_code == 404

        app.handle_input("/rule rm 1")
        assert app.state.config.status_rules == []

    def test_rule_add_defaults(self, app):
        app.handle_input("/rule add")
        rule = app.state.config.status_rules[0]
        assert (rule.status_code, rule.error_rate) == (500, 100)

    def test_mock_add_with_body(self, app):
        app.handle_input('/mock add /api/orders {"items": [1, 2]}')
        rule = app.state.config.mock_rules[0]
        assert rule.path_pattern == "/api/orders"
        assert rule.body == '{"items": [1, 2]}'

    def test_mock_disable(self, app):
        app.handle_input("/mock add /api")
        app.handle_input("/mock set 1 active off")
        assert app.state.config.mock_rules[0].active is False

    def test_rule_set_unknown_ref(self, app):
        app.handle_input("/rule set 9 code 404")
        assert app.state.can_apply is False

    def test_apply(self, app):
        app.handle_input("/set jitter 15")
        app.handle_input("/apply")
        payload = app.sync._session.post.call_args.kwargs["json"]
        assert payload["jitter"] == 15
        assert app.state.can_apply is False
        assert app.state.status == "Ready"

    def test_explain_and_status(self, app):
        assert app.handle_input("/explain /api/users") is True
        assert app.handle_input("/status") is True
        assert app.handle_input("/traffic 5") is True
        assert app.handle_input("/stats") is True

    def test_prompt_marks_unsaved(self, app):
        assert "*" not in get_prompt(app.state)
        app.handle_input("/set jitter 1")
        assert "*" in get_prompt(app.state)

    def test_apply_disabled_when_clean(self, app):
        app.handle_input("/apply")
        app.sync._session.post.assert_not_called()

    def test_pull_discards_unsaved_rules(self, app):
        app.handle_input("/rule add /api/users 503")
        app.handle_input("/set jitter 40")
        assert app.state.can_apply

        app.handle_input("/pull")
        assert app.state.config.status_rules == []
        assert app.state.config.jitter_ms == 0
        assert app.state.can_apply is False

    def test_set_rule_list_rejected(self, app):
        app.handle_input("/set mockRules x")
        assert app.state.can_apply is False
