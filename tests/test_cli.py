"""
Tests for the promptrelay CLI parser and offline commands.
"""

from unittest.mock import MagicMock, patch

import pytest

from promptrelay import cli
from promptrelay.config import get_tunable


@pytest.mark.parametrize("alias", ["serve", "start", "up"])
def test_serve_aliases(alias):
    args = cli.build_parser().parse_args([alias, "--port", "9001"])
    assert args.func is cli.cmd_serve
    assert args.port == 9001


def test_optimize_args():
    args = cli.build_parser().parse_args(
        ["ask", "why", "is", "it", "slow", "-s", "speed", "-m", "gpt-4o", "-m", "grok-2"]
    )
    assert args.func is cli.cmd_optimize
    assert args.prompt == ["why", "is", "it", "slow"]
    assert args.strategy == "speed"
    assert args.model == ["gpt-4o", "grok-2"]


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "promptrelay" in capsys.readouterr().out


def test_models_hides_disabled(capsys):
    assert cli.main(["models"]) == 0
    out = capsys.readouterr().out
    assert "gpt-4o-mini" in out
    assert "gemini-lite" not in out

    cli.main(["catalog", "--all"])
    assert "gemini-lite" in capsys.readouterr().out


def test_optimize_anonymous_uses_public_endpoint(capsys):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = {
        "original_prompt": "hi there",
        "optimized_prompt": "hi there",
        "final_response": "hello!",
        "models_used": ["gpt-4o-mini"],
        "processing_time_ms": 12.0,
        "metadata": {},
    }
    with patch("httpx.post", return_value=resp) as post:
        assert cli.main(["optimize", "hi", "there", "--strategy", "speed"]) == 0

    url = post.call_args.args[0]
    assert url.endswith("/api/v1/public/optimize")
    assert post.call_args.kwargs["json"]["enable_memory"] is False
    assert "hello!" in capsys.readouterr().out


def test_optimize_reports_errors(capsys):
    resp = MagicMock()
    resp.status_code = 400
    resp.json.return_value = {"error": "INVALID_STRATEGY", "message": "Invalid strategy 'x'"}
    with patch("httpx.post", return_value=resp):
        assert cli.main(["optimize", "hi", "--user", "alice", "-s", "x"]) == 1
    assert "INVALID_STRATEGY" in capsys.readouterr().err


def test_tune_writes_runtime_override(isolated_config, capsys):
    assert cli.main(["tune", "rewriter", "max_prompt_length", "90"]) == 0
    assert get_tunable("rewriter", "max_prompt_length", 150) == 90

    assert cli.main(["set", "rewriter", "max_prompt_length", "--unset"]) == 0
    assert get_tunable("rewriter", "max_prompt_length", 150) == 150
    assert "Cleared rewriter.max_prompt_length" in capsys.readouterr().out


def test_tune_requires_value(isolated_config):
    assert cli.main(["tune", "strategies", "default"]) == 1
    assert not isolated_config.exists()


def _reply(status_code, payload):
    resp = MagicMock(status_code=status_code)
    resp.json.return_value = payload
    return resp


def test_ping_reports_upstream(capsys):
    health = _reply(200, {
        "version": "1.0.0",
        "upstream": {
            "reachable": True,
            "served_models": ["gpt-4o", "gpt-4o-mini"],
            "missing_models": ["o3-mini"],
        },
    })
    models = _reply(200, {"gpt-4o": {}, "gpt-4o-mini": {}, "o3-mini": {}})
    with patch("httpx.get", side_effect=[health, models]) as get:
        assert cli.main(["ping", "--url", "http://relay:9000/"]) == 0

    assert get.call_args_list[0].args[0] == "http://relay:9000/health"
    assert get.call_args_list[0].kwargs["params"] == {"upstream": "true"}
    out = capsys.readouterr().out
    assert "is UP (version 1.0.0)" in out
    assert "2 models served" in out
    assert "Not served upstream: o3-mini" in out
    assert "Models enabled: gpt-4o, gpt-4o-mini, o3-mini" in out


def test_ping_upstream_unreachable(capsys):
    health = _reply(200, {"version": "1.0.0", "upstream": {"reachable": False}})
    with patch("httpx.get", side_effect=[health, _reply(200, {})]):
        assert cli.main(["status"]) == 0
    out = capsys.readouterr().out
    assert "Upstream: UNREACHABLE" in out
    assert "Models enabled: none" in out


def test_ping_http_error(capsys):
    with patch("httpx.get", return_value=_reply(503, {})):
        assert cli.main(["health"]) == 1
    assert "HTTP 503" in capsys.readouterr().out
