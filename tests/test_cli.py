import click
import pytest
from click.testing import CliRunner

from mcp_session.cli import _parse_arguments, main


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.chdir(tmp_path)


def test_parse_arguments_decodes_json_values():
    assert _parse_arguments(("query=SELECT 1", "limit=10", "params={\"a\": 1}", "flag=true")) == {
        "query": "SELECT 1",
        "limit": 10,
        "params": {"a": 1},
        "flag": True,
    }


def test_parse_arguments_rejects_missing_equals():
    with pytest.raises(click.BadParameter):
        _parse_arguments(("novalue",))


def test_call_against_unreachable_server_exits_1():
    runner = CliRunner()
    result = runner.invoke(main, ["call", "http://127.0.0.1:9/mcp", "list_clusters"])
    assert result.exit_code == 1
    assert "Connection error" in result.output


def test_help_lists_commands():
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    for command in ("serve", "tools", "call", "health"):
        assert command in result.output
