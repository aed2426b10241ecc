"""Integration tests for the cuebridge command line."""

import asyncio
import json

import pytest
from typer.testing import CliRunner

from cuebridge.src import cli
from cuebridge.src.services.config import get_config


runner = CliRunner()

GREETING_RULE = """
[rule]
id = "greet"
on = "chat"
condition = "data.comment == 'hi'"

[[rule.actions]]
type = "lastcomment"
params = { message = "hello {{ data.user }}" }
"""


@pytest.fixture
def workspace(monkeypatch, tmp_path):
    for key in ("CUEBRIDGE_RULES_DIR", "CUEBRIDGE_PLUGINS_DIR", "CUEBRIDGE_DATA_DIR", "CUEBRIDGE_PLATFORMS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CUEBRIDGE_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("CUEBRIDGE_LOG_LEVEL", "WARNING")
    get_config.cache_clear()
    (tmp_path / "rules").mkdir()
    (tmp_path / "rules" / "greet.toml").write_text(GREETING_RULE)
    yield tmp_path
    get_config.cache_clear()


class TestRulesCommand:
    def test_lists_rules(self, workspace):
        result = runner.invoke(cli.app, ["rules"])

        assert result.exit_code == 0
        assert "greet" in result.output
        assert "lastcomment" in result.output

    def test_invalid_file_exits_non_zero(self, workspace):
        (workspace / "rules" / "bad.yaml").write_text("id: [unclosed\n")

        result = runner.invoke(cli.app, ["rules"])

        assert result.exit_code == 1
        assert "greet" in result.output


class TestEmitCommand:
    def test_matching_event(self, workspace):
        result = runner.invoke(cli.app, ["emit", "chat", "--data", json.dumps({"comment": "hi", "user": "ana"})])

        assert result.exit_code == 0
        assert "greet" in result.output
        assert "hello ana" in result.output

    def test_no_match(self, workspace):
        result = runner.invoke(cli.app, ["emit", "follow"])

        assert result.exit_code == 0
        assert "No rules matched" in result.output

    def test_data_from_file(self, workspace):
        payload = workspace / "event.json"
        payload.write_text(json.dumps({"comment": "hi", "user": "bo"}))

        result = runner.invoke(cli.app, ["emit", "chat", "--file", str(payload)])

        assert result.exit_code == 0
        assert "hello bo" in result.output

    def test_data_and_file_conflict(self, workspace):
        result = runner.invoke(cli.app, ["emit", "chat", "-d", "{}", "-f", "event.json"])

        assert result.exit_code == 1
        assert "either --data or --file" in result.output

    @pytest.mark.parametrize("data", ["{not json", "[1, 2]"])
    def test_bad_data(self, workspace, data):
        result = runner.invoke(cli.app, ["emit", "chat", "--data", data])

        assert result.exit_code == 1


class TestPluginsCommand:
    def test_lists_directory_plugins(self, workspace):
        plugin_dir = workspace / "plugins" / "hello"
        plugin_dir.mkdir(parents=True)
        (plugin_dir / "manifest.toml").write_text(
            '[plugin]\nid = "hello"\nname = "Hello"\nversion = "0.2.0"\nentry = "hello:HelloPlugin"\n'
        )
        broken_dir = workspace / "plugins" / "broken"
        broken_dir.mkdir()
        (broken_dir / "manifest.toml").write_text('[plugin]\nid = "Not Kebab"\nentry = "x:Y"\n')

        result = runner.invoke(cli.app, ["plugins"])

        assert result.exit_code == 0
        assert "hello" in result.output
        assert "0.2.0" in result.output
        assert "kebab-case" in result.output


class TestRunCommand:
    def test_interrupt_exits_zero(self, workspace, monkeypatch):
        def interrupted(coro):
            coro.close()
            raise KeyboardInterrupt

        monkeypatch.setattr(cli.asyncio, "run", interrupted)

        result = runner.invoke(cli.app, ["run"])

        assert result.exit_code == 0

    def test_serve_stops_host_when_signalled(self, workspace):
        async def scenario():
            stop_event = asyncio.Event()
            stop_event.set()
            await cli._serve(stop_event)

        asyncio.run(scenario())

        assert (workspace / "data" / "plugins.db").exists()
