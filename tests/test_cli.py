"""CLI smoke tests using typer's CliRunner."""

import json

import yaml
from typer.testing import CliRunner

from archeflow.cli.app import app
from archeflow.cli.utils import ExitCode
from archeflow.config import get_config

runner = CliRunner()


def _json(output: str) -> dict:
    return json.loads(output[output.index("{"):])


class TestVersionFlag:
    """Test the --version flag."""

    def test_version_output(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "archeflow" in result.output


class TestValidateCommand:
    """Tests for the validate command."""

    def test_valid_archetype(self, demo_archetype):
        result = runner.invoke(app, ["validate", str(demo_archetype)])
        assert result.exit_code == 0
        assert "Archetype valid" in result.output

    def test_validate_nonexistent_path(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "missing")])
        assert result.exit_code == ExitCode.LOAD_ERROR

    def test_invalid_archetype_json(self, make_archetype):
        directory = make_archetype(
            "<archetype-flow>"
            '<flow-step id="extras" optional="true"><flow-input id="name" type="text"/></flow-step>'
            "</archetype-flow>"
        )
        result = runner.invoke(app, ["--json", "validate", str(directory)])
        assert result.exit_code == ExitCode.VALIDATION_ERROR
        data = _json(result.output)
        assert data["status"] == "error"
        assert data["validation"]["valid"] is False
        issue = next(i for i in data["issues"] if i["category"] == "optional_step")
        assert issue["severity"] == "error"
        assert issue["location"]

    def test_strict_fails_on_warnings(self, make_archetype):
        directory = make_archetype('<archetype-flow><flow-step id="empty"/></archetype-flow>')
        assert runner.invoke(app, ["validate", str(directory)]).exit_code == 0
        assert runner.invoke(app, ["validate", "--strict", str(directory)]).exit_code != 0


class TestStepsCommand:
    def test_lists_steps(self, demo_archetype):
        result = runner.invoke(app, ["--json", "steps", str(demo_archetype)])
        assert result.exit_code == 0
        steps = _json(result.output)["steps"]
        assert [s["Path"] for s in steps] == ["app", "observability", "extras"]
        assert steps[2]["Optional"] == "yes"


class TestResolveCommand:
    def test_batch_json_with_plan(self, demo_archetype, tmp_path):
        answers = tmp_path / "answers.yaml"
        answers.write_text(yaml.safe_dump({"observability.tracing": "zipkin"}))
        plan = tmp_path / "plan.yaml"

        result = runner.invoke(
            app,
            [
                "--json",
                "resolve",
                str(demo_archetype),
                "--answers",
                str(answers),
                "--input",
                "app.name=svc",
                "--plan",
                str(plan),
            ],
        )
        assert result.exit_code == 0, result.output
        data = _json(result.output)
        assert data["model"]["name"] == "svc"
        assert data["choices"]["observability.tracing"] == "zipkin"
        assert {f["Target"] for f in data["files"]} == {
            "src/main/java/com/example/myapp/Main.java",
            "README.md",
        }
        assert yaml.safe_load(plan.read_text())["model"]["name"] == "svc"

    def test_batch_missing_answer(self, demo_archetype):
        result = runner.invoke(app, ["resolve", "--batch", str(demo_archetype)])
        assert result.exit_code == ExitCode.FLOW_ERROR
        assert "observability.tracing" in result.output

    def test_batch_missing_answer_json(self, demo_archetype):
        result = runner.invoke(app, ["--json", "resolve", str(demo_archetype)])
        assert result.exit_code == ExitCode.FLOW_ERROR
        data = _json(result.output)
        assert data["exit_code"] == ExitCode.FLOW_ERROR
        assert data["issues"][0]["category"] == "FlowStateError"
        assert "observability.tracing" in data["issues"][0]["message"]

    def test_bad_external_input(self, demo_archetype):
        result = runner.invoke(
            app, ["resolve", "--batch", str(demo_archetype), "-i", "observability.tracing=otel"]
        )
        assert result.exit_code == ExitCode.FLOW_ERROR

    def test_missing_archetype(self, tmp_path):
        result = runner.invoke(app, ["resolve", "--batch", str(tmp_path)])
        assert result.exit_code == ExitCode.LOAD_ERROR

    def test_choices_file_round_trip(self, demo_archetype, tmp_path):
        choices = tmp_path / ".helidon"
        choices.write_text("FLOW.observability.tracing=jaeger\n")

        result = runner.invoke(
            app, ["resolve", "--batch", str(demo_archetype), "--choices-file", str(choices)]
        )
        assert result.exit_code == 0, result.output
        lines = choices.read_text().splitlines()
        assert "FLOW.observability.tracing=jaeger" in lines
        assert "FLOW.app.name=myapp" in lines

    def test_interactive(self, demo_archetype):
        # name, package (default), tracing #1, skip optional extras
        result = runner.invoke(app, ["resolve", str(demo_archetype)], input="demo\n\n1\n\n")
        assert result.exit_code == 0, result.output
        assert "Resolved" in result.output
        assert "README.md" in result.output

    def test_batch_mode_from_config(self, demo_archetype, monkeypatch):
        monkeypatch.setenv("ARCHEFLOW_CLI_MODE", "batch")
        result = runner.invoke(
            app, ["resolve", str(demo_archetype), "-i", "observability.tracing=zipkin"]
        )
        assert result.exit_code == 0, result.output


class TestConfigCommand:
    """Tests for the config command."""

    def test_config_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Resolver" in result.output
        assert "default_engine" in result.output

    def test_config_set_and_reset(self):
        result = runner.invoke(app, ["config", "set", "resolver.common_prefix", "app"])
        assert result.exit_code == 0
        assert get_config().resolver.common_prefix == "app"

        result = runner.invoke(app, ["config", "reset"])
        assert result.exit_code == 0
        assert get_config().resolver.common_prefix == ""

    def test_config_set_invalid_key(self):
        result = runner.invoke(app, ["config", "set", "invalid.key", "value"])
        assert result.exit_code == 1
        assert "Unknown key" in result.output

    def test_config_set_invalid_mode(self):
        result = runner.invoke(app, ["config", "set", "cli.mode", "loud"])
        assert result.exit_code == 1
        assert "Invalid value" in result.output

    def test_config_unknown_action(self):
        result = runner.invoke(app, ["config", "unknown_action"])
        assert result.exit_code == 1
        assert "Unknown action" in result.output


class TestResolveWithCommonPrefix:
    ARCHETYPE = """<archetype-flow common-prefix="app">
    <flow-step id="app">
        <flow-input id="name" type="text"/>
    </flow-step>
</archetype-flow>
"""

    def test_batch_answers(self, make_archetype, tmp_path):
        answers = tmp_path / "answers.yaml"
        answers.write_text(yaml.safe_dump({"app.name": "demo"}))
        result = runner.invoke(
            app,
            ["--json", "resolve", "--batch", str(make_archetype(self.ARCHETYPE)), "-a", str(answers)],
        )
        assert result.exit_code == 0, result.output
        assert _json(result.output)["choices"]["app.name"] == "demo"

    def test_interactive(self, make_archetype):
        result = runner.invoke(app, ["resolve", str(make_archetype(self.ARCHETYPE))], input="demo\n")
        assert result.exit_code == 0, result.output
        assert "Resolved" in result.output
