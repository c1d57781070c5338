"""Tests for the persisted choices file."""

import pytest

from archeflow.config import ArcheflowConfig, ResolverConfig, configure
from archeflow.context import ChoiceTree
from archeflow.core.models.context import OptionValue, SelectValue, TextValue
from archeflow.errors import InputValueError
from archeflow.storage import load_choices, save_choices


def _tree() -> ChoiceTree:
    tree = ChoiceTree()
    tree.set("app.name", TextValue(text="my app"))
    tree.set("app.greeting", TextValue(text="a=b\nsecond line"))
    tree.set("extras.health", OptionValue(enabled=True))
    tree.set("app.features", SelectValue(selected=("metrics", "health"), multiple=True))
    return tree


class TestChoicesFile:
    def test_round_trip(self, tmp_path):
        path = save_choices(_tree(), tmp_path / ".helidon")
        assert load_choices(path) == {
            "app.name": "my app",
            "app.greeting": "a=b\nsecond line",
            "extras.health": "true",
            "app.features": "metrics,health",
        }

    def test_file_format(self, tmp_path):
        path = save_choices(_tree(), tmp_path / ".helidon")
        lines = path.read_text().splitlines()
        assert lines[0].startswith("#")
        assert "FLOW.extras.health=true" in lines
        assert "FLOW.app.greeting=a=b\\nsecond line" in lines

    def test_other_keys_ignored(self, tmp_path):
        path = tmp_path / ".helidon"
        path.write_text(
            "# saved by another tool\n"
            "! also a comment\n"
            "FLOW.app.name=demo\n"
            "maven.version=3.9\n"
            "FLOW.app.url : jdbc:h2\n"
        )
        assert load_choices(path) == {"app.name": "demo", "app.url": "jdbc:h2"}

    def test_missing_file(self, tmp_path):
        assert load_choices(tmp_path / "none") == {}

    def test_line_without_separator(self, tmp_path):
        path = tmp_path / ".helidon"
        path.write_text("FLOW.app.name\n")
        with pytest.raises(InputValueError, match="expected key=value"):
            load_choices(path)

    def test_custom_prefix(self, tmp_path):
        path = save_choices(_tree(), tmp_path / "choices.properties", prefix="")
        assert "extras.health=true" in path.read_text().splitlines()
        assert load_choices(path, prefix="")["extras.health"] == "true"

    def test_defaults_from_config(self, tmp_path):
        target = tmp_path / "saved" / "choices"
        configure(
            ArcheflowConfig(resolver=ResolverConfig(choices_file=str(target), choices_prefix="X."))
        )
        save_choices(_tree())
        assert target.is_file()
        assert "X.app.name=my app" in target.read_text().splitlines()
        assert load_choices()["app.name"] == "my app"
