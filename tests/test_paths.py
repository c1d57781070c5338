"""Tests for choice path resolution and descriptor file paths."""

from pathlib import Path

import pytest

from archeflow.errors import InvalidPathError
from archeflow.utils.paths import (
    PathResolver,
    child_path,
    make_relative_to,
    parent_path,
    resolve_relative_to,
    split_path,
)


DECLARED = {
    "app",
    "app.name",
    "app.db",
    "app.db.url",
    "app.db.flavor",
    "observability",
    "observability.tracing",
}


@pytest.fixture
def resolver():
    return PathResolver(DECLARED)


class TestSplitPath:
    def test_segments(self):
        assert split_path("app.db.url") == ["app", "db", "url"]

    def test_empty_path_rejected(self):
        with pytest.raises(InvalidPathError):
            split_path("")

    def test_malformed_segment_rejected(self):
        with pytest.raises(InvalidPathError, match="invalid segment"):
            split_path("app..name")

    def test_parent_and_child(self):
        assert parent_path("app.db.url") == "app.db"
        assert parent_path("app") == ""
        assert child_path("", "app") == "app"
        assert child_path("app", "db") == "app.db"


class TestPathResolver:
    def test_relative_to_current_scope(self, resolver):
        assert resolver.resolve("url", current="app.db") == "app.db.url"

    def test_falls_back_to_absolute(self, resolver):
        """A path not found under the scope is tried from the top."""
        assert resolver.resolve("observability.tracing", current="app.db") == "observability.tracing"

    def test_root_prefix(self, resolver):
        assert resolver.resolve("ROOT.app.name", current="app.db") == "app.name"

    def test_parent_prefix(self, resolver):
        assert resolver.resolve("PARENT.name", current="app.db") == "app.name"

    def test_repeated_parent(self, resolver):
        assert resolver.resolve("PARENT.PARENT.observability", current="app.db") == "observability"

    def test_parent_beyond_root(self, resolver):
        with pytest.raises(InvalidPathError, match="level"):
            resolver.resolve("PARENT.PARENT.app", current="app")

    def test_root_only_first(self, resolver):
        with pytest.raises(InvalidPathError):
            resolver.resolve("app.ROOT.name", current="")

    def test_parent_after_segment(self, resolver):
        with pytest.raises(InvalidPathError):
            resolver.resolve("app.PARENT.name", current="")

    def test_root_alone(self, resolver):
        with pytest.raises(InvalidPathError):
            resolver.resolve("ROOT", current="app")

    def test_undeclared(self, resolver):
        with pytest.raises(InvalidPathError, match="no declared node"):
            resolver.resolve("missing", current="app")

    def test_common_prefix(self):
        resolver = PathResolver(DECLARED, common_prefix="app")
        assert resolver.resolve("db.url", current="observability") == "app.db.url"

    def test_absolute_external_paths(self, resolver):
        assert resolver.resolve_absolute("app.db.flavor") == "app.db.flavor"
        with pytest.raises(InvalidPathError):
            resolver.resolve_absolute("ROOT.app.name")
        with pytest.raises(InvalidPathError):
            resolver.resolve_absolute("db.flavor")


class TestResolveRelativeTo:
    def test_relative_path(self, tmp_path):
        base = tmp_path / "helidon-archetype.xml"
        result = resolve_relative_to("common/security.xml", base)
        assert result == (tmp_path / "common" / "security.xml").resolve()

    def test_absolute_path_unchanged(self, tmp_path):
        absolute = tmp_path / "elsewhere" / "x.xml"
        assert resolve_relative_to(absolute, Path("/arch/helidon-archetype.xml")) == absolute

    def test_parent_directory(self, tmp_path):
        base = tmp_path / "flavors" / "se.xml"
        assert resolve_relative_to("../common.xml", base) == (tmp_path / "common.xml").resolve()

    def test_make_relative(self, tmp_path):
        plan = tmp_path / "out" / "plan.yaml"
        source = tmp_path / "out" / "files" / "README.md"
        assert make_relative_to(source, plan) == "files/README.md"
