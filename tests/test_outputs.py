"""Tests for output selection, transformations and model merging."""

import pytest
import yaml

from archeflow.config import get_config
from archeflow.context import ChoiceTree
from archeflow.core.models.context import OptionValue, SelectValue, TextValue
from archeflow.descriptor import load_archetype
from archeflow.errors import OutputResolutionError
from archeflow.flow import FlowSession
from archeflow.output import choice_data, glob_to_regex, render_template, select_outputs


def _flow(body: str) -> str:
    return f"<archetype-flow>\n{body}\n</archetype-flow>\n"


STEP = '<flow-step id="app"><flow-input id="name" type="text" default="demo"/></flow-step>'


def _resolve(directory, answers=None, external=None):
    session = FlowSession(load_archetype(directory), external=external)
    session.run_batch(answers or {})
    return session.result()


class TestGlob:
    @pytest.mark.parametrize(
        "pattern,path,expected",
        [
            ("**/*.java", "Main.java", True),
            ("**/*.java", "src/main/java/Main.java", True),
            ("*.java", "src/Main.java", False),
            ("src/**", "src/a/b.txt", True),
            ("?.txt", "a.txt", True),
            ("?.txt", "ab.txt", False),
            ("**/*.mustache", "pom.xml", False),
        ],
    )
    def test_matches(self, pattern, path, expected):
        assert bool(glob_to_regex(pattern).fullmatch(path)) is expected


class TestDemoSelection:
    def test_files_and_model(self, demo_archetype):
        selection = _resolve(demo_archetype, {"observability.tracing": "zipkin"})

        targets = {f.target: f for f in selection.files}
        assert set(targets) == {"src/main/java/com/example/myapp/Main.java", "README.md"}
        assert targets["src/main/java/com/example/myapp/Main.java"].engine == "mustache"
        assert targets["README.md"].engine is None
        assert targets["README.md"].source == demo_archetype.resolve() / "files" / "README.md"

        assert selection.model == {
            "dependencies": ["io.zipkin", "io.helidon.core", "io.helidon.health"],
            "name": "myapp",
        }

    def test_unselected_branches_drop_out(self, demo_archetype):
        selection = _resolve(
            demo_archetype,
            {"observability.tracing": "jaeger", "extras.health": "false"},
            external={"app.name": "svc", "app.package": "io.acme"},
        )
        assert selection.model == {"dependencies": ["io.helidon.core"], "name": "svc"}
        assert "src/main/java/io/acme/Main.java" in [f.target for f in selection.files]
        assert selection.choices["app.name"] == "svc"
        assert selection.choices["extras.health"] is False

    def test_default_engine_from_config(self, demo_archetype):
        get_config().output.default_engine = "jinja"
        session = FlowSession(load_archetype(demo_archetype))
        session.run_batch({"observability.tracing": "zipkin"})
        selection = select_outputs(session.archetype, session.tree)
        assert {f.engine for f in selection.files} == {"jinja", None}

    def test_plan_yaml(self, demo_archetype, tmp_path):
        selection = _resolve(demo_archetype, {"observability.tracing": "zipkin"})
        plan = tmp_path / "out" / "plan.yaml"
        selection.to_yaml(plan)
        data = yaml.safe_load(plan.read_text())
        assert data["model"]["name"] == "myapp"
        assert data["choices"]["observability.tracing"] == "zipkin"
        assert {f["target"] for f in data["files"]} == {
            "src/main/java/com/example/myapp/Main.java",
            "README.md",
        }


class TestFileSelection:
    def test_single_file_target_interpolated(self, make_archetype):
        directory = make_archetype(
            {
                "helidon-archetype.xml": _flow(
                    STEP
                    + '<output><template source="app.yaml.mustache" target="config/${app.name}.yaml"/></output>'
                ),
                "app.yaml.mustache": "name: {{app.name}}\n",
            }
        )
        [resolved] = _resolve(directory).files
        assert resolved.target == "config/demo.yaml"
        assert resolved.engine == "mustache"

    def test_missing_single_file(self, make_archetype):
        directory = make_archetype(
            _flow(STEP + '<output><file source="missing.txt" target="missing.txt"/></output>')
        )
        with pytest.raises(OutputResolutionError, match="not found"):
            _resolve(directory)

    def test_include_without_matches(self, make_archetype):
        directory = make_archetype(
            {
                "helidon-archetype.xml": _flow(
                    STEP
                    + "<output><files><directory>files</directory>"
                    + "<includes><include>**/*.java</include></includes></files></output>"
                ),
                "files/README.md": "x",
            }
        )
        with pytest.raises(OutputResolutionError, match="matched no files"):
            _resolve(directory)

    def test_conditional_file_set(self, make_archetype):
        directory = make_archetype(
            {
                "helidon-archetype.xml": _flow(
                    STEP
                    + "<output>"
                    + "<files if=\"${app.name} == 'demo'\"><directory>demo</directory></files>"
                    + "<files if=\"${app.name} != 'demo'\"><directory>other</directory></files>"
                    + "</output>"
                ),
                "demo/a.txt": "a",
                "other/b.txt": "b",
            }
        )
        assert [f.target for f in _resolve(directory).files] == ["a.txt"]

    def test_transformations_apply_in_order(self, make_archetype):
        directory = make_archetype(
            {
                "helidon-archetype.xml": _flow(
                    STEP
                    + "<output>"
                    + '<transformation id="first"><replace regex="a" replacement="b"/></transformation>'
                    + '<transformation id="second"><replace regex="b" replacement="c"/></transformation>'
                    + '<files transformations="first,second"><directory>files</directory></files>'
                    + "</output>"
                ),
                "files/a.txt": "a",
            }
        )
        assert [f.target for f in _resolve(directory).files] == ["c.txt"]

    def test_transformation_from_unselected_output(self, make_archetype):
        directory = make_archetype(
            {
                "helidon-archetype.xml": _flow(
                    '<flow-step id="app"><flow-input id="rename" type="option" default="false">'
                    + '<output><transformation id="upper"><replace regex="a" replacement="A"/>'
                    + "</transformation></output>"
                    + "</flow-input></flow-step>"
                    + '<output><files transformations="upper"><directory>files</directory></files></output>'
                ),
                "files/a.txt": "a",
            }
        )
        with pytest.raises(OutputResolutionError, match="not selected"):
            _resolve(directory)
        assert [f.target for f in _resolve(directory, {"app.rename": "true"}).files] == ["A.txt"]

    def test_transformation_group_reference(self, make_archetype):
        directory = make_archetype(
            {
                "helidon-archetype.xml": _flow(
                    STEP
                    + "<output>"
                    + '<transformation id="strip"><replace regex="(.*)\\.mustache$" replacement="$1"/>'
                    + "</transformation>"
                    + '<templates transformations="strip"><directory>files</directory></templates>'
                    + "</output>"
                ),
                "files/pom.xml.mustache": "<project/>",
            }
        )
        assert [f.target for f in _resolve(directory).files] == ["pom.xml"]


class TestModelMerge:
    def test_value_last_wins_by_order(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + '<output><model><value key="port" order="50">8080</value></model></output>'
                + '<output><model><value key="port" order="10">9090</value></model></output>'
            )
        )
        assert _resolve(directory).model == {"port": "8080"}

    def test_same_order_follows_declaration(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + '<output><model><value key="port">8080</value></model></output>'
                + '<output><model><value key="port">9090</value></model></output>'
            )
        )
        assert _resolve(directory).model == {"port": "9090"}

    def test_maps_merge_recursively(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + '<output><model><map key="server"><value key="host">localhost</value>'
                + '<list key="paths"><value>/a</value></list></map></model></output>'
                + '<output><model><map key="server"><value key="port">8080</value>'
                + '<list key="paths"><value order="1">/b</value></list></map></model></output>'
            )
        )
        assert _resolve(directory).model == {
            "server": {"host": "localhost", "paths": ["/b", "/a"], "port": "8080"}
        }

    def test_kind_conflict(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + '<output><model><value key="deps">x</value></model></output>'
                + '<output><model><list key="deps"><value>y</value></list></model></output>'
            )
        )
        with pytest.raises(OutputResolutionError, match="deps"):
            _resolve(directory)

    def test_conditional_entries(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + "<output><model>"
                + "<value key=\"greeting\" if=\"${app.name} == 'demo'\">hi</value>"
                + "<value key=\"farewell\" if=\"${app.name} != 'demo'\">bye</value>"
                + "</model></output>"
            )
        )
        assert _resolve(directory).model == {"greeting": "hi"}

    def test_file_and_template_values(self, make_archetype):
        directory = make_archetype(
            {
                "helidon-archetype.xml": _flow(
                    STEP
                    + "<output><model>"
                    + '<value key="readme" file="snippets/readme.txt"/>'
                    + '<value key="title" template="jinja">{{ app.name | upper }}</value>'
                    + '<value key="raw" file="snippets/raw.txt" template="mustache"/>'
                    + "</model></output>"
                ),
                "snippets/readme.txt": "Hello ${app.name}",
                "snippets/raw.txt": "Hello {{ app.name }}",
            }
        )
        assert _resolve(directory).model == {
            "readme": "Hello ${app.name}",
            "title": "DEMO",
            "raw": "Hello demo",
        }

    def test_undefined_template_variable(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + '<output><model><value key="t" template="jinja">{{ missing.value }}</value></model></output>'
            )
        )
        with pytest.raises(OutputResolutionError, match="Cannot render"):
            _resolve(directory)

    def test_missing_model_file(self, make_archetype):
        directory = make_archetype(
            _flow(STEP + '<output><model><value key="k" file="nope.txt"/></model></output>')
        )
        with pytest.raises(OutputResolutionError, match="not found"):
            _resolve(directory)

    def test_override_beats_higher_order(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + '<output><model><value key="port" order="10" override="true">7070</value></model></output>'
                + '<output><model><value key="port" order="50">8080</value></model></output>'
            )
        )
        assert _resolve(directory).model == {"port": "7070"}

    def test_later_override_wins(self, make_archetype):
        directory = make_archetype(
            _flow(
                STEP
                + '<output><model><value key="port" override="true">7070</value></model></output>'
                + '<output><model><value key="port" override="true">9090</value></model></output>'
            )
        )
        assert _resolve(directory).model == {"port": "9090"}


FEATURES = (
    '<flow-step id="app">'
    + '<flow-input id="name" type="text" default="demo"/>'
    + '<flow-input id="features" type="select" multiple="true" default="metrics,health">'
    + '<flow-option id="metrics"/><flow-option id="health"/>'
    + "</flow-input>"
    + '<flow-input id="secure" type="option" default="false"/>'
    + "</flow-step>"
)


class TestTemplateEngines:
    def test_mustache_sections(self, make_archetype):
        directory = make_archetype(
            _flow(
                FEATURES
                + "<output><model>"
                + '<value key="list" template="mustache">{{#app.features}}{{.}},{{/app.features}}</value>'
                + '<value key="tls" template="mustache">{{^app.secure}}plain{{/app.secure}}</value>'
                + "</model></output>"
            )
        )
        assert _resolve(directory).model == {"list": "metrics,health,", "tls": "plain"}

    def test_render_mustache_directly(self):
        tree = ChoiceTree()
        tree.set("features", SelectValue(selected=("a", "b"), multiple=True))
        tree.set("app.name", TextValue(text="demo"))
        assert render_template("{{#features}}{{.}},{{/features}}", tree) == "a,b,"
        assert render_template("Hello {{app.name}}", tree) == "Hello demo"

    def test_choice_data(self):
        tree = ChoiceTree()
        tree.set("db", OptionValue(enabled=True))
        tree.set("db.url", TextValue(text="jdbc:h2:mem"))
        tree.set("tracing", SelectValue(selected=("zipkin",)))
        assert choice_data(tree) == {"db": {"url": "jdbc:h2:mem"}, "tracing": "zipkin"}

    def test_unclosed_mustache_section(self):
        tree = ChoiceTree()
        with pytest.raises(OutputResolutionError, match="Cannot render"):
            render_template("{{#features}}x", tree)

    def test_jinja_engine(self):
        tree = ChoiceTree()
        tree.set("app.name", TextValue(text="demo"))
        assert render_template("{{ app.name | upper }}", tree, engine="jinja") == "DEMO"

    def test_unknown_engine(self):
        with pytest.raises(OutputResolutionError, match="unknown engine"):
            render_template("x", ChoiceTree(), engine="velocity")
