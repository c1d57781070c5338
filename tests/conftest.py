"""Shared fixtures: isolated config and on-disk archetypes."""

from pathlib import Path

import pytest

import archeflow.config as config_module
from archeflow.config import reset_config
from archeflow.descriptor import DescriptorCache


MAIN_ARCHETYPE = r"""<?xml version="1.0" encoding="UTF-8"?>
<archetype-flow name="demo">
    <flow-step id="app" label="Application">
        <flow-input id="name" type="text" label="Project name" default="myapp"/>
        <flow-input id="package" type="text" label="Java package" default="com.example.myapp"/>
    </flow-step>
    <flow-step id="observability" label="Observability">
        <flow-input id="tracing" type="select" label="Tracing">
            <flow-option id="zipkin" label="Zipkin">
                <output>
                    <model>
                        <list key="dependencies" order="5">
                            <value>io.zipkin</value>
                        </list>
                    </model>
                </output>
            </flow-option>
            <flow-option id="jaeger" label="Jaeger"/>
        </flow-input>
    </flow-step>
    <flow-step id="extras" label="Extras" optional="true">
        <flow-input id="health" type="option" label="Health checks" default="true"/>
    </flow-step>
    <output>
        <transformation id="packaged">
            <replace regex="__pkg__" replacement="${app.package/\./\/}"/>
        </transformation>
        <transformation id="mustache">
            <replace regex="\.mustache$" replacement=""/>
        </transformation>
        <templates engine="mustache" transformations="packaged,mustache">
            <directory>files</directory>
            <includes>
                <include>**/*.mustache</include>
            </includes>
        </templates>
        <files>
            <directory>files</directory>
            <excludes>
                <exclude>**/*.mustache</exclude>
            </excludes>
        </files>
        <model>
            <value key="name">${app.name}</value>
            <list key="dependencies" order="10">
                <value>io.helidon.core</value>
            </list>
        </model>
    </output>
    <output if="${extras.health} == true">
        <model>
            <list key="dependencies">
                <value>io.helidon.health</value>
            </list>
        </model>
    </output>
</archetype-flow>
"""


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Keep tests away from the user's config file and ARCHEFLOW_* env vars."""
    config_dir = tmp_path_factory.mktemp("config")
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_dir / "config.json")
    for name in (
        "ARCHEFLOW_COMMON_PREFIX",
        "ARCHEFLOW_ENTRY_DESCRIPTOR",
        "ARCHEFLOW_CHOICES_FILE",
        "ARCHEFLOW_CLI_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def cache():
    return DescriptorCache()


def _write_files(root: Path, files: dict[str, str]) -> Path:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def make_archetype(tmp_path):
    """Factory writing {relative path: content} into a fresh archetype directory.

    A plain string is written as the entry descriptor.
    """
    counter = iter(range(1000))

    def make(files: dict[str, str] | str) -> Path:
        if isinstance(files, str):
            files = {"helidon-archetype.xml": files}
        return _write_files(tmp_path / f"archetype-{next(counter)}", files)

    return make


@pytest.fixture
def demo_archetype(tmp_path) -> Path:
    """A complete archetype directory with templates and static files."""
    return _write_files(
        tmp_path / "demo",
        {
            "helidon-archetype.xml": MAIN_ARCHETYPE,
            "files/src/main/java/__pkg__/Main.java.mustache": "package {{package}};\n",
            "files/README.md": "# Demo\n",
        },
    )
