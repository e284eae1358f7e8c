"""Shared test fixtures for the pomtuner test suite."""

import textwrap
from pathlib import Path

import pytest

from pomtuner.pom_models import Dependency, Module, ParentRef, Profile, Ga


@pytest.fixture
def tmp_pom(tmp_path):
    """Factory fixture that writes a pom.xml to a temp directory and returns the path."""
    def _write(content: str) -> Path:
        pom = tmp_path / "pom.xml"
        pom.write_text(textwrap.dedent(content), encoding="utf-8")
        return pom
    return _write


@pytest.fixture
def pom_xml():
    """Factory fixture rendering a small POM.

    ``parent`` is the artifactId of a parent in ``org.acme``; ``dependencies``
    holds artifactIds in ``org.acme``; ``profiles`` maps profile ids to
    ``{"modules": [...], "dependencies": [...]}``.
    """
    def _render(artifact_id, parent=None, modules=(), dependencies=(), profiles=None,
                version="1.0.0", packaging=None, extra=""):
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<project xmlns="http://maven.apache.org/POM/4.0.0">',
            "    <modelVersion>4.0.0</modelVersion>",
        ]
        if parent is not None:
            lines += [
                "    <parent>",
                "        <groupId>org.acme</groupId>",
                f"        <artifactId>{parent}</artifactId>",
                f"        <version>{version}</version>",
                "    </parent>",
            ]
        else:
            lines.append("    <groupId>org.acme</groupId>")
        lines.append(f"    <artifactId>{artifact_id}</artifactId>")
        if parent is None:
            lines.append(f"    <version>{version}</version>")
        if packaging or modules:
            lines.append(f"    <packaging>{packaging or 'pom'}</packaging>")
        if modules:
            lines.append("    <modules>")
            lines += [f"        <module>{m}</module>" for m in modules]
            lines.append("    </modules>")
        if extra:
            lines.append(extra)
        lines += _dependencies(dependencies, "    ")
        if profiles:
            lines.append("    <profiles>")
            for profile_id, content in profiles.items():
                lines += ["        <profile>", f"            <id>{profile_id}</id>"]
                if content.get("modules"):
                    lines.append("            <modules>")
                    lines += [f"                <module>{m}</module>" for m in content["modules"]]
                    lines.append("            </modules>")
                lines += _dependencies(content.get("dependencies", ()), "            ")
                lines.append("        </profile>")
            lines.append("    </profiles>")
        lines.append("</project>")
        return "\n".join(lines) + "\n"
    return _render


def _dependencies(artifact_ids, indent: str) -> list:
    if not artifact_ids:
        return []
    lines = [f"{indent}<dependencies>"]
    for artifact_id in artifact_ids:
        lines += [
            f"{indent}    <dependency>",
            f"{indent}        <groupId>org.acme</groupId>",
            f"{indent}        <artifactId>{artifact_id}</artifactId>",
            f"{indent}    </dependency>",
        ]
    lines.append(f"{indent}</dependencies>")
    return lines


@pytest.fixture
def write_tree(tmp_path):
    """Factory fixture writing ``{relative_path: content}`` under a temp directory.

    Returns the root directory.
    """
    def _write(files: dict) -> Path:
        for rel, content in files.items():
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return tmp_path
    return _write


@pytest.fixture
def simple_tree(write_tree, pom_xml):
    """A root aggregating ``core``, ``ext-a`` (depends on core) and ``ext-b``."""
    return write_tree({
        "pom.xml": pom_xml("root", modules=["core", "ext-a", "ext-b"]),
        "core/pom.xml": pom_xml("core", parent="root"),
        "ext-a/pom.xml": pom_xml("ext-a", parent="root", dependencies=["core"]),
        "ext-b/pom.xml": pom_xml("ext-b", parent="root"),
    })


@pytest.fixture
def simple_module():
    """A minimal Module with one dependency, for tests that need no files."""
    return Module(
        pom_path="app/pom.xml",
        ga=Ga("org.acme", "app"),
        version="1.0.0",
        parent=ParentRef(Ga("org.acme", "root"), "1.0.0"),
        profiles=[
            Profile(
                dependencies=[Dependency(group_id="org.acme", artifact_id="lib", version="${lib.version}")],
                properties={"lib.version": "2.0"},
            ),
        ],
    )


@pytest.fixture
def install_pom(tmp_path):
    """Factory fixture writing a ``pom`` artifact into a local repository.

    Takes ``groupId:artifactId:version`` and the POM content; returns the
    repository root, ``tmp_path / "m2"``.
    """
    def _install(gav: str, content: str) -> Path:
        group_id, artifact_id, version = gav.split(":")
        directory = tmp_path.joinpath("m2", *group_id.split("."), artifact_id, version)
        directory.mkdir(parents=True, exist_ok=True)
        (directory / f"{artifact_id}-{version}.pom").write_text(content, encoding="utf-8")
        return tmp_path / "m2"
    return _install


@pytest.fixture
def artifact_pom():
    """Factory fixture rendering a POM as published to a repository.

    ``gav`` and ``parent`` are ``groupId:artifactId:version`` strings;
    ``managed`` holds ``groupId:artifactId:version[:type:scope]`` entries.
    """
    def _render(gav, parent=None, properties=None, managed=()):
        group_id, artifact_id, version = gav.split(":")
        lines = ['<project xmlns="http://maven.apache.org/POM/4.0.0">', "  <modelVersion>4.0.0</modelVersion>"]
        if parent is not None:
            parent_group, parent_artifact, parent_version = parent.split(":")
            lines += [
                "  <parent>",
                f"    <groupId>{parent_group}</groupId>",
                f"    <artifactId>{parent_artifact}</artifactId>",
                f"    <version>{parent_version}</version>",
                "  </parent>",
            ]
        lines += [
            f"  <groupId>{group_id}</groupId>",
            f"  <artifactId>{artifact_id}</artifactId>",
            f"  <version>{version}</version>",
            "  <packaging>pom</packaging>",
        ]
        if properties:
            lines.append("  <properties>")
            lines += [f"    <{name}>{value}</{name}>" for name, value in properties.items()]
            lines.append("  </properties>")
        if managed:
            lines += ["  <dependencyManagement>", "    <dependencies>"]
            for entry in managed:
                dep_group, dep_artifact, dep_version, *rest = entry.split(":")
                lines += [
                    "      <dependency>",
                    f"        <groupId>{dep_group}</groupId>",
                    f"        <artifactId>{dep_artifact}</artifactId>",
                    f"        <version>{dep_version}</version>",
                ]
                if rest:
                    lines += [f"        <type>{rest[0]}</type>", f"        <scope>{rest[1]}</scope>"]
                lines.append("      </dependency>")
            lines += ["    </dependencies>", "  </dependencyManagement>"]
        lines.append("</project>")
        return "\n".join(lines) + "\n"
    return _render
