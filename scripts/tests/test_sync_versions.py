"""Tests for sync_versions.py — @sync comments and the properties they update."""

import logging

import pytest

from pomtuner.errors import ConfigurationError, ExpressionError
from pomtuner.pom_transformer import transform_string
from pomtuner.resolver import LocalRepositoryResolver, PomModelCache
from pomtuner.sync_versions import SyncExpression, sync_tree_versions, sync_versions

PROPERTIES = """\
    <properties>
        <quarkus.version>3.8.0</quarkus.version>
        <avro.version>1.11.0</avro.version><!-- @sync io.quarkus:quarkus-bom:${quarkus.version} dep:org.apache.avro:avro -->
        <assertj.version>3.0</assertj.version><!-- @sync io.quarkus:quarkus-build-parent:${quarkus.version} prop:assertj.version -->
        <other.version>1.0</other.version>
        <!-- @sync io.quarkus:quarkus-bom:${quarkus.version} dep:org.apache.avro:avro -->
    </properties>"""


def pom(properties: str) -> str:
    return "\n".join([
        "<project>",
        "    <groupId>org.acme</groupId>",
        "    <artifactId>root</artifactId>",
        "    <version>1.0.0</version>",
        properties,
        "</project>",
        "",
    ])


def evaluate_with(**properties):
    def evaluate(raw):
        for name, value in properties.items():
            raw = raw.replace("${" + name.replace("_", ".") + "}", value)
        return raw
    return evaluate


@pytest.fixture
def quarkus_repository(install_pom, artifact_pom):
    install_pom("io.quarkus:quarkus-bom:3.8.0", artifact_pom(
        "io.quarkus:quarkus-bom:3.8.0",
        properties={"avro.version": "1.11.3"},
        managed=["org.apache.avro:avro:${avro.version}"],
    ))
    install_pom("io.quarkus:quarkus-parent:3.8.0", artifact_pom(
        "io.quarkus:quarkus-parent:3.8.0", properties={"assertj.version": "3.25.1"},
    ))
    install_pom("io.quarkus:quarkus-build-parent:3.8.0", artifact_pom(
        "io.quarkus:quarkus-build-parent:3.8.0", parent="io.quarkus:quarkus-parent:3.8.0",
    ))
    return install_pom("org.apache.camel:camel-parent:4.4.0", artifact_pom(
        "org.apache.camel:camel-parent:4.4.0", properties={"quarkus.version": "3.8.0"},
    ))


@pytest.fixture
def pom_models(quarkus_repository):
    return PomModelCache(LocalRepositoryResolver(quarkus_repository))


class TestSyncExpression:
    def test_parse(self):
        expression = SyncExpression.parse("avro.version", " @sync io.quarkus:quarkus-bom:${quarkus.version} dep:org.apache.avro:avro ")
        assert expression == SyncExpression(
            "avro.version", "io.quarkus", "quarkus-bom", "${quarkus.version}", "dep", "org.apache.avro:avro",
        )
        assert expression.required_properties == ("quarkus.version",)

    def test_not_a_sync_comment(self):
        assert SyncExpression.parse("a", " just a comment ") is None
        assert SyncExpression.parse("a", " @sync io.quarkus:quarkus-bom dep:x:y ") is None

    def test_literal_version_requires_nothing(self):
        assert SyncExpression.parse("a", "@sync g:a:1.0 prop:x").required_properties == ()


class TestSyncVersions:
    def test_prop_and_dep(self, pom_models):
        result = transform_string(pom(PROPERTIES), sync_versions(pom_models, evaluate_with(quarkus_version="3.8.0")))
        assert "<avro.version>1.11.3</avro.version><!-- @sync" in result
        assert "<assertj.version>3.25.1</assertj.version><!-- @sync" in result
        assert "<other.version>1.0</other.version>" in result
        assert "<quarkus.version>3.8.0</quarkus.version>" in result

    def test_dependent_property_is_synced_first(self, pom_models):
        source = pom(PROPERTIES.replace(
            "<quarkus.version>3.8.0</quarkus.version>",
            "<quarkus.version>3.7.0</quarkus.version>"
            "<!-- @sync org.apache.camel:camel-parent:${camel.version} prop:quarkus.version -->",
        ))
        evaluate = evaluate_with(camel_version="4.4.0", quarkus_version="3.7.0")
        result = transform_string(source, sync_versions(pom_models, evaluate))
        assert "<quarkus.version>3.8.0</quarkus.version>" in result
        assert "<avro.version>1.11.3</avro.version>" in result

    def test_cycle(self, pom_models):
        source = pom("\n".join([
            "    <properties>",
            "        <a.version>1</a.version><!-- @sync io.quarkus:quarkus-bom:${b.version} prop:avro.version -->",
            "        <b.version>1</b.version><!-- @sync io.quarkus:quarkus-bom:${a.version} prop:avro.version -->",
            "    </properties>",
        ]))
        with pytest.raises(ExpressionError, match="a.version, b.version. Is there perhaps a dependency cycle"):
            transform_string(source, sync_versions(pom_models, evaluate_with()))

    def test_version_transformation(self, pom_models):
        result = transform_string(pom(PROPERTIES), sync_versions(
            pom_models,
            evaluate_with(quarkus_version="3.8.0"),
            {"avro.version": "${version}-redhat-00001"},
        ))
        assert "<avro.version>1.11.3-redhat-00001</avro.version>" in result

    def test_invalid_version_transformation(self, pom_models):
        with pytest.raises(ConfigurationError, match="Invalid version transformation of avro.version"):
            transform_string(pom(PROPERTIES), sync_versions(
                pom_models, evaluate_with(quarkus_version="3.8.0"), {"avro.version": "${build}"},
            ))

    def test_unknown_method(self, pom_models):
        source = pom(PROPERTIES.replace("dep:org.apache.avro:avro -->", "pom:org.apache.avro:avro -->", 1))
        with pytest.raises(ConfigurationError, match="Unexpected method pom"):
            transform_string(source, sync_versions(pom_models, evaluate_with(quarkus_version="3.8.0")))

    def test_missing_property(self, pom_models):
        source = pom(PROPERTIES.replace("prop:assertj.version", "prop:nope.version"))
        with pytest.raises(ExpressionError, match="No property nope.version in io.quarkus:quarkus-build-parent:3.8.0"):
            transform_string(source, sync_versions(pom_models, evaluate_with(quarkus_version="3.8.0")))

    def test_missing_dependency(self, pom_models):
        source = pom(PROPERTIES.replace("dep:org.apache.avro:avro -->", "dep:org.apache.avro:nope -->", 1))
        with pytest.raises(ExpressionError, match="No such dependency org.apache.avro:nope"):
            transform_string(source, sync_versions(pom_models, evaluate_with(quarkus_version="3.8.0")))

    def test_no_properties(self, pom_models):
        source = pom("    <packaging>pom</packaging>")
        assert transform_string(source, sync_versions(pom_models, evaluate_with())) == source

    def test_logs_changes(self, pom_models, caplog):
        with caplog.at_level(logging.INFO, logger="pomtuner"):
            result = transform_string(pom(PROPERTIES), sync_versions(pom_models, evaluate_with(quarkus_version="3.8.0")))
            transform_string(result, sync_versions(pom_models, evaluate_with(quarkus_version="3.8.0")))
        assert "🚀 avro.version: 1.11.0 -> 1.11.3" in caplog.text
        assert "✓ avro.version: 1.11.3" in caplog.text


class TestSyncTreeVersions:
    def test_rewrites_root_pom_once(self, write_tree, pom_xml, pom_models):
        root = write_tree({"pom.xml": pom_xml("root", extra=PROPERTIES)})
        assert sync_tree_versions(root / "pom.xml", pom_models)
        assert "<avro.version>1.11.3</avro.version>" in (root / "pom.xml").read_text()
        assert not sync_tree_versions(root / "pom.xml", pom_models)

    def test_user_properties_win(self, write_tree, pom_xml, install_pom, artifact_pom, pom_models):
        install_pom("io.quarkus:quarkus-bom:3.9.0", artifact_pom(
            "io.quarkus:quarkus-bom:3.9.0", managed=["org.apache.avro:avro:1.12.0"],
        ))
        root = write_tree({"pom.xml": pom_xml("root", extra=PROPERTIES.split("        <assertj")[0] + "    </properties>")})
        sync_tree_versions(root / "pom.xml", pom_models, user_properties={"quarkus.version": "3.9.0"})
        assert "<avro.version>1.12.0</avro.version>" in (root / "pom.xml").read_text()
