"""Tests for expressions.py — active profiles and ${...} evaluation."""

import pytest

from pomtuner.errors import ConsistencyError, ExpressionError
from pomtuner.expressions import ActiveProfiles, require_literal
from pomtuner.pom_models import Ga, Profile
from pomtuner.source_tree import MavenSourceTree

ROOT = """\
<project>
    <groupId>org.acme</groupId>
    <artifactId>root</artifactId>
    <version>1.0.0</version>
    <packaging>pom</packaging>
    <properties>
        <camel.version>4.4.0</camel.version>
        <camel-quarkus.version>${project.version}</camel-quarkus.version>
        <loop.a>${loop.b}</loop.a>
        <loop.b>${loop.a}</loop.b>
    </properties>
    <modules>
        <module>child</module>
    </modules>
    <profiles>
        <profile>
            <id>next</id>
            <properties>
                <camel.version>4.5.0</camel.version>
            </properties>
        </profile>
    </profiles>
</project>
"""

CHILD = """\
<project>
    <parent>
        <groupId>org.acme</groupId>
        <artifactId>root</artifactId>
        <version>1.0.0</version>
    </parent>
    <artifactId>child</artifactId>
    <properties>
        <greeting>camel ${camel.version} in ${project.artifactId}</greeting>
    </properties>
</project>
"""


@pytest.fixture
def tree(write_tree):
    root = write_tree({"pom.xml": ROOT, "child/pom.xml": CHILD})
    return MavenSourceTree.of(root / "pom.xml")


def _child(tree):
    return tree.modules_by_ga[Ga("org.acme", "child")]


class TestActiveProfiles:
    def test_default_section_always_active(self):
        assert ActiveProfiles.of("!x")(Profile())

    def test_enabled_and_disabled(self):
        profiles = ActiveProfiles.of("a", "!b")
        assert profiles(Profile("a"))
        assert not profiles(Profile("c"))
        assert not profiles(Profile("b", activation={"activeByDefault": True}))

    def test_active_by_default(self):
        assert ActiveProfiles.of()(Profile("b", activation={"activeByDefault": True}))


class TestExpressionEvaluator:
    def test_literal_passes_through(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of())
        assert evaluator.evaluate("plain", _child(tree)) == "plain"
        assert evaluator.evaluate(None, _child(tree)) is None

    def test_inherited_and_nested_properties(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of())
        assert evaluator.evaluate("${greeting}", _child(tree)) == "camel 4.4.0 in child"
        assert evaluator.evaluate("${camel-quarkus.version}", _child(tree)) == "1.0.0"

    def test_active_profile_overrides(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of("next"))
        assert evaluator.evaluate("${camel.version}", _child(tree)) == "4.5.0"

    def test_user_properties_win(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of(), {"camel.version": "5.0.0"})
        assert evaluator.evaluate("${camel.version}", _child(tree)) == "5.0.0"

    def test_builtins(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of())
        child = _child(tree)
        assert evaluator.evaluate("${project.groupId}:${pom.artifactId}", child) == "org.acme:child"
        assert evaluator.evaluate("${project.parent.artifactId}", child) == "root"
        assert evaluator.evaluate("${project.basedir}", child) == str(tree.root_directory / "child")
        assert evaluator.evaluate("${project.packaging}", tree.root_module) == "pom"

    def test_undefined_property(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of())
        with pytest.raises(ExpressionError, match=r"Cannot evaluate \$\{nope\} in child/pom.xml"):
            evaluator.evaluate("${nope}", _child(tree))

    def test_cycle(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of())
        with pytest.raises(ExpressionError, match="Cyclic property reference loop.a -> loop.b -> loop.a"):
            evaluator.evaluate("${loop.a}", tree.root_module)

    def test_effective_properties_root_first(self, tree):
        evaluator = tree.get_expression_evaluator(ActiveProfiles.of("next"))
        props = evaluator.effective_properties(_child(tree))
        assert props["camel.version"] == "4.5.0"
        assert "greeting" in props


class TestRequireLiteral:
    def test_literal(self):
        assert require_literal("1.0", "pom.xml", "version") == "1.0"

    def test_placeholder(self):
        with pytest.raises(ConsistencyError) as info:
            require_literal("${v}", "a/pom.xml", "version")
        assert info.value.pom_path == "a/pom.xml"
        assert info.value.actual == "${v}"
