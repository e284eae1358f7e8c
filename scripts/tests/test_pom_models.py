"""Tests for pom_models.py — coordinates, virtual dependencies and module helpers."""

import pytest

from pomtuner.errors import PomStructureError
from pomtuner.pom_models import (
    Dependency,
    DependencyEdge,
    EdgeKind,
    Ga,
    Gav,
    Gavtcs,
    Module,
    Profile,
    require_ga,
)


class TestCoordinates:
    def test_ga_of(self):
        assert Ga.of("org.acme:app") == Ga("org.acme", "app")

    def test_ga_of_rejects_wrong_segment_count(self):
        with pytest.raises(ValueError):
            Ga.of("org.acme:app:1.0")

    def test_ga_ordering(self):
        assert sorted([Ga("b", "a"), Ga("a", "z"), Ga("a", "b")]) == [
            Ga("a", "b"), Ga("a", "z"), Ga("b", "a"),
        ]

    def test_gav_str_and_to_ga(self):
        gav = Gav.of("org.acme:app:1.0")
        assert str(gav) == "org.acme:app:1.0"
        assert gav.to_ga() == Ga("org.acme", "app")

    def test_gav_is_resolved(self):
        assert Gav("g", "a", "1.0").is_resolved
        assert not Gav("g", "a", "${v}").is_resolved
        assert not Gav("g", "a").is_resolved


class TestGavtcs:
    def test_virtual(self):
        gavtcs = Gavtcs.virtual("org.acme", "core", "1.0")
        assert gavtcs.type == "pom"
        assert gavtcs.scope == "test"
        assert gavtcs.exclusions == (("*", "*"),)
        assert gavtcs.is_virtual

    def test_plain_dependency_is_not_virtual(self):
        assert not Gavtcs("org.acme", "core").is_virtual

    def test_pom_test_without_wildcard_exclusion_is_not_virtual(self):
        assert not Gavtcs("org.acme", "core", type="pom", scope="test").is_virtual

    def test_str_omits_trailing_empty_parts(self):
        assert str(Gavtcs("org.acme", "core", "1.0")) == "org.acme:core:1.0:jar"


class TestDependency:
    def test_to_gavtcs_keeps_raw_values(self):
        dep = Dependency("org.acme", "core", "${v}", scope="test", dep_type="pom", exclusions=[("*", "*")])
        assert dep.to_gavtcs() == Gavtcs("org.acme", "core", "${v}", "pom", None, "test", (("*", "*"),))
        assert dep.is_virtual

    def test_bom_import(self):
        assert Dependency("org.acme", "bom", "1", scope="import", dep_type="pom").is_bom_import
        assert not Dependency("org.acme", "bom", "1", dep_type="pom").is_bom_import


class TestModule:
    def test_directory(self, simple_module):
        assert simple_module.directory == "app"
        assert Module("pom.xml", Ga("g", "a")).directory == ""

    def test_gav(self, simple_module):
        assert simple_module.gav == Gav("org.acme", "app", "1.0.0")

    def test_module_paths_by_profile(self):
        module = Module(
            "pom.xml",
            Ga("g", "a"),
            profiles=[Profile(modules=["a"]), Profile("extra", modules=["b"])],
        )
        assert module.module_paths() == ["a", "b"]
        assert module.module_paths(lambda p: p.is_default) == ["a"]


class TestDependencyEdge:
    def test_kind_does_not_affect_equality(self):
        assert DependencyEdge(Ga("g", "a"), EdgeKind.VIRTUAL) == DependencyEdge(Ga("g", "a"))
        assert DependencyEdge(Ga("g", "a"), EdgeKind.VIRTUAL).is_virtual


class TestRequireGa:
    def test_missing_group_id(self):
        with pytest.raises(PomStructureError, match="missing groupId"):
            require_ga(None, "a", "pom.xml")

    def test_placeholder_rejected(self):
        with pytest.raises(PomStructureError, match="must be a literal"):
            require_ga("${g}", "a", "pom.xml")
