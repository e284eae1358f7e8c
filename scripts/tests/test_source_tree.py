"""Tests for source_tree.py — loading, closures, unlinking and version updates."""

import pytest

from pomtuner.errors import ConsistencyError, PomStructureError
from pomtuner.expressions import ActiveProfiles
from pomtuner.pom_models import DependencyEdge, EdgeKind, Ga, Gavtcs
from pomtuner.pom_transformer import PomTransformer
from pomtuner.source_tree import MavenSourceTree
from pomtuner.transformations import DEFAULT_MODULE_MARKER, add_dependency_if_needed

NO_PROFILES = ActiveProfiles.of()


def ga(artifact_id: str) -> Ga:
    return Ga("org.acme", artifact_id)


class TestLoading:
    def test_modules_by_path_and_ga(self, simple_tree):
        tree = MavenSourceTree.of(simple_tree / "pom.xml")
        assert sorted(tree.modules_by_path) == ["core/pom.xml", "ext-a/pom.xml", "ext-b/pom.xml", "pom.xml"]
        assert tree.root_module.ga == ga("root")
        assert tree.modules_by_ga[ga("ext-a")].pom_path == "ext-a/pom.xml"
        assert tree.root_pom_path == (simple_tree / "pom.xml").resolve()

    def test_declaring_module(self, simple_tree):
        tree = MavenSourceTree.of(simple_tree / "pom.xml")
        assert tree.get_declaring_module(ga("core")) is tree.root_module
        assert tree.get_declaring_module(ga("root")) is None

    def test_modules_of_inactive_profiles_are_loaded(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["a"], profiles={"extra": {"modules": ["b"]}}),
            "a/pom.xml": pom_xml("a", parent="root"),
            "b/pom.xml": pom_xml("b", parent="root"),
        })
        tree = MavenSourceTree.of(root / "pom.xml")
        assert ga("b") in tree.modules_by_ga

    def test_nested_and_explicit_pom_paths(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["extensions"]),
            "extensions/pom.xml": pom_xml("extensions", parent="root", modules=["../tools/tools.xml"]),
            "tools/tools.xml": pom_xml("tools", parent="extensions"),
        })
        tree = MavenSourceTree.of(root / "pom.xml")
        assert tree.modules_by_ga[ga("tools")].pom_path == "tools/tools.xml"

    def test_missing_module(self, write_tree, pom_xml):
        root = write_tree({"pom.xml": pom_xml("root", modules=["gone"])})
        with pytest.raises(PomStructureError, match="Module 'gone' declared in pom.xml does not exist"):
            MavenSourceTree.of(root / "pom.xml")

    def test_missing_root_pom(self, tmp_path):
        with pytest.raises(PomStructureError, match="Root POM .* does not exist"):
            MavenSourceTree.of(tmp_path / "pom.xml")

    def test_duplicate_ga(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["a", "b"]),
            "a/pom.xml": pom_xml("same", parent="root"),
            "b/pom.xml": pom_xml("same", parent="root"),
        })
        with pytest.raises(PomStructureError, match="defined both in a/pom.xml and in b/pom.xml"):
            MavenSourceTree.of(root / "pom.xml")


class TestClosure:
    def test_required_modules(self, simple_tree):
        tree = MavenSourceTree.of(simple_tree / "pom.xml")
        assert tree.find_required_modules({ga("ext-a")}, NO_PROFILES) == {ga("ext-a"), ga("core")}

    def test_complement(self, simple_tree):
        tree = MavenSourceTree.of(simple_tree / "pom.xml")
        assert tree.complement({ga("ext-a"), ga("core")}) == {ga("ext-b")}

    def test_transitive_chain(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["a", "b", "c", "d"]),
            "a/pom.xml": pom_xml("a", parent="root", dependencies=["b"]),
            "b/pom.xml": pom_xml("b", parent="root", dependencies=["c"]),
            "c/pom.xml": pom_xml("c", parent="root", profiles={"p1": {"dependencies": ["d"]}}),
            "d/pom.xml": pom_xml("d", parent="root"),
        })
        tree = MavenSourceTree.of(root / "pom.xml")
        assert tree.find_required_modules({ga("a")}, NO_PROFILES) == {ga("a"), ga("b"), ga("c")}
        assert ga("d") in tree.find_required_modules({ga("a")}, ActiveProfiles.of("p1"))
        assert tree.collect_transitive_dependencies(ga("a"), NO_PROFILES) == {ga("b"), ga("c")}

    def test_parent_and_aggregator_are_required(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["extensions"]),
            "extensions/pom.xml": pom_xml("extensions", parent="root", modules=["x"]),
            "extensions/x/pom.xml": pom_xml("x", parent="root"),
        })
        tree = MavenSourceTree.of(root / "pom.xml")
        assert tree.find_required_modules({ga("x")}, NO_PROFILES) == {ga("x"), ga("extensions")}

    def test_placeholder_coordinates_are_evaluated(self, write_tree, pom_xml):
        extra = (
            "    <dependencies>\n"
            "        <dependency>\n"
            "            <groupId>${project.groupId}</groupId>\n"
            "            <artifactId>core</artifactId>\n"
            "        </dependency>\n"
            "    </dependencies>"
        )
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["core", "app"]),
            "core/pom.xml": pom_xml("core", parent="root"),
            "app/pom.xml": pom_xml("app", parent="root", extra=extra),
        })
        tree = MavenSourceTree.of(root / "pom.xml")
        assert tree.find_required_modules({ga("app")}, NO_PROFILES) == {ga("app"), ga("core")}

    def test_virtual_edges(self, simple_tree):
        PomTransformer(simple_tree / "ext-b" / "pom.xml").transform(
            add_dependency_if_needed(Gavtcs.virtual("org.acme", "ext-a", "${project.version}"))
        )
        tree = MavenSourceTree.of(simple_tree / "pom.xml")
        edges = tree.collect_own_dependencies(ga("ext-b"), NO_PROFILES)
        edge = next(e for e in edges if e.ga == ga("ext-a"))
        assert edge.kind is EdgeKind.VIRTUAL
        assert DependencyEdge(ga("root")) in edges
        assert tree.find_required_modules({ga("ext-b")}, NO_PROFILES) == {ga("ext-a"), ga("ext-b"), ga("core")}

    def test_unknown_seed(self, simple_tree):
        tree = MavenSourceTree.of(simple_tree / "pom.xml")
        with pytest.raises(PomStructureError, match="org.acme:nope"):
            tree.find_required_modules({ga("nope")}, NO_PROFILES)


class TestUnlinkRelink:
    def test_unlink_comments_out_excluded_modules(self, simple_tree):
        tree = MavenSourceTree.of(simple_tree / "pom.xml")
        tree.unlink_modules({ga("ext-a"), ga("core")}, NO_PROFILES)
        content = (simple_tree / "pom.xml").read_text()
        assert "<!-- <module>ext-b</module> --><!-- disabled by pomtuner:prod-excludes -->" in content
        assert "        <module>core</module>\n" in content
        reloaded = MavenSourceTree.of(simple_tree / "pom.xml")
        assert ga("ext-b") not in reloaded.modules_by_ga

    def test_unlink_is_idempotent(self, simple_tree):
        keep = {ga("ext-a"), ga("core")}
        MavenSourceTree.of(simple_tree / "pom.xml").unlink_modules(keep, NO_PROFILES)
        once = (simple_tree / "pom.xml").read_bytes()
        MavenSourceTree.of(simple_tree / "pom.xml").unlink_modules(keep, NO_PROFILES)
        assert (simple_tree / "pom.xml").read_bytes() == once

    def test_relink_is_inverse_of_unlink(self, simple_tree):
        original = (simple_tree / "pom.xml").read_bytes()
        MavenSourceTree.of(simple_tree / "pom.xml").unlink_modules({ga("core")}, NO_PROFILES)
        assert (simple_tree / "pom.xml").read_bytes() != original
        relinked = MavenSourceTree.of(simple_tree / "pom.xml").relink_modules()
        assert (simple_tree / "pom.xml").read_bytes() == original
        assert set(relinked.modules_by_ga) == {ga("root"), ga("core"), ga("ext-a"), ga("ext-b")}

    def test_children_of_unlinked_aggregator_are_left_alone(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["core", "extensions"]),
            "core/pom.xml": pom_xml("core", parent="root"),
            "extensions/pom.xml": pom_xml("extensions", parent="root", modules=["x"]),
            "extensions/x/pom.xml": pom_xml("x", parent="root"),
        })
        nested = (root / "extensions" / "pom.xml").read_bytes()
        MavenSourceTree.of(root / "pom.xml").unlink_modules({ga("core")}, NO_PROFILES)
        assert (root / "extensions" / "pom.xml").read_bytes() == nested
        assert "<!-- <module>extensions</module> -->" in (root / "pom.xml").read_text()

    def test_relink_restores_nested_levels(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["core", "extensions"]),
            "core/pom.xml": pom_xml("core", parent="root"),
            "extensions/pom.xml": pom_xml("extensions", parent="root", modules=["x", "y"]),
            "extensions/x/pom.xml": pom_xml("x", parent="root"),
            "extensions/y/pom.xml": pom_xml("y", parent="root"),
        })
        originals = {p: (root / p).read_bytes() for p in ("pom.xml", "extensions/pom.xml")}
        MavenSourceTree.of(root / "pom.xml").unlink_modules({ga("core"), ga("x"), ga("extensions")}, NO_PROFILES)
        MavenSourceTree.of(root / "pom.xml").unlink_modules({ga("core")}, NO_PROFILES)
        tree = MavenSourceTree.of(root / "pom.xml").relink_modules(marker=DEFAULT_MODULE_MARKER)
        assert {p: (root / p).read_bytes() for p in originals} == originals
        assert ga("y") in tree.modules_by_ga

    def test_declarations_in_inactive_profiles_are_kept(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["a"], profiles={"extra": {"modules": ["b"]}}),
            "a/pom.xml": pom_xml("a", parent="root"),
            "b/pom.xml": pom_xml("b", parent="root"),
        })
        original = (root / "pom.xml").read_bytes()
        MavenSourceTree.of(root / "pom.xml").unlink_modules({ga("a")}, NO_PROFILES)
        assert (root / "pom.xml").read_bytes() == original
        MavenSourceTree.of(root / "pom.xml").unlink_modules({ga("a")}, ActiveProfiles.of("extra"))
        assert "<!-- <module>b</module> -->" in (root / "pom.xml").read_text()

    def test_profile_without_id(self, write_tree, pom_xml):
        profiles = "\n".join([
            "    <profiles>",
            "        <profile>",
            "            <activation>",
            "                <activeByDefault>true</activeByDefault>",
            "            </activation>",
            "            <modules>",
            "                <module>a</module>",
            "            </modules>",
            "        </profile>",
            "    </profiles>",
        ])
        root = write_tree({
            "pom.xml": pom_xml("root", packaging="pom", extra=profiles),
            "a/pom.xml": pom_xml("a", parent="root"),
        })
        tree = MavenSourceTree.of(root / "pom.xml")
        assert tree.root_module.profiles[1].profile_id == "default"
        tree.unlink_modules(set(), NO_PROFILES)
        content = (root / "pom.xml").read_text()
        assert "<!-- <module>a</module> --><!-- disabled by pomtuner:prod-excludes -->" in content
        assert set(MavenSourceTree.of(root / "pom.xml").modules_by_ga) == {ga("root")}


class TestVersions:
    def test_set_versions(self, write_tree, pom_xml):
        extra = (
            "    <dependencyManagement>\n"
            "        <dependencies>\n"
            "            <dependency>\n"
            "                <groupId>org.acme</groupId>\n"
            "                <artifactId>core</artifactId>\n"
            "                <version>1.0.0</version>\n"
            "            </dependency>\n"
            "            <dependency>\n"
            "                <groupId>org.other</groupId>\n"
            "                <artifactId>lib</artifactId>\n"
            "                <version>1.0.0</version>\n"
            "            </dependency>\n"
            "        </dependencies>\n"
            "    </dependencyManagement>"
        )
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["core"], extra=extra),
            "core/pom.xml": pom_xml("core", parent="root"),
        })
        MavenSourceTree.of(root / "pom.xml").set_versions("2.0.0", NO_PROFILES)
        tree = MavenSourceTree.of(root / "pom.xml")
        assert tree.root_module.version == "2.0.0"
        core = tree.modules_by_ga[ga("core")]
        assert core.version == "2.0.0"
        assert not core.declares_version
        managed = {d.artifact_id: d.version for d in tree.root_module.default_profile.dependency_management}
        assert managed == {"core": "2.0.0", "lib": "1.0.0"}
        assert tree.assert_uniform_version() == "2.0.0"

    def test_assert_uniform_version(self, write_tree, pom_xml):
        root = write_tree({
            "pom.xml": pom_xml("root", modules=["core"]),
            "core/pom.xml": pom_xml("core", parent="root", extra="    <version>1.1.0</version>"),
        })
        tree = MavenSourceTree.of(root / "pom.xml")
        with pytest.raises(ConsistencyError) as info:
            tree.assert_uniform_version()
        assert info.value.pom_path == "core/pom.xml"
        assert (info.value.expected, info.value.actual) == ("1.0.0", "1.1.0")
