"""Visitors over resolved dependency trees and inter-project conflict reports.

A resolved tree comes from an external collector (see :mod:`pomtuner.resolver`)
with conflict resolution already applied: every node is either a
:class:`Winner` with children or a :class:`Loser` pointing at the node that
won the conflict for the same ``groupId:artifactId``.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .gav_set import GavSet
from .pom_models import Ga, Gav

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " <- "


@dataclass(eq=False)
class Winner:
    """A node that took part in resolution; its children are resolved too."""
    artifact: Gav
    children: list = field(default_factory=list)


@dataclass(eq=False)
class Loser:
    """A node omitted in favor of ``winner``; it has no children of its own."""
    artifact: Gav
    winner: Optional[Winner] = field(default=None, repr=False)


def load_resolved_tree(data: dict):
    """Build a resolved tree from its JSON form.

    Each node is an object with ``groupId``, ``artifactId``, ``version`` and
    ``children``; a node omitted for a conflict carries
    ``omittedForConflictWith`` holding the version of the winner, which must
    appear as a regular node somewhere in the same tree.

    Raises:
        ValueError: If the winner of an omitted node is not in the tree.
    """
    winners = {}
    losers = []

    def build(node: dict):
        artifact = Gav(node["groupId"], node["artifactId"], node.get("version"))
        winner_version = node.get("omittedForConflictWith")
        if winner_version is not None:
            loser = Loser(artifact)
            losers.append((loser, winner_version))
            return loser
        winner = Winner(artifact, [build(c) for c in node.get("children", [])])
        winners.setdefault((artifact.to_ga(), artifact.version), winner)
        return winner

    root = build(data)
    for loser, version in losers:
        ga = loser.artifact.to_ga()
        winner = winners.get((ga, version))
        if winner is None:
            raise ValueError(f"No node {ga}:{version} for the omitted {loser.artifact}")
        loser.winner = winner
    return root


class DependencyVisitor:
    """Depth-first traversal redirecting conflict losers to their winners.

    Subclasses implement :meth:`enter`. ``self.stack`` holds the GAs of the
    ancestors of the node being entered, innermost last.
    """

    def __init__(self):
        self.stack = []

    def visit(self, node) -> None:
        ga = node.artifact.to_ga()
        if isinstance(node, Loser):
            if ga not in self.stack:
                self.visit(node.winner)
            return
        if ga in self.stack:
            return
        self.enter(ga, node.artifact.version)
        self.stack.append(ga)
        for child in node.children:
            self.visit(child)
        self.stack.pop()

    def enter(self, ga: Ga, version: str) -> None:
        raise NotImplementedError


def _add(mapping: dict, key, value) -> None:
    mapping.setdefault(key, set()).add(value)


def _render_set(values) -> str:
    return "[" + ", ".join(sorted(values)) + "]"


class ArtifactVersionCollector(DependencyVisitor):
    """Records every version seen per GA."""

    def __init__(self):
        super().__init__()
        self.artifact_versions = {}

    def enter(self, ga: Ga, version: str) -> None:
        _add(self.artifact_versions, ga, version)


class ProjectMapper:
    """Maps artifacts to the project they belong to.

    Args:
        transitive_projects: Project id to :class:`GavSet`; artifacts not
            contained in any of them belong to the project named by their groupId.
    """

    def __init__(self, transitive_projects: Optional[dict] = None):
        self.project_sets = dict(sorted((transitive_projects or {}).items()))

    def to_project_id(self, ga: Ga) -> str:
        for project_id, gav_set in self.project_sets.items():
            if gav_set.contains_ga(ga):
                return project_id
        return ga.group_id

    def find_project_predicate(self, project_id: str):
        gav_set = self.project_sets.get(project_id)
        if gav_set is not None:
            return gav_set.contains_ga
        return lambda ga: ga.group_id == project_id


class ConflictPathCollector(DependencyVisitor):
    """Collects artifacts reachable through more than one primary project.

    Args:
        primary_projects: Project id (e.g. ``camel``, ``quarkus``) to the
            :class:`GavSet` of its artifacts.
        project_mapper: Groups artifacts into transitive projects for the short report.
        own_gas: GAs of the modules of the analyzed source tree.
        empty_artifact: GA of a synthetic root to leave out of paths, if any.
        boms: BOM :class:`Gav` to a mapping from managed GA to version.
        camel_versions: GA to the versions Camel itself uses.
    """

    def __init__(
        self,
        primary_projects: dict,
        project_mapper: ProjectMapper,
        own_gas,
        empty_artifact: Optional[Ga] = None,
        boms: Optional[dict] = None,
        camel_versions: Optional[dict] = None,
    ):
        super().__init__()
        self.primary_projects = dict(sorted(primary_projects.items()))
        self.project_mapper = project_mapper
        self.own_gas = set(own_gas)
        self.empty_artifact = empty_artifact
        self.boms = boms or {}
        self.camel_versions = camel_versions or {}
        self.transitives = {project_id: {} for project_id in self.primary_projects}
        self.artifact_versions = {}
        self.all_dependency_paths = set()

    def to_path(self) -> str:
        """The ancestors of the current node, innermost first, up to the first own module."""
        parts = []
        for ga in reversed(self.stack):
            if ga == self.empty_artifact:
                continue
            parts.append(str(ga))
            if ga in self.own_gas:
                break
        return PATH_SEPARATOR.join(parts)

    def enter(self, ga: Ga, version: str) -> None:
        path = self.to_path()
        reachable = False
        for project_id, gav_set in self.primary_projects.items():
            if any(gav_set.contains_ga(ancestor) for ancestor in self.stack):
                _add(self.transitives[project_id], ga, f"{project_id}: {version} {path}")
                reachable = True
        if reachable:
            _add(self.artifact_versions, ga, version)
        self.all_dependency_paths.add(f"{ga}:{version}{PATH_SEPARATOR}{path}")

    def _pairs(self):
        ids = list(self.transitives)
        for i, id1 in enumerate(ids):
            for id2 in ids[i + 1:]:
                yield id1, id2

    def render_short(self) -> list:
        """Per pair of primary projects, the artifact groups reachable through both."""
        lines = ["#", "# Potential inter-project conflicts", "#"]
        short_projects = {
            project_id: {self.project_mapper.to_project_id(ga) for ga in gas}
            for project_id, gas in self.transitives.items()
        }
        for id1, id2 in self._pairs():
            lines.append(f'- "{id1}..{id2}":')
            for group in sorted(short_projects[id1] & short_projects[id2]):
                lines.append(f'  - "{group}"')
                lines.extend(self._annotate_group(group))
        return lines

    def _annotate_group(self, group: str) -> list:
        belongs = self.project_mapper.find_project_predicate(group)
        project_artifacts = {ga for ga in self.artifact_versions if belongs(ga)}
        versions = {v for ga in project_artifacts for v in self.artifact_versions[ga]}
        camel_gas = {ga for ga in self.camel_versions if belongs(ga)}
        camel_versions = {v for ga in camel_gas for v in self.camel_versions[ga]}

        lines = []
        if len(versions) == 1:
            lines.append(f"    # ✅ same version throughout the dependency graph: {_render_set(versions)}")
        else:
            lines.append(f"    # ❌ various versions throughout the dependency graph: {_render_set(versions)}")

        managed = False
        for bom, constraints in sorted(self.boms.items()):
            managed_versions = {v for ga, v in constraints.items() if ga in project_artifacts}
            if managed_versions:
                managed = True
                extent = "✅ fully" if len(managed_versions) == len(project_artifacts) else "⚠️ partly"
                lines.append(
                    f"    # {extent} managed ({len(managed_versions)}/{len(project_artifacts)}) in {bom}"
                    f" at version(s) {_render_set(managed_versions)}"
                )
        if not managed:
            lines.append("    # ❌ not managed in any of the listed BOMs")

        counts = f"{len(camel_gas)}/{len(project_artifacts)}"
        if versions == camel_versions:
            lines.append(f"    # ✅ Camel uses {counts} artifacts with the same versions: {_render_set(camel_versions)}")
        else:
            lines.append(f"    # ❌ Camel uses {counts} artifacts with different versions: {_render_set(camel_versions)}")
        return lines

    def render_verbose(self) -> list:
        """Like :meth:`render_short` per artifact, listing every path."""
        lines = ["#", "# Potential inter-project conflicts", "#"]
        for id1, id2 in self._pairs():
            gas1 = self.transitives[id1]
            gas2 = self.transitives[id2]
            lines.append(f'- "{id1}..{id2}":')
            for ga in sorted(gas1.keys() & gas2.keys()):
                lines.append(f'  - "{ga}"')
                managing = [bom for bom, constraints in sorted(self.boms.items()) if ga in constraints]
                for bom in managing:
                    lines.append(f"    # managed by {bom}")
                if not managing:
                    lines.append("    # not managed by any listed BOM")
                lines.extend(f'    - "{path}"' for path in sorted(gas1[ga]))
                lines.extend(f'    - "{path}"' for path in sorted(gas2[ga]))
        return lines

    def render_versions(self) -> list:
        lines = []
        for ga in sorted(self.artifact_versions):
            lines.append(f"- {ga}")
            lines.extend(f'  - "{v}"' for v in sorted(self.artifact_versions[ga]))
        return lines

    def render_all_dependency_paths(self) -> list:
        return ["# Legend: a <- b ... b depends on a"] + sorted(self.all_dependency_paths)


def analyze_conflicts(bom_entries, entry_points: GavSet, tree_collector, visitor: DependencyVisitor,
                      managed_dependencies=()) -> int:
    """Resolve the BOM entries selected by ``entry_points`` and feed their trees to ``visitor``.

    Args:
        bom_entries: Iterable of ``(Ga, version)`` managed by the BOM.
        entry_points: Selects the entries to resolve.
        tree_collector: A :class:`~pomtuner.resolver.DependencyTreeCollector`.
        visitor: Receives every resolved tree.
        managed_dependencies: Constraints passed to the collector.

    Returns:
        The number of resolved entry points.
    """
    count = 0
    for ga, version in bom_entries:
        if not entry_points.contains(ga.group_id, ga.artifact_id, version):
            continue
        logger.info("Resolving %s:%s", ga, version)
        root = tree_collector.collect_dependency_tree(Gav(ga.group_id, ga.artifact_id, version), managed_dependencies)
        visitor.visit(root)
        count += 1
    return count
