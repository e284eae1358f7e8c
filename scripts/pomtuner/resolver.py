"""Contracts of the artifact services pomtuner consumes, plus offline implementations.

Resolving artifacts from remote repositories and Maven's dependency
mediation are out of scope: the implementations here only read a local
repository and dependency trees computed elsewhere.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .dependency_visitors import load_resolved_tree
from .errors import ArtifactNotFoundError, ConfigurationError, ExpressionError
from .pom_models import Ga, Gav, Module
from .pom_parser import parse_pom

logger = logging.getLogger(__name__)

# Packaging types whose file is a jar.
_JAR_TYPES = {"jar", "test-jar", "maven-plugin", "ejb", "bundle"}


class ArtifactResolver:
    """Fetches an artifact into a local cache and returns its path."""

    def resolve(self, group_id: str, artifact_id: str, version: str, type: str = "jar") -> Path:
        raise NotImplementedError


class LocalRepositoryResolver(ArtifactResolver):
    """Resolves artifacts present in a local Maven repository.

    Args:
        repository: Root of the repository; ``~/.m2/repository`` by default.
    """

    def __init__(self, repository: Optional[Path] = None):
        self.repository = Path(repository) if repository else Path.home() / ".m2" / "repository"

    def resolve(self, group_id: str, artifact_id: str, version: str, type: str = "jar") -> Path:
        extension = "jar" if type in _JAR_TYPES else type
        classifier = "-tests" if type == "test-jar" else ""
        path = (
            self.repository.joinpath(*group_id.split("."))
            / artifact_id
            / version
            / f"{artifact_id}-{version}{classifier}.{extension}"
        )
        if not path.is_file():
            raise ArtifactNotFoundError(
                f"{group_id}:{artifact_id}:{type}:{version} not found in {self.repository}"
            )
        logger.debug("Resolved %s:%s:%s to %s", group_id, artifact_id, version, path)
        return path


@dataclass
class PomLineage:
    """A POM fetched from a repository together with its parents.

    Offers the ``modules_by_ga`` and ``root_directory`` attributes an
    :class:`~pomtuner.expressions.ExpressionEvaluator` reads from a tree, so
    placeholders of the POM can be evaluated against its inherited properties.
    """
    module: Module
    modules_by_ga: dict
    root_directory: Path


class PomModelCache:
    """Parsed ``pom`` artifacts, fetched once through an :class:`ArtifactResolver`.

    Args:
        resolver: Where the POM files come from.
        charset: Their encoding.
    """

    def __init__(self, resolver: ArtifactResolver, charset: str = "utf-8"):
        self.resolver = resolver
        self.charset = charset
        self._items = {}

    def get(self, gav: Gav) -> Module:
        """The parsed POM of ``gav``.

        Raises:
            ExpressionError: If the version is still a placeholder.
            ArtifactNotFoundError: If the resolver does not have the POM.
        """
        item = self._items.get(gav)
        if item is None:
            if not gav.is_resolved:
                raise ExpressionError(f"Cannot fetch the POM of {gav}: version is not resolved")
            path = self.resolver.resolve(gav.group_id, gav.artifact_id, gav.version, "pom")
            item = (parse_pom(path, pom_path=str(gav), charset=self.charset), path.parent)
            self._items[gav] = item
        return item[0]

    def lineage(self, gav: Gav) -> PomLineage:
        """The POM of ``gav`` with all its ancestors."""
        module = self.get(gav)
        modules_by_ga = {}
        current = module
        while current is not None and current.ga not in modules_by_ga:
            modules_by_ga[current.ga] = current
            parent = current.parent
            if parent is None or parent.version is None:
                break
            current = self.get(Gav(parent.ga.group_id, parent.ga.artifact_id, parent.version))
        return PomLineage(module, modules_by_ga, self._items[gav][1])


class DependencyTreeCollector:
    """Resolves the transitive dependencies of an artifact with conflict markers."""

    def collect_dependency_tree(self, root: Gav, managed_dependencies=()):
        raise NotImplementedError


class PrecomputedTreeCollector(DependencyTreeCollector):
    """Serves dependency trees stored as JSON, keyed by the GA of their root.

    The JSON format is the one read by
    :func:`~pomtuner.dependency_visitors.load_resolved_tree`.
    """

    def __init__(self, trees: dict):
        self.trees = trees

    @classmethod
    def from_files(cls, paths, charset: str = "utf-8") -> "PrecomputedTreeCollector":
        trees = {}
        for path in paths:
            try:
                with open(path, encoding=charset) as f:
                    tree = load_resolved_tree(json.load(f))
            except (OSError, KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid dependency tree {path}: {e}") from e
            trees[tree.artifact.to_ga()] = tree
        return cls(trees)

    @classmethod
    def from_directory(cls, directory: Path, charset: str = "utf-8") -> "PrecomputedTreeCollector":
        return cls.from_files(sorted(Path(directory).glob("*.json")), charset)

    def collect_dependency_tree(self, root: Gav, managed_dependencies=()):
        tree = self.trees.get(Ga(root.group_id, root.artifact_id))
        if tree is None:
            raise ArtifactNotFoundError(f"No dependency tree for {root}")
        if root.version is not None and tree.artifact.version != root.version:
            logger.warning("Requested %s, the stored tree is for version %s", root, tree.artifact.version)
        return tree
