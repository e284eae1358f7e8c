"""The module graph of a Maven multi-module source tree.

A :class:`MavenSourceTree` is an immutable snapshot of the POM files
reachable from a root ``pom.xml`` through ``<module>`` declarations. Any
operation writing POM files leaves the snapshot stale; load a new one with
:meth:`MavenSourceTree.of` to observe the result.
"""

import logging
import posixpath
from collections import defaultdict, deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import ConsistencyError, PomStructureError
from .expressions import ExpressionEvaluator
from .pom_document import SimpleElementWhitespace
from .pom_models import Dependency, DependencyEdge, EdgeKind, Ga, Module
from .pom_parser import parse_pom
from .pom_transformer import PomTransformer
from .transformations import (
    DEFAULT_MODULE_MARKER,
    comment_modules,
    set_dependency_version,
    set_managed_dependency_version,
    set_parent_version,
    set_project_version,
    uncomment_modules,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleDeclaration:
    """Where a module is declared: aggregator POM, profile and the declared name."""
    aggregator_path: str
    profile_id: Optional[str]
    name: str


def commenting_strategy(marker: str = DEFAULT_MODULE_MARKER):
    """A comment strategy for :meth:`MavenSourceTree.unlink_modules` tagging with ``marker``."""
    return lambda module_names, profile_ids: comment_modules(module_names, marker, profile_ids)


def _child_pom_path(directory: str, declared: str) -> str:
    if declared.endswith(".xml"):
        path = posixpath.join(directory, declared)
    else:
        path = posixpath.join(directory, declared, "pom.xml")
    return posixpath.normpath(path)


def _default_virtual_predicate(dep: Dependency) -> bool:
    return dep.is_virtual


class MavenSourceTree:
    """Modules of a source tree keyed by path and by GA.

    Attributes:
        root_directory: Absolute directory of the root POM.
        root_module: The module of the root POM.
        modules_by_path: ``/``-separated POM path relative to ``root_directory`` to Module.
        modules_by_ga: Module GA to Module.
        declarations: POM path to the places declaring that module.
    """

    def __init__(
        self,
        root_directory: Path,
        root_module: Module,
        modules_by_path: dict,
        declarations: dict,
        charset: str = "utf-8",
        virtual_dependency_predicate: Optional[Callable[[Dependency], bool]] = None,
    ):
        self.root_directory = root_directory
        self.root_module = root_module
        self.modules_by_path = modules_by_path
        self.declarations = declarations
        self.charset = charset
        self.virtual_dependency_predicate = virtual_dependency_predicate or _default_virtual_predicate
        self.modules_by_ga = {}
        for module in modules_by_path.values():
            other = self.modules_by_ga.get(module.ga)
            if other is not None:
                raise PomStructureError(
                    f"{module.ga} is defined both in {other.pom_path} and in {module.pom_path}"
                )
            self.modules_by_ga[module.ga] = module

    @classmethod
    def of(
        cls,
        root_pom_path: Path,
        charset: str = "utf-8",
        virtual_dependency_predicate: Optional[Callable[[Dependency], bool]] = None,
    ) -> "MavenSourceTree":
        """Load the tree rooted at ``root_pom_path``.

        Modules declared in any profile are loaded.

        Raises:
            PomStructureError: If a POM is unparsable or a declared module does not exist.
        """
        root_pom_path = Path(root_pom_path).resolve()
        root_directory = root_pom_path.parent
        modules_by_path = {}
        declarations = defaultdict(list)
        queue = deque([(root_pom_path.name, None)])
        while queue:
            pom_path, declaration = queue.popleft()
            if declaration is not None:
                declarations[pom_path].append(declaration)
            if pom_path in modules_by_path:
                continue
            pom_file = root_directory / pom_path
            if not pom_file.is_file():
                if declaration is None:
                    raise PomStructureError(f"Root POM {pom_file} does not exist")
                raise PomStructureError(
                    f"Module '{declaration.name}' declared in {declaration.aggregator_path}"
                    f" does not exist: {pom_file}"
                )
            module = parse_pom(pom_file, pom_path, charset)
            modules_by_path[pom_path] = module
            for profile in module.profiles:
                for name in profile.modules:
                    child = _child_pom_path(module.directory, name)
                    queue.append((child, ModuleDeclaration(pom_path, profile.profile_id, name)))

        root_module = modules_by_path[root_pom_path.name]
        logger.debug("Loaded %d modules from %s", len(modules_by_path), root_pom_path)
        return cls(root_directory, root_module, modules_by_path, dict(declarations), charset,
                   virtual_dependency_predicate)

    @property
    def root_pom_path(self) -> Path:
        return self.root_directory / self.root_module.pom_path

    def get_declaring_module(self, ga: Ga) -> Optional[Module]:
        """The aggregator declaring the module ``ga``; ``None`` for the root."""
        module = self.modules_by_ga[ga]
        declarations = self.declarations.get(module.pom_path)
        if not declarations:
            return None
        return self.modules_by_path[declarations[0].aggregator_path]

    def get_expression_evaluator(self, profiles, user_properties: Optional[dict] = None) -> ExpressionEvaluator:
        return ExpressionEvaluator(self, profiles, user_properties)

    def collect_own_dependencies(self, ga: Ga, profiles) -> set:
        """Direct closure edges of the module ``ga`` to other modules of this tree.

        Edges lead to the parent, to dependencies (virtual ones marked as such),
        to ``import``-scoped managed dependencies, to build plugins and their
        dependencies, and to the aggregator declaring the module. Only active
        profiles are considered.

        Returns:
            A set of :class:`~pomtuner.pom_models.DependencyEdge`.
        """
        return self._own_edges(self.modules_by_ga[ga], profiles, self.get_expression_evaluator(profiles))

    def _own_edges(self, module: Module, profiles, evaluator: ExpressionEvaluator) -> set:
        edges = set()

        def add(group_id, artifact_id, kind=EdgeKind.REAL):
            target = Ga(evaluator.evaluate(group_id, module), evaluator.evaluate(artifact_id, module))
            if target in self.modules_by_ga and target != module.ga:
                edges.add(DependencyEdge(target, kind))

        if module.parent is not None:
            add(module.parent.ga.group_id, module.parent.ga.artifact_id)
        for profile in module.profiles:
            if not profiles(profile):
                continue
            for dep in profile.dependencies:
                kind = EdgeKind.VIRTUAL if self.virtual_dependency_predicate(dep) else EdgeKind.REAL
                add(dep.group_id, dep.artifact_id, kind)
            for dep in profile.dependency_management:
                if dep.is_bom_import:
                    add(dep.group_id, dep.artifact_id)
            for plugin in profile.plugins:
                add(plugin.group_id, plugin.artifact_id)
                for dep in plugin.dependencies:
                    add(dep.group_id, dep.artifact_id)
        declaring = self.get_declaring_module(module.ga)
        if declaring is not None:
            add(declaring.ga.group_id, declaring.ga.artifact_id)
        return edges

    def find_required_modules(self, seed, profiles) -> set:
        """The transitive closure of ``seed`` over own-dependency edges.

        The root module is the entry point of every build, so it is never
        part of the result.

        Raises:
            PomStructureError: If a seed GA is not a module of this tree.
        """
        unknown = sorted(ga for ga in seed if ga not in self.modules_by_ga)
        if unknown:
            raise PomStructureError(
                f"Modules {', '.join(str(ga) for ga in unknown)} not found in {self.root_pom_path}"
            )
        evaluator = self.get_expression_evaluator(profiles)
        visited = set()
        pending = list(seed)
        while pending:
            ga = pending.pop()
            if ga in visited:
                continue
            visited.add(ga)
            for edge in self._own_edges(self.modules_by_ga[ga], profiles, evaluator):
                if edge.ga not in visited:
                    pending.append(edge.ga)
        visited.discard(self.root_module.ga)
        logger.debug("Required modules of %s: %s", sorted(seed), sorted(visited))
        return visited

    def collect_transitive_dependencies(self, ga: Ga, profiles) -> set:
        """All modules ``ga`` requires, excluding itself and the root."""
        return self.find_required_modules({ga}, profiles) - {ga}

    def complement(self, includes) -> set:
        """All non-root modules not in ``includes``."""
        includes = set(includes)
        return {
            ga for ga in self.modules_by_ga
            if ga != self.root_module.ga and ga not in includes
        }

    def unlink_modules(
        self,
        keep,
        profiles,
        charset: Optional[str] = None,
        simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY,
        comment_strategy=None,
    ) -> None:
        """Disable every non-root module not in ``keep`` in its aggregator POM.

        Declarations in active profiles are rewritten by ``comment_strategy``,
        a callable ``(module_names, profile_ids) -> transformation``, by default
        :func:`commenting_strategy`. Modules whose aggregator is disabled too
        are left alone. Each aggregator is transformed once, deepest first.
        Already disabled modules are not part of the tree, so running this
        again is a no-op.
        """
        charset = charset or self.charset
        comment_strategy = comment_strategy or commenting_strategy()
        removed = self.complement(keep)
        edits = defaultdict(lambda: defaultdict(set))
        for ga in sorted(removed):
            module = self.modules_by_ga[ga]
            for declaration in self.declarations.get(module.pom_path, []):
                aggregator = self.modules_by_path[declaration.aggregator_path]
                if aggregator.ga in removed:
                    continue
                profile = next(p for p in aggregator.profiles if p.profile_id == declaration.profile_id)
                if profiles(profile):
                    edits[declaration.aggregator_path][declaration.profile_id].add(declaration.name)

        for pom_path in sorted(edits, key=lambda p: (-p.count("/"), p)):
            by_profile = edits[pom_path]
            transformations = [
                comment_strategy(by_profile[profile_id], {profile_id})
                for profile_id in sorted(by_profile, key=lambda i: i or "")
            ]
            logger.info("Unlinking %d module(s) in %s", sum(len(n) for n in by_profile.values()), pom_path)
            PomTransformer(self.root_directory / pom_path, charset, simple_element_whitespace).transform(
                *transformations
            )

    def relink_modules(
        self,
        charset: Optional[str] = None,
        simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY,
        marker: str = DEFAULT_MODULE_MARKER,
    ) -> "MavenSourceTree":
        """Restore all modules commented out with ``marker`` and return the reloaded tree.

        Restored aggregators may reveal further commented modules, so this
        repeats until a round changes nothing.
        """
        charset = charset or self.charset
        tree = self
        while True:
            changed = False
            for pom_path in sorted(tree.modules_by_path):
                transformer = PomTransformer(tree.root_directory / pom_path, charset, simple_element_whitespace)
                if transformer.transform(uncomment_modules(marker)):
                    logger.info("Relinked modules in %s", pom_path)
                    changed = True
            if not changed:
                return tree
            tree = MavenSourceTree.of(self.root_pom_path, charset, self.virtual_dependency_predicate)

    def set_versions(
        self,
        new_version: str,
        profiles,
        simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY,
    ) -> None:
        """Set the version of every module of the tree to ``new_version``.

        Rewrites each module's own ``<version>``, parent versions pointing into
        the tree, and literal dependency and managed dependency versions that
        refer to a module of the tree with its current version. Each file is
        written at most once.
        """
        evaluator = self.get_expression_evaluator(profiles)
        current = {
            ga: evaluator.evaluate(m.version, m)
            for ga, m in self.modules_by_ga.items()
            if m.version is not None
        }
        for pom_path, module in sorted(self.modules_by_path.items()):
            transformations = []
            if module.declares_version:
                transformations.append(set_project_version(new_version))
            if module.parent is not None and module.parent.ga in self.modules_by_ga:
                transformations.append(set_parent_version(new_version))
            seen = set()
            for profile in module.profiles:
                if not profiles(profile):
                    continue
                for deps, setter in (
                    (profile.dependencies, set_dependency_version),
                    (profile.dependency_management, set_managed_dependency_version),
                ):
                    for dep in deps:
                        target = Ga(evaluator.evaluate(dep.group_id, module), evaluator.evaluate(dep.artifact_id, module))
                        key = (setter, profile.profile_id, dep.group_id, dep.artifact_id, dep.version)
                        if target not in current or dep.version != current[target] or key in seen:
                            continue
                        seen.add(key)
                        transformations.append(setter(_raw_match(dep), new_version, profile.profile_id))
            if transformations:
                PomTransformer(self.root_directory / pom_path, self.charset, simple_element_whitespace).transform(
                    *transformations
                )

    def assert_uniform_version(self) -> str:
        """Check that modules with a parent in the tree share the root version.

        Returns:
            The root version.

        Raises:
            ConsistencyError: Naming the first offending POM and both versions.
        """
        expected = self.root_module.version
        for pom_path, module in sorted(self.modules_by_path.items()):
            if module is self.root_module or module.parent is None:
                continue
            if module.parent.ga in self.modules_by_ga and module.version != expected:
                raise ConsistencyError(
                    f"{pom_path}: expected version {expected} of the root module, found {module.version}",
                    pom_path=pom_path,
                    expected=expected,
                    actual=module.version,
                )
        return expected


def _raw_match(dep: Dependency):
    coords = (dep.group_id, dep.artifact_id, dep.version)
    return lambda g: (g.group_id, g.artifact_id, g.version) == coords
