"""Flatten a BOM into a standalone POM with literal managed versions.

The flattened POM lists the effective ``<dependencyManagement>`` of a BOM
module. Entries inherited from parents in the source tree and entries of
``import`` scoped BOMs are inlined, placeholders are evaluated and the import
entries themselves disappear. For duplicate
``groupId:artifactId:type:classifier`` keys the first declaration wins: the
module's own entries come first, then those of its parents, then the imports
in declaration order.

Parents outside of the source tree are not consulted for the BOM itself.
The POMs of imported BOMs and their parents are fetched through a
:class:`~pomtuner.resolver.PomModelCache`.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional
from xml.sax.saxutils import escape

from .errors import PomStructureError
from .expressions import ActiveProfiles, ExpressionEvaluator, require_literal
from .gav_set import GavSet
from .pom_models import Dependency, Gav, Module
from .resolver import PomModelCache
from .source_tree import MavenSourceTree

logger = logging.getLogger(__name__)

DEFAULT_FLATTENED_POM_FILE = "src/main/generated/flattened-full-pom.xml"

_PROJECT_START = (
    '<project xmlns="http://maven.apache.org/POM/4.0.0"'
    ' xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"'
    ' xsi:schemaLocation="http://maven.apache.org/POM/4.0.0 https://maven.apache.org/xsd/maven-4.0.0.xsd">'
)


@dataclass(frozen=True)
class FlatEntry:
    """One managed dependency of a flattened BOM and the POM declaring it."""
    dependency: Dependency
    origin: Gav

    @property
    def key(self) -> tuple:
        return _key(self.dependency)


def _key(dep: Dependency) -> tuple:
    return (dep.group_id, dep.artifact_id, dep.dep_type, dep.classifier or "")


def _ancestry(module: Module, modules_by_ga: dict) -> list:
    """``module`` followed by those of its parents found in ``modules_by_ga``."""
    result = [module]
    seen = {module.ga}
    parent = module.parent
    while parent is not None and parent.ga in modules_by_ga and parent.ga not in seen:
        current = modules_by_ga[parent.ga]
        result.append(current)
        seen.add(current.ga)
        parent = current.parent
    return result


class BomFlattener:
    """Computes the effective managed dependencies of BOM modules.

    Args:
        pom_models: Source of imported BOMs and their parents.
        profiles: Profiles active in the source tree.
        user_properties: Properties overriding those of the source tree POMs.
    """

    def __init__(
        self,
        pom_models: PomModelCache,
        profiles: ActiveProfiles = ActiveProfiles(),
        user_properties: Optional[dict] = None,
    ):
        self.pom_models = pom_models
        self.profiles = profiles
        self.user_properties = dict(user_properties or {})

    def flatten(self, tree: MavenSourceTree, module: Module) -> list:
        """The flattened entries of ``module`` of ``tree`` in effective order.

        Raises:
            PomStructureError: If BOM imports form a cycle.
            ExpressionError: If a placeholder cannot be evaluated.
            ArtifactNotFoundError: If an imported BOM is not available.
        """
        evaluator = ExpressionEvaluator(tree, self.profiles, self.user_properties)
        return self._entries(module, tree.modules_by_ga, evaluator, ())

    def _entries(self, module: Module, modules_by_ga: dict, evaluator: ExpressionEvaluator, importing: tuple) -> list:
        entries = {}
        imports = []
        seen = set()
        for pom in _ancestry(module, modules_by_ga):
            origin = Gav(pom.ga.group_id, pom.ga.artifact_id, evaluator.evaluate(pom.version, pom))
            for profile in pom.profiles:
                if not evaluator.profiles(profile):
                    continue
                for raw in profile.dependency_management:
                    dep = self._evaluate(raw, evaluator, module)
                    key = _key(dep)
                    if key in seen:
                        continue
                    seen.add(key)
                    if dep.is_bom_import:
                        imports.append(dep)
                    else:
                        entries[key] = FlatEntry(dep, origin)

        for dep in imports:
            version = require_literal(dep.version, module.pom_path, f"version of {dep.group_id}:{dep.artifact_id}")
            gav = Gav(dep.group_id, dep.artifact_id, version)
            if gav in importing:
                cycle = " -> ".join(str(g) for g in importing + (gav,))
                raise PomStructureError(f"Cyclic BOM import {cycle}")
            lineage = self.pom_models.lineage(gav)
            logger.debug("Inlining %s imported by %s", gav, module.pom_path)
            imported = self._entries(
                lineage.module,
                lineage.modules_by_ga,
                ExpressionEvaluator(lineage, ActiveProfiles.of()),
                importing + (gav,),
            )
            for entry in imported:
                entries.setdefault(entry.key, entry)
        return list(entries.values())

    @staticmethod
    def _evaluate(dep: Dependency, evaluator: ExpressionEvaluator, module: Module) -> Dependency:
        def ev(value):
            return evaluator.evaluate(value, module)

        return replace(
            dep,
            group_id=ev(dep.group_id),
            artifact_id=ev(dep.artifact_id),
            version=ev(dep.version),
            scope=ev(dep.scope),
            classifier=ev(dep.classifier),
            dep_type=ev(dep.dep_type),
            exclusions=[(ev(g), ev(a)) for g, a in dep.exclusions],
        )


def render_flattened_bom(gav: Gav, entries, verbose: bool = False, indent: str = "  ") -> str:
    """Serialize ``entries`` as the ``<dependencyManagement>`` of a ``pom`` packaged ``gav``.

    Args:
        gav: Coordinates of the flattened BOM.
        entries: :class:`FlatEntry` items in output order.
        verbose: Whether to note the origin of each entry in a trailing comment.
        indent: One level of indentation.
    """

    def element(depth: int, name: str, text: str) -> str:
        return f"{indent * depth}<{name}>{escape(text)}</{name}>"

    lines = ['<?xml version="1.0" encoding="UTF-8"?>', _PROJECT_START]
    lines.append(element(1, "modelVersion", "4.0.0"))
    lines.append(element(1, "groupId", gav.group_id))
    lines.append(element(1, "artifactId", gav.artifact_id))
    lines.append(element(1, "version", gav.version))
    lines.append(element(1, "packaging", "pom"))
    lines.append(f"{indent}<dependencyManagement>")
    lines.append(f"{indent * 2}<dependencies>")
    for entry in entries:
        dep = entry.dependency
        lines.append(f"{indent * 3}<dependency>")
        lines.append(element(4, "groupId", dep.group_id))
        lines.append(element(4, "artifactId", dep.artifact_id))
        if dep.version is not None:
            lines.append(element(4, "version", dep.version))
        if dep.dep_type != "jar":
            lines.append(element(4, "type", dep.dep_type))
        if dep.classifier:
            lines.append(element(4, "classifier", dep.classifier))
        if dep.scope:
            lines.append(element(4, "scope", dep.scope))
        if dep.exclusions:
            lines.append(f"{indent * 4}<exclusions>")
            for group_id, artifact_id in sorted(dep.exclusions):
                lines.append(f"{indent * 5}<exclusion>")
                lines.append(element(6, "groupId", group_id))
                lines.append(element(6, "artifactId", artifact_id))
                lines.append(f"{indent * 5}</exclusion>")
            lines.append(f"{indent * 4}</exclusions>")
        if dep.optional:
            lines.append(element(4, "optional", "true"))
        closing = f"{indent * 3}</dependency>"
        lines.append(f"{closing}<!-- {entry.origin} -->" if verbose else closing)
    lines.append(f"{indent * 2}</dependencies>")
    lines.append(f"{indent}</dependencyManagement>")
    lines.append("</project>")
    return "\n".join(lines) + "\n"


def flatten_bom(
    bom_pom: Path,
    pom_models: PomModelCache,
    root_pom: Optional[Path] = None,
    output: Optional[Path] = None,
    excludes: Optional[GavSet] = None,
    origin_excludes: Optional[GavSet] = None,
    profiles: ActiveProfiles = ActiveProfiles(),
    user_properties: Optional[dict] = None,
    verbose: bool = False,
    charset: str = "utf-8",
):
    """Write the flattened form of ``bom_pom``.

    Args:
        bom_pom: The BOM to flatten.
        pom_models: Source of imported BOMs.
        root_pom: Root of the source tree holding the BOM; the BOM itself by default.
        output: Where to write; :data:`DEFAULT_FLATTENED_POM_FILE` next to the BOM by default.
        excludes: Entries to leave out.
        origin_excludes: Leave out the entries declared in the matching POMs.
        profiles: Active profiles of the source tree.
        user_properties: Properties overriding those of the source tree POMs.
        verbose: Note the origin of each entry.
        charset: Encoding of all POM files.

    Returns:
        A ``(path, entries, changed)`` tuple; the file is only rewritten when
        its content changes.

    Raises:
        PomStructureError: If ``bom_pom`` is not a module of the tree.
    """
    bom_pom = Path(bom_pom).resolve()
    tree = MavenSourceTree.of(root_pom or bom_pom, charset)
    try:
        rel = bom_pom.relative_to(tree.root_directory).as_posix()
    except ValueError:
        rel = None
    module = tree.modules_by_path.get(rel)
    if module is None:
        raise PomStructureError(f"{bom_pom} is not a module of the source tree rooted in {tree.root_directory}")

    flattener = BomFlattener(pom_models, profiles, user_properties)
    entries = [
        e for e in flattener.flatten(tree, module)
        if (excludes is None or not excludes.contains(e.dependency.group_id, e.dependency.artifact_id))
        and (origin_excludes is None or not origin_excludes.contains(e.origin.group_id, e.origin.artifact_id))
    ]
    for entry in entries:
        if entry.dependency.version is None:
            logger.warning("%s: managed dependency %s has no version", module.pom_path, entry.dependency.to_gavtcs())

    evaluator = ExpressionEvaluator(tree, profiles, user_properties)
    gav = Gav(module.ga.group_id, module.ga.artifact_id, evaluator.evaluate(module.version, module))
    content = render_flattened_bom(gav, entries, verbose)

    path = Path(output) if output is not None else bom_pom.parent / DEFAULT_FLATTENED_POM_FILE
    if path.is_file() and path.read_bytes().decode(charset) == content:
        logger.debug("%s unchanged", path)
        return path, entries, False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode(charset))
    logger.info("Wrote %d managed dependencies of %s to %s", len(entries), gav, path)
    return path, entries, True
