"""Apply transformations to POM files without disturbing their formatting.

A transformation is any callable taking ``(document, context)`` where
``document`` is a :class:`~pomtuner.pom_document.PomDocument` and
``context`` a :class:`TransformationContext`. The library of named
transformations lives in :mod:`pomtuner.transformations`.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from .errors import TransformationError
from .pom_document import Comment, Element, PomDocument, SimpleElementWhitespace, Text
from .pom_models import Gavtcs, profile_id_or_default

logger = logging.getLogger(__name__)

# Canonical child order of the elements a transformation may have to create,
# following the Maven 4.0.0 POM schema.
ELEMENT_ORDER = {
    "project": [
        "modelVersion", "parent", "groupId", "artifactId", "version", "packaging",
        "name", "description", "url", "inceptionYear", "organization", "licenses",
        "developers", "contributors", "mailingLists", "prerequisites", "modules",
        "scm", "issueManagement", "ciManagement", "distributionManagement",
        "properties", "dependencyManagement", "dependencies", "repositories",
        "pluginRepositories", "build", "reporting", "profiles",
    ],
    "profile": [
        "id", "activation", "build", "modules", "distributionManagement",
        "properties", "dependencyManagement", "dependencies", "repositories",
        "pluginRepositories", "reporting",
    ],
    "parent": ["groupId", "artifactId", "version", "relativePath"],
    "build": [
        "defaultGoal", "directory", "finalName", "filters", "resources",
        "testResources", "pluginManagement", "plugins",
    ],
    "dependency": [
        "groupId", "artifactId", "version", "type", "classifier", "scope",
        "systemPath", "exclusions", "optional",
    ],
    "plugin": [
        "groupId", "artifactId", "version", "extensions", "executions",
        "dependencies", "goals", "inherited", "configuration",
    ],
}

Transformation = Callable[[PomDocument, "TransformationContext"], None]

# Comment text opening a region whose children are kept sorted.
SORT_REGION_MARKER = "a..z"


def _previous_comment(node) -> Optional[Comment]:
    siblings = node.parent.children
    i = node.parent.index(node) - 1
    while i >= 0 and isinstance(siblings[i], Text) and siblings[i].is_whitespace:
        i -= 1
    if i >= 0 and isinstance(siblings[i], Comment):
        return siblings[i]
    return None


def _next_comment(node) -> Optional[Comment]:
    siblings = node.parent.children
    i = node.parent.index(node) + 1
    while i < len(siblings) and isinstance(siblings[i], Text) and siblings[i].is_whitespace:
        if "\n" in siblings[i].raw:
            return None
        i += 1
    if i < len(siblings) and isinstance(siblings[i], Comment):
        return siblings[i]
    return None


class ContainerElement:
    """Navigation and editing helpers around one element of a document."""

    def __init__(self, node: Element, document: PomDocument):
        self.node = node
        self.document = document

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def text(self) -> str:
        return self.node.text.strip()

    def child_elements(self, name: Optional[str] = None) -> list:
        return [ContainerElement(e, self.document) for e in self.node.element_children(name)]

    def get_child_container_element(self, *names: str) -> Optional["ContainerElement"]:
        """Descend along ``names``; ``None`` if any step is missing."""
        node = self.node
        for name in names:
            found = node.element_children(name)
            if not found:
                return None
            node = found[0]
        return ContainerElement(node, self.document)

    def get_or_add_child_container_element(self, name: str) -> "ContainerElement":
        """Return the first ``name`` child, creating it at its canonical position."""
        existing = self.get_child_container_element(name)
        if existing is not None:
            return existing
        return self.add_child_container_element(name, before=self._canonical_successor(name))

    def get_or_add_child_container_elements(self, *names: str) -> "ContainerElement":
        current = self
        for name in names:
            current = current.get_or_add_child_container_element(name)
        return current

    def add_child_container_element(self, name: str, before=None) -> "ContainerElement":
        """Add an empty ``name`` child.

        Args:
            name: Element name.
            before: A :class:`ContainerElement` or document node to insert
                before; appended after the last child when ``None``.
        """
        return self._add(self.document.create_element(name), before)

    def add_child_text_element(self, name: str, text: str, before=None) -> "ContainerElement":
        return self._add(self.document.create_element(name, text), before)

    def add_or_set_child_text_element(self, name: str, text: str) -> "ContainerElement":
        existing = self.get_child_container_element(name)
        if existing is not None:
            existing.set_text(text)
            return existing
        return self.add_child_text_element(name, text, before=self._canonical_successor(name))

    def set_text(self, text: str) -> None:
        self.node.set_text(text)

    def remove(self, remove_preceding_comments: bool = False, remove_preceding_whitespace: bool = True) -> None:
        self.document.remove(self.node, remove_preceding_comments, remove_preceding_whitespace)

    def previous_sibling_comment(self) -> Optional[Comment]:
        """The comment right before this element, skipping whitespace only."""
        return _previous_comment(self.node)

    def next_sibling_comment(self) -> Optional[Comment]:
        """The comment following this element on the same line."""
        return _next_comment(self.node)

    def attached_comments_start(self):
        """The first of the comments directly preceding this element, or the element itself.

        A sort region marker is never considered attached.
        """
        first = self.node
        comment = _previous_comment(first)
        while comment is not None and SORT_REGION_MARKER not in comment.content:
            first = comment
            comment = _previous_comment(first)
        return first

    def add_gavtcs(self, gavtcs: Gavtcs, before=None) -> "ContainerElement":
        """Add a ``<dependency>`` child rendering ``gavtcs``."""
        dep = self.add_child_container_element("dependency", before=before)
        dep.add_child_text_element("groupId", gavtcs.group_id)
        dep.add_child_text_element("artifactId", gavtcs.artifact_id)
        if gavtcs.version is not None:
            dep.add_child_text_element("version", gavtcs.version)
        if gavtcs.type != "jar":
            dep.add_child_text_element("type", gavtcs.type)
        if gavtcs.classifier is not None:
            dep.add_child_text_element("classifier", gavtcs.classifier)
        if gavtcs.scope is not None:
            dep.add_child_text_element("scope", gavtcs.scope)
        if gavtcs.exclusions:
            exclusions = dep.add_child_container_element("exclusions")
            for group_id, artifact_id in gavtcs.exclusions:
                exclusion = exclusions.add_child_container_element("exclusion")
                exclusion.add_child_text_element("groupId", group_id)
                exclusion.add_child_text_element("artifactId", artifact_id)
        return dep

    def as_gavtcs(self) -> Gavtcs:
        """Read this ``<dependency>`` element; raw values, placeholders included."""

        def child_text(name):
            child = self.get_child_container_element(name)
            return child.text if child is not None and child.text else None

        exclusions = []
        container = self.get_child_container_element("exclusions")
        if container is not None:
            for ex in container.child_elements("exclusion"):
                exclusions.append((ex.child_text("groupId"), ex.child_text("artifactId")))
        return Gavtcs(
            group_id=child_text("groupId") or "",
            artifact_id=child_text("artifactId") or "",
            version=child_text("version"),
            type=child_text("type") or "jar",
            classifier=child_text("classifier"),
            scope=child_text("scope"),
            exclusions=tuple(exclusions),
        )

    def child_text(self, name: str) -> Optional[str]:
        child = self.get_child_container_element(name)
        return child.text if child is not None else None

    def insert_ordered(self, name: str, key, key_of, text: Optional[str] = None) -> "ContainerElement":
        """Insert a ``name`` child before the first ``name`` sibling whose key is greater.

        Args:
            name: Element name of the new child and of the siblings compared.
            key: Sort key of the new child.
            key_of: Callable returning the key of an existing sibling
                :class:`ContainerElement`.
            text: Text of the new child, if any.
        """
        before = None
        for sibling in self.child_elements(name):
            if key_of(sibling) > key:
                before = sibling.attached_comments_start()
                break
        if text is None:
            return self.add_child_container_element(name, before=before)
        return self.add_child_text_element(name, text, before=before)

    def _add(self, element: Element, before) -> "ContainerElement":
        if isinstance(before, ContainerElement):
            before = before.node
        if before is None:
            self.document.append_child(self.node, element)
        else:
            self.document.insert_before(before, element)
        return ContainerElement(element, self.document)

    def _canonical_successor(self, name: str):
        order = ELEMENT_ORDER.get(self.name)
        if order is None or name not in order:
            return None
        rank = order.index(name)
        for child in self.child_elements():
            if child.name in order and order.index(child.name) > rank:
                return child.attached_comments_start()
        return None

    def __repr__(self) -> str:
        return f"ContainerElement(<{self.name}>)"


class TransformationContext:
    """Everything a transformation needs to know about the POM it edits.

    Attributes:
        pom_path: The file being transformed.
        document: The document being transformed.
    """

    def __init__(self, pom_path: Path, document: PomDocument):
        self.pom_path = pom_path
        self.document = document

    @property
    def eol(self) -> str:
        return self.document.eol

    @property
    def indentation(self) -> str:
        return self.document.indent

    @property
    def project(self) -> ContainerElement:
        return ContainerElement(self.document.root, self.document)

    def get_container_element(self, *path: str) -> Optional[ContainerElement]:
        return self.project.get_child_container_element(*path)

    def get_or_add_container_elements(self, *path: str) -> ContainerElement:
        return self.project.get_or_add_child_container_elements(*path)

    def get_profile_parent(self, profile_id: Optional[str], create: bool = False) -> Optional[ContainerElement]:
        """The element holding the content of a profile.

        ``None`` stands for the default section, i.e. ``<project>`` itself.
        A missing profile is added when ``create`` is set.
        """
        if profile_id is None:
            return self.project
        profiles = self.get_container_element("profiles")
        if profiles is not None:
            for profile in profiles.child_elements("profile"):
                if profile_id_or_default(profile.child_text("id")) == profile_id:
                    return profile
        if not create:
            return None
        profiles = self.get_or_add_container_elements("profiles")
        profile = profiles.add_child_container_element("profile")
        profile.add_child_text_element("id", profile_id)
        return profile

    def require_profile_parent(self, profile_id: Optional[str]) -> ContainerElement:
        parent = self.get_profile_parent(profile_id)
        if parent is None:
            raise TransformationError(f"{self.pom_path}: no profile with id '{profile_id}'")
        return parent

    def get_dependencies(self, profile_id: Optional[str] = None) -> list:
        parent = self.get_profile_parent(profile_id)
        container = parent.get_child_container_element("dependencies") if parent is not None else None
        return container.child_elements("dependency") if container is not None else []

    def get_managed_dependencies(self, profile_id: Optional[str] = None) -> list:
        parent = self.get_profile_parent(profile_id)
        if parent is None:
            return []
        container = parent.get_child_container_element("dependencyManagement", "dependencies")
        return container.child_elements("dependency") if container is not None else []

    def module_containers(self, profile_ids=None) -> list:
        """``<modules>`` elements of the default section and of all profiles.

        Args:
            profile_ids: If given, only sections whose id is in this collection
                are returned; ``None`` in the collection selects the default section.
        """
        result = []
        sections = [(None, self.project)]
        profiles = self.get_container_element("profiles")
        if profiles is not None:
            sections += [(profile_id_or_default(p.child_text("id")), p) for p in profiles.child_elements("profile")]
        for profile_id, section in sections:
            if profile_ids is not None and profile_id not in profile_ids:
                continue
            modules = section.get_child_container_element("modules")
            if modules is not None:
                result.append(modules)
        return result


class PomTransformer:
    """Loads one POM, applies transformations in order and writes it back.

    Args:
        path: The ``pom.xml`` to transform.
        charset: Encoding used to read and write the file.
        simple_element_whitespace: Rendering of empty elements created by
            the transformations.
    """

    def __init__(
        self,
        path: Path,
        charset: str = "utf-8",
        simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY,
    ):
        self.path = Path(path)
        self.charset = charset
        self.simple_element_whitespace = simple_element_whitespace

    def transform(self, *transformations: Transformation) -> bool:
        """Apply ``transformations`` and write the file if its content changed.

        Returns:
            ``True`` if the file was rewritten.
        """
        if not transformations:
            return False
        source = self.path.read_bytes().decode(self.charset)
        result = transform_string(
            source,
            *transformations,
            pom_path=self.path,
            simple_element_whitespace=self.simple_element_whitespace,
        )
        if result == source:
            logger.debug("%s unchanged", self.path)
            return False
        self.path.write_bytes(result.encode(self.charset))
        logger.debug("Updated %s", self.path)
        return True


def transform_string(
    source: str,
    *transformations: Transformation,
    pom_path="pom.xml",
    simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY,
) -> str:
    """Apply ``transformations`` to POM ``source`` and return the new source."""
    if not transformations:
        return source
    document = PomDocument.parse(source, str(pom_path), simple_element_whitespace)
    context = TransformationContext(Path(pom_path), document)
    for transformation in transformations:
        transformation(document, context)
    return document.serialize()
