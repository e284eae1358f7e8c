"""Named POM transformations.

Every function here returns a transformation: a callable taking
``(document, context)`` that can be passed to
:meth:`pomtuner.pom_transformer.PomTransformer.transform`::

    PomTransformer(pom).transform(
        add_or_set_property("camel.version", "4.4.0"),
        comment_modules({"ext-b"}, "disabled by pomtuner:prod-excludes"),
    )

Transformations that need an anchor element either create it or raise
:class:`~pomtuner.errors.TransformationError`; each function says which.
"""

import logging
import re
from typing import Optional

from .errors import TransformationError
from .gav_set import GavSet
from .pom_document import Comment, Element, Text
from .pom_models import Ga, Gav, Gavtcs
from .pom_parser import DEFAULT_PLUGIN_GROUP_ID
from .pom_transformer import SORT_REGION_MARKER, ContainerElement

logger = logging.getLogger(__name__)

_COMMENTED_MODULE = re.compile(r"^\s*<module>\s*([^<]+?)\s*</module>\s*$")

# Tags modules disabled by the productization exclusion workflow.
DEFAULT_MODULE_MARKER = "disabled by pomtuner:prod-excludes"


def _selector(selector):
    """Turn a Ga, a GavSet or a predicate over Gavtcs into a predicate."""
    if isinstance(selector, GavSet):
        return lambda g: selector.contains(g.group_id, g.artifact_id)
    if isinstance(selector, Ga):
        ga = selector.to_ga()
        return lambda g: g.to_ga() == ga
    return selector


def _same_artifact(a: Gavtcs, b: Gavtcs) -> bool:
    return (a.group_id, a.artifact_id, a.type, a.classifier) == (b.group_id, b.artifact_id, b.type, b.classifier)


def _ordered_successor(container: ContainerElement, name: str, key, key_of):
    for sibling in container.child_elements(name):
        if key_of(sibling) > key:
            return sibling.attached_comments_start()
    return None


def commented_module_name(node) -> Optional[str]:
    """The module name if ``node`` is a ``<!-- <module>name</module> -->`` comment."""
    if not isinstance(node, Comment):
        return None
    m = _COMMENTED_MODULE.match(node.content)
    return m.group(1) if m else None


# Dependencies


def _dependencies(context, profile_id):
    return context.get_dependencies(profile_id)


def _managed_dependencies(context, profile_id):
    return context.get_managed_dependencies(profile_id)


def _add_dependency(gavtcs: Gavtcs, container_path: tuple, existing_of, profile_id, ordered):
    def transformation(document, context):
        for dep in existing_of(context, profile_id):
            if _same_artifact(dep.as_gavtcs(), gavtcs):
                logger.debug("%s: %s present already", context.pom_path, gavtcs)
                return
        parent = context.get_profile_parent(profile_id, create=True)
        deps = parent.get_or_add_child_container_elements(*container_path)
        before = None
        if ordered:
            before = _ordered_successor(
                deps, "dependency", gavtcs.sort_key(), lambda d: d.as_gavtcs().sort_key()
            )
        deps.add_gavtcs(gavtcs, before=before)

    return transformation


def add_dependency_if_needed(gavtcs: Gavtcs, profile_id: Optional[str] = None, ordered: bool = False):
    """Add a ``<dependency>`` unless one with the same groupId, artifactId, type and classifier exists.

    Creates ``<dependencies>`` (and the profile) when missing. With
    ``ordered``, the new entry is inserted before the first one sorting after it.
    """
    return _add_dependency(
        gavtcs, ("dependencies",), _dependencies, profile_id, ordered
    )


def add_managed_dependency_if_needed(gavtcs: Gavtcs, profile_id: Optional[str] = None, ordered: bool = False):
    """Like :func:`add_dependency_if_needed` for ``<dependencyManagement>``."""
    return _add_dependency(
        gavtcs,
        ("dependencyManagement", "dependencies"),
        _managed_dependencies,
        profile_id,
        ordered,
    )


def remove_dependencies(selector, profile_id: Optional[str] = None, remove_preceding_comments: bool = False):
    """Remove every ``<dependency>`` matched by ``selector`` (a Ga, a GavSet or a predicate)."""
    matches = _selector(selector)

    def transformation(document, context):
        for dep in context.get_dependencies(profile_id):
            if matches(dep.as_gavtcs()):
                dep.remove(remove_preceding_comments=remove_preceding_comments)

    return transformation


def remove_managed_dependencies(selector, profile_id: Optional[str] = None, remove_preceding_comments: bool = False):
    matches = _selector(selector)

    def transformation(document, context):
        for dep in context.get_managed_dependencies(profile_id):
            if matches(dep.as_gavtcs()):
                dep.remove(remove_preceding_comments=remove_preceding_comments)

    return transformation


def _set_version(selector, version: str, deps_of, what: str, profile_id):
    matches = _selector(selector)

    def transformation(document, context):
        found = False
        for dep in deps_of(context, profile_id):
            if matches(dep.as_gavtcs()):
                dep.add_or_set_child_text_element("version", version)
                found = True
        if not found:
            raise TransformationError(f"{context.pom_path}: no {what} matching {selector}")

    return transformation


def set_dependency_version(selector, version: str, profile_id: Optional[str] = None):
    """Set ``<version>`` of the matching dependencies.

    Raises:
        TransformationError: If nothing matches.
    """
    return _set_version(selector, version, _dependencies, "dependency", profile_id)


def set_managed_dependency_version(selector, version: str, profile_id: Optional[str] = None):
    return _set_version(
        selector, version, _managed_dependencies, "managed dependency", profile_id
    )


# Plugins


def _plugins(context, profile_id) -> list:
    parent = context.get_profile_parent(profile_id)
    if parent is None:
        return []
    result = []
    for path in (("build", "plugins"), ("build", "pluginManagement", "plugins")):
        container = parent.get_child_container_element(*path)
        if container is not None:
            result.extend(container.child_elements("plugin"))
    return result


def _plugin_ga(plugin: ContainerElement) -> Ga:
    return Ga(plugin.child_text("groupId") or DEFAULT_PLUGIN_GROUP_ID, plugin.child_text("artifactId") or "")


def set_plugin_version(ga: Ga, version: str, profile_id: Optional[str] = None):
    """Set ``<version>`` of the plugin ``ga`` in ``<plugins>`` and ``<pluginManagement>``.

    Raises:
        TransformationError: If the plugin is not declared.
    """
    ga = ga.to_ga()

    def transformation(document, context):
        plugins = [p for p in _plugins(context, profile_id) if _plugin_ga(p) == ga]
        if not plugins:
            raise TransformationError(f"{context.pom_path}: plugin {ga} not found")
        for plugin in plugins:
            plugin.add_or_set_child_text_element("version", version)

    return transformation


def remove_plugins(selector, profile_id: Optional[str] = None, remove_preceding_comments: bool = False):
    if isinstance(selector, GavSet):
        matches = selector.contains_ga
    elif isinstance(selector, Ga):
        matches = selector.to_ga().__eq__
    else:
        matches = selector

    def transformation(document, context):
        for plugin in _plugins(context, profile_id):
            if matches(_plugin_ga(plugin)):
                plugin.remove(remove_preceding_comments=remove_preceding_comments)

    return transformation


# Modules


def _modules_of(context, profile_id, create: bool) -> Optional[ContainerElement]:
    parent = context.get_profile_parent(profile_id, create=create)
    if parent is None:
        raise TransformationError(f"{context.pom_path}: no profile with id '{profile_id}'")
    if create:
        return parent.get_or_add_child_container_element("modules")
    return parent.get_child_container_element("modules")


def add_module(module: str, profile_id: Optional[str] = None):
    """Append a ``<module>``, creating ``<modules>`` when missing."""

    def transformation(document, context):
        _modules_of(context, profile_id, True).add_child_text_element("module", module)

    return transformation


def add_module_if_needed(module: str, profile_id: Optional[str] = None, ordered: bool = False):
    """Add a ``<module>`` unless it is declared already.

    With ``ordered``, it is inserted before the first module sorting after it.
    """

    def transformation(document, context):
        modules = _modules_of(context, profile_id, True)
        if any(m.text == module for m in modules.child_elements("module")):
            return
        if ordered:
            modules.insert_ordered("module", module, lambda m: m.text, text=module)
        else:
            modules.add_child_text_element("module", module)

    return transformation


def add_modules(modules, profile_id: Optional[str] = None):
    def transformation(document, context):
        container = _modules_of(context, profile_id, True)
        for module in modules:
            container.add_child_text_element("module", module)

    return transformation


def remove_module(module: str, profile_id: Optional[str] = None, remove_preceding_comments: bool = False):
    """Remove a ``<module>``.

    Raises:
        TransformationError: If the module is not declared.
    """

    def transformation(document, context):
        container = _modules_of(context, profile_id, False)
        found = [m for m in container.child_elements("module") if m.text == module] if container else []
        if not found:
            raise TransformationError(f"{context.pom_path}: module '{module}' not found")
        for m in found:
            m.remove(remove_preceding_comments=remove_preceding_comments)

    return transformation


def remove_modules(modules, profile_id: Optional[str] = None, remove_preceding_comments: bool = False):
    """Remove those of ``modules`` that are declared; others are ignored."""
    modules = set(modules)

    def transformation(document, context):
        container = _modules_of(context, profile_id, False)
        if container is None:
            return
        for m in container.child_elements("module"):
            if m.text in modules:
                m.remove(remove_preceding_comments=remove_preceding_comments)

    return transformation


def remove_all_modules(profile_id: Optional[str] = None, remove_preceding_comments: bool = False):
    def transformation(document, context):
        container = _modules_of(context, profile_id, False)
        if container is None:
            return
        for m in container.child_elements("module"):
            m.remove(remove_preceding_comments=remove_preceding_comments)

    return transformation


def comment_modules(modules, marker: str, profile_ids=None):
    """Replace each listed ``<module>`` by ``<!-- <module>name</module> --><!-- marker -->``.

    Modules already commented out are left alone, so applying this twice
    yields the same document as applying it once.

    Args:
        modules: Module names as written in ``<module>``.
        marker: Text of the comment that tags the disabled module.
        profile_ids: Sections to edit; ``None`` in the collection stands for
            the default section. All sections when ``None``.
    """
    modules = set(modules)

    def transformation(document, context):
        for container in context.module_containers(profile_ids):
            for module in container.child_elements("module"):
                if module.text not in modules:
                    continue
                node = module.node
                parent = node.parent
                i = parent.index(node)
                parent.remove_child(node)
                parent.insert(i, Comment.of(f" {marker} "))
                parent.insert(i, Comment.of(f" <module>{module.text}</module> "))
                logger.debug("%s: commented out module %s", context.pom_path, module.text)

    return transformation


def uncomment_modules(marker: str, modules=None):
    """Restore modules commented out by :func:`comment_modules` with the same marker.

    Args:
        marker: The marker used when commenting.
        modules: If given, only these module names are restored.
    """
    selected = set(modules) if modules is not None else None

    def transformation(document, context):
        for container in context.module_containers():
            parent = container.node
            for node in list(parent.children):
                if not isinstance(node, Comment) or node.content.strip() != marker:
                    continue
                i = parent.index(node)
                name = commented_module_name(parent.children[i - 1]) if i > 0 else None
                if name is None:
                    logger.warning("%s: marker comment without a commented module", context.pom_path)
                    continue
                if selected is not None and name not in selected:
                    continue
                parent.remove_child(parent.children[i - 1])
                parent.remove_child(node)
                parent.insert(i - 1, document.create_element("module", name))
                logger.debug("%s: uncommented module %s", context.pom_path, name)

    return transformation


# Properties


def add_or_set_property(name: str, value: str, profile_id: Optional[str] = None):
    """Set a property, creating ``<properties>`` (and the profile) when missing."""

    def transformation(document, context):
        parent = context.get_profile_parent(profile_id, create=True)
        parent.get_or_add_child_container_element("properties").add_or_set_child_text_element(name, value)

    return transformation


def remove_property(name: str, profile_id: Optional[str] = None, remove_preceding_comments: bool = False):
    """Remove a property; a missing property is not an error."""

    def transformation(document, context):
        parent = context.get_profile_parent(profile_id)
        prop = parent.get_child_container_element("properties", name) if parent is not None else None
        if prop is None:
            logger.debug("%s: no property %s to remove", context.pom_path, name)
            return
        prop.remove(remove_preceding_comments=remove_preceding_comments)

    return transformation


# Coordinates


def set_project_version(version: str):
    """Set the module's own ``<version>``, adding it after ``<artifactId>`` when missing."""

    def transformation(document, context):
        context.project.add_or_set_child_text_element("version", version)

    return transformation


def set_parent_version(version: str):
    """Set ``<parent><version>``.

    Raises:
        TransformationError: If the POM has no ``<parent>``.
    """

    def transformation(document, context):
        parent = context.get_container_element("parent")
        if parent is None:
            raise TransformationError(f"{context.pom_path}: no <parent> to set the version of")
        parent.add_or_set_child_text_element("version", version)

    return transformation


def set_parent(gav: Gav, relative_path: Optional[str] = None):
    """Point ``<parent>`` to ``gav``, creating the element when missing."""

    def transformation(document, context):
        parent = context.project.get_or_add_child_container_element("parent")
        parent.add_or_set_child_text_element("groupId", gav.group_id)
        parent.add_or_set_child_text_element("artifactId", gav.artifact_id)
        parent.add_or_set_child_text_element("version", gav.version)
        if relative_path is not None:
            parent.add_or_set_child_text_element("relativePath", relative_path)

    return transformation


# Sorting


def _marker_index(container: ContainerElement) -> Optional[int]:
    for i, node in enumerate(container.node.children):
        if isinstance(node, Comment) and SORT_REGION_MARKER in node.content:
            return i
    return None


def _marked_outside(*elements: ContainerElement) -> bool:
    for element in elements:
        comment = element.previous_sibling_comment()
        if comment is not None and SORT_REGION_MARKER in comment.content:
            return True
    return False


def _sort_children(container: ContainerElement, name: str, start: int, key_of, commented_modules: bool) -> None:
    """Sort the ``name`` children after ``start`` keeping the whitespace between them.

    Each unit is an element together with the comments right before it; a
    commented out module with its marker comment is a unit of its own.
    """
    children = container.node.children
    units = []
    pending = None
    i = start
    while i < len(children):
        node = children[i]
        if isinstance(node, Comment):
            commented = commented_module_name(node) if commented_modules else None
            if commented is not None:
                end = i
                if i + 1 < len(children) and isinstance(children[i + 1], Comment) \
                        and commented_module_name(children[i + 1]) is None:
                    end = i + 1
                units.append((commented, i if pending is None else pending, end))
                pending = None
                i = end + 1
                continue
            if pending is None:
                pending = i
        elif isinstance(node, Element):
            if node.name == name:
                units.append((key_of(ContainerElement(node, container.document)), i if pending is None else pending, i))
            pending = None
        elif not (isinstance(node, Text) and node.is_whitespace):
            pending = None
        i += 1

    ordered = sorted(units, key=lambda u: u[0])
    if [u[1] for u in ordered] == [u[1] for u in units]:
        return
    result = children[:start]
    pos = start
    for slot, unit in zip(units, ordered):
        result.extend(children[pos:slot[1]])
        result.extend(children[unit[1]:unit[2] + 1])
        pos = slot[2] + 1
    result.extend(children[pos:])
    container.node.set_children(result)


def sort_modules(profile_ids=None):
    """Sort ``<module>`` entries alphabetically.

    Only entries after a comment containing ``a..z`` are sorted; without such
    a comment the whole ``<modules>`` block is.

    Raises:
        TransformationError: If the POM has no ``<modules>``.
    """

    def transformation(document, context):
        containers = context.module_containers(profile_ids)
        if not containers:
            raise TransformationError(f"{context.pom_path}: no <modules> to sort")
        for modules in containers:
            marker = _marker_index(modules)
            start = 0 if marker is None else marker + 1
            _sort_children(modules, "module", start, lambda m: m.text, True)

    return transformation


def sort_dependency_management(profile_id: Optional[str] = None):
    """Sort managed dependencies by groupId, artifactId, type and classifier.

    The region to sort starts after a comment containing ``a..z``, either
    inside ``<dependencies>`` or right before it or its
    ``<dependencyManagement>``.

    Raises:
        TransformationError: If there are no managed dependencies or no marker.
    """

    def transformation(document, context):
        parent = context.require_profile_parent(profile_id)
        management = parent.get_child_container_element("dependencyManagement")
        deps = management.get_child_container_element("dependencies") if management is not None else None
        if deps is None:
            raise TransformationError(f"{context.pom_path}: no <dependencyManagement> to sort")
        marker = _marker_index(deps)
        if marker is not None:
            start = marker + 1
        elif _marked_outside(deps, management):
            start = 0
        else:
            raise TransformationError(
                f"{context.pom_path}: no '{SORT_REGION_MARKER}' comment marking the sorted dependencyManagement region"
            )
        _sort_children(deps, "dependency", start, lambda d: d.as_gavtcs().sort_key(), False)

    return transformation
