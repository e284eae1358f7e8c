"""Read-only POM parsing and XML helpers.

Turns a ``pom.xml`` into a :class:`~pomtuner.pom_models.Module`: coordinates,
parent reference, and one :class:`~pomtuner.pom_models.Profile` per section
(the default section first), each carrying modules, dependencies, managed
dependencies, build plugins and properties. Placeholders are kept verbatim;
evaluating them is the job of :mod:`pomtuner.expressions`.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from .errors import PomStructureError
from .pom_models import Dependency, Ga, Module, ParentRef, Plugin, Profile, profile_id_or_default, require_ga

logger = logging.getLogger(__name__)

# XML namespace used by Maven POM files (POM model version 4.0.0).
NS = {"m": "http://maven.apache.org/POM/4.0.0"}

DEFAULT_PLUGIN_GROUP_ID = "org.apache.maven.plugins"


def _find(el, tag, ns=NS):
    """Find a direct child XML element, trying with and without the Maven namespace.

    Args:
        el: Parent XML element to search within.
        tag: Tag name to look for (without namespace prefix).
        ns: Namespace mapping (defaults to Maven POM 4.0.0).

    Returns:
        The first matching child element, or ``None`` if not found.
    """
    if el is None:
        return None
    result = el.find(f"m:{tag}", ns)
    if result is not None:
        return result
    return el.find(tag)


def _find_path(el, *tags):
    for tag in tags:
        el = _find(el, tag)
        if el is None:
            return None
    return el


def _findall(el, tag, ns=NS) -> list:
    if el is None:
        return []
    return list(el.findall(f"m:{tag}", ns)) + list(el.findall(tag))


def _text(el, tag, ns=NS):
    """Extract the text content of a child element.

    Args:
        el: Parent XML element.
        tag: Tag name of the child element.
        ns: Namespace mapping.

    Returns:
        Stripped text content, or ``None`` if the element doesn't exist or is empty.
    """
    child = _find(el, tag, ns)
    if child is not None and child.text:
        return child.text.strip()
    return None


def _local_name(tag: str) -> str:
    return tag.split("}")[-1] if "}" in tag else tag


def _parse_dependency(dep_el) -> Dependency:
    """Parse a ``<dependency>`` XML element into a Dependency dataclass.

    Keeps ``scope`` as ``None`` when absent, so that managed scopes are not
    confused with an explicit ``compile``.

    Args:
        dep_el: The ``<dependency>`` XML element.

    Returns:
        A populated Dependency instance.
    """
    optional_text = _text(dep_el, "optional")
    exclusions = []
    for ex in _findall(_find(dep_el, "exclusions"), "exclusion"):
        eg = _text(ex, "groupId")
        ea = _text(ex, "artifactId")
        if eg and ea:
            exclusions.append((eg, ea))
    return Dependency(
        group_id=_text(dep_el, "groupId") or "",
        artifact_id=_text(dep_el, "artifactId") or "",
        version=_text(dep_el, "version"),
        scope=_text(dep_el, "scope"),
        classifier=_text(dep_el, "classifier"),
        dep_type=_text(dep_el, "type") or "jar",
        optional=bool(optional_text) and optional_text.lower() == "true",
        exclusions=exclusions,
    )


def _parse_plugin(plugin_el) -> Plugin:
    """Parse a ``<plugin>`` XML element into a Plugin dataclass.

    If groupId is absent, it defaults to ``org.apache.maven.plugins``.
    """
    return Plugin(
        group_id=_text(plugin_el, "groupId") or DEFAULT_PLUGIN_GROUP_ID,
        artifact_id=_text(plugin_el, "artifactId") or "",
        version=_text(plugin_el, "version"),
        dependencies=[
            _parse_dependency(d)
            for d in _findall(_find(plugin_el, "dependencies"), "dependency")
        ],
    )


def _parse_activation(profile_el) -> dict:
    activation = {}
    act_el = _find(profile_el, "activation")
    if act_el is None:
        return activation
    by_default = _text(act_el, "activeByDefault")
    if by_default:
        activation["activeByDefault"] = by_default.lower() == "true"
    jdk = _text(act_el, "jdk")
    if jdk:
        activation["jdk"] = jdk
    prop_el = _find(act_el, "property")
    if prop_el is not None:
        activation["property"] = {
            "name": _text(prop_el, "name"),
            "value": _text(prop_el, "value"),
        }
    return activation


def _parse_section(section_el, profile_id: Optional[str]) -> Profile:
    """Parse the profile-able content of ``<project>`` or of a ``<profile>``."""
    properties = {}
    props_el = _find(section_el, "properties")
    if props_el is not None:
        for child in props_el:
            if isinstance(child.tag, str):
                properties[_local_name(child.tag)] = (child.text or "").strip()

    return Profile(
        profile_id=profile_id,
        activation=_parse_activation(section_el) if profile_id is not None else {},
        modules=[
            m.text.strip()
            for m in _findall(_find(section_el, "modules"), "module")
            if m.text and m.text.strip()
        ],
        dependencies=[
            _parse_dependency(d)
            for d in _findall(_find(section_el, "dependencies"), "dependency")
        ],
        dependency_management=[
            _parse_dependency(d)
            for d in _findall(_find_path(section_el, "dependencyManagement", "dependencies"), "dependency")
        ],
        plugins=[
            _parse_plugin(p)
            for p in _findall(_find_path(section_el, "build", "plugins"), "plugin")
        ],
        properties=properties,
    )


def parse_pom_bytes(data: bytes, pom_path: str, charset: str = "utf-8") -> Module:
    """Parse POM content into a Module.

    Args:
        data: Raw bytes of the ``pom.xml``.
        pom_path: Path of the POM relative to the tree root; used in
            the model and in error messages.
        charset: Encoding to use when the document does not declare one.

    Returns:
        A Module. groupId and version are inherited from the parent when the
        POM does not declare its own.

    Raises:
        PomStructureError: If the XML is malformed or the module has no
            literal groupId/artifactId.
    """
    try:
        root = ET.fromstring(data, parser=ET.XMLParser(encoding=charset))
    except ET.ParseError as e:
        raise PomStructureError(f"Could not parse {pom_path}: {e}") from e

    parent = None
    parent_el = _find(root, "parent")
    if parent_el is not None:
        parent_ga = require_ga(_text(parent_el, "groupId"), _text(parent_el, "artifactId"), pom_path)
        parent = ParentRef(
            ga=parent_ga,
            version=_text(parent_el, "version"),
            relative_path=_text(parent_el, "relativePath"),
        )

    own_version = _text(root, "version")
    group_id = _text(root, "groupId") or (parent.ga.group_id if parent else None)
    ga = require_ga(group_id, _text(root, "artifactId"), pom_path)

    profiles = [_parse_section(root, None)]
    for prof_el in _findall(_find(root, "profiles"), "profile"):
        profiles.append(_parse_section(prof_el, profile_id_or_default(_text(prof_el, "id"))))

    module = Module(
        pom_path=pom_path,
        ga=ga,
        version=own_version or (parent.version if parent else None),
        packaging=_text(root, "packaging") or "jar",
        parent=parent,
        profiles=profiles,
        declares_version=own_version is not None,
    )
    logger.debug("Parsed %s as %s", pom_path, module.gav)
    return module


def parse_pom(pom_file: Path, pom_path: Optional[str] = None, charset: str = "utf-8") -> Module:
    """Parse a ``pom.xml`` file into a Module.

    Handles both namespaced and non-namespaced POM files.

    Args:
        pom_file: Filesystem path to the pom.xml file.
        pom_path: Relative path recorded in the Module; defaults to the file name.
        charset: Encoding to use when the document does not declare one.

    Raises:
        PomStructureError: If the file is missing or cannot be parsed.
    """
    pom_file = Path(pom_file)
    try:
        data = pom_file.read_bytes()
    except OSError as e:
        raise PomStructureError(f"Could not read {pom_file}: {e}") from e
    return parse_pom_bytes(data, pom_path or pom_file.name, charset)


def parse_gas_of_bom(pom_file: Path, charset: str = "utf-8") -> list:
    """The managed dependencies of a BOM file as ``(Ga, version)`` pairs."""
    module = parse_pom(pom_file, charset=charset)
    return [
        (Ga(d.group_id, d.artifact_id), d.version)
        for d in module.default_profile.dependency_management
    ]
