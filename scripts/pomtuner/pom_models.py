"""Maven data model classes.

Value types for Maven coordinates and pure data structures representing a
parsed module tree. No behavior beyond trivial conversions and no imports
from other pomtuner modules except the error types.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from .errors import PomStructureError

# The scope of dependencies that only enforce build ordering.
VIRTUAL_SCOPE = "test"
VIRTUAL_TYPE = "pom"
WILDCARD_EXCLUSION = ("*", "*")


@dataclass(frozen=True, order=True)
class Ga:
    """A ``groupId:artifactId`` pair.

    Ordered lexicographically by groupId, then artifactId.
    """
    group_id: str
    artifact_id: str

    @classmethod
    def of(cls, coords: str) -> "Ga":
        """Parse a ``groupId:artifactId`` string.

        Raises:
            ValueError: If ``coords`` does not have exactly two segments.
        """
        parts = coords.strip().split(":")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Expected groupId:artifactId, found '{coords}'")
        return cls(parts[0], parts[1])

    def to_ga(self) -> "Ga":
        return Ga(self.group_id, self.artifact_id)

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"


@dataclass(frozen=True, order=True)
class Gav(Ga):
    """A ``groupId:artifactId:version`` triple.

    The version may still be a ``${property}`` placeholder.
    """
    version: Optional[str] = None

    @classmethod
    def of(cls, coords: str) -> "Gav":
        parts = coords.strip().split(":")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Expected groupId:artifactId:version, found '{coords}'")
        return cls(parts[0], parts[1], parts[2])

    @property
    def is_resolved(self) -> bool:
        """``True`` if the version is a literal rather than a placeholder."""
        return self.version is not None and "${" not in self.version

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.version}"


@dataclass(frozen=True)
class Gavtcs:
    """The full coordinate of a ``<dependency>`` element.

    Attributes:
        group_id: groupId, possibly a placeholder.
        artifact_id: artifactId, possibly a placeholder.
        version: Version or ``None`` if managed.
        type: Dependency type, ``jar`` unless stated otherwise.
        classifier: Optional classifier.
        scope: Scope as written in the POM; ``None`` if absent.
        exclusions: Tuple of ``(groupId, artifactId)`` pairs.
    """
    group_id: str
    artifact_id: str
    version: Optional[str] = None
    type: str = "jar"
    classifier: Optional[str] = None
    scope: Optional[str] = None
    exclusions: tuple = ()

    @classmethod
    def virtual(cls, group_id: str, artifact_id: str, version: Optional[str] = None) -> "Gavtcs":
        return cls(group_id, artifact_id, version).to_virtual()

    @property
    def is_virtual(self) -> bool:
        """Virtual dependencies only order the build; they never land on a classpath."""
        return (
            self.type == VIRTUAL_TYPE
            and self.scope == VIRTUAL_SCOPE
            and WILDCARD_EXCLUSION in self.exclusions
        )

    def to_virtual(self) -> "Gavtcs":
        return replace(
            self,
            type=VIRTUAL_TYPE,
            scope=VIRTUAL_SCOPE,
            exclusions=(WILDCARD_EXCLUSION,),
        )

    def to_ga(self) -> Ga:
        return Ga(self.group_id, self.artifact_id)

    def sort_key(self) -> tuple:
        return (self.group_id, self.artifact_id, self.type, self.classifier or "")

    def __str__(self) -> str:
        parts = [self.group_id, self.artifact_id, self.version or "", self.type, self.classifier or ""]
        return ":".join(parts).rstrip(":")


@dataclass
class Dependency:
    """A Maven ``<dependency>`` element as written in a POM.

    All string fields hold the raw text, so they may contain ``${...}``
    placeholders. ``scope`` is ``None`` when the element has no ``<scope>``.
    """
    group_id: str
    artifact_id: str
    version: Optional[str] = None
    scope: Optional[str] = None
    classifier: Optional[str] = None
    dep_type: str = "jar"
    optional: bool = False
    exclusions: list = field(default_factory=list)

    def to_gavtcs(self) -> Gavtcs:
        return Gavtcs(
            group_id=self.group_id,
            artifact_id=self.artifact_id,
            version=self.version,
            type=self.dep_type,
            classifier=self.classifier,
            scope=self.scope,
            exclusions=tuple(self.exclusions),
        )

    @property
    def is_virtual(self) -> bool:
        return self.to_gavtcs().is_virtual

    @property
    def is_bom_import(self) -> bool:
        return self.dep_type == "pom" and self.scope == "import"


@dataclass
class Plugin:
    """A Maven ``<plugin>`` element; groupId defaults to ``org.apache.maven.plugins``."""
    group_id: str
    artifact_id: str
    version: Optional[str] = None
    dependencies: list = field(default_factory=list)


# Maven's id of a <profile> without <id>.
IDLESS_PROFILE_ID = "default"


def profile_id_or_default(profile_id: Optional[str]) -> str:
    return profile_id or IDLESS_PROFILE_ID


@dataclass
class Profile:
    """One gated section of a POM.

    The part of the POM outside of ``<profiles>`` is represented as a profile
    with ``profile_id=None``; it is always the first profile of a module.

    Attributes:
        profile_id: The ``<id>`` of the profile, ``None`` for the default section.
        activation: Parsed activation conditions.
        modules: Child module paths declared in ``<modules>``.
        dependencies: ``<dependencies>`` entries.
        dependency_management: ``<dependencyManagement>`` entries.
        plugins: ``<build><plugins>`` entries.
        properties: ``<properties>`` in document order.
    """
    profile_id: Optional[str] = None
    activation: dict = field(default_factory=dict)
    modules: list = field(default_factory=list)
    dependencies: list = field(default_factory=list)
    dependency_management: list = field(default_factory=list)
    plugins: list = field(default_factory=list)
    properties: dict = field(default_factory=dict)

    @property
    def is_default(self) -> bool:
        return self.profile_id is None

    @property
    def active_by_default(self) -> bool:
        return bool(self.activation.get("activeByDefault"))


@dataclass(frozen=True)
class ParentRef:
    """The ``<parent>`` reference of a module."""
    ga: Ga
    version: Optional[str] = None
    relative_path: Optional[str] = None


@dataclass
class Module:
    """Central parse result for a single ``pom.xml`` file.

    Attributes:
        pom_path: Path of the POM relative to the tree root, ``/``-separated.
        ga: Literal coordinates; groupId is inherited from the parent if absent.
        version: Raw version, inherited from the parent if absent.
        packaging: ``jar`` unless stated otherwise.
        parent: The parent reference, if any.
        profiles: Default profile first, then the ``<profiles>`` entries.
        declares_version: Whether the POM has its own ``<version>`` element.
    """
    pom_path: str
    ga: Ga
    version: Optional[str] = None
    packaging: str = "jar"
    parent: Optional[ParentRef] = None
    profiles: list = field(default_factory=list)
    declares_version: bool = True

    @property
    def gav(self) -> Gav:
        return Gav(self.ga.group_id, self.ga.artifact_id, self.version)

    @property
    def default_profile(self) -> Profile:
        return self.profiles[0]

    @property
    def directory(self) -> str:
        """The directory of the POM relative to the tree root, ``""`` for the root."""
        head, _, _ = self.pom_path.rpartition("/")
        return head

    def module_paths(self, profiles=None) -> list:
        """Child module declarations of all (or only the matching) profiles."""
        result = []
        for profile in self.profiles:
            if profiles is None or profiles(profile):
                result.extend(profile.modules)
        return result


class EdgeKind(Enum):
    """Distinguishes artifact dependencies from build-ordering-only ones."""
    REAL = "real"
    VIRTUAL = "virtual"


@dataclass(frozen=True, order=True)
class DependencyEdge:
    """A closure edge from a module to another module of the same tree."""
    ga: Ga
    kind: EdgeKind = field(default=EdgeKind.REAL, compare=False)

    @property
    def is_virtual(self) -> bool:
        return self.kind is EdgeKind.VIRTUAL


def require_ga(group_id: Optional[str], artifact_id: Optional[str], pom_path: str) -> Ga:
    """Build the literal :class:`Ga` of a module or fail with a structural error."""
    for what, value in (("groupId", group_id), ("artifactId", artifact_id)):
        if not value:
            raise PomStructureError(f"{pom_path}: missing {what}")
        if "${" in value:
            raise PomStructureError(f"{pom_path}: {what} '{value}' must be a literal")
    return Ga(group_id, artifact_id)
