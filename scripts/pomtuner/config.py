"""Immutable settings of the pomtuner workflows.

Settings are plain frozen dataclasses built by the CLI from its options and
from an optional product JSON file like::

    {
      "groupId": "org.apache.camel.quarkus",
      "extensions": {"camel-quarkus-core": {}, "camel-quarkus-timer": {}},
      "additionalProductizedArtifacts": ["camel-quarkus-bom", "org.acme:acme-tools"],
      "includes": ["org.apache.camel.quarkus:*-support"],
      "excludesFile": ".mvn/excludes.txt",
      "marker": "disabled by pomtuner:prod-excludes"
    }
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError
from .gav_set import GavSet
from .pom_document import SimpleElementWhitespace
from .transformations import DEFAULT_MODULE_MARKER

DEFAULT_CHARSET = "utf-8"
DEFAULT_EXCLUDES_FILE = ".mvn/excludes.txt"
DEFAULT_GROUP_ID = "org.apache.camel.quarkus"
DEFAULT_SCRATCH_DIRECTORY = "target/prod-excludes-check"


class OnFailure(Enum):
    """What to do when a checking-mode comparison finds differences."""
    FAIL = "FAIL"
    WARN = "WARN"
    IGNORE = "IGNORE"


@dataclass(frozen=True)
class PrimaryProject:
    """A project (Camel, Quarkus, ...) whose artifacts are identified by GAV patterns."""
    project_id: str
    includes: tuple = ()
    excludes: tuple = ()

    @classmethod
    def parse(cls, value: str) -> "PrimaryProject":
        """Parse ``id=include1,include2[/exclude1,exclude2]``."""
        project_id, sep, patterns = value.partition("=")
        if not sep or not project_id:
            raise ConfigurationError(f"Expected id=patterns, found '{value}'")
        includes, _, excludes = patterns.partition("/")
        return cls(project_id, (includes,), (excludes,) if excludes else ())

    def to_gav_set(self) -> GavSet:
        return GavSet.builder().includes(list(self.includes)).excludes(list(self.excludes)).build()


@dataclass(frozen=True)
class Product:
    """The productized subset of a source tree.

    Attributes:
        group_id: groupId of extensions and of artifacts listed without one.
        extensions: artifactIds of the productized extensions.
        additional_productized_artifacts: ``artifactId`` or ``groupId:artifactId`` entries.
        includes: GAV patterns selecting further modules.
        excludes_file: Where to write the excluded modules, if not the default.
        marker: Marker of disabled modules, if not the default.
        version_transformations: ``(property, template)`` pairs applied by sync-versions;
            ``${version}`` in a template stands for the synchronized value.
    """
    group_id: str = DEFAULT_GROUP_ID
    extensions: tuple = ()
    additional_productized_artifacts: tuple = ()
    includes: tuple = ()
    excludes_file: Optional[str] = None
    marker: Optional[str] = None
    version_transformations: tuple = ()


@dataclass(frozen=True)
class ProdExcludesConfig:
    """Settings of :class:`~pomtuner.prod_excludes.ProdExcludesTask`."""
    root_directory: Path
    product: Product = field(default_factory=Product)
    profiles: tuple = ()
    properties: tuple = ()
    charset: str = DEFAULT_CHARSET
    simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY
    check: bool = False
    on_check_failure: OnFailure = OnFailure.FAIL
    scratch_directory: Optional[Path] = None

    @property
    def excludes_file(self) -> str:
        return self.product.excludes_file or DEFAULT_EXCLUDES_FILE

    @property
    def marker(self) -> str:
        return self.product.marker or DEFAULT_MODULE_MARKER

    @property
    def work_directory(self) -> Path:
        """The tree to operate on: a scratch copy in checking mode, the real tree otherwise."""
        if not self.check:
            return self.root_directory
        return self.scratch_directory or self.root_directory / DEFAULT_SCRATCH_DIRECTORY


def load_product_config(path: Path, charset: str = DEFAULT_CHARSET, extra_includes=()) -> Product:
    """Read a product JSON file.

    Args:
        path: The JSON file.
        charset: Its encoding.
        extra_includes: GAV patterns appended to the file's ``includes``.

    Raises:
        ConfigurationError: If the file cannot be read or is not a JSON object.
    """
    try:
        with open(path, encoding=charset) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not read product file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a JSON object")
    return Product(
        group_id=data.get("groupId", DEFAULT_GROUP_ID),
        extensions=tuple(sorted(data.get("extensions", {}))),
        additional_productized_artifacts=tuple(data.get("additionalProductizedArtifacts", [])),
        includes=tuple(data.get("includes", [])) + tuple(extra_includes),
        excludes_file=data.get("excludesFile"),
        marker=data.get("marker"),
        version_transformations=tuple(sorted(data.get("versionTransformations", {}).items())),
    )
