"""Keep properties in sync with values found in the POM files of other artifacts.

A property of the default ``<properties>`` section is synchronized when a
``@sync`` comment follows it on the same line::

    <quarkus.version>3.8.0</quarkus.version>
    <avro.version>1.11.3</avro.version><!-- @sync io.quarkus:quarkus-bom:${quarkus.version} dep:org.apache.avro:avro -->
    <assertj.version>3.25.1</assertj.version><!-- @sync io.quarkus:quarkus-build-parent:${quarkus.version} prop:assertj.version -->

The coordinates select the POM to read; their version may refer to other
properties. ``prop:name`` takes the value of a property visible in that POM
and ``dep:groupId:artifactId`` the version of a dependency it manages or
declares. A property is updated before any expression whose coordinates
refer to it is evaluated.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Callable, Optional

from .errors import ConfigurationError, ExpressionError
from .expressions import ActiveProfiles, ExpressionEvaluator
from .pom_document import SimpleElementWhitespace
from .pom_models import Ga, Gav
from .pom_transformer import PomTransformer
from .resolver import PomModelCache
from .source_tree import MavenSourceTree

logger = logging.getLogger(__name__)

_SYNC_INSTRUCTION = re.compile(
    r"\s*@sync (?P<group_id>[^:]*):(?P<artifact_id>[^:]*):(?P<version>[^:]*)"
    r" (?P<method>[^:]+):(?P<element>[^ ]+)\s*"
)
_PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")


@dataclass(frozen=True)
class SyncExpression:
    """A parsed ``@sync`` comment and the property it belongs to."""
    property_name: str
    group_id: str
    artifact_id: str
    raw_version: str
    method: str
    element: str

    @classmethod
    def parse(cls, property_name: str, comment_text: str) -> Optional["SyncExpression"]:
        """``None`` unless ``comment_text`` is a well formed ``@sync`` instruction."""
        m = _SYNC_INSTRUCTION.fullmatch(comment_text)
        if m is None:
            return None
        return cls(
            property_name,
            m.group("group_id"),
            m.group("artifact_id"),
            m.group("version"),
            m.group("method"),
            m.group("element"),
        )

    @property
    def required_properties(self) -> tuple:
        """Properties that have to be final before this expression can be evaluated."""
        return tuple(dict.fromkeys(_PLACEHOLDER.findall(self.raw_version)))

    def evaluate(self, evaluate_expression: Callable[[str], str], pom_models: PomModelCache) -> str:
        """Fetch the referenced POM and read the value out of it.

        Args:
            evaluate_expression: Resolves placeholders in the context of the
                POM holding the ``@sync`` comment.
            pom_models: Source of the referenced POM and its parents.

        Raises:
            ConfigurationError: If the method is neither ``prop`` nor ``dep``.
            ExpressionError: If the POM has no such property or dependency.
        """
        gav = Gav(self.group_id, self.artifact_id, evaluate_expression(self.raw_version))
        lineage = pom_models.lineage(gav)
        evaluator = ExpressionEvaluator(lineage, ActiveProfiles.of())
        if self.method == "prop":
            raw = evaluator.effective_properties(lineage.module).get(self.element)
            if raw is None:
                raise ExpressionError(f"No property {self.element} in {gav}:pom")
        elif self.method == "dep":
            raw = dependency_version(lineage.module, self.element, gav)
        else:
            raise ConfigurationError(
                f"Unexpected method {self.method} in @sync of {self.property_name}; expected prop or dep"
            )
        return evaluator.evaluate(raw, lineage.module)


def dependency_version(module, element: str, gav: Gav) -> str:
    """The raw version of the ``groupId:artifactId`` dependency of ``module``.

    Managed dependencies are searched before plain ones.
    """
    try:
        ga = Ga.of(element)
    except ValueError as e:
        raise ConfigurationError(f"Invalid @sync dependency in {gav}: {e}") from e
    profile = module.default_profile
    for dep in profile.dependency_management + profile.dependencies:
        if dep.group_id == ga.group_id and dep.artifact_id == ga.artifact_id and dep.version is not None:
            return dep.version
    raise ExpressionError(f"No such dependency {element} in {gav}:pom")


def evaluate_all(expressions, evaluate_expression: Callable[[str], str], pom_models: PomModelCache):
    """Evaluate ``expressions`` in dependency order.

    Yields ``(expression, value)`` pairs. Consumers may change what
    ``evaluate_expression`` returns between two items; expressions depending
    on an already yielded property are evaluated afterwards.

    Raises:
        ExpressionError: If the remaining expressions depend on each other.
    """
    pending = {e.property_name: e for e in expressions}
    while pending:
        ready = [e for e in pending.values() if not any(p in pending for p in e.required_properties)]
        if not ready:
            raise ExpressionError(
                f"Cannot resolve @sync properties {', '.join(pending)}. Is there perhaps a dependency cycle?"
            )
        for expression in ready:
            del pending[expression.property_name]
            yield expression, expression.evaluate(evaluate_expression, pom_models)


def _apply_template(template: str, version: str, property_name: str) -> str:
    try:
        return Template(template).substitute(version=version)
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"Invalid version transformation of {property_name}: '{template}'") from e


def sync_versions(pom_models: PomModelCache, evaluate_expression: Callable[[str], str], version_transformations=None):
    """Set every ``@sync`` tagged property to the value it refers to.

    Args:
        pom_models: Source of the referenced POM files.
        evaluate_expression: Resolves placeholders in the context of the POM
            being transformed. Values set by this transformation take
            precedence over what it returns.
        version_transformations: Mapping from property name to a template in
            which ``${version}`` stands for the synchronized value.
    """
    templates = dict(version_transformations or {})

    def transformation(document, context):
        props = context.get_container_element("properties")
        if props is None:
            logger.debug("%s: no <properties> to sync", context.pom_path)
            return
        elements = {}
        expressions = []
        for prop in props.child_elements():
            comment = prop.next_sibling_comment()
            expression = SyncExpression.parse(prop.name, comment.content) if comment is not None else None
            if expression is not None:
                elements[prop.name] = prop
                expressions.append(expression)

        updated = {}

        def evaluate(raw: str) -> str:
            return evaluate_expression(_PLACEHOLDER.sub(lambda m: updated.get(m.group(1), m.group(0)), raw))

        for expression, value in evaluate_all(expressions, evaluate, pom_models):
            name = expression.property_name
            if name in templates:
                value = _apply_template(templates[name], value, name)
            prop = elements[name]
            if prop.text == value:
                logger.info(" ✓ %s: %s", name, value)
            else:
                logger.info(" 🚀 %s: %s -> %s", name, prop.text, value)
                prop.set_text(value)
            updated[name] = value

    return transformation


def sync_tree_versions(
    root_pom: Path,
    pom_models: PomModelCache,
    profiles: ActiveProfiles = ActiveProfiles(),
    user_properties: Optional[dict] = None,
    version_transformations=None,
    charset: str = "utf-8",
    simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY,
) -> bool:
    """Synchronize the ``@sync`` properties of the root POM of a source tree.

    Placeholders in the ``@sync`` coordinates are evaluated in the context of
    the root module with the given profiles and user properties.

    Returns:
        ``True`` if the root POM was rewritten.
    """
    tree = MavenSourceTree.of(root_pom, charset)
    evaluator = ExpressionEvaluator(tree, profiles, user_properties)
    return PomTransformer(root_pom, charset, simple_element_whitespace).transform(
        sync_versions(
            pom_models,
            lambda raw: evaluator.evaluate(raw, tree.root_module),
            version_transformations,
        )
    )
