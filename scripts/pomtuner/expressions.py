"""Maven ``${property}`` evaluation over a module tree.

Properties are looked up in the context of the module where the expression
was found, following Maven's interpolation rules as far as this tool needs
them: user properties first, then the ``project.*`` built-ins, then the
properties inherited along the parent chain with each POM's active profiles
overriding its default section.
"""

import logging
import re
from typing import Optional

from .errors import ConsistencyError, ExpressionError
from .pom_models import Module, Profile

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


class ActiveProfiles:
    """Predicate selecting the profiles considered active.

    The default section of a POM is always active. Named profiles are active
    when listed explicitly or when they declare ``activeByDefault``, unless
    disabled with a ``!id`` entry.
    """

    def __init__(self, enabled=(), disabled=()):
        self.enabled = frozenset(enabled)
        self.disabled = frozenset(disabled)

    @classmethod
    def of(cls, *ids: str) -> "ActiveProfiles":
        enabled = [i for i in ids if not i.startswith("!")]
        disabled = [i[1:] for i in ids if i.startswith("!")]
        return cls(enabled, disabled)

    def __call__(self, profile: Profile) -> bool:
        if profile.is_default:
            return True
        if profile.profile_id in self.disabled:
            return False
        return profile.profile_id in self.enabled or profile.active_by_default

    def __repr__(self) -> str:
        ids = sorted(self.enabled) + sorted("!" + i for i in self.disabled)
        return f"ActiveProfiles.of({', '.join(repr(i) for i in ids)})"


def require_literal(value: Optional[str], pom_path: str, what: str) -> str:
    """Return ``value`` unchanged if it contains no placeholder.

    Raises:
        ConsistencyError: If ``value`` is missing or still contains ``${``.
    """
    if value is None or "${" in value:
        raise ConsistencyError(
            f"{pom_path}: expected {what} to be a literal, found '{value}'",
            pom_path=pom_path,
            expected="a literal value",
            actual=value,
        )
    return value


class ExpressionEvaluator:
    """Resolves placeholders in raw POM values.

    Args:
        tree: The :class:`~pomtuner.source_tree.MavenSourceTree` the modules
            belong to. Only ``modules_by_ga`` and ``root_directory`` are used.
        profiles: Predicate over :class:`Profile` selecting active profiles.
        user_properties: Properties overriding anything defined in the POMs,
            like ``-D`` options on Maven's command line.
    """

    def __init__(self, tree, profiles, user_properties: Optional[dict] = None):
        self.tree = tree
        self.profiles = profiles
        self.user_properties = dict(user_properties or {})
        self._effective = {}

    def evaluate(self, raw: Optional[str], module: Module) -> Optional[str]:
        """Replace every ``${...}`` in ``raw`` by its value.

        Args:
            raw: The raw string as written in the POM; ``None`` passes through.
            module: The module in whose context the string is evaluated.

        Returns:
            The fully resolved string.

        Raises:
            ExpressionError: If a property is undefined or defined cyclically.
        """
        if raw is None or "${" not in raw:
            return raw
        return self._interpolate(raw, module, ())

    def effective_properties(self, module: Module) -> dict:
        """The raw property table visible to ``module``."""
        cached = self._effective.get(module.pom_path)
        if cached is not None:
            return cached
        chain = []
        current = module
        while current is not None and all(c.pom_path != current.pom_path for c in chain):
            chain.append(current)
            parent = current.parent
            current = self.tree.modules_by_ga.get(parent.ga) if parent is not None else None
        props = {}
        for pom in reversed(chain):
            for profile in pom.profiles:
                if self.profiles(profile):
                    props.update(profile.properties)
        self._effective[module.pom_path] = props
        return props

    def _interpolate(self, raw: str, module: Module, stack: tuple) -> str:
        return _PLACEHOLDER.sub(lambda m: self._lookup(m.group(1), module, stack), raw)

    def _lookup(self, name: str, module: Module, stack: tuple) -> str:
        if name in stack:
            cycle = " -> ".join(stack[stack.index(name):] + (name,))
            raise ExpressionError(
                f"Cyclic property reference {cycle} in {module.pom_path}"
            )
        value = self._raw_value(name, module)
        if value is None:
            raise ExpressionError(
                f"Cannot evaluate ${{{name}}} in {module.pom_path}: property is not defined"
            )
        if "${" in value:
            value = self._interpolate(value, module, stack + (name,))
        return value

    def _raw_value(self, name: str, module: Module) -> Optional[str]:
        if name in self.user_properties:
            return self.user_properties[name]
        builtin = self._builtin(name, module)
        if builtin is not None:
            return builtin
        return self.effective_properties(module).get(name)

    def _builtin(self, name: str, module: Module) -> Optional[str]:
        for prefix in ("project.", "pom."):
            if name.startswith(prefix):
                key = name[len(prefix):]
                break
        else:
            return None
        parent = module.parent
        values = {
            "groupId": module.ga.group_id,
            "artifactId": module.ga.artifact_id,
            "version": module.version,
            "packaging": module.packaging,
            "parent.groupId": parent.ga.group_id if parent else None,
            "parent.artifactId": parent.ga.artifact_id if parent else None,
            "parent.version": parent.version if parent else None,
        }
        if key == "basedir":
            base = self.tree.root_directory
            return str(base / module.directory if module.directory else base)
        return values.get(key)
