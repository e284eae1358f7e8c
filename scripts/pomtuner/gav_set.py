"""Pattern based sets of Maven coordinates.

A :class:`GavSet` is a membership predicate over ``groupId:artifactId[:version]``
built from include and exclude patterns. Each pattern has up to three
colon-separated segments; every segment may contain ``*`` wildcards and
missing trailing segments default to ``*``::

    GavSet.builder().includes("org.foo:*").excludes("org.foo:foo-test*").build()
"""

import re
from typing import Iterable, Optional, Union

from .errors import GavSetPatternError
from .pom_models import Ga

_SEPARATORS = re.compile(r"[\s,]+")


def _split_patterns(patterns) -> list:
    if patterns is None:
        return []
    if isinstance(patterns, str):
        patterns = [patterns]
    result = []
    for entry in patterns:
        result.extend(p for p in _SEPARATORS.split(entry.strip()) if p)
    return result


def _compile_segment(segment: str, raw: str) -> re.Pattern:
    if not segment:
        raise GavSetPatternError(f"Empty segment in GAV pattern '{raw}'")
    return re.compile("^" + ".*".join(re.escape(part) for part in segment.split("*")) + "$")


class GavPattern:
    """A single ``groupId[:artifactId[:version]]`` glob pattern."""

    def __init__(self, source: str):
        segments = source.split(":")
        if len(segments) > 3:
            raise GavSetPatternError(
                f"GAV pattern '{source}' has {len(segments)} segments; expected at most 3"
            )
        segments += ["*"] * (3 - len(segments))
        self.source = source
        self._group, self._artifact, self._version = (
            _compile_segment(s, source) for s in segments
        )
        self._version_is_wildcard = segments[2] == "*"

    def matches(self, group_id: str, artifact_id: str, version: Optional[str] = None) -> bool:
        if not self._group.match(group_id) or not self._artifact.match(artifact_id):
            return False
        if version is None or self._version_is_wildcard:
            return True
        return bool(self._version.match(version))

    def __eq__(self, other) -> bool:
        return isinstance(other, GavPattern) and other.source == self.source

    def __hash__(self) -> int:
        return hash(self.source)

    def __repr__(self) -> str:
        return f"GavPattern({self.source!r})"


class GavSet:
    """Base class of coordinate sets."""

    def contains(self, group_id: str, artifact_id: str, version: Optional[str] = None) -> bool:
        raise NotImplementedError

    def contains_ga(self, ga: Ga) -> bool:
        return self.contains(ga.group_id, ga.artifact_id, getattr(ga, "version", None))

    def __contains__(self, ga: Ga) -> bool:
        return self.contains_ga(ga)

    def union(self, other: "GavSet") -> "GavSet":
        """A set containing everything contained in ``self`` or in ``other``."""
        return UnionGavSet([self, other])

    def complement(self, universe: Iterable[Ga]) -> set:
        """All members of ``universe`` that this set does not contain.

        ``GavSet`` patterns may describe an infinite domain, so the universe
        has to be given explicitly.
        """
        return {ga for ga in universe if not self.contains_ga(ga)}

    @staticmethod
    def builder() -> "IncludeExcludeGavSetBuilder":
        return IncludeExcludeGavSetBuilder()

    @staticmethod
    def include(patterns: Union[str, Iterable[str]]) -> "IncludeExcludeGavSet":
        """Shorthand for ``GavSet.builder().includes(patterns).build()``."""
        return IncludeExcludeGavSetBuilder().includes(patterns).build()

    @staticmethod
    def exclude(patterns: Union[str, Iterable[str]]) -> "IncludeExcludeGavSet":
        """Everything except what ``patterns`` match."""
        return IncludeExcludeGavSetBuilder().excludes(patterns).build()

    @staticmethod
    def union_builder() -> "UnionGavSetBuilder":
        return UnionGavSetBuilder()

    @staticmethod
    def include_all() -> "IncludeExcludeGavSet":
        return _INCLUDE_ALL

    @staticmethod
    def exclude_all() -> "IncludeExcludeGavSet":
        return _EXCLUDE_ALL

    @staticmethod
    def of_gas(gas: Iterable[Ga]) -> "IncludeExcludeGavSet":
        """A set containing exactly the given ``Ga`` pairs."""
        patterns = [f"{ga.group_id}:{ga.artifact_id}" for ga in gas]
        if not patterns:
            return _EXCLUDE_ALL
        return IncludeExcludeGavSet([GavPattern(p) for p in patterns], [])


class IncludeExcludeGavSet(GavSet):
    """Contains a coordinate if any include matches and no exclude does."""

    def __init__(self, includes: list, excludes: list):
        self.includes = tuple(includes)
        self.excludes = tuple(excludes)

    def contains(self, group_id: str, artifact_id: str, version: Optional[str] = None) -> bool:
        if not any(p.matches(group_id, artifact_id, version) for p in self.includes):
            return False
        return not any(p.matches(group_id, artifact_id, version) for p in self.excludes)

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, IncludeExcludeGavSet)
            and set(other.includes) == set(self.includes)
            and set(other.excludes) == set(self.excludes)
        )

    def __hash__(self) -> int:
        return hash((frozenset(self.includes), frozenset(self.excludes)))

    def __repr__(self) -> str:
        inc = ",".join(p.source for p in self.includes)
        exc = ",".join(p.source for p in self.excludes)
        return f"GavSet(includes={inc!r}, excludes={exc!r})"


class UnionGavSet(GavSet):
    """Logical OR of its members; ``default_result`` applies when there are none."""

    def __init__(self, members: list, default_result: Optional[GavSet] = None):
        self.members = tuple(members)
        self.default_result = default_result

    def contains(self, group_id: str, artifact_id: str, version: Optional[str] = None) -> bool:
        if not self.members and self.default_result is not None:
            return self.default_result.contains(group_id, artifact_id, version)
        return any(m.contains(group_id, artifact_id, version) for m in self.members)

    def __repr__(self) -> str:
        return f"UnionGavSet({list(self.members)!r})"


class IncludeExcludeGavSetBuilder:
    """Collects include and exclude patterns.

    Patterns may be passed one by one, as lists, or as comma/whitespace
    separated strings. Without any include, everything is included.
    """

    def __init__(self):
        self._includes = []
        self._excludes = []

    def include(self, pattern: str) -> "IncludeExcludeGavSetBuilder":
        return self.includes(pattern)

    def includes(self, patterns: Union[str, Iterable[str], None]) -> "IncludeExcludeGavSetBuilder":
        self._includes.extend(GavPattern(p) for p in _split_patterns(patterns))
        return self

    def exclude(self, pattern: str) -> "IncludeExcludeGavSetBuilder":
        return self.excludes(pattern)

    def excludes(self, patterns: Union[str, Iterable[str], None]) -> "IncludeExcludeGavSetBuilder":
        self._excludes.extend(GavPattern(p) for p in _split_patterns(patterns))
        return self

    def build(self) -> IncludeExcludeGavSet:
        includes = self._includes or [GavPattern("*")]
        return IncludeExcludeGavSet(includes, self._excludes)


class UnionGavSetBuilder:
    def __init__(self):
        self._members = []
        self._default_result = None

    def union(self, gav_set: GavSet) -> "UnionGavSetBuilder":
        self._members.append(gav_set)
        return self

    def default_result(self, gav_set: GavSet) -> "UnionGavSetBuilder":
        self._default_result = gav_set
        return self

    def build(self) -> UnionGavSet:
        return UnionGavSet(self._members, self._default_result)


_INCLUDE_ALL = IncludeExcludeGavSet([GavPattern("*")], [])
_EXCLUDE_ALL = IncludeExcludeGavSet([], [])
