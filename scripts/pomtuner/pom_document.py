"""Formatting-preserving XML document model for POM files.

The document is tokenized into a tree of nodes that each keep their exact
source text. Untouched nodes serialize verbatim, so a document that was not
edited round-trips byte for byte, line endings included. Edits replace or
insert whole nodes and add whitespace derived from the document's own
end-of-line and indentation conventions.
"""

import html
import logging
import re
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Optional
from xml.sax.saxutils import escape

from .errors import PomStructureError

logger = logging.getLogger(__name__)

_TOKEN = re.compile(
    r"""
    (?P<comment><!--.*?-->)
    | (?P<cdata><!\[CDATA\[.*?\]\]>)
    | (?P<pi><\?.*?\?>)
    | (?P<doctype><!DOCTYPE(?:[^\[>]|\[.*?\])*>)
    | (?P<end></(?P<end_name>[^\s>]+)\s*>)
    | (?P<start><(?P<start_name>[^\s/>]+)
        (?:\s+[^\s=/>]+\s*=\s*(?:"[^"]*"|'[^']*'))*
        \s*(?P<empty>/)?>)
    """,
    re.S | re.X,
)

_SELF_CLOSING = re.compile(r"<[^\s/>!?][^<>]*?(\s?)/>")

DEFAULT_INDENT = "    "


class SimpleElementWhitespace(Enum):
    """How to render elements without content that are created by an edit.

    ``EMPTY`` renders ``<a/>``, ``SPACE`` renders ``<a />``. The autodetecting
    variants follow the majority style of the document and fall back to
    their preferred style when the document has no empty elements or a tie.
    """
    EMPTY = "EMPTY"
    SPACE = "SPACE"
    AUTODETECT_PREFER_EMPTY = "AUTODETECT_PREFER_EMPTY"
    AUTODETECT_PREFER_SPACE = "AUTODETECT_PREFER_SPACE"

    def resolve(self, source: str) -> str:
        """The whitespace to put before ``/>`` in ``source``."""
        if self is SimpleElementWhitespace.EMPTY:
            return ""
        if self is SimpleElementWhitespace.SPACE:
            return " "
        spaced = empty = 0
        for m in _SELF_CLOSING.finditer(source):
            if m.group(1):
                spaced += 1
            else:
                empty += 1
        if spaced == empty:
            return " " if self is SimpleElementWhitespace.AUTODETECT_PREFER_SPACE else ""
        return " " if spaced > empty else ""


class Node:
    """A piece of the document with its verbatim source text."""

    def __init__(self, raw: str):
        self.raw = raw
        self.parent: Optional["Element"] = None

    def serialize(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.raw!r})"


class Text(Node):
    @property
    def is_whitespace(self) -> bool:
        return not self.raw.strip()

    @property
    def value(self) -> str:
        return html.unescape(self.raw)


class Comment(Node):
    @classmethod
    def of(cls, content: str) -> "Comment":
        return cls(f"<!--{content}-->")

    @property
    def content(self) -> str:
        return self.raw[4:-3]


class Cdata(Node):
    @property
    def value(self) -> str:
        return self.raw[9:-3]


class Markup(Node):
    """XML declaration, processing instruction or doctype."""


class Element(Node):
    """An element; ``end_tag`` is ``None`` for ``<a/>``."""

    def __init__(self, tag: str, start_tag: str, end_tag: Optional[str] = None):
        super().__init__(start_tag)
        self.tag = tag
        self.start_tag = start_tag
        self.end_tag = end_tag
        self.children = []

    @property
    def name(self) -> str:
        return self.tag.rpartition(":")[2]

    @property
    def depth(self) -> int:
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    @property
    def text(self) -> str:
        return "".join(c.value for c in self.children if isinstance(c, (Text, Cdata)))

    def element_children(self, name: Optional[str] = None) -> list:
        return [
            c for c in self.children
            if isinstance(c, Element) and (name is None or c.name == name)
        ]

    def index(self, node: Node) -> int:
        for i, child in enumerate(self.children):
            if child is node:
                return i
        raise ValueError(f"{node!r} is not a child of <{self.tag}>")

    def insert(self, index: int, node: Node) -> None:
        if self.end_tag is None:
            self._open()
        node.parent = self
        self.children.insert(index, node)

    def set_children(self, nodes: list) -> None:
        if nodes and self.end_tag is None:
            self._open()
        for node in nodes:
            node.parent = self
        self.children = list(nodes)

    def remove_child(self, node: Node) -> None:
        del self.children[self.index(node)]
        node.parent = None

    def set_text(self, value: str) -> None:
        self.set_children([Text(escape(value))] if value else [])

    def _open(self) -> None:
        self.start_tag = re.sub(r"\s*/>$", ">", self.start_tag)
        self.end_tag = f"</{self.tag}>"

    def serialize(self) -> str:
        if self.end_tag is None:
            return self.start_tag
        return self.start_tag + "".join(c.serialize() for c in self.children) + self.end_tag

    def __repr__(self) -> str:
        return f"Element(<{self.tag}>)"


class PomDocument:
    """A parsed POM that serializes back to its source unless edited.

    Attributes:
        nodes: Top level nodes: prolog, the root element, trailing content.
        root: The ``<project>`` element.
        eol: ``\\r\\n`` if the source uses it anywhere, ``\\n`` otherwise.
        indent: One level of indentation, detected from the root's children.
        empty_element_space: ``""`` or ``" "``, see :class:`SimpleElementWhitespace`.
    """

    def __init__(self, nodes: list, root: Element, eol: str, indent: str, empty_element_space: str = ""):
        self.nodes = nodes
        self.root = root
        self.eol = eol
        self.indent = indent
        self.empty_element_space = empty_element_space

    @classmethod
    def parse(
        cls,
        source: str,
        pom_path: str = "pom.xml",
        simple_element_whitespace: SimpleElementWhitespace = SimpleElementWhitespace.EMPTY,
    ) -> "PomDocument":
        """Tokenize ``source`` into a document.

        Raises:
            PomStructureError: If ``source`` is not well-formed XML.
        """
        try:
            ET.fromstring(source)
        except ET.ParseError as e:
            raise PomStructureError(f"Could not parse {pom_path}: {e}") from e

        top = []
        stack = []
        pos = 0

        def add(node):
            if stack:
                node.parent = stack[-1]
                stack[-1].children.append(node)
            else:
                top.append(node)

        for m in _TOKEN.finditer(source):
            if m.start() > pos:
                add(Text(source[pos:m.start()]))
            pos = m.end()
            raw = m.group(0)
            if m.group("comment") is not None:
                add(Comment(raw))
            elif m.group("cdata") is not None:
                add(Cdata(raw))
            elif m.group("pi") is not None or m.group("doctype") is not None:
                add(Markup(raw))
            elif m.group("end") is not None:
                stack.pop().end_tag = raw
            else:
                element = Element(m.group("start_name"), raw, "" if m.group("empty") is None else None)
                add(element)
                if m.group("empty") is None:
                    stack.append(element)
        if pos < len(source):
            add(Text(source[pos:]))

        root = next(n for n in top if isinstance(n, Element))
        eol = "\r\n" if "\r\n" in source else "\n"
        return cls(top, root, eol, _detect_indent(root), simple_element_whitespace.resolve(source))

    def serialize(self) -> str:
        return "".join(n.serialize() for n in self.nodes)

    def whitespace(self, depth: int) -> str:
        return self.eol + self.indent * depth

    def create_element(self, name: str, text: Optional[str] = None) -> Element:
        """A detached element; without text it is rendered as an empty element."""
        if text:
            element = Element(name, f"<{name}>", f"</{name}>")
            element.set_text(text)
            return element
        return Element(name, f"<{name}{self.empty_element_space}/>", None)

    def append_child(self, parent: Element, child: Node) -> None:
        """Append ``child`` after the last non-whitespace child of ``parent``."""
        depth = parent.depth
        last = None
        for i, node in enumerate(parent.children):
            if not (isinstance(node, Text) and node.is_whitespace):
                last = i
        if last is None:
            parent.set_children([
                Text(self.whitespace(depth + 1)),
                child,
                Text(self.whitespace(depth)),
            ])
        else:
            parent.insert(last + 1, child)
            parent.insert(last + 1, Text(self.whitespace(depth + 1)))

    def insert_before(self, ref: Node, child: Node) -> None:
        """Insert ``child`` before ``ref``, which keeps its own indentation."""
        parent = ref.parent
        i = parent.index(ref)
        parent.insert(i, Text(self.whitespace(parent.depth + 1)))
        parent.insert(i, child)

    def insert_after(self, ref: Node, child: Node) -> None:
        parent = ref.parent
        i = parent.index(ref)
        parent.insert(i + 1, child)
        parent.insert(i + 1, Text(self.whitespace(parent.depth + 1)))

    def remove(
        self,
        node: Node,
        remove_preceding_comments: bool = False,
        remove_preceding_whitespace: bool = True,
    ) -> None:
        """Detach ``node`` and optionally the comments and whitespace in front of it."""
        parent = node.parent
        children = parent.children
        end = parent.index(node)
        start = end
        while True:
            k = start
            if remove_preceding_whitespace and k > 0 and _is_whitespace(children[k - 1]):
                k -= 1
            if remove_preceding_comments and k > 0 and isinstance(children[k - 1], Comment):
                start = k - 1
                continue
            start = k
            break
        for removed in children[start:end + 1]:
            removed.parent = None
        del children[start:end + 1]


def _is_whitespace(node: Node) -> bool:
    return isinstance(node, Text) and node.is_whitespace


def _detect_indent(root: Element) -> str:
    previous = None
    for node in root.children:
        if isinstance(node, Element) and _is_whitespace(previous) and "\n" in previous.raw:
            unit = previous.raw.rpartition("\n")[2]
            if unit:
                return unit
        previous = node
    return DEFAULT_INDENT
