"""Launch item tree.

A launch is a tree of test items: the root is a sentinel node without
content, suites hang off the root and tests/steps off the suites. Parents own
their children; a child refers back to its parent weakly and only reads it
(``is_root``, ``parent_id``).
"""

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

MAX_NAME_LENGTH = 255


class ItemType(str, Enum):
    """Report Portal test item types."""
    SUITE = "SUITE"
    STORY = "STORY"
    TEST = "TEST"
    SCENARIO = "SCENARIO"
    STEP = "STEP"
    BEFORE_CLASS = "BEFORE_CLASS"
    AFTER_CLASS = "AFTER_CLASS"
    BEFORE_METHOD = "BEFORE_METHOD"
    AFTER_METHOD = "AFTER_METHOD"
    BEFORE_SUITE = "BEFORE_SUITE"
    AFTER_SUITE = "AFTER_SUITE"
    BEFORE_TEST = "BEFORE_TEST"
    AFTER_TEST = "AFTER_TEST"


@dataclass
class TestItem:
    """A suite, test or step as reported to Report Portal."""
    __test__ = False  # not a pytest test class

    name: Optional[str] = None
    type: Optional[ItemType] = None
    id: Optional[str] = None
    start_time: Optional[int] = None
    description: Optional[str] = None
    closed: bool = False
    tags: set[str] = field(default_factory=set)

    @property
    def started(self) -> bool:
        return self.id is not None

    @property
    def truncated_name(self) -> str:
        return (self.name or "")[:MAX_NAME_LENGTH]


class ItemNode:
    """A node of the item tree; the root node has no content."""

    def __init__(self, content: Optional[TestItem] = None, parent: Optional["ItemNode"] = None):
        self.content = content
        self.children: list[ItemNode] = []
        self._parent = weakref.ref(parent) if parent is not None else None

    @property
    def parent(self) -> Optional["ItemNode"]:
        return self._parent() if self._parent is not None else None

    @property
    def is_root(self) -> bool:
        return self._parent is None

    @property
    def parent_id(self) -> Optional[str]:
        """Remote id of the parent item; None for top-level items and the root."""
        parent = self.parent
        if parent is None or parent.is_root or parent.content is None:
            return None
        return parent.content.id

    def add_child(self, item: TestItem) -> "ItemNode":
        node = ItemNode(item, parent=self)
        self.children.append(node)
        return node

    def child_named(self, name: str) -> Optional["ItemNode"]:
        for child in self.children:
            if child.content is not None and child.content.name == name:
                return child
        return None

    def walk(self) -> Iterator["ItemNode"]:
        """Depth-first, parents before children; the root itself is skipped."""
        for child in self.children:
            yield child
            yield from child.walk()

    def __repr__(self) -> str:
        name = self.content.name if self.content else "<root>"
        return f"ItemNode({name!r}, children={len(self.children)})"


class ItemTree:
    """Owns the root node of a launch's item tree."""

    def __init__(self):
        self.root = ItemNode()

    def add(self, item: TestItem, parent: Optional[ItemNode] = None) -> ItemNode:
        """Attach ``item`` under ``parent`` (the root when omitted)."""
        return (parent or self.root).add_child(item)

    def find(self, name: str, parent: Optional[ItemNode] = None) -> Optional[ItemNode]:
        return (parent or self.root).child_named(name)

    def find_or_add(self, item: TestItem, parent: Optional[ItemNode] = None) -> ItemNode:
        return self.find(item.name, parent) or self.add(item, parent)

    def walk(self) -> Iterator[ItemNode]:
        return self.root.walk()

    def open_nodes(self) -> list[ItemNode]:
        """Started, unfinished nodes, deepest first so children close before parents."""
        nodes = [
            node for node in self.walk()
            if node.content is not None and node.content.started and not node.content.closed
        ]
        return list(reversed(nodes))
