"""
Folder tree of a publish batch.

Each node is one destination folder touched by the batch and holds the
items destined directly for it. The tree is walked depth-first so that a
folder is opened before anything inside it and closed after everything
inside it, which is the nesting a commit editor requires.
"""
from typing import Any, Dict, Iterator, List, Optional, Protocol


class TreeVisitor(Protocol):
    def enter(self, node: "PathNode") -> None:
        """Called before the node's children are walked. Never for the root."""
        ...

    def visit(self, node: "PathNode") -> None:
        """Called after the children, to process the node's own items."""
        ...

    def leave(self, node: "PathNode") -> None:
        """Called last. Never for the root."""
        ...


class PathNode:
    """One folder. Owns its children; ``parent`` is a back-reference."""

    def __init__(self, name: str = "", parent: Optional["PathNode"] = None):
        self.name = name
        self.parent = parent
        self.children: Dict[str, PathNode] = {}
        self.items: List[Any] = []
        if parent is None or parent.is_root:
            self.path = name
        else:
            self.path = f"{parent.path}/{name}"

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def child(self, name: str) -> "PathNode":
        """Return the child for ``name``, creating it on first use."""
        node = self.children.get(name)
        if node is None:
            node = PathNode(name, self)
            self.children[name] = node
        return node

    def walk(self, visitor: TreeVisitor) -> None:
        if not self.is_root:
            visitor.enter(self)
        for child in list(self.children.values()):
            child.walk(visitor)
        visitor.visit(self)
        if not self.is_root:
            visitor.leave(self)

    def __repr__(self) -> str:
        return f"PathNode({self.path!r}, items={len(self.items)}, children={len(self.children)})"


class PathTree:
    """Tree of destination folders, built incrementally."""

    def __init__(self):
        self.root = PathNode()

    @staticmethod
    def segments(path: str) -> List[str]:
        return [segment for segment in path.split("/") if segment]

    def insert(self, path: str, item: Any = None) -> PathNode:
        """
        Add the folder at ``path`` (and its ancestors) to the tree.

        Args:
            path: Folder path, "" for the root
            item: Optional item appended to the folder's items

        Returns:
            The node for ``path``
        """
        node = self.root
        for segment in self.segments(path):
            node = node.child(segment)
        if item is not None:
            node.items.append(item)
        return node

    def walk(self, visitor: TreeVisitor) -> None:
        """Depth-first walk: enter, children, own items, leave."""
        self.root.walk(visitor)

    def __iter__(self) -> Iterator[PathNode]:
        for node in self._preorder(self.root):
            if not node.is_root:
                yield node

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def _preorder(self, node: PathNode) -> Iterator[PathNode]:
        yield node
        for child in node.children.values():
            yield from self._preorder(child)
